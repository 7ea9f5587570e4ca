"""
Rollback engine: transactional tracking of filesystem changes.

Every path the installer is about to write or remove is registered on a
``RollbackTransaction`` first:

    track_write    → back up an existing file (copy), or remember that
                     the path (and any missing parents) will be created
    track_removal  → move an existing file or tree aside into the
                     backup area instead of deleting it

``commit`` drops the backups. ``rollback`` removes what was created
(newest first) and moves the backups back, collecting a per-path
outcome instead of stopping at the first failure.

Backups live under ``.variantctl/backups/<txid>/`` next to the target,
so moves are same-filesystem renames.
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

logger = logging.getLogger(__name__)

BACKUPS_DIR = "backups"


@dataclass
class BackupEntry:
    """One original path and where its pre-transaction copy lives."""

    original: Path
    backup: Path
    moved: bool  # True: original was moved aside (track_removal)


@dataclass
class RollbackTransaction:
    """In-memory record of one install/upgrade's filesystem changes."""

    id: str
    backup_dir: Path
    created: list[Path] = field(default_factory=list)
    backups: list[BackupEntry] = field(default_factory=list)
    closed: bool = False
    # Set views of created and backups, for constant-time lookups
    created_set: set[Path] = field(default_factory=set, repr=False)
    backed_up: set[Path] = field(default_factory=set, repr=False)

    def is_tracked(self, path: Path) -> bool:
        return path in self.created_set or path in self.backed_up


@dataclass
class RollbackFailure:
    path: str
    action: Literal["remove", "restore"]
    error: str
    backup: str | None = None

    def manual_step(self) -> str:
        if self.action == "remove":
            return f"Delete {self.path}"
        return f"Move {self.backup} back to {self.path}"


@dataclass
class RollbackResult:
    """Outcome of ``rollback``. Lists hold path strings."""

    removed: list[str] = field(default_factory=list)
    restored: list[str] = field(default_factory=list)
    failed: list[RollbackFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failed

    def manual_steps(self) -> list[str]:
        """Cleanup instructions for everything rollback could not undo."""
        return [f.manual_step() for f in self.failed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "removed": self.removed,
            "restored": self.restored,
            "failed": [
                {"path": f.path, "action": f.action, "error": f.error, "backup": f.backup}
                for f in self.failed
            ],
            "manual_steps": self.manual_steps(),
        }


def begin_transaction(state_dir: Path) -> RollbackTransaction:
    """Start an empty transaction whose backups go under ``state_dir``."""
    tx_id = uuid.uuid4().hex[:12]
    tx = RollbackTransaction(id=tx_id, backup_dir=state_dir / BACKUPS_DIR / tx_id)
    logger.debug("Transaction %s started", tx_id)
    return tx


def track_write(tx: RollbackTransaction, path: Path) -> None:
    """Register a file about to be written (or a directory about to be made).

    Missing parent directories are recorded as created, outermost
    first. An existing file is copied into the backup area.
    """
    _check_open(tx)
    if tx.is_tracked(path):
        return

    missing: list[Path] = []
    parent = path.parent
    while not parent.exists():
        missing.append(parent)
        if parent.parent == parent:
            break
        parent = parent.parent
    for directory in reversed(missing):
        if directory not in tx.created_set:
            tx.created.append(directory)
            tx.created_set.add(directory)

    if not path.exists():
        tx.created.append(path)
        tx.created_set.add(path)
        return
    if path.is_dir():
        return  # existing directories are left alone

    backup = _backup_path(tx, path)
    backup.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(path, backup)
    tx.backups.append(BackupEntry(original=path, backup=backup, moved=False))
    tx.backed_up.add(path)
    logger.debug("Backed up %s → %s", path, backup)


def track_removal(tx: RollbackTransaction, path: Path) -> None:
    """Remove ``path`` (file or tree) by moving it into the backup area."""
    _check_open(tx)
    if not path.exists():
        return
    backup = _backup_path(tx, path)
    backup.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(path), str(backup))
    tx.backups.append(BackupEntry(original=path, backup=backup, moved=True))
    tx.backed_up.add(path)
    logger.debug("Moved aside %s → %s", path, backup)


def commit(tx: RollbackTransaction) -> None:
    """Finish successfully: drop all backups."""
    _check_open(tx)
    tx.closed = True
    _discard_backups(tx)
    logger.debug("Transaction %s committed (%d created, %d backed up)",
                 tx.id, len(tx.created), len(tx.backups))


def rollback(tx: RollbackTransaction) -> RollbackResult:
    """Undo every tracked change, best effort.

    Created paths are removed newest first, then backups are restored
    newest first. Backups are kept on disk when any restore fails so
    the manual steps in the result remain possible.
    """
    _check_open(tx)
    tx.closed = True
    result = RollbackResult()

    for path in reversed(tx.created):
        if not os.path.lexists(path):
            continue
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
            result.removed.append(str(path))
        except OSError as e:
            logger.warning("Rollback could not remove %s: %s", path, e)
            result.failed.append(RollbackFailure(path=str(path), action="remove", error=str(e)))

    for entry in reversed(tx.backups):
        try:
            entry.original.parent.mkdir(parents=True, exist_ok=True)
            if entry.original.is_dir() and not entry.original.is_symlink():
                shutil.rmtree(entry.original)
            os.replace(entry.backup, entry.original)
            result.restored.append(str(entry.original))
        except OSError as e:
            logger.warning("Rollback could not restore %s: %s", entry.original, e)
            result.failed.append(RollbackFailure(
                path=str(entry.original), action="restore",
                error=str(e), backup=str(entry.backup),
            ))

    if not any(f.action == "restore" for f in result.failed):
        _discard_backups(tx)

    logger.info("Transaction %s rolled back: %d removed, %d restored, %d failed",
                tx.id, len(result.removed), len(result.restored), len(result.failed))
    return result


# ── Internals ──────────────────────────────────────────────────


def _check_open(tx: RollbackTransaction) -> None:
    if tx.closed:
        raise RuntimeError(f"Transaction {tx.id} is already closed")


def _backup_path(tx: RollbackTransaction, path: Path) -> Path:
    return tx.backup_dir / f"{len(tx.backups):04d}-{path.name}"


def _discard_backups(tx: RollbackTransaction) -> None:
    if tx.backup_dir.exists():
        try:
            shutil.rmtree(tx.backup_dir)
        except OSError as e:
            logger.warning("Could not delete backups %s: %s", tx.backup_dir, e)
            return
    try:
        tx.backup_dir.parent.rmdir()  # only succeeds when empty
    except OSError:
        pass
