"""
Lock manager: cross-process mutual exclusion for one target directory.

The lock is the file .variantctl/install.lock. Its existence is the
only gate: a record is written to a private temp file and hard-linked
into place, so creation is exclusive and no reader ever sees a
half-written lock.

A lock is stale when its owner process is gone or it is older than
STALE_AFTER_S. There is no heartbeat; an operation that legitimately
runs longer than the timeout can be reclaimed by another process.
"""

from __future__ import annotations

import errno
import json
import logging
import os
import sys
import tempfile
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from variantctl.core.errors import LockHeldError, StateDirError
from variantctl.core.models.install import LockOperation, LockRecord

logger = logging.getLogger(__name__)

LOCK_FILE = "install.lock"
STALE_AFTER_S = 10 * 60
MAX_ACQUIRE_ATTEMPTS = 3

# An unparseable lock younger than this may still be mid-write
# (only possible on filesystems without hard links).
_CREATE_GRACE_S = 5.0

_NO_LINK_ERRNOS = {errno.EPERM, errno.EXDEV, errno.EMLINK, getattr(errno, "ENOTSUP", -1),
                   getattr(errno, "EOPNOTSUPP", -1)}


def pid_alive(pid: int) -> bool:
    """Whether a process with ``pid`` exists on this host."""
    if pid <= 0:
        return False
    if sys.platform == "win32":
        # No signal-0 probe on Windows; rely on the age timeout.
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # exists, owned by another user
    except OSError:
        return False
    return True


@dataclass
class LockInfo:
    """Observed state of a lock file."""

    path: Path
    locked: bool = False
    stale: bool = False
    record: LockRecord | None = None
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "locked": self.locked,
            "stale": self.stale,
            "record": self.record.model_dump(mode="json") if self.record else None,
            "reason": self.reason,
        }


class LockManager:
    """Acquire/release the install lock of one target.

    Args:
        path: Lock file path (``<target>/.variantctl/install.lock``).
        pid: Owner id written into the record (default: this process).
        stale_after: Age in seconds after which a lock is reclaimable.
    """

    def __init__(
        self,
        path: Path,
        *,
        pid: int | None = None,
        stale_after: float = STALE_AFTER_S,
    ) -> None:
        self._path = path
        self._pid = pid if pid is not None else os.getpid()
        self._stale_after = stale_after
        self._held: LockRecord | None = None
        self._acquired_at: float | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def stale_after(self) -> float:
        return self._stale_after

    # ── Acquire / release ──────────────────────────────────────

    def acquire(self, operation: LockOperation) -> LockRecord:
        """Take the lock without waiting.

        Raises:
            LockHeldError: A live, non-stale owner holds the lock, or
                stale-lock reclamation kept losing races.
            StateDirError: The lock directory cannot be created or
                written.
        """
        try:
            return self._acquire(operation)
        except OSError as e:
            raise StateDirError(
                f"Cannot create {self._path}: {e}",
                remediation=(
                    f"Make sure {self._path.parent} is a writable directory "
                    "(not a file, not on a read-only filesystem)."
                ),
            ) from e

    def _acquire(self, operation: LockOperation) -> LockRecord:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        for attempt in range(1, MAX_ACQUIRE_ATTEMPTS + 1):
            record = LockRecord(pid=self._pid, operation=operation)
            if self._try_create(record):
                self._held = record
                self._acquired_at = time.monotonic()
                logger.debug("Lock acquired: %s (pid=%d, %s)", self._path, self._pid, operation)
                return record

            exists, existing = self._read()
            if not exists:
                continue  # released between our attempt and the read

            reason = self.stale_reason(existing)
            if reason is None:
                if existing is None:
                    owner = "Another process is creating the lock."
                else:
                    owner = (
                        f"Another {existing.operation} operation is in progress "
                        f"(pid {existing.pid}, started {existing.started_at})."
                    )
                raise LockHeldError(
                    owner,
                    remediation=(
                        "Wait for it to finish and retry. If no variantctl process is "
                        f"running, the lock becomes reclaimable after "
                        f"{int(self._stale_after // 60)} minutes, or delete {self._path}."
                    ),
                )

            logger.warning("Reclaiming stale lock %s: %s (attempt %d)", self._path, reason, attempt)
            self._reclaim(existing)

        raise LockHeldError(
            f"Could not acquire {self._path} after {MAX_ACQUIRE_ATTEMPTS} attempts; "
            "another process is reclaiming it concurrently.",
            remediation="Retry in a moment.",
        )

    def release(self) -> None:
        """Delete the lock file. Never raises."""
        try:
            self._path.unlink()
            logger.debug("Lock released: %s", self._path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove lock %s: %s", self._path, e)
        self._held = None
        self._acquired_at = None

    @contextmanager
    def held(self, operation: LockOperation) -> Iterator[LockRecord]:
        """Hold the lock for the duration of a ``with`` block."""
        record = self.acquire(operation)
        try:
            yield record
        finally:
            elapsed = self.held_for()
            if elapsed > self._stale_after / 2:
                logger.warning(
                    "%s held the lock for %.0fs; locks older than %.0fs can be "
                    "reclaimed by other processes",
                    operation, elapsed, self._stale_after,
                )
            self.release()

    def held_for(self) -> float:
        """Seconds since this manager acquired the lock (0 when not held)."""
        if self._acquired_at is None:
            return 0.0
        return time.monotonic() - self._acquired_at

    # ── Inspection ─────────────────────────────────────────────

    def stale_reason(self, record: LockRecord | None, now: datetime | None = None) -> str | None:
        """Why ``record`` is stale, or None when it is live."""
        if record is None:
            if self._younger_than(_CREATE_GRACE_S):
                return None  # may still be mid-write
            return "lock record is unreadable"
        if not pid_alive(record.pid):
            return f"owner process {record.pid} is not running"
        age = record.age_seconds(now or datetime.now(UTC))
        if age > self._stale_after:
            return f"lock is {int(age)}s old (timeout {int(self._stale_after)}s)"
        return None

    def inspect(self) -> LockInfo:
        """Describe the current lock without modifying it."""
        exists, record = self._read()
        if not exists:
            return LockInfo(path=self._path)
        reason = self.stale_reason(record)
        if reason is not None:
            return LockInfo(path=self._path, locked=False, stale=True, record=record, reason=reason)
        return LockInfo(path=self._path, locked=True, record=record)

    def is_locked(self) -> bool:
        return self.inspect().locked

    def is_own_lock(self) -> bool:
        _, record = self._read()
        return record is not None and record.pid == self._pid

    # ── Internals ──────────────────────────────────────────────

    def _try_create(self, record: LockRecord) -> bool:
        """Exclusively create the lock file with ``record`` as content."""
        content = json.dumps(record.model_dump(mode="json"), indent=2) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".lock_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            try:
                os.link(tmp, self._path)
            except FileExistsError:
                return False
            except OSError as e:
                if e.errno not in _NO_LINK_ERRNOS:
                    raise
                return self._create_exclusive(content)
            return True
        finally:
            tmp.unlink(missing_ok=True)

    def _create_exclusive(self, content: str) -> bool:
        """O_EXCL fallback for filesystems without hard links."""
        try:
            fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with open(fd, "w", encoding="utf-8") as f:
            f.write(content)
        return True

    def _read(self) -> tuple[bool, LockRecord | None]:
        """(exists, record). The record is None when unparseable."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return False, None
        except OSError as e:
            logger.warning("Cannot read lock %s: %s", self._path, e)
            return True, None

        try:
            return True, LockRecord.model_validate_json(raw)
        except ValidationError:
            return True, None

    def _younger_than(self, seconds: float) -> bool:
        try:
            return (time.time() - self._path.stat().st_mtime) < seconds
        except OSError:
            return False

    def _reclaim(self, stale: LockRecord | None) -> None:
        """Remove a stale lock without clobbering a fresh one.

        The lock is renamed aside first; if what was moved turns out
        to be a different (fresh) record, it is linked back.
        """
        aside = self._path.with_name(f"{self._path.name}.{self._pid}.{uuid.uuid4().hex[:8]}.stale")
        try:
            os.replace(self._path, aside)
        except FileNotFoundError:
            return  # another process reclaimed it first
        try:
            try:
                moved: LockRecord | None = LockRecord.model_validate_json(
                    aside.read_text(encoding="utf-8")
                )
            except (OSError, ValidationError):
                moved = None
            if moved != stale:
                try:
                    os.link(aside, self._path)
                    logger.debug("Restored a fresh lock displaced during reclaim")
                except OSError as e:
                    logger.warning("Could not restore displaced lock %s: %s", self._path, e)
        finally:
            aside.unlink(missing_ok=True)
