"""
Workspace: everything variantctl owns inside one target project.

One Workspace per target path. It knows the layout of the hidden state
directory and of the installed-files area, and owns the lock manager
and install logger for that target. Nothing here is process-global, so
several targets can be driven from the same process (tests do this).

Layout:
    <target>/
        .variantctl/
            context.json      InstallContext
            install.log       audit trail (NDJSON)
            install.lock      present while an operation runs
            backups/<txid>/   rollback backups, only during an operation
        e2e/vendor/
            core/             variant distribution (replaced on install)
            autogen/          companion code generator distribution (replaced)
            vendor.config.yml user configuration (never touched)
        .github/prompts/harness.variant-info.prompt.md
"""

from __future__ import annotations

from pathlib import Path

from variantctl.core.config.loader import DEFAULT_LOG_MAX_BYTES
from variantctl.core.persistence.context_file import CONTEXT_FILE, STATE_DIR
from variantctl.core.persistence.install_log import LOG_FILE, InstallLogger
from variantctl.core.reliability.lock_manager import LOCK_FILE, STALE_AFTER_S, LockManager

E2E_DIR = "e2e"
VENDOR_DIR = "vendor"
USER_CONFIG_FILE = "vendor.config.yml"
GUIDANCE_FILE = Path(".github") / "prompts" / "harness.variant-info.prompt.md"


class Workspace:
    """Paths, lock and log of one target project.

    Args:
        target: Target project directory.
        pid: Lock owner id (default: this process).
        log_max_bytes: Rotation threshold for install.log.
        lock_stale_after: Seconds after which a lock is reclaimable.
    """

    def __init__(
        self,
        target: Path,
        *,
        pid: int | None = None,
        log_max_bytes: int = DEFAULT_LOG_MAX_BYTES,
        lock_stale_after: float = STALE_AFTER_S,
    ) -> None:
        self.target = target.resolve()
        self.lock = LockManager(self.state_dir / LOCK_FILE, pid=pid, stale_after=lock_stale_after)
        self.log = InstallLogger(self.state_dir / LOG_FILE, max_bytes=log_max_bytes)

    def __repr__(self) -> str:
        return f"<Workspace {self.target}>"

    # ── State directory ────────────────────────────────────────

    @property
    def state_dir(self) -> Path:
        return self.target / STATE_DIR

    @property
    def context_path(self) -> Path:
        return self.state_dir / CONTEXT_FILE

    # ── Installed-files area ───────────────────────────────────

    @property
    def e2e_dir(self) -> Path:
        return self.target / E2E_DIR

    @property
    def vendor_dir(self) -> Path:
        return self.e2e_dir / VENDOR_DIR

    @property
    def core_dir(self) -> Path:
        return self.vendor_dir / "core"

    @property
    def autogen_dir(self) -> Path:
        return self.vendor_dir / "autogen"

    @property
    def user_config_path(self) -> Path:
        return self.vendor_dir / USER_CONFIG_FILE

    @property
    def guidance_path(self) -> Path:
        return self.target / GUIDANCE_FILE

    @property
    def managed_dirs(self) -> tuple[Path, Path]:
        """Directories whose whole content belongs to the installed variant."""
        return (self.core_dir, self.autogen_dir)

    def preserved_paths(self, extra: list[str] | None = None) -> list[Path]:
        """User files inside the managed directories that survive reinstalls.

        ``extra`` entries are relative to the target directory. Anything
        outside ``managed_dirs`` (vendor.config.yml, sibling libraries
        under e2e/vendor/) is never removed, so it needs no entry here.
        """
        paths: list[Path] = []
        for rel in extra or []:
            candidate = (self.target / rel).resolve()
            managed = any(candidate.is_relative_to(d) for d in self.managed_dirs)
            if managed and candidate not in paths:
                paths.append(candidate)
        return paths
