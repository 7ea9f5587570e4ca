"""
Install log: append-only audit trail for install/upgrade/rollback.

Every step writes an entry to an NDJSON (newline-delimited JSON) file at
.variantctl/install.log. Entries are never modified or deleted; once the
file grows past the size threshold it is renamed aside and a fresh file
is started.

Each append is a single write of one complete line, so sequential
invocations never interleave partial records.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from variantctl.core.config.loader import DEFAULT_LOG_MAX_BYTES

logger = logging.getLogger(__name__)

LOG_FILE = "install.log"

LogLevel = Literal["info", "warn", "error"]
LogOperation = Literal["install", "upgrade", "rollback", "detect"]


class LogEntry(BaseModel):
    """A single install log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    level: LogLevel = "info"
    operation: LogOperation
    message: str
    details: dict[str, Any] | None = None


class InstallLogger:
    """Append-only install log writer.

    The file and its directory are created on first write, never
    before, so a run that fails its pre-flight checks leaves the
    target untouched.
    """

    def __init__(self, path: Path, max_bytes: int = DEFAULT_LOG_MAX_BYTES):
        self._path = path
        self._max_bytes = max_bytes

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    # ── Core write ─────────────────────────────────────────────

    def write(self, entry: LogEntry) -> None:
        """Append an entry to the log. Write failures are logged, never raised."""
        data = entry.model_dump(mode="json", exclude_none=True)
        line = json.dumps(data, ensure_ascii=False, default=str) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._rotate_if_needed()
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Install log: [%s] %s: %s", entry.level, entry.operation, entry.message)
        except OSError as e:
            logger.error("Failed to write install log entry: %s", e)

    def _rotate_if_needed(self) -> None:
        """Rename the log aside once it exceeds the size threshold.

        Rotation problems are reported on the diagnostic logger and
        never interrupt the operation being logged.
        """
        try:
            size = self._path.stat().st_size
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning("Cannot stat install log %s: %s", self._path, e)
            return

        if size <= self._max_bytes:
            return

        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%f")
        rotated = self._path.with_name(f"{self._path.name}.{stamp}")
        try:
            self._path.rename(rotated)
            logger.info("Rotated install log (%d bytes) to %s", size, rotated.name)
        except OSError as e:
            logger.warning("Install log rotation failed: %s", e)

    # ── Level helpers ──────────────────────────────────────────

    def info(self, operation: LogOperation, message: str, details: dict[str, Any] | None = None) -> None:
        self.write(LogEntry(level="info", operation=operation, message=message, details=details))

    def warn(self, operation: LogOperation, message: str, details: dict[str, Any] | None = None) -> None:
        self.write(LogEntry(level="warn", operation=operation, message=message, details=details))

    def error(self, operation: LogOperation, message: str, details: dict[str, Any] | None = None) -> None:
        self.write(LogEntry(level="error", operation=operation, message=message, details=details))

    # ── Event helpers ──────────────────────────────────────────

    def log_install_start(self, variant: str, runtime_version: int) -> None:
        self.info("install", "Starting installation", {
            "variant": variant, "runtime_version": runtime_version,
        })

    def log_install_complete(self, variant: str, files: int) -> None:
        self.info("install", "Installation complete", {"variant": variant, "files": files})

    def log_install_failed(self, error: str, variant: str | None = None) -> None:
        self.error("install", f"Installation failed: {error}", {"variant": variant})

    def log_detection(self, runtime_version: int, convention: str, variant: str) -> None:
        self.info("detect", "Environment detected", {
            "runtime_version": runtime_version,
            "module_convention": convention,
            "selected_variant": variant,
        })

    def log_upgrade_start(self, from_variant: str, to_variant: str) -> None:
        self.info("upgrade", "Starting variant upgrade", {"from": from_variant, "to": to_variant})

    def log_upgrade_complete(self, variant: str, files: int) -> None:
        self.info("upgrade", "Upgrade complete", {"variant": variant, "files": files})

    def log_rollback_start(self, reason: str) -> None:
        self.warn("rollback", "Starting rollback", {"reason": reason})

    def log_rollback_complete(self, succeeded: bool, details: dict[str, Any]) -> None:
        if succeeded:
            self.info("rollback", "Rollback complete", details)
        else:
            self.error("rollback", "Rollback incomplete, manual cleanup required", details)

    # ── Reading ────────────────────────────────────────────────

    def read_all(self) -> list[LogEntry]:
        """Read all entries from the current log file, oldest first."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(LogEntry.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt install log entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read install log: %s", e)

        return entries

    def read_recent(self, n: int = 50) -> list[LogEntry]:
        """Read the most recent N entries."""
        if n <= 0:
            return []
        return self.read_all()[-n:]

    def entry_count(self) -> int:
        """Count entries without loading them all into memory."""
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
