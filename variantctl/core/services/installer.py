"""
Installer service: the transactional step shared by install and upgrade.

    preflight      target exists, runtime present and supported
                   (no filesystem writes, no lock)
    apply_variant  replace core/ and autogen/, restore preserved files, write
                   context, markers and guidance; rolled back as a unit

Result and option types for both use cases live here too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from variantctl.adapters.base import RuntimeAdapter, parse_major
from variantctl.core.config.loader import DEFAULT_LOG_MAX_BYTES
from variantctl.core.errors import ErrorKind, PartialWriteError, VariantctlError
from variantctl.core.models.install import InstallContext, InstallMethod
from variantctl.core.models.variant import MIN_RUNTIME_VERSION, VariantDefinition
from variantctl.core.persistence.context_file import save_context
from variantctl.core.reliability.rollback import (
    RollbackResult,
    begin_transaction,
    commit,
    rollback,
    track_removal,
    track_write,
)
from variantctl.core.services import variant_files
from variantctl.core.services.variant_files import CopyReport
from variantctl.core.workspace import Workspace

logger = logging.getLogger(__name__)

Operation = Literal["install", "upgrade"]


@dataclass
class InstallOptions:
    """Caller choices for install/upgrade."""

    variant: str | None = None
    force: bool = False
    skip_deps: bool = False
    artifacts_dir: Path | None = None
    runtime: RuntimeAdapter | None = None
    install_method: InstallMethod = "direct"
    preserve: list[str] = field(default_factory=list)
    log_max_bytes: int = DEFAULT_LOG_MAX_BYTES


@dataclass
class OperationResult:
    """Outward result of install/upgrade."""

    operation: Operation
    success: bool = False
    variant: str | None = None
    previous_variant: str | None = None
    changed: bool = False
    files: int = 0
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None
    remediation: str = ""
    rollback: RollbackResult | None = None

    def fail(self, kind: ErrorKind, message: str, remediation: str = "") -> OperationResult:
        self.success = False
        self.changed = False
        self.error_kind = kind
        self.error = message
        self.remediation = remediation
        return self

    def fail_from(self, err: VariantctlError) -> OperationResult:
        return self.fail(err.kind, err.message, err.remediation)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "operation": self.operation,
            "success": self.success,
            "variant": self.variant,
            "previous_variant": self.previous_variant,
            "changed": self.changed,
            "files": self.files,
            "warnings": self.warnings,
        }
        if self.error:
            result["error"] = self.error
            result["error_kind"] = str(self.error_kind) if self.error_kind else None
            result["remediation"] = self.remediation
        if self.rollback is not None:
            result["rollback"] = self.rollback.to_dict()
        return result


class TransactionFailed(PartialWriteError):
    """A write failed mid-operation; ``rollback`` says what was undone."""

    def __init__(self, message: str, rollback_result: RollbackResult, *, remediation: str = "") -> None:
        super().__init__(message, remediation=remediation)
        self.rollback = rollback_result


# ── Pre-flight ─────────────────────────────────────────────────


def preflight(target: Path, runtime: RuntimeAdapter, result: OperationResult) -> bool:
    """Checks that need neither the lock nor any write.

    Returns False (with ``result`` failed) when the operation must stop.
    """
    if not target.is_dir():
        result.fail(
            ErrorKind.TARGET_NOT_FOUND,
            f"Target directory does not exist: {target}",
            remediation="Create the project directory or pass the right path.",
        )
        return False

    version = runtime.version()
    major = parse_major(version) if version else None
    if major is None:
        result.fail(
            ErrorKind.RUNTIME_NOT_FOUND,
            "Could not determine the Node.js version (is `node` on PATH?).",
            remediation="Install Node.js 18+ or pass --runtime-version.",
        )
        return False
    if major < MIN_RUNTIME_VERSION:
        result.fail(
            ErrorKind.UNSUPPORTED_RUNTIME,
            f"Node.js {major} is not supported. "
            f"variantctl requires Node.js {MIN_RUNTIME_VERSION} or higher.",
            remediation=f"Upgrade Node.js to {MIN_RUNTIME_VERSION} or newer (18+ recommended).",
        )
        return False
    return True


# ── Transactional apply ────────────────────────────────────────


def apply_variant(
    ws: Workspace,
    definition: VariantDefinition,
    context: InstallContext,
    artifacts_dir: Path,
    *,
    operation: Operation,
    preserve: list[str] | None = None,
    package_name: str = variant_files.DEFAULT_PACKAGE_NAME,
) -> CopyReport:
    """Replace the installed files with ``definition`` and write ``context``.

    All writes are tracked; on any failure the target is rolled back
    and TransactionFailed is raised.
    """
    tx = begin_transaction(ws.state_dir)
    try:
        preserved: dict[Path, bytes] = {}
        for path in ws.preserved_paths(preserve):
            if path.is_file():
                preserved[path] = path.read_bytes()

        for managed in ws.managed_dirs:
            track_removal(tx, managed)
        report = variant_files.copy_artifacts(ws, tx, artifacts_dir, definition)

        for path, data in preserved.items():
            track_write(tx, path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            logger.debug("Preserved %s", path)

        track_write(tx, ws.context_path)
        save_context(context, ws.context_path)

        variant_files.write_protection_markers(ws, tx, definition, context)
        variant_files.write_guidance(ws, tx, definition, package_name)
    except (OSError, ValueError, VariantctlError) as e:
        logger.error("%s of %s failed: %s", operation, definition.id, e)
        ws.log.log_rollback_start(str(e))
        outcome = rollback(tx)
        ws.log.log_rollback_complete(outcome.succeeded, outcome.to_dict())
        raise _failure(operation, e, outcome) from e

    commit(tx)
    return report


def _failure(operation: Operation, cause: Exception, outcome: RollbackResult) -> TransactionFailed:
    if outcome.succeeded:
        return TransactionFailed(
            f"{operation.capitalize()} failed while writing files: {cause}. "
            "All changes were rolled back.",
            outcome,
            remediation="Fix the cause above and run the command again.",
        )
    steps = "\n".join(f"  - {step}" for step in outcome.manual_steps())
    return TransactionFailed(
        f"{operation.capitalize()} failed while writing files: {cause}. "
        f"Rollback was incomplete ({len(outcome.failed)} path(s) could not be undone).",
        outcome,
        remediation=f"Manual cleanup required:\n{steps}",
    )


def dependency_step(ws: Workspace, operation: Operation, definition: VariantDefinition,
                    skip_deps: bool) -> str | None:
    """Record the dependency-install decision; returns a warning when it is left to the user."""
    if skip_deps:
        ws.log.info(operation, "Dependency installation skipped", {"variant": definition.id})
        return None
    ws.log.info(operation, "Dependency installation left to the caller", {
        "variant": definition.id, "toolchain_version": definition.toolchain_version,
    })
    return (
        f"Run `npm install` in {ws.e2e_dir} to install dependencies "
        f"(Playwright {definition.toolchain_version})."
    )
