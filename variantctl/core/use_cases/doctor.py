"""
Doctor use case: diagnose an installation.

Checks, in order: target, runtime, installation, context, variant
compatibility, environment change, vendor tree, lock. Checks that
depend on an installation are skipped when there is none.
Read-only.
"""

from __future__ import annotations

import logging
from pathlib import Path

from variantctl.adapters.base import RuntimeAdapter, parse_major
from variantctl.adapters.languages.node import NodeRuntime
from variantctl.core.errors import InvalidContextError
from variantctl.core.models.install import InstallContext
from variantctl.core.models.variant import MIN_RUNTIME_VERSION
from variantctl.core.observability.health import DiagnosticCheck, Diagnosis
from variantctl.core.persistence.context_file import load_context
from variantctl.core.services import registry
from variantctl.core.services.detection import detect_environment_change
from variantctl.core.services.variant_files import vendor_tree_problems
from variantctl.core.workspace import Workspace

logger = logging.getLogger(__name__)


def run_doctor(
    target: Path,
    runtime: RuntimeAdapter | None = None,
    *,
    workspace: Workspace | None = None,
) -> Diagnosis:
    """Run every diagnostic check against ``target``."""
    runtime = runtime or NodeRuntime()
    diagnosis = Diagnosis(target=str(target.resolve()))

    if not target.is_dir():
        diagnosis.add(DiagnosticCheck("target", "fail", f"Target directory does not exist: {target}"))
        return diagnosis
    diagnosis.add(DiagnosticCheck("target", "pass", f"Target directory exists: {target}"))

    ws = workspace or Workspace(target)
    major = _check_runtime(diagnosis, runtime)
    context = _check_installation(diagnosis, ws)

    if context is not None:
        _check_compatibility(diagnosis, context, major)
        _check_environment(diagnosis, context, ws, runtime)
        _check_vendor_tree(diagnosis, ws, context)

    _check_lock(diagnosis, ws)
    logger.debug("Doctor %s: %s", ws.target, diagnosis.status)
    return diagnosis


def _check_runtime(diagnosis: Diagnosis, runtime: RuntimeAdapter) -> int | None:
    version = runtime.version()
    major = parse_major(version) if version else None
    if major is None:
        diagnosis.add(DiagnosticCheck("runtime", "fail", "Node.js version could not be determined"))
        diagnosis.recommend("Install Node.js 18+ or pass --runtime-version.")
        return None
    if major < MIN_RUNTIME_VERSION:
        diagnosis.add(DiagnosticCheck(
            "runtime", "fail",
            f"Node.js {major} is below the minimum ({MIN_RUNTIME_VERSION})",
            {"version": version},
        ))
        diagnosis.recommend(f"Upgrade Node.js to {MIN_RUNTIME_VERSION} or newer (18+ recommended).")
        return major
    if major not in registry.supported_runtime_versions():
        diagnosis.add(DiagnosticCheck(
            "runtime", "warn", f"Node.js {major} is not a tested version", {"version": version},
        ))
        return major
    diagnosis.add(DiagnosticCheck("runtime", "pass", f"Node.js {version}", {"version": version}))
    return major


def _check_installation(diagnosis: Diagnosis, ws: Workspace) -> InstallContext | None:
    if not ws.context_path.is_file():
        if ws.vendor_dir.exists():
            diagnosis.add(DiagnosticCheck(
                "installation", "fail",
                "Vendor files exist but context.json is missing (partial install)",
                {"vendor_dir": str(ws.vendor_dir)},
            ))
            diagnosis.recommend("Run `variantctl install --force` to repair the installation.")
        else:
            diagnosis.add(DiagnosticCheck("installation", "warn", "No installation found"))
            diagnosis.recommend("Run `variantctl install` to install a variant.")
        return None
    diagnosis.add(DiagnosticCheck("installation", "pass", "Installation found"))

    try:
        context = load_context(ws.context_path)
    except InvalidContextError as e:
        diagnosis.add(DiagnosticCheck("context", "fail", e.message))
        diagnosis.recommend(e.remediation)
        return None
    assert context is not None
    diagnosis.add(DiagnosticCheck(
        "context", "pass", f"context.json is valid (variant {context.variant})",
        {"variant": context.variant, "installed_at": context.installed_at},
    ))
    return context


def _check_compatibility(diagnosis: Diagnosis, context: InstallContext, major: int | None) -> None:
    if major is None:
        return
    definition = registry.get(context.variant)
    if registry.is_compatible(context.variant, major):
        diagnosis.add(DiagnosticCheck(
            "variant_compatibility", "pass", f"{context.variant} supports Node.js {major}",
        ))
        return
    diagnosis.add(DiagnosticCheck(
        "variant_compatibility", "fail",
        f"{context.variant} does not support Node.js {major} "
        f"(supported: {definition.runtime_range_label})",
    ))
    diagnosis.recommend("Run `variantctl upgrade` to switch to a compatible variant.")


def _check_environment(
    diagnosis: Diagnosis,
    context: InstallContext,
    ws: Workspace,
    runtime: RuntimeAdapter,
) -> None:
    change = detect_environment_change(context, ws.target, runtime)
    if not change.changed:
        diagnosis.add(DiagnosticCheck("environment", "pass", "Environment matches the installed variant"))
        return
    diagnosis.add(DiagnosticCheck(
        "environment", "warn", "Environment has changed since installation",
        change.to_dict(),
    ))
    if change.current_variant and change.current_variant != change.previous_variant:
        diagnosis.recommend(
            f"Run `variantctl upgrade` to switch from {change.previous_variant} "
            f"to {change.current_variant}."
        )


def _check_vendor_tree(diagnosis: Diagnosis, ws: Workspace, context: InstallContext) -> None:
    problems = vendor_tree_problems(ws, context.variant)
    if not problems:
        diagnosis.add(DiagnosticCheck("vendor_tree", "pass", "Vendor files are complete"))
        return
    diagnosis.add(DiagnosticCheck(
        "vendor_tree", "fail", f"{len(problems)} problem(s) in the vendor tree",
        {"problems": problems},
    ))
    diagnosis.recommend("Run `variantctl install --force` to reinstall the vendor files.")


def _check_lock(diagnosis: Diagnosis, ws: Workspace) -> None:
    info = ws.lock.inspect()
    if info.locked and info.record is not None:
        diagnosis.add(DiagnosticCheck(
            "lock", "warn",
            f"{info.record.operation} in progress (pid {info.record.pid}, "
            f"started {info.record.started_at})",
            info.to_dict(),
        ))
    elif info.locked:
        diagnosis.add(DiagnosticCheck("lock", "warn", "Lock is being created", info.to_dict()))
    elif info.stale:
        diagnosis.add(DiagnosticCheck("lock", "warn", f"Stale lock: {info.reason}", info.to_dict()))
        diagnosis.recommend("The stale lock is reclaimed by the next install/upgrade.")
    else:
        diagnosis.add(DiagnosticCheck("lock", "pass", "No operation in progress"))
