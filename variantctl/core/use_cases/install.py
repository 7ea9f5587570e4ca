"""
Install use case: first installation of a variant into a target.

Ties together pre-flight checks, the target lock, variant selection,
artifact validation and the transactional apply step.
"""

from __future__ import annotations

import logging
from pathlib import Path

from variantctl.adapters.base import RuntimeAdapter
from variantctl.adapters.languages.node import NodeRuntime
from variantctl.core.errors import ErrorKind, InvalidContextError, VariantctlError
from variantctl.core.models.install import InstallContext
from variantctl.core.persistence.context_file import load_context
from variantctl.core.services import registry, variant_files
from variantctl.core.services.detection import select_variant
from variantctl.core.services.installer import (
    InstallOptions,
    OperationResult,
    TransactionFailed,
    apply_variant,
    dependency_step,
    preflight,
)
from variantctl.core.workspace import Workspace

logger = logging.getLogger(__name__)


def run_install(
    target: Path,
    options: InstallOptions | None = None,
    *,
    workspace: Workspace | None = None,
) -> OperationResult:
    """Install the detected (or requested) variant into ``target``.

    Args:
        target: Target project directory.
        options: Caller choices (variant override, force, artifacts...).
        workspace: Pre-built workspace (tests use this to simulate
            other processes); default is built from ``target``.

    Returns:
        OperationResult. Never raises for expected failures.
    """
    options = options or InstallOptions()
    runtime = options.runtime or NodeRuntime()
    result = OperationResult(operation="install")

    if not preflight(target, runtime, result):
        return result

    ws = workspace or Workspace(target, log_max_bytes=options.log_max_bytes)
    try:
        with ws.lock.held("install"):
            _install(ws, options, runtime, result)
    except VariantctlError as e:
        result.fail_from(e)
    return result


def _install(ws: Workspace, options: InstallOptions, runtime: RuntimeAdapter,
             result: OperationResult) -> None:
    detection = select_variant(ws.target, options.variant, runtime)
    result.warnings.extend(detection.warnings)
    if not detection.success:
        assert detection.error_kind is not None
        ws.log.log_install_failed(detection.error or "variant selection failed")
        result.fail(detection.error_kind, detection.error or "", detection.remediation)
        return

    variant_id = detection.selected_variant
    major = detection.runtime_major_version
    assert variant_id is not None and major is not None
    ws.log.log_detection(major, detection.module_convention or "sync", variant_id)
    for warning in detection.warnings:
        ws.log.warn("detect", warning)

    try:
        existing = load_context(ws.context_path)
    except InvalidContextError as e:
        if not options.force:
            result.fail_from(e)
            return
        logger.warning("Ignoring unreadable context (--force): %s", e.message)
        existing = None

    if existing is not None and not options.force:
        result.previous_variant = existing.variant
        result.fail(
            ErrorKind.ALREADY_INSTALLED,
            f"variantctl is already installed in {ws.target} (variant {existing.variant}).",
            remediation="Use `variantctl upgrade` to switch variants, or --force to reinstall.",
        )
        return

    definition = registry.get(variant_id)
    try:
        variant_files.validate_artifacts(options.artifacts_dir, definition)
    except VariantctlError as e:
        ws.log.log_install_failed(e.message, variant_id)
        result.fail_from(e)
        return
    assert options.artifacts_dir is not None
    package_name, package_version = variant_files.read_package_info(options.artifacts_dir)

    context = InstallContext(
        variant=definition.id,
        runtime_version=major,
        module_convention=definition.module_convention,
        toolchain_version=definition.toolchain_version,
        package_version=package_version,
        install_method=options.install_method,
        override_used=detection.override_used,
        previous_variant=existing.variant if existing else None,
        upgrade_history=list(existing.upgrade_history) if existing else [],
    )

    ws.log.log_install_start(definition.id, major)
    try:
        report = apply_variant(
            ws, definition, context, options.artifacts_dir,
            operation="install", preserve=options.preserve, package_name=package_name,
        )
    except TransactionFailed as e:
        ws.log.log_install_failed(e.message, definition.id)
        result.fail_from(e)
        result.rollback = e.rollback
        return

    result.success = True
    result.changed = True
    result.variant = definition.id
    result.previous_variant = context.previous_variant
    result.files = report.files
    result.warnings.extend(report.warnings)
    deps = dependency_step(ws, "install", definition, options.skip_deps)
    if deps:
        result.warnings.append(deps)
    ws.log.log_install_complete(definition.id, report.files)
    logger.info("Installed %s into %s", definition.id, ws.target)
