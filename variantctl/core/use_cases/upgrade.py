"""
Upgrade use case: move an existing installation to the variant the
current environment calls for.

Same transaction as install, plus: the existing context must be valid,
one upgrade history record is appended per applied upgrade, and an
upgrade that resolves to the installed variant is a no-op unless forced.
"""

from __future__ import annotations

import logging
from pathlib import Path

from variantctl.adapters.base import RuntimeAdapter
from variantctl.adapters.languages.node import NodeRuntime
from variantctl.core.errors import ErrorKind, InvalidContextError, VariantctlError
from variantctl.core.models.install import InstallContext, UpgradeRecord
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


def run_upgrade(
    target: Path,
    options: InstallOptions | None = None,
    *,
    workspace: Workspace | None = None,
) -> OperationResult:
    """Upgrade (or switch) the installed variant in ``target``.

    Returns:
        OperationResult; ``changed`` is False for a no-op upgrade.
    """
    options = options or InstallOptions()
    runtime = options.runtime or NodeRuntime()
    result = OperationResult(operation="upgrade")

    if not preflight(target, runtime, result):
        return result

    ws = workspace or Workspace(target, log_max_bytes=options.log_max_bytes)
    try:
        with ws.lock.held("upgrade"):
            _upgrade(ws, options, runtime, result)
    except VariantctlError as e:
        result.fail_from(e)
    return result


def _upgrade(ws: Workspace, options: InstallOptions, runtime: RuntimeAdapter,
             result: OperationResult) -> None:
    try:
        current = load_context(ws.context_path)
    except InvalidContextError as e:
        ws.log.error("upgrade", e.message)
        result.fail_from(e)
        return
    if current is None:
        result.fail(
            ErrorKind.NOT_INSTALLED,
            f"No installation found in {ws.target}.",
            remediation="Run `variantctl install` first.",
        )
        return
    result.previous_variant = current.variant

    detection = select_variant(ws.target, options.variant, runtime)
    result.warnings.extend(detection.warnings)
    if not detection.success:
        assert detection.error_kind is not None
        ws.log.error("upgrade", detection.error or "variant selection failed")
        result.fail(detection.error_kind, detection.error or "", detection.remediation)
        return

    variant_id = detection.selected_variant
    major = detection.runtime_major_version
    assert variant_id is not None and major is not None
    ws.log.log_detection(major, detection.module_convention or "sync", variant_id)

    if variant_id == current.variant and not options.force:
        result.success = True
        result.variant = variant_id
        result.changed = False
        result.warnings.append(f"No change: {variant_id} is already installed.")
        ws.log.info("upgrade", "No change", {"variant": variant_id})
        return

    definition = registry.get(variant_id)
    try:
        variant_files.validate_artifacts(options.artifacts_dir, definition)
    except VariantctlError as e:
        ws.log.error("upgrade", e.message, {"variant": variant_id})
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
        install_method=current.install_method,
        override_used=detection.override_used,
        previous_variant=current.variant,
        upgrade_history=[
            *current.upgrade_history,
            UpgradeRecord(from_variant=current.variant, to=definition.id),
        ],
    )

    ws.log.log_upgrade_start(current.variant, definition.id)
    try:
        report = apply_variant(
            ws, definition, context, options.artifacts_dir,
            operation="upgrade", preserve=options.preserve, package_name=package_name,
        )
    except TransactionFailed as e:
        ws.log.error("upgrade", f"Upgrade failed: {e.message}", {"variant": definition.id})
        result.fail_from(e)
        result.rollback = e.rollback
        return

    result.success = True
    result.changed = True
    result.variant = definition.id
    result.files = report.files
    result.warnings.extend(report.warnings)
    deps = dependency_step(ws, "upgrade", definition, options.skip_deps)
    if deps:
        result.warnings.append(deps)
    ws.log.log_upgrade_complete(definition.id, report.files)
    logger.info("Upgraded %s: %s → %s", ws.target, current.variant, definition.id)
