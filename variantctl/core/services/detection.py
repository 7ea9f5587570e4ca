"""
Detection service: work out which variant a target project needs.

Looks at two things only: the host runtime's version (through a
RuntimeAdapter) and the module convention declared by the project's
package.json. Everything else is a registry lookup.

Pure logic apart from reading package.json. No network, no prompts.
Failures are reported on the DetectionResult, never raised.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from variantctl.adapters.base import RuntimeAdapter, parse_major
from variantctl.adapters.languages.node import NodeRuntime
from variantctl.core.errors import ErrorKind, UnsupportedRuntimeError
from variantctl.core.models.install import InstallContext
from variantctl.core.models.variant import MODERN_THRESHOLD, ModuleConvention, is_variant_id
from variantctl.core.services import registry

logger = logging.getLogger(__name__)

MANIFEST_FILE = "package.json"


# ── Manifest ───────────────────────────────────────────────────


class ManifestDeclaration(StrEnum):
    """What a package.json says about the module convention."""

    DECLARED_ASYNC = "declared_async"
    DECLARED_SYNC = "declared_sync"
    ABSENT_OR_UNPARSEABLE = "absent_or_unparseable"

    @property
    def convention(self) -> ModuleConvention:
        return "async" if self is ManifestDeclaration.DECLARED_ASYNC else "sync"


@dataclass
class ManifestReading:
    """Outcome of reading the nearest package.json."""

    declaration: ManifestDeclaration
    path: Path | None = None
    problem: str = ""  # why the declaration fell back to sync


def find_manifest(start_dir: Path) -> Path | None:
    """Nearest package.json at or above ``start_dir``."""
    current = start_dir.resolve()
    while True:
        candidate = current / MANIFEST_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def parse_manifest(path: Path) -> ManifestReading:
    """Classify one package.json.

    ``"type": "module"`` declares async. ``"type": "commonjs"`` or no
    ``type`` field declares sync (the runtime's default). Anything that
    cannot be read as a JSON object is ABSENT_OR_UNPARSEABLE.
    """
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Unreadable manifest %s: %s", path, e)
        return ManifestReading(ManifestDeclaration.ABSENT_OR_UNPARSEABLE, path,
                               problem=f"{path} is not valid JSON")
    if not isinstance(data, dict):
        return ManifestReading(ManifestDeclaration.ABSENT_OR_UNPARSEABLE, path,
                               problem=f"{path} is not a JSON object")

    declared = data.get("type")
    if declared == "module":
        return ManifestReading(ManifestDeclaration.DECLARED_ASYNC, path)
    if declared is None or declared == "commonjs":
        return ManifestReading(ManifestDeclaration.DECLARED_SYNC, path)
    return ManifestReading(ManifestDeclaration.DECLARED_SYNC, path,
                           problem=f'unrecognised "type" value {declared!r} in {path}')


def read_manifest(target: Path) -> ManifestReading:
    path = find_manifest(target)
    if path is None:
        return ManifestReading(ManifestDeclaration.ABSENT_OR_UNPARSEABLE)
    return parse_manifest(path)


def detect_module_convention(target: Path) -> ModuleConvention:
    """Module convention of the project at ``target``. Never raises."""
    return read_manifest(target).declaration.convention


# ── Detection ──────────────────────────────────────────────────


@dataclass
class DetectionResult:
    """Result of environment detection and variant selection."""

    runtime_major_version: int | None = None
    runtime_version_full: str | None = None   # "v20.11.0"
    module_convention: ModuleConvention | None = None
    selected_variant: str | None = None
    success: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None
    remediation: str = ""
    warnings: list[str] = field(default_factory=list)
    override_used: bool = False
    manifest_path: Path | None = None

    def fail(self, kind: ErrorKind, message: str, remediation: str = "") -> DetectionResult:
        self.success = False
        self.selected_variant = None
        self.error_kind = kind
        self.error = message
        self.remediation = remediation
        return self

    def to_dict(self) -> dict:
        result: dict = {
            "success": self.success,
            "runtime_major_version": self.runtime_major_version,
            "runtime_version_full": self.runtime_version_full,
            "module_convention": self.module_convention,
            "selected_variant": self.selected_variant,
            "override_used": self.override_used,
            "manifest_path": str(self.manifest_path) if self.manifest_path else None,
            "warnings": self.warnings,
        }
        if self.error:
            result["error"] = self.error
            result["error_kind"] = str(self.error_kind) if self.error_kind else None
            result["remediation"] = self.remediation
        return result


def detect_environment(target: Path, runtime: RuntimeAdapter | None = None) -> DetectionResult:
    """Detect runtime and convention, and recommend a variant.

    Args:
        target: Target project directory.
        runtime: Runtime probe (default: the host ``node``).
    """
    runtime = runtime or NodeRuntime()
    result = DetectionResult()

    version = runtime.version()
    major = parse_major(version) if version else None
    if version is None or major is None:
        return result.fail(
            ErrorKind.RUNTIME_NOT_FOUND,
            "Could not determine the Node.js version (is `node` on PATH?).",
            remediation="Install Node.js 18+ or pass --runtime-version.",
        )
    result.runtime_major_version = major
    result.runtime_version_full = f"v{version}"

    manifest = read_manifest(target)
    result.manifest_path = manifest.path
    convention = manifest.declaration.convention
    result.module_convention = convention

    try:
        result.selected_variant = registry.recommend(major, convention)
    except UnsupportedRuntimeError as e:
        return result.fail(e.kind, e.message, e.remediation)

    result.warnings.extend(_ambiguities(target.resolve(), major, manifest))
    result.success = True
    logger.debug("Detected Node %s, %s modules → %s", version, convention, result.selected_variant)
    return result


def _ambiguities(target: Path, major: int, manifest: ManifestReading) -> list[str]:
    """Conflicting or weak signals; each is resolved by a fallback."""
    warnings: list[str] = []
    if manifest.problem:
        warnings.append(f"{manifest.problem}; assuming CommonJS.")
    if manifest.path is not None and manifest.path.parent != target:
        warnings.append(f"No package.json in the target; using {manifest.path}.")
    if manifest.declaration is ManifestDeclaration.DECLARED_ASYNC and major < MODERN_THRESHOLD:
        warnings.append(
            f"package.json declares ES modules but Node.js {major} only has CommonJS "
            f"variants; installing a CommonJS variant."
        )
    newest = registry.newest_tested_runtime()
    if major > newest:
        warnings.append(
            f"Node.js {major} is newer than the newest tested version ({newest}); "
            "using the modern variant."
        )
    return warnings


def select_variant(
    target: Path,
    override: str | None = None,
    runtime: RuntimeAdapter | None = None,
) -> DetectionResult:
    """Detect, then apply an explicit variant override.

    A compatible override wins over detection. An unknown or
    incompatible override fails; no other variant is substituted.
    """
    result = detect_environment(target, runtime)
    if not result.success or override is None:
        return result

    major = result.runtime_major_version
    assert major is not None

    if not is_variant_id(override):
        return result.fail(
            ErrorKind.UNKNOWN_VARIANT,
            f"Unknown variant: {override!r}",
            remediation=registry.help_text(),
        )

    definition = registry.get(override)
    if not registry.is_compatible(override, major):
        supported = ", ".join(str(v) for v in definition.supported_runtime_versions)
        compatible = [d.id for d in registry.all_variants() if major in d.supported_runtime_versions]
        hint = f"Compatible variants for Node.js {major}: {', '.join(compatible)}." if compatible else ""
        return result.fail(
            ErrorKind.INCOMPATIBLE_OVERRIDE,
            f"Variant {override} does not support Node.js {major}. "
            f"Supported versions: {supported}.",
            remediation=f"Omit --variant to auto-select. {hint}".strip(),
        )

    if definition.module_convention != result.module_convention:
        result.warnings.append(
            f"Variant {override} uses {definition.module_convention} modules but the "
            f"project declares {result.module_convention}."
        )
    result.selected_variant = override
    result.override_used = True
    return result


# ── Environment change ─────────────────────────────────────────


@dataclass
class EnvironmentChange:
    """Difference between an installed context and the current host."""

    changed: bool = False
    reason: str = ""
    previous_runtime: int | None = None
    current_runtime: int | None = None
    previous_variant: str | None = None
    current_variant: str | None = None

    def to_dict(self) -> dict:
        return {
            "changed": self.changed,
            "reason": self.reason,
            "previous_runtime": self.previous_runtime,
            "current_runtime": self.current_runtime,
            "previous_variant": self.previous_variant,
            "current_variant": self.current_variant,
        }


def detect_environment_change(
    context: InstallContext | None,
    target: Path,
    runtime: RuntimeAdapter | None = None,
) -> EnvironmentChange:
    """Compare an install context with what detection says now.

    A variant difference only counts when the variant was auto-selected;
    an override is expected to differ from the recommendation.
    """
    if context is None:
        return EnvironmentChange()

    change = EnvironmentChange(
        previous_runtime=context.runtime_version,
        previous_variant=context.variant,
    )
    detection = detect_environment(target, runtime)
    if not detection.success:
        change.changed = True
        change.reason = detection.error or "detection failed"
        return change

    change.current_runtime = detection.runtime_major_version
    change.current_variant = detection.selected_variant

    reasons: list[str] = []
    if change.current_runtime != change.previous_runtime:
        reasons.append(
            f"Node.js version changed from {change.previous_runtime} to {change.current_runtime}"
        )
    if not context.override_used and change.current_variant != change.previous_variant:
        reasons.append(
            f"recommended variant is now {change.current_variant} "
            f"(installed: {change.previous_variant})"
        )
    change.changed = bool(reasons)
    change.reason = "; ".join(reasons)
    return change
