"""
Variant registry: static catalog of supported variants.

Pure lookups and the recommendation table. No I/O.
"""

from __future__ import annotations

import logging

from variantctl.core.errors import UnknownVariantError, UnsupportedRuntimeError
from variantctl.core.models.variant import (
    MID_LEGACY_THRESHOLD,
    MIN_RUNTIME_VERSION,
    MODERN_THRESHOLD,
    VARIANT_IDS,
    ModuleConvention,
    VariantDefinition,
)

logger = logging.getLogger(__name__)


VARIANT_DEFINITIONS: dict[str, VariantDefinition] = {
    "modern-async": VariantDefinition(
        id="modern-async",
        display_name="Modern (ES modules)",
        supported_runtime_versions=(18, 20, 22),
        module_convention="async",
        toolchain_version="1.57.x",
        distribution_directory="dist",
        autogen_directory="dist",
    ),
    "modern-sync": VariantDefinition(
        id="modern-sync",
        display_name="Modern (CommonJS)",
        supported_runtime_versions=(18, 20, 22),
        module_convention="sync",
        toolchain_version="1.57.x",
        distribution_directory="dist-cjs",
        autogen_directory="dist-cjs",
    ),
    "legacy-16": VariantDefinition(
        id="legacy-16",
        display_name="Legacy Node 16 (CommonJS)",
        supported_runtime_versions=(16, 18, 20),
        module_convention="sync",
        toolchain_version="1.49.x",
        distribution_directory="dist-legacy-16",
        autogen_directory="dist-legacy-16",
    ),
    "legacy-14": VariantDefinition(
        id="legacy-14",
        display_name="Legacy Node 14 (CommonJS)",
        supported_runtime_versions=(14, 15, 16),
        module_convention="sync",
        toolchain_version="1.33.x",
        distribution_directory="dist-legacy-14",
        autogen_directory="dist-legacy-14",
    ),
}


def get(variant_id: str) -> VariantDefinition:
    """Look up a variant definition.

    Raises:
        UnknownVariantError: If ``variant_id`` is not in the catalog.
    """
    try:
        return VARIANT_DEFINITIONS[variant_id]
    except KeyError:
        raise UnknownVariantError(
            f"Unknown variant: {variant_id!r}",
            remediation=f"Choose one of: {', '.join(VARIANT_IDS)}",
        ) from None


def all_variants() -> list[VariantDefinition]:
    """All definitions, in catalog order."""
    return list(VARIANT_DEFINITIONS.values())


def is_compatible(variant_id: str, runtime_major: int) -> bool:
    """Whether the variant lists ``runtime_major`` as supported."""
    return runtime_major in get(variant_id).supported_runtime_versions


def supported_runtime_versions() -> list[int]:
    """Union of every variant's supported majors, ascending."""
    versions: set[int] = set()
    for definition in VARIANT_DEFINITIONS.values():
        versions.update(definition.supported_runtime_versions)
    return sorted(versions)


def newest_tested_runtime() -> int:
    return max(supported_runtime_versions())


def recommend(runtime_major: int, convention: ModuleConvention) -> str:
    """Pick the variant for a runtime/convention pair.

    Decision table, first match wins:
        runtime < 14   → UnsupportedRuntimeError
        runtime >= 18  → modern-async / modern-sync by convention
        runtime >= 16  → legacy-16
        runtime >= 14  → legacy-14

    Raises:
        UnsupportedRuntimeError: Runtime below the minimum.
    """
    if runtime_major < MIN_RUNTIME_VERSION:
        raise UnsupportedRuntimeError(
            f"Node.js {runtime_major} is not supported. "
            f"variantctl requires Node.js {MIN_RUNTIME_VERSION} or higher.",
            remediation=f"Upgrade Node.js to {MIN_RUNTIME_VERSION} or newer (18+ recommended).",
        )
    if runtime_major >= MODERN_THRESHOLD:
        return "modern-async" if convention == "async" else "modern-sync"
    if runtime_major >= MID_LEGACY_THRESHOLD:
        return "legacy-16"
    return "legacy-14"


def help_text() -> str:
    """Human-readable variant table for CLI help and error messages."""
    lines = ["Available variants:"]
    for d in VARIANT_DEFINITIONS.values():
        lines.append(
            f"  {d.id:<13} {d.display_name}: Node {d.runtime_range_label}, "
            f"Playwright {d.toolchain_version}"
        )
    return "\n".join(lines)
