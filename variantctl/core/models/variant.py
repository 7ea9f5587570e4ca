"""
Variant models: the catalog vocabulary.

A variant is one pre-built, self-contained distribution of the harness
core targeting a range of Node.js major versions and one module
convention. Definitions are immutable and live in the registry.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

VariantId = Literal["modern-async", "modern-sync", "legacy-16", "legacy-14"]
ModuleConvention = Literal["sync", "async"]

VARIANT_IDS: tuple[str, ...] = ("modern-async", "modern-sync", "legacy-16", "legacy-14")

# Runtime thresholds (Node.js major versions)
MIN_RUNTIME_VERSION = 14
MID_LEGACY_THRESHOLD = 16
MODERN_THRESHOLD = 18


def is_variant_id(value: str) -> bool:
    """Whether ``value`` names a known variant."""
    return value in VARIANT_IDS


class VariantDefinition(BaseModel):
    """Static description of one distribution variant."""

    model_config = ConfigDict(frozen=True)

    id: VariantId
    display_name: str
    supported_runtime_versions: tuple[int, ...]
    module_convention: ModuleConvention
    toolchain_version: str = Field(pattern=r"^\d+\.\d+\.x$")
    distribution_directory: str
    autogen_directory: str = "dist"

    @model_validator(mode="after")
    def check_runtime_versions(self) -> VariantDefinition:
        versions = self.supported_runtime_versions
        if not versions:
            raise ValueError(f"Variant {self.id} supports no runtime versions")
        too_old = [v for v in versions if v < MIN_RUNTIME_VERSION]
        if too_old:
            raise ValueError(
                f"Variant {self.id} lists runtimes below the minimum "
                f"({MIN_RUNTIME_VERSION}): {too_old}"
            )
        return self

    @property
    def runtime_range_label(self) -> str:
        """Comma-separated supported versions, e.g. ``"18, 20, 22"``."""
        return ", ".join(str(v) for v in self.supported_runtime_versions)

    @property
    def is_legacy(self) -> bool:
        return self.id.startswith("legacy-")
