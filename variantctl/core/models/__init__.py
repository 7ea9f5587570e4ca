"""
Domain models: Pydantic types for variantctl.

All models are re-exported here for convenient access:

    from variantctl.core.models import InstallContext, LockRecord, VariantDefinition
"""

from variantctl.core.models.install import (
    InstallContext,
    InstallMethod,
    LockOperation,
    LockRecord,
    UpgradeRecord,
)
from variantctl.core.models.variant import (
    MID_LEGACY_THRESHOLD,
    MIN_RUNTIME_VERSION,
    MODERN_THRESHOLD,
    VARIANT_IDS,
    ModuleConvention,
    VariantDefinition,
    VariantId,
    is_variant_id,
)

__all__ = [
    # install.py
    "InstallContext",
    "InstallMethod",
    "LockOperation",
    "LockRecord",
    "UpgradeRecord",
    # variant.py
    "MID_LEGACY_THRESHOLD",
    "MIN_RUNTIME_VERSION",
    "MODERN_THRESHOLD",
    "ModuleConvention",
    "VARIANT_IDS",
    "VariantDefinition",
    "VariantId",
    "is_variant_id",
]
