"""
Installation records: what is persisted under ``.variantctl/``.

InstallContext is the single document describing the installed variant
(``context.json``). LockRecord is the content of ``install.lock`` while
an operation holds the target.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from variantctl.core.models.variant import MIN_RUNTIME_VERSION, ModuleConvention, VariantId

InstallMethod = Literal["direct", "wrapped", "manual"]
LockOperation = Literal["install", "upgrade"]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


def _check_timestamp(value: str) -> str:
    try:
        datetime.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"Not an ISO-8601 timestamp: {value!r}") from e
    return value


class UpgradeRecord(BaseModel):
    """One entry of the upgrade history (``{from, to, at}``)."""

    model_config = ConfigDict(populate_by_name=True)

    from_variant: VariantId = Field(alias="from")
    to: VariantId
    at: str = Field(default_factory=_now_iso)

    @field_validator("at")
    @classmethod
    def validate_at(cls, value: str) -> str:
        return _check_timestamp(value)


class InstallContext(BaseModel):
    """Persisted description of the installed variant (``context.json``).

    Rewritten wholesale on every successful install/upgrade.
    ``upgrade_history`` is only ever appended to.
    """

    variant: VariantId
    installed_at: str = Field(default_factory=_now_iso)
    runtime_version: int = Field(ge=MIN_RUNTIME_VERSION)
    module_convention: ModuleConvention
    toolchain_version: str = Field(pattern=r"^\d+\.\d+\.x$")
    package_version: str
    install_method: InstallMethod = "direct"
    override_used: bool = False
    previous_variant: VariantId | None = None
    upgrade_history: list[UpgradeRecord] = Field(default_factory=list)

    @field_validator("installed_at")
    @classmethod
    def validate_installed_at(cls, value: str) -> str:
        return _check_timestamp(value)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class LockRecord(BaseModel):
    """Content of ``install.lock``."""

    pid: int = Field(gt=0)
    started_at: str = Field(default_factory=_now_iso)
    operation: LockOperation

    @field_validator("started_at")
    @classmethod
    def validate_started_at(cls, value: str) -> str:
        return _check_timestamp(value)

    def age_seconds(self, now: datetime | None = None) -> float:
        """Seconds elapsed since the lock was taken."""
        started = datetime.fromisoformat(self.started_at)
        if started.tzinfo is None:
            started = started.replace(tzinfo=UTC)
        return ((now or datetime.now(UTC)) - started).total_seconds()
