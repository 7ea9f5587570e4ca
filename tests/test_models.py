"""
Tests for models: variant definitions and persisted records.
"""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from variantctl.core.models import (
    InstallContext,
    LockRecord,
    UpgradeRecord,
    VariantDefinition,
)


def _definition(**overrides) -> VariantDefinition:
    data = {
        "id": "legacy-16",
        "display_name": "Legacy",
        "supported_runtime_versions": (16, 18),
        "module_convention": "sync",
        "toolchain_version": "1.49.x",
        "distribution_directory": "dist-legacy-16",
    }
    data.update(overrides)
    return VariantDefinition(**data)


class TestVariantDefinition:
    def test_valid(self):
        d = _definition()
        assert d.runtime_range_label == "16, 18"
        assert d.is_legacy is True

    def test_frozen(self):
        d = _definition()
        with pytest.raises(ValidationError):
            d.display_name = "changed"

    def test_empty_runtime_versions_rejected(self):
        with pytest.raises(ValidationError, match="supports no runtime versions"):
            _definition(supported_runtime_versions=())

    def test_runtime_below_minimum_rejected(self):
        with pytest.raises(ValidationError, match="below the minimum"):
            _definition(supported_runtime_versions=(12, 14))

    def test_toolchain_pattern(self):
        with pytest.raises(ValidationError):
            _definition(toolchain_version="latest")

    def test_unknown_id_rejected(self):
        with pytest.raises(ValidationError):
            _definition(id="modern-esm")


class TestInstallContext:
    def _context(self, **overrides) -> InstallContext:
        data = {
            "variant": "modern-async",
            "runtime_version": 20,
            "module_convention": "async",
            "toolchain_version": "1.57.x",
            "package_version": "2.3.0",
        }
        data.update(overrides)
        return InstallContext(**data)

    def test_defaults(self):
        ctx = self._context()
        assert ctx.install_method == "direct"
        assert ctx.override_used is False
        assert ctx.previous_variant is None
        assert ctx.upgrade_history == []
        datetime.fromisoformat(ctx.installed_at)

    def test_runtime_below_minimum_rejected(self):
        with pytest.raises(ValidationError):
            self._context(runtime_version=12)

    def test_invalid_timestamp_rejected(self):
        with pytest.raises(ValidationError, match="ISO-8601"):
            self._context(installed_at="yesterday")

    def test_history_serialized_with_from_key(self):
        ctx = self._context(
            upgrade_history=[UpgradeRecord(from_variant="legacy-16", to="modern-async")],
        )
        data = ctx.to_json_dict()
        entry = data["upgrade_history"][0]
        assert entry["from"] == "legacy-16"
        assert entry["to"] == "modern-async"
        assert "from_variant" not in entry

    def test_history_parsed_from_json_keys(self):
        ctx = InstallContext.model_validate({
            "variant": "modern-async",
            "runtime_version": 20,
            "module_convention": "async",
            "toolchain_version": "1.57.x",
            "package_version": "2.3.0",
            "upgrade_history": [
                {"from": "legacy-14", "to": "legacy-16", "at": "2026-01-02T03:04:05+00:00"},
            ],
        })
        assert ctx.upgrade_history[0].from_variant == "legacy-14"


class TestLockRecord:
    def test_age(self):
        started = datetime.now(UTC) - timedelta(minutes=3)
        record = LockRecord(pid=1234, started_at=started.isoformat(), operation="install")
        assert 170 < record.age_seconds() < 200

    def test_naive_timestamp_treated_as_utc(self):
        now = datetime.now(UTC)
        naive = (now - timedelta(seconds=30)).replace(tzinfo=None).isoformat()
        record = LockRecord(pid=1234, started_at=naive, operation="upgrade")
        assert 25 < record.age_seconds(now) < 35

    def test_pid_must_be_positive(self):
        with pytest.raises(ValidationError):
            LockRecord(pid=0, operation="install")

    def test_operation_restricted(self):
        with pytest.raises(ValidationError):
            LockRecord(pid=10, operation="detect")
