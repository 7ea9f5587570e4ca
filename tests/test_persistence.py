"""
Tests for persistence: context file.
"""

import json
from pathlib import Path

import pytest

from variantctl.core.errors import ErrorKind, InvalidContextError
from variantctl.core.models.install import InstallContext, UpgradeRecord
from variantctl.core.persistence.context_file import (
    default_context_path,
    load_context,
    save_context,
)


def _context(**overrides) -> InstallContext:
    data = {
        "variant": "legacy-16",
        "runtime_version": 16,
        "module_convention": "sync",
        "toolchain_version": "1.49.x",
        "package_version": "2.3.0",
    }
    data.update(overrides)
    return InstallContext(**data)


class TestContextFile:
    def test_default_path(self, tmp_path: Path):
        assert default_context_path(tmp_path) == tmp_path / ".variantctl" / "context.json"

    def test_save_and_load(self, tmp_path: Path):
        path = default_context_path(tmp_path)
        ctx = _context(
            previous_variant="legacy-14",
            upgrade_history=[UpgradeRecord(from_variant="legacy-14", to="legacy-16")],
        )
        save_context(ctx, path)

        loaded = load_context(path)
        assert loaded == ctx

    def test_load_missing_returns_none(self, tmp_path: Path):
        assert load_context(tmp_path / "nope.json") is None

    def test_pretty_json(self, tmp_path: Path):
        path = tmp_path / "context.json"
        save_context(_context(), path)
        raw = path.read_text()
        assert raw.endswith("\n")
        assert '\n  "variant": "legacy-16"' in raw
        assert json.loads(raw)["install_method"] == "direct"

    def test_no_temp_files_left(self, tmp_path: Path):
        path = tmp_path / "context.json"
        save_context(_context(), path)
        assert list(tmp_path.glob(".context_*.tmp")) == []

    def test_corrupt_json(self, tmp_path: Path):
        path = tmp_path / "context.json"
        path.write_text("{{{")
        with pytest.raises(InvalidContextError) as exc_info:
            load_context(path)
        assert exc_info.value.kind == ErrorKind.INVALID_CONTEXT
        assert "--force" in exc_info.value.remediation

    def test_schema_violation(self, tmp_path: Path):
        path = tmp_path / "context.json"
        path.write_text(json.dumps({"variant": "modern-esm", "runtime_version": 20}))
        with pytest.raises(InvalidContextError, match="validation error"):
            load_context(path)
