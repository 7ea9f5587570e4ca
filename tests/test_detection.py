"""
Tests for the detection service: manifest parsing, environment
detection, variant selection and environment change.
"""

from pathlib import Path

import pytest

from conftest import write_manifest
from variantctl.adapters.languages.node import NodeRuntime
from variantctl.core.errors import ErrorKind
from variantctl.core.models.install import InstallContext
from variantctl.core.services import registry
from variantctl.core.services.detection import (
    ManifestDeclaration,
    detect_environment,
    detect_environment_change,
    detect_module_convention,
    find_manifest,
    parse_manifest,
    select_variant,
)


def node(version: str) -> NodeRuntime:
    return NodeRuntime(pinned=version)


class TestManifest:
    def test_module_is_async(self, target: Path):
        reading = parse_manifest(write_manifest(target, "module"))
        assert reading.declaration == ManifestDeclaration.DECLARED_ASYNC
        assert reading.declaration.convention == "async"

    def test_commonjs_is_sync(self, target: Path):
        reading = parse_manifest(write_manifest(target, "commonjs"))
        assert reading.declaration == ManifestDeclaration.DECLARED_SYNC

    def test_missing_type_is_sync(self, target: Path):
        reading = parse_manifest(write_manifest(target))
        assert reading.declaration == ManifestDeclaration.DECLARED_SYNC
        assert reading.problem == ""

    def test_unrecognised_type_falls_back_to_sync(self, target: Path):
        reading = parse_manifest(write_manifest(target, "esm"))
        assert reading.declaration == ManifestDeclaration.DECLARED_SYNC
        assert "unrecognised" in reading.problem

    def test_malformed_json(self, target: Path):
        path = target / "package.json"
        path.write_text("{ not json")
        reading = parse_manifest(path)
        assert reading.declaration == ManifestDeclaration.ABSENT_OR_UNPARSEABLE
        assert reading.declaration.convention == "sync"

    def test_non_object_json(self, target: Path):
        path = target / "package.json"
        path.write_text("[1, 2, 3]")
        assert parse_manifest(path).declaration == ManifestDeclaration.ABSENT_OR_UNPARSEABLE

    def test_find_manifest_walks_up(self, target: Path):
        write_manifest(target, "module")
        nested = target / "packages" / "web"
        nested.mkdir(parents=True)
        assert find_manifest(nested) == (target / "package.json").resolve()

    def test_nearest_manifest_wins(self, target: Path):
        write_manifest(target, "module")
        nested = target / "legacy"
        nested.mkdir()
        write_manifest(nested, "commonjs")
        assert detect_module_convention(nested) == "sync"
        assert detect_module_convention(target) == "async"

    def test_no_manifest_is_sync(self, target: Path):
        assert detect_module_convention(target) == "sync"


class TestDetectEnvironment:
    def test_modern_async(self, target: Path):
        write_manifest(target, "module")
        result = detect_environment(target, node("20.11.0"))
        assert result.success
        assert result.runtime_major_version == 20
        assert result.runtime_version_full == "v20.11.0"
        assert result.module_convention == "async"
        assert result.selected_variant == "modern-async"
        assert result.manifest_path == (target / "package.json").resolve()
        assert result.warnings == []

    def test_mid_legacy_without_manifest(self, target: Path):
        result = detect_environment(target, node("16.20.2"))
        assert result.success
        assert result.selected_variant == "legacy-16"
        assert result.module_convention == "sync"

    def test_unsupported_runtime_reported_not_raised(self, target: Path):
        result = detect_environment(target, node("12.22.0"))
        assert not result.success
        assert result.error_kind == ErrorKind.UNSUPPORTED_RUNTIME
        assert "Node.js 12" in result.error
        assert result.selected_variant is None

    def test_runtime_not_found(self, target: Path):
        result = detect_environment(target, node("not-a-version"))
        assert not result.success
        assert result.error_kind == ErrorKind.RUNTIME_NOT_FOUND

    def test_async_manifest_on_legacy_runtime_warns(self, target: Path):
        write_manifest(target, "module")
        result = detect_environment(target, node("16.0.0"))
        assert result.success
        assert result.selected_variant == "legacy-16"
        assert any("ES modules" in w for w in result.warnings)

    def test_parent_manifest_warns(self, target: Path):
        write_manifest(target, "module")
        nested = target / "e2e-suite"
        nested.mkdir()
        result = detect_environment(nested, node("20.0.0"))
        assert result.selected_variant == "modern-async"
        assert any("No package.json in the target" in w for w in result.warnings)

    def test_newer_runtime_warns(self, target: Path):
        result = detect_environment(target, node("24.1.0"))
        assert result.selected_variant == "modern-sync"
        assert any("newer than the newest tested" in w for w in result.warnings)

    def test_unparseable_manifest_warns(self, target: Path):
        (target / "package.json").write_text("{")
        result = detect_environment(target, node("20.0.0"))
        assert result.selected_variant == "modern-sync"
        assert any("assuming CommonJS" in w for w in result.warnings)


class TestSelectVariant:
    def test_compatible_override_wins(self, target: Path):
        write_manifest(target, "module")
        result = select_variant(target, "modern-sync", node("20.0.0"))
        assert result.success
        assert result.selected_variant == "modern-sync"
        assert result.override_used is True
        assert any("uses sync modules" in w for w in result.warnings)

    def test_override_matching_detection(self, target: Path):
        result = select_variant(target, "legacy-16", node("18.0.0"))
        assert result.selected_variant == "legacy-16"
        assert result.override_used is True

    def test_no_override(self, target: Path):
        result = select_variant(target, None, node("18.0.0"))
        assert result.selected_variant == "modern-sync"
        assert result.override_used is False

    def test_unknown_override(self, target: Path):
        result = select_variant(target, "modern-esm", node("20.0.0"))
        assert not result.success
        assert result.error_kind == ErrorKind.UNKNOWN_VARIANT

    def test_incompatible_override_never_substituted(self, target: Path):
        for definition in registry.all_variants():
            for major in (14, 15, 16, 18, 20, 22, 24):
                if major in definition.supported_runtime_versions:
                    continue
                result = select_variant(target, definition.id, node(f"{major}.0.0"))
                assert not result.success, (definition.id, major)
                assert result.error_kind == ErrorKind.INCOMPATIBLE_OVERRIDE
                assert result.selected_variant is None
                assert definition.runtime_range_label in result.error

    def test_override_below_minimum_reports_runtime(self, target: Path):
        result = select_variant(target, "legacy-14", node("12.0.0"))
        assert result.error_kind == ErrorKind.UNSUPPORTED_RUNTIME


class TestEnvironmentChange:
    def _context(self, variant: str, runtime: int, **kwargs) -> InstallContext:
        d = registry.get(variant)
        return InstallContext(
            variant=variant,
            runtime_version=runtime,
            module_convention=d.module_convention,
            toolchain_version=d.toolchain_version,
            package_version="2.3.0",
            **kwargs,
        )

    def test_no_context(self, target: Path):
        assert detect_environment_change(None, target, node("20.0.0")).changed is False

    def test_unchanged(self, target: Path):
        change = detect_environment_change(self._context("modern-sync", 20), target, node("20.5.0"))
        assert change.changed is False

    def test_runtime_changed(self, target: Path):
        write_manifest(target, "module")
        change = detect_environment_change(self._context("legacy-16", 16), target, node("20.0.0"))
        assert change.changed is True
        assert "Node.js version changed" in change.reason
        assert change.previous_runtime == 16
        assert change.current_runtime == 20
        assert change.current_variant == "modern-async"

    def test_override_variant_difference_ignored(self, target: Path):
        ctx = self._context("legacy-16", 20, override_used=True)
        change = detect_environment_change(ctx, target, node("20.0.0"))
        assert change.changed is False

    @pytest.mark.parametrize("version", ["12.0.0", "garbage"])
    def test_detection_failure_counts_as_change(self, target: Path, version: str):
        change = detect_environment_change(self._context("legacy-14", 14), target, node(version))
        assert change.changed is True
