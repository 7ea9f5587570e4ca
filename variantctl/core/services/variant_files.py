"""
Variant files: artifact copying, protection markers and guidance.

Everything written into the target goes through ``write_file`` /
``copy_file`` after being registered on the rollback transaction, so a
failure at any point can be undone.

Artifact root layout (read-only, built elsewhere):
    <artifacts>/package.json
    <artifacts>/version.json, README.md       optional
    <artifacts>/<dist dir>/index.js           one dist dir per variant
    <artifacts>/autogen/<dist dir>/           optional, falls back to autogen/dist
    <artifacts>/autogen/package.json          optional
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from variantctl import __version__
from variantctl.core.errors import MissingArtifactsError
from variantctl.core.models.install import InstallContext
from variantctl.core.models.variant import VariantDefinition
from variantctl.core.reliability.rollback import RollbackTransaction, track_write
from variantctl.core.workspace import Workspace

logger = logging.getLogger(__name__)

ENTRY_POINT = "index.js"
AUTOGEN_DIR = "autogen"
CORE_EXTRA_FILES = ("package.json", "version.json", "README.md")
BUILD_HINT = "Build the variants first: cd core && npm run build:variants"

READONLY_FILE = "READONLY.md"
AI_IGNORE_FILE = ".ai-ignore"
FEATURES_FILE = "variant-features.json"

DEFAULT_PACKAGE_NAME = "@harness/core"


# ── Artifact validation ────────────────────────────────────────


def validate_artifacts(artifacts_dir: Path | None, definition: VariantDefinition) -> Path:
    """Check the variant's pre-built distribution is present.

    Returns:
        The variant's dist directory.

    Raises:
        MissingArtifactsError: No artifact root, no dist directory, or
            a dist directory without its entry point.
    """
    if artifacts_dir is None:
        raise MissingArtifactsError(
            "Variant artifacts not found. Set VARIANTCTL_ARTIFACTS_DIR, pass "
            "--artifacts-dir, or run from a checkout that contains core/.",
            remediation=BUILD_HINT,
        )
    if not (artifacts_dir / "package.json").is_file():
        raise MissingArtifactsError(
            f"{artifacts_dir} is not an artifact root (no package.json).",
            remediation="Point --artifacts-dir at the directory holding the built variants.",
        )

    dist = artifacts_dir / definition.distribution_directory
    if not dist.is_dir():
        raise MissingArtifactsError(
            f"Build files for variant {definition.id} not found: "
            f"{definition.distribution_directory}/ is missing in {artifacts_dir}.",
            remediation=BUILD_HINT,
        )
    if not (dist / ENTRY_POINT).is_file():
        raise MissingArtifactsError(
            f"Variant {definition.id} build is incomplete ({definition.distribution_directory}/"
            f"{ENTRY_POINT} is missing).",
            remediation=BUILD_HINT,
        )
    return dist


def read_package_info(artifacts_dir: Path) -> tuple[str, str]:
    """(name, version) from the artifact root's package.json."""
    try:
        data = json.loads((artifacts_dir / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Cannot read %s/package.json: %s", artifacts_dir, e)
        return DEFAULT_PACKAGE_NAME, "unknown"
    if not isinstance(data, dict):
        return DEFAULT_PACKAGE_NAME, "unknown"
    return str(data.get("name") or DEFAULT_PACKAGE_NAME), str(data.get("version") or "unknown")


# ── Tracked writes ─────────────────────────────────────────────


def copy_file(src: Path, dst: Path) -> None:
    shutil.copy2(src, dst)


def write_file(tx: RollbackTransaction, path: Path, content: str) -> None:
    """Write a text file after registering it on ``tx``."""
    track_write(tx, path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _copy_tracked(tx: RollbackTransaction, src: Path, dst: Path) -> None:
    track_write(tx, dst)
    dst.parent.mkdir(parents=True, exist_ok=True)
    copy_file(src, dst)


def _copy_tree_tracked(tx: RollbackTransaction, src: Path, dst: Path) -> int:
    count = 0
    for item in sorted(src.rglob("*")):
        if item.is_file():
            _copy_tracked(tx, item, dst / item.relative_to(src))
            count += 1
    return count


@dataclass
class CopyReport:
    """What ``copy_artifacts`` put into the vendor area."""

    files: int = 0
    autogen_source: Path | None = None
    warnings: list[str] = field(default_factory=list)


def copy_artifacts(
    ws: Workspace,
    tx: RollbackTransaction,
    artifacts_dir: Path,
    definition: VariantDefinition,
) -> CopyReport:
    """Copy a variant's distribution into the vendor area."""
    report = CopyReport()
    dist = validate_artifacts(artifacts_dir, definition)

    report.files += _copy_tree_tracked(tx, dist, ws.core_dir / "dist")
    for name in CORE_EXTRA_FILES:
        src = artifacts_dir / name
        if src.is_file():
            _copy_tracked(tx, src, ws.core_dir / name)
            report.files += 1

    autogen_root = artifacts_dir / AUTOGEN_DIR
    autogen_dist = autogen_root / definition.autogen_directory
    if not autogen_dist.is_dir():
        autogen_dist = autogen_root / "dist"
    if autogen_dist.is_dir():
        report.autogen_source = autogen_dist
        report.files += _copy_tree_tracked(tx, autogen_dist, ws.autogen_dir / "dist")
        if (autogen_root / "package.json").is_file():
            _copy_tracked(tx, autogen_root / "package.json", ws.autogen_dir / "package.json")
            report.files += 1
    else:
        report.warnings.append(
            f"Autogen package not found for variant {definition.id} (expected {autogen_dist}); "
            "code generation features may be unavailable."
        )

    logger.info("Copied %d files for %s", report.files, definition.id)
    return report


# ── Feature map ────────────────────────────────────────────────

_COMMON_FEATURES = (
    "route_from_har",
    "locator_filter",
    "web_first_assertions",
    "trace_viewer",
    "api_testing",
    "storage_state",
    "video_recording",
    "screenshot_assertions",
    "request_interception",
    "browser_contexts",
    "test_fixtures",
    "parallel_execution",
    "retry_logic",
    "request_continue",
)

# Features missing from the oldest toolchain: (alternative, notes)
_LEGACY_GAPS: dict[str, tuple[str, str]] = {
    "aria_snapshots": (
        "Use page.evaluate() to query ARIA attributes manually",
        "Introduced in Playwright 1.35",
    ),
    "clock_api": (
        "Use page.evaluate(() => { Date.now = () => fixedTime }) for manual mocking",
        "Introduced in Playwright 1.45",
    ),
    "locator_or": (
        'Use CSS :is() selector: page.locator(":is(.a, .b)")',
        "Introduced in Playwright 1.34",
    ),
    "locator_and": (
        "Use chained filter: locator.filter({ has: other })",
        "Introduced in Playwright 1.34",
    ),
    "component_testing": (
        "Use E2E testing approach with full page loads",
        "Experimental in 1.33, stable in later versions",
    ),
    "expect_poll": (
        "Use a polling loop with setTimeout",
        "Improved after Playwright 1.33",
    ),
    "expect_soft": (
        "Collect assertions manually and report at end",
        "Introduced in Playwright 1.37",
    ),
}

_ASYNC_MODULE_FEATURES: dict[str, str] = {
    "esm_imports": "Use require() for synchronous imports or dynamic import() for async",
    "top_level_await": "Wrap in an async IIFE: (async () => { await ... })()",
    "import_meta": "Use __dirname and __filename (CommonJS globals)",
}


def generate_feature_map(definition: VariantDefinition) -> dict[str, Any]:
    """Feature availability for a variant, with alternatives where missing."""
    features: dict[str, dict[str, Any]] = {name: {"available": True} for name in _COMMON_FEATURES}

    oldest = definition.id == "legacy-14"
    for name, (alternative, notes) in _LEGACY_GAPS.items():
        if oldest:
            features[name] = {"available": False, "alternative": alternative, "notes": notes}
        else:
            features[name] = {"available": True}

    for name, alternative in _ASYNC_MODULE_FEATURES.items():
        if definition.module_convention == "async":
            features[name] = {"available": True}
        else:
            features[name] = {"available": False, "alternative": alternative}

    return {
        "variant": definition.id,
        "toolchain_version": definition.toolchain_version,
        "runtime_versions": list(definition.supported_runtime_versions),
        "module_convention": definition.module_convention,
        "features": features,
        "generated_at": datetime.now(UTC).isoformat(),
        "generated_by": f"variantctl {__version__}",
    }


# ── Protection markers ─────────────────────────────────────────


def render_readonly_marker(definition: VariantDefinition, context: InstallContext) -> str:
    previous = (
        f"| **Previous Variant** | {context.previous_variant} |\n" if context.previous_variant else ""
    )
    return f"""\
# DO NOT MODIFY THIS DIRECTORY

This directory holds vendored harness code installed by variantctl.
Treat it as read-only: it is replaced on every install and upgrade.

## Variant Information

| Property | Value |
|----------|-------|
| **Variant** | {definition.id} |
| **Display Name** | {definition.display_name} |
| **Node.js Versions** | {definition.runtime_range_label} |
| **Playwright Version** | {definition.toolchain_version} |
| **Module Convention** | {definition.module_convention} |
| **Installed At** | {context.installed_at} |
| **Package Version** | {context.package_version} |
{previous}
## If You Encounter Issues

Import errors such as `ERR_REQUIRE_ESM` or `Cannot use import statement`
usually mean the wrong variant is installed:

```bash
variantctl doctor .
variantctl upgrade .
variantctl install . --variant <variant-id> --force
```

Check `{FEATURES_FILE}` in this directory before relying on a feature;
missing features list an alternative approach.

## For AI Agents

Do not modify files in this directory. Suggest reinstalling with the
correct variant, or use the alternatives in `{FEATURES_FILE}`.
"""


def render_ai_ignore(definition: VariantDefinition) -> str:
    return f"""\
# Vendored harness code - DO NOT MODIFY
#
# Variant: {definition.id}
# Generated: {datetime.now(UTC).isoformat()}
#
# To change behavior, wrap these modules in project code or edit
# vendor.config.yml. To switch variants run:
#   variantctl install --variant <variant-id> --force
*
"""


def write_protection_markers(
    ws: Workspace,
    tx: RollbackTransaction,
    definition: VariantDefinition,
    context: InstallContext,
) -> list[Path]:
    """Write READONLY.md, .ai-ignore and the feature map into each installed vendor dir.

    A vendor dir the artifacts did not populate (no autogen build) is skipped.
    """
    readonly = render_readonly_marker(definition, context)
    ai_ignore = render_ai_ignore(definition)
    features = json.dumps(generate_feature_map(definition), indent=2) + "\n"

    written: list[Path] = []
    for vendor in ws.managed_dirs:
        if not vendor.is_dir():
            logger.debug("No %s installed, skipping markers", vendor.name)
            continue
        for name, content in (
            (READONLY_FILE, readonly),
            (AI_IGNORE_FILE, ai_ignore),
            (FEATURES_FILE, features),
        ):
            write_file(tx, vendor / name, content)
            written.append(vendor / name)
    return written


# ── Guidance artifact ──────────────────────────────────────────


def render_guidance(definition: VariantDefinition, package_name: str = DEFAULT_PACKAGE_NAME) -> str:
    """Variant-aware assistant prompt describing the installed variant."""
    content = f"""\
---
name: harness.variant-info
description: "Variant-specific instructions for harness tests"
---

# Harness Variant Information

## Installed Variant: {definition.id}

| Property | Value |
|----------|-------|
| **Display Name** | {definition.display_name} |
| **Node.js Versions** | {definition.runtime_range_label} |
| **Playwright Version** | {definition.toolchain_version} |
| **Module Convention** | {definition.module_convention} |

## Vendor Directory Rules

Do not modify files in `e2e/vendor/core/` or `e2e/vendor/autogen/`.
They are managed by variantctl, overwritten on upgrade, and built for
one Node.js range and module convention.

Check `e2e/vendor/core/{FEATURES_FILE}` before using a Playwright
feature; unavailable features document an alternative.

"""
    if definition.is_legacy:
        content += f"""\
## Legacy Variant Limitations

This project uses `{definition.id}` with Playwright {definition.toolchain_version}.
Some modern APIs may be missing; always check the feature map first.

"""
    if definition.module_convention == "async":
        content += f"""\
## Import Patterns (ES modules)

```typescript
import {{ test, expect }} from '@playwright/test';
import {{ loadConfig }} from '{package_name}/config';
```

"""
    else:
        content += f"""\
## Import Patterns (CommonJS)

```typescript
const {{ test, expect }} = require('@playwright/test');
const {{ loadConfig }} = require('{package_name}/config');
```

Do not use ES module import syntax in this project.

"""
    content += f"""\
---

*Generated by variantctl {__version__} for variant {definition.id}*
"""
    return content


def write_guidance(
    ws: Workspace,
    tx: RollbackTransaction,
    definition: VariantDefinition,
    package_name: str = DEFAULT_PACKAGE_NAME,
) -> Path:
    write_file(tx, ws.guidance_path, render_guidance(definition, package_name))
    return ws.guidance_path


def vendor_tree_problems(ws: Workspace, variant_id: str) -> list[str]:
    """What is missing from an installed vendor tree (empty when complete)."""
    problems: list[str] = []
    if not (ws.core_dir / "dist" / ENTRY_POINT).is_file():
        problems.append(f"{ws.core_dir / 'dist' / ENTRY_POINT} is missing")
    for name in (READONLY_FILE, FEATURES_FILE):
        if not (ws.core_dir / name).is_file():
            problems.append(f"{ws.core_dir / name} is missing")
    features = ws.core_dir / FEATURES_FILE
    if features.is_file():
        try:
            recorded = json.loads(features.read_text(encoding="utf-8")).get("variant")
        except (OSError, ValueError, AttributeError):
            recorded = None
        if recorded is not None and recorded != variant_id:
            problems.append(f"{features} describes {recorded}, context says {variant_id}")
    return problems
