"""
Shared test fixtures and configuration.
"""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from variantctl.adapters.languages.node import NodeRuntime
from variantctl.core.services import registry
from variantctl.core.services.installer import InstallOptions

# Above the largest pid_max on Linux (2**22) and macOS.
DEAD_PID = 4_194_305


def build_artifacts(
    root: Path,
    variants: tuple[str, ...] | None = None,
    *,
    autogen: bool = True,
    version: str = "2.3.0",
) -> Path:
    """Create a fake artifact root with built variant dist directories."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "package.json").write_text(json.dumps({"name": "@harness/core", "version": version}))
    (root / "README.md").write_text("# harness core\n")

    for definition in registry.all_variants():
        if variants is not None and definition.id not in variants:
            continue
        dist = root / definition.distribution_directory
        (dist / "utils").mkdir(parents=True, exist_ok=True)
        (dist / "index.js").write_text(f"// {definition.id}\nmodule.exports = {{}};\n")
        (dist / "index.d.ts").write_text("export {};\n")
        (dist / "utils" / "helpers.js").write_text(f"// helpers for {definition.id}\n")
        if autogen:
            ag = root / "autogen" / definition.autogen_directory
            ag.mkdir(parents=True, exist_ok=True)
            (ag / "index.js").write_text(f"// autogen {definition.id}\n")

    if autogen:
        (root / "autogen" / "package.json").write_text(json.dumps({"name": "@harness/autogen"}))
    return root


def write_manifest(directory: Path, module_type: str | None = None) -> Path:
    """Write a package.json, optionally with a ``type`` field."""
    data: dict = {"name": "sample-app", "version": "1.0.0"}
    if module_type is not None:
        data["type"] = module_type
    path = directory / "package.json"
    path.write_text(json.dumps(data))
    return path


def snapshot(root: Path) -> dict[str, bytes | None]:
    """Relative path → bytes (None for directories), ignoring the audit log."""
    tree: dict[str, bytes | None] = {}
    for p in sorted(root.rglob("*")):
        rel = p.relative_to(root).as_posix()
        if rel == ".variantctl" or rel.startswith(".variantctl/install.log"):
            continue
        tree[rel] = p.read_bytes() if p.is_file() else None
    return tree


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep VARIANTCTL_* variables from the host out of the tests."""
    for name in (
        "VARIANTCTL_ARTIFACTS_DIR",
        "VARIANTCTL_RUNTIME_VERSION",
        "VARIANTCTL_LOG_LEVEL",
        "VARIANTCTL_LOG_FILE",
        "VARIANTCTL_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def target(tmp_path: Path) -> Path:
    """An empty target project directory."""
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def artifacts(tmp_path: Path) -> Path:
    """Artifact root with every variant built."""
    return build_artifacts(tmp_path / "artifacts")


@pytest.fixture
def make_options(artifacts: Path) -> Callable[..., InstallOptions]:
    """Factory for InstallOptions pinned to a runtime version."""

    def _make(runtime_version: str = "20.11.0", **kwargs) -> InstallOptions:
        kwargs.setdefault("artifacts_dir", artifacts)
        kwargs.setdefault("skip_deps", True)
        return InstallOptions(runtime=NodeRuntime(pinned=runtime_version), **kwargs)

    return _make
