"""
Settings loader: reads variantctl.yml into a Settings model.

The settings file is optional. It is looked up in the target directory
and then upward, so a monorepo can keep one file at its root. Values
from the environment override the file; CLI options override both.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from variantctl.core.errors import ConfigError
from variantctl.core.models.install import InstallMethod

logger = logging.getLogger(__name__)

SETTINGS_FILE = "variantctl.yml"

ENV_ARTIFACTS_DIR = "VARIANTCTL_ARTIFACTS_DIR"
ENV_RUNTIME_VERSION = "VARIANTCTL_RUNTIME_VERSION"

DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024


class Settings(BaseModel):
    """Installer settings (``variantctl.yml``)."""

    artifacts_dir: str | None = None
    runtime_version: str | None = None
    preserve: list[str] = Field(default_factory=list)
    log_max_bytes: int = Field(default=DEFAULT_LOG_MAX_BYTES, gt=0)
    install_method: InstallMethod = "direct"

    # Where the settings came from (not part of the file schema)
    source: str | None = Field(default=None, exclude=True)


def find_settings_file(start_dir: Path) -> Path | None:
    """Search for variantctl.yml starting from ``start_dir``, walking up.

    Returns:
        Path to the file, or None if not found.
    """
    current = start_dir.resolve()

    while True:
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None  # filesystem root
        current = parent


def load_settings(target: Path, path: Path | None = None) -> Settings:
    """Load settings for a target project.

    Args:
        target: Target project directory (search starts here).
        path: Explicit settings file; skips the upward search.

    Returns:
        Validated Settings with environment overrides applied.

    Raises:
        ConfigError: If the file is unreadable, not YAML, or invalid.
    """
    if path is None:
        path = find_settings_file(target) if target.is_dir() else None

    data: dict = {}
    if path is not None:
        if not path.is_file():
            raise ConfigError(
                f"Settings file not found: {path}",
                remediation="Check the --config path.",
            )
        logger.debug("Loading settings from %s", path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e

        try:
            loaded = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Invalid YAML in {path}: {e}",
                remediation=f"Fix the syntax of {path.name}.",
            ) from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(
                f"Expected a YAML mapping in {path}, got {type(loaded).__name__}",
                remediation=f"Fix the structure of {path.name}.",
            )
        data = loaded

    env_artifacts = os.environ.get(ENV_ARTIFACTS_DIR)
    if env_artifacts:
        # Relative to the caller's cwd, not to the settings file
        data["artifacts_dir"] = str(Path(env_artifacts).expanduser().resolve())
    env_runtime = os.environ.get(ENV_RUNTIME_VERSION)
    if env_runtime:
        data["runtime_version"] = env_runtime

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        where = path or "environment"
        raise ConfigError(
            f"Invalid settings in {where}: {e}",
            remediation=f"Fix the offending keys in {SETTINGS_FILE}.",
        ) from e

    settings.source = str(path) if path else None
    return settings


def resolve_artifacts_dir(
    settings: Settings,
    explicit: Path | None = None,
    base_dir: Path | None = None,
) -> Path | None:
    """Locate the directory holding the pre-built variant artifacts.

    Order: explicit option, settings/env value (relative paths resolve
    against the settings file), then ``./core`` under ``base_dir``
    (default: cwd) when it looks like an artifact root.
    """
    if explicit is not None:
        return explicit.resolve()

    if settings.artifacts_dir:
        candidate = Path(settings.artifacts_dir).expanduser()
        if not candidate.is_absolute() and settings.source:
            candidate = Path(settings.source).parent / candidate
        return candidate.resolve()

    fallback = (base_dir or Path.cwd()) / "core"
    if (fallback / "package.json").is_file():
        return fallback.resolve()

    return None
