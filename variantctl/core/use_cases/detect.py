"""
Detect use case: read-only report of what install would choose.

Writes nothing: no lock, no log, no state directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from variantctl.adapters.base import RuntimeAdapter
from variantctl.core.errors import ErrorKind, InvalidContextError
from variantctl.core.models.install import InstallContext
from variantctl.core.persistence.context_file import load_context
from variantctl.core.services import registry
from variantctl.core.services.detection import (
    DetectionResult,
    EnvironmentChange,
    detect_environment_change,
    select_variant,
)
from variantctl.core.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class DetectReport:
    """Result of the detect use case."""

    target: Path
    detection: DetectionResult | None = None
    installed: InstallContext | None = None
    change: EnvironmentChange | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.detection is not None and self.detection.success

    def to_dict(self) -> dict:
        result: dict = {"target": str(self.target), "success": self.success}
        if self.error:
            result["error"] = self.error
            result["error_kind"] = str(self.error_kind) if self.error_kind else None
            return result

        if self.detection:
            result["detection"] = self.detection.to_dict()
            if self.detection.selected_variant:
                definition = registry.get(self.detection.selected_variant)
                result["variant"] = definition.model_dump(mode="json")
        result["installed"] = self.installed.to_json_dict() if self.installed else None
        if self.change:
            result["environment_change"] = self.change.to_dict()
        return result


def run_detect(
    target: Path,
    variant: str | None = None,
    runtime: RuntimeAdapter | None = None,
) -> DetectReport:
    """Detect the environment of ``target`` and compare with any installation."""
    report = DetectReport(target=target.resolve())
    if not target.is_dir():
        report.error = f"Target directory does not exist: {target}"
        report.error_kind = ErrorKind.TARGET_NOT_FOUND
        return report

    report.detection = select_variant(target, variant, runtime)

    ws = Workspace(target)
    try:
        report.installed = load_context(ws.context_path)
    except InvalidContextError as e:
        logger.warning("%s", e.message)
    if report.installed is not None:
        report.change = detect_environment_change(report.installed, target, runtime)
    return report
