"""
Diagnosis: aggregate installation health from individual checks.

Each check is pass/warn/fail; the overall status is the worst of them.
Used by the `doctor` use case and CLI command.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

CheckStatus = Literal["pass", "warn", "fail"]


@dataclass
class DiagnosticCheck:
    """Outcome of a single check."""

    name: str
    status: CheckStatus = "pass"
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class Diagnosis:
    """Aggregate result of all checks on one target."""

    target: str = ""
    status: str = "healthy"  # healthy, degraded, unhealthy
    timestamp: str = ""
    checks: list[DiagnosticCheck] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    @property
    def healthy(self) -> bool:
        return self.status != "unhealthy"

    def add(self, check: DiagnosticCheck) -> None:
        self.checks.append(check)
        self._recalculate()

    def recommend(self, text: str) -> None:
        if text not in self.recommendations:
            self.recommendations.append(text)

    def get(self, name: str) -> DiagnosticCheck | None:
        for check in self.checks:
            if check.name == name:
                return check
        return None

    def _recalculate(self) -> None:
        """Recalculate overall status from checks."""
        statuses = [c.status for c in self.checks]
        if any(s == "fail" for s in statuses):
            self.status = "unhealthy"
        elif any(s == "warn" for s in statuses):
            self.status = "degraded"
        else:
            self.status = "healthy"

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "status": self.status,
            "timestamp": self.timestamp,
            "checks": [c.to_dict() for c in self.checks],
            "recommendations": self.recommendations,
        }
