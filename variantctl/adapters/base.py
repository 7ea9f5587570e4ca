"""
Adapter base: the contract between detection and host runtimes.

Detection never shells out directly; it asks a runtime adapter for
the interpreter version. This keeps the detector pure enough to test
with a pinned version and no interpreter on PATH.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

_VERSION_RE = re.compile(r"v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_major(version: str) -> int | None:
    """Major component of a version string (``"v20.11.0"`` → 20)."""
    match = _VERSION_RE.match(version.strip())
    if not match:
        return None
    return int(match.group(1))


class RuntimeAdapter(ABC):
    """Abstract base class for host runtime probes.

    To add a runtime:
        1. Subclass RuntimeAdapter
        2. Implement name, is_available, version
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The runtime identifier (e.g., 'node')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the runtime can be probed. Fast, never raises."""

    @abstractmethod
    def version(self) -> str | None:
        """Full version string without the leading ``v`` (``"20.11.0"``).

        Returns None when the version cannot be determined. Never raises.
        """

    def major_version(self) -> int | None:
        ver = self.version()
        if ver is None:
            return None
        return parse_major(ver)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
