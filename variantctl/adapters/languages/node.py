"""
Node.js adapter: probes the host Node.js interpreter.

The version can be pinned (``--runtime-version``, the
``VARIANTCTL_RUNTIME_VERSION`` env var or ``runtime_version`` in
variantctl.yml) for CI images that install into a project before Node
is on PATH. A pinned adapter never spawns a process.
"""

from __future__ import annotations

import logging
import shutil
import subprocess

from variantctl.adapters.base import RuntimeAdapter, parse_major

logger = logging.getLogger(__name__)

# The probe must never stall detection
PROBE_TIMEOUT_S = 5


class NodeRuntime(RuntimeAdapter):
    """Node.js runtime probe."""

    def __init__(self, pinned: str | None = None) -> None:
        self._pinned = pinned.strip().lstrip("v") if pinned else None
        self._cached: str | None = None

    @property
    def name(self) -> str:
        return "node"

    @property
    def pinned(self) -> bool:
        return self._pinned is not None

    def is_available(self) -> bool:
        if self._pinned is not None:
            return parse_major(self._pinned) is not None
        return shutil.which("node") is not None

    def version(self) -> str | None:
        """Detect the Node.js version string."""
        if self._pinned is not None:
            return self._pinned if parse_major(self._pinned) is not None else None
        if self._cached is not None:
            return self._cached
        try:
            result = subprocess.run(
                ["node", "--version"],
                capture_output=True,
                text=True,
                timeout=PROBE_TIMEOUT_S,
                stdin=subprocess.DEVNULL,
            )
            if result.returncode == 0:
                # "v20.11.0" → "20.11.0"
                ver = result.stdout.strip().lstrip("v")
                if parse_major(ver) is not None:
                    self._cached = ver
                    return ver
                logger.warning("Unrecognised `node --version` output: %r", result.stdout)
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
            logger.debug("Node.js probe failed: %s", e)
        return None
