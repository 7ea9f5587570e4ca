"""Language runtime adapters."""

from variantctl.adapters.languages.node import NodeRuntime

__all__ = ["NodeRuntime"]
