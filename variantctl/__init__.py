"""variantctl: environment-aware installer for harness core variants."""

__version__ = "0.1.0"
