"""Adapters: probes for external toolchains."""
