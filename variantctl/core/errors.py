"""
Error taxonomy: every failure the installer can report.

Components raise ``VariantctlError`` subclasses; the use cases catch
them at their boundary and turn them into ``OperationResult`` values.
Expected outcomes ("already installed", "no change") are never raised.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Kind tag carried by every reported failure."""

    UNSUPPORTED_RUNTIME = "unsupported_runtime"
    RUNTIME_NOT_FOUND = "runtime_not_found"
    DETECTION_AMBIGUOUS = "detection_ambiguous"   # warning only, never fatal
    UNKNOWN_VARIANT = "unknown_variant"
    INCOMPATIBLE_OVERRIDE = "incompatible_override"
    LOCK_HELD = "lock_held"
    MISSING_ARTIFACTS = "missing_artifacts"
    PARTIAL_WRITE_FAILURE = "partial_write_failure"
    TARGET_NOT_FOUND = "target_not_found"
    ALREADY_INSTALLED = "already_installed"
    NOT_INSTALLED = "not_installed"
    INVALID_CONTEXT = "invalid_context"
    CONFIG_INVALID = "config_invalid"
    STATE_DIR_UNAVAILABLE = "state_dir_unavailable"


class VariantctlError(Exception):
    """Base class for component failures.

    Attributes:
        kind: Taxonomy tag.
        message: Human-readable description.
        remediation: What the user should do next ("" when nothing applies).
    """

    kind: ErrorKind = ErrorKind.PARTIAL_WRITE_FAILURE

    def __init__(self, message: str, *, remediation: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.remediation = remediation


class UnsupportedRuntimeError(VariantctlError):
    kind = ErrorKind.UNSUPPORTED_RUNTIME


class RuntimeNotFoundError(VariantctlError):
    kind = ErrorKind.RUNTIME_NOT_FOUND


class UnknownVariantError(VariantctlError):
    kind = ErrorKind.UNKNOWN_VARIANT


class IncompatibleOverrideError(VariantctlError):
    kind = ErrorKind.INCOMPATIBLE_OVERRIDE


class LockHeldError(VariantctlError):
    kind = ErrorKind.LOCK_HELD


class MissingArtifactsError(VariantctlError):
    kind = ErrorKind.MISSING_ARTIFACTS


class PartialWriteError(VariantctlError):
    kind = ErrorKind.PARTIAL_WRITE_FAILURE


class InvalidContextError(VariantctlError):
    kind = ErrorKind.INVALID_CONTEXT


class StateDirError(VariantctlError):
    """The .variantctl directory cannot be created or written."""

    kind = ErrorKind.STATE_DIR_UNAVAILABLE


class ConfigError(VariantctlError):
    """Raised when variantctl.yml or an environment override is invalid."""

    kind = ErrorKind.CONFIG_INVALID
