"""
Context file persistence: atomic read/write for InstallContext.

The context lives in .variantctl/context.json. Writes are atomic
(write to temp file, then rename) so a crash never leaves a truncated
document behind for the next upgrade to trip over.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError

from variantctl.core.errors import InvalidContextError
from variantctl.core.models.install import InstallContext

logger = logging.getLogger(__name__)

STATE_DIR = ".variantctl"
CONTEXT_FILE = "context.json"


def default_context_path(target: Path) -> Path:
    """Get the context file path for a target project."""
    return target / STATE_DIR / CONTEXT_FILE


def load_context(path: Path) -> InstallContext | None:
    """Load the install context.

    Returns:
        InstallContext, or None when the file does not exist.

    Raises:
        InvalidContextError: If the file is unreadable, not JSON, or
            fails schema validation.
    """
    if not path.is_file():
        return None

    remediation = "Run `variantctl install --force` to reinstall and rewrite context.json."
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidContextError(f"Cannot read {path}: {e}", remediation=remediation) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidContextError(
            f"Corrupt context file {path}: {e}", remediation=remediation
        ) from e

    try:
        context = InstallContext.model_validate(data)
    except ValidationError as e:
        raise InvalidContextError(
            f"Invalid context.json: {e.error_count()} validation error(s): "
            + "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ),
            remediation=remediation,
        ) from e

    logger.debug("Loaded context from %s (variant=%s)", path, context.variant)
    return context


def serialize_context(context: InstallContext) -> str:
    """Pretty-printed JSON document for ``context``."""
    return json.dumps(context.to_json_dict(), indent=2, ensure_ascii=False) + "\n"


def save_context(context: InstallContext, path: Path) -> None:
    """Save the install context (atomic write).

    Args:
        context: The context to save.
        path: Target path for context.json.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = serialize_context(context)

    # Atomic write: temp file in same directory, then rename
    try:
        _fd, tmp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".context_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with open(_fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(path)
            logger.debug("Context saved to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.error("Failed to save context to %s: %s", path, e)
        raise
