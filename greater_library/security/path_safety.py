"""Path confinement for registry-provided file paths.

Registry paths come from a remote manifest and are never trusted. Every path
is sanitized to a forward-slash relative form and every write target is
checked to resolve inside its base directory.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from greater_library.errors import PathTraversalError

logger = logging.getLogger(__name__)

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


def sanitize_relative_path(value: str) -> str:
    """Normalize a relative path and reject anything that could escape.

    Args:
        value: Registry-virtual or user-supplied relative path

    Returns:
        Forward-slash normalized relative path

    Raises:
        PathTraversalError: If the path is empty, absolute, has a drive letter,
            contains a ".." segment or a NUL byte

    Example:
        >>> sanitize_relative_path("lib\\\\primitives/./Button.svelte")
        'lib/primitives/Button.svelte'
    """
    if not isinstance(value, str) or not value.strip():
        raise PathTraversalError("Path must be a non-empty string", path=value)

    if "\x00" in value:
        raise PathTraversalError(f"Path contains a NUL byte: {value!r}", path=value)

    normalized = value.replace("\\", "/")

    if _DRIVE_LETTER.match(normalized):
        raise PathTraversalError(f"Absolute paths with drive letters are not allowed: {value}", path=value)

    if normalized.startswith("/"):
        raise PathTraversalError(f"Absolute paths are not allowed: {value}", path=value)

    segments = []
    for segment in normalized.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            raise PathTraversalError(f"Path traversal is not allowed: {value}", path=value)
        segments.append(segment)

    if not segments:
        raise PathTraversalError(f"Path is empty after normalization: {value!r}", path=value)

    return "/".join(segments)


def is_path_within_dir(base_dir: Path, candidate: Path) -> bool:
    """Check that candidate is base_dir or below it, comparing whole components."""
    base = Path(base_dir).resolve()
    target = Path(candidate).resolve()
    return target == base or target.is_relative_to(base)


def resolve_path_within_dir(base_dir: Path, relative_path: str) -> Path:
    """Resolve a relative path against base_dir and confine it there.

    Symlinks are resolved before the boundary check, so a link pointing out of
    base_dir is rejected as well.

    Args:
        base_dir: Directory every result must stay inside
        relative_path: Untrusted relative path

    Returns:
        Absolute resolved path inside base_dir

    Raises:
        PathTraversalError: If the path is unsafe or resolves outside base_dir
    """
    safe_path = sanitize_relative_path(relative_path)
    base = Path(base_dir).resolve()
    resolved = (base / safe_path).resolve()

    if not is_path_within_dir(base, resolved):
        logger.warning(f"Rejected path outside {base}: {relative_path}")
        raise PathTraversalError(
            f"Path resolves outside of {base}: {relative_path}",
            path=relative_path,
            base_dir=base,
        )

    return resolved
