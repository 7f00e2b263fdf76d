"""Security utilities: path confinement, content integrity and auditing."""

from .audit import AuditLog
from .audit import AuditLogEntry
from .integrity import compute_checksum
from .integrity import generate_checksum_map
from .integrity import parse_checksum
from .integrity import verify_checksum
from .integrity import verify_checksum_or_raise
from .integrity import verify_multiple_checksums
from .path_safety import resolve_path_within_dir
from .path_safety import sanitize_relative_path

__all__ = [
    "AuditLog",
    "AuditLogEntry",
    "compute_checksum",
    "generate_checksum_map",
    "parse_checksum",
    "verify_checksum",
    "verify_checksum_or_raise",
    "verify_multiple_checksums",
    "resolve_path_within_dir",
    "sanitize_relative_path",
]
