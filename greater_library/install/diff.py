"""Line diffs between installed files and registry content."""

from __future__ import annotations

import difflib
from dataclasses import dataclass

BINARY_SAMPLE_SIZE = 8192


@dataclass
class DiffResult:
    """Unified diff of one file.

    Attributes:
        path: File path shown in headers
        unified: Unified diff text (empty if unchanged or binary)
        additions: Added lines
        deletions: Removed lines
        is_binary: True if either side looks binary
    """

    path: str
    unified: str
    additions: int
    deletions: int
    is_binary: bool = False
    identical: bool = False

    @property
    def has_changes(self) -> bool:
        return not self.identical


def is_binary_content(content: bytes | str) -> bool:
    """Whether content looks binary.

    True for a NUL byte anywhere, or more than 10% control characters
    (other than tab, newline and carriage return) in the first 8 KiB.
    """
    if isinstance(content, bytes):
        if b"\x00" in content:
            return True
        sample = content[:BINARY_SAMPLE_SIZE].decode("latin-1")
    else:
        if "\x00" in content:
            return True
        sample = content[:BINARY_SAMPLE_SIZE]

    if not sample:
        return False
    non_printable = sum(1 for ch in sample if ord(ch) < 32 and ch not in "\t\n\r")
    return non_printable / len(sample) > 0.1


def compute_diff(local: bytes | str, remote: bytes | str, path: str = "file", context_lines: int = 3) -> DiffResult:
    """Diff the installed file (local) against registry content (remote).

    Args:
        local: Current file content
        remote: Content the registry would install
        path: Path used in the diff headers
        context_lines: Unchanged lines around each change

    Returns:
        DiffResult
    """
    if is_binary_content(local) or is_binary_content(remote):
        return DiffResult(path=path, unified="", additions=0, deletions=0, is_binary=True, identical=local == remote)

    local_text = local.decode("utf-8", errors="replace") if isinstance(local, bytes) else local
    remote_text = remote.decode("utf-8", errors="replace") if isinstance(remote, bytes) else remote

    if local_text == remote_text:
        return DiffResult(path=path, unified="", additions=0, deletions=0, identical=True)

    lines = list(
        difflib.unified_diff(
            local_text.splitlines(keepends=True),
            remote_text.splitlines(keepends=True),
            fromfile=f"a/{path} (local)",
            tofile=f"b/{path} (registry)",
            n=context_lines,
        )
    )
    additions = sum(1 for line in lines if line.startswith("+") and not line.startswith("+++"))
    deletions = sum(1 for line in lines if line.startswith("-") and not line.startswith("---"))
    unified = "".join(line if line.endswith("\n") else line + "\n" for line in lines)
    return DiffResult(path=path, unified=unified, additions=additions, deletions=deletions)


def format_diff_stats(result: DiffResult) -> str:
    if result.is_binary:
        return "binary files differ" if result.has_changes else "no changes"
    parts = []
    if result.additions:
        parts.append(f"+{result.additions}")
    if result.deletions:
        parts.append(f"-{result.deletions}")
    return ", ".join(parts) if parts else "no changes"


def has_local_modifications(current_checksum: str, installed_checksum: str) -> bool:
    return current_checksum != installed_checksum
