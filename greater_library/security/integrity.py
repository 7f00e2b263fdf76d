"""Content checksums for registry files.

Checksums are SHA-256 over the raw bytes exactly as fetched, with no
line-ending normalization, serialized as ``sha256-<base64>``. The registry
publishing tool uses the same algorithm through generate_checksum_map.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re
from dataclasses import dataclass
from dataclasses import field

from greater_library.errors import IntegrityError

logger = logging.getLogger(__name__)

CHECKSUM_ALGORITHM = "sha256"
CHECKSUM_PATTERN = re.compile(r"^sha256-[A-Za-z0-9+/]+=*$")


@dataclass
class ParsedChecksum:
    """Checksum split into algorithm and base64 digest."""

    algorithm: str
    digest: str


@dataclass
class VerificationResult:
    """Outcome of verifying a single file.

    Attributes:
        path: Registry path of the file
        passed: True when the checksum matched
        expected: Checksum from the registry (None if absent)
        actual: Checksum of the content
        skipped: True when no checksum was available and skipping was allowed
        reason: Human-readable failure reason
    """

    path: str
    passed: bool
    expected: str | None
    actual: str
    skipped: bool = False
    reason: str | None = None


@dataclass
class IntegrityReport:
    """Totals over a batch of verification results."""

    results: list[VerificationResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def failed(self) -> list[VerificationResult]:
        return [r for r in self.results if not r.passed and not r.skipped]

    @property
    def all_passed(self) -> bool:
        return not self.failed


def _to_bytes(content: bytes | str) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


def compute_checksum(content: bytes | str) -> str:
    """Compute the registry checksum of content.

    Args:
        content: Raw bytes (str is encoded as UTF-8)

    Returns:
        Checksum string such as "sha256-47DEQpj8HBSa+/TImW+5JCeuQeRkm5NMpJWZG3hSuFU="
    """
    digest = hashlib.sha256(_to_bytes(content)).digest()
    return f"{CHECKSUM_ALGORITHM}-{base64.b64encode(digest).decode('ascii')}"


def parse_checksum(value: str) -> ParsedChecksum | None:
    """Split a checksum into algorithm and digest.

    Returns:
        ParsedChecksum, or None when value is not a well-formed checksum
    """
    if not isinstance(value, str) or not CHECKSUM_PATTERN.match(value):
        return None
    algorithm, _, digest = value.partition("-")
    if not digest:
        return None
    return ParsedChecksum(algorithm=algorithm, digest=digest)


def verify_checksum(content: bytes | str, expected: str) -> bool:
    """Check content against an expected checksum.

    A malformed expected value never verifies.
    """
    if parse_checksum(expected) is None:
        return False
    return compute_checksum(content) == expected


def verify_checksum_or_raise(content: bytes | str, expected: str, file_path: str) -> None:
    """Verify content or raise IntegrityError naming the file.

    Args:
        content: Fetched bytes
        expected: Checksum from the registry index
        file_path: Registry path used in the error message

    Raises:
        IntegrityError: On mismatch or malformed expected checksum
    """
    actual = compute_checksum(content)
    if parse_checksum(expected) is None:
        raise IntegrityError(
            f"Invalid checksum format for {file_path}: {expected!r}",
            file_path=file_path,
            expected=expected,
            actual=actual,
        )
    if actual != expected:
        raise IntegrityError(
            f"Checksum mismatch for {file_path}: expected {expected}, got {actual}",
            file_path=file_path,
            expected=expected,
            actual=actual,
        )


def verify_multiple_checksums(
    files: dict[str, bytes],
    checksums: dict[str, str],
    *,
    skip_missing: bool = False,
) -> list[VerificationResult]:
    """Verify a batch of files without failing fast.

    Args:
        files: Registry path to fetched content
        checksums: Registry path to expected checksum
        skip_missing: Report files without a checksum as skipped instead of failed

    Returns:
        One result per file, in the order of files
    """
    results: list[VerificationResult] = []
    for path, content in files.items():
        actual = compute_checksum(content)
        expected = checksums.get(path)

        if expected is None:
            results.append(
                VerificationResult(
                    path=path,
                    passed=False,
                    expected=None,
                    actual=actual,
                    skipped=skip_missing,
                    reason=None if skip_missing else "missing checksum",
                )
            )
            continue

        passed = verify_checksum(content, expected)
        results.append(
            VerificationResult(
                path=path,
                passed=passed,
                expected=expected,
                actual=actual,
                reason=None if passed else "checksum mismatch",
            )
        )
        if not passed:
            logger.warning(f"Checksum mismatch for {path}: expected {expected}, got {actual}")

    return results


def summarize_verification(results: list[VerificationResult]) -> IntegrityReport:
    """Wrap verification results in a report with totals."""
    return IntegrityReport(results=list(results))


def raise_for_failures(results: list[VerificationResult]) -> None:
    """Raise one IntegrityError naming every failed file.

    Raises:
        IntegrityError: If any result failed (skipped results are ignored)
    """
    failed = summarize_verification(results).failed
    if not failed:
        return
    names = ", ".join(r.path for r in failed)
    first = failed[0]
    raise IntegrityError(
        f"Integrity check failed for {len(failed)} file(s): {names}",
        file_path=first.path,
        expected=first.expected,
        actual=first.actual,
        mismatches=[(r.path, r.expected, r.actual) for r in failed],
    )


def generate_checksum_map(files: dict[str, bytes | str]) -> dict[str, str]:
    """Produce registry checksums for a set of files.

    Args:
        files: Registry path to content

    Returns:
        Registry path to checksum, sorted by path
    """
    return {path: compute_checksum(files[path]) for path in sorted(files)}
