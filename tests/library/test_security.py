"""
Unit tests for path confinement and content integrity.
"""

import os
from pathlib import Path

import pytest

from greater_library.errors import IntegrityError
from greater_library.errors import PathTraversalError
from greater_library.security import compute_checksum
from greater_library.security import generate_checksum_map
from greater_library.security import parse_checksum
from greater_library.security import resolve_path_within_dir
from greater_library.security import sanitize_relative_path
from greater_library.security import verify_checksum
from greater_library.security import verify_checksum_or_raise
from greater_library.security import verify_multiple_checksums
from greater_library.security.integrity import raise_for_failures
from greater_library.security.integrity import summarize_verification
from greater_library.security.path_safety import is_path_within_dir

EMPTY_SHA256 = "sha256-47DEQpj8HBSa+/TImW+5JCeuQeRkm5NMpJWZG3hSuFU="


@pytest.mark.unit
class TestSanitizeRelativePath:
    """Test registry path normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("lib/Button.svelte", "lib/Button.svelte"),
            ("lib\\primitives\\Button.svelte", "lib/primitives/Button.svelte"),
            ("./lib//./Icon.svelte", "lib/Icon.svelte"),
            ("shared/", "shared"),
        ],
    )
    def test_normalizes(self, raw: str, expected: str) -> None:
        assert sanitize_relative_path(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "   ",
            "/etc/passwd",
            "C:\\Windows\\system32",
            "c:relative",
            "../secrets",
            "lib/../../escape",
            "lib\\..\\..\\escape",
            "lib/\x00Button.svelte",
            "./.",
        ],
    )
    def test_rejects(self, raw: str) -> None:
        with pytest.raises(PathTraversalError):
            sanitize_relative_path(raw)

    def test_rejects_non_string(self) -> None:
        with pytest.raises(PathTraversalError):
            sanitize_relative_path(None)  # type: ignore[arg-type]


@pytest.mark.unit
class TestResolvePathWithinDir:
    """Test write target confinement."""

    def test_resolves_inside(self, tmp_path: Path) -> None:
        result = resolve_path_within_dir(tmp_path, "src/lib/Button.svelte")
        assert result == tmp_path.resolve() / "src" / "lib" / "Button.svelte"

    def test_rejects_traversal(self, tmp_path: Path) -> None:
        with pytest.raises(PathTraversalError):
            resolve_path_within_dir(tmp_path, "../outside.txt")

    def test_sibling_prefix_is_outside(self, tmp_path: Path) -> None:
        """A directory sharing a name prefix with the base is not inside it."""
        base = tmp_path / "project"
        base.mkdir()
        assert not is_path_within_dir(base, tmp_path / "project-evil" / "x")

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
    def test_rejects_symlink_escape(self, tmp_path: Path) -> None:
        base = tmp_path / "project"
        outside = tmp_path / "outside"
        base.mkdir()
        outside.mkdir()
        (base / "link").symlink_to(outside, target_is_directory=True)

        with pytest.raises(PathTraversalError, match="outside"):
            resolve_path_within_dir(base, "link/file.txt")


@pytest.mark.unit
class TestChecksums:
    """Test checksum computation and verification."""

    def test_compute_known_value(self) -> None:
        assert compute_checksum(b"") == EMPTY_SHA256

    def test_str_is_utf8(self) -> None:
        assert compute_checksum("héllo") == compute_checksum("héllo".encode("utf-8"))

    def test_verify_round_trip(self) -> None:
        content = b"<button />"
        assert verify_checksum(content, compute_checksum(content))
        assert not verify_checksum(content + b" ", compute_checksum(content))

    def test_malformed_checksum_never_verifies(self) -> None:
        assert parse_checksum("md5-abc") is None
        assert parse_checksum("sha256-") is None
        assert not verify_checksum(b"", "sha256-not base64!")

    def test_parse_checksum(self) -> None:
        parsed = parse_checksum(EMPTY_SHA256)
        assert parsed is not None
        assert parsed.algorithm == "sha256"
        assert parsed.digest == EMPTY_SHA256.removeprefix("sha256-")

    def test_verify_or_raise(self) -> None:
        with pytest.raises(IntegrityError) as exc_info:
            verify_checksum_or_raise(b"tampered", EMPTY_SHA256, "lib/Button.svelte")

        assert exc_info.value.file_path == "lib/Button.svelte"
        assert exc_info.value.expected == EMPTY_SHA256
        assert exc_info.value.actual == compute_checksum(b"tampered")

    def test_verify_multiple_reports_every_file(self) -> None:
        files = {"a.ts": b"a", "b.ts": b"b", "c.ts": b"c"}
        checksums = {"a.ts": compute_checksum(b"a"), "b.ts": compute_checksum(b"x")}

        results = verify_multiple_checksums(files, checksums)
        report = summarize_verification(results)

        assert [r.path for r in results] == ["a.ts", "b.ts", "c.ts"]
        assert report.total == 3
        assert report.passed == 1
        assert [r.path for r in report.failed] == ["b.ts", "c.ts"]
        assert not report.all_passed

    def test_skip_missing(self) -> None:
        results = verify_multiple_checksums({"a.ts": b"a"}, {}, skip_missing=True)
        report = summarize_verification(results)

        assert report.skipped == 1
        assert report.all_passed

    def test_raise_for_failures_names_all_files(self) -> None:
        files = {"lib/Button.svelte": b"evil", "lib/Icon.svelte": b"evil"}
        checksums = {"lib/Button.svelte": EMPTY_SHA256, "lib/Icon.svelte": EMPTY_SHA256}

        with pytest.raises(IntegrityError, match="2 file\\(s\\): lib/Button.svelte, lib/Icon.svelte") as exc_info:
            raise_for_failures(verify_multiple_checksums(files, checksums))

        assert [m[0] for m in exc_info.value.mismatches] == ["lib/Button.svelte", "lib/Icon.svelte"]

    def test_generate_checksum_map(self) -> None:
        assert generate_checksum_map({"a": b""}) == {"a": EMPTY_SHA256}
