"""
Unit tests for storage layer (paths and json_store).

Tests path resolution, environment overrides and atomic JSON writes.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from greater_library.storage import json_store
from greater_library.storage import paths


@pytest.mark.unit
class TestPaths:
    """Test path resolution functions."""

    def test_get_home_dir_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test get_home_dir falls back to ~/.greater-components."""
        monkeypatch.delenv("GREATER_HOME", raising=False)
        assert paths.get_home_dir() == (Path.home() / ".greater-components").resolve()

    def test_get_home_dir_custom(self, greater_home: Path) -> None:
        """Test get_home_dir respects GREATER_HOME."""
        assert paths.get_home_dir() == greater_home.resolve()

    def test_get_cache_dir_creates_directory(self, greater_home: Path) -> None:
        cache_dir = paths.get_cache_dir()
        assert cache_dir.is_dir()
        assert cache_dir == greater_home.resolve() / "cache"

    def test_get_cache_dir_override(self, greater_home: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test GREATER_CACHE_DIR replaces the home-relative cache."""
        monkeypatch.setenv("GREATER_CACHE_DIR", str(tmp_path / "elsewhere"))
        assert paths.get_cache_dir() == (tmp_path / "elsewhere").resolve()

    def test_get_config_dir_override(self, greater_home: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GREATER_CONFIG_DIR", str(tmp_path / "cfg"))
        config_dir = paths.get_config_dir()
        assert config_dir == (tmp_path / "cfg").resolve()
        assert config_dir.is_dir()

    def test_registry_cache_and_audit_log_under_home(self, greater_home: Path) -> None:
        assert paths.get_registry_cache_dir() == greater_home.resolve() / "registry"
        assert paths.get_audit_log_path() == greater_home.resolve() / "audit.log"

    def test_local_repo_root_unset(self, greater_home: Path) -> None:
        assert paths.get_local_repo_root() is None

    def test_local_repo_root_set(self, greater_home: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(paths.LOCAL_REPO_ENV, str(tmp_path))
        assert paths.get_local_repo_root() == tmp_path.resolve()

    def test_project_state_dir_not_created(self, tmp_path: Path) -> None:
        state_dir = paths.get_project_state_dir(tmp_path)
        assert state_dir == tmp_path / ".greater-components"
        assert not state_dir.exists()


@pytest.mark.unit
class TestJsonStore:
    """Test JSON storage operations."""

    def test_save_and_load_json(self, tmp_path: Path) -> None:
        """Test basic save and load operations."""
        target = tmp_path / "nested" / "data.json"
        test_data = {"name": "button", "count": 2}

        json_store.save_json(target, test_data)

        assert json_store.load_json(target) == test_data

    def test_load_missing_returns_none(self, tmp_path: Path) -> None:
        assert json_store.load_json(tmp_path / "missing.json") is None

    def test_load_invalid_returns_none(self, tmp_path: Path) -> None:
        target = tmp_path / "broken.json"
        target.write_text("{not json", encoding="utf-8")
        assert json_store.load_json(target) is None

    def test_save_sanitizes_datetime(self, tmp_path: Path) -> None:
        """Test save_json writes datetime objects as strings."""
        from datetime import UTC
        from datetime import datetime

        target = tmp_path / "dt.json"
        json_store.save_json(target, {"at": datetime(2025, 1, 20, 12, 0, 0, tzinfo=UTC)})

        assert json_store.load_json(target)["at"] == "2025-01-20 12:00:00+00:00"

    def test_atomic_write_leaves_no_temp_file(self, tmp_path: Path) -> None:
        target = tmp_path / "atomic.json"
        json_store.save_json(target, {"data": "value"})

        assert target.exists()
        assert list(tmp_path.glob("*.tmp")) == []

    def test_failed_write_raises_runtime_error(self, tmp_path: Path) -> None:
        """Test save_json reports failures as RuntimeError and keeps the old file."""
        target = tmp_path / "keep.json"
        json_store.save_json(target, {"version": 1})

        with patch("greater_library.storage.json_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(RuntimeError, match="Failed to save JSON"):
                json_store.save_json(target, {"version": 2})

        assert json_store.load_json(target) == {"version": 1}
        assert list(tmp_path.glob("*.tmp")) == []
