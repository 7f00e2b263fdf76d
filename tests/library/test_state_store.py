"""Tests for the installed-state store."""

import json
from datetime import UTC
from datetime import datetime
from pathlib import Path

import pytest

from greater_library.install import InstalledComponent
from greater_library.install import InstalledFile
from greater_library.install import InstalledStateStore


def make_component(name: str, path: str = "src/lib/A.svelte", checksum: str = "sha256-AAAA") -> InstalledComponent:
    return InstalledComponent(
        name=name,
        ref="greater-v4.2.0",
        version="1.0.0",
        installed_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC),
        files=[InstalledFile(path=path, checksum=checksum, source_path="lib/A.svelte", source_checksum="sha256-BBBB")],
    )


@pytest.mark.unit
class TestInstalledStateStore:
    def test_empty_project(self, tmp_path: Path) -> None:
        store = InstalledStateStore(tmp_path)

        assert store.list() == []
        assert store.get("button") is None
        assert not store.is_installed("button")

    def test_save_and_reload(self, tmp_path: Path) -> None:
        InstalledStateStore(tmp_path).save(make_component("button"))

        record = InstalledStateStore(tmp_path).get("button")

        assert record == make_component("button")
        assert record.checksum_for("src/lib/A.svelte") == "sha256-AAAA"
        assert record.checksum_for("src/lib/B.svelte") is None

    def test_file_format(self, tmp_path: Path) -> None:
        store = InstalledStateStore(tmp_path)
        store.save(make_component("icon"))

        data = json.loads(store.state_path.read_text())

        assert store.state_path == tmp_path / ".greater-components" / "installed.json"
        assert data["version"] == 1
        [entry] = data["components"]
        assert entry["installedAt"] == "2026-01-02T03:04:05+00:00"
        assert entry["files"] == [
            {"path": "src/lib/A.svelte", "checksum": "sha256-AAAA", "sourcePath": "lib/A.svelte", "sourceChecksum": "sha256-BBBB"}
        ]

    def test_save_replaces_and_sorts(self, tmp_path: Path) -> None:
        store = InstalledStateStore(tmp_path)
        store.save(make_component("icon"))
        store.save(make_component("button"))
        store.save(make_component("icon", checksum="sha256-CCCC"))

        assert [c.name for c in store.list()] == ["button", "icon"]
        assert store.get("icon").files[0].checksum == "sha256-CCCC"

    def test_remove(self, tmp_path: Path) -> None:
        store = InstalledStateStore(tmp_path)
        store.save(make_component("icon"))

        assert store.remove("icon")
        assert not store.remove("icon")
        assert store.list() == []

    def test_find_owner(self, tmp_path: Path) -> None:
        store = InstalledStateStore(tmp_path)
        store.save(make_component("icon", path="src/lib/Icon.svelte"))

        assert store.find_owner("src/lib/Icon.svelte").name == "icon"
        assert store.find_owner("src/lib/Other.svelte") is None

    def test_invalid_records_skipped(self, tmp_path: Path) -> None:
        store = InstalledStateStore(tmp_path)
        store.save(make_component("icon"))
        data = json.loads(store.state_path.read_text())
        data["components"].append({"name": "broken"})
        store.state_path.write_text(json.dumps(data))

        assert [c.name for c in store.list()] == ["icon"]
