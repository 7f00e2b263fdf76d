"""Tests for project health checks."""

from pathlib import Path

import pytest

from greater_library.config import ComponentAliases
from greater_library.config import ComponentConfig
from greater_library.config import save_component_config
from greater_library.install import InstalledComponent
from greater_library.install import InstalledFile
from greater_library.install import InstalledStateStore
from greater_library.install import run_doctor
from greater_library.security import compute_checksum
from greater_library.utils.repo_url import safe_ref_name

PINNED_REF = "greater-v4.2.0"


def checks_by_name(report) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    for check in report.checks:
        result.setdefault(check.name, []).append(check.status)
    return result


def install_record(project: Path, name: str, files: dict[str, bytes]) -> None:
    """Write files and record them as an installed component."""
    for rel, content in files.items():
        target = project / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    InstalledStateStore(project).save(
        InstalledComponent(
            name=name,
            ref=PINNED_REF,
            files=[InstalledFile(path=rel, checksum=compute_checksum(content)) for rel, content in files.items()],
        )
    )


@pytest.mark.unit
class TestDoctor:
    def test_missing_config(self, tmp_path: Path) -> None:
        report = run_doctor(tmp_path, registry_cache_dir=tmp_path / "registry")

        assert [(c.name, c.status) for c in report.checks] == [("config", "error")]
        assert "greater init" in report.checks[0].message
        assert not report.healthy

    def test_invalid_config(self, tmp_path: Path) -> None:
        (tmp_path / "components.json").write_text("{not json")

        report = run_doctor(tmp_path, registry_cache_dir=tmp_path / "registry")

        assert report.errors[0].name == "config"
        assert not report.healthy

    def test_fresh_project(self, project: Path, tmp_path: Path) -> None:
        report = run_doctor(project, registry_cache_dir=tmp_path / "registry")
        checks = checks_by_name(report)

        assert checks["config"] == ["ok"]
        assert checks["alias:ui"] == ["warn"]
        assert checks["installed"] == ["ok"]
        assert checks["registry-cache"] == ["warn"]
        assert report.healthy

    def test_existing_alias_directory(self, project: Path, tmp_path: Path) -> None:
        (project / "src/lib/components/ui").mkdir(parents=True)

        checks = checks_by_name(run_doctor(project, registry_cache_dir=tmp_path / "registry"))

        assert checks["alias:ui"] == ["ok"]
        assert checks["alias:lib"] == ["ok"]
        assert checks["alias:utils"] == ["warn"]

    def test_custom_alias(self, tmp_path: Path) -> None:
        save_component_config(ComponentConfig(aliases=ComponentAliases(hooks="./app/hooks")), tmp_path)
        (tmp_path / "app/hooks").mkdir(parents=True)

        checks = checks_by_name(run_doctor(tmp_path, registry_cache_dir=tmp_path / "registry"))

        assert checks["alias:hooks"] == ["ok"]
        # No ref pinned: nothing to check in the registry cache
        assert "registry-cache" not in checks

    def test_cached_registry_index(self, project: Path, tmp_path: Path) -> None:
        cache_dir = tmp_path / "registry"
        cache_dir.mkdir()
        (cache_dir / f"{safe_ref_name(PINNED_REF)}.json").write_text("{}")

        checks = checks_by_name(run_doctor(project, registry_cache_dir=cache_dir))

        assert checks["registry-cache"] == ["ok"]

    def test_intact_component(self, project: Path, tmp_path: Path) -> None:
        install_record(project, "icon", {"src/lib/Icon.svelte": b"<svg />"})

        checks = checks_by_name(run_doctor(project, registry_cache_dir=tmp_path / "registry"))

        assert checks["component:icon"] == ["ok"]

    def test_modified_component_warns(self, project: Path, tmp_path: Path) -> None:
        install_record(project, "icon", {"src/lib/Icon.svelte": b"<svg />"})
        (project / "src/lib/Icon.svelte").write_bytes(b"<svg class='mine' />")

        report = run_doctor(project, registry_cache_dir=tmp_path / "registry")

        assert checks_by_name(report)["component:icon"] == ["warn"]
        assert report.healthy

    def test_missing_file_is_error(self, project: Path, tmp_path: Path) -> None:
        install_record(project, "button", {"src/lib/Button.svelte": b"<button />", "src/lib/button.css": b".b{}"})
        (project / "src/lib/button.css").unlink()

        report = run_doctor(project, registry_cache_dir=tmp_path / "registry")

        [error] = report.errors
        assert error.name == "component:button"
        assert "src/lib/button.css" in error.message
        assert not report.healthy
