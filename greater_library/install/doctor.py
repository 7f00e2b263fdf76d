"""Project health checks.

Contract:
- Inputs: Project root, optional registry cache directory and ref
- Outputs: DoctorReport with one DoctorCheck per finding
- Side Effects: None (read-only)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Literal

from greater_library.config.components import get_component_config_path
from greater_library.config.components import load_component_config
from greater_library.config.components import resolve_alias
from greater_library.errors import ConfigError
from greater_library.errors import PathTraversalError
from greater_library.security.integrity import compute_checksum
from greater_library.security.path_safety import resolve_path_within_dir
from greater_library.storage.paths import get_registry_cache_dir
from greater_library.utils.repo_url import safe_ref_name

from .state_store import InstalledStateStore

logger = logging.getLogger(__name__)

CheckStatus = Literal["ok", "warn", "error"]


@dataclass
class DoctorCheck:
    name: str
    status: CheckStatus
    message: str


@dataclass
class DoctorReport:
    """All checks of one doctor run."""

    checks: list[DoctorCheck] = field(default_factory=list)

    def add(self, name: str, status: CheckStatus, message: str) -> None:
        self.checks.append(DoctorCheck(name=name, status=status, message=message))

    @property
    def errors(self) -> list[DoctorCheck]:
        return [c for c in self.checks if c.status == "error"]

    @property
    def warnings(self) -> list[DoctorCheck]:
        return [c for c in self.checks if c.status == "warn"]

    @property
    def healthy(self) -> bool:
        return not self.errors


def run_doctor(project_root: Path, ref: str | None = None, registry_cache_dir: Path | None = None) -> DoctorReport:
    """Check a project's configuration and installed files.

    Args:
        project_root: Consumer project root
        ref: Registry ref whose cached index is checked (default: components.json ref)
        registry_cache_dir: Registry index cache. Defaults to $GREATER_HOME/registry

    Returns:
        DoctorReport
    """
    project_root = Path(project_root).resolve()
    report = DoctorReport()

    config_path = get_component_config_path(project_root)
    try:
        config = load_component_config(project_root)
    except ConfigError as e:
        report.add("config", "error", str(e))
        return report
    if config is None:
        report.add("config", "error", f"{config_path.name} not found; run 'greater init'")
        return report
    report.add("config", "ok", f"{config_path.name} is valid")

    for key, alias in sorted(config.aliases.as_dict().items()):
        directory = resolve_alias(alias, project_root)
        if directory.is_dir():
            report.add(f"alias:{key}", "ok", f"{alias} -> {directory}")
        else:
            report.add(f"alias:{key}", "warn", f"Directory for {alias} does not exist: {directory}")

    _check_installed(project_root, report)

    ref = ref or config.ref
    if ref and ref != "latest":
        cache_dir = registry_cache_dir or get_registry_cache_dir()
        if (cache_dir / f"{safe_ref_name(ref)}.json").exists():
            report.add("registry-cache", "ok", f"Registry index for {ref} is cached")
        else:
            report.add("registry-cache", "warn", f"Registry index for {ref} is not cached; offline installs will fail")

    logger.debug(f"Doctor: {len(report.errors)} error(s), {len(report.warnings)} warning(s)")
    return report


def _check_installed(project_root: Path, report: DoctorReport) -> None:
    installed = InstalledStateStore(project_root).list()
    if not installed:
        report.add("installed", "ok", "No components installed")
        return

    for component in installed:
        missing = []
        modified = []
        for installed_file in component.files:
            try:
                path = resolve_path_within_dir(project_root, installed_file.path)
            except PathTraversalError:
                missing.append(installed_file.path)
                continue
            if not path.exists():
                missing.append(installed_file.path)
            elif compute_checksum(path.read_bytes()) != installed_file.checksum:
                modified.append(installed_file.path)

        name = f"component:{component.name}"
        if missing:
            report.add(name, "error", f"Missing file(s): {', '.join(missing)}")
        if modified:
            report.add(name, "warn", f"Locally modified file(s): {', '.join(modified)}")
        if not missing and not modified:
            report.add(name, "ok", f"{len(component.files)} file(s) intact ({component.ref})")
