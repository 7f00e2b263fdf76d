"""Install models.

This module contains the data models of the installer:
- Persistent records of installed components
- Install state machine states
- Per-file plans and per-component results for reporting
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import UTC
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from greater_library.registry.models import ComponentDependency

# =============================================================================
# Persistent Models
# =============================================================================


@dataclass
class InstalledFile:
    """A file written for a component.

    path is project-relative; checksum is of the bytes actually written,
    after import transformation. source_checksum is the registry checksum of
    source_path, used to detect registry updates.
    """

    path: str
    checksum: str
    source_path: str | None = None
    source_checksum: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        data = {"path": self.path, "checksum": self.checksum}
        if self.source_path:
            data["sourcePath"] = self.source_path
        if self.source_checksum:
            data["sourceChecksum"] = self.source_checksum
        return data

    @classmethod
    def from_dict(cls, data: dict) -> InstalledFile:
        """Load from dictionary."""
        return cls(
            path=data["path"],
            checksum=data["checksum"],
            source_path=data.get("sourcePath"),
            source_checksum=data.get("sourceChecksum"),
        )


@dataclass
class InstalledComponent:
    """Record of a component installed in a project."""

    name: str
    ref: str
    files: list[InstalledFile]
    installed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    version: str | None = None

    def checksum_for(self, path: str) -> str | None:
        for installed_file in self.files:
            if installed_file.path == path:
                return installed_file.checksum
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "name": self.name,
            "ref": self.ref,
            "version": self.version,
            "installedAt": self.installed_at.isoformat(),
            "files": [f.to_dict() for f in self.files],
        }

    @classmethod
    def from_dict(cls, data: dict) -> InstalledComponent:
        """Load from dictionary."""
        return cls(
            name=data["name"],
            ref=data["ref"],
            version=data.get("version"),
            installed_at=datetime.fromisoformat(data["installedAt"]),
            files=[InstalledFile.from_dict(f) for f in data.get("files", [])],
        )


# =============================================================================
# Install State Machine
# =============================================================================


class InstallState(str, Enum):
    """Stages of one install run; FAILED is reachable from any stage."""

    RESOLVING = "resolving"
    FETCHING = "fetching"
    VERIFYING = "verifying"
    TRANSFORMING = "transforming"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


# =============================================================================
# Plans and Results
# =============================================================================

FileStatus = Literal["create", "update", "unchanged", "conflict"]
ComponentStatus = Literal["installed", "updated", "up_to_date", "conflict", "planned"]


@dataclass
class FilePlan:
    """A file ready to be written.

    Attributes:
        source_path: Registry path
        target_path: Project-relative destination
        absolute_path: Confined absolute destination
        content: Bytes to write (after transformation)
        checksum: Checksum of content
        status: What writing it would do
        transformed_imports: Number of rewritten imports
        source_checksum: Registry checksum of the fetched bytes
    """

    source_path: str
    target_path: str
    absolute_path: Path
    content: bytes
    checksum: str
    status: FileStatus = "create"
    transformed_imports: int = 0
    source_checksum: str | None = None


@dataclass
class ComponentInstallResult:
    """What happened to one component."""

    name: str
    status: ComponentStatus
    files: list[FilePlan] = field(default_factory=list)

    @property
    def conflicts(self) -> list[str]:
        return [f.target_path for f in self.files if f.status == "conflict"]

    @property
    def written(self) -> list[str]:
        return [f.target_path for f in self.files if f.status in ("create", "update")]


@dataclass
class InstallReport:
    """Outcome of an install or update run."""

    ref: str
    state: InstallState = InstallState.RESOLVING
    dry_run: bool = False
    components: list[ComponentInstallResult] = field(default_factory=list)
    npm_dependencies: list[ComponentDependency] = field(default_factory=list)
    npm_dev_dependencies: list[ComponentDependency] = field(default_factory=list)
    package_conflicts: list[str] = field(default_factory=list)
    transform_message: str = ""
    error: str | None = None

    @property
    def conflicts(self) -> list[ComponentInstallResult]:
        return [c for c in self.components if c.status == "conflict"]

    @property
    def succeeded(self) -> bool:
        return self.state == InstallState.DONE and not self.conflicts

    def get(self, name: str) -> ComponentInstallResult | None:
        for result in self.components:
            if result.name == name:
                return result
        return None


@dataclass
class UpdateInfo:
    """Installed component compared with the registry."""

    name: str
    installed_ref: str
    installed_version: str | None
    available_version: str | None
    changed_files: list[str]
    missing_from_registry: bool = False

    @property
    def has_update(self) -> bool:
        return self.missing_from_registry is False and bool(self.changed_files)
