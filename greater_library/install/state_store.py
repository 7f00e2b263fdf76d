"""Installed-state store.

Persists InstalledComponent records of a project in
<project>/.greater-components/installed.json.
"""

from __future__ import annotations

import logging
from pathlib import Path

from greater_library.storage.json_store import load_json
from greater_library.storage.json_store import save_json
from greater_library.storage.paths import get_project_state_dir

from .models import InstalledComponent

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class InstalledStateStore:
    """JSON-based store of installed components."""

    def __init__(self, project_root: Path, state_path: Path | None = None) -> None:
        """Initialize state store.

        Args:
            project_root: Consumer project root
            state_path: State file. Defaults to .greater-components/installed.json
        """
        self.project_root = project_root
        self.state_path = state_path or (get_project_state_dir(project_root) / "installed.json")

    def _load(self) -> dict[str, InstalledComponent]:
        data = load_json(self.state_path)
        if not data:
            return {}
        components: dict[str, InstalledComponent] = {}
        for entry in data.get("components", []):
            try:
                component = InstalledComponent.from_dict(entry)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping invalid installed record in {self.state_path}: {e}")
                continue
            components[component.name] = component
        return components

    def _save(self, components: dict[str, InstalledComponent]) -> None:
        data = {
            "version": STATE_VERSION,
            "components": [components[name].to_dict() for name in sorted(components)],
        }
        save_json(self.state_path, data)

    def list(self) -> list[InstalledComponent]:
        """All installed components, sorted by name."""
        components = self._load()
        return [components[name] for name in sorted(components)]

    def get(self, name: str) -> InstalledComponent | None:
        return self._load().get(name)

    def is_installed(self, name: str) -> bool:
        return name in self._load()

    def save(self, component: InstalledComponent) -> None:
        """Add or replace the record of one component."""
        components = self._load()
        components[component.name] = component
        self._save(components)
        logger.debug(f"Recorded installed component: {component.name}")

    def remove(self, name: str) -> bool:
        """Drop the record of one component.

        Returns:
            True if a record was removed
        """
        components = self._load()
        if components.pop(name, None) is None:
            return False
        self._save(components)
        return True

    def find_owner(self, path: str) -> InstalledComponent | None:
        """Component that recorded a project-relative path."""
        for component in self._load().values():
            if component.checksum_for(path) is not None:
                return component
        return None
