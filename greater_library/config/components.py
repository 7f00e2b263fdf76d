"""Consumer project configuration (components.json).

Contract:
- Inputs: Project root directory
- Outputs: Validated ComponentConfig objects
- Side Effects: save_component_config writes components.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError

from greater_library.errors import ConfigError
from greater_library.models.base import CamelCaseModel
from greater_library.storage.json_store import save_json

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "components.json"
SCHEMA_URL = "https://greater.components.dev/schema.json"

# SvelteKit alias prefixes and the directory they stand for
ALIAS_ROOTS = {
    "$lib": "src/lib",
}


class ComponentAliases(CamelCaseModel):
    """Alias for each registry area, as written in the consumer's imports.

    Extra alias keys are kept so newer registries can add areas.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    lib: str = "$lib"
    components: str = "$lib/components"
    hooks: str = "$lib/primitives"
    greater: str = "$lib/greater"
    ui: str = "$lib/components/ui"
    utils: str = "$lib/utils"

    def as_dict(self) -> dict[str, str]:
        """All aliases including extra keys."""
        return {key: str(value) for key, value in self.model_dump().items()}


class ComponentConfig(CamelCaseModel):
    """Contents of components.json.

    Attributes:
        style: Visual style chosen at init
        ref: Registry ref pinned for this project ("latest" means unpinned)
        aliases: Import aliases per registry area
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    schema_url: str = Field(default=SCHEMA_URL, alias="$schema")
    style: str = "default"
    ref: str | None = None
    aliases: ComponentAliases = Field(default_factory=ComponentAliases)


def get_component_config_path(project_root: Path) -> Path:
    """Path of components.json for a project."""
    return project_root / CONFIG_FILENAME


def load_component_config(project_root: Path) -> ComponentConfig | None:
    """Read components.json.

    Args:
        project_root: Consumer project root

    Returns:
        Parsed config, or None when the project has no components.json

    Raises:
        ConfigError: If the file exists but is not valid
    """
    path = get_component_config_path(project_root)
    if not path.exists():
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ComponentConfig.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigError(f"Failed to read config {path}: {e}", config_path=path) from e


def save_component_config(config: ComponentConfig, project_root: Path) -> Path:
    """Write components.json.

    Returns:
        Path that was written
    """
    path = get_component_config_path(project_root)
    save_json(path, config.model_dump(by_alias=True, exclude_none=True, mode="json"))
    logger.info(f"Wrote {path}")
    return path


def alias_to_relative_dir(alias: str) -> str:
    """Map an import alias to a project-relative directory.

    "$lib/components" becomes "src/lib/components"; aliases without a known
    prefix are already project-relative paths.

    Example:
        >>> alias_to_relative_dir("$lib/components/ui")
        'src/lib/components/ui'
    """
    for prefix, directory in ALIAS_ROOTS.items():
        if alias == prefix or alias.startswith(prefix + "/"):
            return directory + alias[len(prefix) :]
    return alias.removeprefix("./")


def resolve_alias(alias: str, project_root: Path) -> Path:
    """Map an import alias to an absolute directory in the project (not created)."""
    return (project_root / alias_to_relative_dir(alias)).resolve()
