"""Registry index models.

The registry index (registry/index.json) lists every installable component
with its files, their checksums and its dependencies. It is validated with
these models before anything in it is trusted.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from greater_library.models.base import CamelCaseModel

CHECKSUM_REGEX = r"^sha256-[A-Za-z0-9+/]+=*$"


class FileChecksum(CamelCaseModel):
    """A file of a component and its expected checksum."""

    path: str
    checksum: str = Field(pattern=CHECKSUM_REGEX)
    size: int | None = Field(default=None, gt=0)


class ComponentDependency(CamelCaseModel):
    """Dependency of a component.

    A bare string or an entry without a version names another registry
    component. An entry with a version is an external npm package.
    """

    name: str
    version: str | None = None
    dev: bool = False

    @model_validator(mode="before")
    @classmethod
    def accept_bare_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        return data

    @property
    def is_external(self) -> bool:
        return self.version is not None


class RegistryComponent(CamelCaseModel):
    """One installable component."""

    name: str
    version: str = "0.0.0"
    type: str = "primitive"
    description: str = ""
    files: list[FileChecksum] = Field(default_factory=list)
    dependencies: list[ComponentDependency] = Field(default_factory=list)
    peer_dependencies: list[ComponentDependency] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @property
    def internal_dependencies(self) -> list[str]:
        """Names of registry components this one depends on, deduplicated."""
        return list(dict.fromkeys(dep.name for dep in self.dependencies if not dep.is_external))

    @property
    def package_dependencies(self) -> list[ComponentDependency]:
        """External packages, from versioned dependencies and peer dependencies."""
        external = [dep for dep in self.dependencies if dep.is_external]
        peers = [
            dep if dep.version is not None else dep.model_copy(update={"version": "*"})
            for dep in self.peer_dependencies
        ]
        return external + peers


class RegistryIndex(CamelCaseModel):
    """Parsed registry/index.json.

    components is accepted as an object keyed by name or as a list; either
    way it is stored keyed by name.
    """

    version: str = "1"
    ref: str
    generated_at: str | None = None
    components: dict[str, RegistryComponent] = Field(default_factory=dict)
    checksums: dict[str, str] = Field(default_factory=dict)

    @field_validator("components", mode="before")
    @classmethod
    def key_components_by_name(cls, value: Any) -> Any:
        if isinstance(value, list):
            keyed: dict[str, Any] = {}
            for entry in value:
                name = entry.get("name") if isinstance(entry, dict) else None
                if not name:
                    raise ValueError("component entries in a list must have a name")
                if name in keyed:
                    raise ValueError(f"duplicate component name: {name}")
                keyed[name] = entry
            return keyed
        if isinstance(value, dict):
            return {
                key: ({"name": key, **entry} if isinstance(entry, dict) and "name" not in entry else entry)
                for key, entry in value.items()
            }
        return value
