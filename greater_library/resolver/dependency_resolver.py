"""Dependency resolution for registry components.

Expands requested components into their transitive closure of internal
dependencies with a depth-first walk, orders them so every dependency comes
before its dependents, and collects the external packages they need.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field

from greater_library.errors import DependencyCycleError
from greater_library.errors import MissingComponentError
from greater_library.registry.models import ComponentDependency
from greater_library.registry.models import RegistryComponent
from greater_library.registry.models import RegistryIndex

logger = logging.getLogger(__name__)


@dataclass
class ResolvedComponent:
    """A component in the resolved set.

    Attributes:
        component: Registry entry
        depth: Shallowest depth it was reached at (0 = requested)
        is_direct_request: True if the user asked for it by name
        required_by: Components that depend on it
    """

    component: RegistryComponent
    depth: int
    is_direct_request: bool
    required_by: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.component.name


@dataclass
class PackageConflict:
    """An external package required at different versions."""

    name: str
    versions: dict[str, list[str]]

    @property
    def message(self) -> str:
        parts = "; ".join(f"{version} (by {', '.join(owners)})" for version, owners in self.versions.items())
        return f"Conflicting versions for {self.name}: {parts}"


@dataclass
class ResolutionResult:
    """Outcome of a resolution.

    Attributes:
        components: Resolved components in installation order
        order: Component names in installation order
        npm_dependencies: External runtime packages, deduplicated by name
        npm_dev_dependencies: External dev packages, deduplicated by name
        conflicts: Packages requested at more than one version
        skipped: Components left out because they are already installed
    """

    components: list[ResolvedComponent] = field(default_factory=list)
    order: list[str] = field(default_factory=list)
    npm_dependencies: list[ComponentDependency] = field(default_factory=list)
    npm_dev_dependencies: list[ComponentDependency] = field(default_factory=list)
    conflicts: list[PackageConflict] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def get(self, name: str) -> ResolvedComponent | None:
        for resolved in self.components:
            if resolved.name == name:
                return resolved
        return None


class DependencyResolver:
    """Resolves component names against one registry index.

    Example:
        >>> result = DependencyResolver(index).resolve(["button"])
        >>> result.order
        ['icon', 'button']
    """

    def __init__(self, index: RegistryIndex) -> None:
        self.index = index

    def resolve(
        self,
        requested: Iterable[str],
        skip_installed: Iterable[str] = (),
        max_depth: int | None = None,
    ) -> ResolutionResult:
        """Resolve requested components and their dependencies.

        Args:
            requested: Component names, in the order the user gave them
            skip_installed: Names to leave out (and not walk into)
            max_depth: Stop descending below this depth (None = unlimited)

        Returns:
            ResolutionResult in dependencies-first order

        Raises:
            MissingComponentError: If a requested or required component is unknown
            DependencyCycleError: If internal dependencies form a cycle
        """
        skip = set(skip_installed)
        resolved: dict[str, ResolvedComponent] = {}
        visiting: set[str] = set()
        path: list[str] = []
        packages: dict[str, ComponentDependency] = {}
        dev_packages: dict[str, ComponentDependency] = {}
        package_owners: dict[str, dict[str, list[str]]] = {}
        skipped: list[str] = []

        def collect_packages(component: RegistryComponent) -> None:
            for dep in component.package_dependencies:
                target = dev_packages if dep.dev else packages
                owners = package_owners.setdefault(dep.name, {})
                owners.setdefault(dep.version or "*", []).append(component.name)
                if dep.name not in target:
                    target[dep.name] = dep

        def visit(name: str, depth: int, required_by: str | None) -> None:
            if max_depth is not None and depth > max_depth:
                return

            existing = resolved.get(name)
            if existing is not None:
                if required_by and required_by not in existing.required_by:
                    existing.required_by.append(required_by)
                if required_by is None:
                    existing.is_direct_request = True
                existing.depth = min(existing.depth, depth)
                return

            if name in skip:
                if name not in skipped:
                    skipped.append(name)
                return

            if name in visiting:
                cycle = path[path.index(name) :] + [name]
                raise DependencyCycleError(cycle, ref=self.index.ref)

            component = self.index.components.get(name)
            if component is None:
                raise MissingComponentError(name, required_by=required_by, ref=self.index.ref)

            visiting.add(name)
            path.append(name)

            collect_packages(component)
            for dep_name in component.internal_dependencies:
                visit(dep_name, depth + 1, name)

            visiting.discard(name)
            path.pop()

            # Post-order insertion gives dependencies-first order
            resolved[name] = ResolvedComponent(
                component=component,
                depth=depth,
                is_direct_request=required_by is None,
                required_by=[required_by] if required_by else [],
            )

        for name in dict.fromkeys(requested):
            visit(name, 0, None)

        conflicts = [
            PackageConflict(name=name, versions=versions)
            for name, versions in package_owners.items()
            if len(versions) > 1
        ]
        for conflict in conflicts:
            logger.warning(conflict.message)

        components = list(resolved.values())
        logger.debug(f"Resolved {len(components)} component(s): {', '.join(resolved)}")
        return ResolutionResult(
            components=components,
            order=[c.name for c in components],
            npm_dependencies=list(packages.values()),
            npm_dev_dependencies=list(dev_packages.values()),
            conflicts=conflicts,
            skipped=skipped,
        )


def resolve(
    requested: Iterable[str],
    index: RegistryIndex,
    skip_installed: Iterable[str] = (),
    max_depth: int | None = None,
) -> ResolutionResult:
    """Resolve requested components against an index."""
    return DependencyResolver(index).resolve(requested, skip_installed=skip_installed, max_depth=max_depth)


def get_installation_order(result: ResolutionResult) -> list[str]:
    return list(result.order)


def group_by_type(result: ResolutionResult) -> dict[str, list[ResolvedComponent]]:
    """Group resolved components by registry type, keeping installation order."""
    groups: dict[str, list[ResolvedComponent]] = {}
    for resolved in result.components:
        groups.setdefault(resolved.component.type, []).append(resolved)
    return groups
