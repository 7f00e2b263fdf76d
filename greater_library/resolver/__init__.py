"""Component dependency resolution."""

from .dependency_resolver import DependencyResolver
from .dependency_resolver import PackageConflict
from .dependency_resolver import ResolutionResult
from .dependency_resolver import ResolvedComponent
from .dependency_resolver import get_installation_order
from .dependency_resolver import group_by_type
from .dependency_resolver import resolve

__all__ = [
    "DependencyResolver",
    "PackageConflict",
    "ResolutionResult",
    "ResolvedComponent",
    "get_installation_order",
    "group_by_type",
    "resolve",
]
