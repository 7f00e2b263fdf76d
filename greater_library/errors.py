"""Error taxonomy for the greater component installer.

Every failure the library raises on purpose derives from GreaterError so the
CLI can report it once at the command boundary.
"""

from __future__ import annotations

from pathlib import Path


class GreaterError(Exception):
    """Base class for all installer errors."""


class PathTraversalError(GreaterError):
    """Raised when a path would escape its sanctioned directory."""

    def __init__(self, message: str, path: str | None = None, base_dir: Path | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.base_dir = base_dir


class IntegrityError(GreaterError):
    """Raised when fetched content does not match its registry checksum.

    Attributes:
        file_path: Registry path of the first mismatching file
        expected: Checksum recorded in the registry
        actual: Checksum of the fetched bytes
        mismatches: All mismatching files as (path, expected, actual) tuples
    """

    def __init__(
        self,
        message: str,
        file_path: str,
        expected: str | None = None,
        actual: str | None = None,
        mismatches: list[tuple[str, str | None, str]] | None = None,
    ) -> None:
        super().__init__(message)
        self.file_path = file_path
        self.expected = expected
        self.actual = actual
        self.mismatches = mismatches or [(file_path, expected, actual or "")]


class NetworkError(GreaterError):
    """Raised when content cannot be retrieved from the remote registry."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url

    @property
    def retryable(self) -> bool:
        """Whether a later attempt could succeed."""
        if self.status_code is None:
            return True
        if self.status_code == 429:
            return True
        return self.status_code >= 500


class RegistryIndexError(GreaterError):
    """Raised for a malformed or unavailable registry index."""

    def __init__(self, message: str, ref: str | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.ref = ref
        self.cause = cause


class MissingComponentError(RegistryIndexError):
    """Raised when a requested or required component is not in the index."""

    def __init__(self, name: str, required_by: str | None = None, ref: str | None = None) -> None:
        origin = f"required by {required_by}" if required_by else "direct request"
        super().__init__(f"Component not found in registry: {name} ({origin})", ref=ref)
        self.name = name
        self.required_by = required_by


class DependencyCycleError(RegistryIndexError):
    """Raised when internal component dependencies form a cycle."""

    def __init__(self, cycle: list[str], ref: str | None = None) -> None:
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}", ref=ref)
        self.cycle = cycle


class CacheError(GreaterError):
    """Raised when the local cache cannot serve or store content."""

    def __init__(self, message: str, cache_path: Path | str | None = None, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.cache_path = cache_path
        self.missing = missing or []


class ConfigError(GreaterError):
    """Raised when components.json is missing or invalid."""

    def __init__(self, message: str, config_path: Path | None = None) -> None:
        super().__init__(message)
        self.config_path = config_path


class WriteError(GreaterError):
    """Raised when an installed file or its record cannot be written."""

    def __init__(self, message: str, path: str | None = None, component: str | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.component = component
