"""greater_library: install greater-components registry components.

This is the library layer behind the greater CLI. It fetches components
from the registry repository at a git ref, verifies and rewrites them, and
writes them into a consumer project.

Public Interface:
    Modules:
    - config: Settings and components.json
    - fetch: Cache store, git fetcher and offline planning
    - registry: Registry index models and client
    - resolver: Dependency resolution
    - transform: Import path rewriting
    - install: Installer, diff and doctor
    - security: Path safety, integrity and audit log
    - storage: Paths and JSON persistence
"""

from .errors import GreaterError

__all__ = [
    "GreaterError",
]
