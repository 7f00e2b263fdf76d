"""Path resolution for greater CLI storage locations.

This module provides path resolution based on the GREATER_HOME environment
variable, with the cache, registry and config directories nested inside it.

Contract:
- Inputs: Environment variables (GREATER_HOME and per-directory overrides)
- Outputs: Resolved Path objects
- Side Effects: Creates directories if they don't exist
"""

import os
from pathlib import Path

LOCAL_REPO_ENV = "GREATER_CLI_LOCAL_REPO_ROOT"
PROJECT_STATE_DIRNAME = ".greater-components"


def get_home_dir() -> Path:
    """Get GREATER_HOME from environment.

    Returns:
        Path to root directory (default: ~/.greater-components)
    """
    root = os.environ.get("GREATER_HOME", "~/.greater-components")
    return Path(root).expanduser().resolve()


def get_cache_dir() -> Path:
    """Get file content cache directory.

    Returns:
        Path to cache directory ($GREATER_HOME/cache)

    Environment Variables:
        GREATER_CACHE_DIR: Override cache directory location
        (falls back to $GREATER_HOME/cache if not set)
    """
    cache_dir: Path = get_home_dir() / "cache"

    env_override: str | None = os.environ.get("GREATER_CACHE_DIR")
    if env_override is not None:
        cache_dir = Path(env_override).expanduser().resolve()

    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def get_registry_cache_dir() -> Path:
    """Get registry index cache directory.

    Returns:
        Path to registry cache ($GREATER_HOME/registry)
    """
    registry_dir = get_home_dir() / "registry"
    registry_dir.mkdir(parents=True, exist_ok=True)
    return registry_dir


def get_config_dir() -> Path:
    """Get configuration directory.

    Returns:
        Path to config directory ($GREATER_HOME/config)

    Example:
        >>> config_dir = get_config_dir()
        >>> assert config_dir.name == "config" or "GREATER_CONFIG_DIR" in os.environ
    """
    config_dir: Path = get_home_dir() / "config"

    env_override: str | None = os.environ.get("GREATER_CONFIG_DIR")
    if env_override is not None:
        config_dir = Path(env_override).expanduser().resolve()

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_audit_log_path() -> Path:
    """Get audit log file path.

    Returns:
        Path to $GREATER_HOME/audit.log (parent created)
    """
    home = get_home_dir()
    home.mkdir(parents=True, exist_ok=True)
    return home / "audit.log"


def get_local_repo_root() -> Path | None:
    """Get local repository checkout used instead of the network.

    Returns:
        Resolved path from GREATER_CLI_LOCAL_REPO_ROOT, or None when unset
    """
    root = os.environ.get(LOCAL_REPO_ENV)
    if not root:
        return None
    return Path(root).expanduser().resolve()


def get_project_state_dir(project_root: Path) -> Path:
    """Get per-project state directory.

    Args:
        project_root: Consumer project root

    Returns:
        Path to <project_root>/.greater-components (not created)
    """
    return project_root / PROJECT_STATE_DIRNAME
