"""Configuration loading for the greater CLI.

This module handles loading tool settings from a YAML file and environment
variables, and choosing the registry ref for a command.

Contract:
- Inputs: Config file paths, environment variables
- Outputs: GreaterSettings objects
- Side Effects: Creates default config file if missing
"""

import logging
import os
from pathlib import Path

import yaml

from ..storage.paths import get_config_dir
from .components import ComponentConfig
from .settings import GreaterSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = """# greater CLI configuration
# Per-project aliases live in components.json, not here

# Registry repository on GitHub (owner/name)
repository: "equaltoai/greater-components"

# Ref used when a command and components.json both leave it unset
# default_ref: "greater-v4.2.0"

# Network behavior
fetch_concurrency: 4
max_retries: 3
request_timeout: 30

# Registry index cache lifetime for branch refs, in seconds
registry_ttl_seconds: 3600

log_level: "warning"
"""


def get_config_path() -> Path:
    """Get path to config file.

    Returns:
        Path to config.yaml in config directory
    """
    return get_config_dir() / "config.yaml"


def create_default_config() -> None:
    """Create default config file if it doesn't exist."""
    config_path = get_config_path()

    if config_path.exists():
        logger.debug(f"Config file already exists: {config_path}")
        return

    config_path.write_text(DEFAULT_CONFIG, encoding="utf-8")
    logger.info(f"Created default config: {config_path}")


def load_settings(config_path: Path | None = None) -> GreaterSettings:
    """Load CLI settings from YAML and environment.

    Environment variables take precedence over YAML settings.
    Variables are prefixed with GREATER_ (e.g., GREATER_FETCH_CONCURRENCY).

    Args:
        config_path: Optional config file path (default: config.yaml in config dir)

    Returns:
        Validated settings
    """
    if config_path is None:
        config_path = get_config_path()
        if not config_path.exists():
            create_default_config()

    yaml_settings = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                yaml_settings = yaml.safe_load(f) or {}
            logger.debug(f"Loaded config from {config_path}")
        except Exception as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            logger.info("Using default settings and environment variables")

    # defaults < YAML < env: drop YAML keys that have an env override
    filtered_yaml = {}
    for key, value in yaml_settings.items():
        env_key = f"GREATER_{key.upper()}"
        if env_key not in os.environ:
            filtered_yaml[key] = value

    settings = GreaterSettings(**filtered_yaml)
    logger.debug(
        f"Settings loaded: repository={settings.repository}, default_ref={settings.default_ref}, "
        f"concurrency={settings.fetch_concurrency}"
    )
    return settings


def resolve_ref(explicit: str | None, config: ComponentConfig | None, settings: GreaterSettings) -> str:
    """Choose the registry ref for a command.

    Precedence: explicit flag, then the ref pinned in components.json
    (ignoring "latest"), then the settings default.

    Args:
        explicit: Ref given on the command line
        config: Project configuration, if one exists
        settings: Tool settings

    Returns:
        Ref to fetch from
    """
    if explicit:
        return explicit
    if config is not None and config.ref and config.ref != "latest":
        return config.ref
    return settings.default_ref
