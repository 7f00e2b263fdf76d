"""Configuration for greater_library.

Public Interface:
    - GreaterSettings: Tool settings (YAML + GREATER_* environment)
    - load_settings: Load settings with env precedence
    - resolve_ref: Choose the registry ref for a command
    - ComponentConfig: Project components.json model
    - load_component_config / save_component_config: components.json I/O
"""

from .components import ComponentAliases
from .components import ComponentConfig
from .components import alias_to_relative_dir
from .components import load_component_config
from .components import resolve_alias
from .components import save_component_config
from .loader import load_settings
from .loader import resolve_ref
from .settings import GreaterSettings

__all__ = [
    "ComponentAliases",
    "ComponentConfig",
    "GreaterSettings",
    "alias_to_relative_dir",
    "load_component_config",
    "load_settings",
    "resolve_alias",
    "resolve_ref",
    "save_component_config",
]
