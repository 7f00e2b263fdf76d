"""Storage module for greater_library.

Public Interface:
    - save_json: Save data with atomic write
    - load_json: Load data, None when missing or invalid
    - get_home_dir: Get GREATER_HOME
    - get_cache_dir: Get file content cache directory
    - get_registry_cache_dir: Get registry index cache directory
    - get_config_dir: Get config directory
    - get_audit_log_path: Get audit log file
    - get_local_repo_root: Get local checkout override
    - get_project_state_dir: Get per-project state directory
"""

from .json_store import load_json
from .json_store import save_json
from .paths import get_audit_log_path
from .paths import get_cache_dir
from .paths import get_config_dir
from .paths import get_home_dir
from .paths import get_local_repo_root
from .paths import get_project_state_dir
from .paths import get_registry_cache_dir

__all__ = [
    "save_json",
    "load_json",
    "get_home_dir",
    "get_cache_dir",
    "get_registry_cache_dir",
    "get_config_dir",
    "get_audit_log_path",
    "get_local_repo_root",
    "get_project_state_dir",
]
