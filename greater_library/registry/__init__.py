"""Component registry index: models, client and lookups."""

from .index_client import REGISTRY_INDEX_PATH
from .index_client import RegistryIndexClient
from .index_client import get_all_component_names
from .index_client import get_component
from .index_client import get_component_checksums
from .index_client import get_component_file_paths
from .index_client import has_component
from .models import ComponentDependency
from .models import FileChecksum
from .models import RegistryComponent
from .models import RegistryIndex

__all__ = [
    "REGISTRY_INDEX_PATH",
    "ComponentDependency",
    "FileChecksum",
    "RegistryComponent",
    "RegistryIndex",
    "RegistryIndexClient",
    "get_all_component_names",
    "get_component",
    "get_component_checksums",
    "get_component_file_paths",
    "has_component",
]
