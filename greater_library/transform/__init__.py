"""Import and file path transformation for installed components."""

from .imports import PathMapping
from .imports import TransformResult
from .imports import build_path_mappings
from .imports import detect_file_kind
from .imports import get_transform_summary
from .imports import has_greater_imports
from .imports import transform_imports
from .imports import transform_path

__all__ = [
    "PathMapping",
    "TransformResult",
    "build_path_mappings",
    "detect_file_kind",
    "get_transform_summary",
    "has_greater_imports",
    "transform_imports",
    "transform_path",
]
