"""JSON persistence with atomic writes.

Contract:
- Inputs: Target paths and JSON-serializable data
- Outputs: Parsed JSON data or None
- Side Effects: Writes files via temp file + rename
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def save_json(path: Path, data: Any) -> None:
    """Save data as JSON file atomically.

    Args:
        path: Target file path
        data: JSON-serializable data

    Raises:
        RuntimeError: If the file cannot be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Unique temp name so concurrent writers never share a temp file
    temp_path = path.with_name(f".{path.name}.{os.getpid()}.{id(data)}.tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str, ensure_ascii=False)
            f.write("\n")
        os.replace(temp_path, path)
        logger.debug(f"Saved JSON to {path}")
    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        raise RuntimeError(f"Failed to save JSON to {path}: {e}") from e


def load_json(path: Path) -> Any | None:
    """Load JSON file or return None if not found or unreadable.

    Args:
        path: File path to load

    Returns:
        Parsed JSON, or None if the file doesn't exist or is invalid
    """
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except Exception as e:
        logger.warning(f"Failed to load JSON from {path}: {e}")
        return None
