"""On-disk cache of fetched registry files.

Each file lives at <root>/<ref>/<registry path>. Entries are only written for
resolved refs (commit SHAs or stable tags), so existence is the only
freshness signal and entries are never invalidated automatically.
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from pathlib import Path

from greater_library.errors import CacheError
from greater_library.errors import PathTraversalError
from greater_library.security.path_safety import resolve_path_within_dir
from greater_library.security.path_safety import sanitize_relative_path
from greater_library.storage.paths import get_cache_dir

logger = logging.getLogger(__name__)


class CacheStore:
    """File content cache keyed by (ref, path)."""

    def __init__(self, root: Path | None = None) -> None:
        """Initialize cache store.

        Args:
            root: Cache root directory. Defaults to $GREATER_HOME/cache
        """
        self.root = Path(root).resolve() if root else get_cache_dir()

    def get_cache_dir(self, ref: str) -> Path:
        """Directory holding all cached files of a ref.

        Raises:
            CacheError: If the ref is not usable as a directory name
        """
        try:
            return resolve_path_within_dir(self.root, sanitize_relative_path(ref))
        except PathTraversalError as e:
            raise CacheError(f"Invalid ref for cache: {ref}", cache_path=self.root) from e

    def get_cached_file_path(self, ref: str, file_path: str) -> Path:
        """Cache location of a registry file.

        Raises:
            PathTraversalError: If file_path would escape the ref directory
        """
        return resolve_path_within_dir(self.get_cache_dir(ref), file_path)

    def is_cached(self, ref: str, file_path: str) -> bool:
        try:
            return self.get_cached_file_path(ref, file_path).is_file()
        except (PathTraversalError, CacheError):
            return False

    def read_from_cache(self, ref: str, file_path: str) -> bytes:
        """Read a cached file.

        Raises:
            CacheError: If the file is not cached or cannot be read
        """
        cached_path = self.get_cached_file_path(ref, file_path)
        if not cached_path.is_file():
            raise CacheError(f"File not found in cache: {file_path}", cache_path=cached_path)
        try:
            return cached_path.read_bytes()
        except OSError as e:
            raise CacheError(f"Failed to read cached file {file_path}: {e}", cache_path=cached_path) from e

    def write_to_cache(self, ref: str, file_path: str, content: bytes) -> Path:
        """Store a file in the cache.

        Writes go to a unique temp file and are moved into place with
        os.replace, so two writers racing on the same key both succeed.

        Returns:
            Path of the cached file

        Raises:
            CacheError: If the file cannot be written
        """
        cached_path = self.get_cached_file_path(ref, file_path)
        temp_path = cached_path.with_name(f".{cached_path.name}.{uuid.uuid4().hex}.tmp")
        try:
            cached_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(content)
            os.replace(temp_path, cached_path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise CacheError(f"Failed to write {file_path} to cache: {e}", cache_path=cached_path) from e

        logger.debug(f"Cached {file_path} at {ref}")
        return cached_path

    def clear_cache(self, ref: str) -> bool:
        """Remove every cached file of a ref.

        Returns:
            True if anything was removed
        """
        cache_dir = self.get_cache_dir(ref)
        if not cache_dir.exists():
            return False
        shutil.rmtree(cache_dir)
        logger.info(f"Cleared cache for {ref}")
        return True

    def clear_all_cache(self) -> None:
        """Remove the whole cache directory."""
        if self.root.exists():
            shutil.rmtree(self.root)
            logger.info(f"Cleared cache at {self.root}")

    def list_cached_refs(self) -> list[str]:
        """Refs with a cache directory, sorted."""
        if not self.root.exists():
            return []
        return sorted(entry.name for entry in self.root.iterdir() if entry.is_dir())

    def list_cached_files(self, ref: str) -> list[str]:
        """Registry paths cached for a ref, sorted, temp files excluded."""
        cache_dir = self.get_cache_dir(ref)
        if not cache_dir.exists():
            return []
        return sorted(
            path.relative_to(cache_dir).as_posix()
            for path in cache_dir.rglob("*")
            if path.is_file() and not path.name.endswith(".tmp")
        )
