"""Registry index client.

Fetches registry/index.json at a ref, validates it and caches it under
$GREATER_HOME/registry. Indexes of immutable refs are cached forever;
indexes of floating refs are re-fetched once older than the TTL.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from greater_library.errors import NetworkError
from greater_library.errors import RegistryIndexError
from greater_library.fetch.git_fetch import GitFetcher
from greater_library.fetch.git_fetch import is_immutable_ref
from greater_library.fetch.offline import OfflineManager
from greater_library.storage.json_store import load_json
from greater_library.storage.json_store import save_json
from greater_library.storage.paths import get_registry_cache_dir
from greater_library.utils.repo_url import safe_ref_name

from .models import RegistryComponent
from .models import RegistryIndex

logger = logging.getLogger(__name__)

REGISTRY_INDEX_PATH = "registry/index.json"
DEFAULT_TTL_SECONDS = 60 * 60


@dataclass
class CachedIndexInfo:
    """Metadata of a cached registry index."""

    ref: str
    fetched_at: datetime
    ttl_seconds: int
    immutable: bool

    @property
    def expired(self) -> bool:
        if self.immutable:
            return False
        age = (datetime.now(UTC) - self.fetched_at).total_seconds()
        return age >= self.ttl_seconds

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "ref": self.ref,
            "fetchedAt": self.fetched_at.isoformat(),
            "ttlSeconds": self.ttl_seconds,
            "immutable": self.immutable,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CachedIndexInfo:
        """Load from dictionary."""
        fetched_at = datetime.fromisoformat(data["fetchedAt"])
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=UTC)
        return cls(
            ref=data["ref"],
            fetched_at=fetched_at,
            ttl_seconds=int(data.get("ttlSeconds", DEFAULT_TTL_SECONDS)),
            immutable=bool(data.get("immutable", False)),
        )


class RegistryIndexClient:
    """Fetches and caches registry indexes."""

    def __init__(
        self,
        fetcher: GitFetcher,
        offline: OfflineManager | None = None,
        cache_dir: Path | None = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        """Initialize registry index client.

        Args:
            fetcher: Fetcher used to download the index
            offline: Offline manager; in offline mode only cached indexes are used
            cache_dir: Index cache directory. Defaults to $GREATER_HOME/registry
            ttl_seconds: Cache lifetime for floating refs
        """
        self.fetcher = fetcher
        self.offline = offline
        self.cache_dir = cache_dir or get_registry_cache_dir()
        self.ttl_seconds = ttl_seconds

    def _cache_path(self, ref: str) -> Path:
        return self.cache_dir / f"{safe_ref_name(ref)}.json"

    def _metadata_path(self, ref: str) -> Path:
        return self.cache_dir / f"{safe_ref_name(ref)}.meta.json"

    def _read_metadata(self, ref: str) -> CachedIndexInfo | None:
        data = load_json(self._metadata_path(ref))
        if not data:
            return None
        try:
            return CachedIndexInfo.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Ignoring invalid registry cache metadata for {ref}: {e}")
            return None

    def _is_cache_valid(self, ref: str, ttl_seconds: int) -> bool:
        if not self._cache_path(ref).exists():
            return False
        metadata = self._read_metadata(ref)
        if metadata is None:
            return False
        metadata.ttl_seconds = ttl_seconds
        return not metadata.expired

    def _read_cache(self, ref: str) -> RegistryIndex | None:
        data = load_json(self._cache_path(ref))
        if data is None:
            return None
        try:
            return RegistryIndex.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Cached registry index for {ref} is invalid, ignoring: {e}")
            return None

    def _write_cache(self, ref: str, index: RegistryIndex, ttl_seconds: int) -> None:
        metadata = CachedIndexInfo(
            ref=ref,
            fetched_at=datetime.now(UTC),
            ttl_seconds=ttl_seconds,
            immutable=is_immutable_ref(ref),
        )
        save_json(self._cache_path(ref), index.model_dump(by_alias=True, mode="json"))
        save_json(self._metadata_path(ref), metadata.to_dict())

    async def fetch_registry_index(
        self,
        ref: str,
        skip_cache: bool = False,
        force_refresh: bool = False,
        ttl_seconds: int | None = None,
    ) -> RegistryIndex:
        """Fetch and validate the registry index for a ref.

        Args:
            ref: Tag, branch or commit SHA
            skip_cache: Neither read nor write the index cache
            force_refresh: Re-fetch even if the cached copy is valid
            ttl_seconds: Cache lifetime for floating refs (default from client)

        Returns:
            Validated registry index

        Raises:
            RegistryIndexError: If the index cannot be fetched, parsed or validated
        """
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds

        # A local checkout is always read fresh
        if self.fetcher.local_repo_root is not None:
            skip_cache = True
        elif self.offline is not None and self.offline.is_offline:
            cached = self._read_cache(ref)
            if cached is None:
                raise RegistryIndexError(f"Registry index for {ref} is not cached and offline mode is enabled", ref=ref)
            if not self._is_cache_valid(ref, ttl):
                logger.warning(f"Using stale cached registry index for {ref} (offline mode)")
            return cached

        if not skip_cache and not force_refresh and self._is_cache_valid(ref, ttl):
            cached = self._read_cache(ref)
            if cached is not None:
                logger.debug(f"Using cached registry index for {ref}")
                return cached

        try:
            content = await self.fetcher.fetch_from_git_tag(ref, REGISTRY_INDEX_PATH, skip_cache=True)
        except NetworkError as e:
            raise RegistryIndexError(f"Failed to fetch registry index for ref {ref}: {e}", ref=ref, cause=e) from e

        try:
            data = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RegistryIndexError(f"Failed to parse registry index JSON for ref {ref}", ref=ref, cause=e) from e

        try:
            index = RegistryIndex.model_validate(data)
        except ValidationError as e:
            raise RegistryIndexError(f"Invalid registry index schema for ref {ref}: {e}", ref=ref, cause=e) from e

        logger.info(f"Fetched registry index for {ref} ({len(index.components)} components)")

        if not skip_cache:
            try:
                self._write_cache(ref, index, ttl)
            except RuntimeError as e:
                logger.warning(f"Failed to cache registry index for {ref}: {e}")

        return index

    def clear_registry_cache(self, ref: str) -> bool:
        """Remove the cached index of one ref.

        Returns:
            True if anything was removed
        """
        removed = False
        for path in (self._cache_path(ref), self._metadata_path(ref)):
            if path.exists():
                path.unlink()
                removed = True
        return removed

    def clear_all_registry_cache(self) -> None:
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
            logger.info(f"Cleared registry cache at {self.cache_dir}")

    def list_cached_indexes(self) -> list[CachedIndexInfo]:
        """Metadata of every cached index, sorted by ref."""
        if not self.cache_dir.exists():
            return []
        infos = []
        for meta_file in sorted(self.cache_dir.glob("*.meta.json")):
            data = load_json(meta_file)
            if not data:
                continue
            try:
                infos.append(CachedIndexInfo.from_dict(data))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Failed to load registry cache metadata from {meta_file}: {e}")
        return sorted(infos, key=lambda info: info.ref)


def get_component(index: RegistryIndex, name: str) -> RegistryComponent | None:
    return index.components.get(name)


def has_component(index: RegistryIndex, name: str) -> bool:
    return name in index.components


def get_component_checksums(index: RegistryIndex, name: str) -> dict[str, str] | None:
    """Registry path to checksum for a component, or None if it is unknown."""
    component = index.components.get(name)
    if component is None:
        return None
    return {file.path: file.checksum for file in component.files}


def get_component_file_paths(index: RegistryIndex, name: str) -> list[str] | None:
    """Registry paths of a component, or None if it is unknown."""
    component = index.components.get(name)
    if component is None:
        return None
    return [file.path for file in component.files]


def get_all_component_names(index: RegistryIndex) -> list[str]:
    return sorted(index.components)
