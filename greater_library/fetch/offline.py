"""Offline mode and cache-aware fetch planning.

The installer asks this module, before touching the project, whether the
files it needs can be served at all. In offline mode only cached files
count, which lets an install abort up front instead of half-way through.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Literal

import httpx

from greater_library.config.settings import GreaterSettings
from greater_library.storage.paths import get_registry_cache_dir
from greater_library.utils.repo_url import parse_repository
from greater_library.utils.repo_url import safe_ref_name

from .cache_store import CacheStore

logger = logging.getLogger(__name__)

FetchStrategy = Literal["network", "cache", "mixed", "unavailable"]


@dataclass
class FetchStrategyResult:
    """Plan for serving a set of files.

    Attributes:
        strategy: network (download all), cache (serve all from cache),
            mixed (cache what is cached, download the rest), unavailable
        is_offline: True when the network is disabled or unreachable
        cached_files: Requested files present in the cache
        uncached_files: Requested files missing from the cache
    """

    strategy: FetchStrategy
    is_offline: bool
    cached_files: list[str] = field(default_factory=list)
    uncached_files: list[str] = field(default_factory=list)


@dataclass
class CacheStatus:
    """What the cache holds for one ref."""

    ref: str
    cache_dir: Path
    cached_files: list[str]
    has_registry_index: bool


class OfflineManager:
    """Tracks offline mode and answers cache-coverage questions."""

    def __init__(
        self,
        cache: CacheStore,
        settings: GreaterSettings | None = None,
        client: httpx.AsyncClient | None = None,
        registry_cache_dir: Path | None = None,
        offline: bool = False,
    ) -> None:
        self.cache = cache
        self.settings = settings or GreaterSettings()
        self.registry_cache_dir = registry_cache_dir or get_registry_cache_dir()
        self._client = client
        self._offline = offline
        self._last_check: float | None = None
        self._last_result = False

    @property
    def is_offline(self) -> bool:
        return self._offline

    def enable(self) -> None:
        """Turn on offline mode: only cached content is used."""
        self._offline = True
        logger.info("Offline mode enabled - using cached content only")

    def disable(self) -> None:
        self._offline = False

    async def is_network_available(self, force: bool = False) -> bool:
        """Probe the registry host.

        The result is reused for network_check_interval seconds unless force
        is set. Always False in offline mode.
        """
        if self._offline:
            return False

        now = time.monotonic()
        if (
            not force
            and self._last_check is not None
            and now - self._last_check < self.settings.network_check_interval
        ):
            return self._last_result

        url = parse_repository(self.settings.repository).base_url
        try:
            if self._client is not None:
                response = await self._client.head(url, timeout=5.0)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.head(url, timeout=5.0)
            available = response.status_code < 400
        except httpx.HTTPError as e:
            logger.debug(f"Network probe failed: {e}")
            available = False

        self._last_check = now
        self._last_result = available
        logger.debug(f"Network available: {available}")
        return available

    def can_serve_from_cache(self, ref: str, file_paths: list[str]) -> bool:
        return all(self.cache.is_cached(ref, path) for path in file_paths)

    def get_missing_from_cache(self, ref: str, file_paths: list[str]) -> list[str]:
        """Requested files not present in the cache, in request order."""
        return [path for path in file_paths if not self.cache.is_cached(ref, path)]

    async def determine_fetch_strategy(
        self,
        ref: str,
        file_paths: list[str],
        prefer_cache: bool = True,
        allow_missing: bool = False,
    ) -> FetchStrategyResult:
        """Decide how a set of files will be served.

        Args:
            ref: Resolved ref
            file_paths: Registry paths
            prefer_cache: Serve cached files from the cache when online
            allow_missing: When offline, accept a partially cached set

        Returns:
            FetchStrategyResult
        """
        cached = [path for path in file_paths if self.cache.is_cached(ref, path)]
        uncached = [path for path in file_paths if path not in cached]
        offline = not await self.is_network_available()

        if offline:
            if not uncached or (cached and allow_missing):
                strategy: FetchStrategy = "cache"
            else:
                strategy = "unavailable"
        elif not cached or not prefer_cache:
            strategy = "network"
        elif not uncached:
            strategy = "cache"
        else:
            strategy = "mixed"

        return FetchStrategyResult(
            strategy=strategy,
            is_offline=offline,
            cached_files=cached,
            uncached_files=uncached,
        )

    def get_cache_status(self, ref: str) -> CacheStatus:
        registry_file = self.registry_cache_dir / f"{safe_ref_name(ref)}.json"
        return CacheStatus(
            ref=ref,
            cache_dir=self.cache.get_cache_dir(ref),
            cached_files=self.cache.list_cached_files(ref),
            has_registry_index=registry_file.exists(),
        )

    def get_cached_refs(self) -> list[str]:
        return self.cache.list_cached_refs()

    def offline_warning(self) -> str | None:
        """Message shown to the user while offline, or None when online."""
        if not self._offline:
            return None
        return "Running in offline mode - only cached components are available"
