"""Fetch registry files at a git ref.

Files are read from the local cache first, then downloaded from the
repository's raw file endpoint with retry and exponential backoff. Floating
refs (branches) are resolved to a commit SHA with git ls-remote before any
cache access so a moved branch is never served stale content.

Setting GREATER_CLI_LOCAL_REPO_ROOT serves every file from a local checkout
instead, bypassing both the network and the cache.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

import httpx
from git.cmd import Git
from git.exc import GitCommandError

from greater_library.config.settings import GreaterSettings
from greater_library.errors import CacheError
from greater_library.errors import GreaterError
from greater_library.errors import NetworkError
from greater_library.security.path_safety import resolve_path_within_dir
from greater_library.security.path_safety import sanitize_relative_path
from greater_library.storage.paths import get_local_repo_root
from greater_library.utils.repo_url import RepoLocation
from greater_library.utils.repo_url import parse_repository
from greater_library.utils.repo_url import validate_https_url

from .cache_store import CacheStore

logger = logging.getLogger(__name__)

COMMIT_SHA_PATTERN = re.compile(r"^[0-9a-f]{7,40}$")
# v1.2.3, 1.2.3, greater-v1.2.3, name@1.2.3, with optional -rc.1 / +build suffix
STABLE_TAG_PATTERN = re.compile(
    r"^(?:[A-Za-z0-9][A-Za-z0-9._-]*(?:-|@))?v?\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)


def is_commit_sha(ref: str) -> bool:
    return bool(COMMIT_SHA_PATTERN.match(ref))


def is_immutable_ref(ref: str) -> bool:
    """Whether a ref can never move (commit SHA or stable version tag).

    Example:
        >>> is_immutable_ref("greater-v4.2.0")
        True
        >>> is_immutable_ref("main")
        False
    """
    return is_commit_sha(ref) or bool(STABLE_TAG_PATTERN.match(ref))


@dataclass
class FetchBatchResult:
    """Outcome of fetching several files at one ref.

    Attributes:
        ref: Ref the files were fetched at (resolved)
        contents: Registry path to bytes for every successful fetch
        failures: Registry path to the error for every failed fetch
    """

    ref: str
    contents: dict[str, bytes] = field(default_factory=dict)
    failures: dict[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise one NetworkError naming every failed file.

        Raises:
            NetworkError: If any file failed
        """
        if self.ok:
            return
        details = ", ".join(f"{path}: {error}" for path, error in self.failures.items())
        raise NetworkError(f"Failed to fetch {len(self.failures)} file(s) at {self.ref}: {details}")


class GitFetcher:
    """Cache-first file fetcher for the component registry repository."""

    def __init__(
        self,
        cache: CacheStore,
        settings: GreaterSettings | None = None,
        client: httpx.AsyncClient | None = None,
        local_repo_root: Path | None = None,
    ) -> None:
        """Initialize fetcher.

        Args:
            cache: Cache store for fetched files
            settings: Network settings (defaults from environment)
            client: HTTP client to use. One is created on first use if omitted
            local_repo_root: Local checkout to read from. Defaults to
                GREATER_CLI_LOCAL_REPO_ROOT when set
        """
        self.cache = cache
        self.settings = settings or GreaterSettings()
        self.repo: RepoLocation = parse_repository(self.settings.repository)
        self._client = client
        self._owns_client = client is None
        self._local_repo_root = local_repo_root
        self._resolved_refs: dict[str, str] = {}

    async def __aenter__(self) -> GitFetcher:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.request_timeout,
                follow_redirects=True,
            )
        return self._client

    @property
    def local_repo_root(self) -> Path | None:
        return self._local_repo_root or get_local_repo_root()

    # Ref resolution

    async def resolve_ref_for_fetch(self, ref: str) -> str:
        """Resolve a ref to the form files are fetched and cached under.

        Immutable refs are returned unchanged. Floating refs are resolved to a
        commit SHA via git ls-remote; results are memoized per fetcher.

        Args:
            ref: Tag, branch or commit SHA

        Returns:
            Commit SHA for floating refs, ref itself otherwise

        Raises:
            NetworkError: If the ref cannot be resolved
        """
        if is_immutable_ref(ref) or self.local_repo_root is not None:
            return ref

        if ref in self._resolved_refs:
            return self._resolved_refs[ref]

        sha = await self._ls_remote(ref)
        logger.info(f"Resolved floating ref {ref} -> {sha[:8]}")
        self._resolved_refs[ref] = sha
        return sha

    async def _ls_remote(self, ref: str) -> str:
        """Look up the commit a ref points to on the remote."""
        url = self.repo.clone_url
        try:
            output = await asyncio.to_thread(Git().ls_remote, url, ref)
        except GitCommandError as e:
            raise NetworkError(f"git ls-remote failed for {url} ref {ref}: {e.stderr.strip() if e.stderr else e}", url=url) from e

        candidates: dict[str, str] = {}
        for line in output.splitlines():
            parts = line.split()
            if len(parts) == 2:
                candidates[parts[1]] = parts[0]

        # Annotated tags list the tag object first and the peeled commit as ^{}
        for name in (f"refs/tags/{ref}^{{}}", f"refs/heads/{ref}", f"refs/tags/{ref}", ref):
            if name in candidates:
                return candidates[name]

        raise NetworkError(f"Ref not found in {url}: {ref}", status_code=404, url=url)

    # Network

    async def _read_local(self, root: Path, file_path: str) -> bytes:
        local_path = resolve_path_within_dir(root, file_path)
        try:
            return local_path.read_bytes()
        except OSError as e:
            raise NetworkError(f"Local file not found: {file_path}", status_code=404, url=str(local_path)) from e

    async def _fetch_with_retry(self, ref: str, file_path: str) -> bytes:
        """Download a file, retrying server errors, rate limits and transport failures."""
        url = self.repo.raw_url(ref, file_path)
        validate_https_url(url)

        max_retries = self.settings.max_retries
        last_error: Exception | None = None

        for attempt in range(max_retries):
            try:
                response = await self.client.get(url)
            except httpx.TimeoutException as e:
                last_error = NetworkError(f"Request timed out: {url}", url=url)
                logger.debug(f"Timeout fetching {file_path} (attempt {attempt + 1}/{max_retries}): {e}")
            except httpx.TransportError as e:
                last_error = NetworkError(f"Transport error: {e}", url=url)
                logger.debug(f"Transport error fetching {file_path} (attempt {attempt + 1}/{max_retries}): {e}")
            else:
                if response.status_code == 200:
                    logger.debug(f"Fetched {file_path} at {ref} ({len(response.content)} bytes)")
                    return response.content

                if response.status_code == 404:
                    raise NetworkError(f"File not found: {file_path} at ref {ref}", status_code=404, url=url)

                error = NetworkError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    status_code=response.status_code,
                    url=url,
                )
                if not error.retryable:
                    raise error
                last_error = error
                logger.debug(f"HTTP {response.status_code} fetching {file_path} (attempt {attempt + 1}/{max_retries})")

            if attempt < max_retries - 1:
                await asyncio.sleep(self.settings.retry_base_delay * (2**attempt))

        status_code = last_error.status_code if isinstance(last_error, NetworkError) else None
        raise NetworkError(
            f"Failed to fetch {file_path} after {max_retries} attempts: {last_error}",
            status_code=status_code,
            url=url,
        )

    # Public fetch API

    async def fetch_from_git_tag(
        self,
        ref: str,
        file_path: str,
        skip_cache: bool = False,
        force_refresh: bool = False,
    ) -> bytes:
        """Fetch one file at a ref, cache first.

        Args:
            ref: Tag, branch or commit SHA
            file_path: Registry path inside the repository
            skip_cache: Neither read nor write the cache
            force_refresh: Ignore cached content but store the new download

        Returns:
            Raw file bytes

        Raises:
            NetworkError: If the file cannot be downloaded
            PathTraversalError: If file_path is unsafe
        """
        file_path = sanitize_relative_path(file_path)

        local_root = self.local_repo_root
        if local_root is not None:
            return await self._read_local(local_root, file_path)

        resolved = await self.resolve_ref_for_fetch(ref)

        if not skip_cache and not force_refresh and self.cache.is_cached(resolved, file_path):
            try:
                return self.cache.read_from_cache(resolved, file_path)
            except CacheError as e:
                logger.warning(f"Cache read failed for {file_path}, fetching from network: {e}")

        content = await self._fetch_with_retry(resolved, file_path)

        if not skip_cache:
            try:
                self.cache.write_to_cache(resolved, file_path, content)
            except CacheError as e:
                logger.warning(f"Cache write failed for {file_path}: {e}")

        return content

    async def fetch_multiple_from_git_tag(
        self,
        ref: str,
        file_paths: list[str],
        concurrency: int | None = None,
        skip_cache: bool = False,
        force_refresh: bool = False,
    ) -> FetchBatchResult:
        """Fetch several files at one ref with bounded concurrency.

        A failing file never cancels the others; failures are collected in
        the result so the caller can report all of them at once.

        Args:
            ref: Tag, branch or commit SHA
            file_paths: Registry paths
            concurrency: Maximum concurrent downloads (default from settings)
            skip_cache: Neither read nor write the cache
            force_refresh: Ignore cached content

        Returns:
            FetchBatchResult with contents and failures
        """
        resolved = ref if self.local_repo_root is not None else await self.resolve_ref_for_fetch(ref)
        semaphore = asyncio.Semaphore(concurrency or self.settings.fetch_concurrency)
        result = FetchBatchResult(ref=resolved)
        fetched: dict[str, bytes] = {}

        async def fetch_one(path: str) -> None:
            async with semaphore:
                try:
                    fetched[path] = await self.fetch_from_git_tag(
                        resolved, path, skip_cache=skip_cache, force_refresh=force_refresh
                    )
                except GreaterError as e:
                    logger.warning(f"Failed to fetch {path} at {resolved}: {e}")
                    result.failures[path] = e

        unique_paths = list(dict.fromkeys(file_paths))
        await asyncio.gather(*(fetch_one(path) for path in unique_paths))

        # Keep request order
        result.contents = {path: fetched[path] for path in unique_paths if path in fetched}
        return result
