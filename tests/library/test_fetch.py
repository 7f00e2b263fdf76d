"""
Unit tests for the cache store, git fetcher and offline manager.

Network access is replaced with httpx.MockTransport and git ls-remote is
patched.
"""

from pathlib import Path
from unittest.mock import AsyncMock
from unittest.mock import patch

import httpx
import pytest
from git.exc import GitCommandError

from greater_library.config import GreaterSettings
from greater_library.errors import CacheError
from greater_library.errors import NetworkError
from greater_library.errors import PathTraversalError
from greater_library.fetch import CacheStore
from greater_library.fetch import GitFetcher
from greater_library.fetch import OfflineManager
from greater_library.fetch import is_immutable_ref
from greater_library.fetch.git_fetch import is_commit_sha

SHA = "0123456789abcdef0123456789abcdef01234567"


@pytest.fixture
def cache(tmp_path: Path) -> CacheStore:
    return CacheStore(tmp_path / "cache")


@pytest.mark.unit
class TestCacheStore:
    """Test file cache keyed by (ref, path)."""

    def test_write_then_read(self, cache: CacheStore) -> None:
        path = cache.write_to_cache("greater-v4.2.0", "lib/Button.svelte", b"<button />")

        assert path == cache.root / "greater-v4.2.0" / "lib" / "Button.svelte"
        assert cache.is_cached("greater-v4.2.0", "lib/Button.svelte")
        assert cache.read_from_cache("greater-v4.2.0", "lib/Button.svelte") == b"<button />"

    def test_read_missing_raises(self, cache: CacheStore) -> None:
        with pytest.raises(CacheError, match="not found in cache"):
            cache.read_from_cache("greater-v4.2.0", "lib/Missing.svelte")

    def test_is_cached_false_for_unsafe_path(self, cache: CacheStore) -> None:
        assert cache.is_cached("greater-v4.2.0", "../escape") is False
        assert cache.is_cached("..", "lib/Button.svelte") is False

    def test_write_rejects_traversal(self, cache: CacheStore) -> None:
        with pytest.raises(PathTraversalError):
            cache.write_to_cache("greater-v4.2.0", "../../etc/passwd", b"x")

    def test_invalid_ref_raises_cache_error(self, cache: CacheStore) -> None:
        with pytest.raises(CacheError, match="Invalid ref"):
            cache.get_cache_dir("../outside")

    def test_concurrent_writers_last_wins(self, cache: CacheStore) -> None:
        cache.write_to_cache("v1.0.0", "a.ts", b"first")
        cache.write_to_cache("v1.0.0", "a.ts", b"second")

        assert cache.read_from_cache("v1.0.0", "a.ts") == b"second"
        assert cache.list_cached_files("v1.0.0") == ["a.ts"]

    def test_list_and_clear(self, cache: CacheStore) -> None:
        cache.write_to_cache("v1.0.0", "lib/a.ts", b"a")
        cache.write_to_cache("v2.0.0", "lib/b.ts", b"b")
        (cache.get_cache_dir("v1.0.0") / "lib" / ".a.ts.deadbeef.tmp").write_bytes(b"partial")

        assert cache.list_cached_refs() == ["v1.0.0", "v2.0.0"]
        assert cache.list_cached_files("v1.0.0") == ["lib/a.ts"]

        assert cache.clear_cache("v1.0.0") is True
        assert cache.clear_cache("v1.0.0") is False
        assert cache.list_cached_refs() == ["v2.0.0"]

        cache.clear_all_cache()
        assert cache.list_cached_refs() == []


@pytest.mark.unit
class TestRefClassification:
    """Test immutable ref detection."""

    @pytest.mark.parametrize("ref", ["greater-v4.2.0", "v1.2.3", "1.2.3", "greater@4.2.0", "v1.0.0-rc.1", "abc1234", SHA])
    def test_immutable(self, ref: str) -> None:
        assert is_immutable_ref(ref)

    @pytest.mark.parametrize("ref", ["main", "develop", "feature/button", "v1.2", "latest"])
    def test_floating(self, ref: str) -> None:
        assert not is_immutable_ref(ref)

    def test_commit_sha(self) -> None:
        assert is_commit_sha(SHA)
        assert not is_commit_sha("ABCDEF1")


def make_fetcher(cache: CacheStore, handler, **settings) -> GitFetcher:
    settings.setdefault("retry_base_delay", 0)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GitFetcher(cache, settings=GreaterSettings(**settings), client=client)


@pytest.mark.unit
class TestGitFetcher:
    """Test cache-first fetching with retries."""

    @pytest.mark.asyncio
    async def test_pinned_ref_skips_resolution_and_hits_cache(self, cache: CacheStore, greater_home: Path) -> None:
        requests: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(str(request.url))
            return httpx.Response(200, content=b"<button />")

        fetcher = make_fetcher(cache, handler)
        with patch.object(GitFetcher, "_ls_remote", new=AsyncMock()) as ls_remote:
            first = await fetcher.fetch_from_git_tag("greater-v4.2.0", "lib/Button.svelte")
            second = await fetcher.fetch_from_git_tag("greater-v4.2.0", "lib/Button.svelte")

        assert first == second == b"<button />"
        assert requests == ["https://github.com/equaltoai/greater-components/raw/greater-v4.2.0/lib/Button.svelte"]
        ls_remote.assert_not_called()
        assert cache.is_cached("greater-v4.2.0", "lib/Button.svelte")

    @pytest.mark.asyncio
    async def test_floating_ref_resolved_before_cache_use(self, cache: CacheStore, greater_home: Path) -> None:
        # Stale content cached under the branch name must never be served
        cache.write_to_cache("main", "lib/Button.svelte", b"stale")
        requests: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request.url.path)
            return httpx.Response(200, content=b"fresh")

        fetcher = make_fetcher(cache, handler)
        with patch.object(GitFetcher, "_ls_remote", new=AsyncMock(return_value=SHA)) as ls_remote:
            content = await fetcher.fetch_from_git_tag("main", "lib/Button.svelte")
            await fetcher.fetch_from_git_tag("main", "lib/Button.svelte")

        assert content == b"fresh"
        assert requests == [f"/equaltoai/greater-components/raw/{SHA}/lib/Button.svelte"]
        assert cache.read_from_cache(SHA, "lib/Button.svelte") == b"fresh"
        # Memoized per fetcher
        ls_remote.assert_awaited_once_with("main")

    @pytest.mark.asyncio
    async def test_ls_remote_prefers_peeled_tag(self, cache: CacheStore, greater_home: Path) -> None:
        output = f"1111111111111111111111111111111111111111\trefs/tags/release\n{SHA}\trefs/tags/release^{{}}\n"
        fetcher = make_fetcher(cache, lambda request: httpx.Response(404))

        with patch("greater_library.fetch.git_fetch.Git") as git_cls:
            git_cls.return_value.ls_remote.return_value = output
            assert await fetcher.resolve_ref_for_fetch("release") == SHA

        git_cls.return_value.ls_remote.assert_called_once_with(
            "https://github.com/equaltoai/greater-components.git", "release"
        )

    @pytest.mark.asyncio
    async def test_ls_remote_failure_is_network_error(self, cache: CacheStore, greater_home: Path) -> None:
        fetcher = make_fetcher(cache, lambda request: httpx.Response(404))

        with patch("greater_library.fetch.git_fetch.Git") as git_cls:
            git_cls.return_value.ls_remote.side_effect = GitCommandError("ls-remote", 128, stderr="fatal: unreachable")
            with pytest.raises(NetworkError, match="ls-remote failed"):
                await fetcher.resolve_ref_for_fetch("main")

    @pytest.mark.asyncio
    async def test_ls_remote_requires_exact_ref(self, cache: CacheStore, greater_home: Path) -> None:
        fetcher = make_fetcher(cache, lambda request: httpx.Response(404))

        with patch("greater_library.fetch.git_fetch.Git") as git_cls:
            git_cls.return_value.ls_remote.return_value = f"{SHA}\trefs/heads/feature/main\n"
            with pytest.raises(NetworkError, match="Ref not found"):
                await fetcher.resolve_ref_for_fetch("main")

    @pytest.mark.asyncio
    async def test_unknown_ref_is_not_found(self, cache: CacheStore, greater_home: Path) -> None:
        fetcher = make_fetcher(cache, lambda request: httpx.Response(404))

        with patch("greater_library.fetch.git_fetch.Git") as git_cls:
            git_cls.return_value.ls_remote.return_value = ""
            with pytest.raises(NetworkError, match="Ref not found") as exc_info:
                await fetcher.resolve_ref_for_fetch("no-such-branch")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_404_is_not_retried(self, cache: CacheStore, greater_home: Path) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404)

        fetcher = make_fetcher(cache, handler)
        with pytest.raises(NetworkError, match="File not found") as exc_info:
            await fetcher.fetch_from_git_tag("greater-v4.2.0", "lib/Missing.svelte")

        assert exc_info.value.status_code == 404
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, cache: CacheStore, greater_home: Path) -> None:
        responses = iter([httpx.Response(503), httpx.Response(429), httpx.Response(200, content=b"ok")])

        fetcher = make_fetcher(cache, lambda request: next(responses), max_retries=3)
        with patch("greater_library.fetch.git_fetch.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await fetcher.fetch_from_git_tag("greater-v4.2.0", "a.ts") == b"ok"

        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_backoff_doubles(self, cache: CacheStore, greater_home: Path) -> None:
        fetcher = make_fetcher(cache, lambda request: httpx.Response(500), max_retries=3, retry_base_delay=0.5)

        with patch("greater_library.fetch.git_fetch.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(NetworkError, match="after 3 attempts") as exc_info:
                await fetcher.fetch_from_git_tag("greater-v4.2.0", "a.ts")

        assert [call.args[0] for call in sleep.await_args_list] == [0.5, 1.0]
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, cache: CacheStore, greater_home: Path) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(403)

        fetcher = make_fetcher(cache, handler)
        with pytest.raises(NetworkError, match="HTTP 403"):
            await fetcher.fetch_from_git_tag("greater-v4.2.0", "a.ts")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_surfaces_as_network_error(self, cache: CacheStore, greater_home: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = make_fetcher(cache, handler, max_retries=2)
        with pytest.raises(NetworkError, match="timed out"):
            await fetcher.fetch_from_git_tag("greater-v4.2.0", "a.ts")

    @pytest.mark.asyncio
    async def test_unsafe_path_rejected_before_network(self, cache: CacheStore, greater_home: Path) -> None:
        fetcher = make_fetcher(cache, lambda request: pytest.fail("network used"))

        with pytest.raises(PathTraversalError):
            await fetcher.fetch_from_git_tag("greater-v4.2.0", "../secrets")

    @pytest.mark.asyncio
    async def test_batch_collects_failures_and_keeps_order(self, cache: CacheStore, greater_home: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("missing.ts"):
                return httpx.Response(404)
            return httpx.Response(200, content=request.url.path.encode())

        fetcher = make_fetcher(cache, handler)
        result = await fetcher.fetch_multiple_from_git_tag("v1.0.0", ["b.ts", "missing.ts", "a.ts", "b.ts"], concurrency=2)

        assert list(result.contents) == ["b.ts", "a.ts"]
        assert list(result.failures) == ["missing.ts"]
        assert not result.ok
        with pytest.raises(NetworkError, match="1 file\\(s\\)"):
            result.raise_for_failures()

    @pytest.mark.asyncio
    async def test_local_repo_root_bypasses_network_and_cache(self, cache: CacheStore, tmp_path: Path, greater_home: Path) -> None:
        repo = tmp_path / "repo"
        (repo / "lib").mkdir(parents=True)
        (repo / "lib" / "Button.svelte").write_bytes(b"local")
        fetcher = GitFetcher(
            cache,
            settings=GreaterSettings(),
            client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: pytest.fail("network used"))),
            local_repo_root=repo,
        )

        assert await fetcher.resolve_ref_for_fetch("main") == "main"
        assert await fetcher.fetch_from_git_tag("main", "lib/Button.svelte") == b"local"
        assert cache.list_cached_refs() == []
        with pytest.raises(NetworkError, match="Local file not found"):
            await fetcher.fetch_from_git_tag("main", "lib/Nope.svelte")

    @pytest.mark.asyncio
    async def test_local_repo_root_from_env(self, cache: CacheStore, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GREATER_CLI_LOCAL_REPO_ROOT", str(tmp_path))
        fetcher = GitFetcher(cache, settings=GreaterSettings())

        assert fetcher.local_repo_root == tmp_path.resolve()
        await fetcher.aclose()


@pytest.mark.unit
class TestOfflineManager:
    """Test offline planning."""

    def test_missing_from_cache(self, cache: CacheStore, greater_home: Path) -> None:
        cache.write_to_cache("v1.0.0", "lib/Icon.svelte", b"icon")
        manager = OfflineManager(cache, offline=True)

        assert manager.can_serve_from_cache("v1.0.0", ["lib/Icon.svelte"])
        assert manager.get_missing_from_cache("v1.0.0", ["lib/Button.svelte", "lib/Icon.svelte"]) == ["lib/Button.svelte"]

    def test_enable_disable_and_warning(self, cache: CacheStore, greater_home: Path) -> None:
        manager = OfflineManager(cache)
        assert manager.offline_warning() is None

        manager.enable()
        assert manager.is_offline
        assert "offline" in manager.offline_warning()

        manager.disable()
        assert not manager.is_offline

    @pytest.mark.asyncio
    async def test_offline_strategies(self, cache: CacheStore, greater_home: Path) -> None:
        cache.write_to_cache("v1.0.0", "a.ts", b"a")
        manager = OfflineManager(cache, offline=True)

        full = await manager.determine_fetch_strategy("v1.0.0", ["a.ts"])
        partial = await manager.determine_fetch_strategy("v1.0.0", ["a.ts", "b.ts"])
        partial_allowed = await manager.determine_fetch_strategy("v1.0.0", ["a.ts", "b.ts"], allow_missing=True)

        assert (full.strategy, full.is_offline) == ("cache", True)
        assert partial.strategy == "unavailable"
        assert partial.uncached_files == ["b.ts"]
        assert partial_allowed.strategy == "cache"

    @pytest.mark.asyncio
    async def test_online_strategies(self, cache: CacheStore, greater_home: Path) -> None:
        cache.write_to_cache("v1.0.0", "a.ts", b"a")
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        manager = OfflineManager(cache, client=client)

        assert (await manager.determine_fetch_strategy("v1.0.0", ["b.ts"])).strategy == "network"
        assert (await manager.determine_fetch_strategy("v1.0.0", ["a.ts"])).strategy == "cache"
        assert (await manager.determine_fetch_strategy("v1.0.0", ["a.ts", "b.ts"])).strategy == "mixed"
        assert (await manager.determine_fetch_strategy("v1.0.0", ["a.ts"], prefer_cache=False)).strategy == "network"

    @pytest.mark.asyncio
    async def test_network_probe_is_memoized(self, cache: CacheStore, greater_home: Path) -> None:
        probes = []

        def handler(request: httpx.Request) -> httpx.Response:
            probes.append(request.method)
            return httpx.Response(503)

        manager = OfflineManager(cache, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        assert await manager.is_network_available() is False
        assert await manager.is_network_available() is False
        assert probes == ["HEAD"]
        await manager.is_network_available(force=True)
        assert probes == ["HEAD", "HEAD"]

    def test_cache_status(self, cache: CacheStore, tmp_path: Path, greater_home: Path) -> None:
        cache.write_to_cache("v1.0.0", "a.ts", b"a")
        registry_dir = tmp_path / "registry"
        registry_dir.mkdir()
        (registry_dir / "v1.0.0.json").write_text("{}")
        manager = OfflineManager(cache, registry_cache_dir=registry_dir)

        status = manager.get_cache_status("v1.0.0")

        assert status.cached_files == ["a.ts"]
        assert status.has_registry_index
        assert manager.get_cached_refs() == ["v1.0.0"]
