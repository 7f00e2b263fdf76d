"""Pytest configuration and shared fixtures."""

import json
import urllib.parse
from pathlib import Path

import httpx
import pytest

from greater_library.config import ComponentConfig
from greater_library.config import GreaterSettings
from greater_library.config import save_component_config
from greater_library.fetch import CacheStore
from greater_library.fetch import GitFetcher
from greater_library.fetch import OfflineManager
from greater_library.install import Installer
from greater_library.registry import RegistryIndexClient
from greater_library.security import AuditLog
from greater_library.security import compute_checksum

PINNED_REF = "greater-v4.2.0"
RAW_PREFIX = "/equaltoai/greater-components/raw/"

BUTTON_SOURCE = b"""<script lang="ts">
  import Icon from '@equaltoai/greater-components/primitives/Icon.svelte';
  export let label = '';
</script>

<button class="gr-button"><Icon />{label}</button>
"""

ICON_SOURCE = b"""<script lang="ts">
  export let size = 16;
</script>

<svg width={size} height={size}></svg>
"""


@pytest.fixture
def greater_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point GREATER_HOME at a temp directory and clear other overrides."""
    home = tmp_path / "home"
    monkeypatch.setenv("GREATER_HOME", str(home))
    for var in ("GREATER_CACHE_DIR", "GREATER_CONFIG_DIR", "GREATER_CLI_LOCAL_REPO_ROOT", "GREATER_DEFAULT_REF"):
        monkeypatch.delenv(var, raising=False)
    return home


def build_index(files: dict[str, bytes], ref: str = PINNED_REF) -> dict:
    """Registry index with button -> icon over the given file contents."""
    return {
        "version": "1",
        "ref": ref,
        "components": [
            {
                "name": "button",
                "type": "primitive",
                "description": "Accessible button",
                "files": [{"path": "lib/Button.svelte", "checksum": compute_checksum(files["lib/Button.svelte"])}],
                "dependencies": ["icon", {"name": "clsx", "version": "^2.0.0"}],
            },
            {
                "name": "icon",
                "type": "primitive",
                "files": [{"path": "lib/Icon.svelte", "checksum": compute_checksum(files["lib/Icon.svelte"])}],
            },
        ],
    }


@pytest.fixture
def registry_files() -> dict[str, bytes]:
    return {"lib/Button.svelte": BUTTON_SOURCE, "lib/Icon.svelte": ICON_SOURCE}


@pytest.fixture
def registry_index(registry_files: dict[str, bytes]) -> dict:
    return build_index(registry_files)


class FakeRegistry:
    """Serves registry files over an httpx.MockTransport and records requests."""

    def __init__(self, files: dict[str, bytes], index: dict) -> None:
        self.files = dict(files)
        self.files["registry/index.json"] = json.dumps(index).encode("utf-8")
        self.requests: list[tuple[str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = urllib.parse.unquote(request.url.path)
        if not path.startswith(RAW_PREFIX):
            return httpx.Response(404)
        ref, _, file_path = path[len(RAW_PREFIX) :].partition("/")
        self.requests.append((ref, file_path))
        if file_path not in self.files:
            return httpx.Response(404)
        return httpx.Response(200, content=self.files[file_path])

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def file_requests(self) -> list[str]:
        return [path for _, path in self.requests if path != "registry/index.json"]


@pytest.fixture
def fake_registry(registry_files: dict[str, bytes], registry_index: dict) -> FakeRegistry:
    return FakeRegistry(registry_files, registry_index)


@pytest.fixture
def settings(greater_home: Path) -> GreaterSettings:
    return GreaterSettings(retry_base_delay=0, max_retries=2)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Consumer project with a default components.json."""
    root = tmp_path / "project"
    root.mkdir()
    save_component_config(ComponentConfig(ref=PINNED_REF), root)
    return root


@pytest.fixture
def make_installer(project: Path, settings: GreaterSettings, fake_registry: FakeRegistry):
    """Factory for an Installer wired to the fake registry."""

    def factory(offline: bool = False, registry: FakeRegistry | None = None) -> Installer:
        registry = registry or fake_registry
        cache = CacheStore()
        fetcher = GitFetcher(cache, settings=settings, client=registry.client())
        offline_manager = OfflineManager(cache, settings=settings, offline=offline)
        index_client = RegistryIndexClient(fetcher, offline=offline_manager)
        return Installer(
            project_root=project,
            config=ComponentConfig(),
            fetcher=fetcher,
            index_client=index_client,
            offline=offline_manager,
            audit_log=AuditLog(),
        )

    return factory


@pytest.fixture
def local_repo(tmp_path: Path, registry_files: dict[str, bytes], registry_index: dict) -> Path:
    """Local registry checkout with the sample index and files."""
    root = tmp_path / "repo"
    for rel, content in registry_files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    (root / "registry").mkdir(parents=True, exist_ok=True)
    (root / "registry" / "index.json").write_text(json.dumps(registry_index), encoding="utf-8")
    return root


@pytest.fixture
def registry_factory():
    """Build FakeRegistry instances for custom files or indexes."""
    return FakeRegistry


@pytest.fixture
def index_builder():
    return build_index
