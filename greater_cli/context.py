"""Per-invocation state and service wiring for CLI commands."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from greater_library.config import ComponentConfig
from greater_library.config import GreaterSettings
from greater_library.config import load_component_config
from greater_library.config import load_settings
from greater_library.config import resolve_ref
from greater_library.errors import ConfigError
from greater_library.fetch import CacheStore
from greater_library.fetch import GitFetcher
from greater_library.fetch import OfflineManager
from greater_library.install import Installer
from greater_library.registry import RegistryIndexClient
from greater_library.security import AuditLog

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str, verbose: bool = False) -> None:
    """Configure root logging for the CLI.

    Args:
        level: Level name from settings (e.g. "warning")
        verbose: Force DEBUG
    """
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@dataclass
class Services:
    """Library objects wired for one command."""

    cache: CacheStore
    fetcher: GitFetcher
    offline: OfflineManager
    index_client: RegistryIndexClient
    audit_log: AuditLog


@dataclass
class CliContext:
    """State shared by all commands of one invocation.

    Attributes:
        cwd: Project root commands operate on
        settings: Tool settings
        verbose: Debug logging requested
    """

    cwd: Path
    settings: GreaterSettings
    verbose: bool = False

    @classmethod
    def create(cls, cwd: Path | None = None, verbose: bool = False) -> CliContext:
        settings = load_settings()
        setup_logging(settings.log_level, verbose)
        return cls(cwd=(cwd or Path.cwd()).resolve(), settings=settings, verbose=verbose)

    def load_config(self) -> ComponentConfig | None:
        return load_component_config(self.cwd)

    def require_config(self) -> ComponentConfig:
        """Project config, which commands that write files need.

        Raises:
            ConfigError: If components.json is missing
        """
        config = self.load_config()
        if config is None:
            raise ConfigError("components.json not found. Run 'greater init' first.")
        return config

    def ref_for(self, explicit: str | None, config: ComponentConfig | None = None) -> str:
        return resolve_ref(explicit, config, self.settings)

    @asynccontextmanager
    async def services(self, offline: bool = False) -> AsyncIterator[Services]:
        """Build fetcher, index client and friends, closing the HTTP client on exit.

        Args:
            offline: Serve only from the cache
        """
        cache = CacheStore()
        fetcher = GitFetcher(cache, settings=self.settings)
        offline_manager = OfflineManager(cache, settings=self.settings, offline=offline)
        index_client = RegistryIndexClient(
            fetcher,
            offline=offline_manager,
            ttl_seconds=self.settings.registry_ttl_seconds,
        )
        if fetcher.local_repo_root is not None:
            logger.info(f"Serving registry files from local checkout {fetcher.local_repo_root}")
        try:
            yield Services(
                cache=cache,
                fetcher=fetcher,
                offline=offline_manager,
                index_client=index_client,
                audit_log=AuditLog(),
            )
        finally:
            await fetcher.aclose()

    def installer(self, services: Services, config: ComponentConfig) -> Installer:
        return Installer(
            project_root=self.cwd,
            config=config,
            fetcher=services.fetcher,
            index_client=services.index_client,
            offline=services.offline,
            audit_log=services.audit_log,
        )
