"""Settings models for the greater CLI.

This module defines tool-level configuration (registry location, network
behavior, logging), separate from the per-project components.json.

Contract:
- Inputs: Environment variables, YAML files
- Outputs: Validated settings objects
- Side Effects: None (read-only)
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict

FALLBACK_REF = "greater-v4.2.0"


class GreaterSettings(BaseSettings):
    """Configuration for the greater CLI.

    Attributes:
        repository: GitHub "owner/name" of the component registry
        default_ref: Ref used when neither the command nor components.json pins one
        registry_ttl_seconds: Cache lifetime of registry indexes for floating refs
        fetch_concurrency: Maximum concurrent file downloads
        max_retries: Attempts per file download
        retry_base_delay: First backoff delay in seconds, doubled per attempt
        request_timeout: HTTP timeout in seconds
        network_check_interval: Seconds a network probe result is reused
        log_level: Logging level (default: warning)

    Example:
        >>> settings = GreaterSettings()
        >>> assert settings.repository == "equaltoai/greater-components"
        >>> assert settings.fetch_concurrency == 4
    """

    model_config = SettingsConfigDict(
        env_prefix="GREATER_",
        case_sensitive=False,
        extra="ignore",
    )

    repository: str = "equaltoai/greater-components"
    default_ref: str = FALLBACK_REF
    registry_ttl_seconds: int = 3600
    fetch_concurrency: int = 4
    max_retries: int = 3
    retry_base_delay: float = 1.0
    request_timeout: float = 30.0
    network_check_interval: float = 30.0
    log_level: str = "warning"

    @field_validator("fetch_concurrency", "max_retries")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        """Clamp counts to a minimum of one."""
        return max(1, v)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Store log level in lowercase."""
        return v.lower()
