"""Registry file fetching: cache store, git/network fetcher and offline planning."""

from .cache_store import CacheStore
from .git_fetch import FetchBatchResult
from .git_fetch import GitFetcher
from .git_fetch import is_immutable_ref
from .offline import CacheStatus
from .offline import FetchStrategyResult
from .offline import OfflineManager

__all__ = [
    "CacheStore",
    "CacheStatus",
    "FetchBatchResult",
    "FetchStrategyResult",
    "GitFetcher",
    "OfflineManager",
    "is_immutable_ref",
]
