"""Utility helpers."""

from .repo_url import RepoLocation
from .repo_url import parse_repository
from .repo_url import safe_ref_name
from .repo_url import validate_https_url

__all__ = ["RepoLocation", "parse_repository", "safe_ref_name", "validate_https_url"]
