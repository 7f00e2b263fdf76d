"""Registry repository locations.

Shared logic for turning a repository setting into clone and raw-file URLs.
"""

from __future__ import annotations

import re
import urllib.parse
from dataclasses import dataclass

from greater_library.errors import NetworkError

GITHUB_HOST = "github.com"


@dataclass
class RepoLocation:
    """Parsed components of a registry repository.

    Attributes:
        owner: GitHub owner or organization
        name: Repository name
        host: Git host (github.com)
    """

    owner: str
    name: str
    host: str = GITHUB_HOST

    @property
    def clone_url(self) -> str:
        return f"https://{self.host}/{self.owner}/{self.name}.git"

    @property
    def base_url(self) -> str:
        return f"https://{self.host}/{self.owner}/{self.name}"

    def raw_url(self, ref: str, path: str) -> str:
        """URL of a file at a ref; path and ref are percent-quoted, slashes kept."""
        quoted_ref = urllib.parse.quote(ref, safe="/")
        quoted_path = urllib.parse.quote(path, safe="/")
        return f"{self.base_url}/raw/{quoted_ref}/{quoted_path}"


def parse_repository(source: str) -> RepoLocation:
    """Parse a repository reference.

    Handles:
    - owner/name
    - https://github.com/owner/name
    - https://github.com/owner/name.git

    Args:
        source: Repository setting

    Returns:
        RepoLocation with extracted components

    Raises:
        NetworkError: If the URL is not HTTPS or has no owner/name

    Examples:
        >>> parse_repository("equaltoai/greater-components")
        RepoLocation(owner='equaltoai', name='greater-components', host='github.com')
    """
    host = GITHUB_HOST
    path = source.strip()

    if "://" in path:
        validate_https_url(path)
        parsed = urllib.parse.urlparse(path)
        host = parsed.netloc
        path = parsed.path

    parts = [p for p in path.strip("/").removesuffix(".git").split("/") if p]
    if len(parts) != 2:
        raise NetworkError(f"Invalid repository reference: {source}", url=source)

    return RepoLocation(owner=parts[0], name=parts[1], host=host)


def validate_https_url(url: str) -> None:
    """Reject any URL that does not use HTTPS.

    Raises:
        NetworkError: If the scheme is not https
    """
    scheme = urllib.parse.urlparse(url).scheme
    if scheme != "https":
        raise NetworkError(f"Security error: Only HTTPS URLs are allowed. Got: {scheme or 'none'}", url=url)


def safe_ref_name(ref: str) -> str:
    """Make a ref usable as a single file name.

    Example:
        >>> safe_ref_name("feature/new-button")
        'feature_new-button'
    """
    return re.sub(r"[^a-zA-Z0-9.-]", "_", ref)
