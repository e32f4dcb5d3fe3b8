"""
GitHub API client infrastructure for vendorlock.

Answers the two questions the resolver asks of a GitHub-hosted
repository at a pinned commit:
- Which files exist? (git trees API, recursive)
- What does a given file contain? (raw.githubusercontent.com)

Each call is a single attempt. Failures are split into transient ones
(TransientNetworkError, worth retrying) and definitive ones
(SourceResolutionError); retry policy belongs to the caller.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import requests

from ..errors import SourceResolutionError, TransientNetworkError

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_RAW_BASE = "https://raw.githubusercontent.com"

_GITHUB_URL = re.compile(r'^(?:https?|git|ssh)://(?:[^@/]+@)?github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$', re.IGNORECASE)

# Status codes that mean "try again later"
TRANSIENT_STATUS = {429, 500, 502, 503, 504}
# Status codes that mean the repository or commit does not exist
NOT_FOUND_STATUS = {404, 409, 422}


def parse_github_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Extract (owner, repo) from a GitHub repository URL.

    Returns None for repositories hosted elsewhere.
    """
    match = _GITHUB_URL.match(url)
    if not match:
        return None
    return match.group(1), match.group(2)


@dataclass
class RateLimitStatus:
    """GitHub API rate limit status."""
    remaining: int
    limit: int
    reset_time: int  # Unix timestamp

    @property
    def minutes_until_reset(self) -> int:
        now = int(time.time())
        return max(0, (self.reset_time - now) // 60)

    @property
    def is_exhausted(self) -> bool:
        return self.remaining == 0

    @property
    def is_low(self) -> bool:
        return self.remaining < 100


class GitHubClient:
    """
    Read-only GitHub client for pinned commits.

    Example:
        client = GitHubClient(timeout=30)
        paths = client.list_files("owner", "repo", "0123abc")
        text = client.read_file("owner", "repo", "0123abc", "Cargo.toml")
    """

    def __init__(self, token: Optional[str] = None, timeout: float = 30,
                 session: Optional[requests.Session] = None):
        """
        Initialize GitHubClient.

        Args:
            token: GitHub token for higher rate limits (optional)
            timeout: Per-request timeout in seconds
            session: Pre-built session (tests inject a mock here)
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'vendorlock',
        })
        if token:
            self.session.headers['Authorization'] = f'token {token}'
        self.rate_limit: Optional[RateLimitStatus] = None

    def _update_rate_limit_from_headers(self, headers: Dict[str, str]) -> None:
        try:
            remaining = int(headers.get('X-RateLimit-Remaining', -1))
            limit = int(headers.get('X-RateLimit-Limit', -1))
            reset_time = int(headers.get('X-RateLimit-Reset', 0))
        except (ValueError, TypeError):
            return

        if remaining >= 0 and limit >= 0:
            self.rate_limit = RateLimitStatus(remaining=remaining, limit=limit, reset_time=reset_time)
            if self.rate_limit.is_low:
                logger.warning(
                    f"GitHub API rate limit low: {remaining}/{limit} remaining, "
                    f"resets in {self.rate_limit.minutes_until_reset} minutes"
                )

    def _get(self, url: str, what: str) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientNetworkError(f"{what}: {e}") from e
        except requests.RequestException as e:
            raise SourceResolutionError(f"{what}: {e}") from e

        self._update_rate_limit_from_headers(response.headers)

        if response.status_code == 200:
            return response
        if response.status_code in TRANSIENT_STATUS:
            raise TransientNetworkError(f"{what}: HTTP {response.status_code}")
        if response.status_code == 403 and self.rate_limit and self.rate_limit.is_exhausted:
            raise TransientNetworkError(f"{what}: rate limited")
        if response.status_code in NOT_FOUND_STATUS:
            raise SourceResolutionError(f"{what}: not found (HTTP {response.status_code})")
        raise SourceResolutionError(f"{what}: HTTP {response.status_code}")

    def list_files(self, owner: str, repo: str, commit: str) -> List[str]:
        """
        List every blob path in the repository at a commit.

        Args:
            owner: Repository owner
            repo: Repository name
            commit: Pinned revision

        Returns:
            Sorted list of file paths relative to the repository root
        """
        url = f"{GITHUB_API_BASE}/repos/{owner}/{repo}/git/trees/{commit}?recursive=1"
        response = self._get(url, f"Listing {owner}/{repo}@{commit}")
        data = response.json()

        if data.get('truncated'):
            logger.warning(f"Tree listing for {owner}/{repo}@{commit} was truncated by GitHub")

        return sorted(
            entry['path'] for entry in data.get('tree', [])
            if entry.get('type') == 'blob' and 'path' in entry
        )

    def read_file(self, owner: str, repo: str, commit: str, path: str) -> str:
        """Fetch one file's text at a commit."""
        url = f"{GITHUB_RAW_BASE}/{owner}/{repo}/{commit}/{path}"
        response = self._get(url, f"Reading {path} from {owner}/{repo}@{commit}")
        return response.text
