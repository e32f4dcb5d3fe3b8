"""
Infrastructure layer for vendorlock.

Contains abstractions for external systems:
- GitHubClient: GitHub tree and raw-file queries
- GitClient: Shallow fetch of a pinned commit from any git host
- write_atomic / write_json_atomic: Crash-safe output files

These provide clean interfaces that can be mocked for testing.
"""

from .git_client import GitClient
from .github_client import GitHubClient, RateLimitStatus, parse_github_url
from .file_store import dumps_json, write_atomic, write_json_atomic

__all__ = [
    'GitClient',
    'GitHubClient',
    'RateLimitStatus',
    'parse_github_url',
    'dumps_json',
    'write_atomic',
    'write_json_atomic',
]
