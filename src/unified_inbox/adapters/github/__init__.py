"""GitHub provider."""

from unified_inbox.adapters.github.client import GitHubClient
from unified_inbox.adapters.github.mappings import GITHUB_MAPPING
from unified_inbox.adapters.github.source import GitHubAdapter

__all__ = ["GITHUB_MAPPING", "GitHubAdapter", "GitHubClient"]
