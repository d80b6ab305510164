"""Adapter construction from instance configuration."""

from typing import Optional

from unified_inbox.adapters.ado import AdoAdapter
from unified_inbox.adapters.github import GitHubAdapter
from unified_inbox.config import AdoInstanceConfig, FetchConfig, GitHubInstanceConfig, InstanceConfig
from unified_inbox.core import ConfigurationError, ProviderAdapter


def create_adapter(instance: InstanceConfig, fetch_config: Optional[FetchConfig] = None) -> ProviderAdapter:
    """Build the provider adapter for a configured instance."""
    if isinstance(instance, AdoInstanceConfig):
        return AdoAdapter(instance, fetch_config)
    if isinstance(instance, GitHubInstanceConfig):
        return GitHubAdapter(instance, fetch_config)
    raise ConfigurationError(f"Unsupported instance type for '{instance.id}': {type(instance).__name__}")
