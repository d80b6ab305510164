"""Azure DevOps provider."""

from unified_inbox.adapters.ado.client import AdoClient
from unified_inbox.adapters.ado.mappings import ADO_MAPPING
from unified_inbox.adapters.ado.source import AdoAdapter

__all__ = ["ADO_MAPPING", "AdoAdapter", "AdoClient"]
