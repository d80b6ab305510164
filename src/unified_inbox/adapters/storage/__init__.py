"""Item storage adapters."""

from unified_inbox.adapters.storage.file_store import FileItemStore, MemoryItemStore

__all__ = ["FileItemStore", "MemoryItemStore"]
