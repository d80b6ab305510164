"""Per-instance item cache holding read state between fetches."""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Iterable, Optional, Sequence

from unified_inbox.core.entities import (
    InboxItem,
    ItemType,
    MergeResult,
    Pipeline,
    PullRequest,
    WorkItem,
    item_from_dict,
)
from unified_inbox.core.errors import MalformedPayloadError
from unified_inbox.core.interfaces import ItemStore
from unified_inbox.core.merge import merge_items_with_change_detection

logger = logging.getLogger(__name__)

BLOB_KEYS = {
    ItemType.WORK_ITEM: "workItems",
    ItemType.PULL_REQUEST: "pullRequests",
    ItemType.PIPELINE: "pipelines",
}


class InstanceCache:
    """Cached items of one provider instance, backed by an ``ItemStore``.

    The whole item set is persisted on every change; partial writes are
    never issued.
    """

    def __init__(self, instance_id: str, store: ItemStore) -> None:
        self.instance_id = instance_id
        self.store = store
        self._items: dict[ItemType, list[InboxItem]] = {item_type: [] for item_type in ItemType}
        self.timestamp: Optional[int] = None

    def load(self) -> None:
        """Load items from the store.

        The stored item set carries each item's unread flag and is the source
        of truth. The separate unread map is written on marks but never read.
        """
        blob = self.store.load_items(self.instance_id) or {}

        for item_type, key in BLOB_KEYS.items():
            items: list[InboxItem] = []
            for data in blob.get(key) or []:
                try:
                    item = item_from_dict(data)
                except MalformedPayloadError as e:
                    logger.warning("Skipping cached item for %s: %s", self.instance_id, e)
                    continue
                items.append(item)
            self._items[item_type] = items

        self.timestamp = blob.get("timestamp")

    @property
    def work_items(self) -> list[WorkItem]:
        return list(self._items[ItemType.WORK_ITEM])

    @property
    def pull_requests(self) -> list[PullRequest]:
        return list(self._items[ItemType.PULL_REQUEST])

    @property
    def pipelines(self) -> list[Pipeline]:
        return list(self._items[ItemType.PIPELINE])

    @property
    def all_items(self) -> list[InboxItem]:
        return [item for item_type in ItemType for item in self._items[item_type]]

    def unread_count(self) -> int:
        return sum(1 for item in self.all_items if item.unread)

    def apply_fetch(
        self,
        fresh_items: Sequence[InboxItem],
        authoritative: Iterable[ItemType] = tuple(ItemType),
    ) -> dict[ItemType, MergeResult]:
        """Merge a fetch result into the cache and persist it.

        Types not listed in ``authoritative`` came from failed stages: cached
        items of those types that were not fetched again are kept as they are.
        """
        authoritative = set(authoritative)
        fresh_by_type: dict[ItemType, dict[str, InboxItem]] = {item_type: {} for item_type in ItemType}
        for item in fresh_items:
            fresh_by_type[item.type][item.id] = item

        results: dict[ItemType, MergeResult] = {}
        for item_type in ItemType:
            fresh = list(fresh_by_type[item_type].values())
            cached = self._items[item_type]
            if item_type not in authoritative:
                fetched_ids = set(fresh_by_type[item_type])
                fresh.extend(item for item in cached if item.id not in fetched_ids)

            result = merge_items_with_change_detection(cached, fresh)
            self._items[item_type] = result.items
            results[item_type] = result

        self.persist()
        return results

    def get_item(self, item_id: str) -> Optional[InboxItem]:
        for item in self.all_items:
            if item.id == item_id:
                return item
        return None

    def set_unread(self, item_id: str, unread: bool) -> bool:
        """Update one item's unread flag and re-persist the instance.

        Returns False when the item is not cached.
        """
        for item_type, items in self._items.items():
            for index, item in enumerate(items):
                if item.id == item_id:
                    items[index] = replace(item, unread=unread)
                    self.persist()
                    self.store.update_item_unread_state(self.instance_id, item_id, unread)
                    return True
        return False

    def mark_read(self, item_id: str) -> bool:
        return self.set_unread(item_id, False)

    def mark_unread(self, item_id: str) -> bool:
        return self.set_unread(item_id, True)

    def persist(self) -> None:
        """Write the entire item set to the store."""
        self.timestamp = int(time.time() * 1000)
        blob = {
            key: [item.to_dict() for item in self._items[item_type]]
            for item_type, key in BLOB_KEYS.items()
        }
        blob["timestamp"] = self.timestamp
        self.store.save_items(self.instance_id, blob)

    def clear(self) -> None:
        self._items = {item_type: [] for item_type in ItemType}
        self.timestamp = None
        self.store.clear_items(self.instance_id)
        self.store.clear_unread_state(self.instance_id)


class InstanceCacheRegistry:
    """One cache and one lock per instance id."""

    def __init__(self, store: ItemStore) -> None:
        self.store = store
        self._caches: dict[str, InstanceCache] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, instance_id: str) -> InstanceCache:
        cache = self._caches.get(instance_id)
        if cache is None:
            cache = InstanceCache(instance_id, self.store)
            cache.load()
            self._caches[instance_id] = cache
        return cache

    def lock(self, instance_id: str) -> asyncio.Lock:
        """Lock serializing merges and marks for one instance."""
        if instance_id not in self._locks:
            self._locks[instance_id] = asyncio.Lock()
        return self._locks[instance_id]

    def instance_ids(self) -> list[str]:
        return list(self._caches)
