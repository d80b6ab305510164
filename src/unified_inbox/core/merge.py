"""Change detection and read-state reconciliation for fetched items."""

from dataclasses import replace
from typing import Sequence

from unified_inbox.core.entities import InboxItem, MergeResult


def has_item_changed(old_item: InboxItem, new_item: InboxItem) -> bool:
    """Check whether an item was updated since it was cached."""
    return new_item.update_timestamp > old_item.update_timestamp


def merge_items_with_change_detection(
    cached_items: Sequence[InboxItem], new_items: Sequence[InboxItem]
) -> MergeResult:
    """Merge freshly fetched items with cached ones.

    - New items are unread.
    - Updated items remember the previous update timestamp; items that were
      read become unread again, otherwise the cached unread flag is kept.
    - Unchanged items keep the cached unread flag and previous timestamp.

    Output follows ``new_items`` order. Items only present in the cache are
    dropped. Duplicate ids in ``cached_items`` resolve to the last one.
    """
    cached_by_id = {item.id: item for item in cached_items}
    has_changes = False
    new_count = 0
    updated_count = 0
    merged: list[InboxItem] = []

    for new_item in new_items:
        cached_item = cached_by_id.get(new_item.id)

        if cached_item is None:
            new_count += 1
            has_changes = True
            merged.append(replace(new_item, unread=True))
            continue

        if has_item_changed(cached_item, new_item):
            updated_count += 1
            has_changes = True
            was_read = cached_item.unread is False
            merged.append(replace(
                new_item,
                prev_update_timestamp=cached_item.update_timestamp,
                unread=True if was_read else cached_item.unread,
            ))
            continue

        merged.append(replace(
            new_item,
            unread=cached_item.unread,
            prev_update_timestamp=cached_item.prev_update_timestamp,
        ))

    return MergeResult(
        items=merged,
        has_changes=has_changes,
        new_count=new_count,
        updated_count=updated_count,
    )
