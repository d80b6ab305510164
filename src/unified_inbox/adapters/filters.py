"""Search and type filters over inbox items."""

import re
from dataclasses import dataclass, field
from typing import Optional

from unified_inbox.core import InboxItem, WorkItem

FILTER_PATTERN = re.compile(r"@(\w+):(\S+)")

ALL_TYPES = "all"


@dataclass
class ParsedQuery:
    """``@key:value`` filters and the remaining free text of a query."""

    filters: dict[str, list[str]] = field(default_factory=dict)
    text: str = ""


def parse_search_query(query: str) -> ParsedQuery:
    """
    Split a search query into filters and free text.

    Args:
        query: Raw query, e.g. ``"@type:pull @status:open login"``

    Returns:
        Parsed query with lowercased filter values
    """
    parsed = ParsedQuery()
    for key, value in FILTER_PATTERN.findall(query):
        parsed.filters.setdefault(key.lower(), []).append(value.lower())
    parsed.text = " ".join(FILTER_PATTERN.sub(" ", query).split())
    return parsed


def _filter_value(item: InboxItem, key: str) -> Optional[str]:
    if key == "project":
        return item.project
    if key == "repo":
        return item.repository
    if key == "org":
        return item.organization
    if key == "status":
        return item.status
    if key == "type":
        return item.type.value
    if key == "kind" and isinstance(item, WorkItem):
        return item.work_item_kind.value
    if key == "assignee" and isinstance(item, WorkItem) and item.assignee:
        return item.assignee.name or item.assignee.display_name
    return None


def apply_filter_search(items: list[InboxItem], filters: dict[str, list[str]]) -> list[InboxItem]:
    """Keep items matching every filter key; values of one key are alternatives.

    Unknown keys match nothing.
    """
    if not filters:
        return items

    def matches(item: InboxItem) -> bool:
        for key, values in filters.items():
            item_value = _filter_value(item, key)
            if not item_value:
                return False
            if not any(value in item_value.lower() for value in values):
                return False
        return True

    return [item for item in items if matches(item)]


def apply_text_search(items: list[InboxItem], text: str) -> list[InboxItem]:
    """Case-insensitive substring search in title, description and repository."""
    query = text.strip().lower()
    if not query:
        return items
    return [
        item
        for item in items
        if query in item.title.lower()
        or query in (item.description or "").lower()
        or query in (item.repository or "").lower()
    ]


def apply_type_filter(items: list[InboxItem], item_type: str = ALL_TYPES) -> list[InboxItem]:
    if item_type == ALL_TYPES:
        return items
    return [item for item in items if item.type.value == item_type]


def filter_items(items: list[InboxItem], query: str = "", item_type: str = ALL_TYPES) -> list[InboxItem]:
    """Apply a search query and a type filter in one pass."""
    parsed = parse_search_query(query)
    result = apply_filter_search(items, parsed.filters)
    result = apply_text_search(result, parsed.text)
    return apply_type_filter(result, item_type)
