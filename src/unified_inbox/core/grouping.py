"""Grouping of items into per-project buckets."""

from unified_inbox.core.entities import InboxItem, ProjectGroup

UNKNOWN_PROJECT = "Unknown Project"


def group_key(item: InboxItem, group_by_instance: bool = False) -> str:
    project = item.project or UNKNOWN_PROJECT
    return f"{item.organization}/{project}" if group_by_instance else project


def group_inbox_items(items: list[InboxItem], group_by_instance: bool = False) -> dict[str, ProjectGroup]:
    """Group items by project name.

    Projects of different instances that share a name land in the same
    group unless ``group_by_instance`` is set.
    """
    grouped: dict[str, ProjectGroup] = {}
    for item in items:
        key = group_key(item, group_by_instance)
        if key not in grouped:
            grouped[key] = ProjectGroup(project=item.project or UNKNOWN_PROJECT, instance=item.organization)
        grouped[key].items.append(item)
    return grouped
