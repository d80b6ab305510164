"""Markdown inbox report."""

from datetime import datetime, timezone
from typing import Optional

from unified_inbox.core import InboxItem, ItemType, ProjectGroup, WorkItem

TYPE_SECTIONS = [
    (ItemType.PULL_REQUEST, "🔀 Pull Requests"),
    (ItemType.WORK_ITEM, "📋 Work Items"),
    (ItemType.PIPELINE, "🚀 Pipelines"),
]


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    if not timestamp_ms:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


class MarkdownReportRenderer:
    """Render grouped inbox items as markdown."""

    def __init__(self, unread_only: bool = False) -> None:
        self.unread_only = unread_only

    def render(self, groups: dict[str, ProjectGroup], title: str = "Inbox") -> str:
        visible = {
            key: [item for item in group.items if item.unread or not self.unread_only]
            for key, group in groups.items()
        }
        total = sum(len(items) for items in visible.values())
        unread = sum(1 for items in visible.values() for item in items if item.unread)

        if total == 0:
            return f"# {title}\n\nNo items found."

        lines = [
            f"# 📥 {title}",
            "",
            f"Items: {total} ({unread} unread)",
            "",
        ]

        for key in sorted(visible):
            items = visible[key]
            if not items:
                continue
            group = groups[key]
            lines.extend([f"## {group.project} ({group.instance})", ""])

            for item_type, heading in TYPE_SECTIONS:
                section = [item for item in items if item.type == item_type]
                if not section:
                    continue
                section.sort(key=lambda x: x.update_timestamp, reverse=True)
                lines.extend([f"### {heading}", ""])
                for item in section:
                    lines.extend(self._format_item(item))
                lines.append("")

        return "\n".join(lines).rstrip() + "\n"

    def _format_item(self, item: InboxItem) -> list[str]:
        """Format single item line."""
        marker = "🔵 " if item.unread else ""
        meta_parts = [item.status]
        if isinstance(item, WorkItem):
            meta_parts.append(item.work_item_kind.value)
            if item.assignee:
                meta_parts.append(item.assignee.display_name)
        if item.repository:
            meta_parts.append(item.repository)
        meta_parts.append(f"updated {format_timestamp(item.update_timestamp)}")
        if item.prev_update_timestamp:
            meta_parts.append("changed")

        return [f"- {marker}[{item.title}]({item.url}) *{' | '.join(meta_parts)}*"]
