"""Core domain entities."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from unified_inbox.core.errors import MalformedPayloadError


class ItemType(str, Enum):
    """Type tag of a normalized inbox item."""

    WORK_ITEM = "workItem"
    PULL_REQUEST = "pullRequest"
    PIPELINE = "pipeline"


class WorkItemKind(str, Enum):
    """Closed taxonomy work items are classified into."""

    BUG = "bug"
    DEFECT = "defect"
    FEATURE = "feature"
    ENHANCEMENT = "enhancement"
    EPIC = "epic"
    USER_STORY = "userStory"
    TASK = "task"
    SUB_TASK = "subTask"
    SPIKE = "spike"
    DOCUMENTATION = "documentation"
    IMPROVEMENT = "improvement"
    REFACTOR = "refactor"
    TECH_DEBT = "techDebt"
    QUESTION = "question"
    RESEARCH = "research"
    TEST = "test"
    OTHER = "other"


class PullRequestStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


class PipelineStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    QUEUED = "queued"


class StageKind(str, Enum):
    """Fetch stage a batch was produced by."""

    PROJECTS = "projects"
    PULL_REQUESTS = "pullRequests"
    WORK_ITEMS = "workItems"
    PINNED_PROJECT = "pinnedProject"


@dataclass
class Assignee:
    """Person an item is assigned to."""

    display_name: str
    name: Optional[str] = None
    image_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "displayName": self.display_name,
            "name": self.name,
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Assignee":
        return cls(
            display_name=data["displayName"],
            name=data.get("name"),
            image_url=data.get("imageUrl"),
        )


@dataclass
class InboxItem:
    """Fields shared by every normalized item.

    ``id`` is derived from provider, item type, instance and native id, and
    is the join key for change detection and read state.
    """

    id: str
    title: str
    url: str
    item_status: str
    status: str
    created_timestamp: int
    update_timestamp: int
    organization: str
    project: str
    repository: Optional[str] = None
    description: str = ""
    prev_update_timestamp: Optional[int] = None
    unread: bool = True

    type = ItemType.WORK_ITEM

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Item id cannot be empty")
        if not self.title:
            raise ValueError("Title cannot be empty")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase shape consumers and the cache use."""
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "itemStatus": self.item_status,
            "status": self.status,
            "createdTimestamp": self.created_timestamp,
            "updateTimestamp": self.update_timestamp,
            "prevUpdateTimestamp": self.prev_update_timestamp,
            "unread": self.unread,
            "organization": self.organization,
            "project": self.project,
            "repository": self.repository,
        }

    @classmethod
    def _common_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": data["id"],
            "title": data["title"],
            "url": data["url"],
            "item_status": data.get("itemStatus", ""),
            "status": data["status"],
            "created_timestamp": int(data["createdTimestamp"]),
            "update_timestamp": int(data["updateTimestamp"]),
            "organization": data.get("organization", ""),
            "project": data.get("project", ""),
            "repository": data.get("repository"),
            "description": data.get("description") or "",
            "prev_update_timestamp": data.get("prevUpdateTimestamp"),
            "unread": data.get("unread", True),
        }


@dataclass
class WorkItem(InboxItem):
    work_item_kind: WorkItemKind = WorkItemKind.OTHER
    assignee: Optional[Assignee] = None

    type = ItemType.WORK_ITEM

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["workItemKind"] = self.work_item_kind.value
        data["assignee"] = self.assignee.to_dict() if self.assignee else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkItem":
        assignee = data.get("assignee")
        return cls(
            **cls._common_kwargs(data),
            work_item_kind=WorkItemKind(data.get("workItemKind", WorkItemKind.OTHER.value)),
            assignee=Assignee.from_dict(assignee) if assignee else None,
        )


@dataclass
class PullRequest(InboxItem):
    type = ItemType.PULL_REQUEST

    def __post_init__(self) -> None:
        super().__post_init__()
        self.status = PullRequestStatus(self.status).value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PullRequest":
        return cls(**cls._common_kwargs(data))


@dataclass
class Pipeline(InboxItem):
    type = ItemType.PIPELINE

    def __post_init__(self) -> None:
        super().__post_init__()
        self.status = PipelineStatus(self.status).value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Pipeline":
        return cls(**cls._common_kwargs(data))


ITEM_CLASSES: dict[ItemType, type[InboxItem]] = {
    ItemType.WORK_ITEM: WorkItem,
    ItemType.PULL_REQUEST: PullRequest,
    ItemType.PIPELINE: Pipeline,
}


def item_from_dict(data: dict[str, Any]) -> InboxItem:
    """Rebuild a typed item from its serialized form."""
    try:
        item_type = ItemType(data.get("type"))
    except ValueError:
        raise MalformedPayloadError(f"Unknown item type: {data.get('type')!r}") from None

    try:
        return ITEM_CLASSES[item_type].from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedPayloadError(f"Invalid {item_type.value} payload: {e}") from e


@dataclass
class Project:
    """Provider project (ADO project or GitHub repository)."""

    id: str
    name: str
    url: str = ""
    description: str = ""


@dataclass
class FetchProgress:
    """Coarse progress of an aggregation run."""

    current: int
    total: int
    stage: str
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {"current": self.current, "total": self.total, "stage": self.stage}


@dataclass
class ItemBatch:
    """Items produced by one completed fetch stage."""

    items: list[InboxItem]
    progress: FetchProgress
    stage_kind: StageKind
    instance_id: str = ""


@dataclass
class ProjectGroup:
    """Items grouped under one project."""

    project: str
    instance: str
    items: list[InboxItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "instance": self.instance,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class MergeResult:
    """Outcome of reconciling fresh items against cached ones."""

    items: list[InboxItem]
    has_changes: bool
    new_count: int
    updated_count: int


@dataclass
class ClassificationResult:
    kind: WorkItemKind
    confidence: float
    method: str
    details: str = ""
