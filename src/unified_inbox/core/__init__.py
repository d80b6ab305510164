"""Core domain layer."""

from unified_inbox.core.classifier import (
    ClassificationMapping,
    PatternRule,
    WorkItemClassifier,
    create_classifier,
    normalize_labels,
)
from unified_inbox.core.entities import (
    Assignee,
    ClassificationResult,
    FetchProgress,
    InboxItem,
    ItemBatch,
    ItemType,
    MergeResult,
    Pipeline,
    PipelineStatus,
    Project,
    ProjectGroup,
    PullRequest,
    PullRequestStatus,
    StageKind,
    WorkItem,
    WorkItemKind,
    item_from_dict,
)
from unified_inbox.core.errors import (
    ConfigurationError,
    InboxError,
    MalformedPayloadError,
    ProviderApiError,
    TransformError,
)
from unified_inbox.core.grouping import group_inbox_items, group_key
from unified_inbox.core.interfaces import ItemStore, ProviderAdapter
from unified_inbox.core.item_cache import InstanceCache, InstanceCacheRegistry
from unified_inbox.core.merge import has_item_changed, merge_items_with_change_detection

__all__ = [
    "Assignee",
    "ClassificationMapping",
    "ClassificationResult",
    "ConfigurationError",
    "FetchProgress",
    "InboxError",
    "InboxItem",
    "InstanceCache",
    "InstanceCacheRegistry",
    "ItemBatch",
    "ItemStore",
    "ItemType",
    "MalformedPayloadError",
    "MergeResult",
    "PatternRule",
    "Pipeline",
    "PipelineStatus",
    "Project",
    "ProjectGroup",
    "ProviderAdapter",
    "ProviderApiError",
    "PullRequest",
    "PullRequestStatus",
    "StageKind",
    "TransformError",
    "WorkItem",
    "WorkItemClassifier",
    "WorkItemKind",
    "create_classifier",
    "group_inbox_items",
    "group_key",
    "has_item_changed",
    "item_from_dict",
    "merge_items_with_change_detection",
    "normalize_labels",
]
