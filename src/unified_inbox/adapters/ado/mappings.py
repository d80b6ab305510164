"""Azure DevOps work item type classification."""

from unified_inbox.core.classifier import ClassificationMapping
from unified_inbox.core.entities import WorkItemKind

ADO_MAPPING = ClassificationMapping(
    type_name_map={
        # Bug/Defect types
        "bug": WorkItemKind.BUG,
        "defect": WorkItemKind.DEFECT,
        "impediment": WorkItemKind.BUG,
        # Feature types
        "epic": WorkItemKind.EPIC,
        "feature": WorkItemKind.FEATURE,
        "user story": WorkItemKind.USER_STORY,
        "product backlog item": WorkItemKind.USER_STORY,
        # Task types
        "task": WorkItemKind.TASK,
        "sub-task": WorkItemKind.SUB_TASK,
        "spike": WorkItemKind.SPIKE,
        # Test types
        "test case": WorkItemKind.TEST,
        "test plan": WorkItemKind.TEST,
        "test suite": WorkItemKind.TEST,
        # Other types
        "issue": WorkItemKind.OTHER,
        "requirement": WorkItemKind.USER_STORY,
        "change request": WorkItemKind.ENHANCEMENT,
        "risk": WorkItemKind.OTHER,
        "review": WorkItemKind.OTHER,
    },
    default_kind=WorkItemKind.TASK,
)
