"""Tests for core entities."""

import pytest

from unified_inbox.core import (
    Assignee,
    FetchProgress,
    ItemType,
    MalformedPayloadError,
    Pipeline,
    ProjectGroup,
    PullRequest,
    WorkItem,
    WorkItemKind,
    item_from_dict,
)


def make_work_item(**overrides) -> WorkItem:
    values = dict(
        id="ado-wi-inst-1",
        title="Fix login",
        url="https://dev.azure.com/org/Proj/_workitems/edit/1",
        item_status="Active",
        status="Active",
        created_timestamp=1_700_000_000_000,
        update_timestamp=1_700_000_100_000,
        organization="Contoso",
        project="Proj",
        repository="Proj",
        work_item_kind=WorkItemKind.BUG,
        assignee=Assignee(display_name="Sam Doe", name="sam@contoso.com"),
    )
    values.update(overrides)
    return WorkItem(**values)


def test_work_item_creation() -> None:
    """Test creating a valid work item."""
    item = make_work_item()

    assert item.type == ItemType.WORK_ITEM
    assert item.unread is True
    assert item.prev_update_timestamp is None
    assert item.work_item_kind == WorkItemKind.BUG


def test_item_validation() -> None:
    """Test item validation."""
    with pytest.raises(ValueError, match="Title cannot be empty"):
        make_work_item(title="")

    with pytest.raises(ValueError, match="Item id cannot be empty"):
        make_work_item(id="")


def test_pull_request_status_is_normalized() -> None:
    """Test pull request status must be one of the normalized values."""
    pr = PullRequest(
        id="gh-pr-gh1-5",
        title="Add feature",
        url="https://github.com/o/r/pull/5",
        item_status="open",
        status="open",
        created_timestamp=1,
        update_timestamp=2,
        organization="GitHub",
        project="r",
    )
    assert pr.type == ItemType.PULL_REQUEST
    assert pr.status == "open"

    with pytest.raises(ValueError):
        PullRequest(
            id="gh-pr-gh1-6",
            title="Bad",
            url="u",
            item_status="weird",
            status="weird",
            created_timestamp=1,
            update_timestamp=2,
            organization="GitHub",
            project="r",
        )


def test_to_dict_uses_camel_case() -> None:
    """Test serialized items use the camelCase wire keys."""
    data = make_work_item(prev_update_timestamp=5).to_dict()

    assert data["type"] == "workItem"
    assert data["createdTimestamp"] == 1_700_000_000_000
    assert data["updateTimestamp"] == 1_700_000_100_000
    assert data["prevUpdateTimestamp"] == 5
    assert data["workItemKind"] == "bug"
    assert data["assignee"] == {"displayName": "Sam Doe", "name": "sam@contoso.com", "imageUrl": None}


def test_item_from_dict_dispatches_on_type() -> None:
    """Test deserialization rebuilds the right variant."""
    work_item = make_work_item(unread=False)
    pipeline = Pipeline(
        id="ado-pipeline-inst-9",
        title="CI - 20240101.1",
        url="https://dev.azure.com/org/Proj/_build/results?buildId=9",
        item_status="succeeded",
        status="completed",
        created_timestamp=1,
        update_timestamp=2,
        organization="Contoso",
        project="Proj",
    )

    restored_work_item = item_from_dict(work_item.to_dict())
    restored_pipeline = item_from_dict(pipeline.to_dict())

    assert isinstance(restored_work_item, WorkItem)
    assert restored_work_item == work_item
    assert isinstance(restored_pipeline, Pipeline)
    assert restored_pipeline.status == "completed"


def test_item_from_dict_rejects_bad_payloads() -> None:
    """Test unknown tags and missing fields raise MalformedPayloadError."""
    with pytest.raises(MalformedPayloadError, match="Unknown item type"):
        item_from_dict({"type": "commit", "id": "x"})

    data = make_work_item().to_dict()
    del data["title"]
    with pytest.raises(MalformedPayloadError):
        item_from_dict(data)


def test_fetch_progress_failed() -> None:
    """Test progress reports failure only when an error is set."""
    ok = FetchProgress(current=1, total=4, stage="Contoso: Pull Requests")
    failed = FetchProgress(current=1, total=4, stage="Contoso: Pull Requests (Error)", error="boom")

    assert not ok.failed
    assert failed.failed
    assert failed.to_dict() == {"current": 1, "total": 4, "stage": "Contoso: Pull Requests (Error)"}


def test_project_group_to_dict() -> None:
    """Test project group serialization."""
    group = ProjectGroup(project="Proj", instance="Contoso", items=[make_work_item()])

    data = group.to_dict()

    assert data["project"] == "Proj"
    assert data["instance"] == "Contoso"
    assert [item["id"] for item in data["items"]] == ["ado-wi-inst-1"]
