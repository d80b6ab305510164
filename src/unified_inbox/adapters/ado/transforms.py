"""Transform Azure DevOps payloads into normalized inbox items."""

from typing import Any, Optional
from urllib.parse import quote, urlsplit

from unified_inbox.adapters.ado.mappings import ADO_MAPPING
from unified_inbox.adapters.parsing import html_to_text, require, to_epoch_ms
from unified_inbox.config import AdoInstanceConfig
from unified_inbox.core.classifier import create_classifier
from unified_inbox.core.errors import MalformedPayloadError, TransformError
from unified_inbox.core.entities import (
    Assignee,
    Pipeline,
    PipelineStatus,
    PullRequest,
    PullRequestStatus,
    WorkItem,
)

_classifier = create_classifier(ADO_MAPPING)


def pull_request_status(status: str) -> PullRequestStatus:
    """Map an ADO pull request status to the normalized status."""
    if status == "completed":
        return PullRequestStatus.MERGED
    if status == "abandoned":
        return PullRequestStatus.CLOSED
    return PullRequestStatus.OPEN


def pipeline_status(state: str, result: Optional[str]) -> PipelineStatus:
    """Map an ADO run state/result pair to the normalized status."""
    if state == "inProgress":
        return PipelineStatus.RUNNING
    if state == "completed":
        return PipelineStatus.FAILED if result == "failed" else PipelineStatus.COMPLETED
    return PipelineStatus.QUEUED


def pull_request_web_url(pr: dict[str, Any]) -> str:
    """Rebuild the browsable pull request URL from its REST API URL."""
    api_url = require(pr, "url")
    parts = urlsplit(api_url)
    base = f"{parts.scheme}://{parts.netloc}/" if parts.scheme and parts.netloc else "https://dev.azure.com/"
    segments = [s for s in parts.path.split("/") if s]
    if not segments:
        raise MalformedPayloadError(f"Cannot derive organization from {api_url!r}")
    org = segments[0]
    project = require(pr, "repository", "project", "name")
    repository = require(pr, "repository", "name")
    return (
        f"{base}{org}/{quote(project)}/_git/{quote(repository)}"
        f"/pullrequest/{require(pr, 'pullRequestId')}"
    )


def transform_to_pull_request(pr: dict[str, Any], instance: AdoInstanceConfig) -> PullRequest:
    if "pullRequestId" not in pr:
        raise TransformError("Payload is not an ADO pull request")

    created = to_epoch_ms(require(pr, "creationDate"))
    return PullRequest(
        id=f"ado-pr-{instance.id}-{pr['pullRequestId']}",
        title=require(pr, "title"),
        description=pr.get("description") or "",
        item_status=require(pr, "status"),
        status=pull_request_status(pr["status"]),
        created_timestamp=created,
        # ADO pull request listings carry no change date
        update_timestamp=created,
        url=pull_request_web_url(pr),
        organization=instance.name,
        repository=require(pr, "repository", "name"),
        project=require(pr, "repository", "project", "name"),
    )


def _assignee(data: Optional[dict[str, Any]]) -> Optional[Assignee]:
    if not data or not data.get("displayName"):
        return None
    return Assignee(
        display_name=data["displayName"],
        name=data.get("uniqueName") or data["displayName"],
        image_url=data.get("imageUrl"),
    )


def transform_to_work_item(
    work_item: dict[str, Any], instance: AdoInstanceConfig, project_name: str
) -> WorkItem:
    native_id = require(work_item, "id")
    fields = require(work_item, "fields")
    title = require(fields, "System.Title")
    html_url = ((work_item.get("_links") or {}).get("html") or {}).get("href")
    url = html_url or f"{instance.resolved_base_url}/{quote(project_name)}/_workitems/edit/{native_id}"

    kind = _classifier.classify(type_name=fields.get("System.WorkItemType"), title=title).kind

    return WorkItem(
        id=f"ado-wi-{instance.id}-{native_id}",
        title=title,
        description=html_to_text(fields.get("System.Description")),
        item_status=require(fields, "System.State"),
        status=fields["System.State"],
        created_timestamp=to_epoch_ms(require(fields, "System.CreatedDate")),
        update_timestamp=to_epoch_ms(require(fields, "System.ChangedDate")),
        url=url,
        organization=instance.name,
        repository=project_name,
        project=project_name,
        work_item_kind=kind,
        assignee=_assignee(fields.get("System.AssignedTo")),
    )


def transform_to_pipeline(run: dict[str, Any], instance: AdoInstanceConfig, project_name: str) -> Pipeline:
    state = require(run, "state")
    result = run.get("result")
    created = require(run, "createdDate")

    return Pipeline(
        id=f"ado-pipeline-{instance.id}-{require(run, 'id')}",
        title=f"{require(run, 'pipeline', 'name')} - {require(run, 'name')}",
        item_status=result or state,
        status=pipeline_status(state, result),
        created_timestamp=to_epoch_ms(created),
        update_timestamp=to_epoch_ms(run.get("finishedDate") or created),
        url=require(run, "_links", "web", "href"),
        organization=instance.name,
        repository=project_name,
        project=project_name,
    )
