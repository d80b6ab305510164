"""Transform GitHub issue search results into normalized inbox items."""

from typing import Any, Optional

from unified_inbox.adapters.github.mappings import GITHUB_MAPPING
from unified_inbox.adapters.parsing import require, to_epoch_ms
from unified_inbox.config import GitHubInstanceConfig
from unified_inbox.core.classifier import create_classifier, normalize_labels
from unified_inbox.core.entities import Assignee, PullRequest, PullRequestStatus, WorkItem
from unified_inbox.core.errors import TransformError

_classifier = create_classifier(GITHUB_MAPPING)


def is_pull_request(item: dict[str, Any]) -> bool:
    return bool(item.get("pull_request"))


def repository_name(repository_url: str) -> str:
    return repository_url.rstrip("/").split("/")[-1]


def pull_request_status(item: dict[str, Any]) -> PullRequestStatus:
    if item.get("state") == "closed":
        merged_at = (item.get("pull_request") or {}).get("merged_at")
        return PullRequestStatus.MERGED if merged_at else PullRequestStatus.CLOSED
    return PullRequestStatus.OPEN


def _assignee(user: Optional[dict[str, Any]]) -> Optional[Assignee]:
    if not user or not user.get("login"):
        return None
    return Assignee(display_name=user["login"], name=user["login"], image_url=user.get("avatar_url"))


def _organization(instance: GitHubInstanceConfig) -> str:
    return instance.name or "GitHub"


def transform_to_pull_request(item: dict[str, Any], instance: GitHubInstanceConfig) -> PullRequest:
    if not is_pull_request(item):
        raise TransformError(f"Item {item.get('id')} is not a pull request")

    repository = repository_name(require(item, "repository_url"))
    return PullRequest(
        id=f"gh-pr-{instance.id}-{require(item, 'id')}",
        title=require(item, "title"),
        description=item.get("body") or "",
        item_status=require(item, "state"),
        status=pull_request_status(item),
        created_timestamp=to_epoch_ms(require(item, "created_at")),
        update_timestamp=to_epoch_ms(require(item, "updated_at")),
        url=require(item, "html_url"),
        organization=_organization(instance),
        repository=repository,
        # For GitHub, project and repository are the same
        project=repository,
    )


def transform_to_work_item(item: dict[str, Any], instance: GitHubInstanceConfig) -> WorkItem:
    if is_pull_request(item):
        raise TransformError(f"Item {item.get('id')} is a pull request, not an issue")

    repository = repository_name(require(item, "repository_url"))
    title = require(item, "title")
    kind = _classifier.classify(labels=normalize_labels(item.get("labels")), title=title).kind

    return WorkItem(
        id=f"gh-issue-{instance.id}-{require(item, 'id')}",
        title=title,
        description=item.get("body") or "",
        item_status=require(item, "state"),
        status=item["state"],
        created_timestamp=to_epoch_ms(require(item, "created_at")),
        update_timestamp=to_epoch_ms(require(item, "updated_at")),
        url=require(item, "html_url"),
        organization=_organization(instance),
        repository=repository,
        project=repository,
        work_item_kind=kind,
        assignee=_assignee(item.get("assignee")),
    )
