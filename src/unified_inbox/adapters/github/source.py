"""GitHub provider adapter."""

from datetime import datetime
from typing import Optional

from unified_inbox.adapters.github.client import GitHubClient
from unified_inbox.adapters.github.transforms import (
    is_pull_request,
    transform_to_pull_request,
    transform_to_work_item,
)
from unified_inbox.config import FetchConfig, GitHubInstanceConfig
from unified_inbox.core import Pipeline, Project, ProviderAdapter, PullRequest, WorkItem


class GitHubAdapter(ProviderAdapter):
    """Fetch and normalize issues and pull requests for one GitHub account."""

    def __init__(
        self,
        instance: GitHubInstanceConfig,
        fetch_config: Optional[FetchConfig] = None,
        client: Optional[GitHubClient] = None,
    ) -> None:
        fetch_config = fetch_config or FetchConfig()
        self.instance = instance
        self.instance_id = instance.id
        self.instance_name = instance.name
        self.client = client or GitHubClient(instance, timeout=fetch_config.request_timeout)

    async def list_projects(self) -> list[Project]:
        repos = await self.client.get_repositories()
        return [
            Project(
                id=repo["full_name"],
                name=repo["name"],
                url=repo.get("html_url", ""),
                description=repo.get("description") or "",
            )
            for repo in repos
        ]

    async def list_assigned_pull_requests(self, projects: list[Project]) -> list[PullRequest]:
        review_requested = await self.client.get_pull_requests_review_requested()
        created = await self.client.get_pull_requests_created_by_me()

        pull_requests: dict[str, PullRequest] = {}
        for item in [*review_requested, *created]:
            if is_pull_request(item):
                pr = transform_to_pull_request(item, self.instance)
                pull_requests[pr.id] = pr
        return list(pull_requests.values())

    async def list_assigned_work_items(self, projects: list[Project]) -> list[WorkItem]:
        issues = await self.client.get_issues_assigned_to_me()
        return [transform_to_work_item(item, self.instance) for item in issues if not is_pull_request(item)]

    async def list_pipeline_runs(self, project: Project, top: int = 10) -> list[Pipeline]:
        # GitHub has no pipeline runs in the inbox
        return []

    async def list_new_work_items_since(self, project: Project, since: datetime) -> list[WorkItem]:
        issues = await self.client.get_issues_created_since(project.id, since)
        return [transform_to_work_item(item, self.instance) for item in issues if not is_pull_request(item)]

    async def aclose(self) -> None:
        await self.client.aclose()
