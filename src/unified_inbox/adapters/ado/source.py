"""Azure DevOps provider adapter."""

import logging
from datetime import datetime
from typing import Any, Optional

from unified_inbox.adapters.ado.client import AdoClient
from unified_inbox.adapters.ado.transforms import (
    transform_to_pipeline,
    transform_to_pull_request,
    transform_to_work_item,
)
from unified_inbox.config import AdoInstanceConfig, FetchConfig
from unified_inbox.core import Pipeline, Project, ProviderAdapter, PullRequest, WorkItem

logger = logging.getLogger(__name__)


def resolve_project(work_item: dict[str, Any], projects: list[Project]) -> Optional[Project]:
    """Find the project a work item belongs to.

    Uses ``System.TeamProject`` when present, otherwise the first project whose
    name prefixes the area path.
    """
    fields = work_item.get("fields") or {}
    team_project = fields.get("System.TeamProject")
    if team_project:
        match = next((p for p in projects if p.name == team_project), None)
        if match:
            return match

    area_path = fields.get("System.AreaPath") or ""
    root = area_path.split("\\")[0]
    exact = next((p for p in projects if p.name == root), None)
    if exact:
        return exact
    return next((p for p in projects if area_path.startswith(p.name)), None)


class AdoAdapter(ProviderAdapter):
    """Fetch and normalize items for one Azure DevOps instance."""

    def __init__(
        self,
        instance: AdoInstanceConfig,
        fetch_config: Optional[FetchConfig] = None,
        client: Optional[AdoClient] = None,
    ) -> None:
        fetch_config = fetch_config or FetchConfig()
        self.instance = instance
        self.instance_id = instance.id
        self.instance_name = instance.name
        self.client = client or AdoClient(
            instance,
            timeout=fetch_config.request_timeout,
            project_page_size=fetch_config.project_page_size,
            work_item_batch_size=fetch_config.work_item_batch_size,
            pull_request_concurrency=fetch_config.pull_request_concurrency,
            pipeline_concurrency=fetch_config.pipeline_concurrency,
        )

    async def list_projects(self) -> list[Project]:
        projects = await self.client.get_all_projects()
        return [
            Project(
                id=p["id"],
                name=p["name"],
                url=p.get("url", ""),
                description=p.get("description") or "",
            )
            for p in projects
        ]

    async def list_assigned_pull_requests(self, projects: list[Project]) -> list[PullRequest]:
        raw = await self.client.get_pull_requests_assigned_to_me([{"id": p.id, "name": p.name} for p in projects])
        return [transform_to_pull_request(pr, self.instance) for pr in raw]

    async def list_assigned_work_items(self, projects: list[Project]) -> list[WorkItem]:
        raw = await self.client.get_work_items_assigned_to_me()
        items = []
        for work_item in raw:
            project = resolve_project(work_item, projects)
            if project is None:
                logger.debug("No project found for work item %s in %s", work_item.get("id"), self.instance_name)
                continue
            items.append(transform_to_work_item(work_item, self.instance, project.name))
        return items

    async def list_pipeline_runs(self, project: Project, top: int = 10) -> list[Pipeline]:
        runs = await self.client.get_pipeline_runs([project.id], top)
        return [transform_to_pipeline(run, self.instance, project.name) for run in runs]

    async def list_new_work_items_since(self, project: Project, since: datetime) -> list[WorkItem]:
        raw = await self.client.get_new_work_items_since(project.name, since)
        return [transform_to_work_item(wi, self.instance, project.name) for wi in raw]

    async def aclose(self) -> None:
        await self.client.aclose()
