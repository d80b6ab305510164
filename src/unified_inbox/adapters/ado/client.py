"""Azure DevOps REST client."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Iterable, Optional

import httpx

from unified_inbox.config import AdoInstanceConfig
from unified_inbox.core.errors import ConfigurationError, MalformedPayloadError, ProviderApiError

logger = logging.getLogger(__name__)

API_VERSION = "7.1"
MAX_WORK_ITEM_BATCH = 200

_BUILD_STATES = {
    "completed": "completed",
    "inProgress": "inProgress",
    "cancelling": "canceling",
    "notStarted": "notStarted",
    "postponed": "notStarted",
}


def _wiql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


async def gather_tolerant(tasks: Iterable[Awaitable[Any]], what: str) -> list[Any]:
    """Run tasks concurrently, skipping failures unless every task failed."""
    results = await asyncio.gather(*tasks, return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    for error in errors:
        logger.error("Error fetching %s: %s", what, error)
    if errors and len(errors) == len(results):
        raise errors[0]
    return [r for r in results if not isinstance(r, BaseException)]


class AdoClient:
    """Thin async wrapper over the Azure DevOps REST API."""

    def __init__(
        self,
        instance: AdoInstanceConfig,
        timeout: float = 30.0,
        project_page_size: int = 50,
        work_item_batch_size: int = MAX_WORK_ITEM_BATCH,
        pull_request_concurrency: int = 10,
        pipeline_concurrency: int = 3,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not instance.personal_access_token:
            raise ConfigurationError(f"Personal access token is required for ADO instance '{instance.id}'")

        self.instance = instance
        self.base_url = instance.resolved_base_url
        self.user_id = instance.user_id
        self.project_page_size = project_page_size
        self.work_item_batch_size = min(work_item_batch_size, MAX_WORK_ITEM_BATCH)
        self.pull_request_concurrency = pull_request_concurrency
        self.pipeline_concurrency = pipeline_concurrency
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout,
            auth=("", instance.personal_access_token),
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AdoClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        query = {"api-version": API_VERSION, **(params or {})}

        try:
            response = await self._client.request(method, url, params=query, json=json)
        except httpx.HTTPError as e:
            raise ProviderApiError(f"ADO request to {url} failed: {e}", url=url) from e

        if not 200 <= response.status_code < 300:
            raise ProviderApiError(
                f"ADO API error {response.status_code} for {url}",
                status_code=response.status_code,
                url=url,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedPayloadError(f"ADO returned invalid JSON for {url}") from e
        if not isinstance(data, dict):
            raise MalformedPayloadError(f"Unexpected ADO response shape for {url}")
        return data

    async def get_projects(self, top: Optional[int] = None, skip: int = 0) -> list[dict[str, Any]]:
        """Fetch one page of projects."""
        data = await self._request(
            "GET", "_apis/projects", params={"$top": top or self.project_page_size, "$skip": skip}
        )
        return data.get("value", [])

    async def get_all_projects(self) -> list[dict[str, Any]]:
        """Fetch all projects, page by page."""
        projects: list[dict[str, Any]] = []
        skip = 0
        while True:
            batch = await self.get_projects(self.project_page_size, skip)
            projects.extend(batch)
            if len(batch) < self.project_page_size:
                break
            skip += self.project_page_size
        return projects

    async def _project_pull_requests(self, project_id: str, criteria: dict[str, str]) -> list[dict[str, Any]]:
        params = {"searchCriteria.status": "active"}
        params.update({f"searchCriteria.{key}": value for key, value in criteria.items()})
        data = await self._request("GET", f"{project_id}/_apis/git/pullrequests", params=params)
        return data.get("value", [])

    async def get_pull_requests_assigned_to_me(self, projects: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Active pull requests the configured user created or reviews."""
        if not self.user_id:
            logger.warning(
                "user_id is not configured for ADO instance %s, skipping pull requests", self.instance.name
            )
            return []

        semaphore = asyncio.Semaphore(self.pull_request_concurrency)

        async def fetch(project: dict[str, Any]) -> list[dict[str, Any]]:
            async with semaphore:
                reviewer_prs, creator_prs = await asyncio.gather(
                    self._project_pull_requests(project["id"], {"reviewerId": self.user_id}),
                    self._project_pull_requests(project["id"], {"creatorId": self.user_id}),
                )
            unique = {pr["pullRequestId"]: pr for pr in [*reviewer_prs, *creator_prs]}
            return list(unique.values())

        batches = await gather_tolerant((fetch(p) for p in projects), "pull requests") if projects else []

        pull_requests = []
        for pr in (pr for batch in batches for pr in batch):
            is_creator = (pr.get("createdBy") or {}).get("id") == self.user_id
            is_reviewer = any(r.get("id") == self.user_id for r in pr.get("reviewers") or [])
            if is_creator or is_reviewer:
                pull_requests.append(pr)
        return pull_requests

    async def query_work_item_ids(self, query: str) -> list[int]:
        data = await self._request("POST", "_apis/wit/wiql", params={"timePrecision": "true"}, json={"query": query})
        return [wi["id"] for wi in data.get("workItems", [])]

    async def get_work_items_by_ids(self, work_item_ids: list[int]) -> list[dict[str, Any]]:
        """Fetch work item details, at most 200 ids per request."""
        work_items: list[dict[str, Any]] = []
        for start in range(0, len(work_item_ids), self.work_item_batch_size):
            batch = work_item_ids[start:start + self.work_item_batch_size]
            data = await self._request(
                "GET",
                "_apis/wit/workitems",
                params={"ids": ",".join(str(i) for i in batch), "$expand": "links"},
            )
            work_items.extend(data.get("value", []))
        return work_items

    def assigned_work_items_query(self, project_names: Optional[list[str]] = None) -> str:
        if self.instance.custom_work_item_query:
            return self.instance.custom_work_item_query

        state_filter = " ".join(
            f"AND [System.State] <> {_wiql_literal(state)}" for state in self.instance.ignored_work_item_states
        )
        project_filter = ""
        if project_names:
            names = ", ".join(_wiql_literal(name) for name in project_names)
            project_filter = f"AND [System.TeamProject] IN ({names})"

        return (
            "SELECT [System.Id], [System.Title], [System.State], [System.WorkItemType], "
            "[System.AssignedTo], [System.CreatedDate], [System.ChangedDate] "
            "FROM WorkItems WHERE [System.AssignedTo] = @Me "
            f"{state_filter} {project_filter} "
            "ORDER BY [System.ChangedDate] DESC"
        )

    async def get_work_items_assigned_to_me(self, project_names: Optional[list[str]] = None) -> list[dict[str, Any]]:
        ids = await self.query_work_item_ids(self.assigned_work_items_query(project_names))
        if not ids:
            return []
        return await self.get_work_items_by_ids(ids)

    async def get_new_work_items_since(self, project_name: str, since: datetime) -> list[dict[str, Any]]:
        """Work items created in a project since the given time."""
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        since_text = since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        query = (
            "SELECT [System.Id] FROM WorkItems "
            f"WHERE [System.TeamProject] = {_wiql_literal(project_name)} "
            f"AND [System.CreatedDate] >= {_wiql_literal(since_text)} "
            "ORDER BY [System.CreatedDate] DESC"
        )
        ids = await self.query_work_item_ids(query)
        if not ids:
            return []
        return await self.get_work_items_by_ids(ids)

    def _build_to_run(self, build: dict[str, Any], project_id: str) -> dict[str, Any]:
        fallback_url = f"{self.base_url}/{project_id}/_build/results?buildId={build['id']}"
        definition = build.get("definition") or {}
        result = build.get("result")
        return {
            "id": build["id"],
            "name": build.get("buildNumber") or str(build["id"]),
            "state": _BUILD_STATES.get(build.get("status", ""), "inProgress"),
            "result": result if result and result != "none" else None,
            "createdDate": build.get("queueTime"),
            "finishedDate": build.get("finishTime"),
            "url": build.get("url") or fallback_url,
            "pipeline": {"id": definition.get("id"), "name": definition.get("name", "")},
            "_links": {"web": {"href": ((build.get("_links") or {}).get("web") or {}).get("href") or fallback_url}},
        }

    async def get_pipeline_runs(self, project_ids: list[str], top: int = 10) -> list[dict[str, Any]]:
        """Recent pipeline runs for the given projects, three projects at a time."""
        semaphore = asyncio.Semaphore(self.pipeline_concurrency)

        async def fetch(project_id: str) -> list[dict[str, Any]]:
            async with semaphore:
                data = await self._request("GET", f"{project_id}/_apis/build/builds", params={"$top": top})
            return [self._build_to_run(build, project_id) for build in data.get("value", [])]

        if not project_ids:
            return []
        batches = await gather_tolerant((fetch(p) for p in project_ids), "pipeline runs")
        return [run for batch in batches for run in batch]
