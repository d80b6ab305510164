"""GitHub REST client."""

from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from unified_inbox.config import GitHubInstanceConfig
from unified_inbox.core.errors import ConfigurationError, MalformedPayloadError, ProviderApiError


class GitHubClient:
    """Search issues and pull requests for one GitHub account."""

    def __init__(
        self,
        instance: GitHubInstanceConfig,
        timeout: float = 30.0,
        per_page: int = 100,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not instance.personal_access_token:
            raise ConfigurationError(f"Personal access token is required for GitHub instance '{instance.id}'")

        self.token = instance.personal_access_token
        self.username = instance.username
        self.api_base = instance.api_url.rstrip("/")
        self.per_page = per_page
        self._client = http_client or httpx.AsyncClient(timeout=timeout, headers=self._get_headers())

    def _get_headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {self.token}",
        }

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        url = f"{self.api_base}/{path.lstrip('/')}"
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise ProviderApiError(f"GitHub request to {url} failed: {e}", url=url) from e

        if response.status_code != 200:
            message = f"GitHub API error {response.status_code} for {url}"
            if response.status_code == 403:
                message += " (rate limit or missing scope)"
            raise ProviderApiError(message, status_code=response.status_code, url=url)

        try:
            return response.json()
        except ValueError as e:
            raise MalformedPayloadError(f"GitHub returned invalid JSON for {url}") from e

    async def search_issues(self, query: str) -> list[dict[str, Any]]:
        data = await self._get("search/issues", params={"q": query, "per_page": self.per_page})
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise MalformedPayloadError("GitHub search response has no 'items' list")
        return data["items"]

    async def get_repositories(self) -> list[dict[str, Any]]:
        data = await self._get("user/repos", params={"sort": "updated", "per_page": self.per_page})
        if not isinstance(data, list):
            raise MalformedPayloadError("GitHub repository listing is not a list")
        return data

    async def get_pull_requests_review_requested(self) -> list[dict[str, Any]]:
        return await self.search_issues(f"is:pr is:open review-requested:{self.username}")

    async def get_pull_requests_created_by_me(self) -> list[dict[str, Any]]:
        return await self.search_issues(f"is:pr is:open author:{self.username}")

    async def get_issues_assigned_to_me(self) -> list[dict[str, Any]]:
        return await self.search_issues(f"is:issue is:open assignee:{self.username}")

    async def get_issues_created_since(self, full_name: str, since: datetime) -> list[dict[str, Any]]:
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        since_text = since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return await self.search_issues(f"repo:{full_name} is:issue created:>={since_text}")
