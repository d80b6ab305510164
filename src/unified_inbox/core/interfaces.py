"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from unified_inbox.core.entities import Pipeline, Project, PullRequest, WorkItem


class ProviderAdapter(ABC):
    """Capabilities one configured provider instance exposes to aggregation."""

    instance_id: str
    instance_name: str

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        """List projects (or repositories) visible to the instance."""
        pass

    @abstractmethod
    async def list_assigned_pull_requests(self, projects: list[Project]) -> list[PullRequest]:
        """Pull requests the user created or is asked to review."""
        pass

    @abstractmethod
    async def list_assigned_work_items(self, projects: list[Project]) -> list[WorkItem]:
        """Open work items or issues assigned to the user."""
        pass

    @abstractmethod
    async def list_pipeline_runs(self, project: Project, top: int = 10) -> list[Pipeline]:
        """Recent pipeline runs for a project."""
        pass

    @abstractmethod
    async def list_new_work_items_since(self, project: Project, since: datetime) -> list[WorkItem]:
        """Work items created in a project after ``since``."""
        pass

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""


class ItemStore(ABC):
    """Persistence for per-instance item blobs and unread maps."""

    @abstractmethod
    def load_items(self, instance_id: str) -> Optional[dict[str, Any]]:
        """Load the ``{workItems, pullRequests, pipelines, timestamp}`` blob."""
        pass

    @abstractmethod
    def save_items(self, instance_id: str, items: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def clear_items(self, instance_id: str) -> None:
        pass

    @abstractmethod
    def load_unread_state(self, instance_id: str) -> dict[str, bool]:
        pass

    @abstractmethod
    def save_unread_state(self, instance_id: str, state: dict[str, bool]) -> None:
        pass

    @abstractmethod
    def clear_unread_state(self, instance_id: str) -> None:
        pass

    def update_item_unread_state(self, instance_id: str, item_id: str, unread: bool) -> None:
        """Set one entry of the unread map."""
        state = self.load_unread_state(instance_id)
        state[item_id] = unread
        self.save_unread_state(instance_id, state)
