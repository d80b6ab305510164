"""Business logic use cases."""

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Awaitable, Callable, Optional

from unified_inbox.adapters.factory import create_adapter
from unified_inbox.config import FetchConfig, InstanceConfig, Settings
from unified_inbox.core import (
    ConfigurationError,
    FetchProgress,
    InboxItem,
    InstanceCacheRegistry,
    ItemBatch,
    ItemStore,
    ItemType,
    Pipeline,
    PipelineStatus,
    Project,
    ProjectGroup,
    ProviderAdapter,
    PullRequest,
    StageKind,
    WorkItem,
    group_inbox_items,
    merge_items_with_change_detection,
)

logger = logging.getLogger(__name__)

# Item types whose fetched set is incomplete when a stage of this kind fails
STAGE_ITEM_TYPES: dict[StageKind, frozenset[ItemType]] = {
    StageKind.PROJECTS: frozenset(ItemType),
    StageKind.PULL_REQUESTS: frozenset({ItemType.PULL_REQUEST}),
    StageKind.WORK_ITEMS: frozenset({ItemType.WORK_ITEM}),
    StageKind.PINNED_PROJECT: frozenset({ItemType.WORK_ITEM, ItemType.PIPELINE}),
}

AdapterFactory = Callable[[InstanceConfig, FetchConfig], ProviderAdapter]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class AggregationService:
    """Fetch items stage by stage from one or more provider instances."""

    def __init__(
        self,
        adapters: list[ProviderAdapter],
        pinned_projects: Optional[list[str]] = None,
        fetch_config: Optional[FetchConfig] = None,
        group_by_instance: bool = False,
    ) -> None:
        self.adapters = adapters
        self.pinned_projects = pinned_projects or []
        self.fetch_config = fetch_config or FetchConfig()
        self.group_by_instance = group_by_instance

    @property
    def stages_per_instance(self) -> int:
        # Pull requests + work items + one per pinned project
        return 2 + len(self.pinned_projects)

    async def fetch_inbox_items_progressive(self) -> AsyncIterator[ItemBatch]:
        """Yield one batch per completed stage.

        Each call performs fresh network requests. A failing stage yields an
        empty batch labelled ``(Error)``; a failing project listing skips the
        remaining stages of that instance only.
        """
        total = len(self.adapters) * self.stages_per_instance
        current = 0

        for adapter in self.adapters:
            name = adapter.instance_name

            try:
                start = time.monotonic()
                projects = await adapter.list_projects()
                logger.info("Fetched %d projects from %s in %dms", len(projects), name, _elapsed_ms(start))
            except Exception as e:
                logger.error("Error fetching projects from instance %s: %s", name, e, exc_info=True)
                current += self.stages_per_instance
                yield ItemBatch(
                    items=[],
                    progress=FetchProgress(current, total, f"{name}: Projects (Error)", error=str(e)),
                    stage_kind=StageKind.PROJECTS,
                    instance_id=adapter.instance_id,
                )
                continue

            current += 1
            yield await self._run_stage(
                adapter, StageKind.PULL_REQUESTS, "Pull Requests", current, total,
                lambda: adapter.list_assigned_pull_requests(projects),
            )

            current += 1
            yield await self._run_stage(
                adapter, StageKind.WORK_ITEMS, "Work Items", current, total,
                lambda: adapter.list_assigned_work_items(projects),
            )

            for project_id in self.pinned_projects:
                current += 1
                yield await self._fetch_pinned_project(adapter, projects, project_id, current, total)

    async def _run_stage(
        self,
        adapter: ProviderAdapter,
        stage_kind: StageKind,
        label: str,
        current: int,
        total: int,
        fetch: Callable[[], Awaitable[list[InboxItem]]],
    ) -> ItemBatch:
        stage = f"{adapter.instance_name}: {label}"
        try:
            start = time.monotonic()
            items = await fetch()
            logger.info("Fetched %d %s from %s in %dms", len(items), label, adapter.instance_name, _elapsed_ms(start))
            return ItemBatch(items, FetchProgress(current, total, stage), stage_kind, adapter.instance_id)
        except Exception as e:
            logger.error("Error fetching %s from instance %s: %s", label, adapter.instance_name, e, exc_info=True)
            return ItemBatch(
                [], FetchProgress(current, total, f"{stage} (Error)", error=str(e)), stage_kind, adapter.instance_id
            )

    async def _fetch_pinned_project(
        self,
        adapter: ProviderAdapter,
        projects: list[Project],
        project_id: str,
        current: int,
        total: int,
    ) -> ItemBatch:
        name = adapter.instance_name
        project = next((p for p in projects if p.id == project_id), None)
        if project is None:
            return ItemBatch(
                [], FetchProgress(current, total, f"{name}: {project_id} (Not Found)"),
                StageKind.PINNED_PROJECT, adapter.instance_id,
            )

        start = time.monotonic()
        since = datetime.now(timezone.utc) - timedelta(hours=self.fetch_config.new_items_window_hours)
        runs, new_items = await asyncio.gather(
            adapter.list_pipeline_runs(project, self.fetch_config.pipeline_runs_top),
            adapter.list_new_work_items_since(project, since),
            return_exceptions=True,
        )

        items: list[InboxItem] = []
        errors: list[str] = []
        if isinstance(runs, BaseException):
            logger.error("Error fetching pipeline runs for %s in %s: %s", project.name, name, runs)
            errors.append(str(runs))
        else:
            active = [run for run in runs if run.status != PipelineStatus.QUEUED.value]
            items.extend(active[:self.fetch_config.pipeline_runs_kept])

        if isinstance(new_items, BaseException):
            logger.error("Error fetching new work items for %s in %s: %s", project.name, name, new_items)
            errors.append(str(new_items))
        else:
            items.extend(new_items)

        logger.info("Completed pinned project %s in %dms (%d items)", project.name, _elapsed_ms(start), len(items))

        stage = f"{name}: {project.name}"
        if len(errors) == 2:
            stage += " (Error)"
        return ItemBatch(
            items,
            FetchProgress(current, total, stage, error="; ".join(errors) or None),
            StageKind.PINNED_PROJECT,
            adapter.instance_id,
        )

    async def fetch_all_inbox_items(self) -> list[InboxItem]:
        items: list[InboxItem] = []
        async for batch in self.fetch_inbox_items_progressive():
            items.extend(batch.items)
        return items

    def group_inbox_items(self, items: list[InboxItem]) -> dict[str, ProjectGroup]:
        return group_inbox_items(items, self.group_by_instance)

    async def fetch_and_group_inbox_items(self) -> dict[str, ProjectGroup]:
        return self.group_inbox_items(await self.fetch_all_inbox_items())

    async def aclose(self) -> None:
        for adapter in self.adapters:
            await adapter.aclose()


class InboxBroker:
    """Fan out fetches over every configured instance and keep read state."""

    def __init__(
        self,
        settings: Settings,
        store: ItemStore,
        adapter_factory: AdapterFactory = create_adapter,
    ) -> None:
        self.settings = settings
        self.adapter_factory = adapter_factory
        self.caches = InstanceCacheRegistry(store)

    def get_instances(self) -> list[InstanceConfig]:
        return self.settings.all_instances()

    def get_instance(self, instance_id: str) -> Optional[InstanceConfig]:
        return self.settings.get_instance(instance_id)

    def is_configured(self) -> bool:
        return len(self.get_instances()) > 0

    def enabled_instances(self) -> list[InstanceConfig]:
        instances = []
        for instance in self.get_instances():
            if not instance.enabled:
                continue
            if not instance.personal_access_token:
                logger.warning("No token configured for instance %s, skipping", instance.name)
                continue
            if instance.is_expired():
                logger.warning("Token of instance %s expired at %s, skipping", instance.name, instance.expires_at)
                continue
            instances.append(instance)
        return instances

    def _require_instance(self, instance_id: str) -> InstanceConfig:
        instance = self.get_instance(instance_id)
        if instance is None:
            raise ConfigurationError(f"Instance {instance_id} not found")
        return instance

    def _aggregation_for(self, instance: InstanceConfig) -> AggregationService:
        adapter = self.adapter_factory(instance, self.settings.fetch)
        return AggregationService(
            [adapter],
            pinned_projects=self.settings.pinned_projects_for(instance),
            fetch_config=self.settings.fetch,
            group_by_instance=self.settings.group_by_instance,
        )

    async def _stream_instance(self, instance: InstanceConfig) -> AsyncIterator[ItemBatch]:
        """Stream one instance's batches with cached read state applied.

        The cache is only updated once every stage has completed. The instance
        lock guards that merge alone, so items can be marked while batches are
        consumed, and a stream abandoned early leaves the cache untouched.
        """
        cache = self.caches.get(instance.id)
        service = self._aggregation_for(instance)
        fresh: list[InboxItem] = []
        authoritative = set(ItemType)
        try:
            async for batch in service.fetch_inbox_items_progressive():
                fresh.extend(batch.items)
                if batch.progress.failed:
                    authoritative -= STAGE_ITEM_TYPES[batch.stage_kind]
                merged = merge_items_with_change_detection(cache.all_items, batch.items)
                yield replace(batch, items=merged.items)
        finally:
            await service.aclose()

        async with self.caches.lock(instance.id):
            results = cache.apply_fetch(fresh, authoritative)
            logger.info(
                "[%s] Merge results: %s",
                instance.name,
                ", ".join(
                    f"{t.value}: new={r.new_count} updated={r.updated_count} total={len(r.items)}"
                    for t, r in results.items()
                ),
            )

    async def _fetch_instance(self, instance: InstanceConfig) -> list[InboxItem]:
        async for _ in self._stream_instance(instance):
            pass
        return self.caches.get(instance.id).all_items

    async def fetch_all_items(self) -> list[InboxItem]:
        """Fetch every enabled instance concurrently, collecting successes."""
        instances = self.enabled_instances()
        results = await asyncio.gather(
            *(self._fetch_instance(instance) for instance in instances), return_exceptions=True
        )

        items: list[InboxItem] = []
        for instance, result in zip(instances, results):
            if isinstance(result, BaseException):
                logger.error("Error fetching from instance %s: %s", instance.name, result)
                continue
            items.extend(result)
        return items

    async def fetch_items_for_instance(self, instance_id: str) -> list[InboxItem]:
        return await self._fetch_instance(self._require_instance(instance_id))

    async def stream_inbox(self, instance_id: Optional[str] = None) -> AsyncIterator[ItemBatch]:
        """Stream batches from one instance or, one after another, from all."""
        instances = [self._require_instance(instance_id)] if instance_id else self.enabled_instances()
        for instance in instances:
            batches = self._stream_instance(instance)
            try:
                async for batch in batches:
                    yield batch
            finally:
                await batches.aclose()

    async def fetch_and_group(self, instance_id: Optional[str] = None) -> dict[str, ProjectGroup]:
        if instance_id:
            items = await self.fetch_items_for_instance(instance_id)
        else:
            items = await self.fetch_all_items()
        return group_inbox_items(items, self.settings.group_by_instance)

    def get_work_items(self, instance_id: str) -> list[WorkItem]:
        return self.caches.get(self._require_instance(instance_id).id).work_items

    def get_pull_requests(self, instance_id: str) -> list[PullRequest]:
        return self.caches.get(self._require_instance(instance_id).id).pull_requests

    def get_pipelines(self, instance_id: str) -> list[Pipeline]:
        return self.caches.get(self._require_instance(instance_id).id).pipelines

    def get_all_items(self) -> list[InboxItem]:
        return [item for instance in self.get_instances() for item in self.caches.get(instance.id).all_items]

    def unread_count(self, instance_id: Optional[str] = None) -> int:
        if instance_id:
            return self.caches.get(self._require_instance(instance_id).id).unread_count()
        return sum(self.caches.get(instance.id).unread_count() for instance in self.get_instances())

    async def mark_item(self, instance_id: str, item_id: str, unread: bool) -> bool:
        """Set an item's unread flag and persist the instance's item set."""
        instance = self._require_instance(instance_id)
        async with self.caches.lock(instance.id):
            return self.caches.get(instance.id).set_unread(item_id, unread)
