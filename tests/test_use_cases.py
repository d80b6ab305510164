"""Tests for use cases."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest

from unified_inbox.adapters.ado import AdoAdapter
from unified_inbox.adapters.storage import MemoryItemStore
from unified_inbox.config import AdoInstanceConfig, FetchConfig, GitHubInstanceConfig, ProviderConfig, Settings
from unified_inbox.core import (
    ConfigurationError,
    Pipeline,
    Project,
    ProviderApiError,
    PullRequest,
    StageKind,
    WorkItem,
    WorkItemKind,
)
from unified_inbox.use_cases import AggregationService, InboxBroker


def make_work_item(native_id: int, project: str = "Proj", updated: int = 100, org: str = "Contoso",
                   kind: WorkItemKind = WorkItemKind.TASK) -> WorkItem:
    return WorkItem(
        id=f"ado-wi-contoso-{native_id}",
        title=f"Work item {native_id}",
        url=f"https://dev.azure.com/contoso/{project}/_workitems/edit/{native_id}",
        item_status="Active",
        status="Active",
        created_timestamp=1,
        update_timestamp=updated,
        organization=org,
        project=project,
        repository=project,
        work_item_kind=kind,
    )


def make_pr(native_id: int, project: str = "Proj", updated: int = 100) -> PullRequest:
    return PullRequest(
        id=f"ado-pr-contoso-{native_id}",
        title=f"PR {native_id}",
        url=f"https://dev.azure.com/contoso/{project}/_git/repo/pullrequest/{native_id}",
        item_status="active",
        status="open",
        created_timestamp=1,
        update_timestamp=updated,
        organization="Contoso",
        project=project,
        repository="repo",
    )


def make_pipeline(native_id: int, status: str = "completed") -> Pipeline:
    return Pipeline(
        id=f"ado-pipeline-contoso-{native_id}",
        title=f"CI - {native_id}",
        url=f"https://dev.azure.com/contoso/Proj/_build/results?buildId={native_id}",
        item_status=status,
        status=status,
        created_timestamp=1,
        update_timestamp=2,
        organization="Contoso",
        project="Proj",
    )


def make_adapter(instance_id: str = "contoso", name: str = "Contoso") -> AsyncMock:
    adapter = AsyncMock()
    adapter.instance_id = instance_id
    adapter.instance_name = name
    adapter.list_projects.return_value = [Project(id="p1", name="Proj")]
    adapter.list_assigned_pull_requests.return_value = [make_pr(1)]
    adapter.list_assigned_work_items.return_value = [make_work_item(1)]
    adapter.list_pipeline_runs.return_value = []
    adapter.list_new_work_items_since.return_value = []
    return adapter


async def collect(service: AggregationService) -> list:
    return [batch async for batch in service.fetch_inbox_items_progressive()]


@pytest.mark.asyncio
async def test_progressive_fetch_stages() -> None:
    """Test one batch per stage with labels and running progress."""
    adapter = make_adapter()
    adapter.list_pipeline_runs.return_value = [
        make_pipeline(1, "queued"),
        *[make_pipeline(i, "running" if i % 2 else "completed") for i in range(2, 9)],
    ]
    adapter.list_new_work_items_since.return_value = [make_work_item(50)]

    service = AggregationService([adapter], pinned_projects=["p1", "missing"])
    batches = await collect(service)

    assert [b.progress.stage for b in batches] == [
        "Contoso: Pull Requests",
        "Contoso: Work Items",
        "Contoso: Proj",
        "Contoso: missing (Not Found)",
    ]
    assert [(b.progress.current, b.progress.total) for b in batches] == [(1, 4), (2, 4), (3, 4), (4, 4)]
    assert [b.stage_kind for b in batches] == [
        StageKind.PULL_REQUESTS, StageKind.WORK_ITEMS, StageKind.PINNED_PROJECT, StageKind.PINNED_PROJECT,
    ]

    pinned = batches[2].items
    pipelines = [i for i in pinned if isinstance(i, Pipeline)]
    assert [p.id for p in pipelines] == [f"ado-pipeline-contoso-{i}" for i in range(2, 7)]
    assert [i.id for i in pinned if isinstance(i, WorkItem)] == ["ado-wi-contoso-50"]
    assert batches[3].items == []
    assert not any(b.progress.failed for b in batches)

    adapter.list_pipeline_runs.assert_called_once_with(Project(id="p1", name="Proj"), 10)
    since = adapter.list_new_work_items_since.call_args.args[1]
    assert timedelta(hours=23, minutes=59) < datetime.now(timezone.utc) - since < timedelta(hours=24, minutes=1)


@pytest.mark.asyncio
async def test_failed_stage_is_isolated() -> None:
    """Test a failing stage yields an error batch while other stages and instances still run."""
    adapter = make_adapter()
    adapter.list_assigned_pull_requests.side_effect = ProviderApiError("HTTP 500")
    other = make_adapter("fabrikam", "Fabrikam")

    batches = await collect(AggregationService([adapter, other]))

    assert batches[0].progress.stage == "Contoso: Pull Requests (Error)"
    assert batches[0].progress.error == "HTTP 500"
    assert batches[0].items == []
    assert batches[1].progress.stage == "Contoso: Work Items"
    assert [i.id for i in batches[1].items] == ["ado-wi-contoso-1"]

    other_batches = [b for b in batches if b.instance_id == "fabrikam"]
    assert [b.progress.stage for b in other_batches] == ["Fabrikam: Pull Requests", "Fabrikam: Work Items"]
    assert all(b.items and not b.progress.failed for b in other_batches)
    assert not any("(Error)" in b.progress.stage for b in other_batches)


@pytest.mark.asyncio
async def test_project_failure_skips_instance_stages() -> None:
    """Test a project listing failure skips only that instance."""
    broken = make_adapter("broken", "Broken")
    broken.list_projects.side_effect = ProviderApiError("HTTP 401")
    healthy = make_adapter()

    batches = await collect(AggregationService([broken, healthy], pinned_projects=["p1"]))

    assert [b.progress.stage for b in batches] == [
        "Broken: Projects (Error)",
        "Contoso: Pull Requests",
        "Contoso: Work Items",
        "Contoso: Proj",
    ]
    assert [b.progress.current for b in batches] == [3, 4, 5, 6]
    assert all(b.progress.total == 6 for b in batches)
    assert batches[0].stage_kind == StageKind.PROJECTS
    broken.list_assigned_pull_requests.assert_not_called()


@pytest.mark.asyncio
async def test_pinned_project_partial_failure() -> None:
    """Test pinned stage keeps whichever half succeeded."""
    adapter = make_adapter()
    adapter.list_pipeline_runs.side_effect = ProviderApiError("HTTP 503")
    adapter.list_new_work_items_since.return_value = [make_work_item(9)]

    batches = await collect(AggregationService([adapter], pinned_projects=["p1"]))
    pinned = batches[2]

    assert pinned.progress.stage == "Contoso: Proj"
    assert pinned.progress.failed
    assert [i.id for i in pinned.items] == ["ado-wi-contoso-9"]


@pytest.mark.asyncio
async def test_pinned_project_total_failure() -> None:
    """Test pinned stage is labelled as error when both fetches fail."""
    adapter = make_adapter()
    adapter.list_pipeline_runs.side_effect = ProviderApiError("HTTP 503")
    adapter.list_new_work_items_since.side_effect = ProviderApiError("HTTP 503")

    batches = await collect(AggregationService([adapter], pinned_projects=["p1"]))

    assert batches[2].progress.stage == "Contoso: Proj (Error)"
    assert batches[2].items == []


@pytest.mark.asyncio
async def test_fetch_and_group_inbox_items() -> None:
    """Test end-to-end fetch groups items by project."""
    adapter = make_adapter()
    adapter.list_assigned_work_items.return_value = [
        make_work_item(1, kind=WorkItemKind.BUG),
        make_work_item(2, kind=WorkItemKind.TASK),
    ]
    adapter.list_assigned_pull_requests.return_value = [make_pr(7, project="Other")]

    groups = await AggregationService([adapter]).fetch_and_group_inbox_items()

    assert set(groups) == {"Proj", "Other"}
    assert [i.work_item_kind for i in groups["Proj"].items] == [WorkItemKind.BUG, WorkItemKind.TASK]
    assert groups["Proj"].instance == "Contoso"
    assert [i.id for i in groups["Other"].items] == ["ado-pr-contoso-7"]


def make_response(data) -> Mock:
    response = Mock()
    response.status_code = 200
    response.json.return_value = data
    return response


def make_raw_work_item(native_id: int, type_name: str) -> dict:
    return {
        "id": native_id,
        "fields": {
            "System.Title": f"{type_name} {native_id}",
            "System.WorkItemType": type_name,
            "System.State": "Active",
            "System.TeamProject": "Proj",
            "System.AreaPath": "Proj",
            "System.CreatedDate": "2024-03-01T10:00:00Z",
            "System.ChangedDate": "2024-03-02T10:00:00Z",
        },
    }


@pytest.mark.asyncio
async def test_ado_payloads_fetched_classified_and_grouped() -> None:
    """Test raw ADO payloads come out as one classified project group."""
    pr = {
        "pullRequestId": 7,
        "title": "Fix login",
        "status": "active",
        "creationDate": "2024-03-01T10:00:00Z",
        "url": "https://dev.azure.com/contoso/p1/_apis/git/repositories/r/pullRequests/7",
        "repository": {"name": "app", "project": {"name": "Proj"}},
        "createdBy": {"id": "someone"},
        "reviewers": [{"id": "me"}],
    }

    async def respond(method, url, params=None, json=None):
        if url.endswith("_apis/projects"):
            return make_response({"value": [{"id": "p1", "name": "Proj"}]})
        if url.endswith("_apis/git/pullrequests"):
            return make_response({"value": [pr] if "searchCriteria.reviewerId" in params else []})
        if url.endswith("_apis/wit/wiql"):
            return make_response({"workItems": [{"id": 1}, {"id": 2}]})
        return make_response({"value": [make_raw_work_item(1, "Bug"), make_raw_work_item(2, "Task")]})

    instance = ado_instance(user_id="me")
    with patch("httpx.AsyncClient") as mock_client:
        mock_client.return_value.request = AsyncMock(side_effect=respond)

        groups = await AggregationService([AdoAdapter(instance)]).fetch_and_group_inbox_items()

    assert list(groups) == ["Proj"]
    items = groups["Proj"].items
    assert len(items) == 3
    assert [i.id for i in items if isinstance(i, PullRequest)] == ["ado-pr-contoso-7"]
    assert [i.work_item_kind for i in items if isinstance(i, WorkItem)] == [WorkItemKind.BUG, WorkItemKind.TASK]


def test_group_by_project_name_merges_instances() -> None:
    """Test same-named projects of two instances share a group unless keyed by instance."""
    items = [make_work_item(1, org="Contoso"), make_work_item(2, org="Fabrikam")]

    assert list(AggregationService([]).group_inbox_items(items)) == ["Proj"]
    assert list(AggregationService([], group_by_instance=True).group_inbox_items(items)) == [
        "Contoso/Proj",
        "Fabrikam/Proj",
    ]


@pytest.mark.asyncio
async def test_aclose_closes_adapters() -> None:
    """Test closing the service closes every adapter."""
    adapters = [make_adapter(), make_adapter("other", "Other")]

    await AggregationService(adapters).aclose()

    for adapter in adapters:
        adapter.aclose.assert_awaited_once()


def make_settings(*instances) -> Settings:
    settings = Settings()
    settings.ado = ProviderConfig(instances=[i for i in instances if isinstance(i, AdoInstanceConfig)])
    settings.github = ProviderConfig(instances=[i for i in instances if isinstance(i, GitHubInstanceConfig)])
    return settings


def ado_instance(instance_id: str = "contoso", name: str = "Contoso", **kwargs) -> AdoInstanceConfig:
    return AdoInstanceConfig(id=instance_id, name=name, organization=instance_id, personal_access_token="pat", **kwargs)


def make_broker(adapters: dict, *instances) -> InboxBroker:
    def factory(instance, fetch_config: FetchConfig):
        adapter = adapters[instance.id]
        if isinstance(adapter, Exception):
            raise adapter
        return adapter

    return InboxBroker(make_settings(*instances), MemoryItemStore(), adapter_factory=factory)


@pytest.mark.asyncio
async def test_broker_settles_all_instances() -> None:
    """Test one failing instance does not fail the whole fetch."""
    broker = make_broker(
        {"contoso": make_adapter(), "broken": RuntimeError("boom")},
        ado_instance(),
        ado_instance("broken", "Broken"),
    )

    items = await broker.fetch_all_items()

    assert sorted(i.id for i in items) == ["ado-pr-contoso-1", "ado-wi-contoso-1"]
    assert broker.unread_count() == 2


@pytest.mark.asyncio
async def test_broker_skips_disabled_expired_and_tokenless_instances() -> None:
    """Test only usable instances are fetched."""
    adapters = {"contoso": make_adapter()}
    expired = ado_instance("old", "Old", expires_at=datetime.now(timezone.utc) - timedelta(days=1))
    disabled = ado_instance("off", "Off", enabled=False)
    tokenless = ado_instance("anon", "Anon")
    tokenless.personal_access_token = None
    broker = make_broker(adapters, ado_instance(), expired, disabled, tokenless)

    await broker.fetch_all_items()

    assert [i.id for i in broker.enabled_instances()] == ["contoso"]
    assert len(broker.get_instances()) == 4


@pytest.mark.asyncio
async def test_broker_mark_read_and_refetch() -> None:
    """Test read state survives refetches until the item changes."""
    adapter = make_adapter()
    broker = make_broker({"contoso": adapter}, ado_instance())
    await broker.fetch_items_for_instance("contoso")

    assert await broker.mark_item("contoso", "ado-wi-contoso-1", unread=False)
    assert broker.unread_count("contoso") == 1

    # Same timestamp: stays read
    await broker.fetch_items_for_instance("contoso")
    assert broker.get_work_items("contoso")[0].unread is False

    # Newer timestamp: unread again, previous timestamp kept
    adapter.list_assigned_work_items.return_value = [make_work_item(1, updated=200)]
    await broker.fetch_items_for_instance("contoso")
    work_item = broker.get_work_items("contoso")[0]
    assert work_item.unread is True
    assert work_item.prev_update_timestamp == 100


@pytest.mark.asyncio
async def test_broker_keeps_cached_items_of_failed_stage() -> None:
    """Test a failed stage does not wipe cached items of that type."""
    adapter = make_adapter()
    broker = make_broker({"contoso": adapter}, ado_instance())
    await broker.fetch_items_for_instance("contoso")

    adapter.list_assigned_pull_requests.side_effect = ProviderApiError("HTTP 500")
    adapter.list_assigned_work_items.return_value = []
    await broker.fetch_items_for_instance("contoso")

    assert [p.id for p in broker.get_pull_requests("contoso")] == ["ado-pr-contoso-1"]
    assert broker.get_work_items("contoso") == []


@pytest.mark.asyncio
async def test_broker_unknown_instance() -> None:
    """Test unknown instance ids raise ConfigurationError."""
    broker = make_broker({}, ado_instance())

    with pytest.raises(ConfigurationError, match="nope"):
        await broker.fetch_items_for_instance("nope")

    with pytest.raises(ConfigurationError):
        await broker.mark_item("nope", "x", unread=False)

    with pytest.raises(ConfigurationError):
        broker.get_pipelines("nope")


@pytest.mark.asyncio
async def test_broker_mark_unknown_item() -> None:
    """Test marking an item that is not cached returns False."""
    broker = make_broker({"contoso": make_adapter()}, ado_instance())

    assert not await broker.mark_item("contoso", "missing", unread=True)


@pytest.mark.asyncio
async def test_broker_stream_applies_read_state() -> None:
    """Test streamed batches carry cached read state and the cache is updated afterwards."""
    adapter = make_adapter()
    broker = make_broker({"contoso": adapter}, ado_instance())
    await broker.fetch_items_for_instance("contoso")
    await broker.mark_item("contoso", "ado-pr-contoso-1", unread=False)
    adapter.list_assigned_work_items.return_value = [make_work_item(1), make_work_item(2)]

    batches = [batch async for batch in broker.stream_inbox("contoso")]

    assert [b.progress.stage for b in batches] == ["Contoso: Pull Requests", "Contoso: Work Items"]
    assert batches[0].items[0].unread is False
    assert [i.unread for i in batches[1].items] == [True, True]
    assert len(broker.get_work_items("contoso")) == 2
    adapter.aclose.assert_awaited()


@pytest.mark.asyncio
async def test_broker_mark_item_while_streaming() -> None:
    """Test items can be marked while a stream of the same instance is consumed."""
    adapter = make_adapter()
    broker = make_broker({"contoso": adapter}, ado_instance())
    await broker.fetch_items_for_instance("contoso")

    async for batch in broker.stream_inbox("contoso"):
        if batch.stage_kind == StageKind.PULL_REQUESTS:
            assert await asyncio.wait_for(broker.mark_item("contoso", "ado-pr-contoso-1", unread=False), 1.0)

    assert broker.get_pull_requests("contoso")[0].unread is False
    assert broker.unread_count("contoso") == 1


@pytest.mark.asyncio
async def test_broker_stream_stopped_early() -> None:
    """Test an abandoned stream neither blocks the instance nor updates its cache."""
    adapter = make_adapter()
    broker = make_broker({"contoso": adapter}, ado_instance())

    stream = broker.stream_inbox("contoso")
    async for _ in stream:
        break
    assert broker.get_all_items() == []

    items = await asyncio.wait_for(broker.fetch_items_for_instance("contoso"), 1.0)
    assert sorted(i.id for i in items) == ["ado-pr-contoso-1", "ado-wi-contoso-1"]
    assert await asyncio.wait_for(broker.mark_item("contoso", "ado-wi-contoso-1", unread=False), 1.0)

    # One close from the completed fetch, one from the abandoned stream
    await stream.aclose()
    assert adapter.aclose.await_count == 2


@pytest.mark.asyncio
async def test_broker_get_all_items_and_is_configured() -> None:
    """Test cached items across instances and configuration check."""
    broker = make_broker(
        {"contoso": make_adapter(), "fabrikam": make_adapter("fabrikam", "Fabrikam")},
        ado_instance(),
        ado_instance("fabrikam", "Fabrikam"),
    )
    assert broker.is_configured()
    assert broker.get_all_items() == []

    await broker.fetch_all_items()

    assert len(broker.get_all_items()) == 4
    assert not InboxBroker(Settings(), MemoryItemStore()).is_configured()
