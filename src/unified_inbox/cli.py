"""CLI entry point for unified inbox."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from unified_inbox.adapters.ado import ADO_MAPPING
from unified_inbox.adapters.filters import ALL_TYPES, filter_items
from unified_inbox.adapters.github import GITHUB_MAPPING
from unified_inbox.adapters.report import MarkdownReportRenderer
from unified_inbox.adapters.storage import FileItemStore, MemoryItemStore
from unified_inbox.adapters.streaming import stream_frames
from unified_inbox.config import Settings, get_settings
from unified_inbox.core import ConfigurationError, ItemStore, create_classifier, group_inbox_items
from unified_inbox.use_cases import InboxBroker

logger = logging.getLogger(__name__)

CONFIG_ERROR_EXIT_CODE = 2

MAPPINGS = {"ado": ADO_MAPPING, "github": GITHUB_MAPPING}

app = typer.Typer(help="Aggregate Azure DevOps and GitHub items into one inbox.", no_args_is_help=True)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Request lines from httpx are noise at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def create_broker(settings: Settings, no_cache: bool = False) -> InboxBroker:
    store: ItemStore = MemoryItemStore() if no_cache else FileItemStore(settings.storage_dir)
    return InboxBroker(settings, store)


def _load_broker(ctx: typer.Context, no_cache: bool = False) -> InboxBroker:
    settings = get_settings(ctx.obj["config"])
    broker = create_broker(settings, no_cache)
    if not broker.is_configured():
        raise ConfigurationError(f"No instances configured in {ctx.obj['config']}")
    return broker


def _fail(e: ConfigurationError) -> None:
    print(f"✗ Configuration error: {e}", file=sys.stderr)
    raise typer.Exit(code=CONFIG_ERROR_EXIT_CODE)


@app.callback()
def main(
    ctx: typer.Context,
    config: Path = typer.Option(Path("config.yaml"), "--config", "-c", help="Path to config.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Unified inbox for Azure DevOps and GitHub."""
    setup_logging(verbose)
    ctx.obj = {"config": config}


@app.command()
def fetch(
    ctx: typer.Context,
    instance: Optional[str] = typer.Option(None, "--instance", "-i", help="Only fetch this instance id"),
    query: str = typer.Option("", "--query", "-q", help="Search query, e.g. '@status:open login'"),
    item_type: str = typer.Option(ALL_TYPES, "--type", help="all, workItem, pullRequest or pipeline"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report to a file"),
    group_by_instance: bool = typer.Option(False, "--group-by-instance", help="Group by instance and project"),
    unread_only: bool = typer.Option(False, "--unread-only", help="Only show unread items"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Do not read or write the item cache"),
) -> None:
    """Fetch all instances, merge with the cache and print a report."""
    try:
        broker = _load_broker(ctx, no_cache)
        if group_by_instance:
            broker.settings.group_by_instance = True
        asyncio.run(async_fetch(broker, instance, query, item_type, output, unread_only))
    except ConfigurationError as e:
        _fail(e)


async def async_fetch(
    broker: InboxBroker,
    instance: Optional[str],
    query: str,
    item_type: str,
    output: Optional[Path],
    unread_only: bool,
) -> None:
    """Async implementation of fetch command."""
    if instance:
        items = await broker.fetch_items_for_instance(instance)
    else:
        items = await broker.fetch_all_items()

    items = filter_items(items, query, item_type)
    groups = group_inbox_items(items, broker.settings.group_by_instance)
    report = MarkdownReportRenderer(unread_only=unread_only).render(groups)

    if output is None:
        print(report)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        f.write(report)
    print(f"📄 Report saved: {output}")


@app.command()
def stream(
    ctx: typer.Context,
    instance: Optional[str] = typer.Option(None, "--instance", "-i", help="Only stream this instance id"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Do not read or write the item cache"),
) -> None:
    """Stream progressive fetch results to stdout as NDJSON."""
    try:
        broker = _load_broker(ctx, no_cache)
        if instance and broker.get_instance(instance) is None:
            raise ConfigurationError(f"Instance {instance} not found")
    except ConfigurationError as e:
        _fail(e)
    asyncio.run(async_stream(broker, instance))


async def async_stream(broker: InboxBroker, instance: Optional[str]) -> None:
    async for line in stream_frames(broker.stream_inbox(instance), broker.settings.group_by_instance):
        sys.stdout.write(line)
        sys.stdout.flush()


def _mark(ctx: typer.Context, instance_id: str, item_id: str, unread: bool) -> None:
    try:
        broker = _load_broker(ctx)
        found = asyncio.run(broker.mark_item(instance_id, item_id, unread))
    except ConfigurationError as e:
        _fail(e)

    state = "unread" if unread else "read"
    if not found:
        print(f"✗ Item {item_id} not found in cache of {instance_id}", file=sys.stderr)
        raise typer.Exit(code=1)
    print(f"✓ Marked {item_id} as {state} ({broker.unread_count(instance_id)} unread)")


@app.command("mark-read")
def mark_read(ctx: typer.Context, instance_id: str, item_id: str) -> None:
    """Mark a cached item as read."""
    _mark(ctx, instance_id, item_id, unread=False)


@app.command("mark-unread")
def mark_unread(ctx: typer.Context, instance_id: str, item_id: str) -> None:
    """Mark a cached item as unread."""
    _mark(ctx, instance_id, item_id, unread=True)


@app.command()
def classify(
    type_name: Optional[str] = typer.Option(None, "--type-name", help="Provider work item type name"),
    label: Optional[list[str]] = typer.Option(None, "--label", "-l", help="Label, may be repeated"),
    title: Optional[str] = typer.Option(None, "--title", help="Item title"),
    provider: str = typer.Option("ado", "--provider", "-p", help="ado or github"),
) -> None:
    """Classify a work item and show how the kind was chosen."""
    mapping = MAPPINGS.get(provider)
    if mapping is None:
        print(f"✗ Unknown provider {provider!r}, expected one of: {', '.join(MAPPINGS)}", file=sys.stderr)
        raise typer.Exit(code=CONFIG_ERROR_EXIT_CODE)

    result = create_classifier(mapping).classify(type_name=type_name, labels=label, title=title)
    print(f"Kind:       {result.kind.value}")
    print(f"Confidence: {result.confidence:.0%}")
    print(f"Method:     {result.method}")
    if result.details:
        print(f"Details:    {result.details}")


@app.command()
def instances(ctx: typer.Context) -> None:
    """List configured instances and their status."""
    try:
        broker = _load_broker(ctx)
    except ConfigurationError as e:
        _fail(e)

    print(f"\n🔑 Instances ({broker.settings.storage_dir}):")
    for instance in broker.get_instances():
        if not instance.enabled:
            status = "⏸  disabled"
        elif not instance.personal_access_token:
            status = "✗ no token"
        elif instance.is_expired():
            status = f"⚠️  token expired {instance.expires_at:%Y-%m-%d}"
        else:
            status = "✓ ready"
        unread = broker.unread_count(instance.id)
        print(f"  • {instance.id} [{instance.instance_type}] {instance.name}: {status}, {unread} unread")
    print()


if __name__ == "__main__":
    app()
