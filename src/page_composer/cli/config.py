import asyncio
from collections.abc import Sequence
from typing import Annotated, Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from page_composer.core.drafts import discard_draft, list_history
from page_composer.core.errors import PageComposerError
from page_composer.core.ports.store import ConfigurationStore
from page_composer.core.publish import PublishCoordinator
from page_composer.defaults.provider import BuiltinDefaultProvider
from page_composer.models import ConfigurationStatus, PageType

config_app = typer.Typer(help="Inspect and publish page configurations.")
console = Console()


def _render_table(headers: Sequence[str], rows: Sequence[tuple[Any, ...]]) -> None:
    table = Table(show_lines=False)
    for h in headers:
        table.add_column(h)
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row))
    console.print(table)
    console.print(f"({len(rows)} rows)")


def _get_store() -> "ConfigurationStore":
    from page_composer.db.engine import get_engine
    from page_composer.db.postgres import PostgresConfigurationStore

    return PostgresConfigurationStore(get_engine())


def _fail(exc: PageComposerError) -> NoReturn:
    console.print(f"[red]{exc.code}: {exc.message}[/red]")
    raise typer.Exit(1)


@config_app.command("history")
def history(
    tenant: Annotated[str, typer.Argument(help="Tenant id.")],
    page_type: Annotated[PageType, typer.Argument(help="Page type.")],
    limit: Annotated[int, typer.Option(min=1, help="Max versions to show.")] = 20,
) -> None:
    """List versions of a page configuration, newest first."""
    store = _get_store()

    async def _run() -> None:
        try:
            rows: list[tuple[Any, ...]] = []
            async for summary in list_history(store, tenant, page_type, page_size=min(limit, 100)):
                rows.append(
                    (
                        summary.version_number,
                        summary.status.value,
                        summary.id,
                        summary.parent_version_id,
                        summary.published_at,
                        summary.published_by,
                    )
                )
                if len(rows) >= limit:
                    break
            _render_table(["version", "status", "id", "parent", "published_at", "published_by"], rows)
        finally:
            await store.dispose()

    asyncio.run(_run())


@config_app.command("publish")
def publish(
    configuration_id: Annotated[str, typer.Argument(help="Configuration id.")],
    target: Annotated[ConfigurationStatus, typer.Option(help="acceptance or published.")] = (
        ConfigurationStatus.PUBLISHED
    ),
    actor: Annotated[str | None, typer.Option(help="Recorded as the publisher.")] = None,
) -> None:
    """Publish a draft (or an acceptance version) by id."""
    store = _get_store()

    async def _run() -> None:
        try:
            configuration = await PublishCoordinator().publish(store, configuration_id, target, actor)
            console.print(
                f"[green]v{configuration.version_number} for {configuration.tenant_id}/"
                f"{configuration.page_type.value} is now {configuration.status.value}.[/green]"
            )
        except PageComposerError as exc:
            _fail(exc)
        finally:
            await store.dispose()

    asyncio.run(_run())


@config_app.command("revert")
def revert(
    configuration_id: Annotated[str, typer.Argument(help="Draft configuration id.")],
) -> None:
    """Discard a draft, leaving its parent version untouched."""
    store = _get_store()

    async def _run() -> None:
        try:
            configuration = await discard_draft(store, configuration_id)
            console.print(f"[green]Draft v{configuration.version_number} reverted.[/green]")
        except PageComposerError as exc:
            _fail(exc)
        finally:
            await store.dispose()

    asyncio.run(_run())


@config_app.command("default")
def default(
    page_type: Annotated[PageType, typer.Argument(help="Page type.")],
) -> None:
    """Show the slots of the built-in default template for a page type."""
    configuration = BuiltinDefaultProvider().get_default(page_type)
    rows = [
        (node.id, node.kind.value, node.component, ", ".join(node.children))
        for node in configuration.slots.values()
    ]
    _render_table(["slot", "kind", "component", "children"], rows)
