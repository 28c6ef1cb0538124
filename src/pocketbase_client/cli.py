"""Command line interface for the PocketBase client."""

import asyncio
import dataclasses
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .client import PocketBaseClient
from .config import configure_logging, load_config
from .core.errors import ApiError, NetworkError, PocketBaseError
from .core.query import QuerySpec
from .models import SUPERUSERS_COLLECTION, RecordModel

logger = logging.getLogger(__name__)
console = Console()

DEFAULT_CLI_AUTH_FILE = Path.home() / ".pocketbase" / "auth.json"
MAX_TABLE_COLUMNS = 5


def run_async(coro):
    """Run a coroutine whether or not an event loop is already running.

    Under a running loop (for example inside async tests) the coroutine runs
    in a fresh loop on a helper thread.

    Args:
        coro: The coroutine to run

    Returns:
        The result of the coroutine
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    result = None
    exception: Optional[BaseException] = None

    def run_in_new_loop():
        nonlocal result, exception
        try:
            result = asyncio.run(coro)
        except Exception as e:
            exception = e

    thread = threading.Thread(target=run_in_new_loop)
    thread.start()
    thread.join()

    if exception:
        raise exception
    return result


def _execute(
    ctx: click.Context, action: Callable[[PocketBaseClient], Awaitable[Any]]
) -> Any:
    """Run ``action`` with a fresh client, turning client errors into exit 1."""

    async def _runner():
        async with PocketBaseClient(config=ctx.obj["config"]) as pb:
            return await action(pb)

    try:
        return run_async(_runner())
    except NetworkError as e:
        console.print(f"[red]❌ {e}[/red]")
        if ctx.obj.get("verbose") and e.user_guidance:
            console.print(e.user_guidance)
        sys.exit(1)
    except ApiError as e:
        console.print(f"[red]❌ Server error {e.status}: {e.message}[/red]")
        for field_name, message in e.field_errors.items():
            console.print(f"   {field_name}: {message}")
        sys.exit(1)
    except PocketBaseError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


@click.group()
@click.option("--url", default=None, help="PocketBase server URL (or POCKETBASE_URL)")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a JSON config file",
)
@click.option(
    "--auth-file",
    type=click.Path(dir_okay=False),
    default=None,
    help=f"Session file (default: {DEFAULT_CLI_AUTH_FILE})",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__, prog_name="pbc")
@click.pass_context
def cli(
    ctx: click.Context,
    url: Optional[str],
    config_path: Optional[str],
    auth_file: Optional[str],
    verbose: bool,
):
    """PocketBase client command line."""
    try:
        config = load_config(config_path, use_env=True)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    overrides: dict = {"log_level": "debug" if verbose else config.log_level}
    if url:
        overrides["base_url"] = url
    overrides["auth_file"] = auth_file or config.auth_file or str(DEFAULT_CLI_AUTH_FILE)
    try:
        config = dataclasses.replace(config, **overrides)
    except ValueError as e:
        raise click.ClickException(str(e))

    configure_logging(config.log_level)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.pass_context
def health(ctx: click.Context):
    """Check that the server is up."""
    result = _execute(ctx, lambda pb: pb.health.check())
    console.print(f"[green]✅ {result.message}[/green] (code {result.code})")


@cli.command()
@click.option(
    "--collection",
    "-c",
    default=SUPERUSERS_COLLECTION,
    show_default=True,
    help="Auth collection to log in to",
)
@click.option("--identity", "-i", prompt=True, help="Email or username")
@click.option("--password", "-p", prompt=True, hide_input=True, help="Password")
@click.pass_context
def login(ctx: click.Context, collection: str, identity: str, password: str):
    """Authenticate and save the session."""
    response = _execute(
        ctx, lambda pb: pb.collection(collection).auth_with_password(identity, password)
    )
    console.print(
        f"[green]✅ Logged in as {response.record.id}[/green] ({collection})"
    )


@cli.command()
@click.pass_context
def logout(ctx: click.Context):
    """Forget the saved session."""

    async def _logout(pb: PocketBaseClient) -> None:
        pb.auth.clear()

    _execute(ctx, _logout)
    console.print("[green]✅ Logged out[/green]")


@cli.command()
@click.pass_context
def whoami(ctx: click.Context):
    """Show the saved session."""

    async def _whoami(pb: PocketBaseClient):
        return pb.auth.credential, pb.auth.is_valid, pb.auth.is_superuser

    credential, is_valid, is_superuser = _execute(ctx, _whoami)
    if credential is None:
        console.print("[yellow]Not logged in[/yellow]")
        return

    record = credential.record
    table = Table(show_header=False)
    table.add_row("Record", record.id if record else "-")
    table.add_row("Collection", record.collection_name if record else "-")
    table.add_row("Superuser", "yes" if is_superuser else "no")
    table.add_row("Valid", "yes" if is_valid else "no")
    table.add_row(
        "Expires", credential.expires_at.isoformat() if credential.expires_at else "never"
    )
    console.print(table)


def _record_table(collection: str, records: Tuple[RecordModel, ...]) -> Table:
    columns = ["id"]
    for record in records:
        for key in record.data:
            if key not in columns and len(columns) < MAX_TABLE_COLUMNS:
                columns.append(key)

    table = Table(title=collection)
    for column in columns:
        table.add_column(column)
    for record in records:
        table.add_row(*(_cell(record.get(column)) for column in columns))
    return table


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


@cli.command(name="list")
@click.argument("collection")
@click.option("--filter", "filter_expr", default=None, help="Filter expression")
@click.option("--sort", "-s", multiple=True, help="Sort field, prefix - for descending")
@click.option("--expand", "-e", multiple=True, help="Relation to expand")
@click.option("--fields", default=None, help="Comma separated fields to return")
@click.option("--page", type=int, default=1, show_default=True)
@click.option("--per-page", type=int, default=30, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def list_records(
    ctx: click.Context,
    collection: str,
    filter_expr: Optional[str],
    sort: Tuple[str, ...],
    expand: Tuple[str, ...],
    fields: Optional[str],
    page: int,
    per_page: int,
    as_json: bool,
):
    """List records of COLLECTION."""
    spec = QuerySpec(
        filter=filter_expr,
        sort=sort,
        expand=expand,
        fields=tuple(fields.split(",")) if fields else (),
    )
    result = _execute(
        ctx, lambda pb: pb.collection(collection).get_list(page, per_page, spec)
    )

    if as_json:
        click.echo(json.dumps(result.model_dump(by_alias=True), indent=2))
        return

    console.print(_record_table(collection, tuple(result.items)))
    console.print(
        f"Page {result.page}/{result.total_pages}, {result.total_items} records"
    )


@cli.command()
@click.argument("collection")
@click.argument("record_id")
@click.option("--expand", "-e", multiple=True, help="Relation to expand")
@click.pass_context
def get(ctx: click.Context, collection: str, record_id: str, expand: Tuple[str, ...]):
    """Show one record as JSON."""
    query = QuerySpec(expand=expand) if expand else None
    record = _execute(ctx, lambda pb: pb.collection(collection).get_one(record_id, query))
    click.echo(json.dumps(record.to_dict(), indent=2))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
