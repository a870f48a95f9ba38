"""Command-line interface for package_registry.

Provides the main entry point and subcommands for ingesting DESCRIPTION
and Rd files, replaying queue messages and inspecting stored versions.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from package_registry.errors import RegistryError
from package_registry.handlers import TYPE_HEADER, RegistryHandlers, Response
from package_registry.parsers import get_parser
from package_registry.reader import VersionReader
from package_registry.store import RegistryStore

app = typer.Typer(
    name="package-registry",
    help="Metadata registry for R packages.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)
logger = logging.getLogger("package_registry")


def _setup_logging(verbose: bool) -> None:
    """Configure logging level based on verbosity flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.getLogger("package_registry").setLevel(level)


def _open_store(ctx: typer.Context) -> RegistryStore:
    try:
        return RegistryStore(db_path=ctx.obj["db"])
    except RegistryError as e:
        err_console.print(f"[red]Error opening store:[/red] {escape(e.message)}")
        raise typer.Exit(code=1)


def _read_file(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        err_console.print(f"[red]Error reading {path}:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _report_error(response: Response) -> None:
    """Print an error response body to stderr."""
    body = response.body
    err_console.print(f"[red]Error ({response.status}):[/red] {escape(str(body.get('message')))}")
    for error in body.get("errors", []):
        err_console.print(f"  - {escape(error['field'])}: {escape(error['message'])}")
    if body.get("identity"):
        identity = ", ".join(f"{k}={v}" for k, v in body["identity"].items())
        err_console.print(f"  [dim]{escape(identity)}[/dim]")


@app.callback()
def main(
    ctx: typer.Context,
    db: Annotated[
        Optional[Path],
        typer.Option(
            "--db",
            envvar="PACKAGE_REGISTRY_DB",
            help="Path to the registry database",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output",
        ),
    ] = False,
) -> None:
    """Metadata registry for R packages."""
    _setup_logging(verbose)
    ctx.obj = {"db": db, "verbose": verbose}


@app.command()
def ingest(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="Path to a DESCRIPTION file", exists=True, readable=True),
    ],
) -> None:
    """Ingest a DESCRIPTION file as a new package version."""
    try:
        parser = get_parser(path)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    if parser.message_type != "version":
        err_console.print(f"[red]Error:[/red] {path.name} is not a DESCRIPTION file")
        raise typer.Exit(code=1)

    handlers = RegistryHandlers(_open_store(ctx))
    response = handlers.post_description(_read_file(path))
    if not response.ok:
        _report_error(response)
        raise typer.Exit(code=1)

    console.print(f"[green]Created:[/green] {response.headers['Location']}")


@app.command()
def topic(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="Path to an Rd file", exists=True, readable=True),
    ],
    package: Annotated[
        str,
        typer.Option("--package", "-p", help="Name of the owning package"),
    ],
    version: Annotated[
        str,
        typer.Option("--version", help="Version of the owning package"),
    ],
) -> None:
    """Ingest an Rd file as a topic of an existing package version."""
    try:
        parser = get_parser(path)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    if parser.message_type != "topic":
        err_console.print(f"[red]Error:[/red] {path.name} is not an Rd file")
        raise typer.Exit(code=1)

    try:
        fields = parser.parse(_read_file(path))
    except RegistryError as e:
        err_console.print(f"[red]Error parsing {path}:[/red] {escape(e.message)}")
        raise typer.Exit(code=1)

    handlers = RegistryHandlers(_open_store(ctx))

    body = {**fields, "package": {"package": package, "version": version}}
    response = handlers.process_message({TYPE_HEADER: "topic"}, body)
    if not response.ok:
        _report_error(response)
        raise typer.Exit(code=1)

    console.print(f"[green]Created topic:[/green] {response.body['uri']}")


@app.command()
def process(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="Path to a JSON queue message body", exists=True, readable=True),
    ],
    type_tag: Annotated[
        Optional[str],
        typer.Option(
            "--type",
            "-t",
            help="Message type: 'version' or 'topic' (defaults to the body's 'type' field)",
        ),
    ] = None,
) -> None:
    """Feed a queue message through the ingestion dispatcher."""
    try:
        body = json.loads(_read_file(path))
    except json.JSONDecodeError as e:
        err_console.print(f"[red]Invalid JSON in {path}:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    headers = {TYPE_HEADER: type_tag} if type_tag else {}
    response = RegistryHandlers(_open_store(ctx)).process_message(headers, body)
    if not response.ok:
        _report_error(response)
        raise typer.Exit(code=1)

    console.print(f"[green]Processed:[/green] {response.body.get('uri')}")


@app.command()
def show(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Package name")],
    version: Annotated[str, typer.Argument(help="Package version")],
    populate_limit: Annotated[
        int,
        typer.Option(
            "--populate-limit",
            envvar="PACKAGE_REGISTRY_POPULATE_LIMIT",
            min=1,
            help="Maximum number of sibling versions and topics to include",
        ),
    ] = VersionReader.DEFAULT_POPULATE_LIMIT,
) -> None:
    """Print a stored version with all of its relations as JSON."""
    handlers = RegistryHandlers(_open_store(ctx), populate_limit=populate_limit)
    response = handlers.find_by_name_version(name, version)
    if not response.ok:
        _report_error(response)
        raise typer.Exit(code=1)

    console.print_json(data=response.body)


@app.command()
def stats(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Package name")],
) -> None:
    """Print last-month download statistics for a package."""
    handlers = RegistryHandlers(_open_store(ctx))

    async def run_stats() -> Response:
        async with handlers.stats_client:
            return await handlers.get_download_statistics(name)

    response = asyncio.run(run_stats())
    if not response.ok:
        _report_error(response)
        raise typer.Exit(code=1)

    console.print_json(data=response.body)


@app.command()
def db(
    ctx: typer.Context,
    action: Annotated[
        str,
        typer.Argument(help="Store action: 'show' or 'init'"),
    ],
) -> None:
    """Manage the registry database.

    Actions:
        show - Display database location, row counts, and size
        init - Create the database schema
    """
    if action not in ("show", "init"):
        err_console.print(f"[red]Unknown action:[/red] {action}")
        err_console.print("Valid actions: show, init")
        raise typer.Exit(code=1)

    store = _open_store(ctx)

    if action == "init":
        console.print(f"[green]Initialized:[/green] {store.db_path}")
        return

    info = store.info()
    console.print(f"[bold]Database Location:[/bold] {info['path']}")
    console.print(f"[bold]Size:[/bold] {info['size_bytes'] / 1024:.1f} KB")

    table = Table("Table", "Rows")
    for name, count in info["counts"].items():
        table.add_row(name, str(count))
    console.print(table)


if __name__ == "__main__":
    app()
