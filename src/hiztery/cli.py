"""
CLI entry point for hiztery.

This module provides the Typer-based command-line interface for hiztery.

Commands:
    insert      Record a command
    update      Rewrite the command text of a stored item
    delete      Delete an item by id
    list        List history, newest first
    import      Import a plain-text history file
    search      Prefix, full-text or fuzzy search over commands
    count       Number of stored items
    first       Oldest item
    last        Newest item
    load        Show one item by id
    range       Items between two dates
    before      Items older than a date
    query       Run raw SQL against the history table (trusted input only)

The CLI parses arguments, opens the store and renders results. All storage
logic lives in hiztery.store.
"""

import json
import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from hiztery import __version__
from hiztery.errors import HizteryError
from hiztery.importer import import_history_file
from hiztery.schema import (
    HistoryConfig,
    HistoryItem,
    SqlLogMode,
    load_config,
    parse_date,
)
from hiztery.search import SearchMode
from hiztery.store import SqliteHistory

# Initialize Typer app with metadata
app = typer.Typer(
    name="hiztery",
    help="Store and search your shell command history.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

logger = logging.getLogger(__name__)


@dataclass
class CliState:
    """Options shared by every command, collected by the app callback."""

    db_path: Path | None = None
    config_path: Path | None = None
    log_mode: SqlLogMode | None = None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]hiztery[/bold] version {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool, log_mode: SqlLogMode | None, log_file: Path | None) -> None:
    """
    Send log records to stderr through Rich, and optionally to a file.

    SQL trace/profile output is logged at INFO, so asking for a log mode
    lowers the threshold enough to see it. A mode set only in the config
    file is applied later, by _enable_sql_logging.
    """
    if verbose:
        level = logging.DEBUG
    elif log_mode not in (None, SqlLogMode.DISABLED):
        level = logging.INFO
    else:
        level = logging.WARNING

    handlers: list[logging.Handler] = [
        RichHandler(console=Console(stderr=True), show_path=False),
    ]
    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option(
            "--db",
            help="Path to the history database. Overrides the config file.",
        ),
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to a YAML config file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    log_mode: Annotated[
        Optional[SqlLogMode],
        typer.Option(
            "--log-mode",
            help="SQL diagnostics: disabled, profile or trace.",
            case_sensitive=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Enable debug logging.",
        ),
    ] = False,
    log_file: Annotated[
        Optional[Path],
        typer.Option(
            "--log-file",
            help="Also write log records to this file.",
        ),
    ] = None,
) -> None:
    """
    hiztery - Personal shell command history store.

    Keeps executed commands with timing, exit status, working directory and
    session, and answers point, range and fuzzy-search queries.
    """
    configure_logging(verbose, log_mode, log_file)
    ctx.obj = CliState(db_path=db, config_path=config, log_mode=log_mode)


# =============================================================================
# Helpers
# =============================================================================


def _resolve_config(state: CliState) -> HistoryConfig:
    """Merge the config file (if any) with command-line overrides."""
    config = load_config(state.config_path) if state.config_path else HistoryConfig()

    overrides: dict = {}
    if state.db_path is not None:
        overrides["db_path"] = state.db_path
    if state.log_mode is not None:
        overrides["sql_log_mode"] = state.log_mode
    if overrides:
        config = HistoryConfig.model_validate({**config.model_dump(), **overrides})
    return config


def _enable_sql_logging(mode: SqlLogMode) -> None:
    """Let INFO records through when the resolved config asks for SQL logging."""
    root = logging.getLogger()
    if mode is not SqlLogMode.DISABLED and root.getEffectiveLevel() > logging.INFO:
        root.setLevel(logging.INFO)


@contextmanager
def _open_store(ctx: typer.Context, json_output: bool = False) -> Generator[tuple[SqliteHistory, HistoryConfig], None, None]:
    """Open the configured store; report hiztery errors and exit 1."""
    state: CliState = ctx.obj or CliState()
    try:
        config = _resolve_config(state)
        _enable_sql_logging(config.sql_log_mode)
        with SqliteHistory.from_config(config) as store:
            yield store, config
    except HizteryError as e:
        _report_error(e, json_output)
        raise typer.Exit(code=1)


def _report_error(error: HizteryError, json_output: bool) -> None:
    logger.debug("command failed: %r", error)
    if json_output:
        print(json.dumps({"error": True, **error.to_dict()}, indent=2, default=str))
    else:
        console.print(f"[red]{escape(str(error))}[/red]")


def _item_to_dict(item: HistoryItem) -> dict:
    data = item.model_dump()
    data["executed_at"] = item.executed_at.isoformat()
    return data


def _format_duration(nanos: int) -> str:
    if nanos < 0:
        return "-"
    if nanos < 1_000_000:
        return f"{nanos / 1000:.0f}µs"
    if nanos < 1_000_000_000:
        return f"{nanos / 1_000_000:.1f}ms"
    return f"{nanos / 1_000_000_000:.2f}s"


def _print_items(items: list[HistoryItem], json_output: bool) -> None:
    """Render items as a table, or as a JSON array."""
    if json_output:
        print(json.dumps([_item_to_dict(i) for i in items], indent=2, default=str))
        return

    if not items:
        console.print("[dim]No history items found.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("When")
    table.add_column("Command")
    table.add_column("Exit", justify="right")
    table.add_column("Took", justify="right")
    table.add_column("Cwd", style="dim")

    for item in items:
        exit_display = (
            f"[green]{item.exit_status}[/green]"
            if item.exit_status == 0
            else f"[red]{item.exit_status}[/red]"
        )
        table.add_row(
            str(item.history_id),
            item.executed_at.strftime("%Y-%m-%d %H:%M:%S"),
            escape(item.command_line),
            exit_display,
            _format_duration(item.duration),
            escape(item.cwd),
        )

    console.print(table)


def _print_item(item: HistoryItem, json_output: bool) -> None:
    if json_output:
        print(json.dumps(_item_to_dict(item), indent=2, default=str))
    else:
        _print_items([item], json_output=False)


def _build_command_line(command: str, params: str | None) -> str:
    return f"{command} {params}" if params else command


def _parse_search_mode(value: str) -> SearchMode:
    try:
        return SearchMode.parse(value)
    except ValueError:
        raise typer.BadParameter(
            f"{value!r} is not one of prefix (p), full_text (f), fuzzy (z)"
        )


JsonOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Output results in JSON format.",
    ),
]


# =============================================================================
# Write Commands
# =============================================================================


@app.command()
def insert(
    ctx: typer.Context,
    command: Annotated[str, typer.Argument(help="The command that was run.")],
    params: Annotated[
        Optional[str],
        typer.Option("--params", "-p", help="Arguments the command was run with."),
    ] = None,
    rows: Annotated[
        int,
        typer.Option("--rows", "-r", help="Number of rows to insert.", min=1),
    ] = 1,
    cwd: Annotated[
        Optional[str],
        typer.Option("--cwd", help="Working directory to record. Defaults to the current one."),
    ] = None,
    exit_status: Annotated[
        int,
        typer.Option("--exit-status", "-e", help="Exit status to record."),
    ] = 0,
    duration_ms: Annotated[
        Optional[int],
        typer.Option("--duration-ms", help="How long the command took, if known."),
    ] = None,
) -> None:
    """
    Record a command in the history.

    Example:
        $ hiztery insert git --params "status -s" --exit-status 0
    """
    with _open_store(ctx) as (store, config):
        timestamp = 0
        saved = 0
        for _ in range(rows):
            # Consecutive rows must not share a timestamp or they'd be dropped as duplicates.
            timestamp = max(time.time_ns(), timestamp + 1)
            item = HistoryItem(
                command_line=_build_command_line(command, params),
                command=command,
                command_params=params,
                cwd=cwd or str(Path.cwd()),
                duration=duration_ms * 1_000_000 if duration_ms is not None else -1,
                exit_status=exit_status,
                session_id=config.session_id,
                timestamp=timestamp,
                run_count=1,
            )
            if store.save(item) is not None:
                saved += 1

        console.print(f"[green]Inserted {saved} history item(s).[/green]")


@app.command()
def update(
    ctx: typer.Context,
    history_id: Annotated[int, typer.Argument(help="The id of the item to update.")],
    command: Annotated[str, typer.Option("--command", "-t", help="New command text.")],
    params: Annotated[
        Optional[str],
        typer.Option("--params", "-p", help="New arguments."),
    ] = None,
    cwd: Annotated[
        Optional[str],
        typer.Option("--cwd", help="New working directory."),
    ] = None,
) -> None:
    """
    Rewrite the command of a stored item.

    Example:
        $ hiztery update 42 --command ls --params "-la"
    """
    with _open_store(ctx) as (store, _config):
        existing = store.load(history_id)
        changes = {
            "command_line": _build_command_line(command, params),
            "command": command,
            "command_params": params,
        }
        if cwd is not None:
            changes["cwd"] = cwd
        affected = store.update(existing.model_copy(update=changes))
        console.print(f"Updated {affected} history item(s).")


@app.command()
def delete(
    ctx: typer.Context,
    history_id: Annotated[int, typer.Argument(help="The id of the item to delete.")],
) -> None:
    """
    Delete a history item.

    Example:
        $ hiztery delete 42
    """
    with _open_store(ctx) as (store, _config):
        removed = store.delete_history_item(history_id)

    if removed == 0:
        console.print(f"[yellow]No history item with id {history_id}.[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"Deleted {removed} history item(s).")


@app.command("import")
def import_file(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(
            help="Plain-text history file, one command per line.",
            exists=True,
            readable=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
    cwd: Annotated[
        Optional[str],
        typer.Option("--cwd", help="Working directory to record for every entry."),
    ] = None,
) -> None:
    """
    Import a history file. Importing an unchanged file twice adds nothing.

    Timestamps are derived from the file's modification time. Once lines are
    appended, re-importing the file stores every line again.

    Example:
        $ hiztery import ~/.config/nushell/history.txt
    """
    with _open_store(ctx) as (store, config):
        try:
            inserted = import_history_file(
                store,
                path,
                cwd=cwd or str(Path.cwd()),
                session_id=config.session_id,
            )
        except OSError as e:
            console.print(f"[red]Error reading {escape(str(path))}: {escape(str(e))}[/red]")
            raise typer.Exit(code=1)
        total = store.history_count()

    console.print(f"Imported {inserted} new history item(s); {total} stored in total.")


# =============================================================================
# Read Commands
# =============================================================================


@app.command("list")
def list_history(
    ctx: typer.Context,
    max_items: Annotated[
        Optional[int],
        typer.Option("--max", "-m", help="Maximum number of items to show.", min=0),
    ] = None,
    unique: Annotated[
        bool,
        typer.Option("--unique", "-u", help="Show only the newest item per command."),
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """
    List history, newest first.

    Example:
        $ hiztery list --max 5 --unique
    """
    with _open_store(ctx, json_output) as (store, _config):
        items = store.list_history(max_items, unique)
    _print_items(items, json_output)


@app.command()
def search(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Text to search for. '*' matches anything.")],
    mode: Annotated[
        str,
        typer.Option(
            "--mode",
            "-m",
            help="prefix (p), full_text (f) or fuzzy (z).",
        ),
    ] = "full_text",
    limit: Annotated[
        Optional[int],
        typer.Option("--limit", "-l", help="Maximum number of hits.", min=0),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """
    Search commands. Shows the newest hit per distinct command.

    Example:
        $ hiztery search -m z "gco"
    """
    search_mode = _parse_search_mode(mode)
    with _open_store(ctx, json_output) as (store, _config):
        hits = store.search(limit, search_mode, query)
    if not json_output:
        console.print(f"[dim]Found {len(hits)} hit(s).[/dim]")
    _print_items(hits, json_output)


@app.command()
def count(ctx: typer.Context, json_output: JsonOption = False) -> None:
    """Show how many items are stored."""
    with _open_store(ctx, json_output) as (store, _config):
        total = store.history_count()
    if json_output:
        print(json.dumps({"count": total}))
    else:
        console.print(f"{total} history item(s).")


@app.command()
def first(ctx: typer.Context, json_output: JsonOption = False) -> None:
    """Show the oldest item."""
    with _open_store(ctx, json_output) as (store, _config):
        item = store.first()
    _print_item(item, json_output)


@app.command()
def last(ctx: typer.Context, json_output: JsonOption = False) -> None:
    """Show the newest item."""
    with _open_store(ctx, json_output) as (store, _config):
        item = store.last()
    _print_item(item, json_output)


@app.command()
def load(
    ctx: typer.Context,
    history_id: Annotated[int, typer.Argument(help="The id of the item to show.")],
    json_output: JsonOption = False,
) -> None:
    """Show one item by id."""
    with _open_store(ctx, json_output) as (store, _config):
        item = store.load(history_id)
    _print_item(item, json_output)


@app.command("range")
def range_(
    ctx: typer.Context,
    start: Annotated[str, typer.Argument(help="Start date, e.g. 2021-07-21 (inclusive).")],
    end: Annotated[str, typer.Argument(help="End date, e.g. 2021-07-25 (inclusive).")],
    json_output: JsonOption = False,
) -> None:
    """
    List items between two dates, oldest first.

    Example:
        $ hiztery range 2021-07-21 2021-07-25
    """
    with _open_store(ctx, json_output) as (store, _config):
        items = store.range(parse_date(start), parse_date(end))
    _print_items(items, json_output)


@app.command()
def before(
    ctx: typer.Context,
    date: Annotated[str, typer.Argument(help="Only items older than this, e.g. 2021-07-21.")],
    count: Annotated[
        int,
        typer.Option("--count", "-n", help="Maximum number of items.", min=0),
    ] = 25,
    json_output: JsonOption = False,
) -> None:
    """
    List items older than a date, newest first.

    Example:
        $ hiztery before 2021-07-21 -n 25
    """
    with _open_store(ctx, json_output) as (store, _config):
        items = store.before(parse_date(date), count)
    _print_items(items, json_output)


@app.command()
def query(
    ctx: typer.Context,
    sql: Annotated[
        str,
        typer.Argument(help="SQL selecting history_items columns."),
    ] = "SELECT * FROM history_items",
    json_output: JsonOption = False,
) -> None:
    """
    Run raw SQL against the history table.

    For ad hoc diagnostics only: the text is executed as given.

    Example:
        $ hiztery query "SELECT * FROM history_items WHERE exit_status != 0"
    """
    with _open_store(ctx, json_output) as (store, _config):
        items = store.query_history(sql)
    _print_items(items, json_output)


if __name__ == "__main__":
    app()
