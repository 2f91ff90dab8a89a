"""
Command-line interface for Markdown Calendar Sync.
"""

import logging
import time
from configparser import ConfigParser
from configparser import Error as ConfigParserError
from dataclasses import dataclass
from dataclasses import field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from md_calendar_sync.db import query_status
from md_calendar_sync.local_store import LocalSystemStore
from md_calendar_sync.models import DEFAULT_CACHE_DB
from md_calendar_sync.models import DEFAULT_CONFIG
from md_calendar_sync.models import DEFAULT_LOG_FILE
from md_calendar_sync.models import DEFAULT_STORE_DB
from md_calendar_sync.models import ConfigurationError
from md_calendar_sync.models import SyncConfig
from md_calendar_sync.models import SyncError
from md_calendar_sync.models import SyncStats
from md_calendar_sync.sync import Synchronizer

CONFIG_SECTION = "md-calendar-sync"
LOG_MAX_BYTES = 5 * 1024 * 1024

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Two-way sync between Markdown/vCard folders and a calendar, task and contact store.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    verbose: bool = False
    log_file: Path | None = None


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help=f"Sync history log (default: {DEFAULT_LOG_FILE})"),
    ] = None,
) -> None:
    state.config_path = config
    state.verbose = verbose
    state.log_file = log_file


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool, log_file: Path) -> None:
    handlers: list[logging.Handler] = [
        RichHandler(rich_tracebacks=True, show_path=False, console=console)
    ]
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=1)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handlers.append(file_handler)
    except OSError as e:
        console.print(f"[yellow]Warning:[/] cannot open log file {log_file}: {e}")

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    try:
        parser.read(config_path)
    except ConfigParserError as e:
        raise ConfigurationError(f"Cannot parse {config_path}: {e}") from e
    if CONFIG_SECTION not in parser:
        return {}
    return dict(parser[CONFIG_SECTION])


def _path(value: str | None) -> Path | None:
    return Path(value).expanduser() if value else None


def _build_config(
    calendar_root: Path | None = None,
    task_root: Path | None = None,
    contacts_root: Path | None = None,
    yes: bool = False,
) -> SyncConfig:
    try:
        config_file = _load_config_file(state.config_path)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    try:
        keepalive = float(config_file.get("keepalive_seconds", "0"))
    except ValueError:
        console.print("[bold red]Error:[/] keepalive_seconds must be a number of seconds.")
        raise typer.Exit(1) from None

    log_file = state.log_file or _path(config_file.get("log_file")) or DEFAULT_LOG_FILE
    _setup_logging(state.verbose, log_file)

    return SyncConfig(
        calendar_root=calendar_root or _path(config_file.get("calendar_root")),
        task_root=task_root or _path(config_file.get("task_root")),
        contacts_root=contacts_root or _path(config_file.get("contacts_root")),
        cache_db_path=_path(config_file.get("cache_db")) or DEFAULT_CACHE_DB,
        store_db_path=_path(config_file.get("store_db")) or DEFAULT_STORE_DB,
        keepalive_interval=keepalive,
        verbose=state.verbose,
        yes=yes,
    )


def _print_results(stats: SyncStats, title: str = "Results") -> None:
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Added", str(stats.added))
    results.add_row("Modified", str(stats.modified))
    results.add_row("Deleted", str(stats.deleted))
    if stats.archived:
        results.add_row("Archived", str(stats.archived))
    error_val = Text(str(stats.errors))
    if stats.errors == 0:
        error_val.append(" ✓", style="green")
    else:
        error_val.stylize("bold red")
    results.add_row("Errors", error_val)

    console.print(Panel(results, title=f"[bold]{title}[/bold]", expand=False))


def _run_guarded(action) -> SyncStats:
    """Run a synchronizer action, mapping failures to exit codes."""
    try:
        return action()
    except SyncError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(1) from e


def _folder_line(info: Text, label: str, path: Path | None) -> None:
    info.append(f"  {label:<10} ", style="bold")
    if path is None:
        info.append("(not configured)\n", style="dim")
    else:
        info.append(f"{path}\n")


def _run_sync(cfg: SyncConfig, watch: float | None) -> None:
    """Core sync runner: display panel, confirm, run, show results."""
    from md_calendar_sync.preflight import run_preflight_checks

    if cfg.calendar_root is None and cfg.task_root is None:
        console.print(
            "[bold red]Error:[/] A calendar or task folder must be provided via "
            "[cyan]--calendar-root[/]/[cyan]--task-root[/] or in the config file."
        )
        raise typer.Exit(1)

    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)

    # -- Info panel ----------------------------------------------------------
    info = Text()
    _folder_line(info, "Calendars:", cfg.calendar_root)
    _folder_line(info, "Tasks:", cfg.task_root)
    info.append("  Store:      ", style="bold")
    info.append(f"{cfg.store_db_path}\n", style="dim")
    info.append("  Operation: ")
    if watch:
        info.append_text(Text(f"SYNC every {watch:g}s", style="bold green"))
    else:
        info.append_text(Text("SYNC", style="bold green"))

    console.print(Panel(info, title="[bold]Markdown Calendar Sync[/bold]"))

    # -- Confirmation --------------------------------------------------------
    if not cfg.yes:
        typer.confirm("Proceed?", abort=True)

    # -- Run -----------------------------------------------------------------
    with LocalSystemStore(cfg.store_db_path) as store:
        synchronizer = Synchronizer(cfg, store)
        while True:
            stats = _run_guarded(synchronizer.run)
            _print_results(stats)
            if not watch:
                break
            try:
                time.sleep(watch)
            except KeyboardInterrupt:
                console.print("[yellow]Stopped watching[/]")
                break

    if stats.errors:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Subcommand: sync
# ---------------------------------------------------------------------------

_CAL_OPT = Annotated[
    Path | None,
    typer.Option("--calendar-root", help="Folder holding one sub-folder per calendar"),
]
_TASK_OPT = Annotated[
    Path | None,
    typer.Option("--task-root", help="Folder holding task documents"),
]
_CONTACTS_OPT = Annotated[
    Path | None,
    typer.Option("--contacts-root", help="Folder holding .vcf contact files"),
]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]
_WATCH = Annotated[
    float | None,
    typer.Option("--watch", "-w", help="Repeat the sync every N seconds until interrupted"),
]


@app.command()
def sync(
    calendar_root: _CAL_OPT = None,
    task_root: _TASK_OPT = None,
    yes: _YES = False,
    watch: _WATCH = None,
) -> None:
    """Synchronise calendar and task folders with the store."""
    _run_sync(_build_config(calendar_root, task_root, yes=yes), watch)


# ---------------------------------------------------------------------------
# Subcommand: contacts
# ---------------------------------------------------------------------------


@app.command()
def contacts(contacts_root: _CONTACTS_OPT = None) -> None:
    """Synchronise the contacts folder with the store."""
    cfg = _build_config(contacts_root=contacts_root)
    if cfg.contacts_root is None:
        console.print(
            "[bold red]Error:[/] A contacts folder must be provided via "
            "[cyan]--contacts-root[/] or in the config file."
        )
        raise typer.Exit(1)

    with LocalSystemStore(cfg.store_db_path) as store:
        stats = _run_guarded(Synchronizer(cfg, store).run_contacts)
    _print_results(stats, title="Contacts")
    if stats.errors:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration and metadata cache summary."""
    cfg = _build_config()
    config_exists = state.config_path.exists()

    cfg_info = Text()
    cfg_info.append("  Config:    ", style="bold")
    cfg_info.append(str(state.config_path) + " ")
    cfg_info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    cfg_info.append("\n")
    _folder_line(cfg_info, "Calendars:", cfg.calendar_root)
    _folder_line(cfg_info, "Tasks:", cfg.task_root)
    _folder_line(cfg_info, "Contacts:", cfg.contacts_root)
    cfg_info.append("  Cache:      ", style="bold")
    cfg_info.append(str(cfg.cache_db_path), style="dim")

    console.print(Panel(cfg_info, title="[bold]Markdown Calendar Sync: Status[/bold]"))

    counts = query_status(cfg.cache_db_path)
    if not counts:
        console.print(
            "[yellow]No files tracked yet. Run[/] [cyan]md-calendar-sync sync[/] "
            "[yellow]to build the cache.[/]"
        )
        return

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Collection")
    table.add_column("Files", justify="right")
    table.add_column("Linked", justify="right")
    for collection, (total, linked) in counts.items():
        table.add_row(collection, str(total), str(linked))
    console.print(Panel(table, title="[bold]Tracked files[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommand: collections
# ---------------------------------------------------------------------------


@app.command()
def collections() -> None:
    """List the store's collections and how many records each holds."""
    cfg = _build_config()
    if not cfg.store_db_path.exists():
        console.print(f"[yellow]No store at {cfg.store_db_path} yet.[/]")
        return

    with LocalSystemStore(cfg.store_db_path) as store:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Collection")
        table.add_column("Records", justify="right")
        table.add_column("Dirty", justify="right")
        table.add_column("Deleted", justify="right")
        for name, collection_id in store.list_collections().items():
            records = store.list_records(collection_id)
            table.add_row(
                name,
                str(len(records)),
                str(sum(r.dirty for r in records)),
                str(sum(r.deleted for r in records)),
            )
        table.add_row("Contacts", str(len(store.list_contacts())), "", "")
    console.print(table)


# ---------------------------------------------------------------------------
# Subcommand: wipe
# ---------------------------------------------------------------------------


@app.command()
def wipe(yes: _YES = False) -> None:
    """Remove all collections and contacts from the store and clear the cache.

    Files are never touched; the next sync re-creates the store from them.
    """
    cfg = _build_config(yes=yes)
    console.print(
        Panel(
            Text(f"  Store: {cfg.store_db_path}\n  Cache: {cfg.cache_db_path}"),
            title="[bold red]WIPE[/bold red]",
        )
    )
    if not cfg.yes:
        typer.confirm("Delete everything in the store?", abort=True)

    with LocalSystemStore(cfg.store_db_path) as store:
        stats = _run_guarded(Synchronizer(cfg, store).wipe)
    _print_results(stats, title="Wipe")


def main():
    app()


if __name__ == "__main__":
    main()
