"""
Command-line interface for EDS Calendar Tagger.
"""

import getpass
import logging
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from eds_calendar_tagger.db import query_namespaces
from eds_calendar_tagger.models import DEFAULT_CACHE_DB
from eds_calendar_tagger.models import DEFAULT_CONFIG
from eds_calendar_tagger.models import DEFAULT_DIRTY_INDEX_TTL
from eds_calendar_tagger.models import DEFAULT_FLUSH_INTERVAL
from eds_calendar_tagger.models import DEFAULT_PROPERTIES
from eds_calendar_tagger.models import DEFAULT_STAGING_TTL
from eds_calendar_tagger.models import DEFAULT_TAGS
from eds_calendar_tagger.models import Attendee
from eds_calendar_tagger.models import SheetSettings
from eds_calendar_tagger.models import TaggerConfig
from eds_calendar_tagger.models import TaggerError
from eds_calendar_tagger.panel import ErrorState
from eds_calendar_tagger.panel import EventContext
from eds_calendar_tagger.panel import HomeState
from eds_calendar_tagger.panel import Notification
from eds_calendar_tagger.panel import OpenEvent
from eds_calendar_tagger.panel import OpenHome
from eds_calendar_tagger.panel import PanelState
from eds_calendar_tagger.panel import SaveConfig
from eds_calendar_tagger.panel import ToggleTag
from eds_calendar_tagger.panel import dispatch
from eds_calendar_tagger.scheduler import FlushScheduler
from eds_calendar_tagger.session import UserSession

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Tag calendar events and write the tags back to Evolution Data Server.",
)

console = Console()

CONFIG_SECTION = "calendar-tagger"


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    cache_db: Path = field(default_factory=lambda: DEFAULT_CACHE_DB)
    properties: Path = field(default_factory=lambda: DEFAULT_PROPERTIES)
    user: str | None = None
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    cache_db: Annotated[
        Path,
        typer.Option("--cache-db", help=f"Staging cache DB path (default: {DEFAULT_CACHE_DB})"),
    ] = DEFAULT_CACHE_DB,
    properties: Annotated[
        Path,
        typer.Option("--properties", help=f"User properties file (default: {DEFAULT_PROPERTIES})"),
    ] = DEFAULT_PROPERTIES,
    user: Annotated[
        str | None,
        typer.Option("--user", "-u", help="User namespace (default: config file or $USER)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.cache_db = cache_db
    state.properties = properties
    state.user = user
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if CONFIG_SECTION not in parser:
        return {}
    return dict(parser[CONFIG_SECTION])


def _int_setting(values: dict[str, str], name: str, default: int) -> int:
    raw = values.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise typer.BadParameter(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise typer.BadParameter(f"{name} must be positive, got {value}")
    return value


def _build_config() -> TaggerConfig:
    values = _load_config_file(state.config_path)
    user = state.user or values.get("user") or getpass.getuser()

    default_tags = DEFAULT_TAGS
    if values.get("default_tags"):
        default_tags = [t.strip() for t in values["default_tags"].split(",") if t.strip()]

    staging_ttl = _int_setting(values, "staging_ttl", DEFAULT_STAGING_TTL)
    dirty_index_ttl = _int_setting(
        values, "dirty_index_ttl", min(DEFAULT_DIRTY_INDEX_TTL, staging_ttl)
    )
    if dirty_index_ttl > staging_ttl:
        raise typer.BadParameter("dirty_index_ttl must not exceed staging_ttl")

    return TaggerConfig(
        user=user,
        cache_db_path=state.cache_db,
        properties_path=state.properties,
        staging_ttl=staging_ttl,
        dirty_index_ttl=dirty_index_ttl,
        flush_interval=_int_setting(values, "flush_interval", DEFAULT_FLUSH_INTERVAL),
        default_tags=default_tags,
        verbose=state.verbose,
    )


def _make_calendar_store():
    from eds_calendar_tagger.eds_client import EDSCalendarStore

    return EDSCalendarStore()


def _open_session(cfg: TaggerConfig | None = None) -> UserSession:
    return UserSession(cfg or _build_config(), _make_calendar_store())


def _print_panel(panel: PanelState) -> None:
    info = Text()
    info.append("  Title:  ", style="bold")
    info.append(f"{panel.title or ''}\n")
    info.append("  Key:    ", style="bold")
    info.append(f"{panel.staging_key}\n", style="dim")
    info.append("  Tags:   ", style="bold")
    for button in panel.buttons:
        if button.style == "filled":
            style = "bold reverse cyan"
        elif button.background:
            style = "black on grey82"
        else:
            style = "cyan"
        info.append(f" {button.tag} ", style=style)
        info.append(" ")
    console.print(Panel(info, title="[bold]Select Tags[/bold]"))


def _print_home(home: HomeState) -> None:
    settings = Table.grid(padding=(0, 2))
    settings.add_column(style="bold")
    settings.add_column()
    settings.add_row("Spreadsheet ID", home.settings.spreadsheet_id or "[dim]not set[/dim]")
    settings.add_row("Sheet name", home.settings.sheet_name or "[dim]not set[/dim]")
    settings.add_row("Tag column", home.settings.tag_column or "[dim]not set[/dim]")
    settings.add_row("Email domain column", home.settings.domain_column or "[dim]not set[/dim]")
    console.print(Panel(settings, title="[bold]Spreadsheet Configuration[/bold]", expand=False))

    if home.catalog:
        tags = Text()
        for tag in home.catalog:
            tags.append(f" {tag} ", style="black on grey82")
            tags.append(" ")
    else:
        tags = Text(
            "Error: Unable to retrieve tags. Please check your spreadsheet "
            "configuration and try refreshing.",
            style="bold red",
        )
    console.print(Panel(tags, title="[bold]Current Tags[/bold]"))


def _render(result) -> None:
    """Print any panel result; exit non-zero for errors."""
    if isinstance(result, PanelState):
        _print_panel(result)
    elif isinstance(result, HomeState):
        _print_home(result)
    elif isinstance(result, Notification):
        style = "green" if result.ok else "bold red"
        console.print(f"[{style}]{result.message}[/]")
        if not result.ok:
            raise typer.Exit(1)
    elif isinstance(result, ErrorState):
        console.print(Panel(Text(result.message), title="[bold red]Error[/bold red]"))
        raise typer.Exit(1)


def _print_flush_results(stats) -> None:
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Flushed", str(stats.flushed))
    results.add_row("Unsaved events", str(stats.skipped_new))
    results.add_row("Nothing staged", str(stats.skipped_missing))
    error_val = Text(str(stats.errors))
    if stats.errors == 0:
        error_val.append(" ✓", style="green")
    else:
        error_val.stylize("bold red")
    results.add_row("Errors", error_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Panel subcommands
# ---------------------------------------------------------------------------


@app.command("open")
def open_(
    calendar: Annotated[
        str | None,
        typer.Option("--calendar", help="Calendar EDS UID (overrides config calendar_id)"),
    ] = None,
    event: Annotated[
        str | None,
        typer.Option("--event", "-e", help="Event UID; omit for an unsaved event"),
    ] = None,
    title: Annotated[
        str | None, typer.Option("--title", "-t", help="Draft title for an unsaved event")
    ] = None,
    attendee: Annotated[
        list[str] | None,
        typer.Option("--attendee", "-a", help="Draft attendee email (repeatable)"),
    ] = None,
) -> None:
    """Open the tag panel for an event and stage its tags."""
    calendar_id = calendar or _load_config_file(state.config_path).get("calendar_id")
    context = EventContext(
        calendar_id=calendar_id,
        event_id=event,
        title=title,
        attendees=[Attendee(email=a) for a in attendee or []],
    )
    with _open_session() as session:
        _render(dispatch(session, OpenEvent(context)))


@app.command()
def toggle(
    key: Annotated[str, typer.Argument(help="Staging key printed by 'open'")],
    tag: Annotated[str, typer.Argument(help="Tag to add or remove, e.g. '#Work'")],
) -> None:
    """Add or remove a tag on a staged event."""
    with _open_session() as session:
        _render(dispatch(session, ToggleTag(key, tag)))


@app.command()
def configure(
    spreadsheet_id: Annotated[
        str, typer.Option("--spreadsheet-id", help="Directory holding the sheet CSV files")
    ],
    sheet_name: Annotated[str, typer.Option("--sheet-name", help="Sheet (CSV file) name")],
    tag_column: Annotated[str, typer.Option("--tag-column", help="Tag column, e.g. A")],
    domain_column: Annotated[
        str | None,
        typer.Option("--domain-column", help="Attendee email domain column, e.g. B"),
    ] = None,
) -> None:
    """Save the sheet configuration and drop the memoized catalog."""
    settings = SheetSettings(
        spreadsheet_id=spreadsheet_id,
        sheet_name=sheet_name,
        tag_column=tag_column,
        domain_column=domain_column,
    )
    with _open_session() as session:
        _render(dispatch(session, SaveConfig(settings)))


@app.command()
def refresh() -> None:
    """Reload the tag catalog from the sheet and show the home page."""
    with _open_session() as session:
        _render(dispatch(session, OpenHome()))


app.command("home", help="Alias of refresh.")(refresh)


# ---------------------------------------------------------------------------
# Flush / scheduler
# ---------------------------------------------------------------------------


@app.command()
def flush(
    watch: Annotated[
        bool, typer.Option("--watch", "-w", help="Keep flushing on a fixed interval")
    ] = False,
    interval: Annotated[
        int | None,
        typer.Option("--interval", "-i", help="Seconds between passes (with --watch)"),
    ] = None,
) -> None:
    """Write staged tags back to their events."""
    cfg = _build_config()
    try:
        with _open_session(cfg) as session:
            if watch:
                scheduler = FlushScheduler(session.flush, interval or cfg.flush_interval)
                console.print(
                    f"[dim]Flushing every {scheduler.interval}s, Ctrl-C to stop[/dim]"
                )
                stats = scheduler.run()
            else:
                stats = session.flush()
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None

    _print_flush_results(stats)
    if stats.errors:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


@app.command()
def calendars() -> None:
    """List EDS calendars and their UIDs."""
    from eds_calendar_tagger.eds_client import list_calendars

    try:
        entries = list_calendars()
    except TaggerError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Display Name", style="bold")
    table.add_column("Account")
    table.add_column("UID", style="dim")
    for name, account, uid in entries:
        table.add_row(name, account, uid)
    console.print(table)


@app.command()
def status() -> None:
    """Show staged cache entries per user namespace."""
    rows = query_namespaces(state.cache_db)
    if not rows:
        console.print("[dim]No staged entries.[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("User", style="bold")
    table.add_column("Entries", justify="right")
    table.add_column("Last update")
    for row in rows:
        last = datetime.fromtimestamp(row["last_update"]).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(row["namespace"], str(row["count"]), last)
    console.print(table)


def main() -> None:
    app()
