"""
Panel controller boundary.

The panel sends one of a closed set of commands; ``dispatch`` routes each to
its handler and returns a renderable state.  Handlers never raise for store
failures: they degrade to a usable panel, an ``ErrorState`` or a
``Notification``.
"""

import json
import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Callable

from eds_calendar_tagger.autotag import auto_tag_from_attendees
from eds_calendar_tagger.autotag import extract_tags_from_title
from eds_calendar_tagger.models import SELECTED_TAGS_PROPERTY
from eds_calendar_tagger.models import Absent
from eds_calendar_tagger.models import Attendee
from eds_calendar_tagger.models import EventRecord
from eds_calendar_tagger.models import MissingStagingKeyError
from eds_calendar_tagger.models import SheetSettings
from eds_calendar_tagger.models import StagedTags
from eds_calendar_tagger.models import TaggerError
from eds_calendar_tagger.session import UserSession
from eds_calendar_tagger.staging import StagingKey
from eds_calendar_tagger.tags import title_has_tag
from eds_calendar_tagger.tags import unique

logger = logging.getLogger(__name__)

FREE_TAG_BACKGROUND = "#d3d3d3"

MSG_NO_CALENDAR = "Calendar ID is not available. Please try again later."
MSG_NO_KEY = "Cache Key is missing."
MSG_BAD_KEY = "Cache Key is not recognised."
MSG_CONFIG_SAVED = "Configuration saved."
MSG_CONFIG_FAILED = "Error saving configuration. Check logs."
MSG_REFRESH_FAILED = "Error refreshing tags. Check logs."


# --------------------------------------------------------------------------- #
# Commands                                                                     #
# --------------------------------------------------------------------------- #


@dataclass
class EventContext:
    """What the panel knows about the event being opened."""

    calendar_id: str | None
    event_id: str | None = None
    # Draft values, used only when the event cannot be fetched
    title: str | None = None
    attendees: list[Attendee] = field(default_factory=list)


@dataclass(frozen=True)
class OpenEvent:
    context: EventContext


@dataclass(frozen=True)
class ToggleTag:
    staging_key: str | None
    tag: str


@dataclass(frozen=True)
class SaveConfig:
    settings: SheetSettings


@dataclass(frozen=True)
class RefreshCatalog:
    pass


@dataclass(frozen=True)
class OpenHome:
    pass


Command = OpenEvent | ToggleTag | SaveConfig | RefreshCatalog | OpenHome


# --------------------------------------------------------------------------- #
# Renderable states                                                            #
# --------------------------------------------------------------------------- #


@dataclass
class TagButton:
    tag: str
    selected: bool
    in_catalog: bool

    @property
    def style(self) -> str:
        return "filled" if self.selected and self.in_catalog else "text"

    @property
    def background(self) -> str | None:
        # Staged tags that are not in the catalog are greyed out
        return FREE_TAG_BACKGROUND if self.selected and not self.in_catalog else None


@dataclass
class PanelState:
    staging_key: str
    title: str | None
    selected: list[str]
    buttons: list[TagButton]


@dataclass
class HomeState:
    settings: SheetSettings
    catalog: list[str]


@dataclass
class ErrorState:
    message: str


@dataclass
class Notification:
    message: str
    ok: bool = True


def build_panel(
    selected: list[str], catalog: list[str], key: StagingKey, title: str | None
) -> PanelState:
    """Selected tags first (free tags included), then the unselected catalog tags."""
    known = set(catalog)
    chosen = unique(selected)
    buttons = [TagButton(tag, True, tag in known) for tag in chosen]
    staged = set(chosen)
    buttons.extend(TagButton(tag, False, True) for tag in unique(catalog) if tag not in staged)
    return PanelState(staging_key=str(key), title=title, selected=chosen, buttons=buttons)


# --------------------------------------------------------------------------- #
# Handlers                                                                     #
# --------------------------------------------------------------------------- #


def load_persisted_tags(record: EventRecord | None) -> list[str]:
    """Tags previously flushed onto the event; empty when absent or unreadable."""
    if record is None:
        return []
    raw = record.private.get(SELECTED_TAGS_PROPERTY)
    if not raw:
        logger.debug("No tags saved, initializing as empty")
        return []
    try:
        tags = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring malformed saved tags on {record.event_id}: {e}")
        return []
    if not isinstance(tags, list):
        logger.warning(f"Ignoring saved tags on {record.event_id}: not a list")
        return []
    return unique(t for t in tags if isinstance(t, str))


def _initial_tags(
    session: UserSession,
    record: EventRecord | None,
    title: str | None,
    attendees: list[Attendee],
    catalog: list[str],
    is_new: bool,
) -> tuple[list[str], str | None]:
    """Persisted tags, or derived ones when none were saved; returns (tags, title)."""
    selected = load_persisted_tags(record)
    if not selected:
        selected.extend(extract_tags_from_title(title, catalog))
        auto_tag = auto_tag_from_attendees(
            attendees, session.properties.sheet_settings(), session.sheets
        )
        if auto_tag:
            selected.append(auto_tag)
            if is_new and not title_has_tag(title, auto_tag):
                title = f"{auto_tag} {title or ''}".strip()
        logger.debug(f"Derived tags: {selected}")
    return unique(selected), title


def open_event(session: UserSession, command: OpenEvent) -> PanelState | ErrorState:
    ctx = command.context
    if not ctx.calendar_id:
        logger.error("Calendar ID is not available")
        return ErrorState(MSG_NO_CALENDAR)

    event_id = ctx.event_id
    title = ctx.title
    attendees = list(ctx.attendees)
    record = None

    if event_id:
        try:
            record = session.calendar_store.get_event(ctx.calendar_id, event_id)
            title = record.summary
            attendees = record.attendees
        except TaggerError as e:
            # Possibly still being created; stage it like a new event
            logger.warning(f"Could not fetch event {event_id}, treating as new: {e}")
            event_id = None
    else:
        logger.debug("New event detected")

    if event_id:
        key = StagingKey.for_event(ctx.calendar_id, event_id)
    else:
        key = StagingKey.for_new_event()
    catalog = session.catalog.resolve()

    entry = session.staging.get(key)
    if isinstance(entry, StagedTags):
        logger.debug(f"Loading tags from {key}")
        return build_panel(list(entry.tags), catalog, key, title)

    selected, title = _initial_tags(session, record, title, attendees, catalog, key.is_new)
    session.staging.put(key, selected)
    return build_panel(selected, catalog, key, title)


def _require_key(raw_key: str | None) -> StagingKey:
    if not raw_key:
        raise MissingStagingKeyError(MSG_NO_KEY)
    try:
        return StagingKey.parse(raw_key)
    except ValueError as e:
        raise MissingStagingKeyError(MSG_BAD_KEY) from e


def _reload_tags(session: UserSession, key: StagingKey, catalog: list[str]) -> list[str]:
    try:
        record = session.calendar_store.get_event(key.calendar_id, key.event_id)
    except TaggerError as e:
        logger.warning(f"Could not fetch event {key.event_id}, starting from no tags: {e}")
        return []
    selected, _ = _initial_tags(
        session, record, record.summary, record.attendees, catalog, is_new=False
    )
    return selected


def toggle_tag(session: UserSession, command: ToggleTag) -> PanelState | ErrorState:
    try:
        key = _require_key(command.staging_key)
    except MissingStagingKeyError as e:
        logger.error(f"Toggle rejected: {e}")
        return ErrorState(str(e))

    catalog = session.catalog.resolve()
    if not key.is_new and isinstance(session.staging.get(key), Absent):
        # Expired: restage from the event so the toggle applies to its saved tags
        logger.debug(f"Staged tags for {key} expired, reloading from the event")
        session.staging.put(key, _reload_tags(session, key, catalog))

    selected = session.staging.toggle(key, command.tag)
    logger.debug(f"Toggled {command.tag} on {key}: {selected}")
    return build_panel(selected, catalog, key, None)


def save_config(session: UserSession, command: SaveConfig) -> Notification:
    logger.debug(f"Saving sheet settings: {command.settings}")
    try:
        session.properties.save_sheet_settings(command.settings)
        session.catalog.invalidate()
    except OSError as e:
        logger.error(f"Error saving configuration: {e}", exc_info=True)
        return Notification(MSG_CONFIG_FAILED, ok=False)
    return Notification(MSG_CONFIG_SAVED)


def refresh_catalog(
    session: UserSession, command: RefreshCatalog | OpenHome
) -> HomeState | Notification:
    try:
        session.catalog.invalidate()
        catalog = session.catalog.resolve()
        settings = session.properties.sheet_settings()
    except (OSError, TaggerError) as e:
        logger.error(f"Error refreshing tags: {e}", exc_info=True)
        return Notification(MSG_REFRESH_FAILED, ok=False)
    logger.debug(f"Tags after refresh: {catalog}")
    return HomeState(settings=settings, catalog=catalog)


_HANDLERS: dict[type, Callable] = {
    OpenEvent: open_event,
    ToggleTag: toggle_tag,
    SaveConfig: save_config,
    RefreshCatalog: refresh_catalog,
    OpenHome: refresh_catalog,
}


def dispatch(session: UserSession, command: Command):
    """Route a panel command to its handler."""
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"Unsupported panel command: {type(command).__name__}")
    return handler(session, command)
