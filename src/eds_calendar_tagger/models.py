"""
Pure data models; no EDS or sqlite imports.
"""

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

DEFAULT_CACHE_DB = Path.home() / ".local/share/eds-calendar-tagger-cache.db"
DEFAULT_PROPERTIES = Path.home() / ".local/share/eds-calendar-tagger/properties.ini"
DEFAULT_CONFIG = Path.home() / ".config/eds-calendar-tagger.conf"

DEFAULT_TAGS = ["#Work", "#Personal", "#Internal_Meeting", "#External_Meeting"]
TAG_SIGIL = "#"

DEFAULT_STAGING_TTL = 120  # seconds a staged tag set survives without a toggle
DEFAULT_DIRTY_INDEX_TTL = 90  # must stay below DEFAULT_STAGING_TTL
DEFAULT_FLUSH_INTERVAL = 60

# Private extension field holding the persisted tag list (JSON array)
SELECTED_TAGS_PROPERTY = "selectedTags"

# Per-user durable property names
PROP_SPREADSHEET_ID = "spreadsheetId"
PROP_SHEET_NAME = "sheetName"
PROP_TAG_COLUMN = "column"
PROP_DOMAIN_COLUMN = "emailDomainColumn"
PROP_USER_TAGS = "userTags"


class TaggerError(Exception):
    """Base exception for calendar tagger errors."""

    pass


class CalendarUnavailableError(TaggerError):
    """The remote calendar store could not serve or accept an event."""

    pass


class SheetError(TaggerError):
    """The tabular configuration source could not be read."""

    pass


class MissingStagingKeyError(TaggerError):
    """A toggle request arrived without a staging key."""

    pass


@dataclass
class TaggerConfig:
    """Configuration for a tagger session."""

    user: str
    cache_db_path: Path
    properties_path: Path
    staging_ttl: int = DEFAULT_STAGING_TTL
    dirty_index_ttl: int = DEFAULT_DIRTY_INDEX_TTL
    flush_interval: int = DEFAULT_FLUSH_INTERVAL
    default_tags: list[str] = field(default_factory=lambda: list(DEFAULT_TAGS))
    verbose: bool = False


@dataclass
class SheetSettings:
    """Location of the tag and attendee-domain columns in the tabular source."""

    spreadsheet_id: str | None = None
    sheet_name: str | None = None
    tag_column: str | None = None
    domain_column: str | None = None

    @property
    def has_tag_source(self) -> bool:
        return bool(self.spreadsheet_id and self.sheet_name and self.tag_column)

    @property
    def has_domain_lookup(self) -> bool:
        return self.has_tag_source and bool(self.domain_column)


@dataclass
class Attendee:
    email: str | None = None


@dataclass
class EventRecord:
    """The parts of a remote calendar event the tagger reads and writes."""

    event_id: str
    summary: str | None = None
    attendees: list[Attendee] = field(default_factory=list)
    private: dict[str, str] = field(default_factory=dict)
    ical: str | None = None  # raw VEVENT as last read from the store


# --------------------------------------------------------------------------- #
# Staged cache values: exactly one of these comes back from a cache read       #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class StagedTags:
    tags: tuple[str, ...]


@dataclass(frozen=True)
class Absent:
    pass


@dataclass(frozen=True)
class Malformed:
    raw: str
    reason: str


StagedEntry = StagedTags | Absent | Malformed


@dataclass
class FlushStats:
    """Statistics for one synchronization pass."""

    flushed: int = 0
    skipped_new: int = 0
    skipped_missing: int = 0
    errors: int = 0
