"""
Shared pytest fixtures: a controllable clock, on-disk stores under tmp_path,
and a session wired to the in-memory calendar store.
"""

import csv

import pytest

from eds_calendar_tagger.db import CacheStore
from eds_calendar_tagger.models import TaggerConfig
from eds_calendar_tagger.properties import UserProperties
from eds_calendar_tagger.session import UserSession
from tests.fake_store import FakeCalendarStore

CALENDAR_ID = "calendar-test"
OTHER_CALENDAR_ID = "calendar-other"
USER = "tester"

STAGING_TTL = 120
DIRTY_INDEX_TTL = 90


class FakeClock:
    """Callable returning a manually advanced timestamp."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def write_sheet(directory, name: str, rows: list[list[str]]):
    """Write ``rows`` as ``<directory>/<name>.csv``."""
    directory.mkdir(parents=True, exist_ok=True)
    with (directory / f"{name}.csv").open("w", newline="", encoding="utf-8") as fh:
        csv.writer(fh).writerows(rows)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_db_path(tmp_path):
    return tmp_path / "cache.db"


@pytest.fixture
def properties_path(tmp_path):
    return tmp_path / "properties.ini"


@pytest.fixture
def cache_store(cache_db_path, clock):
    with CacheStore(cache_db_path, USER, clock=clock) as store:
        yield store


@pytest.fixture
def properties(properties_path):
    return UserProperties(properties_path, USER)


@pytest.fixture
def sheet_dir(tmp_path):
    """A spreadsheet with a 'Tags' sheet: column A tags, column B domains."""
    directory = tmp_path / "sheets"
    write_sheet(
        directory,
        "Tags",
        [
            ["Sales", "example.com"],
            ["#Support", "help.example.org"],
            ["Work", "other.com"],
            ["", "blank.net"],
        ],
    )
    return directory


@pytest.fixture
def tagger_config(cache_db_path, properties_path):
    return TaggerConfig(
        user=USER,
        cache_db_path=cache_db_path,
        properties_path=properties_path,
        staging_ttl=STAGING_TTL,
        dirty_index_ttl=DIRTY_INDEX_TTL,
    )


@pytest.fixture
def fake_store():
    return FakeCalendarStore()


@pytest.fixture
def session(tagger_config, fake_store, clock):
    with UserSession(tagger_config, fake_store, clock=clock) as s:
        yield s
