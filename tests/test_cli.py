"""
CLI tests: commands driven through Typer's test runner against the in-memory
calendar store and on-disk stores under tmp_path.
"""

import json

import pytest
from typer.testing import CliRunner

from eds_calendar_tagger import cli
from eds_calendar_tagger.models import SELECTED_TAGS_PROPERTY
from eds_calendar_tagger.staging import StagingKey
from tests.conftest import CALENDAR_ID
from tests.fake_store import FakeCalendarStore


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def store(monkeypatch):
    fake = FakeCalendarStore()
    monkeypatch.setattr(cli, "_make_calendar_store", lambda: fake)
    return fake


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "tagger.conf"
    path.write_text(f"[calendar-tagger]\ncalendar_id = {CALENDAR_ID}\n")
    return path


@pytest.fixture
def invoke(runner, tmp_path, config_file, store):
    base = [
        "--config", str(config_file),
        "--cache-db", str(tmp_path / "cache.db"),
        "--properties", str(tmp_path / "properties.ini"),
        "--user", "tester",
    ]

    def _invoke(*args):
        return runner.invoke(cli.app, [*base, *args])

    return _invoke


def test_open_toggle_flush_writes_tags(invoke, store):
    store.add_event(CALENDAR_ID, "E1", summary="Planning #Work")

    result = invoke("open", "-e", "E1")
    assert result.exit_code == 0, result.output
    assert "#Work" in result.output

    key = str(StagingKey.for_event(CALENDAR_ID, "E1"))
    result = invoke("toggle", key, "#Personal")
    assert result.exit_code == 0, result.output

    result = invoke("flush")
    assert result.exit_code == 0, result.output
    saved = json.loads(store.stored(CALENDAR_ID, "E1").private[SELECTED_TAGS_PROPERTY])
    assert saved == ["#Work", "#Personal"]


def test_open_without_calendar_fails(invoke, config_file):
    config_file.write_text("[calendar-tagger]\n")
    result = invoke("open", "-e", "E1")
    assert result.exit_code == 1
    assert "Calendar ID is not available" in result.output


def test_toggle_unknown_key_fails(invoke):
    result = invoke("toggle", "not-a-key", "#Work")
    assert result.exit_code == 1
    assert "Cache Key" in result.output


def test_flush_reports_errors(invoke, store):
    store.add_event(CALENDAR_ID, "E1")
    key = str(StagingKey.for_event(CALENDAR_ID, "E1"))
    assert invoke("toggle", key, "#Work").exit_code == 0

    store.fail_update.add("E1")
    result = invoke("flush")

    assert result.exit_code == 1
    assert SELECTED_TAGS_PROPERTY not in store.stored(CALENDAR_ID, "E1").private


def test_configure_then_refresh_lists_sheet_tags(invoke, sheet_dir):
    result = invoke(
        "configure",
        "--spreadsheet-id", str(sheet_dir),
        "--sheet-name", "Tags",
        "--tag-column", "A",
        "--domain-column", "B",
    )
    assert result.exit_code == 0, result.output
    assert "Configuration saved." in result.output

    result = invoke("refresh")
    assert result.exit_code == 0, result.output
    assert "#Sales" in result.output
    assert "#Support" in result.output


def test_dirty_index_ttl_cannot_exceed_staging_ttl(invoke, config_file):
    config_file.write_text(
        f"[calendar-tagger]\ncalendar_id = {CALENDAR_ID}\n"
        "staging_ttl = 60\ndirty_index_ttl = 90\n"
    )
    result = invoke("flush")
    assert result.exit_code != 0


def test_status_lists_namespaces(invoke, store):
    store.add_event(CALENDAR_ID, "E1")
    assert invoke("open", "-e", "E1").exit_code == 0

    result = invoke("status")
    assert result.exit_code == 0, result.output
    assert "tester" in result.output
