"""
Unit tests for the stateless tag-set helpers.
"""

from eds_calendar_tagger.tags import title_has_tag
from eds_calendar_tagger.tags import title_tokens
from eds_calendar_tagger.tags import toggle
from eds_calendar_tagger.tags import unique
from eds_calendar_tagger.tags import with_sigil


class TestWithSigil:
    def test_adds_missing_sigil(self):
        assert with_sigil("Work") == "#Work"

    def test_keeps_existing_sigil(self):
        assert with_sigil("#Work") == "#Work"


class TestToggle:
    def test_adds_absent_tag(self):
        assert toggle(["#A"], "#B") == ["#A", "#B"]

    def test_removes_present_tag(self):
        assert toggle(["#A", "#B"], "#A") == ["#B"]

    def test_double_toggle_restores_set(self):
        assert toggle(toggle(["#A"], "#B"), "#B") == ["#A"]

    def test_input_duplicates_collapse(self):
        assert toggle(["#A", "#A"], "#B") == ["#A", "#B"]


def test_unique_keeps_first_occurrence():
    assert unique(["#B", "#A", "#B"]) == ["#B", "#A"]


def test_title_tokens():
    assert title_tokens("Sync #Work and #team_1, not # alone") == ["#Work", "#team_1"]
    assert title_tokens(None) == []


def test_title_has_tag_is_case_insensitive():
    assert title_has_tag("Call #sales", "#Sales")
    assert not title_has_tag("Call #Salesforce", "#Sales")
