"""
Per-user durable key/value properties stored in an INI file.

Each user owns one section.  The file is re-read on every access so that
separate invocations (panel actions, the flush scheduler) see each other's
writes.
"""

import logging
from configparser import ConfigParser
from pathlib import Path

from eds_calendar_tagger.models import PROP_DOMAIN_COLUMN
from eds_calendar_tagger.models import PROP_SHEET_NAME
from eds_calendar_tagger.models import PROP_SPREADSHEET_ID
from eds_calendar_tagger.models import PROP_TAG_COLUMN
from eds_calendar_tagger.models import SheetSettings

logger = logging.getLogger(__name__)


class UserProperties:
    """getProperty / setProperty / deleteProperty for a single user."""

    def __init__(self, path: Path, user: str):
        self.path = path
        self.user = user

    def _read(self) -> ConfigParser:
        # Property names are camelCase and values may hold JSON, so keep both verbatim
        parser = ConfigParser(interpolation=None)
        parser.optionxform = str
        if self.path.exists():
            parser.read(self.path, encoding="utf-8")
        return parser

    def _write(self, parser: ConfigParser):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            parser.write(fh)
        tmp_path.replace(self.path)

    def get_property(self, name: str) -> str | None:
        parser = self._read()
        if not parser.has_section(self.user):
            return None
        return parser.get(self.user, name, fallback=None)

    def set_property(self, name: str, value: str | None):
        parser = self._read()
        if not parser.has_section(self.user):
            parser.add_section(self.user)
        parser.set(self.user, name, value or "")
        self._write(parser)
        logger.debug(f"Property {name} set for {self.user}")

    def delete_property(self, name: str):
        parser = self._read()
        if parser.has_section(self.user) and parser.remove_option(self.user, name):
            self._write(parser)
            logger.debug(f"Property {name} deleted for {self.user}")

    def get_properties(self) -> dict[str, str]:
        parser = self._read()
        if not parser.has_section(self.user):
            return {}
        return dict(parser[self.user])

    # ------------------------------------------------------------------ #
    # Sheet settings                                                       #
    # ------------------------------------------------------------------ #

    def sheet_settings(self) -> SheetSettings:
        """Current sheet settings; blank values read as not configured."""
        values = self.get_properties()
        return SheetSettings(
            spreadsheet_id=values.get(PROP_SPREADSHEET_ID) or None,
            sheet_name=values.get(PROP_SHEET_NAME) or None,
            tag_column=values.get(PROP_TAG_COLUMN) or None,
            domain_column=values.get(PROP_DOMAIN_COLUMN) or None,
        )

    def save_sheet_settings(self, settings: SheetSettings):
        self.set_property(PROP_SPREADSHEET_ID, settings.spreadsheet_id)
        self.set_property(PROP_SHEET_NAME, settings.sheet_name)
        self.set_property(PROP_TAG_COLUMN, settings.tag_column)
        self.set_property(PROP_DOMAIN_COLUMN, settings.domain_column)
