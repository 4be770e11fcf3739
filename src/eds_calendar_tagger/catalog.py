"""
Tag catalog: the default tags plus the tags listed in the user's sheet.
"""

import json
import logging

from eds_calendar_tagger.models import PROP_USER_TAGS
from eds_calendar_tagger.models import SheetError
from eds_calendar_tagger.models import SheetSettings
from eds_calendar_tagger.properties import UserProperties
from eds_calendar_tagger.sheets import SheetSource
from eds_calendar_tagger.tags import unique
from eds_calendar_tagger.tags import with_sigil

logger = logging.getLogger(__name__)


def fetch_sheet_tags(settings: SheetSettings, sheets: SheetSource) -> list[str]:
    """
    Read the tag column of the configured sheet.

    Returns an empty list when the source is not configured, the sheet does
    not exist or is empty.  Raises SheetError when the spreadsheet cannot be
    opened or read.
    """
    if not settings.has_tag_source:
        logger.debug("Spreadsheet ID, sheet name, or tag column not configured")
        return []

    spreadsheet = sheets.open_by_id(settings.spreadsheet_id)
    sheet = spreadsheet.get_sheet_by_name(settings.sheet_name)
    if sheet is None:
        logger.warning(f'Sheet "{settings.sheet_name}" not found in spreadsheet')
        return []
    if sheet.get_last_row() == 0:
        logger.debug("Sheet is empty")
        return []

    values = sheet.get_column_values(settings.tag_column)
    tags = unique(with_sigil(value) for value in values if value)
    logger.debug(f"Fetched tags from sheet: {tags}")
    return tags


class TagCatalogResolver:
    """
    Resolves and memoizes the ordered tag catalog for one user.

    The memo lives in the user's durable properties so it survives between
    invocations; ``invalidate()`` drops it and the next ``resolve()`` reads
    the sheet again.
    """

    def __init__(self, properties: UserProperties, sheets: SheetSource, default_tags: list[str]):
        self.properties = properties
        self.sheets = sheets
        self.default_tags = list(default_tags)

    def _memoized(self) -> list[str] | None:
        raw = self.properties.get_property(PROP_USER_TAGS)
        if not raw:
            return None
        try:
            tags = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed memoized catalog: {e}")
            return None
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            logger.warning("Ignoring memoized catalog that is not a list of strings")
            return None
        return tags

    def resolve(self) -> list[str]:
        """Return the catalog, reading the sheet only on a memo miss."""
        tags = self._memoized()
        if tags is not None:
            return tags

        logger.debug("Catalog not memoized, fetching from sheet")
        try:
            sheet_tags = fetch_sheet_tags(self.properties.sheet_settings(), self.sheets)
        except SheetError as e:
            # Not memoized, so the next resolve retries the sheet
            logger.warning(f"Falling back to default tags: {e}")
            return unique(self.default_tags)

        tags = unique([*self.default_tags, *sheet_tags])
        try:
            self.properties.set_property(PROP_USER_TAGS, json.dumps(tags))
        except OSError as e:
            logger.warning(f"Could not memoize catalog: {e}")
        logger.debug(f"Combined tags: {tags}")
        return tags

    def invalidate(self):
        """Forget the memoized catalog; the sheet itself is left untouched."""
        self.properties.delete_property(PROP_USER_TAGS)
        logger.debug("Catalog memo invalidated")
