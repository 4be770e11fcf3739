"""
Automatic tag derivation from an event's title and attendees.

Both strategies are read-only: they never write to the sheet, the cache or
the calendar.
"""

import logging
from typing import Iterable

from eds_calendar_tagger.models import Attendee
from eds_calendar_tagger.models import SheetError
from eds_calendar_tagger.models import SheetSettings
from eds_calendar_tagger.sheets import SheetSource
from eds_calendar_tagger.tags import title_tokens
from eds_calendar_tagger.tags import with_sigil

logger = logging.getLogger(__name__)


def extract_tags_from_title(title: str | None, catalog: list[str]) -> list[str]:
    """
    Return the catalog tags named in the title, matched case-insensitively.

    Every ``#word`` token is looked up; tokens with no catalog counterpart
    are dropped.  The catalog spelling is returned, not the title's.
    """
    by_lower = {}
    for tag in catalog:
        by_lower.setdefault(tag.lower(), tag)

    matches = []
    for token in title_tokens(title):
        tag = by_lower.get(token.lower())
        if tag is not None and tag not in matches:
            matches.append(tag)
    return matches


def _email_domain(email: str | None) -> str | None:
    if not email or "@" not in email:
        return None
    return email.split("@")[1]


def auto_tag_from_attendees(
    attendees: Iterable[Attendee], settings: SheetSettings, sheets: SheetSource
) -> str | None:
    """
    Look up the first attendee whose email domain is listed in the sheet.

    Attendees are tried in order and, for each one, sheet rows top to bottom;
    the first matching row decides.  Missing configuration, a missing sheet
    or an unreadable source all yield None.
    """
    if not settings.domain_column:
        logger.debug("Email domain column not configured")
        return None
    if not settings.has_tag_source:
        logger.debug("Spreadsheet ID, sheet name, or tag column not configured")
        return None

    try:
        sheet = sheets.open_by_id(settings.spreadsheet_id).get_sheet_by_name(settings.sheet_name)
        if sheet is None:
            logger.debug(f'Sheet "{settings.sheet_name}" not found in spreadsheet')
            return None
        if sheet.get_last_row() == 0:
            logger.debug("Sheet is empty")
            return None
        tag_values = sheet.get_column_values(settings.tag_column)
        domain_values = sheet.get_column_values(settings.domain_column)
    except SheetError as e:
        logger.warning(f"Attendee domain lookup unavailable: {e}")
        return None

    for attendee in attendees:
        domain = _email_domain(attendee.email)
        if not domain:
            continue
        logger.debug(f"Checking attendee email: {attendee.email}, domain: {domain}")
        for row_tag, row_domain in zip(tag_values, domain_values):
            if row_domain == domain:
                tag = with_sigil(row_tag) if row_tag else None
                logger.debug(f"Found match for domain {domain}, tag: {tag}")
                return tag

    logger.debug("No matching domain found for attendees")
    return None
