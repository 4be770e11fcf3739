"""
Write-back of staged tag edits to the calendar store.
"""

import json
import logging
import sqlite3

from eds_calendar_tagger.models import SELECTED_TAGS_PROPERTY
from eds_calendar_tagger.models import Absent
from eds_calendar_tagger.models import FlushStats
from eds_calendar_tagger.models import StagedTags
from eds_calendar_tagger.models import TaggerError
from eds_calendar_tagger.staging import DIRTY
from eds_calendar_tagger.staging import DirtyIndex
from eds_calendar_tagger.staging import StagingCache
from eds_calendar_tagger.staging import StagingKey


class TagSynchronizer:
    """
    Drains the dirty index into the calendar store.

    One pass visits every Dirty key.  A key whose flush succeeds has its
    staged entry evicted and leaves the index; a key whose flush fails stays
    Dirty for the next pass.  Keys for unsaved events are never flushed, and
    keys whose staged entry has expired are dropped since nothing is left to
    write.
    """

    def __init__(self, staging: StagingCache, dirty_index: DirtyIndex, calendar_store):
        self.staging = staging
        self.dirty_index = dirty_index
        self.calendar_store = calendar_store
        self.logger = logging.getLogger(__name__)

    def run(self) -> FlushStats:
        """Execute one flush pass."""
        stats = FlushStats()

        dirty = self.dirty_index.dirty_keys()
        if not dirty:
            self.logger.debug("No modified events found")
            return stats

        self.logger.debug(f"Modified events: {dirty}")
        retired = {raw_key for raw_key in dirty if self._flush_key(raw_key, stats)}

        # Keys toggled during the pass are only in the stored index
        stored = self.dirty_index.load()
        remaining = {raw_key: DIRTY for raw_key in dirty if raw_key not in retired}
        remaining.update(
            (raw_key, DIRTY)
            for raw_key, status in stored.items()
            if status == DIRTY and raw_key not in retired
        )
        if not remaining:
            self.dirty_index.clear()
        elif remaining != stored:
            self.dirty_index.save(remaining)

        self.logger.info(
            f"Flush pass: {stats.flushed} flushed, {stats.errors} failed, "
            f"{stats.skipped_new} unsaved, {stats.skipped_missing} without staged tags"
        )
        return stats

    def _flush_key(self, raw_key: str, stats: FlushStats) -> bool:
        """Push one key's staged tags; True when the key leaves the index."""
        try:
            key = StagingKey.parse(raw_key)
        except ValueError as e:
            self.logger.warning(f"Dropping unrecognised key: {e}")
            stats.skipped_missing += 1
            return True

        try:
            entry = self.staging.get(key)
            if isinstance(entry, Absent):
                self.logger.debug(f"No tags found for {raw_key}, dropping it")
                stats.skipped_missing += 1
                return True

            if key.is_new:
                # Nothing to write to until the event exists
                self.logger.debug(f"New event {raw_key}, tags are not saved yet")
                stats.skipped_new += 1
                return False

            if not isinstance(entry, StagedTags):
                self.logger.debug(f"Unreadable tags for {raw_key}, skipping")
                stats.skipped_missing += 1
                return False

            self._write_tags(key, entry.tags)
            self.staging.remove(key)
        except (TaggerError, sqlite3.Error) as e:
            self.logger.error(f"Error saving tags for event {key.event_id or raw_key}: {e}")
            stats.errors += 1
            return False

        stats.flushed += 1
        self.logger.debug(f"Tags saved to event {key.event_id}: {list(entry.tags)}")
        return True

    def _write_tags(self, key: StagingKey, tags: tuple[str, ...]):
        record = self.calendar_store.get_event(key.calendar_id, key.event_id)
        record.private[SELECTED_TAGS_PROPERTY] = json.dumps(list(tags))
        self.calendar_store.update_event(record, key.calendar_id, key.event_id)
