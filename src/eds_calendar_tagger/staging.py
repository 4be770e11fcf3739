"""
Tag staging cache and the dirty-key work queue.

Staged tag sets live in the short-lived cache under a staging key.  Keys for
existing events embed the owning calendar and the event UID; keys for events
that have not been saved yet carry a random id generated when the panel was
opened.  The dirty index maps staging keys to "Dirty" and is the queue the
flush pass drains; a key that turns clean is dropped from it.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from urllib.parse import quote
from urllib.parse import unquote

from eds_calendar_tagger.db import CacheStore
from eds_calendar_tagger.models import Absent
from eds_calendar_tagger.models import Malformed
from eds_calendar_tagger.models import StagedEntry
from eds_calendar_tagger.models import StagedTags
from eds_calendar_tagger.tags import toggle
from eds_calendar_tagger.tags import unique

logger = logging.getLogger(__name__)

KEY_PREFIX = "selectedTags_"
NEW_KEY_PREFIX = "selectedTags_new_"
DIRTY_INDEX_KEY = "ModifiedEvents"

DIRTY = "Dirty"
CLEAN = "Clean"


@dataclass(frozen=True)
class StagingKey:
    calendar_id: str | None
    event_id: str | None
    new_id: str | None = None

    @classmethod
    def for_event(cls, calendar_id: str, event_id: str) -> "StagingKey":
        return cls(calendar_id=calendar_id, event_id=event_id)

    @classmethod
    def for_new_event(cls) -> "StagingKey":
        return cls(calendar_id=None, event_id=None, new_id=str(uuid.uuid4()))

    @property
    def is_new(self) -> bool:
        return self.new_id is not None

    @classmethod
    def parse(cls, raw: str) -> "StagingKey":
        """Inverse of ``str()``; raises ValueError for foreign keys."""
        # Existing-event keys always contain "/" (ids are percent-encoded)
        if raw.startswith(NEW_KEY_PREFIX) and "/" not in raw:
            new_id = raw[len(NEW_KEY_PREFIX) :]
            if not new_id:
                raise ValueError(f"Staging key without id: {raw!r}")
            return cls(calendar_id=None, event_id=None, new_id=new_id)
        if not raw.startswith(KEY_PREFIX):
            raise ValueError(f"Not a staging key: {raw!r}")
        calendar_part, sep, event_part = raw[len(KEY_PREFIX) :].partition("/")
        if not sep or not calendar_part or not event_part:
            raise ValueError(f"Staging key without calendar/event: {raw!r}")
        return cls(calendar_id=unquote(calendar_part), event_id=unquote(event_part))

    def __str__(self) -> str:
        if self.is_new:
            return f"{NEW_KEY_PREFIX}{self.new_id}"
        return f"{KEY_PREFIX}{quote(self.calendar_id, safe='')}/{quote(self.event_id, safe='')}"


def decode_tags(raw: str | None) -> StagedEntry:
    """Parse a cached JSON tag list into a staged-entry variant."""
    if raw is None:
        return Absent()
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        return Malformed(raw, f"invalid JSON: {e}")
    if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
        return Malformed(raw, "expected a list of strings")
    return StagedTags(tuple(unique(value)))


def encode_tags(tags) -> str:
    return json.dumps(unique(tags))


class DirtyIndex:
    """Staging key -> Dirty/Clean map persisted as one cache entry."""

    def __init__(self, store: CacheStore, ttl: int):
        self.store = store
        self.ttl = ttl

    def load(self) -> dict[str, str]:
        raw = self.store.get(DIRTY_INDEX_KEY)
        if raw is None:
            return {}
        try:
            index = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding malformed dirty index: {e}")
            return {}
        if not isinstance(index, dict):
            logger.warning("Discarding dirty index that is not a mapping")
            return {}
        return {str(k): v for k, v in index.items() if v in (DIRTY, CLEAN)}

    def save(self, index: dict[str, str], ttl: int | None = None):
        self.store.put(DIRTY_INDEX_KEY, json.dumps(index), self.ttl if ttl is None else ttl)

    def mark_dirty(self, key: StagingKey, ttl: int | None = None):
        index = self.load()
        index[str(key)] = DIRTY
        self.save(index, ttl)
        logger.debug(f"Marked {key} dirty ({len(index)} tracked)")

    def dirty_keys(self) -> list[str]:
        return [k for k, status in self.load().items() if status == DIRTY]

    def clear(self):
        self.store.remove(DIRTY_INDEX_KEY)
        logger.debug("Dirty index cleared")


class StagingCache:
    """In-progress tag edits keyed by staging key, with sliding expiry."""

    def __init__(self, store: CacheStore, dirty_index: DirtyIndex, ttl: int):
        self.store = store
        self.dirty_index = dirty_index
        self.ttl = ttl

    def get(self, key: StagingKey) -> StagedEntry:
        entry = decode_tags(self.store.get(str(key)))
        if isinstance(entry, Malformed):
            logger.warning(f"Staged tags for {key} are malformed ({entry.reason})")
        return entry

    def put(self, key: StagingKey, tags):
        """Overwrite the staged set and restart its TTL."""
        self.store.put(str(key), encode_tags(tags), self.ttl)
        logger.debug(f"Staged {list(tags)} under {key}")

    def toggle(self, key: StagingKey, tag: str) -> list[str]:
        """Flip membership of ``tag``, restage, and queue the key for flushing."""
        entry = self.get(key)
        current = list(entry.tags) if isinstance(entry, StagedTags) else []
        updated = toggle(current, tag)
        self.put(key, updated)
        # The queue must live at least as long as the entry it points at
        self.dirty_index.mark_dirty(key, ttl=self.ttl)
        return updated

    def remove(self, key: StagingKey):
        self.store.remove(str(key))
        logger.debug(f"Evicted staged tags for {key}")
