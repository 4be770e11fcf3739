"""
Per-user session: the one object that owns every store a panel action or a
flush pass touches.
"""

import logging
import time
from typing import Callable

from eds_calendar_tagger.catalog import TagCatalogResolver
from eds_calendar_tagger.db import CacheStore
from eds_calendar_tagger.models import FlushStats
from eds_calendar_tagger.models import TaggerConfig
from eds_calendar_tagger.properties import UserProperties
from eds_calendar_tagger.sheets import SheetSource
from eds_calendar_tagger.staging import DirtyIndex
from eds_calendar_tagger.staging import StagingCache
from eds_calendar_tagger.sync import TagSynchronizer


class UserSession:
    """
    Wires the cache, properties, sheet source and calendar store for one user.

    ``calendar_store`` is anything with ``get_event(calendar_id, event_id)``
    and ``update_event(record, calendar_id, event_id)``; the CLI passes an
    ``EDSCalendarStore``.  Use as a context manager so the cache database is
    opened and closed around the work.
    """

    def __init__(
        self,
        config: TaggerConfig,
        calendar_store,
        sheets: SheetSource | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.calendar_store = calendar_store
        self.sheets = sheets or SheetSource()
        self.logger = logging.getLogger(__name__)

        self.cache = CacheStore(config.cache_db_path, config.user, clock=clock)
        self.properties = UserProperties(config.properties_path, config.user)
        self.catalog = TagCatalogResolver(self.properties, self.sheets, config.default_tags)
        self.dirty_index = DirtyIndex(self.cache, config.dirty_index_ttl)
        self.staging = StagingCache(self.cache, self.dirty_index, config.staging_ttl)

    def __enter__(self):
        self.cache.connect()
        self.logger.debug(f"Session opened for {self.config.user}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cache.close()

    def flush(self) -> FlushStats:
        """Run one synchronization pass for this user."""
        return TagSynchronizer(self.staging, self.dirty_index, self.calendar_store).run()
