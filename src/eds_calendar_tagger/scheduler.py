"""
Fixed-interval runner for the flush pass.
"""

import logging
import threading
import time
from typing import Callable

from eds_calendar_tagger.models import FlushStats

logger = logging.getLogger(__name__)


class FlushScheduler:
    """
    Run ``run_pass`` once per ``interval`` seconds until stopped.

    Passes run one after another on the calling thread, so two passes never
    overlap.  The interval is measured start-to-start; a pass that overruns
    it is followed immediately by the next one.
    """

    def __init__(
        self,
        run_pass: Callable[[], FlushStats],
        interval: float,
        stop_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.run_pass = run_pass
        self.interval = interval
        self.stop_event = stop_event or threading.Event()
        self.clock = clock
        self.passes = 0

    def stop(self):
        self.stop_event.set()

    def run(self, max_passes: int | None = None) -> FlushStats:
        """Loop until stopped (or ``max_passes`` reached); return accumulated stats."""
        totals = FlushStats()
        while not self.stop_event.is_set():
            started = self.clock()
            stats = self.run_pass()
            self.passes += 1
            totals.flushed += stats.flushed
            totals.skipped_new += stats.skipped_new
            totals.skipped_missing += stats.skipped_missing
            totals.errors += stats.errors

            if max_passes is not None and self.passes >= max_passes:
                break
            remaining = self.interval - (self.clock() - started)
            if remaining > 0:
                self.stop_event.wait(remaining)
        logger.debug(f"Scheduler stopped after {self.passes} pass(es)")
        return totals
