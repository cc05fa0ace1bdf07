"""Fixed-cadence ingestion across all active sources.

Sources run one after another with a pause in between; a source that fails
(network, parse, enrichment, store) is logged and the loop moves on.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import schedule

from storyline.ingestion.feeds import FeedError
from storyline.ingestion.story_types import IngestResult
from storyline.pipeline.orchestrator import IngestionOrchestrator
from storyline.resilience.circuit_breaker import CircuitBreaker
from storyline.storage.story_store import StoryStore


logger = logging.getLogger(__name__)


class IngestionScheduler:
    def __init__(
        self,
        store: StoryStore,
        orchestrator: IngestionOrchestrator,
        *,
        interval_minutes: int = 30,
        source_delay_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.interval_minutes = interval_minutes
        self.source_delay_seconds = source_delay_seconds
        self.breaker = breaker
        self._sleep = sleep
        self._scheduler = schedule.Scheduler()
        self._stop = threading.Event()

    def run_cycle(self) -> IngestResult:
        """Run one ingestion pass over every active source."""
        started = time.monotonic()
        totals = IngestResult()
        try:
            sources = [s for s in self.store.active_sources() if s.feed_url]
        except Exception as e:
            logger.error(f"Could not load active sources, retrying next cycle: {e}", exc_info=True)
            return totals
        logger.info(f"Ingestion cycle started: {len(sources)} sources")

        for i, source in enumerate(sources):
            if self._stop.is_set():
                logger.info("Stop requested, ending cycle early")
                break
            try:
                totals.add(self.orchestrator.ingest_source(source))
            except FeedError as e:
                logger.warning(f"Source {source.id} ({source.name}) skipped: {e}")
            except Exception as e:
                logger.error(f"Source {source.id} ({source.name}) failed: {e}", exc_info=True)
            if i < len(sources) - 1 and self.source_delay_seconds > 0:
                self._sleep(self.source_delay_seconds)

        logger.info(
            f"Ingestion cycle finished in {time.monotonic() - started:.1f}s: processed={totals.processed} "
            f"duplicates={totals.duplicates} filtered={totals.filtered} failed={totals.failed}"
        )
        if self.breaker is not None:
            for name, metrics in self.breaker.get_all_metrics().items():
                logger.info(
                    f"Circuit {name}: state={metrics['state']} failures={metrics['failures']} "
                    f"successes={metrics['successes']}"
                )
        return totals

    def _run_job(self) -> None:
        try:
            self.run_cycle()
        except Exception as e:
            logger.error(f"Ingestion cycle aborted: {e}", exc_info=True)

    def start(self, *, run_immediately: bool = True, poll_seconds: float = 5.0) -> None:
        """Block running cycles every `interval_minutes` until stop() is called.

        The scheduler can be started again after it stopped.
        """
        self._stop.clear()
        self._scheduler.every(self.interval_minutes).minutes.do(self._run_job)
        logger.info(f"Scheduler started: every {self.interval_minutes} minutes")
        if run_immediately:
            self._run_job()
        while not self._stop.is_set():
            self._scheduler.run_pending()
            self._stop.wait(poll_seconds)
        self._scheduler.clear()
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()
