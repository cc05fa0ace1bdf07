#!/usr/bin/env python3
"""Story ingestion worker.

Runs one ingestion cycle over every active source in `news_sources`, or keeps
running cycles on a fixed cadence:

    INGEST_MODE=once        one cycle, then exit (default)
    INGEST_MODE=scheduled   a cycle now, then every INGEST_INTERVAL_MINUTES

Each source is fetched, deduplicated against the last 24h of its country's
stories, enriched through the AI service and stored in Postgres.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys

from storyline.config import Settings, configure_logging
from storyline.enrichment.client import AIEnrichmentClient
from storyline.enrichment.story_analysis import EnrichmentCache, StoryAnalyzer
from storyline.ingestion.feeds import FeedNormalizer
from storyline.pipeline.orchestrator import IngestionOrchestrator
from storyline.pipeline.scheduler import IngestionScheduler
from storyline.resilience.circuit_breaker import CircuitBreaker
from storyline.storage.postgres_schema import ensure_story_schema
from storyline.storage.postgres_stories import PostgresStoryStore


logger = logging.getLogger("news_ingest_worker")


def build_scheduler(settings: Settings) -> IngestionScheduler:
    store = PostgresStoryStore(settings.pg_dsn)
    breaker = CircuitBreaker(
        failure_threshold=settings.circuit_failure_threshold,
        reset_timeout=settings.circuit_reset_timeout,
        half_open_max_calls=settings.circuit_half_open_max_calls,
    )
    analyzer = StoryAnalyzer(
        AIEnrichmentClient.from_settings(settings, breaker),
        target_language=settings.translation_language,
        cache=EnrichmentCache(settings.ai_cache_ttl_hours * 3600),
    )
    orchestrator = IngestionOrchestrator.from_settings(
        settings, store, FeedNormalizer(timeout=settings.feed_timeout), analyzer
    )
    return IngestionScheduler(
        store,
        orchestrator,
        interval_minutes=settings.ingest_interval_minutes,
        source_delay_seconds=settings.source_delay_seconds,
        breaker=breaker,
    )


def _install_signal_handlers(scheduler: IngestionScheduler) -> None:
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        scheduler.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def main() -> int:
    parser = argparse.ArgumentParser(description="Ingest news stories from all active sources")
    parser.add_argument(
        "--mode",
        choices=("once", "scheduled", "daemon"),
        default=(os.environ.get("INGEST_MODE") or "once").lower().strip(),
        help="Run one cycle, or keep running on INGEST_INTERVAL_MINUTES",
    )
    args = parser.parse_args()

    settings = Settings.from_env()
    configure_logging(settings)
    try:
        settings.validate()
    except ValueError as e:
        logger.error(f"Configuration error:\n{e}")
        return 1

    ensure_story_schema(settings.pg_dsn)
    scheduler = build_scheduler(settings)
    _install_signal_handlers(scheduler)

    if args.mode in ("scheduled", "daemon"):
        scheduler.start()
    else:
        totals = scheduler.run_cycle()
        print(
            f"[ingest] processed={totals.processed} duplicates={totals.duplicates} "
            f"filtered={totals.filtered} failed={totals.failed}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
