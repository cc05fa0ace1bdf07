"""Per-source ingestion: normalize, dedup-or-create, enrich, persist."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from storyline.contracts.story_enrichment import DEFAULT_CATEGORY, StoryEnrichment
from storyline.countries import CountryCode
from storyline.enrichment.fallbacks import fallback_enrichment
from storyline.enrichment.story_analysis import StoryAnalyzer
from storyline.ingestion.feeds import FeedNormalizer
from storyline.ingestion.story_types import CandidateItem, IngestResult, SourceDescriptor
from storyline.matching.similarity import DEFAULT_DUPLICATE_THRESHOLD, similarity
from storyline.storage.records import Story, StorySource, WindowStory, utcnow
from storyline.storage.story_store import StoryStore


logger = logging.getLogger(__name__)


class IngestionOrchestrator:
    def __init__(
        self,
        store: StoryStore,
        normalizer: FeedNormalizer,
        analyzer: StoryAnalyzer,
        *,
        similarity_threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
        max_items: int = 10,
        window_hours: int = 24,
        window_limit: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.normalizer = normalizer
        self.analyzer = analyzer
        self.similarity_threshold = similarity_threshold
        self.max_items = max_items
        self.window_hours = window_hours
        self.window_limit = window_limit
        self._clock = clock
        self._country_locks: Dict[CountryCode, threading.Lock] = {c: threading.Lock() for c in CountryCode}

    @classmethod
    def from_settings(cls, settings, store: StoryStore, normalizer: FeedNormalizer, analyzer: StoryAnalyzer):
        return cls(
            store,
            normalizer,
            analyzer,
            similarity_threshold=settings.similarity_threshold,
            max_items=settings.max_items_per_source,
            window_hours=settings.dedup_window_hours,
            window_limit=settings.dedup_window_limit,
        )

    def ingest_source(self, source: SourceDescriptor) -> IngestResult:
        """Ingest one source's feed. Feed errors propagate; item errors are counted."""
        result = IngestResult()
        if not source.feed_url:
            return result

        feed = self.normalizer.fetch(source.feed_url)
        if not feed.items:
            logger.info(f"Source {source.id} ({source.name}): feed is empty")
            return result

        country = source.country_code
        with self._country_locks[country]:
            since = self._clock() - timedelta(hours=self.window_hours)
            window = self.store.recent_stories(country, since, self.window_limit)

            for item in feed.items[: self.max_items]:
                if not item.title.strip():
                    continue
                try:
                    self._process_item(source, item, window, result)
                except Exception as e:
                    result.failed += 1
                    result.errors.append(f"{item.title[:50]}: {e}")
                    logger.error(f"Source {source.id} ({source.name}): failed to process '{item.title[:50]}': {e}")

        logger.info(
            f"Source {source.id} ({source.name}): processed={result.processed} "
            f"duplicates={result.duplicates} filtered={result.filtered} failed={result.failed}"
        )
        return result

    def find_duplicate(self, title: str, window: List[WindowStory]) -> Optional[WindowStory]:
        for story in window:
            if similarity(title, story.original_title) >= self.similarity_threshold:
                return story
        return None

    def _process_item(
        self, source: SourceDescriptor, item: CandidateItem, window: List[WindowStory], result: IngestResult
    ) -> None:
        country = source.country_code
        match = self.find_duplicate(item.title, window)
        if match is not None:
            self._attach_source(country, match, source, item)
            result.duplicates += 1
            return

        enrichment = self._enrich(source, item)
        if enrichment.should_filter:
            logger.info(
                f"Filtered '{item.title[:50]}' from {source.name} "
                f"(clickbait={enrichment.is_clickbait}, ad={enrichment.is_ad})"
            )
            result.filtered += 1
            return

        story = Story.from_candidate(
            item,
            enrichment,
            language=country.language,
            category_id=self._resolve_category(enrichment.category),
            scraped_at=self._clock(),
        )
        self.store.insert_story_with_primary(
            country,
            story,
            StorySource.for_story(story.id, source, item.link, primary=True, added_at=story.scraped_at),
        )
        window.insert(0, WindowStory(id=story.id, original_title=story.original_title, scraped_at=story.scraped_at))
        result.processed += 1

    def _attach_source(
        self, country: CountryCode, match: WindowStory, source: SourceDescriptor, item: CandidateItem
    ) -> None:
        created = self.store.attach_source(
            country, StorySource.for_story(match.id, source, item.link, primary=False, added_at=self._clock())
        )
        if created:
            logger.info(f"Duplicate of story {match.id}: '{item.title[:50]}' from {source.name}")
        else:
            logger.debug(f"{source.name} already attached to story {match.id}")

    def _enrich(self, source: SourceDescriptor, item: CandidateItem) -> StoryEnrichment:
        try:
            return self.analyzer.analyze(item.title, item.content, source.country_code.language)
        except Exception as e:
            logger.warning(f"Enrichment failed for '{item.title[:50]}' ({source.name}), using fallback: {e}")
            return fallback_enrichment(item.title, item.content)

    def _resolve_category(self, name: str) -> Optional[int]:
        category_id = self.store.find_category_id(name) if name else None
        if category_id is None and name != DEFAULT_CATEGORY:
            category_id = self.store.find_category_id(DEFAULT_CATEGORY)
        return category_id
