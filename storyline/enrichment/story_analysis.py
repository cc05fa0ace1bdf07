"""One-shot AI analysis of a new story.

A single structured call returns translation, summary, clickbait/ad flags,
category, sentiment, political tone and emotional tone. Results are cached in
process for identical content.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from storyline.contracts.story_enrichment import (
    CATEGORIES,
    STORY_ENRICHMENT_SCHEMA,
    StoryEnrichment,
    enrichment_from_payload,
)
from storyline.enrichment.client import AIEnrichmentClient, EnrichmentRequest, PromptTurn, RequestOptions
from storyline.enrichment.fallbacks import clean_text, fallback_enrichment, should_skip_ai


logger = logging.getLogger(__name__)

PROMPT_CONTENT_CHARS = 1500

SYSTEM_PROMPT = (
    "You are a news analysis AI. Analyze political tone objectively based on framing, "
    "word choice, and emphasis. Analyze the emotional tone of HOW the story is written, "
    "not the topic itself. Always respond with valid JSON only."
)

USER_PROMPT = """Analyze the following news article (original language: {language}) and return a JSON object.

Title: {title}
Content: {content}

Provide:
1. translated_title: the title translated to {target_language}
2. summary: 1-2 sentence summary in {target_language}
3. detail_content: a cleaned, readable version of the article body in {target_language}
4. is_clickbait: true/false
5. is_ad: is this an advertisement or sponsored content? true/false
6. category: one of {categories}
7. topics: array of hashtags (e.g. ["#Economy", "#Inflation"])
8. sentiment: positive, neutral, or negative
9. political_tone: integer from -5 (strongly critical of government) to +5 (strongly favorable to government); 0 if neutral or not political
10. political_confidence: 0-1, how confident you are in political_tone (use 0-0.4 when there is no clear political content)
11. government_mentioned: does the article discuss government, parties or political figures? true/false
12. emotional_tone: object with anger, fear, joy, sadness, surprise scores (0-1 each) for the writing style
13. emotional_intensity: 0-1 (0 = neutral factual, 0.5 = normal news, 1 = highly charged)
14. loaded_language_score: 0-1 use of biased or manipulative wording
15. sensationalism_score: 0-1 (0 = factual, 1 = highly sensationalist)

Return ONLY valid JSON, no additional text."""


class EnrichmentCache:
    """Small TTL cache keyed by title + leading content."""

    def __init__(
        self,
        ttl_seconds: float = 24 * 3600,
        *,
        max_entries: int = 5000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, StoryEnrichment]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(title: str, content: str) -> str:
        return hashlib.md5((title + content[:500]).encode("utf-8")).hexdigest()

    def get(self, key: str) -> Optional[StoryEnrichment]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: StoryEnrichment) -> None:
        now = self._clock()
        with self._lock:
            if len(self._entries) >= self.max_entries:
                expired = [k for k, (ts, _) in self._entries.items() if now - ts >= self.ttl_seconds]
                for k in expired:
                    del self._entries[k]
                if len(self._entries) >= self.max_entries:
                    oldest = min(self._entries, key=lambda k: self._entries[k][0])
                    del self._entries[oldest]
            self._entries[key] = (now, value)

    def __len__(self) -> int:
        return len(self._entries)


class StoryAnalyzer:
    def __init__(
        self,
        client: AIEnrichmentClient,
        *,
        target_language: str = "Turkish",
        circuit_name: str = "openai:story-analysis",
        use_quick_client: bool = False,
        cache: Optional[EnrichmentCache] = None,
    ):
        self.client = client
        self.target_language = target_language
        self.circuit_name = circuit_name
        self.use_quick_client = use_quick_client
        self.cache = cache if cache is not None else EnrichmentCache()

    def build_request(self, title: str, content: str, language: str) -> EnrichmentRequest:
        prompt = USER_PROMPT.format(
            language=language,
            title=title,
            content=clean_text(content)[:PROMPT_CONTENT_CHARS],
            target_language=self.target_language,
            categories=", ".join(CATEGORIES),
        )
        return EnrichmentRequest(
            messages=[PromptTurn("system", SYSTEM_PROMPT), PromptTurn("user", prompt)],
            structured=True,
            temperature=0.3,
            response_schema=STORY_ENRICHMENT_SCHEMA,
        )

    def analyze(self, title: str, content: str, language: str) -> StoryEnrichment:
        """Return the story's enrichment; falls back deterministically on any AI failure."""
        if should_skip_ai(content):
            return fallback_enrichment(title, content)

        cache_key = self.cache.key(title, content)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"AI cache hit {cache_key[:8]}")
            return cached

        result = self.client.chat_completion(
            self.build_request(title, content, language),
            RequestOptions(
                use_quick_client=self.use_quick_client,
                circuit_name=self.circuit_name,
                fallback=lambda: fallback_enrichment(title, content),
            ),
        )
        if isinstance(result, StoryEnrichment):
            return result

        enrichment = enrichment_from_payload(result, title=title, content=clean_text(content))
        self.cache.put(cache_key, enrichment)
        logger.info(
            f"Story analyzed: '{title[:50]}' tone={enrichment.political_tone} "
            f"confidence={enrichment.political_confidence:.2f} intensity={enrichment.emotional_intensity:.2f}"
        )
        return enrichment
