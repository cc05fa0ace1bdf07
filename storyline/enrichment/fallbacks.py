"""Deterministic enrichment used when the AI service cannot be used.

A degraded story beats a dropped one: the fallback keeps the original title,
a truncated-content summary, neutral sentiment and zeroed scores.
"""

from __future__ import annotations

import logging
import re

from storyline.contracts.story_enrichment import DEFAULT_CATEGORY, EmotionalTone, StoryEnrichment


logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 50
SUMMARY_CHARS = 200
DETAIL_CHARS = 800

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

CATEGORY_KEYWORDS = {
    "Politics": ["siyaset", "parti", "seçim", "hükümet", "meclis", "bakan", "cumhurbaşkan",
                 "election", "parliament", "minister", "government", "wahl", "regierung"],
    "Economy": ["ekonomi", "borsa", "dolar", "faiz", "enflasyon", "bütçe", "merkez bankası",
                "economy", "inflation", "interest rate", "central bank", "stocks", "budget"],
    "Sports": ["futbol", "basketbol", "maç", "şampiyon", "lig", "football", "match", "league", "goal"],
    "Technology": ["teknoloji", "yazılım", "yapay zeka", "technology", "software", "artificial intelligence",
                   "smartphone", "internet"],
    "Health": ["sağlık", "hastane", "doktor", "tedavi", "aşı", "health", "hospital", "vaccine", "disease"],
    "Science": ["bilim", "araştırma", "uzay", "nasa", "science", "research", "space", "discovery"],
    "Culture": ["kültür", "sanat", "sinema", "müze", "tiyatro", "konser", "culture", "museum", "film", "concert"],
}


def clean_text(html: str) -> str:
    return _WS_RE.sub(" ", _TAG_RE.sub(" ", html or "")).strip()


def should_skip_ai(content: str) -> bool:
    """Very short content is not worth an AI call."""
    return not content or len(clean_text(content)) < MIN_CONTENT_LENGTH


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def detect_category_fallback(title: str, content: str) -> str:
    text = f"{title} {content}".lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(k in text for k in keywords):
            return category
    return DEFAULT_CATEGORY


def fallback_enrichment(title: str, content: str) -> StoryEnrichment:
    logger.debug(f"Using story enrichment fallback for '{title[:50]}'")
    text = clean_text(content)
    return StoryEnrichment(
        translated_title=title,
        summary=_truncate(text, SUMMARY_CHARS) or title,
        detail_content=_truncate(text, DETAIL_CHARS) or title,
        is_clickbait=False,
        is_ad=False,
        category=detect_category_fallback(title, text),
        topics=[],
        sentiment="neutral",
        political_tone=0,
        political_confidence=0.0,
        government_mentioned=False,
        emotional_tone=EmotionalTone(),
        emotional_intensity=0.0,
        loaded_language_score=0.0,
        sensationalism_score=0.0,
        is_fallback=True,
    )
