"""Rows of the story store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional

from storyline.contracts.story_enrichment import EmotionalTone, StoryEnrichment
from storyline.ingestion.story_types import CandidateItem, SourceDescriptor


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Story:
    id: str
    original_title: str
    original_content: str
    original_language: str
    translated_title: str
    summary: str
    detail_content: str
    image_url: Optional[str]
    is_clickbait: bool
    is_ad: bool
    is_filtered: bool
    sentiment: str
    political_tone: int
    political_confidence: float
    government_mentioned: bool
    emotional_tone: EmotionalTone
    emotional_intensity: float
    loaded_language_score: float
    sensationalism_score: float
    category_id: Optional[int]
    published_at: datetime
    scraped_at: datetime
    source_count: int = 1
    topics: List[str] = field(default_factory=list)
    view_count: int = 0
    like_count: int = 0
    dislike_count: int = 0
    comment_count: int = 0

    @classmethod
    def from_candidate(
        cls,
        item: CandidateItem,
        enrichment: StoryEnrichment,
        *,
        language: str,
        category_id: Optional[int],
        scraped_at: Optional[datetime] = None,
    ) -> "Story":
        scraped_at = scraped_at or utcnow()
        return cls(
            id=new_id(),
            original_title=item.title,
            original_content=item.content,
            original_language=language,
            translated_title=enrichment.translated_title,
            summary=enrichment.summary,
            detail_content=enrichment.detail_content,
            image_url=item.image_url,
            is_clickbait=enrichment.is_clickbait,
            is_ad=enrichment.is_ad,
            is_filtered=enrichment.should_filter,
            sentiment=enrichment.sentiment,
            political_tone=enrichment.political_tone,
            political_confidence=enrichment.political_confidence,
            government_mentioned=enrichment.government_mentioned,
            emotional_tone=enrichment.emotional_tone,
            emotional_intensity=enrichment.emotional_intensity,
            loaded_language_score=enrichment.loaded_language_score,
            sensationalism_score=enrichment.sensationalism_score,
            category_id=category_id,
            published_at=item.published_at or scraped_at,
            scraped_at=scraped_at,
            topics=list(enrichment.topics),
        )


@dataclass(frozen=True)
class StorySource:
    id: str
    story_id: str
    source_name: str
    source_url: str
    source_logo_url: str
    is_primary: bool
    added_at: datetime

    @classmethod
    def for_story(
        cls, story_id: str, source: SourceDescriptor, url: str, *, primary: bool, added_at: Optional[datetime] = None
    ) -> "StorySource":
        return cls(
            id=new_id(),
            story_id=story_id,
            source_name=source.name,
            source_url=url,
            source_logo_url=source.logo_url or "",
            is_primary=primary,
            added_at=added_at or utcnow(),
        )


@dataclass(frozen=True)
class WindowStory:
    """The slice of a stored story the duplicate matcher needs."""

    id: str
    original_title: str
    scraped_at: datetime


@dataclass(frozen=True)
class WindowStats:
    """Aggregates over non-filtered stories published inside a window."""

    total_count: int = 0
    negative_count: int = 0
    avg_emotional_intensity: float = 0.0
    avg_loaded_language: float = 0.0
    avg_sensationalism: float = 0.0


@dataclass(frozen=True)
class DailyCount:
    day: date
    count: int
