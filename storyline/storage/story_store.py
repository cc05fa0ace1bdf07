"""The story store interface and its per-country table routing.

Every country owns a structurally identical pair of tables. Callers always
pass a CountryCode; implementations resolve it through COUNTRY_TABLES.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from storyline.countries import CountryCode
from storyline.ingestion.story_types import SourceDescriptor
from storyline.storage.records import DailyCount, Story, StorySource, WindowStats, WindowStory


class StoreError(Exception):
    """A story store operation failed."""

    def __init__(self, operation: str, country: Optional[CountryCode], detail: str):
        where = f" ({country.value})" if country is not None else ""
        super().__init__(f"{operation}{where} failed: {detail}")
        self.operation = operation
        self.country = country


@dataclass(frozen=True)
class StoryTables:
    stories: str
    sources: str

    @classmethod
    def for_country(cls, country: CountryCode) -> "StoryTables":
        return cls(stories=f"{country.value}_stories", sources=f"{country.value}_story_sources")


COUNTRY_TABLES: Dict[CountryCode, StoryTables] = {c: StoryTables.for_country(c) for c in CountryCode}


class StoryStore(ABC):
    @abstractmethod
    def insert_story(self, country: CountryCode, story: Story) -> None:
        ...

    @abstractmethod
    def insert_story_source(self, country: CountryCode, source: StorySource) -> bool:
        """Insert a story source; False when this outlet is already attached to the story."""

    @abstractmethod
    def increment_source_count(self, country: CountryCode, story_id: str) -> None:
        ...

    @abstractmethod
    def insert_story_with_primary(self, country: CountryCode, story: Story, source: StorySource) -> None:
        """Insert a story and its primary source together; neither is kept when either insert fails."""

    @abstractmethod
    def attach_source(self, country: CountryCode, source: StorySource) -> bool:
        """Attach a secondary source and bump the story's source_count in one step.

        Returns False, leaving the count untouched, when the outlet is already attached.
        """

    @abstractmethod
    def recent_stories(self, country: CountryCode, since: datetime, limit: int) -> List[WindowStory]:
        """Stories scraped at or after `since`, newest first."""

    @abstractmethod
    def window_stats(self, country: CountryCode, since: datetime) -> WindowStats:
        """Aggregates over non-filtered stories published at or after `since`."""

    @abstractmethod
    def count_stories(self, country: CountryCode, since: datetime) -> int:
        """Count of non-filtered stories published at or after `since`."""

    @abstractmethod
    def daily_counts(self, country: CountryCode, since: datetime) -> List[DailyCount]:
        """Non-filtered story counts grouped by UTC publish day, oldest first."""

    @abstractmethod
    def find_category_id(self, name: str) -> Optional[int]:
        ...

    @abstractmethod
    def active_sources(self) -> List[SourceDescriptor]:
        ...
