"""Shared ingestion data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from storyline.countries import CountryCode


@dataclass(frozen=True)
class CandidateItem:
    """One feed entry, normalized across RSS and Atom.

    Not persisted; the orchestrator either merges it into an existing story or
    turns it into a new one.
    """

    title: str
    link: str
    raw_description: str = ""
    raw_content_html: str = ""
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None
    guid: str = ""

    @property
    def content(self) -> str:
        return self.raw_content_html or self.raw_description


@dataclass(frozen=True)
class ParsedFeed:
    items: List[CandidateItem]
    title: str = ""
    description: str = ""


@dataclass(frozen=True)
class SourceDescriptor:
    """An outlet's feed as registered in `news_sources`."""

    id: int
    name: str
    country_code: CountryCode
    feed_url: Optional[str] = None
    logo_url: str = ""


@dataclass
class IngestResult:
    processed: int = 0
    duplicates: int = 0
    filtered: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def add(self, other: "IngestResult") -> None:
        self.processed += other.processed
        self.duplicates += other.duplicates
        self.filtered += other.filtered
        self.failed += other.failed
        self.errors.extend(other.errors)

    def as_counts(self) -> dict:
        return {"processed": self.processed, "duplicates": self.duplicates, "filtered": self.filtered}
