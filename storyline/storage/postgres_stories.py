"""Postgres-backed story store.

Opens a short-lived connection per operation. Table names come from
COUNTRY_TABLES and are composed with psycopg.sql so no caller-provided string
ever reaches an identifier position.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from storyline.countries import CountryCode
from storyline.ingestion.story_types import SourceDescriptor
from storyline.storage.records import DailyCount, Story, StorySource, WindowStats, WindowStory
from storyline.storage.story_store import COUNTRY_TABLES, StoreError, StoryStore, StoryTables


logger = logging.getLogger(__name__)

_STORY_COLUMNS = (
    "id", "original_title", "original_content", "original_language", "translated_title", "summary",
    "detail_content", "image_url", "is_clickbait", "is_ad", "is_filtered", "source_count", "sentiment",
    "political_tone", "political_confidence", "government_mentioned", "emotional_tone",
    "emotional_intensity", "loaded_language_score", "sensationalism_score", "topics", "category_id",
    "published_at", "scraped_at", "view_count", "like_count", "dislike_count", "comment_count",
)


def _tables(country: CountryCode) -> StoryTables:
    return COUNTRY_TABLES[CountryCode.parse(country)]


def _f(value: Any) -> float:
    return float(value) if value is not None else 0.0


@dataclass
class PostgresStoryStore(StoryStore):
    pg_dsn: str

    def _connect(self):
        return psycopg.connect(self.pg_dsn)

    def _insert_story(self, cur, t: StoryTables, story: Story) -> None:
        q = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            sql.Identifier(t.stories),
            sql.SQL(", ").join(sql.Identifier(c) for c in _STORY_COLUMNS),
            sql.SQL(", ").join(sql.Placeholder() for _ in _STORY_COLUMNS),
        )
        cur.execute(
            q,
            (
                story.id, story.original_title, story.original_content, story.original_language,
                story.translated_title, story.summary, story.detail_content, story.image_url,
                story.is_clickbait, story.is_ad, story.is_filtered, story.source_count, story.sentiment,
                story.political_tone, story.political_confidence, story.government_mentioned,
                Jsonb(story.emotional_tone.as_dict()), story.emotional_intensity,
                story.loaded_language_score, story.sensationalism_score, list(story.topics),
                story.category_id, story.published_at, story.scraped_at, story.view_count,
                story.like_count, story.dislike_count, story.comment_count,
            ),
        )

    def _insert_source(self, cur, t: StoryTables, source: StorySource) -> bool:
        q = sql.SQL(
            """
            INSERT INTO {} (id, story_id, source_name, source_logo_url, source_url, is_primary, added_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (story_id, source_name) DO NOTHING
            RETURNING id
            """
        ).format(sql.Identifier(t.sources))
        cur.execute(
            q,
            (
                source.id, source.story_id, source.source_name, source.source_logo_url,
                source.source_url, source.is_primary, source.added_at,
            ),
        )
        return cur.fetchone() is not None

    def _increment(self, cur, t: StoryTables, story_id: str) -> None:
        q = sql.SQL("UPDATE {} SET source_count = source_count + 1 WHERE id = %s").format(
            sql.Identifier(t.stories)
        )
        cur.execute(q, (story_id,))

    def insert_story(self, country: CountryCode, story: Story) -> None:
        t = _tables(country)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    self._insert_story(cur, t, story)
        except psycopg.Error as e:
            raise StoreError("insert_story", country, str(e)) from e

    def insert_story_source(self, country: CountryCode, source: StorySource) -> bool:
        t = _tables(country)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    return self._insert_source(cur, t, source)
        except psycopg.Error as e:
            raise StoreError("insert_story_source", country, str(e)) from e

    def increment_source_count(self, country: CountryCode, story_id: str) -> None:
        t = _tables(country)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    self._increment(cur, t, story_id)
        except psycopg.Error as e:
            raise StoreError("increment_source_count", country, str(e)) from e

    def insert_story_with_primary(self, country: CountryCode, story: Story, source: StorySource) -> None:
        # one transaction: the connection block commits on exit and rolls back on error
        t = _tables(country)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    self._insert_story(cur, t, story)
                    if not self._insert_source(cur, t, source):
                        raise StoreError("insert_story_with_primary", country, "primary source not inserted")
        except psycopg.Error as e:
            raise StoreError("insert_story_with_primary", country, str(e)) from e

    def attach_source(self, country: CountryCode, source: StorySource) -> bool:
        t = _tables(country)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    created = self._insert_source(cur, t, source)
                    if created:
                        self._increment(cur, t, source.story_id)
        except psycopg.Error as e:
            raise StoreError("attach_source", country, str(e)) from e
        return created

    def recent_stories(self, country: CountryCode, since: datetime, limit: int) -> List[WindowStory]:
        t = _tables(country)
        q = sql.SQL(
            "SELECT id, original_title, scraped_at FROM {} WHERE scraped_at >= %s ORDER BY scraped_at DESC LIMIT %s"
        ).format(sql.Identifier(t.stories))
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(q, (since, int(limit)))
                    rows = cur.fetchall()
        except psycopg.Error as e:
            raise StoreError("recent_stories", country, str(e)) from e
        return [WindowStory(id=r[0], original_title=r[1], scraped_at=r[2]) for r in rows]

    def window_stats(self, country: CountryCode, since: datetime) -> WindowStats:
        t = _tables(country)
        q = sql.SQL(
            """
            SELECT COUNT(*),
                   COUNT(*) FILTER (WHERE sentiment = 'negative'),
                   AVG(emotional_intensity),
                   AVG(loaded_language_score),
                   AVG(sensationalism_score)
            FROM {}
            WHERE is_filtered = false AND published_at >= %s
            """
        ).format(sql.Identifier(t.stories))
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(q, (since,))
                    row = cur.fetchone()
        except psycopg.Error as e:
            raise StoreError("window_stats", country, str(e)) from e
        if not row:
            return WindowStats()
        return WindowStats(
            total_count=int(row[0] or 0),
            negative_count=int(row[1] or 0),
            avg_emotional_intensity=_f(row[2]),
            avg_loaded_language=_f(row[3]),
            avg_sensationalism=_f(row[4]),
        )

    def count_stories(self, country: CountryCode, since: datetime) -> int:
        t = _tables(country)
        q = sql.SQL("SELECT COUNT(*) FROM {} WHERE is_filtered = false AND published_at >= %s").format(
            sql.Identifier(t.stories)
        )
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(q, (since,))
                    row = cur.fetchone()
        except psycopg.Error as e:
            raise StoreError("count_stories", country, str(e)) from e
        return int(row[0] or 0) if row else 0

    def daily_counts(self, country: CountryCode, since: datetime) -> List[DailyCount]:
        t = _tables(country)
        q = sql.SQL(
            """
            SELECT (published_at AT TIME ZONE 'UTC')::date AS day, COUNT(*)
            FROM {}
            WHERE is_filtered = false AND published_at >= %s
            GROUP BY day
            ORDER BY day ASC
            """
        ).format(sql.Identifier(t.stories))
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(q, (since,))
                    rows = cur.fetchall()
        except psycopg.Error as e:
            raise StoreError("daily_counts", country, str(e)) from e
        return [DailyCount(day=r[0], count=int(r[1])) for r in rows]

    def find_category_id(self, name: str) -> Optional[int]:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT id FROM categories WHERE lower(name) = lower(%s) LIMIT 1", (name,))
                    row = cur.fetchone()
        except psycopg.Error as e:
            raise StoreError("find_category_id", None, str(e)) from e
        return int(row[0]) if row else None

    def active_sources(self) -> List[SourceDescriptor]:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        SELECT id, source_name, country_code, feed_url, source_logo_url
                        FROM news_sources
                        WHERE is_active = true
                        ORDER BY country_code, id
                        """
                    )
                    rows = cur.fetchall()
        except psycopg.Error as e:
            raise StoreError("active_sources", None, str(e)) from e

        out: List[SourceDescriptor] = []
        for r in rows:
            try:
                country = CountryCode.parse(r[2])
            except ValueError:
                logger.warning(f"Skipping source {r[0]} ({r[1]}): unsupported country code {r[2]!r}")
                continue
            out.append(
                SourceDescriptor(id=int(r[0]), name=r[1], country_code=country, feed_url=r[3], logo_url=r[4] or "")
            )
        return out

    def add_source(
        self, country: CountryCode, name: str, feed_url: Optional[str], *, logo_url: str = ""
    ) -> SourceDescriptor:
        """Register an outlet feed; used by operators and the smoke test."""
        country = CountryCode.parse(country)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO news_sources (country_code, source_name, source_logo_url, feed_url)
                        VALUES (%s, %s, %s, %s)
                        RETURNING id
                        """,
                        (country.value, name, logo_url, feed_url),
                    )
                    row = cur.fetchone()
        except psycopg.Error as e:
            raise StoreError("add_source", country, str(e)) from e
        return SourceDescriptor(id=int(row[0]), name=name, country_code=country, feed_url=feed_url, logo_url=logo_url)

    def get_story(self, country: CountryCode, story_id: str) -> Optional[dict]:
        """Fetch one story row with its sources, for inspection and tests."""
        t = _tables(country)
        q = sql.SQL("SELECT {} FROM {} WHERE id = %s").format(
            sql.SQL(", ").join(sql.Identifier(c) for c in _STORY_COLUMNS),
            sql.Identifier(t.stories),
        )
        sq = sql.SQL(
            "SELECT source_name, source_url, is_primary FROM {} WHERE story_id = %s ORDER BY added_at"
        ).format(sql.Identifier(t.sources))
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(q, (story_id,))
                    row = cur.fetchone()
                    if not row:
                        return None
                    cur.execute(sq, (story_id,))
                    sources = cur.fetchall()
        except psycopg.Error as e:
            raise StoreError("get_story", country, str(e)) from e
        story = dict(zip(_STORY_COLUMNS, row))
        story["sources"] = [{"source_name": s[0], "source_url": s[1], "is_primary": bool(s[2])} for s in sources]
        return story
