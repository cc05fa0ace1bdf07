"""Postgres schema management for the story store.

Schema creation is idempotent (CREATE IF NOT EXISTS) so every worker can call
ensure_story_schema() on start.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

import psycopg

from storyline.contracts.story_enrichment import CATEGORIES
from storyline.countries import CountryCode
from storyline.storage.story_store import COUNTRY_TABLES


SHARED_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS categories (
      id SERIAL PRIMARY KEY,
      name TEXT NOT NULL UNIQUE,
      slug TEXT NOT NULL UNIQUE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS news_sources (
      id BIGSERIAL PRIMARY KEY,
      country_code TEXT NOT NULL,
      source_name TEXT NOT NULL,
      source_logo_url TEXT NOT NULL DEFAULT '',
      feed_url TEXT,
      is_active BOOLEAN NOT NULL DEFAULT TRUE,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_news_sources_active ON news_sources (is_active, country_code);",
]


def country_statements(country: CountryCode) -> List[str]:
    t = COUNTRY_TABLES[country]
    cc = country.value
    return [
        f"""
        CREATE TABLE IF NOT EXISTS {t.stories} (
          id TEXT PRIMARY KEY,
          original_title TEXT NOT NULL,
          original_content TEXT,
          original_language TEXT NOT NULL,
          translated_title TEXT NOT NULL,
          summary TEXT NOT NULL,
          detail_content TEXT,
          image_url TEXT,
          is_clickbait BOOLEAN NOT NULL DEFAULT FALSE,
          is_ad BOOLEAN NOT NULL DEFAULT FALSE,
          is_filtered BOOLEAN NOT NULL DEFAULT FALSE,
          source_count INTEGER NOT NULL DEFAULT 1 CHECK (source_count >= 1),
          sentiment TEXT CHECK (sentiment IN ('positive', 'neutral', 'negative')),
          political_tone INTEGER NOT NULL DEFAULT 0 CHECK (political_tone BETWEEN -5 AND 5),
          political_confidence REAL NOT NULL DEFAULT 0,
          government_mentioned BOOLEAN NOT NULL DEFAULT FALSE,
          emotional_tone JSONB,
          emotional_intensity REAL,
          loaded_language_score REAL,
          sensationalism_score REAL,
          topics TEXT[] NOT NULL DEFAULT '{{}}',
          category_id INTEGER REFERENCES categories(id),
          published_at TIMESTAMPTZ NOT NULL,
          scraped_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          view_count INTEGER NOT NULL DEFAULT 0,
          like_count INTEGER NOT NULL DEFAULT 0,
          dislike_count INTEGER NOT NULL DEFAULT 0,
          comment_count INTEGER NOT NULL DEFAULT 0
        );
        """,
        f"CREATE INDEX IF NOT EXISTS idx_{cc}_stories_scraped ON {t.stories} (scraped_at DESC);",
        f"CREATE INDEX IF NOT EXISTS idx_{cc}_stories_filtered_published ON {t.stories} (is_filtered, published_at DESC);",
        f"CREATE INDEX IF NOT EXISTS idx_{cc}_stories_category ON {t.stories} (category_id);",
        f"""
        CREATE TABLE IF NOT EXISTS {t.sources} (
          id TEXT PRIMARY KEY,
          story_id TEXT NOT NULL REFERENCES {t.stories}(id) ON DELETE CASCADE,
          source_name TEXT NOT NULL,
          source_logo_url TEXT NOT NULL DEFAULT '',
          source_url TEXT NOT NULL,
          is_primary BOOLEAN NOT NULL DEFAULT FALSE,
          added_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          UNIQUE (story_id, source_name)
        );
        """,
        f"CREATE INDEX IF NOT EXISTS idx_{cc}_story_sources_story ON {t.sources} (story_id);",
    ]


def schema_statements() -> List[str]:
    stmts = list(SHARED_STATEMENTS)
    for country in CountryCode:
        stmts.extend(country_statements(country))
    return stmts


def _slug(name: str) -> str:
    return name.strip().lower().replace(" ", "-")


def ensure_story_schema(pg_dsn: str, *, statements: Optional[Iterable[str]] = None) -> None:
    """Ensure the story store schema exists and default categories are seeded."""
    stmts = list(statements) if statements is not None else schema_statements()
    with psycopg.connect(pg_dsn, autocommit=True) as conn:
        with conn.cursor() as cur:
            for s in stmts:
                cur.execute(s)
            for name in CATEGORIES:
                cur.execute(
                    "INSERT INTO categories (name, slug) VALUES (%s, %s) ON CONFLICT (name) DO NOTHING",
                    (name, _slug(name)),
                )
