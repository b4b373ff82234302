"""Postgres schema management for the headline store.

Schema creation is idempotent (CREATE IF NOT EXISTS), safe to run every cycle.
"""

from __future__ import annotations

from typing import Iterable, Optional

import psycopg


SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS headlines (
      id BIGSERIAL PRIMARY KEY,
      title TEXT NOT NULL,
      url TEXT NOT NULL,
      source TEXT NOT NULL,
      observed_at TIMESTAMPTZ NOT NULL,
      popularity DOUBLE PRECISION NOT NULL DEFAULT 0,
      points INTEGER,
      comment_count INTEGER,
      discussion_url TEXT,
      content_hash TEXT NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      UNIQUE (content_hash, source)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_headlines_observed_at ON headlines (observed_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_headlines_source ON headlines (source);",
    # Story identity is the sorted member id list; never the title.
    """
    CREATE TABLE IF NOT EXISTS cross_platform_stories (
      id BIGSERIAL PRIMARY KEY,
      member_key TEXT NOT NULL UNIQUE,
      matched_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      title TEXT NOT NULL,
      summary TEXT
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_stories_matched_at ON cross_platform_stories (matched_at DESC);",
    """
    CREATE TABLE IF NOT EXISTS story_headlines (
      story_id BIGINT NOT NULL REFERENCES cross_platform_stories(id) ON DELETE CASCADE,
      headline_id BIGINT NOT NULL REFERENCES headlines(id),
      PRIMARY KEY (story_id, headline_id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_story_headlines_headline ON story_headlines (headline_id);",
]


def ensure_postgres_schema(pg_dsn: str, *, statements: Optional[Iterable[str]] = None) -> None:
    """Ensure Postgres schema exists."""
    stmts = list(statements) if statements is not None else SCHEMA_STATEMENTS
    with psycopg.connect(pg_dsn, autocommit=True) as conn:
        with conn.cursor() as cur:
            for s in stmts:
                cur.execute(s)
