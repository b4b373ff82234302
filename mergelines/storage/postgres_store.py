"""Postgres-backed headline store (psycopg + SQL).

Same contract as the SQLite store; selected with STORE_BACKEND=postgres.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Optional, Tuple

import psycopg
from psycopg.rows import dict_row

from mergelines.ingestion.headline_types import CrossPlatformStory, Headline, member_key, story_key
from mergelines.ingestion.url_utils import headline_hash
from mergelines.storage.errors import DatabaseError
from mergelines.storage.postgres_schema import ensure_postgres_schema

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PostgresHeadlineStore:
    pg_dsn: str
    clock: Callable[[], datetime] = _utcnow
    _conn: Optional[Any] = field(default=None, init=False, repr=False)

    def open(self) -> "PostgresHeadlineStore":
        if self._conn is not None:
            return self
        try:
            ensure_postgres_schema(self.pg_dsn)
            self._conn = psycopg.connect(self.pg_dsn, autocommit=True, row_factory=dict_row)
        except psycopg.Error as e:
            raise DatabaseError(f"Failed to open Postgres headline store: {e}") from e
        return self

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except psycopg.Error as e:
            logger.warning(f"Error closing Postgres store: {e}")
        finally:
            self._conn = None

    def __enter__(self) -> "PostgresHeadlineStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _transaction(self):
        if self._conn is None:
            raise DatabaseError("Headline store is not open")
        try:
            with self._conn.transaction():
                with self._conn.cursor() as cur:
                    yield cur
        except psycopg.Error as e:
            raise DatabaseError(f"Database operation failed: {e}") from e

    def store_headline(self, headline: Headline) -> int:
        chash = headline_hash(headline.title, headline.url)
        ts = headline.timestamp if headline.timestamp.tzinfo else headline.timestamp.replace(tzinfo=timezone.utc)
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO headlines (
                  title, url, source, observed_at, popularity, points, comment_count, discussion_url, content_hash
                )
                VALUES (
                  %(title)s, %(url)s, %(source)s, %(observed_at)s, %(popularity)s, %(points)s,
                  %(comment_count)s, %(discussion_url)s, %(content_hash)s
                )
                ON CONFLICT (content_hash, source) DO NOTHING
                RETURNING id
                """,
                {
                    "title": headline.title,
                    "url": headline.url,
                    "source": headline.source,
                    "observed_at": ts,
                    "popularity": float(headline.popularity or 0.0),
                    "points": headline.points,
                    "comment_count": headline.comment_count,
                    "discussion_url": headline.discussion_url,
                    "content_hash": chash,
                },
            )
            row = cur.fetchone()
            if row is None:
                cur.execute(
                    "SELECT id FROM headlines WHERE content_hash = %s AND source = %s",
                    (chash, headline.source),
                )
                row = cur.fetchone()
        return int(row["id"])

    def get_headline(self, headline_id: int) -> Optional[Headline]:
        with self._transaction() as cur:
            cur.execute("SELECT * FROM headlines WHERE id = %s", (headline_id,))
            row = cur.fetchone()
        return self._row_to_headline(row) if row else None

    def get_headlines_in_window(self, hours: float, source: Optional[str] = None) -> List[Headline]:
        cutoff = self.clock() - timedelta(hours=hours)
        where = ["observed_at >= %s"]
        params: List[Any] = [cutoff]
        if source:
            where.append("source = %s")
            params.append(source)
        sql = f"""
        SELECT * FROM headlines
        WHERE {' AND '.join(where)}
        ORDER BY observed_at DESC, id ASC
        """
        with self._transaction() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [self._row_to_headline(r) for r in rows]

    def cleanup_old_headlines(self, days: float = 7) -> int:
        cutoff = self.clock() - timedelta(days=days)
        with self._transaction() as cur:
            cur.execute(
                """
                DELETE FROM headlines
                WHERE observed_at < %s
                  AND id NOT IN (SELECT headline_id FROM story_headlines)
                """,
                (cutoff,),
            )
            removed = cur.rowcount or 0
        if removed:
            logger.info(f"Removed {removed} headlines older than {days} days")
        return removed

    def store_match(self, id_a: int, id_b: int, title: str, summary: Optional[str] = None) -> int:
        return self.store_story((id_a, id_b), title, summary)

    def store_story(self, headline_ids: Iterable[int], title: str, summary: Optional[str] = None) -> int:
        ids = story_key(headline_ids)
        if len(ids) < 2:
            raise ValueError("A cross-platform story needs at least two distinct headlines")
        key = member_key(ids)
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO cross_platform_stories (member_key, matched_at, title, summary)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (member_key) DO NOTHING
                RETURNING id
                """,
                (key, self.clock(), title, summary),
            )
            row = cur.fetchone()
            if row is not None:
                story_id = int(row["id"])
                cur.executemany(
                    "INSERT INTO story_headlines (story_id, headline_id) VALUES (%s, %s)",
                    [(story_id, hid) for hid in sorted(ids)],
                )
                return story_id
            cur.execute("SELECT id FROM cross_platform_stories WHERE member_key = %s", (key,))
            row = cur.fetchone()
        return int(row["id"])

    def find_match(self, headline_ids: Iterable[int]) -> Optional[CrossPlatformStory]:
        with self._transaction() as cur:
            cur.execute("SELECT * FROM cross_platform_stories WHERE member_key = %s", (member_key(headline_ids),))
            row = cur.fetchone()
        return self._row_to_story(row) if row else None

    def get_confirmed_matches(self, limit: int = 50) -> List[CrossPlatformStory]:
        with self._transaction() as cur:
            cur.execute(
                "SELECT * FROM cross_platform_stories ORDER BY matched_at DESC, id DESC LIMIT %s",
                (max(0, int(limit)),),
            )
            rows = cur.fetchall()
        return [self._row_to_story(r) for r in rows]

    def get_story_details(self, story_id: int) -> Optional[Tuple[CrossPlatformStory, List[Headline]]]:
        with self._transaction() as cur:
            cur.execute("SELECT * FROM cross_platform_stories WHERE id = %s", (story_id,))
            story_row = cur.fetchone()
            if story_row is None:
                return None
            cur.execute(
                """
                SELECT h.* FROM headlines h
                JOIN story_headlines sh ON sh.headline_id = h.id
                WHERE sh.story_id = %s
                ORDER BY h.id
                """,
                (story_id,),
            )
            headline_rows = cur.fetchall()
        return self._row_to_story(story_row), [self._row_to_headline(r) for r in headline_rows]

    def _row_to_headline(self, row) -> Headline:
        return Headline(
            id=int(row["id"]),
            title=row["title"],
            url=row["url"],
            source=row["source"],
            timestamp=row["observed_at"],
            popularity=float(row["popularity"] or 0.0),
            points=row["points"],
            comment_count=row["comment_count"],
            discussion_url=row["discussion_url"],
        )

    def _row_to_story(self, row) -> CrossPlatformStory:
        ids = [int(p) for p in (row["member_key"] or "").split(",") if p]
        return CrossPlatformStory(
            id=int(row["id"]),
            headline_ids=story_key(ids),
            matched_at=row["matched_at"],
            title=row["title"],
            summary=row["summary"],
        )
