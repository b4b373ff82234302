"""SQLite-backed headline and cross-platform story store.

Default backend. One connection is held for the lifetime of a run; use the store
as a context manager (or `open()`/`close()`) so it is closed on every exit path.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from mergelines.ingestion.headline_types import CrossPlatformStory, Headline, member_key, story_key
from mergelines.ingestion.url_utils import headline_hash
from mergelines.storage.errors import DatabaseError

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = [
    '''
    CREATE TABLE IF NOT EXISTS headlines (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        url TEXT NOT NULL,
        source TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        popularity REAL DEFAULT 0,
        points INTEGER,
        comment_count INTEGER,
        discussion_url TEXT,
        content_hash TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(content_hash, source)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS cross_platform_stories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        member_key TEXT NOT NULL UNIQUE,
        matched_at TEXT NOT NULL,
        title TEXT NOT NULL,
        summary TEXT
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS story_headlines (
        story_id INTEGER NOT NULL,
        headline_id INTEGER NOT NULL,
        PRIMARY KEY (story_id, headline_id),
        FOREIGN KEY (story_id) REFERENCES cross_platform_stories(id) ON DELETE CASCADE,
        FOREIGN KEY (headline_id) REFERENCES headlines(id)
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_headlines_timestamp ON headlines(timestamp)',
    'CREATE INDEX IF NOT EXISTS idx_headlines_source ON headlines(source)',
    'CREATE INDEX IF NOT EXISTS idx_stories_matched_at ON cross_platform_stories(matched_at DESC)',
    'CREATE INDEX IF NOT EXISTS idx_story_headlines_headline ON story_headlines(headline_id)',
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(dt: datetime) -> str:
    """UTC ISO string with fixed precision so lexicographic order == time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SqliteHeadlineStore:
    """Headline/story store on a single SQLite file."""

    def __init__(self, db_path: str = "mergelines.db", clock: Optional[Callable[[], datetime]] = None):
        self.db_path = db_path
        self.clock = clock or _utcnow
        self._conn: Optional[sqlite3.Connection] = None

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def open(self) -> "SqliteHeadlineStore":
        if self._conn is not None:
            return self
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            conn.row_factory = sqlite3.Row
            conn.execute('PRAGMA foreign_keys=ON;')
            conn.execute('PRAGMA journal_mode=WAL;')
            conn.execute('PRAGMA synchronous=NORMAL;')
            for stmt in SCHEMA_STATEMENTS:
                conn.execute(stmt)
            conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to open headline store at {self.db_path}: {e}") from e
        self._conn = conn
        logger.debug(f"Opened SQLite store {self.db_path}")
        return self

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except sqlite3.Error as e:
            logger.warning(f"Error closing SQLite store: {e}")
        finally:
            self._conn = None

    def __enter__(self) -> "SqliteHeadlineStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _transaction(self):
        if self._conn is None:
            raise DatabaseError("Headline store is not open")
        try:
            cur = self._conn.cursor()
            yield cur
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise DatabaseError(f"Database operation failed: {e}") from e

    # -----------------------------
    # Headlines
    # -----------------------------
    def store_headline(self, headline: Headline) -> int:
        """Insert a headline; idempotent on (title, url, source). Returns its id."""
        chash = headline_hash(headline.title, headline.url)
        with self._transaction() as cur:
            cur.execute(
                '''
                INSERT OR IGNORE INTO headlines
                (title, url, source, timestamp, popularity, points, comment_count, discussion_url, content_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''',
                (
                    headline.title,
                    headline.url,
                    headline.source,
                    to_db_time(headline.timestamp),
                    float(headline.popularity or 0.0),
                    headline.points,
                    headline.comment_count,
                    headline.discussion_url,
                    chash,
                ),
            )
            if cur.rowcount > 0:
                return int(cur.lastrowid)
            cur.execute(
                'SELECT id FROM headlines WHERE content_hash = ? AND source = ?',
                (chash, headline.source),
            )
            row = cur.fetchone()
        if row is None:
            raise DatabaseError(f"Headline vanished after insert: {headline.title[:60]!r}")
        return int(row['id'])

    def get_headline(self, headline_id: int) -> Optional[Headline]:
        with self._transaction() as cur:
            cur.execute('SELECT * FROM headlines WHERE id = ?', (headline_id,))
            row = cur.fetchone()
        return self._row_to_headline(row) if row else None

    def get_headlines_in_window(self, hours: float, source: Optional[str] = None) -> List[Headline]:
        """Headlines observed within the last `hours`, newest first."""
        cutoff = to_db_time(self.clock() - timedelta(hours=hours))
        query = 'SELECT * FROM headlines WHERE timestamp >= ?'
        params: list = [cutoff]
        if source:
            query += ' AND source = ?'
            params.append(source)
        query += ' ORDER BY timestamp DESC, id ASC'
        with self._transaction() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [self._row_to_headline(r) for r in rows]

    def cleanup_old_headlines(self, days: float = 7) -> int:
        """Delete headlines older than `days` that no confirmed story references."""
        cutoff = to_db_time(self.clock() - timedelta(days=days))
        with self._transaction() as cur:
            cur.execute(
                '''
                DELETE FROM headlines
                WHERE timestamp < ?
                  AND id NOT IN (SELECT headline_id FROM story_headlines)
                ''',
                (cutoff,),
            )
            removed = cur.rowcount
        if removed:
            logger.info(f"Removed {removed} headlines older than {days} days")
        return removed

    # -----------------------------
    # Cross-platform stories
    # -----------------------------
    def store_match(self, id_a: int, id_b: int, title: str, summary: Optional[str] = None) -> int:
        return self.store_story((id_a, id_b), title, summary)

    def store_story(self, headline_ids: Iterable[int], title: str, summary: Optional[str] = None) -> int:
        """Insert a story; idempotent on the unordered set of headline ids."""
        ids = story_key(headline_ids)
        if len(ids) < 2:
            raise ValueError("A cross-platform story needs at least two distinct headlines")
        key = member_key(ids)
        with self._transaction() as cur:
            cur.execute(
                '''
                INSERT OR IGNORE INTO cross_platform_stories (member_key, matched_at, title, summary)
                VALUES (?, ?, ?, ?)
                ''',
                (key, to_db_time(self.clock()), title, summary),
            )
            if cur.rowcount > 0:
                story_id = int(cur.lastrowid)
                cur.executemany(
                    'INSERT INTO story_headlines (story_id, headline_id) VALUES (?, ?)',
                    [(story_id, hid) for hid in sorted(ids)],
                )
                return story_id
            cur.execute('SELECT id FROM cross_platform_stories WHERE member_key = ?', (key,))
            row = cur.fetchone()
        return int(row['id'])

    def find_match(self, headline_ids: Iterable[int]) -> Optional[CrossPlatformStory]:
        key = member_key(headline_ids)
        with self._transaction() as cur:
            cur.execute('SELECT * FROM cross_platform_stories WHERE member_key = ?', (key,))
            row = cur.fetchone()
        return self._row_to_story(row) if row else None

    def get_confirmed_matches(self, limit: int = 50) -> List[CrossPlatformStory]:
        """Most recently confirmed stories first."""
        with self._transaction() as cur:
            cur.execute(
                'SELECT * FROM cross_platform_stories ORDER BY matched_at DESC, id DESC LIMIT ?',
                (max(0, int(limit)),),
            )
            rows = cur.fetchall()
        return [self._row_to_story(r) for r in rows]

    def get_story_details(self, story_id: int) -> Optional[Tuple[CrossPlatformStory, List[Headline]]]:
        with self._transaction() as cur:
            cur.execute('SELECT * FROM cross_platform_stories WHERE id = ?', (story_id,))
            story_row = cur.fetchone()
            if story_row is None:
                return None
            cur.execute(
                '''
                SELECT h.* FROM headlines h
                JOIN story_headlines sh ON sh.headline_id = h.id
                WHERE sh.story_id = ?
                ORDER BY h.id
                ''',
                (story_id,),
            )
            headline_rows = cur.fetchall()
        return self._row_to_story(story_row), [self._row_to_headline(r) for r in headline_rows]

    # -----------------------------
    # Row mapping
    # -----------------------------
    def _row_to_headline(self, row) -> Headline:
        return Headline(
            id=int(row['id']),
            title=row['title'],
            url=row['url'],
            source=row['source'],
            timestamp=from_db_time(row['timestamp']),
            popularity=float(row['popularity'] or 0.0),
            points=row['points'],
            comment_count=row['comment_count'],
            discussion_url=row['discussion_url'],
        )

    def _row_to_story(self, row) -> CrossPlatformStory:
        ids = [int(p) for p in (row['member_key'] or '').split(',') if p]
        return CrossPlatformStory(
            id=int(row['id']),
            headline_ids=story_key(ids),
            matched_at=from_db_time(row['matched_at']),
            title=row['title'],
            summary=row['summary'],
        )
