import os
import unittest
import uuid
from datetime import datetime, timedelta, timezone

from mergelines.ingestion.headline_types import Headline
from mergelines.storage.errors import DatabaseError
from mergelines.storage.postgres_store import PostgresHeadlineStore


PG_DSN = os.environ.get("MERGELINES_TEST_PG_DSN", "")
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestClosedPostgresStore(unittest.TestCase):
    def test_operations_on_unopened_store_raise(self):
        store = PostgresHeadlineStore("postgresql://unused")
        with self.assertRaises(DatabaseError):
            store.get_confirmed_matches(10)


@unittest.skipUnless(PG_DSN, "MERGELINES_TEST_PG_DSN not set")
class TestPostgresHeadlineStore(unittest.TestCase):
    def setUp(self):
        # Unique source names keep runs against a shared database independent.
        suffix = uuid.uuid4().hex[:8]
        self.tm = f"techmeme-{suffix}"
        self.hn = f"hackernews-{suffix}"
        self.store = PostgresHeadlineStore(PG_DSN, clock=lambda: NOW).open()

    def tearDown(self):
        self.store.close()

    def _h(self, title, source, hours_ago=0.0):
        return Headline(
            title=title,
            url=f"https://example.com/{uuid.uuid4().hex}",
            source=source,
            timestamp=NOW - timedelta(hours=hours_ago),
        )

    def test_store_headline_is_idempotent(self):
        h = self._h("Apple unveils new iPhone", self.tm)
        self.assertEqual(self.store.store_headline(h), self.store.store_headline(h))

    def test_window_by_source(self):
        self.store.store_headline(self._h("recent", self.tm, hours_ago=1))
        self.store.store_headline(self._h("stale", self.tm, hours_ago=30))
        self.assertEqual([h.title for h in self.store.get_headlines_in_window(12, self.tm)], ["recent"])

    def test_store_match_round_trip(self):
        a = self.store.store_headline(self._h("Apple unveils new iPhone", self.tm))
        b = self.store.store_headline(self._h("Apple iPhone announcement today", self.hn))
        sid = self.store.store_match(a, b, "Apple unveils new iPhone", "summary")
        self.assertEqual(self.store.store_match(b, a, "other"), sid)

        story, members = self.store.get_story_details(sid)
        self.assertEqual(story.headline_ids, frozenset({a, b}))
        self.assertEqual(story.summary, "summary")
        self.assertEqual({m.id for m in members}, {a, b})


if __name__ == "__main__":
    unittest.main()
