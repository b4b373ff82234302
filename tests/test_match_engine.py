import os
import tempfile
import unittest
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from mergelines.ingestion.headline_types import Headline
from mergelines.matching.engine import CrossSourceMatchEngine, drop_malformed, pair_candidates
from mergelines.matching.story_matcher import HeuristicMatcher
from mergelines.storage.errors import DatabaseError
from mergelines.storage.sqlite_store import SqliteHeadlineStore


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _h(title, url, source, hours_ago=0.0, popularity=0.0, id=None):
    return Headline(
        title=title,
        url=url,
        source=source,
        timestamp=NOW - timedelta(hours=hours_ago),
        popularity=popularity,
        id=id,
    )


def iphone_pair(hn_hours_ago=1.0):
    return (
        _h("Apple unveils new iPhone", "https://apple.com/news/iphone", "techmeme", hours_ago=2),
        _h("Apple iPhone announcement today", "https://news.ycombinator.com/item?id=1", "hackernews",
           hours_ago=hn_hours_ago, popularity=250),
    )


def senate_pair():
    return (
        _h("Senate passes sweeping semiconductor subsidy bill", "https://senate.gov/chips", "techmeme",
           hours_ago=3, popularity=1),
        _h("Semiconductor subsidy bill clears Senate vote", "https://news.ycombinator.com/item?id=2",
           "hackernews", hours_ago=3, popularity=90),
    )


class RecordingSummarizer:
    def __init__(self, text="Apple announced a new iPhone."):
        self.text = text
        self.calls = []

    def summarize(self, title_a, title_b):
        self.calls.append((title_a, title_b))
        return self.text


class FailingSummarizer:
    def summarize(self, title_a, title_b):
        raise RuntimeError("rate limited")


class BrokenMatchStore(SqliteHeadlineStore):
    def store_match(self, id_a, id_b, title, summary=None):
        raise DatabaseError("disk I/O error")


class EngineTestCase(unittest.TestCase):
    store_class = SqliteHeadlineStore

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = self.store_class(os.path.join(self.tmp.name, "test.db"), clock=lambda: NOW)
        self.store.open()

    def tearDown(self):
        self.store.close()
        self.tmp.cleanup()

    def engine(self, summarizer=None, **kwargs):
        return CrossSourceMatchEngine(self.store, HeuristicMatcher(), summarizer=summarizer, **kwargs)


class TestCrossSourceMatchEngine(EngineTestCase):
    def test_detects_new_cross_source_story(self):
        tm, hn = iphone_pair()
        result = self.engine().run({"techmeme": [tm], "hackernews": [hn]})

        self.assertEqual(result.stored, {"techmeme": 1, "hackernews": 1})
        self.assertEqual(len(result.new_stories), 1)
        story = result.new_stories[0]
        ids = {h.id for h in result.fresh_by_source["techmeme"] + result.fresh_by_source["hackernews"]}
        self.assertEqual(set(story.headline_ids), ids)
        self.assertEqual(story.title, "Apple unveils new iPhone")
        # No summarizer: title stands in for the summary.
        self.assertEqual(story.summary, "Apple unveils new iPhone")

    def test_rerun_with_same_input_confirms_nothing_new(self):
        tm, hn = iphone_pair()
        engine = self.engine()
        engine.run({"techmeme": [tm], "hackernews": [hn]})
        second = engine.run({"techmeme": [tm], "hackernews": [hn]})

        self.assertEqual(second.new_stories, [])
        self.assertEqual(len(self.store.get_confirmed_matches(50)), 1)

    def test_partner_from_an_earlier_run_is_found_in_window(self):
        tm, hn = iphone_pair()
        engine = self.engine()
        first = engine.run({"techmeme": [tm]})
        self.assertEqual(first.new_stories, [])

        second = engine.run({"hackernews": [hn]})
        self.assertEqual(len(second.new_stories), 1)

    def test_headlines_thirty_hours_apart_do_not_match(self):
        tm, hn = iphone_pair(hn_hours_ago=-28)
        result = self.engine(window_hours=12).run({"techmeme": [tm], "hackernews": [hn]})
        self.assertEqual(result.new_stories, [])

    def test_summary_comes_from_summarizer(self):
        tm, hn = iphone_pair()
        summarizer = RecordingSummarizer()
        result = self.engine(summarizer=summarizer).run({"techmeme": [tm], "hackernews": [hn]})

        self.assertEqual(result.new_stories[0].summary, "Apple announced a new iPhone.")
        self.assertEqual(summarizer.calls, [(tm.title, hn.title)])

    def test_summarizer_failure_falls_back_to_title(self):
        tm, hn = iphone_pair()
        result = self.engine(summarizer=FailingSummarizer()).run({"techmeme": [tm], "hackernews": [hn]})

        self.assertEqual(len(result.new_stories), 1)
        self.assertEqual(result.new_stories[0].summary, tm.title)

    def test_malformed_headlines_are_dropped(self):
        tm, hn = iphone_pair()
        blank = _h("   ", "https://example.com/x", "techmeme")
        no_url = _h("A perfectly fine title", "", "hackernews")
        result = self.engine().run({"techmeme": [tm, blank], "hackernews": [hn, no_url]})

        self.assertEqual(result.dropped, 2)
        self.assertEqual(result.stored, {"techmeme": 1, "hackernews": 1})
        self.assertEqual(len(result.new_stories), 1)

    def test_three_sources_yield_one_greedy_pair(self):
        tm, hn = iphone_pair()
        mac = _h("Hands on with the new Apple iPhone lineup", "https://9to5mac.com/iphone", "9to5mac", hours_ago=1)
        result = self.engine().run({"techmeme": [tm], "hackernews": [hn], "9to5mac": [mac]})

        self.assertEqual(len(result.new_stories), 1)
        sources = {self.store.get_headline(i).source for i in result.new_stories[0].headline_ids}
        self.assertEqual(sources, {"techmeme", "hackernews"})

    def test_stories_older_than_lookup_limit_are_not_duplicated(self):
        tm1, hn1 = iphone_pair()
        tm2, hn2 = senate_pair()
        fresh = {"techmeme": [tm1, tm2], "hackernews": [hn1, hn2]}
        engine = self.engine(confirmed_limit=1)

        self.assertEqual(len(engine.run(fresh).new_stories), 2)
        self.assertEqual(engine.run(fresh).new_stories, [])
        self.assertEqual(len(self.store.get_confirmed_matches(10)), 2)


class TestStoreFailure(EngineTestCase):
    store_class = BrokenMatchStore

    def test_store_failure_propagates(self):
        tm, hn = iphone_pair()
        with self.assertRaises(DatabaseError):
            self.engine().run({"techmeme": [tm], "hackernews": [hn]})


class TestPairCandidates(unittest.TestCase):
    def test_skips_already_confirmed_pairs(self):
        tm, hn = iphone_pair()
        tm, hn = replace(tm, id=1), replace(hn, id=2)
        decide = HeuristicMatcher().decide

        fresh = pair_candidates({"techmeme": [tm], "hackernews": [hn]}, [], decide, 12)
        self.assertEqual(len(fresh), 1)
        self.assertEqual(fresh[0].headline_ids, frozenset({1, 2}))

        known = pair_candidates({"techmeme": [tm], "hackernews": [hn]}, [frozenset({1, 2})], decide, 12)
        self.assertEqual(known, [])

    def test_same_source_pairs_are_never_candidates(self):
        a = _h("Apple unveils new iPhone", "https://apple.com/a", "techmeme", id=1)
        b = _h("Apple unveils the new iPhone", "https://apple.com/b", "techmeme", id=2)
        self.assertEqual(pair_candidates({"techmeme": [a, b]}, [], HeuristicMatcher().decide, 12), [])

    def test_drop_malformed_counts(self):
        kept, dropped = drop_malformed([_h("", "https://a.example", "techmeme"), _h("Title here", "u", "techmeme")])
        self.assertEqual(dropped, 1)
        self.assertEqual([h.title for h in kept], ["Title here"])


if __name__ == "__main__":
    unittest.main()
