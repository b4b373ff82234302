import time
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from mergelines.config import Config
from mergelines.ingestion.collectors import (
    BaseCollector,
    HackerNewsCollector,
    NineToFiveMacCollector,
    TechmemeCollector,
    collect_all,
    default_collectors,
)


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

TECHMEME_HTML = """
<html><body>
<div class="clus">
  <div class="ii"><a href="https://apple.com/newsroom/iphone">Apple unveils new iPhone lineup</a></div>
  <div class="ii"><a href="#more">Jump to related coverage</a></div>
  <div class="ii"><a href="/r2/sponsor/123">Sponsored: a thing you will like</a></div>
  <div class="ii"><a href="/search">Find</a></div>
  <div class="ii"><a href="/river">River</a></div>
  <div class="ii"><a href="/261019/p1">Senate passes sweeping chips subsidy bill</a></div>
</div>
<div class="other"><a href="https://ignored.example/">Not a headline block at all</a></div>
</body></html>
"""


class TestTechmemeCollector(unittest.TestCase):
    def test_parse_filters_and_ranks(self):
        headlines = TechmemeCollector().parse(TECHMEME_HTML, observed_at=NOW)

        self.assertEqual([h.title for h in headlines], [
            "Apple unveils new iPhone lineup",
            "Senate passes sweeping chips subsidy bill",
        ])
        self.assertEqual(headlines[1].url, "https://www.techmeme.com/261019/p1")
        self.assertEqual([h.popularity for h in headlines], [0.0, 1.0])
        self.assertTrue(all(h.source == "techmeme" and h.timestamp == NOW for h in headlines))

    @patch("mergelines.ingestion.collectors.requests.get")
    def test_fetch_uses_browser_agent(self, mock_get):
        mock_get.return_value = MagicMock(text=TECHMEME_HTML)
        headlines = TechmemeCollector(timeout=10).fetch()

        self.assertEqual(len(headlines), 2)
        _, kwargs = mock_get.call_args
        self.assertIn("Mozilla", kwargs["headers"]["User-Agent"])
        self.assertEqual(kwargs["timeout"], 10)


class TestHackerNewsCollector(unittest.TestCase):
    def test_parse_items(self):
        items = [
            {"id": 1, "title": "Apple iPhone announcement today", "url": "https://apple.com/x",
             "score": 250, "descendants": 41, "time": 1760875200},
            {"id": 2, "title": "Ask HN: What are you working on?", "score": 12, "time": 1760875200},
            {"id": 3, "title": "", "url": "https://x.example"},
            None,
        ]
        headlines = HackerNewsCollector().parse_items(items)

        self.assertEqual(len(headlines), 2)
        first, ask = headlines
        self.assertEqual(first.popularity, 250.0)
        self.assertEqual(first.points, 250)
        self.assertEqual(first.comment_count, 41)
        self.assertEqual(first.discussion_url, "https://news.ycombinator.com/item?id=1")
        self.assertEqual(first.timestamp, datetime.fromtimestamp(1760875200, tz=timezone.utc))
        self.assertEqual(ask.url, "https://news.ycombinator.com/item?id=2")
        self.assertEqual(ask.comment_count, 0)

    @patch("mergelines.ingestion.collectors.requests.Session")
    def test_fetch_respects_limit(self, mock_session_cls):
        session = mock_session_cls.return_value.__enter__.return_value

        def fake_get(url, timeout):
            resp = MagicMock()
            if url.endswith("topstories.json"):
                resp.json.return_value = [11, 12, 13]
            else:
                story_id = int(url.rsplit("/", 1)[1].split(".")[0])
                resp.json.return_value = {"id": story_id, "title": f"Story {story_id}", "score": story_id, "time": 0}
            return resp

        session.get.side_effect = fake_get
        headlines = HackerNewsCollector(limit=2).fetch()
        self.assertEqual([h.title for h in headlines], ["Story 11", "Story 12"])


class TestNineToFiveMacCollector(unittest.TestCase):
    def test_parse_entries(self):
        published = time.gmtime(1760875200)
        entries = [
            {"title": "Hands on with the new iPhone", "link": "https://9to5mac.com/a", "author": "Chance Miller",
             "slash_comments": "17", "published_parsed": published},
            {"title": "Save big on accessories", "link": "https://9to5mac.com/deal", "author": "Sponsored Post"},
            {"title": "No link here", "link": ""},
            {"title": "Comments not a number", "link": "https://9to5mac.com/b", "slash_comments": "n/a"},
        ]
        headlines = NineToFiveMacCollector().parse_entries(entries)

        self.assertEqual([h.url for h in headlines], ["https://9to5mac.com/a", "https://9to5mac.com/b"])
        self.assertEqual(headlines[0].popularity, 17.0)
        self.assertEqual(headlines[0].timestamp, datetime.fromtimestamp(1760875200, tz=timezone.utc))
        self.assertEqual(headlines[1].comment_count, 0)
        self.assertIsNotNone(headlines[1].timestamp.tzinfo)

    @patch("mergelines.ingestion.collectors.feedparser.parse")
    def test_unreadable_feed_raises(self, mock_parse):
        mock_parse.return_value = MagicMock(entries=[], get=lambda key, default=None: {"bozo": 1}.get(key, default))
        with self.assertRaises(ValueError):
            NineToFiveMacCollector().fetch()


class StaticCollector(BaseCollector):
    def __init__(self, name, headlines=None, error=None):
        self.name = name
        self.headlines = headlines or []
        self.error = error

    def fetch(self):
        if self.error:
            raise self.error
        return list(self.headlines)


class TestCollectAll(unittest.TestCase):
    def test_failing_collector_degrades_to_empty(self):
        parsed = TechmemeCollector().parse(TECHMEME_HTML, observed_at=NOW)
        result = collect_all([
            StaticCollector("techmeme", parsed),
            StaticCollector("hackernews", error=ConnectionError("offline")),
        ])
        self.assertEqual(list(result), ["techmeme", "hackernews"])
        self.assertEqual(len(result["techmeme"]), 2)
        self.assertEqual(result["hackernews"], [])

    def test_no_collectors(self):
        self.assertEqual(collect_all([]), {})

    def test_default_collectors_follow_config(self):
        config = Config(sources=["hackernews", "techmeme", "slashdot"], hn_top_stories=5, request_timeout=9)
        collectors = default_collectors(config)
        self.assertEqual([c.name for c in collectors], ["hackernews", "techmeme"])
        self.assertEqual(collectors[0].limit, 5)
        self.assertEqual(collectors[1].timeout, 9)


if __name__ == "__main__":
    unittest.main()
