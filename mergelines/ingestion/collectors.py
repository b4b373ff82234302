"""Collectors for the headline sources.

Each collector returns its source's headlines in the source's own rank order,
normalized into `Headline`. Collectors raise on transport errors; `collect_all`
isolates failures so one broken source degrades to an empty list.
"""

from __future__ import annotations

import calendar
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import feedparser
import requests
from bs4 import BeautifulSoup

from mergelines.config import Config
from mergelines.ingestion.headline_types import Headline
from mergelines.ingestion.sources import HACKERNEWS, NINE_TO_FIVE_MAC, TECHMEME
from mergelines.ingestion.url_utils import absolute_url

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _struct_to_dt(value: Any) -> Optional[datetime]:
    """feedparser *_parsed fields are UTC struct_time."""
    if not value:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


class BaseCollector:
    name: str = "base"

    def fetch(self) -> List[Headline]:
        raise NotImplementedError


@dataclass(frozen=True)
class TechmemeCollector(BaseCollector):
    """Front-page scrape; popularity is page position (0 = top)."""

    url: str = "https://www.techmeme.com/"
    timeout: int = 30
    name: str = TECHMEME

    def fetch(self) -> List[Headline]:
        resp = requests.get(self.url, headers={"User-Agent": BROWSER_USER_AGENT}, timeout=self.timeout)
        resp.raise_for_status()
        return self.parse(resp.text, observed_at=_utcnow())

    def parse(self, html: str, *, observed_at: datetime) -> List[Headline]:
        soup = BeautifulSoup(html, "html.parser")
        out: List[Headline] = []
        for anchor in soup.select(".ii a"):
            title = anchor.get_text(strip=True)
            href = (anchor.get("href") or "").strip()
            if not title or not href:
                continue
            # Navigation, in-page anchors, sponsored (/r2/) links and short nav text.
            if title == "Find" or href.startswith("#") or "/r2/" in href or len(title) <= 10:
                continue
            out.append(
                Headline(
                    title=title,
                    url=absolute_url(href, self.url),
                    source=self.name,
                    timestamp=observed_at,
                    popularity=float(len(out)),
                )
            )
        return out


@dataclass(frozen=True)
class HackerNewsCollector(BaseCollector):
    """Top stories from the official Firebase API; popularity is points."""

    limit: int = 30
    timeout: int = 30
    api_base: str = "https://hacker-news.firebaseio.com/v0"
    site_base: str = "https://news.ycombinator.com"
    name: str = HACKERNEWS

    def fetch(self) -> List[Headline]:
        with requests.Session() as session:
            resp = session.get(f"{self.api_base}/topstories.json", timeout=self.timeout)
            resp.raise_for_status()
            ids = (resp.json() or [])[: max(0, self.limit)]
            items = []
            for story_id in ids:
                r = session.get(f"{self.api_base}/item/{story_id}.json", timeout=self.timeout)
                r.raise_for_status()
                items.append(r.json())
        return self.parse_items(items)

    def parse_items(self, items: Sequence[Any]) -> List[Headline]:
        out: List[Headline] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("title"):
                continue
            discussion = f"{self.site_base}/item?id={item.get('id')}"
            score = int(item.get("score") or 0)
            out.append(
                Headline(
                    title=str(item["title"]).strip(),
                    url=(item.get("url") or discussion).strip(),
                    source=self.name,
                    timestamp=datetime.fromtimestamp(int(item.get("time") or 0), tz=timezone.utc),
                    popularity=float(score),
                    points=score,
                    comment_count=int(item.get("descendants") or 0),
                    discussion_url=discussion,
                )
            )
        return out


@dataclass(frozen=True)
class NineToFiveMacCollector(BaseCollector):
    """RSS feed; popularity is comment count, sponsored posts skipped."""

    feed_url: str = "https://9to5mac.com/feed/"
    name: str = NINE_TO_FIVE_MAC

    def fetch(self) -> List[Headline]:
        parsed = feedparser.parse(self.feed_url, agent=BROWSER_USER_AGENT)
        if parsed.get("bozo") and not parsed.entries:
            raise ValueError(f"Unreadable feed {self.feed_url}: {parsed.get('bozo_exception')}")
        return self.parse_entries(parsed.entries or [])

    def parse_entries(self, entries: Sequence[Any]) -> List[Headline]:
        out: List[Headline] = []
        for entry in entries:
            title = (entry.get("title") or "").strip()
            link = (entry.get("link") or "").strip()
            if not title or not link:
                continue
            author = (entry.get("author") or "").lower()
            if "sponsored" in author:
                continue
            try:
                comments = int(entry.get("slash_comments") or 0)
            except (TypeError, ValueError):
                comments = 0
            published = _struct_to_dt(entry.get("published_parsed") or entry.get("updated_parsed"))
            out.append(
                Headline(
                    title=title,
                    url=link,
                    source=self.name,
                    timestamp=published or _utcnow(),
                    popularity=float(comments),
                    comment_count=comments,
                )
            )
        return out


def default_collectors(config: Config) -> List[BaseCollector]:
    """Collectors for the configured sources, in configured order."""
    available = {
        TECHMEME: lambda: TechmemeCollector(timeout=config.request_timeout),
        HACKERNEWS: lambda: HackerNewsCollector(limit=config.hn_top_stories, timeout=config.request_timeout),
        NINE_TO_FIVE_MAC: lambda: NineToFiveMacCollector(),
    }
    out = []
    for source in config.sources:
        factory = available.get(source)
        if factory is None:
            logger.warning(f"No collector for source {source!r}; skipping")
            continue
        out.append(factory())
    return out


def _safe_fetch(collector: BaseCollector) -> List[Headline]:
    try:
        return collector.fetch()
    except Exception as e:
        logger.error(f"Error collecting {collector.name}: {e}")
        return []


def collect_all(collectors: Sequence[BaseCollector], max_workers: int = 4) -> Dict[str, List[Headline]]:
    """Run collectors concurrently; every source finishes (or fails to []) before returning."""
    if not collectors:
        return {}
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(collectors)))) as pool:
        results = list(pool.map(_safe_fetch, collectors))
    out: Dict[str, List[Headline]] = {}
    for collector, headlines in zip(collectors, results):
        logger.info(f"Fetched {len(headlines)} headlines from {collector.name}")
        out[collector.name] = headlines
    return out
