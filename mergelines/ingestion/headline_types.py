"""Shared headline data types.

Headlines come from collectors (or back out of a store); everything downstream
of collection works on these frozen records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class Headline:
    """One article as reported by one source.

    `id` is only set once the headline has been written to (or read from) a store.
    """

    title: str
    url: str
    source: str
    timestamp: datetime
    popularity: float = 0.0
    points: Optional[int] = None
    comment_count: Optional[int] = None
    discussion_url: Optional[str] = None
    id: Optional[int] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.title, self.url, self.source)

    def is_well_formed(self) -> bool:
        return bool((self.title or "").strip()) and bool((self.url or "").strip())


@dataclass(frozen=True)
class CrossPlatformStory:
    """A confirmed equivalence between headlines from distinct sources."""

    headline_ids: FrozenSet[int]
    matched_at: datetime
    title: str
    summary: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class SourceLink:
    source: str
    label: str
    url: str


@dataclass(frozen=True)
class MergedHeadline:
    title: str
    links: Tuple[SourceLink, ...]
    in_multiple_sources: bool
    popularity: float
    timestamp: datetime
    headlines: Tuple[Headline, ...] = field(default=(), repr=False)

    @property
    def sources(self) -> Tuple[str, ...]:
        return tuple(link.source for link in self.links)

    @property
    def discussion_url(self) -> Optional[str]:
        for h in self.headlines:
            if h.discussion_url:
                return h.discussion_url
        return None


def story_key(headline_ids) -> FrozenSet[int]:
    """Unordered identity of a story, independent of title text."""
    return frozenset(int(i) for i in headline_ids)


def member_key(headline_ids) -> str:
    """Canonical text form of a story identity (sorted ids), used as a unique column."""
    ids = sorted(story_key(headline_ids))
    return ",".join(str(i) for i in ids)
