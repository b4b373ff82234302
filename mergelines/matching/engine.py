"""Cross-source match engine.

Finds headline pairs from different sources that describe the same story,
skips pairs already confirmed in the store, and persists the new ones.

Pairing is greedy and single pass: scanning in source order then input order,
the first acceptable partner wins and both headlines are out of play for the
rest of the pass. Three sources covering one story therefore yield one pair,
not a triple.

"Already matched" is always re-derived from the store, never carried in memory
between runs, so a run that dies half way is simply redone by the next one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from mergelines.ingestion.headline_types import CrossPlatformStory, Headline, story_key
from mergelines.ingestion.sources import DEFAULT_SOURCE_ORDER, ordered_sources
from mergelines.llm.summarizer import summarize_or_fallback
from mergelines.matching.story_matcher import DecideFn, MatchDecision, within_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchCandidatePair:
    first: Headline
    second: Headline
    decision: MatchDecision

    @property
    def headline_ids(self) -> Optional[FrozenSet[int]]:
        if self.first.id is None or self.second.id is None:
            return None
        return story_key((self.first.id, self.second.id))


@dataclass(frozen=True)
class MatchPassResult:
    stored: Dict[str, int]
    fresh_by_source: Dict[str, List[Headline]]
    windowed_by_source: Dict[str, List[Headline]]
    new_stories: List[CrossPlatformStory] = field(default_factory=list)
    dropped: int = 0


def drop_malformed(headlines: Iterable[Headline]) -> Tuple[List[Headline], int]:
    """Split off headlines with an empty title or URL; they never reach the matcher."""
    kept = []
    dropped = 0
    for h in headlines:
        if h.is_well_formed():
            kept.append(h)
        else:
            dropped += 1
            logger.debug(f"Dropping malformed {h.source} headline: title={h.title!r} url={h.url!r}")
    return kept, dropped


def flatten_by_source(headlines_by_source: Mapping[str, Sequence[Headline]], source_order: Sequence[str]) -> List[Headline]:
    out: List[Headline] = []
    for source in ordered_sources(headlines_by_source.keys(), source_order):
        out.extend(headlines_by_source.get(source) or [])
    return out


def pair_candidates(
    headlines_by_source: Mapping[str, Sequence[Headline]],
    confirmed: Iterable[FrozenSet[int]],
    decide: DecideFn,
    window_hours: float,
    source_order: Sequence[str] = DEFAULT_SOURCE_ORDER,
) -> List[MatchCandidatePair]:
    """New cross-source pairs among the windowed headlines.

    A pair that matches but is already confirmed still claims both headlines,
    it just isn't emitted again.
    """
    pool = flatten_by_source(headlines_by_source, source_order)
    known: Set[FrozenSet[int]] = set(confirmed)
    claimed: Set[int] = set()
    out: List[MatchCandidatePair] = []

    for i, first in enumerate(pool):
        if i in claimed:
            continue
        for j in range(i + 1, len(pool)):
            if j in claimed:
                continue
            second = pool[j]
            # Same-source near-duplicates are the deduplicator's business.
            if second.source == first.source:
                continue
            if not within_window(first, second, window_hours):
                continue
            decision = decide(first, second)
            if not decision.is_match:
                continue
            claimed.update((i, j))
            candidate = MatchCandidatePair(first=first, second=second, decision=decision)
            if candidate.headline_ids is not None and candidate.headline_ids in known:
                logger.debug(f"Already matched: {first.title[:50]!r}")
            else:
                out.append(candidate)
            break
    return out


class CrossSourceMatchEngine:
    """Stores fresh headlines, then confirms new matches over the rolling window."""

    def __init__(
        self,
        store,
        matcher,
        summarizer=None,
        window_hours: float = 12.0,
        confirmed_limit: int = 1000,
        source_order: Sequence[str] = DEFAULT_SOURCE_ORDER,
    ):
        self.store = store
        self.matcher = matcher
        self.summarizer = summarizer
        self.window_hours = window_hours
        self.confirmed_limit = confirmed_limit
        self.source_order = tuple(source_order)

    def store_fresh(self, fresh_by_source: Mapping[str, Sequence[Headline]]) -> Tuple[Dict[str, List[Headline]], int]:
        stored: Dict[str, List[Headline]] = {}
        dropped_total = 0
        for source, headlines in fresh_by_source.items():
            kept, dropped = drop_malformed(headlines)
            dropped_total += dropped
            stored[source] = [replace(h, id=self.store.store_headline(h)) for h in kept]
        return stored, dropped_total

    def load_window(self, sources: Iterable[str]) -> Dict[str, List[Headline]]:
        return {s: self.store.get_headlines_in_window(self.window_hours, s) for s in sources}

    def run(self, fresh_by_source: Mapping[str, Sequence[Headline]]) -> MatchPassResult:
        fresh, dropped = self.store_fresh(fresh_by_source)
        if dropped:
            logger.info(f"Dropped {dropped} malformed headlines")
        counts = {s: len(items) for s, items in fresh.items()}
        logger.info("Stored " + ", ".join(f"{n} {s}" for s, n in counts.items()) + " headlines")

        sources = ordered_sources(set(self.source_order) | set(fresh), self.source_order)
        windowed = self.load_window(sources)
        in_window = ", ".join(f"{len(items)} {s}" for s, items in windowed.items())
        logger.info(f"In {self.window_hours}h window: {in_window}")

        confirmed = [s.headline_ids for s in self.store.get_confirmed_matches(self.confirmed_limit)]
        candidates = pair_candidates(windowed, confirmed, self.matcher.decide, self.window_hours, sources)

        new_stories: List[CrossPlatformStory] = []
        for candidate in candidates:
            story = self._confirm(candidate)
            if story is not None:
                new_stories.append(story)
        if new_stories:
            logger.info(f"Confirmed {len(new_stories)} new cross-source stories")

        return MatchPassResult(
            stored=counts,
            fresh_by_source=fresh,
            windowed_by_source=windowed,
            new_stories=new_stories,
            dropped=dropped,
        )

    def _confirm(self, candidate: MatchCandidatePair) -> Optional[CrossPlatformStory]:
        ids = candidate.headline_ids
        if ids is None:
            raise ValueError("Cannot confirm a match between headlines that were never stored")
        # Catches stories confirmed before the recent-lookup limit.
        if self.store.find_match(ids) is not None:
            return None
        first, second = candidate.first, candidate.second
        logger.info(f"Generating summary for: {first.title[:50]!r}")
        summary = summarize_or_fallback(self.summarizer, first.title, second.title)
        self.store.store_match(first.id, second.id, first.title, summary)
        return self.store.find_match(ids)
