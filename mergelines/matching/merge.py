"""Build the display-ordered headline list for one run.

Only this run's fresh headlines are shown, but their partners may come from
anywhere in the rolling window, so a story seen on one site hours ago still
merges with its late arrival on another.

Order: multi-source stories first (combined popularity desc, earliest first on
ties), then single-source leftovers round-robin across sources so one prolific
source can't crowd out the others.
"""

from __future__ import annotations

from functools import reduce
from itertools import chain, zip_longest
from typing import FrozenSet, List, Mapping, Optional, Sequence, Tuple, TypeVar

from mergelines.ingestion.headline_types import Headline, MergedHeadline, SourceLink
from mergelines.ingestion.sources import DEFAULT_SOURCE_ORDER, ordered_sources, source_label
from mergelines.matching.dedup import dedupe_headlines
from mergelines.matching.story_matcher import DecideFn, within_window

T = TypeVar("T")

_SKIP = object()


def _link(h: Headline) -> SourceLink:
    return SourceLink(source=h.source, label=source_label(h.source), url=h.url)


def single_headline(h: Headline) -> MergedHeadline:
    return MergedHeadline(
        title=h.title,
        links=(_link(h),),
        in_multiple_sources=False,
        popularity=float(h.popularity or 0.0),
        timestamp=h.timestamp,
        headlines=(h,),
    )


def combine_headlines(primary: Headline, *others: Headline) -> MergedHeadline:
    members = (primary,) + others
    return MergedHeadline(
        title=primary.title,
        links=tuple(_link(h) for h in members),
        in_multiple_sources=len({h.source for h in members}) > 1,
        popularity=sum(float(h.popularity or 0.0) for h in members),
        timestamp=min(h.timestamp for h in members),
        headlines=members,
    )


def interleave(groups: Sequence[Sequence[T]]) -> List[T]:
    """Round-robin: first of each group, then second of each, and so on."""
    rounds = zip_longest(*groups, fillvalue=_SKIP)
    return [item for item in chain.from_iterable(rounds) if item is not _SKIP]


def _flatten(by_source: Mapping[str, Sequence[Headline]], sources: Sequence[str]) -> List[Headline]:
    return [h for s in sources for h in (by_source.get(s) or [])]


def group_cross_source(
    fresh: Sequence[Headline],
    windowed: Sequence[Headline],
    decide: DecideFn,
    window_hours: float,
) -> Tuple[Tuple[MergedHeadline, ...], FrozenSet[tuple]]:
    """Pair each fresh headline with the first eligible in-window headline from another source.

    Returns the multi-source groups and the keys of every headline they used.
    """

    def find_partner(h: Headline, used: FrozenSet[tuple]) -> Optional[Headline]:
        for w in windowed:
            if w.source == h.source or w.key in used:
                continue
            if within_window(h, w, window_hours) and decide(h, w).is_match:
                return w
        return None

    def step(acc, h: Headline):
        groups, used = acc
        if h.key in used:
            return acc
        partner = find_partner(h, used)
        if partner is None:
            return acc
        return groups + (combine_headlines(h, partner),), used | {h.key, partner.key}

    return reduce(step, fresh, ((), frozenset()))


def rank_multi_source(groups: Sequence[MergedHeadline]) -> List[MergedHeadline]:
    return sorted(groups, key=lambda m: (-m.popularity, m.timestamp))


def build_merged_headlines(
    fresh_by_source: Mapping[str, Sequence[Headline]],
    windowed_by_source: Mapping[str, Sequence[Headline]],
    decide: DecideFn,
    window_hours: float,
    source_order: Sequence[str] = DEFAULT_SOURCE_ORDER,
) -> List[MergedHeadline]:
    sources = ordered_sources(fresh_by_source.keys(), source_order)
    window_sources = ordered_sources(windowed_by_source.keys(), source_order)

    groups, used = group_cross_source(
        _flatten(fresh_by_source, sources),
        _flatten(windowed_by_source, window_sources),
        decide,
        window_hours,
    )

    leftovers = [
        [single_headline(h) for h in dedupe_headlines([h for h in fresh_by_source.get(s) or [] if h.key not in used])]
        for s in sources
    ]
    return rank_multi_source(groups) + interleave(leftovers)
