"""Collapse near-duplicate headlines emitted by a single source."""

from __future__ import annotations

from functools import reduce
from typing import Sequence, Tuple

from mergelines.ingestion.headline_types import Headline
from mergelines.matching.similarity import similarity


DUPLICATE_TITLE_THRESHOLD = 0.5


def dedupe_headlines(headlines: Sequence[Headline], threshold: float = DUPLICATE_TITLE_THRESHOLD) -> list:
    """Keep a headline only if it is not too similar to any already kept one.

    Input must already be in the source's natural rank order; the first-seen
    headline of each near-duplicate group is the one kept.
    """

    def keep_if_distinct(kept: Tuple[Headline, ...], h: Headline) -> Tuple[Headline, ...]:
        if any(similarity(h.title, k.title) > threshold for k in kept):
            return kept
        return kept + (h,)

    return list(reduce(keep_if_distinct, headlines, ()))
