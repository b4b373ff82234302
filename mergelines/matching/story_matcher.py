"""Heuristic "same story" decision between two headlines.

Three independent signals, any one of which is enough:
1. both URLs point at the same (non-empty) domain
2. normalized title similarity above TITLE_SIMILARITY_THRESHOLD
3. significant-word overlap above TOKEN_OVERLAP_THRESHOLD

The thresholds are loose on purpose: outlets phrase one event very differently,
and a missed cross-source match costs more than an occasional false pairing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from mergelines.ingestion.headline_types import Headline
from mergelines.matching.similarity import same_domain, shared_token_ratio, similarity

logger = logging.getLogger(__name__)

TITLE_SIMILARITY_THRESHOLD = 0.45
TOKEN_OVERLAP_THRESHOLD = 0.35


@dataclass(frozen=True)
class MatchDecision:
    is_match: bool
    confidence: float
    reason: str = ""


NO_MATCH = MatchDecision(is_match=False, confidence=0.0)

DecideFn = Callable[[Headline, Headline], MatchDecision]


def match_signal(h1: Headline, h2: Headline) -> Optional[str]:
    """Name of the first signal that fires, or None."""
    if same_domain(h1.url, h2.url):
        return "domain"
    if similarity(h1.title, h2.title) > TITLE_SIMILARITY_THRESHOLD:
        return "title"
    if shared_token_ratio(h1.title, h2.title) > TOKEN_OVERLAP_THRESHOLD:
        return "tokens"
    return None


def is_same_story(h1: Headline, h2: Headline) -> bool:
    return match_signal(h1, h2) is not None


def within_window(h1: Headline, h2: Headline, hours: float) -> bool:
    return abs(h1.timestamp - h2.timestamp) <= timedelta(hours=hours)


@dataclass(frozen=True)
class HeuristicMatcher:
    """Domain/string/token heuristics; cheap and deterministic."""

    kind: str = "heuristic"

    def decide(self, h1: Headline, h2: Headline) -> MatchDecision:
        signal = match_signal(h1, h2)
        if signal is None:
            return NO_MATCH
        if signal == "domain":
            confidence = 1.0
        else:
            confidence = max(similarity(h1.title, h2.title), shared_token_ratio(h1.title, h2.title))
        logger.debug(f"heuristic match via {signal}: {h1.title[:50]!r} ~ {h2.title[:50]!r}")
        return MatchDecision(is_match=True, confidence=round(confidence, 4), reason=signal)
