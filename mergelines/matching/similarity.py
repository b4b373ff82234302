"""String and token similarity between headline titles.

Everything here is pure and deterministic:
- `similarity`: normalized Levenshtein similarity in [0, 1]
- `shared_token_ratio`: overlap of significant words relative to the shorter title
"""

from __future__ import annotations

from typing import FrozenSet

from rapidfuzz.distance import Levenshtein

from mergelines.ingestion.url_utils import extract_domain


# Words longer than 3 chars that carry no topical signal in headlines.
STOPWORDS = frozenset(
    {
        "with", "from", "that", "this", "have", "will", "after", "about",
        "says", "their", "more", "than", "into", "over", "some", "been",
    }
)

MIN_TOKEN_LENGTH = 4


def edit_distance(a: str, b: str) -> int:
    """Classic Levenshtein distance (unit-cost insert, delete, substitute)."""
    return Levenshtein.distance(a or "", b or "")


def similarity(a: str, b: str) -> float:
    # Lowercasing can change length ("İ" becomes two code points), so measure after it.
    a = (a or "").lower()
    b = (b or "").lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    dist = edit_distance(a, b)
    return (longest - dist) / longest


def significant_tokens(title: str) -> FrozenSet[str]:
    if not title:
        return frozenset()
    return frozenset(
        t for t in title.lower().split() if len(t) >= MIN_TOKEN_LENGTH and t not in STOPWORDS
    )


def shared_token_ratio(title_a: str, title_b: str) -> float:
    toks_a = significant_tokens(title_a)
    toks_b = significant_tokens(title_b)
    if not toks_a or not toks_b:
        return 0.0
    return len(toks_a & toks_b) / min(len(toks_a), len(toks_b))


def same_domain(url_a: str, url_b: str) -> bool:
    dom_a = extract_domain(url_a)
    return bool(dom_a) and dom_a == extract_domain(url_b)
