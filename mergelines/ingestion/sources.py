"""Known headline sources.

Popularity is not comparable across sources: Techmeme reports page position
(lower is better), Hacker News points and 9to5Mac comment counts (higher is better).
Each collector emits its headlines in the source's own rank order, and that
order is what the rest of the pipeline treats as "natural".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence


TECHMEME = "techmeme"
HACKERNEWS = "hackernews"
NINE_TO_FIVE_MAC = "9to5mac"


@dataclass(frozen=True)
class SourceInfo:
    key: str
    label: str
    higher_is_better: bool = True


SOURCES = {
    TECHMEME: SourceInfo(TECHMEME, "Techmeme", higher_is_better=False),
    HACKERNEWS: SourceInfo(HACKERNEWS, "Hacker News"),
    NINE_TO_FIVE_MAC: SourceInfo(NINE_TO_FIVE_MAC, "9to5Mac"),
}

DEFAULT_SOURCE_ORDER = (TECHMEME, HACKERNEWS, NINE_TO_FIVE_MAC)


def source_info(key: str) -> SourceInfo:
    info = SOURCES.get(key)
    if info is not None:
        return info
    return SourceInfo(key, key.title())


def source_label(key: str) -> str:
    return source_info(key).label


def ordered_sources(present: Iterable[str], preferred: Sequence[str] = DEFAULT_SOURCE_ORDER) -> List[str]:
    """Preferred sources first (in their order), then any others alphabetically."""
    present_set = set(present)
    out = [s for s in preferred if s in present_set]
    out.extend(sorted(present_set - set(out)))
    return out


def describe_popularity(source: str, popularity: float) -> str:
    """Human-readable popularity in the source's own terms."""
    info = source_info(source)
    if not info.higher_is_better:
        return f"#{int(popularity) + 1} on {info.label}"
    return f"{int(popularity)} on {info.label}"
