"""One aggregation cycle: collect, match, merge."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from mergelines.config import Config
from mergelines.ingestion.collectors import BaseCollector, collect_all, default_collectors
from mergelines.ingestion.headline_types import CrossPlatformStory, Headline, MergedHeadline
from mergelines.llm.summarizer import OpenAISummarizer
from mergelines.matching.engine import CrossSourceMatchEngine
from mergelines.matching.merge import build_merged_headlines
from mergelines.matching.strategy import build_matcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    stored: Dict[str, int]
    new_stories: List[CrossPlatformStory]
    merged: List[MergedHeadline]
    dropped: int = 0
    cleaned_up: int = 0

    @property
    def multi_source_count(self) -> int:
        return sum(1 for m in self.merged if m.in_multiple_sources)


def build_summarizer(config: Config) -> Optional[OpenAISummarizer]:
    if not config.summaries_available:
        return None
    return OpenAISummarizer(api_key=config.openai_api_key, model=config.openai_model, timeout=config.request_timeout)


def match_and_merge(
    config: Config,
    store,
    fresh_by_source: Mapping[str, Sequence[Headline]],
    *,
    matcher=None,
    summarizer=None,
) -> RunResult:
    """Core of a cycle over already-collected headlines.

    Store errors (DatabaseError) propagate; nothing here swallows them.
    """
    matcher = matcher if matcher is not None else build_matcher(config)
    logger.info(f"Matching with the {matcher.kind} matcher over a {config.match_window_hours}h window")
    engine = CrossSourceMatchEngine(
        store,
        matcher,
        summarizer=summarizer,
        window_hours=config.match_window_hours,
        confirmed_limit=config.confirmed_lookup_limit,
        source_order=config.sources,
    )
    match_pass = engine.run(fresh_by_source)
    merged = build_merged_headlines(
        match_pass.fresh_by_source,
        match_pass.windowed_by_source,
        matcher.decide,
        config.match_window_hours,
        source_order=config.sources,
    )
    cleaned = store.cleanup_old_headlines(config.retention_days)
    return RunResult(
        stored=match_pass.stored,
        new_stories=match_pass.new_stories,
        merged=merged,
        dropped=match_pass.dropped,
        cleaned_up=cleaned,
    )


def run_pipeline(
    config: Config,
    store,
    *,
    collectors: Optional[Sequence[BaseCollector]] = None,
    matcher=None,
    summarizer=None,
) -> RunResult:
    collectors = list(collectors) if collectors is not None else default_collectors(config)
    if summarizer is None:
        summarizer = build_summarizer(config)
    fresh = collect_all(collectors)
    result = match_and_merge(config, store, fresh, matcher=matcher, summarizer=summarizer)
    logger.info(
        f"Cycle complete: {len(result.merged)} headlines, {result.multi_source_count} in multiple sources, "
        f"{len(result.new_stories)} new matches"
    )
    return result
