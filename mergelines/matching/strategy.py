"""Matcher selection.

A matcher is anything with `decide(h1, h2) -> MatchDecision`. The two variants
share no base class; `config.matcher` picks one by name.
"""

from __future__ import annotations

from typing import Union

from mergelines.config import Config
from mergelines.llm.model_matcher import ModelMatcher
from mergelines.matching.story_matcher import HeuristicMatcher

Matcher = Union[HeuristicMatcher, ModelMatcher]


def build_matcher(config: Config) -> Matcher:
    if config.matcher == "heuristic":
        return HeuristicMatcher()
    if config.matcher == "model":
        return ModelMatcher(
            api_key=config.openai_api_key,
            model=config.openai_model,
            confidence_threshold=config.model_confidence_threshold,
            timeout=config.request_timeout,
            max_calls=config.model_max_calls,
        )
    raise ValueError(f"Unknown matcher: {config.matcher!r}")
