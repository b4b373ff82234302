"""Language-model story matcher.

Drop-in alternative to the heuristic matcher: same `decide(h1, h2)` signature,
but asks a chat model whether two headlines describe the same story. Much more
expensive, so decisions are cached per title pair for the lifetime of the matcher,
and each matcher stops calling the model after `max_calls` requests.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

import openai

from mergelines.ingestion.headline_types import Headline
from mergelines.matching.story_matcher import NO_MATCH, MatchDecision

logger = logging.getLogger(__name__)


MATCHER_INSTRUCTIONS = """You are an expert at analyzing news headlines to determine if they refer to the same underlying story or event.

When comparing two headlines:
1. Look beyond exact wording - focus on the core topic, companies, people, or events mentioned
2. Consider that different news sources may frame the same story differently
3. Account for slight time differences - breaking news evolves quickly
4. Return "yes" if the headlines are about the same story, "no" if they are about different topics

Be generous in matching - if two headlines are about the same company announcement, product launch, or event, they should match even if the specific angle differs."""

KEYWORD_CONFIDENCE = 0.7

# Per matcher instance, i.e. per cycle.
DEFAULT_MAX_CALLS = 50

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def build_prompt(h1: Headline, h2: Headline) -> str:
    return (
        "Are these two headlines about the same story?\n\n"
        f'Headline 1: "{h1.title}"\n'
        f"Source 1: {h1.source}\n\n"
        f'Headline 2: "{h2.title}"\n'
        f"Source 2: {h2.source}\n\n"
        "Respond with a JSON object in this exact format:\n"
        "{\n"
        '  "isSameStory": true or false,\n'
        '  "confidence": a number between 0 and 1,\n'
        '  "reasoning": "brief explanation"\n'
        "}"
    )


def parse_reply(text: str) -> MatchDecision:
    """Interpret a model reply; returns the raw verdict before thresholding."""
    text = (text or "").strip()
    m = _JSON_OBJECT.search(text)
    if m:
        try:
            parsed = json.loads(m.group(0))
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            try:
                confidence = float(parsed.get("confidence") or 0.0)
            except (TypeError, ValueError):
                confidence = 0.0
            return MatchDecision(
                is_match=bool(parsed.get("isSameStory")),
                confidence=max(0.0, min(1.0, confidence)),
                reason=str(parsed.get("reasoning") or "No reasoning provided"),
            )
    lowered = text.lower()
    if "yes" in lowered or "true" in lowered:
        return MatchDecision(is_match=True, confidence=KEYWORD_CONFIDENCE, reason="Response indicated match")
    return MatchDecision(is_match=False, confidence=KEYWORD_CONFIDENCE, reason="Response indicated no match")


@dataclass
class ModelMatcher:
    api_key: str
    model: str = "gpt-4o-mini"
    confidence_threshold: float = 0.6
    timeout: float = 30.0
    client: Optional[Any] = field(default=None, repr=False)
    max_calls: int = DEFAULT_MAX_CALLS
    kind: str = field(default="model", init=False)
    calls_made: int = field(default=0, init=False)
    _budget_warned: bool = field(default=False, init=False, repr=False)
    _cache: Dict[FrozenSet[str], MatchDecision] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        if self.client is None:
            self.client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=2)

    def decide(self, h1: Headline, h2: Headline) -> MatchDecision:
        cache_key = frozenset((h1.title, h2.title))
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached
        if self.calls_made >= self.max_calls:
            if not self._budget_warned:
                logger.warning(f"Model call budget of {self.max_calls} spent; remaining pairs count as no match")
                self._budget_warned = True
            return NO_MATCH
        self.calls_made += 1
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": MATCHER_INSTRUCTIONS},
                    {"role": "user", "content": build_prompt(h1, h2)},
                ],
                temperature=0,
                max_tokens=200,
            )
            text = completion.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"AI matching error: {e}")
            return NO_MATCH

        verdict = parse_reply(text)
        decision = MatchDecision(
            is_match=verdict.is_match and verdict.confidence >= self.confidence_threshold,
            confidence=verdict.confidence,
            reason=verdict.reason,
        )
        if decision.is_match:
            logger.info(
                f"AI match: {h1.title[:50]!r} = {h2.title[:50]!r} (confidence: {decision.confidence})"
            )
        self._cache[cache_key] = decision
        return decision
