"""One-paragraph summaries for newly confirmed cross-source stories."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import openai

logger = logging.getLogger(__name__)


SUMMARY_SYSTEM_PROMPT = """You are an expert at writing concise, informative summaries of tech news stories.

Given two headlines about the same story from different sources, create a single unified summary that:
1. Captures the key facts and significance
2. Is 2-3 sentences maximum
3. Is neutral and factual
4. Focuses on what matters to tech professionals

Return ONLY the summary text, no preamble or explanation."""


class SummaryError(Exception):
    """Raised when the model returns no usable summary."""


@dataclass
class OpenAISummarizer:
    api_key: str
    model: str = "gpt-4o-mini"
    timeout: float = 30.0
    client: Optional[Any] = field(default=None, repr=False)

    def __post_init__(self):
        if self.client is None:
            self.client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=2)

    def summarize(self, title_a: str, title_b: str) -> str:
        completion = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        "Generate a summary for this tech story that appeared on multiple sites:\n\n"
                        f'Headline 1: "{title_a}"\n'
                        f'Headline 2: "{title_b}"\n\n'
                        "Summary:"
                    ),
                },
            ],
            temperature=0.7,
            max_tokens=150,
        )
        text = (completion.choices[0].message.content or "").strip() if completion.choices else ""
        if not text:
            raise SummaryError("empty completion")
        return text


def summarize_or_fallback(summarizer, title_a: str, title_b: str) -> str:
    """Summary from `summarizer`, or `title_a` if there is none or it fails."""
    if summarizer is None:
        return title_a
    try:
        return summarizer.summarize(title_a, title_b)
    except Exception as e:
        logger.warning(f"Summary generation failed, using headline title instead: {e}")
        return title_a
