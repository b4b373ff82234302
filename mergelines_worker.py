#!/usr/bin/env python3
"""Mergelines aggregation worker.

Runs one cycle (or scheduled) to:
- collect headlines from Techmeme, Hacker News and 9to5Mac
- confirm cross-source stories against the rolling window in the store
- log the merged, ranked headline list
"""

from __future__ import annotations

import logging
import os
import sys
import time

import schedule

from mergelines.config import Config
from mergelines.ingestion.headline_types import MergedHeadline
from mergelines.ingestion.sources import describe_popularity
from mergelines.pipeline import RunResult, run_pipeline
from mergelines.storage.errors import DatabaseError
from mergelines.storage.factory import open_store

logger = logging.getLogger("mergelines.worker")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def format_line(rank: int, item: MergedHeadline) -> str:
    badge = "MULTI" if item.in_multiple_sources else item.links[0].label
    metrics = [describe_popularity(h.source, h.popularity) for h in item.headlines]
    line = f"{rank:>3}. [{badge}] {item.title} ({'; '.join(metrics)})"
    for link in item.links:
        line += f"\n       {link.label}: {link.url}"
    if item.discussion_url and item.discussion_url not in {link.url for link in item.links}:
        line += f"\n       discussion: {item.discussion_url}"
    return line


def log_digest(result: RunResult, limit: int = 40) -> None:
    for rank, item in enumerate(result.merged[:limit], start=1):
        logger.info(format_line(rank, item))
    for story in result.new_stories:
        logger.info(f"New cross-source story #{story.id}: {story.title} -- {story.summary}")


def run_once(config: Config) -> RunResult:
    with open_store(config) as store:
        result = run_pipeline(config, store)
    stored = ", ".join(f"{source}={n}" for source, n in result.stored.items())
    logger.info(
        f"[mergelines] stored {stored} new_matches={len(result.new_stories)} "
        f"merged={len(result.merged)} multi_source={result.multi_source_count}"
    )
    log_digest(result)
    return result


def run_scheduled(config: Config) -> None:
    def job():
        try:
            run_once(config)
        except DatabaseError as e:
            logger.error(f"Cycle aborted by storage failure; will retry next cycle: {e}")

    job()
    schedule.every(config.schedule_minutes).minutes.do(job)
    while True:
        schedule.run_pending()
        time.sleep(5)


def main() -> int:
    try:
        config = Config.from_env()
    except ValueError as e:
        configure_logging()
        logger.error(str(e))
        return 2
    configure_logging(config.log_level)

    mode = (os.environ.get("MERGELINES_MODE") or "once").lower().strip()
    if mode in ("scheduled", "daemon"):
        run_scheduled(config)
        return 0
    try:
        run_once(config)
    except DatabaseError as e:
        logger.error(f"Storage failure: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
