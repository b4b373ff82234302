"""Runtime configuration loaded from the environment (.env supported)."""

import logging
import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

from mergelines.ingestion.sources import DEFAULT_SOURCE_ORDER

logger = logging.getLogger(__name__)

MATCHER_KINDS = ("heuristic", "model")
STORE_BACKENDS = ("sqlite", "postgres")


def _split_csv(value: str) -> List[str]:
    return [part.strip().lower() for part in (value or "").split(",") if part.strip()]


@dataclass
class Config:
    """Configuration with validation"""

    # Storage
    store_backend: str = "sqlite"
    db_path: str = "mergelines.db"
    pg_dsn: str = ""

    # Sources, in scan/interleave order
    sources: List[str] = field(default_factory=lambda: list(DEFAULT_SOURCE_ORDER))

    # Matching
    match_window_hours: float = 12.0
    matcher: str = "heuristic"
    model_confidence_threshold: float = 0.6
    model_max_calls: int = 50
    confirmed_lookup_limit: int = 1000

    # OpenAI (summaries + model matcher)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    summaries_enabled: bool = True

    # Collectors
    request_timeout: int = 30
    hn_top_stories: int = 30

    # Maintenance / scheduling
    retention_days: float = 7.0
    schedule_minutes: int = 30
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> 'Config':
        """Load and validate configuration from environment variables"""
        load_dotenv()
        config = cls(
            store_backend=os.getenv('STORE_BACKEND', 'sqlite').strip().lower(),
            db_path=os.getenv('DB_PATH', 'mergelines.db'),
            pg_dsn=os.getenv('PG_DSN', ''),
            sources=_split_csv(os.getenv('SOURCES', ','.join(DEFAULT_SOURCE_ORDER))),
            match_window_hours=float(os.getenv('MATCH_WINDOW_HOURS', '12')),
            matcher=os.getenv('MATCHER', 'heuristic').strip().lower(),
            model_confidence_threshold=float(os.getenv('MODEL_CONFIDENCE_THRESHOLD', '0.6')),
            model_max_calls=int(os.getenv('MODEL_MAX_CALLS', '50')),
            confirmed_lookup_limit=int(os.getenv('CONFIRMED_LOOKUP_LIMIT', '1000')),
            openai_api_key=os.getenv('OPENAI_API_KEY', ''),
            openai_model=os.getenv('OPENAI_MODEL', 'gpt-4o-mini'),
            summaries_enabled=os.getenv('SUMMARIES_ENABLED', 'true').lower() == 'true',
            request_timeout=int(os.getenv('REQUEST_TIMEOUT', '30')),
            hn_top_stories=int(os.getenv('HN_TOP_STORIES', '30')),
            retention_days=float(os.getenv('RETENTION_DAYS', '7')),
            schedule_minutes=int(os.getenv('SCHEDULE_MINUTES', '30')),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )
        config._validate()
        return config

    @property
    def summaries_available(self) -> bool:
        return self.summaries_enabled and bool(self.openai_api_key)

    def _validate(self):
        """Validate configuration values"""
        errors = []

        if self.store_backend not in STORE_BACKENDS:
            errors.append(f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}")
        elif self.store_backend == "postgres" and not self.pg_dsn:
            errors.append("STORE_BACKEND=postgres requires PG_DSN")
        elif self.store_backend == "sqlite" and not self.db_path:
            errors.append("DB_PATH is required for the sqlite backend")

        if len(set(self.sources)) < 2:
            errors.append("SOURCES must list at least two distinct sources")

        if self.matcher not in MATCHER_KINDS:
            errors.append(f"MATCHER must be one of {', '.join(MATCHER_KINDS)}")
        elif self.matcher == "model" and not self.openai_api_key:
            errors.append("MATCHER=model requires OPENAI_API_KEY")

        if self.match_window_hours <= 0:
            errors.append("MATCH_WINDOW_HOURS must be positive")

        if not 0.0 <= self.model_confidence_threshold <= 1.0:
            errors.append("MODEL_CONFIDENCE_THRESHOLD should be between 0 and 1")

        if self.model_max_calls < 1:
            errors.append("MODEL_MAX_CALLS must be positive")

        if self.request_timeout < 5 or self.request_timeout > 300:
            errors.append("REQUEST_TIMEOUT should be between 5 and 300 seconds")

        if self.hn_top_stories < 1 or self.hn_top_stories > 500:
            errors.append("HN_TOP_STORIES should be between 1 and 500")

        if self.confirmed_lookup_limit < 1:
            errors.append("CONFIRMED_LOOKUP_LIMIT must be positive")

        if self.retention_days < self.match_window_hours / 24.0:
            errors.append("RETENTION_DAYS must cover at least the match window")

        if self.schedule_minutes < 1:
            errors.append("SCHEDULE_MINUTES must be positive")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ValueError(error_msg)

        if self.summaries_enabled and not self.openai_api_key:
            logger.warning("OPENAI_API_KEY not set; story summaries fall back to headline titles")

        logger.info(
            f"Configuration validated. Backend: {self.store_backend}, matcher: {self.matcher}, "
            f"sources: {', '.join(self.sources)}, window: {self.match_window_hours}h"
        )
