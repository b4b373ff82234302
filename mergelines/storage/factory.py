"""Open the configured store for the duration of one run."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Union

from mergelines.config import Config
from mergelines.storage.postgres_store import PostgresHeadlineStore
from mergelines.storage.sqlite_store import SqliteHeadlineStore

logger = logging.getLogger(__name__)

HeadlineStore = Union[SqliteHeadlineStore, PostgresHeadlineStore]


def build_store(config: Config) -> HeadlineStore:
    if config.store_backend == "postgres":
        return PostgresHeadlineStore(config.pg_dsn)
    return SqliteHeadlineStore(config.db_path)


@contextmanager
def open_store(config: Config) -> Iterator[HeadlineStore]:
    """Yield an opened store; always closed afterwards, including on errors."""
    store = build_store(config)
    store.open()
    try:
        yield store
    finally:
        store.close()
        logger.debug(f"Closed {config.store_backend} store")
