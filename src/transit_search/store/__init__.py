"""Partitioned key-value store access."""

from __future__ import annotations

from typing import TYPE_CHECKING

from transit_search.store.adapter import StoreAdapter, chunked, gather_bounded
from transit_search.store.base import KeyValueBackend
from transit_search.store.memory import InMemoryBackend
from transit_search.store.schema import (
    FeedTables,
    InvalidKeyError,
    KeyCondition,
    StoreLimits,
    TableSchema,
    build_feed_tables,
    feed_tables_from_settings,
)

if TYPE_CHECKING:
    from transit_search.config import Settings


def build_store(settings: Settings) -> StoreAdapter:
    """Build the configured backend and wrap it in a StoreAdapter."""
    tables = feed_tables_from_settings(settings)
    backend: KeyValueBackend
    if settings.store_backend == "sql":
        from transit_search.database import create_engine
        from transit_search.store.sql import SqlBackend

        backend = SqlBackend(create_engine(settings), tables)
    else:
        backend = InMemoryBackend()
    return StoreAdapter.from_settings(backend, tables, settings)


__all__ = [
    "FeedTables",
    "InMemoryBackend",
    "InvalidKeyError",
    "KeyCondition",
    "KeyValueBackend",
    "StoreAdapter",
    "StoreLimits",
    "TableSchema",
    "build_feed_tables",
    "build_store",
    "chunked",
    "feed_tables_from_settings",
    "gather_bounded",
]
