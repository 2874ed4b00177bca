"""Store adapter: the only way components talk to the key-value store.

Enforces the store's per-call limits (100 keys per batch get, 25 items
per batch write), fans chunk calls out concurrently and merges the
results. Rejected writes are returned to the caller, never retried here.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

from transit_search.logging import get_logger
from transit_search.store.schema import FeedTables, KeyCondition, StoreLimits

if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable, Mapping, Sequence

    from transit_search.config import Settings
    from transit_search.store.base import Item, KeyValueBackend
    from transit_search.store.schema import Key

logger = get_logger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    """Split `items` into consecutive slices of at most `size`."""
    if size < 1:
        msg = f"Chunk size must be positive, got {size}"
        raise ValueError(msg)
    return [items[start : start + size] for start in range(0, len(items), size)]


async def gather_bounded(aws: Iterable[Awaitable[T]], limit: int | None) -> list[T]:
    """`asyncio.gather` with at most `limit` awaitables running at once."""
    if limit is None:
        return list(await asyncio.gather(*aws))

    semaphore = asyncio.Semaphore(limit)

    async def _run(aw: Awaitable[T]) -> T:
        async with semaphore:
            return await aw

    return list(await asyncio.gather(*(_run(aw) for aw in aws)))


class StoreAdapter:
    """Uniform get / batch_get / batch_write / query access to the store."""

    def __init__(
        self,
        backend: KeyValueBackend,
        tables: FeedTables,
        limits: StoreLimits | None = None,
    ) -> None:
        self.backend = backend
        self.tables = tables
        self.limits = limits or StoreLimits()

    @classmethod
    def from_settings(
        cls, backend: KeyValueBackend, tables: FeedTables, settings: Settings
    ) -> StoreAdapter:
        limits = StoreLimits(
            batch_get_max_keys=settings.store_batch_get_max_keys,
            batch_write_max_items=settings.store_batch_write_max_items,
            write_max_concurrency=settings.store_write_max_concurrency,
            read_max_concurrency=settings.store_read_max_concurrency,
        )
        return cls(backend, tables, limits)

    async def get(self, table: str, key: Mapping[str, Any] | Key | str) -> Item | None:
        """Point lookup. Returns None when no item has this key."""
        schema = self.tables[table]
        return await self.backend.get_item(schema, schema.normalize_key(key))

    async def batch_get(
        self, table: str, keys: Iterable[Mapping[str, Any] | Key | str]
    ) -> dict[Key, Item]:
        """Fetch many keys; keys with no item are absent from the result."""
        schema = self.tables[table]
        unique_keys = list(dict.fromkeys(schema.normalize_key(key) for key in keys))
        if not unique_keys:
            return {}

        chunks = chunked(unique_keys, self.limits.batch_get_max_keys)
        logger.debug(
            "Batch get",
            table=table,
            key_count=len(unique_keys),
            chunk_count=len(chunks),
        )
        responses = await gather_bounded(
            (self.backend.batch_get_items(schema, chunk) for chunk in chunks),
            self.limits.read_max_concurrency,
        )

        found: dict[Key, Item] = {}
        for items in responses:
            for item in items:
                found[schema.key_of(item)] = item
        return found

    async def batch_write(self, table: str, records: Sequence[Item]) -> list[Item]:
        """Write records in chunks; return the records the store rejected.

        Records sharing a key are collapsed to the last one, so no chunk
        ever carries the same key twice.
        """
        schema = self.tables[table]
        if not records:
            return []

        latest: dict[Key, Item] = {}
        for record in records:
            latest[schema.key_of(record)] = record
        if len(latest) < len(records):
            logger.warning(
                "Collapsed records sharing a key",
                table=table,
                duplicates=len(records) - len(latest),
            )
            records = list(latest.values())

        chunks = chunked(records, self.limits.batch_write_max_items)
        logger.debug(
            "Batch write",
            table=table,
            record_count=len(records),
            chunk_count=len(chunks),
            max_concurrency=self.limits.write_max_concurrency,
        )
        responses = await gather_bounded(
            (self.backend.batch_write_items(schema, chunk) for chunk in chunks),
            self.limits.write_max_concurrency,
        )

        unprocessed = [item for rejected in responses for item in rejected]
        if unprocessed:
            logger.debug(
                "Batch write left unprocessed records", table=table, count=len(unprocessed)
            )
        return unprocessed

    async def query(
        self,
        table: str,
        condition: KeyCondition | str,
        index_name: str | None = None,
        projection: Sequence[str] | None = None,
    ) -> list[Item]:
        """Items of one partition (of the table or of `index_name`), in sort-key order."""
        schema = self.tables[table]
        if index_name is not None:
            schema.index(index_name)
        if not isinstance(condition, KeyCondition):
            condition = KeyCondition(partition_value=condition)

        items = await self.backend.query_items(schema, condition, index_name)
        if projection is None:
            return items
        return [{field: item[field] for field in projection if field in item} for item in items]

    async def scan(self, table: str) -> list[Item]:
        return await self.backend.scan_items(self.tables[table])

    async def ping(self) -> bool:
        return await self.backend.ping()

    async def close(self) -> None:
        await self.backend.close()
