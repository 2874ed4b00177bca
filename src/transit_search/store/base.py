"""Backend contract for the partitioned key-value store.

A backend implements single store calls only. Chunking, concurrency caps
and key normalization live in `StoreAdapter`; a backend may assume every
call it receives is already within the store's per-call limits.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from transit_search.store.schema import Key, KeyCondition, TableSchema

Item = dict[str, Any]


class KeyValueBackend(ABC):
    """One partitioned key-value store."""

    @abstractmethod
    async def get_item(self, table: TableSchema, key: Key) -> Item | None:
        """Return the item stored under `key`, or None."""

    @abstractmethod
    async def batch_get_items(self, table: TableSchema, keys: Sequence[Key]) -> list[Item]:
        """Return the items found for `keys`; missing keys are skipped."""

    @abstractmethod
    async def batch_write_items(self, table: TableSchema, items: Sequence[Item]) -> list[Item]:
        """Put `items`, replacing any item with the same key.

        Returns the items the store rejected (e.g. throttled), unmodified.
        """

    @abstractmethod
    async def query_items(
        self,
        table: TableSchema,
        condition: KeyCondition,
        index_name: str | None = None,
    ) -> list[Item]:
        """Return items in one partition, ordered by the sort key."""

    @abstractmethod
    async def scan_items(self, table: TableSchema) -> list[Item]:
        """Return every item in the table."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
