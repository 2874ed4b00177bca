"""In-process key-value backend for tests and local development."""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from transit_search.store.base import Item, KeyValueBackend

if TYPE_CHECKING:
    from collections.abc import Sequence

    from transit_search.store.schema import Key, KeyCondition, TableSchema

# Receives (table name, chunk) and returns the items to reject
RejectHook = Callable[[str, list[Item]], list[Item]]


@dataclass(frozen=True)
class StoreCall:
    """One call received by the backend, recorded for inspection."""

    operation: str
    table: str
    size: int


class InMemoryBackend(KeyValueBackend):
    """Dict-backed store with per-call recording and optional rejection.

    Items are deep-copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(self, reject: RejectHook | None = None, latency_sec: float = 0.0) -> None:
        self._tables: dict[str, dict[Key, Item]] = defaultdict(dict)
        self._reject = reject
        self._latency_sec = latency_sec
        self.calls: list[StoreCall] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def calls_for(self, operation: str, table: str | None = None) -> list[StoreCall]:
        return [
            call
            for call in self.calls
            if call.operation == operation and (table is None or call.table == table)
        ]

    def reset_calls(self) -> None:
        self.calls.clear()
        self.max_in_flight = 0

    def items(self, table: TableSchema) -> list[Item]:
        return [copy.deepcopy(item) for item in self._tables[table.physical_name].values()]

    async def get_item(self, table: TableSchema, key: Key) -> Item | None:
        async with self._call("get", table, 1):
            item = self._tables[table.physical_name].get(key)
            return copy.deepcopy(item) if item is not None else None

    async def batch_get_items(self, table: TableSchema, keys: Sequence[Key]) -> list[Item]:
        async with self._call("batch_get", table, len(keys)):
            stored = self._tables[table.physical_name]
            return [copy.deepcopy(stored[key]) for key in keys if key in stored]

    async def batch_write_items(self, table: TableSchema, items: Sequence[Item]) -> list[Item]:
        async with self._call("batch_write", table, len(items)):
            rejected = self._reject(table.name, list(items)) if self._reject else []
            rejected_ids = {id(item) for item in rejected}
            stored = self._tables[table.physical_name]
            for item in items:
                if id(item) not in rejected_ids:
                    stored[table.key_of(item)] = copy.deepcopy(item)
            return rejected

    async def query_items(
        self,
        table: TableSchema,
        condition: KeyCondition,
        index_name: str | None = None,
    ) -> list[Item]:
        async with self._call("query", table, 1):
            if index_name is None:
                partition_key, sort_key = table.partition_key, table.sort_key
            else:
                index = table.index(index_name)
                partition_key, sort_key = index.partition_key, index.sort_key

            matches = [
                item
                for item in self._tables[table.physical_name].values()
                if item.get(partition_key) == condition.partition_value
                and (sort_key is None or condition.matches_sort(item.get(sort_key)))
            ]
            if sort_key is not None:
                matches.sort(key=lambda item: item[sort_key])
            return [copy.deepcopy(item) for item in matches]

    async def scan_items(self, table: TableSchema) -> list[Item]:
        async with self._call("scan", table, 0):
            return self.items(table)

    def _call(self, operation: str, table: TableSchema, size: int) -> _CallTracker:
        self.calls.append(StoreCall(operation, table.name, size))
        return _CallTracker(self)


class _CallTracker:
    """Counts concurrent calls and applies the simulated latency."""

    def __init__(self, backend: InMemoryBackend) -> None:
        self._backend = backend

    async def __aenter__(self) -> None:
        backend = self._backend
        backend.in_flight += 1
        backend.max_in_flight = max(backend.max_in_flight, backend.in_flight)
        # Yield even without latency so concurrent callers interleave
        await asyncio.sleep(backend._latency_sec)

    async def __aexit__(self, *args: object) -> None:
        self._backend.in_flight -= 1
