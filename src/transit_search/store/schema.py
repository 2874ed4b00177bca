"""Key schemas for the seven feed tables and key-condition helpers."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from transit_search.config import Settings

AGENCY = "agency"
CALENDAR = "calendar"
CALENDAR_DATES = "calendar_dates"
ROUTES = "routes"
STOPS = "stops"
STOP_TIMES = "stop_times"
TRIPS = "trips"

DEFAULT_STOP_INDEX = "ByStopId"

SortOp = Literal["eq", "lt", "lte", "gt", "gte", "between", "begins_with"]

Key = tuple[Any, ...]


class InvalidKeyError(ValueError):
    """Raised when a key does not match the table's key schema."""


@dataclass(frozen=True)
class IndexSchema:
    """Secondary index: an alternate (partition, sort) key over the same items."""

    name: str
    partition_key: str
    sort_key: str | None = None


@dataclass(frozen=True)
class TableSchema:
    """Key layout of one table.

    `name` is the logical name callers use; `physical_name` is what the
    backend stores it under.
    """

    name: str
    partition_key: str
    sort_key: str | None = None
    indexes: tuple[IndexSchema, ...] = ()
    physical_name: str = ""

    def __post_init__(self) -> None:
        if not self.physical_name:
            object.__setattr__(self, "physical_name", self.name)

    @property
    def key_attributes(self) -> tuple[str, ...]:
        if self.sort_key is None:
            return (self.partition_key,)
        return (self.partition_key, self.sort_key)

    def key_of(self, item: Mapping[str, Any]) -> Key:
        """Extract the primary key tuple from an item or a key mapping."""
        try:
            key = tuple(item[attr] for attr in self.key_attributes)
        except KeyError as exc:
            msg = f"{self.name}: key attribute {exc.args[0]!r} missing from {dict(item)!r}"
            raise InvalidKeyError(msg) from None
        if any(value is None or value == "" for value in key):
            msg = f"{self.name}: empty key value in {key!r}"
            raise InvalidKeyError(msg)
        return key

    def normalize_key(self, key: Mapping[str, Any] | Key | str) -> Key:
        """Accept a key mapping, a key tuple, or a bare partition value."""
        if isinstance(key, Mapping):
            return self.key_of(key)
        if isinstance(key, tuple):
            if len(key) != len(self.key_attributes):
                msg = f"{self.name}: expected key {self.key_attributes}, got {key!r}"
                raise InvalidKeyError(msg)
            return key
        if self.sort_key is not None:
            msg = f"{self.name}: composite key required, got {key!r}"
            raise InvalidKeyError(msg)
        return (key,)

    def index(self, name: str) -> IndexSchema:
        for index in self.indexes:
            if index.name == name:
                return index
        msg = f"{self.name}: unknown index {name!r}"
        raise InvalidKeyError(msg)


@dataclass(frozen=True)
class KeyCondition:
    """Partition-key equality plus an optional sort-key condition."""

    partition_value: Any
    sort_op: SortOp | None = None
    sort_value: Any = None
    sort_value_to: Any = None

    def matches_sort(self, value: Any) -> bool:
        op = self.sort_op
        if op is None:
            return True
        if value is None:
            return False
        if op == "eq":
            return value == self.sort_value
        if op == "lt":
            return value < self.sort_value
        if op == "lte":
            return value <= self.sort_value
        if op == "gt":
            return value > self.sort_value
        if op == "gte":
            return value >= self.sort_value
        if op == "between":
            return self.sort_value <= value <= self.sort_value_to
        if op == "begins_with":
            return str(value).startswith(str(self.sort_value))
        msg = f"Unsupported sort condition: {op!r}"
        raise InvalidKeyError(msg)


@dataclass(frozen=True)
class StoreLimits:
    """Per-call constraints imposed by the store."""

    batch_get_max_keys: int = 100
    batch_write_max_items: int = 25
    write_max_concurrency: int = 40
    read_max_concurrency: int | None = 40


@dataclass
class FeedTables:
    """The seven table schemas, keyed by logical name."""

    tables: dict[str, TableSchema] = field(default_factory=dict)

    def __getitem__(self, name: str) -> TableSchema:
        try:
            return self.tables[name]
        except KeyError:
            msg = f"Unknown table: {name!r}"
            raise InvalidKeyError(msg) from None

    def __iter__(self) -> Iterator[TableSchema]:
        return iter(self.tables.values())

    def __len__(self) -> int:
        return len(self.tables)


def build_feed_tables(
    table_names: Mapping[str, str] | None = None,
    stop_index: str = DEFAULT_STOP_INDEX,
) -> FeedTables:
    """Build the feed table schemas, optionally renaming the physical tables."""
    names = dict(table_names or {})

    def physical(name: str) -> str:
        return names.get(name, name)

    schemas = [
        TableSchema(AGENCY, "agency_id", physical_name=physical(AGENCY)),
        TableSchema(CALENDAR, "service_id", physical_name=physical(CALENDAR)),
        TableSchema(
            CALENDAR_DATES, "service_id", "date", physical_name=physical(CALENDAR_DATES)
        ),
        TableSchema(ROUTES, "route_id", physical_name=physical(ROUTES)),
        TableSchema(STOPS, "stop_id", physical_name=physical(STOPS)),
        TableSchema(
            STOP_TIMES,
            "trip_id",
            "stop_id",
            indexes=(IndexSchema(stop_index, "stop_id", "trip_id"),),
            physical_name=physical(STOP_TIMES),
        ),
        TableSchema(TRIPS, "trip_id", physical_name=physical(TRIPS)),
    ]
    return FeedTables({schema.name: schema for schema in schemas})


def feed_tables_from_settings(settings: Settings) -> FeedTables:
    return build_feed_tables(settings.table_names, settings.stop_times_stop_index)
