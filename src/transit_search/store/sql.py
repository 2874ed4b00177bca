"""PostgreSQL key-value backend built on SQLAlchemy async.

Only key-scoped statements are issued: point selects, key-list selects,
per-partition range selects and upserts. Each batch write commits on its
own so a failure affects one chunk only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import OperationalError

from transit_search.database import (
    check_database_connection,
    create_session_factory,
    session_scope,
)
from transit_search.logging import get_logger
from transit_search.models.kv import build_kv_metadata, index_column_prefix
from transit_search.store.base import Item, KeyValueBackend

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncEngine

    from transit_search.store.schema import FeedTables, Key, KeyCondition, TableSchema

logger = get_logger(__name__)


def _key_str(value: Any) -> str:
    return "" if value is None else str(value)


class SqlBackend(KeyValueBackend):
    """Stores each feed table as a (pk, sk, index keys, JSON item) table."""

    def __init__(self, engine: AsyncEngine, tables: FeedTables) -> None:
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self.metadata, self._tables = build_kv_metadata(tables)

    async def create_tables(self) -> None:
        """Create missing tables (development; production uses Alembic)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(self.metadata.create_all)

    async def get_item(self, table: TableSchema, key: Key) -> Item | None:
        sql_table = self._tables[table.name]
        pk, sk = self._split_key(table, key)
        stmt = sa.select(sql_table.c.item).where(sql_table.c.pk == pk, sql_table.c.sk == sk)
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            row = result.first()
        return dict(row.item) if row is not None else None

    async def batch_get_items(self, table: TableSchema, keys: Sequence[Key]) -> list[Item]:
        if not keys:
            return []
        sql_table = self._tables[table.name]
        pairs = [self._split_key(table, key) for key in keys]
        stmt = sa.select(sql_table.c.item).where(
            sa.tuple_(sql_table.c.pk, sql_table.c.sk).in_(pairs)
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            return [dict(row.item) for row in result]

    async def batch_write_items(self, table: TableSchema, items: Sequence[Item]) -> list[Item]:
        if not items:
            return []
        sql_table = self._tables[table.name]
        rows = [self._to_row(table, item) for item in items]

        stmt = pg_insert(sql_table).values(rows)
        update_cols = {
            name: stmt.excluded[name] for name in rows[0] if name not in ("pk", "sk")
        }
        update_cols["written_at"] = sa.func.now()
        stmt = stmt.on_conflict_do_update(index_elements=["pk", "sk"], set_=update_cols)

        async with session_scope(self._session_factory) as session:
            try:
                await session.execute(stmt)
                await session.commit()
            except OperationalError as exc:
                # Lock timeouts and connection exhaustion: the chunk is
                # handed back to the caller like a throttled write.
                await session.rollback()
                logger.warning(
                    "Batch write rejected by database",
                    table=table.name,
                    item_count=len(items),
                    error=str(exc.orig),
                )
                return list(items)
        return []

    async def query_items(
        self,
        table: TableSchema,
        condition: KeyCondition,
        index_name: str | None = None,
    ) -> list[Item]:
        sql_table = self._tables[table.name]
        if index_name is None:
            pk_col, sk_col = sql_table.c.pk, sql_table.c.sk
        else:
            prefix = index_column_prefix(table.index(index_name))
            pk_col, sk_col = sql_table.c[f"{prefix}_pk"], sql_table.c[f"{prefix}_sk"]

        clauses = [pk_col == _key_str(condition.partition_value)]
        sort_clause = _sort_clause(sk_col, condition)
        if sort_clause is not None:
            clauses.append(sort_clause)

        stmt = sa.select(sql_table.c.item).where(*clauses).order_by(sk_col)
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            return [dict(row.item) for row in result]

    async def scan_items(self, table: TableSchema) -> list[Item]:
        sql_table = self._tables[table.name]
        stmt = sa.select(sql_table.c.item).order_by(sql_table.c.pk, sql_table.c.sk)
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            return [dict(row.item) for row in result]

    async def ping(self) -> bool:
        return await check_database_connection(self._engine)

    async def close(self) -> None:
        await self._engine.dispose()

    @staticmethod
    def _split_key(table: TableSchema, key: Key) -> tuple[str, str]:
        pk = _key_str(key[0])
        sk = _key_str(key[1]) if table.sort_key is not None else ""
        return pk, sk

    @staticmethod
    def _to_row(table: TableSchema, item: Item) -> dict[str, Any]:
        pk, sk = SqlBackend._split_key(table, table.key_of(item))
        row: dict[str, Any] = {"pk": pk, "sk": sk, "item": item}
        for index in table.indexes:
            prefix = index_column_prefix(index)
            row[f"{prefix}_pk"] = _key_str(item.get(index.partition_key))
            row[f"{prefix}_sk"] = _key_str(item.get(index.sort_key)) if index.sort_key else ""
        return row


def _sort_clause(column: sa.ColumnElement[Any], condition: KeyCondition) -> Any:
    op = condition.sort_op
    if op is None:
        return None
    value = _key_str(condition.sort_value)
    if op == "eq":
        return column == value
    if op == "lt":
        return column < value
    if op == "lte":
        return column <= value
    if op == "gt":
        return column > value
    if op == "gte":
        return column >= value
    if op == "between":
        return column.between(value, _key_str(condition.sort_value_to))
    if op == "begins_with":
        return column.startswith(value, autoescape=True)
    msg = f"Unsupported sort condition: {op!r}"
    raise ValueError(msg)
