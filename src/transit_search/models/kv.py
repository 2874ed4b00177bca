"""Key-value table layout for the SQL store backend.

Every feed table gets the same shape: a (pk, sk) primary key, one
(pk, sk) column pair per secondary index, and the item itself as JSON.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import sqlalchemy as sa

if TYPE_CHECKING:
    from transit_search.store.schema import FeedTables, IndexSchema, TableSchema

KEY_LENGTH = 255


def index_column_prefix(index: IndexSchema) -> str:
    """`ByStopId` -> `by_stop_id`."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", index.name).lower()


def build_kv_table(metadata: sa.MetaData, schema: TableSchema) -> sa.Table:
    columns: list[sa.Column] = [
        sa.Column("pk", sa.String(KEY_LENGTH), primary_key=True),
        # Tables without a sort key store "" so the primary key stays (pk, sk)
        sa.Column("sk", sa.String(KEY_LENGTH), primary_key=True, server_default=""),
    ]
    for index in schema.indexes:
        prefix = index_column_prefix(index)
        columns.append(sa.Column(f"{prefix}_pk", sa.String(KEY_LENGTH), nullable=False))
        columns.append(sa.Column(f"{prefix}_sk", sa.String(KEY_LENGTH), nullable=False))
    columns.append(sa.Column("item", sa.JSON, nullable=False))
    columns.append(
        sa.Column(
            "written_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        )
    )

    table = sa.Table(schema.physical_name, metadata, *columns)
    for index in schema.indexes:
        prefix = index_column_prefix(index)
        sa.Index(
            f"ix_{schema.physical_name}_{prefix}",
            table.c[f"{prefix}_pk"],
            table.c[f"{prefix}_sk"],
        )
    return table


def build_kv_metadata(tables: FeedTables) -> tuple[sa.MetaData, dict[str, sa.Table]]:
    """Build one SQLAlchemy table per feed table, keyed by logical name."""
    metadata = sa.MetaData()
    built = {schema.name: build_kv_table(metadata, schema) for schema in tables}
    return metadata, built
