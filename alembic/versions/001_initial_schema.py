"""Key-value tables for the seven GTFS feed resources.

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

KEY_LENGTH = 255

TABLES = (
    "agency",
    "calendar",
    "calendar_dates",
    "routes",
    "stops",
    "stop_times",
    "trips",
)


def _key_columns() -> list[sa.Column]:
    return [
        sa.Column("pk", sa.String(KEY_LENGTH), nullable=False),
        sa.Column("sk", sa.String(KEY_LENGTH), nullable=False, server_default=""),
    ]


def _item_columns() -> list[sa.Column]:
    return [
        sa.Column("item", sa.JSON(), nullable=False),
        sa.Column(
            "written_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    for name in TABLES:
        if name == "stop_times":
            continue
        op.create_table(
            name,
            *_key_columns(),
            *_item_columns(),
            sa.PrimaryKeyConstraint("pk", "sk"),
        )

    # stop_times: (trip_id, stop_id), plus the ByStopId index (stop_id, trip_id)
    op.create_table(
        "stop_times",
        *_key_columns(),
        sa.Column("by_stop_id_pk", sa.String(KEY_LENGTH), nullable=False),
        sa.Column("by_stop_id_sk", sa.String(KEY_LENGTH), nullable=False),
        *_item_columns(),
        sa.PrimaryKeyConstraint("pk", "sk"),
    )
    op.create_index(
        "ix_stop_times_by_stop_id",
        "stop_times",
        ["by_stop_id_pk", "by_stop_id_sk"],
    )


def downgrade() -> None:
    op.drop_index("ix_stop_times_by_stop_id", table_name="stop_times")
    for name in reversed(TABLES):
        op.drop_table(name)
