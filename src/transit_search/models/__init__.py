"""SQLAlchemy table definitions for the SQL store backend."""

from transit_search.models.kv import build_kv_metadata, build_kv_table, index_column_prefix

__all__ = [
    "build_kv_metadata",
    "build_kv_table",
    "index_column_prefix",
]
