"""Cassandra connection and schema."""

from src.core.database.async_cassandra import (
    TABLE_GROUPS,
    AsyncCassandraConnection,
    create_schema,
    init_async_cassandra,
    shutdown_async_cassandra,
)


__all__ = [
    "TABLE_GROUPS",
    "AsyncCassandraConnection",
    "create_schema",
    "init_async_cassandra",
    "shutdown_async_cassandra",
]
