"""Tests for Cassandra session configuration and schema bootstrap."""

from unittest.mock import AsyncMock, Mock

from cassandra import ConsistencyLevel
from cassandra.policies import TokenAwarePolicy

from src.config.settings import Settings
from src.core.database import TABLE_GROUPS, create_schema
from src.core.database.async_cassandra import (
    build_execution_profile,
    replication_options,
)


class TestExecutionProfile:
    def test_defaults(self) -> None:
        profile = build_execution_profile(Settings())

        assert profile.consistency_level == ConsistencyLevel.LOCAL_QUORUM
        assert profile.serial_consistency_level == ConsistencyLevel.LOCAL_SERIAL
        assert profile.request_timeout == 10.0
        assert isinstance(profile.load_balancing_policy, TokenAwarePolicy)

    def test_configured_levels(self) -> None:
        settings = Settings(
            cassandra_consistency="QUORUM",
            cassandra_serial_consistency="SERIAL",
            cassandra_request_timeout=2.5,
        )
        profile = build_execution_profile(settings)

        assert profile.consistency_level == ConsistencyLevel.QUORUM
        assert profile.serial_consistency_level == ConsistencyLevel.SERIAL
        assert profile.request_timeout == 2.5


class TestReplication:
    def test_development_uses_simple_strategy(self) -> None:
        options = replication_options(
            Settings(environment="development", cassandra_replication_factor=1)
        )
        assert options == "{'class': 'SimpleStrategy', 'replication_factor': 1}"

    def test_production_uses_datacenter(self) -> None:
        options = replication_options(
            Settings(
                environment="production",
                cassandra_datacenter="sa-east",
                cassandra_replication_factor=3,
            )
        )
        assert options == "{'class': 'NetworkTopologyStrategy', 'sa-east': 3}"


async def test_create_schema_formats_keyspace() -> None:
    session = Mock()
    session.aexecute = AsyncMock()
    settings = Settings(cassandra_keyspace="ks_test", environment="development")

    await create_schema(session, settings)

    statements = [c.args[0] for c in session.aexecute.call_args_list]
    assert statements[0].startswith("CREATE KEYSPACE IF NOT EXISTS ks_test")
    assert len(statements) == 1 + sum(len(group) for group in TABLE_GROUPS.values())
    assert all("{keyspace}" not in s for s in statements)
    assert any("ks_test.progress" in s for s in statements)
