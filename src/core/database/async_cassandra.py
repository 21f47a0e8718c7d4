"""Async Cassandra connection and schema using cassandra-asyncio-driver.

Provides:
- One cluster/session per process with ``session.aexecute()``
- A default execution profile whose serial consistency backs the
  lightweight transactions used by progress saves, certificate claims and
  reward deduplication
- Keyspace and table creation for every package that owns tables
"""

import structlog
from cassandra import ConsistencyLevel
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, ExecutionProfile
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.certificates.models import CERTIFICATES_TABLES_CQL
from src.config.settings import Settings, get_settings
from src.courses.models import COURSES_TABLES_CQL
from src.gamification.models import GAMIFICATION_TABLES_CQL
from src.progress.models import PROGRESS_TABLES_CQL


logger = structlog.get_logger(__name__)


TABLE_GROUPS: dict[str, list[str]] = {
    "courses": COURSES_TABLES_CQL,
    "progress": PROGRESS_TABLES_CQL,
    "certificates": CERTIFICATES_TABLES_CQL,
    "gamification": GAMIFICATION_TABLES_CQL,
}


def build_execution_profile(settings: Settings) -> ExecutionProfile:
    """Default profile: token-aware routing to the local datacenter."""
    return ExecutionProfile(
        load_balancing_policy=TokenAwarePolicy(
            DCAwareRoundRobinPolicy(local_dc=settings.cassandra_datacenter)
        ),
        consistency_level=getattr(ConsistencyLevel, settings.cassandra_consistency),
        serial_consistency_level=getattr(
            ConsistencyLevel, settings.cassandra_serial_consistency
        ),
        request_timeout=settings.cassandra_request_timeout,
    )


def replication_options(settings: Settings) -> str:
    """Replication map for ``CREATE KEYSPACE``."""
    if settings.is_production:
        return (
            "{'class': 'NetworkTopologyStrategy', "
            f"'{settings.cassandra_datacenter}': {settings.cassandra_replication_factor}}}"
        )
    return (
        "{'class': 'SimpleStrategy', "
        f"'replication_factor': {settings.cassandra_replication_factor}}}"
    )


class AsyncCassandraConnection:
    """Process-wide Cassandra cluster and session."""

    _cluster: Cluster | None = None
    _session = None  # Session type from cassandra_asyncio

    @classmethod
    def connect(cls):
        """Connect to the cluster (blocking) and return the session.

        Raises:
            ConnectionError: If connection fails
        """
        if cls._session is not None:
            return cls._session

        settings = get_settings()

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            execution_profiles={EXEC_PROFILE_DEFAULT: build_execution_profile(settings)},
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            cls._session = cls._cluster.connect()
        except Exception as e:
            logger.error("async_cassandra_connection_failed", error=str(e))
            cls._cluster.shutdown()
            cls._cluster = None
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        logger.info(
            "async_cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
            datacenter=settings.cassandra_datacenter,
            consistency=settings.cassandra_consistency,
            serial_consistency=settings.cassandra_serial_consistency,
        )
        return cls._session

    @classmethod
    def disconnect(cls) -> None:
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("async_cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        """Check if connection is active."""
        return cls._session is not None and not cls._session.is_shutdown


async def create_schema(session, settings: Settings) -> None:
    """Create the keyspace and every table group if missing."""
    keyspace = settings.cassandra_keyspace
    await session.aexecute(
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {replication_options(settings)} "
        "AND durable_writes = true"
    )
    logger.info("async_keyspace_created", keyspace=keyspace)

    for group, statements in TABLE_GROUPS.items():
        for cql_template in statements:
            await session.aexecute(cql_template.format(keyspace=keyspace))
        logger.info("async_tables_created", group=group, keyspace=keyspace)


async def init_async_cassandra():
    """Connect, create the schema and select the keyspace.

    Returns:
        Cassandra session with aexecute() support
    """
    settings = get_settings()
    session = AsyncCassandraConnection.connect()
    await create_schema(session, settings)
    session.set_keyspace(settings.cassandra_keyspace)

    logger.info("async_cassandra_initialized", keyspace=settings.cassandra_keyspace)
    return session


async def shutdown_async_cassandra() -> None:
    """Shutdown async Cassandra connection."""
    AsyncCassandraConnection.disconnect()
