"""Cassandra persistence for rewards."""

from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import Badge, RewardEvent


if TYPE_CHECKING:
    from cassandra.cluster import Session


class RewardStore(Protocol):
    """Reward persistence; event and badge inserts are idempotent."""

    async def record_event(self, event: RewardEvent, applied_at: datetime) -> bool: ...

    async def add_xp(self, learner_id: UUID, delta: int) -> None: ...

    async def get_xp(self, learner_id: UUID) -> int: ...

    async def grant_badge(
        self, learner_id: UUID, badge: str, course_id: UUID | None, awarded_at: datetime
    ) -> bool: ...

    async def list_badges(self, learner_id: UUID) -> list[Badge]: ...

    async def record_completion(
        self, learner_id: UUID, course_id: UUID, completed_at: datetime
    ) -> bool: ...

    async def count_completions(self, learner_id: UUID) -> int: ...


class CassandraRewardStore:
    """Rewards in Cassandra (XP is a counter column)."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert_event = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.reward_events
            (learner_id, event_id, event_type, course_id, xp, badge, applied_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._add_xp = self.session.prepare(f"""
            UPDATE {self.keyspace}.learner_xp
            SET xp = xp + ?
            WHERE learner_id = ?
        """)

        self._get_xp = self.session.prepare(f"""
            SELECT xp FROM {self.keyspace}.learner_xp
            WHERE learner_id = ?
        """)

        self._insert_badge = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.learner_badges
            (learner_id, badge, course_id, awarded_at)
            VALUES (?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._list_badges = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.learner_badges
            WHERE learner_id = ?
        """)

        self._insert_completion = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.learner_course_completions
            (learner_id, course_id, completed_at)
            VALUES (?, ?, ?)
            IF NOT EXISTS
        """)

        self._count_completions = self.session.prepare(f"""
            SELECT COUNT(*) AS total FROM {self.keyspace}.learner_course_completions
            WHERE learner_id = ?
        """)

    async def record_event(self, event: RewardEvent, applied_at: datetime) -> bool:
        """Record an event. Returns False if it was already applied."""
        result = await self.session.aexecute(
            self._insert_event,
            [
                event.learner_id,
                event.event_id,
                event.event_type.value,
                event.course_id,
                event.xp,
                event.badge,
                applied_at,
            ],
        )
        return result.was_applied

    async def add_xp(self, learner_id: UUID, delta: int) -> None:
        await self.session.aexecute(self._add_xp, [delta, learner_id])

    async def get_xp(self, learner_id: UUID) -> int:
        result = await self.session.aexecute(self._get_xp, [learner_id])
        row = result.one()
        return row.xp if row and row.xp else 0

    async def grant_badge(
        self, learner_id: UUID, badge: str, course_id: UUID | None, awarded_at: datetime
    ) -> bool:
        """Grant a named badge. Returns False if already held."""
        result = await self.session.aexecute(
            self._insert_badge, [learner_id, badge, course_id, awarded_at]
        )
        return result.was_applied

    async def list_badges(self, learner_id: UUID) -> list[Badge]:
        rows = await self.session.aexecute(self._list_badges, [learner_id])
        return [Badge.from_row(row) for row in rows]

    async def record_completion(
        self, learner_id: UUID, course_id: UUID, completed_at: datetime
    ) -> bool:
        """Record a completed course. Returns False if already recorded."""
        result = await self.session.aexecute(
            self._insert_completion, [learner_id, course_id, completed_at]
        )
        return result.was_applied

    async def count_completions(self, learner_id: UUID) -> int:
        result = await self.session.aexecute(self._count_completions, [learner_id])
        row = result.one()
        return row.total if row else 0
