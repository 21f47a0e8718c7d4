"""Course structure reader.

Progress tracking never mutates course content. It reads the snapshot the
content system published last; ``publish`` is the hook that system calls.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

import structlog

from .models import CourseStructure


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class CourseStructureReader(Protocol):
    """Read-only access to course structure snapshots."""

    async def get_course(self, course_id: UUID) -> CourseStructure | None: ...


class CassandraCourseReader:
    """Course snapshots stored as JSON in Cassandra."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_snapshot = self.session.prepare(f"""
            SELECT snapshot FROM {self.keyspace}.course_structures
            WHERE course_id = ?
        """)

        self._upsert_snapshot = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_structures
            (course_id, title, snapshot, published_at)
            VALUES (?, ?, ?, ?)
        """)

    async def get_course(self, course_id: UUID) -> CourseStructure | None:
        """Get the latest snapshot for a course, or None if unknown."""
        result = await self.session.aexecute(self._get_snapshot, [course_id])
        row = result.one()
        if not row or not row.snapshot:
            return None
        return CourseStructure.model_validate_json(row.snapshot)

    async def publish(self, structure: CourseStructure) -> None:
        """Store a new snapshot, replacing the previous one."""
        await self.session.aexecute(
            self._upsert_snapshot,
            [
                structure.course_id,
                structure.title,
                structure.model_dump_json(),
                datetime.now(UTC),
            ],
        )
        logger.info(
            "course_structure_published",
            course_id=str(structure.course_id),
            modules=structure.total_modules,
        )
