"""Cassandra persistence for progress records and enrollment summaries.

Progress records are one JSON document per (learner, course). Writes use
lightweight transactions:
- creation is ``INSERT ... IF NOT EXISTS`` so concurrent first accesses
  converge on one record
- updates are ``UPDATE ... IF version = ?`` so a stale writer fails with
  ``ConcurrentUpdateError`` instead of overwriting newer state
"""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

import orjson
import structlog

from .exceptions import ConcurrentUpdateError
from .models import EnrollmentSummary, ProgressRecord


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class ProgressStore(Protocol):
    """Progress record persistence."""

    async def get(self, learner_id: UUID, course_id: UUID) -> ProgressRecord | None: ...

    async def create(self, progress: ProgressRecord) -> bool: ...

    async def save(self, progress: ProgressRecord) -> None: ...


class EnrollmentStore(Protocol):
    """Enrollment summary persistence."""

    async def get(
        self, learner_id: UUID, course_id: UUID
    ) -> EnrollmentSummary | None: ...

    async def save(self, summary: EnrollmentSummary) -> None: ...

    async def list_for_learner(self, learner_id: UUID) -> list[EnrollmentSummary]: ...


# ==============================================================================
# Progress Records
# ==============================================================================


class CassandraProgressStore:
    """Progress records with optimistic concurrency."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_record = self.session.prepare(f"""
            SELECT version, document FROM {self.keyspace}.progress_records
            WHERE learner_id = ? AND course_id = ?
        """)

        self._insert_record = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress_records
            (learner_id, course_id, version, state, overall_progress, document,
             updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_record = self.session.prepare(f"""
            UPDATE {self.keyspace}.progress_records
            SET version = ?, state = ?, overall_progress = ?, document = ?,
                updated_at = ?
            WHERE learner_id = ? AND course_id = ?
            IF version = ?
        """)

    @staticmethod
    def _encode(progress: ProgressRecord) -> str:
        return orjson.dumps(progress.to_dict()).decode()

    async def get(self, learner_id: UUID, course_id: UUID) -> ProgressRecord | None:
        """Get progress record by learner and course."""
        result = await self.session.aexecute(self._get_record, [learner_id, course_id])
        row = result.one()
        if not row or not row.document:
            return None
        progress = ProgressRecord.from_dict(orjson.loads(row.document))
        progress.version = row.version
        return progress

    async def create(self, progress: ProgressRecord) -> bool:
        """Insert a new record at version 1.

        Returns:
            False if a record already exists for the pair
        """
        progress.version = 1
        result = await self.session.aexecute(
            self._insert_record,
            [
                progress.learner_id,
                progress.course_id,
                progress.version,
                progress.state,
                progress.overall_progress,
                self._encode(progress),
                progress.last_accessed_at or progress.enrolled_at,
            ],
        )
        if not result.was_applied:
            progress.version = 0
            return False

        logger.info(
            "progress_record_created",
            learner_id=str(progress.learner_id),
            course_id=str(progress.course_id),
        )
        return True

    async def save(self, progress: ProgressRecord) -> None:
        """Persist a loaded record, bumping its version.

        Raises:
            ConcurrentUpdateError: If the stored version moved since load
        """
        expected = progress.version
        progress.version = expected + 1
        result = await self.session.aexecute(
            self._update_record,
            [
                progress.version,
                progress.state,
                progress.overall_progress,
                self._encode(progress),
                progress.last_accessed_at or progress.enrolled_at,
                progress.learner_id,
                progress.course_id,
                expected,
            ],
        )
        if not result.was_applied:
            progress.version = expected
            logger.warning(
                "progress_version_conflict",
                learner_id=str(progress.learner_id),
                course_id=str(progress.course_id),
                expected_version=expected,
            )
            raise ConcurrentUpdateError


# ==============================================================================
# Enrollment Summaries
# ==============================================================================


class CassandraEnrollmentStore:
    """Enrollment summaries, dual-written to the by-learner lookup table."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE course_id = ? AND learner_id = ?
        """)

        self._upsert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (course_id, learner_id, status, enrolled_at, completed_at, dropped_at,
             completion_percentage, is_completed, last_accessed_at,
             current_module_index, current_lecture_index)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Enrollments by learner (lookup)
        self._get_learner_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments_by_learner
            WHERE learner_id = ?
        """)

        self._upsert_enrollment_by_learner = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_learner
            (learner_id, enrolled_at, course_id, status, completion_percentage,
             is_completed, last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

    async def get(self, learner_id: UUID, course_id: UUID) -> EnrollmentSummary | None:
        """Get enrollment summary by learner and course."""
        result = await self.session.aexecute(
            self._get_enrollment, [course_id, learner_id]
        )
        row = result.one()
        return EnrollmentSummary.from_row(row) if row else None

    async def save(self, summary: EnrollmentSummary) -> None:
        """Write summary to both tables (dual-write)."""
        await self.session.aexecute(
            self._upsert_enrollment,
            [
                summary.course_id,
                summary.learner_id,
                summary.status,
                summary.enrolled_at,
                summary.completed_at,
                summary.dropped_at,
                summary.completion_percentage,
                summary.is_completed,
                summary.last_accessed_at,
                summary.current_module_index,
                summary.current_lecture_index,
            ],
        )

        await self.session.aexecute(
            self._upsert_enrollment_by_learner,
            [
                summary.learner_id,
                summary.enrolled_at,
                summary.course_id,
                summary.status,
                summary.completion_percentage,
                summary.is_completed,
                summary.last_accessed_at,
            ],
        )

    async def list_for_learner(self, learner_id: UUID) -> list[EnrollmentSummary]:
        """Get all enrollment summaries of a learner, newest first."""
        rows = await self.session.aexecute(self._get_learner_enrollments, [learner_id])
        # Lookup rows lack dates and cursor; read the main row per course
        summaries = []
        for row in rows:
            summary = await self.get(learner_id, row.course_id)
            if summary:
                summaries.append(summary)
        return summaries
