"""Cassandra persistence for certificates.

Uniqueness claims are lightweight transactions (``IF NOT EXISTS``):
- ``certificates`` on the certificate id
- ``certificates_by_code`` on the verification code
- ``certificates_by_student`` on (student, course), the issuance commit point

Downloads are counted in the ``certificate_downloads`` COUNTER table so
concurrent downloads never overwrite each other.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

import structlog

from .models import Certificate


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class CertificateStore(Protocol):
    """Certificate persistence with storage-level uniqueness."""

    async def get(self, certificate_id: str) -> Certificate | None: ...

    async def get_by_code(self, verification_code: str) -> Certificate | None: ...

    async def get_by_student(
        self, student_id: UUID, course_id: UUID
    ) -> Certificate | None: ...

    async def list_for_student(self, student_id: UUID) -> list[Certificate]: ...

    async def insert(self, certificate: Certificate) -> bool: ...

    async def claim_code(self, verification_code: str, certificate_id: str) -> bool: ...

    async def claim_student(
        self, student_id: UUID, course_id: UUID, certificate_id: str, issued_at: datetime
    ) -> str | None: ...

    async def release_code(self, verification_code: str, certificate_id: str) -> None: ...

    async def discard(self, certificate: Certificate) -> None: ...

    async def record_download(
        self, certificate_id: str, downloaded_at: datetime
    ) -> int: ...


class CassandraCertificateStore:
    """Certificates in Cassandra."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_certificate = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.certificates
            WHERE certificate_id = ?
        """)

        self._insert_certificate = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates
            (certificate_id, student_id, course_id, instructor_id, student_name,
             course_name, instructor_name, completed_at, final_score, grade,
             total_modules, total_time_spent, verification_code, shareable_url,
             template, issued_at, last_downloaded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._delete_certificate = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.certificates
            WHERE certificate_id = ?
        """)

        self._touch_download = self.session.prepare(f"""
            UPDATE {self.keyspace}.certificates
            SET last_downloaded_at = ?
            WHERE certificate_id = ?
        """)

        # Download counter
        self._increment_downloads = self.session.prepare(f"""
            UPDATE {self.keyspace}.certificate_downloads
            SET download_count = download_count + 1
            WHERE certificate_id = ?
        """)

        self._get_downloads = self.session.prepare(f"""
            SELECT download_count FROM {self.keyspace}.certificate_downloads
            WHERE certificate_id = ?
        """)

        # Verification code lookup
        self._get_by_code = self.session.prepare(f"""
            SELECT certificate_id FROM {self.keyspace}.certificates_by_code
            WHERE verification_code = ?
        """)

        self._claim_code = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_code
            (verification_code, certificate_id)
            VALUES (?, ?)
            IF NOT EXISTS
        """)

        self._release_code = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.certificates_by_code
            WHERE verification_code = ?
            IF certificate_id = ?
        """)

        # Student lookup
        self._get_by_student = self.session.prepare(f"""
            SELECT certificate_id FROM {self.keyspace}.certificates_by_student
            WHERE student_id = ? AND course_id = ?
        """)

        self._list_by_student = self.session.prepare(f"""
            SELECT certificate_id FROM {self.keyspace}.certificates_by_student
            WHERE student_id = ?
        """)

        self._claim_student = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_student
            (student_id, course_id, certificate_id, issued_at)
            VALUES (?, ?, ?, ?)
            IF NOT EXISTS
        """)

    async def get(self, certificate_id: str) -> Certificate | None:
        """Get certificate by id."""
        result = await self.session.aexecute(self._get_certificate, [certificate_id])
        row = result.one()
        if not row:
            return None
        return Certificate.from_row(row, await self._download_count(certificate_id))

    async def _download_count(self, certificate_id: str) -> int:
        result = await self.session.aexecute(self._get_downloads, [certificate_id])
        row = result.one()
        return row.download_count if row and row.download_count else 0

    async def get_by_code(self, verification_code: str) -> Certificate | None:
        """Get certificate by verification code."""
        result = await self.session.aexecute(self._get_by_code, [verification_code])
        row = result.one()
        if not row:
            return None
        return await self.get(row.certificate_id)

    async def get_by_student(
        self, student_id: UUID, course_id: UUID
    ) -> Certificate | None:
        """Get the certificate of a student for a course."""
        result = await self.session.aexecute(
            self._get_by_student, [student_id, course_id]
        )
        row = result.one()
        if not row:
            return None
        return await self.get(row.certificate_id)

    async def list_for_student(self, student_id: UUID) -> list[Certificate]:
        """Get every certificate of a student."""
        rows = await self.session.aexecute(self._list_by_student, [student_id])
        certificates = []
        for row in rows:
            certificate = await self.get(row.certificate_id)
            if certificate:
                certificates.append(certificate)
        return certificates

    async def insert(self, certificate: Certificate) -> bool:
        """Insert the main row. Returns False if the id is taken."""
        result = await self.session.aexecute(
            self._insert_certificate,
            [
                certificate.certificate_id,
                certificate.student_id,
                certificate.course_id,
                certificate.instructor_id,
                certificate.student_name,
                certificate.course_name,
                certificate.instructor_name,
                certificate.completed_at,
                certificate.final_score,
                certificate.grade,
                certificate.total_modules,
                certificate.total_time_spent,
                certificate.verification_code,
                certificate.shareable_url,
                certificate.template,
                certificate.issued_at,
                certificate.last_downloaded_at,
            ],
        )
        return result.was_applied

    async def claim_code(self, verification_code: str, certificate_id: str) -> bool:
        """Reserve a verification code. Returns False on collision."""
        result = await self.session.aexecute(
            self._claim_code, [verification_code, certificate_id]
        )
        return result.was_applied

    async def claim_student(
        self, student_id: UUID, course_id: UUID, certificate_id: str, issued_at: datetime
    ) -> str | None:
        """Claim the (student, course) slot.

        Returns:
            None if claimed, otherwise the certificate id already holding it
        """
        result = await self.session.aexecute(
            self._claim_student, [student_id, course_id, certificate_id, issued_at]
        )
        if result.was_applied:
            return None
        return result.one().certificate_id

    async def release_code(self, verification_code: str, certificate_id: str) -> None:
        """Free a code claimed by ``certificate_id``."""
        await self.session.aexecute(
            self._release_code, [verification_code, certificate_id]
        )

    async def discard(self, certificate: Certificate) -> None:
        """Remove rows of a certificate that lost the student claim."""
        await self.release_code(certificate.verification_code, certificate.certificate_id)
        await self.session.aexecute(
            self._delete_certificate, [certificate.certificate_id]
        )
        logger.info("certificate_discarded", certificate_id=certificate.certificate_id)

    async def record_download(
        self, certificate_id: str, downloaded_at: datetime
    ) -> int:
        """Count one download and return the new total."""
        await self.session.aexecute(self._increment_downloads, [certificate_id])
        await self.session.aexecute(
            self._touch_download, [downloaded_at, certificate_id]
        )
        return await self._download_count(certificate_id)
