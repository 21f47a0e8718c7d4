"""Completion certificate issuer.

Business logic for:
- Eligibility (modules, final test, certificate settings)
- Idempotent issuance, at most one certificate per learner and course
- Public verification by code
- Download tracking
"""

from datetime import UTC, datetime
from uuid import UUID

import structlog

from src.courses.models import CourseStructure
from src.progress.engine import can_take_final_test
from src.progress.exceptions import NotFoundError, ProgressError
from src.progress.models import ProgressRecord

from .models import Certificate, calculate_grade
from .security import (
    CODE_LENGTH,
    generate_certificate_id,
    generate_verification_code,
    normalize_code,
)
from .store import CertificateStore


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CertificateNotFoundError(NotFoundError):
    """Certificate not found."""

    def __init__(self, message: str = "Certificado nao encontrado"):
        super().__init__(message)


class CertificateIssueError(ProgressError):
    """Unique identifiers could not be generated."""

    def __init__(self, message: str = "Falha ao gerar identificadores do certificado"):
        super().__init__(message, "certificate_issue_failed")


# ==============================================================================
# Certificate Service
# ==============================================================================


class CertificateService:
    """Service for certificate issuance and lookup."""

    def __init__(
        self,
        store: CertificateStore,
        code_length: int = CODE_LENGTH,
        max_attempts: int = 5,
        verify_base_url: str = "",
    ):
        self.store = store
        self.code_length = code_length
        self.max_attempts = max_attempts
        self.verify_base_url = verify_base_url.rstrip("/")

    # ==========================================================================
    # Eligibility & Issuance
    # ==========================================================================

    @staticmethod
    def certificate_score(progress: ProgressRecord, course: CourseStructure) -> int:
        """Final test score, or 100 when the course has no final test."""
        if course.final_test_required:
            return progress.final_test_score or 0
        return 100

    def is_eligible(self, progress: ProgressRecord, course: CourseStructure) -> bool:
        """Every module completed and, with a final test, a passing score
        that meets the certificate minimum."""
        if not course.certificate.is_enabled:
            return False
        if not can_take_final_test(progress, course):
            return False
        if course.final_test_required:
            return (
                progress.final_test_passed
                and self.certificate_score(progress, course)
                >= course.certificate.minimum_score
            )
        return True

    async def issue_certificate_if_eligible(
        self,
        progress: ProgressRecord,
        course: CourseStructure,
        student_name: str = "",
    ) -> Certificate | None:
        """Issue the certificate for a learner/course pair at most once.

        An existing certificate is found through the durable student lookup,
        independent of the progress flags, and returned unchanged. The
        progress record is marked with the certificate either way.

        Returns:
            The certificate, or None when not eligible
        """
        if not self.is_eligible(progress, course):
            return None

        existing = await self.store.get_by_student(progress.learner_id, course.course_id)
        if existing:
            progress.mark_certificate(existing.certificate_id, existing.issued_at)
            return existing

        now = datetime.now(UTC)
        certificate = await self._create(progress, course, student_name, now)

        winner_id = await self.store.claim_student(
            progress.learner_id, course.course_id, certificate.certificate_id, now
        )
        if winner_id is not None:
            # Lost a concurrent race; keep the first certificate
            await self.store.discard(certificate)
            winner = await self.store.get(winner_id)
            if winner is None:
                raise CertificateNotFoundError
            logger.info(
                "certificate_issue_race_lost",
                learner_id=str(progress.learner_id),
                course_id=str(course.course_id),
                certificate_id=winner_id,
            )
            progress.mark_certificate(winner.certificate_id, winner.issued_at)
            return winner

        progress.mark_certificate(certificate.certificate_id, now)
        logger.info(
            "certificate_issued",
            learner_id=str(progress.learner_id),
            course_id=str(course.course_id),
            certificate_id=certificate.certificate_id,
            grade=certificate.grade,
        )
        return certificate

    async def _create(
        self,
        progress: ProgressRecord,
        course: CourseStructure,
        student_name: str,
        now: datetime,
    ) -> Certificate:
        """Persist a new certificate with freshly claimed identifiers."""
        score = self.certificate_score(progress, course)

        for _ in range(self.max_attempts):
            certificate_id = generate_certificate_id(now)
            code = generate_verification_code(self.code_length)
            if not await self.store.claim_code(code, certificate_id):
                logger.warning(
                    "verification_code_collision", code_length=self.code_length
                )
                continue

            certificate = Certificate(
                certificate_id=certificate_id,
                student_id=progress.learner_id,
                course_id=course.course_id,
                instructor_id=course.instructor_id,
                student_name=student_name,
                course_name=course.title,
                instructor_name=course.instructor_name,
                completed_at=progress.completed_at or now,
                final_score=score,
                grade=calculate_grade(score),
                total_modules=course.total_modules,
                total_time_spent=round(progress.total_time_spent / 3600, 1),
                verification_code=code,
                shareable_url=self._shareable_url(code),
                template=course.certificate.template,
                issued_at=now,
            )
            if await self.store.insert(certificate):
                return certificate

            # Id taken by another certificate; only the code claim is ours
            await self.store.release_code(code, certificate_id)
            logger.warning("certificate_id_collision", certificate_id=certificate_id)

        raise CertificateIssueError

    def _shareable_url(self, code: str) -> str | None:
        if not self.verify_base_url:
            return None
        return f"{self.verify_base_url}/{code}"

    # ==========================================================================
    # Lookup
    # ==========================================================================

    async def get_certificate(self, learner_id: UUID, course_id: UUID) -> Certificate:
        """Get the certificate of a learner for a course.

        Raises:
            CertificateNotFoundError: If no certificate was issued
        """
        certificate = await self.store.get_by_student(learner_id, course_id)
        if certificate is None:
            raise CertificateNotFoundError
        return certificate

    async def verify_certificate(self, verification_code: str) -> Certificate:
        """Public lookup by verification code.

        Raises:
            CertificateNotFoundError: If the code is unknown
        """
        certificate = await self.store.get_by_code(normalize_code(verification_code))
        if certificate is None:
            raise CertificateNotFoundError
        logger.info(
            "certificate_verified", certificate_id=certificate.certificate_id
        )
        return certificate

    async def list_certificates(self, learner_id: UUID) -> list[Certificate]:
        """Get every certificate of a learner, newest first."""
        certificates = await self.store.list_for_student(learner_id)
        return sorted(certificates, key=lambda c: c.issued_at, reverse=True)

    async def record_download(
        self, learner_id: UUID, certificate_id: str
    ) -> Certificate:
        """Count a download of the learner's own certificate.

        Raises:
            CertificateNotFoundError: If missing or owned by someone else
        """
        certificate = await self.store.get(certificate_id)
        if certificate is None or certificate.student_id != learner_id:
            raise CertificateNotFoundError

        now = datetime.now(UTC)
        certificate.download_count = await self.store.record_download(
            certificate.certificate_id, now
        )
        certificate.last_downloaded_at = now
        return certificate
