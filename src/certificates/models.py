"""Database models for completion certificates.

Cassandra table definitions for:
- Certificates: main table keyed by certificate id
- certificates_by_code: public verification lookup (unique code claim)
- certificates_by_student: one certificate per (student, course); the
  ``IF NOT EXISTS`` insert into this table is the issuance commit point
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from src.progress.models import ensure_utc_aware


# Letter grade thresholds, highest first
GRADE_TABLE: tuple[tuple[int, str], ...] = (
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (77, "C+"),
    (73, "C"),
    (70, "C-"),
    (60, "D"),
)


def calculate_grade(score: int | float) -> str:
    """Map a 0-100 score to its letter grade."""
    for threshold, grade in GRADE_TABLE:
        if score >= threshold:
            return grade
    return "F"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

CERTIFICATES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates (
    certificate_id TEXT PRIMARY KEY,
    student_id UUID,
    course_id UUID,
    instructor_id UUID,
    student_name TEXT,
    course_name TEXT,
    instructor_name TEXT,
    completed_at TIMESTAMP,
    final_score INT,
    grade TEXT,
    total_modules INT,
    total_time_spent DOUBLE,
    verification_code TEXT,
    shareable_url TEXT,
    template TEXT,
    issued_at TIMESTAMP,
    last_downloaded_at TIMESTAMP
)
"""

CERTIFICATE_DOWNLOADS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificate_downloads (
    certificate_id TEXT PRIMARY KEY,
    download_count COUNTER
)
"""

CERTIFICATES_BY_CODE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_code (
    verification_code TEXT PRIMARY KEY,
    certificate_id TEXT
)
"""

CERTIFICATES_BY_STUDENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_student (
    student_id UUID,
    course_id UUID,
    certificate_id TEXT,
    issued_at TIMESTAMP,
    PRIMARY KEY (student_id, course_id)
)
"""

CERTIFICATES_TABLES_CQL = [
    CERTIFICATES_TABLE_CQL,
    CERTIFICATES_BY_CODE_TABLE_CQL,
    CERTIFICATES_BY_STUDENT_TABLE_CQL,
    CERTIFICATE_DOWNLOADS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Certificate:
    """Issued completion certificate.

    Names are captured at issuance so the document stays stable when the
    source records change later.
    """

    def __init__(
        self,
        certificate_id: str,
        student_id: UUID,
        course_id: UUID,
        student_name: str,
        course_name: str,
        verification_code: str,
        final_score: int,
        instructor_id: UUID | None = None,
        instructor_name: str = "",
        completed_at: datetime | None = None,
        grade: str | None = None,
        total_modules: int = 0,
        total_time_spent: float = 0.0,
        shareable_url: str | None = None,
        template: str = "default",
        issued_at: datetime | None = None,
        download_count: int = 0,
        last_downloaded_at: datetime | None = None,
    ):
        self.certificate_id = certificate_id
        self.student_id = student_id
        self.course_id = course_id
        self.instructor_id = instructor_id
        self.student_name = student_name
        self.course_name = course_name
        self.instructor_name = instructor_name
        self.completed_at = ensure_utc_aware(completed_at)
        self.final_score = final_score
        self.grade = grade or calculate_grade(final_score)
        self.total_modules = total_modules
        self.total_time_spent = total_time_spent
        self.verification_code = verification_code
        self.shareable_url = shareable_url
        self.template = template
        self.issued_at = ensure_utc_aware(issued_at) or datetime.now(UTC)
        self.download_count = download_count
        self.last_downloaded_at = ensure_utc_aware(last_downloaded_at)

    @classmethod
    def from_row(cls, row: Any, download_count: int = 0) -> "Certificate":
        """Create Certificate instance from Cassandra row.

        The download count lives in its own counter table.
        """
        return cls(
            certificate_id=row.certificate_id,
            student_id=row.student_id,
            course_id=row.course_id,
            instructor_id=row.instructor_id,
            student_name=row.student_name or "",
            course_name=row.course_name or "",
            instructor_name=row.instructor_name or "",
            completed_at=row.completed_at,
            final_score=row.final_score or 0,
            grade=row.grade,
            total_modules=row.total_modules or 0,
            total_time_spent=row.total_time_spent or 0.0,
            verification_code=row.verification_code,
            shareable_url=row.shareable_url,
            template=row.template or "default",
            issued_at=row.issued_at,
            download_count=download_count,
            last_downloaded_at=row.last_downloaded_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "certificate_id": self.certificate_id,
            "student_id": self.student_id,
            "course_id": self.course_id,
            "instructor_id": self.instructor_id,
            "student_name": self.student_name,
            "course_name": self.course_name,
            "instructor_name": self.instructor_name,
            "completed_at": self.completed_at,
            "final_score": self.final_score,
            "grade": self.grade,
            "total_modules": self.total_modules,
            "total_time_spent": self.total_time_spent,
            "verification_code": self.verification_code,
            "shareable_url": self.shareable_url,
            "template": self.template,
            "issued_at": self.issued_at,
            "download_count": self.download_count,
            "last_downloaded_at": self.last_downloaded_at,
        }

    def __repr__(self) -> str:
        return (
            f"<Certificate {self.certificate_id} student={self.student_id} "
            f"course={self.course_id} {self.grade}>"
        )
