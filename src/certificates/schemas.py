"""Pydantic schemas for certificates."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import Certificate


class CertificateResponse(BaseModel):
    """Certificate as seen by its owner."""

    model_config = ConfigDict(from_attributes=True)

    certificate_id: str
    student_id: UUID
    course_id: UUID
    instructor_id: UUID | None = None
    student_name: str
    course_name: str
    instructor_name: str
    completed_at: datetime | None = None
    final_score: int = Field(description="0-100")
    grade: str
    total_modules: int
    total_time_spent: float = Field(description="Hours")
    verification_code: str
    shareable_url: str | None = None
    template: str
    issued_at: datetime
    download_count: int
    last_downloaded_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Certificate) -> "CertificateResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class CertificateVerificationResponse(BaseModel):
    """Public verification result (no ids of the learner)."""

    model_config = ConfigDict(from_attributes=True)

    is_valid: bool = True
    certificate_id: str
    student_name: str
    course_name: str
    instructor_name: str
    completed_at: datetime | None = None
    grade: str
    final_score: int
    issued_at: datetime

    @classmethod
    def from_entity(cls, entity: Certificate) -> "CertificateVerificationResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class CertificateListResponse(BaseModel):
    """Certificates of the learner."""

    items: list[CertificateResponse]
    total: int
