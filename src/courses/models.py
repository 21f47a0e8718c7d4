"""Course structure snapshot consumed by progress tracking.

The content system owns courses; this service only reads an immutable,
ordered snapshot per course:
- Modules in order, each with its ordered lectures
- Lecture quizzes (question bank + passing score + attempt cap)
- Final test definition and certificate settings

Snapshots are pushed by the content system and stored as JSON in
``course_structures`` so every read sees one consistent version.
"""

from enum import Enum
from typing import Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LectureType(str, Enum):
    """Lecture content type."""

    VIDEO = "video"
    TEXT = "text"
    QUIZ = "quiz"
    ASSIGNMENT = "assignment"
    RESOURCE = "resource"


class QuestionType(str, Enum):
    """Final test question type."""

    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_STRUCTURES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_structures (
    course_id UUID PRIMARY KEY,
    title TEXT,
    snapshot TEXT,
    published_at TIMESTAMP
)
"""

COURSES_TABLES_CQL = [COURSE_STRUCTURES_TABLE_CQL]


# ==============================================================================
# Snapshot Models
# ==============================================================================


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class QuizQuestion(_Snapshot):
    """Multiple-choice quiz question; ``correct_answer`` is an option index."""

    question: str
    options: list[str] = Field(default_factory=list)
    correct_answer: int = Field(ge=0)
    points: int = Field(default=10, ge=0)


class QuizSpec(_Snapshot):
    """Lecture quiz configuration."""

    questions: list[QuizQuestion] = Field(default_factory=list)
    passing_score: int | None = Field(default=None, ge=0, le=100)
    time_limit: int | None = Field(default=None, description="Minutes")
    attempts: int | None = Field(default=None, ge=1)


class AssignmentSpec(_Snapshot):
    """Assignment lecture configuration."""

    instructions: str | None = None
    max_score: int = Field(default=100, gt=0)
    passing_score: int = Field(default=70, ge=0, le=100)
    submission_type: str = "text"


class LectureSpec(_Snapshot):
    """One lecture in a module."""

    lecture_id: UUID | None = None
    title: str
    type: LectureType = LectureType.VIDEO
    duration: int | None = Field(default=None, description="Minutes")
    quiz: QuizSpec | None = None
    assignment: AssignmentSpec | None = None

    @property
    def is_graded(self) -> bool:
        """Quiz and assignment lectures complete only with a passing grade."""
        return self.type in (LectureType.QUIZ, LectureType.ASSIGNMENT)


class ModuleSpec(_Snapshot):
    """One module (unit of unlock gating)."""

    module_id: UUID | None = None
    title: str
    lectures: list[LectureSpec] = Field(default_factory=list)


class FinalTestQuestion(_Snapshot):
    """Final test question.

    Choice questions store the correct option index, short answers the
    expected text.
    """

    type: QuestionType
    question: str
    options: list[str] = Field(default_factory=list)
    correct_answer: int | str
    points: int = Field(default=1, ge=0)
    explanation: str | None = None

    @model_validator(mode="after")
    def check_answer_kind(self) -> Self:
        if self.type == QuestionType.SHORT_ANSWER:
            if not isinstance(self.correct_answer, str):
                msg = "short-answer questions need a text correct_answer"
                raise ValueError(msg)
        elif not isinstance(self.correct_answer, int):
            msg = "choice questions need an option index as correct_answer"
            raise ValueError(msg)
        return self


class FinalTestSpec(_Snapshot):
    """Course-level final test."""

    title: str = "Final Assessment"
    questions: list[FinalTestQuestion] = Field(default_factory=list)
    passing_score: int = Field(default=70, ge=0, le=100)
    time_limit: int = Field(default=60, description="Minutes")
    attempts: int = Field(default=3, ge=1)
    is_enabled: bool = True


class CertificateSettings(_Snapshot):
    """Certificate issuance settings."""

    is_enabled: bool = True
    minimum_score: int = Field(default=70, ge=0, le=100)
    template: str = "default"


class CourseStructure(_Snapshot):
    """Immutable snapshot of a course as seen by progress tracking."""

    course_id: UUID
    title: str
    instructor_id: UUID | None = None
    instructor_name: str = ""
    modules: list[ModuleSpec] = Field(default_factory=list)
    final_test: FinalTestSpec | None = None
    certificate: CertificateSettings = Field(default_factory=CertificateSettings)

    @property
    def final_test_required(self) -> bool:
        """Whether course completion waits for a passed final test."""
        return self.final_test is not None and self.final_test.is_enabled

    @property
    def total_modules(self) -> int:
        return len(self.modules)

    def lecture_count(self, module_index: int) -> int:
        """Lecture count of a module according to the snapshot."""
        return len(self.modules[module_index].lectures)
