"""Pydantic schemas for learner progress tracking.

Request and response models for:
- Lecture progress updates
- Quiz, assignment and final test submissions
- Course enrollment
- Progress queries
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .grading import FinalTestSubmission, QuizSubmission
from .models import (
    CourseState,
    EnrollmentStatus,
    EnrollmentSummary,
    LectureProgress,
    ModuleProgress,
    ModuleState,
    ProgressRecord,
    TestAttempt,
)


# ==============================================================================
# Request Schemas
# ==============================================================================


class LectureTarget(BaseModel):
    """Lecture position inside the course."""

    module_index: int = Field(..., ge=0, description="Module position")
    lecture_index: int = Field(..., ge=0, description="Lecture position in module")


class UpdateLectureProgressRequest(LectureTarget):
    """Watch/read progress on a lecture (throttled frontend sends every 5s)."""

    completed: bool | None = Field(
        default=None, description="Mark a video/text/resource lecture complete"
    )
    watched_percentage: int | None = Field(default=None, ge=0, le=100)
    position_seconds: int | None = Field(
        default=None, ge=0, description="Resume position"
    )
    time_spent: int | None = Field(default=None, ge=0, description="Seconds")


class SubmitQuizRequest(LectureTarget):
    """Lecture quiz answers (option index per question, null if skipped)."""

    answers: list[int | None] = Field(..., max_length=500)


class SubmitAssignmentRequest(LectureTarget):
    """Assignment submission payload."""

    submission_text: str | None = Field(default=None, max_length=20000)
    submission_url: str | None = Field(default=None, max_length=2048)
    time_spent: int | None = Field(default=None, ge=0, description="Seconds")


class GradeAssignmentRequest(LectureTarget):
    """Instructor grading of a submitted assignment."""

    learner_id: UUID
    score: int = Field(..., ge=0, description="Points out of the assignment max")
    feedback: str | None = Field(default=None, max_length=5000)


class SubmitFinalTestRequest(BaseModel):
    """Final test answers: option index, or text for short-answer questions."""

    answers: list[int | str | None] = Field(..., max_length=500)
    time_spent: int | None = Field(default=None, ge=0, description="Seconds")


class EnrollRequest(BaseModel):
    """Request to enroll in a course."""

    course_id: UUID = Field(..., description="Course UUID to enroll in")


# ==============================================================================
# Progress Schemas
# ==============================================================================


class LectureProgressResponse(BaseModel):
    """Lecture progress response."""

    model_config = ConfigDict(from_attributes=True)

    lecture_index: int
    completed: bool
    completed_at: datetime | None = None
    watched_percentage: int = Field(description="0-100 percentage")
    last_position_seconds: int = Field(description="Resume position")
    score: int | None = None
    attempts: int = 0
    submitted_at: datetime | None = None
    submission_text: str | None = None
    submission_url: str | None = None
    feedback: str | None = None
    graded_at: datetime | None = None
    time_spent: int = 0

    @classmethod
    def from_entity(cls, entity: LectureProgress) -> "LectureProgressResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class ModuleProgressResponse(BaseModel):
    """Module progress response."""

    module_index: int
    state: ModuleState
    is_unlocked: bool
    completed: bool
    unlocked_at: datetime | None = None
    completed_at: datetime | None = None
    completion_percentage: int
    lectures: list[LectureProgressResponse]

    @classmethod
    def from_entity(cls, entity: ModuleProgress) -> "ModuleProgressResponse":
        """Create response from entity."""
        return cls(
            module_index=entity.module_index,
            state=ModuleState(entity.state),
            is_unlocked=entity.is_unlocked,
            completed=entity.completed,
            unlocked_at=entity.unlocked_at,
            completed_at=entity.completed_at,
            completion_percentage=entity.completion_percentage,
            lectures=[LectureProgressResponse.from_entity(lp) for lp in entity.lectures],
        )


class GradedAnswerResponse(BaseModel):
    """One graded answer."""

    model_config = ConfigDict(from_attributes=True)

    question_index: int
    answer: Any = None
    is_correct: bool
    points_earned: int


class QuestionFeedbackResponse(BaseModel):
    """Per-question explanation."""

    model_config = ConfigDict(from_attributes=True)

    question_index: int
    feedback: str
    explanation: str


class TestAttemptResponse(BaseModel):
    """Final test attempt."""

    __test__ = False

    model_config = ConfigDict(from_attributes=True)

    attempt_number: int
    answers: list[GradedAnswerResponse]
    feedback: list[QuestionFeedbackResponse]
    score: int = Field(description="Earned points")
    percentage: int
    passed: bool
    time_spent: int | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: TestAttempt) -> "TestAttemptResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class ProgressResponse(BaseModel):
    """Full course progress of the learner."""

    learner_id: UUID
    course_id: UUID
    state: CourseState
    is_completed: bool
    overall_progress: int = Field(description="Completed modules, 0-100")
    current_module_index: int
    current_lecture_index: int
    modules: list[ModuleProgressResponse]
    final_test_attempts: list[TestAttemptResponse]
    final_test_passed: bool
    final_test_score: int | None = None
    final_test_completed_at: datetime | None = None
    completed_at: datetime | None = None
    certificate_generated: bool
    certificate_id: str | None = None
    total_time_spent: int
    current_streak: int
    longest_streak: int
    last_study_date: date | None = None
    enrolled_at: datetime
    last_accessed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: ProgressRecord) -> "ProgressResponse":
        """Create response from entity."""
        return cls(
            learner_id=entity.learner_id,
            course_id=entity.course_id,
            state=CourseState(entity.state),
            is_completed=entity.is_completed,
            overall_progress=entity.overall_progress,
            current_module_index=entity.current_module_index,
            current_lecture_index=entity.current_lecture_index,
            modules=[ModuleProgressResponse.from_entity(m) for m in entity.modules],
            final_test_attempts=[
                TestAttemptResponse.from_entity(a) for a in entity.final_test_attempts
            ],
            final_test_passed=entity.final_test_passed,
            final_test_score=entity.final_test_score,
            final_test_completed_at=entity.final_test_completed_at,
            completed_at=entity.completed_at,
            certificate_generated=entity.certificate_generated,
            certificate_id=entity.certificate_id,
            total_time_spent=entity.total_time_spent,
            current_streak=entity.current_streak,
            longest_streak=entity.longest_streak,
            last_study_date=entity.last_study_date,
            enrolled_at=entity.enrolled_at,
            last_accessed_at=entity.last_accessed_at,
        )


# ==============================================================================
# Assessment Result Schemas
# ==============================================================================


class QuizResultResponse(BaseModel):
    """Lecture quiz result."""

    score: int = Field(description="Percentage, 0-100")
    passed: bool
    attempts: int
    attempts_remaining: int
    already_passed: bool = False
    correct_answers: int | None = None
    progress: ProgressResponse

    @classmethod
    def from_submission(cls, submission: QuizSubmission) -> "QuizResultResponse":
        """Create response from a graded submission."""
        return cls(
            score=submission.score,
            passed=submission.passed,
            attempts=submission.attempts,
            attempts_remaining=submission.attempts_remaining,
            already_passed=submission.already_passed,
            correct_answers=(
                submission.grade.correct_answers if submission.grade else None
            ),
            progress=ProgressResponse.from_entity(submission.progress),
        )


class FinalTestResultResponse(BaseModel):
    """Final test result."""

    attempt: TestAttemptResponse
    passed: bool
    percentage: int
    correct_answers: int
    total_questions: int
    can_retake: bool
    already_passed: bool = False
    certificate_id: str | None = None
    message: str
    progress: ProgressResponse

    @classmethod
    def from_submission(
        cls, submission: FinalTestSubmission
    ) -> "FinalTestResultResponse":
        """Create response from a graded submission."""
        if submission.passed:
            message = "Parabens! Voce foi aprovado na prova final"
        elif submission.can_retake:
            message = f"Nota: {submission.percentage}%. Voce pode refazer a prova"
        else:
            message = f"Nota: {submission.percentage}%. Sem tentativas restantes"
        return cls(
            attempt=TestAttemptResponse.from_entity(submission.attempt),
            passed=submission.passed,
            percentage=submission.percentage,
            correct_answers=submission.correct_answers,
            total_questions=submission.total_questions,
            can_retake=submission.can_retake,
            already_passed=submission.already_passed,
            certificate_id=submission.certificate_id,
            message=message,
            progress=ProgressResponse.from_entity(submission.progress),
        )


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollmentResponse(BaseModel):
    """Enrollment summary response."""

    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    learner_id: UUID
    status: EnrollmentStatus
    enrolled_at: datetime
    completed_at: datetime | None = None
    dropped_at: datetime | None = None
    completion_percentage: int = Field(description="0-100, never regresses")
    is_completed: bool
    last_accessed_at: datetime | None = None
    current_module_index: int = 0
    current_lecture_index: int = 0

    @classmethod
    def from_entity(cls, entity: EnrollmentSummary) -> "EnrollmentResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class EnrollmentListResponse(BaseModel):
    """List of enrollments."""

    items: list[EnrollmentResponse]
    total: int
