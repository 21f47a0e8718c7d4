"""Database models for learner progress tracking.

Cassandra table definitions for:
- Progress records: authoritative per learner/course state, stored as one
  JSON document guarded by a version column (optimistic concurrency)
- Enrollments: coarse completion summary for listings/dashboards
- Lookup tables: enrollments by learner

Module and course completion are explicit states (``ModuleState`` and
``CourseState``) rather than independent booleans, so a module can never be
completed while locked.
"""

from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ModuleState(str, Enum):
    """Module gating state."""

    LOCKED = "locked"
    UNLOCKED = "unlocked"
    COMPLETED = "completed"


class CourseState(str, Enum):
    """Course completion state."""

    IN_PROGRESS = "in_progress"  # Some module still incomplete
    AWAITING_FINAL_TEST = "awaiting_final_test"  # All modules done, test pending
    COMPLETED = "completed"  # Terminal


class EnrollmentStatus(str, Enum):
    """Course enrollment status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    DROPPED = "dropped"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp from a stored document."""
    if value is None or isinstance(value, datetime):
        return ensure_utc_aware(value)
    return ensure_utc_aware(datetime.fromisoformat(value))


def percent(part: int | float, whole: int | float) -> int:
    """Integer percentage rounded half up; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    value = Decimal(str(part)) * 100 / Decimal(str(whole))
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Registro de progresso: documento unico por (learner, course)
# version: token de concorrencia otimista (UPDATE ... IF version = ?)
PROGRESS_RECORDS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress_records (
    learner_id UUID,
    course_id UUID,
    version INT,
    state TEXT,
    overall_progress INT,
    document TEXT,
    updated_at TIMESTAMP,
    PRIMARY KEY ((learner_id, course_id))
)
"""

ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    learner_id UUID,
    status TEXT,
    enrolled_at TIMESTAMP,
    completed_at TIMESTAMP,
    dropped_at TIMESTAMP,
    completion_percentage INT,
    is_completed BOOLEAN,
    last_accessed_at TIMESTAMP,
    current_module_index INT,
    current_lecture_index INT,
    PRIMARY KEY (course_id, learner_id)
)
"""

ENROLLMENTS_BY_LEARNER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_learner (
    learner_id UUID,
    enrolled_at TIMESTAMP,
    course_id UUID,
    status TEXT,
    completion_percentage INT,
    is_completed BOOLEAN,
    last_accessed_at TIMESTAMP,
    PRIMARY KEY (learner_id, enrolled_at, course_id)
) WITH CLUSTERING ORDER BY (enrolled_at DESC, course_id ASC)
"""

PROGRESS_TABLES_CQL = [
    PROGRESS_RECORDS_TABLE_CQL,
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_LEARNER_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class LectureProgress:
    """Progress on a single lecture.

    Attributes:
        lecture_index: Position in the module
        completed: Completion flag (never reverts once set)
        watched_percentage: Highest watched percentage (0-100)
        score: Last graded percentage (quiz/assignment lectures)
        attempts: Graded submissions so far
        submission_text / submission_url: Assignment payload
        feedback / graded_at / graded_by: Grading metadata
    """

    def __init__(
        self,
        lecture_index: int,
        completed: bool = False,
        completed_at: datetime | None = None,
        watched_percentage: int = 0,
        last_position_seconds: int = 0,
        score: int | None = None,
        attempts: int = 0,
        submitted_at: datetime | None = None,
        submission_text: str | None = None,
        submission_url: str | None = None,
        feedback: str | None = None,
        graded_at: datetime | None = None,
        graded_by: UUID | None = None,
        time_spent: int = 0,
    ):
        self.lecture_index = lecture_index
        self.completed = completed
        self.completed_at = ensure_utc_aware(completed_at)
        self.watched_percentage = watched_percentage
        self.last_position_seconds = last_position_seconds
        self.score = score
        self.attempts = attempts
        self.submitted_at = ensure_utc_aware(submitted_at)
        self.submission_text = submission_text
        self.submission_url = submission_url
        self.feedback = feedback
        self.graded_at = ensure_utc_aware(graded_at)
        self.graded_by = graded_by
        self.time_spent = time_spent

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LectureProgress":
        return cls(
            lecture_index=data["lecture_index"],
            completed=data.get("completed", False),
            completed_at=parse_datetime(data.get("completed_at")),
            watched_percentage=data.get("watched_percentage", 0),
            last_position_seconds=data.get("last_position_seconds", 0),
            score=data.get("score"),
            attempts=data.get("attempts", 0),
            submitted_at=parse_datetime(data.get("submitted_at")),
            submission_text=data.get("submission_text"),
            submission_url=data.get("submission_url"),
            feedback=data.get("feedback"),
            graded_at=parse_datetime(data.get("graded_at")),
            graded_by=UUID(data["graded_by"]) if data.get("graded_by") else None,
            time_spent=data.get("time_spent", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lecture_index": self.lecture_index,
            "completed": self.completed,
            "completed_at": self.completed_at,
            "watched_percentage": self.watched_percentage,
            "last_position_seconds": self.last_position_seconds,
            "score": self.score,
            "attempts": self.attempts,
            "submitted_at": self.submitted_at,
            "submission_text": self.submission_text,
            "submission_url": self.submission_url,
            "feedback": self.feedback,
            "graded_at": self.graded_at,
            "graded_by": self.graded_by,
            "time_spent": self.time_spent,
        }

    def __repr__(self) -> str:
        return (
            f"<LectureProgress {self.lecture_index} "
            f"completed={self.completed} {self.watched_percentage}%>"
        )


class ModuleProgress:
    """Progress on one module.

    Attributes:
        module_index: Position in the course
        state: Gating state (locked, unlocked, completed)
        completion_percentage: Completed lectures over the snapshot's count
        lectures: Per-lecture progress, index aligned with the snapshot
    """

    def __init__(
        self,
        module_index: int,
        state: str = ModuleState.LOCKED.value,
        unlocked_at: datetime | None = None,
        completed_at: datetime | None = None,
        completion_percentage: int = 0,
        lectures: list[LectureProgress] | None = None,
        time_spent: int = 0,
        started_at: datetime | None = None,
    ):
        self.module_index = module_index
        self.state = state
        self.unlocked_at = ensure_utc_aware(unlocked_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.completion_percentage = completion_percentage
        self.lectures = lectures or []
        self.time_spent = time_spent
        self.started_at = ensure_utc_aware(started_at)

    @property
    def is_unlocked(self) -> bool:
        """Completed modules are unlocked too."""
        return self.state != ModuleState.LOCKED.value

    @property
    def completed(self) -> bool:
        return self.state == ModuleState.COMPLETED.value

    def unlock(self, now: datetime) -> bool:
        """Unlock the module. Returns True on a locked -> unlocked transition."""
        if self.is_unlocked:
            return False
        self.state = ModuleState.UNLOCKED.value
        self.unlocked_at = now
        return True

    def complete(self, now: datetime) -> bool:
        """Complete the module. Returns True on a first completion."""
        if self.completed:
            return False
        if not self.is_unlocked:
            msg = f"module {self.module_index} cannot complete while locked"
            raise ValueError(msg)
        self.state = ModuleState.COMPLETED.value
        self.completed_at = now
        return True

    def lecture(self, lecture_index: int) -> LectureProgress:
        """Get lecture progress, creating placeholders up to the index."""
        while len(self.lectures) <= lecture_index:
            self.lectures.append(LectureProgress(lecture_index=len(self.lectures)))
        return self.lectures[lecture_index]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModuleProgress":
        return cls(
            module_index=data["module_index"],
            state=data.get("state", ModuleState.LOCKED.value),
            unlocked_at=parse_datetime(data.get("unlocked_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            completion_percentage=data.get("completion_percentage", 0),
            lectures=[LectureProgress.from_dict(lp) for lp in data.get("lectures", [])],
            time_spent=data.get("time_spent", 0),
            started_at=parse_datetime(data.get("started_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "module_index": self.module_index,
            "state": self.state,
            "unlocked_at": self.unlocked_at,
            "completed_at": self.completed_at,
            "completion_percentage": self.completion_percentage,
            "lectures": [lp.to_dict() for lp in self.lectures],
            "time_spent": self.time_spent,
            "started_at": self.started_at,
        }

    def __repr__(self) -> str:
        return (
            f"<ModuleProgress {self.module_index} {self.state} "
            f"{self.completion_percentage}%>"
        )


class GradedAnswer:
    """One graded answer of an assessment attempt."""

    def __init__(
        self,
        question_index: int,
        answer: Any,
        is_correct: bool,
        points_earned: int,
    ):
        self.question_index = question_index
        self.answer = answer
        self.is_correct = is_correct
        self.points_earned = points_earned

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GradedAnswer":
        return cls(
            question_index=data["question_index"],
            answer=data.get("answer"),
            is_correct=data.get("is_correct", False),
            points_earned=data.get("points_earned", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_index": self.question_index,
            "answer": self.answer,
            "is_correct": self.is_correct,
            "points_earned": self.points_earned,
        }


class QuestionFeedback:
    """Per-question feedback shown after an attempt."""

    def __init__(self, question_index: int, feedback: str, explanation: str):
        self.question_index = question_index
        self.feedback = feedback
        self.explanation = explanation

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuestionFeedback":
        return cls(
            question_index=data["question_index"],
            feedback=data.get("feedback", ""),
            explanation=data.get("explanation", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_index": self.question_index,
            "feedback": self.feedback,
            "explanation": self.explanation,
        }


class TestAttempt:
    """One graded final test submission. Attempts are never overwritten."""

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        attempt_number: int,
        answers: list[GradedAnswer] | None = None,
        feedback: list[QuestionFeedback] | None = None,
        score: int = 0,
        percentage: int = 0,
        passed: bool = False,
        time_spent: int | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
    ):
        self.attempt_number = attempt_number
        self.answers = answers or []
        self.feedback = feedback or []
        self.score = score
        self.percentage = percentage
        self.passed = passed
        self.time_spent = time_spent
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)

    @property
    def correct_answers(self) -> int:
        return sum(1 for answer in self.answers if answer.is_correct)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestAttempt":
        return cls(
            attempt_number=data["attempt_number"],
            answers=[GradedAnswer.from_dict(a) for a in data.get("answers", [])],
            feedback=[QuestionFeedback.from_dict(f) for f in data.get("feedback", [])],
            score=data.get("score", 0),
            percentage=data.get("percentage", 0),
            passed=data.get("passed", False),
            time_spent=data.get("time_spent"),
            started_at=parse_datetime(data.get("started_at")),
            completed_at=parse_datetime(data.get("completed_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "answers": [a.to_dict() for a in self.answers],
            "feedback": [f.to_dict() for f in self.feedback],
            "score": self.score,
            "percentage": self.percentage,
            "passed": self.passed,
            "time_spent": self.time_spent,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<TestAttempt #{self.attempt_number} {self.percentage}% "
            f"passed={self.passed}>"
        )


class ProgressRecord:
    """Authoritative progress of one learner in one course.

    Attributes:
        learner_id / course_id: Unique pair
        modules: Module progress, index aligned with the course snapshot
        current_module_index / current_lecture_index: Resume cursor
        final_test_attempts: Every attempt, including failed ones
        overall_progress: Percentage of completed modules (ignores the test)
        state: Course state; ``is_completed`` is derived from it
        certificate_generated / certificate_id: Set at most once
        student_name: Learner display name, refreshed from each learner request
            and snapshotted on the certificate
        version: Optimistic concurrency token, bumped on every save
    """

    def __init__(
        self,
        learner_id: UUID,
        course_id: UUID,
        modules: list[ModuleProgress] | None = None,
        current_module_index: int = 0,
        current_lecture_index: int = 0,
        final_test_attempts: list[TestAttempt] | None = None,
        final_test_passed: bool = False,
        final_test_score: int | None = None,
        final_test_completed_at: datetime | None = None,
        overall_progress: int = 0,
        state: str = CourseState.IN_PROGRESS.value,
        completed_at: datetime | None = None,
        certificate_generated: bool = False,
        certificate_id: str | None = None,
        certificate_generated_at: datetime | None = None,
        total_time_spent: int = 0,
        sessions_count: int = 0,
        current_streak: int = 0,
        longest_streak: int = 0,
        last_study_date: date | None = None,
        enrolled_at: datetime | None = None,
        started_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
        student_name: str = "",
        version: int = 0,
    ):
        self.learner_id = learner_id
        self.course_id = course_id
        self.modules = modules or []
        self.current_module_index = current_module_index
        self.current_lecture_index = current_lecture_index
        self.final_test_attempts = final_test_attempts or []
        self.final_test_passed = final_test_passed
        self.final_test_score = final_test_score
        self.final_test_completed_at = ensure_utc_aware(final_test_completed_at)
        self.overall_progress = overall_progress
        self.state = state
        self.completed_at = ensure_utc_aware(completed_at)
        self.certificate_generated = certificate_generated
        self.certificate_id = certificate_id
        self.certificate_generated_at = ensure_utc_aware(certificate_generated_at)
        self.total_time_spent = total_time_spent
        self.sessions_count = sessions_count
        self.current_streak = current_streak
        self.longest_streak = longest_streak
        self.last_study_date = last_study_date
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)
        self.started_at = ensure_utc_aware(started_at)
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)
        self.student_name = student_name
        self.version = version

    @property
    def is_completed(self) -> bool:
        return self.state == CourseState.COMPLETED.value

    @property
    def all_modules_completed(self) -> bool:
        return bool(self.modules) and all(m.completed for m in self.modules)

    @property
    def completed_modules(self) -> int:
        return sum(1 for m in self.modules if m.completed)

    @property
    def passing_attempt(self) -> TestAttempt | None:
        return next((a for a in self.final_test_attempts if a.passed), None)

    def mark_certificate(self, certificate_id: str, now: datetime) -> None:
        """Record the issued certificate once; later calls keep the first one."""
        if self.certificate_generated:
            return
        self.certificate_generated = True
        self.certificate_id = certificate_id
        self.certificate_generated_at = now

    def update_streak(self, today: date) -> None:
        """Update daily study streak counters."""
        if self.last_study_date is None:
            self.current_streak = 1
        else:
            days = (today - self.last_study_date).days
            if days == 1:
                self.current_streak += 1
            elif days > 1:
                self.current_streak = 1
        self.longest_streak = max(self.longest_streak, self.current_streak)
        self.last_study_date = today

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProgressRecord":
        """Create ProgressRecord from a stored document."""
        last_study = data.get("last_study_date")
        return cls(
            learner_id=UUID(str(data["learner_id"])),
            course_id=UUID(str(data["course_id"])),
            modules=[ModuleProgress.from_dict(m) for m in data.get("modules", [])],
            current_module_index=data.get("current_module_index", 0),
            current_lecture_index=data.get("current_lecture_index", 0),
            final_test_attempts=[
                TestAttempt.from_dict(a) for a in data.get("final_test_attempts", [])
            ],
            final_test_passed=data.get("final_test_passed", False),
            final_test_score=data.get("final_test_score"),
            final_test_completed_at=parse_datetime(data.get("final_test_completed_at")),
            overall_progress=data.get("overall_progress", 0),
            state=data.get("state", CourseState.IN_PROGRESS.value),
            completed_at=parse_datetime(data.get("completed_at")),
            certificate_generated=data.get("certificate_generated", False),
            certificate_id=data.get("certificate_id"),
            certificate_generated_at=parse_datetime(
                data.get("certificate_generated_at")
            ),
            total_time_spent=data.get("total_time_spent", 0),
            sessions_count=data.get("sessions_count", 0),
            current_streak=data.get("current_streak", 0),
            longest_streak=data.get("longest_streak", 0),
            last_study_date=date.fromisoformat(last_study) if last_study else None,
            enrolled_at=parse_datetime(data.get("enrolled_at")),
            started_at=parse_datetime(data.get("started_at")),
            last_accessed_at=parse_datetime(data.get("last_accessed_at")),
            student_name=data.get("student_name", ""),
            version=data.get("version", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable document (orjson handles dates/UUIDs)."""
        return {
            "learner_id": self.learner_id,
            "course_id": self.course_id,
            "modules": [m.to_dict() for m in self.modules],
            "current_module_index": self.current_module_index,
            "current_lecture_index": self.current_lecture_index,
            "final_test_attempts": [a.to_dict() for a in self.final_test_attempts],
            "final_test_passed": self.final_test_passed,
            "final_test_score": self.final_test_score,
            "final_test_completed_at": self.final_test_completed_at,
            "overall_progress": self.overall_progress,
            "state": self.state,
            "completed_at": self.completed_at,
            "certificate_generated": self.certificate_generated,
            "certificate_id": self.certificate_id,
            "certificate_generated_at": self.certificate_generated_at,
            "total_time_spent": self.total_time_spent,
            "sessions_count": self.sessions_count,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_study_date": self.last_study_date,
            "enrolled_at": self.enrolled_at,
            "started_at": self.started_at,
            "last_accessed_at": self.last_accessed_at,
            "student_name": self.student_name,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return (
            f"<ProgressRecord learner={self.learner_id} course={self.course_id} "
            f"{self.state} {self.overall_progress}% v{self.version}>"
        )


class EnrollmentSummary:
    """Coarse, denormalized course enrollment summary.

    A projection of the Progress Record for listings; only the reconciler
    changes its completion fields.
    """

    def __init__(
        self,
        course_id: UUID,
        learner_id: UUID,
        status: str = EnrollmentStatus.ACTIVE.value,
        enrolled_at: datetime | None = None,
        completed_at: datetime | None = None,
        dropped_at: datetime | None = None,
        completion_percentage: int = 0,
        is_completed: bool = False,
        last_accessed_at: datetime | None = None,
        current_module_index: int = 0,
        current_lecture_index: int = 0,
    ):
        self.course_id = course_id
        self.learner_id = learner_id
        self.status = status
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)
        self.completed_at = ensure_utc_aware(completed_at)
        self.dropped_at = ensure_utc_aware(dropped_at)
        self.completion_percentage = completion_percentage
        self.is_completed = is_completed
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)
        self.current_module_index = current_module_index
        self.current_lecture_index = current_lecture_index

    @property
    def is_dropped(self) -> bool:
        return self.status == EnrollmentStatus.DROPPED.value

    @classmethod
    def from_row(cls, row: Any) -> "EnrollmentSummary":
        """Create EnrollmentSummary instance from Cassandra row."""
        return cls(
            course_id=row.course_id,
            learner_id=row.learner_id,
            status=row.status or EnrollmentStatus.ACTIVE.value,
            enrolled_at=row.enrolled_at,
            completed_at=getattr(row, "completed_at", None),
            dropped_at=getattr(row, "dropped_at", None),
            completion_percentage=row.completion_percentage or 0,
            is_completed=bool(row.is_completed),
            last_accessed_at=row.last_accessed_at,
            current_module_index=getattr(row, "current_module_index", None) or 0,
            current_lecture_index=getattr(row, "current_lecture_index", None) or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "course_id": self.course_id,
            "learner_id": self.learner_id,
            "status": self.status,
            "enrolled_at": self.enrolled_at,
            "completed_at": self.completed_at,
            "dropped_at": self.dropped_at,
            "completion_percentage": self.completion_percentage,
            "is_completed": self.is_completed,
            "last_accessed_at": self.last_accessed_at,
            "current_module_index": self.current_module_index,
            "current_lecture_index": self.current_lecture_index,
        }

    def __repr__(self) -> str:
        return (
            f"<EnrollmentSummary learner={self.learner_id} course={self.course_id} "
            f"{self.status} {self.completion_percentage}%>"
        )
