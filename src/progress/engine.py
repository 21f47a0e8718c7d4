"""Module unlock engine.

Pure state transitions on a ``ProgressRecord`` against a course snapshot:
- Seeding a new record (module 0 unlocked, every other module locked)
- Synchronising a record with a snapshot that gained modules or lectures
- Applying a lecture/quiz result, completing modules and unlocking the next
- Recomputing ``overall_progress`` and the course state

Nothing here touches storage. Callers persist the record and apply the
returned reward events.
"""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

import structlog

from src.courses.models import CourseStructure
from src.gamification.models import RewardEvent

from .exceptions import InvalidIndexError, PrerequisitesNotMetError
from .models import (
    CourseState,
    LectureProgress,
    ModuleProgress,
    ModuleState,
    ProgressRecord,
    percent,
)


logger = structlog.get_logger(__name__)


@dataclass
class LectureResult:
    """Update applied to one lecture.

    ``completed`` is only ever raised; ``None`` fields are left untouched.
    """

    completed: bool | None = None
    watched_percentage: int | None = None
    score: int | None = None
    position_seconds: int | None = None
    time_spent: int | None = None


@dataclass
class Transition:
    """What changed while applying an event."""

    lecture_completed: bool = False
    completed_modules: list[int] = field(default_factory=list)
    unlocked_modules: list[int] = field(default_factory=list)
    course_completed: bool = False
    events: list[RewardEvent] = field(default_factory=list)

    def merge(self, other: "Transition") -> None:
        self.lecture_completed = self.lecture_completed or other.lecture_completed
        self.completed_modules.extend(other.completed_modules)
        self.unlocked_modules.extend(other.unlocked_modules)
        self.course_completed = self.course_completed or other.course_completed
        self.events.extend(other.events)


# ==============================================================================
# Creation & Synchronisation
# ==============================================================================


def create_progress(
    learner_id: UUID, course: CourseStructure, now: datetime
) -> ProgressRecord:
    """Seed a progress record with module 0 unlocked."""
    modules = [
        ModuleProgress(
            module_index=i,
            lectures=[
                LectureProgress(lecture_index=j) for j in range(len(module.lectures))
            ],
        )
        for i, module in enumerate(course.modules)
    ]
    progress = ProgressRecord(
        learner_id=learner_id,
        course_id=course.course_id,
        modules=modules,
        enrolled_at=now,
    )
    if modules:
        modules[0].unlock(now)
    advance(progress, course, now)
    return progress


def sync_with_structure(
    progress: ProgressRecord, course: CourseStructure, now: datetime
) -> Transition:
    """Align a record with the snapshot it is evaluated against.

    Modules and lectures added after enrollment are appended. A completed
    course stays completed; a new module only unlocks when its predecessor
    is already completed.
    """
    for i, module in enumerate(course.modules):
        if i >= len(progress.modules):
            progress.modules.append(ModuleProgress(module_index=i))
        module_progress = progress.modules[i]
        if len(module.lectures) > len(module_progress.lectures):
            module_progress.lecture(len(module.lectures) - 1)
    if progress.modules and not progress.modules[0].is_unlocked:
        progress.modules[0].unlock(now)
    return advance(progress, course, now)


# ==============================================================================
# Index Validation
# ==============================================================================


def check_indexes(
    course: CourseStructure, module_index: int, lecture_index: int | None = None
) -> None:
    """Validate indexes against the snapshot.

    Raises:
        InvalidIndexError: If an index is out of range
    """
    if not 0 <= module_index < course.total_modules:
        msg = f"Modulo {module_index} fora do intervalo"
        raise InvalidIndexError(msg)
    if lecture_index is not None and not (
        0 <= lecture_index < course.lecture_count(module_index)
    ):
        msg = f"Aula {lecture_index} fora do intervalo do modulo {module_index}"
        raise InvalidIndexError(msg)


def require_unlocked(progress: ProgressRecord, module_index: int) -> ModuleProgress:
    """Get an unlocked module.

    Raises:
        PrerequisitesNotMetError: If the module is still locked
    """
    module = progress.modules[module_index]
    if not module.is_unlocked:
        msg = f"Modulo {module_index} bloqueado; conclua o modulo anterior"
        raise PrerequisitesNotMetError(msg)
    return module


# ==============================================================================
# Transitions
# ==============================================================================


def on_lecture_or_quiz_completed(
    progress: ProgressRecord,
    course: CourseStructure,
    module_index: int,
    lecture_index: int,
    result: LectureResult,
    now: datetime,
    quiz: bool = False,
    touch: bool = True,
) -> Transition:
    """Apply a lecture/quiz result and cascade module and course transitions.

    ``touch`` moves the resume cursor; grading done by an instructor leaves
    it where the learner was.

    Raises:
        InvalidIndexError: If an index is out of range (record untouched)
        PrerequisitesNotMetError: If the module is locked (record untouched)
    """
    check_indexes(course, module_index, lecture_index)
    module = require_unlocked(progress, module_index)
    lecture = module.lecture(lecture_index)

    if result.watched_percentage is not None:
        lecture.watched_percentage = max(
            lecture.watched_percentage, min(100, max(0, result.watched_percentage))
        )
    if result.position_seconds is not None:
        lecture.last_position_seconds = max(0, result.position_seconds)
    if result.score is not None:
        lecture.score = result.score
    if result.time_spent:
        lecture.time_spent += result.time_spent
        module.time_spent += result.time_spent
        progress.total_time_spent += result.time_spent

    if touch:
        if module.started_at is None:
            module.started_at = now
        if progress.started_at is None:
            progress.started_at = now
        progress.current_module_index = module_index
        progress.current_lecture_index = lecture_index
        progress.last_accessed_at = now

    transition = Transition()
    if result.completed and not lecture.completed:
        lecture.completed = True
        lecture.completed_at = now
        transition.lecture_completed = True
        factory = RewardEvent.quiz_passed if quiz else RewardEvent.lecture_completed
        transition.events.append(
            factory(progress.learner_id, progress.course_id, module_index, lecture_index)
        )
        logger.info(
            "lecture_completed",
            learner_id=str(progress.learner_id),
            course_id=str(progress.course_id),
            module_index=module_index,
            lecture_index=lecture_index,
        )

    transition.merge(advance(progress, course, now))
    return transition


def advance(
    progress: ProgressRecord, course: CourseStructure, now: datetime
) -> Transition:
    """Complete finished modules in order, unlock successors, recompute course.

    Module completion is decided by counting completed lectures against the
    snapshot's lecture count. Completed modules are never reopened.
    """
    transition = Transition()
    for i, module in enumerate(progress.modules[: course.total_modules]):
        if not module.is_unlocked:
            break
        if not module.completed:
            total = course.lecture_count(i)
            done = sum(1 for lp in module.lectures[:total] if lp.completed)
            module.completion_percentage = percent(done, total)
            if done >= total:
                module.complete(now)
                module.completion_percentage = 100
                transition.completed_modules.append(i)
                logger.info(
                    "module_completed",
                    learner_id=str(progress.learner_id),
                    course_id=str(progress.course_id),
                    module_index=i,
                )
        if module.completed and i + 1 < len(progress.modules):
            if progress.modules[i + 1].unlock(now):
                transition.unlocked_modules.append(i + 1)
                logger.info(
                    "module_unlocked",
                    learner_id=str(progress.learner_id),
                    course_id=str(progress.course_id),
                    module_index=i + 1,
                )

    progress.overall_progress = percent(
        sum(1 for m in progress.modules[: course.total_modules] if m.completed),
        course.total_modules,
    )
    transition.course_completed = recompute_course_state(progress, course, now)
    return transition


def recompute_course_state(
    progress: ProgressRecord, course: CourseStructure, now: datetime
) -> bool:
    """Recompute the course state. Returns True on the transition to completed."""
    if progress.is_completed:
        return False

    modules_done = course.total_modules > 0 and all(
        m.completed for m in progress.modules[: course.total_modules]
    )
    if not modules_done:
        progress.state = CourseState.IN_PROGRESS.value
        return False
    if course.final_test_required and not progress.final_test_passed:
        progress.state = CourseState.AWAITING_FINAL_TEST.value
        return False

    progress.state = CourseState.COMPLETED.value
    progress.completed_at = now
    logger.info(
        "course_completed",
        learner_id=str(progress.learner_id),
        course_id=str(progress.course_id),
    )
    return True


def can_take_final_test(progress: ProgressRecord, course: CourseStructure) -> bool:
    """Every module of the snapshot must be completed."""
    return (
        course.total_modules > 0
        and len(progress.modules) >= course.total_modules
        and all(
            m.state == ModuleState.COMPLETED.value
            for m in progress.modules[: course.total_modules]
        )
    )
