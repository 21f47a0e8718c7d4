"""Tests for the module unlock engine."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from src.courses.models import CourseStructure, LectureSpec, ModuleSpec
from src.gamification.models import RewardEventType
from src.progress.engine import (
    LectureResult,
    advance,
    can_take_final_test,
    create_progress,
    on_lecture_or_quiz_completed,
    sync_with_structure,
)
from src.progress.exceptions import InvalidIndexError, PrerequisitesNotMetError
from src.progress.models import CourseState, ModuleState, ProgressRecord
from tests.fakes import build_course


NOW = datetime(2026, 3, 2, 14, 30, tzinfo=UTC)


def complete(progress: ProgressRecord, course: CourseStructure, m: int, lec: int):
    return on_lecture_or_quiz_completed(
        progress, course, m, lec, LectureResult(completed=True), NOW
    )


@pytest.fixture
def course() -> CourseStructure:
    return build_course()


@pytest.fixture
def progress(course: CourseStructure) -> ProgressRecord:
    return create_progress(uuid4(), course, NOW)


class TestCreateProgress:
    def test_first_module_unlocked(self, progress: ProgressRecord) -> None:
        assert progress.modules[0].state == ModuleState.UNLOCKED.value
        assert progress.modules[0].unlocked_at == NOW
        assert progress.modules[1].state == ModuleState.LOCKED.value

    def test_lectures_mirror_structure(self, progress: ProgressRecord) -> None:
        assert [len(m.lectures) for m in progress.modules] == [2, 1]
        assert progress.overall_progress == 0
        assert progress.state == CourseState.IN_PROGRESS.value

    def test_course_without_modules_never_completes(self) -> None:
        empty = CourseStructure(course_id=uuid4(), title="Vazio")
        progress = create_progress(uuid4(), empty, NOW)
        assert progress.modules == []
        assert progress.is_completed is False
        assert progress.overall_progress == 0


class TestLectureCompletion:
    def test_module_completes_and_unlocks_next(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        first = complete(progress, course, 0, 0)
        assert first.lecture_completed is True
        assert first.completed_modules == []
        assert progress.modules[0].completion_percentage == 50

        second = complete(progress, course, 0, 1)
        assert second.completed_modules == [0]
        assert second.unlocked_modules == [1]
        assert progress.modules[0].completed
        assert progress.modules[1].is_unlocked
        assert progress.overall_progress == 50

    def test_resubmission_is_idempotent(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        complete(progress, course, 0, 0)
        completed_at = progress.modules[0].lectures[0].completed_at

        again = complete(progress, course, 0, 0)

        assert again.lecture_completed is False
        assert again.events == []
        assert progress.modules[0].lectures[0].completed_at == completed_at
        assert progress.overall_progress == 0

    def test_completion_emits_lecture_event(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        transition = complete(progress, course, 0, 1)
        assert [e.event_type for e in transition.events] == [
            RewardEventType.LECTURE_COMPLETED
        ]
        assert transition.events[0].subject == "0.1"

    def test_quiz_flag_emits_quiz_event(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        transition = on_lecture_or_quiz_completed(
            progress, course, 0, 0, LectureResult(completed=True), NOW, quiz=True
        )
        assert transition.events[0].event_type == RewardEventType.QUIZ_PASSED

    def test_locked_module_rejected_without_mutation(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        before = progress.to_dict()
        with pytest.raises(PrerequisitesNotMetError):
            complete(progress, course, 1, 0)
        assert progress.to_dict() == before

    @pytest.mark.parametrize("module_index,lecture_index", [(2, 0), (0, 2), (-1, 0)])
    def test_invalid_index_rejected_without_mutation(
        self,
        progress: ProgressRecord,
        course: CourseStructure,
        module_index: int,
        lecture_index: int,
    ) -> None:
        before = progress.to_dict()
        with pytest.raises(InvalidIndexError):
            complete(progress, course, module_index, lecture_index)
        assert progress.to_dict() == before

    def test_watch_progress_keeps_maximum(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        on_lecture_or_quiz_completed(
            progress,
            course,
            0,
            0,
            LectureResult(watched_percentage=60, position_seconds=120, time_spent=30),
            NOW,
        )
        on_lecture_or_quiz_completed(
            progress,
            course,
            0,
            0,
            LectureResult(watched_percentage=40, position_seconds=80, time_spent=15),
            NOW,
        )
        lecture = progress.modules[0].lectures[0]
        assert lecture.watched_percentage == 60
        assert lecture.last_position_seconds == 80
        assert lecture.time_spent == 45
        assert progress.total_time_spent == 45
        assert lecture.completed is False

    def test_cursor_follows_learner(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        complete(progress, course, 0, 1)
        assert (progress.current_module_index, progress.current_lecture_index) == (0, 1)
        assert progress.started_at == NOW
        assert progress.last_accessed_at == NOW


class TestCourseState:
    def test_awaits_final_test_after_modules(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        complete(progress, course, 0, 0)
        complete(progress, course, 0, 1)
        transition = complete(progress, course, 1, 0)

        assert transition.course_completed is False
        assert progress.state == CourseState.AWAITING_FINAL_TEST.value
        assert progress.overall_progress == 100
        assert can_take_final_test(progress, course)

    def test_completes_without_final_test(self) -> None:
        course = build_course(final_test=False)
        progress = create_progress(uuid4(), course, NOW)
        complete(progress, course, 0, 0)
        complete(progress, course, 0, 1)
        transition = complete(progress, course, 1, 0)

        assert transition.course_completed is True
        assert progress.is_completed
        assert progress.completed_at == NOW

    def test_completion_reported_once(self) -> None:
        course = build_course(final_test=False)
        progress = create_progress(uuid4(), course, NOW)
        for m, lec in [(0, 0), (0, 1), (1, 0)]:
            complete(progress, course, m, lec)
        assert advance(progress, course, NOW).course_completed is False

    def test_empty_module_completes_once_unlocked(self) -> None:
        course = CourseStructure(
            course_id=uuid4(),
            title="Com modulo vazio",
            modules=[
                ModuleSpec(title="A", lectures=[LectureSpec(title="Aula")]),
                ModuleSpec(title="Vazio"),
            ],
        )
        progress = create_progress(uuid4(), course, NOW)
        assert progress.modules[1].state == ModuleState.LOCKED.value

        transition = complete(progress, course, 0, 0)

        assert transition.completed_modules == [0, 1]
        assert transition.course_completed is True


class TestSyncWithStructure:
    def test_appends_added_lectures(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        grown = course.model_copy(
            update={
                "modules": [
                    course.modules[0].model_copy(
                        update={
                            "lectures": [
                                *course.modules[0].lectures,
                                LectureSpec(title="Nova aula"),
                            ]
                        }
                    ),
                    course.modules[1],
                ]
            }
        )
        sync_with_structure(progress, grown, NOW)
        assert len(progress.modules[0].lectures) == 3

    def test_completed_course_stays_completed(self) -> None:
        course = build_course(final_test=False)
        progress = create_progress(uuid4(), course, NOW)
        for m, lec in [(0, 0), (0, 1), (1, 0)]:
            complete(progress, course, m, lec)

        grown = course.model_copy(
            update={"modules": [*course.modules, ModuleSpec(title="Extra")]}
        )
        later = NOW + timedelta(days=3)
        transition = sync_with_structure(progress, grown, later)

        assert progress.is_completed
        assert progress.completed_at == NOW
        assert transition.course_completed is False
        assert progress.modules[2].is_unlocked

    def test_new_module_stays_locked_behind_incomplete(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        extra = ModuleSpec(title="Extra", lectures=[LectureSpec(title="X")])
        grown = course.model_copy(update={"modules": [*course.modules, extra]})
        sync_with_structure(progress, grown, NOW)
        assert progress.modules[2].state == ModuleState.LOCKED.value

    def test_unlock_is_monotonic(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> None:
        complete(progress, course, 0, 0)
        complete(progress, course, 0, 1)
        for _ in range(3):
            sync_with_structure(progress, course, NOW)
            advance(progress, course, NOW)
        assert progress.modules[1].is_unlocked
        assert progress.modules[0].completed
