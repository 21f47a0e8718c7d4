"""Student progress tracking service layer.

Business logic for:
- Lazy progress creation (auto-enrolling on first access)
- Lecture progress with video auto-completion
- Lecture quizzes, assignments and the final test
- Manual course completion and certificate issuance
- Enrollment lifecycle and summary reconciliation

Every learner action runs as one unit of work under a per-key lock:
load the record, apply the transition, issue the certificate if the course
completed, persist with a version check, reconcile the enrollment summary.
Reward events are applied after the lock is released, best-effort.
"""

from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, TypeVar
from uuid import UUID

import structlog

from src.certificates.service import CertificateService
from src.core.context import RequestContext
from src.core.locks import KeyedLock, LockTimeoutError
from src.core.redis import progress_lock_name
from src.courses.models import CourseStructure, LectureType
from src.courses.service import CourseStructureReader
from src.gamification.service import RewardService

from . import grading
from .engine import (
    LectureResult,
    Transition,
    advance,
    can_take_final_test,
    check_indexes,
    create_progress,
    on_lecture_or_quiz_completed,
    require_unlocked,
    sync_with_structure,
)
from .exceptions import (
    ConcurrentUpdateError,
    CourseNotFoundError,
    NotFoundError,
    PermissionDeniedError,
    PrerequisitesNotMetError,
    ValidationError,
)
from .models import EnrollmentStatus, EnrollmentSummary, ProgressRecord, percent
from .reconciler import reconcile
from .store import EnrollmentStore, ProgressStore


logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Video lectures auto-complete at this watched percentage
COMPLETION_THRESHOLD = 90


class ProgressService:
    """Service for learner progress tracking."""

    def __init__(
        self,
        courses: CourseStructureReader,
        progress_store: ProgressStore,
        enrollment_store: EnrollmentStore,
        certificates: CertificateService,
        rewards: RewardService | None = None,
        lock: KeyedLock | None = None,
        video_completion_threshold: int = COMPLETION_THRESHOLD,
        default_quiz_passing_score: int = 70,
        default_quiz_attempts: int = 3,
    ):
        self.courses = courses
        self.progress_store = progress_store
        self.enrollment_store = enrollment_store
        self.certificates = certificates
        self.rewards = rewards
        self.lock = lock or KeyedLock()
        self.video_completion_threshold = video_completion_threshold
        self.default_quiz_passing_score = default_quiz_passing_score
        self.default_quiz_attempts = default_quiz_attempts

    # ==========================================================================
    # Unit of Work
    # ==========================================================================

    async def _get_course(self, course_id: UUID) -> CourseStructure:
        course = await self.courses.get_course(course_id)
        if course is None:
            raise CourseNotFoundError
        return course

    @asynccontextmanager
    async def _locked(self, learner_id: UUID, course_id: UUID) -> AsyncIterator[None]:
        try:
            async with self.lock.hold(
                progress_lock_name(str(learner_id), str(course_id))
            ):
                yield
        except LockTimeoutError as e:
            raise ConcurrentUpdateError from e

    async def _load(
        self, learner_id: UUID, course: CourseStructure, now: datetime
    ) -> tuple[ProgressRecord, Transition, bool]:
        """Load or create the record and align it with the snapshot.

        Returns:
            The record, transitions caused by the sync, and whether the
            record differs from what is stored
        """
        progress = await self.progress_store.get(learner_id, course.course_id)
        if progress is None:
            progress = create_progress(learner_id, course, now)
            if await self.progress_store.create(progress):
                return progress, Transition(), False
            # Created concurrently by another worker
            progress = await self.progress_store.get(learner_id, course.course_id)
            if progress is None:
                raise ConcurrentUpdateError

        before = progress.to_dict()
        transition = sync_with_structure(progress, course, now)
        return progress, transition, progress.to_dict() != before

    async def _run(
        self,
        learner_id: UUID,
        course_id: UUID,
        action: Callable[[ProgressRecord, CourseStructure, datetime], tuple[T, Transition]],
        student_name: str = "",
        learner_action: bool = True,
    ) -> tuple[T, ProgressRecord, str | None]:
        """Apply ``action`` to the record as one serialized unit of work.

        Errors raised by ``action`` leave the stored record untouched.

        Returns:
            The action result, the saved record and the certificate id issued
            or found while completing the course
        """
        with RequestContext(user_id=learner_id, course_id=course_id):
            course = await self._get_course(course_id)
            async with self._locked(learner_id, course_id):
                now = datetime.now(UTC)
                progress, transition, _ = await self._load(learner_id, course, now)
                self._remember_name(progress, student_name)
                result, action_transition = action(progress, course, now)
                transition.merge(action_transition)
                if learner_action:
                    self._touch(progress, now)

                certificate_id = await self._issue_if_completed(progress, course)
                await self.progress_store.save(progress)
                await self._reconcile(progress)

            await self._apply_rewards(
                learner_id, course_id, transition, certificate_id is not None
            )
        return result, progress, certificate_id

    @staticmethod
    def _remember_name(progress: ProgressRecord, student_name: str) -> bool:
        """Keep the latest non-empty name the learner presented."""
        if not student_name or progress.student_name == student_name:
            return False
        progress.student_name = student_name
        return True

    @staticmethod
    def _touch(progress: ProgressRecord, now: datetime) -> None:
        today = now.date()
        if progress.last_study_date != today:
            progress.sessions_count += 1
        progress.update_streak(today)
        progress.last_accessed_at = now

    async def _issue_if_completed(
        self, progress: ProgressRecord, course: CourseStructure
    ) -> str | None:
        """Issue (or find) the certificate of a completed course.

        The name stored on the record is used, so completions triggered by an
        instructor or by a structure sync carry the learner's name too.
        """
        if not progress.is_completed:
            return None
        if progress.certificate_generated and progress.certificate_id:
            return progress.certificate_id
        certificate = await self.certificates.issue_certificate_if_eligible(
            progress, course, progress.student_name
        )
        return certificate.certificate_id if certificate else None

    async def _reconcile(self, progress: ProgressRecord) -> EnrollmentSummary:
        summary = await self.enrollment_store.get(
            progress.learner_id, progress.course_id
        )
        created = summary is None
        if summary is None:
            summary = EnrollmentSummary(
                course_id=progress.course_id,
                learner_id=progress.learner_id,
                enrolled_at=progress.enrolled_at,
            )
        summary, changed = reconcile(summary, progress)
        if created or changed:
            await self.enrollment_store.save(summary)
            if summary.is_completed and changed:
                logger.info(
                    "enrollment_completed",
                    learner_id=str(progress.learner_id),
                    course_id=str(progress.course_id),
                )
        return summary

    async def _apply_rewards(
        self,
        learner_id: UUID,
        course_id: UUID,
        transition: Transition,
        with_certificate: bool,
    ) -> None:
        """Apply reward events one by one.

        Each event is independent: a failure is logged and the remaining
        events, including course completion rewards, are still applied.
        """
        if self.rewards is None:
            return
        for event in transition.events:
            try:
                await self.rewards.apply_reward(learner_id, event)
            except Exception:
                logger.exception(
                    "reward_application_failed",
                    learner_id=str(learner_id),
                    course_id=str(course_id),
                    event_id=event.event_id,
                )
        if not transition.course_completed:
            return
        try:
            await self.rewards.record_course_completion(
                learner_id, course_id, with_certificate
            )
        except Exception:
            logger.exception(
                "completion_reward_failed",
                learner_id=str(learner_id),
                course_id=str(course_id),
            )

    # ==========================================================================
    # Progress Operations
    # ==========================================================================

    async def get_or_create_progress(
        self, learner_id: UUID, course_id: UUID, student_name: str = ""
    ) -> ProgressRecord:
        """Get the progress record, creating it (and the enrollment) lazily.

        Raises:
            CourseNotFoundError: If the course has no snapshot
        """
        course = await self._get_course(course_id)
        async with self._locked(learner_id, course_id):
            now = datetime.now(UTC)
            progress, transition, dirty = await self._load(learner_id, course, now)
            dirty = self._remember_name(progress, student_name) or dirty
            certificate_id = None
            if dirty:
                certificate_id = await self._issue_if_completed(progress, course)
                await self.progress_store.save(progress)
            await self._reconcile(progress)

        await self._apply_rewards(
            learner_id, course_id, transition, certificate_id is not None
        )
        return progress

    async def record_lecture_progress(
        self,
        learner_id: UUID,
        course_id: UUID,
        module_index: int,
        lecture_index: int,
        completed: bool | None = None,
        watched_percentage: int | None = None,
        position_seconds: int | None = None,
        time_spent: int | None = None,
        student_name: str = "",
    ) -> ProgressRecord:
        """Record watch/read progress on a lecture.

        Video lectures complete once the watched percentage reaches the
        threshold. Quiz and assignment lectures only complete by grading.

        Raises:
            InvalidIndexError: If an index is out of range
            ValidationError: If completing a graded lecture or values are out of range
            PrerequisitesNotMetError: If the module is locked
        """
        if watched_percentage is not None and not 0 <= watched_percentage <= 100:
            msg = "watched_percentage deve estar entre 0 e 100"
            raise ValidationError(msg)
        if time_spent is not None and time_spent < 0:
            msg = "time_spent nao pode ser negativo"
            raise ValidationError(msg)

        def action(
            progress: ProgressRecord, course: CourseStructure, now: datetime
        ) -> tuple[None, Transition]:
            check_indexes(course, module_index, lecture_index)
            spec = course.modules[module_index].lectures[lecture_index]
            if completed and spec.is_graded:
                msg = "Quiz e tarefa sao concluidos apenas por avaliacao"
                raise ValidationError(msg)

            complete = bool(completed)
            if (
                spec.type == LectureType.VIDEO
                and watched_percentage is not None
                and watched_percentage >= self.video_completion_threshold
            ):
                complete = True
            transition = on_lecture_or_quiz_completed(
                progress,
                course,
                module_index,
                lecture_index,
                LectureResult(
                    completed=complete,
                    watched_percentage=watched_percentage,
                    position_seconds=position_seconds,
                    time_spent=time_spent,
                ),
                now,
            )
            return None, transition

        _, progress, _ = await self._run(
            learner_id, course_id, action, student_name=student_name
        )
        return progress

    async def submit_quiz(
        self,
        learner_id: UUID,
        course_id: UUID,
        module_index: int,
        lecture_index: int,
        answers: Sequence[Any],
        student_name: str = "",
    ) -> grading.QuizSubmission:
        """Grade a lecture quiz.

        Raises:
            InvalidIndexError, ValidationError, PrerequisitesNotMetError,
            AttemptsExhaustedError
        """

        def action(
            progress: ProgressRecord, course: CourseStructure, now: datetime
        ) -> tuple[grading.QuizSubmission, Transition]:
            submission = grading.submit_quiz(
                progress,
                course,
                module_index,
                lecture_index,
                answers,
                now,
                default_passing_score=self.default_quiz_passing_score,
                default_attempts=self.default_quiz_attempts,
            )
            return submission, submission.transition

        submission, progress, _ = await self._run(
            learner_id, course_id, action, student_name=student_name
        )
        submission.progress = progress
        return submission

    async def submit_assignment(
        self,
        learner_id: UUID,
        course_id: UUID,
        module_index: int,
        lecture_index: int,
        submission_text: str | None = None,
        submission_url: str | None = None,
        time_spent: int | None = None,
        student_name: str = "",
    ) -> ProgressRecord:
        """Store an assignment submission for instructor grading.

        Raises:
            InvalidIndexError, ValidationError, PrerequisitesNotMetError
        """
        if not (submission_text or submission_url):
            msg = "Informe o texto ou a URL da entrega"
            raise ValidationError(msg)

        def action(
            progress: ProgressRecord, course: CourseStructure, now: datetime
        ) -> tuple[None, Transition]:
            check_indexes(course, module_index, lecture_index)
            spec = course.modules[module_index].lectures[lecture_index]
            if spec.type != LectureType.ASSIGNMENT:
                msg = "A aula informada nao e uma tarefa"
                raise ValidationError(msg)
            module = require_unlocked(progress, module_index)
            lecture = module.lecture(lecture_index)

            lecture.attempts += 1
            lecture.submitted_at = now
            if submission_text:
                lecture.submission_text = submission_text
            if submission_url:
                lecture.submission_url = submission_url
            transition = on_lecture_or_quiz_completed(
                progress,
                course,
                module_index,
                lecture_index,
                LectureResult(time_spent=time_spent),
                now,
            )
            logger.info(
                "assignment_submitted",
                learner_id=str(learner_id),
                course_id=str(course_id),
                module_index=module_index,
                lecture_index=lecture_index,
                attempt=lecture.attempts,
            )
            return None, transition

        _, progress, _ = await self._run(
            learner_id, course_id, action, student_name=student_name
        )
        return progress

    async def grade_assignment(
        self,
        grader_id: UUID,
        learner_id: UUID,
        course_id: UUID,
        module_index: int,
        lecture_index: int,
        score: int,
        feedback: str | None = None,
        is_admin: bool = False,
    ) -> ProgressRecord:
        """Grade a submitted assignment; a passing grade completes the lecture.

        Raises:
            PermissionDeniedError: If the grader does not teach the course
            InvalidIndexError, ValidationError, PrerequisitesNotMetError
        """

        def action(
            progress: ProgressRecord, course: CourseStructure, now: datetime
        ) -> tuple[None, Transition]:
            if (
                not is_admin
                and course.instructor_id is not None
                and course.instructor_id != grader_id
            ):
                raise PermissionDeniedError
            check_indexes(course, module_index, lecture_index)
            spec = course.modules[module_index].lectures[lecture_index]
            if spec.type != LectureType.ASSIGNMENT:
                msg = "A aula informada nao e uma tarefa"
                raise ValidationError(msg)
            assignment = spec.assignment
            max_score = assignment.max_score if assignment else 100
            passing_score = assignment.passing_score if assignment else 70
            if not 0 <= score <= max_score:
                msg = f"Nota deve estar entre 0 e {max_score}"
                raise ValidationError(msg)

            module = require_unlocked(progress, module_index)
            lecture = module.lecture(lecture_index)
            if lecture.submitted_at is None:
                msg = "Tarefa ainda nao foi entregue"
                raise ValidationError(msg)

            score_pct = percent(score, max_score)
            lecture.feedback = feedback
            lecture.graded_at = now
            lecture.graded_by = grader_id
            transition = on_lecture_or_quiz_completed(
                progress,
                course,
                module_index,
                lecture_index,
                LectureResult(completed=score_pct >= passing_score, score=score_pct),
                now,
                touch=False,
            )
            logger.info(
                "assignment_graded",
                learner_id=str(learner_id),
                course_id=str(course_id),
                grader_id=str(grader_id),
                score=score_pct,
                passed=score_pct >= passing_score,
            )
            return None, transition

        _, progress, _ = await self._run(
            learner_id, course_id, action, learner_action=False
        )
        return progress

    async def submit_final_test(
        self,
        learner_id: UUID,
        course_id: UUID,
        answers: Sequence[Any],
        time_spent: int | None = None,
        student_name: str = "",
    ) -> grading.FinalTestSubmission:
        """Grade a final test attempt; passing may complete the course.

        Raises:
            NotFoundError, PrerequisitesNotMetError, AttemptsExhaustedError,
            ValidationError
        """

        def action(
            progress: ProgressRecord, course: CourseStructure, now: datetime
        ) -> tuple[grading.FinalTestSubmission, Transition]:
            submission = grading.grade_final_test(
                progress, course, answers, time_spent, now
            )
            return submission, submission.transition

        submission, progress, certificate_id = await self._run(
            learner_id, course_id, action, student_name=student_name
        )
        submission.progress = progress
        submission.certificate_id = certificate_id
        return submission

    async def complete_course_manually(
        self, learner_id: UUID, course_id: UUID, student_name: str = ""
    ) -> ProgressRecord:
        """Complete the course when every requirement is already met.

        Completing an already completed course returns the record unchanged
        (and retries certificate issuance if a prior attempt failed).

        Raises:
            PrerequisitesNotMetError: If a module or the final test is pending
        """

        def action(
            progress: ProgressRecord, course: CourseStructure, now: datetime
        ) -> tuple[None, Transition]:
            if progress.is_completed:
                return None, Transition()
            if not can_take_final_test(progress, course):
                msg = "Conclua todos os modulos antes de finalizar o curso"
                raise PrerequisitesNotMetError(msg)
            if course.final_test_required and not progress.final_test_passed:
                msg = "Aprovacao na prova final pendente"
                raise PrerequisitesNotMetError(msg)
            return None, advance(progress, course, now)

        _, progress, _ = await self._run(
            learner_id, course_id, action, student_name=student_name
        )
        return progress

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll(
        self, learner_id: UUID, course_id: UUID, student_name: str = ""
    ) -> EnrollmentSummary:
        """Enroll a learner, re-activating a dropped enrollment.

        Enrolling twice returns the existing enrollment.

        Raises:
            CourseNotFoundError: If the course has no snapshot
        """
        course = await self._get_course(course_id)
        async with self._locked(learner_id, course_id):
            now = datetime.now(UTC)
            summary = await self.enrollment_store.get(learner_id, course_id)
            if summary is None:
                summary = EnrollmentSummary(
                    course_id=course_id, learner_id=learner_id, enrolled_at=now
                )
                await self.enrollment_store.save(summary)
                logger.info(
                    "learner_enrolled",
                    learner_id=str(learner_id),
                    course_id=str(course_id),
                )
            elif summary.is_dropped:
                summary.status = EnrollmentStatus.ACTIVE.value
                summary.dropped_at = None
                await self.enrollment_store.save(summary)
                logger.info(
                    "enrollment_reactivated",
                    learner_id=str(learner_id),
                    course_id=str(course_id),
                )

            progress, _, dirty = await self._load(learner_id, course, now)
            if self._remember_name(progress, student_name) or dirty:
                await self.progress_store.save(progress)
            return await self._reconcile(progress)

    async def drop_enrollment(
        self, learner_id: UUID, course_id: UUID
    ) -> EnrollmentSummary:
        """Mark an enrollment dropped; the progress record is kept.

        Raises:
            NotFoundError: If the learner is not enrolled
            ValidationError: If the course is already completed
        """
        async with self._locked(learner_id, course_id):
            summary = await self.enrollment_store.get(learner_id, course_id)
            if summary is None:
                msg = "Matricula nao encontrada"
                raise NotFoundError(msg)
            if summary.is_completed:
                msg = "Curso concluido nao pode ser cancelado"
                raise ValidationError(msg)
            if summary.is_dropped:
                return summary

            summary.status = EnrollmentStatus.DROPPED.value
            summary.dropped_at = datetime.now(UTC)
            await self.enrollment_store.save(summary)

        logger.info(
            "enrollment_dropped",
            learner_id=str(learner_id),
            course_id=str(course_id),
        )
        return summary

    async def get_enrollment_summary(
        self, learner_id: UUID, course_id: UUID
    ) -> EnrollmentSummary:
        """Get the enrollment summary, reconciled with the progress record.

        Raises:
            NotFoundError: If the learner is not enrolled
        """
        summary = await self.enrollment_store.get(learner_id, course_id)
        if summary is None:
            msg = "Matricula nao encontrada"
            raise NotFoundError(msg)
        return await self._reconcile_on_read(summary)

    async def list_enrollments(self, learner_id: UUID) -> list[EnrollmentSummary]:
        """Get every enrollment of a learner, reconciled."""
        summaries = await self.enrollment_store.list_for_learner(learner_id)
        return [await self._reconcile_on_read(summary) for summary in summaries]

    async def _reconcile_on_read(self, summary: EnrollmentSummary) -> EnrollmentSummary:
        progress = await self.progress_store.get(summary.learner_id, summary.course_id)
        if progress is None:
            return summary
        summary, changed = reconcile(summary, progress)
        if changed:
            await self.enrollment_store.save(summary)
            logger.info(
                "enrollment_summary_healed",
                learner_id=str(summary.learner_id),
                course_id=str(summary.course_id),
                completion_percentage=summary.completion_percentage,
            )
        return summary
