"""In-memory stores mirroring the Cassandra lightweight-transaction semantics.

Every method yields to the event loop first so concurrent tests interleave
the way separate requests would.
"""

import asyncio
from datetime import datetime
from uuid import UUID, uuid4

import orjson

from src.auth.security import create_access_token
from src.certificates.models import Certificate
from src.courses.models import (
    AssignmentSpec,
    CertificateSettings,
    CourseStructure,
    FinalTestQuestion,
    FinalTestSpec,
    LectureSpec,
    LectureType,
    ModuleSpec,
    QuestionType,
    QuizQuestion,
    QuizSpec,
)
from src.gamification.models import Badge, RewardEvent
from src.progress.exceptions import ConcurrentUpdateError
from src.progress.models import EnrollmentSummary, ProgressRecord


# ==============================================================================
# Course Builders
# ==============================================================================


FINAL_TEST_QUESTIONS = 20

VERIFY_BASE_URL = "https://cursos.example.com/certificates/verify"


def final_test_answers(correct: int, total: int = FINAL_TEST_QUESTIONS) -> list[int]:
    """Answers with ``correct`` right choices (option 0) out of ``total``."""
    return [0] * correct + [1] * (total - correct)


def build_course(
    final_test: bool = True,
    attempts: int = 2,
    passing_score: int = 70,
    minimum_score: int = 70,
    instructor_id: UUID | None = None,
) -> CourseStructure:
    """Two modules: module 0 with two lectures, module 1 with one lecture."""
    return CourseStructure(
        course_id=uuid4(),
        title="Farmacologia Basica",
        instructor_id=instructor_id,
        instructor_name="Dra. Helena",
        modules=[
            ModuleSpec(
                title="Fundamentos",
                lectures=[
                    LectureSpec(title="Introducao", type=LectureType.VIDEO, duration=10),
                    LectureSpec(title="Leitura", type=LectureType.TEXT),
                ],
            ),
            ModuleSpec(
                title="Pratica",
                lectures=[LectureSpec(title="Estudo de caso", type=LectureType.VIDEO)],
            ),
        ],
        final_test=(
            FinalTestSpec(
                questions=[
                    FinalTestQuestion(
                        type=QuestionType.MULTIPLE_CHOICE,
                        question=f"Pergunta {i}",
                        options=["certa", "errada"],
                        correct_answer=0,
                        points=1,
                    )
                    for i in range(FINAL_TEST_QUESTIONS)
                ],
                passing_score=passing_score,
                attempts=attempts,
            )
            if final_test
            else None
        ),
        certificate=CertificateSettings(minimum_score=minimum_score),
    )


def build_assessment_course(instructor_id: UUID | None = None) -> CourseStructure:
    """Module 0 holds a quiz and an assignment, module 1 a text lecture."""
    return CourseStructure(
        course_id=uuid4(),
        title="Atencao Farmaceutica",
        instructor_id=instructor_id,
        instructor_name="Prof. Marcos",
        modules=[
            ModuleSpec(
                title="Avaliacoes",
                lectures=[
                    LectureSpec(
                        title="Quiz",
                        type=LectureType.QUIZ,
                        quiz=QuizSpec(
                            questions=[
                                QuizQuestion(question="Q1", options=["a", "b"], correct_answer=0),
                                QuizQuestion(question="Q2", options=["a", "b"], correct_answer=1),
                            ],
                            passing_score=70,
                            attempts=2,
                        ),
                    ),
                    LectureSpec(
                        title="Tarefa",
                        type=LectureType.ASSIGNMENT,
                        assignment=AssignmentSpec(max_score=10, passing_score=70),
                    ),
                ],
            ),
            ModuleSpec(
                title="Encerramento",
                lectures=[LectureSpec(title="Resumo", type=LectureType.TEXT)],
            ),
        ],
    )


class StaticCourseReader:
    """Course snapshots held in memory."""

    def __init__(self, *courses: CourseStructure):
        self.courses = {course.course_id: course for course in courses}

    async def get_course(self, course_id: UUID) -> CourseStructure | None:
        await asyncio.sleep(0)
        return self.courses.get(course_id)

    async def publish(self, structure: CourseStructure) -> None:
        self.courses[structure.course_id] = structure


# ==============================================================================
# Progress & Enrollment Stores
# ==============================================================================


class InMemoryProgressStore:
    """Versioned JSON documents, like ``progress_records``."""

    def __init__(self):
        self.rows: dict[tuple[UUID, UUID], tuple[int, bytes]] = {}
        self.saves = 0

    async def get(self, learner_id: UUID, course_id: UUID) -> ProgressRecord | None:
        await asyncio.sleep(0)
        row = self.rows.get((learner_id, course_id))
        if row is None:
            return None
        version, document = row
        progress = ProgressRecord.from_dict(orjson.loads(document))
        progress.version = version
        return progress

    async def create(self, progress: ProgressRecord) -> bool:
        await asyncio.sleep(0)
        key = (progress.learner_id, progress.course_id)
        if key in self.rows:
            return False
        progress.version = 1
        self.rows[key] = (1, orjson.dumps(progress.to_dict()))
        return True

    async def save(self, progress: ProgressRecord) -> None:
        await asyncio.sleep(0)
        key = (progress.learner_id, progress.course_id)
        stored_version, _ = self.rows[key]
        if stored_version != progress.version:
            raise ConcurrentUpdateError
        progress.version += 1
        self.rows[key] = (progress.version, orjson.dumps(progress.to_dict()))
        self.saves += 1

    def version(self, learner_id: UUID, course_id: UUID) -> int:
        return self.rows[(learner_id, course_id)][0]


class InMemoryEnrollmentStore:
    def __init__(self):
        self.rows: dict[tuple[UUID, UUID], dict] = {}

    async def get(self, learner_id: UUID, course_id: UUID) -> EnrollmentSummary | None:
        await asyncio.sleep(0)
        data = self.rows.get((learner_id, course_id))
        return EnrollmentSummary(**data) if data else None

    async def save(self, summary: EnrollmentSummary) -> None:
        await asyncio.sleep(0)
        self.rows[(summary.learner_id, summary.course_id)] = summary.to_dict()

    async def list_for_learner(self, learner_id: UUID) -> list[EnrollmentSummary]:
        await asyncio.sleep(0)
        summaries = [
            EnrollmentSummary(**data)
            for (learner, _), data in self.rows.items()
            if learner == learner_id
        ]
        return sorted(summaries, key=lambda s: s.enrolled_at, reverse=True)


# ==============================================================================
# Certificate Store
# ==============================================================================


class InMemoryCertificateStore:
    """Certificates plus the by-code and by-student claim tables."""

    def __init__(self):
        self.certificates: dict[str, Certificate] = {}
        self.codes: dict[str, str] = {}
        self.by_student: dict[tuple[UUID, UUID], str] = {}

    @staticmethod
    def _copy(certificate: Certificate) -> Certificate:
        return Certificate(**certificate.to_dict())

    async def get(self, certificate_id: str) -> Certificate | None:
        await asyncio.sleep(0)
        certificate = self.certificates.get(certificate_id)
        return self._copy(certificate) if certificate else None

    async def get_by_code(self, verification_code: str) -> Certificate | None:
        await asyncio.sleep(0)
        certificate_id = self.codes.get(verification_code)
        return await self.get(certificate_id) if certificate_id else None

    async def get_by_student(
        self, student_id: UUID, course_id: UUID
    ) -> Certificate | None:
        await asyncio.sleep(0)
        certificate_id = self.by_student.get((student_id, course_id))
        return await self.get(certificate_id) if certificate_id else None

    async def list_for_student(self, student_id: UUID) -> list[Certificate]:
        await asyncio.sleep(0)
        return [
            self._copy(self.certificates[certificate_id])
            for (student, _), certificate_id in self.by_student.items()
            if student == student_id and certificate_id in self.certificates
        ]

    async def insert(self, certificate: Certificate) -> bool:
        await asyncio.sleep(0)
        if certificate.certificate_id in self.certificates:
            return False
        self.certificates[certificate.certificate_id] = self._copy(certificate)
        return True

    async def claim_code(self, verification_code: str, certificate_id: str) -> bool:
        await asyncio.sleep(0)
        if verification_code in self.codes:
            return False
        self.codes[verification_code] = certificate_id
        return True

    async def claim_student(
        self, student_id: UUID, course_id: UUID, certificate_id: str, issued_at: datetime
    ) -> str | None:
        await asyncio.sleep(0)
        key = (student_id, course_id)
        if key in self.by_student:
            return self.by_student[key]
        self.by_student[key] = certificate_id
        return None

    async def release_code(self, verification_code: str, certificate_id: str) -> None:
        await asyncio.sleep(0)
        if self.codes.get(verification_code) == certificate_id:
            del self.codes[verification_code]

    async def discard(self, certificate: Certificate) -> None:
        await self.release_code(certificate.verification_code, certificate.certificate_id)
        self.certificates.pop(certificate.certificate_id, None)

    async def record_download(
        self, certificate_id: str, downloaded_at: datetime
    ) -> int:
        await asyncio.sleep(0)
        certificate = self.certificates[certificate_id]
        certificate.download_count += 1
        certificate.last_downloaded_at = downloaded_at
        return certificate.download_count


# ==============================================================================
# Reward Store
# ==============================================================================


class InMemoryRewardStore:
    def __init__(self):
        self.events: dict[tuple[UUID, str], RewardEvent] = {}
        self.xp: dict[UUID, int] = {}
        self.badges: dict[tuple[UUID, str], Badge] = {}
        self.completions: set[tuple[UUID, UUID]] = set()

    async def record_event(self, event: RewardEvent, applied_at: datetime) -> bool:
        await asyncio.sleep(0)
        key = (event.learner_id, event.event_id)
        if key in self.events:
            return False
        self.events[key] = event
        return True

    async def add_xp(self, learner_id: UUID, delta: int) -> None:
        self.xp[learner_id] = self.xp.get(learner_id, 0) + delta

    async def get_xp(self, learner_id: UUID) -> int:
        return self.xp.get(learner_id, 0)

    async def grant_badge(
        self, learner_id: UUID, badge: str, course_id: UUID | None, awarded_at: datetime
    ) -> bool:
        key = (learner_id, badge)
        if key in self.badges:
            return False
        self.badges[key] = Badge(learner_id, badge, course_id, awarded_at)
        return True

    async def list_badges(self, learner_id: UUID) -> list[Badge]:
        return [b for (learner, _), b in self.badges.items() if learner == learner_id]

    async def record_completion(
        self, learner_id: UUID, course_id: UUID, completed_at: datetime
    ) -> bool:
        key = (learner_id, course_id)
        if key in self.completions:
            return False
        self.completions.add(key)
        return True

    async def count_completions(self, learner_id: UUID) -> int:
        return sum(1 for learner, _ in self.completions if learner == learner_id)

    def badge_names(self, learner_id: UUID) -> set[str]:
        return {badge for learner, badge in self.badges if learner == learner_id}


class FailingRewardStore(InMemoryRewardStore):
    """Reward store whose XP writes fail, for every delta or only the given ones."""

    def __init__(self, failing_deltas: set[int] | None = None):
        super().__init__()
        self.failing_deltas = failing_deltas

    async def add_xp(self, learner_id: UUID, delta: int) -> None:
        if self.failing_deltas is None or delta in self.failing_deltas:
            msg = "xp counter unavailable"
            raise RuntimeError(msg)
        await super().add_xp(learner_id, delta)


# ==============================================================================
# Auth
# ==============================================================================


def bearer(user_id: UUID, role: str = "student", name: str = "Ana Souza") -> dict:
    """Authorization header with a fresh access token."""
    token = create_access_token({"sub": str(user_id), "role": role, "name": name})
    return {"Authorization": f"Bearer {token}"}
