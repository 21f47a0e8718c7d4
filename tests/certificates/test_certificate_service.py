"""Tests for certificate issuance, lookup and downloads."""

import asyncio
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from src.certificates import service as certificate_module
from src.certificates.service import (
    CertificateIssueError,
    CertificateNotFoundError,
    CertificateService,
)
from src.courses.models import CertificateSettings, CourseStructure
from src.progress import grading
from src.progress.engine import (
    LectureResult,
    create_progress,
    on_lecture_or_quiz_completed,
)
from src.progress.models import ProgressRecord
from tests.fakes import (
    VERIFY_BASE_URL,
    InMemoryCertificateStore,
    build_course,
    final_test_answers,
)


NOW = datetime(2026, 3, 2, 14, 30, tzinfo=UTC)


def completed_progress(
    course: CourseStructure, learner_id: UUID, correct: int = 17
) -> ProgressRecord:
    progress = create_progress(learner_id, course, NOW)
    for m, module in enumerate(course.modules):
        for lec in range(len(module.lectures)):
            on_lecture_or_quiz_completed(
                progress, course, m, lec, LectureResult(completed=True), NOW
            )
    if course.final_test_required:
        grading.grade_final_test(progress, course, final_test_answers(correct), None, NOW)
    return progress


class TestIssuance:
    async def test_issues_snapshot_of_names_and_score(
        self,
        certificate_service: CertificateService,
        course: CourseStructure,
        learner_id: UUID,
    ) -> None:
        progress = completed_progress(course, learner_id)
        progress.total_time_spent = 5400

        certificate = await certificate_service.issue_certificate_if_eligible(
            progress, course, "Ana Souza"
        )

        assert certificate.student_name == "Ana Souza"
        assert certificate.course_name == course.title
        assert certificate.instructor_name == course.instructor_name
        assert certificate.final_score == 85
        assert certificate.grade == "B"
        assert certificate.total_time_spent == 1.5
        assert certificate.shareable_url == (
            f"{VERIFY_BASE_URL}/{certificate.verification_code}"
        )
        assert progress.certificate_generated is True
        assert progress.certificate_id == certificate.certificate_id

    async def test_second_issue_returns_first(
        self,
        certificate_service: CertificateService,
        certificate_store: InMemoryCertificateStore,
        course: CourseStructure,
        learner_id: UUID,
    ) -> None:
        first = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course, "Ana"
        )
        # Fresh record without certificate flags
        second = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course, "Ana"
        )

        assert second.certificate_id == first.certificate_id
        assert len(certificate_store.certificates) == 1

    async def test_concurrent_issue_keeps_one(
        self,
        certificate_service: CertificateService,
        certificate_store: InMemoryCertificateStore,
        course: CourseStructure,
        learner_id: UUID,
    ) -> None:
        results = await asyncio.gather(
            *[
                certificate_service.issue_certificate_if_eligible(
                    completed_progress(course, learner_id), course, "Ana"
                )
                for _ in range(5)
            ]
        )

        assert len({c.certificate_id for c in results}) == 1
        assert len(certificate_store.certificates) == 1
        assert len(certificate_store.codes) == 1

    async def test_no_course_without_final_test_scores_100(
        self, certificate_service: CertificateService, learner_id: UUID
    ) -> None:
        course = build_course(final_test=False)
        certificate = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course
        )
        assert certificate.final_score == 100
        assert certificate.grade == "A+"

    async def test_not_eligible_before_passing(
        self,
        certificate_service: CertificateService,
        course: CourseStructure,
        learner_id: UUID,
    ) -> None:
        progress = completed_progress(course, learner_id, correct=10)
        assert await certificate_service.issue_certificate_if_eligible(
            progress, course
        ) is None
        assert progress.certificate_generated is False

    async def test_minimum_score_above_passing(
        self, certificate_service: CertificateService, learner_id: UUID
    ) -> None:
        course = build_course(passing_score=70, minimum_score=90)
        progress = completed_progress(course, learner_id, correct=17)
        assert progress.is_completed
        assert await certificate_service.issue_certificate_if_eligible(
            progress, course
        ) is None

    async def test_disabled_certificates(
        self, certificate_service: CertificateService, learner_id: UUID
    ) -> None:
        course = build_course().model_copy(
            update={"certificate": CertificateSettings(is_enabled=False)}
        )
        assert await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course
        ) is None

    async def test_retries_on_code_collision(
        self,
        certificate_service: CertificateService,
        certificate_store: InMemoryCertificateStore,
        course: CourseStructure,
        learner_id: UUID,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        certificate_store.codes["TAKENAAA"] = "CERT-OTHER"
        codes = iter(["TAKENAAA", "FRESHBBB"])
        monkeypatch.setattr(
            certificate_module, "generate_verification_code", lambda length: next(codes)
        )

        certificate = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course
        )

        assert certificate.verification_code == "FRESHBBB"
        assert certificate_store.codes["TAKENAAA"] == "CERT-OTHER"

    async def test_retries_on_id_collision(
        self,
        certificate_service: CertificateService,
        certificate_store: InMemoryCertificateStore,
        course: CourseStructure,
        learner_id: UUID,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        existing = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, uuid4()), course
        )
        ids = iter([existing.certificate_id, "CERT-NEW-AAAAAAAA"])
        monkeypatch.setattr(
            certificate_module, "generate_certificate_id", lambda now: next(ids)
        )

        certificate = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course
        )

        assert certificate.certificate_id == "CERT-NEW-AAAAAAAA"
        # The code claimed for the colliding id is released
        assert set(certificate_store.codes.values()) == {
            existing.certificate_id,
            "CERT-NEW-AAAAAAAA",
        }

    async def test_exhausted_attempts(
        self,
        certificate_store: InMemoryCertificateStore,
        course: CourseStructure,
        learner_id: UUID,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        service = CertificateService(store=certificate_store, max_attempts=3)
        certificate_store.codes["SAMECODE"] = "CERT-OTHER"
        monkeypatch.setattr(
            certificate_module, "generate_verification_code", lambda length: "SAMECODE"
        )
        progress = completed_progress(course, learner_id)

        with pytest.raises(CertificateIssueError):
            await service.issue_certificate_if_eligible(progress, course)
        assert progress.certificate_generated is False
        assert certificate_store.by_student == {}


class TestLookup:
    async def test_verify_is_case_insensitive(
        self,
        certificate_service: CertificateService,
        course: CourseStructure,
        learner_id: UUID,
    ) -> None:
        issued = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course
        )
        found = await certificate_service.verify_certificate(
            f" {issued.verification_code.lower()} "
        )
        assert found.certificate_id == issued.certificate_id

    async def test_verify_unknown_code(
        self, certificate_service: CertificateService
    ) -> None:
        with pytest.raises(CertificateNotFoundError):
            await certificate_service.verify_certificate("ZZZZZZZZ")

    async def test_list_newest_first(
        self,
        certificate_service: CertificateService,
        certificate_store: InMemoryCertificateStore,
        learner_id: UUID,
    ) -> None:
        first_course, second_course = build_course(), build_course()
        first = await certificate_service.issue_certificate_if_eligible(
            completed_progress(first_course, learner_id), first_course
        )
        second = await certificate_service.issue_certificate_if_eligible(
            completed_progress(second_course, learner_id), second_course
        )
        certificate_store.certificates[first.certificate_id].issued_at = (
            second.issued_at - timedelta(days=1)
        )

        certificates = await certificate_service.list_certificates(learner_id)

        assert [c.certificate_id for c in certificates] == [
            second.certificate_id,
            first.certificate_id,
        ]


class TestDownloads:
    async def test_counts_downloads(
        self,
        certificate_service: CertificateService,
        course: CourseStructure,
        learner_id: UUID,
    ) -> None:
        issued = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course
        )
        await certificate_service.record_download(learner_id, issued.certificate_id)
        certificate = await certificate_service.record_download(
            learner_id, issued.certificate_id
        )

        assert certificate.download_count == 2
        assert certificate.last_downloaded_at is not None
        stored = await certificate_service.get_certificate(learner_id, course.course_id)
        assert stored.download_count == 2

    async def test_concurrent_downloads_all_counted(
        self,
        certificate_service: CertificateService,
        course: CourseStructure,
        learner_id: UUID,
    ) -> None:
        issued = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course
        )

        await asyncio.gather(
            *(
                certificate_service.record_download(learner_id, issued.certificate_id)
                for _ in range(5)
            )
        )

        stored = await certificate_service.get_certificate(learner_id, course.course_id)
        assert stored.download_count == 5

    async def test_other_learner_cannot_download(
        self,
        certificate_service: CertificateService,
        course: CourseStructure,
        learner_id: UUID,
    ) -> None:
        issued = await certificate_service.issue_certificate_if_eligible(
            completed_progress(course, learner_id), course
        )
        with pytest.raises(CertificateNotFoundError):
            await certificate_service.record_download(uuid4(), issued.certificate_id)
