"""Shared fixtures."""

from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from src.certificates.service import CertificateService
from src.core.locks import KeyedLock
from src.courses.models import CourseStructure
from src.gamification.service import RewardService
from src.progress.service import ProgressService
from tests.fakes import (
    VERIFY_BASE_URL,
    InMemoryCertificateStore,
    InMemoryEnrollmentStore,
    InMemoryProgressStore,
    InMemoryRewardStore,
    StaticCourseReader,
    build_assessment_course,
    build_course,
)


@pytest.fixture
def learner_id() -> UUID:
    return uuid4()


@pytest.fixture
def instructor_id() -> UUID:
    return uuid4()


@pytest.fixture
def course(instructor_id: UUID) -> CourseStructure:
    """Two-module course with a final test (passing 70, two attempts)."""
    return build_course(instructor_id=instructor_id)


@pytest.fixture
def assessment_course(instructor_id: UUID) -> CourseStructure:
    return build_assessment_course(instructor_id=instructor_id)


@pytest.fixture
def course_reader(
    course: CourseStructure, assessment_course: CourseStructure
) -> StaticCourseReader:
    return StaticCourseReader(course, assessment_course)


@pytest.fixture
def progress_store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def enrollment_store() -> InMemoryEnrollmentStore:
    return InMemoryEnrollmentStore()


@pytest.fixture
def certificate_store() -> InMemoryCertificateStore:
    return InMemoryCertificateStore()


@pytest.fixture
def reward_store() -> InMemoryRewardStore:
    return InMemoryRewardStore()


@pytest.fixture
def certificate_service(
    certificate_store: InMemoryCertificateStore,
) -> CertificateService:
    return CertificateService(store=certificate_store, verify_base_url=VERIFY_BASE_URL)


@pytest.fixture
def reward_service(reward_store: InMemoryRewardStore) -> RewardService:
    return RewardService(store=reward_store)


@pytest.fixture
def progress_service(
    course_reader: StaticCourseReader,
    progress_store: InMemoryProgressStore,
    enrollment_store: InMemoryEnrollmentStore,
    certificate_service: CertificateService,
    reward_service: RewardService,
) -> ProgressService:
    """ProgressService wired to in-memory stores and a process-local lock."""
    return ProgressService(
        courses=course_reader,
        progress_store=progress_store,
        enrollment_store=enrollment_store,
        certificates=certificate_service,
        rewards=reward_service,
        lock=KeyedLock(),
    )


@pytest.fixture
def client() -> TestClient:
    """Test client without lifespan (no Cassandra or Redis)."""
    from src.main import create_app

    return TestClient(create_app())


@pytest.fixture
def api(
    client: TestClient,
    course_reader: StaticCourseReader,
    progress_service: ProgressService,
    certificate_service: CertificateService,
    reward_service: RewardService,
) -> TestClient:
    """Test client with in-memory services on app state."""
    state = client.app.state
    state.course_reader = course_reader
    state.progress_service = progress_service
    state.certificate_service = certificate_service
    state.reward_service = reward_service
    return client
