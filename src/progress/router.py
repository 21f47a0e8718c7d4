"""Learner progress API endpoints.

Provides routes for:
- Progress queries (lazily created on first access)
- Lecture progress updates (throttled from frontend)
- Quiz, assignment and final test submissions
- Manual completion and the learner's certificate
- Course enrollment
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.auth.dependencies import CurrentUser, InstructorUser
from src.auth.permissions import is_admin
from src.certificates.dependencies import CertificateServiceDep
from src.certificates.schemas import CertificateResponse

from .dependencies import ProgressServiceDep, handle_progress_error
from .exceptions import ProgressError
from .schemas import (
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    FinalTestResultResponse,
    GradeAssignmentRequest,
    ProgressResponse,
    QuizResultResponse,
    SubmitAssignmentRequest,
    SubmitFinalTestRequest,
    SubmitQuizRequest,
    UpdateLectureProgressRequest,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])
enrollments_router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


# ==============================================================================
# Progress Endpoints
# ==============================================================================


@router.get(
    "/{course_id}",
    response_model=ProgressResponse,
    summary="Get course progress",
)
async def get_course_progress(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressResponse:
    """Get full progress for a course, creating it on first access."""
    try:
        progress = await progress_service.get_or_create_progress(
            user.id, course_id, student_name=user.name
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return ProgressResponse.from_entity(progress)


@router.put(
    "/{course_id}/lecture",
    response_model=ProgressResponse,
    summary="Update lecture progress",
)
async def update_lecture_progress(
    course_id: UUID,
    data: UpdateLectureProgressRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressResponse:
    """Update watch/read progress of a lecture.

    Video lectures auto-complete when >= 90% watched.
    """
    try:
        progress = await progress_service.record_lecture_progress(
            learner_id=user.id,
            course_id=course_id,
            module_index=data.module_index,
            lecture_index=data.lecture_index,
            completed=data.completed,
            watched_percentage=data.watched_percentage,
            position_seconds=data.position_seconds,
            time_spent=data.time_spent,
            student_name=user.name,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return ProgressResponse.from_entity(progress)


# ==============================================================================
# Assessment Endpoints
# ==============================================================================


@router.post(
    "/{course_id}/quiz",
    response_model=QuizResultResponse,
    summary="Submit lecture quiz",
)
async def submit_quiz(
    course_id: UUID,
    data: SubmitQuizRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> QuizResultResponse:
    """Grade a lecture quiz; a passing score completes the lecture."""
    try:
        submission = await progress_service.submit_quiz(
            learner_id=user.id,
            course_id=course_id,
            module_index=data.module_index,
            lecture_index=data.lecture_index,
            answers=data.answers,
            student_name=user.name,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return QuizResultResponse.from_submission(submission)


@router.post(
    "/{course_id}/assignment",
    response_model=ProgressResponse,
    summary="Submit assignment",
)
async def submit_assignment(
    course_id: UUID,
    data: SubmitAssignmentRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressResponse:
    """Submit an assignment for instructor grading."""
    try:
        progress = await progress_service.submit_assignment(
            learner_id=user.id,
            course_id=course_id,
            module_index=data.module_index,
            lecture_index=data.lecture_index,
            submission_text=data.submission_text,
            submission_url=data.submission_url,
            time_spent=data.time_spent,
            student_name=user.name,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return ProgressResponse.from_entity(progress)


@router.post(
    "/{course_id}/assignment/grade",
    response_model=ProgressResponse,
    summary="Grade assignment (instructor)",
)
async def grade_assignment(
    course_id: UUID,
    data: GradeAssignmentRequest,
    progress_service: ProgressServiceDep,
    user: InstructorUser,
) -> ProgressResponse:
    """Grade a learner's assignment. Requires INSTRUCTOR or ADMIN role."""
    try:
        progress = await progress_service.grade_assignment(
            grader_id=user.id,
            learner_id=data.learner_id,
            course_id=course_id,
            module_index=data.module_index,
            lecture_index=data.lecture_index,
            score=data.score,
            feedback=data.feedback,
            is_admin=is_admin(user.role),
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return ProgressResponse.from_entity(progress)


@router.post(
    "/{course_id}/final-test",
    response_model=FinalTestResultResponse,
    summary="Submit final test",
)
async def submit_final_test(
    course_id: UUID,
    data: SubmitFinalTestRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> FinalTestResultResponse:
    """Grade a final test attempt.

    Requires every module completed. Attempts are limited per course.
    """
    try:
        submission = await progress_service.submit_final_test(
            learner_id=user.id,
            course_id=course_id,
            answers=data.answers,
            time_spent=data.time_spent,
            student_name=user.name,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return FinalTestResultResponse.from_submission(submission)


# ==============================================================================
# Completion Endpoints
# ==============================================================================


@router.post(
    "/{course_id}/complete",
    response_model=ProgressResponse,
    summary="Complete course",
)
async def complete_course(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressResponse:
    """Complete a course whose modules (and final test) are done."""
    try:
        progress = await progress_service.complete_course_manually(
            user.id, course_id, student_name=user.name
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return ProgressResponse.from_entity(progress)


@router.get(
    "/{course_id}/certificate",
    response_model=CertificateResponse,
    summary="Get course certificate",
)
async def get_course_certificate(
    course_id: UUID,
    certificate_service: CertificateServiceDep,
    user: CurrentUser,
) -> CertificateResponse:
    """Get the certificate issued for this course."""
    try:
        certificate = await certificate_service.get_certificate(user.id, course_id)
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return CertificateResponse.from_entity(certificate)


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@enrollments_router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in course",
)
async def enroll_in_course(
    data: EnrollRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Enroll the current user; re-enrolling re-activates a dropped course."""
    try:
        summary = await progress_service.enroll(
            user.id, data.course_id, student_name=user.name
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return EnrollmentResponse.from_entity(summary)


@enrollments_router.get(
    "",
    response_model=EnrollmentListResponse,
    summary="List my enrollments",
)
async def get_my_enrollments(
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentListResponse:
    """Get all enrollments of the current user."""
    summaries = await progress_service.list_enrollments(user.id)
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(s) for s in summaries],
        total=len(summaries),
    )


@enrollments_router.get(
    "/{course_id}",
    response_model=EnrollmentResponse,
    summary="Get enrollment",
)
async def get_enrollment(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Get enrollment for a specific course."""
    try:
        summary = await progress_service.get_enrollment_summary(user.id, course_id)
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return EnrollmentResponse.from_entity(summary)


@enrollments_router.delete(
    "/{course_id}",
    response_model=EnrollmentResponse,
    summary="Drop enrollment",
)
async def drop_enrollment(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Drop a course. Progress is kept and re-enrolling resumes it."""
    try:
        summary = await progress_service.drop_enrollment(user.id, course_id)
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return EnrollmentResponse.from_entity(summary)
