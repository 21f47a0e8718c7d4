"""Course structure endpoints.

The content system publishes snapshots here; learners read them to
render the course outline next to their progress.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from src.auth.dependencies import CurrentUser, InstructorUser

from .dependencies import CourseReaderDep, is_owner_or_admin
from .models import CourseStructure


router = APIRouter(prefix="/v1/courses", tags=["courses"])


@router.get(
    "/{course_id}/structure",
    response_model=CourseStructure,
    summary="Get course structure",
)
async def get_course_structure(
    course_id: UUID,
    course_reader: CourseReaderDep,
    user: CurrentUser,
) -> CourseStructure:
    """Get the latest published structure of a course."""
    course = await course_reader.get_course(course_id)
    if course is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Curso nao encontrado",
        )
    return course


@router.put(
    "/{course_id}/structure",
    response_model=CourseStructure,
    summary="Publish course structure",
)
async def publish_course_structure(
    course_id: UUID,
    data: CourseStructure,
    course_reader: CourseReaderDep,
    user: InstructorUser,
) -> CourseStructure:
    """Publish a new structure snapshot (course instructor or ADMIN).

    Existing progress records pick up added modules and lectures on their
    next access.
    """
    if data.course_id != course_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="course_id do corpo difere da URL",
        )

    current = await course_reader.get_course(course_id)
    owner_id = current.instructor_id if current else data.instructor_id
    if not is_owner_or_admin(user, owner_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Apenas o instrutor do curso pode publicar a estrutura",
        )

    await course_reader.publish(data)
    return data
