"""FastAPI dependencies for course structure snapshots.

Provides dependency injection for:
- Course structure reader
- Content ownership verification
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from src.auth.permissions import is_admin
from src.auth.schemas import CurrentUserModel
from src.courses.service import CassandraCourseReader


async def get_course_reader(request: Request) -> CassandraCourseReader:
    """Get course reader from app state."""
    app_state = request.app.state
    if not hasattr(app_state, "course_reader") or not app_state.course_reader:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de cursos nao disponivel",
        )
    return app_state.course_reader


CourseReaderDep = Annotated[CassandraCourseReader, Depends(get_course_reader)]


def is_owner_or_admin(user: CurrentUserModel, instructor_id: UUID | None) -> bool:
    """Check if user is the course instructor or an admin."""
    if is_admin(user.role):
        return True
    return instructor_id is not None and user.id == instructor_id
