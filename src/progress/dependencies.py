"""FastAPI dependencies for progress tracking.

Provides dependency injection for:
- Progress service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .exceptions import ProgressError
from .service import ProgressService


async def get_progress_service(request: Request) -> ProgressService:
    """Get progress service from app state."""
    app_state = request.app.state
    if not hasattr(app_state, "progress_service") or not app_state.progress_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de progresso nao disponivel",
        )
    return app_state.progress_service


# Type alias for dependency injection
ProgressServiceDep = Annotated[ProgressService, Depends(get_progress_service)]


ERROR_STATUS_MAP = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_index": status.HTTP_400_BAD_REQUEST,
    "validation_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "prerequisites_not_met": status.HTTP_403_FORBIDDEN,
    "permission_denied": status.HTTP_403_FORBIDDEN,
    "attempts_exhausted": status.HTTP_409_CONFLICT,
    "concurrent_update": status.HTTP_409_CONFLICT,
    "certificate_issue_failed": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def handle_progress_error(error: ProgressError) -> HTTPException:
    """Convert progress errors to HTTP exceptions.

    The detail carries the machine-readable code so clients can tell
    business-rule failures apart.
    """
    status_code = ERROR_STATUS_MAP.get(
        error.code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )

    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message},
    )
