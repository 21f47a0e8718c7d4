"""Request context management using contextvars.

Every request gets a unique ID. Learner and course identifiers are bound
once known, so every log line emitted while handling a progress transition
carries them without passing them explicitly.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
course_id_var: ContextVar[str | None] = ContextVar("course_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    """Get the current user (learner) ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the user ID for the current context."""
    user_id_var.set(str(user_id) if user_id is not None else None)


def get_course_id() -> str | None:
    """Get the course ID bound to the current context."""
    return course_id_var.get()


def set_course_id(course_id: str | UUID | None) -> None:
    """Bind the course being worked on to the current context."""
    course_id_var.set(str(course_id) if course_id is not None else None)


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    values = {
        "request_id": get_request_id(),
        "user_id": get_user_id(),
        "course_id": get_course_id(),
        "correlation_id": get_correlation_id(),
    }
    return {key: value for key, value in values.items() if value}


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request so values never leak into the next one.
    """
    request_id_var.set("")
    user_id_var.set(None)
    course_id_var.set(None)
    correlation_id_var.set(None)


class RequestContext:
    """Bind identifiers for one unit of work.

    Inside an HTTP request the current request ID is kept; elsewhere a new
    one is generated. Previous values are restored on exit.

    Usage:
        with RequestContext(user_id=learner_id, course_id=course_id):
            log.info("reconciling")  # includes request_id, user_id, course_id
    """

    def __init__(
        self,
        request_id: str | None = None,
        user_id: str | UUID | None = None,
        course_id: str | UUID | None = None,
        correlation_id: str | None = None,
    ) -> None:
        self.request_id = request_id
        self.user_id = user_id
        self.course_id = course_id
        self.correlation_id = correlation_id
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "RequestContext":
        """Enter context and set variables."""
        request_id = self.request_id or get_request_id() or generate_request_id()
        self._tokens.append((request_id_var, request_id_var.set(request_id)))
        if self.user_id is not None:
            self._tokens.append((user_id_var, user_id_var.set(str(self.user_id))))
        if self.course_id is not None:
            self._tokens.append((course_id_var, course_id_var.set(str(self.course_id))))
        if self.correlation_id is not None:
            self._tokens.append(
                (correlation_id_var, correlation_id_var.set(self.correlation_id))
            )
        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
