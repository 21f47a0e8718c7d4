"""Progress tracking errors.

Structural errors (not found, invalid index, validation) are raised before
any mutation. Business-rule errors (prerequisites, attempts) are distinct
so callers can show a specific message.
"""


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(ProgressError):
    """Progress record, course or certificate not found."""

    def __init__(self, message: str = "Registro nao encontrado"):
        super().__init__(message, "not_found")


class CourseNotFoundError(NotFoundError):
    """Course structure snapshot not found."""

    def __init__(self, message: str = "Curso nao encontrado"):
        super().__init__(message)


class InvalidIndexError(ProgressError):
    """Module or lecture index out of range."""

    def __init__(self, message: str = "Indice de modulo ou aula invalido"):
        super().__init__(message, "invalid_index")


class ValidationError(ProgressError):
    """Malformed submission payload."""

    def __init__(self, message: str = "Dados de envio invalidos"):
        super().__init__(message, "validation_error")


class PrerequisitesNotMetError(ProgressError):
    """Action requires modules that are not completed yet."""

    def __init__(self, message: str = "Pre-requisitos nao concluidos"):
        super().__init__(message, "prerequisites_not_met")


class AttemptsExhaustedError(ProgressError):
    """Attempt limit reached."""

    def __init__(self, message: str = "Numero maximo de tentativas atingido"):
        super().__init__(message, "attempts_exhausted")


class ConcurrentUpdateError(ProgressError):
    """Progress record changed by another request during the update."""

    def __init__(self, message: str = "Progresso alterado por outra requisicao"):
        super().__init__(message, "concurrent_update")


class PermissionDeniedError(ProgressError):
    """Caller may not act on this course."""

    def __init__(self, message: str = "Acesso negado a este curso"):
        super().__init__(message, "permission_denied")
