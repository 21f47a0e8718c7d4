"""CourseTrack API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.certificates.router import router as certificates_router
from src.certificates.service import CertificateService
from src.certificates.store import CassandraCertificateStore
from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.locks import KeyedLock
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.courses.router import router as courses_router
from src.courses.service import CassandraCourseReader
from src.gamification.router import router as rewards_router
from src.gamification.service import RewardService
from src.gamification.store import CassandraRewardStore
from src.health import router as health_router
from src.progress.dependencies import handle_progress_error
from src.progress.exceptions import ProgressError
from src.progress.router import enrollments_router
from src.progress.router import router as progress_router
from src.progress.service import ProgressService
from src.progress.store import CassandraEnrollmentStore, CassandraProgressStore


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def build_services(app: FastAPI, session: Any, redis_client: Any = None) -> None:
    """Wire stores and services onto ``app.state``."""
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    course_reader = CassandraCourseReader(session=session, keyspace=keyspace)
    certificate_service = CertificateService(
        store=CassandraCertificateStore(session=session, keyspace=keyspace),
        code_length=settings.certificate_code_length,
        max_attempts=settings.certificate_code_max_attempts,
        verify_base_url=settings.certificate_verify_base_url,
    )
    reward_service = RewardService(
        store=CassandraRewardStore(session=session, keyspace=keyspace)
    )
    lock = KeyedLock(
        redis=redis_client,
        timeout=settings.progress_lock_timeout_seconds,
        blocking_timeout=settings.progress_lock_blocking_timeout_seconds,
    )

    app.state.course_reader = course_reader
    app.state.certificate_service = certificate_service
    app.state.reward_service = reward_service
    app.state.progress_service = ProgressService(
        courses=course_reader,
        progress_store=CassandraProgressStore(session=session, keyspace=keyspace),
        enrollment_store=CassandraEnrollmentStore(session=session, keyspace=keyspace),
        certificates=certificate_service,
        rewards=reward_service,
        lock=lock,
        video_completion_threshold=settings.progress_video_completion_threshold,
        default_quiz_passing_score=settings.progress_default_quiz_passing_score,
        default_quiz_attempts=settings.progress_default_quiz_attempts,
    )
    logger.info("progress_services_initialized", distributed_lock=redis_client is not None)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize Redis (non-critical - locks fall back to the local process)
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - progress locks are process-local",
        )

    # Initialize Cassandra (async)
    try:
        session = await init_async_cassandra()
        logger.info("cassandra_initialized")
        build_services(app, session, redis_client)
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Never expose stack traces in responses; handlers below log details.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Progresso de alunos, certificados e recompensas - API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _error_response(
        request: Request,
        status_code: int,
        message: str,
        code: str | None = None,
        **extra: Any,
    ) -> ORJSONResponse:
        request_id = getattr(request.state, "request_id", None) or get_request_id()
        content: dict[str, Any] = {
            "error": True,
            "message": message,
            "status_code": status_code,
            "request_id": request_id,
        }
        if code:
            content["code"] = code
        content.update(extra)
        return ORJSONResponse(status_code=status_code, content=content)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Business-rule failures carry ``{"code", "message"}`` as detail.

        The code is passed through so clients can branch on it; messages of
        5xx responses are replaced.
        """
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        if isinstance(exc.detail, dict):
            code = exc.detail.get("code")
            message = exc.detail.get("message", "")
        else:
            code = None
            message = str(exc.detail)
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            message = "Internal server error"

        response = _error_response(request, exc.status_code, message, code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(ProgressError)
    async def progress_exception_handler(
        request: Request, exc: ProgressError
    ) -> ORJSONResponse:
        # Raised outside a router's own conversion, e.g. from a dependency
        return await http_exception_handler(request, handle_progress_error(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            "validation_error",
            details=[
                {
                    "field": ".".join(str(loc) for loc in err.get("loc", [])),
                    "message": err.get("msg", "Invalid value"),
                }
                for err in exc.errors()
            ],
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler; details go to the log only."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
        )

    app.include_router(health_router)
    app.include_router(courses_router)
    app.include_router(progress_router)
    app.include_router(enrollments_router)
    app.include_router(certificates_router)
    app.include_router(rewards_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        return {
            "message": "CourseTrack API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
