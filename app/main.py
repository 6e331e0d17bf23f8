from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import close_db, init_db
from app.middlewares.logging_middleware import LoggingMiddleware
from app.routes import router as api_router
from app.services.notification_service import NotificationDispatcher, build_notification_port
from app.services.scheduler import start_scheduler, stop_scheduler
from app.utils.exceptions import DomainError
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application startup and shutdown events.
    """
    # Startup
    logger.info("Application starting up...")
    await init_db()

    if settings.SCHEDULER_ENABLED:
        start_scheduler(app.state.notifier)
    else:
        logger.info("Scheduler disabled")

    yield

    # Shutdown
    logger.info("Application shutting down...")
    if settings.SCHEDULER_ENABLED:
        stop_scheduler()

    await app.state.notifier.drain()
    await close_db()


def create_application() -> FastAPI:
    """Create the FastAPI application"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description=settings.PROJECT_DESCRIPTION,
        version=settings.VERSION,
        docs_url=settings.DOCS_URL,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.notifier = NotificationDispatcher(
        build_notification_port(),
        timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Accept",
            "X-Requested-With",
            "X-Request-ID",
            "Origin",
        ],
        max_age=600,
    )

    # Logging middleware
    app.add_middleware(LoggingMiddleware)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        logger.info(
            f"{exc.kind} on {request.method} {request.url.path}: {exc.message}",
            extra={"extra_fields": {"error_kind": exc.kind, "details": exc.details}},
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Include API routes
    app.include_router(api_router, prefix=settings.API_PREFIX)

    # Health check endpoint
    @app.get("/")
    def read_root():
        return {
            "status": "ok",
            "environment": settings.ENVIRONMENT,
        }

    return app


# Create and expose the FastAPI app
app = create_application()
