"""
Main FastAPI application.
"""
import json
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from exam_engine import observability
from exam_engine.api.v1.api import api_router
from exam_engine.core.catalog import seed_catalog
from exam_engine.core.config import Settings, settings
from exam_engine.core.logging_config import setup_logging
from exam_engine.core.session.service import ExamSessionService
from exam_engine.middleware import RequestLoggingMiddleware
from exam_engine.store import DocumentStore, InMemoryDocumentStore, SQLDocumentStore

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)


async def create_store(config: Settings) -> DocumentStore:
    """
    Create the document store backend selected by STORE_BACKEND.

    The SQL backend creates its table on first use. A configured
    CATALOG_SEED_FILE is loaded into whichever backend is chosen.
    """
    store: DocumentStore
    if config.STORE_BACKEND == "sql":
        sql_store = SQLDocumentStore.from_url(config.DATABASE_URL, echo=config.DEBUG)
        await sql_store.create_schema()
        store = sql_store
        logger.info("Using SQL document store")
    else:
        store = InMemoryDocumentStore()
        logger.info("Using in-memory document store (state is lost on restart)")

    if config.CATALOG_SEED_FILE:
        seed_path = Path(config.CATALOG_SEED_FILE)
        data = json.loads(seed_path.read_text(encoding="utf-8"))
        await seed_catalog(store, data)

    return store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan event handler.

    - On startup: initializes error tracking, the store and the session service
    - On shutdown: stops all countdowns and closes the store
    """
    observability.init_error_tracking(settings)

    store = await create_store(settings)
    service = ExamSessionService(store, config=settings)
    app.state.store = store
    app.state.session_service = service
    logger.info("Session service ready")

    yield

    await service.shutdown()
    await store.close()
    observability.shutdown()
    logger.info("Application shut down")


# OpenAPI tags metadata
tags_metadata = [
    {
        "name": "health",
        "description": "Health check endpoints for monitoring application status",
    },
    {
        "name": "sessions",
        "description": "Timed exam sessions: start, answer, submit, integrity reports, results",
    },
    {
        "name": "tests",
        "description": "Test catalog inspection",
    },
]


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "**Adaptive Exam Engine** - timed exam sessions whose question "
            "difficulty adapts to the test-taker.\n\n"
            "Callers identify the test-taker with the `X-User-ID` header; "
            "authentication happens upstream."
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-User-ID", "X-Request-ID"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Handle HTTP exceptions, reporting server-side failures.
        """
        if exc.status_code >= 500:
            observability.capture_error(
                exc,
                context={
                    "path": str(request.url.path),
                    "method": request.method,
                    "status_code": exc.status_code,
                },
                tags={"error_type": "HTTPException"},
            )

        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        """
        Handle request validation errors.
        """
        errors = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
            for error in exc.errors()
        ]
        logger.info(
            f"Request validation failed: {errors}",
            extra={"method": request.method, "path": str(request.url.path)},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": errors},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions.

        Generates a unique error_id (UUID) for each exception so support can
        find the matching log entry. The error_id is returned to the client.
        """
        error_id = str(uuid.uuid4())

        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"error_id": error_id},
        )

        observability.capture_error(
            exc,
            context={
                "path": str(request.url.path),
                "method": request.method,
                "error_id": error_id,
            },
            tags={"error_type": exc.__class__.__name__},
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error_id": error_id,
            },
        )

    return app


app = create_application()


@app.get("/")
async def root():
    """
    Root endpoint.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }
