"""
Competency Assessment Platform

FastAPI application entry point.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from assessment_platform.api.middleware.request_id import RequestIdMiddleware
from assessment_platform.api.v1 import router as api_v1_router
from assessment_platform.config import get_settings
from assessment_platform.database import async_session_maker, close_db, init_db
from assessment_platform.engines.notifications.dispatcher import NotificationDispatcher
from assessment_platform.kernel.errors import AssessmentError
from assessment_platform.logging_config import configure_logging, get_logger
from assessment_platform.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


async def _recover_notifications() -> None:
    try:
        summary = await NotificationDispatcher(async_session_maker).recover_interrupted()
    except Exception:
        logger.exception("Notification recovery failed")
        return
    logger.info("Notification recovery finished", extra=summary)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    # Outbox rows left over from a previous run; delivery must not hold up startup
    recovery = asyncio.create_task(_recover_notifications())

    yield

    logger.info("Shutting down...")
    if not recovery.done():
        recovery.cancel()
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Competency Assessment Platform

    Three-step digital competency assessment from A1 to C2.

    ## Features

    - **Accounts**: Registration with email verification, JWT sessions, password reset
    - **Catalog**: Competencies and a question bank with one question per competency and level
    - **Assessments**: One question at a time with answer, skip and navigation
    - **Progression**: Scored steps that unlock the next step or block retakes
    - **Certificates**: PDF certificates emailed on completion
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Last added is outermost; CORS wraps everything so error responses carry its headers
_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
]
if settings.frontend_url not in _cors_origins:
    _cors_origins = [settings.frontend_url] + _cors_origins

app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> dict:
    """CORS headers for error responses; 500s can bypass the middleware."""
    origin = request.headers.get("origin") or ""
    allow_origin = origin if origin in _cors_origins else _cors_origins[0]
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "*",
        "Access-Control-Allow-Headers": "*",
    }


def _failure(
    request: Request,
    status_code: int,
    message: str,
    errors: Optional[list] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    response_headers = _cors_headers(request)
    if headers:
        response_headers.update(headers)
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        response_headers["X-Request-ID"] = req_id
    content = {"success": False, "statusCode": status_code, "message": message}
    if errors is not None:
        content["errors"] = errors
    if req_id and status_code >= 500:
        content["requestId"] = req_id
    return JSONResponse(status_code=status_code, content=content, headers=response_headers)


@app.exception_handler(AssessmentError)
async def assessment_error_handler(request: Request, exc: AssessmentError):
    """Domain errors carry their own HTTP status."""
    if exc.status_code >= 500:
        logger.error("Domain error: %s", exc.message)
    return _failure(request, exc.status_code, exc.message)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _failure(request, exc.status_code, message, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 with one entry per offending field."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    message = errors[0]["message"] if len(errors) == 1 else "Validation error"
    return _failure(request, status.HTTP_400_BAD_REQUEST, message, errors=errors)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Unexpected failures: logged with traceback, details only in debug."""
    logger.exception("Unhandled exception: %s", exc)
    message = f"{type(exc).__name__}: {exc}" if settings.debug else "Internal server error"
    return _failure(request, status.HTTP_500_INTERNAL_SERVER_ERROR, message)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    return HealthResponse(status="ok", version=settings.version, database="connected")


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": {
            "v1": settings.api_v1_prefix,
        },
    }


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "assessment_platform.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
