import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from focusdesk.api.router import api_router
from focusdesk.config import get_settings
from focusdesk.database import engine
from focusdesk.events import EventChannel, WorkspaceEvent, log_event
from focusdesk.exceptions import (
    FieldValidationError,
    NotFoundError,
    PermissionDeniedError,
    StorageUnavailableError,
)

settings = get_settings()
logger = logging.getLogger(__name__)

STORAGE_RETRY_AFTER_SECONDS = 5


def create_event_channel() -> EventChannel:
    events = EventChannel()
    events.subscribe(WorkspaceEvent, log_event)
    return events


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings.validate_security()
    logger.info("Auth mode: %s", settings.get_auth_mode())
    logger.info("Layout schema version: %d", settings.layout_schema_version)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Role-scoped dashboard focuses with persistent workspace layouts",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.events = create_event_channel()

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Enable GZip compression for responses > 500 bytes
app.add_middleware(GZipMiddleware, minimum_size=500)
# Include API router
app.include_router(api_router, prefix="/api/v1")


def validation_response(errors: list[dict[str, str]]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Validation error",
            "errors": errors,
        },
    )


# Global exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({"field": field, "message": error["msg"]})
    return validation_response(errors)


@app.exception_handler(ValidationError)
async def pydantic_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({"field": field, "message": error["msg"]})
    return validation_response(errors)


@app.exception_handler(FieldValidationError)
async def field_validation_handler(request: Request, exc: FieldValidationError) -> JSONResponse:
    return validation_response([{"field": exc.field, "message": exc.reason}])


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": f"{exc.entity} not found"},
    )


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError) -> JSONResponse:
    logger.info("Denied %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"detail": f"Not permitted to {exc.action}"},
    )


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError) -> JSONResponse:
    logger.error("Storage unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        headers={"Retry-After": str(STORAGE_RETRY_AFTER_SECONDS)},
        content={
            "detail": "Storage is temporarily unavailable. Please try again.",
            "retryable": True,
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")

    # Don't expose internal error details in production
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An unexpected error occurred. Please try again later.",
        },
    )
