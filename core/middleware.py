from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi import FastAPI, Request

from core.errors import (
    ConfigurationError,
    InvalidLinkError,
    InvalidRowError,
    RunLockHeldError,
    TrackerError,
)
from core.logging import get_logger
from core.settings import settings
from schemas.common import error_response, ApiStatus

log = get_logger("middleware")


def setup_middleware(app: FastAPI):
    """Setup CORS and global exception handlers"""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log.warning("request_validation_failed", path=request.url.path, errors=exc.errors())
        return JSONResponse(
            status_code=422,
            content=error_response(
                message="Request validation failed",
                status=ApiStatus.VALIDATION_ERROR,
                error_code="VALIDATION_ERROR",
                data={"errors": exc.errors()}
            )
        )

    @app.exception_handler(TrackerError)
    async def tracker_exception_handler(request: Request, exc: TrackerError):
        if isinstance(exc, (InvalidRowError, InvalidLinkError)):
            status_code, status, code = 400, ApiStatus.VALIDATION_ERROR, "INVALID_INPUT"
        elif isinstance(exc, RunLockHeldError):
            status_code, status, code = 409, ApiStatus.CONFLICT, "RUN_IN_PROGRESS"
        elif isinstance(exc, ConfigurationError):
            status_code, status, code = 500, ApiStatus.SERVER_ERROR, "CONFIGURATION_ERROR"
        else:
            status_code, status, code = 500, ApiStatus.ERROR, "TRACKER_ERROR"

        log.warning("command_rejected", path=request.url.path, error_code=code, error=str(exc))
        return JSONResponse(
            status_code=status_code,
            content=error_response(message=str(exc), status=status, error_code=code),
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
