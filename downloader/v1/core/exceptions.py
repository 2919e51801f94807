import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from downloader.config.logging import add_request_context, get_logger

logger = get_logger(__name__)


class DownloaderException(Exception):
    """Base exception for the download jobs application."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(DownloaderException):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class NotFoundError(DownloaderException):
    """Raised when a resource is not found."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


class JobNotFoundError(NotFoundError):
    """Raised when a polled job does not exist or was swept by retention."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found", {"job_id": job_id})


class DuplicateJobError(DownloaderException):
    """Raised when a job is submitted with an id that already exists."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(
            f"Job {job_id} already exists",
            status.HTTP_409_CONFLICT,
            {"job_id": job_id},
        )


class LeaseError(Exception):
    """
    A worker tried to write to a job it no longer owns.

    Internal concurrency-control signal: the worker abandons the job, the
    error is never reported to clients.
    """

    def __init__(self, job_id: str, worker_id: str, message: str):
        self.job_id = job_id
        self.worker_id = worker_id
        super().__init__(message)


class NotOwnerError(LeaseError):
    """The job is claimed by another worker, finished, or gone."""

    def __init__(self, job_id: str, worker_id: str):
        super().__init__(
            job_id, worker_id, f"Worker {worker_id} does not own job {job_id}"
        )


class LeaseExpiredError(LeaseError):
    """The worker's lease on the job elapsed before the write."""

    def __init__(self, job_id: str, worker_id: str):
        super().__init__(
            job_id, worker_id, f"Lease of worker {worker_id} on job {job_id} expired"
        )


class ItemCheckTransientFailure(Exception):
    """The item checker raised instead of returning a result."""

    def __init__(self, item_id: int, cause: BaseException):
        self.item_id = item_id
        self.cause = cause
        super().__init__(
            f"Availability check for item {item_id} failed: "
            f"{cause.__class__.__name__}: {cause}"
        )


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response envelope."""
    return {
        "ok": False,
        "error": {
            "message": message,
            "code": status_code,
            "details": details or {},
        },
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_success_response(
    data: Any, message: str | None = None, request_id: str | None = None
) -> dict[str, Any]:
    """Create standardized success response envelope."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error_json(
    request: Request,
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(
            status_code=status_code,
            message=message,
            details=details,
            request_id=_request_id(request),
        ),
    )


async def downloader_exception_handler(
    request: Request, exc: DownloaderException
) -> JSONResponse:
    """Handle job, validation and lookup errors raised by the service layer."""
    logger.warning(
        "Application exception",
        exception=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )
    return _error_json(request, exc.status_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail)
    return _error_json(request, exc.status_code, str(exc.detail))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed bodies and query parameters as a 422 envelope."""
    errors = jsonable_encoder(exc.errors())
    logger.info("Request validation failed", errors=len(errors))
    return _error_json(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Request validation failed",
        {"errors": errors},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log with traceback, hide internals from the client."""
    logger.error(
        "Unhandled exception",
        exception=exc.__class__.__name__,
        message=str(exc),
        exc_info=True,
    )
    return _error_json(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id, bind it to the log context and echo it back."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        add_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
