import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: object = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def add_details(self, **extra: object) -> None:
        if isinstance(self.details, dict):
            self.details.update(extra)
        elif self.details is None:
            self.details = dict(extra)
        else:
            self.details = {"cause": self.details, **extra}


class ServerNotFoundError(AppException):
    """The server no longer exists on the remote side (removed externally)."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "SERVER_GONE"

    def __init__(self, server_id: str) -> None:
        super().__init__(f"Server {server_id} not found", details={"server_id": server_id})


# --- Remote API errors ---


class RemoteAPIError(AppException):
    """A remote API call failed. ``remote_status`` carries the HTTP-like code."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "REMOTE_ERROR"

    def __init__(self, remote_status: int, message: str) -> None:
        self.remote_status = remote_status
        super().__init__(message, details={"remote_status": remote_status})

    @classmethod
    def from_status(cls, remote_status: int, message: str) -> "RemoteAPIError":
        if remote_status == status.HTTP_404_NOT_FOUND:
            return RemoteNotFoundError(message)
        if remote_status == status.HTTP_409_CONFLICT:
            return RemoteConflictError(message)
        return cls(remote_status, message)


class RemoteNotFoundError(RemoteAPIError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "REMOTE_NOT_FOUND"

    def __init__(self, message: str) -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, message)


class RemoteConflictError(RemoteAPIError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "REMOTE_CONFLICT"

    def __init__(self, message: str) -> None:
        super().__init__(status.HTTP_409_CONFLICT, message)


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, RemoteAPIError) and exc.remote_status == status.HTTP_404_NOT_FOUND


def is_conflict(exc: BaseException) -> bool:
    return isinstance(exc, RemoteAPIError) and exc.remote_status == status.HTTP_409_CONFLICT


# --- Local validation errors ---


class AttributeValidationError(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "INVALID_ATTRIBUTE"

    def __init__(self, attribute: str, message: str) -> None:
        super().__init__(message, details={"attribute": attribute})


class IPFamilyMismatchError(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "IP_FAMILY_MISMATCH"

    def __init__(self, ip_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"The IP address with UUID {ip_id} is not version {expected}",
            details={"ip_id": ip_id, "expected": expected, "actual": actual},
        )


# --- Reconciliation and polling errors ---


class ReconciliationError(AppException):
    """A remote step of a server reconciliation failed; carries the step context."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "RECONCILIATION_FAILED"

    def __init__(
        self, action: str, server_id: str | None, object_uuid: str | None, cause: Exception
    ) -> None:
        target = f" ({object_uuid})" if object_uuid else ""
        owner = f" for server ({server_id})" if server_id else ""
        super().__init__(
            f"Error while trying to {action}{target}{owner}: {cause}",
            details={
                "action": action,
                "server_id": server_id,
                "object_uuid": object_uuid,
                "remote_status": getattr(cause, "remote_status", None),
            },
        )


class StatusPollError(AppException):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "STATUS_POLL_FAILED"

    def __init__(self, kind: str, ids: tuple[str, ...], cause: Exception) -> None:
        super().__init__(
            f"Error waiting for {kind} ({', '.join(ids)}) to be fetched: {cause}",
            details={"kind": kind, "ids": list(ids)},
        )


class PollTimeoutError(AppException):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    error_code = "POLL_TIMEOUT"

    def __init__(self, kind: str, ids: tuple[str, ...], condition: str) -> None:
        super().__init__(
            f"Timed out waiting for {kind} ({', '.join(ids)}) to be {condition}",
            details={"kind": kind, "ids": list(ids), "condition": condition},
        )


def _error_response(status_code: int, code: str, message: str, details: object) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "details": details}},
    )


def _attribute_path(loc: tuple[object, ...]) -> str:
    # FastAPI prefixes request body fields with "body"
    return ".".join(str(part) for part in loc if part != "body")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        extra = {"error_code": exc.error_code, "path": request.url.path, "detail": exc.message}
        if exc.status_code >= 500:
            logger.error(
                "Lifecycle call aborted", exc_info=exc.__cause__ is not None, extra=extra
            )
        else:
            logger.warning("Lifecycle call rejected", extra=extra)
        return _error_response(exc.status_code, exc.error_code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "attribute": _attribute_path(tuple(e.get("loc", ()))),
                "msg": e.get("msg", ""),
                "type": e.get("type", ""),
            }
            for e in exc.errors()
        ]
        logger.info(
            "Server attributes rejected",
            extra={
                "path": request.url.path,
                "attributes": [e["attribute"] for e in errors],
            },
        )
        return _error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "VALIDATION_ERROR",
            "Server attributes failed validation",
            errors,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=True,
            extra={"path": request.url.path, "exc_type": type(exc).__name__},
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "An unexpected error occurred",
            None,
        )
