"""
Custom exceptions and error handlers for consistent error responses.

Every business-rule violation raised by the dispatch engine is an AppException
carrying an error code, an HTTP status and an error kind so callers can tell
"your request is invalid" apart from "we couldn't check".
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

logger = logging.getLogger("dispatch.errors")


class ErrorKind:
    """Error taxonomy for dispatch operations."""
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    VALIDATION = "VALIDATION"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    FORBIDDEN = "FORBIDDEN"
    DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"
    INTERNAL = "INTERNAL"


class AppException(Exception):
    """Base application exception."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    kind = ErrorKind.FORBIDDEN

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="FORBIDDEN",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class TerminalAccessDeniedError(AppException):
    """Raised when a terminal-level user touches another terminal."""

    kind = ErrorKind.FORBIDDEN

    def __init__(self, terminal_id: Any):
        super().__init__(
            message="You do not have access to this terminal",
            error_code="TERMINAL_ACCESS_DENIED",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"terminal_id": terminal_id}
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, resource_id: Any = None, error_code: str = "ERR_NOT_FOUND_001"):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class RouteNotFoundError(ResourceNotFoundError):
    def __init__(self, route_id: Any):
        super().__init__("Route", route_id, error_code="ROUTE_NOT_FOUND")


class DispatchNotFoundError(ResourceNotFoundError):
    def __init__(self, dispatch_event_id: Any):
        super().__init__("Dispatch event", dispatch_event_id, error_code="DISPATCH_NOT_FOUND")


class StopNotFoundError(ResourceNotFoundError):
    """
    Raised when a stop is absent, or exists but belongs to another dispatch event.

    The second case is reported with the same code so stop ids never leak
    across events; only the kind differs.
    """

    def __init__(self, stop_id: Any, dispatch_event_id: Any, foreign: bool = False):
        super().__init__("Stop", stop_id, error_code="STOP_NOT_FOUND")
        self.message = f"Stop {stop_id} not found for dispatch event {dispatch_event_id}"
        self.details["dispatch_event_id"] = dispatch_event_id
        if foreign:
            self.kind = ErrorKind.PRECONDITION_FAILED


class DuplicateDispatchError(AppException):
    """Raised when the route already has a dispatch event on that date."""

    kind = ErrorKind.CONFLICT

    def __init__(self, route_id: Any, execution_date: Any):
        super().__init__(
            message="A dispatch event already exists for this route and date",
            error_code="DUPLICATE_DISPATCH",
            status_code=status.HTTP_409_CONFLICT,
            details={"route_id": route_id, "execution_date": str(execution_date)}
        )


class ConcurrentModificationError(AppException):
    """Raised when another writer changed the dispatch event first."""

    kind = ErrorKind.CONFLICT

    def __init__(self, dispatch_event_id: Any):
        super().__init__(
            message="Dispatch event was modified concurrently, reload and retry",
            error_code="CONCURRENT_MODIFICATION",
            status_code=status.HTTP_409_CONFLICT,
            details={"dispatch_event_id": dispatch_event_id}
        )


class InvalidStatusTransitionError(AppException):
    """Raised when a requested status change is not in the transition table."""

    kind = ErrorKind.VALIDATION

    def __init__(self, current: str, target: str, allowed: list):
        allowed_text = ", ".join(allowed) or "none (terminal state)"
        super().__init__(
            message=f'Cannot transition from "{current}" to "{target}". Valid transitions: {allowed_text}',
            error_code="INVALID_STATUS_TRANSITION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"current_status": current, "requested_status": target, "allowed": allowed}
        )


class InvalidStopTransitionError(AppException):
    """Raised when a stop status change is not allowed."""

    kind = ErrorKind.VALIDATION

    def __init__(self, current: str, target: str, allowed: list):
        super().__init__(
            message=f'Stop cannot move from "{current}" to "{target}"',
            error_code="INVALID_STOP_TRANSITION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"current_status": current, "requested_status": target, "allowed": allowed}
        )


class DispatchValidationError(AppException):
    """Generic business validation failure (400)."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, error_code: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class DriverUnavailableError(AppException):
    """Raised when the availability collaborator reports the driver as off."""

    kind = ErrorKind.PRECONDITION_FAILED

    def __init__(self, driver_id: Any, execution_date: Any):
        super().__init__(
            message="Driver is not available on this date",
            error_code="DRIVER_UNAVAILABLE",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"driver_id": driver_id, "execution_date": str(execution_date)}
        )


class DependencyFailureError(AppException):
    """Raised when a collaborator could not answer (error or open circuit)."""

    kind = ErrorKind.DEPENDENCY_FAILURE

    def __init__(self, collaborator: str, reason: str = ""):
        super().__init__(
            message=f"Dependency '{collaborator}' failed",
            error_code="DEPENDENCY_FAILURE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"collaborator": collaborator, "reason": reason}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.error(
        "Unhandled exception: %s: %s", type(exc).__name__, exc,
        exc_info=exc,
        extra={"path": request.url.path, "method": request.method}
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
