"""Standard HTTP exceptions and domain error mapping."""
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from activity_audit.exceptions import (
    AuthorizationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TrackingCoreError,
    ValidationError,
)


def not_found(resource: str = "Resource", resource_id: Optional[int] = None) -> HTTPException:
    """
    Return 404 Not Found exception.

    Examples:
        raise not_found("Session", 123)  # "Session with ID 123 not found"
        raise not_found("User")           # "User not found"
    """
    detail = f"{resource} not found"
    if resource_id:
        detail = f"{resource} with ID {resource_id} not found"
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail
    )


def forbidden(message: str = "Not authorized to perform this action") -> HTTPException:
    """Return 403 Forbidden exception."""
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=message
    )


def bad_request(message: str) -> HTTPException:
    """Return 400 Bad Request exception."""
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=message
    )


# Domain error -> HTTP status, most specific first
DOMAIN_ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (AuthorizationError, status.HTTP_401_UNAUTHORIZED),
)


def status_for_error(exc: TrackingCoreError) -> int:
    """HTTP status code for a domain error."""
    for error_class, status_code in DOMAIN_ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def domain_error_handler(request: Request, exc: TrackingCoreError) -> JSONResponse:
    """Translate a domain error raised by a service into a JSON error response."""
    return JSONResponse(
        status_code=status_for_error(exc),
        content={"detail": exc.message},
    )
