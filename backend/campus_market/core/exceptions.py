"""
Application error taxonomy.

Services raise these instead of HTTPException so the booking engine can be
driven outside a request. The handler registered in main renders them with
the same {"detail": ...} body FastAPI uses for HTTPException.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AppError(Exception):
    """Base application error carrying its HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class StockConflictError(AppError):
    """A line item could not be reserved (missing, not approved, or short)."""

    status_code = status.HTTP_409_CONFLICT


class BookingConflictError(AppError):
    """Storage-level write conflict. Safe for the client to retry."""

    status_code = status.HTTP_409_CONFLICT


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotificationError(AppError):
    """Raised by notifier backends. Always caught by the dispatcher."""

    status_code = status.HTTP_502_BAD_GATEWAY


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
