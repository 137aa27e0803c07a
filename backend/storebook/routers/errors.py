from typing import Any

from fastapi import HTTPException, status

from ..domain.errors import ReservationError


def http_error(exc: ReservationError) -> HTTPException:
    detail: dict[str, Any] = {"error": exc.code, "message": exc.message}
    if exc.details:
        detail["details"] = exc.details
    return HTTPException(status_code=exc.status_code, detail=detail)


def database_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "database_error", "message": "database request failed"},
    )


def internal_error(message: str = "an unexpected error occurred") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "internal_error", "message": message},
    )
