from dataclasses import dataclass
from typing import AsyncIterator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import async_session
from .services.notifier import ReservationNotifier, get_notifier
from .utils.auth import decode_staff_token


@dataclass(frozen=True)
class StaffIdentity:
    staff_id: str
    store_id: str


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def get_idempotency_key(
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> str | None:
    if idempotency_key is None:
        return None
    key = idempotency_key.strip()
    if len(key) > 128:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "missing_fields", "message": "Idempotency-Key is too long"},
        )
    return key or None


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "unauthorized", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_staff(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> StaffIdentity:
    if not settings.auth_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "internal_error", "message": "staff authentication is not configured"},
        )
    if authorization is None:
        raise _unauthorized("Authorization header required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Bearer token required")
    try:
        staff_id, store_id = decode_staff_token(
            token.strip(),
            secret=settings.auth_secret,
            algorithms=[settings.auth_algorithm],
        )
    except ValueError as exc:
        raise _unauthorized("invalid token") from exc
    return StaffIdentity(staff_id=staff_id, store_id=store_id)


def get_reservation_notifier(settings: Settings = Depends(get_settings)) -> ReservationNotifier:
    return get_notifier(settings)
