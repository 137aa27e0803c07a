from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config import Settings
from ..domain.availability import RangeKey, Utilization, aggregate_utilization, check_capacity
from ..domain.errors import (
    CancelNotAllowedError,
    ConstraintViolationError,
    DatabaseError,
    DuplicateRequestError,
    ReservationNotFoundError,
    SlotTakenError,
    ValidationError,
)
from ..domain.repositories import CapacityRuleRepository, ReservationRepository, StoreRepository
from ..domain.rules import CapacityLimit, applicable_rules, resolve_rule
from ..models import Reservation, ReservationStatus
from ..utils.time import (
    floor_to_slot_utc,
    local_day_bounds_utc,
    local_start_at,
    parse_instant,
    slot_end,
    slot_key,
    to_utc_naive,
    utc_naive_to_local,
)
from .stores import StoreProfile, load_store_profile

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^\d+$")
_IDEMPOTENCY_MARKERS = ("idempotency_key",)
_SLOT_MARKERS = ("uq_reservations_slot", "slot_key")
_MYSQL_DUP_ENTRY = 1062
_PG_UNIQUE_VIOLATION = "23505"

CUSTOMER_CANCEL_REASON = "cancelled by customer"


@dataclass(frozen=True)
class ReservationRequest:
    store_id: Optional[str]
    start_at: Any = None
    date: Any = None
    time: Any = None
    name: Optional[str] = None
    user_id: Optional[str] = None
    phone: Optional[str] = None
    people: Any = 1
    seat_id: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class CreateOutcome:
    reservation: Reservation
    duplicate: bool = False


def validate_people(value: Any, *, max_people: int) -> int:
    """Whole number of people in ``[1, max_people]``; anything else is rejected, never clamped."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("people must be an integer")
    if isinstance(value, int):
        people = value
    elif isinstance(value, float) and value.is_integer():
        people = int(value)
    elif isinstance(value, str) and _DIGITS.match(value.strip()):
        people = int(value.strip())
    else:
        raise ValidationError("people must be an integer")
    if people < 1 or people > max_people:
        raise ValidationError(f"people must be between 1 and {max_people}")
    return people


def _present(value: Any) -> bool:
    return value is not None and (not isinstance(value, str) or bool(value.strip()))


def validate_request(request: ReservationRequest, *, max_people: int) -> int:
    missing = []
    if not _present(request.store_id):
        missing.append("storeId")
    if not _present(request.start_at) and not (_present(request.date) and _present(request.time)):
        missing.append("startAt")
    if not _present(request.name) and not _present(request.user_id):
        missing.append("name")
    if not _present(request.phone):
        missing.append("phone")
    if missing:
        raise ValidationError(f"required fields missing: {', '.join(missing)}", fields=missing)
    return validate_people(request.people, max_people=max_people)


def resolve_start(request: ReservationRequest, profile: StoreProfile) -> datetime:
    """Requested start as an aware datetime; ``startAt`` wins over ``date`` + ``time``."""
    if _present(request.start_at):
        return parse_instant(request.start_at, default_tz=profile.tz)
    return local_start_at(request.date, request.time, profile.tz)


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == _PG_UNIQUE_VIOLATION:
        return True
    args = getattr(orig, "args", ())
    if args and args[0] == _MYSQL_DUP_ENTRY:
        return True
    text = str(orig).lower()
    return "unique" in text or "duplicate" in text


def classify_integrity_error(exc: IntegrityError) -> str:
    """Return ``"idempotency"``, ``"slot"`` or ``"other"`` for an insert conflict."""
    if not _is_unique_violation(exc):
        return "other"
    text = str(exc.orig).lower()
    if any(marker in text for marker in _IDEMPOTENCY_MARKERS):
        return "idempotency"
    if any(marker in text for marker in _SLOT_MARKERS):
        return "slot"
    return "other"


async def _check_capacity(
    res_repo: ReservationRepository,
    rule_repo: CapacityRuleRepository,
    *,
    profile: StoreProfile,
    slot_start_local: datetime,
    seat_id: Optional[str],
    people: int,
    end_inclusive: bool,
) -> None:
    on_date = slot_start_local.date()
    rules = applicable_rules(await rule_repo.list_for_store(profile.store_id), on_date, seat_id)
    rule = resolve_rule(slot_start_local.strftime("%H:%M"), rules, end_inclusive=end_inclusive)
    if rule is None:
        return
    day_start, day_end = local_day_bounds_utc(on_date, profile.tz)
    existing = await res_repo.list_active_between(profile.store_id, day_start, day_end)
    usage = aggregate_utilization(
        profile.store_id, on_date, [rule], existing, profile.tz, end_inclusive=end_inclusive
    )
    check_capacity(
        CapacityLimit.from_rule(rule),
        usage.get(RangeKey.of(rule), Utilization()),
        people=people,
    )


async def create_reservation(
    store_repo: StoreRepository,
    res_repo: ReservationRepository,
    rule_repo: CapacityRuleRepository,
    *,
    request: ReservationRequest,
    idempotency_key: Optional[str],
    settings: Settings,
) -> CreateOutcome:
    """
    Validate, normalize to a UTC slot, pre-check capacity and insert exactly once.

    The capacity check is advisory; the unique constraints on the idempotency
    key and the slot key decide the outcome when requests race.
    """
    people = validate_request(request, max_people=settings.max_people)
    store_id = str(request.store_id).strip()
    profile = await load_store_profile(store_repo, store_id=store_id, settings=settings)

    start = resolve_start(request, profile)
    slot_start = floor_to_slot_utc(start, profile.slot_minutes)
    slot_finish = slot_end(slot_start, profile.slot_minutes)
    slot_start_local = slot_start.astimezone(profile.tz)
    seat_id = request.seat_id or None

    key = (idempotency_key or "").strip() or None
    if key is not None:
        # A replay must not be refused by the capacity its first attempt consumed.
        existing = await res_repo.get_by_idempotency_key(store_id, key)
        if existing is not None:
            return CreateOutcome(reservation=existing, duplicate=True)
    else:
        key = str(uuid.uuid4())

    logger.info(
        "reservation create store=%s received=%s slot_start=%s slot_end=%s key=%s",
        store_id,
        request.start_at or f"{request.date} {request.time}",
        slot_start.isoformat(),
        slot_finish.isoformat(),
        key,
    )

    await _check_capacity(
        res_repo,
        rule_repo,
        profile=profile,
        slot_start_local=slot_start_local,
        seat_id=seat_id,
        people=people,
        end_inclusive=settings.rule_end_inclusive,
    )

    try:
        reservation = await res_repo.create(
            store_id=store_id,
            slot_start_utc=to_utc_naive(slot_start),
            slot_end_utc=to_utc_naive(slot_finish),
            date=slot_start_local.date().isoformat(),
            time=slot_start_local.strftime("%H:%M:%S"),
            customer_name=(request.name or request.user_id or "").strip(),
            phone=str(request.phone).strip(),
            user_id=request.user_id,
            people=people,
            seat_id=seat_id,
            message=request.message,
            status=ReservationStatus.CONFIRMED,
            idempotency_key=key,
            slot_key=slot_key(store_id, slot_start, seat_id) if settings.enforce_slot_unique else None,
        )
    except IntegrityError as exc:
        kind = classify_integrity_error(exc)
        logger.info("reservation insert conflict store=%s key=%s kind=%s", store_id, key, kind)
        if kind == "idempotency":
            existing = await res_repo.get_by_idempotency_key(store_id, key)
            if existing is None:
                raise DuplicateRequestError("duplicate request, retry later", idempotencyKey=key) from exc
            return CreateOutcome(reservation=existing, duplicate=True)
        if kind == "slot":
            # A concurrent retry with this key may have taken the slot itself.
            existing = await res_repo.get_by_idempotency_key(store_id, key)
            if existing is not None:
                return CreateOutcome(reservation=existing, duplicate=True)
            raise SlotTakenError(
                "this time slot is already booked",
                slotStartUTC=slot_start.isoformat(),
                seatId=seat_id,
            ) from exc
        raise ConstraintViolationError("reservation conflicts with an existing booking") from exc
    except SQLAlchemyError as exc:
        logger.exception("reservation insert failed store=%s key=%s", store_id, key)
        raise DatabaseError("failed to create reservation") from exc

    return CreateOutcome(reservation=reservation)


async def cancel_reservation(
    res_repo: ReservationRepository,
    *,
    store_id: str,
    reservation_id: int,
    phone: Optional[str],
    tz: ZoneInfo,
    allow_same_day: bool,
    now: Optional[datetime] = None,
) -> tuple[Reservation, ReservationStatus]:
    """Cancel and free the slot. Returns the row and its status before the call."""
    reservation = await res_repo.get(store_id, reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    if phone is not None and _digits_only(phone) != _digits_only(reservation.phone):
        raise ReservationNotFoundError("reservation not found")

    previous = ReservationStatus(reservation.status)
    # Idempotent: already cancelled returns as-is
    if previous == ReservationStatus.CANCELLED:
        return reservation, previous

    now_utc = now or datetime.now(timezone.utc)
    if not allow_same_day:
        today_local = now_utc.astimezone(tz).date()
        if utc_naive_to_local(reservation.slot_start_utc, tz).date() <= today_local:
            raise CancelNotAllowedError("same-day cancellation is not accepted, please call the store")

    stamp = to_utc_naive(now_utc)
    reservation.status = ReservationStatus.CANCELLED
    reservation.cancelled_at = stamp
    reservation.modified_at = stamp
    reservation.cancel_reason = CUSTOMER_CANCEL_REASON
    reservation.slot_key = None
    updated = await res_repo.save(reservation)
    return updated, previous


def _digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


async def list_reservations(
    store_repo: StoreRepository,
    res_repo: ReservationRepository,
    *,
    store_id: str,
    start: Any,
    end: Any,
    settings: Settings,
) -> list[Reservation]:
    """Live reservations with ``start <= slot_start_utc <= end``; bounds without an offset are store-local."""
    profile = await load_store_profile(store_repo, store_id=store_id, settings=settings)
    start_utc = to_utc_naive(parse_instant(start, profile.tz)) if _present(start) else None
    end_utc = to_utc_naive(parse_instant(end, profile.tz)) if _present(end) else None
    return await res_repo.list_active_between(store_id, start_utc, end_utc)


async def get_reservation(
    res_repo: ReservationRepository,
    *,
    store_id: str,
    reservation_id: int,
) -> Reservation:
    reservation = await res_repo.get(store_id, reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    return reservation

