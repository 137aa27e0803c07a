from datetime import datetime, timedelta, timezone
from typing import Any, cast

import pytest
from fastapi import BackgroundTasks, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession
from storebook.config import Settings
from storebook.domain.errors import SlotTakenError
from storebook.models import Reservation, ReservationStatus
from storebook.routers import reservations as router
from storebook.schemas import ReservationCancel, ReservationCreate
from storebook.usecases.reservations import CreateOutcome
from storebook.usecases.stores import StoreProfile
from storebook.utils.time import get_zone


class DummySession:
    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False

    def begin(self) -> "DummySession":
        return self


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[Reservation] = []

    async def notify_created(self, reservation: Reservation) -> None:
        self.sent.append(reservation)


def _reservation(status: ReservationStatus = ReservationStatus.CONFIRMED) -> Reservation:
    starts = datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0) + timedelta(days=2)
    return Reservation(
        id=100,
        store_id="s1",
        slot_start_utc=starts,
        slot_end_utc=starts + timedelta(minutes=30),
        date="2030-09-04",
        time="18:00:00",
        customer_name="山田",
        phone="09012345678",
        user_id="U123",
        people=2,
        seat_id=None,
        status=status,
        idempotency_key="k-1",
    )


def _payload() -> ReservationCreate:
    return ReservationCreate.model_validate(
        {"storeId": "s1", "startAt": "2030-09-04T18:00:00+09:00", "name": "山田", "phone": "09012345678"}
    )


def _patch_repos(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(router, "SqlAlchemyStoreRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyReservationRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyCapacityRuleRepository", lambda s: s)  # type: ignore[assignment]


async def _call_create(outcome_or_error: Any, monkeypatch: pytest.MonkeyPatch) -> tuple[Any, Response, BackgroundTasks]:
    async def fake_create_reservation(*args: object, **kwargs: object) -> CreateOutcome:
        if isinstance(outcome_or_error, Exception):
            raise outcome_or_error
        return outcome_or_error

    _patch_repos(monkeypatch)
    monkeypatch.setattr(router.reservation_usecase, "create_reservation", fake_create_reservation)

    response = Response()
    background = BackgroundTasks()
    result = await router.create_reservation(
        payload=_payload(),
        response=response,
        background_tasks=background,
        idempotency_key="k-1",
        session=cast(AsyncSession, DummySession()),
        settings=Settings(),
        notifier=RecordingNotifier(),
    )
    return result, response, background


@pytest.mark.asyncio
async def test_create_emits_audit_and_schedules_notification(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(router, "emit_audit_log", lambda **kwargs: calls.append(kwargs))

    result, _, background = await _call_create(CreateOutcome(reservation=_reservation()), monkeypatch)

    assert result.duplicate is False
    assert result.reservation["id"] == "booking-100"
    assert len(background.tasks) == 1
    assert calls[0]["action"] == "reservation.created"
    assert calls[0]["idempotency_key"] == "k-1"


@pytest.mark.asyncio
async def test_create_duplicate_returns_200_without_notification(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(router, "emit_audit_log", lambda **kwargs: calls.append(kwargs))

    result, response, background = await _call_create(
        CreateOutcome(reservation=_reservation(), duplicate=True), monkeypatch
    )

    assert result.duplicate is True
    assert response.status_code == 200
    assert background.tasks == []
    assert calls[0]["action"] == "reservation.duplicate"


@pytest.mark.asyncio
async def test_create_audit_failure_still_returns_reservation(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_emit(**kwargs: Any) -> None:
        raise RuntimeError("fail log")

    monkeypatch.setattr(router, "emit_audit_log", fail_emit)

    result, _, _ = await _call_create(CreateOutcome(reservation=_reservation()), monkeypatch)

    assert result.reservation["extendedProps"]["reservationId"] == 100


@pytest.mark.asyncio
async def test_create_maps_domain_error_to_http(monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(HTTPException) as excinfo:
        await _call_create(SlotTakenError("this time slot is already booked", seatId=None), monkeypatch)

    assert excinfo.value.status_code == 409
    detail = cast(dict[str, Any], excinfo.value.detail)
    assert detail["error"] == "slot_taken"
    assert detail["details"] == {"seatId": None}


async def _call_cancel(monkeypatch: pytest.MonkeyPatch, updated: Reservation, previous: ReservationStatus) -> Any:
    async def fake_profile(*args: object, **kwargs: object) -> StoreProfile:
        return StoreProfile(store_id="s1", tz=get_zone("Asia/Tokyo"), slot_minutes=30)

    async def fake_cancel(*args: object, **kwargs: object) -> tuple[Reservation, ReservationStatus]:
        return updated, previous

    _patch_repos(monkeypatch)
    monkeypatch.setattr(router, "load_store_profile", fake_profile)
    monkeypatch.setattr(router.reservation_usecase, "cancel_reservation", fake_cancel)

    return await router.cancel_reservation(
        payload=ReservationCancel(store_id="s1", phone="09012345678"),
        reservation_id=updated.id,
        session=cast(AsyncSession, DummySession()),
        settings=Settings(),
    )


@pytest.mark.asyncio
async def test_cancel_emits_transition(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(router, "emit_audit_log", lambda **kwargs: calls.append(kwargs))

    result = await _call_cancel(monkeypatch, _reservation(ReservationStatus.CANCELLED), ReservationStatus.CONFIRMED)

    assert result.reservation["status"] == "cancelled"
    assert calls[0]["action"] == "reservation.cancelled"
    assert calls[0]["status_from"] == ReservationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_cancel_repeat_is_not_audited(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(router, "emit_audit_log", lambda **kwargs: calls.append(kwargs))

    await _call_cancel(monkeypatch, _reservation(ReservationStatus.CANCELLED), ReservationStatus.CANCELLED)

    assert calls == []


@pytest.mark.asyncio
async def test_cancel_log_failure_returns_500(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_emit(**kwargs: Any) -> None:
        raise RuntimeError("fail log")

    monkeypatch.setattr(router, "emit_audit_log", fail_emit)

    with pytest.raises(HTTPException) as excinfo:
        await _call_cancel(monkeypatch, _reservation(ReservationStatus.CANCELLED), ReservationStatus.CONFIRMED)
    assert excinfo.value.status_code == 500
