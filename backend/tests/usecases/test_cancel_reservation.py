from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import pytest
from storebook.domain.errors import CancelNotAllowedError, ReservationNotFoundError
from storebook.models import Reservation, ReservationStatus
from storebook.usecases import reservations as usecase

TOKYO = ZoneInfo("Asia/Tokyo")
# 2025-09-03 10:00 in Tokyo
NOW = datetime(2025, 9, 3, 1, 0, tzinfo=timezone.utc)


class FakeReservationRepo:
    def __init__(self, reservation: Optional[Reservation]) -> None:
        self.reservation = reservation
        self.saved: list[Reservation] = []

    async def get(self, store_id: str, reservation_id: int) -> Optional[Reservation]:
        r = self.reservation
        if r is None or r.store_id != store_id or r.id != reservation_id:
            return None
        return r

    async def save(self, reservation: Reservation) -> Reservation:
        self.saved.append(reservation)
        return reservation


def _reservation(slot_start_utc: datetime, status: ReservationStatus = ReservationStatus.CONFIRMED) -> Reservation:
    return Reservation(
        id=5,
        store_id="s1",
        slot_start_utc=slot_start_utc,
        phone="090-1234-5678",
        people=2,
        status=status,
        slot_key="s1:x:_default_",
    )


async def _cancel(repo: FakeReservationRepo, *, phone: Optional[str] = "09012345678", allow_same_day: bool = False):
    return await usecase.cancel_reservation(
        repo,
        store_id="s1",
        reservation_id=5,
        phone=phone,
        tz=TOKYO,
        allow_same_day=allow_same_day,
        now=NOW,
    )


@pytest.mark.asyncio
async def test_cancel_future_reservation_frees_slot() -> None:
    # 2025-09-04 18:00 in Tokyo
    repo = FakeReservationRepo(_reservation(datetime(2025, 9, 4, 9, 0)))

    updated, previous = await _cancel(repo)

    assert previous == ReservationStatus.CONFIRMED
    assert updated.status == ReservationStatus.CANCELLED
    assert updated.slot_key is None
    assert updated.cancelled_at == datetime(2025, 9, 3, 1, 0)
    assert updated.cancel_reason
    assert repo.saved == [updated]


@pytest.mark.asyncio
async def test_cancel_same_local_day_is_refused() -> None:
    # 2025-09-03 20:00 in Tokyo, same local day as NOW
    repo = FakeReservationRepo(_reservation(datetime(2025, 9, 3, 11, 0)))

    with pytest.raises(CancelNotAllowedError):
        await _cancel(repo)
    assert repo.saved == []


@pytest.mark.asyncio
async def test_cancel_same_day_allowed_when_configured() -> None:
    repo = FakeReservationRepo(_reservation(datetime(2025, 9, 3, 11, 0)))

    updated, _ = await _cancel(repo, allow_same_day=True)

    assert updated.status == ReservationStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_local_date_not_utc_date_decides() -> None:
    # 2025-09-03 23:30 UTC is already 2025-09-04 08:30 in Tokyo
    repo = FakeReservationRepo(_reservation(datetime(2025, 9, 3, 23, 30)))

    updated, _ = await _cancel(repo)

    assert updated.status == ReservationStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_twice_returns_row_unchanged() -> None:
    repo = FakeReservationRepo(_reservation(datetime(2025, 9, 4, 9, 0), ReservationStatus.CANCELLED))

    updated, previous = await _cancel(repo)

    assert previous == ReservationStatus.CANCELLED
    assert updated.status == ReservationStatus.CANCELLED
    assert repo.saved == []


@pytest.mark.asyncio
async def test_cancel_wrong_phone_looks_like_missing_row() -> None:
    repo = FakeReservationRepo(_reservation(datetime(2025, 9, 4, 9, 0)))

    with pytest.raises(ReservationNotFoundError):
        await _cancel(repo, phone="080-0000-0000")


@pytest.mark.asyncio
async def test_cancel_unknown_reservation() -> None:
    with pytest.raises(ReservationNotFoundError):
        await _cancel(FakeReservationRepo(None))
