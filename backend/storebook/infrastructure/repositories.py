from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.repositories import CapacityRuleRepository, ReservationRepository, StoreRepository
from ..models import CapacityRule, Reservation, ReservationStatus, Store


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SqlAlchemyStoreRepository(StoreRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, store_id: str) -> Store | None:
        return await self.session.get(Store, store_id)


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, **fields: Any) -> Reservation:
        """Insert and commit one row. Constraint violations roll back and propagate."""
        now = _utc_now_naive()
        fields.setdefault("created_at", now)
        fields.setdefault("modified_at", now)
        reservation = Reservation(**fields)
        self.session.add(reservation)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise
        return reservation

    async def get(self, store_id: str, reservation_id: int) -> Reservation | None:
        stmt = select(Reservation).where(
            Reservation.id == reservation_id,
            Reservation.store_id == store_id,
        )
        return await self.session.scalar(stmt)

    async def get_by_idempotency_key(self, store_id: str, idempotency_key: str) -> Reservation | None:
        stmt = select(Reservation).where(
            Reservation.store_id == store_id,
            Reservation.idempotency_key == idempotency_key,
        )
        return await self.session.scalar(stmt)

    async def list_active_between(
        self,
        store_id: str,
        start: datetime | None,
        end: datetime | None,
    ) -> list[Reservation]:
        stmt = (
            select(Reservation)
            .where(
                Reservation.store_id == store_id,
                Reservation.status != ReservationStatus.CANCELLED,
            )
            .order_by(Reservation.slot_start_utc.asc(), Reservation.id.asc())
        )
        if start is not None:
            stmt = stmt.where(Reservation.slot_start_utc >= start)
        if end is not None:
            stmt = stmt.where(Reservation.slot_start_utc <= end)
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def save(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation


class SqlAlchemyCapacityRuleRepository(CapacityRuleRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_store(self, store_id: str) -> list[CapacityRule]:
        stmt = (
            select(CapacityRule)
            .where(CapacityRule.store_id == store_id, CapacityRule.is_active.is_(True))
            .order_by(CapacityRule.id.asc())
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def replace_for_date(
        self,
        store_id: str,
        on_date: str,
        rules: Sequence[dict[str, Any]],
    ) -> list[CapacityRule]:
        await self.session.execute(
            delete(CapacityRule).where(
                CapacityRule.store_id == store_id,
                CapacityRule.date == on_date,
            )
        )
        now = _utc_now_naive()
        created = [
            CapacityRule(
                store_id=store_id,
                date=on_date,
                is_active=True,
                created_at=now,
                updated_at=now,
                **fields,
            )
            for fields in rules
        ]
        self.session.add_all(created)
        await self.session.flush()
        return created
