from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, Sequence

from ..models import CapacityRule, Reservation, Store


class StoreRepository(Protocol):
    async def get(self, store_id: str) -> Store | None: ...


class ReservationRepository(Protocol):
    async def create(self, **fields: Any) -> Reservation: ...

    async def get(self, store_id: str, reservation_id: int) -> Reservation | None: ...

    async def get_by_idempotency_key(self, store_id: str, idempotency_key: str) -> Reservation | None: ...

    async def list_active_between(
        self,
        store_id: str,
        start: datetime | None,
        end: datetime | None,
    ) -> list[Reservation]: ...

    async def save(self, reservation: Reservation) -> Reservation: ...


class CapacityRuleRepository(Protocol):
    async def list_for_store(self, store_id: str) -> list[CapacityRule]: ...

    async def replace_for_date(
        self,
        store_id: str,
        on_date: str,
        rules: Sequence[dict[str, Any]],
    ) -> list[CapacityRule]: ...
