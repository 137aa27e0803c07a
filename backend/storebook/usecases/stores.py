from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo

from ..config import Settings
from ..domain.repositories import StoreRepository
from ..utils.time import get_zone


@dataclass(frozen=True)
class StoreProfile:
    store_id: str
    tz: ZoneInfo
    slot_minutes: int


async def load_store_profile(store_repo: StoreRepository, *, store_id: str, settings: Settings) -> StoreProfile:
    """Per-store timezone and slot size, falling back to the service defaults."""
    store = await store_repo.get(store_id)
    tz_name = settings.store_timezone
    slot_minutes = settings.slot_minutes
    if store is not None:
        tz_name = store.timezone or tz_name
        slot_minutes = store.slot_minutes or slot_minutes
    return StoreProfile(store_id=store_id, tz=get_zone(tz_name), slot_minutes=slot_minutes)
