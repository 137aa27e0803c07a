from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Sequence
from zoneinfo import ZoneInfo

from ..config import Settings
from ..domain.availability import SlotAvailability, slot_availability
from ..domain.calendar import to_background_event
from ..domain.errors import ValidationError
from ..domain.repositories import CapacityRuleRepository, ReservationRepository, StoreRepository
from ..domain.rules import rule_applies_on
from ..models import CapacityRule
from ..utils.time import local_day_bounds_utc, normalize_time_of_day, parse_instant, parse_local_date
from .stores import load_store_profile


def _local_date(value: Any, tz: ZoneInfo) -> date:
    """Local calendar date of a window bound; a bare ``YYYY-MM-DD`` is taken as is."""
    if isinstance(value, str) and len(value.strip()) == 10:
        return parse_local_date(value)
    return parse_instant(value, tz).astimezone(tz).date()


def _last_local_date(value: Any, tz: ZoneInfo) -> date:
    """Last date of a window. A bare date is inclusive; an instant at local midnight is exclusive."""
    if isinstance(value, str) and len(value.strip()) == 10:
        return parse_local_date(value)
    local = parse_instant(value, tz).astimezone(tz)
    if local.time() == time(0, 0):
        return local.date() - timedelta(days=1)
    return local.date()


async def list_constraint_events(
    store_repo: StoreRepository,
    rule_repo: CapacityRuleRepository,
    *,
    store_id: str,
    start: Any,
    end: Any,
    settings: Settings,
) -> list[dict[str, Any]]:
    """Background events for every local date in ``[start, end]`` each active rule applies on."""
    profile = await load_store_profile(store_repo, store_id=store_id, settings=settings)
    today = datetime.now(profile.tz).date()
    first = _local_date(start, profile.tz) if start else today
    last = _last_local_date(end, profile.tz) if end else first + timedelta(days=settings.max_calendar_days - 1)
    if last < first:
        raise ValidationError("end must not be before start")
    if (last - first).days + 1 > settings.max_calendar_days:
        raise ValidationError(f"window is limited to {settings.max_calendar_days} days")

    rules = await rule_repo.list_for_store(store_id)
    events: list[dict[str, Any]] = []
    day = first
    while day <= last:
        for rule in rules:
            if rule_applies_on(rule, day):
                events.append(to_background_event(rule, day, profile.tz))
        day += timedelta(days=1)
    return events


def normalize_rule_fields(raw: dict[str, Any]) -> dict[str, Any]:
    start_time = normalize_time_of_day(raw.get("start_time"))
    end_time = normalize_time_of_day(raw.get("end_time"))
    if start_time is None or end_time is None:
        raise ValidationError("start_time and end_time are required")
    if end_time < start_time:
        raise ValidationError("end_time must not be before start_time")
    return {
        "start_time": start_time,
        "end_time": end_time,
        "max_groups": raw.get("max_groups"),
        "max_people": raw.get("max_people"),
        "max_per_group": raw.get("max_per_group"),
        "seat_id": raw.get("seat_id"),
    }


async def replace_rules_for_date(
    rule_repo: CapacityRuleRepository,
    *,
    store_id: str,
    on_date: date,
    rules: Sequence[dict[str, Any]],
) -> list[CapacityRule]:
    """Staff action: drop the store's rules for ``on_date`` and insert ``rules`` in order."""
    normalized = [normalize_rule_fields(raw) for raw in rules]
    return await rule_repo.replace_for_date(store_id, on_date.isoformat(), normalized)


async def availability_for_date(
    store_repo: StoreRepository,
    res_repo: ReservationRepository,
    rule_repo: CapacityRuleRepository,
    *,
    store_id: str,
    on_date: date,
    settings: Settings,
) -> list[SlotAvailability]:
    profile = await load_store_profile(store_repo, store_id=store_id, settings=settings)
    rules = await rule_repo.list_for_store(store_id)
    day_start, day_end = local_day_bounds_utc(on_date, profile.tz)
    reservations = await res_repo.list_active_between(store_id, day_start, day_end)
    return slot_availability(
        store_id,
        on_date,
        rules,
        reservations,
        profile.tz,
        slot_minutes=profile.slot_minutes,
        open_hour=settings.open_hour,
        close_hour=settings.close_hour,
        end_inclusive=settings.rule_end_inclusive,
    )
