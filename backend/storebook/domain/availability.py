from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, NamedTuple, Optional, Sequence
from zoneinfo import ZoneInfo

from ..models import CapacityRule, Reservation, ReservationStatus
from ..utils.time import utc_naive_to_local
from .errors import CapacityExceededError, SlotTakenError
from .rules import CapacityLimit, applicable_rules, resolve_rule, rule_applies_on, time_in_range

LIMITED_RATIO = 0.8


class RangeKey(NamedTuple):
    start_time: str
    end_time: str
    seat_id: Optional[str] = None

    @classmethod
    def of(cls, rule: CapacityRule) -> "RangeKey":
        return cls(rule.start_time, rule.end_time, rule.seat_id)


@dataclass(frozen=True)
class Utilization:
    groups: int = 0
    people: int = 0


@dataclass(frozen=True)
class SlotAvailability:
    time: str
    status: str
    current_groups: int
    current_people: int
    limit: Optional[CapacityLimit]

    @property
    def selectable(self) -> bool:
        return self.status != "full"

    @property
    def remaining_groups(self) -> Optional[int]:
        if self.limit is None or self.limit.max_groups is None:
            return None
        return max(self.limit.max_groups - self.current_groups, 0)

    @property
    def remaining_people(self) -> Optional[int]:
        if self.limit is None or self.limit.max_people is None:
            return None
        return max(self.limit.max_people - self.current_people, 0)


def local_time_of(reservation: Reservation, tz: ZoneInfo) -> datetime:
    return utc_naive_to_local(reservation.slot_start_utc, tz)


def aggregate_utilization(
    store_id: str,
    on_date: date,
    rules: Iterable[CapacityRule],
    reservations: Sequence[Reservation],
    tz: ZoneInfo,
    *,
    end_inclusive: bool = True,
) -> dict[RangeKey, Utilization]:
    """
    Sum groups and people of live reservations over each rule's whole time range.

    A rule limits its range jointly, so a reservation anywhere inside the range
    counts against it, not only one in the same slot. Rules sharing a range
    share one entry.
    """
    live: list[tuple[str, Reservation]] = []
    for reservation in reservations:
        if reservation.store_id != store_id or reservation.status == ReservationStatus.CANCELLED:
            continue
        local = local_time_of(reservation, tz)
        if local.date() != on_date:
            continue
        live.append((local.strftime("%H:%M"), reservation))

    usage: dict[RangeKey, Utilization] = {}
    for rule in rules:
        if not rule_applies_on(rule, on_date):
            continue
        key = RangeKey.of(rule)
        if key in usage:
            continue
        groups = 0
        people = 0
        for time_of_day, reservation in live:
            if rule.seat_id is not None and reservation.seat_id != rule.seat_id:
                continue
            if not time_in_range(time_of_day, rule.start_time, rule.end_time, end_inclusive=end_inclusive):
                continue
            groups += 1
            people += reservation.people
        usage[key] = Utilization(groups=groups, people=people)
    return usage


def check_capacity(limit: CapacityLimit, usage: Utilization, *, people: int) -> None:
    """Advisory pre-check of one more group of ``people`` against ``limit``."""
    if limit.max_per_group is not None and people > limit.max_per_group:
        raise CapacityExceededError(
            f"at most {limit.max_per_group} people per group",
            maxPerGroup=limit.max_per_group,
        )
    if limit.max_groups is not None and usage.groups + 1 > limit.max_groups:
        error_cls = SlotTakenError if limit.max_groups == 1 else CapacityExceededError
        raise error_cls(
            f"time range is full ({usage.groups}/{limit.max_groups} groups)",
            maxGroups=limit.max_groups,
            currentGroups=usage.groups,
        )
    if limit.max_people is not None and usage.people + people > limit.max_people:
        raise CapacityExceededError(
            f"time range would exceed capacity ({usage.people + people}/{limit.max_people} people)",
            maxPeople=limit.max_people,
            wouldBe=usage.people + people,
        )


def day_slot_times(open_hour: int, close_hour: int, slot_minutes: int) -> list[str]:
    """Local ``HH:MM`` slot starts from opening up to (excluding) closing."""
    base = datetime.combine(date(2000, 1, 1), time(0, 0))
    cursor = base + timedelta(hours=open_hour)
    stop = base + timedelta(hours=close_hour)
    times: list[str] = []
    while cursor < stop:
        times.append(cursor.strftime("%H:%M"))
        cursor += timedelta(minutes=slot_minutes)
    return times


def _slot_status(limit: CapacityLimit, usage: Utilization) -> str:
    ratios: list[float] = []
    if limit.max_groups is not None:
        if usage.groups >= limit.max_groups:
            return "full"
        ratios.append(usage.groups / limit.max_groups)
    if limit.max_people is not None:
        if usage.people >= limit.max_people:
            return "full"
        ratios.append(usage.people / limit.max_people)
    if ratios and max(ratios) >= LIMITED_RATIO:
        return "limited"
    return "available"


def slot_availability(
    store_id: str,
    on_date: date,
    rules: Sequence[CapacityRule],
    reservations: Sequence[Reservation],
    tz: ZoneInfo,
    *,
    slot_minutes: int,
    open_hour: int,
    close_hour: int,
    end_inclusive: bool = True,
) -> list[SlotAvailability]:
    day_rules = applicable_rules(rules, on_date)
    usage = aggregate_utilization(store_id, on_date, day_rules, reservations, tz, end_inclusive=end_inclusive)
    items: list[SlotAvailability] = []
    for time_of_day in day_slot_times(open_hour, close_hour, slot_minutes):
        rule = resolve_rule(time_of_day, day_rules, end_inclusive=end_inclusive)
        if rule is None:
            items.append(SlotAvailability(time_of_day, "available", 0, 0, None))
            continue
        limit = CapacityLimit.from_rule(rule)
        current = usage.get(RangeKey.of(rule), Utilization())
        items.append(
            SlotAvailability(
                time=time_of_day,
                status=_slot_status(limit, current),
                current_groups=current.groups,
                current_people=current.people,
                limit=limit,
            )
        )
    return items
