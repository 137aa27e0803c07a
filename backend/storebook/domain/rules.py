from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Sequence

from ..models import CapacityRule


@dataclass(frozen=True)
class CapacityLimit:
    max_groups: Optional[int]
    max_people: Optional[int]
    max_per_group: Optional[int]

    @property
    def unrestricted(self) -> bool:
        return self.max_groups is None and self.max_people is None and self.max_per_group is None

    @classmethod
    def from_rule(cls, rule: CapacityRule) -> "CapacityLimit":
        return cls(
            max_groups=rule.max_groups,
            max_people=rule.max_people,
            max_per_group=rule.max_per_group,
        )


def sunday_first_weekday(on_date: date) -> int:
    """Weekday with 0 = Sunday, the numbering rules are stored with."""
    return (on_date.weekday() + 1) % 7


def rule_applies_on(rule: CapacityRule, on_date: date) -> bool:
    if rule.is_active is False:
        return False
    day = on_date.isoformat()
    if rule.date:
        return rule.date == day
    if rule.start_date or rule.end_date:
        if rule.start_date and day < rule.start_date:
            return False
        if rule.end_date and day > rule.end_date:
            return False
        return True
    if rule.weekday is not None:
        return rule.weekday == sunday_first_weekday(on_date)
    return True


def applicable_rules(
    rules: Iterable[CapacityRule],
    on_date: date,
    seat_id: Optional[str] = None,
) -> list[CapacityRule]:
    """Rules governing ``on_date`` (and ``seat_id``), stored order preserved."""
    return [
        rule
        for rule in rules
        if rule_applies_on(rule, on_date) and (rule.seat_id is None or rule.seat_id == seat_id)
    ]


def time_in_range(time_of_day: str, start: str, end: str, *, end_inclusive: bool = True) -> bool:
    if end_inclusive:
        return start <= time_of_day <= end
    return start <= time_of_day < end


def resolve_rule(
    time_of_day: str,
    rules: Sequence[CapacityRule],
    *,
    end_inclusive: bool = True,
) -> CapacityRule | None:
    """
    First rule (in stored order) whose time range contains ``time_of_day``.
    Rules carrying no limit at all are skipped, they restrict nothing.
    """
    for rule in rules:
        if not time_in_range(time_of_day, rule.start_time, rule.end_time, end_inclusive=end_inclusive):
            continue
        if CapacityLimit.from_rule(rule).unrestricted:
            continue
        return rule
    return None


def resolve_limit(
    time_of_day: str,
    rules: Sequence[CapacityRule],
    *,
    end_inclusive: bool = True,
) -> CapacityLimit | None:
    rule = resolve_rule(time_of_day, rules, end_inclusive=end_inclusive)
    if rule is None:
        return None
    return CapacityLimit.from_rule(rule)
