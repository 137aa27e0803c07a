from datetime import date
from typing import Any

from storebook.domain.rules import (
    CapacityLimit,
    applicable_rules,
    resolve_limit,
    resolve_rule,
    rule_applies_on,
    sunday_first_weekday,
)
from storebook.models import CapacityRule

THURSDAY = date(2025, 9, 4)


def _rule(rule_id: int, start: str, end: str, **fields: Any) -> CapacityRule:
    fields.setdefault("is_active", True)
    return CapacityRule(id=rule_id, store_id="s1", start_time=start, end_time=end, **fields)


def test_sunday_first_weekday() -> None:
    assert sunday_first_weekday(date(2025, 9, 7)) == 0
    assert sunday_first_weekday(THURSDAY) == 4
    assert sunday_first_weekday(date(2025, 9, 6)) == 6


def test_rule_applies_on_each_scope() -> None:
    assert rule_applies_on(_rule(1, "18:00", "21:00", date="2025-09-04"), THURSDAY)
    assert not rule_applies_on(_rule(1, "18:00", "21:00", date="2025-09-05"), THURSDAY)
    assert rule_applies_on(_rule(2, "18:00", "21:00", start_date="2025-09-01", end_date="2025-09-04"), THURSDAY)
    assert not rule_applies_on(_rule(2, "18:00", "21:00", start_date="2025-09-05"), THURSDAY)
    assert rule_applies_on(_rule(3, "18:00", "21:00", weekday=4), THURSDAY)
    assert not rule_applies_on(_rule(3, "18:00", "21:00", weekday=0), THURSDAY)
    assert rule_applies_on(_rule(4, "18:00", "21:00"), THURSDAY)
    assert not rule_applies_on(_rule(5, "18:00", "21:00", is_active=False), THURSDAY)


def test_applicable_rules_filters_seat_and_keeps_order() -> None:
    rules = [
        _rule(1, "18:00", "21:00", seat_id="T1"),
        _rule(2, "17:00", "22:00"),
        _rule(3, "18:00", "21:00", seat_id="T2"),
    ]
    assert [r.id for r in applicable_rules(rules, THURSDAY, "T1")] == [1, 2]
    assert [r.id for r in applicable_rules(rules, THURSDAY)] == [2]


def test_resolve_rule_first_match_wins() -> None:
    rules = [_rule(1, "18:00", "21:00", max_groups=2), _rule(2, "17:00", "22:00", max_groups=5)]
    assert resolve_rule("19:00", rules).id == 1
    assert resolve_rule("17:30", rules).id == 2
    assert resolve_rule("16:00", rules) is None


def test_resolve_rule_end_inclusive_switch() -> None:
    rules = [_rule(1, "18:00", "21:00", max_groups=2)]
    assert resolve_rule("21:00", rules) is not None
    assert resolve_rule("21:00", rules, end_inclusive=False) is None
    assert resolve_rule("18:00", rules, end_inclusive=False) is not None


def test_resolve_rule_skips_rules_without_limits() -> None:
    rules = [_rule(1, "18:00", "21:00"), _rule(2, "18:00", "21:00", max_people=10)]
    assert resolve_rule("19:00", rules).id == 2


def test_resolve_limit_returns_values() -> None:
    rules = [_rule(1, "18:00", "21:00", max_groups=3, max_per_group=6)]
    assert resolve_limit("20:30", rules) == CapacityLimit(max_groups=3, max_people=None, max_per_group=6)
    assert resolve_limit("10:00", rules) is None
