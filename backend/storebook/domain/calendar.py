"""Projection of stored rows into calendar event dictionaries (FullCalendar shape)."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Any
from zoneinfo import ZoneInfo

from ..models import CapacityRule, Reservation
from ..utils.time import format_utc_iso

CONSTRAINT_BACKGROUND = "#ffcccc"


def _status_value(status: Any) -> str:
    return str(getattr(status, "value", status))


def to_event(reservation: Reservation) -> dict[str, Any]:
    status = _status_value(reservation.status)
    return {
        "id": f"booking-{reservation.id}",
        "title": f"{reservation.customer_name} ({reservation.people}名)",
        "start": format_utc_iso(reservation.slot_start_utc),
        "end": format_utc_iso(reservation.slot_end_utc),
        "allDay": False,
        "status": status,
        "classNames": ["fc-booking"],
        "extendedProps": {
            "type": "booking",
            "reservationId": reservation.id,
            "storeId": reservation.store_id,
            "userName": reservation.customer_name,
            "userPhone": reservation.phone,
            "people": reservation.people,
            "seatId": reservation.seat_id,
            "message": reservation.message,
            "status": status,
            "date": reservation.date,
            "time": reservation.time,
        },
    }


def _local_instant(on_date: date, hhmm: str, tz: ZoneInfo) -> datetime:
    hour, minute = (int(part) for part in hhmm.split(":"))
    return datetime.combine(on_date, time(hour, minute), tzinfo=tz)


def to_background_event(rule: CapacityRule, on_date: date, tz: ZoneInfo) -> dict[str, Any]:
    """Background event covering ``rule``'s local range on ``on_date``."""
    start = _local_instant(on_date, rule.start_time, tz)
    end = _local_instant(on_date, rule.end_time, tz)
    return {
        "id": f"constraint-{rule.id}",
        "start": format_utc_iso(start),
        "end": format_utc_iso(end),
        "allDay": False,
        "display": "background",
        "classNames": ["fc-constraint"],
        "backgroundColor": CONSTRAINT_BACKGROUND,
        "extendedProps": {
            "type": "constraint",
            "constraintId": rule.id,
            "date": on_date.isoformat(),
            "startTime": rule.start_time,
            "endTime": rule.end_time,
            "maxGroups": rule.max_groups,
            "maxPeople": rule.max_people,
            "maxPerGroup": rule.max_per_group,
            "seatId": rule.seat_id,
        },
    }
