from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..domain.errors import InvalidTimeError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
DEFAULT_SEAT_BUCKET = "_default_"

_DASHES = re.compile(r"[ｰー‐‑–—−\-]")
_DELIMITED = re.compile(r"^(\d{1,2})[:.](\d{1,2})(?::\d{1,2})?$")
_JP_HALF = re.compile(r"^(\d{1,2})時半$")
_JP_HOUR_MINUTE = re.compile(r"^(\d{1,2})時(?:(\d{1,2})分?)?$")
_BARE_DIGITS = re.compile(r"^\d{3,4}$")
_HOUR_ONLY = re.compile(r"^\d{1,2}$")


def _hhmm(hour: int, minute: int) -> str:
    hour = min(23, max(0, hour))
    minute = min(59, max(0, minute))
    return f"{hour:02d}:{minute:02d}"


def normalize_time_of_day(value: Any) -> str | None:
    """Normalize a loosely formatted time of day into ``HH:MM``.

    Accepts ``"18:30"``, ``"18.30"``, ``"18-30"``, ``"1830"``, ``"18"``,
    ``"18時30分"``, ``"18時"`` and ``"18時半"`` (full-width digits included).
    Integers up to 24 are hours, larger integers are minutes since midnight.
    Returns None when nothing matches.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        if value < 0:
            return None
        if value <= 24:
            return _hhmm(value, 0)
        return _hhmm(value // 60, value % 60)

    text = unicodedata.normalize("NFKC", str(value)).strip()
    if not text:
        return None
    text = text.replace("。", ".")
    text = _DASHES.sub(":", text)

    match = _DELIMITED.match(text)
    if match:
        return _hhmm(int(match.group(1)), int(match.group(2)))

    match = _JP_HALF.match(text)
    if match:
        return _hhmm(int(match.group(1)), 30)

    match = _JP_HOUR_MINUTE.match(text)
    if match:
        return _hhmm(int(match.group(1)), int(match.group(2) or 0))

    if _BARE_DIGITS.match(text):
        padded = text.zfill(4)
        hour, minute = int(padded[:2]), int(padded[2:])
        if hour <= 23 and minute <= 59:
            return f"{hour:02d}:{minute:02d}"
        return None

    if _HOUR_ONLY.match(text):
        return _hhmm(int(text), 0)

    return None


@lru_cache(maxsize=64)
def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"unknown timezone: {name}") from exc


def parse_instant(value: Any, default_tz: ZoneInfo | None = None) -> datetime:
    """Parse an absolute instant.

    Strings must be ISO-8601; a value without an offset is only accepted when
    ``default_tz`` says which zone it is local to. Integers are epoch
    milliseconds.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return EPOCH + timedelta(milliseconds=value)
        except (OverflowError, ValueError) as exc:
            raise InvalidTimeError(f"invalid instant: {value!r}") from exc
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidTimeError(f"invalid instant: {value!r}") from exc
    else:
        raise InvalidTimeError(f"invalid instant: {value!r}")

    if parsed.tzinfo is None:
        if default_tz is None:
            raise InvalidTimeError(f"instant has no timezone offset: {value!r}")
        parsed = parsed.replace(tzinfo=default_tz)
    return parsed


def floor_to_slot_utc(value: Any, slot_minutes: int, default_tz: ZoneInfo | None = None) -> datetime:
    """Floor an instant to its slot boundary, counted in whole slots from the Unix epoch."""
    if slot_minutes <= 0:
        raise ValueError("slot_minutes must be positive")
    instant = parse_instant(value, default_tz).astimezone(timezone.utc)
    step = timedelta(minutes=slot_minutes)
    return EPOCH + ((instant - EPOCH) // step) * step


def slot_end(start: datetime, slot_minutes: int) -> datetime:
    return start + timedelta(minutes=slot_minutes)


def parse_local_date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidTimeError(f"invalid date: {value!r}")
    try:
        return date.fromisoformat(value.strip().replace("/", "-"))
    except ValueError as exc:
        raise InvalidTimeError(f"invalid date: {value!r}") from exc


def local_start_at(date_value: Any, time_value: Any, tz: ZoneInfo) -> datetime:
    """Combine the legacy ``date`` + ``time`` pair into an aware local datetime."""
    on_date = parse_local_date(date_value)
    hhmm = normalize_time_of_day(time_value)
    if hhmm is None:
        raise InvalidTimeError(f"invalid time: {time_value!r}")
    hour, minute = (int(part) for part in hhmm.split(":"))
    return datetime.combine(on_date, time(hour, minute), tzinfo=tz)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utc_naive_to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(tz)


def local_day_bounds_utc(on_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Naive UTC bounds ``[start, end)`` of a local calendar day."""
    start = datetime.combine(on_date, time(0, 0), tzinfo=tz)
    end = datetime.combine(on_date + timedelta(days=1), time(0, 0), tzinfo=tz)
    return to_utc_naive(start), to_utc_naive(end)


def format_utc_iso(dt: datetime) -> str:
    """``YYYY-MM-DDTHH:MM:SS.mmmZ``; naive values are taken to be UTC already."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def slot_key(store_id: str, slot_start: datetime, seat_id: str | None) -> str:
    return f"{store_id}:{format_utc_iso(slot_start)}:{seat_id or DEFAULT_SEAT_BUCKET}"
