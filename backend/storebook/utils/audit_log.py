from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "reservation.created",
    "reservation.duplicate",
    "reservation.cancelled",
    "capacity.rules_replaced",
]
AuditInitiator = Literal["customer", "staff", "system"]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _enum_to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    store_id: str,
    reservation_id: Optional[int] = None,
    slot_start_utc: Optional[str] = None,
    seat_id: Optional[str] = None,
    people: Optional[int] = None,
    status_from: Any = None,
    status_to: Any = None,
    idempotency_key: Optional[str] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit structured JSON audit log. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
        "store_id": store_id,
        "reservation_id": reservation_id,
        "slot_start_utc": slot_start_utc,
        "seat_id": seat_id,
        "people": people,
        "status_from": _enum_to_str(status_from),
        "status_to": _enum_to_str(status_to),
        "idempotency_key": idempotency_key,
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update(extra)

    # Drop None values to keep the log compact.
    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=False))
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("failed to emit audit log") from exc
