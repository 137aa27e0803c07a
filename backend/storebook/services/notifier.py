"""
Outbound reservation notifications.

LINE Messaging API push, sent after the response is written. Requires
LINE_CHANNEL_ACCESS_TOKEN; without it, or when the reservation has no LINE
user id, notify_created is a no-op. Failures are logged and never reach the
reservation write path.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from ..config import Settings
from ..models import Reservation

logger = logging.getLogger(__name__)

LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"
RETRY_BACKOFF_SECONDS = 0.5


class ReservationNotifier(Protocol):
    async def notify_created(self, reservation: Reservation) -> None: ...


def confirmation_text(reservation: Reservation) -> str:
    """Message body; date and time are the store-local mirrors written with the row."""
    return (
        "ご予約を承りました。\n"
        f"日時: {reservation.date} {reservation.time[:5]}\n"
        f"人数: {reservation.people}名\n"
        f"予約番号: {reservation.id}"
    )


class LineNotifier:
    def __init__(
        self,
        *,
        access_token: str,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.access_token = access_token
        self.max_attempts = max(1, max_attempts)
        self.transport = transport

    async def notify_created(self, reservation: Reservation) -> None:
        if not self.access_token or not reservation.user_id:
            logger.debug("LINE notify skipped for reservation %s", reservation.id)
            return
        payload = {
            "to": reservation.user_id,
            "messages": [{"type": "text", "text": confirmation_text(reservation)}],
        }
        headers = {"Authorization": f"Bearer {self.access_token}"}
        async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    resp = await client.post(LINE_PUSH_URL, json=payload, headers=headers)
                except httpx.HTTPError as e:
                    logger.warning("LINE push attempt %s/%s failed: %s", attempt, self.max_attempts, e)
                else:
                    if resp.status_code < 400:
                        logger.info("LINE push sent for reservation %s", reservation.id)
                        return
                    # 4xx other than rate limiting will not succeed on retry
                    if resp.status_code < 500 and resp.status_code != 429:
                        logger.warning("LINE push rejected %s: %s", resp.status_code, resp.text[:200])
                        return
                    logger.warning("LINE push attempt %s/%s got %s", attempt, self.max_attempts, resp.status_code)
                if attempt < self.max_attempts:
                    await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
        logger.error("LINE push gave up for reservation %s", reservation.id)


def get_notifier(settings: Settings) -> ReservationNotifier:
    return LineNotifier(
        access_token=settings.line_channel_access_token,
        max_attempts=settings.notify_max_attempts,
    )
