import json
from datetime import datetime
from typing import Optional

import httpx
import pytest
from storebook.models import Reservation, ReservationStatus
from storebook.services import notifier
from storebook.services.notifier import LineNotifier, confirmation_text


def _reservation(user_id: Optional[str] = "U123") -> Reservation:
    # 2025-09-04 18:30 in Tokyo
    return Reservation(
        id=42,
        store_id="s1",
        slot_start_utc=datetime(2025, 9, 4, 9, 30),
        slot_end_utc=datetime(2025, 9, 4, 10, 0),
        date="2025-09-04",
        time="18:30:00",
        people=3,
        user_id=user_id,
        status=ReservationStatus.CONFIRMED,
    )


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(notifier, "RETRY_BACKOFF_SECONDS", 0)


def _notifier(handler, *, token: str = "line-token", attempts: int = 3) -> LineNotifier:
    return LineNotifier(
        access_token=token,
        max_attempts=attempts,
        transport=httpx.MockTransport(handler),
    )


def test_confirmation_text_uses_local_time() -> None:
    text = confirmation_text(_reservation())
    assert "2025-09-04 18:30" in text
    assert "3名" in text
    assert "42" in text


@pytest.mark.asyncio
async def test_notify_pushes_to_line_user() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={})

    await _notifier(handler).notify_created(_reservation())

    assert len(requests) == 1
    assert str(requests[0].url) == notifier.LINE_PUSH_URL
    assert requests[0].headers["Authorization"] == "Bearer line-token"
    body = json.loads(requests[0].content)
    assert body["to"] == "U123"
    assert body["messages"][0]["type"] == "text"


@pytest.mark.asyncio
async def test_notify_retries_server_errors() -> None:
    statuses = iter([503, 429, 200])
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        calls.append(status)
        return httpx.Response(status)

    await _notifier(handler).notify_created(_reservation())

    assert calls == [503, 429, 200]


@pytest.mark.asyncio
async def test_notify_does_not_retry_client_errors() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(400)
        return httpx.Response(400, text="bad request")

    await _notifier(handler).notify_created(_reservation())

    assert calls == [400]


@pytest.mark.asyncio
async def test_notify_gives_up_after_attempts_on_transport_error() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append("boom")
        raise httpx.ConnectError("connection refused", request=request)

    await _notifier(handler, attempts=2).notify_created(_reservation())

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_notify_skips_without_token_or_user() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    await _notifier(handler, token="").notify_created(_reservation())
    await _notifier(handler).notify_created(_reservation(user_id=None))


@pytest.mark.asyncio
async def test_notify_uses_the_store_local_time_of_the_row() -> None:
    # Written by a New York store: 2025-09-04 22:15 UTC is 18:15 local.
    reservation = Reservation(
        id=43,
        store_id="ny",
        slot_start_utc=datetime(2025, 9, 4, 22, 15),
        slot_end_utc=datetime(2025, 9, 4, 22, 30),
        date="2025-09-04",
        time="18:15:00",
        people=2,
        user_id="U999",
        status=ReservationStatus.CONFIRMED,
    )
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    await _notifier(handler).notify_created(reservation)

    assert "2025-09-04 18:15" in bodies[0]["messages"][0]["text"]
