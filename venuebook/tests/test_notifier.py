from __future__ import annotations

import json
from datetime import date

import httpx

from venuebook.core.entities.notification import NotificationKind
from venuebook.core.entities.reservation import Reservation
from venuebook.infrastructure.notifications.notifier_impl import HttpNotifier, reservation_payload


def _reservation() -> Reservation:
    return Reservation(
        reservation_id="r-1",
        organization_id="org-1",
        resource_id="room-1",
        date=date(2025, 3, 3),
        start_time="10:00",
        end_time="11:00",
        user_id="u-1",
        event_name="Board meeting",
    )


def test_payload_describes_the_reservation() -> None:
    payload = reservation_payload(NotificationKind.CANCELLED, _reservation())

    assert payload["event"] == "cancelled"
    assert payload["date"] == "2025-03-03"
    assert payload["status"] == "pending"
    assert payload["series_id"] is None


def test_http_notifier_posts_json() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    notifier = HttpNotifier(base_url="http://notifications.local/", client=client)

    notifier.notify(NotificationKind.CREATED, _reservation())

    [request] = seen
    assert str(request.url) == "http://notifications.local/notifications/reservations"
    assert json.loads(request.content)["reservation_id"] == "r-1"


def test_http_notifier_swallows_error_responses() -> None:
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")))
    notifier = HttpNotifier(base_url="http://notifications.local", client=client)

    notifier.notify(NotificationKind.CREATED, _reservation())


def test_http_notifier_swallows_connection_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    notifier = HttpNotifier(base_url="http://notifications.local", client=client)

    notifier.notify(NotificationKind.STATUS_CHANGED, _reservation())


def test_unconfigured_http_notifier_is_a_no_op() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    notifier = HttpNotifier(base_url="", client=httpx.Client(transport=httpx.MockTransport(handler)))

    notifier.notify(NotificationKind.CREATED, _reservation())
