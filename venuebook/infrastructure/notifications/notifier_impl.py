"""Notification adapters. Delivery is best-effort: failures are logged, never raised."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from venuebook.core.entities.notification import NotificationKind
from venuebook.core.entities.reservation import Reservation

logger = logging.getLogger(__name__)


def reservation_payload(kind: NotificationKind, reservation: Reservation) -> Dict[str, Any]:
    return {
        "event": kind.value,
        "reservation_id": reservation.reservation_id,
        "organization_id": reservation.organization_id,
        "resource_id": reservation.resource_id,
        "user_id": reservation.user_id,
        "date": reservation.date.isoformat(),
        "start_time": reservation.start_time,
        "end_time": reservation.end_time,
        "status": reservation.status.value,
        "series_id": reservation.series_id,
        "event_name": reservation.event_name,
    }


class LoggingNotifier:
    """Default notifier when no notification service is configured."""

    def notify(self, kind: NotificationKind, reservation: Reservation) -> None:
        logger.info(
            "Reservation %s %s (resource=%s date=%s)",
            reservation.reservation_id,
            kind.value,
            reservation.resource_id,
            reservation.date.isoformat(),
        )


class HttpNotifier:
    """Posts reservation events to the external notification service."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout or 10.0
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url)

    def notify(self, kind: NotificationKind, reservation: Reservation) -> None:
        if not self.is_configured:
            logger.info("Notification service URL not configured; skipping %s notification", kind.value)
            return

        url = f"{self._base_url}/notifications/reservations"
        payload = reservation_payload(kind, reservation)

        try:
            if self._client is not None:
                response = self._client.post(url, json=payload, timeout=self._timeout)
            else:
                response = httpx.post(url, json=payload, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Notification service returned HTTP %s for reservation %s: %s",
                exc.response.status_code,
                reservation.reservation_id,
                exc.response.text,
            )
        except httpx.RequestError as exc:
            logger.warning("Failed to reach notification service: %s", exc)


__all__ = ["HttpNotifier", "LoggingNotifier", "reservation_payload"]
