from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

import structlog

from vitalview.modules.alerts.channels import NotificationChannel, NotificationMessage
from vitalview.modules.alerts.ledger import ThrottleLedger
from vitalview.modules.alerts.models import Alert

log = structlog.get_logger(__name__)

DEFAULT_THROTTLE_WINDOW = timedelta(minutes=5)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ThrottledNotifier:
    """Forward critical alerts to remote channels, at most once per (patient, vital) per window."""

    def __init__(
        self,
        channels: Sequence[NotificationChannel],
        ledger: ThrottleLedger,
        window: timedelta = DEFAULT_THROTTLE_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._channels = list(channels)
        self._ledger = ledger
        self._window = window
        self._clock = clock

    @property
    def destinations(self) -> tuple[str, ...]:
        return tuple(channel.destination for channel in self._channels)

    async def notify(self, alert: Alert) -> bool:
        """Return True when the alert was delivered. Never raises."""
        if not alert.is_critical:
            return False
        if not self._channels:
            # No destination configured out-of-band
            return False

        try:
            reservation = await self._ledger.reserve(
                alert.patient_id, alert.vital, self._clock(), self._window
            )
        except Exception as exc:
            log.error(
                "alert_delivery_failed",
                stage="throttle",
                patient_id=alert.patient_id,
                vital=alert.vital,
                error=str(exc),
            )
            return False

        if reservation is None:
            log.debug("alert notification throttled", patient_id=alert.patient_id, vital=alert.vital)
            return False

        message = NotificationMessage.from_alert(alert, self.destinations)
        for channel in self._channels:
            try:
                await channel.send(message)
            except Exception as exc:
                log.error(
                    "alert_delivery_failed",
                    channel=channel.name,
                    patient_id=alert.patient_id,
                    vital=alert.vital,
                    alert_id=alert.id,
                    error=str(exc),
                )
                await self._release(reservation)
                return False

        log.info(
            "alert notification sent",
            patient_id=alert.patient_id,
            vital=alert.vital,
            channels=[channel.name for channel in self._channels],
        )
        return True

    async def _release(self, reservation) -> None:
        try:
            await self._ledger.release(reservation)
        except Exception as exc:
            log.error(
                "throttle release failed",
                patient_id=reservation.patient_id,
                vital=reservation.vital,
                error=str(exc),
            )
