"""Outbound notification channels (email, SMS) used by the throttled notifier."""

from __future__ import annotations

from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Protocol

import aiosmtplib
import structlog

from vitalview.core.config import Settings
from vitalview.modules.alerts.models import Alert
from vitalview.shared.constants import Severity

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NotificationMessage:
    patient_id: int | None
    vital: str
    value: float | str
    type: str
    severity: str
    timestamp: str
    destinations: tuple[str, ...]

    @classmethod
    def from_alert(cls, alert: Alert, destinations: tuple[str, ...]) -> "NotificationMessage":
        payload = alert.to_payload()
        return cls(
            patient_id=alert.patient_id,
            vital=alert.vital,
            value=alert.value,
            type=alert.type.value,
            severity=alert.severity.value,
            timestamp=payload["timestamp"],
            destinations=destinations,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "patientId": self.patient_id,
            "vital": self.vital,
            "value": self.value,
            "type": self.type,
            "severity": self.severity,
            "timestamp": self.timestamp,
            "destinations": list(self.destinations),
        }


class NotificationChannel(Protocol):
    name: str
    destination: str

    async def send(self, message: NotificationMessage) -> None: ...


def render_email(message: NotificationMessage, dashboard_url: str) -> tuple[str, str]:
    critical = message.severity == Severity.CRITICAL.value
    subject = f"URGENT: Vital Alert - {message.vital} {message.type.upper()}"
    heading = "CRITICAL ALERT" if critical else "Vital Warning"
    colour = "#d32f2f" if critical else "#f57c00"
    link = f"{dashboard_url}?patientId={message.patient_id}"
    html = f"""
<div style="font-family: Arial, sans-serif; padding: 20px; border: 1px solid #e0e0e0; border-radius: 5px;">
  <h2 style="color: {colour};">{heading}</h2>
  <p><strong>Patient ID:</strong> #{message.patient_id}</p>
  <p><strong>Vital Sign:</strong> {message.vital}</p>
  <p><strong>Status:</strong> {message.type.upper()}</p>
  <p><strong>Value:</strong> <span style="font-size: 1.2em; font-weight: bold;">{message.value}</span></p>
  <p><strong>Time:</strong> {message.timestamp}</p>
  <hr>
  <p style="font-size: 0.8em; color: #666;">Automated message from VitalView. Please check the dashboard immediately.</p>
  <a href="{link}">View Dashboard</a>
</div>
"""
    return subject, html


class EmailChannel:
    name = "email"

    def __init__(
        self,
        destination: str,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        sender: str | None = None,
        use_tls: bool = True,
        dashboard_url: str = "",
    ) -> None:
        self.destination = destination
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender or username
        self._use_tls = use_tls
        self._dashboard_url = dashboard_url

    @property
    def simulated(self) -> bool:
        return not (self._username and self._password)

    async def send(self, message: NotificationMessage) -> None:
        if self.simulated:
            log.info("email simulated", to=self.destination, alert=message.as_dict())
            return

        subject, html = render_email(message, self._dashboard_url)
        email = EmailMessage()
        email["From"] = self._sender
        email["To"] = self.destination
        email["Subject"] = subject
        email.set_content(f"{subject}\nValue: {message.value} at {message.timestamp}")
        email.add_alternative(html, subtype="html")

        await aiosmtplib.send(
            email,
            hostname=self._host,
            port=self._port,
            username=self._username,
            password=self._password,
            start_tls=self._use_tls,
        )
        log.info("email sent", to=self.destination, vital=message.vital)


class SmsChannel:
    """No carrier gateway is wired up; SMS delivery is logged only."""

    name = "sms"

    def __init__(self, destination: str) -> None:
        self.destination = destination

    async def send(self, message: NotificationMessage) -> None:
        log.info("sms simulated", to=self.destination, alert=message.as_dict())


def build_channels(settings: Settings) -> list[NotificationChannel]:
    channels: list[NotificationChannel] = []
    if settings.NOTIFY_EMAIL:
        channels.append(
            EmailChannel(
                destination=settings.NOTIFY_EMAIL,
                host=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                username=settings.SMTP_USERNAME,
                password=settings.SMTP_PASSWORD,
                sender=settings.SMTP_SENDER,
                use_tls=settings.SMTP_USE_TLS,
                dashboard_url=settings.DASHBOARD_URL,
            )
        )
    if settings.NOTIFY_PHONE:
        channels.append(SmsChannel(settings.NOTIFY_PHONE))
    return channels
