from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from vitalview.modules.vitals.schemas import ensure_utc
from vitalview.shared.constants import AlertType, Severity
from vitalview.shared.schemas import FrozenCamelModel


def alert_id_for(patient_id: int | None, key: str, timestamp: datetime) -> str:
    """Deterministic identity: the same reading of the same patient always maps to one id."""
    patient = "unassigned" if patient_id is None else str(patient_id)
    return f"{patient}-{key}-{ensure_utc(timestamp).isoformat()}"


class Alert(FrozenCamelModel):
    id: str
    patient_id: int | None
    vital: str
    value: float | str
    type: AlertType
    severity: Severity
    timestamp: datetime

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


@dataclass
class AlertTransition:
    """What changed for a patient after one snapshot was observed."""

    alerts: list[Alert] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)
    skipped: bool = False
