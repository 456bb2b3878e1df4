from datetime import datetime, timezone

from beanie import Document
from pydantic import Field
from pymongo import IndexModel

from vitalview.shared.constants import VitalSource


class VitalRecord(Document):
    """Persisted vitals snapshot for one patient."""

    patient_id: int | None = None
    hr: float | str | None = None
    pulse: float | str | None = None
    spo2: float | str | None = None
    abp: str | None = None
    pap: str | None = None
    etco2: float | str | None = None
    awrr: float | str | None = None
    source: VitalSource = VitalSource.CAMERA
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "vitals"
        indexes = [
            IndexModel(
                [
                    ("patient_id", 1),
                    ("created_at", -1),
                ]
            )
        ]
