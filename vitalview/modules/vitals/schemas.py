from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import AliasChoices, Field, field_validator

from vitalview.shared.constants import VitalLabel, VitalSource
from vitalview.shared.schemas import CamelModel, FrozenCamelModel

FIELD_BY_LABEL: dict[VitalLabel, str] = {
    VitalLabel.HR: "hr",
    VitalLabel.PULSE: "pulse",
    VitalLabel.SPO2: "spo2",
    VitalLabel.ABP: "abp",
    VitalLabel.PAP: "pap",
    VitalLabel.ETCO2: "etco2",
    VitalLabel.AWRR: "awrr",
}


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _composite_as_string(value: object) -> object:
    # Composite readings are always "sys/dia/mean" strings; a bare number is kept as text
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and not value.strip():
        return None
    return value


class VitalsSnapshot(FrozenCamelModel):
    """One fused reading of the monitor. Field aliases are the on-screen labels."""

    hr: float | str | None = Field(default=None, alias="HR")
    pulse: float | str | None = Field(default=None, alias="Pulse")
    spo2: float | str | None = Field(default=None, alias="SpO2")
    abp: str | None = Field(default=None, alias="ABP")
    pap: str | None = Field(default=None, alias="PAP")
    etco2: float | str | None = Field(default=None, alias="EtCO2")
    awrr: float | str | None = Field(default=None, alias="awRR")
    patient_id: int | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: VitalSource = VitalSource.CAMERA

    @field_validator("abp", "pap", mode="before")
    @classmethod
    def coerce_composite(cls, value: object) -> object:
        return _composite_as_string(value)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_values(
        cls, values: Mapping[str, Any], **fields: Any
    ) -> "VitalsSnapshot":
        """Build from a label-keyed mapping; labels outside VitalLabel are dropped."""
        known = {
            FIELD_BY_LABEL[label]: values[label.value]
            for label in VitalLabel
            if label.value in values
        }
        return cls(**known, **fields)

    def value_for(self, label: VitalLabel) -> float | str | None:
        return getattr(self, FIELD_BY_LABEL[label])

    def vitals(self) -> dict[str, float | str | None]:
        return {label.value: self.value_for(label) for label in VitalLabel}


class VitalRecordPayload(CamelModel):
    """Outbound shape of a persisted snapshot (broadcast and HTTP reads)."""

    vital_id: str | None = None
    patient_id: int | None = None
    hr: float | str | None = None
    pulse: float | str | None = None
    spo2: float | str | None = None
    abp: str | None = None
    pap: str | None = None
    etco2: float | str | None = None
    awrr: float | str | None = None
    source: VitalSource
    created_at: datetime

    @classmethod
    def from_snapshot(
        cls, snapshot: VitalsSnapshot, vital_id: str | None = None
    ) -> "VitalRecordPayload":
        return cls(
            vital_id=vital_id,
            patient_id=snapshot.patient_id,
            hr=snapshot.hr,
            pulse=snapshot.pulse,
            spo2=snapshot.spo2,
            abp=snapshot.abp,
            pap=snapshot.pap,
            etco2=snapshot.etco2,
            awrr=snapshot.awrr,
            source=snapshot.source,
            created_at=snapshot.timestamp,
        )


class VitalRecordCreate(CamelModel):
    """Inbound manual or video-batch reading; accepts snake_case keys from older clients."""

    patient_id: int = Field(validation_alias=AliasChoices("patient_id", "patientId"))
    hr: float | str | None = None
    pulse: float | str | None = None
    spo2: float | str | None = None
    abp: str | None = None
    pap: str | None = None
    etco2: float | str | None = None
    awrr: float | str | None = None
    source: VitalSource = VitalSource.MANUAL
    created_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("created_at", "createdAt", "timestamp"),
    )

    @field_validator("abp", "pap", mode="before")
    @classmethod
    def coerce_composite(cls, value: object) -> object:
        return _composite_as_string(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_epoch_timestamp(cls, value: object) -> object:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        return value

    def to_snapshot(self) -> VitalsSnapshot:
        return VitalsSnapshot(
            hr=self.hr,
            pulse=self.pulse,
            spo2=self.spo2,
            abp=self.abp,
            pap=self.pap,
            etco2=self.etco2,
            awrr=self.awrr,
            patient_id=self.patient_id,
            timestamp=self.created_at or datetime.now(timezone.utc),
            source=self.source,
        )
