from enum import Enum


class VitalLabel(str, Enum):
    """Vital signs read off the patient monitor, keyed by their on-screen label."""

    HR = "HR"
    PULSE = "Pulse"
    SPO2 = "SpO2"
    ABP = "ABP"  # systolic/diastolic/mean
    PAP = "PAP"  # systolic/diastolic/mean
    ETCO2 = "EtCO2"
    AWRR = "awRR"

    @property
    def is_composite(self) -> bool:
        return self in COMPOSITE_LABELS

    @classmethod
    def parse(cls, label: str) -> "VitalLabel | None":
        try:
            return cls(label)
        except ValueError:
            return None


COMPOSITE_LABELS = frozenset({VitalLabel.ABP, VitalLabel.PAP})


class VitalSource(str, Enum):
    CAMERA = "camera"
    VIDEO = "video"
    MANUAL = "manual"


class AlertType(str, Enum):
    HIGH = "high"
    LOW = "low"


class Severity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class ExtractorSource(str, Enum):
    MODEL = "model"
    PATTERN = "pattern"
