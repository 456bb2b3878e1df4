import json
from pathlib import Path

import structlog
from pydantic import Field, model_validator

from vitalview.shared.constants import VitalLabel
from vitalview.shared.schemas import CamelModel

log = structlog.get_logger()


class VitalThresholdConfig(CamelModel):
    """Warning and critical bounds for one monitored reading.

    Warning bounds are exclusive (100 bpm is still normal for HR); critical
    bounds are inclusive (50 bpm is already critical). ``high``/``critical_high``
    set to None means there is no high alert for that reading.
    """

    key: str
    vital: str
    field: VitalLabel
    segment: int | None = Field(default=None, ge=0)
    low: float
    high: float | None = None
    critical_low: float
    critical_high: float | None = None

    @model_validator(mode="after")
    def check_ordering(self) -> "VitalThresholdConfig":
        if self.critical_low > self.low:
            raise ValueError(f"{self.key}: critical_low must not exceed low")
        if self.high is not None and self.critical_high is not None:
            if self.critical_high < self.high:
                raise ValueError(f"{self.key}: critical_high must not be below high")
        if self.field.is_composite and self.segment is None:
            raise ValueError(f"{self.key}: composite readings need a segment index")
        return self


class AlertRulesConfig(CamelModel):
    version: str = "canonical-v1"
    vitals: list[VitalThresholdConfig] = Field(default_factory=list)

    def for_field(self, label: VitalLabel) -> list[VitalThresholdConfig]:
        return [rule for rule in self.vitals if rule.field == label]


DEFAULT_RULES = AlertRulesConfig(
    vitals=[
        VitalThresholdConfig(
            key="hr", vital="HR", field=VitalLabel.HR,
            low=60, high=100, critical_low=50, critical_high=120,
        ),
        VitalThresholdConfig(
            key="pulse", vital="Pulse", field=VitalLabel.PULSE,
            low=60, high=100, critical_low=50, critical_high=120,
        ),
        # 100% is the ceiling, no high alert
        VitalThresholdConfig(
            key="spo2", vital="SpO2", field=VitalLabel.SPO2,
            low=90, high=None, critical_low=85, critical_high=None,
        ),
        VitalThresholdConfig(
            key="abp", vital="ABP Sys", field=VitalLabel.ABP, segment=0,
            low=90, high=120, critical_low=70, critical_high=180,
        ),
        VitalThresholdConfig(
            key="pap", vital="PAP Dia", field=VitalLabel.PAP, segment=1,
            low=4, high=12, critical_low=2, critical_high=20,
        ),
        VitalThresholdConfig(
            key="etco2", vital="EtCO2", field=VitalLabel.ETCO2,
            low=35, high=45, critical_low=25, critical_high=55,
        ),
        VitalThresholdConfig(
            key="awrr", vital="awRR", field=VitalLabel.AWRR,
            low=12, high=20, critical_low=8, critical_high=25,
        ),
    ],
)


def load_rules(path: Path | None) -> AlertRulesConfig:
    if path is None:
        return DEFAULT_RULES
    try:
        payload = json.loads(path.read_text())
        return AlertRulesConfig.model_validate(payload)
    except FileNotFoundError:
        log.info("alert rules file not found, using defaults", path=str(path))
        return DEFAULT_RULES
    except Exception as exc:
        log.warning("alert rules load failed, using defaults", path=str(path), error=str(exc))
        return DEFAULT_RULES
