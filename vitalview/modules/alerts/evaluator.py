from __future__ import annotations

import math
from datetime import datetime
from typing import Sequence

import structlog

from vitalview.modules.alerts.config import AlertRulesConfig, VitalThresholdConfig
from vitalview.modules.alerts.models import Alert, AlertTransition, alert_id_for
from vitalview.modules.vitals.schemas import VitalsSnapshot
from vitalview.shared.constants import AlertType, Severity

log = structlog.get_logger(__name__)


class AlertEvaluator:
    """Score a snapshot against the threshold table. Pure: same snapshot, same alerts."""

    def __init__(self, rules: AlertRulesConfig) -> None:
        self._rules = rules

    @property
    def rules(self) -> AlertRulesConfig:
        return self._rules

    def evaluate(self, snapshot: VitalsSnapshot, patient_id: int | None = None) -> list[Alert]:
        patient = snapshot.patient_id if patient_id is None else patient_id
        alerts: list[Alert] = []
        for rule in self._rules.vitals:
            value = self.reading_for(rule, snapshot)
            if value is None:
                continue
            alert_type = self.classify(value, rule)
            if alert_type is None:
                continue
            alerts.append(
                Alert(
                    id=alert_id_for(patient, rule.key, snapshot.timestamp),
                    patient_id=patient,
                    vital=rule.vital,
                    value=value,
                    type=alert_type,
                    severity=self.severity(value, rule),
                    timestamp=snapshot.timestamp,
                )
            )
        return alerts

    def evaluate_latest(
        self, snapshots: Sequence[VitalsSnapshot], patient_id: int | None = None
    ) -> list[Alert]:
        """Only the newest snapshot is scored; history is never re-evaluated."""
        if not snapshots:
            return []
        latest = max(snapshots, key=lambda snapshot: snapshot.timestamp)
        return self.evaluate(latest, patient_id)

    def reading_for(self, rule: VitalThresholdConfig, snapshot: VitalsSnapshot) -> float | None:
        raw = snapshot.value_for(rule.field)
        if raw is None:
            return None
        if rule.segment is not None:
            return self._segment_value(rule, raw)
        return _as_float(raw)

    @staticmethod
    def classify(value: float, rule: VitalThresholdConfig) -> AlertType | None:
        if value < rule.low:
            return AlertType.LOW
        if rule.high is not None and value > rule.high:
            return AlertType.HIGH
        return None

    @staticmethod
    def severity(value: float, rule: VitalThresholdConfig) -> Severity:
        if value <= rule.critical_low:
            return Severity.CRITICAL
        if rule.critical_high is not None and value >= rule.critical_high:
            return Severity.CRITICAL
        return Severity.WARNING

    @staticmethod
    def _segment_value(rule: VitalThresholdConfig, raw: float | str) -> float | None:
        segments = str(raw).split("/")
        if rule.segment is None or rule.segment >= len(segments):
            log.debug("composite reading skipped", vital=rule.vital, raw=raw)
            return None
        value = _as_float(segments[rule.segment])
        if value is None:
            log.debug("composite reading skipped", vital=rule.vital, raw=raw)
        return value


def _as_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except (TypeError, ValueError):
            return None
    return number if math.isfinite(number) else None


class AlertTracker:
    """Per-patient view over the evaluator: Normal -> Active(severity) -> Normal.

    Snapshots that are not newer than the last one observed for a patient are
    ignored, so replaying a reading never produces its alerts twice.
    """

    def __init__(self, evaluator: AlertEvaluator) -> None:
        self._evaluator = evaluator
        self._last_seen: dict[int | None, datetime] = {}
        self._active: dict[int | None, dict[str, Severity]] = {}

    @property
    def evaluator(self) -> AlertEvaluator:
        return self._evaluator

    def observe(self, snapshot: VitalsSnapshot) -> AlertTransition:
        patient_id = snapshot.patient_id
        last_seen = self._last_seen.get(patient_id)
        if last_seen is not None and snapshot.timestamp <= last_seen:
            log.debug(
                "stale snapshot ignored",
                patient_id=patient_id,
                timestamp=snapshot.timestamp.isoformat(),
                last_seen=last_seen.isoformat(),
            )
            return AlertTransition(skipped=True)
        self._last_seen[patient_id] = snapshot.timestamp

        alerts = self._evaluator.evaluate(snapshot)
        active = self._active.setdefault(patient_id, {})
        breached = {alert.vital: alert.severity for alert in alerts}

        resolved: list[str] = []
        for rule in self._evaluator.rules.vitals:
            if rule.vital in breached:
                continue
            # Only a reading that is present and in range clears an active breach
            if rule.vital in active and self._evaluator.reading_for(rule, snapshot) is not None:
                resolved.append(rule.vital)
                del active[rule.vital]
        active.update(breached)

        if resolved:
            log.info("vitals back in range", patient_id=patient_id, vitals=resolved)
        return AlertTransition(alerts=alerts, resolved=resolved)
