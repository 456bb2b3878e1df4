from vitalview.modules.alerts.models import Alert
from vitalview.modules.monitoring.service import CycleResult
from vitalview.modules.vitals.schemas import VitalRecordPayload
from vitalview.shared.schemas import CamelModel


class CycleResponse(CamelModel):
    """Outcome of one monitoring cycle as returned to the capturing client."""

    record: VitalRecordPayload
    alerts: list[Alert]
    new_alert_ids: list[str]
    resolved: list[str]
    notified: list[str]
    skipped: bool = False

    @classmethod
    def from_result(cls, result: CycleResult) -> "CycleResponse":
        return cls(
            record=result.record,
            alerts=result.alerts,
            new_alert_ids=[alert.id for alert in result.new_alerts],
            resolved=result.resolved,
            notified=result.notified,
            skipped=result.skipped,
        )
