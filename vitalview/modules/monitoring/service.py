from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Sequence

import redis.asyncio as redis
import structlog

from vitalview.core.config import Settings
from vitalview.modules.alerts.channels import build_channels
from vitalview.modules.alerts.config import load_rules
from vitalview.modules.alerts.evaluator import AlertEvaluator, AlertTracker
from vitalview.modules.alerts.ledger import (
    InMemoryThrottleLedger,
    RedisThrottleLedger,
    ThrottleLedger,
)
from vitalview.modules.alerts.models import Alert, alert_id_for
from vitalview.modules.alerts.notifier import ThrottledNotifier
from vitalview.modules.alerts.store import AlertStore, LatestAlertBoard
from vitalview.modules.extraction.coordinator import ExtractionCoordinator, FusionResult
from vitalview.modules.extraction.fusion import FusionSelector
from vitalview.modules.extraction.model_extractor import ModelRegionExtractor
from vitalview.modules.extraction.models import ROI
from vitalview.modules.extraction.pattern_extractor import PatternRegionExtractor
from vitalview.modules.vitals.broadcaster import VitalBroadcaster
from vitalview.modules.vitals.schemas import VitalRecordPayload, VitalsSnapshot
from vitalview.modules.vitals.store import VitalStore
from vitalview.shared.constants import AlertType, Severity, VitalSource

log = structlog.get_logger(__name__)


@dataclass
class CycleResult:
    snapshot: VitalsSnapshot
    record: VitalRecordPayload
    alerts: list[Alert] = field(default_factory=list)
    new_alerts: list[Alert] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)
    notified: list[str] = field(default_factory=list)
    skipped: bool = False


class MonitoringService:
    """Runs the monitoring cycle: extract, fuse, persist, broadcast, evaluate, record, notify.

    One cycle per patient is in flight at a time so snapshot order (and with it
    alert identity) follows capture order. Cycles for different patients run
    independently.
    """

    def __init__(
        self,
        coordinator: ExtractionCoordinator,
        vital_store: VitalStore,
        broadcaster: VitalBroadcaster,
        tracker: AlertTracker,
        alert_store: AlertStore,
        alert_board: LatestAlertBoard,
        notifier: ThrottledNotifier,
    ) -> None:
        self.coordinator = coordinator
        self.vital_store = vital_store
        self.broadcaster = broadcaster
        self.tracker = tracker
        self.alert_store = alert_store
        self.alert_board = alert_board
        self.notifier = notifier
        self._patient_locks: dict[int | None, asyncio.Lock] = {}

    def _lock_for(self, patient_id: int | None) -> asyncio.Lock:
        lock = self._patient_locks.get(patient_id)
        if lock is None:
            lock = self._patient_locks[patient_id] = asyncio.Lock()
        return lock

    async def extract(self, image: bytes | str, rois: Sequence[ROI]) -> FusionResult:
        """Read a frame without persisting it (operator confirms before saving)."""
        return await self.coordinator.extract(image, rois)

    async def process_frame(
        self,
        patient_id: int,
        image: bytes | str,
        rois: Sequence[ROI],
        source: VitalSource = VitalSource.CAMERA,
        captured_at: datetime | None = None,
    ) -> CycleResult:
        captured_at = captured_at or datetime.now(timezone.utc)
        async with self._lock_for(patient_id):
            fused = await self.coordinator.extract(image, rois)
            snapshot = VitalsSnapshot.from_values(
                fused.vitals,
                patient_id=patient_id,
                timestamp=captured_at,
                source=source,
            )
            return await self._ingest_locked(snapshot)

    async def ingest(self, snapshot: VitalsSnapshot) -> CycleResult:
        async with self._lock_for(snapshot.patient_id):
            return await self._ingest_locked(snapshot)

    async def ingest_many(self, snapshots: Iterable[VitalsSnapshot]) -> list[CycleResult]:
        """Batch ingest (video frames); processed in capture order."""
        ordered = sorted(snapshots, key=lambda snapshot: snapshot.timestamp)
        return [await self.ingest(snapshot) for snapshot in ordered]

    async def _ingest_locked(self, snapshot: VitalsSnapshot) -> CycleResult:
        vital_id: str | None = None
        try:
            vital_id = await self.vital_store.insert(snapshot)
        except Exception:
            log.exception("vital persist failed", patient_id=snapshot.patient_id)

        record = VitalRecordPayload.from_snapshot(snapshot, vital_id)
        await self.broadcaster.publish(record)

        transition = self.tracker.observe(snapshot)
        result = CycleResult(
            snapshot=snapshot,
            record=record,
            alerts=transition.alerts,
            resolved=transition.resolved,
            skipped=transition.skipped,
        )
        if transition.skipped or not transition.alerts:
            return result

        result.new_alerts = self.alert_store.record_many(transition.alerts)
        self.alert_board.apply(transition.alerts)
        for alert in result.new_alerts:
            log.info(
                "vital alert raised",
                patient_id=alert.patient_id,
                vital=alert.vital,
                value=alert.value,
                type=alert.type.value,
                severity=alert.severity.value,
            )
            await self.broadcaster.publish_alert(alert)
        for alert in result.new_alerts:
            if await self.notifier.notify(alert):
                result.notified.append(alert.id)
        return result

    async def raise_test_alert(self, patient_id: int) -> Alert:
        """Inject a synthetic critical HR alert into the feeds. It never reaches the notifier."""
        now = datetime.now(timezone.utc)
        alert = Alert(
            id=alert_id_for(patient_id, "test", now),
            patient_id=patient_id,
            vital="HR",
            value=145,
            type=AlertType.HIGH,
            severity=Severity.CRITICAL,
            timestamp=now,
        )
        async with self._lock_for(patient_id):
            self.alert_store.record(alert)
            self.alert_board.apply([alert])
            await self.broadcaster.publish_alert(alert)
        return alert

    def clear_alerts(self, patient_id: int) -> None:
        self.alert_store.clear(patient_id)
        self.alert_board.clear(patient_id)

    def dismiss(self, patient_id: int, alert_id: str) -> bool:
        return self.alert_board.dismiss(patient_id, alert_id)


def build_monitoring_service(
    settings: Settings,
    vital_store: VitalStore,
    redis_client: redis.Redis | None = None,
    broadcaster: VitalBroadcaster | None = None,
) -> MonitoringService:
    """Wire the pipeline from settings. Called once from the application lifespan."""
    coordinator = ExtractionCoordinator(
        model_extractor=ModelRegionExtractor(
            api_url=settings.VISION_API_URL,
            api_key=settings.VISION_API_KEY,
            model=settings.VISION_MODEL,
            max_tokens=settings.VISION_MAX_TOKENS,
            timeout_seconds=settings.EXTRACTOR_TIMEOUT_SECONDS,
        ),
        pattern_extractor=PatternRegionExtractor(tesseract_cmd=settings.TESSERACT_CMD),
        fusion=FusionSelector(),
        timeout_seconds=settings.EXTRACTOR_TIMEOUT_SECONDS,
    )

    rules_path = Path(settings.ALERT_RULES_PATH) if settings.ALERT_RULES_PATH else None
    ledger: ThrottleLedger
    if redis_client is not None:
        ledger = RedisThrottleLedger(redis_client)
    else:
        ledger = InMemoryThrottleLedger()

    return MonitoringService(
        coordinator=coordinator,
        vital_store=vital_store,
        broadcaster=broadcaster or VitalBroadcaster(),
        tracker=AlertTracker(AlertEvaluator(load_rules(rules_path))),
        alert_store=AlertStore(),
        alert_board=LatestAlertBoard(),
        notifier=ThrottledNotifier(
            channels=build_channels(settings),
            ledger=ledger,
            window=timedelta(seconds=settings.NOTIFY_THROTTLE_SECONDS),
        ),
    )
