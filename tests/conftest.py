from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from vitalview.modules.alerts.channels import NotificationMessage
from vitalview.modules.alerts.config import DEFAULT_RULES
from vitalview.modules.alerts.evaluator import AlertEvaluator, AlertTracker
from vitalview.modules.alerts.ledger import InMemoryThrottleLedger
from vitalview.modules.alerts.notifier import ThrottledNotifier
from vitalview.modules.alerts.router import router as alerts_router
from vitalview.modules.alerts.store import AlertStore, LatestAlertBoard
from vitalview.modules.extraction.coordinator import ExtractionCoordinator
from vitalview.modules.extraction.fusion import FusionSelector
from vitalview.modules.extraction.models import ROI, RawExtraction
from vitalview.modules.monitoring.service import MonitoringService
from vitalview.modules.vitals.broadcaster import VitalBroadcaster
from vitalview.modules.vitals.router import router as vitals_router
from vitalview.modules.vitals.schemas import VitalsSnapshot
from vitalview.shared.constants import ExtractorSource

T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


class FakeVitalStore:
    """In-memory stand-in for the Mongo-backed store so tests stay hermetic."""

    def __init__(self) -> None:
        self.snapshots: list[VitalsSnapshot] = []
        self.fail = False

    async def insert(self, snapshot: VitalsSnapshot) -> str:
        if self.fail:
            raise RuntimeError("mongo unavailable")
        self.snapshots.append(snapshot)
        return f"vital-{len(self.snapshots)}"

    async def query(self, patient_id: int, limit: int = 100) -> list[VitalsSnapshot]:
        matching = [s for s in self.snapshots if s.patient_id == patient_id]
        matching.sort(key=lambda s: s.timestamp, reverse=True)
        return matching[:limit]


class RecordingChannel:
    """Notification channel that remembers what it was asked to send."""

    def __init__(self, name: str = "email", destination: str = "nurse@example.com") -> None:
        self.name = name
        self.destination = destination
        self.sent: list[NotificationMessage] = []
        self.fail = False

    async def send(self, message: NotificationMessage) -> None:
        if self.fail:
            raise ConnectionError("smtp refused")
        self.sent.append(message)


class StaticExtractor:
    """Region extractor returning a canned outcome."""

    def __init__(self, source: ExtractorSource, values: dict[str, Any] | None = None) -> None:
        self.source = source
        self.outcome: Any = RawExtraction(source, values or {})
        self.calls = 0

    async def extract(self, image: bytes | str, rois: Any) -> Any:
        self.calls += 1
        return self.outcome


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def make_snapshot() -> Callable[..., VitalsSnapshot]:
    def _make(patient_id: int | None = 7, timestamp: datetime = T0, **values: Any) -> VitalsSnapshot:
        return VitalsSnapshot.from_values(values, patient_id=patient_id, timestamp=timestamp)

    return _make


@pytest.fixture
def evaluator() -> AlertEvaluator:
    return AlertEvaluator(DEFAULT_RULES)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def vital_store() -> FakeVitalStore:
    return FakeVitalStore()


@pytest.fixture
def model_extractor() -> StaticExtractor:
    return StaticExtractor(ExtractorSource.MODEL)


@pytest.fixture
def pattern_extractor() -> StaticExtractor:
    return StaticExtractor(ExtractorSource.PATTERN)


@pytest.fixture
def monitoring(
    vital_store: FakeVitalStore,
    channel: RecordingChannel,
    clock: FakeClock,
    evaluator: AlertEvaluator,
    model_extractor: StaticExtractor,
    pattern_extractor: StaticExtractor,
) -> MonitoringService:
    """Fully wired pipeline with fakes at the I/O edges."""
    return MonitoringService(
        coordinator=ExtractionCoordinator(
            model_extractor, pattern_extractor, FusionSelector(), timeout_seconds=1.0
        ),
        vital_store=vital_store,
        broadcaster=VitalBroadcaster(),
        tracker=AlertTracker(evaluator),
        alert_store=AlertStore(),
        alert_board=LatestAlertBoard(),
        notifier=ThrottledNotifier([channel], InMemoryThrottleLedger(), clock=clock),
    )


@pytest.fixture
def hr_roi() -> ROI:
    return ROI(label="HR", x=0.0, y=0.0, width=0.5, height=0.5)


@pytest.fixture
def api(monitoring: MonitoringService) -> Iterator[TestClient]:
    """Routers mounted on a bare app; the lifespan (Mongo, Redis) is not run."""
    app = FastAPI()
    app.include_router(vitals_router, prefix="/api/v1/vitals")
    app.include_router(alerts_router, prefix="/api/v1/alerts")
    app.state.monitoring = monitoring
    with TestClient(app) as client:
        yield client
