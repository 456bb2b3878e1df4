from fastapi.testclient import TestClient

from conftest import FakeVitalStore, RecordingChannel, StaticExtractor
from vitalview.modules.extraction.models import ExtractionFailed, RawExtraction
from vitalview.shared.constants import ExtractorSource

IMAGE = "data:image/jpeg;base64,aW1n"


def test_extract_returns_fused_vitals_and_failures(
    api: TestClient,
    model_extractor: StaticExtractor,
    pattern_extractor: StaticExtractor,
    vital_store: FakeVitalStore,
) -> None:
    model_extractor.outcome = ExtractionFailed(ExtractorSource.MODEL, "missing credentials")
    pattern_extractor.outcome = RawExtraction(ExtractorSource.PATTERN, {"HR": "72", "ABP": "120/80/93"})

    response = api.post("/api/v1/vitals/extract", json={"imageBase64": IMAGE})

    assert response.status_code == 200
    assert response.json() == {
        "vitals": {"HR": "72", "ABP": "120/80/93"},
        "failures": {"model": "missing credentials"},
    }
    assert vital_store.snapshots == []


def test_extract_rejects_undecodable_image(api: TestClient, model_extractor: StaticExtractor) -> None:
    response = api.post("/api/v1/vitals/extract", json={"imageBase64": "not base64!!"})

    assert response.status_code == 400
    assert model_extractor.calls == 0


def test_extract_requires_image(api: TestClient) -> None:
    response = api.post("/api/v1/vitals/extract", json={})

    assert response.status_code == 422


def test_frame_runs_full_cycle(
    api: TestClient,
    model_extractor: StaticExtractor,
    channel: RecordingChannel,
) -> None:
    model_extractor.outcome = RawExtraction(ExtractorSource.MODEL, {"HR": 145.0, "SpO2": 98.0})

    response = api.post(
        "/api/v1/vitals/frames",
        json={"imageBase64": IMAGE, "patientId": 7, "capturedAt": "2024-03-01T08:00:00Z"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["record"]["hr"] == 145.0
    assert body["record"]["patientId"] == 7
    assert [a["vital"] for a in body["alerts"]] == ["HR"]
    assert body["newAlertIds"] == ["7-hr-2024-03-01T08:00:00+00:00"]
    assert body["notified"] == body["newAlertIds"]
    assert len(channel.sent) == 1


def test_record_single_and_batch(api: TestClient, vital_store: FakeVitalStore) -> None:
    single = api.post(
        "/api/v1/vitals/",
        json={"patientId": 4, "hr": 88, "createdAt": "2024-03-01T08:00:00Z"},
    )
    batch = api.post(
        "/api/v1/vitals/",
        json=[
            {"patientId": 4, "hr": 40, "source": "video", "createdAt": "2024-03-01T08:00:20Z"},
            {"patientId": 4, "hr": 90, "source": "video", "createdAt": "2024-03-01T08:00:10Z"},
        ],
    )

    assert single.status_code == 201
    assert len(single.json()) == 1
    assert batch.status_code == 201
    assert [item["record"]["hr"] for item in batch.json()] == [90.0, 40.0]
    assert len(vital_store.snapshots) == 3


def test_read_patient_vitals_newest_first(api: TestClient) -> None:
    for second, hr in ((0, 70), (5, 75), (10, 80)):
        api.post(
            "/api/v1/vitals/",
            json={"patientId": 2, "hr": hr, "createdAt": f"2024-03-01T08:00:{second:02d}Z"},
        )

    response = api.get("/api/v1/vitals/2", params={"limit": 2})

    assert response.status_code == 200
    assert [item["HR"] for item in response.json()] == [80.0, 75.0]


def test_patient_websocket_receives_vital_and_alert(api: TestClient) -> None:
    with api.websocket_connect("/api/v1/vitals/ws/patients/7") as websocket:
        api.post("/api/v1/vitals/", json={"patientId": 7, "hr": 145})

        vital = websocket.receive_json()
        alert = websocket.receive_json()

    assert vital["event"] == "vital-update"
    assert vital["data"]["hr"] == 145.0
    assert alert["event"] == "alert"
    assert alert["data"]["severity"] == "critical"


def test_global_websocket_sees_every_patient(api: TestClient) -> None:
    with api.websocket_connect("/api/v1/vitals/ws/global") as websocket:
        api.post("/api/v1/vitals/", json={"patientId": 3, "hr": 70})
        api.post("/api/v1/vitals/", json={"patientId": 5, "hr": 71})

        first = websocket.receive_json()
        second = websocket.receive_json()

    assert {first["event"], second["event"]} == {"vital-update-global"}
    assert [first["data"]["patientId"], second["data"]["patientId"]] == [3, 5]
