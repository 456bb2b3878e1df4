"""HTTP and SSE endpoints for the historical and live alert feeds."""

import asyncio
import json
from typing import Any, AsyncIterator, List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from vitalview.modules.alerts.models import Alert
from vitalview.modules.monitoring.service import MonitoringService
from vitalview.modules.vitals.broadcaster import ALERT_EVENT, ALERT_GLOBAL_EVENT
from vitalview.shared import deps

router = APIRouter()
log = structlog.get_logger()

KEEPALIVE_SECONDS = 30.0
_STREAMED_EVENTS = frozenset({ALERT_EVENT, ALERT_GLOBAL_EVENT})


@router.get("/", response_model=List[Alert], summary="All alerts, newest first")
async def list_alerts(
    service: MonitoringService = Depends(deps.get_monitoring),
) -> List[Alert]:
    return service.alert_store.get_all()


@router.get("/stream")
async def stream_alerts(
    request: Request,
    patient_id: str | None = None,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> StreamingResponse:
    """
    Server-Sent Events stream of alerts.

    Without ``patient_id`` (or with ``*``/``all``) every patient's alerts are sent.
    Only alerts raised after the client connects are delivered.
    """
    broadcaster = service.broadcaster

    async def event_generator() -> AsyncIterator[str]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=100)
        broadcaster.subscribe_queue(queue, patient_id)
        log.info("sse alert stream connected", patient_id=patient_id)
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if message.get("event") not in _STREAMED_EVENTS:
                    continue
                yield f"event: {message['event']}\ndata: {json.dumps(message['data'])}\n\n"
        finally:
            broadcaster.unsubscribe_queue(queue)
            log.info("sse alert stream closed", patient_id=patient_id)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{patient_id}", response_model=List[Alert], summary="Alert history for a patient")
async def read_patient_alerts(
    patient_id: int,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> List[Alert]:
    return service.alert_store.get(patient_id)


@router.get(
    "/{patient_id}/latest",
    response_model=List[Alert],
    summary="Current alert per vital for a patient",
)
async def read_latest_alerts(
    patient_id: int,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> List[Alert]:
    return service.alert_board.get(patient_id)


@router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_patient_alerts(
    patient_id: int,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> None:
    service.clear_alerts(patient_id)


@router.post("/{patient_id}/dismiss/{alert_id}")
async def dismiss_alert(
    patient_id: int,
    alert_id: str,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> dict[str, str]:
    """Hide an alert from the live feed; it stays in the patient's history."""
    if not service.dismiss(patient_id, alert_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Alert not found in the live feed",
        )
    return {"message": "Alert dismissed", "alert_id": alert_id}


@router.post(
    "/{patient_id}/test",
    response_model=Alert,
    status_code=status.HTTP_201_CREATED,
    summary="Raise a synthetic critical alert to check delivery",
)
async def raise_test_alert(
    patient_id: int,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> Alert:
    return await service.raise_test_alert(patient_id)
