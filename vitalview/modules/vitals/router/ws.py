"""WebSocket endpoints for dashboards consuming live vitals and alerts."""

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from vitalview.modules.monitoring.service import MonitoringService
from vitalview.modules.vitals.broadcaster import GLOBAL_CHANNEL
from vitalview.shared import deps

router = APIRouter()
log = structlog.get_logger()


async def _listen(websocket: WebSocket, service: MonitoringService, channel: int | str) -> None:
    broadcaster = service.broadcaster
    await broadcaster.connect(websocket, channel)
    log.info("vitals websocket connected", channel=channel)
    try:
        while True:
            # Consumers only listen; inbound frames are ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        broadcaster.disconnect(websocket)
        log.info("vitals websocket disconnected", channel=channel)


@router.websocket("/ws/patients/{patient_id}")
async def websocket_patient(
    websocket: WebSocket,
    patient_id: int,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> None:
    """Vitals and alerts for a single patient."""
    await _listen(websocket, service, patient_id)


@router.websocket("/ws/global")
async def websocket_global(
    websocket: WebSocket,
    service: MonitoringService = Depends(deps.get_monitoring),
) -> None:
    """Vitals and alerts for every patient (central station view)."""
    await _listen(websocket, service, GLOBAL_CHANNEL)
