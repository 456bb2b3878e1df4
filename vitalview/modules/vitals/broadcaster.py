import asyncio
import json
from typing import Any, Iterable

import structlog
from fastapi import WebSocket

from vitalview.modules.alerts.models import Alert
from vitalview.modules.vitals.schemas import VitalRecordPayload

log = structlog.get_logger(__name__)

GLOBAL_CHANNEL = "*"

VITAL_EVENT = "vital-update"
VITAL_GLOBAL_EVENT = "vital-update-global"
ALERT_EVENT = "alert"
ALERT_GLOBAL_EVENT = "alert-global"


def patient_channel(patient_id: int | str | None) -> str:
    if patient_id is None or str(patient_id).strip().lower() in {"", "*", "all"}:
        return GLOBAL_CHANNEL
    return f"patient:{str(patient_id).strip()}"


class VitalBroadcaster:
    """Fan out vitals and alerts to per-patient channels and to the global channel.

    Subscribers are WebSockets or SSE queues. Delivery is fire-and-forget: a
    subscriber only sees what is published while it is connected.
    """

    def __init__(self) -> None:
        self._sockets: dict[str, list[WebSocket]] = {}
        self._queues: dict[str, list[asyncio.Queue[dict[str, Any]]]] = {}

    # ========== WebSocket subscribers ==========

    async def connect(self, websocket: WebSocket, patient_id: int | str | None = None) -> None:
        await websocket.accept()
        self._sockets.setdefault(patient_channel(patient_id), []).append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        for channel, sockets in list(self._sockets.items()):
            if websocket in sockets:
                sockets.remove(websocket)
            if not sockets:
                self._sockets.pop(channel, None)

    # ========== SSE subscribers ==========

    def subscribe_queue(
        self, queue: asyncio.Queue[dict[str, Any]], patient_id: int | str | None = None
    ) -> None:
        self._queues.setdefault(patient_channel(patient_id), []).append(queue)

    def unsubscribe_queue(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        for channel, queues in list(self._queues.items()):
            if queue in queues:
                queues.remove(queue)
            if not queues:
                self._queues.pop(channel, None)

    def subscriber_count(self, patient_id: int | str | None = None) -> int:
        channel = patient_channel(patient_id)
        return len(self._sockets.get(channel, [])) + len(self._queues.get(channel, []))

    # ========== Publishing ==========

    async def publish(self, record: VitalRecordPayload) -> int:
        """Emit a persisted vital record to its patient channel and the global channel."""
        data = record.model_dump(by_alias=True, mode="json")
        delivered = 0
        if record.patient_id is not None:
            delivered += await self._emit(
                patient_channel(record.patient_id), {"event": VITAL_EVENT, "data": data}
            )
        delivered += await self._emit(GLOBAL_CHANNEL, {"event": VITAL_GLOBAL_EVENT, "data": data})
        return delivered

    async def publish_alert(self, alert: Alert) -> int:
        data = alert.to_payload()
        delivered = 0
        if alert.patient_id is not None:
            delivered += await self._emit(
                patient_channel(alert.patient_id), {"event": ALERT_EVENT, "data": data}
            )
        delivered += await self._emit(GLOBAL_CHANNEL, {"event": ALERT_GLOBAL_EVENT, "data": data})
        return delivered

    async def _emit(self, channel: str, message: dict[str, Any]) -> int:
        delivered = 0
        text = json.dumps(message)

        sent_sockets: set[int] = set()
        for socket in self._iter(self._sockets, channel):
            if id(socket) in sent_sockets:
                continue
            sent_sockets.add(id(socket))
            try:
                await socket.send_text(text)
                delivered += 1
            except Exception:
                # Dead connection; drop it rather than retrying
                self.disconnect(socket)

        sent_queues: set[int] = set()
        for queue in self._iter(self._queues, channel):
            if id(queue) in sent_queues:
                continue
            sent_queues.add(id(queue))
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                log.warning("subscriber queue full, message dropped", channel=channel)
        return delivered

    @staticmethod
    def _iter(registry: dict[str, list[Any]], channel: str) -> Iterable[Any]:
        # Copy so a disconnect during iteration is safe
        return list(registry.get(channel, []))
