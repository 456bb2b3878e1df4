"""
Throttle ledger: when a critical alert for (patient, vital) was last delivered.

``reserve`` is an atomic read-check-write. It only succeeds when nothing was
sent for the key within the window and it records the send time in the same
step, so two concurrent critical breaches cannot both pass. If the delivery
then fails, ``release`` puts the previous value back.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

import redis.asyncio as redis


@dataclass(frozen=True)
class Reservation:
    patient_id: int | None
    vital: str
    reserved_at: datetime
    previous: datetime | None


class ThrottleLedger(Protocol):
    async def reserve(
        self, patient_id: int | None, vital: str, now: datetime, window: timedelta
    ) -> Reservation | None: ...

    async def release(self, reservation: Reservation) -> None: ...

    async def last_sent(self, patient_id: int | None, vital: str) -> datetime | None: ...


class InMemoryThrottleLedger:
    """Process-local ledger; used when no Redis is configured."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._entries: dict[tuple[int | None, str], datetime] = {}

    async def reserve(
        self, patient_id: int | None, vital: str, now: datetime, window: timedelta
    ) -> Reservation | None:
        key = (patient_id, vital)
        async with self._lock:
            previous = self._entries.get(key)
            if previous is not None and now - previous <= window:
                return None
            self._entries[key] = now
        return Reservation(patient_id, vital, now, previous)

    async def release(self, reservation: Reservation) -> None:
        key = (reservation.patient_id, reservation.vital)
        async with self._lock:
            if self._entries.get(key) != reservation.reserved_at:
                return
            if reservation.previous is None:
                del self._entries[key]
            else:
                self._entries[key] = reservation.previous

    async def last_sent(self, patient_id: int | None, vital: str) -> datetime | None:
        async with self._lock:
            return self._entries.get((patient_id, vital))


# KEYS[1] = ledger key; ARGV = now (epoch ms), window (ms). Returns previous value or -1, nil when throttled.
_RESERVE_SCRIPT = """
local previous = redis.call('GET', KEYS[1])
if previous and (tonumber(ARGV[1]) - tonumber(previous)) <= tonumber(ARGV[2]) then
  return nil
end
redis.call('SET', KEYS[1], ARGV[1])
if previous then
  return previous
end
return '-1'
"""

# KEYS[1] = ledger key; ARGV = reserved value, previous value ('-1' to delete)
_RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) ~= ARGV[1] then
  return 0
end
if ARGV[2] == '-1' then
  redis.call('DEL', KEYS[1])
else
  redis.call('SET', KEYS[1], ARGV[2])
end
return 1
"""


def _to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _from_millis(value: str | bytes) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


class RedisThrottleLedger:
    """Durable ledger; entries survive restarts and are shared between workers."""

    def __init__(self, client: redis.Redis, prefix: str = "vitalview:throttle") -> None:
        self._client = client
        self._prefix = prefix
        self._reserve = client.register_script(_RESERVE_SCRIPT)
        self._release = client.register_script(_RELEASE_SCRIPT)

    def _key(self, patient_id: int | None, vital: str) -> str:
        patient = "unassigned" if patient_id is None else patient_id
        return f"{self._prefix}:{patient}:{vital}"

    async def reserve(
        self, patient_id: int | None, vital: str, now: datetime, window: timedelta
    ) -> Reservation | None:
        result = await self._reserve(
            keys=[self._key(patient_id, vital)],
            args=[_to_millis(now), int(window.total_seconds() * 1000)],
        )
        if result is None:
            return None
        text = result.decode() if isinstance(result, bytes) else str(result)
        previous = None if text == "-1" else _from_millis(text)
        return Reservation(patient_id, vital, now, previous)

    async def release(self, reservation: Reservation) -> None:
        previous = "-1" if reservation.previous is None else _to_millis(reservation.previous)
        await self._release(
            keys=[self._key(reservation.patient_id, reservation.vital)],
            args=[_to_millis(reservation.reserved_at), previous],
        )

    async def last_sent(self, patient_id: int | None, vital: str) -> datetime | None:
        value = await self._client.get(self._key(patient_id, vital))
        return None if value is None else _from_millis(value)
