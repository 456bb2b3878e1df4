"""
Unit tests for the throttle ledgers.

The Redis ledger is exercised against a small in-memory fake that mirrors the
two Lua scripts, so no Redis server is needed.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest

from conftest import T0
from vitalview.modules.alerts.ledger import (
    InMemoryThrottleLedger,
    RedisThrottleLedger,
    _RELEASE_SCRIPT,
    _RESERVE_SCRIPT,
)

WINDOW = timedelta(minutes=5)


class _FakeScript:
    def __init__(self, client: "_FakeRedis", source: str) -> None:
        self._client = client
        self._source = source

    async def __call__(self, keys: list[str], args: list[Any]) -> Any:
        key = keys[0]
        store = self._client.store
        if self._source == _RESERVE_SCRIPT:
            now, window = int(args[0]), int(args[1])
            previous = store.get(key)
            if previous is not None and now - int(previous) <= window:
                return None
            store[key] = str(now)
            return previous if previous is not None else "-1"
        if self._source == _RELEASE_SCRIPT:
            if store.get(key) != str(args[0]):
                return 0
            if str(args[1]) == "-1":
                store.pop(key, None)
            else:
                store[key] = str(args[1])
            return 1
        raise AssertionError("unknown script")


class _FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def register_script(self, source: str) -> _FakeScript:
        return _FakeScript(self, source)

    async def get(self, key: str) -> str | None:
        return self.store.get(key)


@pytest.fixture(params=["memory", "redis"])
def ledger(request: pytest.FixtureRequest) -> Any:
    if request.param == "memory":
        return InMemoryThrottleLedger()
    return RedisThrottleLedger(_FakeRedis())


@pytest.mark.asyncio
async def test_first_reservation_has_no_previous(ledger: Any) -> None:
    reservation = await ledger.reserve(7, "HR", T0, WINDOW)

    assert reservation is not None
    assert reservation.previous is None
    assert await ledger.last_sent(7, "HR") == T0


@pytest.mark.asyncio
async def test_reservation_inside_window_is_refused(ledger: Any) -> None:
    await ledger.reserve(7, "HR", T0, WINDOW)

    assert await ledger.reserve(7, "HR", T0 + timedelta(minutes=4), WINDOW) is None
    assert await ledger.reserve(7, "HR", T0 + WINDOW, WINDOW) is None
    later = await ledger.reserve(7, "HR", T0 + timedelta(minutes=6), WINDOW)
    assert later is not None
    assert later.previous == T0


@pytest.mark.asyncio
async def test_release_restores_previous_value(ledger: Any) -> None:
    await ledger.reserve(7, "HR", T0, WINDOW)
    reservation = await ledger.reserve(7, "HR", T0 + timedelta(minutes=10), WINDOW)

    await ledger.release(reservation)

    assert await ledger.last_sent(7, "HR") == T0


@pytest.mark.asyncio
async def test_release_of_first_reservation_clears_entry(ledger: Any) -> None:
    reservation = await ledger.reserve(7, "HR", T0, WINDOW)

    await ledger.release(reservation)

    assert await ledger.last_sent(7, "HR") is None


@pytest.mark.asyncio
async def test_stale_release_does_not_clobber_newer_send(ledger: Any) -> None:
    stale = await ledger.reserve(7, "HR", T0, WINDOW)
    newer = T0 + timedelta(minutes=10)
    await ledger.reserve(7, "HR", newer, WINDOW)

    await ledger.release(stale)

    assert await ledger.last_sent(7, "HR") == newer


def test_redis_keys_are_namespaced() -> None:
    fake = _FakeRedis()
    ledger = RedisThrottleLedger(fake)

    assert ledger._key(7, "HR") == "vitalview:throttle:7:HR"
    assert ledger._key(None, "ABP Sys") == "vitalview:throttle:unassigned:ABP Sys"
