"""
In-process alert state.

Two lenses over the same evaluator output:

- ``AlertStore``: historical feed. Every distinct alert for a patient is kept in
  arrival order until the patient's alerts are cleared.
- ``LatestAlertBoard``: live feed. One alert per (patient, vital); a newer alert
  for a vital replaces the previous one, other vitals are left alone.

Both are constructed once at startup and injected into consumers. Change
notification is a signal only: listeners re-query the state they care about.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Callable, Iterable

import structlog

from vitalview.modules.alerts.models import Alert

log = structlog.get_logger(__name__)

Listener = Callable[[], None]


class Subscription:
    """Handle returned by ``subscribe``; ``unsubscribe`` may be called any number of times."""

    def __init__(self, registry: "ListenerRegistry", listener: Listener) -> None:
        self._registry = registry
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._registry._remove(self)
            self._active = False

    def __call__(self) -> None:
        self.unsubscribe()

    def _notify(self) -> None:
        self._listener()


class ListenerRegistry:
    """Synchronous publish/subscribe. Listeners run in subscription order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(self, listener: Listener) -> Subscription:
        subscription = Subscription(self, listener)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def notify(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            try:
                subscription._notify()
            except Exception:
                log.exception("alert listener failed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)


class _PatientLocks:
    """One re-entrant lock per patient so unrelated patients never contend."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int | None, threading.RLock] = {}

    def __call__(self, patient_id: int | None) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(patient_id)
            if lock is None:
                lock = self._locks[patient_id] = threading.RLock()
            return lock


class AlertStore:
    """Historical alert feed with idempotent inserts keyed by alert id."""

    def __init__(self) -> None:
        self._alerts: dict[int | None, OrderedDict[str, Alert]] = {}
        self._locks = _PatientLocks()
        self._listeners = ListenerRegistry()

    def record(self, alert: Alert) -> bool:
        """Insert ``alert``; returns False (and notifies nobody) if its id is already stored."""
        with self._locks(alert.patient_id):
            inserted = self._insert(alert)
        if inserted:
            self._listeners.notify()
        return inserted

    def record_many(self, alerts: Iterable[Alert]) -> list[Alert]:
        """Insert a batch and notify once; returns only the alerts that were new."""
        added: list[Alert] = []
        for patient_id, batch in _group_by_patient(alerts).items():
            with self._locks(patient_id):
                added.extend(alert for alert in batch if self._insert(alert))
        if added:
            self._listeners.notify()
        return added

    def get(self, patient_id: int | None) -> list[Alert]:
        with self._locks(patient_id):
            return list(self._alerts.get(patient_id, {}).values())

    def get_all(self) -> list[Alert]:
        alerts: list[Alert] = []
        for patient_id in list(self._alerts):
            alerts.extend(self.get(patient_id))
        return sorted(alerts, key=lambda alert: alert.timestamp, reverse=True)

    def clear(self, patient_id: int | None) -> None:
        with self._locks(patient_id):
            self._alerts.pop(patient_id, None)
        self._listeners.notify()

    def subscribe(self, listener: Listener) -> Subscription:
        return self._listeners.subscribe(listener)

    def _insert(self, alert: Alert) -> bool:
        patient_alerts = self._alerts.setdefault(alert.patient_id, OrderedDict())
        if alert.id in patient_alerts:
            return False
        patient_alerts[alert.id] = alert
        return True


class LatestAlertBoard:
    """Live feed keeping only the newest alert per vital for each patient."""

    def __init__(self) -> None:
        self._alerts: dict[int | None, dict[str, Alert]] = {}
        # Last dismissed alert id per (patient, vital)
        self._dismissed: dict[int | None, dict[str, str]] = {}
        self._locks = _PatientLocks()
        self._listeners = ListenerRegistry()

    def apply(self, alerts: Iterable[Alert]) -> None:
        changed = False
        for patient_id, batch in _group_by_patient(alerts).items():
            with self._locks(patient_id):
                board = self._alerts.setdefault(patient_id, {})
                dismissed = self._dismissed.get(patient_id, {})
                for alert in batch:
                    if dismissed.get(alert.vital) == alert.id:
                        continue
                    if board.get(alert.vital) != alert:
                        board[alert.vital] = alert
                        changed = True
        if changed:
            self._listeners.notify()

    def get(self, patient_id: int | None) -> list[Alert]:
        with self._locks(patient_id):
            return list(self._alerts.get(patient_id, {}).values())

    def dismiss(self, patient_id: int | None, alert_id: str) -> bool:
        with self._locks(patient_id):
            board = self._alerts.get(patient_id, {})
            vital = next((v for v, alert in board.items() if alert.id == alert_id), None)
            if vital is not None:
                del board[vital]
                self._dismissed.setdefault(patient_id, {})[vital] = alert_id
        if vital is None:
            return False
        self._listeners.notify()
        return True

    def clear(self, patient_id: int | None) -> None:
        with self._locks(patient_id):
            self._alerts.pop(patient_id, None)
            self._dismissed.pop(patient_id, None)
        self._listeners.notify()

    def subscribe(self, listener: Listener) -> Subscription:
        return self._listeners.subscribe(listener)


def _group_by_patient(alerts: Iterable[Alert]) -> dict[int | None, list[Alert]]:
    grouped: dict[int | None, list[Alert]] = {}
    for alert in alerts:
        grouped.setdefault(alert.patient_id, []).append(alert)
    return grouped
