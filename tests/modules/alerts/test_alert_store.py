import threading
from datetime import timedelta

from conftest import T0
from vitalview.modules.alerts.models import Alert, alert_id_for
from vitalview.modules.alerts.store import AlertStore, LatestAlertBoard, ListenerRegistry
from vitalview.shared.constants import AlertType, Severity


def _alert(
    patient_id: int = 7,
    key: str = "hr",
    vital: str = "HR",
    value: float = 130,
    seconds: int = 0,
    severity: Severity = Severity.CRITICAL,
) -> Alert:
    timestamp = T0 + timedelta(seconds=seconds)
    return Alert(
        id=alert_id_for(patient_id, key, timestamp),
        patient_id=patient_id,
        vital=vital,
        value=value,
        type=AlertType.HIGH,
        severity=severity,
        timestamp=timestamp,
    )


class _Counter:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1


class TestAlertStore:
    def test_recording_same_alert_twice_keeps_one(self) -> None:
        store = AlertStore()
        counter = _Counter()
        store.subscribe(counter)

        assert store.record(_alert()) is True
        assert store.record(_alert()) is False

        assert len(store.get(7)) == 1
        assert counter.calls == 1

    def test_record_many_notifies_once_and_returns_new_only(self) -> None:
        store = AlertStore()
        store.record(_alert(seconds=0))
        counter = _Counter()
        store.subscribe(counter)

        added = store.record_many([_alert(seconds=0), _alert(seconds=1), _alert(patient_id=8)])

        assert [a.id for a in added] == [_alert(seconds=1).id, _alert(patient_id=8).id]
        assert counter.calls == 1

    def test_record_many_without_new_alerts_is_silent(self) -> None:
        store = AlertStore()
        store.record(_alert())
        counter = _Counter()
        store.subscribe(counter)

        assert store.record_many([_alert()]) == []
        assert counter.calls == 0

    def test_get_keeps_insertion_order_and_get_all_is_newest_first(self) -> None:
        store = AlertStore()
        late, early, other = _alert(seconds=30), _alert(seconds=10), _alert(patient_id=3, seconds=20)
        store.record(late)
        store.record(early)
        store.record(other)

        assert store.get(7) == [late, early]
        assert store.get_all() == [late, other, early]
        assert store.get(99) == []

    def test_clear_empties_patient_and_notifies_exactly_once(self) -> None:
        store = AlertStore()
        store.record_many([_alert(seconds=1), _alert(seconds=2), _alert(patient_id=8)])
        first, second = _Counter(), _Counter()
        store.subscribe(first)
        store.subscribe(second)

        store.clear(7)

        assert store.get(7) == []
        assert len(store.get(8)) == 1
        assert (first.calls, second.calls) == (1, 1)

    def test_clear_of_unknown_patient_still_notifies(self) -> None:
        store = AlertStore()
        counter = _Counter()
        store.subscribe(counter)

        store.clear(42)

        assert counter.calls == 1

    def test_unsubscribed_listener_is_not_called(self) -> None:
        store = AlertStore()
        counter = _Counter()
        subscription = store.subscribe(counter)

        subscription.unsubscribe()
        subscription.unsubscribe()
        store.record(_alert())

        assert counter.calls == 0
        assert not subscription.active

    def test_concurrent_records_of_same_alert_keep_one(self) -> None:
        store = AlertStore()
        results: list[bool] = []

        def _worker() -> None:
            results.append(store.record(_alert()))

        threads = [threading.Thread(target=_worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert len(store.get(7)) == 1

    def test_listener_reading_other_patients_does_not_deadlock(self) -> None:
        store = AlertStore()
        barrier = threading.Barrier(2, timeout=2)
        seen: list[int] = []

        def _listener() -> None:
            # Both writers are inside notify before either reads the whole store
            barrier.wait()
            seen.append(len(store.get_all()))

        store.subscribe(_listener)
        threads = [
            threading.Thread(target=store.record, args=(_alert(patient_id=pid),), daemon=True)
            for pid in (1, 2)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert not any(thread.is_alive() for thread in threads)
        assert len(seen) == 2
        assert len(store.get_all()) == 2


class TestListenerRegistry:
    def test_failing_listener_does_not_stop_others(self) -> None:
        registry = ListenerRegistry()
        calls: list[str] = []

        def _broken() -> None:
            raise RuntimeError("listener bug")

        registry.subscribe(lambda: calls.append("first"))
        registry.subscribe(_broken)
        registry.subscribe(lambda: calls.append("third"))

        registry.notify()

        assert calls == ["first", "third"]
        assert len(registry) == 3

    def test_subscription_handle_is_callable(self) -> None:
        registry = ListenerRegistry()
        subscription = registry.subscribe(lambda: None)

        subscription()

        assert len(registry) == 0


class TestLatestAlertBoard:
    def test_newer_alert_replaces_same_vital_only(self) -> None:
        board = LatestAlertBoard()
        hr_old = _alert(seconds=0)
        spo2 = _alert(key="spo2", vital="SpO2", value=84)
        hr_new = _alert(seconds=5, value=140)

        board.apply([hr_old, spo2])
        board.apply([hr_new])

        assert board.get(7) == [hr_new, spo2]

    def test_dismissed_alert_is_never_shown_again(self) -> None:
        board = LatestAlertBoard()
        alert = _alert()
        board.apply([alert])

        assert board.dismiss(7, alert.id) is True
        board.apply([alert])

        assert board.get(7) == []
        assert board.dismiss(7, "missing") is False

    def test_clear_notifies_and_empties(self) -> None:
        board = LatestAlertBoard()
        board.apply([_alert()])
        counter = _Counter()
        board.subscribe(counter)

        board.clear(7)

        assert board.get(7) == []
        assert counter.calls == 1

    def test_listener_runs_outside_patient_lock(self) -> None:
        board = LatestAlertBoard()
        alert = _alert()
        board.apply([alert])
        observed: list[list[Alert]] = []

        def _read_from_other_thread() -> None:
            reader = threading.Thread(target=lambda: observed.append(board.get(7)))
            reader.start()
            reader.join(timeout=2)

        board.subscribe(_read_from_other_thread)
        assert board.dismiss(7, alert.id) is True

        assert observed == [[]]

    def test_dismissed_ids_are_bounded_per_vital_and_reset_on_clear(self) -> None:
        board = LatestAlertBoard()
        for seconds in range(5):
            alert = _alert(seconds=seconds)
            board.apply([alert])
            board.dismiss(7, alert.id)

        assert board._dismissed[7] == {"HR": alert.id}

        board.clear(7)
        assert 7 not in board._dismissed
        board.apply([alert])
        assert board.get(7) == [alert]
