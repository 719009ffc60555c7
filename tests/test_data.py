from __future__ import annotations

import threading

from conftest import SAMPLE_ROWS, FakeStore
from core.config import NO_DATA_MESSAGE
from core.data import CoordinatorState, VarakaCoordinator, build_snapshot, prepare_context
from core.errors import TransportError


def test_initial_state_is_loading(fake_store):
    coord = VarakaCoordinator(fake_store, debounce_seconds=0)
    assert coord.state == CoordinatorState(loading=True)
    assert coord.state.status == "loading"


def test_refetch_publishes_snapshot(fake_store):
    coord = VarakaCoordinator(fake_store, debounce_seconds=0)
    state = coord.refetch()
    assert state.status == "ready"
    assert state.loading is False
    assert state.error is None
    assert state.data.summary.count == 5
    assert [p.plate for p in state.data.top_plates][0] == "34AB123"
    assert state.data.men_records["id"].tolist() == [4, 5]


def test_empty_store_is_data_unavailable():
    coord = VarakaCoordinator(FakeStore([]), debounce_seconds=0)
    state = coord.refetch()
    assert state.status == "error"
    assert state.error == NO_DATA_MESSAGE
    assert state.error_type == "DataUnavailable"
    assert state.data is None


def test_transport_error_sets_error_and_retry_recovers(fake_store):
    fake_store.error = TransportError("bağlantı koptu")
    coord = VarakaCoordinator(fake_store, debounce_seconds=0)
    state = coord.refetch()
    assert state.error == "bağlantı koptu"
    assert state.error_type == "TransportError"
    assert state.loading is False

    fake_store.error = None
    assert coord.refetch().status == "ready"


def test_loading_state_keeps_previous_data(fake_store):
    coord = VarakaCoordinator(fake_store, debounce_seconds=0)
    coord.refetch()
    seen = []
    remove = coord.subscribe_state(seen.append)
    coord.refetch()
    remove()
    coord.refetch()

    assert [s.loading for s in seen] == [True, False]
    assert seen[0].data is not None
    assert seen[0].error is None


def test_start_subscribes_once_and_close_unsubscribes(fake_store):
    coord = VarakaCoordinator(fake_store, debounce_seconds=0)
    coord.start()
    coord.start()
    assert len(fake_store.subscriptions) == 1
    assert coord.subscribed

    coord.close()
    assert fake_store.unsubscribed == 1
    assert not coord.subscribed
    coord.close()
    assert fake_store.unsubscribed == 1


def test_change_notification_triggers_refetch(fake_store):
    with VarakaCoordinator(fake_store, debounce_seconds=0) as coord:
        assert fake_store.fetch_count == 1
        fake_store.rows = SAMPLE_ROWS[:2]
        fake_store.callback()
        assert fake_store.fetch_count == 2
        assert coord.state.data.summary.count == 2


def test_notification_burst_is_debounced(fake_store):
    coord = VarakaCoordinator(fake_store, debounce_seconds=0.1)
    coord.start()
    for _ in range(5):
        coord.notify()
    assert coord.wait_idle(timeout=2)
    assert fake_store.fetch_count == 2
    coord.close()


def test_closed_coordinator_ignores_notifications(fake_store):
    coord = VarakaCoordinator(fake_store, debounce_seconds=0)
    coord.start()
    coord.close()
    coord.notify()
    assert fake_store.fetch_count == 1


def test_overlapping_fetches_last_finisher_wins(fake_store):
    started = threading.Event()
    release = threading.Event()

    def hook(call: int) -> None:
        if call == 1:
            started.set()
            release.wait(2)

    fake_store.fetch_hook = hook
    coord = VarakaCoordinator(fake_store, debounce_seconds=0)
    slow = threading.Thread(target=coord.refetch)
    slow.start()
    assert started.wait(2)

    fake_store.rows = SAMPLE_ROWS[:2]
    fast = coord.refetch()
    assert fast.data.summary.count == 2
    assert fast.loading is True

    release.set()
    slow.join(2)
    final = coord.state
    assert final.loading is False
    assert final.data.summary.count == 5
    assert coord.wait_idle(timeout=1)


def test_prepare_context_applies_filters(records):
    snapshot = build_snapshot(records)
    ctx = prepare_context({"penalty_kind": "men"}, snapshot)
    assert ctx["filtered_records"]["id"].tolist() == [4, 5]
    assert ctx["summary"].count == 5
    assert prepare_context(None, snapshot)["filtered_records"] is snapshot.records
