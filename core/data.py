from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import pandas as pd

from core.calculations import (
    ParetoEntry,
    PlateEntry,
    Summary,
    compute_pareto,
    compute_summary,
    compute_top_plates,
)
from core.config import DEFAULT_DEBOUNCE_SECONDS, NO_DATA_MESSAGE
from core.errors import DataUnavailable, error_message
from core.filters import VarakaFilters, apply_filters, is_men_related, normalize_filters
from core.store import RecordStore, Subscription


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VarakaSnapshot:
    records: pd.DataFrame
    summary: Summary
    pareto: List[ParetoEntry]
    top_plates: List[PlateEntry]
    men_records: pd.DataFrame
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class CoordinatorState:
    loading: bool = True
    error: Optional[str] = None
    error_type: Optional[str] = None
    data: Optional[VarakaSnapshot] = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return "error"
        if self.data is None:
            return "loading"
        return "ready"


def build_snapshot(records: pd.DataFrame) -> VarakaSnapshot:
    records = records.reset_index(drop=True)
    return VarakaSnapshot(
        records=records,
        summary=compute_summary(records),
        pareto=compute_pareto(records),
        top_plates=compute_top_plates(records),
        men_records=records[is_men_related(records)] if not records.empty else records,
    )


class VarakaCoordinator:
    """Keeps the dashboard's record snapshot in step with the store.

    Every fetch reads the whole table and recomputes the aggregates; change
    notifications are batched over ``debounce_seconds`` and trigger the same
    full refetch. Overlapping fetches are not cancelled: each publishes a
    complete state, so whichever finishes last wins.
    """

    def __init__(self, store: RecordStore, *, debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS):
        self.store = store
        self.debounce_seconds = max(0.0, float(debounce_seconds))
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._state = CoordinatorState()
        self._inflight = 0
        self._timer: Optional[threading.Timer] = None
        self._subscription: Optional[Subscription] = None
        self._closed = False
        self._listeners: List[Callable[[CoordinatorState], None]] = []

    # ---------------- state ----------------
    @property
    def state(self) -> CoordinatorState:
        with self._lock:
            return self._state

    def subscribe_state(self, callback: Callable[[CoordinatorState], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def remove() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return remove

    def _publish(self, state: CoordinatorState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("state listener failed")

    # ---------------- lifecycle ----------------
    def start(self) -> CoordinatorState:
        state = self.refetch()
        with self._lock:
            if self._closed or self._subscription is not None:
                return state
        subscription = self.store.subscribe(self.notify)
        with self._lock:
            if self._closed or self._subscription is not None:
                duplicate = True
            else:
                self._subscription = subscription
                duplicate = False
        if duplicate:
            subscription.unsubscribe()
        return state

    def close(self) -> None:
        with self._lock:
            self._closed = True
            timer, self._timer = self._timer, None
            subscription, self._subscription = self._subscription, None
            self._idle.notify_all()
        if timer is not None:
            timer.cancel()
        if subscription is not None:
            subscription.unsubscribe()
            logger.info("change subscription closed")

    @property
    def subscribed(self) -> bool:
        with self._lock:
            return self._subscription is not None

    def __enter__(self) -> "VarakaCoordinator":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ---------------- fetching ----------------
    def _mark_loading(self) -> CoordinatorState:
        # Caller holds the lock.
        self._inflight += 1
        self._state = CoordinatorState(loading=True, data=self._state.data)
        return self._state

    def refetch(self) -> CoordinatorState:
        with self._lock:
            loading_state = self._mark_loading()
        return self._run_fetch(loading_state)

    def _run_fetch(self, loading_state: CoordinatorState) -> CoordinatorState:
        self._publish(loading_state)
        try:
            records = self.store.fetch_all()
            if records.empty:
                raise DataUnavailable(NO_DATA_MESSAGE)
            snapshot = build_snapshot(records)
            result = CoordinatorState(loading=False, data=snapshot)
            logger.info("loaded %d records", snapshot.summary.count)
        except DataUnavailable as exc:
            logger.info("no records in store")
            result = CoordinatorState(loading=False, error=error_message(exc), error_type=type(exc).__name__)
        except Exception as exc:
            logger.warning("fetch failed: %s", error_message(exc))
            result = CoordinatorState(loading=False, error=error_message(exc), error_type=type(exc).__name__)

        with self._lock:
            self._inflight -= 1
            self._state = CoordinatorState(
                loading=self._inflight > 0,
                error=result.error,
                error_type=result.error_type,
                data=result.data,
            )
            published = self._state
            self._idle.notify_all()
        self._publish(published)
        return published

    def notify(self, *_event) -> None:
        """Change-notification entry point; batches bursts into one refetch."""
        if self.debounce_seconds == 0:
            with self._lock:
                if self._closed:
                    return
            self.refetch()
            return
        with self._lock:
            if self._closed or self._timer is not None:
                return
            timer = threading.Timer(self.debounce_seconds, self._debounced_refetch)
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _debounced_refetch(self) -> None:
        with self._lock:
            self._timer = None
            if self._closed:
                self._idle.notify_all()
                return
            loading_state = self._mark_loading()
        self._run_fetch(loading_state)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._inflight == 0 and self._timer is None, timeout=timeout)


# ---------------- Public API (Streamlit + FastAPI use) ----------------
def prepare_context(filters: dict | VarakaFilters | None, snapshot: VarakaSnapshot) -> Dict[str, object]:
    filt = filters if isinstance(filters, VarakaFilters) else normalize_filters(filters)
    records = snapshot.records
    return {
        "filters": filt,
        "records": records,
        "filtered_records": apply_filters(records, filt),
        "summary": snapshot.summary,
        "pareto": snapshot.pareto,
        "top_plates": snapshot.top_plates,
        "men_records": snapshot.men_records,
        "fetched_at": snapshot.fetched_at,
    }
