from __future__ import annotations

import threading
from typing import Callable, List, Optional

import pandas as pd
import pytest

from core.records import records_frame
from core.store import SqlRecordStore


SAMPLE_ROWS = [
    {"id": 1, "sira_no": 1, "tarih": "2024-01-05", "plaka_no": "34AB123", "isim": "Ali Yılmaz", "kabahat": "Hız İhlali", "ceza_miktari": 500, "ceza_turu": "para", "ceza_detay": "", "gun": "Cuma", "mevsim": "Kış"},
    {"id": 2, "sira_no": 2, "tarih": "2024-02-10", "plaka_no": "06CD456", "isim": "Ayşe Kaya", "kabahat": "Hız İhlali", "ceza_miktari": 500, "ceza_turu": "para", "ceza_detay": "", "gun": "Cumartesi", "mevsim": "Kış"},
    {"id": 3, "sira_no": 3, "tarih": "2024-03-15", "plaka_no": "35EF789", "isim": "Mehmet Demir", "kabahat": "Hız İhlali", "ceza_miktari": 500, "ceza_turu": "para", "ceza_detay": "", "gun": "Cuma", "mevsim": "İlkbahar"},
    {"id": 4, "sira_no": 4, "tarih": "2024-03-20", "plaka_no": "34AB123", "isim": "Ali Yılmaz", "kabahat": "Park İhlali", "ceza_miktari": 0, "ceza_turu": "men", "ceza_detay": "3 gün men", "gun": "Çarşamba", "mevsim": "İlkbahar"},
    {"id": 5, "sira_no": 5, "tarih": "2024-04-01", "plaka_no": "16GH012", "isim": "Zeynep Çelik", "kabahat": "Park İhlali", "ceza_miktari": 0, "ceza_turu": "men", "ceza_detay": "", "gun": "Pazartesi", "mevsim": "İlkbahar"},
]


@pytest.fixture
def records() -> pd.DataFrame:
    return records_frame(SAMPLE_ROWS)


@pytest.fixture
def sql_store():
    store = SqlRecordStore.from_url("sqlite://", poll_seconds=0.05)
    store.ensure_table()
    yield store
    store.engine.dispose()


class FakeSubscription:
    def __init__(self, owner: "FakeStore"):
        self.owner = owner
        self.active = True

    def unsubscribe(self) -> None:
        self.active = False
        self.owner.unsubscribed += 1


class FakeStore:
    """In-memory store; ``fetch_hook`` runs inside every fetch."""

    def __init__(self, rows: Optional[List[dict]] = None):
        self.rows = list(rows or [])
        self.fetch_count = 0
        self.subscriptions: List[FakeSubscription] = []
        self.unsubscribed = 0
        self.callback: Optional[Callable[[], None]] = None
        self.fetch_hook: Optional[Callable[[int], None]] = None
        self.error: Optional[Exception] = None
        self._lock = threading.Lock()

    def fetch_all(self) -> pd.DataFrame:
        with self._lock:
            self.fetch_count += 1
            call = self.fetch_count
            rows = list(self.rows)
        if self.fetch_hook is not None:
            self.fetch_hook(call)
        if self.error is not None:
            raise self.error
        return records_frame(rows)

    def subscribe(self, callback: Callable[[], None]) -> FakeSubscription:
        self.callback = callback
        sub = FakeSubscription(self)
        self.subscriptions.append(sub)
        return sub

    def insert_records(self, records: pd.DataFrame) -> int:
        rows = records.astype(object).where(records.notna(), None).to_dict(orient="records")
        self.rows.extend(rows)
        return len(rows)

    def clear(self) -> int:
        removed = len(self.rows)
        self.rows = []
        return removed


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore(SAMPLE_ROWS)
