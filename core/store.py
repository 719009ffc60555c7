from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Tuple

import pandas as pd
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from core.config import DEFAULT_POLL_SECONDS, DEFAULT_TABLE, Settings
from core.errors import TransportError, error_message
from core.records import RECORD_COLUMNS, records_frame


logger = logging.getLogger(__name__)

# (row count, max id, last write, amount checksum)
Fingerprint = Tuple[int, Optional[int], Optional[str], float]


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class RecordStore(Protocol):
    def fetch_all(self) -> pd.DataFrame: ...

    def subscribe(self, callback: Callable[[], None]) -> Subscription: ...


def _utcnow() -> datetime:
    # Microsecond stamp; SQL now() only resolves to the second on SQLite.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def varaka_table(name: str = DEFAULT_TABLE, metadata: Optional[MetaData] = None) -> Table:
    return Table(
        name,
        metadata or MetaData(),
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("sira_no", Integer),
        Column("tarih", String(32)),
        Column("plaka_no", String(32)),
        Column("isim", String(255)),
        Column("kabahat", Text),
        Column("ceza_miktari", Float, nullable=False, default=0),
        Column("ceza_turu", String(16)),
        Column("ceza_detay", Text),
        Column("gun", String(16)),
        Column("mevsim", String(16)),
        Column("updated_at", DateTime, default=_utcnow, onupdate=_utcnow),
    )


class PollingSubscription:
    """Calls ``callback`` whenever the store fingerprint changes."""

    def __init__(self, fingerprint: Callable[[], Fingerprint], callback: Callable[[], None], interval: float, name: str = "varaka-changes"):
        self._fingerprint = fingerprint
        self._callback = callback
        self._interval = max(0.05, float(interval))
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> "PollingSubscription":
        self._thread.start()
        return self

    @property
    def active(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()

    def _read(self) -> Optional[Fingerprint]:
        try:
            return self._fingerprint()
        except TransportError as exc:
            logger.warning("change poll failed: %s", error_message(exc))
            return None

    def _run(self) -> None:
        last = self._read()
        while not self._stop.wait(self._interval):
            current = self._read()
            if current is None or current == last:
                continue
            last = current
            try:
                self._callback()
            except Exception:
                logger.exception("change callback failed")

    def unsubscribe(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=self._interval + 1.0)


class SqlRecordStore:
    """Violation records in a relational table reachable through SQLAlchemy."""

    def __init__(self, engine: Engine, table: str = DEFAULT_TABLE, *, poll_seconds: float = DEFAULT_POLL_SECONDS):
        self.engine = engine
        self.table = varaka_table(table)
        self.poll_seconds = poll_seconds

    @classmethod
    def from_url(cls, url: str, table: str = DEFAULT_TABLE, *, poll_seconds: float = DEFAULT_POLL_SECONDS) -> "SqlRecordStore":
        if url in {"sqlite://", "sqlite:///:memory:"}:
            # One shared connection so every thread sees the same in-memory database.
            engine = create_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
        else:
            engine = create_engine(url, pool_pre_ping=True)
        return cls(engine, table, poll_seconds=poll_seconds)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqlRecordStore":
        return cls.from_url(settings.database_url, settings.table, poll_seconds=settings.poll_seconds)

    def ensure_table(self) -> None:
        try:
            self.table.create(self.engine, checkfirst=True)
        except SQLAlchemyError as exc:
            raise TransportError(f"Tablo oluşturulamadı: {error_message(exc)}") from exc

    def fetch_all(self) -> pd.DataFrame:
        cols = [self.table.c[c] for c in RECORD_COLUMNS]
        query = select(*cols).order_by(self.table.c.tarih.asc(), self.table.c.id.asc())
        try:
            with self.engine.connect() as conn:
                df = pd.read_sql(query, conn)
        except SQLAlchemyError as exc:
            raise TransportError(error_message(exc)) from exc
        logger.debug("fetched %d rows from %s", len(df), self.table.name)
        return records_frame(df)

    def insert_records(self, records: pd.DataFrame) -> int:
        if records.empty:
            return 0
        cols = [c for c in RECORD_COLUMNS if c != "id"]
        frame = records_frame(records)[cols]
        rows = [
            {k: (None if pd.isna(v) else v) for k, v in row.items()}
            for row in frame.astype(object).to_dict(orient="records")
        ]
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(self.table), rows)
        except SQLAlchemyError as exc:
            raise TransportError(error_message(exc)) from exc
        logger.info("inserted %d rows into %s", len(rows), self.table.name)
        return len(rows)

    def update_record(self, record_id: int, **values) -> int:
        unknown = set(values) - (set(RECORD_COLUMNS) - {"id"})
        if unknown:
            raise ValueError(f"unknown columns: {', '.join(sorted(unknown))}")
        if not values:
            return 0
        query = update(self.table).where(self.table.c.id == int(record_id)).values(**values)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(query)
        except SQLAlchemyError as exc:
            raise TransportError(error_message(exc)) from exc
        return int(result.rowcount or 0)

    def clear(self) -> int:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(delete(self.table))
        except SQLAlchemyError as exc:
            raise TransportError(error_message(exc)) from exc
        return int(result.rowcount or 0)

    def fingerprint(self) -> Fingerprint:
        t = self.table
        query = select(func.count(), func.max(t.c.id), func.max(t.c.updated_at), func.sum(t.c.ceza_miktari))
        try:
            with self.engine.connect() as conn:
                count, max_id, last_update, amount = conn.execute(query).one()
        except SQLAlchemyError as exc:
            raise TransportError(error_message(exc)) from exc
        return (
            int(count or 0),
            int(max_id) if max_id is not None else None,
            str(last_update) if last_update is not None else None,
            float(amount or 0.0),
        )

    def subscribe(self, callback: Callable[[], None]) -> PollingSubscription:
        logger.info("subscribing to changes on %s every %.1fs", self.table.name, self.poll_seconds)
        return PollingSubscription(self.fingerprint, callback, self.poll_seconds, name=f"{self.table.name}-changes").start()
