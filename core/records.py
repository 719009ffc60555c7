from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Mapping, Optional, Union

import pandas as pd


RECORD_COLUMNS: List[str] = [
    "id",
    "sira_no",
    "tarih",
    "plaka_no",
    "isim",
    "kabahat",
    "ceza_miktari",
    "ceza_turu",
    "ceza_detay",
    "gun",
    "mevsim",
]
TEXT_COLUMNS: List[str] = ["tarih", "plaka_no", "isim", "kabahat", "ceza_turu", "ceza_detay", "gun", "mevsim"]

PENALTY_KIND_MONEY = "para"
PENALTY_KIND_MEN = "men"

_NA_TOKENS = {"nan", "none", "null", "<na>", "nat"}

RecordsLike = Union[pd.DataFrame, Iterable[Mapping[str, object]]]


def _date_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, (pd.Timestamp, datetime, date)):
        if pd.isna(value):
            return ""
        return value.strftime("%Y-%m-%d")
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _text(value: object) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    s = str(value).strip()
    return "" if s.lower() in _NA_TOKENS else s


def empty_records() -> pd.DataFrame:
    return records_frame([])


def records_frame(rows: RecordsLike) -> pd.DataFrame:
    """Normalize store rows into the canonical record frame.

    Missing columns are added empty, amounts become numeric (0 when
    unparseable), dates are kept as ISO text and every text column is a
    stripped ``str``. Extra columns are preserved after the canonical ones.
    """
    df = rows.copy() if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
    for col in RECORD_COLUMNS:
        if col not in df.columns:
            df[col] = pd.NA

    df["id"] = pd.to_numeric(df["id"], errors="coerce").astype("Int64")
    df["sira_no"] = pd.to_numeric(df["sira_no"], errors="coerce").astype("Int64")
    df["ceza_miktari"] = pd.to_numeric(df["ceza_miktari"], errors="coerce").fillna(0).astype(float)
    df["tarih"] = df["tarih"].map(_date_text).astype(object)
    for col in TEXT_COLUMNS:
        if col != "tarih":
            df[col] = df[col].map(_text).astype(object)
    df["ceza_turu"] = df["ceza_turu"].str.lower()

    extras = [c for c in df.columns if c not in RECORD_COLUMNS]
    return df[RECORD_COLUMNS + extras].reset_index(drop=True)


def parse_dates(values: pd.Series) -> pd.Series:
    """Parse ISO date text; empty or malformed values become NaT."""
    if values.empty:
        return pd.Series(pd.NaT, index=values.index, dtype="datetime64[ns]")
    text = values.astype(str).str.strip()
    return pd.to_datetime(text.mask(text.eq("")), errors="coerce", format="ISO8601")


def parse_date(value: object) -> Optional[pd.Timestamp]:
    text = _date_text(value)
    if not text:
        return None
    try:
        ts = pd.to_datetime(text, errors="coerce", format="ISO8601")
    except (TypeError, ValueError):
        return None
    return None if pd.isna(ts) else ts.normalize()
