from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import BinaryIO, Dict, Iterable, Optional, Union

import pandas as pd

from core.errors import ImportFailure, error_message
from core.records import PENALTY_KIND_MEN, PENALTY_KIND_MONEY, RECORD_COLUMNS, records_frame


logger = logging.getLogger(__name__)

# Spreadsheet header -> store column. Keys are compared after folding.
HEADER_COLUMNS = {
    "sıra no": "sira_no",
    "sira no": "sira_no",
    "sıra": "sira_no",
    "no": "sira_no",
    "tarih": "tarih",
    "tarihi": "tarih",
    "plaka": "plaka_no",
    "plaka no": "plaka_no",
    "plaka numarası": "plaka_no",
    "isim": "isim",
    "ad soyad": "isim",
    "adı soyadı": "isim",
    "kabahat": "kabahat",
    "kabahat türü": "kabahat",
    "ceza miktarı": "ceza_miktari",
    "ceza miktari": "ceza_miktari",
    "ceza tutarı": "ceza_miktari",
    "tutar": "ceza_miktari",
    "ceza türü": "ceza_turu",
    "ceza turu": "ceza_turu",
    "ceza detay": "ceza_detay",
    "ceza detayı": "ceza_detay",
    "açıklama": "ceza_detay",
    "gün": "gun",
    "gun": "gun",
    "mevsim": "mevsim",
}
REQUIRED_COLUMNS = ("plaka_no", "kabahat")

TR_DAYS = ["Pazartesi", "Salı", "Çarşamba", "Perşembe", "Cuma", "Cumartesi", "Pazar"]
SEASONS = {12: "Kış", 1: "Kış", 2: "Kış", 3: "İlkbahar", 4: "İlkbahar", 5: "İlkbahar", 6: "Yaz", 7: "Yaz", 8: "Yaz"}

ExcelSource = Union[str, bytes, BinaryIO]


@dataclass(frozen=True)
class ImportResult:
    rows_read: int
    rows_imported: int
    rows_skipped: int


def fold_header(value: object) -> str:
    s = str(value).replace("İ", "i").replace("I", "ı").lower()
    s = re.sub(r"[\s_:.]+", " ", s)
    return s.strip()


def find_header_row(raw: pd.DataFrame, search_rows: int = 25) -> Optional[int]:
    for idx in range(min(search_rows, len(raw))):
        cells = {fold_header(v) for v in raw.iloc[idx].dropna().tolist()}
        mapped = {HEADER_COLUMNS[c] for c in cells if c in HEADER_COLUMNS}
        if set(REQUIRED_COLUMNS).issubset(mapped):
            return idx
    return None


def season_for(ts: pd.Timestamp) -> str:
    return SEASONS.get(ts.month, "Sonbahar")


_DAY_FIRST = re.compile(r"^(\d{1,2})[./-](\d{1,2})[./-](\d{4})")
_DOT_THOUSANDS = re.compile(r"^-?\d{1,3}(\.\d{3})+$")


def cell_date(value: object) -> str:
    """ISO date text for a spreadsheet cell; typed text is read day-first."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.strftime("%Y-%m-%d")
    s = str(value).strip()
    m = _DAY_FIRST.match(s)
    if m:
        day, month, year = (int(g) for g in m.groups())
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return ""
    ts = pd.to_datetime(s, errors="coerce", format="ISO8601")
    return "" if pd.isna(ts) else ts.strftime("%Y-%m-%d")


def cell_amount(value: object) -> object:
    if not isinstance(value, str):
        return value
    s = re.sub(r"[^\d,.\-]", "", value)
    if "," in s:
        s = s.replace(".", "").replace(",", ".")
    elif _DOT_THOUSANDS.match(s):
        s = s.replace(".", "")
    return s or None


def cell_kind(value: str) -> str:
    s = value.replace("İ", "i").casefold()
    if s.startswith(PENALTY_KIND_MONEY):
        return PENALTY_KIND_MONEY
    if s.startswith(PENALTY_KIND_MEN):
        return PENALTY_KIND_MEN
    return ""


def normalize_sheet(df: pd.DataFrame) -> pd.DataFrame:
    renamed: Dict[str, str] = {}
    for col in df.columns:
        target = HEADER_COLUMNS.get(fold_header(col))
        if target and target not in renamed.values():
            renamed[col] = target
    df = df.rename(columns=renamed)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ImportFailure(f"Zorunlu sütunlar bulunamadı: {', '.join(missing)}")
    df = df[[c for c in RECORD_COLUMNS if c in df.columns]].copy()

    if "tarih" in df.columns:
        df["tarih"] = df["tarih"].map(cell_date)
    if "ceza_miktari" in df.columns:
        df["ceza_miktari"] = pd.to_numeric(df["ceza_miktari"].map(cell_amount), errors="coerce").fillna(0).clip(lower=0)

    df = records_frame(df)
    df = df[df["plaka_no"].ne("") & df["kabahat"].ne("")].copy()

    kinds = df["ceza_turu"].map(cell_kind)
    derived = df["ceza_miktari"].gt(0).map({True: PENALTY_KIND_MONEY, False: PENALTY_KIND_MEN})
    df["ceza_turu"] = kinds.where(kinds.ne(""), derived)

    dates = pd.to_datetime(df["tarih"], errors="coerce", format="ISO8601")
    df["gun"] = df["gun"].where(df["gun"].ne(""), dates.map(lambda d: TR_DAYS[d.weekday()] if pd.notna(d) else ""))
    df["mevsim"] = df["mevsim"].where(df["mevsim"].ne(""), dates.map(lambda d: season_for(d) if pd.notna(d) else ""))

    if df["sira_no"].isna().all():
        df["sira_no"] = pd.array(range(1, len(df) + 1), dtype="Int64")
    return df.reset_index(drop=True)


def read_excel_sheet(source: ExcelSource, sheet_name: Union[int, str] = 0) -> pd.DataFrame:
    """Raw data rows of a workbook sheet, keyed by its detected header row."""
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    try:
        raw = pd.read_excel(source, sheet_name=sheet_name, header=None, engine="openpyxl")
    except Exception as exc:
        raise ImportFailure(f"Excel dosyası okunamadı: {error_message(exc)}") from exc
    if raw.empty:
        raise ImportFailure("Excel dosyası boş.")

    header_row = find_header_row(raw)
    if header_row is None:
        raise ImportFailure("Başlık satırı bulunamadı (Plaka ve Kabahat sütunları gerekli).")
    header = [str(v).strip() if pd.notna(v) else f"col_{i}" for i, v in enumerate(raw.iloc[header_row].tolist())]
    body = raw.iloc[header_row + 1 :].reset_index(drop=True)
    body.columns = header
    return body.dropna(how="all").reset_index(drop=True)


def read_excel_records(source: ExcelSource, sheet_name: Union[int, str] = 0) -> pd.DataFrame:
    return normalize_sheet(read_excel_sheet(source, sheet_name))


def import_excel(source: ExcelSource, store, *, replace: bool = False) -> ImportResult:
    """Parse an uploaded workbook and write its rows to ``store``.

    Rows without a plate or a category are skipped. With ``replace`` the
    table is emptied first. The caller refetches afterwards; the change
    subscription will also pick the write up.
    """
    body = read_excel_sheet(source)
    records = normalize_sheet(body)
    if records.empty:
        raise ImportFailure("Excel dosyasında geçerli kayıt bulunamadı.")
    if replace:
        removed = store.clear()
        logger.info("cleared %d existing rows before import", removed)
    imported = store.insert_records(records)
    logger.info("imported %d of %d workbook rows", imported, len(body))
    return ImportResult(rows_read=int(len(body)), rows_imported=int(imported), rows_skipped=int(len(body) - imported))


def records_to_excel(records: pd.DataFrame, columns: Iterable[str]) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        records[list(columns)].to_excel(writer, index=False, sheet_name="Varakalar")
    return buf.getvalue()
