from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

import pandas as pd

from core.records import PENALTY_KIND_MEN, PENALTY_KIND_MONEY, parse_date, parse_dates


# ---------------- Canonical penalty predicates ----------------
def is_monetary(records: pd.DataFrame) -> pd.Series:
    return records["ceza_miktari"] > 0


def is_men_penalty(records: pd.DataFrame) -> pd.Series:
    """Non-monetary penalty: kind is ``men`` or the amount is zero."""
    return records["ceza_turu"].eq(PENALTY_KIND_MEN) | records["ceza_miktari"].eq(0)


def has_detail(records: pd.DataFrame) -> pd.Series:
    return records["ceza_detay"].astype(str).str.strip().ne("")


def is_men_related(records: pd.DataFrame) -> pd.Series:
    """Men penalties plus any record carrying penalty detail text."""
    return is_men_penalty(records) | has_detail(records)


_KIND_ALIASES = {
    "para": PENALTY_KIND_MONEY,
    "monetary": PENALTY_KIND_MONEY,
    "money": PENALTY_KIND_MONEY,
    "men": PENALTY_KIND_MEN,
    "suspension": PENALTY_KIND_MEN,
}


@dataclass(frozen=True)
class VarakaFilters:
    search: str = ""
    category: str = ""
    penalty_kind: str = ""
    date_start: Optional[pd.Timestamp] = None
    date_end: Optional[pd.Timestamp] = None
    men_only: bool = False

    @property
    def date_range_active(self) -> bool:
        return self.date_start is not None and self.date_end is not None

    @property
    def is_active(self) -> bool:
        return bool(self.search or self.category or self.penalty_kind or self.date_range_active or self.men_only)

    def as_dict(self) -> Dict[str, object]:
        return {
            "search": self.search,
            "category": self.category,
            "penalty_kind": self.penalty_kind,
            "date_start": self.date_start.date().isoformat() if self.date_start is not None else None,
            "date_end": self.date_end.date().isoformat() if self.date_end is not None else None,
            "men_only": self.men_only,
        }


def normalize_filters(raw: Optional[dict]) -> VarakaFilters:
    raw = raw or {}
    search = str(raw.get("search") or "").strip()
    category = str(raw.get("category") or "").strip()
    kind = _KIND_ALIASES.get(str(raw.get("penalty_kind") or "").strip().lower(), "")
    men_only = raw.get("men_only", False)
    if isinstance(men_only, str):
        men_only = men_only.strip().lower() in {"1", "true", "yes", "on"}
    return VarakaFilters(
        search=search,
        category=category,
        penalty_kind=kind,
        date_start=parse_date(raw.get("date_start")),
        date_end=parse_date(raw.get("date_end")),
        men_only=bool(men_only),
    )


def apply_filters(records: pd.DataFrame, filters: VarakaFilters) -> pd.DataFrame:
    """Return the records matching every active filter, in their original order."""
    if records.empty or not filters.is_active:
        return records

    mask = pd.Series(True, index=records.index)

    if filters.search:
        q = filters.search.casefold()
        mask &= (
            records["plaka_no"].astype(str).str.casefold().str.contains(q, regex=False)
            | records["isim"].astype(str).str.casefold().str.contains(q, regex=False)
            | records["kabahat"].astype(str).str.casefold().str.contains(q, regex=False)
        )

    if filters.category:
        mask &= records["kabahat"].eq(filters.category)

    if filters.penalty_kind == PENALTY_KIND_MONEY:
        mask &= is_monetary(records)
    elif filters.penalty_kind == PENALTY_KIND_MEN:
        mask &= is_men_penalty(records)

    if filters.date_range_active:
        # Empty or malformed dates are outside every range.
        dates = parse_dates(records["tarih"]).dt.normalize()
        mask &= dates.notna() & dates.ge(filters.date_start) & dates.le(filters.date_end)

    if filters.men_only:
        mask &= is_men_related(records)

    return records[mask]


def category_options(records: pd.DataFrame) -> List[str]:
    if records.empty:
        return []
    return sorted(c for c in records["kabahat"].astype(str).unique() if c)


# ---------------- Table sorting ----------------
class SortField(str, Enum):
    SIRA_NO = "sira_no"
    TARIH = "tarih"
    PLAKA_NO = "plaka_no"
    ISIM = "isim"
    KABAHAT = "kabahat"
    CEZA_MIKTARI = "ceza_miktari"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


def _numeric_key(s: pd.Series) -> pd.Series:
    return pd.to_numeric(s, errors="coerce")


def _text_key(s: pd.Series) -> pd.Series:
    folded = s.astype(str).str.strip().str.casefold()
    return folded.where(folded.ne(""), None)


SORT_KEYS: Dict[SortField, Callable[[pd.Series], pd.Series]] = {
    SortField.SIRA_NO: _numeric_key,
    SortField.TARIH: parse_dates,
    SortField.PLAKA_NO: _text_key,
    SortField.ISIM: _text_key,
    SortField.KABAHAT: _text_key,
    SortField.CEZA_MIKTARI: _numeric_key,
}


@dataclass(frozen=True)
class SortConfig:
    field: SortField
    direction: SortDirection = SortDirection.ASC


def parse_sort(field: Optional[str], direction: Optional[str] = None) -> Optional[SortConfig]:
    if not field:
        return None
    try:
        sort_field = SortField(str(field).strip())
    except ValueError:
        return None
    try:
        sort_dir = SortDirection(str(direction or "asc").strip().lower())
    except ValueError:
        sort_dir = SortDirection.ASC
    return SortConfig(field=sort_field, direction=sort_dir)


def toggle_sort(current: Optional[SortConfig], field: SortField) -> SortConfig:
    if current is not None and current.field == field:
        flipped = SortDirection.DESC if current.direction == SortDirection.ASC else SortDirection.ASC
        return SortConfig(field=field, direction=flipped)
    return SortConfig(field=field, direction=SortDirection.ASC)


def sort_records(records: pd.DataFrame, sort: Optional[SortConfig]) -> pd.DataFrame:
    """Stable sort on one field; missing values always go last."""
    if sort is None or records.empty:
        return records
    return records.sort_values(
        sort.field.value,
        ascending=sort.direction == SortDirection.ASC,
        kind="stable",
        na_position="last",
        key=SORT_KEYS[sort.field],
    )
