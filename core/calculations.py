from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd

from core.config import PARETO_LIMIT, TOP_PLATES_LIMIT
from core.filters import is_men_penalty, is_monetary
from core.records import parse_dates
from core.utils import round_half_up


TR_MONTHS = [
    "Ocak",
    "Şubat",
    "Mart",
    "Nisan",
    "Mayıs",
    "Haziran",
    "Temmuz",
    "Ağustos",
    "Eylül",
    "Ekim",
    "Kasım",
    "Aralık",
]


@dataclass(frozen=True)
class Summary:
    count: int
    total: float
    average: float


@dataclass(frozen=True)
class ParetoEntry:
    category: str
    count: int
    percentage: float
    cumulative_percentage: float


@dataclass(frozen=True)
class PlateEntry:
    plate: str
    total: float
    count: int
    average: int


@dataclass(frozen=True)
class MonthlyBucket:
    month: str
    count: int


@dataclass(frozen=True)
class PenaltyBreakdown:
    records: int
    monetary_count: int
    men_count: int
    monetary_total: float


@dataclass(frozen=True)
class CategoryStats:
    most_common: str
    most_common_count: int
    distinct: int
    total: int
    average_per_category: int


def compute_summary(records: pd.DataFrame) -> Summary:
    count = int(len(records))
    total = float(records["ceza_miktari"].sum()) if count else 0.0
    return Summary(count=count, total=total, average=total / count if count else 0.0)


def compute_pareto(records: pd.DataFrame, limit: int = PARETO_LIMIT) -> List[ParetoEntry]:
    """Violation categories ranked by frequency with cumulative share.

    Percentages are relative to every record passed in, so when more than
    ``limit`` categories exist the last cumulative value stays below 100.
    """
    total = len(records)
    if not total:
        return []
    counts = records.groupby("kabahat", sort=False).size().sort_values(ascending=False, kind="stable")

    entries: List[ParetoEntry] = []
    cumulative = 0.0
    for category, count in counts.items():
        pct = count / total * 100
        cumulative += pct
        entries.append(ParetoEntry(category=str(category), count=int(count), percentage=pct, cumulative_percentage=cumulative))
    return entries[:limit]


def compute_top_plates(records: pd.DataFrame, limit: int = TOP_PLATES_LIMIT) -> List[PlateEntry]:
    if records.empty:
        return []
    grouped = (
        records.groupby("plaka_no", sort=False)["ceza_miktari"]
        .agg(total="sum", count="size")
        .sort_values("total", ascending=False, kind="stable")
        .head(limit)
    )
    return [
        PlateEntry(
            plate=str(plate),
            total=float(row["total"]),
            count=int(row["count"]),
            average=int(round_half_up(row["total"] / row["count"])),
        )
        for plate, row in grouped.iterrows()
    ]


def category_distribution(records: pd.DataFrame) -> Dict[str, int]:
    if records.empty:
        return {}
    counts = records.groupby("kabahat", sort=False).size()
    return {str(k): int(v) for k, v in counts.items()}


def category_stats(records: pd.DataFrame) -> CategoryStats:
    counts = records.groupby("kabahat", sort=False).size() if not records.empty else pd.Series(dtype=int)
    if counts.empty:
        return CategoryStats(most_common="", most_common_count=0, distinct=0, total=int(len(records)), average_per_category=0)
    # idxmax keeps the first-seen category on ties
    top = counts.idxmax()
    distinct = int(len(counts))
    return CategoryStats(
        most_common=str(top),
        most_common_count=int(counts[top]),
        distinct=distinct,
        total=int(len(records)),
        average_per_category=int(round_half_up(len(records) / distinct)),
    )


def monthly_trend(records: pd.DataFrame) -> List[MonthlyBucket]:
    if records.empty:
        return []
    dates = parse_dates(records["tarih"]).dropna()
    if dates.empty:
        return []
    counts = dates.dt.strftime("%Y-%m").value_counts().sort_index()
    return [MonthlyBucket(month=str(m), count=int(c)) for m, c in counts.items()]


def penalty_breakdown(records: pd.DataFrame) -> PenaltyBreakdown:
    if records.empty:
        return PenaltyBreakdown(records=0, monetary_count=0, men_count=0, monetary_total=0.0)
    monetary = is_monetary(records)
    return PenaltyBreakdown(
        records=int(len(records)),
        monetary_count=int(monetary.sum()),
        men_count=int(is_men_penalty(records).sum()),
        monetary_total=float(records.loc[monetary, "ceza_miktari"].sum()),
    )


def date_span(records: pd.DataFrame) -> Tuple[Optional[pd.Timestamp], Optional[pd.Timestamp]]:
    if records.empty:
        return None, None
    dates = parse_dates(records["tarih"]).dropna()
    if dates.empty:
        return None, None
    return dates.min(), dates.max()


def format_tr_date(value: pd.Timestamp) -> str:
    return f"{value.day} {TR_MONTHS[value.month - 1]} {value.year}"


def format_date_span(records: pd.DataFrame) -> str:
    if records.empty:
        return "Tarih aralığı bulunamadı"
    oldest, newest = date_span(records)
    if oldest is None or newest is None:
        return "Tarih bilgisi bulunamadı"
    return f"{format_tr_date(oldest)} - {format_tr_date(newest)}"
