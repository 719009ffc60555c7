from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from core.calculations import compute_pareto, compute_summary, penalty_breakdown
from core.filters import SortConfig, VarakaFilters, category_options, is_men_penalty, sort_records
from core.records import RECORD_COLUMNS
from core.utils import format_try

TABLE_COLUMNS = ["sira_no", "tarih", "plaka_no", "isim", "kabahat", "ceza_miktari", "ceza_turu", "ceza_detay", "gun", "mevsim"]
TABLE_LABELS = {
    "sira_no": "Sıra No",
    "tarih": "Tarih",
    "plaka_no": "Plaka No",
    "isim": "İsim",
    "kabahat": "Kabahat",
    "ceza_miktari": "Ceza Miktarı",
    "ceza_turu": "Ceza Türü",
    "ceza_detay": "Ceza Detay",
    "gun": "Gün",
    "mevsim": "Mevsim",
    "ceza": "Ceza",
}


def penalty_badges(records: pd.DataFrame) -> pd.Series:
    """Table badge text: detail (or "Men Cezası") for men penalties, else the amount."""
    if records.empty:
        return pd.Series(dtype=object)
    men = is_men_penalty(records)
    detail = records["ceza_detay"].astype(str).str.strip()
    men_text = detail.where(detail.ne(""), "Men Cezası")
    money_text = records["ceza_miktari"].map(format_try)
    return men_text.where(men, money_text)


def table_rows(records: pd.DataFrame) -> List[Dict[str, Any]]:
    if records.empty:
        return []
    table = records[[c for c in RECORD_COLUMNS if c in records.columns]].copy()
    table["ceza"] = penalty_badges(records)
    table["men"] = is_men_penalty(records)
    table = table.astype(object).where(table.notna(), None)
    return table.to_dict(orient="records")


def compute_details(filters: VarakaFilters, ctx: Dict[str, Any], *, sort: Optional[SortConfig] = None) -> Dict[str, Any]:
    records: pd.DataFrame = ctx.get("records", pd.DataFrame())
    filtered: pd.DataFrame = ctx.get("filtered_records", records)
    view = sort_records(filtered, sort)

    return {
        "filters": filters.as_dict(),
        "sort": {"field": sort.field.value, "direction": sort.direction.value} if sort is not None else None,
        "total_count": int(len(records)),
        "filtered_count": int(len(view)),
        "categories": category_options(records),
        "breakdown": asdict(penalty_breakdown(view)),
        "summary": asdict(compute_summary(view)),
        "pareto": [asdict(e) for e in compute_pareto(view)],
        "rows": table_rows(view),
    }
