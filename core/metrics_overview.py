from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from core.calculations import (
    ParetoEntry,
    PlateEntry,
    Summary,
    category_distribution,
    category_stats,
    format_date_span,
    monthly_trend,
    penalty_breakdown,
)
from core.charts import category_pie, monthly_trend_chart, pareto_chart, to_vega_spec
from core.config import PARETO_RULE_PCT
from core.utils import format_try


def _vital_few(pareto: List[ParetoEntry]) -> int:
    """Number of leading categories needed to reach the 80% line."""
    for idx, entry in enumerate(pareto, start=1):
        if entry.cumulative_percentage >= PARETO_RULE_PCT:
            return idx
    return len(pareto)


def compute_overview(ctx: Dict[str, Any]) -> Dict[str, Any]:
    records: pd.DataFrame = ctx.get("records", pd.DataFrame())
    summary: Summary = ctx["summary"]
    pareto: List[ParetoEntry] = ctx.get("pareto", []) or []
    top_plates: List[PlateEntry] = ctx.get("top_plates", []) or []
    men_records: pd.DataFrame = ctx.get("men_records", pd.DataFrame())

    breakdown = penalty_breakdown(records)
    trend = monthly_trend(records)
    distribution = category_distribution(records)
    stats = category_stats(records)

    charts: Dict[str, Any] = {}
    if pareto:
        charts["pareto"] = to_vega_spec(pareto_chart(pareto))
    if distribution:
        charts["category_pie"] = to_vega_spec(category_pie(distribution))
    if trend:
        charts["monthly_trend"] = to_vega_spec(monthly_trend_chart(trend))

    fetched_at = ctx.get("fetched_at")
    return {
        "date_range": format_date_span(records),
        "fetched_at": fetched_at.isoformat() if fetched_at is not None else None,
        "kpis": {
            "count": summary.count,
            "total": summary.total,
            "average": summary.average,
            "total_display": format_try(summary.total),
            "average_display": format_try(summary.average),
            "men_related": int(len(men_records)),
        },
        "category_stats": asdict(stats),
        "breakdown": asdict(breakdown),
        "pareto": [asdict(e) for e in pareto],
        "pareto_vital_few": _vital_few(pareto),
        "top_plates": [asdict(p) for p in top_plates],
        "category_distribution": distribution,
        "monthly_trend": [asdict(b) for b in trend],
        "charts": charts,
    }
