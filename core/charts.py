from __future__ import annotations

from typing import Any, Dict, List, Mapping

import altair as alt
import pandas as pd
import vl_convert as vlc

from core.calculations import MonthlyBucket, ParetoEntry, category_distribution, monthly_trend
from core.config import PARETO_RULE_PCT
from core.errors import ExportFailure, error_message

alt.data_transformers.disable_max_rows()

PIE_COLORS = ["#0066FF", "#99CCFF", "#E5E5E5", "#A3A3A3", "#404040", "#171717", "#F59E0B", "#EF4444"]
LABEL_LIMIT = 30
CHART_WIDTH = 700


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def to_png(chart: alt.TopLevelMixin, scale: float = 2.0, width: int = CHART_WIDTH) -> bytes:
    """Rasterize a chart for the PDF export."""
    try:
        spec = chart.to_dict()
        spec["width"] = width
        return vlc.vegalite_to_png(spec, scale=scale)
    except Exception as exc:
        raise ExportFailure(f"Grafik görüntüye dönüştürülemedi: {error_message(exc)}") from exc


def _short(label: str) -> str:
    return label if len(label) <= LABEL_LIMIT else label[:LABEL_LIMIT] + "..."


def pareto_chart(entries: List[ParetoEntry]) -> alt.LayerChart:
    df = pd.DataFrame(
        [
            {
                "kabahat": _short(e.category),
                "kabahat_full": e.category,
                "count": e.count,
                "percentage": e.percentage,
                "cumulative": e.cumulative_percentage,
            }
            for e in entries
        ],
        columns=["kabahat", "kabahat_full", "count", "percentage", "cumulative"],
    )
    order = df["kabahat"].tolist()
    base = alt.Chart(df).encode(x=alt.X("kabahat:N", sort=order, title="Kabahat", axis=alt.Axis(labelAngle=-45)))
    bars = base.mark_bar(color="#0066FF", cornerRadiusTopLeft=4, cornerRadiusTopRight=4).encode(
        y=alt.Y("count:Q", title="Kabahat Sayısı"),
        tooltip=[
            alt.Tooltip("kabahat_full:N", title="Kabahat"),
            alt.Tooltip("count:Q", title="Adet"),
            alt.Tooltip("percentage:Q", title="Oran %", format=".1f"),
        ],
    )
    line = base.mark_line(point=True, color="#EF4444").encode(
        y=alt.Y("cumulative:Q", title="Kümülatif %", scale=alt.Scale(domain=[0, 100])),
        tooltip=[alt.Tooltip("kabahat_full:N", title="Kabahat"), alt.Tooltip("cumulative:Q", title="Kümülatif %", format=".1f")],
    )
    rule = (
        alt.Chart(pd.DataFrame({"y": [PARETO_RULE_PCT]}))
        .mark_rule(color="#F59E0B", strokeDash=[6, 4])
        .encode(y=alt.Y("y:Q", scale=alt.Scale(domain=[0, 100])))
    )
    return alt.layer(bars, alt.layer(line, rule)).resolve_scale(y="independent").properties(height=360, title="Pareto Analizi")


def category_pie(distribution: Mapping[str, int]) -> alt.Chart:
    df = pd.DataFrame({"kabahat": list(distribution.keys()), "count": list(distribution.values())})
    df["label"] = df["kabahat"].astype(str).map(_short)
    total = int(df["count"].sum()) if not df.empty else 0
    df["share"] = df["count"] / total if total else 0.0
    return (
        alt.Chart(df)
        .mark_arc(stroke="#FFFFFF", strokeWidth=2)
        .encode(
            theta=alt.Theta("count:Q"),
            color=alt.Color("label:N", title="Kabahat", sort=df["label"].tolist(), scale=alt.Scale(range=PIE_COLORS)),
            tooltip=[
                alt.Tooltip("kabahat:N", title="Kabahat"),
                alt.Tooltip("count:Q", title="Adet"),
                alt.Tooltip("share:Q", title="Oran", format=".1%"),
            ],
        )
        .properties(height=380, title="Kabahat Dağılımı")
    )


def monthly_trend_chart(buckets: List[MonthlyBucket]) -> alt.LayerChart:
    df = pd.DataFrame([{"month": b.month, "count": b.count} for b in buckets], columns=["month", "count"])
    base = alt.Chart(df).encode(x=alt.X("month:O", title="Yıl-Ay", sort=df["month"].tolist(), axis=alt.Axis(labelAngle=-45)))
    bars = base.mark_bar(color="#F59E0B", cornerRadiusTopLeft=4, cornerRadiusTopRight=4).encode(
        y=alt.Y("count:Q", title="Kabahat Sayısı"),
        tooltip=[alt.Tooltip("month:O", title="Ay"), alt.Tooltip("count:Q", title="Adet")],
    )
    trend = base.mark_line(color="#EF4444", interpolate="monotone", point=True).encode(y="count:Q")
    return alt.layer(bars, trend).properties(height=300, title="Yıl-Ay Kabahat Sayıları ve Trend")


def dashboard_charts(pareto: List[ParetoEntry], records: pd.DataFrame) -> Dict[str, alt.TopLevelMixin]:
    """The dashboard's charts by PDF section title, skipping empty ones."""
    charts: Dict[str, alt.TopLevelMixin] = {}
    if pareto:
        charts["Pareto Analizi"] = pareto_chart(pareto)
    distribution = category_distribution(records)
    if distribution:
        charts["Kabahat Dağılımı"] = category_pie(distribution)
    trend = monthly_trend(records)
    if trend:
        charts["Aylık Trend"] = monthly_trend_chart(trend)
    return charts
