from __future__ import annotations

from core.calculations import category_distribution, compute_pareto, compute_summary, compute_top_plates, monthly_trend
from core.charts import category_pie, dashboard_charts, monthly_trend_chart, pareto_chart, to_png, to_vega_spec
from core.export import build_dashboard_pdf, chart_images
from core.records import empty_records


def test_pareto_spec_layers_bars_line_and_rule(records):
    spec = to_vega_spec(pareto_chart(compute_pareto(records)))
    assert spec["resolve"]["scale"]["y"] == "independent"
    assert len(spec["layer"]) == 2
    assert spec["title"] == "Pareto Analizi"


def test_pie_and_trend_specs(records):
    pie = to_vega_spec(category_pie(category_distribution(records)))
    assert pie["mark"]["type"] == "arc"
    trend = to_vega_spec(monthly_trend_chart(monthly_trend(records)))
    assert len(trend["layer"]) == 2


def test_long_category_labels_are_shortened(records):
    long_name = "Çok uzun bir kabahat açıklaması gerçekten çok uzun"
    spec = to_vega_spec(category_pie({long_name: 3}))
    values = next(iter(spec["datasets"].values()))
    assert values[0]["label"].endswith("...")
    assert values[0]["kabahat"] == long_name


def test_charts_rasterize_into_dashboard_pdf(records):
    png = to_png(pareto_chart(compute_pareto(records)), scale=1.0)
    assert png.startswith(b"\x89PNG")
    images = chart_images({"Kabahat Dağılımı": category_pie(category_distribution(records))})
    pdf = build_dashboard_pdf(compute_summary(records), compute_pareto(records), compute_top_plates(records), images=images)
    assert pdf.startswith(b"%PDF")


def test_dashboard_charts_cover_pareto_pie_and_trend(records):
    charts = dashboard_charts(compute_pareto(records), records)
    assert list(charts) == ["Pareto Analizi", "Kabahat Dağılımı", "Aylık Trend"]
    assert dashboard_charts([], empty_records()) == {}
