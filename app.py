import altair as alt
import pandas as pd
import streamlit as st
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Optional

from core.calculations import category_distribution, category_stats, compute_summary, format_date_span, monthly_trend
from core.charts import category_pie, monthly_trend_chart, pareto_chart
from core.config import configure_logging, load_settings
from core.data import VarakaCoordinator, prepare_context
from core.errors import VarakaError, error_message
from core.export import build_dashboard_report, build_table_pdf
from core.export_queue import ExportQueue
from core.filters import SortField, category_options, normalize_filters, sort_records, toggle_sort
from core.importer import import_excel, records_to_excel
from core.metrics_details import TABLE_COLUMNS, TABLE_LABELS, penalty_badges
from core.store import SqlRecordStore
from core.utils import format_count, format_pct, format_try

alt.data_transformers.disable_max_rows()
settings = load_settings()
configure_logging(settings)


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e5e5;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #737373;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #171717;}
        .card {border: 1px solid #e5e5e5;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #171717;margin-bottom: 8px;}
        .plate-rank {font-size: 1.6rem;font-weight: 700;color: #0066FF;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f5f5f5;border: 1px solid #e5e5e5;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #404040;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def render_page_header(title: str, breadcrumb: str, subtitle: str = ""):
    inject_base_styles()
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
        if subtitle:
            st.caption(subtitle)
    with c2:
        if st.button("Yenile", use_container_width=True):
            coordinator.refetch()
            st.rerun()


# ---------- Shared resources ----------
@st.cache_resource
def get_coordinator() -> VarakaCoordinator:
    store = SqlRecordStore.from_settings(settings)
    store.ensure_table()
    coord = VarakaCoordinator(store, debounce_seconds=settings.debounce_seconds)
    coord.start()
    return coord


@st.cache_resource
def get_export_queue() -> ExportQueue:
    return ExportQueue(Path(settings.report_dir))


def render_upload(expanded: bool = False):
    # set before the rerun that follows an import
    message = st.session_state.pop("_import_message", None)
    if message:
        st.success(message)
    with st.expander("Excel dosyası yükle", expanded=expanded):
        uploaded = st.file_uploader("Varaka listesi (.xlsx)", type=["xlsx"])
        replace = st.checkbox("Mevcut kayıtları sil ve yeniden yükle", value=False)
        if uploaded is not None and st.button("Yükle"):
            try:
                result = import_excel(uploaded.getvalue(), coordinator.store, replace=replace)
            except VarakaError as exc:
                st.error(error_message(exc))
                return
            coordinator.refetch()
            st.session_state["_import_message"] = f"{result.rows_imported} kayıt yüklendi ({result.rows_skipped} satır atlandı)."
            st.rerun()


@st.fragment(run_every=settings.poll_seconds)
def watch_for_changes():
    """Rerun the page once the coordinator publishes a newer snapshot."""
    current = coordinator.state
    stamp = current.data.fetched_at if current.data is not None else current.error
    seen = st.session_state.setdefault("_seen_snapshot", stamp)
    if stamp != seen:
        st.session_state["_seen_snapshot"] = stamp
        st.rerun(scope="app")


# ---------- UI setup ----------
st.set_page_config(page_title="Varakalar Dashboard", layout="wide")
inject_base_styles()
coordinator = get_coordinator()
export_queue = get_export_queue()
watch_for_changes()

state = coordinator.state
if state.data is None:
    st.title("Varakalar Dashboard")
    if state.loading:
        with st.spinner("Veriler yükleniyor..."):
            coordinator.wait_idle(timeout=30)
        st.rerun()
    st.error(state.error or "Veriler yüklenemedi.")
    if st.button("Tekrar dene"):
        coordinator.refetch()
        st.rerun()
    render_upload(expanded=True)
    st.stop()

snapshot = state.data
records = snapshot.records

with st.sidebar:
    st.markdown("### Menü")
    nav_choice = st.radio("Menü", ["Dashboard", "Detaylı Arama"], index=0, label_visibility="collapsed")
    st.markdown("---")
    st.caption(f"Son güncelleme: {snapshot.fetched_at.astimezone():%d.%m.%Y %H:%M:%S}")
    st.caption(f"Toplam kayıt: {format_count(snapshot.summary.count)}")
    if state.loading:
        st.caption("Güncelleniyor...")


def render_kpi_tiles():
    summary = snapshot.summary
    cols = st.columns(4)
    cols[0].metric("Toplam Varaka", format_count(summary.count))
    cols[1].metric("Toplam Ceza Tutarı", format_try(summary.total))
    cols[2].metric("Ortalama Ceza", format_try(summary.average), help="Toplam tutar / kayıt sayısı (yukarı yuvarlanır).")
    cols[3].metric("Men / Detaylı Ceza", format_count(len(snapshot.men_records)))

    stats = category_stats(records)
    cols = st.columns(4)
    cols[0].metric(
        "En yaygın kabahat",
        format_count(stats.most_common_count),
        delta=stats.most_common or "-",
        delta_color="off",
    )
    cols[1].metric("Farklı Kabahat Türü", format_count(stats.distinct))
    cols[2].metric("Kabahat Sayısı", format_count(stats.total))
    cols[3].metric("Ortalama Kabahat Sayısı", format_count(stats.average_per_category), help="Kabahat sayısı / farklı kabahat türü.")


def render_top_plates():
    if not snapshot.top_plates:
        st.info("Plaka verisi bulunamadı.")
        return
    cols = st.columns(len(snapshot.top_plates))
    for rank, (col, plate) in enumerate(zip(cols, snapshot.top_plates), start=1):
        with col:
            st.markdown(f"<div class='plate-rank'>#{rank}</div>", unsafe_allow_html=True)
            st.metric(plate.plate, format_try(plate.total), delta=f"{plate.count} ceza", delta_color="off")
            st.caption(f"Ortalama: {format_try(plate.average)}")


def render_dashboard_page():
    render_page_header("Dashboard", "Varakalar / Dashboard", format_date_span(records))
    with card("Özet"):
        render_kpi_tiles()

    with card("Pareto Analizi"):
        if snapshot.pareto:
            st.altair_chart(pareto_chart(snapshot.pareto), use_container_width=True)
            table = pd.DataFrame(
                {
                    "Kabahat": [e.category for e in snapshot.pareto],
                    "Adet": [e.count for e in snapshot.pareto],
                    "Oran": [format_pct(e.percentage) for e in snapshot.pareto],
                    "Kümülatif": [format_pct(e.cumulative_percentage) for e in snapshot.pareto],
                }
            )
            st.dataframe(table, hide_index=True, use_container_width=True)
        else:
            st.info("Pareto için yeterli veri yok.")

    chart_cols = st.columns(2)
    with chart_cols[0]:
        with card("Kabahat Dağılımı"):
            distribution = category_distribution(records)
            if distribution:
                st.altair_chart(category_pie(distribution), use_container_width=True)
    with chart_cols[1]:
        with card("Aylık Trend"):
            trend = monthly_trend(records)
            if trend:
                st.altair_chart(monthly_trend_chart(trend), use_container_width=True)
            else:
                st.info("Tarih bilgisi bulunamadı.")

    with card("En Çok Ceza Alan Plakalar"):
        render_top_plates()

    with card("Rapor"):
        if st.button("Dashboard PDF hazırla"):
            export_queue.submit("dashboard", lambda snap=snapshot: build_dashboard_report(snap))
        render_export_jobs()
    render_upload()


def render_export_jobs():
    if export_queue.busy:
        st.caption("PDF hazırlanıyor...")
    for job in reversed(export_queue.recent()):
        if job.status == "completed" and job.result_path:
            path = Path(job.result_path)
            st.download_button(f"{path.name} indir", data=path.read_bytes(), file_name=path.name, mime="application/pdf", key=f"dl-{job.id}")
        elif job.status == "failed":
            st.error(f"PDF oluşturulamadı: {job.error}")


def render_details_page():
    render_page_header("Detaylı Arama", "Varakalar / Detaylı Arama")

    with card("Filtreler"):
        c1, c2, c3 = st.columns([3, 2, 2])
        search = c1.text_input("Ara (plaka, isim, kabahat)", "")
        category = c2.selectbox("Kabahat", ["Tümü"] + category_options(records))
        kind_label = c3.selectbox("Ceza türü", ["Tümü", "Para cezası", "Men cezası"])
        d1, d2, d3 = st.columns([2, 2, 3])
        use_dates = d3.checkbox("Tarih aralığı uygula", value=False)
        start: Optional[date] = d1.date_input("Başlangıç", value=None, disabled=not use_dates)
        end: Optional[date] = d2.date_input("Bitiş", value=None, disabled=not use_dates)
        men_only = d3.toggle("Sadece men / detaylı cezalar", value=False)

    filters = normalize_filters(
        {
            "search": search,
            "category": "" if category == "Tümü" else category,
            "penalty_kind": {"Para cezası": "para", "Men cezası": "men"}.get(kind_label, ""),
            "date_start": start if use_dates else None,
            "date_end": end if use_dates else None,
            "men_only": men_only,
        }
    )
    ctx = prepare_context(filters, snapshot)

    s1, s2 = st.columns([3, 1])
    field = s1.selectbox(
        "Sırala",
        list(SortField),
        format_func=lambda f: TABLE_LABELS.get(f.value, f.value),
        index=list(SortField).index(SortField.TARIH),
    )
    if s2.button("Sıralamayı değiştir") or st.session_state.get("sort") is None or st.session_state["sort"].field != field:
        st.session_state["sort"] = toggle_sort(st.session_state.get("sort"), field)
    sort = st.session_state["sort"]
    view = sort_records(ctx["filtered_records"], sort)
    summary = compute_summary(view)

    st.markdown(
        "<div class='chip-row'>"
        + "".join(
            f"<span class='chip'>{txt}</span>"
            for txt in [
                f"{format_count(len(view))} / {format_count(len(records))} kayıt",
                f"Toplam: {format_try(summary.total)}",
                f"Sıralama: {TABLE_LABELS.get(sort.field.value)} ({'artan' if sort.direction.value == 'asc' else 'azalan'})",
            ]
        )
        + "</div>",
        unsafe_allow_html=True,
    )

    if view.empty:
        st.info("Seçili filtrelerle eşleşen kayıt yok.")
    else:
        table = view[["sira_no", "tarih", "plaka_no", "isim", "kabahat", "gun", "mevsim"]].copy()
        table.insert(5, "ceza", penalty_badges(view))
        st.dataframe(table.rename(columns=TABLE_LABELS), hide_index=True, use_container_width=True)

    e1, e2, e3 = st.columns(3)
    e1.download_button(
        "CSV indir",
        data=view.to_csv(index=False).encode("utf-8-sig"),
        file_name="varakalar.csv",
        mime="text/csv",
        disabled=view.empty,
    )
    e2.download_button(
        "Excel indir",
        data=records_to_excel(view, TABLE_COLUMNS) if not view.empty else b"",
        file_name="varakalar.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        disabled=view.empty,
    )
    if e3.button("PDF hazırla", disabled=view.empty or export_queue.busy):
        export_queue.submit("table", lambda: build_table_pdf(view, summary))
    render_export_jobs()


if nav_choice == "Dashboard":
    render_dashboard_page()
else:
    render_details_page()
