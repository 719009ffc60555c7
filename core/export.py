from __future__ import annotations

import io
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd
from fpdf import FPDF

from core.calculations import ParetoEntry, PlateEntry, Summary, format_date_span
from core.charts import dashboard_charts, to_png
from core.errors import ExportFailure, error_message
from core.utils import round_half_up


logger = logging.getLogger(__name__)

FONT_CANDIDATES = [
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/dejavu/DejaVuSans.ttf"),
    Path("/Library/Fonts/DejaVuSans.ttf"),
    Path(r"C:\Windows\Fonts\DejaVuSans.ttf"),
]
ENV_FONT_PATH = "VARAKA_PDF_FONT"

# Core PDF fonts are Latin-1 only.
_LATIN1_FALLBACK = str.maketrans({"ş": "s", "Ş": "S", "ğ": "g", "Ğ": "G", "ı": "i", "İ": "I", "₺": "TL", "—": "-", "…": "..."})

# (column, header, width mm) for the landscape A4 table.
TABLE_LAYOUT = [
    ("sira_no", "Sıra", 14),
    ("tarih", "Tarih", 24),
    ("plaka_no", "Plaka", 26),
    ("isim", "İsim", 48),
    ("kabahat", "Kabahat", 86),
    ("ceza", "Ceza", 44),
    ("gun", "Gün", 22),
    ("mevsim", "Mevsim", 13),
]


def _font_path() -> Optional[Path]:
    env = os.getenv(ENV_FONT_PATH, "").strip()
    candidates = ([Path(env)] if env else []) + FONT_CANDIDATES
    for c in candidates:
        if c.exists():
            return c
    return None


def pdf_amount(value: object) -> str:
    amount = int(round_half_up(value) or 0)
    return f"{amount:,}".replace(",", ".") + " TL"


def _tr_date(value: object) -> str:
    ts = pd.to_datetime(value, errors="coerce", format="ISO8601") if value else pd.NaT
    return "" if pd.isna(ts) else ts.strftime("%d.%m.%Y")


class VarakaPDF(FPDF):
    def __init__(self, title: str, subtitle: str = "", orientation: str = "L"):
        super().__init__(orientation=orientation, unit="mm", format="A4")
        self.report_title = title
        self.report_subtitle = subtitle
        self.unicode_font = False
        font = _font_path()
        if font is not None:
            self.add_font("DejaVu", "", str(font))
            self.add_font("DejaVu", "B", str(font))
            self.base_family = "DejaVu"
            self.unicode_font = True
        else:
            self.base_family = "Helvetica"
        self.set_auto_page_break(auto=True, margin=15)
        self.set_title(self.clean(title))

    def clean(self, value: object) -> str:
        s = "" if value is None else str(value)
        if self.unicode_font:
            return s
        return s.translate(_LATIN1_FALLBACK).encode("latin-1", "replace").decode("latin-1")

    def header(self) -> None:
        self.set_font(self.base_family, "B", 13)
        self.cell(0, 8, self.clean(self.report_title), new_x="LMARGIN", new_y="NEXT")
        if self.report_subtitle:
            self.set_font(self.base_family, "", 9)
            self.set_text_color(100, 100, 100)
            self.cell(0, 5, self.clean(self.report_subtitle), new_x="LMARGIN", new_y="NEXT")
            self.set_text_color(0, 0, 0)
        self.ln(2)

    def footer(self) -> None:
        self.set_y(-12)
        self.set_font(self.base_family, "", 8)
        self.set_text_color(120, 120, 120)
        self.cell(0, 8, self.clean(f"Sayfa {self.page_no()} / {{nb}}"), align="C")
        self.set_text_color(0, 0, 0)

    def fit(self, value: object, width: float) -> str:
        s = self.clean(value)
        if self.get_string_width(s) <= width - 2:
            return s
        while s and self.get_string_width(s + "...") > width - 2:
            s = s[:-1]
        return s + "..."


def _table_header(pdf: VarakaPDF) -> None:
    pdf.set_font(pdf.base_family, "B", 9)
    pdf.set_fill_color(229, 229, 229)
    for _, label, width in TABLE_LAYOUT:
        pdf.cell(width, 7, pdf.clean(label), border=1, fill=True)
    pdf.ln()
    pdf.set_font(pdf.base_family, "", 8)


def build_table_pdf(records: pd.DataFrame, summary: Summary, *, title: str = "Varaka Detay Listesi", filter_text: str = "") -> bytes:
    """Render the given (already filtered) records as a paginated table."""
    from core.metrics_details import penalty_badges

    try:
        stamp = datetime.now().strftime("%d.%m.%Y %H:%M")
        subtitle = f"Oluşturma: {stamp} | Kayıt: {summary.count} | Toplam ceza: {pdf_amount(summary.total)}"
        if filter_text:
            subtitle += f" | Filtre: {filter_text}"
        pdf = VarakaPDF(title, subtitle)
        pdf.add_page()
        _table_header(pdf)

        rows = records.copy()
        rows["ceza"] = penalty_badges(records) if not records.empty else pd.Series(dtype=object)
        row_h = 6
        for row in rows.to_dict(orient="records"):
            if pdf.get_y() + row_h > pdf.page_break_trigger:
                pdf.add_page()
                _table_header(pdf)
            for col, _, width in TABLE_LAYOUT:
                value = row.get(col)
                if col == "tarih":
                    value = _tr_date(value)
                elif col == "sira_no" and (value is None or pd.isna(value)):
                    value = ""
                pdf.cell(width, row_h, pdf.fit(value, width), border=1)
            pdf.ln()
        if records.empty:
            pdf.cell(0, 8, pdf.clean("Seçili filtrelerle eşleşen kayıt yok."), new_x="LMARGIN", new_y="NEXT")
        return bytes(pdf.output())
    except ExportFailure:
        raise
    except Exception as exc:
        raise ExportFailure(f"PDF oluşturulamadı: {error_message(exc)}") from exc


def build_dashboard_pdf(
    summary: Summary,
    pareto: Sequence[ParetoEntry],
    top_plates: Sequence[PlateEntry],
    *,
    date_range: str = "",
    images: Optional[Dict[str, bytes]] = None,
) -> bytes:
    """KPI block, Pareto and top plates tables, then each chart image on its own page."""
    try:
        pdf = VarakaPDF("Varakalar Dashboard", date_range, orientation="P")
        pdf.add_page()
        pdf.set_font(pdf.base_family, "B", 11)
        pdf.cell(0, 7, pdf.clean("Özet"), new_x="LMARGIN", new_y="NEXT")
        pdf.set_font(pdf.base_family, "", 10)
        for label, value in [
            ("Toplam varaka", f"{summary.count}"),
            ("Toplam ceza tutarı", pdf_amount(summary.total)),
            ("Ortalama ceza", pdf_amount(summary.average)),
        ]:
            pdf.cell(60, 6, pdf.clean(label))
            pdf.cell(0, 6, pdf.clean(value), new_x="LMARGIN", new_y="NEXT")
        pdf.ln(3)

        pdf.set_font(pdf.base_family, "B", 11)
        pdf.cell(0, 7, pdf.clean("Pareto Analizi (ilk 10)"), new_x="LMARGIN", new_y="NEXT")
        pdf.set_font(pdf.base_family, "", 9)
        for entry in pareto:
            pdf.cell(110, 6, pdf.fit(entry.category, 110), border=1)
            pdf.cell(20, 6, str(entry.count), border=1, align="R")
            pdf.cell(25, 6, f"%{entry.percentage:.1f}", border=1, align="R")
            pdf.cell(25, 6, f"%{entry.cumulative_percentage:.1f}", border=1, align="R", new_x="LMARGIN", new_y="NEXT")
        pdf.ln(3)

        pdf.set_font(pdf.base_family, "B", 11)
        pdf.cell(0, 7, pdf.clean("En Çok Ceza Alan Plakalar"), new_x="LMARGIN", new_y="NEXT")
        pdf.set_font(pdf.base_family, "", 9)
        for plate in top_plates:
            pdf.cell(40, 6, pdf.fit(plate.plate, 40), border=1)
            pdf.cell(45, 6, pdf.clean(pdf_amount(plate.total)), border=1, align="R")
            pdf.cell(25, 6, pdf.clean(f"{plate.count} ceza"), border=1, align="R")
            pdf.cell(45, 6, pdf.clean(f"ort. {pdf_amount(plate.average)}"), border=1, align="R", new_x="LMARGIN", new_y="NEXT")

        for name, png in (images or {}).items():
            pdf.add_page()
            pdf.set_font(pdf.base_family, "B", 11)
            pdf.cell(0, 7, pdf.clean(name), new_x="LMARGIN", new_y="NEXT")
            pdf.image(io.BytesIO(png), x=pdf.l_margin, w=pdf.epw)
        return bytes(pdf.output())
    except ExportFailure:
        raise
    except Exception as exc:
        raise ExportFailure(f"PDF oluşturulamadı: {error_message(exc)}") from exc


def save_pdf(pdf_bytes: bytes, path: Path) -> Path:
    """Write atomically: the target only appears once the bytes are complete."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(pdf_bytes)
        os.replace(tmp, path)
    except OSError as exc:
        Path(tmp).unlink(missing_ok=True)
        raise ExportFailure(f"PDF kaydedilemedi: {error_message(exc)}") from exc
    return path


def generate_pdf(builder: Callable[[], bytes], output_dir: Path, filename: Optional[str] = None) -> Path:
    """Build the PDF bytes first, then persist them; a failed build writes nothing."""
    pdf_bytes = builder()
    fname = filename or f"varakalar-{datetime.now():%Y%m%d-%H%M%S}.pdf"
    path = save_pdf(pdf_bytes, output_dir / fname)
    logger.info("saved %s (%d bytes)", path, len(pdf_bytes))
    return path


def chart_images(charts: Dict[str, object]) -> Dict[str, bytes]:
    return {name: to_png(chart) for name, chart in charts.items()}


def build_dashboard_report(snapshot, *, with_charts: bool = True) -> bytes:
    """Dashboard PDF for a snapshot; charts are rasterized in the calling thread."""
    images = chart_images(dashboard_charts(snapshot.pareto, snapshot.records)) if with_charts else {}
    return build_dashboard_pdf(
        snapshot.summary,
        snapshot.pareto,
        snapshot.top_plates,
        date_range=format_date_span(snapshot.records),
        images=images,
    )


__all__: List[str] = [
    "VarakaPDF",
    "build_dashboard_pdf",
    "build_dashboard_report",
    "build_table_pdf",
    "chart_images",
    "generate_pdf",
    "pdf_amount",
    "save_pdf",
]
