from __future__ import annotations

import io
from datetime import datetime

import pandas as pd
import pytest

from conftest import FakeStore
from core.errors import ImportFailure
from core.importer import (
    cell_amount,
    cell_date,
    cell_kind,
    fold_header,
    import_excel,
    read_excel_records,
    records_to_excel,
    season_for,
)


def _workbook(rows) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, header=False, index=False)
    return buf.getvalue()


HEADER = ["Sıra No", "Tarih", "Plaka No", "İsim", "Kabahat", "Ceza Miktarı", "Ceza Türü", "Ceza Detay"]
WORKBOOK_ROWS = [
    ["Varaka Listesi", None, None, None, None, None, None, None],
    HEADER,
    [1, "05.01.2024", "34AB123", "Ali Yılmaz", "Hız İhlali", "1.500", None, None],
    [2, datetime(2024, 3, 20), "06CD456", "Ayşe Kaya", "Park İhlali", 0, "Men Cezası", "3 gün men"],
    [3, "2024-07-01", None, "Kimsesiz", "Hız İhlali", 100, None, None],
]


def test_read_excel_records_maps_headers_and_derives_fields():
    df = read_excel_records(_workbook(WORKBOOK_ROWS))
    assert df["plaka_no"].tolist() == ["34AB123", "06CD456"]
    assert df["tarih"].tolist() == ["2024-01-05", "2024-03-20"]
    assert df["ceza_miktari"].tolist() == [1500.0, 0.0]
    assert df["ceza_turu"].tolist() == ["para", "men"]
    assert df["gun"].tolist() == ["Cuma", "Çarşamba"]
    assert df["mevsim"].tolist() == ["Kış", "İlkbahar"]
    assert df["sira_no"].tolist() == [1, 2]
    assert df["ceza_detay"].tolist() == ["", "3 gün men"]


def test_import_excel_writes_store_and_counts_skips():
    store = FakeStore([{"plaka_no": "eski", "kabahat": "x"}])
    result = import_excel(_workbook(WORKBOOK_ROWS), store, replace=True)
    assert (result.rows_read, result.rows_imported, result.rows_skipped) == (3, 2, 1)
    assert [r["plaka_no"] for r in store.rows] == ["34AB123", "06CD456"]


def test_import_appends_without_replace():
    store = FakeStore([{"plaka_no": "eski", "kabahat": "x"}])
    import_excel(_workbook(WORKBOOK_ROWS), store)
    assert len(store.rows) == 3


def test_missing_required_headers_fail():
    rows = [["Tarih", "İsim"], ["2024-01-01", "Ali"]]
    with pytest.raises(ImportFailure):
        read_excel_records(_workbook(rows))


def test_sheet_without_valid_rows_fails():
    rows = [HEADER, [1, "2024-01-01", None, "Ali", None, 100, None, None]]
    with pytest.raises(ImportFailure):
        import_excel(_workbook(rows), FakeStore())


def test_non_excel_bytes_fail():
    with pytest.raises(ImportFailure):
        read_excel_records(b"not a workbook")


def test_sequence_numbers_are_filled_when_absent():
    rows = [["Plaka", "Kabahat", "Tutar"], ["34AB123", "Hız İhlali", 200], ["06CD456", "Park İhlali", 0]]
    df = read_excel_records(_workbook(rows))
    assert df["sira_no"].tolist() == [1, 2]
    assert df["ceza_turu"].tolist() == ["para", "men"]
    assert df["gun"].tolist() == ["", ""]


@pytest.mark.parametrize(
    "value, expected",
    [
        ("31.12.2023", "2023-12-31"),
        ("1/2/2024", "2024-02-01"),
        ("2024-02-01", "2024-02-01"),
        ("31.02.2024", ""),
        ("", ""),
        (None, ""),
        (pd.Timestamp("2024-05-06 13:00"), "2024-05-06"),
    ],
)
def test_cell_date(value, expected):
    assert cell_date(value) == expected


def test_cell_amount_and_kind():
    assert cell_amount("1.250,50 TL") == "1250.50"
    assert cell_amount("₺2.000") == "2000"
    assert cell_amount("12.5") == "12.5"
    assert cell_amount(300) == 300
    assert cell_kind("Para Cezası") == "para"
    assert cell_kind("MEN") == "men"
    assert cell_kind("uyarı") == ""


def test_headers_fold_turkish_capitals():
    assert fold_header("SIRA NO") == "sıra no"
    assert fold_header(" İsim: ") == "isim"
    assert fold_header("Ceza_Miktarı") == "ceza miktarı"


def test_seasons():
    assert season_for(pd.Timestamp("2024-01-10")) == "Kış"
    assert season_for(pd.Timestamp("2024-07-10")) == "Yaz"
    assert season_for(pd.Timestamp("2024-10-10")) == "Sonbahar"


def test_records_to_excel_round_trips_through_reader(records):
    data = records_to_excel(records, ["sira_no", "tarih", "plaka_no", "isim", "kabahat", "ceza_miktari"])
    df = read_excel_records(data)
    assert df["plaka_no"].tolist() == records["plaka_no"].tolist()
