from __future__ import annotations

import pandas as pd

from core.filters import (
    SortConfig,
    SortDirection,
    SortField,
    VarakaFilters,
    apply_filters,
    category_options,
    is_men_penalty,
    is_men_related,
    normalize_filters,
    parse_sort,
    sort_records,
    toggle_sort,
)


def _ids(df: pd.DataFrame):
    return df["id"].tolist()


def test_inactive_filters_return_records_unchanged(records):
    assert apply_filters(records, VarakaFilters()) is records


def test_search_is_case_insensitive_over_plate_name_and_category(records):
    assert _ids(apply_filters(records, normalize_filters({"search": "34ab"}))) == [1, 4]
    assert _ids(apply_filters(records, normalize_filters({"search": "AYŞE"}))) == [2]
    assert _ids(apply_filters(records, normalize_filters({"search": "park"}))) == [4, 5]


def test_search_treats_input_literally(records):
    assert apply_filters(records, normalize_filters({"search": "("})).empty


def test_category_filter_is_exact(records):
    assert _ids(apply_filters(records, normalize_filters({"category": "Park İhlali"}))) == [4, 5]
    assert apply_filters(records, normalize_filters({"category": "Park"})).empty


def test_penalty_kind_filter(records):
    assert _ids(apply_filters(records, normalize_filters({"penalty_kind": "para"}))) == [1, 2, 3]
    assert _ids(apply_filters(records, normalize_filters({"penalty_kind": "men"}))) == [4, 5]


def test_zero_amount_counts_as_men_penalty(records):
    odd = records.assign(ceza_turu="para")
    assert is_men_penalty(odd).tolist() == [False, False, False, True, True]


def test_date_range_is_inclusive(records):
    f = normalize_filters({"date_start": "2024-02-10", "date_end": "2024-03-20"})
    assert _ids(apply_filters(records, f)) == [2, 3, 4]


def test_half_open_date_range_is_ignored(records):
    f = normalize_filters({"date_start": "2024-02-10"})
    assert not f.date_range_active
    assert not f.is_active
    assert len(apply_filters(records, f)) == 5


def test_unparseable_dates_are_excluded_only_under_a_range(records):
    broken = records.copy()
    broken.loc[2, "tarih"] = "bozuk"
    broken.loc[3, "tarih"] = ""
    f = normalize_filters({"date_start": "2024-01-01", "date_end": "2024-12-31"})
    assert _ids(apply_filters(broken, f)) == [1, 2, 5]
    assert len(apply_filters(broken, normalize_filters({"search": "a"}))) > 0


def test_men_toggle_keeps_men_and_detailed_records(records):
    detailed = records.copy()
    detailed.loc[0, "ceza_detay"] = "ehliyete el konuldu"
    assert is_men_related(detailed).tolist() == [True, False, False, True, True]
    assert _ids(apply_filters(detailed, normalize_filters({"men_only": True}))) == [1, 4, 5]


def test_filters_combine_with_and(records):
    f = normalize_filters({"category": "Hız İhlali", "date_start": "2024-02-01", "date_end": "2024-12-31"})
    assert _ids(apply_filters(records, f)) == [2, 3]
    f = normalize_filters({"search": "34AB123", "penalty_kind": "men"})
    assert _ids(apply_filters(records, f)) == [4]


def test_normalize_filters_cleans_raw_input():
    f = normalize_filters(
        {"search": "  34 ", "category": None, "penalty_kind": "Suspension", "men_only": "true", "date_start": "2024-01-01", "date_end": "x"}
    )
    assert f.search == "34"
    assert f.category == ""
    assert f.penalty_kind == "men"
    assert f.men_only is True
    assert f.date_start == pd.Timestamp("2024-01-01")
    assert f.date_end is None
    assert normalize_filters(None) == VarakaFilters()


def test_category_options_are_sorted_and_distinct(records):
    assert category_options(records) == ["Hız İhlali", "Park İhlali"]


def test_sort_is_stable_in_both_directions(records):
    asc = sort_records(records, SortConfig(SortField.KABAHAT))
    assert _ids(asc) == [1, 2, 3, 4, 5]
    desc = sort_records(records, SortConfig(SortField.KABAHAT, SortDirection.DESC))
    assert _ids(desc) == [4, 5, 1, 2, 3]
    by_amount = sort_records(records, SortConfig(SortField.CEZA_MIKTARI, SortDirection.DESC))
    assert _ids(by_amount) == [1, 2, 3, 4, 5]


def test_sort_puts_missing_values_last(records):
    gaps = records.copy()
    gaps["sira_no"] = pd.array([3, None, 1, None, 2], dtype="Int64")
    assert _ids(sort_records(gaps, SortConfig(SortField.SIRA_NO))) == [3, 5, 1, 2, 4]
    assert _ids(sort_records(gaps, SortConfig(SortField.SIRA_NO, SortDirection.DESC))) == [1, 5, 3, 2, 4]


def test_sort_by_date_uses_parsed_dates(records):
    shuffled = records.iloc[[4, 0, 3, 1, 2]].reset_index(drop=True)
    assert _ids(sort_records(shuffled, SortConfig(SortField.TARIH))) == [1, 2, 3, 4, 5]


def test_toggle_sort_flips_same_field_and_resets_new_field():
    first = toggle_sort(None, SortField.TARIH)
    assert first == SortConfig(SortField.TARIH, SortDirection.ASC)
    second = toggle_sort(first, SortField.TARIH)
    assert second.direction == SortDirection.DESC
    assert toggle_sort(second, SortField.ISIM) == SortConfig(SortField.ISIM, SortDirection.ASC)


def test_parse_sort_rejects_unknown_fields():
    assert parse_sort("unknown") is None
    assert parse_sort(None) is None
    assert parse_sort("isim", "DESC") == SortConfig(SortField.ISIM, SortDirection.DESC)
