from __future__ import annotations

import json
from pathlib import Path

import pytest

from statmap.models import IndicatorDataPoint
from statmap.processing import (
    available_years,
    calculate_global_extent,
    load_indicator_dataset,
    process_region_data,
    unmatched_codes,
    year_bounds,
)
from statmap.regions import load_region_table


@pytest.fixture
def table():
    return load_region_table()


def test_selected_year_keeps_exact_matches_only(records, table) -> None:
    data = process_region_data(records, 2020, False, table)
    assert set(data) == {"USA", "FRA"}
    assert data["USA"].value == 12.0
    assert data["USA"].name == "United States of America"
    assert data["USA"].unit == "%"
    assert data["USA"].source == "Survey A"
    assert data["FRA"].year == 2020


def test_single_record_round_trip(table) -> None:
    records = [IndicatorDataPoint(m49_code=840, year=2020, value=12.5, unit="%")]
    data = process_region_data(records, 2020, False, table)
    assert list(data) == ["USA"]
    assert data["USA"].value == 12.5
    assert data["USA"].unit == "%"


def test_latest_mode_takes_most_recent_non_null_value(records, table) -> None:
    data = process_region_data(records, None, True, table)
    assert data["USA"].value == 12.0
    assert data["USA"].year == 2020
    # the 2021 France record is null, so 2020 is the latest usable one
    assert data["FRA"].value == 30.5
    assert data["BRA"].value == 55.0


def test_unknown_codes_and_nulls_never_reach_output(records, table) -> None:
    data = process_region_data(records, 2021, False, table)
    assert set(data) == {"BRA"}


def test_duplicates_prefer_highest_pid_then_later_record(table) -> None:
    records = [
        IndicatorDataPoint(m49_code=840, year=2020, value=1.0, pid=None),
        IndicatorDataPoint(m49_code=840, year=2020, value=2.0, pid=3),
        IndicatorDataPoint(m49_code=840, year=2020, value=3.0, pid=1),
        IndicatorDataPoint(m49_code=250, year=2020, value=4.0),
        IndicatorDataPoint(m49_code=250, year=2020, value=5.0),
    ]
    data = process_region_data(records, 2020, False, table)
    assert data["USA"].value == 2.0
    assert data["FRA"].value == 5.0


def test_m49_feature_ids(records, table) -> None:
    data = process_region_data(records, 2020, False, table, feature_id="m49")
    assert set(data) == {"840", "250"}


def test_global_extent_spans_all_years(records) -> None:
    assert calculate_global_extent(records) == (10.0, 70.0)
    assert calculate_global_extent([]) == (None, None)


def test_global_extent_does_not_depend_on_year_selection(records, table) -> None:
    before = calculate_global_extent(records)
    process_region_data(records, 2019, False, table)
    process_region_data(records, None, True, table)
    assert calculate_global_extent(records) == before


def test_years_and_coverage(records, table) -> None:
    assert available_years(records) == [2019, 2020, 2021]
    assert year_bounds(records) == (2019, 2021)
    assert year_bounds([]) is None
    assert unmatched_codes(records, table) == ["999"]


def test_load_json_dataset_with_indicator(tmp_path: Path) -> None:
    path = tmp_path / "data.json"
    path.write_text(
        json.dumps(
            {
                "indicator": {
                    "name": "Forest cover",
                    "measure_scale": "ratio_index",
                    "sources": [{"name": "FAO", "url": "https://fao.org"}],
                },
                "data": [
                    {"geo_entity_id": 840, "date_start": "2020", "value": "33.9", "unit": "%", "pid": 4},
                    {"m49_code": "250", "year": 2020, "value": None},
                ],
            }
        ),
        encoding="utf-8",
    )
    dataset = load_indicator_dataset(path)
    assert dataset.indicator is not None
    assert dataset.indicator.name == "Forest cover"
    assert dataset.indicator.sources[0].name == "FAO"
    first, second = dataset.records
    assert first.year == 2020
    assert first.value == 33.9
    assert first.pid == 4
    assert second.value is None


def test_load_csv_dataset(tmp_path: Path) -> None:
    path = tmp_path / "data.csv"
    path.write_text("m49_code,year,value,unit\n840,2020,1.5,t\n76,2021,,t\n", encoding="utf-8")
    dataset = load_indicator_dataset(path)
    assert dataset.indicator is None
    assert [r.value for r in dataset.records] == [1.5, None]
    assert dataset.records[1].m49_code == "76"


def test_bad_record_reports_index(tmp_path: Path) -> None:
    path = tmp_path / "data.json"
    path.write_text(json.dumps([{"m49_code": 840, "year": "soon", "value": 1}]), encoding="utf-8")
    with pytest.raises(ValueError, match="record 0"):
        load_indicator_dataset(path)


def test_unsupported_suffix(tmp_path: Path) -> None:
    path = tmp_path / "data.xlsx"
    path.write_text("", encoding="utf-8")
    with pytest.raises(ValueError, match="Unsupported"):
        load_indicator_dataset(path)


def test_whole_number_float_codes_join(tmp_path: Path, table) -> None:
    path = tmp_path / "data.json"
    path.write_text(json.dumps([{"m49_code": 840.0, "year": 2020, "value": 3.5}]), encoding="utf-8")
    dataset = load_indicator_dataset(path)
    assert dataset.records[0].m49_code == 840
    assert set(process_region_data(dataset.records, 2020, False, table)) == {"USA"}


@pytest.mark.parametrize("code", [840.5, float("nan"), True])
def test_non_integral_codes_are_rejected(code) -> None:
    with pytest.raises(ValueError, match="m49_code"):
        IndicatorDataPoint.from_mapping({"m49_code": code, "year": 2020, "value": 1.0})
