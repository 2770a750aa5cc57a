"""Region data processing: time-slice selection, joins and global extent."""

from __future__ import annotations

import csv
import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from .models import Indicator, IndicatorDataPoint, RegionValue
from .regions import RegionCodeTable


_LOGGER = logging.getLogger("statmap.processing")


@dataclass(frozen=True, slots=True)
class IndicatorDataset:
    indicator: Indicator | None
    records: tuple[IndicatorDataPoint, ...]


def process_region_data(
    records: Sequence[IndicatorDataPoint],
    selected_year: int | None,
    latest: bool,
    table: RegionCodeTable,
    *,
    feature_id: str = "iso3",
) -> dict[str, RegionValue]:
    """Build the region value index for one time slice.

    Non-latest mode keeps records whose year equals `selected_year`; latest mode
    keeps the most recent non-null observation of each region. Null values and
    codes missing from `table` never reach the output. When several records
    compete for one region the highest `pid` wins, records without a pid rank
    below those with one, and remaining ties go to the later record.
    """
    chosen: dict[str, tuple[tuple[int, bool, int, int], IndicatorDataPoint]] = {}
    for position, record in enumerate(records):
        if record.value is None or not math.isfinite(record.value):
            continue
        if not latest and record.year != selected_year:
            continue
        key = table.feature_key(record.m49_code, feature_id)
        if key is None:
            continue
        rank = (
            record.year if latest else 0,
            record.pid is not None,
            record.pid if record.pid is not None else 0,
            position,
        )
        current = chosen.get(key)
        if current is None or rank > current[0]:
            chosen[key] = (rank, record)

    out: dict[str, RegionValue] = {}
    for key, (_, record) in chosen.items():
        out[key] = RegionValue(
            value=float(record.value),  # type: ignore[arg-type]
            name=table.name_for(record.m49_code) or key,
            year=record.year,
            unit=record.unit,
            source=record.source,
        )
    return out


def calculate_global_extent(
    records: Iterable[IndicatorDataPoint],
) -> tuple[float, float] | tuple[None, None]:
    """Return (min, max) over every non-null value of every year, or (None, None)."""
    lo: float | None = None
    hi: float | None = None
    for record in records:
        value = record.value
        if value is None or not math.isfinite(value):
            continue
        lo = value if lo is None else min(lo, value)
        hi = value if hi is None else max(hi, value)
    if lo is None or hi is None:
        return (None, None)
    return (lo, hi)


def available_years(records: Iterable[IndicatorDataPoint]) -> list[int]:
    return sorted({record.year for record in records})


def year_bounds(records: Iterable[IndicatorDataPoint]) -> tuple[int, int] | None:
    years = available_years(records)
    if not years:
        return None
    return (years[0], years[-1])


def unmatched_codes(records: Iterable[IndicatorDataPoint], table: RegionCodeTable) -> list[str]:
    """Codes with no entry in the region table, for coverage reporting."""
    missing = {str(record.m49_code) for record in records if table.lookup(record.m49_code) is None}
    return sorted(missing)


def load_indicator_dataset(path: Path) -> IndicatorDataset:
    """Load records (and optional indicator metadata) from a JSON or CSV file.

    JSON files hold either a list of records or an object with `data` and an
    optional `indicator` mapping. CSV files need `m49_code`, `year` (or
    `date_start`) and `value` columns; `unit`, `pid` and `source` are optional.
    """
    if not path.exists():
        raise FileNotFoundError(f"Indicator data file not found: {path}")
    suffix = path.suffix.casefold()
    if suffix == ".csv":
        return IndicatorDataset(indicator=None, records=tuple(_read_csv_records(path)))
    if suffix != ".json":
        raise ValueError(f"Unsupported indicator data format: {path.suffix or '<none>'} ({path})")

    payload = json.loads(path.read_text(encoding="utf-8"))
    indicator: Indicator | None = None
    if isinstance(payload, Mapping):
        indicator_raw = payload.get("indicator")
        if indicator_raw is not None:
            if not isinstance(indicator_raw, Mapping):
                raise ValueError(f"Expected mapping for 'indicator' in {path}")
            indicator = Indicator.from_mapping(indicator_raw)
        rows = payload.get("data")
    else:
        rows = payload
    if not isinstance(rows, list):
        raise ValueError(f"Expected list of records in {path}")
    return IndicatorDataset(indicator=indicator, records=tuple(_parse_rows(rows, path)))


def _parse_rows(rows: Sequence[Any], path: Path) -> list[IndicatorDataPoint]:
    records: list[IndicatorDataPoint] = []
    for idx, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise ValueError(f"Expected mapping at index {idx} in {path}")
        try:
            records.append(IndicatorDataPoint.from_mapping(row))
        except ValueError as exc:
            raise ValueError(f"{path}: record {idx}: {exc}") from exc
    _LOGGER.debug("Read %d indicator records from %s", len(records), path)
    return records


def _read_csv_records(path: Path) -> list[IndicatorDataPoint]:
    with path.open("r", encoding="utf-8", newline="") as fh:
        reader = csv.DictReader(fh)
        rows = [{key.strip(): value for key, value in row.items() if key is not None} for row in reader]
    return _parse_rows(rows, path)
