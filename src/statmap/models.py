"""Domain models shared across map engine modules."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected string for '{field_name}'")
    return value.strip() or None


def _require_year(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Expected integer year for '{field_name}'")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValueError(f"Expected integer year for '{field_name}'")


def _optional_value(value: Any, field_name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Expected number or null for '{field_name}'")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        raw = value.strip()
        if not raw or raw.casefold() in {"null", "none", "nan", "na"}:
            return None
        try:
            number = float(raw)
        except ValueError as exc:
            raise ValueError(f"Expected number or null for '{field_name}'") from exc
    else:
        raise ValueError(f"Expected number or null for '{field_name}'")
    return number if math.isfinite(number) else None


@dataclass(frozen=True, slots=True)
class IndicatorDataPoint:
    """One observation of an indicator for a region and a start year."""

    m49_code: int | str
    year: int
    value: float | None
    unit: str | None = None
    pid: int | None = None
    source: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> IndicatorDataPoint:
        code = data.get("m49_code", data.get("geo_entity_id"))
        if isinstance(code, float) and code.is_integer():
            code = int(code)
        if code is None or isinstance(code, bool) or not isinstance(code, (int, str)):
            raise ValueError("Expected integer or string for 'm49_code'")
        year = _require_year(data.get("date_start", data.get("year")), "date_start")
        pid_raw = data.get("pid")
        pid: int | None
        if pid_raw is None or pid_raw == "":
            pid = None
        else:
            try:
                pid = int(pid_raw)
            except (TypeError, ValueError) as exc:
                raise ValueError("Expected integer for 'pid'") from exc
        source = data.get("source")
        attributes = data.get("attributes")
        if source is None and isinstance(attributes, Mapping):
            source = attributes.get("source_detail")
        return cls(
            m49_code=code,
            year=year,
            value=_optional_value(data.get("value"), "value"),
            unit=_optional_str(data.get("unit"), "unit"),
            pid=pid,
            source=_optional_str(source, "source"),
        )


@dataclass(frozen=True, slots=True)
class RegionCode:
    """Entry of the M49 reference table."""

    m49: str
    iso3: str | None
    name: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RegionCode:
        code_raw = data.get("m49")
        if isinstance(code_raw, bool) or not isinstance(code_raw, (int, str)):
            raise ValueError("Expected integer or string for 'm49'")
        code = str(code_raw).strip()
        if not code.isdigit() or len(code) > 3:
            raise ValueError(f"Invalid m49 code: '{code_raw}'")
        iso3_raw = data.get("iso3")
        iso3: str | None = None
        if iso3_raw is not None:
            iso3 = _require_str(iso3_raw, "iso3").upper()
            if len(iso3) != 3 or not iso3.isalpha():
                raise ValueError(f"Invalid iso3: '{iso3_raw}'")
        return cls(m49=code.zfill(3), iso3=iso3, name=_require_str(data.get("name"), "name"))


@dataclass(frozen=True, slots=True)
class RegionValue:
    """Value shown for one region in the selected time slice."""

    value: float
    name: str
    year: int
    unit: str | None = None
    source: str | None = None


@dataclass(frozen=True, slots=True)
class IndicatorSource:
    name: str
    url: str | None = None


@dataclass(frozen=True, slots=True)
class Indicator:
    """Indicator metadata the map needs: title, attribution and rendering hints."""

    name: str
    sources: tuple[IndicatorSource, ...] = ()
    measure_scale: str | None = None
    use_choropleth: bool | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Indicator:
        sources_raw = data.get("sources", [])
        if sources_raw is None:
            sources_raw = []
        if not isinstance(sources_raw, list):
            raise ValueError("Expected list for 'sources'")
        sources: list[IndicatorSource] = []
        for idx, item in enumerate(sources_raw):
            if not isinstance(item, Mapping):
                raise ValueError(f"Expected mapping at 'sources[{idx}]'")
            sources.append(
                IndicatorSource(
                    name=_require_str(item.get("name"), f"sources[{idx}].name"),
                    url=_optional_str(item.get("url"), f"sources[{idx}].url"),
                )
            )
        use_choropleth = data.get("use_choropleth")
        if use_choropleth is not None and not isinstance(use_choropleth, bool):
            raise ValueError("Expected bool for 'use_choropleth'")
        return cls(
            name=_require_str(data.get("name", data.get("title")), "name"),
            sources=tuple(sources),
            measure_scale=_optional_str(data.get("measure_scale"), "measure_scale"),
            use_choropleth=use_choropleth,
        )


@dataclass(frozen=True, slots=True)
class ThemeColors:
    """Foreground/background colour pair used for fills, strokes and text."""

    foreground: str
    background: str


@dataclass(frozen=True, slots=True)
class HoveredRegion:
    name: str
    value: float
    x: float
    y: float
    unit: str | None = None
    source: str | None = None
