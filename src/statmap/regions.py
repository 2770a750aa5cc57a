"""M49 region code table loading and indexing."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

import yaml

from .models import RegionCode


DEFAULT_REGION_CODES_PATH = Path(__file__).resolve().parent / "data" / "m49_regions.yaml"


def normalize_m49_code(code: Any) -> str | None:
    """Return the zero-padded three digit form of an M49 code, or None when invalid."""
    if code is None or isinstance(code, bool):
        return None
    if isinstance(code, float):
        if not code.is_integer():
            return None
        code = int(code)
    raw = str(code).strip()
    if not raw.isdigit() or len(raw) > 3:
        return None
    return raw.zfill(3)


def load_region_codes(path: Path) -> list[RegionCode]:
    """Load and validate the M49 reference table."""
    if not path.exists():
        raise FileNotFoundError(f"Region code file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, list):
        raise ValueError(f"Expected list in {path}")

    regions: list[RegionCode] = []
    seen_m49: set[str] = set()
    seen_iso3: set[str] = set()
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Expected mapping at index {idx} in {path}")
        region = RegionCode.from_mapping(item)
        if region.m49 in seen_m49:
            raise ValueError(f"Duplicate M49 code '{region.m49}' in {path}")
        if region.iso3 is not None:
            if region.iso3 in seen_iso3:
                raise ValueError(f"Duplicate ISO3 '{region.iso3}' in {path}")
            seen_iso3.add(region.iso3)
        seen_m49.add(region.m49)
        regions.append(region)
    return regions


@dataclass(frozen=True)
class RegionCodeTable:
    """Lookup between M49 codes, ISO3 feature ids and display names."""

    by_m49: dict[str, RegionCode]

    @classmethod
    def from_regions(cls, regions: Iterable[RegionCode]) -> RegionCodeTable:
        return cls(by_m49={region.m49: region for region in regions})

    def lookup(self, code: Any) -> RegionCode | None:
        normalized = normalize_m49_code(code)
        if normalized is None:
            return None
        return self.by_m49.get(normalized)

    def feature_key(self, code: Any, feature_id: str = "iso3") -> str | None:
        """Key used to join a record to a geometry feature id."""
        region = self.lookup(code)
        if region is None:
            return None
        if feature_id == "m49":
            return region.m49
        return region.iso3

    def name_for(self, code: Any) -> str | None:
        region = self.lookup(code)
        return None if region is None else region.name

    def __len__(self) -> int:
        return len(self.by_m49)


@lru_cache(maxsize=4)
def _cached_table(path: Path) -> RegionCodeTable:
    return RegionCodeTable.from_regions(load_region_codes(path))


def load_region_table(path: Path | None = None) -> RegionCodeTable:
    """Load the region table from `path`, or the packaged table when omitted."""
    return _cached_table((path or DEFAULT_REGION_CODES_PATH).resolve())
