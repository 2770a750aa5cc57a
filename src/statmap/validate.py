"""Validation of config, reference tables, geometry and data-file join coverage."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from .config import AppConfig
from .errors import StatmapError
from .models import IndicatorDataPoint
from .processing import available_years, unmatched_codes
from .projections import get_spec
from .regions import RegionCodeTable, load_region_table
from .topology import GeometrySource, WorldTopology
from .util import format_code_list


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Checks everything a render needs before one is attempted."""

    def __init__(self, cfg: AppConfig, geometry: GeometrySource | None = None) -> None:
        self.cfg = cfg
        self.geometry = geometry or GeometrySource(
            cfg.paths.geometry,
            object_name=cfg.geometry.object_name,
            timeout_s=cfg.geometry.request_timeout_s,
        )

    def run(self, records: Sequence[IndicatorDataPoint] | None = None) -> ValidationReport:
        report = ValidationReport()
        self._validate_config(report)
        table = self._validate_region_table(report)
        topology = self._validate_geometry(report, table)
        if records is not None:
            self._validate_records(report, records, table, topology)
        return report

    def _validate_config(self, report: ValidationReport) -> None:
        paths = self.cfg.paths
        if not self.geometry.is_remote and not Path(paths.geometry).exists():
            report.add_error(f"Missing geometry file: {paths.geometry}")
        if paths.region_codes is not None and not paths.region_codes.exists():
            report.add_error(f"Missing region code table: {paths.region_codes}")
        try:
            get_spec(self.cfg.view.default_projection)
        except StatmapError as exc:
            report.add_error(f"view.default_projection: {exc}")

    def _validate_region_table(self, report: ValidationReport) -> RegionCodeTable | None:
        path = self.cfg.paths.region_codes
        if path is not None and not path.exists():
            return None
        try:
            table = load_region_table(path)
        except Exception as exc:
            report.add_error(f"Failed parsing region code table: {exc}")
            return None
        with_iso3 = sum(1 for region in table.by_m49.values() if region.iso3 is not None)
        report.add_info(f"Region code table: {len(table)} codes ({with_iso3} with ISO3).")
        return table

    def _validate_geometry(self, report: ValidationReport, table: RegionCodeTable | None) -> WorldTopology | None:
        if not self.geometry.is_remote and not Path(self.geometry.location).exists():
            return None
        try:
            topology = self.geometry.load()
        except StatmapError as exc:
            report.add_error(str(exc))
            return None
        report.add_info(f"Geometry: {len(topology)} features in object '{topology.object_name}'.")
        if len(topology) == 0:
            report.add_error(f"Geometry object '{topology.object_name}' has no features")
            return topology
        if table is not None:
            known = _table_keys(table, self.cfg.geometry.feature_id)
            unknown = sorted(set(topology.feature_ids()) - known)
            if unknown:
                report.add_warning(
                    f"{len(unknown)} geometry feature ids have no region code "
                    f"(feature_id={self.cfg.geometry.feature_id}): {format_code_list(unknown)}"
                )
        return topology

    def _validate_records(
        self,
        report: ValidationReport,
        records: Sequence[IndicatorDataPoint],
        table: RegionCodeTable | None,
        topology: WorldTopology | None,
    ) -> None:
        if not records:
            report.add_warning("Data file contains no records")
            return
        years = available_years(records)
        with_values = sum(1 for record in records if record.value is not None)
        report.add_info(
            f"Data: {len(records)} records ({with_values} with values), years {years[0]}-{years[-1]}."
        )
        if table is None:
            return
        missing = unmatched_codes(records, table)
        if missing:
            report.add_info(f"{len(missing)} region codes not in the lookup table: {format_code_list(missing)}")
        if topology is None:
            return
        feature_ids = set(topology.feature_ids())
        joined = {
            key
            for key in (table.feature_key(record.m49_code, self.cfg.geometry.feature_id) for record in records)
            if key is not None
        }
        without_shape = sorted(joined - feature_ids)
        report.add_info(f"Join coverage: {len(joined & feature_ids)} of {len(feature_ids)} map regions have data.")
        if without_shape:
            report.add_info(
                f"{len(without_shape)} regions with data have no geometry: {format_code_list(without_shape)}"
            )


def _table_keys(table: RegionCodeTable, feature_id: str) -> set[str]:
    if feature_id == "m49":
        return set(table.by_m49)
    return {region.iso3 for region in table.by_m49.values() if region.iso3 is not None}


def format_report_lines(report: ValidationReport) -> Iterable[str]:
    for info in report.infos:
        yield f"[INFO] {info}"
    for warning in report.warnings:
        yield f"[WARN] {warning}"
    for error in report.errors:
        yield f"[ERROR] {error}"
    if report.ok:
        yield "[OK] Validation completed with no errors."
