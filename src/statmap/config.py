"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _optional_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    return _mapping(value, field_name)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Expected float for '{field_name}'")
    if isinstance(value, (int, float)):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _positive(value: float, field_name: str) -> float:
    if value <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return value


def _float_pair(value: Any, field_name: str) -> tuple[float, float]:
    if not isinstance(value, list) or len(value) != 2:
        raise ValueError(f"Expected two-item list for '{field_name}'")
    return (_float(value[0], f"{field_name}[0]"), _float(value[1], f"{field_name}[1]"))


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


def _location_from_cfg(value: Any, field_name: str, root_dir: Path) -> str:
    """Geometry may live on disk or behind an http(s) URL."""
    raw = _str(value, field_name)
    if raw.startswith(("http://", "https://")):
        return raw
    return str(_path_from_cfg(raw, field_name, root_dir))


@dataclass(frozen=True, slots=True)
class PathsConfig:
    geometry: str
    region_codes: Path | None
    output_dir: Path
    logs_dir: Path

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (self.output_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        region_codes_raw = raw.get("region_codes")
        return cls(
            geometry=_location_from_cfg(raw.get("geometry"), "paths.geometry", root_dir),
            region_codes=(
                None
                if region_codes_raw is None
                else _path_from_cfg(region_codes_raw, "paths.region_codes", root_dir)
            ),
            output_dir=_path_from_cfg(raw.get("output_dir", "build"), "paths.output_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir", "build/logs"), "paths.logs_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class GeometryConfig:
    object_name: str
    feature_id: str
    request_timeout_s: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> GeometryConfig:
        feature_id = _str(raw.get("feature_id", "iso3"), "geometry.feature_id").casefold()
        allowed = {"iso3", "m49"}
        if feature_id not in allowed:
            raise ValueError("geometry.feature_id must be one of: " + ", ".join(sorted(allowed)))
        return cls(
            object_name=_str(raw.get("object_name", "world"), "geometry.object_name"),
            feature_id=feature_id,
            request_timeout_s=_positive(
                _float(raw.get("request_timeout_s", 30), "geometry.request_timeout_s"),
                "geometry.request_timeout_s",
            ),
        )

    @classmethod
    def default(cls) -> GeometryConfig:
        return cls.from_mapping({})


@dataclass(frozen=True, slots=True)
class ViewConfig:
    width: int
    height: int
    default_projection: str
    scale_divisor: float
    precision: float
    transition_ms: float
    frame_rate: float
    min_zoom: float
    max_zoom: float
    drag_sensitivity_x: float
    drag_sensitivity_y: float
    nudge_deg: float
    zoom_step: float
    graticule_step_deg: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ViewConfig:
        min_zoom = _positive(_float(raw.get("min_zoom", 0.5), "view.min_zoom"), "view.min_zoom")
        max_zoom = _positive(_float(raw.get("max_zoom", 20.0), "view.max_zoom"), "view.max_zoom")
        if min_zoom > max_zoom:
            raise ValueError("view.min_zoom cannot be greater than view.max_zoom")
        zoom_step = _float(raw.get("zoom_step", 1.5), "view.zoom_step")
        if zoom_step <= 1.0:
            raise ValueError("view.zoom_step must be > 1")
        return cls(
            width=_int(raw.get("width", 960), "view.width"),
            height=_int(raw.get("height", 540), "view.height"),
            default_projection=_str(
                raw.get("default_projection", "Mollweide"), "view.default_projection"
            ),
            scale_divisor=_positive(
                _float(raw.get("scale_divisor", 6), "view.scale_divisor"), "view.scale_divisor"
            ),
            precision=_positive(_float(raw.get("precision", 0.1), "view.precision"), "view.precision"),
            transition_ms=_positive(
                _float(raw.get("transition_ms", 1000), "view.transition_ms"), "view.transition_ms"
            ),
            frame_rate=_positive(_float(raw.get("frame_rate", 60), "view.frame_rate"), "view.frame_rate"),
            min_zoom=min_zoom,
            max_zoom=max_zoom,
            drag_sensitivity_x=_positive(
                _float(raw.get("drag_sensitivity_x", 5), "view.drag_sensitivity_x"),
                "view.drag_sensitivity_x",
            ),
            drag_sensitivity_y=_positive(
                _float(raw.get("drag_sensitivity_y", 6), "view.drag_sensitivity_y"),
                "view.drag_sensitivity_y",
            ),
            nudge_deg=_float(raw.get("nudge_deg", 10), "view.nudge_deg"),
            zoom_step=zoom_step,
            graticule_step_deg=_positive(
                _float(raw.get("graticule_step_deg", 10), "view.graticule_step_deg"),
                "view.graticule_step_deg",
            ),
        )

    @classmethod
    def default(cls) -> ViewConfig:
        return cls.from_mapping({})


@dataclass(frozen=True, slots=True)
class ThemeConfig:
    foreground: str
    background: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ThemeConfig:
        return cls(
            foreground=_str(raw.get("foreground", "#1f2937"), "theme.foreground"),
            background=_str(raw.get("background", "#ffffff"), "theme.background"),
        )

    @classmethod
    def default(cls) -> ThemeConfig:
        return cls.from_mapping({})


@dataclass(frozen=True, slots=True)
class ScalesConfig:
    color_mode: str
    symbol_radius: tuple[float, float]
    legend_steps: int
    uniform_bins: int
    uniform_max_buckets: int
    log_ratio_threshold: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ScalesConfig:
        color_mode = _str(raw.get("color_mode", "theme"), "scales.color_mode").casefold()
        allowed = {"theme", "palette"}
        if color_mode not in allowed:
            raise ValueError("scales.color_mode must be one of: " + ", ".join(sorted(allowed)))
        symbol_radius = _float_pair(raw.get("symbol_radius", [3, 15]), "scales.symbol_radius")
        if symbol_radius[0] < 0 or symbol_radius[1] < symbol_radius[0]:
            raise ValueError("scales.symbol_radius must be [min, max] with 0 <= min <= max")
        legend_steps = _int(raw.get("legend_steps", 5), "scales.legend_steps")
        uniform_bins = _int(raw.get("uniform_bins", 10), "scales.uniform_bins")
        uniform_max_buckets = _int(raw.get("uniform_max_buckets", 3), "scales.uniform_max_buckets")
        if legend_steps < 2:
            raise ValueError("scales.legend_steps must be >= 2")
        if uniform_bins < 1:
            raise ValueError("scales.uniform_bins must be >= 1")
        if uniform_max_buckets < 1:
            raise ValueError("scales.uniform_max_buckets must be >= 1")
        return cls(
            color_mode=color_mode,
            symbol_radius=symbol_radius,
            legend_steps=legend_steps,
            uniform_bins=uniform_bins,
            uniform_max_buckets=uniform_max_buckets,
            log_ratio_threshold=_positive(
                _float(raw.get("log_ratio_threshold", 10), "scales.log_ratio_threshold"),
                "scales.log_ratio_threshold",
            ),
        )

    @classmethod
    def default(cls) -> ScalesConfig:
        return cls.from_mapping({})


@dataclass(frozen=True, slots=True)
class LabelsConfig:
    language: str
    legend: str
    latest: str
    missing_values: str
    region: str
    value: str
    source: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LabelsConfig:
        return cls(
            language=_str(raw.get("language", "en"), "labels.language"),
            legend=_str(raw.get("legend", "Legend"), "labels.legend"),
            latest=_str(raw.get("latest", "Latest"), "labels.latest"),
            missing_values=_str(raw.get("missing_values", "Missing values"), "labels.missing_values"),
            region=_str(raw.get("region", "Region"), "labels.region"),
            value=_str(raw.get("value", "Value"), "labels.value"),
            source=_str(raw.get("source", "Source"), "labels.source"),
        )

    @classmethod
    def default(cls) -> LabelsConfig:
        return cls.from_mapping({})


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    paths: PathsConfig
    geometry: GeometryConfig
    view: ViewConfig
    theme: ThemeConfig
    scales: ScalesConfig
    labels: LabelsConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            geometry=GeometryConfig.from_mapping(_optional_mapping(raw.get("geometry"), "geometry")),
            view=ViewConfig.from_mapping(_optional_mapping(raw.get("view"), "view")),
            theme=ThemeConfig.from_mapping(_optional_mapping(raw.get("theme"), "theme")),
            scales=ScalesConfig.from_mapping(_optional_mapping(raw.get("scales"), "scales")),
            labels=LabelsConfig.from_mapping(_optional_mapping(raw.get("labels"), "labels")),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
