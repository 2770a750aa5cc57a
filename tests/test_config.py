from __future__ import annotations

from pathlib import Path

import pytest

from statmap.config import AppConfig, ScalesConfig, ViewConfig, load_config


def test_load_config_resolves_paths_relative_to_file(cfg: AppConfig, config_path: Path) -> None:
    assert cfg.source_path == config_path.resolve()
    assert Path(cfg.paths.geometry) == config_path.parent.resolve() / "world.topojson"
    assert cfg.paths.output_dir == config_path.parent.resolve() / "build"
    assert cfg.paths.region_codes is None
    assert cfg.view.width == 600
    assert cfg.view.default_projection == "Equal Earth"


def test_missing_sections_fall_back_to_defaults(cfg: AppConfig) -> None:
    assert cfg.geometry.object_name == "world"
    assert cfg.geometry.feature_id == "iso3"
    assert cfg.scales.symbol_radius == (3.0, 15.0)
    assert cfg.scales.color_mode == "theme"
    assert cfg.labels.legend == "Legend"
    assert cfg.view.scale_divisor == 6.0
    assert cfg.view.transition_ms == 1000.0


def test_remote_geometry_location_is_kept_verbatim(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("paths:\n  geometry: https://example.org/world.json\n", encoding="utf-8")
    cfg = load_config(path)
    assert cfg.paths.geometry == "https://example.org/world.json"


def test_missing_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_non_mapping_document_raises(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        load_config(path)


def test_paths_section_is_required(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("view:\n  width: 100\n", encoding="utf-8")
    with pytest.raises(ValueError, match="'paths'"):
        load_config(path)


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"width": "wide"}, "view.width"),
        ({"min_zoom": 4, "max_zoom": 2}, "min_zoom"),
        ({"zoom_step": 1}, "zoom_step"),
        ({"transition_ms": 0}, "transition_ms"),
    ],
)
def test_view_config_rejects_bad_values(raw: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        ViewConfig.from_mapping(raw)


def test_scales_config_validation() -> None:
    with pytest.raises(ValueError, match="color_mode"):
        ScalesConfig.from_mapping({"color_mode": "rainbow"})
    with pytest.raises(ValueError, match="symbol_radius"):
        ScalesConfig.from_mapping({"symbol_radius": [10, 2]})
    with pytest.raises(ValueError, match="legend_steps"):
        ScalesConfig.from_mapping({"legend_steps": 1})
