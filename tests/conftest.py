from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from statmap.config import AppConfig, load_config
from statmap.models import IndicatorDataPoint
from statmap.scheduler import ManualFrameScheduler
from statmap.topology import clear_geometry_cache


def _square(lon0: float, lat0: float, lon1: float, lat1: float) -> list[list[float]]:
    return [[lon0, lat0], [lon1, lat0], [lon1, lat1], [lon0, lat1], [lon0, lat0]]


WORLD_TOPOLOGY: dict[str, Any] = {
    "type": "Topology",
    "arcs": [
        _square(0, 40, 10, 50),
        _square(-120, 30, -80, 45),
        # crosses the antimeridian between 175E and 175W
        [[175, -20], [-175, -20], [-175, -15], [175, -15], [175, -20]],
        _square(-60, -20, -40, 0),
    ],
    "objects": {
        "world": {
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Polygon", "id": "FRA", "properties": {"name": "France"}, "arcs": [[0]]},
                {"type": "Polygon", "id": "USA", "properties": {"name": "United States"}, "arcs": [[1]]},
                {"type": "Polygon", "id": "FJI", "properties": {"name": "Fiji"}, "arcs": [[2]]},
                {"type": "Polygon", "id": "BRA", "properties": {"name": "Brazil"}, "arcs": [[3]]},
                {"type": None, "id": "ATA"},
            ],
        }
    },
}


@pytest.fixture(autouse=True)
def _fresh_geometry_cache() -> Any:
    clear_geometry_cache()
    yield
    clear_geometry_cache()


@pytest.fixture
def world_topology() -> dict[str, Any]:
    return json.loads(json.dumps(WORLD_TOPOLOGY))


@pytest.fixture
def world_path(tmp_path: Path, world_topology: dict[str, Any]) -> Path:
    path = tmp_path / "world.topojson"
    path.write_text(json.dumps(world_topology), encoding="utf-8")
    return path


@pytest.fixture
def config_path(tmp_path: Path, world_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "paths:",
                f"  geometry: {world_path.name}",
                "  output_dir: build",
                "  logs_dir: build/logs",
                "view:",
                "  width: 600",
                "  height: 400",
                "  default_projection: Equal Earth",
                "  precision: 0.5",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def cfg(config_path: Path) -> AppConfig:
    return load_config(config_path)


@pytest.fixture
def records() -> list[IndicatorDataPoint]:
    return [
        IndicatorDataPoint(m49_code=840, year=2019, value=10.0, unit="%", pid=1, source="Survey A"),
        IndicatorDataPoint(m49_code=840, year=2020, value=12.0, unit="%", pid=1, source="Survey A"),
        IndicatorDataPoint(m49_code=250, year=2020, value=30.5, unit="%", pid=1),
        IndicatorDataPoint(m49_code=250, year=2021, value=None, unit="%", pid=1),
        IndicatorDataPoint(m49_code="76", year=2021, value=55.0, unit="%", pid=2),
        IndicatorDataPoint(m49_code=999, year=2020, value=70.0, unit="%"),
    ]


@pytest.fixture
def scheduler() -> ManualFrameScheduler:
    return ManualFrameScheduler()
