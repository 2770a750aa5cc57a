from __future__ import annotations

import json
from pathlib import Path

import pytest

from statmap.errors import GeometryLoadError
from statmap.topology import GeometrySource, compute_region_centroids, decode_topology


QUANTIZED = {
    "type": "Topology",
    "transform": {"scale": [0.5, 0.5], "translate": [10, 20]},
    "arcs": [[[0, 0], [2, 0], [0, 2], [-2, 0], [0, -2]]],
    "objects": {
        "land": {
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Polygon", "id": 1, "arcs": [[0]]},
                {"type": "Polygon", "id": 2, "arcs": [[-1]]},
                {"type": "Point", "coordinates": [2, 4]},
            ],
        }
    },
}


def test_quantized_arcs_are_delta_decoded() -> None:
    topology = decode_topology(QUANTIZED, "land")
    forward, backward, point = topology.features()
    assert forward.id == "1"
    assert forward.geometry["coordinates"][0] == [[10, 20], [11, 20], [11, 21], [10, 21], [10, 20]]
    # ~0 walks the same arc backwards
    assert backward.geometry["coordinates"][0] == list(reversed(forward.geometry["coordinates"][0]))
    assert point.id == "feature-2"
    assert point.geometry["coordinates"] == [11.0, 22.0]


def test_world_features_skip_null_geometries(world_topology) -> None:
    topology = decode_topology(world_topology, "world")
    assert topology.feature_ids() == ("FRA", "USA", "FJI", "BRA")
    assert len(topology) == 4
    france = next(topology.features())
    assert france.name == "France"
    assert france.as_geojson()["properties"] == {"name": "France"}


def test_non_topology_documents_are_rejected() -> None:
    with pytest.raises(GeometryLoadError, match="not a TopoJSON"):
        decode_topology({"type": "FeatureCollection", "features": []}, "world")


def test_missing_object_lists_available_ones(world_topology) -> None:
    with pytest.raises(GeometryLoadError) as excinfo:
        decode_topology(world_topology, "countries")
    assert "world" in str(excinfo.value)


def test_malformed_arcs_raise_load_error(world_topology) -> None:
    world_topology["objects"]["world"]["geometries"][0]["arcs"] = [[42]]
    with pytest.raises(GeometryLoadError, match="malformed"):
        decode_topology(world_topology, "world")


def test_source_caches_successful_loads(world_path: Path) -> None:
    source = GeometrySource(world_path)
    assert not source.is_loaded()
    first = source.load()
    assert source.is_loaded()
    # the file is only read once per process
    world_path.unlink()
    assert GeometrySource(world_path).load() is first


def test_failed_load_is_not_cached_and_can_be_retried(tmp_path: Path, world_topology) -> None:
    path = tmp_path / "late.topojson"
    source = GeometrySource(path)
    with pytest.raises(GeometryLoadError, match="file not found"):
        source.load()
    assert not source.is_loaded()
    path.write_text(json.dumps(world_topology), encoding="utf-8")
    assert len(source.load()) == 4


def test_invalid_json_raises_load_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.topojson"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(GeometryLoadError):
        GeometrySource(path).load()


def test_remote_locations_are_detected() -> None:
    assert GeometrySource("https://example.org/world.json").is_remote
    assert not GeometrySource("data/world.json").is_remote


def test_centroids_use_planar_polygon_centres(world_topology) -> None:
    topology = decode_topology(world_topology, "world")
    centroids = compute_region_centroids(topology.features())
    assert centroids["FRA"] == pytest.approx((5.0, 45.0))
    assert centroids["USA"] == pytest.approx((-100.0, 37.5))
    assert centroids["BRA"] == pytest.approx((-50.0, -10.0))
