"""World geometry loading: TopoJSON decoding, process-wide cache and centroids."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence

import requests

from .errors import GeometryLoadError


_LOGGER = logging.getLogger("statmap.topology")

# Loaded topologies, keyed by "location#object". Failures are never stored.
_TOPOLOGY_CACHE: dict[str, WorldTopology] = {}


@dataclass(frozen=True, slots=True)
class RegionFeature:
    id: str
    name: str | None
    geometry: Mapping[str, Any]

    def as_geojson(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "id": self.id,
            "properties": {"name": self.name},
            "geometry": self.geometry,
        }


@dataclass(frozen=True, slots=True)
class WorldTopology:
    """Decoded world geometry for one object collection."""

    location: str
    object_name: str
    region_features: tuple[RegionFeature, ...]

    def features(self) -> Iterator[RegionFeature]:
        return iter(self.region_features)

    def feature_ids(self) -> tuple[str, ...]:
        return tuple(feature.id for feature in self.region_features)

    def __len__(self) -> int:
        return len(self.region_features)


class GeometrySource:
    """Fetches the topology from disk or http(s) once per process."""

    def __init__(self, location: str | Path, object_name: str = "world", timeout_s: float = 30.0) -> None:
        self.location = str(location)
        self.object_name = object_name
        self.timeout_s = timeout_s

    @property
    def cache_key(self) -> str:
        return f"{self.location}#{self.object_name}"

    @property
    def is_remote(self) -> bool:
        return self.location.startswith(("http://", "https://"))

    def is_loaded(self) -> bool:
        return self.cache_key in _TOPOLOGY_CACHE

    def load(self) -> WorldTopology:
        cached = _TOPOLOGY_CACHE.get(self.cache_key)
        if cached is not None:
            _LOGGER.debug("Geometry cache hit for %s", self.cache_key)
            return cached
        raw = self._read()
        topology = decode_topology(raw, self.object_name, location=self.location)
        _TOPOLOGY_CACHE[self.cache_key] = topology
        _LOGGER.info(
            "Loaded %d region features from %s (object=%s)",
            len(topology),
            self.location,
            self.object_name,
        )
        return topology

    def _read(self) -> Mapping[str, Any]:
        if self.is_remote:
            try:
                response = requests.get(self.location, timeout=self.timeout_s)
                response.raise_for_status()
                payload = response.json()
            except (requests.RequestException, ValueError) as exc:
                raise GeometryLoadError(self.location, str(exc)) from exc
        else:
            path = Path(self.location)
            if not path.exists():
                raise GeometryLoadError(self.location, "file not found")
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                raise GeometryLoadError(self.location, str(exc)) from exc
        if not isinstance(payload, Mapping):
            raise GeometryLoadError(self.location, "expected a JSON object")
        return payload


def clear_geometry_cache() -> None:
    _TOPOLOGY_CACHE.clear()


def decode_topology(raw: Mapping[str, Any], object_name: str, *, location: str = "<memory>") -> WorldTopology:
    """Decode one named object collection of a TopoJSON document into features."""
    if raw.get("type") != "Topology":
        raise GeometryLoadError(location, "document is not a TopoJSON topology")
    objects = raw.get("objects")
    if not isinstance(objects, Mapping) or object_name not in objects:
        available = ", ".join(sorted(objects)) if isinstance(objects, Mapping) else "none"
        raise GeometryLoadError(location, f"object '{object_name}' not found (available: {available})")
    try:
        arcs = _decode_arcs(raw.get("arcs", []), raw.get("transform"))
        decoder = _GeometryDecoder(arcs, raw.get("transform"))
        collection = objects[object_name]
        members = collection.get("geometries") if collection.get("type") == "GeometryCollection" else [collection]
        features: list[RegionFeature] = []
        for idx, item in enumerate(members or []):
            geometry = decoder.geometry(item)
            if geometry is None:
                continue
            feature_id = item.get("id")
            properties = item.get("properties") or {}
            name = properties.get("name") if isinstance(properties, Mapping) else None
            features.append(
                RegionFeature(
                    id=str(feature_id) if feature_id is not None else f"feature-{idx}",
                    name=str(name) if name is not None else None,
                    geometry=geometry,
                )
            )
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise GeometryLoadError(location, f"malformed topology: {exc}") from exc
    return WorldTopology(location=location, object_name=object_name, region_features=tuple(features))


def _decode_arcs(raw_arcs: Sequence[Any], transform: Mapping[str, Any] | None) -> list[list[tuple[float, float]]]:
    decoded: list[list[tuple[float, float]]] = []
    if transform is None:
        for arc in raw_arcs:
            decoded.append([(float(p[0]), float(p[1])) for p in arc])
        return decoded
    sx, sy = (float(v) for v in transform["scale"])
    tx, ty = (float(v) for v in transform["translate"])
    for arc in raw_arcs:
        x = y = 0
        points: list[tuple[float, float]] = []
        for position in arc:
            x += position[0]
            y += position[1]
            points.append((x * sx + tx, y * sy + ty))
        decoded.append(points)
    return decoded


class _GeometryDecoder:
    def __init__(self, arcs: list[list[tuple[float, float]]], transform: Mapping[str, Any] | None) -> None:
        self._arcs = arcs
        self._transform = transform

    def geometry(self, item: Mapping[str, Any]) -> dict[str, Any] | None:
        kind = item.get("type")
        if kind is None:
            return None
        if kind == "GeometryCollection":
            parts = [self.geometry(child) for child in item.get("geometries", [])]
            return {"type": kind, "geometries": [part for part in parts if part is not None]}
        if kind == "Point":
            return {"type": kind, "coordinates": list(self._point(item["coordinates"]))}
        if kind == "MultiPoint":
            return {"type": kind, "coordinates": [list(self._point(p)) for p in item["coordinates"]]}
        if kind == "LineString":
            return {"type": kind, "coordinates": self._line(item["arcs"])}
        if kind == "MultiLineString":
            return {"type": kind, "coordinates": [self._line(arcs) for arcs in item["arcs"]]}
        if kind == "Polygon":
            return {"type": kind, "coordinates": [self._ring(arcs) for arcs in item["arcs"]]}
        if kind == "MultiPolygon":
            return {
                "type": kind,
                "coordinates": [[self._ring(arcs) for arcs in polygon] for polygon in item["arcs"]],
            }
        raise ValueError(f"unsupported geometry type {kind!r}")

    def _point(self, position: Sequence[float]) -> tuple[float, float]:
        if self._transform is None:
            return (float(position[0]), float(position[1]))
        sx, sy = self._transform["scale"]
        tx, ty = self._transform["translate"]
        return (position[0] * sx + tx, position[1] * sy + ty)

    def _arc(self, index: int) -> list[tuple[float, float]]:
        # negative indices (~i) walk arc i backwards
        if index < 0:
            return list(reversed(self._arcs[~index]))
        return list(self._arcs[index])

    def _line(self, arc_indices: Sequence[int]) -> list[list[float]]:
        points: list[tuple[float, float]] = []
        for index in arc_indices:
            arc = self._arc(int(index))
            if points:
                arc = arc[1:]
            points.extend(arc)
        if len(points) < 2 and points:
            points.append(points[0])
        return [list(p) for p in points]

    def _ring(self, arc_indices: Sequence[int]) -> list[list[float]]:
        points = self._line(arc_indices)
        while len(points) < 4 and points:
            points.append(points[0])
        return points


def compute_region_centroids(features: Sequence[RegionFeature] | Iterator[RegionFeature]) -> dict[str, tuple[float, float]]:
    """Return {region_id: (lon, lat)} using the centroid of each region's largest polygon."""
    shape = _require_shapely_shape()
    centroids: dict[str, tuple[float, float]] = {}
    for feature in features:
        try:
            geometry = shape(feature.geometry)
        except (ValueError, TypeError, AttributeError):
            _LOGGER.debug("Skipping centroid for %s (invalid geometry)", feature.id)
            continue
        if geometry.is_empty:
            continue
        parts = list(getattr(geometry, "geoms", [geometry]))
        polygons = [part for part in parts if part.geom_type == "Polygon"]
        target = max(polygons, key=lambda p: p.area) if polygons else geometry
        point = target.centroid
        if point.is_empty:
            continue
        centroids[feature.id] = (float(point.x), float(point.y))
    return centroids


@lru_cache(maxsize=1)
def _require_shapely_shape() -> Any:
    try:
        from shapely.geometry import shape
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for region centroids") from exc
    return shape
