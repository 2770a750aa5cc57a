"""Live projection instances and the SVG path generator for spherical geometry."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from .projections import RawProjection


_EPSILON = 1e-6
_EDGE_EPSILON = 1e-9
_MAX_RESAMPLE_DEPTH = 16
_COS_MIN_DISTANCE = math.cos(math.radians(30.0))
_POINT_RADIUS = 4.5
_EDGE_STEP = math.radians(2.5)
_BISECT_ITERATIONS = 32


@dataclass(frozen=True, slots=True)
class ProjectionParams:
    scale: float = 150.0
    translate: tuple[float, float] = (480.0, 250.0)
    rotate: tuple[float, float, float] = (0.0, 0.0, 0.0)
    precision: float = 0.1
    clip_angle: float | None = None


class GeoProjection:
    """Raw projection plus scale, translate, three-axis rotation and optional clip circle.

    Input coordinates are longitude/latitude in degrees; output is screen space
    with y pointing down. Rotation follows the usual lambda/phi/gamma convention
    of web mapping libraries so that dragging and resizing read the same state back.
    """

    def __init__(self, raw: RawProjection, params: ProjectionParams | None = None) -> None:
        self.raw = raw
        self.params = params or ProjectionParams()
        dl, dp, dg = self.params.rotate
        self._rotation = (
            math.radians(math.fmod(dl, 360.0)),
            math.radians(math.fmod(dp, 360.0)),
            math.radians(math.fmod(dg, 360.0)),
        )
        clip = self.params.clip_angle
        self._cos_clip = None if clip is None else math.cos(math.radians(clip))

    @property
    def scale(self) -> float:
        return self.params.scale

    @property
    def translate(self) -> tuple[float, float]:
        return self.params.translate

    @property
    def rotate(self) -> tuple[float, float, float]:
        return self.params.rotate

    @property
    def clip_angle(self) -> float | None:
        return self.params.clip_angle

    @property
    def precision(self) -> float:
        return self.params.precision

    def with_params(self, **changes: Any) -> GeoProjection:
        return GeoProjection(self.raw, replace(self.params, **changes))

    def with_raw(self, raw: RawProjection) -> GeoProjection:
        return GeoProjection(raw, self.params)

    def rotate_radians(self, lam: Any, phi: Any) -> tuple[np.ndarray, np.ndarray]:
        """Rotate sphere coordinates (radians) into the projection frame."""
        lam = np.asarray(lam, dtype=float)
        phi = np.asarray(phi, dtype=float)
        dl, dp, dg = self._rotation
        if dl:
            lam = lam + dl
            lam = np.where(lam > math.pi, lam - 2 * math.pi, np.where(lam < -math.pi, lam + 2 * math.pi, lam))
        if dp or dg:
            cos_dp, sin_dp = math.cos(dp), math.sin(dp)
            cos_dg, sin_dg = math.cos(dg), math.sin(dg)
            cos_phi = np.cos(phi)
            x = np.cos(lam) * cos_phi
            y = np.sin(lam) * cos_phi
            z = np.sin(phi)
            k = z * cos_dp + x * sin_dp
            lam = np.arctan2(y * cos_dg - k * sin_dg, x * cos_dp - z * sin_dp)
            phi = np.arcsin(np.clip(k * cos_dg + y * sin_dg, -1.0, 1.0))
        return lam, phi

    def project_rotated(self, lam: Any, phi: Any) -> tuple[np.ndarray, np.ndarray]:
        """Project points already expressed in the rotated frame to screen space."""
        lam = np.asarray(lam, dtype=float)
        phi = np.asarray(phi, dtype=float)
        if lam.size == 0:
            return lam.copy(), phi.copy()
        x, y = self.raw(lam, phi)
        cx, cy = self._center()
        k = self.params.scale
        tx, ty = self.params.translate
        return (tx + k * (np.asarray(x, dtype=float) - cx), ty - k * (np.asarray(y, dtype=float) - cy))

    def visible(self, lam: np.ndarray, phi: np.ndarray) -> np.ndarray:
        """Mask of rotated-frame points inside the clip circle."""
        if self._cos_clip is None:
            return np.ones(np.shape(lam), dtype=bool)
        return np.cos(lam) * np.cos(phi) > self._cos_clip

    def __call__(self, lon: float, lat: float) -> tuple[float, float]:
        lam, phi = self.rotate_radians(math.radians(lon), math.radians(lat))
        x, y = self.project_rotated(np.atleast_1d(lam), np.atleast_1d(phi))
        return (float(x[0]), float(y[0]))

    def project_point(self, lon: float, lat: float) -> tuple[float, float] | None:
        """Screen position of a lon/lat point, or None when clipped or unrepresentable."""
        lam, phi = self.rotate_radians(np.atleast_1d(math.radians(lon)), np.atleast_1d(math.radians(lat)))
        if not bool(self.visible(lam, phi)[0]):
            return None
        x, y = self.project_rotated(lam, phi)
        if not (math.isfinite(x[0]) and math.isfinite(y[0])):
            return None
        return (float(x[0]), float(y[0]))

    def _center(self) -> tuple[float, float]:
        x, y = self.raw(0.0, 0.0)
        cx, cy = float(x), float(y)
        if not (math.isfinite(cx) and math.isfinite(cy)):
            return (0.0, 0.0)
        return (cx, cy)

    def __repr__(self) -> str:
        return f"GeoProjection({self.raw!r}, {self.params!r})"


def graticule(step: float = 10.0, precision: float = 2.5) -> dict[str, Any]:
    """Meridians and parallels every `step` degrees as a MultiLineString.

    Meridians run pole to pole; parallels lie strictly between the poles.
    Vertices are spaced `precision` degrees apart.
    """
    lines: list[list[tuple[float, float]]] = []
    lats = list(np.arange(-90.0, 90.0, precision)) + [90.0]
    lons = list(np.arange(-180.0, 180.0, precision)) + [180.0]

    for x in np.arange(-180.0, 180.0 - _EPSILON, step):
        lines.append([(float(x), float(y)) for y in lats])
    for y in np.arange(math.ceil(-90.0 / step) * step, 90.0 - _EPSILON, step):
        if abs(abs(y) - 90.0) < _EPSILON:
            continue
        lines.append([(float(x), float(y)) for x in lons])
    return {"type": "MultiLineString", "coordinates": lines}


def sphere() -> dict[str, str]:
    return {"type": "Sphere"}


@dataclass(frozen=True, slots=True)
class _Run:
    lam: np.ndarray
    phi: np.ndarray
    closed: bool


class GeoPath:
    """SVG path data generator for GeoJSON-like objects under a `GeoProjection`."""

    def __init__(self, projection: GeoProjection) -> None:
        self.projection = projection

    def __call__(self, obj: Mapping[str, Any] | None) -> str:
        if obj is None:
            return ""
        return "".join(self._render(obj))

    def _render(self, obj: Mapping[str, Any]) -> Iterable[str]:
        kind = obj.get("type")
        if kind == "FeatureCollection":
            for feature in obj.get("features", []):
                yield from self._render(feature)
        elif kind == "Feature":
            geometry = obj.get("geometry")
            if geometry is not None:
                yield from self._render(geometry)
        elif kind == "GeometryCollection":
            for geometry in obj.get("geometries", []):
                yield from self._render(geometry)
        elif kind == "Sphere":
            yield from self._sphere()
        elif kind == "Point":
            yield from self._points([obj["coordinates"]])
        elif kind == "MultiPoint":
            yield from self._points(obj["coordinates"])
        elif kind == "LineString":
            yield from self._line(obj["coordinates"], polygon=False)
        elif kind == "MultiLineString":
            for line in obj["coordinates"]:
                yield from self._line(line, polygon=False)
        elif kind == "Polygon":
            for ring in obj["coordinates"]:
                yield from self._line(ring, polygon=True)
        elif kind == "MultiPolygon":
            for polygon in obj["coordinates"]:
                for ring in polygon:
                    yield from self._line(ring, polygon=True)

    def _points(self, coordinates: Sequence[Sequence[float]]) -> Iterable[str]:
        r = _POINT_RADIUS
        for coord in coordinates:
            projected = self.projection.project_point(float(coord[0]), float(coord[1]))
            if projected is None:
                continue
            x, y = projected
            yield (
                f"M{format_number(x)},{format_number(y)}m0,{format_number(r)}"
                f"a{format_number(r)},{format_number(r)} 0 1,1 0,{format_number(-2 * r)}"
                f"a{format_number(r)},{format_number(r)} 0 1,1 0,{format_number(2 * r)}z"
            )

    def _line(self, coordinates: Sequence[Sequence[float]], *, polygon: bool) -> Iterable[str]:
        if len(coordinates) < 2:
            return
        arr = np.asarray(coordinates, dtype=float)[:, :2]
        lam, phi = self.projection.rotate_radians(np.radians(arr[:, 0]), np.radians(arr[:, 1]))
        closed = polygon and len(arr) > 2 and bool(np.allclose(arr[0], arr[-1]))
        if self.projection.clip_angle is None:
            runs = _cut_antimeridian(lam, phi, closed=closed, polygon=polygon)
        else:
            runs = _clip_circle(lam, phi, self.projection.clip_angle, closed=closed, polygon=polygon)
        for run in runs:
            x, y = _resample(self.projection, run.lam, run.phi)
            yield from _emit(x, y, close=polygon, unbroken_ring=run.closed)

    def _sphere(self) -> Iterable[str]:
        clip = self.projection.clip_angle
        if clip is not None:
            theta = np.linspace(0.0, 2 * math.pi, 361)
            lam, phi = _circle_points(math.radians(clip), theta)
        else:
            up = np.arange(-math.pi / 2, math.pi / 2, _EDGE_STEP)
            up = np.append(up, math.pi / 2)
            lam = np.concatenate([np.full(up.size, -math.pi), np.full(up.size, math.pi)])
            phi = np.concatenate([up, up[::-1]])
            lam = np.append(lam, -math.pi)
            phi = np.append(phi, -math.pi / 2)
        x, y = _resample(self.projection, lam, phi)
        yield from _emit(x, y, close=True, unbroken_ring=True)


def format_number(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def _emit(x: np.ndarray, y: np.ndarray, *, close: bool, unbroken_ring: bool) -> Iterable[str]:
    """Write one polyline as path commands, breaking it at non-finite points."""
    finite = np.isfinite(x) & np.isfinite(y)
    if finite.all():
        segments = [(0, x.size)]
    else:
        segments = _true_spans(finite)
        unbroken_ring = False
    for start, stop in segments:
        if stop - start < 2:
            continue
        xs, ys = x[start:stop], y[start:stop]
        if close and unbroken_ring and xs.size > 2 and format_number(xs[0]) == format_number(xs[-1]) and format_number(ys[0]) == format_number(ys[-1]):
            xs, ys = xs[:-1], ys[:-1]
        parts = [f"M{format_number(xs[0])},{format_number(ys[0])}"]
        parts.extend(f"L{format_number(px)},{format_number(py)}" for px, py in zip(xs[1:], ys[1:]))
        if close:
            parts.append("Z")
        yield "".join(parts)


def _true_spans(mask: np.ndarray) -> list[tuple[int, int]]:
    padded = np.concatenate([[False], mask, [False]])
    changes = np.flatnonzero(np.diff(padded.astype(np.int8)))
    return [(int(a), int(b)) for a, b in zip(changes[::2], changes[1::2])]


def _cartesian(lam: np.ndarray, phi: np.ndarray) -> np.ndarray:
    cos_phi = np.cos(phi)
    return np.stack([np.cos(lam) * cos_phi, np.sin(lam) * cos_phi, np.sin(phi)])


def _spherical(vec: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    norm = np.linalg.norm(vec, axis=0)
    norm = np.where(norm > 0, norm, 1.0)
    return (np.arctan2(vec[1], vec[0]), np.arcsin(np.clip(vec[2] / norm, -1.0, 1.0)))


def _resample(projection: GeoProjection, lam: np.ndarray, phi: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Project a run, subdividing segments until midpoints deviate less than `precision` px."""
    x, y = projection.project_rotated(lam, phi)
    precision = projection.precision
    if precision <= 0 or lam.size < 2:
        return x, y
    delta2 = precision * precision
    active = np.ones(lam.size - 1, dtype=bool)
    for _ in range(_MAX_RESAMPLE_DEPTH):
        idx = np.flatnonzero(active)
        if idx.size == 0:
            break
        dx = x[idx + 1] - x[idx]
        dy = y[idx + 1] - y[idx]
        d2 = dx * dx + dy * dy
        candidate = np.isfinite(d2) & (d2 > 4 * delta2)
        idx, dx, dy, d2 = idx[candidate], dx[candidate], dy[candidate], d2[candidate]
        split = np.zeros(active.size, dtype=bool)
        if idx.size:
            a = _cartesian(lam[idx], phi[idx])
            b = _cartesian(lam[idx + 1], phi[idx + 1])
            m = a + b
            norm = np.linalg.norm(m, axis=0)
            usable = norm > _EPSILON
            mid_lam, mid_phi = _spherical(m)
            # keep midpoints of edge-hugging segments on the same side of the cut
            wrap = np.abs(mid_lam - lam[idx]) > math.pi
            mid_lam = np.where(wrap, mid_lam + 2 * math.pi * np.sign(lam[idx]), mid_lam)
            mid_lam = np.clip(mid_lam, -math.pi, math.pi)
            # at the poles and along meridians the midpoint longitude is undefined or sign-unstable
            polar = np.abs(np.abs(m[2] / np.where(usable, norm, 1.0)) - 1.0) < _EPSILON
            same_meridian = np.abs(lam[idx + 1] - lam[idx]) < _EPSILON
            mid_lam = np.where(polar | same_meridian, (lam[idx] + lam[idx + 1]) / 2, mid_lam)
            xm, ym = projection.project_rotated(mid_lam, mid_phi)
            dx2 = xm - x[idx]
            dy2 = ym - y[idx]
            dz = dy * dx2 - dx * dy2
            cos_dist = np.einsum("ij,ij->j", a, m / np.where(usable, norm, 1.0))
            with np.errstate(invalid="ignore"):
                needs = (
                    (dz * dz / d2 > delta2)
                    | (np.abs((dx * dx2 + dy * dy2) / d2 - 0.5) > 0.3)
                    | (cos_dist < _COS_MIN_DISTANCE)
                )
            needs &= usable & np.isfinite(xm) & np.isfinite(ym)
            if needs.any():
                chosen = idx[needs]
                split[chosen] = True
                lam = np.insert(lam, chosen + 1, mid_lam[needs])
                phi = np.insert(phi, chosen + 1, mid_phi[needs])
                x = np.insert(x, chosen + 1, xm[needs])
                y = np.insert(y, chosen + 1, ym[needs])
        active = np.repeat(split, 1 + split.astype(np.int64))
    return x, y


def _snap_edge_longitudes(lam: np.ndarray) -> np.ndarray:
    """Put points lying on the antimeridian on the side of their neighbours."""
    edge = np.abs(np.abs(lam) - math.pi) < _EDGE_EPSILON
    if not edge.any() or edge.all():
        return lam
    n = lam.size
    positions = np.where(~edge, np.arange(n), -1)
    previous = np.maximum.accumulate(positions)
    first_inner = int(np.flatnonzero(~edge)[0])
    previous = np.where(previous < 0, first_inner, previous)
    side = np.where(lam[previous] >= 0, math.pi, -math.pi)
    return np.where(edge, side, lam)


def _antimeridian_latitude(lam0: float, phi0: float, lam1: float, phi1: float) -> float:
    sin_dl = math.sin(lam0 - lam1)
    if abs(sin_dl) > _EPSILON:
        cos_phi0 = math.cos(phi0)
        cos_phi1 = math.cos(phi1)
        return math.atan(
            (math.sin(phi0) * cos_phi1 * math.sin(lam1) - math.sin(phi1) * cos_phi0 * math.sin(lam0))
            / (cos_phi0 * cos_phi1 * sin_dl)
        )
    return (phi0 + phi1) / 2


def _edge_points(side: float, phi_from: float, phi_to: float) -> tuple[np.ndarray, np.ndarray]:
    count = max(2, int(math.ceil(abs(phi_to - phi_from) / _EDGE_STEP)) + 1)
    phi = np.linspace(phi_from, phi_to, count)
    return np.full(count, side), phi


def _cut_antimeridian(lam: np.ndarray, phi: np.ndarray, *, closed: bool, polygon: bool) -> list[_Run]:
    lam = _snap_edge_longitudes(lam)
    jumps = np.flatnonzero(np.abs(np.diff(lam)) > math.pi)
    if jumps.size == 0:
        return [_Run(lam, phi, closed)]

    pieces: list[tuple[np.ndarray, np.ndarray]] = []
    start = 0
    lead_lam: list[float] = []
    lead_phi: list[float] = []
    crossings: list[tuple[float, float]] = []
    for j in jumps:
        j = int(j)
        phi_c = _antimeridian_latitude(lam[j], phi[j], lam[j + 1], phi[j + 1])
        side = math.pi if lam[j] > 0 else -math.pi
        crossings.append((side, phi_c))
        pieces.append(
            (
                np.concatenate([lead_lam, lam[start : j + 1], [side]]),
                np.concatenate([lead_phi, phi[start : j + 1], [phi_c]]),
            )
        )
        lead_lam, lead_phi = [-side], [phi_c]
        start = j + 1
    pieces.append((np.concatenate([lead_lam, lam[start:]]), np.concatenate([lead_phi, phi[start:]])))

    if not closed:
        return [_Run(pl, pp, False) for pl, pp in pieces]

    # the ring's closing point repeats the first one, so the tail continues into the head
    tail_lam, tail_phi = pieces.pop()
    head_lam, head_phi = pieces[0]
    pieces[0] = (np.concatenate([tail_lam, head_lam[1:]]), np.concatenate([tail_phi, head_phi[1:]]))

    if polygon and jumps.size % 2 == 1 and len(pieces) == 1:
        # a single crossing means the ring winds around a pole
        ring_lam, ring_phi = pieces[0]
        pole = -math.pi / 2 if float(np.mean(phi)) < 0 else math.pi / 2
        end_side, end_phi = ring_lam[-1], ring_phi[-1]
        start_side, start_phi = ring_lam[0], ring_phi[0]
        down_lam, down_phi = _edge_points(end_side, end_phi, pole)
        up_lam, up_phi = _edge_points(start_side, pole, start_phi)
        pieces[0] = (
            np.concatenate([ring_lam, down_lam[1:], up_lam]),
            np.concatenate([ring_phi, down_phi[1:], up_phi]),
        )
    return [_Run(pl, pp, False) for pl, pp in pieces]


def _circle_points(radius: float, theta: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Rotated-frame points at angular distance `radius` from the view centre."""
    vec = np.stack(
        [
            np.full(theta.size, math.cos(radius)),
            math.sin(radius) * np.cos(theta),
            math.sin(radius) * np.sin(theta),
        ]
    )
    return _spherical(vec)


def _circle_crossings(a: np.ndarray, b: np.ndarray, cos_clip: float) -> np.ndarray:
    """Bisect each arc a->b for the point where it meets the clip circle."""
    a_inside = a[0] > cos_clip
    lo = np.zeros(a.shape[1])
    hi = np.ones(a.shape[1])
    for _ in range(_BISECT_ITERATIONS):
        mid = (lo + hi) / 2
        p = a * (1 - mid) + b * mid
        inside = p[0] / np.maximum(np.linalg.norm(p, axis=0), _EPSILON) > cos_clip
        same = inside == a_inside
        lo = np.where(same, mid, lo)
        hi = np.where(same, hi, mid)
    t = (lo + hi) / 2
    p = a * (1 - t) + b * t
    return p / np.maximum(np.linalg.norm(p, axis=0), _EPSILON)


def _circle_arc(radius: float, p_from: np.ndarray, p_to: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    t0 = math.atan2(p_from[2], p_from[1])
    t1 = math.atan2(p_to[2], p_to[1])
    delta = math.remainder(t1 - t0, 2 * math.pi)
    count = max(2, int(math.ceil(abs(delta) / _EDGE_STEP)) + 1)
    return _circle_points(radius, np.linspace(t0, t0 + delta, count))


def _clip_circle(lam: np.ndarray, phi: np.ndarray, clip_angle: float, *, closed: bool, polygon: bool) -> list[_Run]:
    radius = math.radians(clip_angle)
    cos_clip = math.cos(radius)
    visible = np.cos(lam) * np.cos(phi) > cos_clip
    if visible.all():
        return [_Run(lam, phi, closed)]
    if not visible.any():
        return []

    vec = _cartesian(lam, phi)
    changes = np.flatnonzero(visible[:-1] != visible[1:])
    crossing_points = _circle_crossings(vec[:, changes], vec[:, changes + 1], cos_clip)
    crossing_at = {int(c): crossing_points[:, k] for k, c in enumerate(changes)}

    pieces: list[list[np.ndarray]] = []
    current: list[np.ndarray] | None = None
    for i in range(lam.size):
        if visible[i]:
            if current is None:
                current = []
                pieces.append(current)
            current.append(vec[:, i])
        if i in crossing_at:
            point = crossing_at[i]
            if visible[i]:
                pieces[-1].append(point)
                current = None
            else:
                current = [point]
                pieces.append(current)

    if closed and visible[0] and len(pieces) > 1:
        tail = pieces.pop()
        pieces[0] = tail + pieces[0][1:]

    runs: list[_Run] = []
    for piece in pieces:
        if len(piece) < 2:
            continue
        stacked = np.stack(piece, axis=1)
        p_lam, p_phi = _spherical(stacked)
        if polygon:
            arc_lam, arc_phi = _circle_arc(radius, stacked[:, -1], stacked[:, 0])
            p_lam = np.concatenate([p_lam, arc_lam[1:]])
            p_phi = np.concatenate([p_phi, arc_phi[1:]])
        runs.append(_Run(p_lam, p_phi, False))
    return runs
