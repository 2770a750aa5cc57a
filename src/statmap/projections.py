"""Projection registry backed by PROJ, plus the projection interpolator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Mapping

import numpy as np

from .errors import ProjectionNotFoundError


_LOGGER = logging.getLogger("statmap.projections")

# (lam, phi) in radians -> (x, y) on the unit sphere, y pointing north.
RawProjection = Callable[[Any, Any], tuple[Any, Any]]

# PROJ reports failures as HUGE_VAL; anything this large is treated as unrepresentable.
_INVALID_LIMIT = 1e20


@dataclass(frozen=True, slots=True)
class ProjectionSpec:
    name: str
    proj: str
    params: tuple[tuple[str, float], ...] = ()
    clip_angle: float | None = None
    primary: bool = False

    def proj_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"proj": self.proj, "R": 1.0}
        params.update(dict(self.params))
        return params


_PROJECTION_SPECS: tuple[ProjectionSpec, ...] = (
    ProjectionSpec("Equal Earth", "eqearth", primary=True),
    ProjectionSpec("Natural Earth", "natearth", primary=True),
    ProjectionSpec("Robinson", "robin", primary=True),
    ProjectionSpec("Equirectangular (plate carrée)", "eqc", primary=True),
    ProjectionSpec("Mollweide", "moll", primary=True),
    ProjectionSpec("Winkel tripel", "wintri", primary=True),
    ProjectionSpec("Orthographic", "ortho", clip_angle=90.0, primary=True),
    ProjectionSpec("Aitoff", "aitoff"),
    ProjectionSpec("American polyconic", "poly"),
    ProjectionSpec("August", "august"),
    ProjectionSpec("Boggs' eumorphic", "boggs"),
    ProjectionSpec("Bonne", "bonne", params=(("lat_1", 45.0),)),
    ProjectionSpec("Collignon", "collg"),
    ProjectionSpec("conic equal-area", "aea", params=(("lat_1", 0.0), ("lat_2", 60.0))),
    ProjectionSpec("conic equidistant", "eqdc", params=(("lat_1", 0.0), ("lat_2", 60.0))),
    ProjectionSpec("Craster parabolic", "crast"),
    ProjectionSpec("cylindrical equal-area", "cea", params=(("lat_ts", 38.58),)),
    ProjectionSpec("Eckert I", "eck1"),
    ProjectionSpec("Eckert II", "eck2"),
    ProjectionSpec("Eckert III", "eck3"),
    ProjectionSpec("Eckert IV", "eck4"),
    ProjectionSpec("Eckert V", "eck5"),
    ProjectionSpec("Eckert VI", "eck6"),
    ProjectionSpec("Fahey pseudocylindrical", "fahey"),
    ProjectionSpec("flat-polar parabolic", "mbtfpp"),
    ProjectionSpec("flat-polar quartic", "mbtfpq"),
    ProjectionSpec("flat-polar sinusoidal", "mbtfps"),
    ProjectionSpec("Foucaut's stereographic equivalent", "fouc"),
    ProjectionSpec("Foucaut's sinusoidal", "fouc_s", params=(("n", 0.5),)),
    ProjectionSpec("Ginzburg VIII", "gins8"),
    ProjectionSpec("Goode's homolosine", "goode"),
    ProjectionSpec("Hammer", "hammer"),
    ProjectionSpec("Hatano asymmetrical equal-area", "hatano"),
    ProjectionSpec("Kavrayskiy VII", "kav7"),
    ProjectionSpec("Lagrange conformal", "lagrng"),
    ProjectionSpec("Larrivée", "larr"),
    ProjectionSpec("Laskowski tri-optimal", "lask"),
    ProjectionSpec("Loximuthal", "loxim", params=(("lat_1", 40.0),)),
    ProjectionSpec("Miller cylindrical", "mill"),
    ProjectionSpec("Natural Earth II", "natearth2"),
    ProjectionSpec("Nell–Hammer", "nell_h"),
    ProjectionSpec("Nicolosi globular", "nicol"),
    ProjectionSpec("Patterson cylindrical", "patterson"),
    ProjectionSpec("rectangular polyconic", "rpoly"),
    ProjectionSpec("sinusoidal", "sinu"),
    ProjectionSpec("Times", "times"),
    ProjectionSpec("Van der Grinten", "vandg"),
    ProjectionSpec("Van der Grinten II", "vandg2"),
    ProjectionSpec("Van der Grinten III", "vandg3"),
    ProjectionSpec("Van der Grinten IV", "vandg4"),
    ProjectionSpec("Wagner IV", "wag4"),
    ProjectionSpec("Wagner VI", "wag6"),
    ProjectionSpec("Wagner VII", "wag7"),
    ProjectionSpec("Azimuthal Equal Area", "laea", clip_angle=179.999),
    ProjectionSpec("Azimuthal Equidistant", "aeqd", clip_angle=179.999),
    ProjectionSpec("Mercator", "merc"),
    ProjectionSpec("Stereographic", "stere", clip_angle=142.0),
    ProjectionSpec("Gall stereographic", "gall"),
)

_SPECS_BY_NAME: Mapping[str, ProjectionSpec] = {spec.name: spec for spec in _PROJECTION_SPECS}


def projection_names() -> tuple[str, ...]:
    """All registered names, primary projections first."""
    return tuple(spec.name for spec in _PROJECTION_SPECS)


def primary_projection_names() -> tuple[str, ...]:
    return tuple(spec.name for spec in _PROJECTION_SPECS if spec.primary)


def additional_projection_names() -> tuple[str, ...]:
    return tuple(spec.name for spec in _PROJECTION_SPECS if not spec.primary)


def get_spec(name: str) -> ProjectionSpec:
    spec = _SPECS_BY_NAME.get(name)
    if spec is None:
        raise ProjectionNotFoundError(name)
    return spec


def _as_result(x: Any, y: Any, scalar: bool) -> tuple[Any, Any]:
    x = np.array(x, dtype=float)
    y = np.array(y, dtype=float)
    invalid = ~np.isfinite(x) | ~np.isfinite(y) | (np.abs(x) > _INVALID_LIMIT) | (np.abs(y) > _INVALID_LIMIT)
    if np.any(invalid):
        x = np.where(invalid, np.nan, x)
        y = np.where(invalid, np.nan, y)
    if scalar:
        return (float(x), float(y))
    return (x, y)


class PyprojRawProjection:
    """Raw projection evaluated through a `pyproj.Proj` on the unit sphere."""

    def __init__(self, spec: ProjectionSpec) -> None:
        self.spec = spec
        self._proj = _require_pyproj_proj()(spec.proj_params())

    @property
    def name(self) -> str:
        return self.spec.name

    def __call__(self, lam: Any, phi: Any) -> tuple[Any, Any]:
        scalar = np.ndim(lam) == 0 and np.ndim(phi) == 0
        if scalar:
            x, y = self._proj(float(lam), float(phi), radians=True)
        else:
            x, y = self._proj(np.asarray(lam, dtype=float), np.asarray(phi, dtype=float), radians=True)
        return _as_result(x, y, scalar)

    def __repr__(self) -> str:
        return f"PyprojRawProjection({self.spec.name!r})"


def _orthographic_radial(cos_c: np.ndarray) -> np.ndarray:
    return np.ones_like(cos_c)


def _stereographic_radial(cos_c: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + cos_c)


def _equal_area_radial(cos_c: np.ndarray) -> np.ndarray:
    return np.sqrt(2.0 / (1.0 + cos_c))


def _equidistant_radial(cos_c: np.ndarray) -> np.ndarray:
    c = np.arccos(np.clip(cos_c, -1.0, 1.0))
    sin_c = np.sin(c)
    return np.where(np.abs(c) < 1e-12, 1.0, c / np.where(sin_c == 0, 1.0, sin_c))


# PROJ rejects the far hemisphere of these; the closed forms are defined on the whole
# sphere so blends toward another projection stay continuous. Clipping happens later.
_AZIMUTHAL_RADIALS: Mapping[str, Callable[[np.ndarray], np.ndarray]] = {
    "ortho": _orthographic_radial,
    "stere": _stereographic_radial,
    "laea": _equal_area_radial,
    "aeqd": _equidistant_radial,
}


class AzimuthalRawProjection:
    """Azimuthal raw projection: a radial scale of the great-circle distance from (0, 0)."""

    def __init__(self, spec: ProjectionSpec, radial: Callable[[np.ndarray], np.ndarray]) -> None:
        self.spec = spec
        self._radial = radial

    @property
    def name(self) -> str:
        return self.spec.name

    def __call__(self, lam: Any, phi: Any) -> tuple[Any, Any]:
        scalar = np.ndim(lam) == 0 and np.ndim(phi) == 0
        lam_arr = np.asarray(lam, dtype=float)
        phi_arr = np.asarray(phi, dtype=float)
        cos_phi = np.cos(phi_arr)
        with np.errstate(divide="ignore", invalid="ignore"):
            k = self._radial(np.cos(lam_arr) * cos_phi)
            x = k * cos_phi * np.sin(lam_arr)
            y = k * np.sin(phi_arr)
        return _as_result(x, y, scalar)

    def __repr__(self) -> str:
        return f"AzimuthalRawProjection({self.spec.name!r})"


@lru_cache(maxsize=None)
def get_projection(name: str) -> PyprojRawProjection | AzimuthalRawProjection:
    """Return the raw projection registered under `name`."""
    spec = get_spec(name)
    radial = _AZIMUTHAL_RADIALS.get(spec.proj)
    if radial is not None:
        _LOGGER.debug("Building raw projection %s (closed-form azimuthal)", name)
        return AzimuthalRawProjection(spec, radial)
    _LOGGER.debug("Building raw projection %s (+proj=%s)", name, spec.proj)
    return PyprojRawProjection(spec)


class InterpolatedProjection:
    """Point-wise linear blend of two raw projections controlled by `alpha`."""

    def __init__(self, source: RawProjection, target: RawProjection, alpha: float = 0.0) -> None:
        self.source = source
        self.target = target
        self._alpha = float(alpha)

    def alpha(self, value: float | None = None) -> Any:
        """Return the current alpha, or set it and return the projection."""
        if value is None:
            return self._alpha
        self._alpha = float(value)
        return self

    def __call__(self, lam: Any, phi: Any) -> tuple[Any, Any]:
        t = self._alpha
        if t == 0.0:
            return self.source(lam, phi)
        if t == 1.0:
            return self.target(lam, phi)
        x0, y0 = self.source(lam, phi)
        x1, y1 = self.target(lam, phi)
        return (x0 + t * (x1 - x0), y0 + t * (y1 - y0))

    def __repr__(self) -> str:
        return f"InterpolatedProjection({self.source!r}, {self.target!r}, alpha={self._alpha})"


def interpolate_projection(source: RawProjection, target: RawProjection) -> InterpolatedProjection:
    return InterpolatedProjection(source, target)


@lru_cache(maxsize=1)
def _require_pyproj_proj() -> Any:
    try:
        from pyproj import Proj
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for map projections") from exc
    return Proj
