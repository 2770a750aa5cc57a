from __future__ import annotations

import math

import numpy as np
import pytest

from statmap.errors import ProjectionNotFoundError
from statmap.projections import (
    InterpolatedProjection,
    additional_projection_names,
    get_projection,
    get_spec,
    interpolate_projection,
    primary_projection_names,
    projection_names,
)


SAMPLE_LAM = np.radians([-170.0, -90.0, -30.0, 0.0, 45.0, 120.0, 179.0])
SAMPLE_PHI = np.radians([-80.0, -45.0, 10.0, 0.0, 30.0, 60.0, 85.0])


def test_registry_lists_primary_projections_first() -> None:
    names = projection_names()
    primary = primary_projection_names()
    assert len(names) >= 40
    assert names[: len(primary)] == primary
    assert "Mollweide" in primary
    assert "Orthographic" in primary
    assert set(additional_projection_names()).isdisjoint(primary)
    assert len(set(names)) == len(names)


def test_unknown_projection_raises() -> None:
    with pytest.raises(ProjectionNotFoundError) as excinfo:
        get_spec("Dymaxion")
    assert excinfo.value.name == "Dymaxion"
    assert "Dymaxion" in str(excinfo.value)
    with pytest.raises(KeyError):
        get_projection("Dymaxion")


def test_raw_projections_are_cached() -> None:
    assert get_projection("Robinson") is get_projection("Robinson")


def test_equirectangular_is_identity_on_unit_sphere() -> None:
    raw = get_projection("Equirectangular (plate carrée)")
    x, y = raw(0.5, 0.25)
    assert isinstance(x, float)
    assert x == pytest.approx(0.5)
    assert y == pytest.approx(0.25)


def test_array_input_is_vectorized() -> None:
    raw = get_projection("Mollweide")
    x, y = raw(SAMPLE_LAM, SAMPLE_PHI)
    assert x.shape == SAMPLE_LAM.shape
    assert np.all(np.isfinite(x)) and np.all(np.isfinite(y))
    assert raw(0.0, 0.0) == pytest.approx((0.0, 0.0), abs=1e-12)


def test_orthographic_is_defined_on_the_far_side() -> None:
    raw = get_projection("Orthographic")
    x, y = raw(np.array([math.pi * 0.9]), np.array([0.0]))
    assert x[0] == pytest.approx(math.sin(math.pi * 0.9))
    assert y[0] == pytest.approx(0.0)
    assert raw(0.3, 0.2) == pytest.approx((math.cos(0.2) * math.sin(0.3), math.sin(0.2)))
    assert get_spec("Orthographic").clip_angle == 90.0


@pytest.mark.parametrize("source", ["Orthographic", "Stereographic", "Azimuthal Equal Area", "Azimuthal Equidistant"])
def test_blend_from_clipped_projection_is_continuous_near_target(source: str) -> None:
    target = get_projection("Mollweide")
    blend = interpolate_projection(get_projection(source), target)
    lam, phi = math.radians(150.0), math.radians(10.0)
    tx, ty = target(lam, phi)
    previous = None
    for alpha in (0.5, 0.9, 0.99, 0.999999):
        x, y = blend.alpha(alpha)(lam, phi)
        assert math.isfinite(x) and math.isfinite(y)
        distance = math.hypot(x - tx, y - ty)
        if previous is not None:
            assert distance < previous
        previous = distance
    assert previous == pytest.approx(0.0, abs=1e-4)


def test_azimuthal_radial_scales() -> None:
    lam, phi = math.radians(60.0), 0.0
    assert get_projection("Stereographic")(lam, phi)[0] == pytest.approx(math.tan(lam / 2))
    assert get_projection("Azimuthal Equidistant")(lam, phi)[0] == pytest.approx(lam)
    assert get_projection("Azimuthal Equal Area")(lam, phi)[0] == pytest.approx(2 * math.sin(lam / 2))
    assert get_projection("Azimuthal Equidistant")(0.0, 0.0) == pytest.approx((0.0, 0.0))


@pytest.mark.parametrize(
    "source, target",
    [
        ("Mollweide", "Equal Earth"),
        ("Robinson", "Winkel tripel"),
        ("Natural Earth", "Equirectangular (plate carrée)"),
        ("Aitoff", "Mollweide"),
    ],
)
def test_interpolation_endpoints_match_inputs(source: str, target: str) -> None:
    a = get_projection(source)
    b = get_projection(target)
    blend = interpolate_projection(a, b)
    ax, ay = a(SAMPLE_LAM, SAMPLE_PHI)
    bx, by = b(SAMPLE_LAM, SAMPLE_PHI)

    x0, y0 = blend.alpha(0)(SAMPLE_LAM, SAMPLE_PHI)
    np.testing.assert_allclose(x0, ax)
    np.testing.assert_allclose(y0, ay)

    x1, y1 = blend.alpha(1)(SAMPLE_LAM, SAMPLE_PHI)
    np.testing.assert_allclose(x1, bx)
    np.testing.assert_allclose(y1, by)

    xm, ym = blend.alpha(0.5)(SAMPLE_LAM, SAMPLE_PHI)
    np.testing.assert_allclose(xm, (ax + bx) / 2)
    np.testing.assert_allclose(ym, (ay + by) / 2)


def test_alpha_accessor_is_chainable() -> None:
    blend = InterpolatedProjection(lambda lam, phi: (lam, phi), lambda lam, phi: (2 * lam, 2 * phi))
    assert blend.alpha() == 0.0
    assert blend.alpha(0.25) is blend
    assert blend.alpha() == 0.25
    assert blend(1.0, 2.0) == pytest.approx((1.25, 2.5))
