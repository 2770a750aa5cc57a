"""Map renderer/controller: owns the live projection and its state machine."""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Mapping

from .config import ViewConfig
from .geo import GeoPath, GeoProjection, ProjectionParams, graticule, sphere
from .models import HoveredRegion, RegionValue
from .projections import (
    InterpolatedProjection,
    get_projection,
    get_spec,
    interpolate_projection,
)
from .scheduler import FrameScheduler
from .svg import MapScene, translate


_LOGGER = logging.getLogger("statmap.controller")

# Wheel deltas use the browser pixel convention: 500 px of wheel halves or doubles the scale.
_WHEEL_FACTOR = 0.002
_HOVER_STROKE_WIDTH = 1.5

_NUDGE_DIRECTIONS = {
    "up": (0.0, -1.0),
    "down": (0.0, 1.0),
    "left": (1.0, 0.0),
    "right": (-1.0, 0.0),
}


class MapState(str, Enum):
    IDLE = "idle"
    INTERACTING = "interacting"
    TRANSITIONING = "transitioning"


def ease_cubic_in_out(t: float) -> float:
    t *= 2
    if t <= 1:
        return t * t * t / 2
    t -= 2
    return (t * t * t + 2) / 2


class ProjectionTransition:
    """Drives an interpolated projection's alpha from 0 to 1 over wall-clock time."""

    def __init__(
        self,
        projection: InterpolatedProjection,
        target_name: str,
        start_ms: float,
        duration_ms: float,
    ) -> None:
        self.projection = projection
        self.target_name = target_name
        self.start_ms = start_ms
        self.duration_ms = duration_ms
        self.cancelled = False
        self.frames = 0

    def progress(self, now_ms: float) -> float:
        if self.duration_ms <= 0:
            return 1.0
        return min(max((now_ms - self.start_ms) / self.duration_ms, 0.0), 1.0)

    def step(self, now_ms: float) -> float:
        """Advance to `now_ms`; returns the eased alpha applied to the projection."""
        t = self.progress(now_ms)
        alpha = 1.0 if t >= 1.0 else ease_cubic_in_out(t)
        self.projection.alpha(alpha)
        self.frames += 1
        return alpha

    def is_done(self, now_ms: float) -> bool:
        return self.progress(now_ms) >= 1.0

    def cancel(self) -> None:
        self.cancelled = True


class MapController:
    """Single owner of the live projection; every mutation goes through these methods.

    Interaction input mutates rotation or scale and schedules one coalesced
    redraw. A projection change runs a `ProjectionTransition` on frame callbacks
    and finishes by swapping in the plain target projection at the same scale
    and rotation. Input that arrives before a scene is attached, or while a
    transition runs, is ignored.
    """

    def __init__(
        self,
        view: ViewConfig,
        scheduler: FrameScheduler,
        projection_name: str | None = None,
    ) -> None:
        self.view = view
        self.scheduler = scheduler
        self.projection_name = projection_name or view.default_projection
        get_spec(self.projection_name)
        self.state = MapState.IDLE
        self.projection: GeoProjection | None = None
        self.scene: MapScene | None = None
        self.width = view.width
        self.height = view.height
        self.region_data: Mapping[str, RegionValue] = {}
        self.hovered: HoveredRegion | None = None
        self.redraw_count = 0
        self._hover_id: str | None = None
        self._pending_frame: int | None = None
        self._transition: ProjectionTransition | None = None
        self._transition_frame: int | None = None
        self._graticule = graticule(view.graticule_step_deg)

    # -- projection lifecycle -------------------------------------------------

    @property
    def base_scale(self) -> float:
        return self.width / self.view.scale_divisor

    @property
    def target_projection_name(self) -> str:
        if self._transition is not None:
            return self._transition.target_name
        return self.projection_name

    @property
    def transition(self) -> ProjectionTransition | None:
        return self._transition

    def create_projection(self, width: int, height: int) -> GeoProjection:
        """Build the live projection for a container size, keeping the current rotation."""
        rotation = self.projection.rotate if self.projection is not None else (0.0, 0.0, 0.0)
        spec = get_spec(self.projection_name)
        self.width, self.height = width, height
        self.projection = GeoProjection(
            get_projection(self.projection_name),
            ProjectionParams(
                scale=width / self.view.scale_divisor,
                translate=(width / 2, height / 2),
                rotate=rotation,
                precision=self.view.precision,
                clip_angle=spec.clip_angle,
            ),
        )
        _LOGGER.debug("Projection %s created for %dx%d (rotate=%s)", self.projection_name, width, height, rotation)
        return self.projection

    def attach_scene(self, scene: MapScene) -> None:
        """Adopt a freshly built scene and draw it with the live projection."""
        if self.projection is None or (scene.width, scene.height) != (self.width, self.height):
            self.create_projection(scene.width, scene.height)
        self.scene = scene
        self._hover_id = None
        self.update_region_paths()

    def set_region_data(self, region_data: Mapping[str, RegionValue]) -> None:
        self.region_data = region_data
        if self.hovered is not None and self._hover_id not in region_data:
            self.pointer_leave()

    # -- drawing --------------------------------------------------------------

    def schedule_update(self) -> bool:
        """Queue a redraw for the next frame; at most one redraw is ever pending."""
        if self._pending_frame is not None:
            return False
        self._pending_frame = self.scheduler.request_frame(self._on_frame)
        return True

    @property
    def has_pending_update(self) -> bool:
        return self._pending_frame is not None

    def _on_frame(self, now_ms: float) -> None:
        self._pending_frame = None
        self.update_region_paths()

    def update_region_paths(self) -> None:
        """Recompute every projection-dependent attribute of the scene."""
        scene = self.scene
        projection = self.projection
        if scene is None or projection is None:
            return
        path = GeoPath(projection)
        for region_id, element in scene.region_paths.items():
            feature = scene.region_features.get(region_id)
            element.attrs["d"] = path(feature.geometry) if feature is not None else ""
        if scene.graticule is not None:
            scene.graticule.attrs["d"] = path(self._graticule)
        scene.world_bounds.attrs["d"] = path(sphere())
        for region_id, element in scene.symbol_paths.items():
            anchor = scene.symbol_anchors.get(region_id)
            point = projection.project_point(*anchor) if anchor is not None else None
            element.attrs["transform"] = translate(point)
        self.redraw_count += 1

    # -- interaction ----------------------------------------------------------

    def _accepts_input(self) -> bool:
        return self.scene is not None and self.projection is not None and self.state != MapState.TRANSITIONING

    def _live_projection(self) -> GeoProjection:
        if self.projection is None:
            raise RuntimeError("Map projection has not been created yet")
        return self.projection

    def _set_params(self, **changes: Any) -> None:
        self.projection = self._live_projection().with_params(**changes)

    def drag(self, dx: float, dy: float) -> bool:
        if not self._accepts_input():
            return False
        lam, phi, gamma = self._live_projection().rotate
        phi = min(max(phi - dy / self.view.drag_sensitivity_y, -90.0), 90.0)
        self._set_params(rotate=(lam + dx / self.view.drag_sensitivity_x, phi, gamma))
        self.state = MapState.INTERACTING
        self.schedule_update()
        return True

    def _apply_zoom(self, factor: float) -> bool:
        projection = self._live_projection()
        if factor <= 0:
            return False
        lo = self.base_scale * self.view.min_zoom
        hi = self.base_scale * self.view.max_zoom
        scale = min(max(projection.scale * factor, lo), hi)
        if scale == projection.scale:
            return False
        self._set_params(scale=scale)
        self.schedule_update()
        return True

    def zoom(self, factor: float) -> bool:
        if not self._accepts_input():
            return False
        self.state = MapState.INTERACTING
        return self._apply_zoom(factor)

    def wheel(self, delta_y: float) -> bool:
        return self.zoom(2.0 ** (-delta_y * _WHEEL_FACTOR))

    def pinch(self, ratio: float) -> bool:
        return self.zoom(ratio)

    def zoom_in(self) -> bool:
        if not self._accepts_input():
            return False
        return self._apply_zoom(self.view.zoom_step)

    def zoom_out(self) -> bool:
        if not self._accepts_input():
            return False
        return self._apply_zoom(1.0 / self.view.zoom_step)

    def nudge(self, direction: str) -> bool:
        """Rotate the globe one step so the view moves toward `direction`."""
        if direction not in _NUDGE_DIRECTIONS:
            raise ValueError(f"Unknown nudge direction: {direction!r}")
        if not self._accepts_input():
            return False
        d_lam, d_phi = _NUDGE_DIRECTIONS[direction]
        lam, phi, gamma = self._live_projection().rotate
        step = self.view.nudge_deg
        phi = min(max(phi + d_phi * step, -90.0), 90.0)
        self._set_params(rotate=(lam + d_lam * step, phi, gamma))
        self.schedule_update()
        return True

    def reset_view(self) -> bool:
        if not self._accepts_input():
            return False
        self._set_params(rotate=(0.0, 0.0, 0.0), scale=self.base_scale)
        self.state = MapState.IDLE
        self.schedule_update()
        return True

    def end_interaction(self) -> None:
        if self.state == MapState.INTERACTING:
            self.state = MapState.IDLE

    # -- projection change ----------------------------------------------------

    def change_projection(self, name: str) -> bool:
        """Start an animated change to `name`; returns False when nothing changes."""
        if name == self.target_projection_name:
            return False
        get_spec(name)
        if self._transition is not None:
            self._cancel_transition()
        if self.scene is None or self.projection is None:
            self.projection_name = name
            if self.projection is not None:
                self.create_projection(self.width, self.height)
            return True

        source = get_projection(self.projection_name)
        target = get_projection(name)
        interpolated = interpolate_projection(source, target)
        self.projection = self.projection.with_raw(interpolated).with_params(
            clip_angle=get_spec(name).clip_angle
        )
        self._transition = ProjectionTransition(
            interpolated,
            target_name=name,
            start_ms=self.scheduler.now(),
            duration_ms=self.view.transition_ms,
        )
        self.state = MapState.TRANSITIONING
        if self._pending_frame is not None:
            self.scheduler.cancel_frame(self._pending_frame)
            self._pending_frame = None
        self._transition_frame = self.scheduler.request_frame(self._on_transition_frame)
        _LOGGER.debug("Transition %s -> %s started", self.projection_name, name)
        return True

    def _on_transition_frame(self, now_ms: float) -> None:
        self._transition_frame = None
        transition = self._transition
        if transition is None or transition.cancelled:
            return
        try:
            transition.step(now_ms)
            if transition.is_done(now_ms):
                self._finish_transition()
                return
            self.update_region_paths()
        except Exception:
            _LOGGER.warning("Transition to %s failed; jumping to it", transition.target_name)
            self._cancel_transition()
            raise
        self._transition_frame = self.scheduler.request_frame(self._on_transition_frame)

    def _swap_to_target(self, transition: ProjectionTransition) -> None:
        projection = self._live_projection()
        transition.projection.alpha(1.0)
        self.projection_name = transition.target_name
        self.projection = projection.with_raw(get_projection(transition.target_name))
        self._transition = None
        self.state = MapState.IDLE

    def _finish_transition(self) -> None:
        transition = self._transition
        if transition is None:
            return
        self._swap_to_target(transition)
        _LOGGER.debug("Transition to %s finished after %d frames", self.projection_name, transition.frames)
        self.update_region_paths()

    def _cancel_transition(self) -> None:
        transition = self._transition
        if transition is None:
            return
        transition.cancel()
        if self._transition_frame is not None:
            self.scheduler.cancel_frame(self._transition_frame)
            self._transition_frame = None
        self._swap_to_target(transition)
        _LOGGER.debug("Transition to %s cancelled; target applied", transition.target_name)

    # -- resize ---------------------------------------------------------------

    def resize(self, width: int, height: int) -> bool:
        """Rebuild the projection for a new container size, keeping rotation."""
        if self.scene is None or self.projection is None:
            _LOGGER.debug("Resize to %dx%d ignored before first render", width, height)
            return False
        self._cancel_transition()
        self.state = MapState.IDLE
        self.create_projection(width, height)
        self.scene.width, self.scene.height = width, height
        self.scene.root.attrs.update({"viewBox": f"0 0 {width} {height}", "width": width, "height": height})
        self.update_region_paths()
        return True

    # -- hover ----------------------------------------------------------------

    def pointer_enter(self, region_id: str, x: float, y: float) -> HoveredRegion | None:
        info = self.region_data.get(region_id)
        if info is None:
            self.pointer_leave()
            return None
        self._highlight(self._hover_id, on=False)
        self._hover_id = region_id
        self._highlight(region_id, on=True)
        self.hovered = HoveredRegion(
            name=info.name,
            value=info.value,
            x=x,
            y=y,
            unit=info.unit,
            source=info.source,
        )
        return self.hovered

    def pointer_move(self, x: float, y: float) -> HoveredRegion | None:
        if self.hovered is None:
            return None
        self.hovered = replace(self.hovered, x=x, y=y)
        return self.hovered

    def pointer_leave(self) -> None:
        self._highlight(self._hover_id, on=False)
        self._hover_id = None
        self.hovered = None

    def _highlight(self, region_id: str | None, *, on: bool) -> None:
        if region_id is None or self.scene is None:
            return
        region = self.scene.region_paths.get(region_id)
        if region is not None:
            region.attrs["stroke-width"] = _HOVER_STROKE_WIDTH if on else region.attrs.get("data-stroke-width", 0.3)
        symbol = self.scene.symbol_paths.get(region_id)
        if symbol is not None:
            symbol.attrs["stroke-width"] = _HOVER_STROKE_WIDTH if on else 1
