"""Map panel: composes data, scales, geometry and the controller into one rendered map."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Callable, Sequence

from .config import AppConfig
from .controller import MapController
from .legend import build_legend, legend_title
from .models import Indicator, IndicatorDataPoint, IndicatorSource, RegionValue, ThemeColors
from .processing import available_years, calculate_global_extent, process_region_data
from .regions import RegionCodeTable, load_region_table
from .scales import (
    ClassificationThresholds,
    LegendConfig,
    analyze_data_for_map,
    create_color_scale,
    create_palette_scale,
    create_size_scale,
    should_use_choropleth,
)
from .scheduler import FrameScheduler, ManualFrameScheduler
from .svg import (
    HATCH_FILL,
    MapScene,
    SvgElement,
    circle_symbol_path,
    color_gradient,
    estimate_text_width,
    export_svg,
    hatch_pattern,
    new_scene,
    render_svg,
    wrap_text,
)
from .toolbar import ToolbarState
from .tooltip import TooltipContent, tooltip_content
from .topology import GeometrySource, WorldTopology, compute_region_centroids
from .util import write_text


_LOGGER = logging.getLogger("statmap.panel")

_TITLE_FONT_SIZE = 18.0
_TITLE_TOP = 40.0
_TITLE_MAX_WIDTH = 600.0
_ATTRIBUTION_FONT_SIZE = 12.0
_ATTRIBUTION_BOTTOM = 15.0
_GRADIENT_STOPS = 11
_REGION_STROKE_WIDTH = 0.3
_SYMBOL_STROKE_WIDTH = 1


class MapPanel:
    """One indicator on one map, with the toolbar state a host UI would bind to.

    Derived values (years, global extent, region data, legend config and
    scales) are recomputed from the current records and toolbar state; the
    global extent only changes when the records do. `update_visualization`
    never raises: failures are logged and kept in `error` so the host can
    show them and retry.
    """

    def __init__(
        self,
        cfg: AppConfig,
        *,
        records: Sequence[IndicatorDataPoint] = (),
        indicator: Indicator | None = None,
        scheduler: FrameScheduler | None = None,
        geometry: GeometrySource | None = None,
        table: RegionCodeTable | None = None,
        projection: str | None = None,
        choropleth: bool | None = None,
        title: str | None = None,
    ) -> None:
        self.cfg = cfg
        self.theme = ThemeColors(foreground=cfg.theme.foreground, background=cfg.theme.background)
        self.labels = cfg.labels
        self.thresholds = ClassificationThresholds.from_config(cfg.scales)
        self.geometry = geometry or GeometrySource(
            cfg.paths.geometry,
            object_name=cfg.geometry.object_name,
            timeout_s=cfg.geometry.request_timeout_s,
        )
        self.table = table or load_region_table(cfg.paths.region_codes)
        self.scheduler = scheduler or ManualFrameScheduler()
        self.controller = MapController(cfg.view, self.scheduler, projection)
        self.choropleth_override = choropleth
        self.title_override = title
        self.width = cfg.view.width
        self.height = cfg.view.height
        self.error: str | None = None
        self.records: tuple[IndicatorDataPoint, ...] = ()
        self.indicator: Indicator | None = None
        self.extent: tuple[float | None, float | None] = (None, None)
        self.toolbar = ToolbarState(current_projection=self.controller.projection_name)
        self._centroids: dict[str, tuple[float, float]] | None = None
        self._centroid_source: WorldTopology | None = None
        self.set_data(records, indicator, redraw=False)

    # -- derived values -------------------------------------------------------

    @property
    def years(self) -> tuple[int, ...]:
        return self.toolbar.years

    @property
    def use_choropleth(self) -> bool:
        if self.choropleth_override is not None:
            return self.choropleth_override
        return should_use_choropleth(self.indicator)

    @property
    def region_data(self) -> dict[str, RegionValue]:
        return process_region_data(
            self.records,
            self.toolbar.selected_year,
            self.toolbar.latest,
            self.table,
            feature_id=self.cfg.geometry.feature_id,
        )

    @property
    def legend_config(self) -> LegendConfig:
        values = [record.value for record in self.records if record.value is not None]
        return analyze_data_for_map(values, is_geographic=self.use_choropleth, thresholds=self.thresholds)

    @property
    def unit(self) -> str | None:
        return self.records[0].unit if self.records else None

    @property
    def title(self) -> str:
        if self.title_override is not None:
            return self.title_override
        return self.indicator.name if self.indicator is not None else ""

    @property
    def legend_title(self) -> str:
        return legend_title(self.labels.legend, self.toolbar.selected_year, self.toolbar.latest, self.labels.latest)

    def fill_scale(self) -> Callable[[Any], str]:
        if self.cfg.scales.color_mode == "palette":
            return create_palette_scale(self.legend_config, self.extent)
        return create_color_scale(self.extent, self.theme)

    def size_scale(self) -> Callable[[float], float]:
        return create_size_scale(self.extent, self.cfg.scales.symbol_radius)

    # -- state changes --------------------------------------------------------

    def set_data(
        self,
        records: Sequence[IndicatorDataPoint],
        indicator: Indicator | None = None,
        *,
        redraw: bool = True,
    ) -> bool:
        self.records = tuple(records)
        if indicator is not None:
            self.indicator = indicator
        self.extent = calculate_global_extent(self.records)
        self.toolbar = self.toolbar.with_years(available_years(self.records))
        _LOGGER.debug(
            "Data set: %d records, years=%s, extent=%s",
            len(self.records),
            self.toolbar.year_bounds,
            self.extent,
        )
        return self._redraw() if redraw else True

    def set_year(self, year: int) -> bool:
        self.toolbar = self.toolbar.with_year(year)
        return self._redraw()

    def set_latest(self, latest: bool) -> bool:
        self.toolbar = self.toolbar.with_latest(latest)
        return self._redraw()

    def toggle_legend(self) -> bool:
        self.toolbar = self.toolbar.toggle_legend()
        return self._redraw()

    def change_projection(self, name: str) -> bool:
        changed = self.controller.change_projection(name)
        if changed:
            self.toolbar = self.toolbar.with_projection(name)
        return changed

    def resize(self, width: int, height: int) -> bool:
        if width <= 0 or height <= 0:
            raise ValueError("Panel size must be positive")
        self.width, self.height = width, height
        if not self.controller.resize(width, height):
            return False
        _LOGGER.debug("Panel resized to %dx%d", width, height)
        return self.update_visualization()

    def _redraw(self) -> bool:
        if self.controller.scene is None:
            return True
        return self.update_visualization()

    # -- rendering ------------------------------------------------------------

    def update_visualization(self) -> bool:
        """Build the scene for the current state and draw it; False when it failed."""
        try:
            topology = self.geometry.load()
            scene = self._build_scene(topology)
            self.controller.set_region_data(self.region_data)
            self.controller.attach_scene(scene)
        except Exception as exc:
            _LOGGER.error("Error during visualization update: %s", exc)
            self.error = str(exc) or "Failed to load map"
            return False
        self.error = None
        return True

    def _centroids_for(self, topology: WorldTopology) -> dict[str, tuple[float, float]]:
        if self._centroids is None or self._centroid_source is not topology:
            self._centroids = compute_region_centroids(topology.features())
            self._centroid_source = topology
        return self._centroids

    def _build_scene(self, topology: WorldTopology) -> MapScene:
        width, height = self.width, self.height
        theme = self.theme
        region_data = self.region_data
        choropleth = self.use_choropleth
        fill = self.fill_scale()

        scene = new_scene(width, height, theme)
        scene.choropleth = choropleth
        root = scene.root

        defs = root.append(SvgElement("defs"))
        defs.append(hatch_pattern(theme))
        lo, hi = self.extent
        if lo is not None and hi is not None:
            stops = [fill(lo + (hi - lo) * i / (_GRADIENT_STOPS - 1)) for i in range(_GRADIENT_STOPS)]
            defs.append(color_gradient(stops))

        if self.title:
            root.append(self._title_group(self.title, width))
        if self.indicator is not None and self.indicator.sources:
            root.append(self._attribution_group(self.indicator.sources[0], width, height))

        root.append(scene.map_group)
        regions = scene.map_group.append(SvgElement("g", {"class": "regions"}))
        for region in topology.features():
            info = region_data.get(region.id)
            if info is None:
                region_fill = HATCH_FILL
            elif choropleth:
                region_fill = fill(info.value)
            else:
                region_fill = "none"
            element = regions.append(
                SvgElement(
                    "path",
                    {
                        "class": "region",
                        "data-id": region.id,
                        "d": "",
                        "fill": region_fill,
                        "stroke": theme.foreground,
                        "stroke-width": _REGION_STROKE_WIDTH,
                        "cursor": "pointer" if info is not None else "default",
                    },
                )
            )
            scene.region_paths[region.id] = element
            scene.region_features[region.id] = region

        if not choropleth:
            self._add_symbols(scene, topology, region_data)

        scene.graticule = scene.map_group.append(
            SvgElement(
                "path",
                {
                    "class": "graticule",
                    "d": "",
                    "fill": "none",
                    "stroke": theme.foreground,
                    "stroke-width": 0.2,
                    "stroke-opacity": 0.3,
                },
            )
        )

        if self.toolbar.legend_visible and self.records:
            legend = build_legend(
                title=self.legend_title,
                config=self.legend_config,
                extent=self.extent,
                theme=theme,
                map_height=height,
                choropleth=choropleth,
                fill_scale=fill,
                size_scale=self.size_scale(),
                unit=self.unit,
                missing_label=self.labels.missing_values,
            )
            if legend is not None:
                scene.legend = root.append(legend)
        return scene

    def _add_symbols(self, scene: MapScene, topology: WorldTopology, region_data: dict[str, RegionValue]) -> None:
        centroids = self._centroids_for(topology)
        size = self.size_scale()
        group = scene.map_group.append(SvgElement("g", {"class": "symbols"}))
        ordered = sorted(
            (region_id for region_id in scene.region_paths if region_id in region_data),
            key=lambda region_id: region_data[region_id].value,
            reverse=True,
        )
        for region_id in ordered:
            radius = size(region_data[region_id].value)
            scene.symbol_paths[region_id] = group.append(
                SvgElement(
                    "path",
                    {
                        "class": "region-point",
                        "data-id": region_id,
                        "transform": "translate(0,0)",
                        "d": circle_symbol_path(math.pi * radius * radius),
                        "fill": self.theme.foreground,
                        "stroke": self.theme.background,
                        "stroke-width": _SYMBOL_STROKE_WIDTH,
                        "cursor": "pointer",
                    },
                )
            )
            if region_id in centroids:
                scene.symbol_anchors[region_id] = centroids[region_id]

    def _title_group(self, title: str, width: int) -> SvgElement:
        group = SvgElement("g", {"class": "map-title", "transform": f"translate({width / 2:g},{_TITLE_TOP:g})"})
        lines = wrap_text(title, min(width * 0.8, _TITLE_MAX_WIDTH), _TITLE_FONT_SIZE)
        text_width = max((estimate_text_width(line, _TITLE_FONT_SIZE) for line in lines), default=0.0)
        text_height = _TITLE_FONT_SIZE * (1 + 1.2 * (len(lines) - 1))
        group.append(
            SvgElement(
                "rect",
                {
                    "x": -text_width / 2 - 10,
                    "y": -_TITLE_FONT_SIZE / 2 - 5,
                    "width": text_width + 20,
                    "height": text_height + 10,
                    "fill": self.theme.background,
                    "fill-opacity": 0.8,
                    "rx": 4,
                    "ry": 4,
                },
            )
        )
        text = group.append(
            SvgElement(
                "text",
                {
                    "text-anchor": "middle",
                    "font-size": "18px",
                    "font-weight": "bold",
                    "fill": self.theme.foreground,
                },
            )
        )
        for idx, line in enumerate(lines):
            text.append(SvgElement("tspan", {"x": 0, "dy": "0.35em" if idx == 0 else "1.2em"}, text=line))
        return group

    def _attribution_group(self, source: IndicatorSource, width: int, height: int) -> SvgElement:
        label = f"{self.labels.source}: {source.name}"
        group = SvgElement(
            "g",
            {"class": "attribution", "transform": f"translate({width / 2:g},{height - _ATTRIBUTION_BOTTOM:g})"},
        )
        text_width = estimate_text_width(label, _ATTRIBUTION_FONT_SIZE)
        group.append(
            SvgElement(
                "rect",
                {
                    "x": -text_width / 2 - 5,
                    "y": -_ATTRIBUTION_FONT_SIZE / 2 - 3,
                    "width": text_width + 10,
                    "height": _ATTRIBUTION_FONT_SIZE + 6,
                    "fill": self.theme.background,
                    "fill-opacity": 0.8,
                    "rx": 3,
                    "ry": 3,
                },
            )
        )
        text = SvgElement(
            "text",
            {
                "text-anchor": "middle",
                "font-size": "12px",
                "fill": self.theme.foreground,
                "opacity": 0.8,
                "dy": "0.35em",
            },
            text=label,
        )
        if source.url:
            link = group.append(
                SvgElement("a", {"href": source.url, "target": "_blank", "rel": "noopener noreferrer"})
            )
            link.append(text)
        else:
            group.append(text)
        return group

    # -- output ---------------------------------------------------------------

    def render_svg(self) -> str:
        if self.controller.scene is None:
            raise RuntimeError("Map has not been rendered yet")
        return render_svg(self.controller.scene)

    def export_svg(self, path: Path | None = None) -> Path:
        """Write the export form of the current map; defaults to `map_<year>.svg` in the output dir."""
        if self.controller.scene is None:
            raise RuntimeError("Map has not been rendered yet")
        target = path or (self.cfg.paths.output_dir / self.toolbar.export_filename)
        write_text(target, export_svg(self.controller.scene))
        _LOGGER.info("Map exported to %s", target)
        return target

    def tooltip(self) -> TooltipContent | None:
        hovered = self.controller.hovered
        if hovered is None:
            return None
        return tooltip_content(hovered, self.labels)
