"""SVG element model for the map scene, serialization and export."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from html import escape
from typing import Any, Iterator

from .geo import format_number
from .models import ThemeColors
from .topology import RegionFeature


SVG_NAMESPACE = "http://www.w3.org/2000/svg"
XLINK_NAMESPACE = "http://www.w3.org/1999/xlink"

BACKGROUND_HELPER_CLASS = "background-rect"
HATCH_PATTERN_ID = "hatch"
GRADIENT_ID = "color-gradient"
HATCH_FILL = f"url(#{HATCH_PATTERN_ID})"

# Average glyph advance relative to font size for bold sans-serif titles.
_GLYPH_WIDTH_RATIO = 0.6


@dataclass
class SvgElement:
    tag: str
    attrs: dict[str, Any] = field(default_factory=dict)
    children: list[SvgElement] = field(default_factory=list)
    text: str | None = None

    def append(self, child: SvgElement) -> SvgElement:
        self.children.append(child)
        return child

    def insert(self, index: int, child: SvgElement) -> SvgElement:
        self.children.insert(index, child)
        return child

    def classes(self) -> tuple[str, ...]:
        raw = self.attrs.get("class")
        return tuple(str(raw).split()) if raw else ()

    def has_class(self, name: str) -> bool:
        return name in self.classes()

    def iter(self) -> Iterator[SvgElement]:
        yield self
        for child in self.children:
            yield from child.iter()

    def find_all(self, class_name: str) -> list[SvgElement]:
        return [element for element in self.iter() if element.has_class(class_name)]

    def find(self, class_name: str) -> SvgElement | None:
        for element in self.iter():
            if element.has_class(class_name):
                return element
        return None

    def remove_class(self, class_name: str) -> int:
        """Drop every descendant carrying `class_name`; returns how many were removed."""
        kept = [child for child in self.children if not child.has_class(class_name)]
        removed = len(self.children) - len(kept)
        self.children = kept
        for child in kept:
            removed += child.remove_class(class_name)
        return removed

    def to_xml(self, indent: int = 0) -> str:
        pad = "  " * indent
        attrs = "".join(
            f' {name}="{escape(_attr_text(value), quote=True)}"'
            for name, value in self.attrs.items()
            if value is not None
        )
        if not self.children and self.text is None:
            return f"{pad}<{self.tag}{attrs}/>"
        if not self.children:
            return f"{pad}<{self.tag}{attrs}>{escape(self.text or '', quote=False)}</{self.tag}>"
        lines = [f"{pad}<{self.tag}{attrs}>"]
        if self.text:
            lines.append(f"{pad}  {escape(self.text, quote=False)}")
        lines.extend(child.to_xml(indent + 1) for child in self.children)
        lines.append(f"{pad}</{self.tag}>")
        return "\n".join(lines)


def _attr_text(value: Any) -> str:
    if isinstance(value, float):
        return format_number(value)
    return str(value)


@dataclass
class MapScene:
    """Drawable state of one map: the SVG tree plus handles to projection-dependent elements."""

    width: int
    height: int
    root: SvgElement
    map_group: SvgElement
    world_bounds: SvgElement
    graticule: SvgElement | None = None
    region_paths: dict[str, SvgElement] = field(default_factory=dict)
    region_features: dict[str, RegionFeature] = field(default_factory=dict)
    symbol_paths: dict[str, SvgElement] = field(default_factory=dict)
    symbol_anchors: dict[str, tuple[float, float]] = field(default_factory=dict)
    legend: SvgElement | None = None
    choropleth: bool = True

    def region_ids(self) -> list[str]:
        return list(self.region_paths)


def new_scene(width: int, height: int, theme: ThemeColors) -> MapScene:
    root = SvgElement(
        "svg",
        {
            "xmlns": SVG_NAMESPACE,
            "xmlns:xlink": XLINK_NAMESPACE,
            "viewBox": f"0 0 {width} {height}",
            "width": width,
            "height": height,
        },
    )
    root.append(
        SvgElement(
            "rect",
            {"class": BACKGROUND_HELPER_CLASS, "width": "100%", "height": "100%", "fill": theme.background},
        )
    )
    map_group = SvgElement("g", {"class": "map"})
    world_bounds = SvgElement(
        "path",
        {
            "class": "world-bounds",
            "fill": "none",
            "stroke": theme.foreground,
            "stroke-width": 0.5,
            "stroke-opacity": 1,
            "d": "",
        },
    )
    map_group.append(world_bounds)
    return MapScene(width=width, height=height, root=root, map_group=map_group, world_bounds=world_bounds)


def hatch_pattern(theme: ThemeColors) -> SvgElement:
    pattern = SvgElement(
        "pattern",
        {
            "id": HATCH_PATTERN_ID,
            "patternUnits": "userSpaceOnUse",
            "width": 4,
            "height": 4,
            "fill": theme.background,
        },
    )
    pattern.append(
        SvgElement(
            "path",
            {
                "d": "M-1,1 l2,-2 M0,4 l4,-4 M3,5 l2,-2",
                "stroke": theme.foreground,
                "stroke-width": 0.5,
                "stroke-opacity": 0.5,
            },
        )
    )
    return pattern


def color_gradient(stop_colors: list[str]) -> SvgElement:
    gradient = SvgElement(
        "linearGradient",
        {"id": GRADIENT_ID, "x1": "0%", "x2": "100%", "y1": "0%", "y2": "0%"},
    )
    count = len(stop_colors)
    for idx, color in enumerate(stop_colors):
        offset = 0.0 if count <= 1 else idx / (count - 1)
        gradient.append(SvgElement("stop", {"offset": f"{format_number(offset * 100)}%", "stop-color": color}))
    return gradient


def circle_symbol_path(area: float) -> str:
    """Path data of a circle centred on the origin with the given area."""
    r = math.sqrt(max(area, 0.0) / math.pi)
    rs = format_number(r)
    neg = format_number(-r)
    return f"M{rs},0A{rs},{rs},0,1,1,{neg},0A{rs},{rs},0,1,1,{rs},0"


def translate(point: tuple[float, float] | None) -> str:
    if point is None:
        return "translate(0,0)"
    return f"translate({format_number(point[0])},{format_number(point[1])})"


def wrap_text(text: str, max_width: float, font_size: float = 18.0) -> list[str]:
    """Greedy word wrap using an estimated glyph width."""
    limit = max(1, int(max_width / (font_size * _GLYPH_WIDTH_RATIO)))
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= limit or not current:
            current = candidate
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def estimate_text_width(text: str, font_size: float) -> float:
    return len(text) * font_size * _GLYPH_WIDTH_RATIO


def render_svg(scene: MapScene) -> str:
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + scene.root.to_xml() + "\n"


def export_svg(scene: MapScene) -> str:
    """Serialize a copy with helper backgrounds replaced by one opaque white layer."""
    root = copy.deepcopy(scene.root)
    root.remove_class(BACKGROUND_HELPER_CLASS)
    root.insert(
        0,
        SvgElement(
            "rect",
            {"class": BACKGROUND_HELPER_CLASS, "width": "100%", "height": "100%", "fill": "white"},
        ),
    )
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + root.to_xml() + "\n"
