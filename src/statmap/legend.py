"""Legend fragment for the map scene and legend value formatting."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from .geo import format_number
from .models import ThemeColors
from .scales import LegendConfig, generate_legend_steps
from .svg import HATCH_FILL, SvgElement, circle_symbol_path


_SI_PREFIXES = ("y", "z", "a", "f", "p", "n", "µ", "m", "", "k", "M", "G", "T", "P", "E", "Z", "Y")
_SI_ZERO_INDEX = 8

PROPORTIONAL_FRACTIONS = (0.0, 0.25, 0.5, 0.75, 1.0)


@dataclass(frozen=True, slots=True)
class LegendLayout:
    """Box geometry of the legend in the bottom-left corner of the map."""

    margin_left: float = 20.0
    margin_bottom: float = 40.0
    box_width: float = 160.0
    corner_radius: float = 6.0
    title_x: float = 10.0
    title_y: float = 20.0
    swatch_size: float = 12.0
    swatch_step: float = 16.0
    swatch_top: float = 35.0
    swatch_padding: float = 40.0
    symbol_step: float = 30.0
    symbol_top: float = 40.0
    symbol_center_x: float = 30.0
    symbol_padding: float = 50.0
    max_category_rows: int = 10

    def choropleth_height(self, rows: int) -> float:
        return (rows + 1) * self.swatch_step + self.swatch_padding

    def proportional_height(self, rows: int) -> float:
        return rows * self.symbol_step + self.symbol_padding


DEFAULT_LAYOUT = LegendLayout()


def legend_title(base: str, year: int | None, latest: bool, latest_label: str) -> str:
    if latest or year is None:
        return f"{base} {latest_label}"
    return f"{base} {year}"


def format_si(value: float) -> str:
    """Two significant digits with an SI prefix and trailing zeros removed (1234 -> 1.2k)."""
    if value is None or not math.isfinite(value):
        return ""
    if value == 0:
        return "0"
    exponent = math.floor(math.log10(abs(value)))
    rounded = round(value, -(exponent - 1))
    if rounded != 0:
        exponent = math.floor(math.log10(abs(rounded)))
    index = min(max(exponent // 3, -_SI_ZERO_INDEX), _SI_ZERO_INDEX)
    scaled = rounded / 10 ** (3 * index)
    decimals = max(0, 1 - (exponent - 3 * index))
    text = f"{scaled:.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text == "-0":
        text = "0"
    return text + _SI_PREFIXES[index + _SI_ZERO_INDEX]


def format_value(value: float, unit: str | None = None, digits: int = 1) -> str:
    """Fixed-decimal legend label with an optional unit suffix."""
    text = f"{value:.{digits}f}"
    if text.startswith("-") and float(text) == 0:
        text = text[1:]
    return f"{text} {unit}" if unit else text


def _text(x: float, y: float, content: str, theme: ThemeColors, **attrs: Any) -> SvgElement:
    base = {"x": x, "y": y, "font-size": "11", "fill": theme.foreground}
    base.update(attrs)
    return SvgElement("text", base, text=content)


def _category_value(label: str) -> Any:
    try:
        return float(label)
    except ValueError:
        return label


def build_legend(
    *,
    title: str,
    config: LegendConfig,
    extent: tuple[float | None, float | None],
    theme: ThemeColors,
    map_height: float,
    choropleth: bool,
    fill_scale: Callable[[Any], str],
    size_scale: Callable[[float], float],
    unit: str | None = None,
    missing_label: str = "Missing values",
    layout: LegendLayout = DEFAULT_LAYOUT,
) -> SvgElement | None:
    """Build the `g.legend` group, or None when there is no extent to describe."""
    lo, hi = extent
    if lo is None or hi is None:
        return None
    if choropleth:
        return _choropleth_legend(title, config, theme, map_height, fill_scale, unit, missing_label, layout)
    return _proportional_legend(title, (lo, hi), theme, map_height, size_scale, unit, layout)


def _legend_box(title: str, theme: ThemeColors, box_height: float, map_height: float, layout: LegendLayout) -> SvgElement:
    group = SvgElement(
        "g",
        {
            "class": "legend",
            "transform": (
                f"translate({format_number(layout.margin_left)},"
                f"{format_number(map_height - layout.margin_bottom - box_height)})"
            ),
        },
    )
    group.append(
        SvgElement(
            "rect",
            {
                "width": layout.box_width,
                "height": box_height,
                "fill": theme.background,
                "fill-opacity": 0.8,
                "rx": layout.corner_radius,
                "ry": layout.corner_radius,
            },
        )
    )
    group.append(
        SvgElement(
            "text",
            {
                "class": "legend-title",
                "x": layout.title_x,
                "y": layout.title_y,
                "font-size": "12",
                "font-weight": "600",
                "fill": theme.foreground,
            },
            text=title,
        )
    )
    return group


def _choropleth_rows(config: LegendConfig, unit: str | None, layout: LegendLayout) -> list[tuple[Any, str]]:
    if config.categories is not None:
        labels = config.categories[: layout.max_category_rows]
        return [(_category_value(label), f"{label} {unit}" if unit else label) for label in labels]
    values = list(reversed(generate_legend_steps(config)))
    return [(value, format_value(value, unit)) for value in values]


def _choropleth_legend(
    title: str,
    config: LegendConfig,
    theme: ThemeColors,
    map_height: float,
    fill_scale: Callable[[Any], str],
    unit: str | None,
    missing_label: str,
    layout: LegendLayout,
) -> SvgElement:
    rows = _choropleth_rows(config, unit, layout)
    group = _legend_box(title, theme, layout.choropleth_height(len(rows)), map_height, layout)
    size = layout.swatch_size
    entries: list[tuple[str, str, str]] = [(fill_scale(value), label, "legend-step") for value, label in rows]
    entries.append((HATCH_FILL, missing_label, "legend-missing"))
    for idx, (fill, label, css_class) in enumerate(entries):
        item = group.append(
            SvgElement(
                "g",
                {
                    "class": css_class,
                    "transform": f"translate({format_number(layout.title_x)},"
                    f"{format_number(layout.swatch_top + idx * layout.swatch_step)})",
                },
            )
        )
        item.append(SvgElement("rect", {"width": size, "height": size, "fill": fill}))
        item.append(_text(size + 8, size - 3, label, theme))
    return group


def proportional_steps(extent: tuple[float, float]) -> list[float]:
    lo, hi = extent
    return [lo + (hi - lo) * fraction for fraction in PROPORTIONAL_FRACTIONS]


def _proportional_legend(
    title: str,
    extent: tuple[float, float],
    theme: ThemeColors,
    map_height: float,
    size_scale: Callable[[float], float],
    unit: str | None,
    layout: LegendLayout,
) -> SvgElement:
    steps: Sequence[float] = proportional_steps(extent)
    group = _legend_box(title, theme, layout.proportional_height(len(steps)), map_height, layout)
    for idx, value in enumerate(steps):
        radius = size_scale(value)
        item = group.append(
            SvgElement(
                "g",
                {
                    "class": "legend-step",
                    "transform": f"translate({format_number(layout.symbol_center_x)},"
                    f"{format_number(layout.symbol_top + idx * layout.symbol_step)})",
                },
            )
        )
        item.append(
            SvgElement(
                "path",
                {
                    "d": circle_symbol_path(math.pi * radius * radius),
                    "fill": theme.foreground,
                    "stroke": theme.background,
                    "stroke-width": 1,
                },
            )
        )
        label = format_si(value)
        item.append(
            _text(radius + 15, 0, f"{label} {unit}" if unit else label, theme, **{"dominant-baseline": "middle"})
        )
    return group
