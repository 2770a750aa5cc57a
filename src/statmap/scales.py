"""Legend configuration, palettes and value-to-colour/size scales."""

from __future__ import annotations

import colorsys
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Mapping, Sequence

from .config import ScalesConfig
from .models import Indicator, ThemeColors


VISUAL_CHOROPLETH = "choropleth"
VISUAL_PROPORTIONAL = "proportionalCircle"

SCHEME_CATEGORICAL = "categorical"
SCHEME_SEQUENTIAL = "sequential"
SCHEME_DIVERGING = "diverging"

SCALE_LINEAR = "linear"
SCALE_LOG = "log"

DIST_UNIFORM = "uniform"
DIST_LOGARITHMIC = "logarithmic"
DIST_NORMAL = "normal"
DIST_UNKNOWN = "unknown"

# Continuous fills stay away from the darkest and lightest ends of the theme ramp.
COLOR_RAMP_RANGE = (0.2, 0.8)

_HSL_PATTERN = re.compile(
    r"^\s*hsla?\(\s*(-?[\d.]+)(?:deg)?\s*[, ]\s*([\d.]+)%\s*[, ]\s*([\d.]+)%\s*(?:[,/]\s*[\d.]+%?\s*)?\)\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class MeasureScale:
    visual_encoding: str


MEASURE_SCALES: Mapping[str, MeasureScale] = {
    "nominal": MeasureScale(visual_encoding="fill_color"),
    "ordinal": MeasureScale(visual_encoding="fill_color"),
    "interval": MeasureScale(visual_encoding="fill_color"),
    # Absolute counts (population, schools) read better as sized symbols.
    "ratio_count": MeasureScale(visual_encoding="symbol_size"),
    "ratio_index": MeasureScale(visual_encoding="fill_color"),
}


@dataclass(frozen=True, slots=True)
class ClassificationThresholds:
    uniform_bins: int = 10
    uniform_max_buckets: int = 3
    log_ratio_threshold: float = 10.0
    default_steps: int = 5

    @classmethod
    def from_config(cls, cfg: ScalesConfig) -> ClassificationThresholds:
        return cls(
            uniform_bins=cfg.uniform_bins,
            uniform_max_buckets=cfg.uniform_max_buckets,
            log_ratio_threshold=cfg.log_ratio_threshold,
            default_steps=cfg.legend_steps,
        )


DEFAULT_THRESHOLDS = ClassificationThresholds()


@dataclass(frozen=True, slots=True)
class LegendConfig:
    visual_type: str
    color_scheme: str
    scale_type: str
    range: tuple[float, float]
    distribution: str
    categories: tuple[str, ...] | None
    steps: int

    @property
    def is_categorical(self) -> bool:
        return self.color_scheme == SCHEME_CATEGORICAL


def should_use_choropleth(indicator: Indicator | None) -> bool:
    """Explicit indicator flag first, then the measure scale's visual encoding."""
    if indicator is None:
        return True
    if indicator.use_choropleth is not None:
        return indicator.use_choropleth
    scale = MEASURE_SCALES.get(indicator.measure_scale or "")
    if scale is not None:
        return scale.visual_encoding == "fill_color"
    return True


def category_label(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _is_uniform(values: Sequence[float], thresholds: ClassificationThresholds) -> bool:
    lo, hi = min(values), max(values)
    span = hi - lo
    if span <= 0:
        return True
    bins = thresholds.uniform_bins
    buckets = {min(int((v - lo) / span * bins), bins - 1) for v in values}
    return len(buckets) <= thresholds.uniform_max_buckets


def _is_log_distributed(values: Sequence[float], thresholds: ClassificationThresholds) -> bool:
    logs = [math.log(abs(v) + 1) for v in values]
    lo, hi = min(logs), max(logs)
    if lo <= 0:
        return hi > 0
    return hi / lo > thresholds.log_ratio_threshold


def _distribution(values: Sequence[float], thresholds: ClassificationThresholds) -> str:
    if not values:
        return DIST_UNKNOWN
    if _is_uniform(values, thresholds):
        return DIST_UNIFORM
    if _is_log_distributed(values, thresholds):
        return DIST_LOGARITHMIC
    return DIST_NORMAL


def analyze_data_for_map(
    values: Sequence[Any],
    is_geographic: bool = True,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> LegendConfig:
    """Derive a legend configuration from the shape of the data.

    Data is categorical when every value is a string, or every value is an
    integer-valued number and none is negative. Numeric distributions are
    classified for every input that has numbers, categorical ones included.
    Empty input produces a flat single-step sequential configuration.
    """
    visual_type = VISUAL_CHOROPLETH if is_geographic else VISUAL_PROPORTIONAL
    present = [v for v in values if v is not None and not (isinstance(v, float) and math.isnan(v))]
    if not present:
        return LegendConfig(
            visual_type=visual_type,
            color_scheme=SCHEME_SEQUENTIAL,
            scale_type=SCALE_LINEAR,
            range=(0.0, 0.0),
            distribution=DIST_UNKNOWN,
            categories=None,
            steps=1,
        )

    numbers = [n for n in (_as_number(v) for v in present) if n is not None]
    all_strings = all(isinstance(v, str) for v in present)
    all_whole = all(
        not isinstance(v, (str, bool)) and _as_number(v) is not None and float(v).is_integer() for v in present
    )
    has_negative = any(n < 0 for n in numbers)
    is_categorical = all_strings or (all_whole and not has_negative)

    value_range = (min(numbers), max(numbers)) if numbers else (0.0, 0.0)
    distribution = _distribution(numbers, thresholds)

    if is_categorical:
        categories = tuple(dict.fromkeys(category_label(v) for v in present))
        return LegendConfig(
            visual_type=visual_type,
            color_scheme=SCHEME_CATEGORICAL,
            scale_type=SCALE_LINEAR,
            range=value_range,
            distribution=distribution,
            categories=categories,
            steps=len(categories),
        )

    color_scheme = SCHEME_SEQUENTIAL
    scale_type = SCALE_LINEAR
    if has_negative:
        color_scheme = SCHEME_DIVERGING
    elif distribution == DIST_LOGARITHMIC:
        scale_type = SCALE_LOG
    return LegendConfig(
        visual_type=visual_type,
        color_scheme=color_scheme,
        scale_type=scale_type,
        range=value_range,
        distribution=distribution,
        categories=None,
        steps=thresholds.default_steps,
    )


def select_color_palette(config: LegendConfig) -> list[str]:
    """Hex colours for the configuration's scheme, sized to its step count."""
    if config.color_scheme == SCHEME_CATEGORICAL:
        return list(_qualitative_colors("tab10")[: max(config.steps, 0)])
    if config.color_scheme == SCHEME_DIVERGING:
        size = config.steps if 3 <= config.steps <= 11 else 9
        return _sample_colormap("RdYlBu", size)
    size = config.steps if 3 <= config.steps <= 9 else 9
    return _sample_colormap("Blues", size)


def generate_legend_steps(config: LegendConfig) -> list[float]:
    if config.categories is not None:
        return [float(i) for i in range(len(config.categories))]

    lo, hi = config.range
    steps = config.steps
    if steps <= 1 or hi == lo:
        return [float(lo)]

    if config.scale_type == SCALE_LOG:
        log_lo = math.log(max(lo, 1.0))
        if hi > 0 and math.log(hi) > log_lo:
            log_hi = math.log(hi)
            return [math.exp(log_lo + (i / (steps - 1)) * (log_hi - log_lo)) for i in range(steps)]

    return [lo + (i / (steps - 1)) * (hi - lo) for i in range(steps)]


def parse_color(value: str) -> tuple[float, float, float]:
    """Parse `hsl(...)`, hex, `rgb(...)` or named colours into RGB floats in [0, 1]."""
    match = _HSL_PATTERN.match(value)
    if match:
        h = float(match.group(1)) % 360.0
        s = min(max(float(match.group(2)) / 100.0, 0.0), 1.0)
        lightness = min(max(float(match.group(3)) / 100.0, 0.0), 1.0)
        return colorsys.hls_to_rgb(h / 360.0, lightness, s)
    rgb_match = re.match(r"^\s*rgba?\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)", value)
    if rgb_match:
        r, g, b = (min(max(float(part) / 255.0, 0.0), 1.0) for part in rgb_match.groups())
        return (r, g, b)
    to_rgb = _require_matplotlib_colors().to_rgb
    try:
        r, g, b = to_rgb(value.strip())
    except ValueError as exc:
        raise ValueError(f"Unrecognized colour: {value!r}") from exc
    return (float(r), float(g), float(b))


def _to_hsl(rgb: tuple[float, float, float]) -> tuple[float, float, float]:
    """HSL with NaN hue for greys and NaN saturation for black and white."""
    h, lightness, s = colorsys.rgb_to_hls(*rgb)
    if max(rgb) == min(rgb):
        hue = math.nan
        sat = 0.0 if 0.0 < lightness < 1.0 else math.nan
        return (hue, sat, lightness)
    return (h * 360.0, s, lightness)


def _hex(rgb: tuple[float, float, float]) -> str:
    r, g, b = (int(round(min(max(c, 0.0), 1.0) * 255)) for c in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def interpolate_hsl(start: str, end: str) -> Callable[[float], str]:
    """HSL interpolator taking the shortest path around the hue circle."""
    h0, s0, l0 = _to_hsl(parse_color(start))
    h1, s1, l1 = _to_hsl(parse_color(end))
    if math.isnan(h0):
        h0 = h1
    if math.isnan(h1):
        h1 = h0
    if math.isnan(s0):
        s0 = s1
    if math.isnan(s1):
        s1 = s0
    dh = h1 - h0
    if dh > 180.0 or dh < -180.0:
        dh -= 360.0 * round(dh / 360.0)

    def interpolate(t: float) -> str:
        h = 0.0 if math.isnan(h0) else (h0 + t * dh) % 360.0
        s = 0.0 if math.isnan(s0) else s0 + t * (s1 - s0)
        lightness = l0 + t * (l1 - l0)
        s = min(max(s, 0.0), 1.0)
        lightness = min(max(lightness, 0.0), 1.0)
        return _hex(colorsys.hls_to_rgb(h / 360.0, lightness, s))

    return interpolate


def create_color_scale(
    extent: tuple[float | None, float | None],
    theme: ThemeColors,
) -> Callable[[float], str]:
    """Map values of the global extent onto the background-to-foreground HSL ramp."""
    lo, hi = extent
    if lo is None or hi is None:
        background = theme.background
        return lambda value: background
    interpolate = interpolate_hsl(theme.background, theme.foreground)
    r0, r1 = COLOR_RAMP_RANGE
    span = hi - lo

    def scale(value: float) -> str:
        if span == 0 or value is None or not math.isfinite(value):
            return interpolate((r0 + r1) / 2)
        return interpolate(r0 + (value - lo) / span * (r1 - r0))

    return scale


def create_palette_scale(
    config: LegendConfig,
    extent: tuple[float | None, float | None],
) -> Callable[[Any], str]:
    """Quantized palette fill: categories by lookup, numbers by position in the extent."""
    palette = select_color_palette(config)
    if not palette:
        palette = _sample_colormap("Blues", 9)
    if config.categories is not None:
        lookup = {label: palette[i % len(palette)] for i, label in enumerate(config.categories)}
        return lambda value: lookup.get(category_label(value), palette[0])

    lo, hi = extent
    middle = palette[len(palette) // 2]
    if lo is None or hi is None or hi == lo:
        return lambda value: middle
    use_log = config.scale_type == SCALE_LOG and hi > 0

    def position(value: float) -> float:
        if use_log:
            base = max(lo, 1e-12)  # type: ignore[type-var]
            top = math.log(hi / base)  # type: ignore[operator]
            if top <= 0:
                return 0.5
            return math.log(max(value, base) / base) / top
        return (value - lo) / (hi - lo)  # type: ignore[operator]

    def scale(value: Any) -> str:
        number = _as_number(value)
        if number is None:
            return middle
        t = min(max(position(number), 0.0), 1.0)
        return palette[min(int(t * len(palette)), len(palette) - 1)]

    return scale


def create_size_scale(
    extent: tuple[float | None, float | None],
    radius_range: tuple[float, float] = (3.0, 15.0),
) -> Callable[[float], float]:
    """Square-root scale from the global extent to symbol radius."""
    r0, r1 = radius_range
    middle = (r0 + r1) / 2
    lo, hi = extent
    if lo is None or hi is None or hi == lo:
        return lambda value: middle

    def signed_sqrt(value: float) -> float:
        return math.copysign(math.sqrt(abs(value)), value)

    d0, d1 = signed_sqrt(lo), signed_sqrt(hi)

    def scale(value: float) -> float:
        if value is None or not math.isfinite(value):
            return r0
        return r0 + (signed_sqrt(value) - d0) / (d1 - d0) * (r1 - r0)

    return scale


def _qualitative_colors(name: str) -> tuple[str, ...]:
    colors = _require_matplotlib_colors()
    cmap = _colormap(name)
    return tuple(colors.to_hex(c) for c in getattr(cmap, "colors", ()))


def _sample_colormap(name: str, size: int) -> list[str]:
    colors = _require_matplotlib_colors()
    cmap = _colormap(name)
    if size <= 1:
        return [colors.to_hex(cmap(0.5))]
    return [colors.to_hex(cmap(i / (size - 1))) for i in range(size)]


def _colormap(name: str) -> Any:
    try:
        import matplotlib
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for colour palettes") from exc
    return matplotlib.colormaps[name]


@lru_cache(maxsize=1)
def _require_matplotlib_colors() -> Any:
    try:
        import matplotlib.colors as mcolors
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for colour parsing") from exc
    return mcolors
