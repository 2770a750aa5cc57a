"""Tooltip content for the hovered region."""

from __future__ import annotations

import math
from dataclasses import dataclass
from html import escape

from .config import LabelsConfig
from .models import HoveredRegion


# (group separator, decimal separator, minimum integer digits before grouping applies)
_NUMBER_SYMBOLS: dict[str, tuple[str, str, int]] = {
    "en": (",", ".", 4),
    "zh": (",", ".", 4),
    "ar": (",", ".", 4),
    "fr": ("\u202f", ",", 4),
    "ru": ("\u00a0", ",", 4),
    "es": (".", ",", 5),
}
_MAX_FRACTION_DIGITS = 3


def _symbols(language: str) -> tuple[str, str, int]:
    base = language.replace("_", "-").split("-", 1)[0].casefold()
    return _NUMBER_SYMBOLS.get(base, _NUMBER_SYMBOLS["en"])


def format_number_for_language(value: float, language: str = "en") -> str:
    """Grouped decimal with at most three fraction digits, using the language's separators."""
    if not math.isfinite(value):
        return "NaN" if math.isnan(value) else ("-∞" if value < 0 else "∞")
    group, decimal, min_grouping = _symbols(language)
    text = f"{abs(value):.{_MAX_FRACTION_DIGITS}f}".rstrip("0").rstrip(".")
    integer, _, fraction = text.partition(".")
    if len(integer) >= min_grouping:
        parts = []
        while len(integer) > 3:
            parts.insert(0, integer[-3:])
            integer = integer[:-3]
        parts.insert(0, integer)
        integer = group.join(parts)
    out = f"{integer}{decimal}{fraction}" if fraction else integer
    if value < 0 and text != "0":
        out = "-" + out
    return out


@dataclass(frozen=True, slots=True)
class TooltipContent:
    region_label: str
    region_name: str
    value_label: str
    value_text: str
    source: str | None
    x: float
    y: float

    def lines(self) -> list[str]:
        out = [f"{self.region_label}: {self.region_name}", f"{self.value_label}: {self.value_text}"]
        if self.source:
            out.append(self.source)
        return out

    def to_html(self) -> str:
        rows = [
            f'<div class="row"><span class="label">{escape(self.region_label)}:</span> '
            f"<span>{escape(self.region_name)}</span></div>",
            f'<div class="row"><span class="label">{escape(self.value_label)}:</span> '
            f"<span>{escape(self.value_text)}</span></div>",
        ]
        if self.source:
            rows.append(f'<div class="source">{escape(self.source)}</div>')
        style = f"left: {self.x:g}px; top: {self.y:g}px"
        return f'<div class="map-tooltip" style="{style}">' + "".join(rows) + "</div>"


def tooltip_content(hovered: HoveredRegion, labels: LabelsConfig) -> TooltipContent:
    value_text = format_number_for_language(hovered.value, labels.language)
    if hovered.unit:
        value_text = f"{value_text} {hovered.unit}"
    return TooltipContent(
        region_label=labels.region,
        region_name=hovered.name,
        value_label=labels.value,
        value_text=value_text,
        source=hovered.source,
        x=hovered.x,
        y=hovered.y,
    )
