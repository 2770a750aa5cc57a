"""Toolbar state: projection selector, legend toggle, year slider and export action."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Sequence

from .projections import additional_projection_names, get_spec, primary_projection_names


def projection_options() -> tuple[str, ...]:
    """Selector entries with the primary projections listed first."""
    return (*primary_projection_names(), *additional_projection_names())


def clamp_year(year: int, bounds: tuple[int, int] | None) -> int:
    if bounds is None:
        return year
    lo, hi = bounds
    return min(max(year, lo), hi)


def export_filename(year: int | None) -> str:
    return "map.svg" if year is None else f"map_{year}.svg"


@dataclass(frozen=True, slots=True)
class ToolbarState:
    current_projection: str
    years: tuple[int, ...] = ()
    selected_year: int | None = None
    latest: bool = False
    legend_visible: bool = True
    options: tuple[str, ...] = field(default_factory=projection_options)

    @classmethod
    def for_years(cls, projection: str, years: Sequence[int]) -> ToolbarState:
        ordered = tuple(sorted(set(years)))
        return cls(
            current_projection=projection,
            years=ordered,
            selected_year=ordered[-1] if ordered else None,
        )

    @property
    def year_bounds(self) -> tuple[int, int] | None:
        if not self.years:
            return None
        return (self.years[0], self.years[-1])

    @property
    def export_filename(self) -> str:
        return export_filename(self.selected_year)

    def with_projection(self, name: str) -> ToolbarState:
        get_spec(name)
        return replace(self, current_projection=name)

    def with_year(self, year: int) -> ToolbarState:
        return replace(self, selected_year=clamp_year(year, self.year_bounds))

    def with_latest(self, latest: bool) -> ToolbarState:
        return replace(self, latest=latest)

    def with_years(self, years: Sequence[int]) -> ToolbarState:
        """Adopt a new year range, keeping the selected year when it is still in bounds."""
        ordered = tuple(sorted(set(years)))
        if not ordered:
            return replace(self, years=(), selected_year=None)
        selected = self.selected_year
        if selected is None or not ordered[0] <= selected <= ordered[-1]:
            selected = ordered[-1]
        return replace(self, years=ordered, selected_year=selected)

    def toggle_legend(self) -> ToolbarState:
        return replace(self, legend_visible=not self.legend_visible)
