from __future__ import annotations

import math

import pytest

from statmap.models import Indicator, ThemeColors
from statmap.scales import (
    DIST_LOGARITHMIC,
    DIST_NORMAL,
    DIST_UNIFORM,
    DIST_UNKNOWN,
    SCALE_LINEAR,
    SCALE_LOG,
    SCHEME_CATEGORICAL,
    SCHEME_DIVERGING,
    SCHEME_SEQUENTIAL,
    VISUAL_CHOROPLETH,
    VISUAL_PROPORTIONAL,
    ClassificationThresholds,
    LegendConfig,
    analyze_data_for_map,
    category_label,
    create_color_scale,
    create_palette_scale,
    create_size_scale,
    generate_legend_steps,
    interpolate_hsl,
    parse_color,
    select_color_palette,
    should_use_choropleth,
)


MONO = ThemeColors(foreground="#000000", background="#ffffff")


def test_negative_values_give_diverging_scheme() -> None:
    config = analyze_data_for_map([-5, 0, 5, 10])
    assert config.color_scheme == SCHEME_DIVERGING
    assert config.scale_type == SCALE_LINEAR
    assert config.range == (-5.0, 10.0)
    assert config.categories is None
    assert config.steps == 5


def test_all_equal_values_are_uniform_and_scale_is_finite() -> None:
    config = analyze_data_for_map([2.5, 2.5, 2.5])
    assert config.distribution == DIST_UNIFORM
    assert config.range == (2.5, 2.5)
    assert generate_legend_steps(config) == [2.5]
    scale = create_color_scale(config.range, MONO)
    assert scale(2.5) == "#808080"


def test_all_equal_whole_numbers_are_categorical_and_uniform() -> None:
    config = analyze_data_for_map([5, 5, 5])
    assert config.color_scheme == SCHEME_CATEGORICAL
    assert config.distribution == DIST_UNIFORM
    assert config.categories == ("5",)


def test_spread_fractional_values_are_normal() -> None:
    config = analyze_data_for_map([1.5, 2.5, 3.5, 4.5, 5.5, 6.5, 7.5, 8.5, 9.5])
    assert config.distribution == DIST_NORMAL
    assert config.color_scheme == SCHEME_SEQUENTIAL
    assert config.scale_type == SCALE_LINEAR


def test_log_spread_values_use_log_scale() -> None:
    config = analyze_data_for_map([0.01, 2.5, 5.5, 8.5, 10.5])
    assert config.distribution == DIST_LOGARITHMIC
    assert config.color_scheme == SCHEME_SEQUENTIAL
    assert config.scale_type == SCALE_LOG


def test_strings_are_categorical() -> None:
    config = analyze_data_for_map(["low", "high", "low"])
    assert config.color_scheme == SCHEME_CATEGORICAL
    assert config.categories == ("low", "high")
    assert config.steps == 2
    assert config.distribution == DIST_UNKNOWN
    assert generate_legend_steps(config) == [0.0, 1.0]


def test_empty_input_gives_flat_config() -> None:
    config = analyze_data_for_map([])
    assert config.range == (0.0, 0.0)
    assert config.distribution == DIST_UNKNOWN
    assert config.steps == 1
    assert generate_legend_steps(config) == [0.0]


def test_visual_type_follows_geography_flag() -> None:
    assert analyze_data_for_map([1.5, 2.5]).visual_type == VISUAL_CHOROPLETH
    assert analyze_data_for_map([1.5, 2.5], is_geographic=False).visual_type == VISUAL_PROPORTIONAL


def test_thresholds_are_configurable() -> None:
    values = [1.5, 2.5, 3.5, 4.5, 5.5, 6.5, 7.5, 8.5, 9.5]
    loose = ClassificationThresholds(uniform_max_buckets=10)
    assert analyze_data_for_map(values, thresholds=loose).distribution == DIST_UNIFORM


def test_log_legend_steps_are_geometric() -> None:
    config = LegendConfig(
        visual_type=VISUAL_CHOROPLETH,
        color_scheme=SCHEME_SEQUENTIAL,
        scale_type=SCALE_LOG,
        range=(1.0, 1000.0),
        distribution=DIST_LOGARITHMIC,
        categories=None,
        steps=4,
    )
    assert generate_legend_steps(config) == pytest.approx([1.0, 10.0, 100.0, 1000.0])


def test_linear_legend_steps_are_even() -> None:
    config = analyze_data_for_map([1.5, 2.5, 3.5, 4.5, 5.5, 6.5, 7.5, 8.5, 9.5])
    assert generate_legend_steps(config) == pytest.approx([1.5, 3.5, 5.5, 7.5, 9.5])


def test_palettes_are_sized_to_steps() -> None:
    categorical = analyze_data_for_map(["a", "b", "c"])
    assert select_color_palette(categorical) == ["#1f77b4", "#ff7f0e", "#2ca02c"]
    sequential = analyze_data_for_map([1.5, 2.5, 3.5, 4.5, 5.5, 6.5, 7.5, 8.5, 9.5])
    colors = select_color_palette(sequential)
    assert len(colors) == 5
    assert all(c.startswith("#") and len(c) == 7 for c in colors)
    assert len(select_color_palette(analyze_data_for_map([-5, 0, 5, 10]))) == 5


def test_color_scale_maps_extent_into_inner_ramp() -> None:
    scale = create_color_scale((0.0, 100.0), MONO)
    assert scale(0.0) == "#cccccc"
    assert scale(100.0) == "#333333"


def test_color_scale_without_extent_returns_background() -> None:
    scale = create_color_scale((None, None), MONO)
    assert scale(42.0) == "#ffffff"


def test_size_scale_is_square_root() -> None:
    scale = create_size_scale((0.0, 100.0))
    assert scale(0.0) == pytest.approx(3.0)
    assert scale(25.0) == pytest.approx(9.0)
    assert scale(100.0) == pytest.approx(15.0)
    flat = create_size_scale((7.0, 7.0))
    assert flat(7.0) == pytest.approx(9.0)
    assert not math.isnan(create_size_scale((None, None))(1.0))


def test_palette_scale_categorical_lookup_and_quantized_numbers() -> None:
    categorical = analyze_data_for_map(["a", "b"])
    scale = create_palette_scale(categorical, (None, None))
    assert scale("a") == "#1f77b4"
    assert scale("b") == "#ff7f0e"

    numeric = analyze_data_for_map([1.5, 2.5, 3.5, 4.5, 5.5, 6.5, 7.5, 8.5, 9.5])
    palette = select_color_palette(numeric)
    scale = create_palette_scale(numeric, numeric.range)
    assert scale(1.5) == palette[0]
    assert scale(9.5) == palette[-1]


def test_hsl_parsing_and_interpolation() -> None:
    assert parse_color("hsl(120, 100%, 50%)") == pytest.approx((0.0, 1.0, 0.0))
    assert parse_color("rgb(255, 0, 0)") == pytest.approx((1.0, 0.0, 0.0))
    assert parse_color("#0000ff") == pytest.approx((0.0, 0.0, 1.0))
    halfway = interpolate_hsl("hsl(0, 100%, 50%)", "hsl(120, 100%, 50%)")(0.5)
    assert halfway == "#ffff00"
    with pytest.raises(ValueError):
        parse_color("not-a-colour")


def test_choropleth_choice_from_indicator() -> None:
    assert should_use_choropleth(None) is True
    assert should_use_choropleth(Indicator(name="Population", measure_scale="ratio_count")) is False
    assert should_use_choropleth(Indicator(name="Density", measure_scale="ratio_index")) is True
    forced = Indicator(name="Population", measure_scale="ratio_count", use_choropleth=True)
    assert should_use_choropleth(forced) is True


def test_category_label_drops_integral_decimals() -> None:
    assert category_label(5.0) == "5"
    assert category_label(2.5) == "2.5"
    assert category_label("x") == "x"
