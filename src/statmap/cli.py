"""CLI entrypoint for the statmap map engine."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Sequence

from .config import AppConfig, load_config
from .errors import StatmapError
from .models import Indicator, IndicatorDataPoint
from .panel import MapPanel
from .processing import load_indicator_dataset
from .projections import additional_projection_names, get_spec, primary_projection_names
from .scheduler import ManualFrameScheduler
from .svg import export_svg
from .util import ensure_directories, setup_logging, write_json, write_text
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("statmap.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statmap",
        description="Statistical world map renderer.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    render_p = subparsers.add_parser("render", help="Render one indicator map to SVG.")
    add_common(render_p)
    render_p.add_argument("--data", required=True, help="Indicator data file (.json or .csv).")
    when = render_p.add_mutually_exclusive_group()
    when.add_argument("--year", type=int, default=None, help="Year to show (clamped to the data range).")
    when.add_argument("--latest", action="store_true", help="Show the latest value of each region.")
    render_p.add_argument("--projection", default=None, help="Projection name (see `statmap projections`).")
    mode = render_p.add_mutually_exclusive_group()
    mode.add_argument(
        "--symbols",
        dest="choropleth",
        action="store_false",
        default=None,
        help="Force proportional symbols.",
    )
    mode.add_argument(
        "--choropleth",
        dest="choropleth",
        action="store_true",
        default=None,
        help="Force choropleth fills.",
    )
    render_p.add_argument("--no-legend", action="store_true", help="Omit the legend.")
    render_p.add_argument("--title", default=None, help="Override the map title.")
    render_p.add_argument("--output", default=None, help="Output SVG path (default: output_dir/map_<year>.svg).")

    morph_p = subparsers.add_parser("morph", help="Write the frames of a projection change as SVG files.")
    add_common(morph_p)
    morph_p.add_argument("--from", dest="source", required=True, help="Projection to start from.")
    morph_p.add_argument("--to", dest="target", required=True, help="Projection to end on.")
    morph_p.add_argument("--frames", type=int, default=30, help="Number of frames after the start frame.")
    morph_p.add_argument("--data", default=None, help="Optional indicator data file.")
    morph_p.add_argument("--output-dir", default=None, help="Frame directory (default: output_dir/morph).")

    proj_p = subparsers.add_parser("projections", help="List available projections.")
    proj_p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    validate_p = subparsers.add_parser("validate", help="Validate config, geometry and data files.")
    add_common(validate_p)
    validate_p.add_argument("--data", default=None, help="Optional indicator data file to check join coverage for.")
    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    log_path = cfg.paths.logs_dir / "statmap.log"
    setup_logging(log_path, verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _load_data(path: str | None) -> tuple[list[IndicatorDataPoint], Indicator | None]:
    if path is None:
        return [], None
    dataset = load_indicator_dataset(Path(path))
    return list(dataset.records), dataset.indicator


def _run_render(cfg: AppConfig, args: argparse.Namespace) -> int:
    try:
        records, indicator = _load_data(args.data)
    except (OSError, ValueError) as exc:
        LOGGER.error("Failed loading data file: %s", exc)
        return 1
    try:
        panel = MapPanel(
            cfg,
            records=records,
            indicator=indicator,
            projection=args.projection,
            choropleth=args.choropleth,
            title=args.title,
        )
    except StatmapError as exc:
        LOGGER.error("%s", exc)
        return 1
    if args.latest:
        panel.set_latest(True)
    elif args.year is not None:
        panel.set_year(args.year)
        if panel.toolbar.selected_year != args.year:
            LOGGER.warning("Year %d outside data range; using %s", args.year, panel.toolbar.selected_year)
    if args.no_legend:
        panel.toggle_legend()
    if not panel.update_visualization():
        LOGGER.error("Render failed: %s", panel.error)
        return 1
    output = Path(args.output) if args.output else None
    path = panel.export_svg(output)
    LOGGER.info(
        "Rendered %d regions with data (%s, %s) to %s",
        len(panel.region_data),
        panel.controller.projection_name,
        "choropleth" if panel.use_choropleth else "proportional symbols",
        path,
    )
    return 0


def _run_morph(cfg: AppConfig, args: argparse.Namespace) -> int:
    if args.frames < 1:
        LOGGER.error("--frames must be >= 1")
        return 1
    try:
        get_spec(args.source)
        get_spec(args.target)
        records, indicator = _load_data(args.data)
    except (KeyError, OSError, ValueError) as exc:
        LOGGER.error("%s", exc)
        return 1

    scheduler = ManualFrameScheduler()
    panel = MapPanel(cfg, records=records, indicator=indicator, scheduler=scheduler, projection=args.source)
    if not panel.update_visualization():
        LOGGER.error("Render failed: %s", panel.error)
        return 1
    controller = panel.controller
    out_dir = Path(args.output_dir) if args.output_dir else cfg.paths.output_dir / "morph"
    manifest: list[dict[str, Any]] = []

    def write_frame(index: int) -> None:
        scene = controller.scene
        if scene is None:
            raise RuntimeError("Morph frame requested before the map was rendered")
        transition = controller.transition
        path = write_text(out_dir / f"frame_{index:04d}.svg", export_svg(scene))
        manifest.append(
            {
                "file": path.name,
                "time_ms": scheduler.now(),
                "alpha": transition.projection.alpha() if transition is not None else 1.0,
                "state": controller.state.value,
                "projection": controller.projection_name,
            }
        )

    start = scheduler.now()
    if not panel.change_projection(args.target):
        LOGGER.warning("Source and target projections are the same; writing a single frame")
        write_frame(0)
    else:
        write_frame(0)
        duration = cfg.view.transition_ms
        for index in range(1, args.frames + 1):
            scheduler.tick(start + duration * index / args.frames)
            write_frame(index)
    write_json(
        out_dir / "manifest.json",
        {"from": args.source, "to": args.target, "duration_ms": cfg.view.transition_ms, "frames": manifest},
    )
    LOGGER.info("Wrote %d frames to %s", len(manifest), out_dir)
    return 0


def _run_projections() -> int:
    for name in primary_projection_names():
        LOGGER.info("* %s", name)
    for name in additional_projection_names():
        LOGGER.info("  %s", name)
    return 0


def _run_validate(cfg: AppConfig, args: argparse.Namespace) -> int:
    records: list[IndicatorDataPoint] | None = None
    if args.data is not None:
        try:
            records, _ = _load_data(args.data)
        except (OSError, ValueError) as exc:
            LOGGER.error("Failed loading data file: %s", exc)
            return 1
    report = Validator(cfg).run(records=records)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _dispatch(args: argparse.Namespace) -> int:
    command = str(args.command)
    if command == "projections":
        setup_logging(None, verbose=args.verbose)
        return _run_projections()
    cfg = _load_and_setup(args)
    if command == "render":
        return _run_render(cfg, args)
    if command == "morph":
        return _run_morph(cfg, args)
    if command == "validate":
        return _run_validate(cfg, args)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
