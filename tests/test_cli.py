from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pytest

from statmap.cli import main


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Any:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def data_path(tmp_path: Path) -> Path:
    path = tmp_path / "forest.json"
    path.write_text(
        json.dumps(
            {
                "indicator": {"name": "Forest cover", "measure_scale": "ratio_index"},
                "data": [
                    {"m49_code": 840, "year": 2019, "value": 33.1, "unit": "%"},
                    {"m49_code": 840, "year": 2020, "value": 33.9, "unit": "%"},
                    {"m49_code": 250, "year": 2020, "value": 31.5, "unit": "%"},
                ],
            }
        ),
        encoding="utf-8",
    )
    return path


def test_render_writes_year_named_svg(config_path: Path, data_path: Path, tmp_path: Path) -> None:
    code = main(["render", "--config", str(config_path), "--data", str(data_path), "--year", "2020"])
    assert code == 0
    output = tmp_path / "build" / "map_2020.svg"
    text = output.read_text(encoding="utf-8")
    assert "Forest cover" in text
    assert (tmp_path / "build" / "logs" / "statmap.log").exists()


def test_render_options(config_path: Path, data_path: Path, tmp_path: Path) -> None:
    output = tmp_path / "out" / "latest.svg"
    code = main(
        [
            "render",
            "--config",
            str(config_path),
            "--data",
            str(data_path),
            "--latest",
            "--symbols",
            "--no-legend",
            "--projection",
            "Robinson",
            "--output",
            str(output),
        ]
    )
    assert code == 0
    text = output.read_text(encoding="utf-8")
    assert 'class="region-point"' in text
    assert 'class="legend"' not in text


def test_render_rejects_unknown_projection(config_path: Path, data_path: Path) -> None:
    code = main(["render", "--config", str(config_path), "--data", str(data_path), "--projection", "Dymaxion"])
    assert code == 1


def test_render_reports_missing_data_file(config_path: Path, tmp_path: Path) -> None:
    code = main(["render", "--config", str(config_path), "--data", str(tmp_path / "nope.json")])
    assert code == 1


def test_morph_writes_frames_and_manifest(config_path: Path, tmp_path: Path) -> None:
    code = main(
        ["morph", "--config", str(config_path), "--from", "Mollweide", "--to", "Robinson", "--frames", "4"]
    )
    assert code == 0
    out_dir = tmp_path / "build" / "morph"
    manifest = json.loads((out_dir / "manifest.json").read_text(encoding="utf-8"))
    frames = manifest["frames"]
    assert [frame["file"] for frame in frames] == [f"frame_{i:04d}.svg" for i in range(5)]
    assert all((out_dir / frame["file"]).exists() for frame in frames)
    assert frames[0]["state"] == "transitioning"
    assert frames[0]["projection"] == "Mollweide"
    assert frames[0]["alpha"] == 0.0
    assert frames[1]["alpha"] == pytest.approx(0.0625)
    assert frames[-1] == {
        "file": "frame_0004.svg",
        "time_ms": 1000.0,
        "alpha": 1.0,
        "state": "idle",
        "projection": "Robinson",
    }


def test_morph_rejects_unknown_projection(config_path: Path) -> None:
    assert main(["morph", "--config", str(config_path), "--from", "Mollweide", "--to", "Dymaxion"]) == 1


def test_projections_lists_without_config() -> None:
    assert main(["projections"]) == 0


def test_validate(config_path: Path, data_path: Path, world_path: Path) -> None:
    assert main(["validate", "--config", str(config_path), "--data", str(data_path)]) == 0
    world_path.unlink()
    assert main(["validate", "--config", str(config_path)]) == 1
