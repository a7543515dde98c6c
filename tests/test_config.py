"""Tests for YAML configuration loading."""

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from georef_alignment.utils.config import load_config, AppConfig


def test_default_config_matches_builtin_defaults():
    """config/default.yaml should agree with the model defaults."""
    cfg = load_config(None)

    assert cfg == AppConfig()
    assert cfg.calibration.batch_size == 10
    assert cfg.calibration.write_debug_file is False
    assert cfg.calibration.debug_file == "gps_alignment_solution.csv"
    assert cfg.frames.lookup_timeout_s == 3.0
    assert cfg.frames.sensor_frame == "navsat_link"
    assert cfg.publishing.period_s == 0.1
    assert cfg.routing.run_optimization_routing == "dedicated"
    assert cfg.solver.max_iterations == 50


def test_partial_yaml_overrides(tmp_path):
    path = tmp_path / "site.yaml"
    path.write_text(
        "calibration:\n"
        "  translation_x: 512345.5\n"
        "  translation_y: 6612345.0\n"
        "  orientation: -1.25\n"
        "  write_debug_file: true\n"
        "routing:\n"
        "  run_optimization_routing: observation\n"
    )

    cfg = load_config(path)

    assert cfg.calibration.translation_x == 512345.5
    assert cfg.calibration.translation_y == 6612345.0
    assert cfg.calibration.orientation == -1.25
    assert cfg.calibration.write_debug_file is True
    assert cfg.routing.run_optimization_routing == "observation"
    # Untouched sections keep defaults
    assert cfg.solver.function_tolerance == 1e-6


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == AppConfig()


def test_missing_file():
    assert load_config("does/not/exist.yaml") == AppConfig()
    with pytest.raises(FileNotFoundError):
        load_config("does/not/exist.yaml", allow_missing=False)


@pytest.mark.parametrize(
    "content",
    [
        "calibration:\n  batch_size: 0\n",
        "calibration:\n  orientation: .nan\n",
        "routing:\n  run_optimization_routing: sometimes\n",
        "publishing:\n  period_s: -1\n",
    ],
)
def test_invalid_values_rejected(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content)
    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(path)
