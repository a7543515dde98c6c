"""
Tests for the online alignment estimator.

Covers the batch trigger policy, noiseless recovery, the concrete
straight-line scenario, best-effort handling of non-convergence, on-demand
solves, and snapshot consistency under concurrent ingestion.
"""

from pathlib import Path
import logging
import math
import sys
import threading
import time

import numpy as np
import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from georef_alignment.alignment.correspondences import Point2D
from georef_alignment.alignment.estimator import AlignmentEstimator, TransformEstimate
from georef_alignment.alignment.parameterization import wrap_angle
from georef_alignment.alignment.residual_model import apply_transform
from georef_alignment.alignment.solver import SolverOptions, TerminationType
from georef_alignment.utils.config import AppConfig, CalibrationConfig


def _synthetic_pairs(theta: float, t, n: int, noise: float = 0.0, seed: int = 0):
    rng = np.random.default_rng(seed)
    world = rng.uniform(-100.0, 100.0, size=(n, 2))
    georef = apply_transform(world, np.asarray(t, dtype=float), theta)
    if noise:
        georef = georef + rng.normal(scale=noise, size=georef.shape)
    return world, georef


class _RecordingExporter:
    """Stands in for the CSV exporter and records every exported estimate."""

    def __init__(self):
        self.estimates = []
        self.row_counts = []

    def export(self, world_points, georef_points, estimate):
        self.estimates.append(estimate)
        self.row_counts.append(len(world_points))


def test_ingest_solves_on_every_tenth_pair():
    world, georef = _synthetic_pairs(0.2, (1.0, 2.0), n=25)
    estimator = AlignmentEstimator()

    solved_at = []
    for i in range(25):
        summary = estimator.ingest(world[i], georef[i])
        if summary is not None:
            solved_at.append(i + 1)

    assert solved_at == [10, 20]
    assert estimator.store.size() == 25


@pytest.mark.parametrize(
    "initial",
    [
        TransformEstimate.identity(),
        TransformEstimate(Point2D(-400.0, 250.0), -2.0),
        TransformEstimate(Point2D(5.0, 5.0), 12.0),  # unwrapped starting angle
    ],
)
def test_recovers_known_transform_regardless_of_start(initial):
    theta0, t0 = 0.75, (50.0, -33.5)
    world, georef = _synthetic_pairs(theta0, t0, n=30, seed=5)
    estimator = AlignmentEstimator(initial_estimate=initial, solver_options=SolverOptions(max_iterations=100))

    for w, g in zip(world, georef):
        estimator.ingest(w, g)

    est = estimator.current_estimate()
    assert estimator.last_summary.termination is TerminationType.CONVERGENCE
    assert est.translation.x == pytest.approx(t0[0], abs=1e-6)
    assert est.translation.y == pytest.approx(t0[1], abs=1e-6)
    assert abs(wrap_angle(est.rotation - theta0)) < 1e-6


@pytest.mark.parametrize("seed", range(6))
@pytest.mark.parametrize(
    "initial",
    [
        TransformEstimate.identity(),
        TransformEstimate(Point2D(523000.0, 7012000.0), 0.0),
    ],
)
def test_recovers_utm_scale_translation(initial, seed):
    """Full UTM eastings/northings must not loosen the solver's stopping point."""
    theta0, t0 = 0.3, (523417.25, 7012345.5)
    rng = np.random.default_rng(seed)
    world = rng.uniform(-200.0, 200.0, size=(30, 2))
    georef = apply_transform(world, np.asarray(t0), theta0)
    estimator = AlignmentEstimator(initial_estimate=initial, batch_size=30)

    for w, g in zip(world, georef):
        estimator.ingest(w, g)

    est = estimator.current_estimate()
    assert estimator.last_summary.termination is TerminationType.CONVERGENCE
    assert est.translation.x == pytest.approx(t0[0], abs=1e-6)
    assert est.translation.y == pytest.approx(t0[1], abs=1e-6)
    assert abs(wrap_angle(est.rotation - theta0)) < 1e-6
    np.testing.assert_allclose(est.apply(world), georef, atol=1e-6, rtol=0)


def test_straight_line_scenario():
    """Points on a line shifted by 0.1 in x: pure translation, no rotation."""
    estimator = AlignmentEstimator()
    for k in range(4):
        assert estimator.ingest((0.0, float(k)), (0.1, float(k))) is None

    summary = estimator.solve()

    est = estimator.current_estimate()
    assert summary is not None and summary.is_converged
    assert est.rotation == pytest.approx(0.0, abs=1e-6)
    assert est.translation.x == pytest.approx(0.1, abs=1e-6)
    assert est.translation.y == pytest.approx(0.0, abs=1e-6)
    assert summary.final_cost == pytest.approx(0.0, abs=1e-10)


def test_run_optimization_now_ignores_batch_counter():
    world, georef = _synthetic_pairs(-0.3, (4.0, -1.0), n=3, seed=1)
    estimator = AlignmentEstimator()
    for w, g in zip(world, georef):
        estimator.ingest(w, g)
    assert estimator.last_summary is None

    summary = estimator.run_optimization_now()

    assert summary is not None
    assert estimator.store.size() == 3
    assert estimator.current_estimate().rotation == pytest.approx(-0.3, abs=1e-6)


@pytest.mark.parametrize(
    "world, georef",
    [
        ((0.0, 0.0), (float("nan"), float("nan"))),
        ((float("inf"), 1.0), (2.0, 3.0)),
    ],
)
def test_non_finite_correspondence_rejected(world, georef):
    estimator = AlignmentEstimator()

    with pytest.raises(ValueError, match="finite"):
        estimator.ingest(world, georef)

    assert estimator.store.size() == 0


def test_solving_continues_after_rejected_correspondence():
    world, georef = _synthetic_pairs(0.4, (3.0, -2.0), n=10, seed=2)
    estimator = AlignmentEstimator()
    with pytest.raises(ValueError):
        estimator.ingest((0.0, 0.0), (float("nan"), float("nan")))

    for w, g in zip(world, georef):
        estimator.ingest(w, g)

    assert estimator.last_summary.termination is TerminationType.CONVERGENCE
    assert estimator.current_estimate().rotation == pytest.approx(0.4, abs=1e-6)


def test_solve_with_empty_store_is_skipped(caplog):
    estimator = AlignmentEstimator(initial_estimate=TransformEstimate(Point2D(1.0, 2.0), 0.5))

    with caplog.at_level(logging.WARNING):
        assert estimator.solve() is None

    assert "No correspondences" in caplog.text
    assert estimator.current_estimate() == TransformEstimate(Point2D(1.0, 2.0), 0.5)


def test_non_convergence_keeps_latest_parameters(caplog):
    theta0, t0 = 0.4, (10.0, -10.0)
    world, georef = _synthetic_pairs(theta0, t0, n=10, seed=3)
    initial = TransformEstimate(Point2D(0.0, 0.0), theta0)
    estimator = AlignmentEstimator(initial_estimate=initial, solver_options=SolverOptions(max_iterations=1))

    with caplog.at_level(logging.WARNING):
        for w, g in zip(world, georef):
            estimator.ingest(w, g)

    summary = estimator.last_summary
    assert summary.termination is TerminationType.NO_CONVERGENCE
    assert "Solver Summary" in caplog.text
    # Best effort: the partially optimized parameters are published, not rolled back
    est = estimator.current_estimate()
    assert est != initial
    assert est.translation.x == pytest.approx(t0[0], abs=1e-2)


def test_concurrent_reads_never_observe_torn_estimates():
    """Every estimate a reader sees is the initial one or the exact output of some solve."""
    world, georef = _synthetic_pairs(1.0, (20.0, 30.0), n=200, noise=0.5, seed=11)
    exporter = _RecordingExporter()
    initial = TransformEstimate.identity()
    estimator = AlignmentEstimator(initial_estimate=initial, batch_size=5, exporter=exporter)

    observed = []
    done = threading.Event()

    def reader():
        while not done.is_set():
            observed.append(estimator.current_estimate())
            time.sleep(0)

    def writer(rows):
        for i in rows:
            estimator.ingest(world[i], georef[i])

    readers = [threading.Thread(target=reader) for _ in range(2)]
    writers = [threading.Thread(target=writer, args=(range(k, 200, 4),)) for k in range(4)]
    for t in readers + writers:
        t.start()
    for t in writers:
        t.join()
    done.set()
    for t in readers:
        t.join()

    assert len(exporter.estimates) == 200 // 5
    valid = {initial, *exporter.estimates}
    assert observed
    assert all(est in valid for est in observed)


def test_exporter_runs_after_each_solve_with_full_history():
    world, georef = _synthetic_pairs(0.1, (0.0, 0.0), n=30)
    exporter = _RecordingExporter()
    estimator = AlignmentEstimator(exporter=exporter)

    for w, g in zip(world, georef):
        estimator.ingest(w, g)

    assert exporter.row_counts == [10, 20, 30]


def test_from_config_uses_initial_values_and_debug_file(tmp_path):
    cfg = AppConfig(
        calibration=CalibrationConfig(
            translation_x=3.0,
            translation_y=-4.0,
            orientation=0.25,
            write_debug_file=True,
            debug_file=str(tmp_path / "solution.csv"),
            batch_size=4,
        )
    )
    estimator = AlignmentEstimator.from_config(cfg)

    assert estimator.current_estimate() == TransformEstimate(Point2D(3.0, -4.0), 0.25)
    assert estimator.store.batch_size == 4

    world, georef = _synthetic_pairs(0.25, (3.0, -4.0), n=4)
    for w, g in zip(world, georef):
        estimator.ingest(w, g)
    assert (tmp_path / "solution.csv").exists()


def test_transform_estimate_validation():
    with pytest.raises(ValueError):
        TransformEstimate(Point2D(0.0, 0.0), math.nan)
    est = TransformEstimate.from_parameters(np.array([1.0, 2.0, 3.0]))
    np.testing.assert_array_equal(est.as_parameters(), [1.0, 2.0, 3.0])
