"""
Online world -> georeferenced frame alignment

The estimator accumulates correspondences and re-optimizes the 2D rigid
transform over the full history every time the store crosses a batch
threshold, or when a solve is requested explicitly.

All access to the store and the estimate goes through one re-entrant
lock: append plus threshold check, the whole solve-and-update sequence,
and estimate reads. The estimate itself is an immutable value that is
replaced in a single assignment, so a reader never sees a translation
from one solve paired with a rotation from another.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Optional, Tuple, Union, TYPE_CHECKING

import numpy as np

from ..utils.logging import setup_logger
from .correspondences import CorrespondencePoint, CorrespondenceStore, Point2D
from .parameterization import AngleParameterization, EuclideanParameterization
from .residual_model import TransformResidual, apply_transform, rotation_matrix
from .solver import (
    LevenbergMarquardtSolver,
    ParameterBlock,
    SolverOptions,
    SolverSummary,
    TerminationType,
)

if TYPE_CHECKING:
    from ..utils.config import AppConfig, CalibrationConfig
    from ..utils.export import DiagnosticExporter

logger = setup_logger(__name__)

PointLike = Union[Point2D, Tuple[float, float], np.ndarray]

_PARAMETER_BLOCKS = (
    ParameterBlock("translation", 0, EuclideanParameterization(2)),
    ParameterBlock("rotation", 2, AngleParameterization()),
)


def _as_point(value: PointLike) -> Point2D:
    if isinstance(value, Point2D):
        return value
    x, y = value
    return Point2D(x, y)


def _to_centered(params: np.ndarray, world_centroid: np.ndarray, georef_centroid: np.ndarray) -> np.ndarray:
    """
    Re-express ``georef = R w + t`` over centroid-relative points.

    ``georef - cg = R (w - cw) + t'`` with ``t' = t + R cw - cg``.
    """
    centered = params.copy()
    centered[:2] = params[:2] + rotation_matrix(params[2]) @ world_centroid - georef_centroid
    return centered


def _from_centered(params: np.ndarray, world_centroid: np.ndarray, georef_centroid: np.ndarray) -> np.ndarray:
    restored = params.copy()
    restored[:2] = params[:2] - rotation_matrix(params[2]) @ world_centroid + georef_centroid
    return restored


@dataclass(frozen=True)
class TransformEstimate:
    """
    Rigid transform ``georef = R(rotation) @ world + translation``.

    The rotation is any finite angle in radians; consumers only use it
    through cos/sin.
    """

    translation: Point2D
    rotation: float

    def __post_init__(self):
        object.__setattr__(self, "rotation", float(self.rotation))
        if not (math.isfinite(self.translation.x) and math.isfinite(self.translation.y)
                and math.isfinite(self.rotation)):
            raise ValueError(f"Transform estimate must be finite, got {self}")

    @classmethod
    def identity(cls) -> "TransformEstimate":
        return cls(Point2D(0.0, 0.0), 0.0)

    @classmethod
    def from_config(cls, cfg: "CalibrationConfig") -> "TransformEstimate":
        return cls(Point2D(cfg.translation_x, cfg.translation_y), cfg.orientation)

    @classmethod
    def from_parameters(cls, params: np.ndarray) -> "TransformEstimate":
        return cls(Point2D(params[0], params[1]), float(params[2]))

    def as_parameters(self) -> np.ndarray:
        return np.array([self.translation.x, self.translation.y, self.rotation], dtype=np.float64)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Map (N, 2) world points into the georeferenced frame."""
        return apply_transform(points, self.translation.as_array(), self.rotation)


class AlignmentEstimator:
    """
    Owns the correspondence history and the current transform estimate.

    Usage:
        estimator = AlignmentEstimator(batch_size=10)
        for world, georef in pairs:
            estimator.ingest(world, georef)   # solves on every 10th pair
        estimate = estimator.current_estimate()
    """

    def __init__(
        self,
        initial_estimate: Optional[TransformEstimate] = None,
        batch_size: int = 10,
        solver_options: Optional[SolverOptions] = None,
        exporter: Optional["DiagnosticExporter"] = None,
    ):
        """
        Args:
            initial_estimate: Starting transform (identity if None).
            batch_size: Re-optimize whenever the store size reaches a multiple of this.
            solver_options: Levenberg-Marquardt settings.
            exporter: Optional diagnostic exporter run after every solve.
        """
        self._estimate = initial_estimate or TransformEstimate.identity()
        self._store = CorrespondenceStore(batch_size=batch_size)
        self._solver = LevenbergMarquardtSolver(solver_options)
        self._exporter = exporter
        self._last_summary: Optional[SolverSummary] = None
        self._lock = threading.RLock()

        logger.info(
            "Initial GPS transformation: t: %f %f r: %f",
            self._estimate.translation.x,
            self._estimate.translation.y,
            self._estimate.rotation,
        )

    @classmethod
    def from_config(cls, cfg: "AppConfig") -> "AlignmentEstimator":
        exporter = None
        if cfg.calibration.write_debug_file:
            from ..utils.export import DiagnosticExporter
            exporter = DiagnosticExporter(cfg.calibration.debug_file)
        return cls(
            initial_estimate=TransformEstimate.from_config(cfg.calibration),
            batch_size=cfg.calibration.batch_size,
            solver_options=SolverOptions.from_config(cfg.solver),
            exporter=exporter,
        )

    @property
    def store(self) -> CorrespondenceStore:
        return self._store

    @property
    def last_summary(self) -> Optional[SolverSummary]:
        with self._lock:
            return self._last_summary

    def current_estimate(self) -> TransformEstimate:
        with self._lock:
            return self._estimate

    def ingest(self, world: PointLike, georef: PointLike) -> Optional[SolverSummary]:
        """
        Store a correspondence and re-optimize when a batch threshold is crossed.

        The solve runs synchronously: the call returns only after it finishes.

        Args:
            world: Position in the world/odometry frame.
            georef: Position in the georeferenced frame at the same instant.

        Returns:
            The solver summary if this call triggered a solve, else None.

        Raises:
            ValueError: If either position is not finite. Nothing is stored.
        """
        point = CorrespondencePoint(world=_as_point(world), georef=_as_point(georef))
        if not point.is_finite():
            raise ValueError(f"Correspondence positions must be finite, got {point}")
        with self._lock:
            if self._store.append(point):
                return self.solve()
        return None

    def run_optimization_now(self) -> Optional[SolverSummary]:
        """Re-optimize immediately, independent of the batch counter."""
        logger.info("Optimization requested (%d correspondences).", self._store.size())
        return self.solve()

    def solve(self) -> Optional[SolverSummary]:
        """
        Batch re-optimization over every stored correspondence.

        Starts from the current estimate. The resulting parameters replace the
        estimate even when the solver stops without converging; in that case
        the full solver report is logged as a warning.

        Returns:
            Solver summary, or None when there is nothing to solve.
        """
        with self._lock:
            world, georef = self._store.snapshot()
            if len(world) == 0:
                logger.warning("No correspondences stored; skipping optimization.")
                return None

            # Solve relative to the centroids. The parameter tolerance scales
            # with the parameter norm, which raw UTM translations would dominate.
            world_centroid = world.mean(axis=0)
            georef_centroid = georef.mean(axis=0)
            problem = TransformResidual(world - world_centroid, georef - georef_centroid)
            start = _to_centered(self._estimate.as_parameters(), world_centroid, georef_centroid)
            params, summary = self._solver.solve(problem, start, _PARAMETER_BLOCKS)
            params = _from_centered(params, world_centroid, georef_centroid)
            self._last_summary = summary

            if summary.termination is not TerminationType.CONVERGENCE:
                logger.warning("%s", summary.full_report())
            if summary.termination is TerminationType.FAILURE or not np.all(np.isfinite(params)):
                logger.error("Optimization failed; keeping previous estimate.")
                return summary

            self._estimate = TransformEstimate.from_parameters(params)
            logger.info("Translation %f %f", self._estimate.translation.x, self._estimate.translation.y)
            logger.info("Rotation %f", self._estimate.rotation)
            logger.debug("%s", summary.brief_report())

            if self._exporter is not None:
                try:
                    self._exporter.export(world, georef, self._estimate)
                except OSError as e:
                    logger.warning(f"Could not write alignment diagnostics: {e}")

            return summary
