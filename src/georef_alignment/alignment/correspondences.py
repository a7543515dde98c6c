"""
Correspondence storage

Paired (world frame, georeferenced frame) observations and the
append-only store the estimator re-optimizes over.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np


@dataclass(frozen=True)
class Point2D:
    """2D position in float64."""

    x: float
    y: float

    def __post_init__(self):
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


@dataclass(frozen=True)
class CorrespondencePoint:
    """
    A world-frame position paired with the georeferenced position
    observed at the same instant.
    """

    world: Point2D
    georef: Point2D

    def is_finite(self) -> bool:
        return self.world.is_finite() and self.georef.is_finite()


class CorrespondenceStore:
    """
    Append-only, arrival-ordered collection of correspondences.

    The store never forgets: every re-optimization runs over the full
    history, so memory and solve cost grow with the lifetime of the process.

    Every ``batch_size``-th successful append crosses a re-optimization
    threshold. ``append`` reports the crossing atomically with the append
    itself, so concurrent appenders see each crossing exactly once.
    """

    def __init__(self, batch_size: int = 10):
        """
        Args:
            batch_size: Number of appends between re-optimization thresholds.

        Raises:
            ValueError: If batch_size is smaller than 1.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.batch_size = int(batch_size)
        self._points: List[CorrespondencePoint] = []
        self._lock = threading.Lock()

    def append(self, point: CorrespondencePoint) -> bool:
        """
        Append a correspondence.

        Args:
            point: Correspondence to store.

        Returns:
            True if this append made the size a positive multiple of batch_size.
        """
        with self._lock:
            self._points.append(point)
            return self._threshold_reached(len(self._points))

    def size(self) -> int:
        with self._lock:
            return len(self._points)

    def __len__(self) -> int:
        return self.size()

    def should_solve(self) -> bool:
        """True exactly when the current size is a positive multiple of batch_size."""
        with self._lock:
            return self._threshold_reached(len(self._points))

    def _threshold_reached(self, count: int) -> bool:
        return count > 0 and count % self.batch_size == 0

    def points(self) -> List[CorrespondencePoint]:
        """Copy of the stored correspondences in arrival order."""
        with self._lock:
            return list(self._points)

    def snapshot(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Consistent copy of the stored positions.

        Returns:
            Tuple of (world_points, georef_points), both (N, 2) float64 arrays
            in arrival order.
        """
        with self._lock:
            points = list(self._points)

        world = np.empty((len(points), 2), dtype=np.float64)
        georef = np.empty((len(points), 2), dtype=np.float64)
        for i, p in enumerate(points):
            world[i] = (p.world.x, p.world.y)
            georef[i] = (p.georef.x, p.georef.y)
        return world, georef
