"""
Export utilities for alignment diagnostics.

Writes the fitted correspondences to CSV so the quality of the current
world -> georeferenced transform can be inspected offline (e.g. plotted in
QGIS or a notebook). The file is a diagnostic snapshot, not application
state: every export overwrites it.
"""

from pathlib import Path
from typing import Union, TYPE_CHECKING

import numpy as np

from .logging import setup_logger

if TYPE_CHECKING:
    from ..alignment.estimator import TransformEstimate

logger = setup_logger(__name__)

SOLUTION_HEADER = "gps_x,gps_y,world_x,world_y"


def export_alignment_solution(
    georef_points: np.ndarray,
    transformed_world_points: np.ndarray,
    output_path: Union[str, Path],
) -> Path:
    """
    Write georeferenced points next to the transformed world points.

    Args:
        georef_points: (N, 2) georeferenced positions
        transformed_world_points: (N, 2) world positions mapped through the estimate
        output_path: CSV file to (over)write

    Returns:
        Path to the written file

    Raises:
        ValueError: If the arrays are not matching (N, 2) arrays
    """
    georef_points = np.asarray(georef_points, dtype=np.float64).reshape(-1, 2)
    transformed_world_points = np.asarray(transformed_world_points, dtype=np.float64).reshape(-1, 2)
    if georef_points.shape != transformed_world_points.shape:
        raise ValueError(
            f"georef_points {georef_points.shape} and transformed_world_points "
            f"{transformed_world_points.shape} must have the same shape"
        )

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    table = np.hstack([georef_points, transformed_world_points])
    np.savetxt(output_path, table, fmt="%.15g", delimiter=",", header=SOLUTION_HEADER, comments="")
    logger.debug(f"Wrote {len(table)} fitted correspondences to {output_path}")
    return output_path


class DiagnosticExporter:
    """
    Serializes stored correspondences and their fitted predictions.

    Usage:
        exporter = DiagnosticExporter("gps_alignment_solution.csv")
        exporter.export(world_points, georef_points, estimator.current_estimate())
    """

    def __init__(self, output_path: Union[str, Path] = "gps_alignment_solution.csv"):
        self.output_path = Path(output_path)

    def export(
        self,
        world_points: np.ndarray,
        georef_points: np.ndarray,
        estimate: "TransformEstimate",
    ) -> Path:
        """
        Args:
            world_points: (N, 2) world positions in arrival order
            georef_points: (N, 2) georeferenced positions in arrival order
            estimate: Transform used to map the world positions

        Returns:
            Path to the written file
        """
        return export_alignment_solution(georef_points, estimate.apply(world_points), self.output_path)
