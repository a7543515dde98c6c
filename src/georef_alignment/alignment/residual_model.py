"""
Transform residual model

For a correspondence (w, g) and parameters (t, theta) the residual is

    r = R(theta) @ w + t - g

with analytic derivatives

    dr/dt     = I (2 x 2)
    dr/dtheta = R'(theta) @ w = [-sin*wx - cos*wy, cos*wx - sin*wy]

Every correspondence contributes two rows with equal weight (ordinary
least squares, no loss function).
"""

from typing import Tuple

import numpy as np

# Column layout of the stacked parameter vector
TRANSLATION_SLICE = slice(0, 2)
ROTATION_INDEX = 2
NUM_PARAMETERS = 3


def rotation_matrix(theta: float) -> np.ndarray:
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, -s], [s, c]])


def apply_transform(points: np.ndarray, translation: np.ndarray, rotation: float) -> np.ndarray:
    """
    Map world points into the georeferenced frame.

    Args:
        points: World points (N x 2).
        translation: Translation (2,).
        rotation: Rotation angle in radians.

    Returns:
        Transformed points (N x 2).
    """
    points = np.asarray(points, dtype=np.float64)
    if points.size == 0:
        return points.reshape(0, 2)
    return points @ rotation_matrix(rotation).T + np.asarray(translation, dtype=np.float64)


def correspondence_residual(
    world: np.ndarray,
    georef: np.ndarray,
    translation: np.ndarray,
    rotation: float,
) -> np.ndarray:
    """Residual (2,) of a single correspondence."""
    world = np.asarray(world, dtype=np.float64)
    return rotation_matrix(rotation) @ world + np.asarray(translation, dtype=np.float64) - np.asarray(georef)


class TransformResidual:
    """
    Stacked residuals and Jacobian for a set of correspondences.

    Rows are interleaved per correspondence: [r0x, r0y, r1x, r1y, ...].
    Columns follow the parameter layout [tx, ty, theta].
    """

    def __init__(self, world_points: np.ndarray, georef_points: np.ndarray):
        """
        Args:
            world_points: World-frame positions (N x 2).
            georef_points: Georeferenced positions (N x 2).

        Raises:
            ValueError: If the arrays are not matching (N x 2) arrays.
        """
        world_points = np.asarray(world_points, dtype=np.float64)
        georef_points = np.asarray(georef_points, dtype=np.float64)
        if world_points.ndim != 2 or world_points.shape[1] != 2:
            raise ValueError(f"world_points must be (N, 2), got {world_points.shape}")
        if georef_points.shape != world_points.shape:
            raise ValueError(
                f"georef_points shape {georef_points.shape} does not match "
                f"world_points shape {world_points.shape}"
            )
        self.world_points = world_points
        self.georef_points = georef_points

    @property
    def num_residuals(self) -> int:
        return 2 * len(self.world_points)

    def residuals(self, params: np.ndarray) -> np.ndarray:
        params = np.asarray(params, dtype=np.float64)
        predicted = apply_transform(
            self.world_points, params[TRANSLATION_SLICE], float(params[ROTATION_INDEX])
        )
        return (predicted - self.georef_points).reshape(-1)

    def evaluate(self, params: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Evaluate residuals and Jacobian at the given parameters.

        Args:
            params: Parameter vector [tx, ty, theta].

        Returns:
            Tuple of (residuals (2N,), jacobian (2N x 3)).
        """
        params = np.asarray(params, dtype=np.float64)
        theta = float(params[ROTATION_INDEX])
        c, s = np.cos(theta), np.sin(theta)
        wx = self.world_points[:, 0]
        wy = self.world_points[:, 1]

        n = len(self.world_points)
        jacobian = np.zeros((2 * n, NUM_PARAMETERS))
        jacobian[0::2, 0] = 1.0
        jacobian[1::2, 1] = 1.0
        jacobian[0::2, ROTATION_INDEX] = -s * wx - c * wy
        jacobian[1::2, ROTATION_INDEX] = c * wx - s * wy

        return self.residuals(params), jacobian
