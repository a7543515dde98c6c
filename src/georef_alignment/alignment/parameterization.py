"""
Parameter block manifolds

The solver updates every parameter block through a ``plus`` operation
instead of plain vector addition. The translation lives in ordinary
Euclidean space; the rotation angle lives on the circle, where adding an
increment is the group operation and the result is normalized so the
optimizer never sees a jump at the +/-pi boundary.

Any object exposing ``ambient_size``, ``tangent_size``, ``plus`` and
``plus_jacobian`` can be used as a block manifold.
"""

from __future__ import annotations

import math
from typing import Protocol

import numpy as np


def wrap_angle(theta: float) -> float:
    """
    Normalize an angle into [-pi, pi).

    Args:
        theta: Angle in radians (any finite value).

    Returns:
        Equivalent angle in [-pi, pi).
    """
    two_pi = 2.0 * math.pi
    wrapped = theta - two_pi * math.floor((theta + math.pi) / two_pi)
    # floor() rounding can land exactly on +pi for inputs just below it
    if wrapped >= math.pi:
        wrapped -= two_pi
    return wrapped


class Manifold(Protocol):
    ambient_size: int
    tangent_size: int

    def plus(self, x: np.ndarray, delta: np.ndarray) -> np.ndarray: ...

    def plus_jacobian(self, x: np.ndarray) -> np.ndarray: ...


class EuclideanParameterization:
    """Plain vector addition for blocks without special structure."""

    def __init__(self, size: int):
        self.ambient_size = size
        self.tangent_size = size

    def plus(self, x: np.ndarray, delta: np.ndarray) -> np.ndarray:
        return np.asarray(x, dtype=np.float64) + np.asarray(delta, dtype=np.float64)

    def plus_jacobian(self, x: np.ndarray) -> np.ndarray:
        return np.eye(self.ambient_size)


class AngleParameterization:
    """
    Rotation angle on the circle (angle modulo 2*pi).

    ``theta (+) delta = wrap(theta + delta)``. The derivative of the plus
    operation with respect to delta at zero is 1, so the tangent space maps
    one-to-one onto the ambient angle.
    """

    ambient_size = 1
    tangent_size = 1

    def plus(self, x: np.ndarray, delta: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64).reshape(1)
        delta = np.asarray(delta, dtype=np.float64).reshape(1)
        return np.array([wrap_angle(float(x[0] + delta[0]))])

    def plus_jacobian(self, x: np.ndarray) -> np.ndarray:
        return np.ones((1, 1))
