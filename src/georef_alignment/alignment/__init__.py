"""
Spatial Alignment Module

This module estimates the rigid transform between a world/odometry frame
and a georeferenced frame from paired position observations.
"""

from .correspondences import Point2D, CorrespondencePoint, CorrespondenceStore
from .parameterization import AngleParameterization, EuclideanParameterization, wrap_angle
from .residual_model import TransformResidual, apply_transform, rotation_matrix
from .solver import (
    LevenbergMarquardtSolver,
    ParameterBlock,
    SolverOptions,
    SolverSummary,
    TerminationType,
)
from .estimator import AlignmentEstimator, TransformEstimate

__all__ = [
    "Point2D",
    "CorrespondencePoint",
    "CorrespondenceStore",
    "AngleParameterization",
    "EuclideanParameterization",
    "wrap_angle",
    "TransformResidual",
    "apply_transform",
    "rotation_matrix",
    "LevenbergMarquardtSolver",
    "ParameterBlock",
    "SolverOptions",
    "SolverSummary",
    "TerminationType",
    "AlignmentEstimator",
    "TransformEstimate",
]
