"""
Transform publishing: periodic broadcast of the current estimate.
"""

from .transform_broadcaster import (
    Quaternion,
    StampedTransform,
    TransformPublisher,
    Vector3,
    estimate_to_transform,
)

__all__ = [
    "Quaternion",
    "StampedTransform",
    "TransformPublisher",
    "Vector3",
    "estimate_to_transform",
]
