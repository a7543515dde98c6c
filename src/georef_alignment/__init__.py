"""
GeoRef Alignment Package

Online estimation of the 2D rigid transform (rotation + translation) that maps
a locally consistent world/odometry frame into a georeferenced (UTM/GPS) frame.
Paired position observations are accumulated and the transform is re-optimized
over the full history with a Levenberg-Marquardt solver that treats the
rotation angle as a point on the circle. The current estimate is republished
periodically as a 3D transform for frame-aware consumers.
"""

__version__ = "0.1.0"

from .alignment import *
from .ingestion import *
from .publishing import *
from .utils import *
from .errors import AlignmentError, FrameLookupError
from .node import GpsCalibrationNode

__all__ = [
    "alignment",
    "ingestion",
    "publishing",
    "utils",
    "AlignmentError",
    "FrameLookupError",
    "GpsCalibrationNode",
]
