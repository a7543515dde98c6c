"""
Georeferenced observation ingestion

Pairs each incoming georeferenced position with the world-frame position
of the same sensor at the same timestamp, and feeds the pair to the
estimator. Observations whose world position cannot be resolved in time
are dropped, as are observations with a non-finite position; nothing is
queued or retried.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Callable, Tuple, TYPE_CHECKING

from ..errors import FrameLookupError
from ..utils.logging import setup_logger

if TYPE_CHECKING:
    from ..alignment.estimator import AlignmentEstimator
    from ..utils.config import AppConfig

logger = setup_logger(__name__)


@dataclass(frozen=True)
class GeorefObservation:
    """Position of the sensor in the georeferenced frame (e.g. UTM from GPS)."""

    frame_id: str
    stamp: float
    x: float
    y: float


# (target_frame, source_frame, stamp, timeout_s) -> (x, y) of source_frame in target_frame.
# Raises FrameLookupError when the transform is not available within timeout_s.
FrameLookup = Callable[[str, str, float, float], Tuple[float, float]]


class ObservationHandler:
    """
    Turns georeferenced observations into estimator correspondences.

    Attributes:
        processed_count: Observations that produced a correspondence
        dropped_count: Observations dropped because the frame lookup failed or a
            position was not finite
        mismatch_count: Observations with an unexpected frame id (still processed)
    """

    def __init__(
        self,
        estimator: "AlignmentEstimator",
        frame_lookup: FrameLookup,
        world_frame: str = "world",
        sensor_frame: str = "navsat_link",
        lookup_timeout_s: float = 3.0,
    ):
        self.estimator = estimator
        self.frame_lookup = frame_lookup
        self.world_frame = world_frame
        self.sensor_frame = sensor_frame
        self.lookup_timeout_s = lookup_timeout_s
        self.processed_count = 0
        self.dropped_count = 0
        self.mismatch_count = 0
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        cfg: "AppConfig",
        estimator: "AlignmentEstimator",
        frame_lookup: FrameLookup,
    ) -> "ObservationHandler":
        return cls(
            estimator,
            frame_lookup,
            world_frame=cfg.frames.world_frame,
            sensor_frame=cfg.frames.sensor_frame,
            lookup_timeout_s=cfg.frames.lookup_timeout_s,
        )

    def handle(self, observation: GeorefObservation) -> bool:
        """
        Ingest one observation.

        Args:
            observation: Georeferenced sensor position

        Returns:
            True if a correspondence was stored, False if the observation was dropped
        """
        if observation.frame_id != self.sensor_frame:
            with self._lock:
                self.mismatch_count += 1
            logger.warning(
                "Expecting odometry for %s, received: %s", self.sensor_frame, observation.frame_id
            )

        try:
            world_x, world_y = self.frame_lookup(
                self.world_frame, self.sensor_frame, observation.stamp, self.lookup_timeout_s
            )
        except FrameLookupError as e:
            with self._lock:
                self.dropped_count += 1
            logger.warning("%s", e)
            return False

        # The history is append-only, so non-finite pairs must never reach it
        if not all(math.isfinite(v) for v in (world_x, world_y, observation.x, observation.y)):
            with self._lock:
                self.dropped_count += 1
            logger.warning(
                "Dropping observation at %s with non-finite position: world (%s, %s), georef (%s, %s)",
                observation.stamp, world_x, world_y, observation.x, observation.y,
            )
            return False

        self.estimator.ingest((world_x, world_y), (observation.x, observation.y))
        with self._lock:
            self.processed_count += 1
        return True
