"""
Transform broadcasting

Converts the current 2D estimate into a full 3D stamped transform
(zero vertical translation, rotation about the vertical axis as a unit
quaternion) and hands it to a transport sink at a fixed period.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TYPE_CHECKING

from ..utils.logging import setup_logger

if TYPE_CHECKING:
    from ..alignment.estimator import TransformEstimate
    from ..utils.config import AppConfig

logger = setup_logger(__name__)


@dataclass(frozen=True)
class Vector3:
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class Quaternion:
    x: float
    y: float
    z: float
    w: float

    @classmethod
    def from_yaw(cls, yaw: float) -> "Quaternion":
        """Rotation of ``yaw`` radians about the vertical axis (half-angle form)."""
        return cls(0.0, 0.0, math.sin(yaw / 2.0), math.cos(yaw / 2.0))

    def yaw(self) -> float:
        return 2.0 * math.atan2(self.z, self.w)


@dataclass(frozen=True)
class StampedTransform:
    """Pose of ``child_frame`` expressed in ``parent_frame`` at ``stamp``."""

    stamp: float
    parent_frame: str
    child_frame: str
    translation: Vector3
    rotation: Quaternion


def estimate_to_transform(
    estimate: "TransformEstimate",
    stamp: Optional[float] = None,
    parent_frame: str = "utm",
    child_frame: str = "world",
) -> StampedTransform:
    """
    Embed a 2D estimate into a 3D stamped transform.

    Args:
        estimate: Current world -> georef estimate
        stamp: Timestamp in seconds (defaults to now)
        parent_frame: Georeferenced frame id
        child_frame: World frame id

    Returns:
        StampedTransform with z = 0 and a yaw-only quaternion
    """
    return StampedTransform(
        stamp=time.time() if stamp is None else stamp,
        parent_frame=parent_frame,
        child_frame=child_frame,
        translation=Vector3(estimate.translation.x, estimate.translation.y, 0.0),
        rotation=Quaternion.from_yaw(estimate.rotation),
    )


TransformSink = Callable[[StampedTransform], None]


class TransformPublisher:
    """
    Periodically publishes the current estimate, whether or not a solve ran.

    Usage:
        publisher = TransformPublisher(estimator.current_estimate, sink=broadcaster.send)
        publisher.start()
        ...
        publisher.stop()
    """

    def __init__(
        self,
        estimate_source: Callable[[], "TransformEstimate"],
        sink: TransformSink,
        period_s: float = 0.1,
        parent_frame: str = "utm",
        child_frame: str = "world",
    ):
        """
        Args:
            estimate_source: Callable returning a consistent estimate snapshot
            sink: Transport callback receiving each stamped transform
            period_s: Publish period in seconds
            parent_frame: Georeferenced frame id
            child_frame: World frame id
        """
        if period_s <= 0:
            raise ValueError(f"period_s must be positive, got {period_s}")
        self.estimate_source = estimate_source
        self.sink = sink
        self.period_s = period_s
        self.parent_frame = parent_frame
        self.child_frame = child_frame
        self.published_count = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(
        cls,
        cfg: "AppConfig",
        estimate_source: Callable[[], "TransformEstimate"],
        sink: TransformSink,
    ) -> "TransformPublisher":
        return cls(
            estimate_source,
            sink,
            period_s=cfg.publishing.period_s,
            parent_frame=cfg.frames.georef_frame,
            child_frame=cfg.frames.world_frame,
        )

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def publish_once(self) -> StampedTransform:
        transform = estimate_to_transform(
            self.estimate_source(),
            parent_frame=self.parent_frame,
            child_frame=self.child_frame,
        )
        self.sink(transform)
        self.published_count += 1
        return transform

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="transform-publisher", daemon=True)
        self._thread.start()
        logger.info(
            "Publishing %s -> %s every %.3f s", self.parent_frame, self.child_frame, self.period_s
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            try:
                self.publish_once()
            except Exception as e:
                # A broken transport must not stop the broadcast loop
                logger.warning(f"Transform publish failed: {e}")
            next_tick += self.period_s
            delay = next_tick - time.monotonic()
            if delay < 0:
                next_tick = time.monotonic()
                delay = 0.0
            self._stop_event.wait(delay)
