"""
Tests for the periodic transform broadcast.
"""

from pathlib import Path
import math
import sys
import threading

import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from georef_alignment.alignment.correspondences import Point2D
from georef_alignment.alignment.estimator import AlignmentEstimator, TransformEstimate
from georef_alignment.alignment.parameterization import wrap_angle
from georef_alignment.publishing.transform_broadcaster import (
    Quaternion,
    TransformPublisher,
    estimate_to_transform,
)
from georef_alignment.utils.config import AppConfig


@pytest.mark.parametrize("theta", [0.0, 0.7, -2.0, 3.0, math.pi, 9.5])
def test_published_transform_shape_invariants(theta):
    estimate = TransformEstimate(Point2D(500123.5, 7012345.25), theta)

    tf = estimate_to_transform(estimate, stamp=12.5)

    assert tf.stamp == 12.5
    assert (tf.parent_frame, tf.child_frame) == ("utm", "world")
    assert tf.translation.x == 500123.5
    assert tf.translation.y == 7012345.25
    assert tf.translation.z == 0.0
    q = tf.rotation
    assert q.x == 0.0 and q.y == 0.0
    assert q.w ** 2 + q.z ** 2 == pytest.approx(1.0, abs=1e-12)
    assert q.w == pytest.approx(math.cos(theta / 2.0))
    assert q.z == pytest.approx(math.sin(theta / 2.0))


def test_quaternion_yaw_round_trip():
    q = Quaternion.from_yaw(2.5)
    assert wrap_angle(q.yaw()) == pytest.approx(2.5)


def test_publish_once_reads_current_estimate():
    received = []
    estimator = AlignmentEstimator(initial_estimate=TransformEstimate(Point2D(1.0, 2.0), 0.3))
    publisher = TransformPublisher(estimator.current_estimate, received.append,
                                   parent_frame="map_utm", child_frame="odom")

    tf = publisher.publish_once()

    assert received == [tf]
    assert (tf.parent_frame, tf.child_frame) == ("map_utm", "odom")
    assert tf.translation.x == 1.0 and tf.translation.y == 2.0
    assert publisher.published_count == 1


def test_periodic_publishing_without_any_solve():
    received = []
    enough = threading.Event()

    def sink(tf):
        received.append(tf)
        if len(received) >= 3:
            enough.set()

    estimator = AlignmentEstimator()
    publisher = TransformPublisher(estimator.current_estimate, sink, period_s=0.01)
    publisher.start()
    try:
        assert enough.wait(timeout=5.0)
    finally:
        publisher.stop(timeout=1.0)

    assert not publisher.running
    assert all(tf.translation.z == 0.0 for tf in received)
    assert estimator.last_summary is None


def test_sink_failure_does_not_stop_broadcast():
    calls = []
    recovered = threading.Event()

    def flaky_sink(tf):
        calls.append(tf)
        if len(calls) == 1:
            raise ConnectionError("transport down")
        recovered.set()

    publisher = TransformPublisher(TransformEstimate.identity, flaky_sink, period_s=0.01)
    publisher.start()
    try:
        assert recovered.wait(timeout=5.0)
    finally:
        publisher.stop(timeout=1.0)

    assert len(calls) >= 2


def test_from_config_uses_frames_and_period():
    cfg = AppConfig()
    publisher = TransformPublisher.from_config(cfg, TransformEstimate.identity, lambda tf: None)

    assert publisher.period_s == pytest.approx(0.1)
    assert publisher.parent_frame == "utm"
    assert publisher.child_frame == "world"


def test_non_positive_period_rejected():
    with pytest.raises(ValueError):
        TransformPublisher(TransformEstimate.identity, lambda tf: None, period_s=0.0)
