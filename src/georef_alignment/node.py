"""
GPS calibration node

Wires the estimator to its collaborators: observation ingestion,
run-optimization requests and the periodic transform broadcast. The
transport itself (message subscriptions, frame lookups, broadcaster) is
supplied by the caller as plain callables.
"""

from __future__ import annotations

import logging
from typing import Optional

from .alignment.estimator import AlignmentEstimator
from .alignment.solver import SolverSummary
from .ingestion.observations import FrameLookup, GeorefObservation, ObservationHandler
from .publishing.transform_broadcaster import TransformPublisher, TransformSink
from .utils.config import AppConfig
from .utils.logging import set_package_level, setup_logger

logger = setup_logger(__name__)


class GpsCalibrationNode:
    """
    Online GPS / world frame calibration.

    Usage:
        node = GpsCalibrationNode(load_config(), frame_lookup=tf.lookup, transform_sink=tf.send)
        with node:
            for msg in gps_messages:
                node.on_observation(msg)
    """

    def __init__(
        self,
        cfg: AppConfig,
        frame_lookup: FrameLookup,
        transform_sink: TransformSink,
    ):
        self.cfg = cfg
        set_package_level(
            getattr(logging, cfg.logging.level.upper(), logging.INFO), log_file=cfg.logging.file
        )
        self.estimator = AlignmentEstimator.from_config(cfg)
        self.observations = ObservationHandler.from_config(cfg, self.estimator, frame_lookup)
        self.publisher = TransformPublisher.from_config(
            cfg, self.estimator.current_estimate, transform_sink
        )

    def on_observation(self, observation: GeorefObservation) -> bool:
        return self.observations.handle(observation)

    def on_run_optimization_request(self, message: object = None) -> Optional[SolverSummary]:
        """
        Handle a "run optimization now" request.

        With ``routing.run_optimization_routing == "dedicated"`` the request
        triggers an immediate solve. With ``"observation"`` it is delivered
        to the observation handler instead, so only a request that carries
        an observation has any effect, and it never forces a solve by itself.

        Args:
            message: Request payload (normally empty)

        Returns:
            Solver summary when a solve ran, else None
        """
        if self.cfg.routing.run_optimization_routing == "observation":
            if not isinstance(message, GeorefObservation):
                logger.warning(
                    "Run-optimization request routed to the observation handler "
                    "without an observation payload; ignored."
                )
                return None
            self.observations.handle(message)
            return None
        return self.estimator.run_optimization_now()

    def start(self) -> None:
        self.publisher.start()

    def stop(self) -> None:
        self.publisher.stop()

    def __enter__(self) -> "GpsCalibrationNode":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
