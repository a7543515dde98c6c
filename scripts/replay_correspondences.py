"""
Replay recorded correspondences through the online estimator

Reads a CSV with columns world_x, world_y, gps_x, gps_y (header required),
feeds the rows to the estimator in order exactly as the live node would
(re-optimizing at every batch threshold), runs a final on-demand solve and
prints the resulting transform in the form it would be broadcast.
"""

import sys
import argparse
import logging
from pathlib import Path

import numpy as np

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from georef_alignment.alignment import AlignmentEstimator
from georef_alignment.publishing import estimate_to_transform
from georef_alignment.utils.config import load_config, AppConfig
from georef_alignment.utils.logging import setup_logger, set_package_level

REQUIRED_COLUMNS = ("world_x", "world_y", "gps_x", "gps_y")


def load_pairs(path: Path) -> np.ndarray:
    """
    Load correspondences as an (N, 4) array ordered world_x, world_y, gps_x, gps_y.
    """
    table = np.genfromtxt(path, delimiter=",", names=True, dtype=np.float64)
    missing = [c for c in REQUIRED_COLUMNS if c not in (table.dtype.names or ())]
    if missing:
        raise ValueError(f"{path} is missing columns: {', '.join(missing)}")
    table = np.atleast_1d(table)
    return np.column_stack([table[c] for c in REQUIRED_COLUMNS])


def main():
    parser = argparse.ArgumentParser(description="Replay GPS/world correspondences through the estimator")
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="CSV file with world_x, world_y, gps_x, gps_y columns",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument(
        "--write-debug-file",
        action="store_true",
        help="Export the fitted correspondences after every solve (overrides config).",
    )
    args = parser.parse_args()

    cfg: AppConfig = load_config(args.config)
    if args.write_debug_file:
        cfg.calibration.write_debug_file = True

    log_level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    logger = setup_logger(__name__, level=log_level, log_file=cfg.logging.file)
    set_package_level(log_level, log_file=cfg.logging.file)

    pairs = load_pairs(Path(args.input))
    logger.info(f"Loaded {len(pairs)} correspondences from {args.input}")

    estimator = AlignmentEstimator.from_config(cfg)
    solves = 0
    for world_x, world_y, gps_x, gps_y in pairs:
        if estimator.ingest((world_x, world_y), (gps_x, gps_y)) is not None:
            solves += 1
    logger.info(f"{solves} threshold-triggered solves during replay")

    summary = estimator.run_optimization_now()
    if summary is not None:
        logger.info(summary.brief_report())

    transform = estimate_to_transform(
        estimator.current_estimate(),
        parent_frame=cfg.frames.georef_frame,
        child_frame=cfg.frames.world_frame,
    )
    t, q = transform.translation, transform.rotation
    logger.info(f"{transform.parent_frame} -> {transform.child_frame}")
    logger.info(f"  translation: [{t.x:.6f}, {t.y:.6f}, {t.z:.6f}]")
    logger.info(f"  rotation (xyzw): [{q.x:.6f}, {q.y:.6f}, {q.z:.6f}, {q.w:.6f}]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
