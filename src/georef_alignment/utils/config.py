"""
Configuration management for georef-alignment.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Optional, Literal, Any, Dict

from pydantic import BaseModel, Field, ValidationError, field_validator
import yaml


# -----------------------
# Typed config structures
# -----------------------


class CalibrationConfig(BaseModel):
    translation_x: float = Field(default=0.0, description="Initial translation x (georef frame units)")
    translation_y: float = Field(default=0.0, description="Initial translation y (georef frame units)")
    orientation: float = Field(default=0.0, description="Initial rotation in radians")
    write_debug_file: bool = Field(
        default=False,
        description="Write the fitted correspondences to a CSV file after every solve",
    )
    debug_file: str = Field(default="gps_alignment_solution.csv")
    batch_size: int = Field(
        default=10,
        ge=1,
        description="Re-optimize every time the correspondence count reaches a multiple of this value",
    )

    @field_validator("translation_x", "translation_y", "orientation")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("initial transform values must be finite")
        return value


class SolverConfig(BaseModel):
    max_iterations: int = Field(default=50, ge=1)
    function_tolerance: float = Field(
        default=1e-6,
        description="Stop when the relative cost decrease falls below this value",
    )
    gradient_tolerance: float = Field(
        default=1e-10,
        description="Stop when the max-norm of the gradient falls below this value",
    )
    parameter_tolerance: float = Field(
        default=1e-8,
        description="Stop when the relative step size falls below this value",
    )
    initial_damping: float = Field(default=1e-4, gt=0.0)


class FramesConfig(BaseModel):
    georef_frame: str = Field(default="utm")
    world_frame: str = Field(default="world")
    sensor_frame: str = Field(
        default="navsat_link",
        description="Frame id expected on incoming georeferenced observations",
    )
    lookup_timeout_s: float = Field(default=3.0, gt=0.0)


class PublishingConfig(BaseModel):
    period_s: float = Field(default=0.1, gt=0.0, description="Transform broadcast period in seconds")


class RoutingConfig(BaseModel):
    # 'observation' reproduces the legacy wiring where run-optimization
    # requests reach the observation handler instead of triggering a solve.
    run_optimization_routing: Literal["dedicated", "observation"] = Field(default="dedicated")


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    calibration: CalibrationConfig = Field(default_factory=CalibrationConfig)
    solver: SolverConfig = Field(default_factory=SolverConfig)
    frames: FramesConfig = Field(default_factory=FramesConfig)
    publishing: PublishingConfig = Field(default_factory=PublishingConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/georef_alignment/utils/config.py
    parents sequence:
      0 -> .../src/georef_alignment/utils
      1 -> .../src/georef_alignment
      2 -> .../src
      3 -> repo_root
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        # Re-raise with context to help users fix the YAML
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}")
