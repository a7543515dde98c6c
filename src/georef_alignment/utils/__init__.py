"""
Utility Functions Module

This module provides common utility functions used across the project.
- Logging setup
- Typed YAML configuration
- Diagnostic CSV export of fitted correspondences
"""

from .logging import setup_logger, set_package_level
from .config import load_config, AppConfig
from .export import export_alignment_solution, DiagnosticExporter

__all__ = [
    "setup_logger",
    "set_package_level",
    "load_config",
    "AppConfig",
    "export_alignment_solution",
    "DiagnosticExporter",
]
