"""
Exception types shared across the package.
"""


class AlignmentError(Exception):
    """Base class for errors raised by georef-alignment."""


class FrameLookupError(AlignmentError):
    """
    The world-frame position for an observation could not be resolved.

    Raised by frame lookup collaborators when no transform is available
    within the allowed wait. The ingestion adapter drops the observation.
    """
