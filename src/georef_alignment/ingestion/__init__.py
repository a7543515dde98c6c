from .observations import GeorefObservation, ObservationHandler, FrameLookup

__all__ = [
    "GeorefObservation",
    "ObservationHandler",
    "FrameLookup",
]
