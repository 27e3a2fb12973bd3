"""Pydantic models for the AR Planes tracking core."""

from .flight import UNKNOWN_ICAO, FlightRecord, GeoPosition
from .flight_info import PRIVATE_FLIGHT, FlightInformation, FlightStatus
from .tracking import Placement, PlacementIntent, ReconcileResult, TrackedFlight

__all__ = [
    "FlightInformation",
    "FlightRecord",
    "FlightStatus",
    "GeoPosition",
    "PRIVATE_FLIGHT",
    "Placement",
    "PlacementIntent",
    "ReconcileResult",
    "TrackedFlight",
    "UNKNOWN_ICAO",
]
