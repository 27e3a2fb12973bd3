"""Service-layer components of the AR Planes tracking core."""

from .enrichment import (
    EnrichmentError,
    EnrichmentService,
    EnrichmentUnavailableError,
    FlightInfoCache,
    NoItineraryError,
)
from .reconciler import TrackReconciler, TrackedEntity
from .scene import InMemorySceneGraph, SceneGraph
from .session import BatchEvent, LocationEvent, TrackingSession

__all__ = [
    "BatchEvent",
    "EnrichmentError",
    "EnrichmentService",
    "EnrichmentUnavailableError",
    "FlightInfoCache",
    "InMemorySceneGraph",
    "LocationEvent",
    "NoItineraryError",
    "SceneGraph",
    "TrackReconciler",
    "TrackedEntity",
    "TrackingSession",
]
