"""Placement and reconciliation result models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from arplanes.models.flight import FlightRecord


class Placement(BaseModel):
    """Offset and rotation of one aircraft in the viewer's local frame.

    Axes follow the scene convention: +X east, +Y up, +Z south.
    """

    x: float = Field(..., description="East offset in scene units")
    y: float = Field(..., description="Up offset in scene units")
    z: float = Field(..., description="South offset in scene units")
    rotation: float = Field(..., description="Rotation about +Y in radians")

    model_config = ConfigDict(frozen=True)

    @property
    def offset(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


class PlacementIntent(BaseModel):
    """A request for the scene graph to create or move one aircraft."""

    kind: Literal["created", "moved"]
    key: str = Field(..., description="Tracking key, normally the aircraft ICAO")
    record: FlightRecord
    placement: Placement

    model_config = ConfigDict(frozen=True)


class ReconcileResult(BaseModel):
    """Outcome of reconciling one telemetry batch against the tracked set."""

    created: list[PlacementIntent] = Field(default_factory=list)
    moved: list[PlacementIntent] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    removed_records: dict[str, FlightRecord] = Field(
        default_factory=dict, description="Last known record of each removed key"
    )

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.moved or self.removed)


class TrackedFlight(BaseModel):
    """Serializable view of one tracked aircraft for the host API."""

    key: str
    record: FlightRecord
    placement: Placement
    handle: str | None = None


__all__ = ["Placement", "PlacementIntent", "ReconcileResult", "TrackedFlight"]
