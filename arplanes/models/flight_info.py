"""Descriptive flight metadata shown when a tracked aircraft is selected."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from arplanes.models.flight import FlightRecord

PRIVATE_MARKER = "private"


class FlightInformation(BaseModel):
    """Itinerary and airline details for a single flight."""

    origin_airport_code: Optional[str] = Field(
        default=None, description="Origin airport IATA code"
    )
    origin_airport: Optional[str] = Field(default=None, description="Origin airport name")
    destination_airport_code: Optional[str] = Field(
        default=None, description="Destination airport IATA code"
    )
    destination_airport: Optional[str] = Field(
        default=None, description="Destination airport name"
    )
    departure_time: Optional[str] = Field(
        default=None, description="Estimated takeoff as a short local time string"
    )
    arrival_time: Optional[str] = Field(
        default=None, description="Estimated landing as a short local time string"
    )
    aircraft_type: Optional[str] = Field(default=None, description="Aircraft type name")
    airline_name: Optional[str] = Field(default=None, description="Airline short name")
    airline_code: Optional[str] = Field(default=None, description="Airline ICAO code")
    airline_logo_url: Optional[str] = Field(
        default=None, description="Logo image URL derived from the airline code"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def is_private(self) -> bool:
        return (
            self.origin_airport_code == PRIVATE_MARKER
            and self.destination_airport_code == PRIVATE_MARKER
        )

    @property
    def has_route(self) -> bool:
        return bool(self.origin_airport_code and self.destination_airport_code)


# Cached for aircraft whose lookup showed no public itinerary.
PRIVATE_FLIGHT = FlightInformation(
    origin_airport_code=PRIVATE_MARKER,
    origin_airport=PRIVATE_MARKER,
    destination_airport_code=PRIVATE_MARKER,
    destination_airport=PRIVATE_MARKER,
    departure_time=PRIVATE_MARKER,
    arrival_time=PRIVATE_MARKER,
    aircraft_type=PRIVATE_MARKER,
    airline_name=PRIVATE_MARKER,
    airline_code=PRIVATE_MARKER,
    airline_logo_url=PRIVATE_MARKER,
)


class FlightStatus(BaseModel):
    """What the host status card should show for a selected aircraft."""

    state: Literal["loading", "private", "ready", "unavailable"] = Field(
        ..., description="Card state for the selected aircraft"
    )
    record: FlightRecord = Field(..., description="Latest telemetry for the aircraft")
    distance_m: Optional[float] = Field(
        default=None, description="Great-circle distance from the viewer in meters"
    )
    distance_display: Optional[str] = Field(
        default=None, description="Distance formatted for display, e.g. '12km'"
    )
    info: Optional[FlightInformation] = Field(
        default=None, description="Itinerary details when state is 'ready'"
    )

    @property
    def title(self) -> str:
        if self.info and self.info.airline_name:
            return self.info.airline_name
        return self.record.callsign


__all__ = ["FlightInformation", "FlightStatus", "PRIVATE_FLIGHT", "PRIVATE_MARKER"]
