"""Models for aircraft telemetry received from the live feed."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_ICAO = "unknown"


class GeoPosition(BaseModel):
    """A geodetic position, used both for aircraft and for the viewer."""

    latitude: float = Field(..., description="Latitude in decimal degrees")
    longitude: float = Field(..., description="Longitude in decimal degrees")
    altitude: float = Field(default=0.0, description="Altitude in meters")

    model_config = ConfigDict(frozen=True)


class FlightRecord(BaseModel):
    """One observed aircraft at one point in time."""

    icao: str = Field(
        default=UNKNOWN_ICAO,
        min_length=1,
        description="Stable aircraft identifier, or the 'unknown' sentinel",
    )
    callsign: str = Field(
        default="", description="Flight callsign; blank for private or unidentified flights"
    )
    latitude: float = Field(..., description="Latitude in decimal degrees")
    longitude: float = Field(..., description="Longitude in decimal degrees")
    altitude: float = Field(..., description="Altitude in meters")
    heading: float = Field(
        default=0.0, description="Nose heading in degrees clockwise from north"
    )
    ground_velocity: float = Field(default=0.0, description="Ground velocity")
    vertical_velocity: float = Field(default=0.0, description="Vertical velocity")

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("icao", mode="before")
    @classmethod
    def _default_icao(cls, value):
        if value is None or not str(value).strip():
            return UNKNOWN_ICAO
        return str(value).strip()

    @field_validator("callsign", mode="before")
    @classmethod
    def _strip_callsign(cls, value):
        if value is None:
            return ""
        return str(value).strip()

    @property
    def position(self) -> GeoPosition:
        return GeoPosition(
            latitude=self.latitude, longitude=self.longitude, altitude=self.altitude
        )

    @property
    def is_private(self) -> bool:
        """A blank callsign marks a private or unidentified flight."""
        return not self.callsign

    @property
    def has_stable_identity(self) -> bool:
        return self.icao != UNKNOWN_ICAO


__all__ = ["FlightRecord", "GeoPosition", "UNKNOWN_ICAO"]
