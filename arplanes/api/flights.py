"""Endpoints exposing the tracked aircraft to the host application."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from arplanes.config import settings
from arplanes.models import FlightStatus, GeoPosition, TrackedFlight
from arplanes.services.session import TrackingSession

router = APIRouter(prefix="/api/v1", tags=["flights"])

logger = logging.getLogger("arplanes.api.flights")


class TrackedFlightsResponse(BaseModel):
    """Current tracked set as seen by the reconciliation timeline."""

    viewer: GeoPosition | None = Field(default=None, description="Current viewer location")
    connectivity_degraded: bool = Field(..., description="True while the feed is down")
    flights: list[TrackedFlight] = Field(default_factory=list)


class LocationAccepted(BaseModel):
    status: str = Field(..., description="Status of the location submission")


def get_session(request: Request) -> TrackingSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tracking session not running",
        )
    return session


@router.get("/flights", response_model=TrackedFlightsResponse, summary="List tracked aircraft")
def list_flights(session: TrackingSession = Depends(get_session)) -> TrackedFlightsResponse:
    return TrackedFlightsResponse(
        viewer=session.viewer,
        connectivity_degraded=session.connectivity_degraded,
        flights=session.tracked(),
    )


@router.post(
    "/location",
    response_model=LocationAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Update the viewer location",
)
async def update_location(
    location: GeoPosition, session: TrackingSession = Depends(get_session)
) -> LocationAccepted:
    """Queue a viewer location update onto the reconciliation timeline."""

    await session.submit_location(location)
    logger.debug("Queued viewer location %s,%s", location.latitude, location.longitude)
    return LocationAccepted(status="queued")


@router.get(
    "/flights/{icao}/status",
    response_model=FlightStatus,
    summary="Status card for a selected aircraft",
)
async def flight_status(
    icao: str, wait: bool = True, session: TrackingSession = Depends(get_session)
) -> FlightStatus:
    """Resolve itinerary details for a tracked aircraft.

    With ``wait=false`` (or enrichment disabled) only cached data is used and
    an unknown flight reports ``loading``.
    """

    result = await session.select_key(icao, wait=wait and settings.enrichment_enabled)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"{icao} is not being tracked"
        )
    return result


@router.get(
    "/selection/{handle}",
    response_model=FlightStatus,
    summary="Status card for a scene node the user tapped",
)
async def select_handle(
    handle: str, session: TrackingSession = Depends(get_session)
) -> FlightStatus:
    result = await session.select(handle)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{handle} does not match a tracked aircraft",
        )
    return result
