"""Geodetic to scene-local projection.

The local frame is centered on the viewer and matches the host's
gravity-and-heading alignment: +X points east, +Y points up and +Z points
south, so a northward offset is written as a negative Z.
"""

from __future__ import annotations

from dataclasses import dataclass
import math

from arplanes.models.flight import GeoPosition
from arplanes.models.tracking import Placement

EARTH_RADIUS_M = 6_371_008.8


@dataclass(frozen=True)
class ProjectionScale:
    """Meters to scene units, horizontally and vertically."""

    horizontal: float = 1 / 140
    vertical: float = 1 / 140


def haversine_distance(a: GeoPosition, b: GeoPosition) -> float:
    """Great-circle distance in meters between two positions (altitude ignored)."""

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def initial_bearing(origin: GeoPosition, target: GeoPosition) -> float:
    """Initial great-circle bearing from ``origin`` to ``target`` in [0, 360).

    Coincident points give ``atan2(0, 0) == 0``, i.e. a bearing of 0.
    """

    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(target.latitude)
    dlon = math.radians(target.longitude - origin.longitude)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return math.degrees(math.atan2(y, x)) % 360.0


def destination_point(
    origin: GeoPosition, distance_m: float, bearing_deg: float, altitude: float = 0.0
) -> GeoPosition:
    """Position reached by travelling ``distance_m`` from ``origin`` on ``bearing_deg``."""

    angular = distance_m / EARTH_RADIUS_M
    bearing = math.radians(bearing_deg)
    lat1 = math.radians(origin.latitude)
    lon1 = math.radians(origin.longitude)

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular)
        + math.cos(lat1) * math.sin(angular) * math.cos(bearing)
    )
    lon2 = lon1 + math.atan2(
        math.sin(bearing) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )
    lon_deg = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    return GeoPosition(latitude=math.degrees(lat2), longitude=lon_deg, altitude=altitude)


def heading_rotation(heading_deg: float) -> float:
    """Rotation about the up axis that points the model's nose along ``heading_deg``.

    The model's nose faces the reciprocal direction at rest, hence
    ``pi - (heading - pi)``; dropping either pi term flips the aircraft.
    """

    return math.pi - (math.radians(heading_deg) - math.pi)


def project(
    target: GeoPosition,
    reference: GeoPosition,
    heading: float = 0.0,
    scale: ProjectionScale | None = None,
) -> Placement:
    """Place ``target`` in the local frame centered on ``reference``.

    The vertical offset uses the target's absolute altitude, not the
    difference from the viewer.
    """

    scale = scale or ProjectionScale()
    distance = haversine_distance(reference, target)
    bearing = math.radians(initial_bearing(reference, target))

    east = distance * math.sin(bearing) * scale.horizontal
    north = distance * math.cos(bearing) * scale.horizontal
    up = target.altitude * scale.vertical

    return Placement(x=east, y=up, z=-north, rotation=heading_rotation(heading))


def format_distance(distance_m: float) -> str:
    """Format a viewer distance the way the status card shows it."""

    if distance_m < 1000.0:
        return f"{int(round(distance_m))}m"
    return f"{int(round(distance_m / 1000.0))}km"


__all__ = [
    "EARTH_RADIUS_M",
    "ProjectionScale",
    "destination_point",
    "format_distance",
    "haversine_distance",
    "heading_rotation",
    "initial_bearing",
    "project",
]
