import math

import pytest

from arplanes.domain.projection import (
    ProjectionScale,
    destination_point,
    format_distance,
    haversine_distance,
    heading_rotation,
    initial_bearing,
    project,
)
from arplanes.models.flight import GeoPosition

WATERLOO = GeoPosition(latitude=43.4729, longitude=-80.5402, altitude=0)


def _angle_diff(a: float, b: float) -> float:
    return abs((a - b + 180.0) % 360.0 - 180.0)


@pytest.mark.parametrize("altitude", [0.0, 350.0, 10888.98])
@pytest.mark.parametrize("vertical", [1 / 20, 1 / 140])
def test_same_point_projects_to_origin(altitude, vertical):
    point = GeoPosition(latitude=43.4729, longitude=-80.5402, altitude=altitude)
    placement = project(point, point, scale=ProjectionScale(vertical=vertical))

    assert placement.x == 0
    assert placement.z == 0
    assert placement.y == pytest.approx(altitude * vertical)
    assert initial_bearing(point, point) == 0


def test_dal137_placement_matches_haversine_distance():
    target = GeoPosition(latitude=44.4364, longitude=-80.4109, altitude=10888.98)
    scale = ProjectionScale(horizontal=1 / 140, vertical=1 / 140)

    placement = project(target, WATERLOO, heading=216.01, scale=scale)
    distance = haversine_distance(WATERLOO, target)

    assert 100_000 < distance < 115_000
    assert placement.y == pytest.approx(10888.98 / 140)
    assert math.hypot(placement.x, placement.z) == pytest.approx(distance / 140)
    # North-northeast of the viewer: east is +X, north is -Z.
    assert placement.x > 0
    assert placement.z < 0
    assert placement.rotation == pytest.approx(2 * math.pi - math.radians(216.01))


@pytest.mark.parametrize("distance_m", [500.0, 12_000.0, 60_000.0])
@pytest.mark.parametrize("bearing", [0.0, 45.0, 135.0, 200.0, 270.0, 359.0])
def test_projection_round_trips_distance_and_bearing(distance_m, bearing):
    target = destination_point(WATERLOO, distance_m, bearing, altitude=1000.0)
    scale = ProjectionScale(horizontal=1 / 140, vertical=1 / 140)

    assert haversine_distance(WATERLOO, target) == pytest.approx(distance_m, rel=1e-9)
    assert _angle_diff(initial_bearing(WATERLOO, target), bearing) < 1e-6

    placement = project(target, WATERLOO, scale=scale)
    recovered_distance = math.hypot(placement.x, placement.z) / scale.horizontal
    recovered_bearing = math.degrees(math.atan2(placement.x, -placement.z)) % 360.0

    assert recovered_distance == pytest.approx(distance_m, rel=1e-9)
    assert _angle_diff(recovered_bearing, bearing) < 1e-6


def test_cardinal_directions_follow_scene_axes():
    north = destination_point(WATERLOO, 1400.0, 0.0)
    east = destination_point(WATERLOO, 1400.0, 90.0)

    north_placement = project(north, WATERLOO)
    east_placement = project(east, WATERLOO)

    assert north_placement.z == pytest.approx(-10.0, rel=1e-6)
    assert north_placement.x == pytest.approx(0.0, abs=1e-6)
    assert east_placement.x == pytest.approx(10.0, rel=1e-6)
    assert east_placement.z == pytest.approx(0.0, abs=1e-6)


def test_heading_rotation_is_reciprocal_adjusted():
    assert heading_rotation(0.0) == pytest.approx(2 * math.pi)
    assert heading_rotation(90.0) == pytest.approx(1.5 * math.pi)
    assert heading_rotation(180.0) == pytest.approx(math.pi)


def test_bearing_is_normalized():
    west = GeoPosition(latitude=43.4729, longitude=-81.0)
    assert initial_bearing(WATERLOO, west) == pytest.approx(270.0, abs=0.5)
    assert 0 <= initial_bearing(WATERLOO, west) < 360


def test_format_distance():
    assert format_distance(0) == "0m"
    assert format_distance(849.6) == "850m"
    assert format_distance(1000) == "1km"
    assert format_distance(12_400) == "12km"
