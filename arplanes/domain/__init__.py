"""Pure domain logic for positioning aircraft around the viewer."""

from .projection import (
    ProjectionScale,
    destination_point,
    format_distance,
    haversine_distance,
    heading_rotation,
    initial_bearing,
    project,
)

__all__ = [
    "ProjectionScale",
    "destination_point",
    "format_distance",
    "haversine_distance",
    "heading_rotation",
    "initial_bearing",
    "project",
]
