"""Distances between coordinates, planar or on a sphere."""

import math
from collections.abc import Sequence

from .models import Coordinate

EARTH_RADIUS_IN_METERS = 6372797.560856


def distance(a: Coordinate, b: Coordinate, geographic: bool = False) -> float:
    """Distance between two points.

    In geographic mode the longitude and latitude deltas are converted to
    meters independently and combined as if they were planar. This is a
    rectangular approximation, not a great-circle distance.
    """
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    if geographic:
        dx = EARTH_RADIUS_IN_METERS * math.radians(dx)
        dy = EARTH_RADIUS_IN_METERS * math.radians(dy)
    return math.hypot(dx, dy)


def line_length(points: Sequence[Coordinate], geographic: bool = False) -> float:
    """Sum of the distances between consecutive points."""
    length = 0.0
    for i in range(1, len(points)):
        length += distance(points[i - 1], points[i], geographic)
    return length
