"""
geometry.py - 2-D points and circle-circle intersection.

Points are immutable and tuple-compatible so they can be handed straight to
numpy or pylinkage, which both expect (x, y) pairs.
"""
from __future__ import annotations

import math
from typing import Iterable
from typing import NamedTuple

import numpy as np

from configs.appconfig import INTERSECTION_TOLERANCE


class Coord(NamedTuple):
    """A point or vector in the plane."""
    x: float
    y: float

    def add(self, other: tuple[float, float]) -> Coord:
        return Coord(self.x + other[0], self.y + other[1])

    def subtract(self, other: tuple[float, float]) -> Coord:
        return Coord(self.x - other[0], self.y - other[1])

    def scale(self, factor: float) -> Coord:
        return Coord(self.x * factor, self.y * factor)

    def norm(self) -> float:
        return math.hypot(self.x, self.y)

    def distance_to(self, other: tuple[float, float]) -> float:
        return math.hypot(other[0] - self.x, other[1] - self.y)

    def angle_to(self, other: tuple[float, float]) -> float:
        """Angle in degrees of the vector from this point to `other`."""
        return math.degrees(math.atan2(other[1] - self.y, other[0] - self.x))

    def cross(self, other: tuple[float, float]) -> float:
        """z-component of self x other."""
        return self.x * other[1] - self.y * other[0]

    def is_close(self, other: tuple[float, float], tol: float = 1e-9) -> bool:
        return self.distance_to(other) <= tol

    @classmethod
    def of(cls, point: Iterable[float]) -> Coord:
        x, y = point
        return cls(float(x), float(y))


def mean_point(points: Iterable[tuple[float, float]]) -> Coord:
    """Arithmetic mean of a non-empty collection of points."""
    arr = np.asarray(list(points), dtype=float)
    if arr.size == 0:
        raise ValueError('mean_point() requires at least one point')
    cx, cy = arr.mean(axis=0)
    return Coord(float(cx), float(cy))


def link_angle(p0: tuple[float, float], p1: tuple[float, float]) -> float:
    """Orientation in degrees of the segment p0 -> p1."""
    return Coord.of(p0).angle_to(p1)


def direction_components(magnitude: float, angle_deg: float) -> Coord:
    """(Fx, Fy) of a vector with given magnitude and angle in degrees."""
    rad = math.radians(angle_deg)
    return Coord(magnitude * math.cos(rad), magnitude * math.sin(rad))


# =============================================================================
# Circle-Circle Intersection
# =============================================================================

def circle_circle_intersection(
    center0: tuple[float, float],
    radius0: float,
    center1: tuple[float, float],
    radius1: float,
    tolerance: float = INTERSECTION_TOLERANCE,
) -> list[Coord]:
    """
    Compute the intersection points of two circles.

    Degenerate cases are resolved in this order:
      (a) coincident centers, equal radii      -> []
      (b) coincident centers, unequal radii    -> []
      (c) circles too far apart                -> []
      (d) one circle strictly inside the other -> []
      (e) tangent circles                      -> [p]
      otherwise                                -> [p_left, p_right]

    Args:
        center0, radius0: First circle
        center1, radius1: Second circle
        tolerance: Absolute tolerance on distances and the half-chord height

    Returns:
        List of 0, 1 or 2 intersection points
    """
    c0 = Coord.of(center0)
    c1 = Coord.of(center1)
    dx = c1.x - c0.x
    dy = c1.y - c0.y
    d = math.hypot(dx, dy)

    if d <= tolerance:
        # (a) and (b): no unique solution either way
        return []

    if d > radius0 + radius1 + tolerance:
        return []

    if d < abs(radius0 - radius1) - tolerance:
        return []

    a = (radius0 * radius0 - radius1 * radius1 + d * d) / (2 * d)
    h_sq = radius0 * radius0 - a * a
    h = math.sqrt(h_sq) if h_sq > 0 else 0.0

    ux = dx / d
    uy = dy / d
    px = c0.x + a * ux
    py = c0.y + a * uy

    if h <= tolerance:
        return [Coord(px, py)]

    return [
        Coord(px - h * uy, py + h * ux),
        Coord(px + h * uy, py - h * ux),
    ]


def closest_point(
    candidates: Iterable[tuple[float, float]],
    reference: tuple[float, float],
) -> Coord | None:
    """Return the candidate nearest to `reference` (first one wins ties)."""
    best = None
    best_dist = math.inf
    for candidate in candidates:
        dist = Coord.of(candidate).distance_to(reference)
        if dist < best_dist:
            best = Coord.of(candidate)
            best_dist = dist
    return best
