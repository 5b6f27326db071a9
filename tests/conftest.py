from __future__ import annotations

import math

import pytest

from statics_tools.geometry import circle_circle_intersection
from statics_tools.geometry import Coord
from statics_tools.schemas import AnimationFrames
from statics_tools.topology import Mechanism


@pytest.fixture
def two_bar() -> Mechanism:
    """Single link A-B; A grounded and driven, B free at (2, 0)."""
    m = Mechanism(name='two_bar')
    m.add_joint(0.0, 0.0, grounded=True, is_input=True, name='A')
    m.add_joint(2.0, 0.0, name='B')
    m.add_link([0, 1], mass=0.0, name='bar')
    return m


def rotating_bar_frames(length: float, n_steps: int, sweep: float = 2 * math.pi) -> AnimationFrames:
    """Frames of a bar of given length rotating about the origin."""
    positions = []
    for k in range(n_steps):
        theta = sweep * k / n_steps
        positions.append([Coord(0.0, 0.0), Coord(length * math.cos(theta), length * math.sin(theta))])
    return AnimationFrames(positions=positions, corresponding_joints=[0, 1])


@pytest.fixture
def fourbar() -> Mechanism:
    """
    Crank-rocker: ground 4, crank 1, coupler 4, rocker 3.

    Joints A(0,0) grounded input, B(0,1), C (upper assembly), D(4,0) grounded.
    """
    upper = max(circle_circle_intersection((0.0, 1.0), 4.0, (4.0, 0.0), 3.0), key=lambda p: p.y)

    m = Mechanism(name='fourbar')
    m.add_joint(0.0, 0.0, grounded=True, is_input=True, name='A')
    m.add_joint(0.0, 1.0, name='B')
    m.add_joint(upper.x, upper.y, name='C')
    m.add_joint(4.0, 0.0, grounded=True, name='D')
    m.add_link([0, 1], mass=1.0, name='crank')
    m.add_link([1, 2], mass=2.0, name='coupler')
    m.add_link([2, 3], mass=1.5, name='rocker')
    b, c = m.joints[1].coords, m.joints[2].coords
    m.add_force(1, ((b.x + c.x) / 2, (b.y + c.y) / 2), 10.0, angle=-90.0, name='load')
    return m


@pytest.fixture
def rotating_frames():
    return rotating_bar_frames
