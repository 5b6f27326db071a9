"""
tracking.py - Reconstruct force application points and centers of mass.

Forces and centers of mass move with their rigid body, but only the joints
are given at each timestep. Both are recovered from their distances to two
reference joints (circle-circle intersection). When the circles cross twice,
the root closer to a continuity reference is chosen:
  - forces:          the previous timestep's application point
  - centers of mass: the previous timestep's center of mass

Nothing here writes back onto the mechanism's Force or Link objects.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable
from typing import Mapping

from configs.appconfig import INTERSECTION_TOLERANCE
from statics_tools.errors import MissingReferenceError
from statics_tools.errors import ReconstructionError
from statics_tools.geometry import circle_circle_intersection
from statics_tools.geometry import closest_point
from statics_tools.geometry import Coord
from statics_tools.geometry import direction_components
from statics_tools.geometry import link_angle
from statics_tools.topology import ForceFrame
from statics_tools.topology import Mechanism
from statics_tools.topology import RigidBody

logger = logging.getLogger(__name__)

BodyKey = tuple[str, int]


def body_key(body: RigidBody) -> BodyKey:
    return (body.kind, body.id)


@dataclass(frozen=True)
class ForceMeta:
    """Reference-time description of a force relative to its parent link."""
    force_id: int
    force_name: str
    body_key: BodyKey
    magnitude: float
    joint0_id: int
    joint1_id: int
    distance0: float
    distance1: float
    reference_start: Coord
    frame: ForceFrame
    angle: float  # relative to the link if LOCAL, absolute if GLOBAL
    reference_angle: float  # absolute angle at the reference pose


@dataclass(frozen=True)
class ForceAtTimestep:
    """A force reconstructed at one timestep."""
    force_id: int
    body_key: BodyKey
    start: Coord
    angle: float
    fx: float
    fy: float

    @property
    def components(self) -> Coord:
        return Coord(self.fx, self.fy)


def _lookup(positions: Mapping[int, Coord], joint_id: int, what: str) -> Coord:
    try:
        return Coord.of(positions[joint_id])
    except KeyError:
        raise MissingReferenceError(f'No position for joint {joint_id} while reconstructing {what}') from None


def reconstruct_point(
    center0: Coord,
    radius0: float,
    center1: Coord,
    radius1: float,
    reference: Coord,
    what: str,
    tolerance: float = INTERSECTION_TOLERANCE,
) -> Coord:
    """Intersect two circles and keep the root nearest `reference`."""
    roots = circle_circle_intersection(center0, radius0, center1, radius1, tolerance)
    if not roots:
        raise ReconstructionError(
            f'Cannot reconstruct {what}: reference joints at {tuple(center0)} and '
            f'{tuple(center1)} are inconsistent with distances {radius0:.6g}, {radius1:.6g}',
        )
    return closest_point(roots, reference)


# =============================================================================
# Force Tracking
# =============================================================================

class ForceTracker:
    """Caches force geometry once, then rebuilds forces at any timestep."""

    def __init__(self, tolerance: float = INTERSECTION_TOLERANCE):
        self.tolerance = tolerance
        self.meta: dict[int, ForceMeta] = {}

    def cache(self, mechanism: Mechanism, bodies: Iterable[RigidBody]) -> dict[int, ForceMeta]:
        """Record every force's relationship to its parent link at the reference pose."""
        self.meta = {}
        for body in bodies:
            for force in mechanism.forces_of(body):
                link = mechanism.links[force.parent_link_id]
                j0, j1 = (mechanism.joints[j] for j in link.joint_ids[:2])
                start = Coord.of(force.start)

                if force.frame == ForceFrame.LOCAL:
                    angle = force.angle - link_angle(j0.coords, j1.coords)
                else:
                    angle = force.angle

                self.meta[force.id] = ForceMeta(
                    force_id=force.id,
                    force_name=force.name,
                    body_key=body_key(body),
                    magnitude=force.magnitude,
                    joint0_id=j0.id,
                    joint1_id=j1.id,
                    distance0=start.distance_to(j0.coords),
                    distance1=start.distance_to(j1.coords),
                    reference_start=start,
                    frame=force.frame,
                    angle=angle,
                    reference_angle=force.angle,
                )
        logger.debug(f"Cached {len(self.meta)} force(s)")
        return self.meta

    def reference_states(self) -> dict[int, ForceAtTimestep]:
        """Forces exactly as they were cached at the reference pose."""
        states = {}
        for meta in self.meta.values():
            states[meta.force_id] = self._state(meta, meta.reference_start, meta.reference_angle)
        return states

    def at_timestep(
        self,
        positions: Mapping[int, Coord],
        previous: Mapping[int, ForceAtTimestep] | None = None,
    ) -> dict[int, ForceAtTimestep]:
        """
        Reconstruct every cached force at one timestep.

        Args:
            positions: joint id -> position at this timestep
            previous: forces at the previous timestep (None at t=0)

        Returns:
            force id -> ForceAtTimestep

        Raises:
            MissingReferenceError: a reference joint has no position
            ReconstructionError: the circles do not intersect
        """
        previous = previous or {}
        states = {}
        for meta in self.meta.values():
            p0 = _lookup(positions, meta.joint0_id, f'force {meta.force_name}')
            p1 = _lookup(positions, meta.joint1_id, f'force {meta.force_name}')

            prior = previous.get(meta.force_id)
            reference = prior.start if prior is not None else meta.reference_start
            start = reconstruct_point(
                p0, meta.distance0, p1, meta.distance1,
                reference, f'force {meta.force_name}', self.tolerance,
            )

            if meta.frame == ForceFrame.LOCAL:
                angle = link_angle(p0, p1) + meta.angle
            else:
                angle = meta.angle

            states[meta.force_id] = self._state(meta, start, angle)
        return states

    @staticmethod
    def _state(meta: ForceMeta, start: Coord, angle: float) -> ForceAtTimestep:
        fx, fy = direction_components(meta.magnitude, angle)
        return ForceAtTimestep(
            force_id=meta.force_id,
            body_key=meta.body_key,
            start=start,
            angle=angle,
            fx=fx,
            fy=fy,
        )


# =============================================================================
# Center-of-Mass Tracking
# =============================================================================

@dataclass(frozen=True)
class CenterOfMassMeta:
    body_key: BodyKey
    body_name: str
    joint0_id: int
    joint1_id: int
    distance0: float
    distance1: float
    reference: Coord


class CenterOfMassTracker:
    """
    Rebuilds each rigid body's center of mass from its first two joints.

    The only disambiguator is the previous timestep's result, so timesteps
    must be fed in increasing order.
    """

    def __init__(self, tolerance: float = INTERSECTION_TOLERANCE):
        self.tolerance = tolerance
        self.meta: dict[BodyKey, CenterOfMassMeta] = {}

    def cache(self, mechanism: Mechanism, bodies: Iterable[RigidBody]) -> dict[BodyKey, CenterOfMassMeta]:
        self.meta = {}
        for body in bodies:
            com = mechanism.center_of_mass(body)
            j0_id, j1_id = mechanism.reference_joint_ids(body)
            j0 = mechanism.joints[j0_id].coords
            j1 = mechanism.joints[j1_id].coords
            self.meta[body_key(body)] = CenterOfMassMeta(
                body_key=body_key(body),
                body_name=body.name,
                joint0_id=j0_id,
                joint1_id=j1_id,
                distance0=com.distance_to(j0),
                distance1=com.distance_to(j1),
                reference=com,
            )
        return self.meta

    def nominal(self) -> dict[BodyKey, Coord]:
        """Centers of mass at the reference pose."""
        return {key: meta.reference for key, meta in self.meta.items()}

    def at_timestep(
        self,
        positions: Mapping[int, Coord],
        previous: Mapping[BodyKey, Coord],
    ) -> dict[BodyKey, Coord]:
        """
        Reconstruct every center of mass at one timestep.

        Raises:
            MissingReferenceError: no previous COM or reference joint position
            ReconstructionError: the circles do not intersect
        """
        result = {}
        for key, meta in self.meta.items():
            if key not in previous:
                raise MissingReferenceError(f'No previous center of mass for {meta.body_name}')
            p0 = _lookup(positions, meta.joint0_id, f'center of mass of {meta.body_name}')
            p1 = _lookup(positions, meta.joint1_id, f'center of mass of {meta.body_name}')
            result[key] = reconstruct_point(
                p0, meta.distance0, p1, meta.distance1,
                Coord.of(previous[key]), f'center of mass of {meta.body_name}', self.tolerance,
            )
        return result
