"""
conventions.py - Per-sub-mechanism analysis conventions.

An AnalysisSession owns every convention the equation builder needs:
  - reaction-force sign per (rigid body, joint)
  - free-end joints (no reaction variables)
  - motor torque sign at the input joint
  - gravity direction and the shared gravity magnitude
  - pivot choice per rigid body (center of mass or a member joint)

Conventions are keyed by sub-mechanism identity (its sorted joint ids), so a
session can hold several independent sub-mechanisms at once.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any

from configs.appconfig import GRAVITY
from statics_tools.errors import ConventionError
from statics_tools.geometry import Coord
from statics_tools.topology import Mechanism
from statics_tools.topology import RigidBody
from statics_tools.topology import SubMechanism

logger = logging.getLogger(__name__)

SubMechanismKey = tuple[int, ...]


# =============================================================================
# Convention Records
# =============================================================================

@dataclass
class JointSignConvention:
    joint_id: int
    joint_name: str
    x_direction: int = 1
    y_direction: int = 1


@dataclass
class RigidBodySignConventions:
    rigid_body_id: int
    rigid_body_kind: str
    rigid_body_name: str
    joints: dict[int, JointSignConvention] = field(default_factory=dict)


@dataclass
class TorqueSignConvention:
    input_joint_id: int
    input_joint_name: str
    direction: int = 1


class GravityDirection(str, Enum):
    NEGATIVE_Y = 'negative_y'
    POSITIVE_Y = 'positive_y'
    NEGATIVE_X = 'negative_x'
    POSITIVE_X = 'positive_x'
    NEGATIVE_Z = 'negative_z'
    POSITIVE_Z = 'positive_z'

    @property
    def unit_vector(self) -> Coord:
        return _GRAVITY_VECTORS[self]


_GRAVITY_VECTORS = {
    GravityDirection.NEGATIVE_Y: Coord(0.0, -1.0),
    GravityDirection.POSITIVE_Y: Coord(0.0, 1.0),
    GravityDirection.NEGATIVE_X: Coord(-1.0, 0.0),
    GravityDirection.POSITIVE_X: Coord(1.0, 0.0),
    # Out of plane: no planar contribution
    GravityDirection.NEGATIVE_Z: Coord(0.0, 0.0),
    GravityDirection.POSITIVE_Z: Coord(0.0, 0.0),
}


@dataclass
class GravityConvention:
    direction: GravityDirection = GravityDirection.NEGATIVE_Y

    @property
    def x_component(self) -> float:
        return self.direction.unit_vector.x

    @property
    def y_component(self) -> float:
        return self.direction.unit_vector.y


@dataclass
class PivotConvention:
    """Moment reference for one rigid body; joint_id None means center of mass."""
    rigid_body_id: int
    rigid_body_kind: str
    joint_id: int | None = None

    @property
    def is_center_of_mass(self) -> bool:
        return self.joint_id is None


@dataclass
class SubMechanismConventions:
    key: SubMechanismKey
    sign_conventions: dict[tuple[str, int], RigidBodySignConventions]
    free_end_joint_ids: set[int]
    torque: TorqueSignConvention | None
    gravity: GravityConvention
    pivots: dict[tuple[str, int], PivotConvention]

    def sign_for(self, body: RigidBody, joint_id: int) -> JointSignConvention | None:
        record = self.sign_conventions.get((body.kind, body.id))
        if record is None:
            return None
        return record.joints.get(joint_id)

    def pivot_for(self, body: RigidBody) -> PivotConvention:
        return self.pivots.get((body.kind, body.id)) or PivotConvention(body.id, body.kind)


@dataclass
class ConventionEdit:
    """Outcome of a convention edit; a rejected edit leaves the store unchanged."""
    success: bool
    value: Any = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'error': self.error,
        }


def _check_direction(value: int, label: str) -> None:
    if value not in (1, -1):
        raise ConventionError(f'{label} must be 1 or -1, got {value}')


def find_free_end_joints(sub_mechanism: SubMechanism, mechanism: Mechanism) -> set[int]:
    """Joints touching exactly one rigid body that are neither grounded nor input."""
    free = set()
    for jid, bodies in sub_mechanism.joint_bodies.items():
        joint = mechanism.joints[jid]
        if len(bodies) == 1 and not joint.grounded and not joint.is_input:
            free.add(jid)
    return free


def topology_signature(sub_mechanism: SubMechanism, mechanism: Mechanism) -> tuple:
    """Rigid bodies at every joint plus the joint flags conventions depend on."""
    signature = []
    for jid in sorted(sub_mechanism.joint_bodies):
        joint = mechanism.joints[jid]
        bodies = sorted((b.kind, b.id) for b in sub_mechanism.joint_bodies[jid])
        signature.append((jid, tuple(bodies), joint.grounded, joint.is_input))
    return tuple(signature)


# =============================================================================
# Analysis Session
# =============================================================================

class AnalysisSession:
    """
    Context object holding conventions for every analyzed sub-mechanism.

    Sign-convention writes take a lock so that a joint's sign and its
    negated counterpart in every other rigid body change together.
    """

    def __init__(
        self,
        mechanism: Mechanism,
        gravity: float = GRAVITY,
        logger: logging.Logger | None = None,
    ):
        self.mechanism = mechanism
        self.logger = logger or logging.getLogger(__name__)
        self._gravity = float(gravity)
        self._conventions: dict[SubMechanismKey, SubMechanismConventions] = {}
        self._sub_mechanisms: dict[SubMechanismKey, SubMechanism] = {}
        self._signatures: dict[SubMechanismKey, tuple] = {}
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        with self._lock:
            self._conventions.clear()
            self._sub_mechanisms.clear()
            self._signatures.clear()

    def is_current(self, sub_mechanism: SubMechanism) -> bool:
        """
        True if stored conventions were built for this exact topology.

        Welding or unwelding keeps the joint set (and so the key) but changes
        the rigid bodies, which makes the stored conventions stale.
        """
        stored = self._signatures.get(sub_mechanism.key)
        return stored is not None and stored == topology_signature(sub_mechanism, self.mechanism)

    def ensure_current(self, sub_mechanism: SubMechanism) -> SubMechanismConventions:
        """Return conventions for the sub-mechanism, rebuilding them if stale or missing."""
        with self._lock:
            if self.is_current(sub_mechanism):
                return self._conventions[sub_mechanism.key]
            if sub_mechanism.key in self._conventions:
                self.logger.info(
                    f"Topology of sub-mechanism {sub_mechanism.key} changed; resetting its conventions",
                )
            return self.initialize(sub_mechanism)

    def initialize(self, sub_mechanism: SubMechanism) -> SubMechanismConventions:
        """
        Build default conventions for a sub-mechanism.

        Defaults: a joint's first rigid body gets (+1, +1), every later body
        sharing it gets (-1, -1); torque +1 at the input joint; gravity -y;
        every pivot at the center of mass. Existing conventions for the same
        sub-mechanism are replaced.
        """
        mechanism = self.mechanism
        free_end = find_free_end_joints(sub_mechanism, mechanism)

        sign_conventions: dict[tuple[str, int], RigidBodySignConventions] = {}
        seen_joints: set[int] = set()
        for body in sub_mechanism.bodies:
            record = RigidBodySignConventions(body.id, body.kind, body.name)
            for joint in mechanism.joints_of(body):
                if joint.id in free_end:
                    continue
                sign = -1 if joint.id in seen_joints else 1
                record.joints[joint.id] = JointSignConvention(joint.id, joint.name, sign, sign)
                seen_joints.add(joint.id)
            sign_conventions[(body.kind, body.id)] = record

        input_joint = mechanism.input_joint(sub_mechanism.joint_ids)
        torque = None
        if input_joint is not None:
            torque = TorqueSignConvention(input_joint.id, input_joint.name, 1)

        conventions = SubMechanismConventions(
            key=sub_mechanism.key,
            sign_conventions=sign_conventions,
            free_end_joint_ids=free_end,
            torque=torque,
            gravity=GravityConvention(),
            pivots={
                (body.kind, body.id): PivotConvention(body.id, body.kind)
                for body in sub_mechanism.bodies
            },
        )
        with self._lock:
            self._conventions[sub_mechanism.key] = conventions
            self._sub_mechanisms[sub_mechanism.key] = sub_mechanism
            self._signatures[sub_mechanism.key] = topology_signature(sub_mechanism, mechanism)

        self.logger.debug(
            f"Initialized conventions for sub-mechanism {sub_mechanism.key}: "
            f"{len(sign_conventions)} bodies, {len(free_end)} free-end joints, "
            f"input={'none' if torque is None else torque.input_joint_name}",
        )
        return conventions

    def conventions(self, key: SubMechanismKey) -> SubMechanismConventions:
        try:
            return self._conventions[key]
        except KeyError:
            raise ConventionError(f'No conventions initialized for sub-mechanism {key}') from None

    def _body(self, key: SubMechanismKey, body_id: int, kind: str | None) -> RigidBody:
        sub = self._sub_mechanisms.get(key)
        if sub is None:
            raise ConventionError(f'No conventions initialized for sub-mechanism {key}')
        for body in sub.bodies:
            if body.id == body_id and (kind is None or body.kind == kind):
                return body
        raise ConventionError(f'Rigid body {body_id} is not part of sub-mechanism {key}')

    # -------------------------------------------------------------------------
    # Free-end joints
    # -------------------------------------------------------------------------

    def is_free_end_joint(self, key: SubMechanismKey, joint_id: int) -> bool:
        return joint_id in self.conventions(key).free_end_joint_ids

    # -------------------------------------------------------------------------
    # Sign conventions
    # -------------------------------------------------------------------------

    def get_joint_sign_convention(
        self,
        key: SubMechanismKey,
        body_id: int,
        joint_id: int,
        kind: str | None = None,
    ) -> JointSignConvention | None:
        conventions = self.conventions(key)
        body = self._body(key, body_id, kind)
        return conventions.sign_for(body, joint_id)

    def _set_joint_sign_convention(
        self,
        key: SubMechanismKey,
        body_id: int,
        joint_id: int,
        x_direction: int,
        y_direction: int,
        kind: str | None = None,
    ) -> JointSignConvention:
        """
        Raises:
            ConventionError: bad direction value, unknown body/joint, or the
                joint is a free-end joint
        """
        _check_direction(x_direction, 'x_direction')
        _check_direction(y_direction, 'y_direction')

        with self._lock:
            conventions = self.conventions(key)
            if joint_id in conventions.free_end_joint_ids:
                raise ConventionError(f'Joint {joint_id} is a free-end joint and carries no reaction force')

            body = self._body(key, body_id, kind)
            target = conventions.sign_for(body, joint_id)
            if target is None:
                raise ConventionError(f'Joint {joint_id} is not a member of rigid body {body.name}')

            target.x_direction = x_direction
            target.y_direction = y_direction

            for other in self._sub_mechanisms[key].bodies_at(joint_id):
                if (other.kind, other.id) == (body.kind, body.id):
                    continue
                paired = conventions.sign_for(other, joint_id)
                if paired is not None:
                    paired.x_direction = -x_direction
                    paired.y_direction = -y_direction

        self.logger.debug(
            f"Sign of joint {joint_id} in {body.name} set to ({x_direction}, {y_direction})",
        )
        return target

    # -------------------------------------------------------------------------
    # Torque
    # -------------------------------------------------------------------------

    def is_input_joint(self, key: SubMechanismKey, joint_id: int) -> bool:
        torque = self.conventions(key).torque
        return torque is not None and torque.input_joint_id == joint_id

    def get_torque_direction(self, key: SubMechanismKey) -> TorqueSignConvention | None:
        return self.conventions(key).torque

    def _set_torque_direction(self, key: SubMechanismKey, direction: int) -> TorqueSignConvention:
        _check_direction(direction, 'torque direction')
        with self._lock:
            torque = self.conventions(key).torque
            if torque is None:
                raise ConventionError(f'Sub-mechanism {key} has no input joint')
            torque.direction = direction
        return torque

    # -------------------------------------------------------------------------
    # Gravity
    # -------------------------------------------------------------------------

    @property
    def gravity(self) -> float:
        return self._gravity

    @gravity.setter
    def gravity(self, value: float) -> None:
        if value < 0:
            raise ConventionError(f'Gravity magnitude must be non-negative, got {value}')
        self._gravity = float(value)

    def get_gravity_convention(self, key: SubMechanismKey) -> GravityConvention:
        return self.conventions(key).gravity

    def _set_gravity_direction(self, key: SubMechanismKey, direction: GravityDirection | str) -> GravityConvention:
        try:
            direction = GravityDirection(direction)
        except ValueError:
            raise ConventionError(f'Unknown gravity direction {direction!r}') from None
        with self._lock:
            gravity = self.conventions(key).gravity
            gravity.direction = direction
        return gravity

    def gravity_force(self, key: SubMechanismKey, mass: float) -> Coord:
        """Gravity force vector acting on a body of the given mass."""
        unit = self.conventions(key).gravity.direction.unit_vector
        return unit.scale(mass * self._gravity)

    # -------------------------------------------------------------------------
    # Pivots
    # -------------------------------------------------------------------------

    def get_pivot(self, key: SubMechanismKey, body_id: int, kind: str | None = None) -> PivotConvention:
        body = self._body(key, body_id, kind)
        return self.conventions(key).pivot_for(body)

    def _set_pivot(
        self,
        key: SubMechanismKey,
        body_id: int,
        joint_id: int | None,
        kind: str | None = None,
    ) -> PivotConvention:
        with self._lock:
            conventions = self.conventions(key)
            body = self._body(key, body_id, kind)
            if joint_id is not None:
                if joint_id not in self.mechanism.joint_ids_of(body):
                    raise ConventionError(f'Joint {joint_id} is not a member of rigid body {body.name}')
                if joint_id in conventions.free_end_joint_ids:
                    raise ConventionError(f'Free-end joint {joint_id} cannot be a pivot')
            pivot = PivotConvention(body.id, body.kind, joint_id)
            conventions.pivots[(body.kind, body.id)] = pivot
        return pivot

    # -------------------------------------------------------------------------
    # Edit requests
    # -------------------------------------------------------------------------

    def _edit(self, action: str, apply, *args) -> ConventionEdit:
        try:
            value = apply(*args)
        except ConventionError as e:
            self.logger.info(f"Rejected {action}: {e}")
            return ConventionEdit(success=False, error=str(e))
        return ConventionEdit(success=True, value=value)

    def set_joint_sign_convention(
        self,
        key: SubMechanismKey,
        body_id: int,
        joint_id: int,
        x_direction: int,
        y_direction: int,
        kind: str | None = None,
    ) -> ConventionEdit:
        """
        Set the reaction sign of a joint within one rigid body.

        Every other rigid body sharing the joint receives the negated sign.
        Edits on free-end joints, non-member joints or with directions other
        than +1/-1 are rejected.

        Returns:
            ConventionEdit whose value is the updated JointSignConvention
        """
        return self._edit(
            'sign convention edit', self._set_joint_sign_convention,
            key, body_id, joint_id, x_direction, y_direction, kind,
        )

    def set_torque_direction(self, key: SubMechanismKey, direction: int) -> ConventionEdit:
        return self._edit('torque direction edit', self._set_torque_direction, key, direction)

    def set_gravity_direction(self, key: SubMechanismKey, direction: GravityDirection | str) -> ConventionEdit:
        return self._edit('gravity direction edit', self._set_gravity_direction, key, direction)

    def set_pivot(
        self,
        key: SubMechanismKey,
        body_id: int,
        joint_id: int | None,
        kind: str | None = None,
    ) -> ConventionEdit:
        """Use a member joint (or None for the center of mass) as moment pivot."""
        return self._edit('pivot edit', self._set_pivot, key, body_id, joint_id, kind)

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def describe(self, key: SubMechanismKey) -> list[dict]:
        """Flat table of sign conventions, one row per (body, joint)."""
        conventions = self.conventions(key)
        rows = []
        for record in conventions.sign_conventions.values():
            for jc in record.joints.values():
                rows.append({
                    'rigid_body': record.rigid_body_name,
                    'joint': jc.joint_name,
                    'x_direction': jc.x_direction,
                    'y_direction': jc.y_direction,
                    'is_input': conventions.torque is not None and conventions.torque.input_joint_id == jc.joint_id,
                })
        return rows
