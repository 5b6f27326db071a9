"""
equations.py - Static equilibrium equations for one rigid body.

Each rigid body contributes three linear equations at every timestep:

    sum Fx = 0
    sum Fy = 0
    sum M  = 0   (about the body's pivot, counterclockwise positive)

Unknowns are the reaction components `Fx_<jointId>` / `Fy_<jointId>` at every
non-free-end joint, plus the shared motor torque `T_motor` when the body holds
the input joint. Equations are stored as sum(coefficient * unknown) = constant.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from dataclasses import field
from typing import Iterable
from typing import Mapping

from configs.appconfig import LEVER_ARM_TOLERANCE
from statics_tools.conventions import SubMechanismConventions
from statics_tools.errors import ConventionError
from statics_tools.errors import MissingReferenceError
from statics_tools.geometry import Coord
from statics_tools.topology import Mechanism
from statics_tools.topology import RigidBody
from statics_tools.tracking import body_key
from statics_tools.tracking import BodyKey
from statics_tools.tracking import ForceAtTimestep

logger = logging.getLogger(__name__)

MOTOR_TORQUE = 'T_motor'
_REACTION_RE = re.compile(r'^F([xy])_(\d+)$')


def reaction_variable(axis: str, joint_id: int) -> str:
    """Name of the reaction unknown for a joint, e.g. Fx_3."""
    return f'F{axis}_{joint_id}'


def parse_reaction_variable(name: str) -> tuple[str, int] | None:
    """('x' | 'y', joint id) for a reaction variable name, else None."""
    match = _REACTION_RE.match(name)
    if match is None:
        return None
    return match.group(1), int(match.group(2))


@dataclass
class EquilibriumEquation:
    body_key: BodyKey
    kind: str  # 'fx', 'fy' or 'moment'
    coefficients: dict[str, float] = field(default_factory=dict)
    constant: float = 0.0

    def add_term(self, variable: str, coefficient: float) -> None:
        self.coefficients[variable] = self.coefficients.get(variable, 0.0) + coefficient

    def residual(self, values: Mapping[str, float]) -> float:
        lhs = sum(c * values.get(v, 0.0) for v, c in self.coefficients.items())
        return lhs - self.constant

    def to_dict(self) -> dict:
        return {
            'body': f'{self.body_key[0]}:{self.body_key[1]}',
            'kind': self.kind,
            'coefficients': dict(self.coefficients),
            'constant': self.constant,
        }


def moment_about(point: Coord, pivot: Coord, force: Coord) -> float:
    """Counterclockwise moment of `force` applied at `point` about `pivot`."""
    r = point.subtract(pivot)
    return r.x * force.y - r.y * force.x


def resolve_pivot(
    mechanism: Mechanism,
    body: RigidBody,
    conventions: SubMechanismConventions,
    positions: Mapping[int, Coord],
    center_of_mass: Coord | None,
) -> Coord:
    pivot = conventions.pivot_for(body)
    if pivot.is_center_of_mass:
        if center_of_mass is None:
            raise MissingReferenceError(f'No center of mass for {body.name}')
        return Coord.of(center_of_mass)
    if pivot.joint_id not in positions:
        raise MissingReferenceError(f'Pivot joint {pivot.joint_id} of {body.name} has no position')
    return Coord.of(positions[pivot.joint_id])


def build_rigid_body_equations(
    mechanism: Mechanism,
    body: RigidBody,
    conventions: SubMechanismConventions,
    positions: Mapping[int, Coord],
    center_of_mass: Coord | None,
    forces: Iterable[ForceAtTimestep],
    gravity_force: Coord,
    lever_arm_tolerance: float = LEVER_ARM_TOLERANCE,
) -> list[EquilibriumEquation]:
    """
    Build the three equilibrium equations for one rigid body at one timestep.

    Args:
        mechanism: Arena holding the body
        body: Link or CompoundLink
        conventions: Sign, torque and pivot conventions of its sub-mechanism
        positions: joint id -> position at this timestep
        center_of_mass: Body COM at this timestep
        forces: Applied forces on this body at this timestep
        gravity_force: Gravity force vector (mass already applied)
        lever_arm_tolerance: Joints closer than this to the pivot add no moment

    Returns:
        [fx_equation, fy_equation, moment_equation]

    Raises:
        MissingReferenceError: missing COM, pivot or joint position
    """
    key = body_key(body)
    if center_of_mass is None:
        raise MissingReferenceError(f'No center of mass for {body.name}')
    com = Coord.of(center_of_mass)
    pivot = resolve_pivot(mechanism, body, conventions, positions, com)

    eq_fx = EquilibriumEquation(key, 'fx')
    eq_fy = EquilibriumEquation(key, 'fy')
    eq_m = EquilibriumEquation(key, 'moment')

    for joint in mechanism.joints_of(body):
        if joint.id in conventions.free_end_joint_ids:
            continue
        sign = conventions.sign_for(body, joint.id)
        if sign is None:
            raise ConventionError(f'No sign convention for joint {joint.name} in {body.name}')
        if joint.id not in positions:
            raise MissingReferenceError(f'Joint {joint.name} has no position')

        fx_var = reaction_variable('x', joint.id)
        fy_var = reaction_variable('y', joint.id)
        eq_fx.add_term(fx_var, sign.x_direction)
        eq_fy.add_term(fy_var, sign.y_direction)

        r = Coord.of(positions[joint.id]).subtract(pivot)
        if r.norm() < lever_arm_tolerance:
            continue
        eq_m.add_term(fx_var, sign.x_direction * -r.y)
        eq_m.add_term(fy_var, sign.y_direction * r.x)

    applied_fx = gravity_force.x
    applied_fy = gravity_force.y
    applied_moment = moment_about(com, pivot, gravity_force)
    for force in forces:
        applied_fx += force.fx
        applied_fy += force.fy
        applied_moment += moment_about(force.start, pivot, force.components)

    eq_fx.constant = -applied_fx
    eq_fy.constant = -applied_fy
    eq_m.constant = -applied_moment

    torque = conventions.torque
    if torque is not None and torque.input_joint_id in mechanism.joint_ids_of(body):
        eq_m.add_term(MOTOR_TORQUE, torque.direction)

    return [eq_fx, eq_fy, eq_m]


def evaluate_residuals(equations: Iterable[EquilibriumEquation], values: Mapping[str, float]) -> list[float]:
    """Left-hand side minus constant for each equation."""
    return [eq.residual(values) for eq in equations]
