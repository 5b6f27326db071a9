"""
kinematic.py - Joint-position frames for statics analysis, computed with pylinkage.

The statics engine only needs per-timestep joint positions. This module
provides a reference frame source that builds a pylinkage Linkage from a
Mechanism sub-mechanism and steps it through one full input revolution.

Solve order:
  1. the input joint and every grounded joint (static)
  2. joints sharing a rigid body with the input joint (Crank)
  3. any joint with two solved neighbours on shared rigid bodies (Revolute)
"""
from __future__ import annotations

import logging
import math
from typing import Any
from typing import Union

import networkx as nx
from pylinkage.joints import Crank
from pylinkage.joints import Revolute
from pylinkage.linkage import Linkage

from configs.appconfig import DEFAULT_N_STEPS
from statics_tools.geometry import Coord
from statics_tools.schemas import AnimationFrames
from statics_tools.topology import Mechanism
from statics_tools.topology import SubMechanism

logger = logging.getLogger(__name__)

JointObject = Union[tuple[float, float], Crank, Revolute]


# =============================================================================
# Sub-mechanism Validation
# =============================================================================

def joint_graph(mechanism: Mechanism, sub_mechanism: SubMechanism) -> nx.Graph:
    """Joints are adjacent when they share a rigid body."""
    G = nx.Graph()
    G.add_nodes_from(sub_mechanism.joint_ids)
    for body in sub_mechanism.bodies:
        ids = mechanism.joint_ids_of(body)
        for i, a in enumerate(ids):
            for b in ids[i + 1:]:
                G.add_edge(a, b)
    return G


def degrees_of_freedom(mechanism: Mechanism, sub_mechanism: SubMechanism) -> int:
    """Gruebler count 3(N-1) - 2J with ground as an extra body."""
    n_bodies = len(sub_mechanism.bodies) + 1
    n_pairs = 0
    for jid, bodies in sub_mechanism.joint_bodies.items():
        n_pairs += len(bodies) - 1
        if mechanism.joints[jid].grounded:
            n_pairs += 1
    return 3 * (n_bodies - 1) - 2 * n_pairs


def min_ground_distance(mechanism: Mechanism, sub_mechanism: SubMechanism, joint_id: int) -> float:
    """Joints on the shortest path from `joint_id` to another grounded joint, both ends included."""
    G = joint_graph(mechanism, sub_mechanism)
    lengths = nx.single_source_shortest_path_length(G, joint_id)
    best = math.inf
    for jid, n_edges in lengths.items():
        if jid != joint_id and mechanism.joints[jid].grounded:
            best = min(best, n_edges + 1)
    return best


def check_submechanism(mechanism: Mechanism, sub_mechanism: SubMechanism) -> str | None:
    """Return None if the sub-mechanism can be analyzed, else the reason it cannot."""
    inputs = [jid for jid in sub_mechanism.joint_ids if mechanism.joints[jid].is_input]
    if len(inputs) != 1:
        return f'Expected exactly 1 input joint, found {len(inputs)}'

    input_joint = mechanism.joints[inputs[0]]
    if not input_joint.grounded:
        return f'Input joint {input_joint.name} must be grounded'

    dof = degrees_of_freedom(mechanism, sub_mechanism)
    if dof != 1:
        return f'Mechanism has {dof} degrees of freedom, expected 1'

    distance = min_ground_distance(mechanism, sub_mechanism, input_joint.id)
    if distance != 4:
        return f'Input joint is {distance} joints from ground, expected a four-bar loop'

    return None


def validate_submechanism(mechanism: Mechanism, sub_mechanism: SubMechanism) -> bool:
    return check_submechanism(mechanism, sub_mechanism) is None


# =============================================================================
# Solve Order
# =============================================================================

def compute_solve_order(
    mechanism: Mechanism,
    sub_mechanism: SubMechanism,
) -> tuple[list[int], dict[int, tuple[str, tuple[int, ...]]], str | None]:
    """
    Order joints so each one depends only on already-solved joints.

    Returns:
        (order, parents, error) where parents maps joint id to
        ('static', ()), ('crank', (parent,)) or ('revolute', (p0, p1))
    """
    G = joint_graph(mechanism, sub_mechanism)
    input_joint = mechanism.input_joint(sub_mechanism.joint_ids)
    if input_joint is None:
        return [], {}, 'No input joint'

    order: list[int] = [input_joint.id]
    parents: dict[int, tuple[str, tuple[int, ...]]] = {input_joint.id: ('static', ())}

    for jid in sub_mechanism.joint_ids:
        if jid not in parents and mechanism.joints[jid].grounded:
            order.append(jid)
            parents[jid] = ('static', ())

    for jid in G.neighbors(input_joint.id):
        if jid not in parents:
            order.append(jid)
            parents[jid] = ('crank', (input_joint.id,))

    progress = True
    while progress and len(order) < len(sub_mechanism.joint_ids):
        progress = False
        for jid in sub_mechanism.joint_ids:
            if jid in parents:
                continue
            solved = [n for n in G.neighbors(jid) if n in parents]
            if len(solved) >= 2:
                order.append(jid)
                parents[jid] = ('revolute', (solved[0], solved[1]))
                progress = True

    if len(order) < len(sub_mechanism.joint_ids):
        unsolved = [jid for jid in sub_mechanism.joint_ids if jid not in parents]
        return order, parents, f'Cannot determine positions of joints {unsolved}'

    return order, parents, None


# =============================================================================
# Linkage Construction & Simulation
# =============================================================================

def build_linkage(
    mechanism: Mechanism,
    order: list[int],
    parents: dict[int, tuple[str, tuple[int, ...]]],
    angle_per_step: float,
    name: str = 'linkage',
) -> tuple[Linkage | None, dict[int, JointObject], str | None]:
    """
    Build a pylinkage Linkage from a solve order.

    Returns:
        (Linkage, joint objects, None) on success, (None, {}, error) on failure
    """
    objects: dict[int, JointObject] = {}
    for jid in order:
        joint = mechanism.joints[jid]
        kind, deps = parents[jid]

        if kind == 'static':
            # Static joints are tuple references (implicit in pylinkage)
            objects[jid] = (joint.x, joint.y)

        elif kind == 'crank':
            parent = mechanism.joints[deps[0]]
            objects[jid] = Crank(
                x=joint.x,
                y=joint.y,
                joint0=objects[deps[0]],
                distance=joint.coords.distance_to(parent.coords),
                angle=angle_per_step,
                name=str(jid),
            )

        else:
            p0 = mechanism.joints[deps[0]]
            p1 = mechanism.joints[deps[1]]
            objects[jid] = Revolute(
                x=joint.x,
                y=joint.y,
                joint0=objects[deps[0]],
                joint1=objects[deps[1]],
                distance0=joint.coords.distance_to(p0.coords),
                distance1=joint.coords.distance_to(p1.coords),
                name=str(jid),
            )

    movable = [objects[jid] for jid in order if not isinstance(objects[jid], tuple)]
    if not any(isinstance(j, Crank) for j in movable):
        return None, {}, 'No Crank joint found. A joint must share a rigid body with the input joint.'

    linkage = Linkage(joints=tuple(movable), order=tuple(movable), name=name)
    return linkage, objects, None


def simulate_frames(
    mechanism: Mechanism,
    sub_mechanism: SubMechanism,
    n_steps: int = DEFAULT_N_STEPS,
) -> tuple[AnimationFrames | None, str | None]:
    """
    Step a sub-mechanism through one revolution of its input.

    Frame 0 is the reference pose; each following frame advances the input
    by 2*pi / n_steps.

    Returns:
        (AnimationFrames, None) on success, (None, error_message) on failure
    """
    order, parents, error = compute_solve_order(mechanism, sub_mechanism)
    if error:
        return None, error

    linkage, objects, error = build_linkage(
        mechanism, order, parents, 2 * math.pi / n_steps, name=f'sub_{sub_mechanism.index}',
    )
    if error:
        return None, error

    reference = [mechanism.joints[jid].coords for jid in order]
    positions: list[list[Coord]] = [reference]
    index = {jid: i for i, jid in enumerate(order)}

    try:
        linkage.rebuild()
        for coords in linkage.step(iterations=n_steps - 1):
            frame = list(positions[-1])
            for joint, coord in zip(linkage.joints, coords):
                if coord[0] is not None and coord[1] is not None:
                    frame[index[int(joint.name)]] = Coord(float(coord[0]), float(coord[1]))
            positions.append(frame)
    except Exception as e:
        logger.warning(f"Simulation of sub-mechanism {sub_mechanism.key} failed: {e}")
        return None, str(e)

    return AnimationFrames(positions=positions, corresponding_joints=order), None


class PylinkageFrameSource:
    """Frame source backed by pylinkage forward kinematics."""

    def __init__(self, mechanism: Mechanism, n_steps: int = DEFAULT_N_STEPS):
        self.mechanism = mechanism
        self.n_steps = n_steps
        self.errors: dict[tuple[int, ...], str] = {}

    def validate_submechanism(self, sub_mechanism: SubMechanism) -> bool:
        reason = check_submechanism(self.mechanism, sub_mechanism)
        if reason is not None:
            self.errors[sub_mechanism.key] = reason
            logger.info(f"Sub-mechanism {sub_mechanism.key} rejected: {reason}")
        return reason is None

    def get_animation_frames(self) -> list[AnimationFrames]:
        frames: list[AnimationFrames] = []
        for sub in self.mechanism.sub_mechanisms():
            if not self.validate_submechanism(sub):
                continue
            result, error = simulate_frames(self.mechanism, sub, self.n_steps)
            if error:
                self.errors[sub.key] = error
                continue
            frames.append(result)
        return frames

    def summary(self) -> dict[str, Any]:
        return {'n_steps': self.n_steps, 'errors': {str(k): v for k, v in self.errors.items()}}
