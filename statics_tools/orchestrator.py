"""
orchestrator.py - Run statics analysis over a full motion cycle.

Per timestep, in order:
    joint positions -> centers of mass -> forces -> equations -> solve

Centers of mass and force points from timestep t are the continuity
references for t+1, so timesteps are processed strictly in order. Failures
at one timestep are recorded on that timestep and the loop continues.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from configs.appconfig import AppConfig
from statics_tools.conventions import AnalysisSession
from statics_tools.equations import build_rigid_body_equations
from statics_tools.equations import EquilibriumEquation
from statics_tools.errors import StaticsError
from statics_tools.geometry import Coord
from statics_tools.schemas import AnimationFrames
from statics_tools.schemas import FrameSource
from statics_tools.schemas import StaticSolution
from statics_tools.schemas import SubMechanismAnalysis
from statics_tools.schemas import TimestepResult
from statics_tools.solver import solve_equilibrium
from statics_tools.topology import Mechanism
from statics_tools.topology import SubMechanism
from statics_tools.tracking import body_key
from statics_tools.tracking import BodyKey
from statics_tools.tracking import CenterOfMassTracker
from statics_tools.tracking import ForceAtTimestep
from statics_tools.tracking import ForceTracker

logger = logging.getLogger(__name__)


@dataclass
class StaticsConfig:
    """
    Configuration for a statics analysis run.

    gravity, when set, overrides the session's gravity magnitude for the run
    (and stays on the session). None keeps whatever the session holds.
    """
    gravity: float | None = None
    intersection_tolerance: float = AppConfig.INTERSECTION_TOLERANCE
    lever_arm_tolerance: float = AppConfig.LEVER_ARM_TOLERANCE
    keep_equations: bool = True

    def __post_init__(self):
        if self.gravity is not None and self.gravity < 0:
            raise ValueError(f'gravity must be non-negative, got {self.gravity}')


def solve_timestep(
    session: AnalysisSession,
    sub_mechanism: SubMechanism,
    positions: Mapping[int, Coord],
    centers_of_mass: Mapping[BodyKey, Coord],
    forces: Mapping[int, ForceAtTimestep],
    config: StaticsConfig,
) -> tuple[StaticSolution, list[EquilibriumEquation]]:
    """
    Build and solve the equilibrium system of one timestep.

    Raises:
        StaticsError: a rigid body is missing its COM, pivot or a joint position
    """
    mechanism = session.mechanism
    conventions = session.conventions(sub_mechanism.key)

    forces_by_body: dict[BodyKey, list[ForceAtTimestep]] = {}
    for state in forces.values():
        forces_by_body.setdefault(state.body_key, []).append(state)

    equations: list[EquilibriumEquation] = []
    for body in sub_mechanism.bodies:
        key = body_key(body)
        equations.extend(
            build_rigid_body_equations(
                mechanism,
                body,
                conventions,
                positions,
                centers_of_mass.get(key),
                forces_by_body.get(key, []),
                session.gravity_force(sub_mechanism.key, mechanism.mass_of(body)),
                config.lever_arm_tolerance,
            ),
        )

    return solve_equilibrium(equations), equations


def solve_all_timesteps(
    session: AnalysisSession,
    sub_mechanism: SubMechanism,
    frames: AnimationFrames,
    config: StaticsConfig | None = None,
    logger: logging.Logger | None = None,
) -> SubMechanismAnalysis:
    """
    Solve static equilibrium at every frame of a motion cycle.

    Conventions for the sub-mechanism must already be initialized in the
    session. Re-running on an unmodified mechanism gives identical results.

    Args:
        session: AnalysisSession holding conventions
        sub_mechanism: Connected component to analyze
        frames: Joint positions per timestep
        config: Tolerances and options
        logger: Logger to report through (defaults to this module's)

    Returns:
        SubMechanismAnalysis with one TimestepResult per frame
    """
    config = config or StaticsConfig()
    log = logger or session.logger
    mechanism = session.mechanism
    if config.gravity is not None:
        session.gravity = config.gravity

    force_tracker = ForceTracker(config.intersection_tolerance)
    com_tracker = CenterOfMassTracker(config.intersection_tolerance)
    force_tracker.cache(mechanism, sub_mechanism.bodies)
    com_tracker.cache(mechanism, sub_mechanism.bodies)

    previous_coms: dict[BodyKey, Coord] | None = None
    previous_forces: dict[int, ForceAtTimestep] | None = None
    results: list[TimestepResult] = []

    for t in range(len(frames)):
        positions = frames.frame(t)
        coms: dict[BodyKey, Coord] = {}
        forces: dict[int, ForceAtTimestep] = {}
        equations: list[EquilibriumEquation] = []

        try:
            if previous_coms is None:
                coms = com_tracker.nominal()
                forces = force_tracker.at_timestep(positions, force_tracker.reference_states())
            else:
                coms = com_tracker.at_timestep(positions, previous_coms)
                forces = force_tracker.at_timestep(positions, previous_forces)
            solution, equations = solve_timestep(session, sub_mechanism, positions, coms, forces, config)
        except StaticsError as e:
            log.warning(f"Sub-mechanism {sub_mechanism.key}, timestep {t}: {e}")
            solution = StaticSolution.invalid(str(e))

        if not solution.is_valid:
            log.debug(f"Timestep {t} invalid: {solution.error}")

        results.append(
            TimestepResult(
                timestep=t,
                solution=solution,
                positions=positions,
                centers_of_mass=coms,
                forces=forces,
                equations=equations if config.keep_equations else [],
            ),
        )

        # A failed reconstruction keeps the last good references
        if coms:
            previous_coms = coms
        if forces:
            previous_forces = forces

    analysis = SubMechanismAnalysis(key=sub_mechanism.key, success=True, timesteps=results)
    log.info(
        f"Sub-mechanism {sub_mechanism.key}: {analysis.n_valid}/{analysis.n_steps} timesteps solved",
    )
    return analysis


def _frames_for(sub_mechanism: SubMechanism, all_frames: list[AnimationFrames]) -> AnimationFrames | None:
    wanted = set(sub_mechanism.joint_ids)
    for frames in all_frames:
        if set(frames.corresponding_joints) == wanted:
            return frames
    return None


def analyze_mechanism(
    mechanism: Mechanism,
    frame_source: FrameSource,
    session: AnalysisSession | None = None,
    config: StaticsConfig | None = None,
) -> list[SubMechanismAnalysis]:
    """
    Analyze every sub-mechanism of a mechanism.

    Invalid sub-mechanisms are skipped (success=False, no timesteps) and the
    remaining ones are still analyzed.

    Args:
        mechanism: Mechanism to analyze
        frame_source: Position solver providing frames and validation
        session: Existing session whose conventions are kept while the
            sub-mechanism topology is unchanged; conventions of a welded or
            unwelded sub-mechanism are reset to defaults. A fresh session is
            created if omitted
        config: Tolerances and options

    Returns:
        One SubMechanismAnalysis per sub-mechanism, in discovery order
    """
    config = config or StaticsConfig()
    if session is None:
        session = AnalysisSession(mechanism)
    log = session.logger

    all_frames = frame_source.get_animation_frames()
    analyses: list[SubMechanismAnalysis] = []

    for sub in mechanism.sub_mechanisms():
        if not frame_source.validate_submechanism(sub):
            log.warning(f"Skipping invalid sub-mechanism {sub.key}")
            analyses.append(
                SubMechanismAnalysis(key=sub.key, success=False, error='Invalid sub-mechanism'),
            )
            continue

        frames = _frames_for(sub, all_frames)
        if frames is None:
            log.warning(f"No animation frames for sub-mechanism {sub.key}")
            analyses.append(
                SubMechanismAnalysis(key=sub.key, success=False, error='No animation frames for sub-mechanism'),
            )
            continue

        session.ensure_current(sub)

        analyses.append(solve_all_timesteps(session, sub, frames, config))

    return analyses
