from __future__ import annotations

import math

import pytest

from statics_tools.conventions import AnalysisSession
from statics_tools.equations import evaluate_residuals
from statics_tools.geometry import Coord
from statics_tools.kinematic import simulate_frames
from statics_tools.orchestrator import analyze_mechanism
from statics_tools.orchestrator import solve_all_timesteps
from statics_tools.orchestrator import StaticsConfig
from statics_tools.schemas import AnimationFrames


class StaticFrameSource:
    """Frame source returning prepared frames and a fixed verdict."""

    def __init__(self, frames, valid=True):
        self.frames = frames
        self.valid = valid

    def get_animation_frames(self):
        return self.frames

    def validate_submechanism(self, sub_mechanism):
        return self.valid


def _session(mechanism):
    session = AnalysisSession(mechanism)
    sub = mechanism.sub_mechanisms()[0]
    session.initialize(sub)
    return session, sub


# =============================================================================
# Two-bar
# =============================================================================

def test_two_bar_force_at_input_each_timestep(two_bar, rotating_frames):
    """Reaction at A cancels a force applied at A for every frame; no torque"""
    two_bar.add_force(0, (0.0, 0.0), 3.0, angle=45.0)
    session, sub = _session(two_bar)
    analysis = solve_all_timesteps(session, sub, rotating_frames(2.0, 8))

    assert analysis.success
    assert analysis.n_steps == 8
    assert analysis.n_valid == 8
    fx = 3.0 * math.cos(math.radians(45))
    for result in analysis.timesteps:
        reaction = result.solution.reactions[0]
        assert abs(reaction.fx + fx) < 1e-9
        assert abs(reaction.fy + fx) < 1e-9
        assert abs(result.solution.motor_torque) < 1e-9


def test_two_bar_gravity_torque_over_cycle(rotating_frames):
    """Torque to hold a rotating bar against gravity is m*g*(L/2)*cos(theta)"""
    from statics_tools.topology import Mechanism
    m = Mechanism()
    m.add_joint(0, 0, grounded=True, is_input=True)
    m.add_joint(2, 0)
    m.add_link([0, 1], mass=1.5)
    session, sub = _session(m)
    analysis = solve_all_timesteps(session, sub, rotating_frames(2.0, 12))
    for k, result in enumerate(analysis.timesteps):
        theta = 2 * math.pi * k / 12
        assert abs(result.solution.motor_torque - 1.5 * 9.81 * math.cos(theta)) < 1e-6
        com = result.centers_of_mass[('link', 0)]
        assert com.is_close((math.cos(theta), math.sin(theta)), 1e-6)


def test_stretched_frame_is_reported_and_skipped(two_bar, rotating_frames):
    two_bar.add_force(0, (1.0, 0.5), 1.0)
    session, sub = _session(two_bar)
    frames = rotating_frames(2.0, 4)
    frames.positions[2] = [Coord(0, 0), Coord(10, 0)]
    analysis = solve_all_timesteps(session, sub, frames)

    valid = [t.solution.is_valid for t in analysis.timesteps]
    assert valid == [True, True, False, True]
    assert 'Cannot reconstruct' in analysis.timesteps[2].solution.error


# =============================================================================
# Four-bar
# =============================================================================

@pytest.fixture
def fourbar_frames(fourbar):
    sub = fourbar.sub_mechanisms()[0]
    frames, error = simulate_frames(fourbar, sub, n_steps=24)
    assert error is None
    return frames


def test_fourbar_equilibrium_residuals(fourbar, fourbar_frames):
    """Every solved timestep satisfies sum F = 0 and sum M = 0 per body"""
    session, sub = _session(fourbar)
    analysis = solve_all_timesteps(session, sub, fourbar_frames)
    assert analysis.n_valid == analysis.n_steps == 24
    for result in analysis.timesteps:
        residuals = evaluate_residuals(result.equations, result.solution.values)
        assert len(residuals) == 9
        assert max(abs(r) for r in residuals) < 1e-8


def test_fourbar_residuals_with_custom_pivots_and_signs(fourbar, fourbar_frames):
    session, sub = _session(fourbar)
    crank, coupler, rocker = sub.bodies
    session.set_pivot(sub.key, crank.id, 0)
    session.set_pivot(sub.key, rocker.id, 3)
    session.set_joint_sign_convention(sub.key, coupler.id, 2, 1, -1)
    session.set_torque_direction(sub.key, -1)
    analysis = solve_all_timesteps(session, sub, fourbar_frames)
    for result in analysis.timesteps:
        assert result.solution.is_valid
        residuals = evaluate_residuals(result.equations, result.solution.values)
        assert max(abs(r) for r in residuals) < 1e-8


def test_pivot_choice_does_not_change_physics(fourbar, fourbar_frames):
    """Moving the pivot changes the equations, not the torque"""
    session, sub = _session(fourbar)
    base = solve_all_timesteps(session, sub, fourbar_frames).motor_torques()
    session.set_pivot(sub.key, sub.bodies[1].id, 1)
    moved = solve_all_timesteps(session, sub, fourbar_frames).motor_torques()
    for a, b in zip(base, moved):
        assert abs(a - b) < 1e-8


def test_solve_all_timesteps_is_deterministic(fourbar, fourbar_frames):
    session, sub = _session(fourbar)
    first = solve_all_timesteps(session, sub, fourbar_frames).to_dict()
    second = solve_all_timesteps(session, sub, fourbar_frames).to_dict()
    assert first == second


def test_analysis_leaves_mechanism_untouched(fourbar, fourbar_frames):
    before = {j.id: j.coords for j in fourbar.joints.values()}
    force_start = fourbar.forces[0].start
    session, sub = _session(fourbar)
    solve_all_timesteps(session, sub, fourbar_frames)
    assert {j.id: j.coords for j in fourbar.joints.values()} == before
    assert fourbar.forces[0].start == force_start


# =============================================================================
# analyze_mechanism
# =============================================================================

def test_invalid_sub_mechanism_is_skipped(two_bar, rotating_frames):
    source = StaticFrameSource([rotating_frames(2.0, 4)], valid=False)
    analyses = analyze_mechanism(two_bar, source)
    assert len(analyses) == 1
    assert not analyses[0].success
    assert analyses[0].timesteps == []


def test_missing_frames_reported(two_bar):
    other = AnimationFrames(positions=[[Coord(0, 0)]], corresponding_joints=[42])
    analyses = analyze_mechanism(two_bar, StaticFrameSource([other]))
    assert not analyses[0].success
    assert 'No animation frames' in analyses[0].error


def test_analyze_continues_past_invalid_component(two_bar):
    """A second, valid component is analyzed even when the first is skipped"""
    a = two_bar.add_joint(10, 0, grounded=True, is_input=True)
    b = two_bar.add_joint(12, 0)
    two_bar.add_link([a.id, b.id])
    frames = AnimationFrames(
        positions=[[Coord(10, 0), Coord(12, 0)], [Coord(10, 0), Coord(10, 2)]],
        corresponding_joints=[a.id, b.id],
    )

    class PickySource(StaticFrameSource):
        def validate_submechanism(self, sub_mechanism):
            return a.id in sub_mechanism.joint_ids

    analyses = analyze_mechanism(two_bar, PickySource([frames]), config=StaticsConfig(gravity=0.0))
    assert [x.success for x in analyses] == [False, True]
    assert analyses[1].n_valid == 2


def test_analyze_keeps_session_conventions(fourbar, fourbar_frames):
    session, sub = _session(fourbar)
    session.set_torque_direction(sub.key, -1)
    flipped = analyze_mechanism(fourbar, StaticFrameSource([fourbar_frames]), session=session)[0]
    fresh = analyze_mechanism(fourbar, StaticFrameSource([fourbar_frames]))[0]
    for a, b in zip(flipped.motor_torques(), fresh.motor_torques()):
        assert abs(a + b) < 1e-8


# =============================================================================
# Welded bodies
# =============================================================================

def _rotate(point, theta):
    c, s = math.cos(theta), math.sin(theta)
    return Coord(c * point[0] - s * point[1], s * point[0] + c * point[1])


def rigid_rotation_frames(mechanism, n_steps):
    """Every joint rotated rigidly about the origin through one revolution."""
    ids = list(mechanism.joints)
    positions = []
    for k in range(n_steps):
        theta = 2 * math.pi * k / n_steps
        positions.append([_rotate(mechanism.joints[j].coords, theta) for j in ids])
    return AnimationFrames(positions=positions, corresponding_joints=ids)


@pytest.fixture
def bent_chain():
    """A(0,0) grounded input, B(1,0), C(1,1); links AB (1 kg) and BC (2 kg)."""
    from statics_tools.topology import Mechanism
    m = Mechanism(name='bent_chain')
    m.add_joint(0.0, 0.0, grounded=True, is_input=True, name='A')
    m.add_joint(1.0, 0.0, name='B')
    m.add_joint(1.0, 1.0, name='C')
    m.add_link([0, 1], mass=1.0, name='AB')
    m.add_link([1, 2], mass=2.0, name='BC')
    return m


def test_welded_bar_torque_and_local_force(bent_chain):
    """
    A welded bar turning about A: T = m_total*g*x_com - M_A(load).

    The load is perpendicular to BC and turns with it, so its moment about A
    stays at -1 N*m throughout the cycle.
    """
    from statics_tools.topology import ForceFrame
    bent_chain.add_force(1, (1.0, 0.5), 2.0, angle=0.0, frame=ForceFrame.LOCAL, name='load')
    bent_chain.add_weld(1)
    n_steps = 36

    session, sub = _session(bent_chain)
    assert len(sub.bodies) == 1
    assert session.conventions(sub.key).free_end_joint_ids == {1, 2}

    analysis = solve_all_timesteps(session, sub, rigid_rotation_frames(bent_chain, n_steps))
    assert analysis.n_valid == n_steps

    key = ('compound', sub.bodies[0].id)
    for k, result in enumerate(analysis.timesteps):
        theta = 2 * math.pi * k / n_steps
        com = _rotate((0.75, 0.25), theta)
        assert result.centers_of_mass[key].is_close(com, 1e-6)

        load = result.forces[0]
        assert abs(load.fx - 2.0 * math.cos(theta)) < 1e-6
        assert abs(load.fy - 2.0 * math.sin(theta)) < 1e-6

        expected = 3.0 * 9.81 * com.x + 1.0
        assert abs(result.solution.motor_torque - expected) < 1e-6
        assert sorted(result.solution.reactions) == [0]
        residuals = evaluate_residuals(result.equations, result.solution.values)
        assert max(abs(r) for r in residuals) < 1e-8


def test_reused_session_follows_weld(bent_chain):
    """Conventions from before a weld are rebuilt for the welded topology"""
    frames = rigid_rotation_frames(bent_chain, 6)
    session = AnalysisSession(bent_chain)
    analyze_mechanism(bent_chain, StaticFrameSource([frames]), session=session)

    bent_chain.add_weld(1)
    reused = analyze_mechanism(bent_chain, StaticFrameSource([frames]), session=session)[0]
    fresh = analyze_mechanism(bent_chain, StaticFrameSource([frames]))[0]

    assert reused.n_valid == reused.n_steps == 6
    assert reused.motor_torques() == fresh.motor_torques()


def test_config_gravity_applies_to_given_session(bent_chain):
    bent_chain.add_force(1, (1.0, 0.5), 2.0, angle=0.0, name='load')
    bent_chain.add_weld(1)
    frames = rigid_rotation_frames(bent_chain, 1)
    session = AnalysisSession(bent_chain)

    analysis = analyze_mechanism(
        bent_chain, StaticFrameSource([frames]), session=session, config=StaticsConfig(gravity=0.0),
    )[0]
    assert session.gravity == 0.0
    assert abs(analysis.timesteps[0].solution.motor_torque - 1.0) < 1e-9


def test_config_rejects_negative_gravity():
    with pytest.raises(ValueError):
        StaticsConfig(gravity=-9.81)
