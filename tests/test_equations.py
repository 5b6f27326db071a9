from __future__ import annotations

import math

import pytest

from statics_tools.conventions import AnalysisSession
from statics_tools.equations import build_rigid_body_equations
from statics_tools.equations import evaluate_residuals
from statics_tools.equations import MOTOR_TORQUE
from statics_tools.equations import parse_reaction_variable
from statics_tools.equations import reaction_variable
from statics_tools.errors import MissingReferenceError
from statics_tools.geometry import Coord
from statics_tools.solver import solve_equilibrium
from statics_tools.tracking import ForceAtTimestep


def _force_at(start, magnitude, angle, body=('link', 0), fid=0):
    rad = math.radians(angle)
    return ForceAtTimestep(
        force_id=fid, body_key=body, start=Coord(*start), angle=angle,
        fx=magnitude * math.cos(rad), fy=magnitude * math.sin(rad),
    )


@pytest.fixture
def two_bar_setup(two_bar):
    session = AnalysisSession(two_bar)
    sub = two_bar.sub_mechanisms()[0]
    conventions = session.initialize(sub)
    positions = {0: Coord(0, 0), 1: Coord(2, 0)}
    return two_bar, session, sub, conventions, positions


def test_variable_names():
    assert reaction_variable('x', 3) == 'Fx_3'
    assert parse_reaction_variable('Fy_12') == ('y', 12)
    assert parse_reaction_variable(MOTOR_TORQUE) is None


def test_free_end_joint_has_no_unknowns(two_bar_setup):
    mechanism, session, sub, conventions, positions = two_bar_setup
    eqs = build_rigid_body_equations(
        mechanism, sub.bodies[0], conventions, positions, Coord(1, 0), [], Coord(0, 0),
    )
    assert [e.kind for e in eqs] == ['fx', 'fy', 'moment']
    names = {name for e in eqs for name in e.coefficients}
    assert names == {'Fx_0', 'Fy_0', MOTOR_TORQUE}


def test_force_at_pivot_joint_has_no_moment(two_bar_setup):
    """A force applied at the pivot joint adds nothing to the moment constant"""
    mechanism, session, sub, conventions, positions = two_bar_setup
    session.set_pivot(sub.key, sub.bodies[0].id, 0)
    force = _force_at((0, 0), 5.0, 30.0)
    eq_fx, eq_fy, eq_m = build_rigid_body_equations(
        mechanism, sub.bodies[0], conventions, positions, Coord(1, 0), [force], Coord(0, 0),
    )
    assert eq_m.constant == 0.0
    # Joint A coincides with the pivot: no lever arm terms
    assert set(eq_m.coefficients) == {MOTOR_TORQUE}
    assert abs(eq_fx.constant + force.fx) < 1e-12
    assert abs(eq_fy.constant + force.fy) < 1e-12


def test_two_bar_reaction_opposes_force_at_input(two_bar_setup):
    """Reaction at A is equal and opposite to a force applied at A; torque is zero"""
    mechanism, session, sub, conventions, positions = two_bar_setup
    force = _force_at((0, 0), 5.0, 30.0)
    eqs = build_rigid_body_equations(
        mechanism, sub.bodies[0], conventions, positions, Coord(1, 0), [force], Coord(0, 0),
    )
    solution = solve_equilibrium(eqs)
    assert solution.is_valid
    assert abs(solution.reactions[0].fx + force.fx) < 1e-9
    assert abs(solution.reactions[0].fy + force.fy) < 1e-9
    assert abs(solution.motor_torque) < 1e-9


def test_gravity_torque_on_horizontal_bar(two_bar_setup):
    """Holding a 2 m, 1 kg bar horizontal needs m*g*1 of torque"""
    mechanism, session, sub, conventions, positions = two_bar_setup
    gravity = session.gravity_force(sub.key, 1.0)
    eqs = build_rigid_body_equations(
        mechanism, sub.bodies[0], conventions, positions, Coord(1, 0), [], gravity,
    )
    solution = solve_equilibrium(eqs)
    assert abs(solution.motor_torque - 9.81) < 1e-9
    assert abs(solution.reactions[0].fy - 9.81) < 1e-9
    assert all(abs(r) < 1e-9 for r in evaluate_residuals(eqs, solution.values))


def test_torque_sign_flips_solution(two_bar_setup):
    mechanism, session, sub, conventions, positions = two_bar_setup
    session.set_torque_direction(sub.key, -1)
    gravity = session.gravity_force(sub.key, 1.0)
    eqs = build_rigid_body_equations(
        mechanism, sub.bodies[0], conventions, positions, Coord(1, 0), [], gravity,
    )
    assert eqs[2].coefficients[MOTOR_TORQUE] == -1
    assert abs(solve_equilibrium(eqs).motor_torque + 9.81) < 1e-9


def test_moment_coefficients_follow_signs(fourbar):
    """Moment terms are xSign*(-ry) and ySign*rx about the pivot"""
    session = AnalysisSession(fourbar)
    sub = fourbar.sub_mechanisms()[0]
    conventions = session.initialize(sub)
    positions = {j.id: j.coords for j in fourbar.joints.values()}
    coupler = sub.bodies[1]
    session.set_pivot(sub.key, coupler.id, 1)
    _, _, eq_m = build_rigid_body_equations(
        fourbar, coupler, conventions, positions, fourbar.center_of_mass(coupler), [], Coord(0, 0),
    )
    r = positions[2].subtract(positions[1])
    sign = conventions.sign_for(coupler, 2)
    assert abs(eq_m.coefficients['Fx_2'] - sign.x_direction * -r.y) < 1e-12
    assert abs(eq_m.coefficients['Fy_2'] - sign.y_direction * r.x) < 1e-12
    assert 'Fx_1' not in eq_m.coefficients
    assert MOTOR_TORQUE not in eq_m.coefficients


def test_missing_center_of_mass_is_fatal(two_bar_setup):
    mechanism, session, sub, conventions, positions = two_bar_setup
    with pytest.raises(MissingReferenceError):
        build_rigid_body_equations(mechanism, sub.bodies[0], conventions, positions, None, [], Coord(0, 0))


def test_missing_pivot_position_is_fatal(fourbar):
    session = AnalysisSession(fourbar)
    sub = fourbar.sub_mechanisms()[0]
    conventions = session.initialize(sub)
    coupler = sub.bodies[1]
    session.set_pivot(sub.key, coupler.id, 2)
    positions = {0: Coord(0, 0), 1: Coord(0, 1), 3: Coord(4, 0)}
    with pytest.raises(MissingReferenceError):
        build_rigid_body_equations(
            fourbar, coupler, conventions, positions, Coord(1, 1), [], Coord(0, 0),
        )
