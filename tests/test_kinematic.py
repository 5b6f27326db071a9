from __future__ import annotations

from statics_tools.kinematic import check_submechanism
from statics_tools.kinematic import compute_solve_order
from statics_tools.kinematic import degrees_of_freedom
from statics_tools.kinematic import min_ground_distance
from statics_tools.kinematic import PylinkageFrameSource
from statics_tools.kinematic import simulate_frames
from statics_tools.kinematic import validate_submechanism


def test_fourbar_is_valid(fourbar):
    sub = fourbar.sub_mechanisms()[0]
    assert degrees_of_freedom(fourbar, sub) == 1
    assert min_ground_distance(fourbar, sub, 0) == 4
    assert validate_submechanism(fourbar, sub)


def test_two_bar_is_not_a_closed_loop(two_bar):
    sub = two_bar.sub_mechanisms()[0]
    reason = check_submechanism(two_bar, sub)
    assert reason is not None


def test_ungrounded_input_rejected(fourbar):
    fourbar.joints[0].grounded = False
    sub = fourbar.sub_mechanisms()[0]
    assert 'grounded' in check_submechanism(fourbar, sub)


def test_two_inputs_rejected(fourbar):
    fourbar.joints[3].is_input = True
    sub = fourbar.sub_mechanisms()[0]
    assert 'exactly 1 input' in check_submechanism(fourbar, sub)


def test_welded_fourbar_is_a_structure(fourbar):
    """Welding the coupler to the rocker removes the degree of freedom"""
    fourbar.add_weld(2)
    sub = fourbar.sub_mechanisms()[0]
    assert degrees_of_freedom(fourbar, sub) == 0
    assert not validate_submechanism(fourbar, sub)


def test_solve_order(fourbar):
    sub = fourbar.sub_mechanisms()[0]
    order, parents, error = compute_solve_order(fourbar, sub)
    assert error is None
    assert order == [0, 3, 1, 2]
    assert parents[1] == ('crank', (0,))
    assert parents[2][0] == 'revolute'
    assert set(parents[2][1]) == {1, 3}


def test_simulated_frames_preserve_link_lengths(fourbar):
    sub = fourbar.sub_mechanisms()[0]
    frames, error = simulate_frames(fourbar, sub, n_steps=36)
    assert error is None
    assert len(frames) == 36
    assert frames.corresponding_joints == [0, 3, 1, 2]
    for t in range(len(frames)):
        p = frames.frame(t)
        assert abs(p[0].distance_to(p[1]) - 1.0) < 1e-6
        assert abs(p[1].distance_to(p[2]) - 4.0) < 1e-6
        assert abs(p[2].distance_to(p[3]) - 3.0) < 1e-6
        assert p[0] == (0.0, 0.0)
        assert p[3] == (4.0, 0.0)
    # The crank actually turns
    assert frames.frame(9)[1].distance_to(frames.frame(0)[1]) > 0.5


def test_frame_source(fourbar):
    source = PylinkageFrameSource(fourbar, n_steps=12)
    frames = source.get_animation_frames()
    assert len(frames) == 1
    assert len(frames[0]) == 12
    assert source.errors == {}


def test_frame_source_records_rejections(two_bar):
    source = PylinkageFrameSource(two_bar, n_steps=12)
    assert source.get_animation_frames() == []
    assert (0, 1) in source.errors
