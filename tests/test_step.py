import numpy as np
import pytest

from treepm.step import (
    active_levels,
    drift_step,
    drift_step_int,
    kick_half_act,
    kick_half_active,
    kick_half_step,
    level_histogram,
)


def _age(a):
    return a


def test_zero_acceleration_stays_on_level_zero():
    acc = np.zeros((4, 3))
    act, top = active_levels(acc, [1, 1, 1, 1], -1.0, -0.9, 0.1, 43007.1, _age, 6)
    assert top == 0
    assert act.tolist() == [0, 0, 0, 0]


def test_huge_acceleration_is_clamped_to_max_level():
    acc = np.full((2, 3), 1.0e12)
    act, top = active_levels(acc, [1, 1], -1.0, -0.5, 0.01, 43007.1, _age, 5)
    assert top == 5
    assert act.tolist() == [5, 5]


def test_levels_grow_with_acceleration():
    mags = np.logspace(-2, 8, 12)
    acc = np.zeros((12, 3))
    acc[:, 0] = mags
    act, top = active_levels(acc, np.ones(12), -1.0, -0.8, 0.05, 43007.1, _age, 10)
    assert np.all(np.diff(act) >= 0)
    assert top == act.max()


def test_untagged_particles_keep_level_zero_and_fixed_step():
    acc = np.full((2, 3), 1.0e12)
    act, _ = active_levels(acc, [0, 1], -1.0, -0.5, 0.01, 43007.1, _age, 5)
    assert act[0] == 0
    fixed, top = active_levels(acc, [1, 1], -1.0, -0.5, 0.01, 43007.1, _age, 5,
                               fixed_step=True)
    assert top == 0
    assert fixed.tolist() == [0, 0]


def test_active_levels_shape_mismatch():
    with pytest.raises(ValueError):
        active_levels(np.zeros((3, 3)), [1, 1], 0.0, 0.1, 0.1, 1.0, _age, 3)


def test_level_histogram_counts_tagged_only():
    act = np.array([0, 1, 1, 3, 2])
    tag = np.array([1, 1, 1, 1, 0])
    hist = level_histogram(act, tag, 4)
    assert hist.tolist() == [1, 2, 0, 1, 0]
    assert hist.sum() == int((tag == 1).sum())


def test_kick_half_step_skips_untagged():
    vel = np.zeros((2, 3))
    acc_pm = np.ones((2, 3))
    kick_half_step(vel, acc_pm, [1, 0], 0.5)
    assert vel[0].tolist() == [0.5, 0.5, 0.5]
    assert vel[1].tolist() == [0.0, 0.0, 0.0]


def test_kick_half_active_uses_level_factor():
    vel = np.zeros((3, 3))
    acc = np.ones((3, 3))
    act = np.array([0, 1, 2])
    dkh = [10.0, 20.0, 40.0]
    kick_half_active(vel, acc, act, [1, 1, 1], dkh, 1)
    assert vel[0].tolist() == [0.0, 0.0, 0.0]
    assert vel[1, 0] == dkh[1]
    assert vel[2, 0] == dkh[2]


def test_kick_half_act_adds_mesh_only_on_level_zero():
    acc = np.ones((2, 3))
    acc_pm = np.full((2, 3), 2.0)
    act = np.array([0, 1])
    dkh = [1.0, 3.0]

    v0 = np.zeros((2, 3))
    kick_half_act(v0, acc, acc_pm, act, [1, 1], dkh, 0)
    v1 = np.zeros((2, 3))
    kick_half_act(v1, acc, acc_pm, act, [1, 1], dkh, 1)

    mesh_part = v0 - v1
    assert np.allclose(mesh_part[1], acc_pm[1] * dkh[0] + acc[1] * 0.0)
    assert np.allclose(v1[0], 0.0)
    assert np.allclose(v1[1], acc[1] * dkh[1])


def test_drift_step_moves_tagged():
    pos = np.zeros((2, 3))
    vel = np.array([[1.0, 2.0, 3.0], [1.0, 1.0, 1.0]])
    drift_step(pos, vel, [1, 0], 2.0)
    assert np.allclose(pos[0], vel[0] * 2.0)
    assert np.allclose(pos[1], 0.0)


def test_drift_step_int_whole_moves_and_histogram():
    posi = np.zeros((3, 3), dtype=np.int32)
    vel = np.array([[3.0, -3.0, 0.0], [0.0, 0.0, 0.0], [8.0, 0.0, 0.0]])
    hist = drift_step_int(posi, vel, [1, 1, 0], 1.0, 1.0)
    assert posi[0].tolist() == [3, -3, 0]
    assert posi[1].tolist() == [0, 0, 0]
    assert posi[2].tolist() == [0, 0, 0]
    assert hist.sum() == 2
    assert hist[0] == 1


def test_drift_step_int_rounds_symmetrically():
    posi = np.zeros((2, 3), dtype=np.int64)
    vel = np.array([[0.4, 1.6, 2.0], [-0.4, -1.6, -2.0]])
    drift_step_int(posi, vel, [1, 1], 1.0, 1.0)
    assert np.array_equal(posi[0], -posi[1])