import math

import pytest

from treepm.params import (
    cosmology,
    cosmology_from_omegas,
    planck_cosmology,
    setup_param,
)


def _params(**overrides):
    kwargs = dict(
        boxsize=1000.0,
        nside_mesh=512,
        proc_size=84,
        nside0_sudom=2,
        nside1_sudom=2,
        ndom_head=1,
        nside0_proc=12,
        nside1_proc=7,
        bitwidth=2.0**31,
    )
    kwargs.update(overrides)
    return setup_param(**kwargs)


def test_fixed_constants():
    p = _params()
    assert p.open_angle == 0.4
    assert p.grav_const == 43007.105732
    assert p.max_leaf == 256
    assert p.pack_level == 3
    assert p.max_npart_ratio == 1.5
    assert p.max_bnd_ratio == 0.35


def test_derived_lengths_are_consistent():
    p = _params()
    assert p.soften_scale == pytest.approx(1.5 * p.soften_length)
    assert p.cutoff_radius == pytest.approx(4.5 * p.split_radius)
    assert p.split_radius / p.soften_length == pytest.approx(1.25 / 0.02)
    assert p.pos2int * p.int2pos == pytest.approx(1.0)
    assert p.bitwidth_boxsize > 1000.0
    assert p.pi_isq == pytest.approx(1.0 / math.sqrt(math.pi))


def test_len_task_spreads_work_over_workers():
    p = _params()
    assert p.len_task * 80 == pytest.approx(80000000, rel=1e-6)
    assert p.ndom_com == 84 - 4


def test_no_workers_is_an_error():
    with pytest.raises(ValueError):
        _params(proc_size=4)


def test_cosmology_from_omegas():
    c = cosmology_from_omegas(0.3, 0.7, 0.68, 500.0)
    assert c.seed == -1857291
    assert c.omega_b == 0.0
    assert c.primordial_index == 1.0
    assert (c.omega_m, c.omega_x, c.hubble, c.boxsize) == (0.3, 0.7, 0.68, 500.0)


def test_planck_cosmology_is_closed():
    c = planck_cosmology(0.0224, 0.12, 0.0006, 0.0, 67.0, 0.81, 0.96, 1000.0)
    assert c.omega_m + c.omega_x == pytest.approx(1.0)
    assert c.hubble == pytest.approx(0.67)
    assert c.omega_b < c.omega_m
    assert c.seed == -1857291


def test_cosmology_direct():
    c = cosmology(0.31, 0.05, 0.69, 0.7, 0.8, 0.96, 200.0)
    assert c.seed == -3857291
    assert (c.omega_m, c.omega_b, c.omega_x) == (0.31, 0.05, 0.69)
    assert (c.sigma8, c.primordial_index) == (0.8, 0.96)