import struct

import numpy as np
import pytest

from treepm.gadget import read_header, read_particles
from treepm.gadget_io import load_gadget_ics, write_particles


def _write(path, pos, vel, z=1.0, total=None):
    return write_particles(
        path, pos, vel, z, 1.0, 0.25, len(pos) if total is None else total,
        0.3, 0.7, 0.68,
    )


def test_file_layout_size_and_markers(tmp_path):
    pos = np.array([[100.0, 200.0, 300.0], [400.0, 500.0, 600.0]])
    path = _write(tmp_path / "snap", pos, np.zeros((2, 3)))
    raw = path.read_bytes()
    assert len(raw) == 4 + 256 + 4 + 2 * (4 + 12 * 2 + 4)
    assert struct.unpack("<i", raw[:4])[0] == 256
    assert struct.unpack("<i", raw[-4:])[0] == 256


def test_header_fields(tmp_path):
    pos = np.zeros((3, 3))
    path = _write(tmp_path / "snap", pos, np.zeros((3, 3)), z=0.5,
                  total=2**32 + 5)
    header = read_header(path)
    assert header.num_files == 12
    assert header.npart == (0, 3, 0, 0, 0, 0)
    assert header.npart_total[1] == 5
    assert header.npart_total_high_word[1] == 1
    assert header.mass[1] == 0.25
    assert header.redshift == 0.5
    assert header.time == pytest.approx(1.0 / 1.5)
    assert header.omega0 == pytest.approx(0.3)


def test_round_trip_positions_and_velocities(tmp_path):
    rng = np.random.default_rng(1)
    pos = rng.uniform(0.0, 1000.0, size=(5, 3))
    vel = rng.normal(size=(5, 3))
    path = _write(tmp_path / "snap", pos, vel, z=2.0)
    back = read_particles(path, 0, 5)
    assert np.allclose(back.positions, pos, rtol=1e-5, atol=1e-3)
    assert np.allclose(back.velocities, vel, rtol=1e-5, atol=1e-6)


def test_write_rejects_mismatched_shapes(tmp_path):
    with pytest.raises(ValueError):
        _write(tmp_path / "snap", np.zeros((2, 3)), np.zeros((3, 3)))


def test_load_gadget_ics_selects_domain(tmp_path):
    base = tmp_path / "ics"
    pos0 = np.array([[100.0, 100.0, 100.0], [700.0, 100.0, 100.0]])
    pos1 = np.array([[200.0, 800.0, 900.0], [900.0, 900.0, 900.0]])
    vel = np.ones((2, 3))
    _write(f"{base}.0", pos0, vel)
    _write(f"{base}.1", pos1, vel)

    loaded = load_gadget_ics(base, 2, (0.0, 0.0, 0.0), (500.0, 1000.0, 1000.0))
    assert len(loaded) == 2
    assert np.all(loaded.positions[:, 0] < 500.0)
    assert np.allclose(loaded.positions[:, 0], [100.0, 200.0], atol=1e-3)
    assert np.allclose(loaded.velocities, 1.0, rtol=1e-5)


def test_load_gadget_ics_integer_positions(tmp_path):
    base = tmp_path / "ics"
    _write(f"{base}.0", np.array([[250.0, 250.0, 250.0]]), np.zeros((1, 3)))
    loaded = load_gadget_ics(base, 1, (0.0, 0.0, 0.0), (1000.0, 1000.0, 1000.0),
                             pos2int=4.0)
    assert loaded.positions.dtype == np.int32
    assert abs(int(loaded.positions[0, 0]) - 1000) <= 1


def test_load_gadget_ics_needs_files(tmp_path):
    with pytest.raises(ValueError):
        load_gadget_ics(tmp_path / "ics", 0, (0, 0, 0), (1, 1, 1))