"""Writing Gadget-2 snapshots and loading initial conditions split over files."""

from __future__ import annotations

import struct
from pathlib import Path
from typing import Sequence

import numpy as np

from treepm.gadget import (
    GadgetHeader,
    GadgetParticles,
    read_header,
    read_particles_in_domain,
)

_BLOCK_MARKER = struct.pack("<i", 256)
_OUTPUT_UNIT = 0.001
_NUM_FILES = 12
_INPUT_UNIT = 1000.0


def write_particles(
    path,
    positions,
    velocities,
    redshift: float,
    boxsize: float,
    masspart: float,
    npart_total: int,
    omega_m: float,
    omega_x: float,
    hubble: float,
) -> Path:
    """Write particles as a Gadget-2 file with positions scaled to Mpc."""
    pos = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    vel = np.asarray(velocities, dtype=np.float64).reshape(-1, 3)
    if pos.shape != vel.shape:
        raise ValueError("positions and velocities must have the same shape")
    count = pos.shape[0]
    header = GadgetHeader(
        npart=(0, count, 0, 0, 0, 0),
        mass=(0.0, masspart, 0.0, 0.0, 0.0, 0.0),
        time=1.0 / (redshift + 1.0),
        redshift=redshift,
        npart_total=(0, npart_total & 0xFFFFFFFF, 0, 0, 0, 0),
        num_files=_NUM_FILES,
        boxsize=boxsize,
        omega0=omega_m,
        omega_lambda=omega_x,
        hubble_param=hubble,
        npart_total_high_word=(0, npart_total >> 32, 0, 0, 0, 0),
    )
    gdt2unit = (1.0 / (1.0 + redshift)) ** 1.5
    path = Path(path)
    with path.open("wb") as handle:
        handle.write(_BLOCK_MARKER)
        handle.write(header.to_bytes())
        handle.write(_BLOCK_MARKER)
        for block in (pos * _OUTPUT_UNIT, vel / gdt2unit):
            handle.write(_BLOCK_MARKER)
            handle.write(block.astype("<f4").tobytes())
            handle.write(_BLOCK_MARKER)
    return path


def load_gadget_ics(
    base,
    nfiles: int,
    box_lo: Sequence[float],
    box_hi: Sequence[float],
    pos2int: float | None = None,
) -> GadgetParticles:
    """Gather the particles of files ``<base>.0`` .. ``<base>.<nfiles-1>`` in a domain."""
    if nfiles < 1:
        raise ValueError("nfiles must be positive")
    first = None
    positions, velocities, ids = [], [], []
    for n in range(nfiles):
        name = f"{base}.{n}"
        header = read_header(name)
        if first is None:
            first = header
        chunk = read_particles_in_domain(
            name,
            box_lo,
            box_hi,
            header.boxsize * _INPUT_UNIT,
            unit=_INPUT_UNIT,
            pos2int=pos2int,
        )
        positions.append(chunk.positions)
        velocities.append(chunk.velocities)
        ids.append(chunk.ids)
    return GadgetParticles(
        first,
        np.concatenate(positions),
        np.concatenate(velocities),
        np.concatenate(ids),
    )