"""Reading Gadget-2 format snapshot files."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

import numpy as np

HEADER_SIZE = 256
_HEADER_STRUCT = struct.Struct("<6I6d2d2i6I2i4d2i6I64s")
_MARKER = 4


def _six(default=0):
    return field(default_factory=lambda: (default,) * 6)


@dataclass
class GadgetHeader:
    """The 256-byte Gadget-2 file header."""

    npart: tuple = _six()
    mass: tuple = _six(0.0)
    time: float = 0.0
    redshift: float = 0.0
    flag_sfr: int = 0
    flag_feedback: int = 0
    npart_total: tuple = _six()
    flag_cooling: int = 0
    num_files: int = 0
    boxsize: float = 0.0
    omega0: float = 0.0
    omega_lambda: float = 0.0
    hubble_param: float = 0.0
    flag_stellarage: int = 0
    flag_metals: int = 0
    npart_total_high_word: tuple = _six()
    fill: bytes = bytes(64)

    def to_bytes(self) -> bytes:
        return _HEADER_STRUCT.pack(
            *self.npart,
            *self.mass,
            self.time,
            self.redshift,
            self.flag_sfr,
            self.flag_feedback,
            *self.npart_total,
            self.flag_cooling,
            self.num_files,
            self.boxsize,
            self.omega0,
            self.omega_lambda,
            self.hubble_param,
            self.flag_stellarage,
            self.flag_metals,
            *self.npart_total_high_word,
            self.fill,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "GadgetHeader":
        if len(data) != HEADER_SIZE:
            raise ValueError(f"header must be {HEADER_SIZE} bytes, got {len(data)}")
        v = _HEADER_STRUCT.unpack(data)
        return cls(
            npart=tuple(v[0:6]),
            mass=tuple(v[6:12]),
            time=v[12],
            redshift=v[13],
            flag_sfr=v[14],
            flag_feedback=v[15],
            npart_total=tuple(v[16:22]),
            flag_cooling=v[22],
            num_files=v[23],
            boxsize=v[24],
            omega0=v[25],
            omega_lambda=v[26],
            hubble_param=v[27],
            flag_stellarage=v[28],
            flag_metals=v[29],
            npart_total_high_word=tuple(v[30:36]),
            fill=v[36],
        )

    def total_particles(self) -> int:
        """Sum of the low words of the per-type total particle counts."""
        return sum(self.npart_total)


@dataclass
class GadgetParticles:
    """Particles read from one Gadget file."""

    header: GadgetHeader
    positions: np.ndarray
    velocities: np.ndarray
    ids: np.ndarray | None = None

    def __len__(self) -> int:
        return len(self.positions)


def _block(raw: bytes, offset: int, count: int, dtype: str, width: int):
    start = offset + _MARKER
    end = start + count * width * 4
    if end + _MARKER > len(raw):
        raise ValueError("truncated Gadget file")
    arr = np.frombuffer(raw, dtype=dtype, count=count * width, offset=start)
    if width > 1:
        arr = arr.reshape(count, width)
    return arr, end + _MARKER


def _load(path, read_ids: bool):
    raw = Path(path).read_bytes()
    if len(raw) < HEADER_SIZE + 2 * _MARKER:
        raise ValueError("truncated Gadget header")
    header = GadgetHeader.from_bytes(raw[_MARKER:_MARKER + HEADER_SIZE])
    count = sum(header.npart)
    offset = HEADER_SIZE + 2 * _MARKER
    pos, offset = _block(raw, offset, count, "<f4", 3)
    vel, offset = _block(raw, offset, count, "<f4", 3)
    ids = None
    if read_ids:
        ids, offset = _block(raw, offset, count, "<i4", 1)
    return header, pos, vel, ids


def _velocity_factor(header: GadgetHeader) -> float:
    return (1.0 / (1.0 + header.redshift)) ** 1.5


def _to_positions(px: np.ndarray, pos2int):
    if pos2int is None:
        return px
    return np.trunc(px * pos2int).astype(np.int32)


def _in_box(px: np.ndarray, box_lo, box_hi) -> np.ndarray:
    lo = np.asarray(box_lo, dtype=np.float64)
    hi = np.asarray(box_hi, dtype=np.float64)
    return np.all((lo <= px) & (px < hi), axis=1)


def read_header(path) -> GadgetHeader:
    """Read the header of a Gadget file."""
    with open(path, "rb") as handle:
        raw = handle.read(HEADER_SIZE + 2 * _MARKER)
    if len(raw) < HEADER_SIZE + _MARKER:
        raise ValueError("truncated Gadget header")
    return GadgetHeader.from_bytes(raw[_MARKER:_MARKER + HEADER_SIZE])


def npart_in_file(base, ith: int) -> tuple:
    """Per-type particle counts of file ``<base>.<ith>``."""
    return tuple(read_header(f"{base}.{ith}").npart)


def read_particles(
    path,
    n_start: int,
    n_count: int,
    unit: float = 1000.0,
    pos2int: float | None = None,
    read_ids: bool = False,
) -> GadgetParticles:
    """Read particles ``n_start`` to ``n_start + n_count`` across all types."""
    if n_start < 0 or n_count < 0:
        raise ValueError("n_start and n_count must not be negative")
    header, pos, vel, ids = _load(path, read_ids)
    sel = slice(n_start, n_start + n_count)
    px = pos[sel].astype(np.float64) * unit
    velocities = vel[sel].astype(np.float64) * _velocity_factor(header)
    return GadgetParticles(
        header,
        _to_positions(px, pos2int),
        velocities,
        None if ids is None else ids[sel].astype(np.int64),
    )


def read_particles_in_domain(
    path,
    box_lo: Sequence[float],
    box_hi: Sequence[float],
    boxsize: float,
    unit: float = 1000.0,
    pos2int: float | None = None,
) -> GadgetParticles:
    """Read the particles that fall inside ``[box_lo, box_hi)`` after wrapping."""
    header, pos, vel, ids = _load(path, True)
    px = pos.astype(np.float64) * unit
    px = np.where(px >= boxsize, px - boxsize, px)
    px = np.where(px < 0.0, px + boxsize, px)
    mask = _in_box(px, box_lo, box_hi)
    velocities = vel[mask].astype(np.float64) * _velocity_factor(header)
    return GadgetParticles(
        header,
        _to_positions(px[mask], pos2int),
        velocities,
        ids[mask].astype(np.int64),
    )


def read_particles_shifted(
    path,
    box_lo: Sequence[float],
    box_hi: Sequence[float],
    shift: float = 1953.125,
    period: float = 1000000.0,
    unit: float = 1000.0,
    pos2int: float | None = None,
) -> GadgetParticles:
    """Read particles after shifting and wrapping into ``[0, period)``."""
    header, pos, vel, _ = _load(path, False)
    px = pos.astype(np.float64) * unit + shift
    px = np.where(px < 0.0, px + period, px)
    px = np.where(px >= period, px - period, px)
    mask = _in_box(px, box_lo, box_hi)
    velocities = vel[mask].astype(np.float64) * _velocity_factor(header)
    return GadgetParticles(header, _to_positions(px[mask], pos2int), velocities)