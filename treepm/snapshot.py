"""Per-rank restart snapshots: a text configuration and a binary particle file."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterator, Sequence

import numpy as np


@dataclass
class SnapshotConfig:
    """Run and domain description stored beside each rank's particle data."""

    proc_rank: int
    proc_size: int
    npart_total: int
    masspart: float
    boxsize: float
    hubble: float
    omega_m: float
    omega_x: float
    redshift: float
    npart: int
    maxnpart: int
    maxnpart_bnd: int
    com_dom: bool
    dom_grp_rank: int
    mesh_start: list = field(default_factory=list)
    mesh_size: list = field(default_factory=list)
    mesh_end: list = field(default_factory=list)
    nside_mesh: int = 0
    bitwidth: int | None = None

    @property
    def initial_time(self) -> float:
        return 1.0 / (self.redshift + 1.0)

    @property
    def is_sudom(self) -> bool:
        return not self.com_dom

    @property
    def maxnpart_bnd_sud(self) -> int:
        return self.maxnpart_bnd * len(self.mesh_start)

    def domain_box(
        self,
        nside_mesh: int,
        box_lo_yz: Sequence[float],
        box_hi_yz: Sequence[float],
    ) -> tuple[tuple[float, float, float], tuple[float, float, float]]:
        """Lower and upper corner of this rank's domain."""
        wid = self.boxsize / nside_mesh
        lo = (self.mesh_start[self.dom_grp_rank] * wid, *box_lo_yz)
        hi = (self.mesh_end[self.dom_grp_rank] * wid, *box_hi_yz)
        return tuple(lo), tuple(hi)


@dataclass
class SnapshotData:
    """Particle data of one rank; ``tag`` selects the particles to keep."""

    positions: np.ndarray
    velocities: np.ndarray
    ids: np.ndarray | None = None
    tag: np.ndarray | None = None

    def __len__(self) -> int:
        return len(self.positions)


def _tokens(text: str) -> Iterator[str]:
    yield from text.split()


def _take(tokens: Iterator[str], conv):
    try:
        return conv(next(tokens))
    except StopIteration:
        raise ValueError("snapshot configuration is truncated") from None


def read_config(path, ndom_in_sudom: int, with_bitwidth: bool = False) -> SnapshotConfig:
    """Parse a ``cfg_<timestamp>.<rank>`` file."""
    tokens = _tokens(Path(path).read_text())

    def ints(n):
        return [_take(tokens, int) for _ in range(n)]

    proc_rank, proc_size, npart_total = ints(3)
    masspart, boxsize, hubble, omega_m, omega_x, redshift = (
        _take(tokens, float) for _ in range(6)
    )
    npart, maxnpart, maxnpart_bnd, com_dom, dom_grp_rank = ints(5)
    mesh_start = ints(ndom_in_sudom)
    mesh_size = ints(ndom_in_sudom)
    mesh_end = ints(ndom_in_sudom)
    nside_mesh = _take(tokens, int)
    bitwidth = _take(tokens, int) if with_bitwidth else None
    return SnapshotConfig(
        proc_rank=proc_rank,
        proc_size=proc_size,
        npart_total=npart_total,
        masspart=masspart,
        boxsize=boxsize,
        hubble=hubble,
        omega_m=omega_m,
        omega_x=omega_x,
        redshift=redshift,
        npart=npart,
        maxnpart=maxnpart,
        maxnpart_bnd=maxnpart_bnd,
        com_dom=bool(com_dom),
        dom_grp_rank=dom_grp_rank,
        mesh_start=mesh_start,
        mesh_size=mesh_size,
        mesh_end=mesh_end,
        nside_mesh=nside_mesh,
        bitwidth=bitwidth,
    )


def write_config(path, config: SnapshotConfig, bitwidth: int | None = None) -> Path:
    """Write a configuration file; a ``bitwidth`` marks integer positions."""
    lines = [
        f"{config.proc_rank}",
        f"{config.proc_size}",
        f"{config.npart_total}",
        f"{config.masspart:e}",
        f"{config.boxsize:e}",
        f"{config.hubble:f}",
        f"{config.omega_m:f}",
        f"{config.omega_x:f}",
        f"{config.redshift:f}" if bitwidth is not None else f"{config.redshift:e}",
        f"{config.npart}" if config.com_dom else "0",
        f"{config.maxnpart}",
        f"{config.maxnpart_bnd}",
        f"{int(config.com_dom)}",
        f"{config.dom_grp_rank}",
        *(f"{v}" for v in config.mesh_start),
        *(f"{v}" for v in config.mesh_size),
        *(f"{v}" for v in config.mesh_end),
        f"{config.nside_mesh}",
    ]
    if bitwidth is not None:
        lines.append(f"{bitwidth}")
    path = Path(path)
    path.write_text("\n".join(lines) + "\n")
    return path


def _read_block(raw: bytes, offset: int, dtype: str, count: int, width: int):
    arr_dtype = np.dtype(dtype)
    end = offset + count * width * arr_dtype.itemsize
    if end > len(raw):
        raise ValueError("snapshot data file is truncated")
    arr = np.frombuffer(raw, dtype=arr_dtype, count=count * width, offset=offset)
    if width > 1:
        arr = arr.reshape(count, width)
    return arr.copy(), end


def read_snapshot(
    directory,
    timestamp: int,
    rank: int,
    ndom_in_sudom: int,
    integer_positions: bool = False,
) -> tuple[SnapshotConfig, SnapshotData | None]:
    """Read the configuration and, for computing ranks, the particle data."""
    directory = Path(directory)
    config = read_config(
        directory / f"cfg_{timestamp}.{rank}", ndom_in_sudom, integer_positions
    )
    if config.proc_rank != rank:
        raise ValueError("read wrong rank")
    if not config.com_dom:
        return config, None

    raw = (directory / f"dat_{timestamp}.{rank}").read_bytes()
    n = config.npart
    pos_dtype = "<i4" if integer_positions else "<f4"
    positions, offset = _read_block(raw, 0, pos_dtype, n, 3)
    velocities, offset = _read_block(raw, offset, "<f4", n, 3)
    ids, _ = _read_block(raw, offset, "<u8", n, 1)
    return config, SnapshotData(positions, velocities, ids)


def write_snapshot(
    directory,
    timestamp: int,
    rank: int,
    config: SnapshotConfig,
    data: SnapshotData | None,
    integer_positions: bool = False,
    bitwidth: int | None = None,
) -> Path:
    """Write ``<directory>/snapshot_<timestamp>/{dat,cfg}_<timestamp>.<rank>``."""
    out = Path(directory) / f"snapshot_{timestamp}"
    out.mkdir(parents=True, exist_ok=True)
    if integer_positions and bitwidth is None:
        raise ValueError("integer positions need a bitwidth")

    np_written = 0
    if config.com_dom:
        if data is None:
            raise ValueError("computing ranks need particle data")
        count = len(data)
        mask = (
            np.ones(count, dtype=bool)
            if data.tag is None
            else np.asarray(data.tag) == 1
        )
        pos_dtype = "<i4" if integer_positions else "<f4"
        positions = np.asarray(data.positions).reshape(-1, 3)[mask].astype(pos_dtype)
        velocities = np.asarray(data.velocities).reshape(-1, 3)[mask].astype("<f4")
        ids = (
            np.zeros(count, dtype="<u8")
            if data.ids is None
            else np.asarray(data.ids)
        )[mask].astype("<u8")
        np_written = int(mask.sum())
        with (out / f"dat_{timestamp}.{rank}").open("wb") as handle:
            handle.write(positions.tobytes())
            handle.write(velocities.tobytes())
            handle.write(ids.tobytes())

    write_config(
        out / f"cfg_{timestamp}.{rank}",
        replace(config, npart=np_written),
        bitwidth if integer_positions else None,
    )
    return out