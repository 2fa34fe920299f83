"""Cloud-in-cell mass assignment onto the local slab of the density mesh."""

from __future__ import annotations

import itertools
from dataclasses import dataclass

import numpy as np

from treepm.layout import DomainLayout


@dataclass(frozen=True)
class LocalMesh:
    """Box of mesh cells owned by one process: lower corner and extent."""

    lo: tuple[int, int, int]
    size: tuple[int, int, int]

    def __post_init__(self) -> None:
        lo = tuple(int(v) for v in self.lo)
        size = tuple(int(v) for v in self.size)
        if len(lo) != 3 or len(size) != 3:
            raise ValueError("lo and size must have three components")
        if any(v < 0 for v in size):
            raise ValueError("mesh size must not be negative")
        object.__setattr__(self, "lo", lo)
        object.__setattr__(self, "size", size)

    @property
    def hi(self) -> tuple[int, int, int]:
        """Upper corner, exclusive."""
        return tuple(a + b for a, b in zip(self.lo, self.size))

    @property
    def count(self) -> int:
        """Number of cells in the box."""
        nx, ny, nz = self.size
        return nx * ny * nz

    def zeros(self) -> np.ndarray:
        """An empty mesh of this box's shape."""
        return np.zeros(self.size, dtype=np.float64)


def local_mesh_bounds(
    proc_rank: int,
    layout: DomainLayout,
    nside_mesh: int,
    mesh_start: int,
    mesh_size: int,
) -> LocalMesh:
    """Mesh box of a computing rank: its x slab inside its super-domain's y-z patch."""
    if nside_mesh < 1:
        raise ValueError("nside_mesh must be positive")
    if mesh_size < 0:
        raise ValueError("mesh_size must not be negative")
    py, pz = divmod(proc_rank, layout.nside1_proc)
    sy = py // layout.dside0
    sz = pz // layout.dside1
    lo = (
        mesh_start,
        sy * nside_mesh // layout.nside0_sudom,
        sz * nside_mesh // layout.nside1_sudom,
    )
    size = (
        mesh_size,
        nside_mesh // layout.nside0_sudom,
        nside_mesh // layout.nside1_sudom,
    )
    return LocalMesh(lo, size)


def cic_deposit(
    positions,
    local: LocalMesh,
    nside_mesh: int,
    boxsize: float,
    mass: float,
    boundary: bool = False,
) -> np.ndarray:
    """Spread ``mass`` per particle over the eight nearest cells of ``local``.

    With ``boundary`` set, negative coordinates are floored rather than
    truncated, as needed for boundary particles lying below the box origin.
    Weights that land outside ``local`` are dropped.
    """
    if nside_mesh < 1:
        raise ValueError("nside_mesh must be positive")
    if boxsize <= 0:
        raise ValueError("boxsize must be positive")
    pos = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    norm = nside_mesh / boxsize
    delta = 1.0 / norm

    i = np.trunc(pos * norm).astype(np.int64)
    if boundary:
        i -= (pos < 0.0).astype(np.int64)
    w = (pos - (i + 0.5) * delta) * norm
    ii = np.where(w > 0.0, i + 1, i - 1)
    w = np.abs(w)
    wn = 1.0 - w

    lo = np.asarray(local.lo, dtype=np.int64)
    size = np.asarray(local.size, dtype=np.int64)
    i -= lo
    ii -= lo

    mesh = local.zeros()
    if pos.shape[0] == 0:
        return mesh
    for choice in itertools.product((False, True), repeat=3):
        sel = np.asarray(choice)
        idx = np.where(sel, ii, i)
        weight = np.prod(np.where(sel, w, wn), axis=1)
        inside = np.all((idx >= 0) & (idx < size), axis=1)
        if inside.any():
            np.add.at(mesh, tuple(idx[inside].T), mass * weight[inside])
    return mesh


def normalize_mass(mesh, mass: float) -> np.ndarray:
    """Express a mass mesh in units of the particle mass."""
    if mass == 0:
        raise ValueError("particle mass must not be zero")
    return np.asarray(mesh, dtype=np.float64) * (1.0 / mass)


def redistribute_sudomain_mesh(
    smesh,
    mesh_start,
    mesh_size,
    layout: DomainLayout,
    nside_mesh: int,
) -> np.ndarray:
    """Cut a super-domain mesh into the full-x pencils of its member processes.

    ``smesh`` has shape ``(nside_mesh, y_n, z_n)`` (or is its flat form), with
    the x slabs ``mesh_start[m]:mesh_start[m]+mesh_size[m]`` filled.  Block
    ``jj * dside1 + kk`` of the result, of shape ``(nside_mesh, dy, dz)``,
    holds the cells of process column ``(jj, kk)``; rows no slab covers are zero.
    """
    if len(mesh_start) != len(mesh_size):
        raise ValueError("mesh_start and mesh_size must have the same length")
    checks = (
        nside_mesh % layout.nside0_proc,
        nside_mesh % layout.nside1_proc,
        nside_mesh % layout.nside0_sudom,
        nside_mesh % layout.nside1_sudom,
    )
    if nside_mesh < 1 or any(checks):
        raise ValueError("mesh does not divide evenly over the layout")
    y_n = nside_mesh // layout.nside0_sudom
    z_n = nside_mesh // layout.nside1_sudom
    dy = nside_mesh // layout.nside0_proc
    dz = nside_mesh // layout.nside1_proc
    nyy, nzz = y_n // dy, z_n // dz

    sm = np.asarray(smesh, dtype=np.float64)
    if sm.size != nside_mesh * y_n * z_n:
        raise ValueError("super-domain mesh has the wrong number of cells")
    sm = sm.reshape(nside_mesh, nyy, dy, nzz, dz)
    blocks = sm.transpose(1, 3, 0, 2, 4).reshape(nyy * nzz, nside_mesh, dy, dz)

    out = np.zeros_like(blocks)
    for start, size in zip(mesh_start, mesh_size):
        if start < 0 or size < 0 or start + size > nside_mesh:
            raise ValueError("slab lies outside the mesh")
        out[:, start:start + size] = blocks[:, start:start + size]
    return out