"""Wavelet mass assignment and power spectrum tables of the density field."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import numpy as np

from treepm.cic import LocalMesh

DAUB12_LENGTH = 600001
DAUB12_SCALE = 100000.0
_STENCIL = 6


@dataclass(frozen=True)
class Daub12Table:
    """Tabulated Daubechies-12 scaling function on ``(0, 6)``."""

    values: np.ndarray
    scale: float = DAUB12_SCALE

    def __post_init__(self) -> None:
        values = np.asarray(self.values, dtype=np.float32).ravel()
        if values.size == 0:
            raise ValueError("scaling function table is empty")
        object.__setattr__(self, "values", values)

    @classmethod
    def load(cls, path) -> "Daub12Table":
        """Read a table of ``x value`` pairs, keeping the value column."""
        data = np.loadtxt(path, dtype=np.float64, ndmin=2)
        if data.shape[0] == 0 or data.shape[1] < 2:
            raise ValueError("scaling function table needs two columns")
        return cls(data[:DAUB12_LENGTH, 1])

    def __call__(self, d):
        """Value at ``d``; zero outside the open interval ``(0, 6)``."""
        arr = np.asarray(d, dtype=np.float32).astype(np.float64)
        inside = (arr > 0.0) & (arr < 6.0)
        idx = np.where(inside, arr * self.scale, 0.0).astype(np.int64)
        inside &= idx < self.values.size
        out = np.where(inside, self.values[np.where(inside, idx, 0)], 0.0)
        out = out.astype(np.float64)
        if out.ndim == 0:
            return float(out)
        return out


@dataclass(frozen=True)
class PowerSpectrum:
    """Binned power spectrum: wavenumber, power and mode count per bin."""

    k: np.ndarray
    power: np.ndarray
    modes: np.ndarray

    def __len__(self) -> int:
        return len(self.k)

    def __iter__(self) -> Iterator[tuple[float, float, float]]:
        for k, p, m in zip(self.k, self.power, self.modes):
            yield float(k), float(p), float(m)


def daub_deposit(
    positions,
    local: LocalMesh,
    nside_mesh: int,
    boxsize: float,
    table: Daub12Table,
    boundary: bool = False,
) -> np.ndarray:
    """Assign particles to a 6x6x6 stencil of cells weighted by ``table``.

    Cell indices wrap periodically; weights landing outside ``local`` are
    dropped.  With ``boundary`` set, negative coordinates are floored.
    """
    if nside_mesh < 1:
        raise ValueError("nside_mesh must be positive")
    if boxsize <= 0:
        raise ValueError("boxsize must be positive")
    pos = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    mesh = local.zeros()
    if pos.shape[0] == 0:
        return mesh

    dlt = 1.0 / nside_mesh
    p = pos / boxsize
    c = np.trunc(p * nside_mesh).astype(np.int64)
    if boundary:
        c -= (pos < 0.0).astype(np.int64)
    g = (c + 0.5) * dlt
    s = np.where(p > g, -2, -3).astype(np.int64)
    base = (g - p) / dlt + (s + 3)

    offsets = np.arange(_STENCIL)
    weights = table(base[:, :, None] + offsets[None, None, :])
    lo = np.asarray(local.lo, dtype=np.int64)
    cells = np.fmod(c[:, :, None] + s[:, :, None] + offsets + nside_mesh, nside_mesh)
    cells = cells - lo[None, :, None]
    size = np.asarray(local.size, dtype=np.int64)

    in_x = (cells[:, 0] >= 0) & (cells[:, 0] < size[0])
    in_y = (cells[:, 1] >= 0) & (cells[:, 1] < size[1])
    in_z = (cells[:, 2] >= 0) & (cells[:, 2] < size[2])
    for i in range(_STENCIL):
        for j in range(_STENCIL):
            wij = weights[:, 0, i] * weights[:, 1, j]
            ok_ij = in_x[:, i] & in_y[:, j]
            for k in range(_STENCIL):
                ok = ok_ij & in_z[:, k]
                if not ok.any():
                    continue
                idx = (cells[ok, 0, i], cells[ok, 1, j], cells[ok, 2, k])
                np.add.at(mesh, idx, wij[ok] * weights[ok, 2, k])
    return mesh


def density_contrast(mesh, nside_mesh: int, npart_total: int) -> np.ndarray:
    """Turn particle counts per cell into the density contrast."""
    if nside_mesh < 1:
        raise ValueError("nside_mesh must be positive")
    rho = (1.0 / nside_mesh) ** 3 * float(npart_total)
    if rho == 0:
        raise ValueError("mean density must not be zero")
    return (np.asarray(mesh, dtype=np.float64) - rho) / rho


def bin_average(power_sum, mode_count) -> np.ndarray:
    """Mean power per bin; empty bins give zero."""
    ps = np.asarray(power_sum, dtype=np.float64)
    count = np.asarray(mode_count, dtype=np.float64)
    if ps.shape != count.shape:
        raise ValueError("power_sum and mode_count must have the same shape")
    out = np.zeros_like(ps)
    filled = count > 0
    out[filled] = ps[filled] / count[filled]
    return out


def power_spectrum_rows(
    power_sum,
    mode_count,
    nside_mesh: int,
    boxsize: float,
    output_num: int | None = None,
) -> PowerSpectrum:
    """Normalised spectrum for bins ``1`` to ``output_num - 1``.

    ``boxsize`` is in kpc/h; wavenumbers come out in h/Mpc.  The default
    ``output_num`` is half the mesh side.
    """
    if nside_mesh < 1:
        raise ValueError("nside_mesh must be positive")
    if boxsize <= 0:
        raise ValueError("boxsize must be positive")
    averaged = bin_average(power_sum, mode_count)
    count = np.asarray(mode_count, dtype=np.float64)
    if output_num is None:
        output_num = nside_mesh // 2
    if output_num > averaged.size:
        raise ValueError("output_num exceeds the number of bins")
    box_mpc = boxsize / 1000.0
    vol = box_mpc ** 3
    norm = vol / float(nside_mesh) ** 3
    n = np.arange(1, max(output_num, 1))
    k = (n + 0.5) * 2.0 * math.pi / box_mpc
    power = averaged[n] * norm * norm / vol
    return PowerSpectrum(k, power, count[n])


def write_power_spectrum(path, rows) -> Path:
    """Write ``k power modes`` lines."""
    path = Path(path)
    with path.open("w") as handle:
        for k, power, modes in rows:
            handle.write("%e %e %f\n" % (k, power, modes))
    return path


def spectrum_filename(path_snapshot, rank_snap: int, daub: bool = False) -> Path:
    """Output file of the spectrum of snapshot ``rank_snap``."""
    name = f"powspec_daub_{rank_snap}" if daub else f"powspec_{rank_snap:04d}"
    return Path(path_snapshot) / name