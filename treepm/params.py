"""Solver parameters and cosmological parameter sets."""

from __future__ import annotations

import math
from dataclasses import dataclass

GRAV_CONST = 43007.105732
SEED_OMEGAS = -1857291
SEED_PLANCK = -1857291
SEED_COSMO = -3857291


@dataclass(frozen=True)
class SolverParams:
    """Numerical parameters derived from the box and the mesh."""

    open_angle: float
    soften_length: float
    soften_scale: float
    split_radius: float
    cutoff_radius: float
    bitwidth_boxsize: float
    pos2int: float
    int2pos: float
    len_task: int
    max_npart_ratio: float
    max_bnd_ratio: float
    pack_level: int
    max_leaf: int
    pi_isq: float
    grav_const: float
    ndom_com: int


@dataclass(frozen=True)
class Cosmology:
    """Cosmological parameters of a run together with its random seed."""

    omega_m: float
    omega_x: float
    omega_b: float
    hubble: float
    sigma8: float
    primordial_index: float
    boxsize: float
    seed: int


def setup_param(
    boxsize: float,
    nside_mesh: int,
    proc_size: int,
    nside0_sudom: int,
    nside1_sudom: int,
    ndom_head: int,
    nside0_proc: int,
    nside1_proc: int,
    bitwidth: float,
) -> SolverParams:
    """Derive softening, splitting and work-size parameters for a run."""
    if nside_mesh < 1:
        raise ValueError("nside_mesh must be positive")
    workers = proc_size - nside0_sudom * nside1_sudom * ndom_head
    if workers <= 0:
        raise ValueError("no computing processes left after super-domain heads")

    soften_length = 0.02 * boxsize / nside_mesh
    split_radius = 1.25 * boxsize / nside_mesh
    cutoff_radius = 4.5 * split_radius
    bitwidth_boxsize = float(boxsize) + cutoff_radius * 1.1
    len_task = int(80000000 * (nside_mesh / 512.0) ** 3 / workers)

    return SolverParams(
        open_angle=0.4,
        soften_length=soften_length,
        soften_scale=1.5 * soften_length,
        split_radius=split_radius,
        cutoff_radius=cutoff_radius,
        bitwidth_boxsize=bitwidth_boxsize,
        pos2int=bitwidth / bitwidth_boxsize,
        int2pos=bitwidth_boxsize / bitwidth,
        len_task=len_task,
        max_npart_ratio=1.5,
        max_bnd_ratio=0.35,
        pack_level=3,
        max_leaf=256,
        pi_isq=1.0 / math.sqrt(math.pi),
        grav_const=GRAV_CONST,
        ndom_com=nside0_proc * nside1_proc - ndom_head * nside0_sudom * nside1_sudom,
    )


def cosmology_from_omegas(
    omega_m: float, omega_x: float, hubble: float, boxsize: float
) -> Cosmology:
    """Cosmology given only by the density parameters and the Hubble constant."""
    return Cosmology(
        omega_m=omega_m,
        omega_x=omega_x,
        omega_b=0.0,
        hubble=hubble,
        sigma8=0.0,
        primordial_index=1.0,
        boxsize=boxsize,
        seed=SEED_OMEGAS,
    )


def planck_cosmology(
    ombh2: float,
    omch2: float,
    omnuh2: float,
    omk: float,
    h0: float,
    s8: float,
    ns: float,
    boxsize: float,
) -> Cosmology:
    """Cosmology from physical densities and ``h0`` in km/s/Mpc."""
    h2 = h0 * h0 / 10000.0
    omega_m = (ombh2 + omnuh2 + omch2) / h2
    return Cosmology(
        omega_m=omega_m,
        omega_x=1.0 - omega_m - omk,
        omega_b=ombh2 / h2,
        hubble=h0 / 100.0,
        sigma8=s8,
        primordial_index=ns,
        boxsize=boxsize,
        seed=SEED_PLANCK,
    )


def cosmology(
    omega_m: float,
    omega_b: float,
    omega_x: float,
    h0: float,
    s8: float,
    ns: float,
    boxsize: float,
) -> Cosmology:
    """Cosmology given directly by its density parameters."""
    return Cosmology(
        omega_m=omega_m,
        omega_x=omega_x,
        omega_b=omega_b,
        hubble=h0,
        sigma8=s8,
        primordial_index=ns,
        boxsize=boxsize,
        seed=SEED_COSMO,
    )