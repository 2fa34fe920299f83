"""Time-step levels, kicks and drifts of the particle integrator."""

from __future__ import annotations

import math
from typing import Callable, Sequence

import numpy as np

_DISP_BINS = 32


def _tagged(tag) -> np.ndarray:
    return np.asarray(tag) == 1


def active_levels(
    acc,
    tag,
    loga_i: float,
    loga_f: float,
    soften_length: float,
    grav_const: float,
    age_of: Callable[[float], float],
    max_step_level: int,
    eta: float = 0.035,
    fixed_step: bool = False,
):
    """Assign each tagged particle the step level its acceleration needs.

    ``acc`` holds the total acceleration per particle, shape ``(N, 3)``.
    Returns the level array and the finest level used.
    """
    acc = np.asarray(acc, dtype=np.float64).reshape(-1, 3)
    mask = _tagged(tag)
    if mask.shape[0] != acc.shape[0]:
        raise ValueError("acc and tag must describe the same particles")
    ai = math.exp(loga_i)
    af = math.exp(loga_f)
    a = 0.5 * (ai + af)
    fac = grav_const / (a * a)
    dstep = age_of(af) - age_of(ai)

    act = np.zeros(acc.shape[0], dtype=np.int64)
    if fixed_step or not mask.any():
        return act, 0

    ac = fac * np.sqrt(np.sum(acc[mask] ** 2, axis=1))
    with np.errstate(divide="ignore"):
        tp = np.sqrt(2.0 * eta * soften_length * a / ac)
    lv = np.zeros(tp.shape[0], dtype=np.int64)
    for _ in range(max_step_level):
        lv += tp < dstep / np.left_shift(1, lv).astype(np.float64)
    np.minimum(lv, max_step_level, out=lv)
    act[mask] = lv
    return act, int(lv.max())


def level_histogram(act, tag, max_step_level: int) -> np.ndarray:
    """Number of tagged particles on each level from 0 to ``max_step_level``."""
    levels = np.asarray(act)[_tagged(tag)]
    return np.bincount(levels, minlength=max_step_level + 1)[: max_step_level + 1]


def kick_half_step(vel, acc_pm, tag, dkh_pm: float):
    """Kick tagged particles with the mesh acceleration."""
    mask = _tagged(tag)
    vel[mask] += np.asarray(acc_pm)[mask] * dkh_pm
    return vel


def kick_half_active(vel, acc, act, tag, dkh: Sequence[float], level: int):
    """Kick tagged particles on ``level`` or finer with their own level's factor."""
    act = np.asarray(act)
    mask = _tagged(tag) & (act >= level)
    factors = np.asarray(dkh, dtype=np.float64)[act[mask]]
    vel[mask] += np.asarray(acc)[mask] * factors[:, None]
    return vel


def kick_half_act(vel, acc, acc_pm, act, tag, dkh: Sequence[float], level: int):
    """Kick with the mesh force on level 0 and the short-range force per level."""
    act = np.asarray(act)
    tagged = _tagged(tag)
    if level == 0:
        mesh = tagged & (act >= 0)
        vel[mesh] += np.asarray(acc_pm)[mesh] * dkh[0]
    kick_half_active(vel, acc, act, tagged.astype(np.int64), dkh, level)
    return vel


def drift_step(pos, vel, tag, dd: float):
    """Move tagged particles along their velocity for time ``dd``."""
    mask = _tagged(tag)
    pos[mask] += np.asarray(vel)[mask] * dd
    return pos


def drift_step_int(posi, vel, tag, dd: float, pos2int: float) -> np.ndarray:
    """Drift integer positions, rounding each move half away from zero.

    Returns how many particles moved by up to ``2**l`` units, per ``l``.
    """
    mask = _tagged(tag)
    dst = np.asarray(vel, dtype=np.float64)[mask] * dd * pos2int
    dst = dst + np.where(dst > 0.0, 0.5, -0.5)
    moves = np.trunc(dst).astype(np.int64)
    posi[mask] += moves.astype(posi.dtype)

    tmax = np.abs(moves).max(axis=1) if moves.size else np.zeros(0, dtype=np.int64)
    bins = np.where(
        tmax > 0, np.ceil(np.log2(np.maximum(tmax, 1))), 0
    ).astype(np.int64)
    bins = np.minimum(bins, _DISP_BINS - 1)
    return np.bincount(bins, minlength=_DISP_BINS)