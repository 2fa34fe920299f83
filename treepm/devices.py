"""Scheduling particle-particle work packs onto accelerator devices.

A pack is a contiguous run of leaves and particles together with its list of
target/source leaf pairs.  Packs are spread over devices with a greedy load
balance, packs on one device whose particle ranges touch are merged, and the
per-device buffers are sized with some headroom so they are not reallocated
every step.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field, replace
from typing import Sequence

import numpy as np

GROW_FACTOR = np.float32(1.1)


@dataclass
class P2PPack:
    """A block of leaves and particles with its leaf-pair tasks."""

    ileaf: int
    nleaf: int
    ipart: int
    npart: int
    task_t: list = field(default_factory=list)
    task_s: list = field(default_factory=list)
    rankid: int = -1

    def __post_init__(self) -> None:
        self.task_t = list(self.task_t)
        self.task_s = list(self.task_s)
        if len(self.task_t) != len(self.task_s):
            raise ValueError("task_t and task_s must have the same length")

    @property
    def ntask(self) -> int:
        return len(self.task_t)

    @property
    def leaf_end(self) -> int:
        return self.ileaf + self.nleaf

    @property
    def part_end(self) -> int:
        return self.ipart + self.npart


def _grown(n: int) -> int:
    return int(np.float32(n) * GROW_FACTOR)


@dataclass
class DeviceBuffers:
    """Capacity of the task, particle and leaf buffers held on each device."""

    device_cnt: int
    max_ntask: list = field(default_factory=list)
    max_npart: list = field(default_factory=list)
    max_nleaf: list = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.device_cnt < 1:
            raise ValueError("device_cnt must be positive")
        for name in ("max_ntask", "max_npart", "max_nleaf"):
            values = list(getattr(self, name)) or [0] * self.device_cnt
            if len(values) != self.device_cnt:
                raise ValueError(f"{name} must have one entry per device")
            setattr(self, name, values)

    def _reserve_one(self, capacity: list, needed: Sequence[int]) -> list:
        needed = list(needed)
        if len(needed) != self.device_cnt:
            raise ValueError("need one requested size per device")
        grown = []
        for device, want in enumerate(needed):
            if want > capacity[device]:
                capacity[device] = _grown(want)
                grown.append(device)
        return grown

    def reserve(self, ntask, npart, nleaf):
        """Grow buffers that are too small by the growth factor.

        Returns the devices whose task, particle and leaf buffers were
        reallocated, in that order.
        """
        return (
            self._reserve_one(self.max_ntask, ntask),
            self._reserve_one(self.max_npart, npart),
            self._reserve_one(self.max_nleaf, nleaf),
        )


def assign_device_ids(
    proc_size: int,
    new_rank: int,
    device_cnt: int,
    intra_lb: bool = False,
    numnode: int = 1,
    hip: bool = False,
) -> list:
    """Devices a process uses.

    With ``intra_lb`` every device is used, starting from one chosen by the
    rank; otherwise one device shared evenly by the ranks of a node.
    """
    if device_cnt <= 0:
        raise RuntimeError("No available device")
    if intra_lb:
        first = new_rank % device_cnt
        return [(first + i) % device_cnt for i in range(device_cnt)]
    if proc_size // device_cnt == 0:
        return [new_rank]
    if hip:
        return [0]
    if numnode < 1:
        raise ValueError("numnode must be positive")
    per_node = proc_size // numnode
    per_device = per_node // device_cnt
    if per_node == 0 or per_device == 0:
        raise ValueError("too few processes per node for the devices")
    return [(new_rank % per_node) // per_device]


def schedule_on_devices(
    packs: Sequence[P2PPack],
    dev_cnt: int,
    leaf_ipart: Sequence[int],
    last_leaf: int,
    npart: int,
) -> list:
    """Balance packs over ``dev_cnt`` devices and merge overlapping ones.

    Packs that already carry a device keep it; the last pack, if placed on
    device 0, counts towards that device's load.  Returns new packs, sorted
    by device and first particle.
    """
    if dev_cnt < 1:
        raise ValueError("dev_cnt must be positive")
    if not packs:
        return []
    work = [replace(p) for p in packs]

    last = work[-1]
    heap = [(last.ntask if last.rankid == 0 else 0, 0)]
    heap.extend((0, i) for i in range(1, dev_cnt))
    heapq.heapify(heap)

    for pack in sorted(work, key=lambda p: -p.ntask):
        if pack.rankid != -1:
            continue
        load, device = heapq.heappop(heap)
        pack.rankid = device
        heapq.heappush(heap, (load + pack.ntask, device))

    ordered = sorted(work, key=lambda p: (p.rankid, p.ipart, -p.ntask))
    merged = []
    tpos = 0
    while tpos < len(ordered):
        cur = replace(ordered[tpos])
        spos = tpos + 1
        while (
            spos < len(ordered)
            and ordered[spos].rankid == cur.rankid
            and ordered[spos].ipart <= cur.ipart + cur.npart
        ):
            nxt = ordered[spos]
            maxleaf = max(cur.leaf_end, nxt.leaf_end)
            cur.nleaf = maxleaf - cur.ileaf
            if maxleaf < last_leaf:
                cur.npart = leaf_ipart[maxleaf] - cur.ipart
            else:
                cur.npart = npart - cur.ipart
            cur.task_t.extend(nxt.task_t)
            cur.task_s.extend(nxt.task_s)
            spos += 1
        merged.append(cur)
        tpos = spos
    return merged


def pack_offsets(packs: Sequence[P2PPack], dev_cnt: int):
    """Where each pack sits in its device's buffers.

    Returns per pack its ``(npart, nleaf, ntask)`` offset and per device the
    ``(npart, nleaf, ntask)`` totals.
    """
    if dev_cnt < 1:
        raise ValueError("dev_cnt must be positive")
    totals = [[0, 0, 0] for _ in range(dev_cnt)]
    offsets = []
    for pack in packs:
        if not 0 <= pack.rankid < dev_cnt:
            raise ValueError(f"pack on unknown device {pack.rankid}")
        cur = totals[pack.rankid]
        offsets.append(tuple(cur))
        cur[0] += pack.npart
        cur[1] += pack.nleaf
        cur[2] += pack.ntask
    return offsets, [tuple(t) for t in totals]


def update_acc_from_buffer(acc, buffer, pack: P2PPack, act=None, active_level: int = -1):
    """Add a pack's device results to ``acc`` of shape ``(N, 3)``.

    ``buffer`` holds the x, y and z components as three consecutive blocks of
    ``pack.npart`` values.  With ``active_level`` other than -1 only particles
    on that level are updated, and level 0 updates none.
    """
    n = pack.npart
    buf = np.asarray(buffer).ravel()
    if buf.size < 3 * n:
        raise ValueError("buffer is shorter than the pack")
    values = buf[: 3 * n].reshape(3, n).T
    rows = np.arange(pack.ipart, pack.ipart + n)
    if active_level == -1:
        sel = np.ones(n, dtype=bool)
    elif active_level == 0:
        sel = np.zeros(n, dtype=bool)
    else:
        if act is None:
            raise ValueError("active levels are needed to select particles")
        sel = np.asarray(act)[rows] == active_level
    acc[rows[sel]] += values[sel]
    return acc