"""Process layout of the two-level domain decomposition and rankfile output."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

DEFAULT_PPN = 9


@dataclass(frozen=True)
class DomainLayout:
    """A grid of processes grouped into rectangular super-domains."""

    nside0_proc: int
    nside1_proc: int
    nside0_sudom: int
    nside1_sudom: int
    ndom_in_sudom: int | None = None

    def __post_init__(self) -> None:
        for name in ("nside0_proc", "nside1_proc", "nside0_sudom", "nside1_sudom"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive")
        if self.ndom_in_sudom is None:
            nsudom = self.nside0_sudom * self.nside1_sudom
            object.__setattr__(self, "ndom_in_sudom", self.proc_size() // nsudom)

    @property
    def dside0(self) -> int:
        return self.nside0_proc // self.nside0_sudom

    @property
    def dside1(self) -> int:
        return self.nside1_proc // self.nside1_sudom

    def proc_size(self) -> int:
        """Number of processes in the grid."""
        return self.nside0_proc * self.nside1_proc

    def new_rank(self, proc_rank: int) -> int:
        """Rank after reordering so that each super-domain is contiguous."""
        dside0, dside1 = self.dside0, self.dside1
        py, pz = divmod(proc_rank, self.nside1_proc)
        sy = py // dside0
        sz = pz // dside1
        sudom_r = sy * self.nside1_sudom + sz
        iy = py - sy * dside0
        iz = pz - sz * dside1
        return sudom_r * dside0 * dside1 + iy * dside1 + iz

    def is_sudom(self, proc_rank: int) -> bool:
        """True when the rank heads its super-domain."""
        py, pz = divmod(proc_rank, self.nside1_proc)
        return py % self.dside0 == 0 and pz % self.dside1 == 0

    def validate(self, nside_mesh: int, proc_size: int) -> None:
        """Check that the mesh and the process count fit this layout."""
        checks = [
            (self.nside0_proc % self.nside0_sudom == 0, "nside 0"),
            (self.nside1_proc % self.nside1_sudom == 0, "nside 1"),
            (nside_mesh % self.nside0_proc == 0, "nside 0 p"),
            (nside_mesh % self.nside1_proc == 0, "nside 1 p"),
            (nside_mesh % self.nside0_sudom == 0, "nside 0 m"),
            (nside_mesh % self.nside1_sudom == 0, "nside 1 m"),
            (
                self.proc_size()
                == self.nside0_sudom * self.nside1_sudom * self.ndom_in_sudom,
                "num NDOMinSUDOM",
            ),
            (proc_size == self.proc_size(), "num proc"),
        ]
        for ok, message in checks:
            if not ok:
                raise ValueError(f"layout error: {message}")


def rankfile_lines(layout: DomainLayout, ppn: int = DEFAULT_PPN) -> Iterator[str]:
    """Yield one rankfile entry per process, placing ``ppn`` ranks per node."""
    if ppn < 1:
        raise ValueError("ppn must be positive")
    for rank in range(layout.proc_size()):
        node, slot = divmod(layout.new_rank(rank), ppn)
        yield f"rank {rank}=+n{node} slot={slot}"


def write_rankfile(layout: DomainLayout, path, ppn: int = DEFAULT_PPN) -> Path:
    """Write the rankfile for ``layout`` to ``path``."""
    path = Path(path)
    with path.open("w") as handle:
        for line in rankfile_lines(layout, ppn):
            handle.write(line + "\n")
    return path


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate an MPI rankfile.")
    parser.add_argument("--nside0-proc", type=int, default=1)
    parser.add_argument("--nside1-proc", type=int, default=1)
    parser.add_argument("--nside0-sudom", type=int, default=1)
    parser.add_argument("--nside1-sudom", type=int, default=1)
    parser.add_argument("--ndom-in-sudom", type=int, default=None)
    parser.add_argument("--ppn", type=int, default=DEFAULT_PPN)
    parser.add_argument("--output", default="./rankfile")
    args = parser.parse_args(argv)

    layout = DomainLayout(
        args.nside0_proc,
        args.nside1_proc,
        args.nside0_sudom,
        args.nside1_sudom,
        args.ndom_in_sudom,
    )
    print(
        f" {layout.ndom_in_sudom} {layout.nside0_sudom} {layout.nside1_sudom} "
        f"{layout.nside0_proc} {layout.nside1_proc}"
    )
    print(f" PROC_SIZE = {layout.proc_size()} generating rankfile...")
    write_rankfile(layout, args.output, args.ppn)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())