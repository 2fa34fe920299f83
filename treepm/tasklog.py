"""Per-process log of the number of particle-particle tasks per step level."""

from __future__ import annotations

from pathlib import Path
from typing import TextIO

from treepm.utility import make_dir

_HEADER = (
    "\nloopid sudom ntasks timetasks ntasks_adptv timetasks_adptv "
    "level0 level1 level2 level3 level4 level5 ...\n"
)


class TaskLog:
    """Appends one line of task counts per loop to a per-rank log file."""

    def __init__(self, handle: TextIO, proc_rank_sudom: int, max_level: int):
        self._handle = handle
        self.proc_rank_sudom = proc_rank_sudom
        self.counts = [0] * (max_level + 1)

    @classmethod
    def open(cls, path_snapshot, proc_rank_sudom: int, proc_rank: int, max_level: int):
        """Open ``<path>/tasklog_0/<sudom>_<rank>`` for appending."""
        if max_level < 0:
            raise ValueError("max_level must not be negative")
        directory = make_dir(path_snapshot, "tasklog", 0)
        path = Path(directory) / f"{proc_rank_sudom}_{proc_rank}"
        handle = path.open("a")
        handle.write(_HEADER)
        return cls(handle, proc_rank_sudom, max_level)

    @property
    def path(self) -> Path:
        return Path(self._handle.name)

    def reset(self) -> None:
        self.counts = [0] * len(self.counts)

    def record(self, active_level: int, ntasks: int) -> None:
        """Add ``ntasks`` tasks done on ``active_level``."""
        self.counts[active_level] += ntasks

    def update(self, loop: int, dtime_task: float, dtime_adptv_task: float) -> None:
        """Write the counts gathered since the last update and start again."""
        ntasks = self.counts[0]
        ntasks_adptv = sum(self.counts[1:])
        fields = [
            f"{loop} {self.proc_rank_sudom}",
            f"{ntasks} {dtime_task:f}",
            f"{ntasks_adptv} {dtime_adptv_task:f}",
            *(str(c) for c in self.counts),
        ]
        self._handle.write(" ".join(fields) + "\n")
        self.reset()

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()

    def __enter__(self) -> "TaskLog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()