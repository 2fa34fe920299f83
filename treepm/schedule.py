"""Steps at which analysis output is produced."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

_SLOPE = 3.5
_FIXED_INDICES = (190, 429, 773, 811, 857, 916, 1000)


@dataclass(frozen=True)
class OutputSchedule:
    """Ordered list of step numbers at which analysis output is due."""

    indices: tuple[int, ...] = ()

    @classmethod
    def create(cls, step_number, ai, af, aa_i, aa_f, analysis_number):
        """Spread ``analysis_number`` outputs over the analysis interval."""
        if abs(ai - af) < 1.0e-15:
            return cls()
        if analysis_number < 1:
            raise ValueError("analysis_number must be positive")
        lna_tot = math.log(af) - math.log(ai)
        lnaa = math.log(aa_f) - math.log(aa_i)
        lnaaf = math.log(af) - math.log(aa_f)
        num_step_aa = int(lnaa * step_number / lna_tot)
        num_base = int(num_step_aa / (_SLOPE - 1.0) / float(analysis_number))
        num_base = max(num_base, 1)

        gaps = [0] * analysis_number
        for i in range(1, analysis_number):
            r = analysis_number - i - 1
            gaps[r] = max(int(num_base * (_SLOPE * i / analysis_number + 1.0)), 1)

        offsets = [0] * analysis_number
        running = 0
        for r in reversed(range(analysis_number)):
            running += gaps[r]
            offsets[r] = running

        if offsets[0] > step_number:
            raise ValueError("ERROR in schedule")

        idx_aa_f = int(lnaaf)
        return cls(tuple(step_number - idx_aa_f - off for off in offsets))

    @classmethod
    def fixed(cls):
        """The built-in list of output steps."""
        return cls(_FIXED_INDICES)

    def analysis_output_index(self, step: int) -> int:
        """One-based number of the output at ``step``, or 0 if none."""
        idx = 0
        for i, value in enumerate(self.indices):
            if value == step:
                idx = i + 1
        return idx

    def analysis_required(self, step: int) -> bool:
        return step in self.indices

    def meshout_required(self, step: int) -> bool:
        return step in self.indices

    def snapshot_required(self, step: int) -> bool:
        """Full snapshots are never scheduled."""
        return False

    def write(
        self,
        path,
        step_number: int,
        ai: float,
        af: float,
        age_of: Callable[[float], float],
    ) -> Path:
        """Write the schedule table with redshift, scale factor and age."""
        path = Path(path)
        dloga = (math.log(af) - math.log(ai)) / step_number
        with path.open("w") as handle:
            handle.write("#idx #loop   red-shift scale-factor    time(Gyr)\n")
            handle.write(
                "   0     0  %10f %12f   %10f\n" % (1.0 / ai - 1.0, ai, age_of(ai))
            )
            for loop in range(step_number + 1):
                if not self.analysis_required(loop):
                    continue
                a = math.exp(loop * dloga + math.log(ai))
                handle.write(
                    " %3d %5d  %10f %12f   %10f\n"
                    % (self.analysis_output_index(loop), loop, 1.0 / a - 1.0, a, age_of(a))
                )
        return path