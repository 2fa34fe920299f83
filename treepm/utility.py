"""Small helpers: wall-clock timestamps and output directories."""

from __future__ import annotations

import os
import time
from pathlib import Path


def dtime() -> float:
    """Current wall-clock time in seconds as a float."""
    return time.time()


def make_dir(path, name: str, r_snap: int) -> Path:
    """Create ``<path>/<name>_<r_snap>`` if it does not exist yet and return it."""
    directory = Path(path) / f"{name}_{r_snap}"
    if not directory.exists():
        os.mkdir(directory, 0o700)
    return directory