"""Components of a TreePM cosmological N-body simulation: layout, schedules, I/O, stepping and spectra."""

__version__ = "0.1.0"

__all__ = [
    "cic",
    "devices",
    "gadget",
    "gadget_io",
    "layout",
    "params",
    "schedule",
    "snapshot",
    "spectrum",
    "step",
    "tasklog",
    "utility",
]