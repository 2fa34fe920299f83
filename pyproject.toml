[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "treepm"
version = "0.1.0"
description = "Support routines for a TreePM cosmological N-body code: domain layout, output schedules, snapshots, time stepping, mass assignment and power spectra"
requires-python = ">=3.10"
keywords = ["cosmology", "n-body", "treepm", "gadget", "power-spectrum", "simulation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Astronomy",
    "Topic :: Scientific/Engineering :: Physics",
]
dependencies = [
    "numpy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
treepm-rankmap = "treepm.layout:main"

[tool.hatch.build.targets.wheel]
packages = ["treepm"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
