# treepm

Building blocks for a distributed TreePM cosmological N-body simulation,
written in Python on top of NumPy. Each piece works on plain arrays and
files, so it can be used and tested on a single machine.

## What is inside

- `treepm.layout` – `DomainLayout`, the two-level process grid: the
  reordered rank of a process (`new_rank`), whether it heads its
  super-domain (`is_sudom`), consistency checks against a mesh size and
  process count (`validate`), and MPI rank file lines (`rankfile_lines`,
  `write_rankfile`).
- `treepm.schedule` – `OutputSchedule`, the steps at which analysis output
  is due (`create`, or the built-in list from `fixed`), lookups
  (`analysis_required`, `meshout_required`, `snapshot_required`,
  `analysis_output_index`) and `write`, which writes the schedule table with
  redshift, scale factor and an age supplied by a callable.
- `treepm.params` – `SolverParams` from `setup_param` (softening, split and
  cut-off radii, integer position scaling, task and buffer sizes) and
  `Cosmology` presets: `cosmology_from_omegas`, `planck_cosmology`,
  `cosmology`.
- `treepm.step` – adaptive step levels (`active_levels`, `level_histogram`)
  and the kick and drift operators (`kick_half_step`, `kick_half_active`,
  `kick_half_act`, `drift_step`, and `drift_step_int` for integer
  positions, which also returns a histogram of move sizes).
- `treepm.gadget` – reading Gadget-2 files: `GadgetHeader` (256-byte header
  to and from bytes), `read_header`, `npart_in_file`, `read_particles`,
  `read_particles_in_domain`, `read_particles_shifted`, all returning
  `GadgetParticles`.
- `treepm.gadget_io` – `write_particles` writes a Gadget-2 file;
  `load_gadget_ics` gathers the particles of a domain from `<base>.0` …
  `<base>.<n-1>`.
- `treepm.snapshot` – the per-rank restart format of a text `cfg_*` file and
  a binary `dat_*` file: `SnapshotConfig`, `SnapshotData`, `read_config`,
  `write_config`, `read_snapshot`, `write_snapshot`.
- `treepm.tasklog` – `TaskLog`, per-level particle-particle task counts
  appended to `<path>/tasklog_0/<sudom>_<rank>`; usable as a context manager.
- `treepm.cic` – `LocalMesh`, `local_mesh_bounds`, cloud-in-cell deposit
  (`cic_deposit`), `normalize_mass`, and `redistribute_sudomain_mesh`, which
  cuts a super-domain mesh into the pencils of its member processes.
- `treepm.spectrum` – the tabulated Daubechies-12 scaling function
  (`Daub12Table`), its 6×6×6 deposit (`daub_deposit`), `density_contrast`,
  `bin_average`, `power_spectrum_rows` (a `PowerSpectrum`),
  `write_power_spectrum` and `spectrum_filename`.
- `treepm.devices` – bookkeeping for spreading particle-particle work packs
  over several accelerators: `P2PPack`, `assign_device_ids`,
  `schedule_on_devices` (greedy balance and merging of overlapping packs),
  `pack_offsets`, `DeviceBuffers.reserve` and `update_acc_from_buffer`.
- `treepm.utility` – `dtime` and `make_dir`.

## Installation

```
pip install .
```

Run the tests with:

```
pip install ".[test]"
pytest
```

## Generating a rank file

The `treepm-rankmap` command writes a rank file that places each process
rank on a node slot so that the members of one super-domain sit together:

```
treepm-rankmap --nside0-proc 4 --nside1-proc 4 --nside0-sudom 2 --nside1-sudom 2 --ppn 9 --output ./rankfile
```

Every option has a default (a 1×1 grid, 9 ranks per node, `./rankfile`).

## Example

```python
from treepm.params import setup_param, planck_cosmology
from treepm.schedule import OutputSchedule

cosmo = planck_cosmology(0.0224, 0.12, 0.0006, 0.0, 67.7, 0.81, 0.967, 1.0e6)
params = setup_param(cosmo.boxsize, 512, 16, 2, 2, 1, 4, 4, 2**30)
print(params.soften_length, params.split_radius)

schedule = OutputSchedule.create(1000, 0.01, 1.0, 0.2, 1.0, 8)
print([step for step in range(1001) if schedule.analysis_required(step)])
```

## What this package does not do

It is a set of components, not a running simulation. It has no gravity
solver (no tree walk, no particle-mesh force), no MPI communication between
ranks, and no accelerator kernels; `treepm.devices` only plans where work
goes. It does not Fourier transform the density mesh: `power_spectrum_rows`
takes power sums and mode counts per bin that were computed elsewhere. It
writes no halo catalogues.