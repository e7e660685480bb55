# migparted

`migparted` is a library for describing the MIG (Multi-Instance GPU) layout
of every GPU on a node in one declarative YAML or JSON file. It parses and
validates such files, selects a named configuration, works out which GPUs a
configuration applies to, compacts a per-GPU layout into a short exportable
form, runs user hooks around an apply operation, and builds and runs the
call to an external reconfiguration script for a node agent.

## Configuration files

A configuration file has a `version` (currently `v1`) and a map of named
`mig-configs`. Each named configuration is a list of entries, and each entry
says which GPUs it covers and what they should look like:

```yaml
version: v1
mig-configs:
  all-disabled:
    - devices: all
      mig-enabled: false

  all-1g.5gb:
    - device-filter: ["MODEL-A", "MODEL-B"]
      devices: all
      mig-enabled: true
      mig-devices:
        "1g.5gb": 7

  half-balanced:
    - devices: [0, 1, 2, 3]
      mig-enabled: false
    - devices: [4, 5, 6, 7]
      mig-enabled: true
      mig-devices:
        "1g.5gb": 2
        "2g.10gb": 1
        "3g.20gb": 1
```

Rules enforced while loading:

- `version` is required as soon as any other field is present, and must be
  `v1`. An empty document loads as an empty `Spec`.
- `mig-configs`, when present, needs at least one entry, and every named
  configuration needs at least one item.
- Each item needs `devices` (the string `all` or a list of GPU indices) and
  `mig-enabled` (a boolean).
- `device-filter` is optional: one device ID or a list of them.
- `mig-devices` is required when `mig-enabled` is true and must be empty or
  absent when it is false; its keys must be well-formed MIG profile names
  (such as `1g.5gb`) and its values non-negative integers.
- Unknown fields are rejected.

Any violation raises `migparted.spec.SpecError` (a `ValueError`).

```python
from migparted.spec import parse_config_file, get_selected_mig_config

spec = parse_config_file("config.yaml")      # "-" reads from standard input
selected = get_selected_mig_config(spec, "half-balanced")
for entry in selected:
    print(entry.devices, entry.mig_enabled, entry.mig_devices)
```

`load_spec(text)` and `load_mig_config_spec(text)` parse a document held in a
string; `Spec.from_dict` / `MigConfigSpec.from_dict` and their `to_dict`
methods convert to and from plain data. `check_config_file_flag` raises when
no configuration file name was given.

If the file holds exactly one configuration, the selected name may be left
empty and that configuration is chosen; with several configurations a name
is required, and a name that is not present raises `SpecError`.

A `MigConfigSpec` answers `matches_device_filter(device_id)` (true when no
filter is set, or when a filter equals the device ID's string form, ignoring
case), `matches_all_devices()` and `matches_devices(index)`.
`walk_selected_mig_config(mig_config, device_ids, visit)` calls
`visit(spec, index, device_id)` with a copy of each entry for every GPU it
matches, in the order of the entries and then of the GPUs.

## Exporting

`migparted.export.merge_mig_config_specs` takes one entry per GPU, each with
a one-element `devices` list and a one-element `device_filter` list, and folds
entries with the same MIG mode and the same MIG devices together. Device
lists that cover every GPU of their filters become `all`, single filters
become a plain string, and filters are dropped when there is only one model
or only one merged entry.

`write_output(stream, spec, output_format)` writes a spec as `yaml` (lists
inline) or as `json` indented by two spaces; `check_output_format` raises
`ValueError` for any other format.

## Hooks

A hooks file names lists of commands to run at fixed points of an apply:

```yaml
version: v1
hooks:
  apply-start:
    - workdir: /tmp
      command: /bin/sh
      args: ["-c", "echo starting"]
      envs:
        STAGE: start
  pre-apply-mode: []
  pre-apply-config: []
  apply-exit: []
```

```python
from migparted.hooks import parse_hooks_file

hooks_spec = parse_hooks_file("hooks.yaml")
hooks_spec.hooks.run("apply-start", {"NODE": "worker-1"}, True)
```

`HookSpec.run(envs, output)` runs one command in its `workdir` with its own
`envs` merged with the ones passed in (the ones passed in win, see
`combine_envs`; `format_envs` renders a map as `key=value` strings). When the
merged map is empty the command inherits this process's environment. With
`output` true the command writes to this process's stdout and stderr,
otherwise its output is discarded. A command that fails or cannot be started
raises (`subprocess.CalledProcessError` or `OSError`). `HooksMap.run` runs
the hooks of one name in order and stops at the first failure; unknown names
do nothing. `parse_hooks_file` raises `OSError` when the file cannot be read
and `ValueError` when it cannot be parsed.

## Applying with hooks

`migparted.apply.apply_mig_config_with_hooks(logger, envs, debug, mode_only,
hooks, applier)` orchestrates an apply. `hooks` is an `ApplyHooks` built from
a hooks map; `applier` is your subclass of `MigConfigApplier`, whose
`assert_mig_mode` / `assert_mig_config` raise when the node does not match
and whose `apply_mig_mode` / `apply_mig_config` perform the change.

The function runs `apply-start`, asserts the MIG mode and only when that
assertion raises runs `pre-apply-mode` and applies the mode, then (unless
`mode_only` is set) does the same for the MIG device layout with
`pre-apply-config`. `apply-exit` runs whenever `apply-start` succeeded; its
failure is raised only when nothing failed before it, and logged otherwise.
Hook failures raise `ApplyError`; errors from the applier propagate
unchanged. `debug` decides whether hook output is shown.

## Node agent helpers

`migparted.manager` holds the pieces of an agent that reconfigures MIG when
a node's `nvidia.com/mig.config` label changes:

- `SyncableMigConfig` passes label values from a watcher thread to a worker:
  `get()` blocks until a non-empty value is `set()` that the worker has not
  read yet.
- `ManagerOptions` collects the agent's settings with their defaults;
  `validate()` raises `ValueError` unless a node name and a configuration
  file are set.
- `parse_gpu_clients_file` reads the YAML list of host systemd services
  (`systemd-services`) that use the GPUs; no path gives an empty list.
- `build_script_args` builds the reconfiguration script's arguments and
  `run_script` runs the script, raising `ValueError` if the clients file is
  bad and `subprocess.CalledProcessError` if the script fails.

## Utilities

`migparted.util` has small helpers: `any_set`, `count_true`, `capitalize`
(which raises `ValueError` on an empty string) and `is_nvidia_module_loaded`,
which checks a modules listing such as `/proc/modules` for the `nvidia`
kernel module.

## What this package does not do

- It has no command-line tools; everything is used as a library.
- It does not talk to GPUs: it cannot read or change MIG mode or MIG devices,
  enumerate GPUs, or reset them. Those operations are left to your
  `MigConfigApplier` implementation.
- It has no checkpoint or restore of MIG state.
- It does not watch Kubernetes nodes; the agent helpers expect you to feed
  label values into `SyncableMigConfig` yourself.

## Requirements

Python 3.10 or later and PyYAML. The tests use pytest.