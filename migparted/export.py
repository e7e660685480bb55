"""Merging and rendering of exported MIG configurations."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any, TextIO

import yaml

from migparted.spec import ALL_DEVICES, MigConfigSpec, Spec

JSON_FORMAT = "json"
YAML_FORMAT = "yaml"
DEFAULT_CONFIG_LABEL = "current"
OUTPUT_FORMATS = (JSON_FORMAT, YAML_FORMAT)


def _same_mig_devices(a: Mapping[str, int] | None, b: Mapping[str, int] | None) -> bool:
    return dict(a or {}) == dict(b or {})


def _merge_sorted(*groups: Iterable[Any]) -> list[Any]:
    return sorted({item for group in groups for item in (group or ())})


def merge_mig_config_specs(specs: Iterable[MigConfigSpec]) -> list[MigConfigSpec]:
    """Merge per-device specs into a compact, display-friendly form.

    Every input spec is expected to carry a single device index in
    ``devices`` and a single model name in ``device_filter``, both as lists.
    Specs with the same MIG mode and devices are folded together; device
    filters collapse to a string or disappear, and device lists covering
    every device of their filters become ``"all"``.
    """
    specs = list(specs)

    merged: list[MigConfigSpec] = []
    for spec in specs:
        for index, existing in enumerate(merged):
            if spec.mig_enabled != existing.mig_enabled:
                continue
            if not _same_mig_devices(spec.mig_devices, existing.mig_devices):
                continue
            merged[index] = replace(
                existing,
                devices=_merge_sorted(existing.devices, spec.devices),
                device_filter=_merge_sorted(existing.device_filter, spec.device_filter),
            )
            break
        else:
            merged.append(
                replace(spec, devices=list(spec.devices), device_filter=list(spec.device_filter))
            )

    devices_by_filter: dict[str, list[int]] = {}
    for spec in specs:
        model = spec.device_filter[0]
        devices_by_filter[model] = _merge_sorted(devices_by_filter.get(model), spec.devices)

    result: list[MigConfigSpec] = []
    for spec in merged:
        filters = list(spec.device_filter)
        updated = spec
        if len(devices_by_filter) == 1:
            updated = replace(updated, device_filter=None)
        elif len(filters) == 1:
            updated = replace(updated, device_filter=filters[0])

        covered = _merge_sorted(*(devices_by_filter.get(model, []) for model in filters))
        if list(spec.devices) == covered:
            updated = replace(updated, devices=ALL_DEVICES)
        result.append(updated)

    if len(result) == 1:
        result[0] = replace(result[0], device_filter=None)

    return result


def check_output_format(output_format: str) -> None:
    """Raise ``ValueError`` unless ``output_format`` is ``json`` or ``yaml``."""
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"unrecognized 'output-format': {output_format}")


class _ExportDumper(yaml.SafeDumper):
    """YAML dumper that writes sequences inline."""


def _represent_flow_list(dumper: yaml.SafeDumper, data: list) -> yaml.Node:
    return dumper.represent_sequence("tag:yaml.org,2002:seq", data, flow_style=True)


_ExportDumper.add_representer(list, _represent_flow_list)


def _sorted_dict(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: data[key] for key in sorted(data)}


def _ordered(spec: Spec, *, empty_devices: Any) -> dict[str, Any]:
    out = spec.to_dict()
    configs = out.get("mig-configs")
    if configs:
        ordered_configs = {}
        for name in sorted(configs):
            entries = []
            for entry in configs[name]:
                devices = entry.get("mig-devices")
                entry["mig-devices"] = empty_devices if devices is None else _sorted_dict(devices)
                entries.append(entry)
            ordered_configs[name] = entries
        out["mig-configs"] = ordered_configs
    return out


def write_output(stream: TextIO, spec: Spec, output_format: str) -> None:
    """Write ``spec`` to ``stream`` as YAML or indented JSON."""
    check_output_format(output_format)
    if output_format == YAML_FORMAT:
        text = yaml.dump(
            _ordered(spec, empty_devices={}),
            Dumper=_ExportDumper,
            sort_keys=False,
            default_flow_style=False,
        )
    else:
        text = json.dumps(_ordered(spec, empty_devices=None), indent=2)
    stream.write(text)