"""The MIG configuration file format and selection of configs from it."""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Union

import yaml

log = logging.getLogger(__name__)

VERSION = "v1"
ALL_DEVICES = "all"

_PROFILE_RE = re.compile(r"^(?:\d+c\.)?\d+g\.\d+gb(?:\+[a-z0-9]+(?:\.[a-z0-9]+)*)*$")

DeviceFilter = Union[str, list, None]
Devices = Union[str, list, None]


class SpecError(ValueError):
    """Raised when a configuration file or selection is invalid."""


def validate_mig_devices(devices: Mapping[str, int]) -> None:
    """Check that ``devices`` maps well-formed MIG profile names to counts."""
    if not isinstance(devices, Mapping):
        raise SpecError("MIG devices must be a mapping of profile names to counts")
    for profile, count in devices.items():
        if not isinstance(profile, str) or not _PROFILE_RE.match(profile):
            raise SpecError(f"invalid MIG profile format: {profile}")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise SpecError(f"invalid count for MIG profile '{profile}': {count}")


def _same_device(device_filter: str, device_id: Any) -> bool:
    return device_filter.strip().casefold() == str(device_id).strip().casefold()


@dataclass
class MigConfigSpec:
    """Desired MIG configuration for a set of GPUs."""

    devices: Devices = None
    mig_enabled: bool = False
    mig_devices: dict[str, int] | None = None
    device_filter: DeviceFilter = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MigConfigSpec:
        if not isinstance(data, Mapping):
            raise SpecError("a MIG config spec must be a mapping")
        for required in ("devices", "mig-enabled"):
            if required not in data:
                raise SpecError(f"missing required field: {required}")

        result = cls()
        for key, value in data.items():
            if key == "device-filter":
                result.device_filter = _parse_device_filter(value)
            elif key == "devices":
                result.devices = _parse_devices(value)
            elif key == "mig-enabled":
                if not isinstance(value, bool):
                    raise SpecError(f"'{key}' must be a boolean")
                result.mig_enabled = value
            elif key == "mig-devices":
                if value is None:
                    result.mig_devices = None
                    continue
                try:
                    validate_mig_devices(value)
                except SpecError as err:
                    raise SpecError(f"error validating values in '{key}' field: {err}") from err
                result.mig_devices = dict(value)
            else:
                raise SpecError(f"unexpected field: {key}")

        if result.mig_enabled and result.mig_devices is None:
            raise SpecError("missing required field 'mig-devices' when 'mig-enabled' is true")
        if not result.mig_enabled and result.mig_devices:
            raise SpecError("MIG devices included when 'mig-enabled' is false")
        return result

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.device_filter is not None:
            out["device-filter"] = (
                list(self.device_filter) if isinstance(self.device_filter, list) else self.device_filter
            )
        out["devices"] = list(self.devices) if isinstance(self.devices, list) else self.devices
        out["mig-enabled"] = self.mig_enabled
        out["mig-devices"] = None if self.mig_devices is None else dict(self.mig_devices)
        return out

    def _filters(self) -> list[str]:
        if isinstance(self.device_filter, str):
            return [self.device_filter] if self.device_filter else []
        if isinstance(self.device_filter, list):
            return list(self.device_filter)
        return []

    def matches_device_filter(self, device_id: Any) -> bool:
        """True if no filter is set or one of the filters names ``device_id``."""
        filters = self._filters()
        if not filters:
            return True
        return any(_same_device(f, device_id) for f in filters)

    def matches_all_devices(self) -> bool:
        return self.devices == ALL_DEVICES

    def matches_devices(self, index: int) -> bool:
        if isinstance(self.devices, list) and index in self.devices:
            return True
        return self.matches_all_devices()


def _parse_device_filter(value: Any) -> DeviceFilter:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise SpecError("'device-filter' must be a string or a list of strings")


def _parse_devices(value: Any) -> Devices:
    if isinstance(value, str):
        if value != ALL_DEVICES:
            raise SpecError(f"invalid string input for 'devices': {value}")
        return value
    if isinstance(value, list) and all(isinstance(v, int) and not isinstance(v, bool) for v in value):
        return list(value)
    raise SpecError("'devices' must be 'all' or a list of integers")


@dataclass
class Spec:
    """A versioned set of named MIG configurations."""

    version: str = VERSION
    mig_configs: dict[str, list[MigConfigSpec]] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Spec:
        if not isinstance(data, Mapping):
            raise SpecError("a spec must be a mapping")
        if "version" not in data and len(data) > 0:
            raise SpecError("unable to parse with missing 'version' field")
        version = data.get("version", "")
        if not isinstance(version, str):
            raise SpecError("'version' must be a string")
        if version != VERSION:
            raise SpecError(f"unknown version: {version}")

        result = cls(version=version)
        for key, value in data.items():
            if key == "version":
                continue
            if key != "mig-configs":
                raise SpecError(f"unexpected field: {key}")
            if not isinstance(value, Mapping) or not value:
                raise SpecError(f"at least one entry in '{key}' is required")
            configs: dict[str, list[MigConfigSpec]] = {}
            for name, entries in value.items():
                if not isinstance(entries, list) or not entries:
                    raise SpecError(f"at least one entry in '{name}' is required")
                configs[str(name)] = [MigConfigSpec.from_dict(entry) for entry in entries]
            result.mig_configs = configs
        return result

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"version": self.version}
        if self.mig_configs:
            out["mig-configs"] = {
                name: [spec.to_dict() for spec in specs] for name, specs in self.mig_configs.items()
            }
        return out


def _load_yaml(text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise SpecError(str(err)) from err


def load_spec(text: str) -> Spec:
    """Parse a YAML or JSON document into a ``Spec``; empty input yields an empty one."""
    data = _load_yaml(text)
    if data is None:
        return Spec(version="")
    return Spec.from_dict(data)


def load_mig_config_spec(text: str) -> MigConfigSpec:
    """Parse a YAML or JSON document into a single ``MigConfigSpec``."""
    data = _load_yaml(text)
    if data is None:
        return MigConfigSpec()
    return MigConfigSpec.from_dict(data)


def check_config_file_flag(config_file: str | None) -> None:
    """Ensure a configuration file was named."""
    if not config_file:
        raise SpecError("missing required flags 'config-file'")


def parse_config_file(config_file: str | Path) -> Spec:
    """Read a configuration file, or standard input when given ``-``."""
    if str(config_file) == "-":
        text = sys.stdin.read()
    else:
        try:
            text = Path(config_file).read_text()
        except OSError as err:
            raise SpecError(f"read error: {err}") from err
    try:
        return load_spec(text)
    except SpecError as err:
        raise SpecError(f"unmarshal error: {err}") from err


def get_selected_mig_config(spec: Spec, selected_config: str | None) -> list[MigConfigSpec]:
    """Pick the named config; with a single config, the name may be omitted."""
    configs = spec.mig_configs or {}
    if len(configs) > 1 and not selected_config:
        raise SpecError("missing required flag 'selected-config' when more than one config available")
    if len(configs) == 1 and not selected_config:
        selected_config = next(iter(configs))
    if selected_config not in configs:
        raise SpecError(f"selected mig-config not present: {selected_config or ''}")
    return configs[selected_config]


def walk_selected_mig_config(
    mig_config: Sequence[MigConfigSpec],
    device_ids: Sequence[Any],
    visit: Callable[[MigConfigSpec, int, Any], None],
) -> None:
    """Call ``visit(spec, index, device_id)`` for every GPU each spec applies to."""
    for mc in mig_config:
        if mc.device_filter is None:
            log.debug("Walking MigConfig for (devices=%s)", mc.devices)
        else:
            log.debug("Walking MigConfig for (device-filter=%s, devices=%s)", mc.device_filter, mc.devices)
        for index, device_id in enumerate(device_ids):
            if not mc.matches_device_filter(device_id) or not mc.matches_devices(index):
                continue
            log.debug("  GPU %d: %s", index, device_id)
            visit(replace(mc), index, device_id)