"""Hook specifications: named lists of commands run around MIG changes."""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

VERSION = "v1"


def combine_envs(base: Mapping[str, str] | None, override: Mapping[str, str] | None) -> dict[str, str]:
    """Merge two environment maps; entries in ``override`` win."""
    return {**(base or {}), **(override or {})}


def format_envs(envs: Mapping[str, str]) -> list[str]:
    """Render an environment map as ``key=value`` strings."""
    return [f"{key}={value}" for key, value in envs.items()]


def _string_list(value: Any, what: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{what}' must be a list of strings")
    return list(value)


def _string_map(value: Any, what: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ValueError(f"'{what}' must be a mapping of strings to strings")
    return dict(value)


def _string(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"'{what}' must be a string")
    return value


@dataclass
class HookSpec:
    """A single runnable hook command."""

    command: str = ""
    args: list[str] = field(default_factory=list)
    envs: dict[str, str] = field(default_factory=dict)
    workdir: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HookSpec:
        if not isinstance(data, Mapping):
            raise ValueError("a hook must be a mapping")
        return cls(
            command=_string(data.get("command"), "command"),
            args=_string_list(data.get("args"), "args"),
            envs=_string_map(data.get("envs"), "envs"),
            workdir=_string(data.get("workdir"), "workdir"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "args": list(self.args),
            "envs": dict(self.envs),
            "workdir": self.workdir,
        }

    def run(self, envs: Mapping[str, str] | None = None, output: bool = False) -> None:
        """Run the hook with its own environment merged with ``envs``.

        With ``output`` the hook writes to this process's stdout and stderr,
        otherwise its output is discarded. A failing hook raises.
        """
        combined = combine_envs(self.envs, envs)
        stream = None if output else subprocess.DEVNULL
        if output:
            sys.stdout.flush()
            sys.stderr.flush()
        subprocess.run(
            [self.command, *self.args],
            env=combined or None,
            cwd=self.workdir or None,
            stdout=stream,
            stderr=stream,
            check=True,
        )


class HooksMap(dict):
    """Maps a hook name to the list of ``HookSpec`` run under that name."""

    def run(self, name: str, envs: Mapping[str, str] | None = None, output: bool = False) -> None:
        """Run every hook registered under ``name``, stopping at the first failure."""
        for hook in self.get(name, ()):
            hook.run(envs, output)


@dataclass
class HooksSpec:
    """A versioned collection of named hooks."""

    version: str = VERSION
    hooks: HooksMap = field(default_factory=HooksMap)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> HooksSpec:
        if data is None:
            return cls(version="")
        if not isinstance(data, Mapping):
            raise ValueError("a hooks spec must be a mapping")
        raw_hooks = data.get("hooks") or {}
        if not isinstance(raw_hooks, Mapping):
            raise ValueError("'hooks' must be a mapping")
        hooks = HooksMap()
        for name, entries in raw_hooks.items():
            if entries is None:
                entries = []
            if not isinstance(entries, list):
                raise ValueError(f"hook '{name}' must be a list")
            hooks[str(name)] = [HookSpec.from_dict(entry) for entry in entries]
        return cls(version=_string(data.get("version"), "version"), hooks=hooks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "hooks": {name: [hook.to_dict() for hook in hooks] for name, hooks in self.hooks.items()},
        }


def parse_hooks_file(path: str | Path) -> HooksSpec:
    """Read and parse a YAML (or JSON) hooks file."""
    try:
        text = Path(path).read_text()
    except OSError as err:
        raise OSError(f"read error: {err}") from err
    try:
        return HooksSpec.from_dict(yaml.safe_load(text))
    except (yaml.YAMLError, ValueError) as err:
        raise ValueError(f"unmarshal error: {err}") from err