"""Small helpers shared by the command-line tools."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

PROC_MODULES = "/proc/modules"
NVIDIA_MODULE = "nvidia"


def any_set(values: Iterable[bool]) -> bool:
    """Return True if any value in ``values`` is true."""
    return any(values)


def count_true(values: Iterable[bool]) -> int:
    """Return how many values in ``values`` are true."""
    return sum(1 for value in values if value)


def capitalize(s: str) -> str:
    """Upper-case the first character of ``s`` and leave the rest untouched."""
    if not s:
        raise ValueError("cannot capitalize an empty string")
    return s[0].upper() + s[1:]


def is_nvidia_module_loaded(modules_path: str | Path = PROC_MODULES) -> bool:
    """Report whether the ``nvidia`` kernel module appears in a modules listing."""
    try:
        text = Path(modules_path).read_text()
    except OSError as err:
        raise OSError(f"unable to read {modules_path}: {err}") from err
    for line in text.strip().splitlines():
        fields = line.split()
        if fields and fields[0] == NVIDIA_MODULE:
            return True
    return False