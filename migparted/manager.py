"""Support for the node agent that reconfigures MIG when a node label changes."""

from __future__ import annotations

import subprocess
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

RESOURCE_NODES = "nodes"
MIG_CONFIG_LABEL = "nvidia.com/mig.config"

DEFAULT_RECONFIGURE_SCRIPT = "/usr/bin/reconfigure-mig.sh"
DEFAULT_HOST_ROOT_MOUNT = "/host"
DEFAULT_HOST_NVIDIA_DIR = "/usr/local/nvidia"
DEFAULT_HOST_MIG_MANAGER_STATE_FILE = "/etc/systemd/system/nvidia-mig-manager.service.d/override.conf"
DEFAULT_HOST_KUBELET_SYSTEMD_SERVICE = "kubelet.service"
DEFAULT_GPU_CLIENTS_NAMESPACE = "default"
DEFAULT_DRIVER_ROOT = "/run/nvidia/driver"
DEFAULT_DRIVER_ROOT_CTR_PATH = "/run/nvidia/driver"


class SyncableMigConfig:
    """Hands the latest MIG config label value from a watcher to a worker.

    ``get`` blocks while the current value is the one last read and wakes
    when ``set`` stores a non-empty value.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._current = ""
        self._last_read = ""

    def set(self, value: str) -> None:
        with self._cond:
            self._current = value
            if self._current:
                self._cond.notify_all()

    def get(self) -> str:
        with self._cond:
            if self._last_read == self._current:
                self._cond.wait()
            self._last_read = self._current
            return self._last_read


@dataclass
class GPUClients:
    """Host systemd services that use the GPUs and must stop across a change."""

    version: str = ""
    systemd_services: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> GPUClients:
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("a GPU clients file must be a mapping")
        version = data.get("version") or ""
        if not isinstance(version, str):
            raise ValueError("'version' must be a string")
        services = data.get("systemd-services") or []
        if not isinstance(services, list) or not all(isinstance(s, str) for s in services):
            raise ValueError("'systemd-services' must be a list of strings")
        return cls(version=version, systemd_services=list(services))


@dataclass
class ManagerOptions:
    """Settings of the MIG manager agent."""

    node_name: str = ""
    config_file: str = ""
    kubeconfig: str = ""
    reconfigure_script: str = DEFAULT_RECONFIGURE_SCRIPT
    host_root_mount: str = DEFAULT_HOST_ROOT_MOUNT
    host_nvidia_dir: str = DEFAULT_HOST_NVIDIA_DIR
    host_mig_manager_state_file: str = DEFAULT_HOST_MIG_MANAGER_STATE_FILE
    host_kubelet_systemd_service: str = DEFAULT_HOST_KUBELET_SYSTEMD_SERVICE
    gpu_clients_file: str = ""
    with_reboot: bool = False
    with_shutdown_host_gpu_clients: bool = False
    default_gpu_clients_namespace: str = DEFAULT_GPU_CLIENTS_NAMESPACE
    cdi_enabled: bool = False
    driver_root: str = DEFAULT_DRIVER_ROOT
    driver_root_ctr_path: str = DEFAULT_DRIVER_ROOT_CTR_PATH

    def validate(self) -> None:
        """Raise ``ValueError`` if a required setting is empty."""
        if not self.node_name:
            raise ValueError("invalid -n <node-name> flag: must not be empty string")
        if not self.config_file:
            raise ValueError("invalid -f <config-file> flag: must not be empty string")


def parse_gpu_clients_file(path: str | Path | None) -> GPUClients:
    """Read the GPU clients file; no path yields an empty client list."""
    if not path:
        return GPUClients()
    try:
        text = Path(path).read_text()
    except OSError as err:
        raise OSError(f"read error: {err}") from err
    try:
        return GPUClients.from_dict(yaml.safe_load(text))
    except (yaml.YAMLError, ValueError) as err:
        raise ValueError(f"unmarshal error: {err}") from err


def build_script_args(
    options: ManagerOptions, mig_config_value: str, gpu_clients: GPUClients
) -> list[str]:
    """Build the argument list passed to the reconfigure script."""
    args = [
        "-n", options.node_name,
        "-f", options.config_file,
        "-c", mig_config_value,
        "-m", options.host_root_mount,
        "-i", options.host_nvidia_dir,
        "-o", options.host_mig_manager_state_file,
        "-g", ",".join(gpu_clients.systemd_services),
        "-k", options.host_kubelet_systemd_service,
        "-p", options.default_gpu_clients_namespace,
    ]
    if options.cdi_enabled:
        args += ["-e", "-t", options.driver_root, "-a", options.driver_root_ctr_path]
    if options.with_reboot:
        args.append("-r")
    if options.with_shutdown_host_gpu_clients:
        args.append("-d")
    return args


def run_script(options: ManagerOptions, mig_config_value: str) -> None:
    """Run the reconfigure script for ``mig_config_value``; a failure raises."""
    try:
        gpu_clients = parse_gpu_clients_file(options.gpu_clients_file)
    except (OSError, ValueError) as err:
        raise ValueError(f"error parsing host's GPU clients file: {err}") from err
    args = build_script_args(options, mig_config_value, gpu_clients)
    sys.stdout.flush()
    sys.stderr.flush()
    subprocess.run([options.reconfigure_script, *args], check=True)