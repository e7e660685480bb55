"""MIG configuration files, export merging, apply hooks and node-agent helpers."""

__version__ = "0.5.5"