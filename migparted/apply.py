"""Orchestration of MIG mode and device changes between user hooks."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping

from migparted.hooks import HooksMap

APPLY_START_HOOK = "apply-start"
PRE_APPLY_MODE_HOOK = "pre-apply-mode"
PRE_APPLY_CONFIG_HOOK = "pre-apply-config"
APPLY_EXIT_HOOK = "apply-exit"


class ApplyError(RuntimeError):
    """Raised when a hook around a MIG change fails."""


class MigConfigApplier(ABC):
    """Checks and applies a MIG configuration on a node.

    The ``assert_*`` methods raise when the node does not yet match the
    desired state; the ``apply_*`` methods raise when a change fails.
    """

    @abstractmethod
    def assert_mig_mode(self) -> None:
        """Raise unless the desired MIG mode is already in effect."""

    @abstractmethod
    def apply_mig_mode(self) -> None:
        """Apply the desired MIG mode."""

    @abstractmethod
    def assert_mig_config(self) -> None:
        """Raise unless the desired MIG devices are already in effect."""

    @abstractmethod
    def apply_mig_config(self) -> None:
        """Apply the desired MIG devices."""


class ApplyHooks:
    """Runs the named hooks of a ``HooksMap`` at each stage of an apply."""

    def __init__(self, hooks_map: Mapping | None = None) -> None:
        self.hooks = hooks_map if isinstance(hooks_map, HooksMap) else HooksMap(hooks_map or {})

    def apply_start(self, envs: Mapping[str, str] | None, output: bool) -> None:
        self.hooks.run(APPLY_START_HOOK, envs, output)

    def pre_apply_mode(self, envs: Mapping[str, str] | None, output: bool) -> None:
        self.hooks.run(PRE_APPLY_MODE_HOOK, envs, output)

    def pre_apply_config(self, envs: Mapping[str, str] | None, output: bool) -> None:
        self.hooks.run(PRE_APPLY_CONFIG_HOOK, envs, output)

    def apply_exit(self, envs: Mapping[str, str] | None, output: bool) -> None:
        self.hooks.run(APPLY_EXIT_HOOK, envs, output)


def _apply_steps(
    logger: logging.Logger,
    envs: Mapping[str, str] | None,
    debug: bool,
    mode_only: bool,
    hooks: ApplyHooks,
    applier: MigConfigApplier,
) -> None:
    logger.debug("Checking current MIG mode...")
    try:
        applier.assert_mig_mode()
    except Exception:
        logger.debug("Running pre-apply-mode hook")
        try:
            hooks.pre_apply_mode(envs, debug)
        except Exception as err:
            raise ApplyError(f"error running pre-apply-mode hook: {err}") from err
        logger.debug("Applying MIG mode change...")
        applier.apply_mig_mode()

    if mode_only:
        return

    logger.debug("Checking current MIG device configuration...")
    try:
        applier.assert_mig_config()
    except Exception:
        logger.debug("Running pre-apply-config hook")
        try:
            hooks.pre_apply_config(envs, debug)
        except Exception as err:
            raise ApplyError(f"error running pre-apply-config hook: {err}") from err
        logger.debug("Applying MIG device configuration...")
        applier.apply_mig_config()


def apply_mig_config_with_hooks(
    logger: logging.Logger,
    envs: Mapping[str, str] | None,
    debug: bool,
    mode_only: bool,
    hooks: ApplyHooks,
    applier: MigConfigApplier,
) -> None:
    """Apply a MIG configuration, running the hooks around each change.

    Only the mode is handled when ``mode_only`` is set. The apply-exit hook
    runs whenever apply-start succeeded; its failure is raised only if
    nothing else failed first, and logged otherwise.
    """
    logger.debug("Running apply-start hook")
    try:
        hooks.apply_start(envs, debug)
    except Exception as err:
        raise ApplyError(f"error running apply-start hook: {err}") from err

    try:
        _apply_steps(logger, envs, debug, mode_only, hooks, applier)
    except BaseException:
        logger.debug("Running apply-exit hook")
        try:
            hooks.apply_exit(envs, debug)
        except Exception as err:
            logger.error("Error running apply-exit hook: %s", err)
        raise

    logger.debug("Running apply-exit hook")
    try:
        hooks.apply_exit(envs, debug)
    except Exception as err:
        raise ApplyError(f"error running apply-exit hook: {err}") from err