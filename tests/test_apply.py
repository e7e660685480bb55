import logging

import pytest

from migparted.apply import (
    APPLY_EXIT_HOOK,
    APPLY_START_HOOK,
    PRE_APPLY_CONFIG_HOOK,
    PRE_APPLY_MODE_HOOK,
    ApplyError,
    ApplyHooks,
    MigConfigApplier,
    apply_mig_config_with_hooks,
)
from migparted.hooks import HookSpec, HooksMap

LOGGER = logging.getLogger("test-apply")


class RecordingHooks:
    def __init__(self, failing=()):
        self.calls = []
        self.failing = set(failing)

    def _run(self, name, envs, output):
        self.calls.append((name, dict(envs or {}), output))
        if name in self.failing:
            raise RuntimeError(f"{name} failed")

    def apply_start(self, envs, output):
        self._run(APPLY_START_HOOK, envs, output)

    def pre_apply_mode(self, envs, output):
        self._run(PRE_APPLY_MODE_HOOK, envs, output)

    def pre_apply_config(self, envs, output):
        self._run(PRE_APPLY_CONFIG_HOOK, envs, output)

    def apply_exit(self, envs, output):
        self._run(APPLY_EXIT_HOOK, envs, output)

    @property
    def names(self):
        return [name for name, _, _ in self.calls]


class FakeApplier(MigConfigApplier):
    def __init__(self, mode_ok=True, config_ok=True, fail_apply_mode=False):
        self.mode_ok = mode_ok
        self.config_ok = config_ok
        self.fail_apply_mode = fail_apply_mode
        self.calls = []

    def assert_mig_mode(self):
        self.calls.append("assert_mig_mode")
        if not self.mode_ok:
            raise RuntimeError("mode differs")

    def apply_mig_mode(self):
        self.calls.append("apply_mig_mode")
        if self.fail_apply_mode:
            raise OSError("cannot set mode")
        self.mode_ok = True

    def assert_mig_config(self):
        self.calls.append("assert_mig_config")
        if not self.config_ok:
            raise RuntimeError("config differs")

    def apply_mig_config(self):
        self.calls.append("apply_mig_config")
        self.config_ok = True


def test_nothing_to_change_runs_only_start_and_exit():
    hooks = RecordingHooks()
    applier = FakeApplier()
    apply_mig_config_with_hooks(LOGGER, {"A": "1"}, False, False, hooks, applier)
    assert hooks.names == [APPLY_START_HOOK, APPLY_EXIT_HOOK]
    assert applier.calls == ["assert_mig_mode", "assert_mig_config"]


def test_full_apply_runs_hooks_in_order():
    hooks = RecordingHooks()
    applier = FakeApplier(mode_ok=False, config_ok=False)
    apply_mig_config_with_hooks(LOGGER, {"A": "1"}, True, False, hooks, applier)
    assert hooks.names == [
        APPLY_START_HOOK,
        PRE_APPLY_MODE_HOOK,
        PRE_APPLY_CONFIG_HOOK,
        APPLY_EXIT_HOOK,
    ]
    assert applier.calls == [
        "assert_mig_mode",
        "apply_mig_mode",
        "assert_mig_config",
        "apply_mig_config",
    ]
    assert all(envs == {"A": "1"} and output is True for _, envs, output in hooks.calls)


def test_mode_only_skips_config():
    hooks = RecordingHooks()
    applier = FakeApplier(mode_ok=False, config_ok=False)
    apply_mig_config_with_hooks(LOGGER, {}, False, True, hooks, applier)
    assert "assert_mig_config" not in applier.calls
    assert hooks.names == [APPLY_START_HOOK, PRE_APPLY_MODE_HOOK, APPLY_EXIT_HOOK]


def test_apply_start_failure_stops_everything():
    hooks = RecordingHooks(failing={APPLY_START_HOOK})
    applier = FakeApplier(mode_ok=False)
    with pytest.raises(ApplyError, match="error running apply-start hook"):
        apply_mig_config_with_hooks(LOGGER, {}, False, False, hooks, applier)
    assert applier.calls == []
    assert hooks.names == [APPLY_START_HOOK]


def test_apply_failure_propagates_and_exit_hook_still_runs():
    hooks = RecordingHooks()
    applier = FakeApplier(mode_ok=False, fail_apply_mode=True)
    with pytest.raises(OSError, match="cannot set mode"):
        apply_mig_config_with_hooks(LOGGER, {}, False, False, hooks, applier)
    assert hooks.names[-1] == APPLY_EXIT_HOOK
    assert "assert_mig_config" not in applier.calls


def test_exit_hook_failure_is_raised_when_nothing_else_failed():
    hooks = RecordingHooks(failing={APPLY_EXIT_HOOK})
    with pytest.raises(ApplyError, match="error running apply-exit hook"):
        apply_mig_config_with_hooks(LOGGER, {}, False, False, hooks, FakeApplier())


def test_exit_hook_failure_does_not_mask_earlier_error(caplog):
    hooks = RecordingHooks(failing={APPLY_EXIT_HOOK})
    applier = FakeApplier(mode_ok=False, fail_apply_mode=True)
    with caplog.at_level(logging.ERROR, logger="test-apply"):
        with pytest.raises(OSError, match="cannot set mode"):
            apply_mig_config_with_hooks(LOGGER, {}, False, False, hooks, applier)
    assert any("apply-exit" in record.getMessage() for record in caplog.records)


def test_pre_apply_config_failure_prevents_config_change():
    hooks = RecordingHooks(failing={PRE_APPLY_CONFIG_HOOK})
    applier = FakeApplier(config_ok=False)
    with pytest.raises(ApplyError, match="error running pre-apply-config hook"):
        apply_mig_config_with_hooks(LOGGER, {}, False, False, hooks, applier)
    assert "apply_mig_config" not in applier.calls
    assert hooks.names[-1] == APPLY_EXIT_HOOK


def test_pre_apply_mode_failure_prevents_mode_change():
    hooks = RecordingHooks(failing={PRE_APPLY_MODE_HOOK})
    applier = FakeApplier(mode_ok=False)
    with pytest.raises(ApplyError, match="error running pre-apply-mode hook"):
        apply_mig_config_with_hooks(LOGGER, {}, False, False, hooks, applier)
    assert "apply_mig_mode" not in applier.calls


def _marker_hook(name):
    return HookSpec(command="/bin/sh", args=["-c", f'echo {name}-"$STAGE_VALUE" >> "$MARKER"'])


def test_apply_hooks_run_named_entries(tmp_path):
    marker = tmp_path / "marker.txt"
    hooks_map = HooksMap({name: [_marker_hook(name)] for name in (
        APPLY_START_HOOK, PRE_APPLY_MODE_HOOK, PRE_APPLY_CONFIG_HOOK, APPLY_EXIT_HOOK)})
    hooks = ApplyHooks(hooks_map)
    envs = {"MARKER": str(marker), "STAGE_VALUE": "x"}
    applier = FakeApplier(mode_ok=False, config_ok=False)
    apply_mig_config_with_hooks(LOGGER, envs, False, False, hooks, applier)
    assert applier.calls == [
        "assert_mig_mode",
        "apply_mig_mode",
        "assert_mig_config",
        "apply_mig_config",
    ]
    assert marker.read_text().splitlines() == [
        "apply-start-x",
        "pre-apply-mode-x",
        "pre-apply-config-x",
        "apply-exit-x",
    ]


def test_apply_hooks_without_map_do_nothing():
    applier = FakeApplier(mode_ok=False, config_ok=False)
    apply_mig_config_with_hooks(LOGGER, {}, False, False, ApplyHooks(None), applier)
    assert applier.mode_ok and applier.config_ok


def test_apply_hooks_failing_command_raises_apply_error():
    hooks = ApplyHooks({APPLY_START_HOOK: [HookSpec(command="/doesnotexist")]})
    with pytest.raises(ApplyError, match="apply-start"):
        apply_mig_config_with_hooks(LOGGER, {}, False, False, hooks, FakeApplier())