# tests/provisioner/test_main_installer.py
# -*- coding: utf-8 -*-
"""
End-to-end tests of the command-line entry point with a scripted registry.
"""

import pytest

from common.file_utils import RunLock
from common.privilege import PrivilegeSession
from common.state_store import FileStateStore
from provisioner.main_installer import main
from provisioner.step_contract import StepOutcome


@pytest.fixture
def dirs(tmp_path):
    return {
        "state": tmp_path / "state",
        "log": tmp_path / "log",
        "config": tmp_path / "config.yaml",
    }


@pytest.fixture
def argv(dirs):
    def _argv(*extra):
        return [
            "--config",
            str(dirs["config"]),
            "--state-dir",
            str(dirs["state"]),
            "--log-dir",
            str(dirs["log"]),
            "--non-interactive",
            *extra,
        ]

    return _argv


@pytest.fixture
def scripted_registry(mocker, sample_registry):
    mocker.patch("provisioner.main_installer.build_registry", return_value=sample_registry)
    return sample_registry


@pytest.fixture
def no_sudo(mocker):
    """Skip the real elevation check and sudo cache handling."""
    mocker.patch.object(PrivilegeSession, "require_elevated")
    mocker.patch.object(PrivilegeSession, "extend_credential_timeout")


@pytest.fixture(autouse=True)
def _logging(restore_root_logger):
    yield


def test_full_run_then_rerun_skips(argv, dirs, scripted_registry, no_sudo, calls):
    assert main(argv()) == 0
    assert calls == ["core_a", "core_b", "core_c", "lvm_a", "lvm_b", "tweaks_b", "tweaks_a"]
    store = FileStateStore(dirs["state"])
    assert store.completed_keys() == sorted(calls)
    assert list(dirs["log"].glob("installer-*.log"))

    calls.clear()
    assert main(argv()) == 0
    assert calls == []


def test_phase_subset(argv, dirs, scripted_registry, no_sudo, calls):
    assert main(argv("--phase", "05-tweaks")) == 0

    assert calls == ["tweaks_b", "tweaks_a"]


def test_force_reruns_selected_phase_only(argv, scripted_registry, no_sudo, calls):
    assert main(argv()) == 0
    calls.clear()

    assert main(argv("--phase", "01", "--force")) == 0

    assert calls == ["lvm_a", "lvm_b"]


@pytest.mark.parametrize("phase", ["07-missing", "", "00-core,,05-tweaks"])
def test_unknown_phase_is_config_error(argv, dirs, scripted_registry, no_sudo, calls, phase):
    assert main(argv("--phase", phase)) == 2
    assert calls == []
    assert not (dirs["state"] / "completed").exists()


def test_fatal_step_exit_code(argv, dirs, scripted_registry, no_sudo, calls):
    scripted_registry.phase("01-lvm").steps[0].outcome = StepOutcome.fatal("mount missing")

    assert main(argv()) == 1
    assert calls == ["core_a", "core_b", "core_c", "lvm_a"]
    assert not FileStateStore(dirs["state"]).has("lvm_a")


def test_dry_run_records_nothing(argv, dirs, scripted_registry, mocker, calls):
    mock_run = mocker.patch("subprocess.run")

    assert main(argv("--dry-run")) == 0

    assert calls == ["core_a", "core_b", "core_c", "lvm_a", "lvm_b", "tweaks_b", "tweaks_a"]
    assert FileStateStore(dirs["state"]).completed_keys() == []
    assert not dirs["log"].exists()
    mock_run.assert_not_called()


def test_dry_run_honours_existing_markers(argv, dirs, scripted_registry, calls):
    FileStateStore(dirs["state"]).set("core_a")

    assert main(argv("--dry-run", "--phase", "00-core")) == 0

    assert calls == ["core_b", "core_c"]


def test_concurrent_run_refused(argv, dirs, scripted_registry, no_sudo, calls):
    with RunLock(dirs["state"] / "installer.lock"):
        assert main(argv()) == 2
    assert calls == []


def test_invalid_config_file(argv, dirs, scripted_registry, calls):
    dirs["config"].write_text("sudo_timeout: never\n", encoding="utf-8")

    assert main(argv()) == 2
    assert calls == []


def test_unknown_option_is_config_error():
    assert main(["--no-such-option"]) == 2


def test_list_phases_uses_declared_registry(argv, capsys):
    assert main(argv("--list-phases")) == 0

    out = capsys.readouterr().out
    for phase_id in ("00-core", "01-lvm", "02-studio", "03-plasma", "04-apps", "05-tweaks"):
        assert phase_id in out
    assert "core-packages_system" in out


def test_view_state(argv, dirs, scripted_registry, capsys):
    FileStateStore(dirs["state"]).set("core_b")

    assert main(argv("--view-state")) == 0

    out = capsys.readouterr().out
    assert "[x] core_b" in out
    assert "[ ] core_a" in out


def test_view_config(argv, capsys):
    assert main(argv("--view-config")) == 0
    assert "Sudo Timeout" in capsys.readouterr().out


def test_reset_step(argv, dirs, scripted_registry, no_sudo, calls):
    FileStateStore(dirs["state"]).set("core_a")
    FileStateStore(dirs["state"]).set("core_b")

    assert main(argv("--reset-step", "core_a", "--reset-step", "unknown_key")) == 0

    assert FileStateStore(dirs["state"]).completed_keys() == ["core_b"]
    assert calls == []


def test_reset_step_invalid_key(argv):
    assert main(argv("--reset-step", "../etc")) == 2


def test_clear_state(argv, dirs, scripted_registry):
    store = FileStateStore(dirs["state"])
    store.set("core_a")
    store.set("lvm_a")

    assert main(argv("--clear-state")) == 0

    assert store.completed_keys() == []


def test_clear_state_declined(argv, dirs, scripted_registry, mocker):
    store = FileStateStore(dirs["state"])
    store.set("core_a")
    mocker.patch("builtins.input", return_value="n")
    interactive_args = [arg for arg in argv("--clear-state") if arg != "--non-interactive"]

    assert main(interactive_args) == 0

    assert store.completed_keys() == ["core_a"]
