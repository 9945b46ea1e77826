# tests/provisioner/test_steps.py
# -*- coding: utf-8 -*-
"""
Tests for the declared phases and the reusable step types.
"""

import subprocess
from unittest.mock import Mock

import pytest
from pytest_mock import MockerFixture

from provisioner.exceptions import FatalStepError, RecoverableStepError
from provisioner.phases import build_registry
from provisioner.steps import core, lvm, plasma
from provisioner.steps.base import (
    ConfigFileStep,
    GroupMembershipStep,
    PackageInstallStep,
    SysctlStep,
    render_sysctl,
)
from provisioner.steps.studio import LowLatencyKernelStep


@pytest.fixture
def user_context(make_context, app_settings, mocker: MockerFixture):
    """Context provisioning an existing user named 'tester'."""
    mocker.patch("provisioner.steps.base.user_exists", return_value=True)
    settings = app_settings.model_copy(update={"target_user": "tester"})
    return make_context(settings=settings)


def test_declared_phases_in_order():
    registry = build_registry()

    assert [p.phase_id for p in registry.phases()] == [
        "00-core",
        "01-lvm",
        "02-studio",
        "03-plasma",
        "04-apps",
        "05-tweaks",
    ]
    first = registry.steps_for(["all"])[0]
    assert first.key == "system-init_update-index"


def test_declared_step_keys_are_unique():
    planned = build_registry().steps_for(["all"])
    keys = [p.key for p in planned]

    assert len(keys) == len(set(keys))
    assert "lvm-finish_verify-mounts" in keys
    assert "realtime-config_limits" in keys


class TestPackageInstallStep:
    def test_check_queries_dpkg(self, mocker: MockerFixture, context):
        mock_missing = mocker.patch("provisioner.steps.base.missing_packages", return_value=[])
        step = PackageInstallStep("audio-base_pipewire", "PipeWire", "pipewire")

        assert step.is_complete(context) is True
        assert mock_missing.call_args.args[0] == context.settings.packages.pipewire

    def test_check_reports_missing(self, mocker: MockerFixture, context):
        mocker.patch("provisioner.steps.base.missing_packages", return_value=["pipewire"])
        step = PackageInstallStep("audio-base_pipewire", "PipeWire", "pipewire")

        assert step.is_complete(context) is False

    def test_empty_list_is_complete(self, make_context, app_settings):
        settings = app_settings.model_copy(
            update={"packages": app_settings.packages.model_copy(update={"containers": []})}
        )
        step = PackageInstallStep("container-tools_docker", "Docker", "containers")

        assert step.is_complete(make_context(settings=settings)) is True
        assert step.run(make_context(settings=settings)).ok

    def test_run_installs(self, mocker: MockerFixture, context):
        mocker.patch("provisioner.steps.base.command_exists", return_value=True)
        mock_install = mocker.patch("provisioner.steps.base.apt_install", return_value=["git"])
        step = PackageInstallStep("core-packages_system", "Core", "core_system")

        outcome = step.run(context)

        assert outcome.ok
        assert outcome.message == "installed 1 package(s)"
        assert not outcome.reboot_required
        assert mock_install.call_args.kwargs["dry_run"] is False

    @pytest.mark.parametrize("required, error", [(True, FatalStepError), (False, RecoverableStepError)])
    def test_install_failure_classification(self, mocker: MockerFixture, context, required, error):
        mocker.patch("provisioner.steps.base.command_exists", return_value=True)
        mocker.patch(
            "provisioner.steps.base.apt_install",
            side_effect=subprocess.CalledProcessError(100, ["apt-get"]),
        )
        step = PackageInstallStep("pkg", "Packages", "core_utilities", required=required)

        with pytest.raises(error):
            step.run(context)

    def test_missing_apt_is_fatal(self, mocker: MockerFixture, context):
        mocker.patch("provisioner.steps.base.command_exists", return_value=False)
        step = PackageInstallStep("pkg", "Packages", "core_utilities", required=False)

        with pytest.raises(FatalStepError):
            step.run(context)


class TestLowLatencyKernel:
    def make_step(self):
        return LowLatencyKernelStep(
            "lowlatency-kernel_install",
            "Kernel",
            "lowlatency_kernel",
            required=False,
            reboot_when_installed=True,
        )

    def test_not_needed_in_vm(self, mocker: MockerFixture, context):
        mocker.patch("provisioner.steps.studio.is_running_in_vm", return_value=True)
        mock_missing = mocker.patch("provisioner.steps.base.missing_packages")

        assert self.make_step().is_complete(context) is True
        mock_missing.assert_not_called()

    def test_install_requests_reboot(self, mocker: MockerFixture, context):
        mocker.patch("provisioner.steps.base.command_exists", return_value=True)
        mocker.patch("provisioner.steps.base.apt_install", return_value=["linux-lowlatency"])

        assert self.make_step().run(context).reboot_required

    def test_already_installed_needs_no_reboot(self, mocker: MockerFixture, context):
        mocker.patch("provisioner.steps.base.command_exists", return_value=True)
        mocker.patch("provisioner.steps.base.apt_install", return_value=[])

        assert not self.make_step().run(context).reboot_required


class TestConfigFileStep:
    def test_check_compares_content(self, tmp_path, context):
        target = tmp_path / "audio.conf"
        step = ConfigFileStep("realtime-config_limits", "Limits", target, "@audio - rtprio 95\n")

        assert step.is_complete(context) is False
        target.write_text("@audio - rtprio 95\n", encoding="utf-8")
        assert step.is_complete(context) is True

    def test_run_writes_and_applies(self, mocker: MockerFixture, tmp_path, context):
        mock_write = mocker.patch("provisioner.steps.base.write_system_file")
        mock_run = mocker.patch("provisioner.steps.base.run_elevated_command")
        target = tmp_path / "99-net.conf"
        step = ConfigFileStep("net", "Net", target, "x = 1\n", apply_command=["sysctl", "-p", str(target)])

        assert step.run(context).ok
        assert mock_write.call_args.args[:2] == (str(target), "x = 1\n")
        assert mock_run.call_args.args[0] == ["sysctl", "-p", str(target)]

    def test_apply_failure_is_recoverable(self, mocker: MockerFixture, tmp_path, context):
        mocker.patch("provisioner.steps.base.write_system_file")
        mocker.patch(
            "provisioner.steps.base.run_elevated_command",
            side_effect=subprocess.CalledProcessError(255, ["sysctl"]),
        )
        step = ConfigFileStep("net", "Net", tmp_path / "x.conf", "x\n", apply_command=["sysctl", "-p"])

        with pytest.raises(RecoverableStepError):
            step.run(context)

    def test_written_file_with_apply_command_defers_to_marker(self, tmp_path, context):
        target = tmp_path / "99-net.conf"
        target.write_text("x = 1\n", encoding="utf-8")
        step = ConfigFileStep("net", "Net", target, "x = 1\n", apply_command=["sysctl", "-p"])

        assert step.is_complete(context) is None

    def test_render_sysctl(self):
        text = render_sysctl({"vm.swappiness": "10", "net.ipv4.tcp_fastopen": "3"}, "Tunables")

        assert text.splitlines() == [
            "# Tunables",
            "# Managed by workstation-provisioner",
            "vm.swappiness = 10",
            "net.ipv4.tcp_fastopen = 3",
        ]


class TestSysctlStep:
    SETTINGS = {"vm.swappiness": "10", "net.ipv4.tcp_rmem": "4096 87380 16777216"}

    def make_step(self, tmp_path, written=True):
        step = SysctlStep("system-performance_sysctl", "Tunables", tmp_path / "99-perf.conf", self.SETTINGS)
        if written:
            step.path.write_text(step.content, encoding="utf-8")
        return step

    def test_complete_when_kernel_values_match(self, mocker: MockerFixture, tmp_path, context):
        mock_run = mocker.patch(
            "provisioner.steps.base.run_command",
            side_effect=[Mock(returncode=0, stdout="10\n"), Mock(returncode=0, stdout="4096\t87380\t16777216\n")],
        )

        assert self.make_step(tmp_path).is_complete(context) is True
        assert mock_run.call_args_list[0].args[0] == ["sysctl", "-n", "vm.swappiness"]

    def test_written_but_not_applied(self, mocker: MockerFixture, tmp_path, context):
        mocker.patch("provisioner.steps.base.run_command", return_value=Mock(returncode=0, stdout="60\n"))

        assert self.make_step(tmp_path).is_complete(context) is False

    def test_missing_file(self, mocker: MockerFixture, tmp_path, context):
        mock_run = mocker.patch("provisioner.steps.base.run_command")

        assert self.make_step(tmp_path, written=False).is_complete(context) is False
        mock_run.assert_not_called()

    @pytest.mark.parametrize(
        "side_effect",
        [FileNotFoundError(), [Mock(returncode=255, stdout="")]],
    )
    def test_unreadable_values_defer_to_marker(self, mocker: MockerFixture, tmp_path, context, side_effect):
        mocker.patch("provisioner.steps.base.run_command", side_effect=side_effect)

        assert self.make_step(tmp_path).is_complete(context) is None


class TestGroupMembership:
    def test_without_target_user(self, context, monkeypatch):
        monkeypatch.delenv("SUDO_USER", raising=False)
        step = GroupMembershipStep("docker-group", "Docker group", ["docker"])

        assert step.is_complete(context) is None
        with pytest.raises(RecoverableStepError):
            step.run(context)

    def test_check_covers_all_groups(self, mocker: MockerFixture, user_context):
        step = GroupMembershipStep("audio-group", "Audio", ["audio", "video"])
        mocker.patch.object(step, "_current_groups", return_value=["audio", "tester"])

        assert step.is_complete(user_context) is False

    def test_run_uses_usermod(self, mocker: MockerFixture, user_context):
        mock_run = mocker.patch("provisioner.steps.base.run_elevated_command")
        step = GroupMembershipStep("audio-group", "Audio", ["audio", "video"])

        assert step.run(user_context).ok
        assert mock_run.call_args.args[0] == ["usermod", "-a", "-G", "audio,video", "tester"]


class TestCoreSteps:
    def test_update_failure_is_fatal(self, mocker: MockerFixture, context):
        mocker.patch(
            "provisioner.steps.core.apt_update",
            side_effect=subprocess.CalledProcessError(100, ["apt-get", "update"]),
        )

        with pytest.raises(FatalStepError):
            core.update_package_index(context)

    def test_user_directories(self, mocker: MockerFixture, user_context, tmp_path):
        mocker.patch("provisioner.steps.core.user_home", return_value=tmp_path)
        mock_run = mocker.patch("provisioner.steps.core.run_elevated_command")

        assert core.user_directories_present(user_context) is False
        assert core.create_user_directories(user_context).ok
        command = mock_run.call_args.args[0]
        assert command[:6] == ["install", "-d", "-o", "tester", "-g", "tester"]
        assert str(tmp_path / ".local/bin") in command

    def test_user_directories_check_without_user(self, context, monkeypatch):
        monkeypatch.delenv("SUDO_USER", raising=False)

        assert core.user_directories_present(context) is None
        with pytest.raises(FatalStepError):
            core.create_user_directories(context)


class TestLvmSteps:
    def test_mounts_present(self, mocker: MockerFixture, context):
        mocker.patch("provisioner.steps.lvm.is_mount_point", return_value=True)

        assert lvm.mounts_present(context) is True
        assert lvm.verify_mounts(context).ok

    def test_mount_fallback(self, mocker: MockerFixture, context):
        mocker.patch(
            "provisioner.steps.lvm.missing_mounts", side_effect=[["/data"], []]
        )
        mock_run = mocker.patch("provisioner.steps.lvm.run_elevated_command")

        assert lvm.verify_mounts(context).ok
        assert mock_run.call_args.args[0] == ["mount", "-a"]

    def test_missing_volume_is_fatal(self, mocker: MockerFixture, context):
        mocker.patch("provisioner.steps.lvm.is_mount_point", return_value=False)
        mocker.patch("provisioner.steps.lvm.run_elevated_command")

        with pytest.raises(FatalStepError, match="/data"):
            lvm.verify_mounts(context)

    def test_home_links(self, mocker: MockerFixture, user_context, tmp_path):
        mocker.patch("provisioner.steps.lvm.user_home", return_value=tmp_path)
        mock_run = mocker.patch("provisioner.steps.lvm.run_elevated_command")
        (tmp_path / "Music").mkdir()
        (tmp_path / "Documents").mkdir()
        (tmp_path / "Documents" / "notes.txt").write_text("keep")

        with pytest.raises(RecoverableStepError, match="Documents"):
            lvm.link_home_directories(user_context)

        commands = [c.args[0] for c in mock_run.call_args_list]
        assert ["rmdir", str(tmp_path / "Music")] in commands
        assert ["ln", "-sfn", "/data/Music", str(tmp_path / "Music")] in commands
        assert not any(str(tmp_path / "Documents") in c for c in commands)

    def test_home_links_check(self, mocker: MockerFixture, user_context, tmp_path):
        mocker.patch("provisioner.steps.lvm.user_home", return_value=tmp_path)
        for name, target in lvm.HOME_LINKS.items():
            (tmp_path / name).symlink_to(target)

        assert lvm.home_links_present(user_context) is True


class TestPlasmaSteps:
    @pytest.mark.parametrize(
        "returncode, stdout, expected",
        [(0, "enabled\n", True), (1, "disabled\n", False), (0, "static\n", False)],
    )
    def test_display_manager_check(self, mocker: MockerFixture, context, returncode, stdout, expected):
        mocker.patch(
            "provisioner.steps.plasma.run_command",
            return_value=Mock(returncode=returncode, stdout=stdout),
        )

        assert plasma.display_manager_enabled(context) is expected

    def test_check_without_systemctl(self, mocker: MockerFixture, context):
        mocker.patch("provisioner.steps.plasma.run_command", side_effect=FileNotFoundError())

        assert plasma.display_manager_enabled(context) is None
