# tests/common/test_package_utils.py
# -*- coding: utf-8 -*-
"""
Tests for the apt wrappers.
"""

import subprocess

import pytest
from pytest_mock import MockerFixture

from common.package_utils import apt_install, apt_update, missing_packages
from provisioner.config_models import AppSettings


@pytest.fixture
def installed(mocker: MockerFixture):
    """Pretend only the listed packages are installed."""
    present = set()
    mocker.patch(
        "common.package_utils.check_package_installed",
        side_effect=lambda package, *args, **kwargs: package in present,
    )
    return present


def test_missing_packages(installed):
    installed.update({"git", "curl"})

    assert missing_packages(["git", "vim", "curl", "tmux"], AppSettings()) == ["vim", "tmux"]


def test_apt_install_only_missing(mocker: MockerFixture, installed):
    installed.add("git")
    mock_run = mocker.patch("common.package_utils.run_elevated_command")

    result = apt_install(["git", "vim"], AppSettings())

    assert result == ["vim"]
    assert mock_run.call_args.args[0] == [
        "env",
        "DEBIAN_FRONTEND=noninteractive",
        "apt-get",
        "install",
        "-y",
        "vim",
    ]


def test_apt_install_nothing_missing(mocker: MockerFixture, installed):
    installed.update({"git", "vim"})
    mock_run = mocker.patch("common.package_utils.run_elevated_command")

    assert apt_install(["git", "vim"], AppSettings()) == []
    mock_run.assert_not_called()


def test_apt_install_empty_list(mocker: MockerFixture):
    mock_check = mocker.patch("common.package_utils.check_package_installed")

    assert apt_install([], AppSettings()) == []
    mock_check.assert_not_called()


def test_apt_install_failure_propagates(mocker: MockerFixture, installed):
    mocker.patch(
        "common.package_utils.run_elevated_command",
        side_effect=subprocess.CalledProcessError(100, ["apt-get"]),
    )

    with pytest.raises(subprocess.CalledProcessError):
        apt_install(["vim"], AppSettings())


def test_apt_update_retries(mocker: MockerFixture):
    mocker.patch("common.command_utils.time.sleep")
    mock_run = mocker.patch(
        "common.package_utils.run_elevated_command",
        side_effect=[subprocess.CalledProcessError(100, ["apt-get", "update"]), None],
    )

    apt_update(AppSettings())

    assert mock_run.call_count == 2
