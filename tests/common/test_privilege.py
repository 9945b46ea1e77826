# tests/common/test_privilege.py
# -*- coding: utf-8 -*-
"""
Tests for the privilege session: elevation check and sudo credential cache.
"""

import subprocess
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from common.privilege import PrivilegeSession, sudoers_timeout_minutes
from provisioner.exceptions import PrivilegeError


@pytest.fixture
def as_user(mocker: MockerFixture):
    mocker.patch("common.privilege.os.geteuid", return_value=1000)


@pytest.fixture
def mock_run_command(mocker: MockerFixture):
    return mocker.patch(
        "common.privilege.run_command", return_value=MagicMock(returncode=0)
    )


@pytest.fixture
def mock_run_elevated(mocker: MockerFixture):
    return mocker.patch(
        "common.privilege.run_elevated_command", return_value=MagicMock(returncode=0)
    )


@pytest.fixture
def session(app_settings, tmp_path):
    return PrivilegeSession(
        app_settings, timeout_seconds=7200, sudoers_file=tmp_path / "installer-timeout"
    )


@pytest.mark.parametrize(
    "seconds, minutes", [(1, 1), (59, 1), (60, 1), (61, 2), (3600, 60), (7200, 120)]
)
def test_sudoers_timeout_minutes(seconds, minutes):
    assert sudoers_timeout_minutes(seconds) == minutes


def test_require_elevated_as_root(mocker: MockerFixture, session, mock_run_command):
    mocker.patch("common.privilege.os.geteuid", return_value=0)

    session.require_elevated()

    mock_run_command.assert_not_called()


def test_require_elevated_with_cached_credential(as_user, mocker, session, mock_run_command):
    mocker.patch("common.privilege.command_exists", return_value=True)

    session.require_elevated()

    mock_run_command.assert_called_once()
    assert mock_run_command.call_args.args[0] == ["sudo", "-n", "true"]


def test_require_elevated_prompts_for_password(as_user, mocker, session, mock_run_command):
    mocker.patch("common.privilege.command_exists", return_value=True)
    mock_run_command.side_effect = [MagicMock(returncode=1), MagicMock(returncode=0)]

    session.require_elevated()

    assert mock_run_command.call_args.args[0] == ["sudo", "-v"]


def test_require_elevated_denied(as_user, mocker, session, mock_run_command):
    mocker.patch("common.privilege.command_exists", return_value=True)
    mock_run_command.side_effect = [
        MagicMock(returncode=1),
        subprocess.CalledProcessError(1, ["sudo", "-v"]),
    ]

    with pytest.raises(PrivilegeError):
        session.require_elevated()


def test_require_elevated_without_sudo(as_user, mocker, session):
    mocker.patch("common.privilege.command_exists", return_value=False)

    with pytest.raises(PrivilegeError):
        session.require_elevated()


def test_require_elevated_dry_run(as_user, app_settings, mock_run_command):
    PrivilegeSession(app_settings, dry_run=True).require_elevated()

    mock_run_command.assert_not_called()


def test_extend_writes_minutes_dropin(as_user, mocker, session, mock_run_command, mock_run_elevated):
    mocker.patch("common.privilege.command_exists", return_value=True)

    session.extend_credential_timeout()

    tee_call = mock_run_elevated.call_args_list[0]
    assert tee_call.args[0] == ["tee", str(session.sudoers_file)]
    assert tee_call.kwargs["cmd_input"] == "Defaults timestamp_timeout=120\n"
    commands = [c.args[0][0] for c in mock_run_elevated.call_args_list]
    assert commands == ["tee", "chmod", "visudo"]


def test_extend_as_root_is_noop(mocker, session, mock_run_command, mock_run_elevated):
    mocker.patch("common.privilege.os.geteuid", return_value=0)

    session.extend_credential_timeout()

    mock_run_command.assert_not_called()
    mock_run_elevated.assert_not_called()


def test_extend_rejects_non_positive_timeout(session):
    with pytest.raises(ValueError):
        session.extend_credential_timeout(0)


def test_extend_failure_raises_privilege_error(as_user, session, mock_run_command):
    mock_run_command.side_effect = subprocess.CalledProcessError(1, ["sudo", "-v"])

    with pytest.raises(PrivilegeError):
        session.extend_credential_timeout()


def test_invalid_dropin_is_removed(as_user, mocker, session, mock_run_command, mock_run_elevated):
    mocker.patch("common.privilege.command_exists", return_value=True)
    mock_run_elevated.side_effect = [
        MagicMock(returncode=0),  # tee
        MagicMock(returncode=0),  # chmod
        MagicMock(returncode=1),  # visudo -c
        MagicMock(returncode=0),  # rm -f
    ]

    session.extend_credential_timeout()

    assert mock_run_elevated.call_args.args[0] == ["rm", "-f", str(session.sudoers_file)]


def test_restore_only_after_extend(as_user, mocker, session, mock_run_command, mock_run_elevated):
    mocker.patch("common.privilege.command_exists", return_value=False)

    session.restore()
    mock_run_elevated.assert_not_called()

    session.extend_credential_timeout()
    session.restore()
    session.restore()

    rm_calls = [c for c in mock_run_elevated.call_args_list if c.args[0][0] == "rm"]
    assert len(rm_calls) == 1
