# common/privilege.py
# -*- coding: utf-8 -*-
"""
Privilege session for long installer runs.

Verifies that the installer can act as root and keeps the sudo credential
cache alive across multi-hour runs. The orchestrator calls
`extend_credential_timeout()` at every phase boundary and `restore()` when
the run ends.
"""

import logging
import math
import os
import subprocess
from pathlib import Path
from typing import Optional

from common.command_utils import (
    command_exists,
    log_installer,
    run_command,
    run_elevated_command,
)
from provisioner import config as static_config
from provisioner.config_models import AppSettings
from provisioner.exceptions import PrivilegeError

module_logger = logging.getLogger(__name__)


def sudoers_timeout_minutes(seconds: int) -> int:
    """sudoers `timestamp_timeout` is expressed in whole minutes."""
    return max(1, math.ceil(seconds / 60))


class PrivilegeSession:
    """Elevation check and sudo credential-cache management."""

    def __init__(
        self,
        app_settings: AppSettings,
        timeout_seconds: Optional[int] = None,
        dry_run: bool = False,
        sudoers_file: Path = static_config.SUDOERS_TIMEOUT_FILE,
        current_logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else app_settings.sudo_timeout
        )
        self.dry_run = dry_run
        self.sudoers_file = Path(sudoers_file)
        self.logger = current_logger if current_logger else module_logger
        self._dropin_written = False

    @property
    def is_root(self) -> bool:
        return os.geteuid() == 0

    def require_elevated(self) -> None:
        """
        Raise PrivilegeError unless the process is root or may use sudo.

        A non-root caller must hold a valid (or passwordless) sudo
        credential; `sudo -v` is attempted once so an interactive operator
        can enter a password up front.
        """
        symbols = self.app_settings.symbols
        if self.is_root:
            log_installer(
                "Running with effective uid 0.",
                "debug",
                self.logger,
                self.app_settings,
            )
            return
        if self.dry_run:
            log_installer(
                "[DRY RUN] Skipping elevation check.",
                "info",
                self.logger,
                self.app_settings,
            )
            return
        if not command_exists("sudo"):
            raise PrivilegeError(
                "This installer must be run as root or with sudo available."
            )
        try:
            cached = run_command(
                ["sudo", "-n", "true"],
                self.app_settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
            )
            if cached.returncode == 0:
                return
            run_command(["sudo", "-v"], self.app_settings, current_logger=self.logger)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise PrivilegeError(
                f"{symbols.get('error', '❌')} Administrative rights are required: {e}"
            ) from e

    def extend_credential_timeout(self, seconds: Optional[int] = None) -> None:
        """
        Refresh the sudo timestamp and raise its lifetime to `seconds`.

        Writes `Defaults timestamp_timeout=<minutes>` to the sudoers drop-in
        and validates it with `visudo -c -f`; an invalid drop-in is removed
        again. Nothing is done when running as root.
        """
        seconds = seconds if seconds is not None else self.timeout_seconds
        if seconds <= 0:
            raise ValueError("Credential timeout must be positive")
        if self.is_root:
            log_installer(
                "Running as root; no sudo credential cache to extend.",
                "debug",
                self.logger,
                self.app_settings,
            )
            return

        minutes = sudoers_timeout_minutes(seconds)
        try:
            run_command(
                ["sudo", "-v"],
                self.app_settings,
                current_logger=self.logger,
                dry_run=self.dry_run,
            )
            run_elevated_command(
                ["tee", str(self.sudoers_file)],
                self.app_settings,
                cmd_input=f"Defaults timestamp_timeout={minutes}\n",
                capture_output=True,
                current_logger=self.logger,
                dry_run=self.dry_run,
            )
            self._dropin_written = True
            run_elevated_command(
                ["chmod", "0440", str(self.sudoers_file)],
                self.app_settings,
                current_logger=self.logger,
                dry_run=self.dry_run,
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise PrivilegeError(
                f"Could not refresh sudo credentials: {e}"
            ) from e

        if command_exists("visudo") and not self.dry_run:
            check = run_elevated_command(
                ["visudo", "-c", "-f", str(self.sudoers_file)],
                self.app_settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
            )
            if check.returncode != 0:
                log_installer(
                    f"{self.app_settings.symbols.get('warning', '!')} visudo rejected {self.sudoers_file}; removing it.",
                    "warning",
                    self.logger,
                    self.app_settings,
                )
                self.restore()
                return

        log_installer(
            f"Set sudo timeout to {minutes} minute(s)",
            "debug",
            self.logger,
            self.app_settings,
        )

    def restore(self) -> None:
        """Remove the sudoers drop-in written by this session, if any."""
        if not self._dropin_written:
            return
        self._dropin_written = False
        result = run_elevated_command(
            ["rm", "-f", str(self.sudoers_file)],
            self.app_settings,
            check=False,
            current_logger=self.logger,
            dry_run=self.dry_run,
        )
        if result.returncode != 0:
            log_installer(
                f"Could not remove {self.sudoers_file} (rc {result.returncode}).",
                "warning",
                self.logger,
                self.app_settings,
            )
