# provisioner/steps/base.py
# -*- coding: utf-8 -*-
"""
Reusable step types shared by the phase modules: package installation,
configuration file drops and group membership.
"""

import grp
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from common.command_utils import command_exists, run_command, run_elevated_command
from common.file_utils import file_has_content, write_system_file
from common.package_utils import apt_install, missing_packages
from common.system_utils import user_exists
from provisioner.context import ExecutionContext
from provisioner.exceptions import FatalStepError, RecoverableStepError
from provisioner.step_contract import Step, StepOutcome

module_logger = logging.getLogger(__name__)


def target_user(context: ExecutionContext) -> str:
    """The desktop user being provisioned: the configured one, else $SUDO_USER."""
    return context.settings.target_user or os.environ.get("SUDO_USER", "")


def require_target_user(context: ExecutionContext) -> str:
    user = target_user(context)
    if not user:
        raise FatalStepError(
            "No target user: set target_user in the configuration or run via sudo."
        )
    if not user_exists(user):
        raise FatalStepError(f"User '{user}' does not exist. Please create the user first.")
    return user


def _logger(context: ExecutionContext) -> logging.Logger:
    return context.log.logger


class PackageInstallStep(Step):
    """
    Installs one of the configured package lists.

    Complete when dpkg reports every package installed. A required list that
    fails to install is fatal; an optional one is recoverable.
    """

    def __init__(
        self,
        key: str,
        label: str,
        package_list: str,
        required: bool = True,
        reboot_when_installed: bool = False,
    ):
        super().__init__(key, label)
        self.package_list = package_list
        self.required = required
        self.reboot_when_installed = reboot_when_installed

    def packages(self, context: ExecutionContext) -> List[str]:
        return list(getattr(context.settings.packages, self.package_list))

    def is_complete(self, context: ExecutionContext) -> Optional[bool]:
        packages = self.packages(context)
        if not packages:
            return True
        return not missing_packages(packages, context.settings, _logger(context))

    def run(self, context: ExecutionContext) -> StepOutcome:
        packages = self.packages(context)
        if not packages:
            return StepOutcome.success("nothing to install")
        if not command_exists("apt-get"):
            raise FatalStepError("apt-get is not available on this system.")
        try:
            installed = apt_install(
                packages,
                context.settings,
                current_logger=_logger(context),
                dry_run=context.dry_run,
            )
        except subprocess.CalledProcessError as e:
            message = f"apt-get install failed (rc {e.returncode})"
            if self.required:
                raise FatalStepError(message) from e
            raise RecoverableStepError(message) from e
        return StepOutcome.success(
            f"installed {len(installed)} package(s)" if installed else "already installed",
            reboot_required=bool(installed) and self.reboot_when_installed,
        )


class ConfigFileStep(Step):
    """
    Writes a root-owned configuration file, then runs an optional apply
    command. Complete when the file already holds the expected content and
    there is nothing to apply. With an apply command the file alone cannot
    tell whether the apply succeeded, so the state marker decides.
    """

    def __init__(
        self,
        key: str,
        label: str,
        path: Path,
        content: str,
        apply_command: Optional[List[str]] = None,
        mode: str = "0644",
    ):
        super().__init__(key, label)
        self.path = Path(path)
        self.content = content
        self.apply_command = apply_command
        self.mode = mode

    def is_complete(self, context: ExecutionContext) -> Optional[bool]:
        if not file_has_content(str(self.path), self.content):
            return False
        if self.apply_command:
            return None
        return True

    def run(self, context: ExecutionContext) -> StepOutcome:
        logger = _logger(context)
        try:
            write_system_file(
                str(self.path),
                self.content,
                context.settings,
                mode=self.mode,
                current_logger=logger,
                dry_run=context.dry_run,
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise RecoverableStepError(f"could not write {self.path}: {e}") from e
        if self.apply_command:
            try:
                run_elevated_command(
                    self.apply_command,
                    context.settings,
                    current_logger=logger,
                    dry_run=context.dry_run,
                )
            except (subprocess.CalledProcessError, FileNotFoundError) as e:
                raise RecoverableStepError(
                    f"wrote {self.path} but '{' '.join(self.apply_command)}' failed: {e}"
                ) from e
        return StepOutcome.success(f"wrote {self.path}")


def render_sysctl(settings: Dict[str, str], header: str) -> str:
    lines = [f"# {header}", "# Managed by workstation-provisioner"]
    lines.extend(f"{key} = {value}" for key, value in settings.items())
    return "\n".join(lines) + "\n"


class SysctlStep(ConfigFileStep):
    """
    Drops a sysctl.d file and loads it with `sysctl -p`.

    Complete when the file holds the expected content and the kernel reports
    every configured value. If the live values cannot be read the state
    marker decides.
    """

    def __init__(self, key: str, label: str, path: Path, settings: Dict[str, str]):
        super().__init__(
            key,
            label,
            path,
            render_sysctl(settings, label),
            apply_command=["sysctl", "-p", str(path)],
        )
        self.settings = dict(settings)

    def live_value(self, context: ExecutionContext, name: str) -> Optional[str]:
        try:
            result = run_command(
                ["sysctl", "-n", name],
                context.settings,
                check=False,
                capture_output=True,
                current_logger=_logger(context),
            )
        except FileNotFoundError:
            return None
        if result.returncode != 0:
            return None
        # Multi-value keys come back tab separated.
        return " ".join((result.stdout or "").split())

    def is_complete(self, context: ExecutionContext) -> Optional[bool]:
        if not file_has_content(str(self.path), self.content):
            return False
        for name, expected in self.settings.items():
            current = self.live_value(context, name)
            if current is None:
                return None
            if current != " ".join(str(expected).split()):
                return False
        return True


class GroupMembershipStep(Step):
    """Adds the target user to supplementary groups with `usermod -aG`."""

    def __init__(self, key: str, label: str, groups: List[str]):
        super().__init__(key, label)
        self.groups = list(groups)

    def _current_groups(self, user: str) -> List[str]:
        return [g.gr_name for g in grp.getgrall() if user in g.gr_mem]

    def is_complete(self, context: ExecutionContext) -> Optional[bool]:
        user = target_user(context)
        if not user or not user_exists(user):
            return None
        current = set(self._current_groups(user))
        return all(group in current for group in self.groups)

    def run(self, context: ExecutionContext) -> StepOutcome:
        user = target_user(context)
        if not user or not user_exists(user):
            raise RecoverableStepError(
                f"target user '{user or '-'}' not found; cannot add to {', '.join(self.groups)}"
            )
        try:
            run_elevated_command(
                ["usermod", "-a", "-G", ",".join(self.groups), user],
                context.settings,
                current_logger=_logger(context),
                dry_run=context.dry_run,
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise RecoverableStepError(f"usermod failed: {e}") from e
        return StepOutcome.success(
            f"added {user} to {', '.join(self.groups)} (takes effect at next login)"
        )
