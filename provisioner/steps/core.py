# provisioner/steps/core.py
# -*- coding: utf-8 -*-
"""
Phase 00-core: package index, base packages and the user's directory skeleton.
"""

import os
import subprocess
from typing import List, Optional

from common.command_utils import run_elevated_command
from common.package_utils import apt_update
from common.system_utils import user_home
from provisioner.context import ExecutionContext
from provisioner.exceptions import FatalStepError, RecoverableStepError
from provisioner.step_contract import FunctionStep, Step, StepOutcome
from provisioner.steps.base import PackageInstallStep, require_target_user

USER_DIRECTORIES = (
    ".config",
    ".local/bin",
    ".local/share",
    "Projects",
    "Downloads/installers",
)


def update_package_index(context: ExecutionContext) -> StepOutcome:
    try:
        apt_update(
            context.settings,
            current_logger=context.log.logger,
            dry_run=context.dry_run,
        )
    except subprocess.CalledProcessError as e:
        raise FatalStepError(f"apt-get update failed (rc {e.returncode})") from e
    except FileNotFoundError as e:
        raise FatalStepError("apt-get is not available on this system.") from e
    return StepOutcome.success()


def _user_directories(context: ExecutionContext) -> List[str]:
    user = require_target_user(context)
    home = user_home(user)
    if home is None:
        raise FatalStepError(f"Cannot determine the home directory of '{user}'.")
    return [str(home / relative) for relative in USER_DIRECTORIES]


def user_directories_present(context: ExecutionContext) -> Optional[bool]:
    try:
        directories = _user_directories(context)
    except FatalStepError:
        return None
    return all(os.path.isdir(d) for d in directories)


def create_user_directories(context: ExecutionContext) -> StepOutcome:
    user = require_target_user(context)
    directories = _user_directories(context)
    try:
        run_elevated_command(
            ["install", "-d", "-o", user, "-g", user, *directories],
            context.settings,
            current_logger=context.log.logger,
            dry_run=context.dry_run,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise RecoverableStepError(f"could not create user directories: {e}") from e
    return StepOutcome.success(f"{len(directories)} directories for {user}")


def build_steps() -> List[Step]:
    return [
        FunctionStep(
            "system-init_update-index",
            "Update package index",
            update_package_index,
        ),
        PackageInstallStep(
            "core-packages_system",
            "Install core system packages",
            "core_system",
            required=True,
        ),
        PackageInstallStep(
            "core-packages_utilities",
            "Install administration utilities",
            "core_utilities",
            required=False,
        ),
        PackageInstallStep(
            "development-base_toolchain",
            "Install development toolchain",
            "development",
            required=False,
        ),
        FunctionStep(
            "system-init_user-directories",
            "Create user directory skeleton",
            create_user_directories,
            check=user_directories_present,
        ),
    ]
