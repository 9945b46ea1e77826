# provisioner/steps/lvm.py
# -*- coding: utf-8 -*-
"""
Phase 01-lvm: verify the logical volume mounts and lay out /data.

The volumes themselves are created outside the installer; these steps only
check that they are mounted and populate them.
"""

import os
import subprocess
from typing import List, Optional

from common.command_utils import run_elevated_command
from common.system_utils import is_mount_point, user_home
from provisioner import config as static_config
from provisioner.context import ExecutionContext
from provisioner.exceptions import FatalStepError, RecoverableStepError
from provisioner.step_contract import FunctionStep, Step, StepOutcome
from provisioner.steps.base import require_target_user, target_user

# Home entries linked into the data volume.
HOME_LINKS = {
    "Documents": "/data/Documents",
    "Music": "/data/Music",
    "Pictures": "/data/Pictures",
    "Videos": "/data/Video",
    "repo": "/data/Development/repo",
}


def missing_mounts() -> List[str]:
    return [m for m in static_config.LVM_REQUIRED_MOUNTS if not is_mount_point(m)]


def mounts_present(context: ExecutionContext) -> Optional[bool]:
    return not missing_mounts()


def verify_mounts(context: ExecutionContext) -> StepOutcome:
    missing = missing_mounts()
    if not missing:
        return StepOutcome.success("all volumes mounted")

    context.log.warning(
        f"{len(missing)} mount point(s) missing: {', '.join(missing)}. Trying 'mount -a'."
    )
    try:
        run_elevated_command(
            ["mount", "-a"],
            context.settings,
            current_logger=context.log.logger,
            dry_run=context.dry_run,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise FatalStepError(
            f"Failed to mount all volumes; check /etc/fstab: {e}"
        ) from e

    if context.dry_run:
        return StepOutcome.success("would mount missing volumes")
    still_missing = missing_mounts()
    if still_missing:
        raise FatalStepError(
            f"Cannot continue without volumes mounted: {', '.join(still_missing)}"
        )
    return StepOutcome.success("volumes mounted from fstab")


def data_directories_present(context: ExecutionContext) -> Optional[bool]:
    return all(os.path.isdir(d) for d in static_config.DATA_DIRECTORIES)


def create_data_directories(context: ExecutionContext) -> StepOutcome:
    user = target_user(context)
    command = ["install", "-d"]
    if user:
        command += ["-o", user, "-g", user]
    try:
        run_elevated_command(
            command + list(static_config.DATA_DIRECTORIES),
            context.settings,
            current_logger=context.log.logger,
            dry_run=context.dry_run,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise FatalStepError(f"could not create data directories: {e}") from e
    return StepOutcome.success(f"{len(static_config.DATA_DIRECTORIES)} directories")


def home_links_present(context: ExecutionContext) -> Optional[bool]:
    home = user_home(target_user(context))
    if home is None:
        return None
    return all(
        os.path.islink(home / name) and os.readlink(home / name) == target
        for name, target in HOME_LINKS.items()
    )


def link_home_directories(context: ExecutionContext) -> StepOutcome:
    user = require_target_user(context)
    home = user_home(user)
    if home is None:
        raise FatalStepError(f"Cannot determine the home directory of '{user}'.")

    def _run(command: List[str]) -> None:
        run_elevated_command(
            command,
            context.settings,
            current_logger=context.log.logger,
            dry_run=context.dry_run,
        )

    skipped = []
    try:
        for name, target in HOME_LINKS.items():
            link = home / name
            if link.exists() and not link.is_symlink():
                is_empty_dir = link.is_dir() and not any(link.iterdir())
                if not is_empty_dir:
                    skipped.append(str(link))
                    continue
                _run(["rmdir", str(link)])
            _run(["ln", "-sfn", target, str(link)])
            _run(["chown", "-h", f"{user}:{user}", str(link)])
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise RecoverableStepError(f"could not link home directories: {e}") from e

    if skipped:
        raise RecoverableStepError(
            f"left non-empty entries in place, move them to /data manually: {', '.join(skipped)}"
        )
    return StepOutcome.success()


def build_steps() -> List[Step]:
    return [
        FunctionStep(
            "lvm-finish_verify-mounts",
            "Verify LVM volumes are mounted",
            verify_mounts,
            check=mounts_present,
        ),
        FunctionStep(
            "lvm-finish_data-directories",
            "Create /data directory structure",
            create_data_directories,
            check=data_directories_present,
        ),
        FunctionStep(
            "lvm-finish_home-links",
            "Link home directories into /data",
            link_home_directories,
            check=home_links_present,
        ),
    ]
