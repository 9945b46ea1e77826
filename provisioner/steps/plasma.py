# provisioner/steps/plasma.py
# -*- coding: utf-8 -*-
"""
Phase 03-plasma: KDE Plasma desktop and the SDDM display manager.
"""

import subprocess
from typing import List, Optional

from common.command_utils import run_command, run_elevated_command
from provisioner.context import ExecutionContext
from provisioner.exceptions import RecoverableStepError
from provisioner.step_contract import FunctionStep, Step, StepOutcome
from provisioner.steps.base import PackageInstallStep

DISPLAY_MANAGER = "sddm"


def display_manager_enabled(context: ExecutionContext) -> Optional[bool]:
    try:
        result = run_command(
            ["systemctl", "is-enabled", DISPLAY_MANAGER],
            context.settings,
            check=False,
            capture_output=True,
            current_logger=context.log.logger,
        )
    except FileNotFoundError:
        return None
    return result.returncode == 0 and (result.stdout or "").strip() == "enabled"


def enable_display_manager(context: ExecutionContext) -> StepOutcome:
    try:
        run_elevated_command(
            ["systemctl", "enable", DISPLAY_MANAGER],
            context.settings,
            current_logger=context.log.logger,
            dry_run=context.dry_run,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise RecoverableStepError(f"could not enable {DISPLAY_MANAGER}: {e}") from e
    return StepOutcome.success(f"{DISPLAY_MANAGER} enabled for next boot")


def build_steps() -> List[Step]:
    return [
        PackageInstallStep(
            "kde-config_desktop",
            "Install KDE Plasma desktop",
            "plasma",
            required=True,
        ),
        FunctionStep(
            "display-manager_sddm",
            "Enable SDDM display manager",
            enable_display_manager,
            check=display_manager_enabled,
        ),
    ]
