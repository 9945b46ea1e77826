# common/system_utils.py
# -*- coding: utf-8 -*-
"""
Live system checks used by step idempotency checks, and small system
helpers (systemd reload, elapsed-time formatting).
"""

import logging
import os
import pwd
import subprocess
from pathlib import Path
from typing import List, Optional

from common.command_utils import (
    command_exists,
    log_installer,
    run_command,
    run_elevated_command,
)
from provisioner.config_models import SYMBOLS_DEFAULT, AppSettings

module_logger = logging.getLogger(__name__)

PROC_MOUNTS = Path("/proc/self/mounts")
PROC_CPUINFO = Path("/proc/cpuinfo")


def _unescape_mount_field(field: str) -> str:
    # /proc/mounts octal-escapes spaces, tabs, newlines and backslashes.
    return (
        field.replace("\\040", " ")
        .replace("\\011", "\t")
        .replace("\\012", "\n")
        .replace("\\134", "\\")
    )


def mounted_targets(mounts_file: Path = PROC_MOUNTS) -> List[str]:
    """Return the mount points listed in `mounts_file`."""
    try:
        lines = mounts_file.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        module_logger.warning(f"Cannot read {mounts_file}: {e}")
        return []
    targets = []
    for line in lines:
        fields = line.split()
        if len(fields) >= 2:
            targets.append(_unescape_mount_field(fields[1]))
    return targets


def is_mount_point(path: str, mounts_file: Path = PROC_MOUNTS) -> bool:
    """Return True if `path` is currently a mount target."""
    normalized = os.path.normpath(path)
    return normalized in (
        os.path.normpath(target) for target in mounted_targets(mounts_file)
    )


def user_exists(username: str) -> bool:
    if not username:
        return False
    try:
        pwd.getpwnam(username)
        return True
    except KeyError:
        return False


def is_running_in_vm(
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
    cpuinfo_file: Path = PROC_CPUINFO,
) -> bool:
    """
    Detect virtualization with `systemd-detect-virt`, falling back to the
    `hypervisor` CPU flag.
    """
    logger_to_use = current_logger if current_logger else module_logger
    if command_exists("systemd-detect-virt"):
        result = run_command(
            ["systemd-detect-virt"],
            app_settings,
            check=False,
            capture_output=True,
            current_logger=logger_to_use,
        )
        if result.returncode == 0 and (result.stdout or "").strip() not in ("", "none"):
            log_installer(
                f"Running in a virtual machine: {result.stdout.strip()}",
                "debug",
                logger_to_use,
                app_settings,
            )
            return True
        return False

    try:
        cpuinfo = cpuinfo_file.read_text(encoding="utf-8")
    except OSError:
        return False
    for line in cpuinfo.splitlines():
        if line.startswith("flags") and "hypervisor" in line.split():
            log_installer(
                f"Running in a virtual machine (detected via {cpuinfo_file})",
                "debug",
                logger_to_use,
                app_settings,
            )
            return True
    return False


def systemd_reload(
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    dry_run: bool = False,
) -> bool:
    """
    Reload the systemd daemon. Returns False (after logging) on failure.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols if app_settings.symbols else SYMBOLS_DEFAULT
    log_installer(
        f"{symbols.get('gear', '⚙️')} Reloading systemd daemon...",
        "info",
        logger_to_use,
        app_settings,
    )
    try:
        run_elevated_command(
            ["systemctl", "daemon-reload"],
            app_settings,
            current_logger=logger_to_use,
            dry_run=dry_run,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        log_installer(
            f"{symbols.get('error', '❌')} Failed to reload systemd: {e}",
            "error",
            logger_to_use,
            app_settings,
        )
        return False
    return True


def format_elapsed(seconds: float) -> str:
    """Format a duration as `Xh Ym Zs`."""
    total = max(0, int(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}h {minutes}m {secs}s"


def user_home(username: str) -> Optional[Path]:
    """Return the home directory of `username`, or None if the user is unknown."""
    if not username:
        return None
    try:
        return Path(pwd.getpwnam(username).pw_dir)
    except KeyError:
        return None
