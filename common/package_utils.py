# common/package_utils.py
# -*- coding: utf-8 -*-
"""
Thin wrappers around apt-get used by the package installation steps.
"""

import logging
import subprocess
from typing import List, Optional, Sequence

from common.command_utils import (
    check_package_installed,
    log_installer,
    retry_command,
    run_elevated_command,
)
from provisioner.config_models import AppSettings

module_logger = logging.getLogger(__name__)


def apt_update(
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    dry_run: bool = False,
    max_attempts: int = 3,
) -> None:
    """
    Refresh the apt package index, retrying transient mirror failures.

    Raises:
        subprocess.CalledProcessError: every attempt failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    log_installer("Updating package lists", "info", logger_to_use, app_settings)
    retry_command(
        lambda: run_elevated_command(
            ["apt-get", "update"],
            app_settings,
            current_logger=logger_to_use,
            dry_run=dry_run,
        ),
        max_attempts=max_attempts,
        app_settings=app_settings,
        current_logger=logger_to_use,
    )


def missing_packages(
    packages: Sequence[str],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> List[str]:
    """Return the packages from `packages` that dpkg does not report installed."""
    return [
        package
        for package in packages
        if not check_package_installed(package, app_settings, current_logger)
    ]


def apt_install(
    packages: Sequence[str],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    dry_run: bool = False,
) -> List[str]:
    """
    Install any of `packages` that are not already installed.

    Returns:
        The packages that were handed to apt-get (empty when nothing was
        missing).

    Raises:
        subprocess.CalledProcessError: apt-get failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    if not packages:
        return []
    to_install = missing_packages(packages, app_settings, logger_to_use)
    if not to_install:
        log_installer(
            f"All {len(packages)} package(s) already installed",
            "debug",
            logger_to_use,
            app_settings,
        )
        return []

    log_installer(
        f"{app_settings.symbols.get('package', '📦')} Installing packages: {' '.join(to_install)}",
        "info",
        logger_to_use,
        app_settings,
    )
    try:
        run_elevated_command(
            ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install", "-y", *to_install],
            app_settings,
            current_logger=logger_to_use,
            dry_run=dry_run,
        )
    except subprocess.CalledProcessError:
        log_installer(
            f"Failed to install packages: {' '.join(to_install)}",
            "error",
            logger_to_use,
            app_settings,
        )
        raise
    return to_install
