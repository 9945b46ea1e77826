# provisioner/main_installer.py
# -*- coding: utf-8 -*-
"""
Main entry point for the workstation provisioner.

Handles argument parsing, configuration and logging setup, the maintenance
actions (list phases, view or reset state) and hands the selected phases to
the orchestrator.
"""

import argparse
import logging
import sys
from typing import List, Optional

from common.core_utils import setup_logging
from common.file_utils import RunLock, RunResources
from common.log_utils import InstallerLogger
from common.privilege import PrivilegeSession
from common.state_store import FileStateStore, InMemoryStateStore, StateStore
from provisioner import config as static_config
from provisioner.cli_handler import (
    list_phases,
    prompt_yes_no,
    view_configuration,
    view_state,
)
from provisioner.config_loader import load_app_settings
from provisioner.config_models import AppSettings
from provisioner.context import ExecutionContext
from provisioner.exceptions import ConfigurationError, StateStoreError
from provisioner.orchestrator import Orchestrator
from provisioner.phase_registry import PhaseRegistry, parse_phase_selection
from provisioner.phases import build_registry

logger = logging.getLogger("provisioner")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workstation-provisioner",
        description="Phased, resumable workstation provisioning. Completed steps are skipped on re-runs.",
        epilog="Example: sudo workstation-provisioner --phase 00-core,01-lvm",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--phase",
        default=None,
        help="Comma-separated phases to run (ids such as 05-tweaks, numeric prefixes, or 'all'). Default: all.",
    )
    parser.add_argument("--force", action="store_true", help="Re-run steps of the selected phases even if already completed.")
    parser.add_argument("--non-interactive", action="store_true", help="Never prompt; continue past recoverable failures.")
    parser.add_argument("--dry-run", action="store_true", help="Log the commands that would run without executing them or recording state.")
    parser.add_argument("--config", default=static_config.CONFIG_FILE_DEFAULT, help="Path to the YAML configuration file.")

    config_group = parser.add_argument_group("Configuration Overrides")
    config_group.add_argument("--state-dir", default=None, help="Directory holding step completion markers.")
    config_group.add_argument("--log-dir", default=None, help="Directory for the installer log file.")
    config_group.add_argument("--log-mode", choices=static_config.LOG_MODES, default=None, help="Console verbosity.")
    config_group.add_argument("--log-prefix", default=None, help="Prefix for console log messages.")
    config_group.add_argument("--sudo-timeout", type=int, default=None, help="Sudo credential cache lifetime in seconds.")
    config_group.add_argument("--target-user", default=None, help="Desktop user to provision (default: $SUDO_USER).")

    maint_group = parser.add_argument_group("Maintenance (run nothing else)")
    maint_group.add_argument("--list-phases", action="store_true", help="List registered phases and steps and exit.")
    maint_group.add_argument("--view-config", action="store_true", help="View current configuration settings and exit.")
    maint_group.add_argument("--view-state", action="store_true", help="View completed steps and recorded failures and exit.")
    maint_group.add_argument("--reset-step", action="append", default=[], metavar="KEY", help="Remove the completion marker of a step (repeatable) and exit.")
    maint_group.add_argument("--clear-state", action="store_true", help="Remove all completion markers and exit.")
    return parser


def _run_maintenance(
    parsed_args: argparse.Namespace,
    app_settings: AppSettings,
    registry: PhaseRegistry,
    store: StateStore,
) -> Optional[int]:
    """Run a maintenance action if one was requested. Returns its exit code."""
    if parsed_args.list_phases:
        print(list_phases(registry))
        return static_config.EXIT_OK
    if parsed_args.view_config:
        print(view_configuration(app_settings))
        return static_config.EXIT_OK
    if parsed_args.view_state:
        print(view_state(store, registry))
        return static_config.EXIT_OK
    if parsed_args.reset_step:
        for key in parsed_args.reset_step:
            if store.reset(key):
                logger.info(f"Reset step '{key}'")
            else:
                logger.warning(f"Step '{key}' was not marked as completed")
        return static_config.EXIT_OK
    if parsed_args.clear_state:
        if not parsed_args.non_interactive and not prompt_yes_no(
            "Remove ALL completion markers?", app_settings, logger
        ):
            logger.info("State left unchanged.")
            return static_config.EXIT_OK
        removed = store.clear()
        logger.info(f"Removed {removed} completion marker(s)")
        return static_config.EXIT_OK
    return None


def main(args: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        parsed_args = parser.parse_args(args)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else static_config.EXIT_CONFIG_ERROR

    setup_logging(log_level=logging.INFO, log_to_console=True)

    try:
        app_settings = load_app_settings(parsed_args, current_logger=logger)
        registry = build_registry()
    except ConfigurationError as e:
        logger.error(str(e))
        return static_config.EXIT_CONFIG_ERROR

    file_store = FileStateStore(app_settings.state_dir, current_logger=logger)

    try:
        maintenance_code = _run_maintenance(parsed_args, app_settings, registry, file_store)
    except ValueError as e:
        logger.error(str(e))
        return static_config.EXIT_CONFIG_ERROR
    except StateStoreError as e:
        logger.error(str(e))
        return static_config.EXIT_FATAL
    if maintenance_code is not None:
        return maintenance_code

    log_file = setup_logging(
        log_level=logging.DEBUG,
        log_dir=None if parsed_args.dry_run else app_settings.log_dir,
        log_mode=app_settings.log_mode,
        log_prefix=app_settings.log_prefix,
        symbols=app_settings.symbols,
    )

    try:
        phases = parse_phase_selection(parsed_args.phase)
        registry.select_phases(phases)
    except ConfigurationError as e:
        logger.error(str(e))
        return static_config.EXIT_CONFIG_ERROR

    resources = RunResources(current_logger=logger)
    store: StateStore = file_store
    if parsed_args.dry_run:
        store = InMemoryStateStore(completed=file_store.completed_keys())
    else:
        try:
            lock = RunLock(app_settings.state_dir / static_config.RUN_LOCK_FILENAME)
            resources.enter_context(lock)
        except ConfigurationError as e:
            logger.error(str(e))
            resources.close()
            return static_config.EXIT_CONFIG_ERROR

    context = ExecutionContext(
        settings=app_settings,
        force=parsed_args.force,
        interactive=not parsed_args.non_interactive,
        dry_run=parsed_args.dry_run,
        phases=tuple(phases),
        sudo_timeout=app_settings.sudo_timeout,
        log_file=log_file,
        privilege=PrivilegeSession(
            app_settings,
            timeout_seconds=app_settings.sudo_timeout,
            dry_run=parsed_args.dry_run,
            current_logger=logger,
        ),
        resources=resources,
        log=InstallerLogger(logger, app_settings.symbols),
    )

    logger.info(
        f"Workstation provisioner v{static_config.SCRIPT_VERSION}: phases {', '.join(phases)}"
        + (" (force)" if context.force else "")
        + (" (dry run)" if context.dry_run else "")
    )
    try:
        summary = Orchestrator(registry, store, context).run()
    except ConfigurationError as e:
        logger.error(str(e))
        resources.close()
        return static_config.EXIT_CONFIG_ERROR
    except StateStoreError as e:
        logger.critical(f"State store failure: {e}")
        resources.close()
        return static_config.EXIT_FATAL
    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
