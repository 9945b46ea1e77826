# common/command_utils.py
# -*- coding: utf-8 -*-
"""
Utilities for executing shell commands and logging their output.
"""

import logging
import os
import shutil
import subprocess
import time
from typing import Callable, Dict, List, Optional, Sequence, Union

from common.core_utils import SUCCESS
from provisioner.config_models import SYMBOLS_DEFAULT, AppSettings

module_logger = logging.getLogger(__name__)


def _symbols(app_settings: Optional[AppSettings]) -> Dict[str, str]:
    return (
        app_settings.symbols
        if app_settings and app_settings.symbols
        else SYMBOLS_DEFAULT
    )


def log_installer(
    message: str,
    level: str = "info",
    current_logger: Optional[logging.Logger] = None,
    app_settings: Optional[AppSettings] = None,
    exc_info: bool = False,
) -> None:
    """
    Log a message at the named installer level.

    Args:
        message: The log message to be recorded.
        level: One of "debug", "info", "success", "warning", "error" or
            "critical". Unknown levels are logged as info.
        current_logger: Logger to use. Defaults to the module logger.
        app_settings: Optional settings; accepted for call-site symmetry with
            the other helpers in this module.
        exc_info: Include exception information in the record.
    """
    effective_logger = current_logger if current_logger else module_logger

    if level == "warning":
        effective_logger.warning(message, exc_info=exc_info)
    elif level == "error":
        effective_logger.error(message, exc_info=exc_info)
    elif level == "critical":
        effective_logger.critical(message, exc_info=exc_info)
    elif level == "debug":
        effective_logger.debug(message, exc_info=exc_info)
    elif level == "success":
        effective_logger.log(SUCCESS, message, exc_info=exc_info)
    else:
        effective_logger.info(message, exc_info=exc_info)


def _get_elevated_command_prefix() -> List[str]:
    """
    Return `["sudo"]` when the process is not already root, else `[]`.
    """
    return [] if os.geteuid() == 0 else ["sudo"]


def run_command(
    command: Union[List[str], str],
    app_settings: Optional[AppSettings],
    check: bool = True,
    shell: bool = False,
    capture_output: bool = False,
    text: bool = True,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    dry_run: bool = False,
) -> subprocess.CompletedProcess:
    """
    Execute a system command, logging the command line and its output.

    Args:
        command: The command as an argument list, or a string when `shell`
            is True.
        app_settings: Settings providing log symbols.
        check: Raise CalledProcessError on a non-zero exit code.
        shell: Run through the shell.
        capture_output: Capture stdout/stderr (logged at debug level).
        text: Decode output streams as text.
        cmd_input: Data passed to the command's standard input.
        current_logger: Logger to use. Defaults to the module logger.
        cwd: Working directory for the command.
        env: Environment for the command.
        dry_run: Log the command and return a successful result without
            executing it.

    Returns:
        The completed process.

    Raises:
        subprocess.CalledProcessError: non-zero exit with `check=True`.
        FileNotFoundError: the executable does not exist.
    """
    effective_logger = current_logger if current_logger else module_logger
    symbols = _symbols(app_settings)
    command_to_run: Union[List[str], str]

    if shell:
        command_to_run = (
            " ".join(command) if isinstance(command, list) else command
        )
        command_to_log_str = str(command_to_run)
    else:
        if isinstance(command, str):
            log_installer(
                f"{symbols.get('warning', '!')} Running string command '{command}' without shell=True. Consider list format.",
                "warning",
                effective_logger,
                app_settings,
            )
            command_to_run = command.split()
            command_to_log_str = command
        else:
            command_to_run = list(command)
            command_to_log_str = subprocess.list2cmdline(command_to_run)

    if dry_run:
        log_installer(
            f"[DRY RUN] Would execute: {command_to_log_str}",
            "info",
            effective_logger,
            app_settings,
        )
        return subprocess.CompletedProcess(
            command_to_run, 0, stdout="" if text else b"", stderr="" if text else b""
        )

    log_installer(
        f"{symbols.get('gear', '⚙️')} Executing: {command_to_log_str} {f'(in {cwd})' if cwd else ''}".rstrip(),
        "debug",
        effective_logger,
        app_settings,
    )
    try:
        result = subprocess.run(
            command_to_run,
            check=check,
            shell=shell,
            capture_output=capture_output,
            text=text,
            input=cmd_input,
            cwd=cwd,
            env=env,
        )
        if capture_output:
            if result.stdout and result.stdout.strip():
                log_installer(
                    f"   stdout: {result.stdout.strip()}",
                    "debug",
                    effective_logger,
                    app_settings,
                )
            if result.stderr and result.stderr.strip():
                log_installer(
                    f"   stderr: {result.stderr.strip()}",
                    "debug",
                    effective_logger,
                    app_settings,
                )
        return result
    except subprocess.CalledProcessError as e:
        log_installer(
            f"{symbols.get('error', '❌')} Command `{command_to_log_str}` failed (rc {e.returncode}).",
            "error",
            effective_logger,
            app_settings,
        )
        if e.stdout and hasattr(e.stdout, "strip") and e.stdout.strip():
            log_installer(
                f"   stdout: {e.stdout.strip()}",
                "error",
                effective_logger,
                app_settings,
            )
        if e.stderr and hasattr(e.stderr, "strip") and e.stderr.strip():
            log_installer(
                f"   stderr: {e.stderr.strip()}",
                "error",
                effective_logger,
                app_settings,
            )
        raise
    except FileNotFoundError as e:
        log_installer(
            f"{symbols.get('error', '❌')} Command not found: {e.filename}. Ensure it's installed and in PATH.",
            "error",
            effective_logger,
            app_settings,
        )
        raise


def run_elevated_command(
    command: List[str],
    app_settings: Optional[AppSettings],
    check: bool = True,
    capture_output: bool = False,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    dry_run: bool = False,
) -> subprocess.CompletedProcess:
    """
    Execute `command` with root privileges, prefixing `sudo` when needed.

    Accepts the same arguments as `run_command` (without `shell`).
    """
    elevated_command_list = _get_elevated_command_prefix() + list(command)
    return run_command(
        elevated_command_list,
        app_settings,
        check=check,
        shell=False,
        capture_output=capture_output,
        text=True,
        cmd_input=cmd_input,
        current_logger=current_logger,
        cwd=cwd,
        env=env,
        dry_run=dry_run,
    )


def command_exists(command_name: str) -> bool:
    """Return True if `command_name` is found on PATH."""
    return shutil.which(command_name) is not None


def check_required_commands(
    command_names: Sequence[str],
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> List[str]:
    """
    Return the subset of `command_names` that is missing from PATH.

    Missing commands are logged as an error together with an install hint.
    """
    missing = [name for name in command_names if not command_exists(name)]
    if missing:
        symbols = _symbols(app_settings)
        log_installer(
            f"{symbols.get('error', '❌')} Required commands not found: {' '.join(missing)}",
            "error",
            current_logger,
            app_settings,
        )
        log_installer(
            f"Please install them using: apt install {' '.join(missing)}",
            "info",
            current_logger,
            app_settings,
        )
    return missing


def retry_command(
    func: Callable[[], subprocess.CompletedProcess],
    max_attempts: int = 3,
    delay_seconds: float = 5.0,
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> subprocess.CompletedProcess:
    """
    Call `func` until it succeeds or `max_attempts` is reached.

    `func` is expected to raise CalledProcessError on failure (for example a
    `run_command` call with `check=True`). The last error is re-raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    symbols = _symbols(app_settings)
    attempt = 1
    while True:
        try:
            return func()
        except subprocess.CalledProcessError as e:
            if attempt >= max_attempts:
                log_installer(
                    f"{symbols.get('error', '❌')} Command failed after {attempt} attempts: {e.cmd}",
                    "error",
                    current_logger,
                    app_settings,
                )
                raise
            log_installer(
                f"{symbols.get('warning', '!')} Command failed (attempt {attempt}/{max_attempts}), retrying in {delay_seconds}s: {e.cmd}",
                "warning",
                current_logger,
                app_settings,
            )
            (sleep or time.sleep)(delay_seconds)
            attempt += 1


def check_package_installed(
    package_name: str,
    app_settings: Optional[AppSettings],
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Check with `dpkg-query` whether `package_name` is installed.

    Returns False when dpkg-query is missing or reports any other status.
    """
    try:
        result = run_command(
            ["dpkg-query", "-W", "-f=${Status}", package_name],
            app_settings,
            check=False,
            capture_output=True,
            text=True,
            current_logger=current_logger,
        )
    except FileNotFoundError:
        log_installer(
            f"{_symbols(app_settings).get('warning', '!')} dpkg-query not found; cannot check package '{package_name}'.",
            "warning",
            current_logger,
            app_settings,
        )
        return False
    return result.returncode == 0 and "install ok installed" in (result.stdout or "")
