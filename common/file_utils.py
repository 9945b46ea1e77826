# common/file_utils.py
# -*- coding: utf-8 -*-
"""
File system helpers: scoped run resources, the run lock, backups and
privileged configuration file writes.
"""

import contextlib
import datetime
import fcntl
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Optional

from provisioner.config_models import SYMBOLS_DEFAULT, AppSettings
from provisioner.exceptions import ConfigurationError

from .command_utils import log_installer, run_elevated_command

module_logger = logging.getLogger(__name__)


class RunLock:
    """Exclusive, non-blocking `fcntl` lock on a file in the state directory."""

    def __init__(self, lock_path: Path):
        self.lock_path = Path(lock_path)
        self._fd: Optional[int] = None

    def acquire(self) -> "RunLock":
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o640)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot open run lock {self.lock_path}: {e}"
            ) from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            os.close(fd)
            raise ConfigurationError(
                f"Another installer run holds {self.lock_path}; refusing to start."
            ) from e
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        return self

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def __enter__(self) -> "RunLock":
        return self.acquire()

    def __exit__(self, *exc_info) -> None:
        self.release()


class RunResources:
    """
    Resources acquired during a run, released on every exit path.

    Steps obtain scratch directories and register cleanup callbacks here
    instead of installing their own signal handlers. `close()` runs the
    registered releases in reverse order; the orchestrator calls it from a
    `finally` block, so it also runs after an interrupt.
    """

    def __init__(self, current_logger: Optional[logging.Logger] = None):
        self._stack = contextlib.ExitStack()
        self.logger = current_logger if current_logger else module_logger
        self.closed = False

    def scratch_dir(self, prefix: str = "installer-") -> Path:
        """Create a temporary directory removed when the run ends."""
        tmp_dir = self._stack.enter_context(
            tempfile.TemporaryDirectory(prefix=prefix)
        )
        self.logger.debug(f"Created scratch directory {tmp_dir}")
        return Path(tmp_dir)

    def callback(self, func: Callable, *args, **kwargs) -> None:
        """Register `func(*args, **kwargs)` to run when the run ends."""
        self._stack.callback(func, *args, **kwargs)

    def enter_context(self, cm):
        return self._stack.enter_context(cm)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.logger.debug("Releasing run resources")
        self._stack.close()

    def __enter__(self) -> "RunResources":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def backup_file(
    file_path: str,
    app_settings: Optional[AppSettings],
    current_logger: Optional[logging.Logger] = None,
    dry_run: bool = False,
) -> bool:
    """
    Copy `file_path` to `<file_path>.bak.<timestamp>` with root privileges.

    Returns:
        True if the backup succeeded or no backup was needed (the file does
        not exist). False if the copy failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = (
        app_settings.symbols
        if app_settings and app_settings.symbols
        else SYMBOLS_DEFAULT
    )

    if not os.path.isfile(file_path):
        log_installer(
            f"{symbols.get('info', 'ℹ️')} File {file_path} does not exist. No backup needed.",
            "debug",
            logger_to_use,
            app_settings,
        )
        return True

    timestamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
    backup_path = f"{file_path}.bak.{timestamp}"
    try:
        run_elevated_command(
            ["cp", "-a", file_path, backup_path],
            app_settings,
            current_logger=logger_to_use,
            dry_run=dry_run,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        log_installer(
            f"{symbols.get('error', '❌')} Failed to backup {file_path} to {backup_path}: {e}",
            "error",
            logger_to_use,
            app_settings,
        )
        return False
    log_installer(
        f"Backed up {file_path} to {backup_path}",
        "info",
        logger_to_use,
        app_settings,
    )
    return True


def write_system_file(
    file_path: str,
    content: str,
    app_settings: Optional[AppSettings],
    mode: str = "0644",
    backup: bool = True,
    current_logger: Optional[logging.Logger] = None,
    dry_run: bool = False,
) -> None:
    """
    Write `content` to a root-owned file via `tee`, backing up any old copy.

    Raises:
        subprocess.CalledProcessError: the write or chmod failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    if backup and not backup_file(file_path, app_settings, logger_to_use, dry_run):
        raise subprocess.CalledProcessError(1, ["cp", "-a", file_path])
    run_elevated_command(
        ["mkdir", "-p", os.path.dirname(file_path) or "/"],
        app_settings,
        current_logger=logger_to_use,
        dry_run=dry_run,
    )
    run_elevated_command(
        ["tee", file_path],
        app_settings,
        cmd_input=content,
        capture_output=True,
        current_logger=logger_to_use,
        dry_run=dry_run,
    )
    run_elevated_command(
        ["chmod", mode, file_path],
        app_settings,
        current_logger=logger_to_use,
        dry_run=dry_run,
    )


def file_has_content(file_path: str, content: str) -> bool:
    """Return True if `file_path` exists and already holds exactly `content`."""
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return f.read() == content
    except OSError:
        return False

