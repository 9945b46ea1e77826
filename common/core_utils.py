#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Core utility functions for the provisioner.

This module provides helper functions for:
- Logging setup (console and append-only log file).
- The custom SUCCESS log level and the symbol-adding formatter.
- Console log modes (full, normal, minimal, quiet).
"""

import datetime
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from provisioner import config as static_config
from provisioner.config_models import SYMBOLS_DEFAULT

module_logger = logging.getLogger(__name__)

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

DETAILED_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s"
FILE_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
CONSOLE_LOG_FORMAT_WITH_PREFIX_PLACEHOLDER = (
    "{log_prefix}%(symbol)s [%(levelname)s] %(message)s"
)
CONSOLE_LOG_FORMAT_NO_PREFIX = "  %(symbol)s [%(levelname)s] %(message)s"

# Records carrying this attribute are printed without level decoration.
RAW_RECORD_ATTR = "installer_raw"


class SymbolFormatter(logging.Formatter):
    """
    A custom formatter that adds symbols to log messages based on the log level.
    """

    def __init__(
        self, fmt=None, datefmt=None, style="%", validate=True, symbols=None
    ):
        super().__init__(fmt, datefmt, style, validate)
        self.symbols = symbols or SYMBOLS_DEFAULT

    def format(self, record):
        if getattr(record, RAW_RECORD_ATTR, False):
            return record.getMessage()

        if record.levelno == logging.DEBUG:
            record.symbol = self.symbols.get("debug", "🐛")
        elif record.levelno == logging.INFO:
            record.symbol = self.symbols.get("info", "ℹ️")
        elif record.levelno == SUCCESS:
            record.symbol = self.symbols.get("success", "✅")
        elif record.levelno == logging.WARNING:
            record.symbol = self.symbols.get("warning", "⚠️")
        elif record.levelno == logging.ERROR:
            record.symbol = self.symbols.get("error", "❌")
        elif record.levelno == logging.CRITICAL:
            record.symbol = self.symbols.get("critical", "🔥")
        else:
            record.symbol = ""

        return super().format(record)


class LogModeFilter(logging.Filter):
    """
    Console filter implementing the installer log modes.

    full: everything; normal: no DEBUG; minimal: SUCCESS, WARNING and above
    plus raw section banners; quiet: WARNING and above only.
    """

    def __init__(self, mode: str = static_config.LOG_MODE_DEFAULT):
        super().__init__()
        if mode not in static_config.LOG_MODES:
            raise ValueError(f"Unknown log mode: {mode}")
        self.mode = mode

    def filter(self, record: logging.LogRecord) -> bool:
        if self.mode == "full":
            return True
        if self.mode == "normal":
            return record.levelno > logging.DEBUG
        if self.mode == "minimal":
            if getattr(record, RAW_RECORD_ATTR, False):
                return True
            return record.levelno >= SUCCESS
        return record.levelno >= logging.WARNING


def log_file_path_for(log_dir: Path, when: Optional[datetime.date] = None) -> Path:
    """Return the dated log file path inside `log_dir`."""
    when = when or datetime.date.today()
    return log_dir / f"{static_config.LOG_FILE_BASENAME}-{when:%Y%m%d}.log"


def _point_latest_symlink(log_file: Path) -> None:
    latest = log_file.parent / f"{static_config.LOG_FILE_BASENAME}-latest.log"
    try:
        if latest.is_symlink() or latest.exists():
            latest.unlink()
        latest.symlink_to(log_file.name)
    except OSError as e:
        module_logger.debug(f"Could not update {latest}: {e}")


def setup_logging(
    log_level: int = logging.DEBUG,
    log_dir: Optional[Path] = None,
    log_to_console: bool = True,
    log_mode: str = static_config.LOG_MODE_DEFAULT,
    log_prefix: Optional[str] = None,
    symbols: Optional[Dict[str, str]] = None,
) -> Optional[Path]:
    """
    Configure the root logger for an installer run.

    The console handler writes to stdout through a LogModeFilter. When
    `log_dir` is given, a dated append-only log file is opened there (and an
    `installer-latest.log` symlink updated); it always receives every record
    at `log_level` and above. A log directory that cannot be created degrades
    to console-only logging with a warning on stderr.

    Returns:
        The path of the log file in use, or None when logging to console only.
    """
    handlers: List[logging.Handler] = []
    symbol_map = symbols or SYMBOLS_DEFAULT
    log_file: Optional[Path] = None

    if log_dir is not None:
        try:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_file_path_for(log_dir)
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setFormatter(
                SymbolFormatter(
                    fmt=FILE_LOG_FORMAT,
                    datefmt="%Y-%m-%d %H:%M:%S",
                    symbols=symbol_map,
                )
            )
            handlers.append(file_handler)
            _point_latest_symlink(log_file)
        except OSError as e:
            print(
                f"Warning: Could not create log file in {log_dir}: {e}",
                file=sys.stderr,
            )
            log_file = None

    if log_to_console or not handlers:
        actual_prefix = (
            (log_prefix.strip() + " ")
            if log_prefix and log_prefix.strip()
            else ""
        )
        if actual_prefix:
            console_format = CONSOLE_LOG_FORMAT_WITH_PREFIX_PLACEHOLDER.format(
                log_prefix=actual_prefix
            )
        else:
            console_format = CONSOLE_LOG_FORMAT_NO_PREFIX
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            SymbolFormatter(fmt=console_format, symbols=symbol_map)
        )
        console_handler.addFilter(LogModeFilter(log_mode))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    for handler in handlers:
        root_logger.addHandler(handler)

    module_logger.debug(
        f"Logging configured. Level: {logging.getLevelName(log_level)}. "
        f"Mode: {log_mode}. File: {log_file or 'none'}. PID: {os.getpid()}"
    )
    return log_file
