# common/log_utils.py
# -*- coding: utf-8 -*-
"""
Leveled, sectioned logging consumed by every installer step.

InstallerLogger wraps a standard `logging.Logger` and adds the installer
vocabulary: section banners, step lines and a SUCCESS level. Reporting never
controls flow: `error` only records the message.
"""

import logging
from typing import Dict, Optional

from common.core_utils import RAW_RECORD_ATTR, SUCCESS
from provisioner.config_models import SYMBOLS_DEFAULT

BANNER_WIDTH = 60


class InstallerLogger:
    """Section/step/info/warning/error/success emission over stdlib logging."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        symbols: Optional[Dict[str, str]] = None,
    ):
        self.logger = logger or logging.getLogger("provisioner")
        self.symbols = symbols or SYMBOLS_DEFAULT
        self.current_section: Optional[str] = None

    def section(self, title: str) -> None:
        """Print a section banner. A new section implicitly ends the previous one."""
        self.current_section = title
        rule = self.symbols.get("section", "=") * BANNER_WIDTH
        for line in ("", rule, f"  {title}", rule, ""):
            self.logger.info(line, extra={RAW_RECORD_ATTR: True})

    def step(self, description: str) -> None:
        self.logger.info(
            f"{self.symbols.get('step', '▶')} {description}",
            extra={RAW_RECORD_ATTR: True},
        )

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str, exc_info: bool = False) -> None:
        self.logger.error(message, exc_info=exc_info)

    def success(self, message: str) -> None:
        self.logger.log(SUCCESS, message)

    def log(self, level: str, message: str, exc_info: bool = False) -> None:
        """Dispatch by level name, as used by `log_installer`."""
        if level == "section":
            self.section(message)
        elif level == "step":
            self.step(message)
        elif level == "success":
            self.success(message)
        elif level == "warning":
            self.warning(message)
        elif level == "error":
            self.error(message, exc_info=exc_info)
        elif level == "critical":
            self.logger.critical(message, exc_info=exc_info)
        elif level == "debug":
            self.debug(message)
        else:
            self.info(message)
