# provisioner/context.py
# -*- coding: utf-8 -*-
"""
Per-invocation execution context handed to every step.
"""

from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from common.file_utils import RunResources
from common.log_utils import InstallerLogger
from common.privilege import PrivilegeSession
from provisioner import config as static_config
from provisioner.config_models import AppSettings


class ExecutionContext(BaseModel):
    """Constructed once per run and read-only afterwards. Never persisted."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    settings: AppSettings = Field(default_factory=AppSettings)
    force: bool = False
    interactive: bool = True
    dry_run: bool = False
    phases: Tuple[str, ...] = (static_config.ALL_PHASES,)
    sudo_timeout: int = static_config.SUDO_TIMEOUT_DEFAULT
    log_file: Optional[Path] = None
    privilege: Optional[PrivilegeSession] = None
    resources: RunResources = Field(default_factory=RunResources)
    log: InstallerLogger = Field(default_factory=InstallerLogger)
