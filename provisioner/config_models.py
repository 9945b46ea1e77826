# provisioner/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for provisioner configuration.

This module defines the structured settings for the provisioner, including
defaults, type annotations, and descriptions. It utilizes Pydantic for data
validation and settings management.
"""

from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from provisioner import config as static_config

SYMBOLS_DEFAULT: Dict[str, str] = dict(static_config.SYMBOLS)


class PackageSettings(BaseModel):
    """Package lists installed by the declared phases."""

    core_system: List[str] = Field(
        default_factory=lambda: list(static_config.CORE_SYSTEM_PACKAGES),
        description="Base system packages installed in 00-core.",
    )
    core_utilities: List[str] = Field(
        default_factory=lambda: list(static_config.CORE_UTILITY_PACKAGES),
        description="Administration utilities installed in 00-core.",
    )
    development: List[str] = Field(
        default_factory=lambda: list(static_config.DEVELOPMENT_PACKAGES),
        description="Toolchain packages installed in 00-core.",
    )
    lowlatency_kernel: List[str] = Field(
        default_factory=lambda: list(static_config.LOWLATENCY_KERNEL_PACKAGES)
    )
    pipewire: List[str] = Field(
        default_factory=lambda: list(static_config.PIPEWIRE_PACKAGES)
    )
    audio_utilities: List[str] = Field(
        default_factory=lambda: list(static_config.AUDIO_UTILITY_PACKAGES)
    )
    plasma: List[str] = Field(
        default_factory=lambda: list(static_config.PLASMA_PACKAGES)
    )
    containers: List[str] = Field(
        default_factory=lambda: list(static_config.CONTAINER_PACKAGES)
    )


class AppSettings(BaseSettings):
    """Main provisioner settings."""

    model_config = SettingsConfigDict(
        env_prefix=static_config.ENV_PREFIX,
        env_nested_delimiter="__",
        extra="ignore",
    )

    state_dir: Path = Field(
        default=Path(static_config.STATE_DIR_DEFAULT),
        description="Durable directory holding step completion markers.",
    )
    log_dir: Path = Field(
        default=Path(static_config.LOG_DIR_DEFAULT),
        description="Directory receiving the append-only installer log.",
    )
    log_mode: str = Field(
        default=static_config.LOG_MODE_DEFAULT,
        description="Console verbosity: full, normal, minimal or quiet.",
    )
    log_prefix: str = Field(
        default=static_config.LOG_PREFIX_DEFAULT,
        description="Prefix for log messages from the installer.",
    )
    sudo_timeout: int = Field(
        default=static_config.SUDO_TIMEOUT_DEFAULT,
        description="Lifetime in seconds of the cached sudo credential.",
    )
    target_user: str = Field(
        default="",
        description="Desktop user the workstation is provisioned for. Empty means $SUDO_USER.",
    )
    packages: PackageSettings = Field(default_factory=PackageSettings)

    symbols: Dict[str, str] = Field(
        default_factory=lambda: dict(SYMBOLS_DEFAULT)
    )

    @field_validator("log_mode")
    @classmethod
    def _check_log_mode(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in static_config.LOG_MODES:
            raise ValueError(
                f"log_mode must be one of {', '.join(static_config.LOG_MODES)}, got '{value}'"
            )
        return value

    @field_validator("sudo_timeout")
    @classmethod
    def _check_sudo_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("sudo_timeout must be a positive number of seconds")
        return value
