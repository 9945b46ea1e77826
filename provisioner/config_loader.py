# provisioner/config_loader.py
# -*- coding: utf-8 -*-
"""
Configuration loader for the provisioner.

Handles loading settings from Pydantic model defaults, environment variables,
a YAML file and command-line arguments, applying this order of precedence:
1. Pydantic Model Defaults
2. Environment Variables (PROVISIONER_*, loaded by BaseSettings)
3. YAML Configuration File
4. Command-Line Arguments
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from provisioner import config as static_config
from provisioner.config_models import AppSettings
from provisioner.exceptions import ConfigurationError

module_logger = logging.getLogger(__name__)

# CLI destination name -> settings key. Nested keys use dots.
CLI_SETTING_KEYS: Dict[str, str] = {
    "state_dir": "state_dir",
    "log_dir": "log_dir",
    "log_mode": "log_mode",
    "log_prefix": "log_prefix",
    "sudo_timeout": "sudo_timeout",
    "target_user": "target_user",
}


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Recursively update `source` with values from `overrides`.

    Nested dictionaries are merged key by key; any other value in `overrides`
    replaces the one in `source`. `None` values never clobber an existing key.
    """
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and key in source
            and isinstance(source[key], dict)
        ):
            source[key] = _deep_update(source[key], value)
        elif value is not None:
            source[key] = value
        elif key not in source:
            source[key] = value
    return source


def load_yaml_config(
    config_file_path: Path,
    current_logger: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """
    Read a YAML mapping from `config_file_path`.

    A missing file yields an empty mapping. A file that cannot be parsed, or
    that does not hold a mapping, is a configuration error.
    """
    logger_to_use = current_logger if current_logger else module_logger

    if not config_file_path.is_file():
        logger_to_use.info(
            f"Configuration file '{config_file_path}' not found. Using defaults, environment variables, and CLI args."
        )
        return {}

    try:
        with open(config_file_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Could not parse YAML config file '{config_file_path}': {e}"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Could not read config file '{config_file_path}': {e}"
        ) from e

    if yaml_data is None:
        return {}
    if not isinstance(yaml_data, dict):
        raise ConfigurationError(
            f"Config file '{config_file_path}' does not contain a YAML mapping."
        )

    logger_to_use.info(f"Loaded configuration from {config_file_path}")
    return yaml_data


def _cli_overrides(cli_args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for cli_key, setting_key in CLI_SETTING_KEYS.items():
        cli_value = getattr(cli_args, cli_key, None)
        if cli_value is None:
            continue
        target = overrides
        *parents, leaf = setting_key.split(".")
        for parent in parents:
            target = target.setdefault(parent, {})
        target[leaf] = cli_value
    return overrides


def load_app_settings(
    cli_args: Optional[argparse.Namespace] = None,
    config_file_path: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
) -> AppSettings:
    """
    Load provisioner settings with the documented precedence.

    Args:
        cli_args: Parsed command-line arguments (from argparse).
        config_file_path: Path to the YAML configuration file. Falls back to
            `cli_args.config`, then to `config.yaml` in the working directory.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        An instance of AppSettings with the fully resolved configuration.

    Raises:
        ConfigurationError: the YAML file is unreadable or the merged values
            fail validation.
    """
    logger_to_use = current_logger if current_logger else module_logger

    if config_file_path is None and cli_args is not None:
        config_file_path = getattr(cli_args, "config", None)
    yaml_path = Path(config_file_path or static_config.CONFIG_FILE_DEFAULT)

    try:
        # Model defaults < environment variables.
        current_values = AppSettings().model_dump()
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid {static_config.ENV_PREFIX}* environment settings: {e}"
        ) from e

    current_values = _deep_update(
        current_values, load_yaml_config(yaml_path, logger_to_use)
    )

    if cli_args is not None:
        current_values = _deep_update(current_values, _cli_overrides(cli_args))

    try:
        final_settings = AppSettings(**current_values)
    except ValidationError as e:
        logger_to_use.error(f"Configuration validation failed: {e}")
        raise ConfigurationError(f"Configuration error: {e}") from e

    logger_to_use.debug("Successfully loaded and validated provisioner settings")
    return final_settings
