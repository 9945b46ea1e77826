# provisioner/cli_handler.py
# -*- coding: utf-8 -*-
"""
Handles Command Line Interface (CLI) interactions for the provisioner:
prompts and the read-only maintenance views.
"""

import logging
from typing import Optional

from common.command_utils import log_installer
from common.state_store import StateStore
from provisioner import config as static_config
from provisioner.config_models import AppSettings
from provisioner.phase_registry import PhaseRegistry

module_logger = logging.getLogger(__name__)


def prompt_yes_no(
    prompt_message: str,
    app_settings: AppSettings,
    current_logger_instance: Optional[logging.Logger] = None,
) -> bool:
    """
    Ask a yes/no question on the terminal. Defaults to "No", including on EOF.

    Returns:
        True if the user answers "y" or "yes" (any case), otherwise False.
    """
    logger_to_use = (
        current_logger_instance if current_logger_instance else module_logger
    )
    symbols = app_settings.symbols
    try:
        user_input = (
            input(f"   {symbols.get('info', 'ℹ️')} {prompt_message} (y/N): ")
            .strip()
            .lower()
        )
        return user_input in ("y", "yes")
    except EOFError:
        log_installer(
            f"{symbols.get('warning', '!')} No user input (EOF), defaulting to 'N' for prompt: '{prompt_message}'",
            "warning",
            logger_to_use,
            app_settings,
        )
        return False


def list_phases(registry: PhaseRegistry) -> str:
    """Return a listing of the registered phases and their step keys."""
    lines = []
    for phase in registry.phases():
        lines.append(f"{phase.phase_id}  {phase.title}")
        for step in phase.steps:
            lines.append(f"    {step.key:<40} {step.label}")
    return "\n".join(lines)


def view_state(store: StateStore, registry: Optional[PhaseRegistry] = None) -> str:
    """
    Return a report of completed steps, the resume point and failure records.

    With a registry, markers are grouped by phase and pending steps listed.
    """
    completed = set(store.completed_keys())
    lines = [f"Completed steps: {len(completed)}"]

    if registry is not None:
        known = set()
        for phase in registry.phases():
            lines.append(f"  {phase.phase_id}:")
            for step in phase.steps:
                known.add(step.key)
                if step.key in completed:
                    lines.append(f"    [x] {step.key}  ({store.completed_at(step.key) or '?'})")
                else:
                    lines.append(f"    [ ] {step.key}")
        unknown = sorted(completed - known)
        if unknown:
            lines.append("  Markers for unregistered steps:")
            lines.extend(f"    {key}" for key in unknown)
    else:
        lines.extend(
            f"  {key}  ({store.completed_at(key) or '?'})"
            for key in sorted(completed)
        )

    resume = store.resume_point()
    if resume is not None:
        phase_id, next_step = resume
        lines.append(f"Reboot pending; resume at phase {phase_id} step {next_step or '-'}")

    errors = store.error_records()
    if errors:
        lines.append(f"Recorded failures: {len(errors)}")
        for record in errors[-10:]:
            lines.append(
                f"  {record.get('timestamp', '?')} {record.get('step', '?')} "
                f"[{record.get('result', '?')}] {record.get('message', '')}"
            )
    return "\n".join(lines)


def view_configuration(app_config: AppSettings) -> str:
    """Return the effective configuration values as text."""
    symbols = app_config.symbols
    config_text = f"{symbols.get('info', 'ℹ️')} Current effective configuration values (CLI > YAML > ENV > Defaults):\n\n"
    config_text += f"  State Directory:               {app_config.state_dir}\n"
    config_text += f"  Log Directory:                 {app_config.log_dir}\n"
    config_text += f"  Log Mode:                      {app_config.log_mode}\n"
    config_text += f"  Log Prefix:                    {app_config.log_prefix}\n"
    config_text += f"  Sudo Timeout (seconds):        {app_config.sudo_timeout}\n"
    config_text += f"  Target User:                   {app_config.target_user or '[invoking user]'}\n\n"
    config_text += "  Package Lists (packages.*):\n"
    for name, packages in app_config.packages.model_dump().items():
        config_text += f"    {name + ':':<28} {' '.join(packages) or '-'}\n"
    config_text += f"\n  Script Version:                {static_config.SCRIPT_VERSION}\n"
    return config_text
