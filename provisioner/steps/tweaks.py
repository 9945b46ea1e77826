# provisioner/steps/tweaks.py
# -*- coding: utf-8 -*-
"""
Phase 05-tweaks: kernel tunables for desktop responsiveness and networking.
"""

from typing import List

from provisioner import config as static_config
from provisioner.step_contract import Step
from provisioner.steps.base import SysctlStep


def build_steps() -> List[Step]:
    return [
        SysctlStep(
            "system-performance_sysctl",
            "Apply system performance tunables",
            static_config.SYSCTL_PERFORMANCE_FILE,
            static_config.SYSCTL_PERFORMANCE_SETTINGS,
        ),
        SysctlStep(
            "network-tweaks_sysctl",
            "Apply network tunables",
            static_config.SYSCTL_NETWORK_FILE,
            static_config.SYSCTL_NETWORK_SETTINGS,
        ),
    ]
