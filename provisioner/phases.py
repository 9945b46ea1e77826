# provisioner/phases.py
# -*- coding: utf-8 -*-
"""
The statically declared phase registry for a workstation run.
"""

from provisioner.phase_registry import PhaseRegistry
from provisioner.steps import apps, core, lvm, plasma, studio, tweaks


def build_registry() -> PhaseRegistry:
    registry = PhaseRegistry()
    registry.add_phase("00-core", "Core system", core.build_steps())
    registry.add_phase("01-lvm", "Storage layout", lvm.build_steps())
    registry.add_phase("02-studio", "Audio studio", studio.build_steps())
    registry.add_phase("03-plasma", "KDE Plasma desktop", plasma.build_steps())
    registry.add_phase("04-apps", "Applications", apps.build_steps())
    registry.add_phase("05-tweaks", "System tweaks", tweaks.build_steps())
    return registry
