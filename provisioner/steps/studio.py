# provisioner/steps/studio.py
# -*- coding: utf-8 -*-
"""
Phase 02-studio: low-latency kernel, PipeWire audio stack and real-time
scheduling limits for the audio group.
"""

from pathlib import Path
from typing import List, Optional

from common.system_utils import is_running_in_vm
from provisioner.context import ExecutionContext
from provisioner.step_contract import Step, StepOutcome
from provisioner.steps.base import (
    ConfigFileStep,
    GroupMembershipStep,
    PackageInstallStep,
)

AUDIO_LIMITS_FILE = Path("/etc/security/limits.d/audio.conf")
AUDIO_LIMITS_CONTENT = (
    "# Real-time audio limits, managed by workstation-provisioner\n"
    "@audio   -  rtprio     95\n"
    "@audio   -  memlock    unlimited\n"
    "@audio   -  nice       -19\n"
)


class LowLatencyKernelStep(PackageInstallStep):
    """Installs the low-latency kernel. Not needed inside a virtual machine."""

    def is_complete(self, context: ExecutionContext) -> Optional[bool]:
        if is_running_in_vm(context.settings, context.log.logger):
            return True
        return super().is_complete(context)

    def run(self, context: ExecutionContext) -> StepOutcome:
        outcome = super().run(context)
        if outcome.reboot_required:
            context.log.warning(
                "A system reboot is required to activate the low-latency kernel"
            )
        return outcome


def build_steps() -> List[Step]:
    return [
        LowLatencyKernelStep(
            "lowlatency-kernel_install",
            "Install low-latency kernel",
            "lowlatency_kernel",
            required=False,
            reboot_when_installed=True,
        ),
        PackageInstallStep(
            "audio-base_pipewire",
            "Install PipeWire audio stack",
            "pipewire",
            required=True,
        ),
        PackageInstallStep(
            "audio-base_utilities",
            "Install audio utilities",
            "audio_utilities",
            required=False,
        ),
        ConfigFileStep(
            "realtime-config_limits",
            "Configure real-time limits for the audio group",
            AUDIO_LIMITS_FILE,
            AUDIO_LIMITS_CONTENT,
        ),
        GroupMembershipStep(
            "realtime-config_audio-group",
            "Add user to audio groups",
            ["audio", "video", "plugdev"],
        ),
    ]
