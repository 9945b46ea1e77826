# provisioner/steps/apps.py
# -*- coding: utf-8 -*-
"""
Phase 04-apps: container tooling.
"""

from typing import List

from provisioner.step_contract import Step
from provisioner.steps.base import GroupMembershipStep, PackageInstallStep


def build_steps() -> List[Step]:
    return [
        PackageInstallStep(
            "container-tools_docker",
            "Install Docker engine and compose",
            "containers",
            required=False,
        ),
        GroupMembershipStep(
            "container-tools_docker-group",
            "Add user to the docker group",
            ["docker"],
        ),
    ]
