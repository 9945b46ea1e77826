# provisioner/phase_registry.py
# -*- coding: utf-8 -*-
"""
Ordered phases of installation steps and phase-subset selection.

Phase ids carry a numeric prefix (`00-core`, `05-tweaks`); phases execute in
ascending prefix order and steps within a phase in their declared order.
"""

import logging
import re
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from provisioner import config as static_config
from provisioner.exceptions import ConfigurationError
from provisioner.step_contract import Step

module_logger = logging.getLogger(__name__)

_PHASE_ID_PATTERN = re.compile(r"^(\d+)-[a-z0-9][a-z0-9_-]*$")


class Phase(NamedTuple):
    phase_id: str
    title: str
    steps: Tuple[Step, ...]

    @property
    def number(self) -> int:
        return phase_number(self.phase_id)

    @property
    def prefix(self) -> str:
        return self.phase_id.split("-", 1)[0]


class PlannedStep(NamedTuple):
    """A step together with the phase it belongs to."""

    phase: Phase
    step: Step

    @property
    def key(self) -> str:
        return self.step.key


def phase_number(phase_id: str) -> int:
    match = _PHASE_ID_PATTERN.match(phase_id)
    if not match:
        raise ConfigurationError(
            f"Invalid phase id '{phase_id}': expected '<number>-<name>', e.g. '05-tweaks'."
        )
    return int(match.group(1))


def parse_phase_selection(raw: Optional[str]) -> List[str]:
    """Split a comma-separated `--phase` value. None selects all phases."""
    if raw is None:
        return [static_config.ALL_PHASES]
    return [item.strip() for item in raw.split(",")]


class PhaseRegistry:
    """Statically declared, ordered registry of phases and their steps."""

    def __init__(self):
        self._phases: List[Phase] = []
        self._step_keys: set = set()

    def add_phase(self, phase_id: str, title: str, steps: Iterable[Step]) -> Phase:
        """
        Register a phase.

        Raises:
            ConfigurationError: the id is malformed, its number is already
                used, or a step key is already registered.
        """
        number = phase_number(phase_id)
        for existing in self._phases:
            if existing.phase_id == phase_id or existing.number == number:
                raise ConfigurationError(
                    f"Phase '{phase_id}' conflicts with registered phase '{existing.phase_id}'."
                )
        steps = tuple(steps)
        keys_in_phase = set()
        for step in steps:
            if step.key in self._step_keys or step.key in keys_in_phase:
                raise ConfigurationError(f"Duplicate step key '{step.key}'.")
            keys_in_phase.add(step.key)

        phase = Phase(phase_id, title, steps)
        self._phases.append(phase)
        self._phases.sort(key=lambda p: p.number)
        self._step_keys.update(keys_in_phase)
        return phase

    def phases(self) -> List[Phase]:
        return list(self._phases)

    def phase(self, phase_id: str) -> Phase:
        for phase in self._phases:
            if phase.phase_id == phase_id:
                return phase
        raise ConfigurationError(f"Unknown phase '{phase_id}'.")

    def _resolve(self, selector: str) -> Phase:
        for phase in self._phases:
            if selector == phase.phase_id:
                return phase
        if selector.isdigit():
            for phase in self._phases:
                if phase.number == int(selector):
                    return phase
        known = ", ".join(p.phase_id for p in self._phases) or "none"
        raise ConfigurationError(
            f"Unknown phase '{selector}'. Known phases: {known}."
        )

    def select_phases(self, selection: Sequence[str]) -> List[Phase]:
        """
        Resolve phase selectors into registered phases in ascending order.

        Selectors are phase ids, their numeric prefix (`"05"` or `"5"`), or
        `"all"`. An empty selection or any empty or unknown selector is a
        configuration error.
        """
        if not selection:
            raise ConfigurationError("No phase selected.")
        selected_ids = set()
        for raw_selector in selection:
            selector = (raw_selector or "").strip()
            if not selector:
                raise ConfigurationError("Empty phase selector.")
            if selector == static_config.ALL_PHASES:
                selected_ids.update(p.phase_id for p in self._phases)
                continue
            selected_ids.add(self._resolve(selector).phase_id)
        if not selected_ids:
            raise ConfigurationError("No phases are registered.")
        return [p for p in self._phases if p.phase_id in selected_ids]

    def steps_for(self, selection: Sequence[str]) -> List[PlannedStep]:
        """Return the ordered steps of the selected phases."""
        return [
            PlannedStep(phase, step)
            for phase in self.select_phases(selection)
            for step in phase.steps
        ]
