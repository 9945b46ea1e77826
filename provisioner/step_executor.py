# provisioner/step_executor.py
# -*- coding: utf-8 -*-
"""
Executes a single installation step.

Decides whether the step is already complete (live check first, state
marker otherwise), runs the body when needed, classifies the outcome and
records completion only on observed success.
"""

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from common.state_store import StateStore
from provisioner.context import ExecutionContext
from provisioner.exceptions import (
    FatalStepError,
    InstallerInterrupted,
    PrivilegeError,
    RecoverableStepError,
    StateStoreError,
)
from provisioner.phase_registry import PlannedStep
from provisioner.step_contract import StepOutcome, StepResult

module_logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


class StepReport(BaseModel):
    key: str
    phase_id: str
    status: StepStatus
    message: str = ""
    reboot_required: bool = False


def is_step_complete(
    planned: PlannedStep,
    context: ExecutionContext,
    store: StateStore,
) -> bool:
    """
    Judge whether a step's effect is already in place.

    The live check wins when the step has one. Without a check (or when the
    check cannot be evaluated) the state marker decides.
    """
    step = planned.step
    try:
        live = step.is_complete(context)
    except InstallerInterrupted:
        raise
    except Exception as e:
        context.log.warning(
            f"Completion check for '{step.key}' failed ({e}); using the state marker."
        )
        live = None

    has_marker = store.has(step.key)
    if live is None:
        return has_marker
    if live and not has_marker:
        context.log.debug(f"'{step.key}' has no marker but the live check reports it done")
    elif not live and has_marker:
        context.log.info(
            f"'{step.key}' is marked complete but the live check disagrees; running it again"
        )
    return bool(live)


def _run_body(planned: PlannedStep, context: ExecutionContext) -> StepOutcome:
    step = planned.step
    try:
        outcome = step.run(context)
    except InstallerInterrupted:
        raise
    except RecoverableStepError as e:
        return StepOutcome.recoverable(str(e))
    except (FatalStepError, PrivilegeError, StateStoreError) as e:
        return StepOutcome.fatal(str(e))
    except Exception as e:
        context.log.error(
            f"Unexpected error in step '{step.key}': {e}", exc_info=True
        )
        return StepOutcome.fatal(f"unexpected error: {e}")
    if not isinstance(outcome, StepOutcome):
        return StepOutcome.fatal(
            f"step returned {type(outcome).__name__}, expected StepOutcome"
        )
    return outcome


def _record_failure(
    store: StateStore, context: ExecutionContext, key: str, message: str, result: str
) -> None:
    try:
        store.record_error(key, message, result)
    except StateStoreError as e:
        context.log.warning(f"Could not record failure details for '{key}': {e}")


def execute_step(
    planned: PlannedStep,
    context: ExecutionContext,
    store: StateStore,
    force: Optional[bool] = None,
) -> StepReport:
    """
    Execute one planned step and return its report.

    Args:
        planned: The step and its phase.
        context: The run's execution context.
        store: Completion state store.
        force: Override `context.force` for this step.

    Returns:
        A StepReport. The marker is set only for COMPLETED reports.
        InstallerInterrupted propagates; the step is left pending.
    """
    step = planned.step
    phase_id = planned.phase.phase_id
    log = context.log
    symbols = context.settings.symbols
    force = context.force if force is None else force

    if not force and is_step_complete(planned, context, store):
        log.info(
            f"{symbols.get('skip', '⏭️')} {step.label} ({step.key}) already completed, skipping"
        )
        return StepReport(key=step.key, phase_id=phase_id, status=StepStatus.SKIPPED)

    log.step(f"{step.label} ({step.key})")
    outcome = _run_body(planned, context)

    if outcome.result is StepResult.SUCCESS:
        try:
            store.set(step.key)
        except StateStoreError as e:
            message = f"completed but its state marker could not be written: {e}"
            log.error(f"{step.label} ({step.key}) {message}")
            return StepReport(
                key=step.key,
                phase_id=phase_id,
                status=StepStatus.FATAL,
                message=message,
            )
        suffix = f": {outcome.message}" if outcome.message else ""
        log.success(f"{step.label} ({step.key}) completed{suffix}")
        return StepReport(
            key=step.key,
            phase_id=phase_id,
            status=StepStatus.COMPLETED,
            message=outcome.message,
            reboot_required=outcome.reboot_required,
        )

    if outcome.result is StepResult.RECOVERABLE:
        log.warning(
            f"{step.label} ({step.key}) failed, will retry on the next run: {outcome.message}"
        )
        _record_failure(store, context, step.key, outcome.message, outcome.result.value)
        return StepReport(
            key=step.key,
            phase_id=phase_id,
            status=StepStatus.RECOVERABLE,
            message=outcome.message,
        )

    log.error(f"{step.label} ({step.key}) failed fatally: {outcome.message}")
    _record_failure(store, context, step.key, outcome.message, outcome.result.value)
    return StepReport(
        key=step.key,
        phase_id=phase_id,
        status=StepStatus.FATAL,
        message=outcome.message,
    )
