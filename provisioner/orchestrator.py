# provisioner/orchestrator.py
# -*- coding: utf-8 -*-
"""
Drives a provisioning run across the selected phases.

For every planned step the orchestrator consults the state store (and the
step's live check), runs pending bodies, commits markers on success,
continues past recoverable failures and aborts on the first fatal one.
SIGINT and SIGTERM are turned into InstallerInterrupted for the duration of
the run so that scoped resources are always released.
"""

import contextlib
import logging
import signal
import time
from typing import Callable, Iterator, List, Optional

from pydantic import BaseModel, Field

from common.state_store import StateStore
from common.system_utils import format_elapsed
from provisioner import config as static_config
from provisioner.cli_handler import prompt_yes_no
from provisioner.context import ExecutionContext
from provisioner.exceptions import InstallerInterrupted, PrivilegeError
from provisioner.phase_registry import PhaseRegistry, PlannedStep
from provisioner.step_executor import StepReport, StepStatus, execute_step

module_logger = logging.getLogger(__name__)

CONTINUE_PROMPT = "Continue with installation despite errors?"


class RunSummary(BaseModel):
    """Outcome of one orchestrator run."""

    exit_code: int = static_config.EXIT_OK
    reports: List[StepReport] = Field(default_factory=list)
    elapsed_seconds: float = 0.0
    stopped_for_reboot: bool = False
    interrupted: bool = False
    aborted_reason: str = ""

    def keys_with(self, status: StepStatus) -> List[str]:
        return [r.key for r in self.reports if r.status is status]

    @property
    def completed(self) -> List[str]:
        return self.keys_with(StepStatus.COMPLETED)

    @property
    def skipped(self) -> List[str]:
        return self.keys_with(StepStatus.SKIPPED)

    @property
    def warned(self) -> List[str]:
        return self.keys_with(StepStatus.RECOVERABLE)

    @property
    def failed(self) -> List[str]:
        return self.keys_with(StepStatus.FATAL)


@contextlib.contextmanager
def trap_signals(signals=(signal.SIGINT, signal.SIGTERM)) -> Iterator[None]:
    """Raise InstallerInterrupted on the given signals while the block runs."""

    def _handler(signum, _frame):
        raise InstallerInterrupted(signum)

    previous = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, _handler)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


@contextlib.contextmanager
def ignore_signals(signals=(signal.SIGINT, signal.SIGTERM)) -> Iterator[None]:
    """Ignore the given signals while cleanup runs."""
    previous = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, signal.SIG_IGN)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


class Orchestrator:
    """Runs the registry's selected steps in order against a state store."""

    def __init__(
        self,
        registry: PhaseRegistry,
        store: StateStore,
        context: ExecutionContext,
        prompt: Optional[Callable[[str], bool]] = None,
    ):
        self.registry = registry
        self.store = store
        self.context = context
        self.prompt = prompt

    def _ask_to_continue(self) -> bool:
        if not self.context.interactive:
            return True
        if self.prompt is None:
            return prompt_yes_no(CONTINUE_PROMPT, self.context.settings)
        return self.prompt(CONTINUE_PROMPT)

    def _announce_resume(self) -> None:
        resume = self.store.resume_point()
        if resume is None:
            return
        phase_id, next_step = resume
        self.context.log.info(
            f"Resuming after reboot: phase {phase_id}"
            + (f", next step {next_step}" if next_step else "")
        )
        self.store.clear_resume_point()

    def _stop_for_reboot(
        self, summary: RunSummary, planned: PlannedStep, remaining: List[PlannedStep]
    ) -> None:
        next_step = remaining[0] if remaining else None
        self.store.save_resume_point(
            next_step.phase.phase_id if next_step else planned.phase.phase_id,
            next_step.key if next_step else "",
        )
        summary.stopped_for_reboot = True
        self.context.log.warning(
            f"System reboot required after '{planned.key}'. "
            "Reboot with 'sudo reboot' and run the installer again to continue."
        )

    def _execute(self, planned_steps: List[PlannedStep], summary: RunSummary) -> None:
        log = self.context.log
        privilege = self.context.privilege
        current_phase = None
        executed = set()

        for index, planned in enumerate(planned_steps):
            if planned.phase.phase_id != current_phase:
                current_phase = planned.phase.phase_id
                log.section(f"Phase {planned.phase.phase_id}: {planned.phase.title}")
                if privilege is not None:
                    privilege.extend_credential_timeout(self.context.sudo_timeout)

            if planned.key in executed:
                continue
            executed.add(planned.key)

            report = execute_step(planned, self.context, self.store)
            summary.reports.append(report)

            if report.status is StepStatus.FATAL:
                summary.exit_code = static_config.EXIT_FATAL
                summary.aborted_reason = f"fatal failure in '{report.key}'"
                log.error("Aborting run; remaining steps and phases are skipped.")
                return
            if report.status is StepStatus.RECOVERABLE and not self._ask_to_continue():
                summary.exit_code = static_config.EXIT_FATAL
                summary.aborted_reason = f"stopped by operator after '{report.key}'"
                log.error("Installation stopped by operator.")
                return
            if report.reboot_required:
                self._stop_for_reboot(summary, planned, planned_steps[index + 1 :])
                return

    def run(self) -> RunSummary:
        """
        Execute the selected phases.

        Raises:
            ConfigurationError: the phase selection is empty or unknown. No
                step runs in that case.
        """
        planned_steps = self.registry.steps_for(list(self.context.phases))
        summary = RunSummary()
        log = self.context.log
        start = time.monotonic()

        try:
            with trap_signals():
                if self.context.privilege is not None:
                    self.context.privilege.require_elevated()
                self._announce_resume()
                self._execute(planned_steps, summary)
        except InstallerInterrupted as e:
            summary.exit_code = static_config.EXIT_INTERRUPTED
            summary.interrupted = True
            summary.aborted_reason = str(e)
            log.warning(f"{e}; the current step was left pending.")
        except KeyboardInterrupt:
            summary.exit_code = static_config.EXIT_INTERRUPTED
            summary.interrupted = True
            summary.aborted_reason = "interrupted"
            log.warning("Interrupted; the current step was left pending.")
        except PrivilegeError as e:
            summary.exit_code = static_config.EXIT_FATAL
            summary.aborted_reason = str(e)
            log.error(f"Privilege check failed: {e}")
        finally:
            with ignore_signals():
                try:
                    if self.context.privilege is not None:
                        self.context.privilege.restore()
                finally:
                    self.context.resources.close()
            summary.elapsed_seconds = time.monotonic() - start

        self.log_summary(summary)
        return summary

    def log_summary(self, summary: RunSummary) -> None:
        log = self.context.log
        log.section("Installation summary")
        log.info(f"Completed: {len(summary.completed)}  Skipped: {len(summary.skipped)}")
        for key in summary.warned:
            log.warning(f"Pending after recoverable failure: {key}")
        for key in summary.failed:
            log.error(f"Failed: {key}")
        log.info(f"Elapsed time: {format_elapsed(summary.elapsed_seconds)}")
        if summary.stopped_for_reboot:
            log.warning("Stopped for reboot; run again after rebooting.")
        elif summary.exit_code == static_config.EXIT_OK:
            if summary.warned:
                log.warning("Installation finished with warnings.")
            else:
                log.success("Installation finished successfully.")
        else:
            log.error(f"Installation aborted: {summary.aborted_reason}")
