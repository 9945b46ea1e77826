# provisioner/exceptions.py
# -*- coding: utf-8 -*-
"""
Exception hierarchy shared by the common library and the orchestrator.

Configuration errors are raised before any step runs. Step failures are
either recoverable (logged, run continues, step retried next time) or fatal
(run aborts). State store and privilege failures are always fatal.
"""


class InstallerError(Exception):
    """Base class for all provisioner errors."""


class ConfigurationError(InstallerError):
    """Bad phase selector, invalid settings or missing support tooling."""


class StepFailure(InstallerError):
    """Raised by a step body to report a classified failure."""


class RecoverableStepError(StepFailure):
    """Optional tool or feature unavailable; the step stays pending."""


class FatalStepError(StepFailure):
    """Required dependency or precondition missing; the run aborts."""


class StateStoreError(InstallerError):
    """The completion state could not be read or written."""


class PrivilegeError(InstallerError):
    """The invoking principal lacks administrative rights."""


class InstallerInterrupted(InstallerError):
    """The operator interrupted the run with a signal."""

    def __init__(self, signum: int):
        super().__init__(f"Interrupted by signal {signum}")
        self.signum = signum
