# provisioner/step_contract.py
# -*- coding: utf-8 -*-
"""
The interface every installation step implements.

A step has a unique key, a human label, an optional live completion check
(`is_complete`) and a body (`run`) that reports a tri-state result. Bodies
may return a StepOutcome, or raise RecoverableStepError / FatalStepError to
report a classified failure.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from common.state_store import validate_key

if TYPE_CHECKING:
    from provisioner.context import ExecutionContext


class StepResult(str, Enum):
    SUCCESS = "success"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


class StepOutcome(BaseModel):
    """Result reported by a step body."""

    model_config = ConfigDict(frozen=True)

    result: StepResult
    message: str = ""
    reboot_required: bool = False

    @classmethod
    def success(cls, message: str = "", reboot_required: bool = False) -> "StepOutcome":
        return cls(
            result=StepResult.SUCCESS,
            message=message,
            reboot_required=reboot_required,
        )

    @classmethod
    def recoverable(cls, message: str) -> "StepOutcome":
        return cls(result=StepResult.RECOVERABLE, message=message)

    @classmethod
    def fatal(cls, message: str) -> "StepOutcome":
        return cls(result=StepResult.FATAL, message=message)

    @property
    def ok(self) -> bool:
        return self.result is StepResult.SUCCESS


def coerce_outcome(value: Any) -> StepOutcome:
    """
    Interpret a body's return value.

    `None` and `True` mean success, `False` a recoverable failure. A
    StepOutcome is returned unchanged; any other value counts as success.
    """
    if isinstance(value, StepOutcome):
        return value
    if value is False:
        return StepOutcome.recoverable("step reported failure")
    return StepOutcome.success()


class Step(ABC):
    """Base class for installation steps. Instances are immutable."""

    def __init__(self, key: str, label: str):
        self._key = validate_key(key)
        self._label = label or key

    @property
    def key(self) -> str:
        return self._key

    @property
    def label(self) -> str:
        return self._label

    def is_complete(self, context: "ExecutionContext") -> Optional[bool]:
        """
        Live completion check.

        Return True if the system already has this step's effect, False if
        it does not, or None when the step has no check and the state marker
        alone decides.
        """
        return None

    @abstractmethod
    def run(self, context: "ExecutionContext") -> StepOutcome:
        """Execute the step body."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self._key!r})"


class FunctionStep(Step):
    """Adapts a plain function (and optional check function) to the contract."""

    def __init__(
        self,
        key: str,
        label: str,
        body: Callable[["ExecutionContext"], Any],
        check: Optional[Callable[["ExecutionContext"], Optional[bool]]] = None,
    ):
        super().__init__(key, label)
        self._body = body
        self._check = check

    def is_complete(self, context: "ExecutionContext") -> Optional[bool]:
        if self._check is None:
            return None
        return self._check(context)

    def run(self, context: "ExecutionContext") -> StepOutcome:
        return coerce_outcome(self._body(context))
