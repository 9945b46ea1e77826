# tests/conftest.py
# -*- coding: utf-8 -*-
"""
Shared fixtures: settings pointed at tmp_path, in-memory state, a quiet
execution context and scripted steps that record their executions.
"""

import logging
import os
from typing import Callable, List, Optional

import pytest

from common.core_utils import SymbolFormatter
from common.file_utils import RunResources
from common.log_utils import InstallerLogger
from common.state_store import InMemoryStateStore
from provisioner.config_models import AppSettings
from provisioner.context import ExecutionContext
from provisioner.phase_registry import PhaseRegistry
from provisioner.step_contract import Step, StepOutcome


class ScriptedStep(Step):
    """Step whose live check and body behaviour are set by the test."""

    def __init__(
        self,
        key: str,
        calls: List[str],
        outcome: Optional[StepOutcome] = None,
        live: Optional[bool] = None,
        raises: Optional[BaseException] = None,
    ):
        super().__init__(key, f"Scripted {key}")
        self.calls = calls
        self.outcome = outcome or StepOutcome.success()
        self.live = live
        self.raises = raises

    def is_complete(self, context):
        return self.live

    def run(self, context):
        self.calls.append(self.key)
        if self.raises is not None:
            raise self.raises
        return self.outcome


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep PROVISIONER_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.startswith("PROVISIONER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def app_settings(tmp_path):
    """AppSettings whose directories live under tmp_path."""
    return AppSettings(
        state_dir=tmp_path / "state",
        log_dir=tmp_path / "log",
        log_mode="full",
        target_user="",
    )


@pytest.fixture
def memory_store():
    return InMemoryStateStore()


@pytest.fixture
def test_logger():
    return logging.getLogger("provisioner.tests")


@pytest.fixture
def make_context(app_settings, test_logger) -> Callable[..., ExecutionContext]:
    """Factory for non-interactive execution contexts without privilege handling."""

    def _make(**overrides) -> ExecutionContext:
        values = dict(
            settings=app_settings,
            interactive=False,
            resources=RunResources(current_logger=test_logger),
            log=InstallerLogger(test_logger, app_settings.symbols),
        )
        values.update(overrides)
        return ExecutionContext(**values)

    return _make


@pytest.fixture
def context(make_context):
    return make_context()


@pytest.fixture
def calls() -> List[str]:
    """Order in which scripted step bodies ran."""
    return []


@pytest.fixture
def make_step(calls) -> Callable[..., ScriptedStep]:
    def _make(key: str, **kwargs) -> ScriptedStep:
        return ScriptedStep(key, calls, **kwargs)

    return _make


@pytest.fixture
def sample_registry(make_step) -> PhaseRegistry:
    """Three phases with plain succeeding steps."""
    registry = PhaseRegistry()
    registry.add_phase(
        "00-core",
        "Core",
        [make_step("core_a"), make_step("core_b"), make_step("core_c")],
    )
    registry.add_phase(
        "01-lvm", "Storage", [make_step("lvm_a"), make_step("lvm_b")]
    )
    registry.add_phase(
        "05-tweaks", "Tweaks", [make_step("tweaks_b"), make_step("tweaks_a")]
    )
    return registry


@pytest.fixture
def restore_root_logger():
    """Drop the handlers installed by setup_logging after the test."""
    root = logging.getLogger()
    level = root.level
    yield root
    for handler in list(root.handlers):
        if isinstance(handler.formatter, SymbolFormatter):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
