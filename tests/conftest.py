"""Shared fixtures for the relayci test suite."""

from __future__ import annotations

import threading
from typing import Dict, List, Mapping, Optional

import pytest

from relayci.executor import ExecResult
from relayci.model import PULL_REQUEST, PUSH, Job, Step, TriggerRule, Workflow
from relayci.ui.console import Console, set_console


class FakeExecutor:
    """
    Executor double.

    `exit_codes` maps a command to its exit status (default 0). A command listed
    in `block_on` waits until the cancel event is set and then reports itself
    cancelled; `started` is set as soon as such a command begins.
    """

    def __init__(self, exit_codes: Optional[Dict[str, int]] = None, block_on: tuple = ()):
        self.exit_codes = exit_codes or {}
        self.block_on = set(block_on)
        self.calls: List[tuple[str, dict, Optional[str]]] = []
        self.started = threading.Event()
        self.saw_cancel = False

    @property
    def commands(self) -> List[str]:
        return [c[0] for c in self.calls]

    def execute(self, command: str, env: Mapping[str, str], *, cwd=None, cancel=None) -> ExecResult:
        self.calls.append((command, dict(env), cwd))
        if command in self.block_on:
            self.started.set()
            assert cancel is not None, "blocking step needs a cancel event"
            assert cancel.wait(timeout=10), "cancel never arrived"
            self.saw_cancel = True
            return ExecResult(exit_status=-15, output="terminated", cancelled=True)
        code = self.exit_codes.get(command, 0)
        return ExecResult(exit_status=code, output=f"ran {command}")


@pytest.fixture(autouse=True)
def quiet_console():
    """Fresh console per test so debug flags do not leak between tests."""
    set_console(Console(debug=False, show_output=False))
    yield


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


def make_steps(*names: str) -> tuple[Step, ...]:
    """Steps whose command equals their name, handy for FakeExecutor scripts."""
    return tuple(Step(name=n, run=n) for n in names)


PIPELINE = ("checkout", "setup-toolchain", "build", "test", "miri-test")


@pytest.fixture
def rust_workflow() -> Workflow:
    """The five-step build pipeline: push to any branch, PRs into main."""
    return Workflow(
        name="Rust",
        triggers=(TriggerRule(PUSH, "*"), TriggerRule(PULL_REQUEST, "main")),
        env={"CARGO_TERM_COLOR": "always"},
        job=Job(name="build", steps=make_steps(*PIPELINE), runs_on="ubuntu-latest"),
    )
