# src/relayci/dsl.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from .env import normalize_layer
from .errors import ConfigError
from .model import PULL_REQUEST, PUSH, Job, Step, TriggerRule, Workflow
from .step_workflows.toolchain import compile_uses


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, env: Optional[Dict[str, Any]] = None, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, env=normalize_layer(env, source=name), cwd=cwd)


def uses(action: str, name: str | None = None, *, env: Optional[Dict[str, Any]] = None,
         cwd: str | None = None, **with_: Any) -> Step:
    """
    Create a step from a toolchain directive.

        uses("actions-rs/toolchain@v1", toolchain="nightly", components="miri")
    """
    return compile_uses(action, name=name, with_=with_, env=normalize_layer(env, source=name), cwd=cwd)


# ---------------------------------------------------------------------
# Trigger helpers
# ---------------------------------------------------------------------

def push(*branches: str) -> List[TriggerRule]:
    """push("*") -> any branch; push() -> no branch filter."""
    if not branches:
        return [TriggerRule(PUSH)]
    return [TriggerRule(PUSH, b) for b in branches]


def pull_request(*branches: str) -> List[TriggerRule]:
    """Target branches are matched exactly."""
    if not branches:
        return [TriggerRule(PULL_REQUEST)]
    return [TriggerRule(PULL_REQUEST, b) for b in branches]


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class WorkflowBuilder:
    def __init__(self, name: str, job: str = "build"):
        self.name = name
        self._job = job
        self._triggers: list[TriggerRule] = []
        self._env: dict[str, str] = {}
        self._job_env: dict[str, str] = {}
        self._steps: list[Step] = []
        self._runs_on: str | None = None

    def on_push(self, *branches: str):
        self._triggers.extend(push(*branches))
        return self

    def on_pull_request(self, *branches: str):
        self._triggers.extend(pull_request(*branches))
        return self

    def with_env(self, **env):
        self._env.update(normalize_layer(env, source=self.name))
        return self

    def with_job_env(self, **env):
        self._job_env.update(normalize_layer(env, source=self._job))
        return self

    def runs_on(self, label: str):
        self._runs_on = label
        return self

    def step(self, name: str, run: str, *, env: Optional[Dict[str, Any]] = None, cwd: str | None = None):
        self._steps.append(sh(name, run, env=env, cwd=cwd))
        return self

    def uses(self, action: str, name: str | None = None, **with_: Any):
        self._steps.append(uses(action, name, **with_))
        return self

    def add(self, *steps: Step):
        self._steps.extend(steps)
        return self

    def build(self) -> Workflow:
        if not self._triggers:
            raise ConfigError(f"Workflow {self.name!r} has no triggers")
        return Workflow(
            name=self.name,
            triggers=tuple(self._triggers),
            env=self._env,
            job=Job(name=self._job, steps=tuple(self._steps), env=self._job_env, runs_on=self._runs_on),
        )


def build(name: str, job: str = "build") -> WorkflowBuilder:
    """Convenience: build('ci').on_push('*').step(...).build()"""
    return WorkflowBuilder(name, job)
