# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .errors import Aborted, CIError, ConfigError, StepFailure

PUSH = "push"
PULL_REQUEST = "pull_request"
EVENT_KINDS = (PUSH, PULL_REQUEST)

SUCCESS = "success"
FAILED = "failed"
ABORTED = "aborted"

_EMPTY: Mapping[str, str] = MappingProxyType({})


def _strip_ref(branch: str | None) -> str | None:
    if branch and branch.startswith("refs/heads/"):
        return branch[len("refs/heads/"):]
    return branch


@dataclass(frozen=True)
class TriggerRule:
    """
    One entry under `on:`.

    pattern=None means the event declared no branch filter and matches any branch.
    """
    kind: str
    pattern: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in EVENT_KINDS:
            raise ConfigError(
                f"Unknown trigger event kind: {self.kind!r}",
                details={"supported": ", ".join(EVENT_KINDS)},
            )
        if self.pattern is not None and not self.pattern:
            raise ConfigError(f"Empty branch pattern for {self.kind} trigger")


@dataclass(frozen=True)
class Event:
    """An incoming event descriptor from the version-control host."""
    kind: str
    branch: str
    target_branch: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "branch", _strip_ref(self.branch))
        object.__setattr__(self, "target_branch", _strip_ref(self.target_branch))

    def describe(self) -> str:
        if self.kind == PULL_REQUEST:
            return f"{self.kind} {self.branch} -> {self.target_branch}"
        return f"{self.kind} {self.branch}"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "branch": self.branch, "target_branch": self.target_branch}

    @classmethod
    def from_dict(cls, data: Mapping) -> Event:
        return cls(
            kind=data["kind"],
            branch=data.get("branch") or "",
            target_branch=data.get("target_branch"),
        )


@dataclass(frozen=True)
class Step:
    """A single opaque command inside a job."""
    name: str
    run: str
    env: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    cwd: str | None = None

    def __post_init__(self) -> None:
        if not self.run or not self.run.strip():
            raise ConfigError(f"Step {self.name!r} has an empty command")
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))


@dataclass(frozen=True)
class Job:
    name: str
    steps: Tuple[Step, ...]
    env: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    runs_on: str | None = None

    def __post_init__(self) -> None:
        if not self.steps:
            raise ConfigError(f"Job {self.name!r} has no steps")
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))


@dataclass(frozen=True)
class Workflow:
    """Trigger rules + environment defaults + the job to run."""
    name: str
    triggers: Tuple[TriggerRule, ...]
    job: Job
    env: Mapping[str, str] = field(default_factory=lambda: _EMPTY)

    def __post_init__(self) -> None:
        object.__setattr__(self, "triggers", tuple(self.triggers))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @property
    def steps(self) -> Tuple[Step, ...]:
        return self.job.steps


@dataclass(frozen=True)
class StepOutcome:
    index: int  # 1-based position in the job
    name: str
    command: str
    status: str
    exit_status: int | None = None
    output: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "command": self.command,
            "status": self.status,
            "exit_status": self.exit_status,
            "output": self.output,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class RunResult:
    """
    Final record of one run. Built once the sequencer stops, never mutated.

    status == FAILED implies failed_step == len(steps) and every earlier
    outcome succeeded.
    """
    workflow: str
    status: str
    steps: Tuple[StepOutcome, ...] = ()
    event: Optional[Event] = None
    failed_step: int | None = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == SUCCESS

    @property
    def outcome(self) -> str:
        if self.status == FAILED:
            return f"failed-at-step({self.failed_step})"
        return self.status

    @property
    def error(self) -> CIError | None:
        """The terminal error of the run, if any."""
        if self.status == FAILED:
            last = self.steps[-1]
            return StepFailure(
                index=last.index,
                step=last.name,
                cmd=last.command,
                exit_code=last.exit_status,
            )
        if self.status == ABORTED:
            interrupted = [s for s in self.steps if s.status == ABORTED]
            return Aborted(step=interrupted[0].name if interrupted else None)
        return None

    def to_dict(self) -> dict:
        return {
            "workflow": self.workflow,
            "status": self.status,
            "outcome": self.outcome,
            "failed_step": self.failed_step,
            "duration": self.duration,
            "event": self.event.to_dict() if self.event else None,
            "steps": [s.to_dict() for s in self.steps],
        }
