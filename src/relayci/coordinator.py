# coordinator.py
from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, ContextManager, Iterable, List, Optional

from .env import EnvironmentSnapshot, resolve_env
from .executor import Executor
from .model import PULL_REQUEST, Event, RunResult, Workflow
from .sequencer import run_steps
from .triggers import should_run
from .ui.console import get_console

ResultSink = Callable[[RunResult], None]
# Opens a private workspace for one run and yields the executor bound to it.
Workspace = Callable[[], ContextManager[Executor]]

# Lowest precedence; workflow and job env may override.
BASE_ENV = {"CI": "true"}


def event_env(event: Event) -> dict[str, str]:
    """Variables describing the triggering event. Highest precedence."""
    env = {"RELAYCI_EVENT": event.kind, "RELAYCI_BRANCH": event.branch or ""}
    if event.kind == PULL_REQUEST:
        env["RELAYCI_BASE_BRANCH"] = event.target_branch or ""
    return env


def run_environment(workflow: Workflow, event: Event) -> EnvironmentSnapshot:
    return resolve_env(BASE_ENV, workflow.env, workflow.job.env, event_env(event))


class RunCoordinator:
    """
    Top-level entry point: event in, RunResult (or nothing) out.

    A coordinator holds only immutable configuration plus the executor and
    sink, so one instance can drive several runs at once.
    """

    def __init__(
        self,
        workflow: Workflow,
        executor: Executor,
        sink: Optional[ResultSink] = None,
    ):
        self.workflow = workflow
        self.executor = executor
        self.sink = sink

    def start(
        self,
        event: Event,
        cancel: Optional[threading.Event] = None,
        *,
        executor: Optional[Executor] = None,
    ) -> Optional[RunResult]:
        """
        Run the workflow for `event`, on `executor` if given instead of the
        coordinator's own.

        Returns None when no trigger rule matches: no run is performed and the
        sink is not called. Failed steps are reported, never retried.
        """
        console = get_console()

        if not should_run(event, self.workflow.triggers):
            console.print_trigger_skipped(self.workflow.name, event)
            return None

        snapshot = run_environment(self.workflow, event)
        console.print_run_started(self.workflow.name, event, len(self.workflow.steps))

        result = run_steps(
            self.workflow.steps,
            snapshot,
            executor if executor is not None else self.executor,
            cancel=cancel,
            workflow=self.workflow.name,
            event=event,
        )

        if self.sink is not None:
            self.sink(result)
        return result

    def run_many(
        self,
        events: Iterable[Event],
        *,
        max_workers: int | None = None,
        cancel: Optional[threading.Event] = None,
        workspace: Optional[Workspace] = None,
    ) -> List[Optional[RunResult]]:
        """
        Start independent runs concurrently; results come back in input order.

        Runs that share the coordinator's executor also share its working
        directory. Pass `workspace` to give every triggered run its own.
        """
        events = list(events)
        if not events:
            return []

        if max_workers is None:
            c = os.cpu_count() or 2
            max_workers = max(1, c - 1)

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(self._start_in, ev, cancel, workspace) for ev in events]
            return [f.result() for f in futures]

    def _start_in(
        self,
        event: Event,
        cancel: Optional[threading.Event],
        workspace: Optional[Workspace],
    ) -> Optional[RunResult]:
        # no workspace is opened for an event that will not run
        if workspace is None or not should_run(event, self.workflow.triggers):
            return self.start(event, cancel)
        with workspace() as executor:
            return self.start(event, cancel, executor=executor)
