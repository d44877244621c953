# sequencer.py
from __future__ import annotations

import threading
import time
from typing import List, Optional, Sequence

from .env import EnvironmentSnapshot, step_env
from .errors import tool_hint
from .executor import Executor
from .model import ABORTED, FAILED, SUCCESS, Event, RunResult, Step, StepOutcome
from .ui.console import get_console

# Only the tail of a step's output is kept in the RunResult.
OUTPUT_TAIL = 4000


def _finish(
    workflow: str,
    event: Optional[Event],
    status: str,
    outcomes: List[StepOutcome],
    started: float,
) -> RunResult:
    return RunResult(
        workflow=workflow,
        event=event,
        status=status,
        steps=tuple(outcomes),
        failed_step=outcomes[-1].index if status == FAILED else None,
        duration=time.monotonic() - started,
    )


def run_steps(
    steps: Sequence[Step],
    snapshot: EnvironmentSnapshot,
    executor: Executor,
    *,
    cancel: Optional[threading.Event] = None,
    workflow: str = "",
    event: Optional[Event] = None,
) -> RunResult:
    """
    Execute `steps` in order, stopping at the first failure or on cancellation.

    The sequencer never raises for a failing step: every way a run can end is
    expressed in the returned RunResult.
    """
    console = get_console()
    outcomes: List[StepOutcome] = []
    started = time.monotonic()
    total = len(steps)

    i = 0
    while i < total:
        if cancel is not None and cancel.is_set():
            console.print_aborted(None)
            return _finish(workflow, event, ABORTED, outcomes, started)

        step = steps[i]
        index = i + 1
        console.print_step(index, total, step.name)
        console.print_debug(f"$ {step.run}")

        env = step_env(snapshot, step.env)
        step_start = time.monotonic()
        try:
            res = executor.execute(step.run, env, cwd=step.cwd, cancel=cancel)
        except Exception as e:
            # the executor could not even launch the step; that is this step's failure
            outcomes.append(StepOutcome(
                index=index,
                name=step.name,
                command=step.run,
                status=FAILED,
                output=str(e),
                duration=time.monotonic() - step_start,
            ))
            console.print_failure(step.name, "")
            console.print_exception(e)
            return _finish(workflow, event, FAILED, outcomes, started)

        duration = time.monotonic() - step_start
        output = (res.output or "")[-OUTPUT_TAIL:]

        if res.cancelled:
            outcomes.append(StepOutcome(
                index=index,
                name=step.name,
                command=step.run,
                status=ABORTED,
                exit_status=res.exit_status,
                output=output,
                duration=duration,
            ))
            console.print_aborted(step.name)
            return _finish(workflow, event, ABORTED, outcomes, started)

        if not res.ok:
            outcomes.append(StepOutcome(
                index=index,
                name=step.name,
                command=step.run,
                status=FAILED,
                exit_status=res.exit_status,
                output=output,
                duration=duration,
            ))
            hint = tool_hint(step.run) if res.exit_status == 127 else None
            console.print_failure(step.name, output, exit_code=res.exit_status, hint=hint)
            return _finish(workflow, event, FAILED, outcomes, started)

        outcomes.append(StepOutcome(
            index=index,
            name=step.name,
            command=step.run,
            status=SUCCESS,
            exit_status=res.exit_status,
            output=output,
            duration=duration,
        ))
        console.print_success(step.name, duration)
        i += 1

    return _finish(workflow, event, SUCCESS, outcomes, started)
