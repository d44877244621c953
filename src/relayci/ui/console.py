"""Console output formatting utilities for relayci."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from relayci.model import Event, RunResult, Workflow


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, show_output: bool = True):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            show_output: If True, print the captured output of failed steps
        """
        self.debug = debug
        self.show_output = show_output

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(self, workflow: str, event: Event, step_count: int) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Workflow: {workflow}")
        print(f"Event: {event.describe()}")
        print(f"Steps: {step_count}")
        print()

    def print_trigger_skipped(self, workflow: str, event: Event) -> None:
        """Print the no-match outcome of trigger evaluation."""
        print(f"\nNO RUN: {workflow} is not triggered by {event.describe()}")

    def print_step(self, index: int, total: int, name: str) -> None:
        """Print step start message."""
        print(f"STEP {index}/{total}: {name}")

    def print_success(self, name: str, duration: float | None = None) -> None:
        """Print success message."""
        if duration is not None:
            print(f"STATUS: success ({duration:.1f}s)")
        else:
            print("STATUS: success")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print step failure message.

        Args:
            name: Step name
            reason: Captured output or error message
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        print(f"STEP FAILED: {name}")
        if exit_code is not None:
            print(f"Exit code: {exit_code}")
        if hint:
            print(f"Hint: {hint}")
        if reason and (self.debug or self.show_output):
            print(reason.rstrip())

    def print_aborted(self, name: str | None) -> None:
        """Print abort message."""
        if name:
            print(f"ABORTED: {name}")
        else:
            print("ABORTED")

    def print_plan(self, workflow: Workflow) -> None:
        """Print a loaded workflow: triggers, environment and ordered steps."""
        self.print_header(f"Workflow: {workflow.name}")
        print("Triggers:")
        for rule in workflow.triggers:
            print(f"  {rule.kind}: {rule.pattern if rule.pattern is not None else '(any branch)'}")
        env = {**workflow.env, **workflow.job.env}
        if env:
            print("Environment:")
            for k, v in env.items():
                print(f"  {k}={v}")
        runs_on = f" (runs-on: {workflow.job.runs_on})" if workflow.job.runs_on else ""
        print(f"Job: {workflow.job.name}{runs_on}")
        for i, step in enumerate(workflow.steps, start=1):
            print(f"  {i}. {step.name}")
            self.print_debug(f"     $ {step.run}")

    def print_results(self, result: RunResult) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print(f"RESULT: {result.outcome.upper()}")
        print("=" * 40)
        for s in result.steps:
            print(f"  {s.index}. {s.name}: {s.status.upper()}")
        print(f"Duration: {result.duration:.1f}s")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_agent_started(self, agent_id: str, api: str, poll_interval: int) -> None:
        """Print agent start information."""
        print("\nAGENT STARTED")
        print(f"Agent ID: {agent_id}")
        print(f"API: {api}")
        print(f"Polling every: {poll_interval}s")
        print()

    def print_event_claimed(self, event_id: str, event: Event) -> None:
        print("\nEVENT CLAIMED")
        print(f"Event ID: {event_id}")
        print(f"Event: {event.describe()}")

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
