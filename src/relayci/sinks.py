# sinks.py
# Result sinks: where a finished RunResult goes. Any callable taking a
# RunResult works; these are the ones the CLI and agent use.
from __future__ import annotations

from typing import Callable, Iterable

from .agent.api_client import APIClient
from .model import RunResult
from .ui.console import get_console


class ConsoleSink:
    """Print the results summary."""

    def __call__(self, result: RunResult) -> None:
        get_console().print_results(result)


class HTTPSink:
    """POST the RunResult to the relayci API."""

    def __init__(self, client: APIClient, event_id: str | None = None):
        self.client = client
        self.event_id = event_id
        self.run_id: str | None = None

    def __call__(self, result: RunResult) -> None:
        self.run_id = self.client.report_run(result, event_id=self.event_id)
        get_console().print_debug(f"run reported to {self.client.base_url} (run_id={self.run_id})")


class MultiSink:
    """Deliver to several sinks in order."""

    def __init__(self, sinks: Iterable[Callable[[RunResult], None]]):
        self.sinks = list(sinks)

    def __call__(self, result: RunResult) -> None:
        for sink in self.sinks:
            sink(result)
