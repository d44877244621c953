# agent/agent.py
from __future__ import annotations

import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Optional

from relayci.coordinator import RunCoordinator
from relayci.errors import CIError
from relayci.executor import ShellExecutor
from relayci.loader import load_workflow
from relayci.model import RunResult
from relayci.sinks import HTTPSink, MultiSink, ConsoleSink
from relayci.ui.console import get_console

from .api_client import APIClient, APIError
from .models import ClaimedEvent


def _git(args: list[str], cwd: Path | None = None) -> None:
    result = subprocess.run(["git", *args], cwd=cwd, check=False, capture_output=True, text=True)
    if result.returncode != 0:
        raise RuntimeError(f"git {' '.join(args)} failed: {result.stderr.strip()}")


def clone_or_update_repo(repo_url: str, branch: str, work_dir: Path) -> Path:
    """
    Clone or update a repository and check out `branch`.

    Returns:
        Path to the checked out repository

    Raises:
        RuntimeError: If git operations fail
    """
    work_dir.mkdir(parents=True, exist_ok=True)
    repo_name = repo_url.rstrip("/").split("/")[-1].replace(".git", "")
    repo_path = work_dir / repo_name

    try:
        if repo_path.exists():
            _git(["fetch", "origin"], cwd=repo_path)
        else:
            _git(["clone", repo_url, str(repo_path)])
        _git(["checkout", branch], cwd=repo_path)
        _git(["reset", "--hard", f"origin/{branch}"], cwd=repo_path)
    except FileNotFoundError:
        raise RuntimeError("git command not found. Please install Git.")

    return repo_path


class Agent:
    """Polls the API for events, runs the workflow for each, reports results."""

    def __init__(
        self,
        api_url: str,
        agent_id: str,
        workflow: str | Path,
        *,
        job: str | None = None,
        poll_interval: int = 5,
        step_timeout: float | None = None,
        work_dir: str | Path = ".relayci/agent_work",
    ):
        """
        Initialize agent.

        Args:
            api_url: Base URL of the API
            agent_id: Unique identifier for this agent instance
            workflow: Workflow file, relative to the checkout when events carry a repo URL
            job: Job to run when the workflow defines several
            poll_interval: Seconds to wait between polls when no events are queued
            step_timeout: Per-step time limit enforced by the executor
            work_dir: Directory for repository checkouts
        """
        self.api_client = APIClient(api_url, agent_id)
        self.workflow = Path(workflow)
        self.job = job
        self.poll_interval = poll_interval
        self.step_timeout = step_timeout
        self.work_dir = Path(work_dir)
        self.running = True
        # set on shutdown; forwarded to the step that is currently running
        self.cancel = threading.Event()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        get_console().print_info(f"\nReceived signal {signum}, aborting current run and shutting down...")
        self.running = False
        self.cancel.set()

    def run(self) -> None:
        """Run the agent loop."""
        console = get_console()
        console.print_agent_started(
            agent_id=self.api_client.agent_id,
            api=self.api_client.base_url,
            poll_interval=self.poll_interval,
        )

        while self.running:
            try:
                claimed = self.api_client.claim_event()
                if claimed:
                    self.handle(claimed)
                else:
                    time.sleep(self.poll_interval)
            except APIError as e:
                console.print_error("API error", str(e), suggestion="Check API connectivity and retry.")
                time.sleep(self.poll_interval)

        console.print_info("Agent stopped.")

    def handle(self, claimed: ClaimedEvent) -> Optional[RunResult]:
        """Run one claimed event. Configuration problems are reported, not raised."""
        console = get_console()
        event = claimed.event
        console.print_event_claimed(claimed.event_id, event)

        root = Path(".")
        try:
            if claimed.repo_url:
                root = clone_or_update_repo(claimed.repo_url, event.branch, self.work_dir)
            workflow = load_workflow(root / self.workflow, job=self.job)
        except (CIError, FileNotFoundError, RuntimeError) as e:
            console.print_error("Cannot run event", str(e), details=[f"event_id={claimed.event_id}"])
            return None

        sink = MultiSink([ConsoleSink(), HTTPSink(self.api_client, event_id=claimed.event_id)])
        coordinator = RunCoordinator(
            workflow,
            ShellExecutor(root, timeout=self.step_timeout),
            sink=sink,
        )
        result = coordinator.start(event, cancel=self.cancel)
        if result is None:
            console.print_info(f"Event {claimed.event_id} did not trigger {workflow.name}; nothing to report.")
        return result


def run_agent(api_url: str, agent_id: str, workflow: str | Path, **kwargs) -> None:
    """Run the relayci agent loop until interrupted."""
    agent = Agent(api_url, agent_id, workflow, **kwargs)
    agent.install_signal_handlers()
    agent.run()
