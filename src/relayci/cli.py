# cli.py
from __future__ import annotations

import subprocess
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

import click

from relayci.agent.api_client import APIClient, APIError
from relayci.coordinator import RunCoordinator
from relayci.errors import ConfigError
from relayci.executor import ShellExecutor
from relayci.git_facts.git import current_branch, get_remote_url
from relayci.loader import load_workflow
from relayci.model import EVENT_KINDS, PULL_REQUEST, Event, RunResult, Workflow
from relayci.sinks import ConsoleSink, HTTPSink, MultiSink
from relayci.triggers import should_run
from relayci.ui.console import Console, get_console, set_console
from relayci.workspace import WorktreeExecutors, in_git_repo

DEFAULT_WORKFLOW_NAMES = ("relayci_workflow.yml", "relayci_workflow.yaml", "relayci_workflow.py")
WORKFLOW_GLOBS = ("*_workflow.yml", "*_workflow.yaml", "*_workflow.py")


def find_workflow_files(directory: Path = Path(".")) -> list[Path]:
    """
    Find workflow files in `directory`.

    Looks for relayci_workflow.{yml,yaml,py}, then any *_workflow.{yml,yaml,py},
    then .github/workflows/*.yml.
    """
    found: set[Path] = set()
    for name in DEFAULT_WORKFLOW_NAMES:
        if (directory / name).exists():
            found.add(directory / name)
    for pattern in WORKFLOW_GLOBS:
        found.update(directory.glob(pattern))

    if not found:
        gh = directory / ".github" / "workflows"
        found.update(gh.glob("*.yml"))
        found.update(gh.glob("*.yaml"))

    return sorted(found)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Resolve the workflow file from the --workflow argument or by discovery.

    Raises:
        SystemExit: If no workflow, or more than one candidate, is found
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  relayci run --workflow ci.yml",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                "  relayci_workflow.yml / .yaml / .py",
                "  *_workflow.yml / .yaml / .py",
                "  .github/workflows/*.yml",
            ],
            suggestion="Specify a workflow explicitly:\n  relayci run --workflow ci.yml",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion="Specify a workflow explicitly:\n  relayci run --workflow relayci_workflow.yml",
        )
        sys.exit(1)

    return workflow_files[0]


def _load(workflow_arg: str | None, job: str | None) -> Workflow:
    console = get_console()
    workflow_path = discover_workflow(workflow_arg)
    try:
        return load_workflow(workflow_path, job=job)
    except ConfigError as e:
        console.print_error("Invalid workflow", f"Could not load workflow from {workflow_path}", details=str(e).splitlines())
        sys.exit(1)


def _events(kind: str, branches: tuple[str, ...], target: str | None) -> List[Event]:
    console = get_console()
    if kind == PULL_REQUEST and not target:
        raise click.UsageError("--target is required for pull_request events")

    if not branches:
        try:
            branches = (current_branch(),)
        except (subprocess.CalledProcessError, FileNotFoundError):
            console.print_error(
                "Could not determine branch",
                "No --branch specified and the current git branch is unknown.",
                suggestion="Specify the branch explicitly:\n  relayci run --branch main",
            )
            sys.exit(1)
        console.print_debug(f"Using current branch: {branches[0]}")

    return [Event(kind=kind, branch=b, target_branch=target) for b in branches]


def _event_options(f):
    f = click.option("--target", default=None, help="Target branch of a pull_request event")(f)
    f = click.option(
        "--branch",
        "branches",
        multiple=True,
        help="Source branch (defaults to the current git branch). Repeat to run several events.",
    )(f)
    f = click.option(
        "--event",
        "kind",
        type=click.Choice(EVENT_KINDS),
        default="push",
        show_default=True,
        help="Event kind",
    )(f)
    return f


def _workflow_options(f):
    f = click.option("--job", default=None, help="Job to run when the workflow defines several")(f)
    f = click.option(
        "--workflow",
        envvar="RELAYCI_WORKFLOW",
        default=None,
        help="Workflow file (.yml/.yaml/.py); discovered in the current directory if omitted",
    )(f)
    return f


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show commands, stack traces and full output)",
)
@click.option("--quiet-output", is_flag=True, default=False, help="Do not print output of failed steps")
@click.pass_context
def cli(ctx, debug, quiet_output):
    """relayci: trigger-aware, fail-fast pipeline runner."""
    set_console(Console(debug=debug, show_output=not quiet_output))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@_workflow_options
@_event_options
@click.option(
    "--timeout",
    envvar="RELAYCI_STEP_TIMEOUT",
    type=float,
    default=None,
    help="Per-step time limit in seconds",
)
@click.option("--workdir", default=".", show_default=True, help="Directory steps run in")
@click.option("--api", envvar="RELAYCI_API", default=None, help="Also report results to this relayci API")
@click.option("--workers", default=None, type=int, help="Concurrent runs when several --branch are given")
def run(workflow, job, kind, branches, target, timeout, workdir, api, workers):
    """Run a workflow for an event."""
    console = get_console()
    wf = _load(workflow, job)
    events = _events(kind, branches, target)

    sinks = [ConsoleSink()]
    if api:
        sinks.append(HTTPSink(APIClient(api)))

    try:
        executor = ShellExecutor(workdir, timeout=timeout)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--timeout")

    # Concurrent runs each get a private worktree; outside a git repository
    # they would share the workdir, so they go one after another instead.
    workspace = None
    if len(events) > 1 and workers != 1:
        if in_git_repo(workdir):
            workspace = WorktreeExecutors(executor)
        else:
            console.print_debug(f"{workdir} is not a git repository; running events one after another")
            workers = 1

    coordinator = RunCoordinator(wf, executor, sink=MultiSink(sinks))
    cancel = threading.Event()
    interrupted = False

    # Runs happen off the main thread so Ctrl-C can be turned into a clean abort.
    with ThreadPoolExecutor(max_workers=1) as pool:
        fut = pool.submit(coordinator.run_many, events, max_workers=workers, cancel=cancel, workspace=workspace)
        try:
            results: List[Optional[RunResult]] = fut.result()
        except KeyboardInterrupt:
            interrupted = True
            console.print_info("\nInterrupted by user, aborting run...")
            cancel.set()
            results = fut.result()
        except APIError as e:
            console.print_error("Could not report results", str(e))
            sys.exit(1)
        except subprocess.CalledProcessError as e:
            console.print_error(
                "Could not prepare a worktree",
                f"{' '.join(e.cmd)} exited with {e.returncode}",
                suggestion="Run the events one at a time:\n  relayci run --workers 1",
            )
            sys.exit(1)

    if interrupted:
        sys.exit(130)
    if any(r is not None and not r.success for r in results):
        sys.exit(1)


@cli.command()
@_workflow_options
@_event_options
def check(workflow, job, kind, branches, target):
    """Evaluate trigger rules only. Exit status 0 if a run would start, 1 otherwise."""
    console = get_console()
    wf = _load(workflow, job)
    events = _events(kind, branches, target)

    matched = False
    for event in events:
        if should_run(event, wf.triggers):
            matched = True
            console.print_info(f"RUN: {wf.name} is triggered by {event.describe()}")
        else:
            console.print_trigger_skipped(wf.name, event)
    sys.exit(0 if matched else 1)


@cli.command()
@_workflow_options
def validate(workflow, job):
    """Load a workflow and print its plan."""
    wf = _load(workflow, job)
    get_console().print_plan(wf)


@cli.command()
@click.option("--api", envvar="RELAYCI_API", required=True, help="API base URL (e.g., http://localhost:8000)")
@_event_options
@click.option("--repo", default=None, help="Repository URL (defaults to git remote origin URL)")
def submit(api, kind, branches, target, repo):
    """Queue an event on the relayci API for agents to pick up."""
    console = get_console()
    events = _events(kind, branches, target)

    if not repo:
        try:
            repo = get_remote_url("origin")
            console.print_debug(f"Using repository URL from git remote: {repo}")
        except (subprocess.CalledProcessError, FileNotFoundError):
            console.print_error(
                "Could not get repository URL",
                "No --repo specified and could not get git remote URL.",
                suggestion="Please specify --repo explicitly:\n  relayci submit --api <url> --repo <repo_url>",
            )
            sys.exit(1)

    client = APIClient(api)
    try:
        for event in events:
            event_id = client.submit_event(event, repo_url=repo)
            console.print_info(f"Queued {event.describe()} (event_id={event_id})")
    except APIError as e:
        console.print_error(
            "API request failed",
            str(e),
            suggestion=f"Check the API at {client.base_url} and verify your request.",
        )
        sys.exit(1)


@cli.command()
@click.option("--api", envvar="RELAYCI_API", required=True, help="API base URL (e.g., http://localhost:8000)")
@click.option("--agent-id", default=None, help="Unique agent identifier (defaults to hostname)")
@click.option(
    "--workflow",
    envvar="RELAYCI_WORKFLOW",
    default="relayci_workflow.yml",
    show_default=True,
    help="Workflow file, relative to each checkout",
)
@click.option("--job", default=None, help="Job to run when the workflow defines several")
@click.option("--poll-interval", default=5, type=int, help="Polling interval in seconds when no events are queued")
@click.option("--timeout", envvar="RELAYCI_STEP_TIMEOUT", type=float, default=None, help="Per-step time limit in seconds")
def agent(api, agent_id, workflow, job, poll_interval, timeout):
    """Poll the API for events and run them."""
    import socket
    from relayci.agent.agent import run_agent

    run_agent(
        api,
        agent_id or socket.gethostname(),
        workflow,
        job=job,
        poll_interval=poll_interval,
        step_timeout=timeout,
    )


if __name__ == "__main__":
    cli()
