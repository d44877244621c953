# git.py
# Thin wrapper around the Git CLI. Local runs use it to fill in the event
# descriptor (which branch am I on, where does this repo live) so the rest of
# the codebase never shells out to git directly.

from __future__ import annotations

import subprocess
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout, stripped.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Optional working directory in which to run the command.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def head_sha(cwd: Optional[str] = None) -> str:
    """Full SHA of HEAD."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def current_branch(cwd: Optional[str] = None) -> str:
    """
    Name of the checked-out branch.

    On a detached HEAD git answers "HEAD"; in that case the commit SHA is
    returned instead so that the event still names something concrete.
    """
    name = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if name == "HEAD":
        return head_sha(cwd=cwd)
    return name


def get_remote_url(remote: str = "origin", cwd: Optional[str] = None) -> str:
    """URL configured for `remote`."""
    return _git(["remote", "get-url", remote], cwd=cwd)


def repo_root(cwd: Optional[str] = None) -> str:
    """Top-level directory of the working tree that contains `cwd`."""
    return _git(["rev-parse", "--show-toplevel"], cwd=cwd)


def add_worktree(path: str, cwd: Optional[str] = None) -> None:
    """Create a detached worktree of HEAD at `path` (which must not exist yet)."""
    _git(["worktree", "add", "--detach", "--quiet", path], cwd=cwd)


def remove_worktree(path: str, cwd: Optional[str] = None) -> None:
    """Remove the worktree at `path`, discarding anything a run left in it."""
    _git(["worktree", "remove", "--force", path], cwd=cwd)
