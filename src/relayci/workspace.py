# workspace.py
# Private working trees for runs that execute at the same time. Every run that
# gets one checks out its own branch without touching the caller's tree or any
# other run's tree.
from __future__ import annotations

import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .executor import ShellExecutor
from .git_facts.git import add_worktree, remove_worktree, repo_root
from .ui.console import get_console


def in_git_repo(workdir: str | Path) -> bool:
    try:
        repo_root(cwd=str(workdir))
    except (subprocess.CalledProcessError, FileNotFoundError, NotADirectoryError):
        return False
    return True


@contextmanager
def isolated_worktree(workdir: str | Path) -> Iterator[Path]:
    """
    Yield the counterpart of `workdir` inside a fresh detached worktree of its
    repository. The worktree is removed when the block exits.

    Raises:
        subprocess.CalledProcessError: git could not create the worktree
    """
    workdir = Path(workdir).resolve()
    root = Path(repo_root(cwd=str(workdir))).resolve()
    parent = Path(tempfile.mkdtemp(prefix="relayci-run-"))
    tree = parent / "tree"

    try:
        add_worktree(str(tree), cwd=str(root))
    except BaseException:
        shutil.rmtree(parent, ignore_errors=True)
        raise
    get_console().print_debug(f"worktree {tree} for {workdir}")

    try:
        yield tree / workdir.relative_to(root)
    finally:
        try:
            remove_worktree(str(tree), cwd=str(root))
        finally:
            shutil.rmtree(parent, ignore_errors=True)


class WorktreeExecutors:
    """
    Workspace factory for RunCoordinator.run_many: each call opens a private
    worktree and yields `executor` re-pointed at it.
    """

    def __init__(self, executor: ShellExecutor):
        self.executor = executor

    @contextmanager
    def __call__(self) -> Iterator[ShellExecutor]:
        with isolated_worktree(self.executor.workdir) as path:
            yield self.executor.with_workdir(path)
