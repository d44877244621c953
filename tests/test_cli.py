"""Tests for the relayci command line."""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from relayci.cli import cli, find_workflow_files

PY = f'"{sys.executable}"'


def write_workflow(tmp_path: Path, steps: list[dict], name: str = "ci.yml") -> Path:
    doc = {
        "name": "demo",
        "on": {"push": {"branches": ["*"]}, "pull_request": {"branches": ["main"]}},
        "env": {"DEMO_COLOR": "always"},
        "jobs": {"build": {"runs-on": "local", "steps": steps}},
    }
    path = tmp_path / name
    path.write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def passing(tmp_path: Path) -> Path:
    return write_workflow(tmp_path, [
        {"name": "Build", "run": f"{PY} -c \"print('building')\""},
        {"name": "Test", "run": f"{PY} -c \"import os; print(os.environ['DEMO_COLOR'])\""},
    ])


@pytest.fixture
def failing(tmp_path: Path) -> Path:
    return write_workflow(tmp_path, [
        {"name": "Build", "run": f"{PY} -c \"import sys; sys.exit(4)\""},
        {"name": "Test", "run": f"{PY} -c \"print('never')\""},
    ])


class TestRun:
    def test_success(self, runner: CliRunner, passing: Path, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["run", "--workflow", str(passing), "--branch", "feature/x", "--workdir", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert "RUN STARTED" in result.output
        assert "RESULT: SUCCESS" in result.output
        assert "STEP 2/2: Test" in result.output

    def test_failure_exit_code(self, runner: CliRunner, failing: Path, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["run", "--workflow", str(failing), "--branch", "main", "--workdir", str(tmp_path)])
        assert result.exit_code == 1
        assert "STEP FAILED: Build" in result.output
        assert "Exit code: 4" in result.output
        assert "RESULT: FAILED-AT-STEP(1)" in result.output
        assert "STEP 2/2" not in result.output

    def test_no_matching_trigger(self, runner: CliRunner, passing: Path, tmp_path: Path) -> None:
        result = runner.invoke(cli, [
            "run", "--workflow", str(passing), "--event", "pull_request",
            "--branch", "topic", "--target", "develop", "--workdir", str(tmp_path),
        ])
        assert result.exit_code == 0
        assert "NO RUN" in result.output
        assert "RUN STARTED" not in result.output

    def test_pull_request_needs_target(self, runner: CliRunner, passing: Path) -> None:
        result = runner.invoke(cli, ["run", "--workflow", str(passing), "--event", "pull_request", "--branch", "x"])
        assert result.exit_code == 2
        assert "--target" in result.output

    def test_several_branches(self, runner: CliRunner, passing: Path, tmp_path: Path) -> None:
        result = runner.invoke(cli, [
            "run", "--workflow", str(passing), "--branch", "a", "--branch", "b",
            "--workers", "2", "--workdir", str(tmp_path),
        ])
        assert result.exit_code == 0, result.output
        assert result.output.count("RESULT: SUCCESS") == 2

    def test_missing_workflow(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["run", "--workflow", str(tmp_path / "nope.yml"), "--branch", "main"])
        assert result.exit_code == 1
        assert "Workflow file not found" in result.output

    def test_invalid_workflow(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text("on: {tag: null}\njobs: {b: {steps: [{run: x}]}}\n", encoding="utf-8")
        result = runner.invoke(cli, ["run", "--workflow", str(path), "--branch", "main"])
        assert result.exit_code == 1
        assert "Invalid workflow" in result.output
        assert "Unknown trigger event kind" in result.output


class TestCheck:
    def test_triggered(self, runner: CliRunner, passing: Path) -> None:
        result = runner.invoke(cli, ["check", "--workflow", str(passing), "--branch", "feature/x"])
        assert result.exit_code == 0
        assert "RUN: demo is triggered by push feature/x" in result.output

    def test_not_triggered(self, runner: CliRunner, passing: Path) -> None:
        result = runner.invoke(cli, [
            "check", "--workflow", str(passing), "--event", "pull_request", "--branch", "x", "--target", "develop",
        ])
        assert result.exit_code == 1
        assert "NO RUN" in result.output


class TestValidate:
    def test_plan(self, runner: CliRunner, passing: Path) -> None:
        result = runner.invoke(cli, ["validate", "--workflow", str(passing)])
        assert result.exit_code == 0, result.output
        assert "push: *" in result.output
        assert "pull_request: main" in result.output
        assert "DEMO_COLOR=always" in result.output
        assert "Job: build (runs-on: local)" in result.output
        assert "2. Test" in result.output


class TestDiscovery:
    def test_default_names(self, tmp_path: Path) -> None:
        (tmp_path / "relayci_workflow.yml").write_text("", encoding="utf-8")
        assert find_workflow_files(tmp_path) == [tmp_path / "relayci_workflow.yml"]

    def test_github_directory_fallback(self, tmp_path: Path) -> None:
        gh = tmp_path / ".github" / "workflows"
        gh.mkdir(parents=True)
        (gh / "rust.yml").write_text("", encoding="utf-8")
        assert find_workflow_files(tmp_path) == [gh / "rust.yml"]

    def test_multiple_is_an_error(self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "a_workflow.yml").write_text("", encoding="utf-8")
        (tmp_path / "b_workflow.py").write_text("", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(cli, ["validate"])
        assert result.exit_code == 1
        assert "Multiple workflow files found" in result.output


requires_git = pytest.mark.skipif(
    shutil.which("git") is None or os.name != "posix",
    reason="needs git and a POSIX shell",
)


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.email=ci@example.com", "-c", "user.name=relayci", "-c", "commit.gpgsign=false", *args],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@pytest.fixture
def two_branch_repo(tmp_path: Path) -> Path:
    """Branches a and b, each with its own who.txt; the repo is left on b."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    for branch in ("a", "b"):
        git(repo, "checkout", "-q", "-b", branch)
        (repo / "who.txt").write_text(f"{branch}\n", encoding="utf-8")
        git(repo, "add", "who.txt")
        git(repo, "commit", "-q", "-m", branch)
    return repo


@requires_git
class TestConcurrentCheckouts:
    def test_each_run_builds_its_own_branch(self, runner: CliRunner, tmp_path: Path, two_branch_repo: Path) -> None:
        check = (
            "import os, time; time.sleep(0.5); "
            "who = open('who.txt').read().strip(); "
            "assert who == os.environ['RELAYCI_BRANCH'], who"
        )
        path = write_workflow(tmp_path, [
            {"uses": "actions/checkout@v4"},
            {"name": "Same tree", "run": f'{PY} -c "{check}"'},
        ])

        result = runner.invoke(cli, [
            "run", "--workflow", str(path), "--branch", "a", "--branch", "b",
            "--workers", "2", "--workdir", str(two_branch_repo),
        ])

        assert result.exit_code == 0, result.output
        assert result.output.count("RESULT: SUCCESS") == 2
        # the caller's tree is untouched and every worktree is gone
        assert (two_branch_repo / "who.txt").read_text(encoding="utf-8") == "b\n"
        assert git(two_branch_repo, "rev-parse", "--abbrev-ref", "HEAD") == "b"
        assert git(two_branch_repo, "worktree", "list", "--porcelain").count("worktree ") == 1

    def test_outside_git_runs_one_after_another(self, runner: CliRunner, tmp_path: Path) -> None:
        marker = tmp_path / "busy"
        code = (
            "import os, sys, time; p = os.environ['MARKER']; "
            "sys.exit(3) if os.path.exists(p) else open(p, 'w').close(); "
            "time.sleep(0.3); os.remove(p)"
        )
        doc_steps = [{"name": "exclusive", "run": f'{PY} -c "{code}"', "env": {"MARKER": str(marker)}}]
        path = write_workflow(tmp_path, doc_steps)

        result = runner.invoke(cli, [
            "run", "--workflow", str(path), "--branch", "a", "--branch", "b", "--branch", "c",
            "--workers", "3", "--workdir", str(tmp_path),
        ])

        assert result.exit_code == 0, result.output
        assert result.output.count("RESULT: SUCCESS") == 3
