# executor.py
# The boundary between relayci and the outside world: run one command, report
# its exit status. Everything a step actually does happens behind this.
from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class ExecResult:
    exit_status: int | None
    output: str = ""
    cancelled: bool = False
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.cancelled and not self.timed_out and self.exit_status == 0


@runtime_checkable
class Executor(Protocol):
    """Anything that can run a step command to completion (or cancellation)."""

    def execute(
        self,
        command: str,
        env: Mapping[str, str],
        *,
        cwd: str | None = None,
        cancel: Optional[threading.Event] = None,
    ) -> ExecResult:
        ...


class ShellExecutor:
    """
    Runs commands through the system shell on this machine.

    The step environment is layered over the current process environment.
    stdout and stderr are captured together. While the command runs, the
    cancel event is polled every `poll_interval` seconds; when it is set (or the
    optional per-step `timeout` elapses) the process group gets SIGTERM and,
    after `grace` seconds, SIGKILL.
    """

    def __init__(
        self,
        workdir: str | Path = ".",
        *,
        timeout: float | None = None,
        poll_interval: float = 0.1,
        grace: float = 5.0,
    ):
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.workdir = Path(workdir).resolve()
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.grace = grace

    def with_workdir(self, workdir: str | Path) -> ShellExecutor:
        """Same settings, different directory."""
        return ShellExecutor(
            workdir,
            timeout=self.timeout,
            poll_interval=self.poll_interval,
            grace=self.grace,
        )

    def _resolve_cwd(self, cwd: str | None) -> Path:
        path = (self.workdir / (cwd or ".")).resolve()
        if not path.is_dir():
            raise FileNotFoundError(f"working directory not found: {path}")
        return path

    def execute(
        self,
        command: str,
        env: Mapping[str, str],
        *,
        cwd: str | None = None,
        cancel: Optional[threading.Event] = None,
    ) -> ExecResult:
        full_env = os.environ.copy()
        full_env.update(env)

        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=str(self._resolve_cwd(cwd)),
            env=full_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            start_new_session=(os.name == "posix"),
        )

        start = time.monotonic()
        while True:
            try:
                out, _ = proc.communicate(timeout=self.poll_interval)
                return ExecResult(exit_status=proc.returncode, output=out or "")
            except subprocess.TimeoutExpired:
                pass

            if cancel is not None and cancel.is_set():
                out = self._stop(proc)
                return ExecResult(exit_status=proc.returncode, output=out, cancelled=True)

            if self.timeout is not None and time.monotonic() - start > self.timeout:
                out = self._stop(proc)
                out += f"\n[relayci] step timed out after {self.timeout}s\n"
                return ExecResult(exit_status=proc.returncode, output=out, timed_out=True)

    def _signal(self, proc: subprocess.Popen, sig: int) -> None:
        if os.name == "posix":
            try:
                # shell=True: the command's children live in the same group
                os.killpg(proc.pid, sig)
            except ProcessLookupError:
                pass
        elif sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()

    def _stop(self, proc: subprocess.Popen) -> str:
        self._signal(proc, signal.SIGTERM)
        try:
            out, _ = proc.communicate(timeout=self.grace)
        except subprocess.TimeoutExpired:
            self._signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))
            out, _ = proc.communicate()
        return out or ""
