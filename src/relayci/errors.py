# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


class CIError(Exception):
    """Base class for every error relayci raises or records."""


@dataclass
class ConfigError(CIError, ValueError):
    """
    Malformed or self-contradictory configuration.

    Detected at load time; a workflow that raises this never starts a run.
    """
    message: str
    source: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [self.message]
        if self.source:
            lines.append(f"source={self.source}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(CIError):
    """Step `index` (1-based) reported a non-success exit status."""
    index: int
    step: str
    cmd: str
    exit_code: int | None

    def __str__(self) -> str:
        return f"step {self.index} '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


@dataclass
class Aborted(CIError):
    """The run was cancelled externally."""
    step: str | None = None

    def __str__(self) -> str:
        if self.step:
            return f"run aborted during step '{self.step}'"
        return "run aborted"


# Printed next to a failed step whose command was not found (exit 127).
TOOL_HINTS = {
    "cargo": "Install Rust via rustup (https://rustup.rs) or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "git": "Install Git or fix PATH.",
    "python3": "Install Python 3 or fix PATH (python3).",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "docker": "Install Docker and ensure the daemon is running.",
}


def tool_hint(cmd: str) -> str | None:
    """Best-effort hint for the first word of a shell command."""
    words = cmd.strip().split()
    if not words:
        return None
    return TOOL_HINTS.get(words[0])
