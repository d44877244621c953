# step_workflows/toolchain.py
from __future__ import annotations

import shlex
from typing import Any, Callable, Dict, List, Mapping

from ..errors import ConfigError
from ..model import Step


# ---------------------------------------------------------------------
# Directive parsing helpers
# ---------------------------------------------------------------------

def _split_action(uses: str) -> tuple[str, str | None]:
    """'actions/checkout@v4' -> ('actions/checkout', 'v4')"""
    action, sep, version = uses.strip().partition("@")
    return action, (version or None) if sep else None


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [p.strip() for p in str(value).replace(",", " ").split() if p.strip()]


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------
# Directive compilers: (version, with) -> shell command
# ---------------------------------------------------------------------

def _checkout(version: str | None, with_: Mapping[str, Any]) -> str:
    # The run happens in an existing working tree; checkout moves it to the
    # event branch (or an explicit ref). Detached, so a branch that is already
    # checked out in another worktree can still be built.
    ref = with_.get("ref")
    target = shlex.quote(str(ref)) if ref else '"$RELAYCI_BRANCH"'
    return f"git rev-parse --is-inside-work-tree > /dev/null && git checkout --quiet --detach {target}"


def _rust_toolchain(with_: Mapping[str, Any], default_toolchain: str) -> str:
    toolchain = str(with_.get("toolchain") or default_toolchain)
    profile = str(with_.get("profile") or "minimal")
    components = _as_list(with_.get("components"))
    targets = _as_list(with_.get("target") or with_.get("targets"))

    parts = [f"rustup toolchain install {shlex.quote(toolchain)} --profile {shlex.quote(profile)}"]
    if components:
        parts[0] += f" --component {shlex.quote(','.join(components))}"
    if targets:
        parts[0] += f" --target {shlex.quote(','.join(targets))}"
    if _truthy(with_.get("default", False)):
        parts.append(f"rustup default {shlex.quote(toolchain)}")
    if _truthy(with_.get("override", False)):
        parts.append(f"rustup override set {shlex.quote(toolchain)}")
    return " && ".join(parts)


def _actions_rs(version: str | None, with_: Mapping[str, Any]) -> str:
    return _rust_toolchain(with_, "stable")


def _dtolnay(version: str | None, with_: Mapping[str, Any]) -> str:
    # dtolnay/rust-toolchain selects the toolchain through the ref: @nightly, @1.75.0
    default = version if version and version != "master" else "stable"
    return _rust_toolchain(with_, default)


DIRECTIVES: Dict[str, Callable[[str | None, Mapping[str, Any]], str]] = {
    "actions/checkout": _checkout,
    "actions-rs/toolchain": _actions_rs,
    "dtolnay/rust-toolchain": _dtolnay,
}


def compile_uses(
    uses: str,
    *,
    name: str | None = None,
    with_: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
) -> Step:
    """
    Turn a toolchain-setup directive into a plain shell step.
    The sequencer never sees directives after compilation.
    """
    if not uses or not uses.strip():
        raise ConfigError("Empty 'uses' directive", details={"step": name})

    action, version = _split_action(uses)
    compiler = DIRECTIVES.get(action)
    if compiler is None:
        raise ConfigError(
            f"Unsupported toolchain directive: {uses!r}",
            details={"step": name, "supported": ", ".join(sorted(DIRECTIVES))},
        )

    cmd = compiler(version, with_ or {})
    return Step(name=name or f"Run {uses.strip()}", run=cmd, env=env or {}, cwd=cwd)
