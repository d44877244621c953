# env.py
# Environment resolution: layered, validated, read-only snapshots.
from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

from .errors import ConfigError

EnvironmentSnapshot = Mapping[str, str]
EnvLayer = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


def _to_str(value: Any) -> str:
    # YAML gives us bools/ints/None; the process environment only holds strings
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def normalize_layer(layer: EnvLayer | None, *, source: str | None = None) -> Dict[str, str]:
    """
    Validate one precedence level and return it as a plain dict.

    Raises:
        ConfigError: empty/invalid name, or the same name given twice with
            different values.
    """
    if layer is None:
        return {}
    pairs = layer.items() if isinstance(layer, Mapping) else layer

    out: Dict[str, str] = {}
    for pair in pairs:
        try:
            name, value = pair
        except (TypeError, ValueError):
            raise ConfigError(f"Environment entry must be a (name, value) pair, got {pair!r}", source=source) from None

        if not isinstance(name, str) or not name:
            raise ConfigError(f"Environment variable name must be a non-empty string, got {name!r}", source=source)
        if "=" in name or "\0" in name:
            raise ConfigError(f"Invalid environment variable name: {name!r}", source=source)

        value = _to_str(value)
        if name in out and out[name] != value:
            raise ConfigError(
                f"Conflicting values for environment variable {name!r}",
                source=source,
                details={"first": out[name], "second": value},
            )
        out[name] = value
    return out


def resolve_env(defaults: EnvLayer | None = None, *overrides: EnvLayer | None) -> EnvironmentSnapshot:
    """
    Fold `defaults` and each override layer (later wins) into one snapshot.

    The result is a read-only view over a private dict, so nothing downstream
    can change it.
    """
    merged: Dict[str, str] = dict(normalize_layer(defaults))
    for layer in overrides:
        merged.update(normalize_layer(layer))
    return MappingProxyType(merged)


def step_env(snapshot: EnvironmentSnapshot, overrides: EnvLayer | None = None) -> EnvironmentSnapshot:
    """Effective environment of one step: the run snapshot with step overrides on top."""
    if not overrides:
        return snapshot
    return resolve_env(snapshot, overrides)
