# loader.py
# Workflow loading: YAML files in the familiar `on` / `env` / `jobs` shape,
# or Python files built with relayci.dsl.
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .env import normalize_layer
from .errors import ConfigError
from .model import EVENT_KINDS, Job, Step, TriggerRule, Workflow
from .step_workflows.toolchain import compile_uses

YAML_SUFFIXES = (".yml", ".yaml")


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses a key repeated with a different value in one mapping."""

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen: Dict[Any, Any] = {}
            for key_node, value_node in node.value:
                if key_node.tag == "tag:yaml.org,2002:merge":
                    continue
                key = self.construct_object(key_node, deep=True)
                try:
                    hash(key)
                except TypeError:
                    continue  # SafeLoader reports unhashable keys itself
                value = self.construct_object(value_node, deep=True)
                if key in seen and seen[key] != value:
                    raise ConfigError(
                        f"Duplicate key {key!r} with conflicting values",
                        source=str(key_node.start_mark).strip(),
                        details={"first": seen[key], "second": value},
                    )
                seen[key] = value
        return super().construct_mapping(node, deep=deep)


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def _as_mapping(value: Any, what: str, source: str | None) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{what} must be a mapping, got {type(value).__name__}", source=source)
    return value


def _as_str_list(value: Any, what: str, source: str | None) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigError(f"{what} must be a string or a list of strings", source=source)


def parse_triggers(raw: Any, *, source: str | None = None) -> List[TriggerRule]:
    """
    Accepts the three shapes of `on:`

        on: push
        on: [push, pull_request]
        on: {push: {branches: ["*"]}, pull_request: {branches: [main]}}
    """
    if raw is None:
        raise ConfigError("Workflow has no 'on' section", source=source)

    if isinstance(raw, (str, list)):
        return [TriggerRule(kind) for kind in _as_str_list(raw, "'on'", source)]

    rules: List[TriggerRule] = []
    for kind, cfg in _as_mapping(raw, "'on'", source).items():
        if kind not in EVENT_KINDS:
            raise ConfigError(
                f"Unknown trigger event kind: {kind!r}",
                source=source,
                details={"supported": ", ".join(EVENT_KINDS)},
            )
        cfg = _as_mapping(cfg, f"'on.{kind}'", source)
        # any other filter (branches-ignore, tags, paths, ...) would widen the rule
        unknown = [str(k) for k in cfg if k != "branches"]
        if unknown:
            raise ConfigError(
                f"Unsupported trigger filter {unknown[0]!r} under 'on.{kind}'",
                source=source,
                details={"supported": "branches"},
            )
        branches = cfg.get("branches")
        if branches is None:
            rules.append(TriggerRule(kind))
            continue
        for pattern in _as_str_list(branches, f"'on.{kind}.branches'", source):
            rules.append(TriggerRule(kind, pattern))

    if not rules:
        raise ConfigError("Workflow has no trigger rules", source=source)
    return rules


def parse_env(raw: Any, *, source: str | None = None) -> Dict[str, str]:
    return normalize_layer(_as_mapping(raw, "'env'", source), source=source)


def parse_step(raw: Any, index: int, *, source: str | None = None) -> Step:
    where = f"{source or 'workflow'}: step {index}"
    step = _as_mapping(raw, "Step", where)

    name = step.get("name")
    run = step.get("run")
    action = step.get("uses")
    env = parse_env(step.get("env"), source=where)
    cwd = step.get("working-directory")

    if run is not None and action is not None:
        raise ConfigError("Step cannot have both 'run' and 'uses'", source=where)

    if action is not None:
        with_ = _as_mapping(step.get("with"), "'with'", where)
        return compile_uses(str(action), name=name, with_=with_, env=env, cwd=cwd)

    if run is None or not str(run).strip():
        raise ConfigError("Step has an empty command", source=where, details={"name": name})

    run = str(run)
    if not name:
        name = f"Run {run.strip().splitlines()[0]}"
    return Step(name=str(name), run=run, env=env, cwd=cwd)


def _select_job(jobs: Mapping[str, Any], job: str | None, source: str | None) -> tuple[str, Mapping[str, Any]]:
    if not jobs:
        raise ConfigError("Workflow defines no jobs", source=source)
    if job is not None:
        if job not in jobs:
            raise ConfigError(
                f"Job {job!r} not found",
                source=source,
                details={"available": ", ".join(sorted(jobs))},
            )
        return job, jobs[job]
    if len(jobs) > 1:
        raise ConfigError(
            "Workflow defines several jobs; choose one",
            source=source,
            details={"available": ", ".join(sorted(jobs))},
        )
    return next(iter(jobs.items()))


def parse_workflow(
    data: Any,
    *,
    name: str = "workflow",
    job: str | None = None,
    source: str | None = None,
) -> Workflow:
    """Build a Workflow from an already-parsed YAML document."""
    doc = _as_mapping(data, "Workflow document", source)
    if not doc:
        raise ConfigError("Workflow document is empty", source=source)

    # YAML 1.1 reads a bare `on` key as the boolean True
    raw_on = doc["on"] if "on" in doc else doc.get(True)
    triggers = parse_triggers(raw_on, source=source)
    env = parse_env(doc.get("env"), source=source)

    jobs = _as_mapping(doc.get("jobs"), "'jobs'", source)
    job_id, raw_job = _select_job(jobs, job, source)
    raw_job = _as_mapping(raw_job, f"Job {job_id!r}", source)

    raw_steps = raw_job.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise ConfigError(f"Job {job_id!r} must have a non-empty 'steps' list", source=source)

    steps = [parse_step(s, i, source=source) for i, s in enumerate(raw_steps, start=1)]
    runs_on = raw_job.get("runs-on")

    return Workflow(
        name=str(doc.get("name") or name),
        triggers=tuple(triggers),
        env=env,
        job=Job(
            name=str(raw_job.get("name") or job_id),
            steps=tuple(steps),
            env=parse_env(raw_job.get("env"), source=source),
            runs_on=str(runs_on) if runs_on is not None else None,
        ),
    )


# ----------------------------------------------------------------------
# Loading from disk
# ----------------------------------------------------------------------

def _load_yaml(path: Path, job: str | None) -> Workflow:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.load(handle, Loader=_UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}", source=str(path)) from exc
    return parse_workflow(data, name=path.stem, job=job, source=str(path))


def _load_python(path: Path) -> Workflow:
    module_name = f"relayci_workflow_{path.stem}"
    globals_dict = runpy.run_path(str(path), run_name=module_name)

    wf: Optional[Workflow] = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        wf = globals_dict["workflow"]()
    elif "WORKFLOW" in globals_dict:
        wf = globals_dict["WORKFLOW"]

    if not isinstance(wf, Workflow):
        raise ConfigError(
            "Python workflow must define workflow() -> Workflow or WORKFLOW = Workflow(...)",
            source=str(path),
        )
    return wf


def load_workflow(path: str | Path, *, job: str | None = None) -> Workflow:
    """
    Load a workflow from a .yml/.yaml or .py file.

    Raises:
        FileNotFoundError: the file does not exist
        ConfigError: the file is not a valid workflow
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix in YAML_SUFFIXES:
        return _load_yaml(wf_path, job)
    if wf_path.suffix == ".py":
        wf = _load_python(wf_path)
        if job is not None and job != wf.job.name:
            raise ConfigError(
                f"Job {job!r} not found in workflow",
                source=str(wf_path),
                details={"available": wf.job.name},
            )
        return wf
    raise ConfigError(
        f"Workflow must be a .yml, .yaml or .py file, got: {wf_path.name}",
        source=str(wf_path),
    )
