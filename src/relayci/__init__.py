from .dsl import sh, uses, push, pull_request, WorkflowBuilder, build
from .coordinator import RunCoordinator
from .loader import load_workflow
from .model import Event, Job, RunResult, Step, StepOutcome, TriggerRule, Workflow
from .errors import Aborted, CIError, ConfigError, StepFailure

__all__ = [
    "sh", "uses", "push", "pull_request", "WorkflowBuilder", "build",
    "RunCoordinator", "load_workflow",
    "Event", "Job", "RunResult", "Step", "StepOutcome", "TriggerRule", "Workflow",
    "Aborted", "CIError", "ConfigError", "StepFailure",
]
