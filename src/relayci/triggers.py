# triggers.py
from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Iterable

from .model import PULL_REQUEST, PUSH, Event, TriggerRule


def rule_matches(event: Event, rule: TriggerRule) -> bool:
    """
    push: glob match on the source branch ("*" matches every branch, "/" included).
    pull_request: exact match on the target branch.
    """
    if event.kind != rule.kind:
        return False

    if event.kind == PUSH:
        if rule.pattern is None:
            return True
        return bool(event.branch) and fnmatchcase(event.branch, rule.pattern)

    if event.kind == PULL_REQUEST:
        if not event.target_branch:
            return False
        if rule.pattern is None:
            return True
        return event.target_branch == rule.pattern

    return False


def should_run(event: Event, rules: Iterable[TriggerRule]) -> bool:
    return any(rule_matches(event, r) for r in rules)
