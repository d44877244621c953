# agent/models.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from relayci.model import Event


@dataclass
class ClaimedEvent:
    """An event handed to this agent by the API (ClaimedEvent response)."""
    event_id: str
    kind: str
    branch: str
    target_branch: Optional[str] = None
    repo_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ClaimedEvent:
        """Create ClaimedEvent from API response dictionary."""
        return cls(
            event_id=data["event_id"],
            kind=data["kind"],
            branch=data["branch"],
            target_branch=data.get("target_branch"),
            repo_url=data.get("repo_url"),
        )

    @property
    def event(self) -> Event:
        return Event(kind=self.kind, branch=self.branch, target_branch=self.target_branch)
