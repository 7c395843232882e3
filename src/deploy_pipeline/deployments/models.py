"""Data models for deployment lifecycle records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DeploymentStatus(str, Enum):
    """部署生命周期状态"""
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStatus.SUCCESS, DeploymentStatus.FAILURE)


@dataclass(frozen=True)
class DeploymentTransition:
    """One edge taken through the state machine."""
    status: DeploymentStatus
    timestamp: str


@dataclass
class Deployment:
    """Lifecycle record of one attempt to publish code to an environment.

    Only ``status`` and, together with the terminal transition, ``url`` change
    after creation. The tracker is the only writer.
    """
    id: str
    environment: str
    revision: str
    created_at: str
    status: DeploymentStatus = DeploymentStatus.CREATED
    url: Optional[str] = None
    # ID assigned by an external deployment API, if one was notified
    external_id: Optional[str] = None
    history: List[DeploymentTransition] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "environment": self.environment,
            "revision": self.revision,
            "created_at": self.created_at,
            "status": self.status.value,
            "url": self.url,
            "external_id": self.external_id,
            "history": [
                {"status": t.status.value, "timestamp": t.timestamp} for t in self.history
            ],
        }
