"""Rollback snapshot record."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict

SNAPSHOT_FIELDS = (
    "service",
    "version",
    "environment",
    "timestamp",
    "commit_sha",
    "deployment_id",
    "deployment_url",
    "run_id",
)


@dataclass(frozen=True)
class RollbackSnapshot:
    """Immutable metadata of a successful deployment, used as a redeploy target."""

    service: str
    version: str
    environment: str
    timestamp: str  # RFC3339, UTC
    commit_sha: str
    deployment_id: str
    deployment_url: str
    run_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RollbackSnapshot":
        missing = [name for name in SNAPSHOT_FIELDS if name not in data]
        if missing:
            raise ValueError(f"Rollback snapshot is missing fields: {', '.join(missing)}")
        return cls(**{name: str(data[name] or "") for name in SNAPSHOT_FIELDS})
