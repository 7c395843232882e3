"""Append-only storage of rollback snapshots."""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from ..deployments.models import Deployment, DeploymentStatus
from ..errors import ConflictError, PreconditionFailed
from ..utils.clock import format_rfc3339, parse_rfc3339, utc_now
from .models import RollbackSnapshot

logger = logging.getLogger(__name__)

# (recording-order key, snapshot); the key breaks ties between equal timestamps
_Entry = Tuple[Union[int, str], RollbackSnapshot]


class RollbackStore(ABC):
    """Write-once snapshot ledger, queried newest-first per environment.

    Subclasses provide the storage medium through ``_append`` and ``_load``.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    def record(
        self,
        deployment: Deployment,
        *,
        service: str,
        version: str,
        run_id: str,
        timestamp: Optional[str] = None,
    ) -> RollbackSnapshot:
        """Persist a snapshot for a deployment that reached ``success``."""
        if deployment.status is not DeploymentStatus.SUCCESS:
            raise PreconditionFailed(
                f"Cannot snapshot deployment {deployment.id} in state "
                f"{deployment.status.value}; it must be success"
            )
        snapshot = RollbackSnapshot(
            service=service,
            version=version,
            environment=deployment.environment,
            timestamp=timestamp or format_rfc3339(self._clock()),
            commit_sha=deployment.revision,
            deployment_id=deployment.id,
            deployment_url=deployment.url or "",
            run_id=run_id,
        )
        self._append(snapshot)
        logger.info(
            "📦 Stored rollback snapshot for %s (%s@%s)",
            snapshot.environment,
            snapshot.service,
            snapshot.commit_sha,
        )
        return snapshot

    def latest(self, environment: str) -> Optional[RollbackSnapshot]:
        """Most recent snapshot for the environment, or None when there is none."""
        history = self.history(environment)
        return history[0] if history else None

    def history(self, environment: str) -> List[RollbackSnapshot]:
        entries = self._load(environment)
        entries.sort(key=lambda entry: (parse_rfc3339(entry[1].timestamp), entry[0]), reverse=True)
        return [snapshot for _, snapshot in entries]

    @abstractmethod
    def _append(self, snapshot: RollbackSnapshot) -> None:
        """Store a new snapshot without touching existing ones."""

    @abstractmethod
    def _load(self, environment: str) -> List[_Entry]:
        """Return every snapshot of the environment with its ordering key."""


class InMemoryRollbackStore(RollbackStore):
    """Process-local store, safe for concurrent appends."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        super().__init__(clock)
        self._lock = threading.Lock()
        self._snapshots: List[RollbackSnapshot] = []

    def _append(self, snapshot: RollbackSnapshot) -> None:
        with self._lock:
            self._snapshots.append(snapshot)

    def _load(self, environment: str) -> List[_Entry]:
        with self._lock:
            return [
                (index, snapshot)
                for index, snapshot in enumerate(self._snapshots)
                if snapshot.environment == environment
            ]


class FileRollbackStore(RollbackStore):
    """One JSON document per snapshot under ``<root>/<slug>-<digest>/``.

    The directory name pairs a readable slug with a digest of the exact
    environment name, so distinct environments never share a directory.

    Files are created exclusively, so a snapshot is never rewritten and
    concurrent writers (other runs, other environments) never clobber each other.
    """

    def __init__(self, root: Union[str, Path], clock: Callable[[], datetime] = utc_now) -> None:
        super().__init__(clock)
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _append(self, snapshot: RollbackSnapshot) -> None:
        env_dir = self.environment_dir(snapshot.environment)
        env_dir.mkdir(parents=True, exist_ok=True)
        filename = (
            f"{time.time_ns():020d}-{self._slug(snapshot.run_id)}-"
            f"{self._slug(snapshot.deployment_id)}.json"
        )
        path = env_dir / filename
        try:
            with path.open("x", encoding="utf-8") as handle:
                json.dump(snapshot.to_dict(), handle, indent=2)
        except FileExistsError as exc:
            raise ConflictError(f"Rollback snapshot {path} already exists") from exc

    def _load(self, environment: str) -> List[_Entry]:
        env_dir = self.environment_dir(environment)
        if not env_dir.is_dir():
            return []
        entries: List[_Entry] = []
        for path in env_dir.glob("*.json"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                snapshot = RollbackSnapshot.from_dict(data)
                parse_rfc3339(snapshot.timestamp)
            except (OSError, ValueError) as exc:
                logger.warning("Ignoring unreadable rollback snapshot %s: %s", path, exc)
                continue
            if snapshot.environment != environment:
                continue
            entries.append((path.name, snapshot))
        return entries

    def environment_dir(self, environment: str) -> Path:
        digest = hashlib.sha256(environment.encode("utf-8")).hexdigest()[:16]
        return self.root / f"{self._slug(environment)[:48]}-{digest}"

    @staticmethod
    def _slug(value: str) -> str:
        return re.sub(r"[^A-Za-z0-9_.-]", "_", value) or "_"
