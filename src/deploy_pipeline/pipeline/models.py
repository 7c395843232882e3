"""Data models for the stage graph and its result ledger."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

from ..errors import InvalidTransition


class StageName(str, Enum):
    """The fixed stages of a pipeline run."""
    PRE_DEPLOY = "pre-deploy"
    DEPLOY = "deploy"
    POST_DEPLOY = "post-deploy"


class StageStatus(str, Enum):
    """阶段执行状态"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StageStatus.SUCCESS, StageStatus.FAILURE, StageStatus.SKIPPED)


class StageOutput(str, Enum):
    """Keys of the values stages hand to later stages."""
    CACHE_KEY = "cache-key"
    DEPLOYMENT_ID = "deployment-id"
    DEPLOYMENT_URL = "deployment-url"
    DRY_RUN = "dry-run"
    SNAPSHOT = "snapshot"
    DEPLOYMENT_STATUS = "deployment-status"
    STATUS_REPORTED = "status-reported"
    NOTIFICATION = "notification"


@dataclass(frozen=True)
class Stage:
    """A node of the stage graph. Immutable once the graph is built.

    ``always_run`` stages only wait for their dependencies to finish, whatever
    the outcome. ``optional`` stages never block dependants and never decide
    the overall outcome.
    """
    name: StageName
    depends_on: Tuple[StageName, ...] = ()
    optional: bool = False
    always_run: bool = False


PIPELINE_STAGES: Tuple[Stage, ...] = (
    Stage(StageName.PRE_DEPLOY),
    Stage(StageName.DEPLOY, depends_on=(StageName.PRE_DEPLOY,)),
    Stage(
        StageName.POST_DEPLOY,
        depends_on=(StageName.PRE_DEPLOY, StageName.DEPLOY),
        always_run=True,
    ),
)


@dataclass
class StageResult:
    """Status, outputs and failure detail of one stage."""
    status: StageStatus = StageStatus.PENDING
    outputs: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "outputs": dict(self.outputs),
            "error": self.error,
        }


class StageLedger:
    """Per-run record of stage results; the only channel between stages."""

    def __init__(self, stages: Iterable[Stage]) -> None:
        self._results: Dict[StageName, StageResult] = {
            stage.name: StageResult() for stage in stages
        }

    def __getitem__(self, name: StageName) -> StageResult:
        return self._results[name]

    def __iter__(self) -> Iterator[StageName]:
        return iter(self._results)

    def items(self):
        return self._results.items()

    def status(self, name: StageName) -> StageStatus:
        return self._results[name].status

    def set_output(self, stage: StageName, key: StageOutput, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(
                f"Stage output {key.value} must be a string (type={type(value).__name__})"
            )
        self._results[stage].outputs[key.value] = value

    def output(
        self, stage: StageName, key: StageOutput, default: Optional[str] = None
    ) -> Optional[str]:
        return self._results[stage].outputs.get(key.value, default)

    def mark_running(self, name: StageName) -> None:
        self._move(name, StageStatus.RUNNING, allowed_from=(StageStatus.PENDING,))

    def mark_success(self, name: StageName) -> None:
        self._move(name, StageStatus.SUCCESS, allowed_from=(StageStatus.RUNNING,))

    def mark_failure(self, name: StageName, error: str) -> None:
        self._move(name, StageStatus.FAILURE, allowed_from=(StageStatus.RUNNING,))
        self._results[name].error = error

    def mark_skipped(self, name: StageName, reason: str) -> None:
        self._move(name, StageStatus.SKIPPED, allowed_from=(StageStatus.PENDING,))
        self._results[name].error = reason

    def copy_results(self) -> Dict[StageName, StageResult]:
        return copy.deepcopy(self._results)

    def _move(
        self,
        name: StageName,
        target: StageStatus,
        allowed_from: Tuple[StageStatus, ...],
    ) -> None:
        result = self._results[name]
        if result.status not in allowed_from:
            raise InvalidTransition(
                f"Stage {name.value} cannot move from {result.status.value} to {target.value}"
            )
        result.status = target
