"""Run-scoped state shared by the stage bodies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..collaborators.base import Deployer, HealthChecker, Toolchain
from ..config import Credentials, NotificationConfig, PipelineInputs, TimeoutConfig
from ..deployments.models import Deployment
from ..deployments.reporter import GitHubDeploymentReporter
from ..deployments.tracker import DeploymentTracker
from ..notifications.emitter import DeliveryResult, NotificationEmitter
from ..rollback.models import RollbackSnapshot
from ..rollback.store import InMemoryRollbackStore, RollbackStore
from .models import StageLedger


@dataclass
class PipelineServices:
    """Collaborators and stores a run talks to."""
    toolchain: Toolchain
    deployer: Deployer
    health_checker: HealthChecker
    tracker: DeploymentTracker = field(default_factory=DeploymentTracker)
    rollback_store: RollbackStore = field(default_factory=InMemoryRollbackStore)
    emitter: NotificationEmitter = field(default_factory=NotificationEmitter)
    # 可选：同步 GitHub deployment 状态
    reporter: Optional[GitHubDeploymentReporter] = None


@dataclass
class RunContext:
    """Everything one pipeline run owns; discarded when the run ends."""
    inputs: PipelineInputs
    credentials: Credentials
    timeouts: TimeoutConfig
    notifications: NotificationConfig
    services: PipelineServices
    ledger: StageLedger
    deployment: Optional[Deployment] = None
    snapshot: Optional[RollbackSnapshot] = None
    delivery: Optional[DeliveryResult] = None
