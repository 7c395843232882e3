"""Deployment lifecycle tracking."""

from __future__ import annotations

import hashlib
import logging
import time
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional

from ..errors import ConflictError, InvalidTransition
from ..utils.clock import format_rfc3339, utc_now
from .models import Deployment, DeploymentStatus, DeploymentTransition

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: Dict[DeploymentStatus, FrozenSet[DeploymentStatus]] = {
    DeploymentStatus.CREATED: frozenset({DeploymentStatus.IN_PROGRESS}),
    DeploymentStatus.IN_PROGRESS: frozenset(
        {DeploymentStatus.SUCCESS, DeploymentStatus.FAILURE}
    ),
    DeploymentStatus.SUCCESS: frozenset(),
    DeploymentStatus.FAILURE: frozenset(),
}


class DeploymentTracker:
    """Creates deployments and drives them through ``created -> in_progress -> success|failure``."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._deployments: List[Deployment] = []

    @property
    def deployments(self) -> List[Deployment]:
        return list(self._deployments)

    def create(self, environment: str, revision: str) -> Deployment:
        for existing in self._deployments:
            if (
                existing.environment == environment
                and existing.revision == revision
                and not existing.is_terminal
            ):
                raise ConflictError(
                    f"Deployment {existing.id} for {environment}@{revision} is still "
                    f"{existing.status.value}"
                )

        now = format_rfc3339(self._clock())
        deployment = Deployment(
            id=self._generate_id(environment, revision),
            environment=environment,
            revision=revision,
            created_at=now,
            history=[DeploymentTransition(DeploymentStatus.CREATED, now)],
        )
        self._deployments.append(deployment)
        self._advance(deployment, DeploymentStatus.IN_PROGRESS)
        logger.info("🚀 Deployment %s created for %s (%s)", deployment.id, environment, revision)
        return deployment

    def transition(
        self,
        deployment: Deployment,
        outcome: DeploymentStatus,
        url: Optional[str] = None,
    ) -> Deployment:
        """Move an in-progress deployment to its terminal state, exactly once."""
        if not outcome.is_terminal:
            raise InvalidTransition(
                f"Outcome must be success or failure, got {outcome.value}"
            )
        self._advance(deployment, outcome)
        if url:
            deployment.url = url
        logger.info("Deployment %s -> %s", deployment.id, outcome.value)
        return deployment

    def get(self, deployment_id: str) -> Optional[Deployment]:
        for deployment in self._deployments:
            if deployment.id == deployment_id:
                return deployment
        return None

    def latest(self, environment: str) -> Optional[Deployment]:
        for deployment in reversed(self._deployments):
            if deployment.environment == environment:
                return deployment
        return None

    def _advance(self, deployment: Deployment, target: DeploymentStatus) -> None:
        allowed = _ALLOWED_TRANSITIONS[deployment.status]
        if target not in allowed:
            raise InvalidTransition(
                f"Deployment {deployment.id} cannot move from "
                f"{deployment.status.value} to {target.value}"
            )
        deployment.status = target
        deployment.history.append(
            DeploymentTransition(target, format_rfc3339(self._clock()))
        )

    def _generate_id(self, environment: str, revision: str) -> str:
        token = f"{environment}-{revision}-{time.time_ns()}-{len(self._deployments)}"
        return hashlib.sha1(token.encode("utf-8")).hexdigest()[:12]
