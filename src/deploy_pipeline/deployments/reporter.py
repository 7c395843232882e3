"""External deployment status reporting through the GitHub deployments API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from ..errors import CollaboratorFailure
from .models import Deployment

logger = logging.getLogger(__name__)


class GitHubDeploymentReporter:
    """Mirrors local deployment records onto GitHub deployments."""

    def __init__(
        self,
        token: str,
        repository: str,
        api_url: str = "https://api.github.com",
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token is required")
        if not repository or "/" not in repository:
            raise ValueError(f"Repository must look like 'owner/name', got {repository!r}")
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            }
        )

    def create(self, deployment: Deployment) -> str:
        """Register the deployment remotely and mark it in progress; returns the remote id."""
        data = self._post(
            f"/repos/{self.repository}/deployments",
            {
                "ref": deployment.revision,
                "environment": deployment.environment,
                "auto_merge": False,
                "required_contexts": [],
            },
        )
        external_id = data.get("id")
        if external_id is None:
            raise CollaboratorFailure("GitHub did not return a deployment id")
        deployment.external_id = str(external_id)
        self.update_status(deployment, "Deployment started")
        return deployment.external_id

    def update_status(self, deployment: Deployment, description: str) -> None:
        if not deployment.external_id:
            raise CollaboratorFailure(
                f"Deployment {deployment.id} has no external id to update"
            )
        payload: Dict[str, Any] = {
            "state": deployment.status.value,
            "description": description,
        }
        if deployment.url:
            payload["environment_url"] = deployment.url
        self._post(
            f"/repos/{self.repository}/deployments/{deployment.external_id}/statuses",
            payload,
        )

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise CollaboratorFailure(f"GitHub request to {path} failed: {exc}") from exc
        if not response.ok:
            raise CollaboratorFailure(
                f"GitHub request to {path} returned {response.status_code}: {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError:
            return {}
