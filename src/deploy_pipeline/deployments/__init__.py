"""Deployment lifecycle records and their external mirror."""

from .models import Deployment, DeploymentStatus, DeploymentTransition
from .reporter import GitHubDeploymentReporter
from .tracker import DeploymentTracker

__all__ = [
    "Deployment",
    "DeploymentStatus",
    "DeploymentTransition",
    "DeploymentTracker",
    "GitHubDeploymentReporter",
]
