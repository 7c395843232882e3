"""Deployment pipeline orchestrator.

Runs the fixed pre-deploy -> deploy -> post-deploy pipeline for one
environment, tracking the deployment, storing rollback snapshots and sending
a best-effort deployment event.
"""

from .cache_key import derive_cache_key, fingerprint_files
from .config import AppConfig, Credentials, PipelineInputs, load_config
from .pipeline import PipelineReport, PipelineServices, StageGraphExecutor
from .workflow import DeploymentWorkflow, build_services

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "Credentials",
    "DeploymentWorkflow",
    "PipelineInputs",
    "PipelineReport",
    "PipelineServices",
    "StageGraphExecutor",
    "build_services",
    "derive_cache_key",
    "fingerprint_files",
    "load_config",
]
