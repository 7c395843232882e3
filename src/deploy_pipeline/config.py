"""Configuration loading utilities for deploy-pipeline."""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .paths import LOGS_DIR, ROLLBACK_DIR

_DEFAULT_CONFIG_PATH = Path("config/deploy_pipeline.json")

DEFAULT_NOTIFICATION_ENDPOINT = "https://api.datadoghq.com/api/v1/events"
DEFAULT_GITHUB_API_URL = "https://api.github.com"


def str_to_bool(value: Any) -> bool:
    """Interpret workflow-style boolean strings."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


@dataclass
class PipelineInputs:
    """Per-invocation inputs of a pipeline run."""

    environment: str = ""
    revision: str = "HEAD"
    run_id: str = ""
    repository: str = ""
    project_dir: str = "."
    node_version: str = "18"
    wrangler_version: str = "latest"
    dry_run: bool = False
    enable_rollback: bool = True

    def validate(self) -> None:
        if not self.environment:
            raise ValueError("Pipeline input 'environment' is required")
        if not self.revision:
            raise ValueError("Pipeline input 'revision' is required")


@dataclass
class Credentials:
    """Secrets recognised by the pipeline.

    Only ``deploy_token`` is required (and only by the stages that talk to the
    hosting platform). The Datadog keys enable notifications; the GitHub token
    enables external deployment status updates.
    """

    deploy_token: Optional[str] = None
    datadog_api_key: Optional[str] = None
    datadog_app_key: Optional[str] = None
    github_token: Optional[str] = None

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.datadog_api_key)

    def __repr__(self) -> str:
        def _mask(value: Optional[str]) -> str:
            return "***" if value else "None"

        return (
            f"Credentials(deploy_token={_mask(self.deploy_token)}, "
            f"datadog_api_key={_mask(self.datadog_api_key)}, "
            f"datadog_app_key={_mask(self.datadog_app_key)}, "
            f"github_token={_mask(self.github_token)})"
        )


@dataclass
class TimeoutConfig:
    """Bounds (seconds) for every blocking collaborator call."""

    command: int = 600
    install: int = 900
    deploy: int = 900
    health_check: int = 10
    propagation_delay: int = 30  # wait before the single health check
    http: int = 10


@dataclass
class NotificationConfig:
    """Settings for the telemetry event sink."""

    endpoint: str = DEFAULT_NOTIFICATION_ENDPOINT
    source: str = "github-actions"
    source_type_name: str = "github"
    extra_tags: List[str] = field(default_factory=lambda: ["deployment:cloudflare-workers"])


@dataclass
class StorageConfig:
    """Where rollback snapshots and run logs are written."""

    rollback_dir: str = str(ROLLBACK_DIR)
    log_dir: str = str(LOGS_DIR)


@dataclass
class GitHubConfig:
    """External deployment status API settings."""

    api_url: str = DEFAULT_GITHUB_API_URL


@dataclass
class AppConfig:
    """Top-level configuration."""

    inputs: PipelineInputs = field(default_factory=PipelineInputs)
    credentials: Credentials = field(default_factory=Credentials)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        inputs_payload = _clean(payload.get("inputs"))
        credentials_payload = _clean(payload.get("credentials"))
        timeouts_payload = _clean(payload.get("timeouts"))
        notifications_payload = _clean(payload.get("notifications"))
        storage_payload = _clean(payload.get("storage"))
        github_payload = _clean(payload.get("github"))

        for flag in ("dry_run", "enable_rollback"):
            if flag in inputs_payload:
                inputs_payload[flag] = str_to_bool(inputs_payload[flag])

        return cls(
            inputs=PipelineInputs(**{**PipelineInputs().__dict__, **inputs_payload}),
            credentials=Credentials(**{**Credentials().__dict__, **credentials_payload}),
            timeouts=TimeoutConfig(**{**TimeoutConfig().__dict__, **timeouts_payload}),
            notifications=NotificationConfig(
                **{**NotificationConfig().__dict__, **notifications_payload}
            ),
            storage=StorageConfig(**{**StorageConfig().__dict__, **storage_payload}),
            github=GitHubConfig(**{**GitHubConfig().__dict__, **github_payload}),
            log_level=payload.get("log_level", "INFO"),
        )


def _clean(section: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # Keys starting with "_" are comments in the JSON file
    return {k: v for k, v in (section or {}).items() if not k.startswith("_")}


_INPUT_ENV_VARS = {
    "DEPLOY_PIPELINE_ENVIRONMENT": "environment",
    "DEPLOY_PIPELINE_REVISION": "revision",
    "DEPLOY_PIPELINE_RUN_ID": "run_id",
    "DEPLOY_PIPELINE_REPOSITORY": "repository",
    "DEPLOY_PIPELINE_PROJECT_DIR": "project_dir",
    "DEPLOY_PIPELINE_NODE_VERSION": "node_version",
    "DEPLOY_PIPELINE_WRANGLER_VERSION": "wrangler_version",
}

# Values the CI runner provides; used only when nothing more specific is set.
_RUNNER_ENV_VARS = {
    "GITHUB_SHA": "revision",
    "GITHUB_RUN_ID": "run_id",
    "GITHUB_REPOSITORY": "repository",
}

_CREDENTIAL_ENV_VARS = {
    "CLOUDFLARE_API_TOKEN": "deploy_token",
    "DATADOG_API_KEY": "datadog_api_key",
    "DATADOG_APP_KEY": "datadog_app_key",
    "GITHUB_TOKEN": "github_token",
}


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path`, the default location, and the environment.

    Environment variables take priority over the config file:
    - DEPLOY_PIPELINE_ENVIRONMENT / _REVISION / _RUN_ID / _REPOSITORY
    - DEPLOY_PIPELINE_PROJECT_DIR / _NODE_VERSION / _WRANGLER_VERSION
    - DEPLOY_PIPELINE_DRY_RUN / _ENABLE_ROLLBACK: boolean flags
    - DEPLOY_PIPELINE_LOG_LEVEL
    - GITHUB_SHA / GITHUB_RUN_ID / GITHUB_REPOSITORY: runner fallbacks
    - CLOUDFLARE_API_TOKEN, DATADOG_API_KEY, DATADOG_APP_KEY, GITHUB_TOKEN
    """
    load_dotenv()

    if path and not Path(path).is_file():
        raise FileNotFoundError(f"Could not find configuration file: {path}")

    candidate = Path(path) if path else _DEFAULT_CONFIG_PATH
    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            config = AppConfig.from_dict(json.load(handle))
    else:
        config = AppConfig()

    inputs = config.inputs
    for env_name, attr in _RUNNER_ENV_VARS.items():
        value = os.getenv(env_name)
        if value and getattr(inputs, attr) in ("", "HEAD"):
            setattr(inputs, attr, value)

    for env_name, attr in _INPUT_ENV_VARS.items():
        value = os.getenv(env_name)
        if value:
            setattr(inputs, attr, value)

    env_dry_run = os.getenv("DEPLOY_PIPELINE_DRY_RUN")
    if env_dry_run:
        inputs.dry_run = str_to_bool(env_dry_run)

    env_rollback = os.getenv("DEPLOY_PIPELINE_ENABLE_ROLLBACK")
    if env_rollback:
        inputs.enable_rollback = str_to_bool(env_rollback)

    if not inputs.run_id:
        inputs.run_id = str(time.time_ns())

    for env_name, attr in _CREDENTIAL_ENV_VARS.items():
        value = os.getenv(env_name)
        if value:
            setattr(config.credentials, attr, value)

    env_level = os.getenv("DEPLOY_PIPELINE_LOG_LEVEL")
    if env_level:
        config.log_level = env_level

    return config
