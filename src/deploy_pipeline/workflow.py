"""High-level workflow: wires configured collaborators into one pipeline run."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from .collaborators import CommandRunner, HttpHealthChecker, NpmToolchain, WranglerDeployer
from .config import AppConfig
from .deployments import DeploymentTracker, GitHubDeploymentReporter
from .notifications import DatadogEventSink, NotificationEmitter
from .pipeline import PipelineReport, PipelineServices, StageGraphExecutor
from .rollback import FileRollbackStore
from .utils.logging import get_logger

logger = get_logger(__name__)


def build_services(config: AppConfig) -> PipelineServices:
    """Create the production collaborators described by ``config``."""
    inputs = config.inputs
    credentials = config.credentials
    runner = CommandRunner(cwd=inputs.project_dir)

    sink: Optional[DatadogEventSink] = None
    if credentials.notifications_enabled:
        sink = DatadogEventSink(
            api_key=credentials.datadog_api_key,
            app_key=credentials.datadog_app_key,
            endpoint=config.notifications.endpoint,
            source_type_name=config.notifications.source_type_name,
            timeout=config.timeouts.http,
        )
    else:
        logger.info("DATADOG_API_KEY not set, deployment events are disabled")

    reporter: Optional[GitHubDeploymentReporter] = None
    if credentials.github_token and inputs.repository:
        reporter = GitHubDeploymentReporter(
            token=credentials.github_token,
            repository=inputs.repository,
            api_url=config.github.api_url,
            timeout=config.timeouts.http,
        )

    return PipelineServices(
        toolchain=NpmToolchain(runner),
        deployer=WranglerDeployer(runner),
        health_checker=HttpHealthChecker(propagation_delay=config.timeouts.propagation_delay),
        tracker=DeploymentTracker(),
        rollback_store=FileRollbackStore(config.storage.rollback_dir),
        emitter=NotificationEmitter(sink),
        reporter=reporter,
    )


class DeploymentWorkflow:
    """Coordinates one pipeline invocation and keeps its run log."""

    def __init__(
        self,
        config: AppConfig,
        services: Optional[PipelineServices] = None,
        log_dir: Optional[str] = None,
    ) -> None:
        self.config = config
        self.services = services or build_services(config)
        self.log_dir = Path(log_dir or config.storage.log_dir)
        self.current_log_file: Optional[Path] = None

    def run(self) -> PipelineReport:
        inputs = self.config.inputs
        logger.info("Preparing deployment of %s to %s", inputs.revision, inputs.environment)

        executor = StageGraphExecutor(
            inputs,
            self.config.credentials,
            self.services,
            timeouts=self.config.timeouts,
            notifications=self.config.notifications,
        )
        report = executor.run()
        self._save_log(report)
        return report

    def _save_log(self, report: PipelineReport) -> None:
        """Write the run report as JSON next to earlier runs."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"deploy_{report.environment}_{timestamp}_{report.run_id}.json"
        self.current_log_file = self.log_dir / filename
        try:
            with open(self.current_log_file, "w", encoding="utf-8") as f:
                json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)
        except OSError as exc:
            logger.warning("Could not write run log %s: %s", self.current_log_file, exc)
            return
        logger.info("📄 Log saved to: %s", self.current_log_file)
