"""Final report of a pipeline run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..deployments.models import Deployment
from ..notifications.emitter import DeliveryResult
from ..rollback.models import RollbackSnapshot
from .models import StageName, StageResult, StageStatus

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

_STATUS_STYLE = {
    StageStatus.SUCCESS: ("✅", "green"),
    StageStatus.FAILURE: ("❌", "red"),
    StageStatus.SKIPPED: ("⏭️", "yellow"),
    StageStatus.RUNNING: ("🔄", "cyan"),
    StageStatus.PENDING: ("…", "dim"),
}


@dataclass
class PipelineReport:
    """Stage outcomes plus the resulting deployment and rollback state."""

    environment: str
    revision: str
    run_id: str
    dry_run: bool
    succeeded: bool
    stages: Dict[StageName, StageResult]
    deployment: Optional[Deployment] = None
    snapshot: Optional[RollbackSnapshot] = None
    # Latest valid snapshot for the environment, filled in on failure
    rollback_target: Optional[RollbackSnapshot] = None
    notification: Optional[DeliveryResult] = None
    started_at: str = ""
    finished_at: str = ""

    @property
    def exit_code(self) -> int:
        return EXIT_SUCCESS if self.succeeded else EXIT_FAILURE

    @property
    def headline(self) -> str:
        if self.succeeded and self.dry_run:
            return "Dry run completed successfully!"
        if self.succeeded:
            return "Deployment completed successfully!"
        return "Deployment failed!"

    def stage_status(self, name: StageName) -> StageStatus:
        return self.stages[name].status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment,
            "revision": self.revision,
            "run_id": self.run_id,
            "dry_run": self.dry_run,
            "status": "success" if self.succeeded else "failure",
            "exit_code": self.exit_code,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "stages": {name.value: result.to_dict() for name, result in self.stages.items()},
            "deployment": self.deployment.to_dict() if self.deployment else None,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "rollback_target": self.rollback_target.to_dict() if self.rollback_target else None,
            "notification": self.notification.label if self.notification else None,
        }

    def render(self, console: Optional[Console] = None) -> None:
        console = console or Console()
        console.print()
        console.rule("Deployment Results")
        console.print(f"- Environment: {self.environment}")
        console.print(f"- Dry Run: {str(self.dry_run).lower()}")
        console.print(f"- Deployment ID: {self.deployment.id if self.deployment else '-'}")
        console.print(f"- Commit SHA: {self.revision}")
        console.print(f"- Run: {self.run_id}")

        table = Table(show_header=True, header_style="bold")
        table.add_column("Stage")
        table.add_column("Status")
        table.add_column("Details", overflow="fold")
        for name, result in self.stages.items():
            icon, style = _STATUS_STYLE[result.status]
            details = result.error or ", ".join(f"{k}={v}" for k, v in result.outputs.items())
            table.add_row(name.value, f"[{style}]{icon} {result.status.value}[/{style}]", escape(details))
        console.print(table)

        if self.deployment is not None:
            url = f" ({self.deployment.url})" if self.deployment.url else ""
            console.print(f"Deployment: {self.deployment.status.value}{url}")
        if self.snapshot is not None:
            console.print(f"Rollback snapshot stored at {self.snapshot.timestamp}")
        if not self.succeeded:
            if self.rollback_target is not None:
                target = self.rollback_target
                console.print(
                    f"Rollback target: {target.service}@{target.version} "
                    f"(commit {target.commit_sha}, deployed {target.timestamp}, "
                    f"run {target.run_id})"
                )
            else:
                console.print(f"No rollback snapshot available for {self.environment}")

        style = "green" if self.succeeded else "red"
        icon = "🎉" if self.succeeded and not self.dry_run else ("✅" if self.succeeded else "❌")
        console.print(f"[{style}]{icon} {self.headline}[/{style}]")
