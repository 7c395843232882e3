"""Stage graph executor: runs the fixed deployment pipeline once."""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Callable, Dict, Mapping, Optional, Sequence

from ..config import Credentials, NotificationConfig, PipelineInputs, TimeoutConfig
from ..errors import InvariantViolation, StageFailure
from ..utils.clock import format_rfc3339, utc_now
from .context import PipelineServices, RunContext
from .models import PIPELINE_STAGES, Stage, StageLedger, StageName, StageStatus
from .report import PipelineReport
from .stages import STAGE_HANDLERS

logger = logging.getLogger(__name__)

StageHandler = Callable[[RunContext], None]


class StageGraphExecutor:
    """
    阶段图执行器

    Runs stages strictly in declared order. A stage starts only when each
    dependency succeeded (or is optional); otherwise it is skipped. Stages
    marked ``always_run`` are deferred on an ``ExitStack`` and run after the
    ordinary stages whatever their outcome. Stage failures and any other
    ``Exception`` are recorded as data; invariant violations and cancellation
    propagate, in which case the deferred stages do not run.
    """

    def __init__(
        self,
        inputs: PipelineInputs,
        credentials: Credentials,
        services: PipelineServices,
        *,
        timeouts: Optional[TimeoutConfig] = None,
        notifications: Optional[NotificationConfig] = None,
        stages: Sequence[Stage] = PIPELINE_STAGES,
        handlers: Optional[Mapping[StageName, StageHandler]] = None,
    ) -> None:
        inputs.validate()
        self.inputs = inputs
        self.credentials = credentials
        self.services = services
        self.timeouts = timeouts or TimeoutConfig()
        self.notifications = notifications or NotificationConfig()
        self.stages = tuple(stages)
        self.handlers: Dict[StageName, StageHandler] = dict(handlers or STAGE_HANDLERS)
        self._by_name = {stage.name: stage for stage in self.stages}
        self._validate_graph()

    def run(self) -> PipelineReport:
        """
        Execute the pipeline once.

        Returns:
            PipelineReport describing every stage and the deployment state.

        Raises:
            InvariantViolation: when orchestration invariants are broken.
        """
        started_at = format_rfc3339(utc_now())
        ctx = RunContext(
            inputs=self.inputs,
            credentials=self.credentials,
            timeouts=self.timeouts,
            notifications=self.notifications,
            services=self.services,
            ledger=StageLedger(self.stages),
        )

        logger.info("")
        logger.info("=" * 60)
        logger.info("🚀 DEPLOYMENT PIPELINE")
        logger.info("=" * 60)
        logger.info("Environment: %s", self.inputs.environment)
        logger.info("Revision: %s", self.inputs.revision)
        logger.info("Dry run: %s", self.inputs.dry_run)
        logger.info("Stages: %s", " -> ".join(stage.name.value for stage in self.stages))
        logger.info("=" * 60)

        ordinary = [stage for stage in self.stages if not stage.always_run]
        deferred = [stage for stage in self.stages if stage.always_run]

        with ExitStack() as stack:
            # ExitStack unwinds LIFO; push in reverse to keep declared order
            for stage in reversed(deferred):
                stack.push(self._deferred(stage, ctx))
            for stage in ordinary:
                self._run_stage(stage, ctx)

        report = self._build_report(ctx, started_at)
        logger.info("=" * 60)
        if report.succeeded:
            logger.info("🎉 %s", report.headline)
        else:
            logger.error("💥 %s", report.headline)
        logger.info("=" * 60)
        return report

    def succeeded(self, ledger: StageLedger) -> bool:
        """Success iff every non-skipped, non-optional stage succeeded."""
        for stage in self.stages:
            status = ledger.status(stage.name)
            if stage.optional or status is StageStatus.SKIPPED:
                continue
            if status is not StageStatus.SUCCESS:
                return False
        return True

    def _deferred(self, stage: Stage, ctx: RunContext):
        def _run_on_exit(exc_type, exc, tb) -> bool:
            if exc_type is None:
                self._run_stage(stage, ctx)
            else:
                logger.error(
                    "Run aborted by %s; always-run stage %s not executed",
                    exc_type.__name__,
                    stage.name.value,
                )
            return False

        return _run_on_exit

    def _run_stage(self, stage: Stage, ctx: RunContext) -> None:
        ledger = ctx.ledger
        blocker = self._blocking_dependency(stage, ledger)
        if blocker is not None:
            logger.warning("⏭️  Skipping %s: %s", stage.name.value, blocker)
            ledger.mark_skipped(stage.name, blocker)
            return

        logger.info("📍 Stage: %s", stage.name.value)
        ledger.mark_running(stage.name)
        try:
            self.handlers[stage.name](ctx)
        except StageFailure as exc:
            logger.error("   ❌ %s failed: %s", stage.name.value, exc)
            ledger.mark_failure(stage.name, str(exc))
            return
        except InvariantViolation:
            raise
        except Exception as exc:
            logger.exception("   ❌ %s failed unexpectedly", stage.name.value)
            ledger.mark_failure(stage.name, f"{type(exc).__name__}: {exc}")
            return
        ledger.mark_success(stage.name)
        logger.info("   ✅ %s succeeded", stage.name.value)

    def _blocking_dependency(self, stage: Stage, ledger: StageLedger) -> Optional[str]:
        for dependency in stage.depends_on:
            status = ledger.status(dependency)
            if not status.is_terminal:
                return f"dependency {dependency.value} has not completed ({status.value})"
            if stage.always_run or self._by_name[dependency].optional:
                continue
            if status is not StageStatus.SUCCESS:
                return f"dependency {dependency.value} did not succeed ({status.value})"
        return None

    def _validate_graph(self) -> None:
        seen = set()
        for stage in self.stages:
            if stage.name in seen:
                raise ValueError(f"Duplicate stage {stage.name.value}")
            for dependency in stage.depends_on:
                if dependency not in seen:
                    raise ValueError(
                        f"Stage {stage.name.value} depends on {dependency.value}, "
                        "which is not declared before it"
                    )
            if stage.name not in self.handlers:
                raise ValueError(f"No handler registered for stage {stage.name.value}")
            seen.add(stage.name)

    def _build_report(self, ctx: RunContext, started_at: str) -> PipelineReport:
        succeeded = self.succeeded(ctx.ledger)
        rollback_target = None
        if not succeeded:
            rollback_target = self.services.rollback_store.latest(self.inputs.environment)
        return PipelineReport(
            environment=self.inputs.environment,
            revision=self.inputs.revision,
            run_id=self.inputs.run_id,
            dry_run=self.inputs.dry_run,
            succeeded=succeeded,
            stages=ctx.ledger.copy_results(),
            deployment=ctx.deployment,
            snapshot=ctx.snapshot,
            rollback_target=rollback_target,
            notification=ctx.delivery,
            started_at=started_at,
            finished_at=format_rfc3339(utc_now()),
        )
