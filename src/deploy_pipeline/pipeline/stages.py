"""Bodies of the pre-deploy, deploy and post-deploy stages.

Each body receives the run context, writes its outputs to the ledger and
raises a ``StageFailure`` subclass when it cannot finish.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict

from ..cache_key import derive_cache_key, fingerprint_files
from ..deployments.models import Deployment, DeploymentStatus
from ..errors import (
    CollaboratorFailure,
    InvalidInput,
    PreconditionFailed,
    StageFailure,
    ValidationError,
)
from ..notifications.models import deployment_event
from .context import RunContext
from .models import StageName, StageOutput, StageStatus

logger = logging.getLogger(__name__)

CACHE_FINGERPRINT_FILES = ("package-lock.json", "wrangler.toml")


def run_pre_deploy(ctx: RunContext) -> None:
    """Derive the cache key, open the deployment record and validate the project."""
    inputs = ctx.inputs
    services = ctx.services
    ledger = ctx.ledger

    project_dir = Path(inputs.project_dir)
    try:
        cache_key = derive_cache_key(
            [
                f"node-{inputs.node_version}",
                fingerprint_files(project_dir / name for name in CACHE_FINGERPRINT_FILES),
            ]
        )
    except InvalidInput as exc:
        raise ValidationError(f"Could not derive cache key: {exc}") from exc
    ledger.set_output(StageName.PRE_DEPLOY, StageOutput.CACHE_KEY, cache_key)
    logger.info("   Cache key: %s", cache_key)

    if not inputs.dry_run:
        deployment = services.tracker.create(inputs.environment, inputs.revision)
        ctx.deployment = deployment
        ledger.set_output(StageName.PRE_DEPLOY, StageOutput.DEPLOYMENT_ID, deployment.id)
        if services.reporter is not None:
            services.reporter.create(deployment)

    services.toolchain.validate_project()

    token = ctx.credentials.deploy_token
    if not token:
        raise ValidationError("CLOUDFLARE_API_TOKEN is required but was not provided")

    services.toolchain.install(cache_key, timeout=ctx.timeouts.install)
    services.toolchain.setup_cli(inputs.wrangler_version, timeout=ctx.timeouts.command)
    services.toolchain.verify_auth(token, timeout=ctx.timeouts.command)

    if not services.toolchain.has_environment(inputs.environment):
        logger.warning(
            "⚠️  Environment %s not found in wrangler.toml", inputs.environment
        )
    logger.info("✅ Pre-deployment validation passed")


def run_deploy(ctx: RunContext) -> None:
    """Build, publish, verify, then settle the deployment and snapshot it."""
    inputs = ctx.inputs
    services = ctx.services
    ledger = ctx.ledger
    deployment = ctx.deployment

    if not inputs.dry_run and deployment is None:
        raise PreconditionFailed("deploy stage started without a deployment record")

    ledger.set_output(StageName.DEPLOY, StageOutput.DRY_RUN, str(inputs.dry_run).lower())
    try:
        services.toolchain.build(timeout=ctx.timeouts.command)
        outcome = services.deployer.deploy(
            inputs.environment,
            inputs.dry_run,
            ctx.credentials.deploy_token,
            timeout=ctx.timeouts.deploy,
        )
        if not outcome.ok:
            raise CollaboratorFailure(
                f"Deploy command exited with status {outcome.exit_status}"
            )
        ledger.set_output(StageName.DEPLOY, StageOutput.DEPLOYMENT_URL, outcome.url)

        if inputs.dry_run:
            logger.info("✅ Dry run completed, nothing was published")
            return

        if outcome.url:
            if not services.health_checker.check(outcome.url, timeout=ctx.timeouts.health_check):
                raise CollaboratorFailure(f"Deployment test failed for {outcome.url}")
            logger.info("✅ Deployment test passed")
        else:
            logger.warning("⚠️  No deployment URL found, skipping test")
    except StageFailure:
        if deployment is not None:
            services.tracker.transition(deployment, DeploymentStatus.FAILURE)
        raise

    services.tracker.transition(deployment, DeploymentStatus.SUCCESS, url=outcome.url or None)
    logger.info("✅ Deployment completed")

    if inputs.enable_rollback:
        _store_snapshot(ctx, deployment)


def _store_snapshot(ctx: RunContext, deployment: Deployment) -> None:
    service, version = ctx.services.toolchain.package_metadata()
    try:
        snapshot = ctx.services.rollback_store.record(
            deployment,
            service=service,
            version=version,
            run_id=ctx.inputs.run_id,
        )
    except OSError as exc:
        # The deployment itself is live; only the rollback metadata is lost.
        logger.error("❌ Could not store rollback snapshot: %s", exc)
        return
    ctx.snapshot = snapshot
    ctx.ledger.set_output(StageName.DEPLOY, StageOutput.SNAPSHOT, snapshot.timestamp)


def run_post_deploy(ctx: RunContext) -> None:
    """Close the deployment, mirror its status, and send the one notification."""
    inputs = ctx.inputs
    services = ctx.services
    ledger = ctx.ledger
    deployment = ctx.deployment

    deploy_result = ledger[StageName.DEPLOY]
    succeeded = deploy_result.status is StageStatus.SUCCESS

    if deployment is not None:
        if not deployment.is_terminal:
            # deploy never ran (skipped) or was cut short before settling
            services.tracker.transition(deployment, DeploymentStatus.FAILURE)
        ledger.set_output(
            StageName.POST_DEPLOY, StageOutput.DEPLOYMENT_STATUS, deployment.status.value
        )
        _report_status(ctx, deployment)
    else:
        ledger.set_output(
            StageName.POST_DEPLOY,
            StageOutput.DEPLOYMENT_STATUS,
            "dry-run" if inputs.dry_run else "none",
        )

    extra_tags = list(ctx.notifications.extra_tags)
    if inputs.dry_run:
        extra_tags.append("dry_run:true")
    event = deployment_event(
        inputs.environment,
        succeeded,
        source=ctx.notifications.source,
        repo=inputs.repository or "unknown",
        extra_tags=extra_tags,
        detail=_failure_detail(ctx),
    )
    ctx.delivery = services.emitter.emit(event)
    ledger.set_output(StageName.POST_DEPLOY, StageOutput.NOTIFICATION, ctx.delivery.label)


def _report_status(ctx: RunContext, deployment: Deployment) -> None:
    reporter = ctx.services.reporter
    if reporter is None or not deployment.external_id:
        return
    description = (
        "Deployment completed successfully"
        if deployment.status is DeploymentStatus.SUCCESS
        else "Deployment failed"
    )
    try:
        reporter.update_status(deployment, description)
    except CollaboratorFailure as exc:
        logger.warning("⚠️  Could not update external deployment status: %s", exc)
        ctx.ledger.set_output(StageName.POST_DEPLOY, StageOutput.STATUS_REPORTED, "false")
        return
    ctx.ledger.set_output(StageName.POST_DEPLOY, StageOutput.STATUS_REPORTED, "true")


def _failure_detail(ctx: RunContext) -> str:
    lines = []
    for name, result in ctx.ledger.items():
        if result.status in (StageStatus.FAILURE, StageStatus.SKIPPED) and result.error:
            lines.append(f"{name.value}: {result.status.value} ({result.error})")
    return "\n".join(lines)


STAGE_HANDLERS: Dict[StageName, Callable[[RunContext], None]] = {
    StageName.PRE_DEPLOY: run_pre_deploy,
    StageName.DEPLOY: run_deploy,
    StageName.POST_DEPLOY: run_post_deploy,
}
