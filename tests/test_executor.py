import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from rich.console import Console

from deploy_pipeline.collaborators import NpmToolchain
from deploy_pipeline.config import Credentials, PipelineInputs, TimeoutConfig
from deploy_pipeline.deployments import (
    DeploymentStatus,
    DeploymentTracker,
    GitHubDeploymentReporter,
)
from deploy_pipeline.errors import CollaboratorFailure, InvalidTransition
from deploy_pipeline.notifications import NotificationEmitter
from deploy_pipeline.pipeline import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    PipelineServices,
    Stage,
    StageGraphExecutor,
    StageName,
    StageOutput,
    StageStatus,
)
from deploy_pipeline.pipeline.stages import run_post_deploy, run_pre_deploy
from deploy_pipeline.rollback import FileRollbackStore, InMemoryRollbackStore

from fakes import (
    FakeResponse,
    FakeSession,
    RecordingSink,
    ScriptedRunner,
    StubDeployer,
    StubHealthChecker,
    StubToolchain,
)


class ExecutorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.project_dir = Path(self._tmp.name)
        self.toolchain = StubToolchain()
        self.deployer = StubDeployer()
        self.health = StubHealthChecker()
        self.tracker = DeploymentTracker()
        self.store = InMemoryRollbackStore()
        self.sink = RecordingSink()
        self.emitter = NotificationEmitter(self.sink)
        self.reporter = None

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def services(self) -> PipelineServices:
        return PipelineServices(
            toolchain=self.toolchain,
            deployer=self.deployer,
            health_checker=self.health,
            tracker=self.tracker,
            rollback_store=self.store,
            emitter=self.emitter,
            reporter=self.reporter,
        )

    def executor(self, token="cf-token", **overrides) -> StageGraphExecutor:
        fields = {
            "environment": "production",
            "revision": "abc123",
            "run_id": "1001",
            "repository": "acme/worker",
            "project_dir": str(self.project_dir),
        }
        fields.update(overrides)
        return StageGraphExecutor(
            PipelineInputs(**fields),
            Credentials(deploy_token=token),
            self.services(),
            timeouts=TimeoutConfig(propagation_delay=0),
        )


class PipelineScenarioTests(ExecutorTestCase):
    def test_successful_run_records_snapshot(self) -> None:
        report = self.executor().run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.exit_code, EXIT_SUCCESS)
        self.assertEqual(report.deployment.status, DeploymentStatus.SUCCESS)
        self.assertEqual(report.deployment.url, "https://app.example.workers.dev")

        history = self.store.history("production")
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].commit_sha, "abc123")
        self.assertEqual(self.store.latest("production"), history[0])
        self.assertEqual(report.snapshot, history[0])
        self.assertIsNone(report.rollback_target)

        self.assertEqual(self.health.checked, ["https://app.example.workers.dev"])
        self.assertEqual(len(self.sink.events), 1)
        self.assertTrue(self.sink.events[0].has_tag("status:success"))
        for name in StageName:
            self.assertEqual(report.stage_status(name), StageStatus.SUCCESS)

    def test_dry_run_is_synthetic_success(self) -> None:
        report = self.executor(environment="staging", dry_run=True).run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.exit_code, EXIT_SUCCESS)
        self.assertIsNone(report.deployment)
        self.assertEqual(self.tracker.deployments, [])
        self.assertIsNone(self.store.latest("staging"))
        self.assertEqual(self.deployer.calls, [("staging", True)])
        self.assertEqual(self.health.checked, [])
        self.assertEqual(report.stage_status(StageName.DEPLOY), StageStatus.SUCCESS)
        self.assertEqual(report.stages[StageName.DEPLOY].outputs["dry-run"], "true")
        self.assertTrue(self.sink.events[0].has_tag("dry_run:true"))
        self.assertEqual(report.headline, "Dry run completed successfully!")

    def test_pre_deploy_validation_failure(self) -> None:
        self.toolchain.fail_validation = True

        report = self.executor().run()

        self.assertFalse(report.succeeded)
        self.assertNotEqual(report.exit_code, 0)
        self.assertEqual(report.stage_status(StageName.PRE_DEPLOY), StageStatus.FAILURE)
        self.assertEqual(report.stage_status(StageName.DEPLOY), StageStatus.SKIPPED)
        self.assertEqual(report.stage_status(StageName.POST_DEPLOY), StageStatus.SUCCESS)
        self.assertEqual(self.deployer.calls, [])
        self.assertIsNone(self.store.latest("production"))
        # the opened deployment is closed by post-deploy
        self.assertEqual(report.deployment.status, DeploymentStatus.FAILURE)
        self.assertEqual(
            report.stages[StageName.POST_DEPLOY].outputs["deployment-status"], "failure"
        )

    def test_missing_deploy_token_fails_pre_deploy(self) -> None:
        report = self.executor(token=None).run()

        self.assertEqual(report.stage_status(StageName.PRE_DEPLOY), StageStatus.FAILURE)
        self.assertIn("CLOUDFLARE_API_TOKEN", report.stages[StageName.PRE_DEPLOY].error)
        self.assertNotIn("install", self.toolchain.calls)
        self.assertEqual(report.exit_code, EXIT_FAILURE)


class AlwaysRunTests(ExecutorTestCase):
    def test_post_deploy_emits_once_after_pre_deploy_failure(self) -> None:
        self.toolchain.fail_install = True

        report = self.executor().run()

        self.assertEqual(report.stage_status(StageName.POST_DEPLOY), StageStatus.SUCCESS)
        self.assertEqual(self.emitter.attempts, 1)
        self.assertEqual(len(self.sink.events), 1)
        event = self.sink.events[0]
        self.assertTrue(event.has_tag("status:failure"))
        self.assertIn("npm ci failed", event.text)

    def test_post_deploy_runs_after_deploy_failure(self) -> None:
        self.deployer.exit_status = 1

        report = self.executor().run()

        self.assertEqual(report.stage_status(StageName.DEPLOY), StageStatus.FAILURE)
        self.assertEqual(report.stage_status(StageName.POST_DEPLOY), StageStatus.SUCCESS)
        self.assertEqual(report.deployment.status, DeploymentStatus.FAILURE)
        self.assertIsNone(report.snapshot)
        self.assertEqual(len(self.sink.events), 1)

    def test_failed_health_check_fails_deployment(self) -> None:
        self.health.healthy = False

        report = self.executor().run()

        self.assertFalse(report.succeeded)
        self.assertEqual(report.deployment.status, DeploymentStatus.FAILURE)
        self.assertIsNone(self.store.latest("production"))

    def test_failure_report_references_previous_snapshot(self) -> None:
        first = self.executor(revision="good1").run()
        self.assertTrue(first.succeeded)

        self.deployer.exit_status = 1
        report = self.executor(revision="bad2", run_id="1002").run()

        self.assertFalse(report.succeeded)
        self.assertIsNotNone(report.rollback_target)
        self.assertEqual(report.rollback_target.commit_sha, "good1")


class NotificationOutcomeTests(ExecutorTestCase):
    def test_unreachable_sink_does_not_change_outcome(self) -> None:
        self.sink.fail_with = 503

        report = self.executor().run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.exit_code, EXIT_SUCCESS)
        self.assertEqual(report.notification.label, "failed")
        self.assertEqual(
            report.stages[StageName.POST_DEPLOY].outputs["notification"], "failed"
        )

    def test_disabled_emitter_is_not_a_failure(self) -> None:
        self.emitter = NotificationEmitter()

        report = self.executor().run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.notification.label, "disabled")


class InvariantTests(ExecutorTestCase):
    def test_invariant_violation_aborts_without_post_deploy(self) -> None:
        def broken_deploy(ctx):
            ctx.services.tracker.transition(ctx.deployment, DeploymentStatus.SUCCESS)
            ctx.services.tracker.transition(ctx.deployment, DeploymentStatus.FAILURE)

        executor = StageGraphExecutor(
            PipelineInputs(environment="production", project_dir=str(self.project_dir)),
            Credentials(deploy_token="cf-token"),
            self.services(),
            handlers={
                StageName.PRE_DEPLOY: run_pre_deploy,
                StageName.DEPLOY: broken_deploy,
                StageName.POST_DEPLOY: run_post_deploy,
            },
        )

        with self.assertRaises(InvalidTransition):
            executor.run()
        self.assertEqual(self.emitter.attempts, 0)

    def test_interrupt_leaves_deployment_in_progress(self) -> None:
        def interrupted(ctx):
            raise KeyboardInterrupt()

        executor = StageGraphExecutor(
            PipelineInputs(environment="production", project_dir=str(self.project_dir)),
            Credentials(deploy_token="cf-token"),
            self.services(),
            handlers={
                StageName.PRE_DEPLOY: run_pre_deploy,
                StageName.DEPLOY: interrupted,
                StageName.POST_DEPLOY: run_post_deploy,
            },
        )

        with self.assertRaises(KeyboardInterrupt):
            executor.run()
        self.assertEqual(
            self.tracker.latest("production").status, DeploymentStatus.IN_PROGRESS
        )
        self.assertEqual(self.sink.events, [])

    def test_failed_runs_write_no_snapshots(self) -> None:
        self.deployer.exit_status = 2
        self.executor().run()
        self.executor(revision="def456", run_id="1002").run()
        self.assertEqual(self.store.history("production"), [])


class GraphTests(ExecutorTestCase):
    def test_empty_environment_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.executor(environment="")

    def test_dependency_must_be_declared_first(self) -> None:
        stages = (
            Stage(StageName.DEPLOY, depends_on=(StageName.PRE_DEPLOY,)),
            Stage(StageName.PRE_DEPLOY),
        )
        with self.assertRaises(ValueError):
            StageGraphExecutor(
                PipelineInputs(environment="production"),
                Credentials(),
                self.services(),
                stages=stages,
            )

    def test_optional_stage_failure_does_not_block(self) -> None:
        ran = []

        def failing(ctx):
            ran.append("pre")
            raise CollaboratorFailure("lint failed")

        def deploy(ctx):
            ran.append("deploy")
            ctx.ledger.set_output(StageName.DEPLOY, StageOutput.DRY_RUN, "false")

        def finish(ctx):
            ran.append("post")

        stages = (
            Stage(StageName.PRE_DEPLOY, optional=True),
            Stage(StageName.DEPLOY, depends_on=(StageName.PRE_DEPLOY,)),
            Stage(StageName.POST_DEPLOY, depends_on=(StageName.DEPLOY,), always_run=True),
        )
        report = StageGraphExecutor(
            PipelineInputs(environment="production"),
            Credentials(),
            self.services(),
            stages=stages,
            handlers={
                StageName.PRE_DEPLOY: failing,
                StageName.DEPLOY: deploy,
                StageName.POST_DEPLOY: finish,
            },
        ).run()

        self.assertEqual(ran, ["pre", "deploy", "post"])
        self.assertTrue(report.succeeded)
        self.assertEqual(report.stage_status(StageName.PRE_DEPLOY), StageStatus.FAILURE)

    def test_stage_outputs_must_be_strings(self) -> None:
        def bad_output(ctx):
            ctx.ledger.set_output(StageName.PRE_DEPLOY, StageOutput.CACHE_KEY, 42)

        executor = StageGraphExecutor(
            PipelineInputs(environment="production"),
            Credentials(),
            self.services(),
            handlers={
                StageName.PRE_DEPLOY: bad_output,
                StageName.DEPLOY: lambda ctx: None,
                StageName.POST_DEPLOY: lambda ctx: None,
            },
        )
        report = executor.run()

        self.assertEqual(report.stage_status(StageName.PRE_DEPLOY), StageStatus.FAILURE)
        self.assertIn("TypeError", report.stages[StageName.PRE_DEPLOY].error)
        self.assertEqual(report.stage_status(StageName.DEPLOY), StageStatus.SKIPPED)
        self.assertEqual(report.stage_status(StageName.POST_DEPLOY), StageStatus.SUCCESS)


class UnexpectedErrorTests(ExecutorTestCase):
    def _write_project(self, wrangler_toml: bytes) -> None:
        (self.project_dir / "package.json").write_text(
            json.dumps({"name": "worker-app", "version": "1.0.0"}), encoding="utf-8"
        )
        (self.project_dir / "wrangler.toml").write_bytes(wrangler_toml)

    def test_non_utf8_wrangler_config_does_not_break_run(self) -> None:
        self._write_project(b'name = "caf\xe9"\n')
        self.toolchain = NpmToolchain(ScriptedRunner(self.project_dir))

        report = self.executor().run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.deployment.status, DeploymentStatus.SUCCESS)
        self.assertEqual(len(self.sink.events), 1)

    def test_os_error_in_stage_is_recorded_and_post_deploy_runs(self) -> None:
        self.toolchain.install_error = OSError(28, "No space left on device")

        report = self.executor().run()

        self.assertEqual(report.stage_status(StageName.PRE_DEPLOY), StageStatus.FAILURE)
        self.assertIn("No space left on device", report.stages[StageName.PRE_DEPLOY].error)
        self.assertEqual(report.stage_status(StageName.DEPLOY), StageStatus.SKIPPED)
        self.assertEqual(report.stage_status(StageName.POST_DEPLOY), StageStatus.SUCCESS)
        self.assertEqual(report.deployment.status, DeploymentStatus.FAILURE)
        self.assertEqual(self.emitter.attempts, 1)
        self.assertEqual(report.exit_code, EXIT_FAILURE)

    def test_unreadable_lockfile_fails_pre_deploy(self) -> None:
        (self.project_dir / "package-lock.json").write_text("{}", encoding="utf-8")

        with mock.patch.object(Path, "read_bytes", side_effect=PermissionError("denied")):
            report = self.executor().run()

        self.assertEqual(report.stage_status(StageName.PRE_DEPLOY), StageStatus.FAILURE)
        self.assertIn("Could not derive cache key", report.stages[StageName.PRE_DEPLOY].error)
        self.assertEqual(report.stage_status(StageName.POST_DEPLOY), StageStatus.SUCCESS)
        self.assertEqual(len(self.sink.events), 1)

    def test_unexpected_sink_error_does_not_change_outcome(self) -> None:
        self.sink.error = RuntimeError("encoder exploded")

        report = self.executor().run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.notification.label, "failed")


class ExternalStatusTests(ExecutorTestCase):
    def _reporter(self, *responses) -> FakeSession:
        session = FakeSession(*responses)
        self.reporter = GitHubDeploymentReporter("gh-token", "acme/worker", session=session)
        return session

    def test_status_mirrored_through_run(self) -> None:
        session = self._reporter(
            FakeResponse(201, {"id": 42}), FakeResponse(201, {}), FakeResponse(201, {})
        )

        report = self.executor().run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.deployment.external_id, "42")
        self.assertEqual(len(session.requests), 3)
        self.assertEqual(session.requests[1]["json"]["state"], "in_progress")
        final = session.requests[2]["json"]
        self.assertEqual(final["state"], "success")
        self.assertEqual(final["environment_url"], "https://app.example.workers.dev")
        self.assertEqual(
            report.stages[StageName.POST_DEPLOY].outputs["status-reported"], "true"
        )

    def test_create_failure_fails_pre_deploy(self) -> None:
        session = self._reporter(FakeResponse(500, text="boom"))

        report = self.executor().run()

        self.assertEqual(report.stage_status(StageName.PRE_DEPLOY), StageStatus.FAILURE)
        self.assertEqual(report.stage_status(StageName.DEPLOY), StageStatus.SKIPPED)
        self.assertEqual(self.toolchain.calls, [])
        self.assertEqual(report.deployment.status, DeploymentStatus.FAILURE)
        self.assertEqual(len(session.requests), 1)
        self.assertNotIn("status-reported", report.stages[StageName.POST_DEPLOY].outputs)
        self.assertEqual(len(self.sink.events), 1)

    def test_final_update_failure_is_best_effort(self) -> None:
        self._reporter(
            FakeResponse(201, {"id": 42}), FakeResponse(201, {}), FakeResponse(502, text="bad")
        )

        report = self.executor().run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.exit_code, EXIT_SUCCESS)
        self.assertEqual(
            report.stages[StageName.POST_DEPLOY].outputs["status-reported"], "false"
        )


class RollbackToggleTests(ExecutorTestCase):
    def test_disabled_rollback_writes_no_snapshot(self) -> None:
        report = self.executor(enable_rollback=False).run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.deployment.status, DeploymentStatus.SUCCESS)
        self.assertIsNone(report.snapshot)
        self.assertIsNone(self.store.latest("production"))
        self.assertNotIn("snapshot", report.stages[StageName.DEPLOY].outputs)


class ReportRenderTests(ExecutorTestCase):
    def _render(self, report) -> str:
        buffer = io.StringIO()
        report.render(Console(file=buffer, width=120, force_terminal=False))
        return buffer.getvalue()

    def test_success_report(self) -> None:
        text = self._render(self.executor().run())

        self.assertIn("Deployment completed successfully!", text)
        self.assertIn("pre-deploy", text)
        self.assertIn("Rollback snapshot stored", text)

    def test_failure_report_without_snapshot(self) -> None:
        self.toolchain.fail_validation = True
        text = self._render(self.executor().run())

        self.assertIn("Deployment failed!", text)
        self.assertIn("No rollback snapshot available for production", text)

    def test_report_is_json_serialisable_dict(self) -> None:
        data = self.executor().run().to_dict()

        self.assertEqual(data["status"], "success")
        self.assertEqual(data["stages"]["deploy"]["status"], "success")
        self.assertEqual(data["snapshot"]["commit_sha"], "abc123")


class FileBackedRunTests(ExecutorTestCase):
    def test_snapshot_visible_to_later_runs(self) -> None:
        self.store = FileRollbackStore(self.project_dir / "rollback")
        self.executor().run()

        reopened = FileRollbackStore(self.project_dir / "rollback")
        self.assertEqual(reopened.latest("production").commit_sha, "abc123")


if __name__ == "__main__":
    unittest.main()
