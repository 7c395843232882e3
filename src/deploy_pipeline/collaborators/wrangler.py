"""Cloudflare Workers deploy command."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from .base import Deployer, DeployOutcome
from .commands import CommandRunner

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"https://[^\s]+")

# Environment deployed without an --env flag (top-level wrangler.toml section)
DEFAULT_ENVIRONMENT = "production"


def extract_url(output: str) -> str:
    """First https URL printed by the deploy command, or an empty string."""
    match = _URL_PATTERN.search(output or "")
    return match.group(0) if match else ""


class WranglerDeployer(Deployer):
    """Runs ``npx wrangler deploy`` and reports its exit status and URL."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def build_command(self, environment: str, dry_run: bool) -> List[str]:
        command = ["npx", "wrangler", "deploy"]
        if dry_run:
            command.append("--dry-run")
        if environment != DEFAULT_ENVIRONMENT:
            command.extend(["--env", environment])
        return command

    def deploy(
        self,
        environment: str,
        dry_run: bool,
        token: Optional[str],
        timeout: int,
    ) -> DeployOutcome:
        command = self.build_command(environment, dry_run)
        if dry_run:
            logger.info("🔍 Performing dry run deployment")
        logger.info("Executing: %s", " ".join(command))

        env = {"CLOUDFLARE_API_TOKEN": token} if token else None
        result = self.runner.run(command, timeout=timeout, env=env, check=False)
        url = extract_url(result.output) if result.ok else ""
        return DeployOutcome(exit_status=result.exit_status, url=url, output=result.output)
