"""External collaborators: toolchain, deploy command, health check."""

from .base import Deployer, DeployOutcome, HealthChecker, Toolchain
from .commands import CommandResult, CommandRunner
from .health import HttpHealthChecker
from .npm import NpmToolchain
from .wrangler import WranglerDeployer, extract_url

__all__ = [
    "CommandResult",
    "CommandRunner",
    "DeployOutcome",
    "Deployer",
    "HealthChecker",
    "HttpHealthChecker",
    "NpmToolchain",
    "Toolchain",
    "WranglerDeployer",
    "extract_url",
]
