"""Interfaces of the external collaborators the stages drive."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class DeployOutcome:
    """What the deploy command reported back."""

    exit_status: int
    url: str = ""
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class Toolchain(ABC):
    """Build/test tooling of the project being deployed."""

    @abstractmethod
    def validate_project(self) -> None:
        """Raise ValidationError when required project files are missing."""

    @abstractmethod
    def install(self, cache_key: str, timeout: int) -> bool:
        """Install dependencies; returns False when the cached set was reused."""

    @abstractmethod
    def setup_cli(self, version: str, timeout: int) -> None:
        """Make the deploy CLI available at the requested version."""

    @abstractmethod
    def verify_auth(self, token: str, timeout: int) -> None:
        """Raise ValidationError when the platform rejects the credential."""

    @abstractmethod
    def has_environment(self, environment: str) -> bool:
        """Whether the project configuration declares the environment."""

    @abstractmethod
    def build(self, timeout: int) -> bool:
        """Run the build; returns False when no build was performed."""

    @abstractmethod
    def package_metadata(self) -> Tuple[str, str]:
        """(service name, version) of the project."""


class Deployer(ABC):
    """The command that publishes the build to the hosting platform."""

    @abstractmethod
    def deploy(
        self,
        environment: str,
        dry_run: bool,
        token: Optional[str],
        timeout: int,
    ) -> DeployOutcome:
        """Invoke the deploy; a non-zero exit is reported, not raised."""


class HealthChecker(ABC):
    """Checks that a deployed URL answers."""

    @abstractmethod
    def check(self, url: str, timeout: int) -> bool:
        """Single bounded reachability check."""
