"""npm / wrangler based project toolchain."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Tuple

from ..errors import CollaboratorFailure, CommandError, ValidationError
from ..paths import CACHE_KEY_MARKER
from .base import Toolchain
from .commands import CommandRunner

logger = logging.getLogger(__name__)

REQUIRED_PROJECT_FILES = ("package.json", "wrangler.toml")


class NpmToolchain(Toolchain):
    """Drives npm and the wrangler CLI inside a Workers project."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner
        self.project_dir = runner.cwd

    def validate_project(self) -> None:
        missing = [
            name for name in REQUIRED_PROJECT_FILES if not (self.project_dir / name).is_file()
        ]
        if missing:
            raise ValidationError(
                f"Missing project files in {self.project_dir}: {', '.join(missing)}"
            )

    def install(self, cache_key: str, timeout: int) -> bool:
        marker = self.project_dir / "node_modules" / CACHE_KEY_MARKER
        if self._cached_key(marker) == cache_key:
            logger.info("♻️  Reusing cached dependencies (%s)", cache_key)
            return False

        logger.info("📦 Installing npm dependencies...")
        self.runner.run(["npm", "ci", "--prefer-offline", "--no-audit"], timeout=timeout)
        try:
            marker.parent.mkdir(parents=True, exist_ok=True)
            marker.write_text(cache_key, encoding="utf-8")
        except OSError as exc:
            raise CollaboratorFailure(f"Could not write cache marker {marker}: {exc}") from exc
        logger.info("✅ Dependencies installed")
        return True

    @staticmethod
    def _cached_key(marker: Path) -> str:
        if not marker.is_file():
            return ""
        try:
            return marker.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Ignoring unreadable cache marker %s: %s", marker, exc)
            return ""

    def setup_cli(self, version: str, timeout: int) -> None:
        package = "wrangler" if version in ("", "latest") else f"wrangler@{version}"
        logger.info("🔧 Setting up Wrangler CLI (%s)...", package)
        self.runner.run(["npm", "install", "-g", package], timeout=timeout)

    def verify_auth(self, token: str, timeout: int) -> None:
        try:
            self.runner.run(
                ["npx", "wrangler", "whoami"],
                timeout=timeout,
                env={"CLOUDFLARE_API_TOKEN": token},
            )
        except CommandError as exc:
            raise ValidationError(f"Wrangler authentication failed: {exc.stderr}") from exc

    def has_environment(self, environment: str) -> bool:
        config_file = self.project_dir / "wrangler.toml"
        if not config_file.is_file():
            return False
        try:
            content = config_file.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise ValidationError(f"Could not read {config_file}: {exc}") from exc
        pattern = re.compile(rf"^\s*\[env\.{re.escape(environment)}\]", re.MULTILINE)
        return bool(pattern.search(content))

    def build(self, timeout: int) -> bool:
        try:
            self.runner.run(["npm", "run", "build", "--if-present"], timeout=timeout)
        except CommandError as exc:
            logger.warning("⚠️  Build did not run (%s), using source directly", exc.stderr or exc)
            return False
        logger.info("✅ Build completed")
        return True

    def package_metadata(self) -> Tuple[str, str]:
        package_file = self.project_dir / "package.json"
        try:
            data = json.loads(package_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s: %s", package_file, exc)
            return "unknown", "unknown"
        return str(data.get("name") or "unknown"), str(data.get("version") or "unknown")
