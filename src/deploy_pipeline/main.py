"""Entry point: run the deployment pipeline configured by file and environment."""

from __future__ import annotations

import os
import sys

from .config import load_config
from .utils.logging import configure_logging, get_logger
from .workflow import DeploymentWorkflow

EXIT_CONFIG_ERROR = 2


def run() -> int:
    try:
        config = load_config(os.getenv("DEPLOY_PIPELINE_CONFIG"))
    except (FileNotFoundError, ValueError, TypeError) as exc:
        # TypeError: unknown keys in a config section
        configure_logging()
        get_logger(__name__).error("Invalid pipeline configuration: %s", exc)
        return EXIT_CONFIG_ERROR

    configure_logging(config.log_level)
    logger = get_logger(__name__)
    try:
        config.inputs.validate()
    except ValueError as exc:
        logger.error("Invalid pipeline inputs: %s", exc)
        return EXIT_CONFIG_ERROR

    report = DeploymentWorkflow(config).run()
    report.render()
    return report.exit_code


def app_main() -> None:
    exit_code = run()
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    app_main()
