"""Error taxonomy for the deployment pipeline.

Two families matter to the executor:

- ``StageFailure`` and its subclasses describe a stage that could not do its
  job (missing credential, failed command, unreachable deployment). They are
  recorded on the stage result and the run carries on to always-run stages.
- ``InvariantViolation`` and its subclasses signal a programming error in the
  orchestration itself. They are never captured and abort the run.
"""

from __future__ import annotations

from typing import Optional, Sequence


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class StageFailure(PipelineError):
    """A stage could not complete; recorded as data on its result."""


class ValidationError(StageFailure):
    """Required configuration or a collaborator precondition is missing."""


class CollaboratorFailure(StageFailure):
    """An external command or call reported failure."""


class CommandError(CollaboratorFailure):
    """Raised when an external command exits non-zero or cannot be run."""

    def __init__(self, command: Sequence[str], exit_code: int, stderr: str) -> None:
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"Command {' '.join(self.command)} failed with code {exit_code}: {stderr}"
        )


class InvariantViolation(PipelineError):
    """Orchestration invariant broken; aborts the run."""


class InvalidTransition(InvariantViolation):
    """A deployment was moved along an edge the state machine does not allow."""


class PreconditionFailed(InvariantViolation):
    """An operation was attempted before its precondition held."""


class ConflictError(InvariantViolation):
    """A record that must be unique already exists."""


class InvalidInput(PipelineError, ValueError):
    """A pure helper received input it cannot work with."""


class DeliveryError(PipelineError):
    """A notification could not be delivered to its sink."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)
