"""Stage graph execution for deployment runs.

- StageGraphExecutor: runs the fixed pre-deploy -> deploy -> post-deploy graph
- StageLedger/StageResult: per-run stage results and outputs
- RunContext/PipelineServices: state and collaborators of one run
- PipelineReport: final outcome, exit code and rollback reference
"""

from .context import PipelineServices, RunContext
from .executor import StageGraphExecutor
from .models import (
    PIPELINE_STAGES,
    Stage,
    StageLedger,
    StageName,
    StageOutput,
    StageResult,
    StageStatus,
)
from .report import EXIT_FAILURE, EXIT_SUCCESS, PipelineReport

__all__ = [
    "EXIT_FAILURE",
    "EXIT_SUCCESS",
    "PIPELINE_STAGES",
    "PipelineReport",
    "PipelineServices",
    "RunContext",
    "Stage",
    "StageGraphExecutor",
    "StageLedger",
    "StageName",
    "StageOutput",
    "StageResult",
    "StageStatus",
]
