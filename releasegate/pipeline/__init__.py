"""Pipeline stage execution for PipelineOrchestrator.

Modules:
    stage_executor: Retry, backoff, deadline and cancellation for one stage
"""

from releasegate.pipeline.stage_executor import (
    StageExecutor,
    StageRunInput,
    cancelled_result,
)

__all__ = [
    "StageExecutor",
    "StageRunInput",
    "cancelled_result",
]
