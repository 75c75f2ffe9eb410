"""Multi-stage agent orchestration pipeline."""

from agent_taskflow.pipeline.models import (
    AgentSpec,
    DelegatedTask,
    OutcomeStatus,
    PipelineReport,
    PipelineStage,
    TaskOutcome,
)
from agent_taskflow.pipeline.orchestrator import OrchestrationPipeline
from agent_taskflow.pipeline.prompts import FALLBACK_EVALUATION

__all__ = [
    "FALLBACK_EVALUATION",
    "AgentSpec",
    "DelegatedTask",
    "OrchestrationPipeline",
    "OutcomeStatus",
    "PipelineReport",
    "PipelineStage",
    "TaskOutcome",
]
