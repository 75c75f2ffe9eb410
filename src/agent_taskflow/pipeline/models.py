"""Pipeline stages, agent declarations and the structured run report."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agent_taskflow.dispatch.models import AgentRole


class PipelineStage(str, Enum):
    INIT = "init"
    DESIGN = "design"
    DELEGATE = "delegate"
    EXECUTE = "execute"
    EVALUATE = "evaluate"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.DONE, PipelineStage.FAILED)


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class AgentSpec:
    """One pipeline participant: a role plus an optional model override."""

    agent_id: str
    role: AgentRole
    model: str | None = None

    @classmethod
    def parse(cls, value: str, *, index: int) -> AgentSpec:
        """Parse ``role`` or ``role:model`` (CLI form)."""

        role_text, _, model = value.partition(":")
        role = AgentRole.parse(role_text)
        return cls(
            agent_id=f"{role.value}-{index}",
            role=role,
            model=model.strip() or None,
        )


@dataclass(frozen=True, slots=True)
class DelegatedTask:
    """A task produced by the delegate stage, bound to one agent."""

    task_id: str
    description: str
    agent: AgentSpec


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    """Result of one delegated task; failed tasks carry the error text."""

    task_id: str
    description: str
    assigned_role: AgentRole
    status: OutcomeStatus
    result: str
    agent_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "description": self.description,
            "assigned_role": self.assigned_role.value,
            "status": self.status.value,
            "result": self.result,
            "agent_id": self.agent_id,
        }


@dataclass(slots=True)
class PipelineReport:
    """Incrementally built report; partial reports stay valid after a failure."""

    project_description: str
    plan: str | None = None
    results: list[TaskOutcome] = field(default_factory=list)
    evaluation: str | None = None
    evaluation_fallback: bool = False
    stage: PipelineStage = PipelineStage.INIT
    error: str | None = None

    @property
    def completed_count(self) -> int:
        return sum(1 for outcome in self.results if outcome.status == OutcomeStatus.COMPLETED)

    @property
    def failed_count(self) -> int:
        return sum(1 for outcome in self.results if outcome.status == OutcomeStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_description": self.project_description,
            "stage": self.stage.value,
            "plan": self.plan,
            "results": [outcome.to_dict() for outcome in self.results],
            "evaluation": self.evaluation,
            "evaluation_fallback": self.evaluation_fallback,
            "error": self.error,
        }
