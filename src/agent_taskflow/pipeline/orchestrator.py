"""Fixed multi-stage agent pipeline: design, delegate, execute, evaluate."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from agent_taskflow.cancellation import CancellationToken
from agent_taskflow.config import PipelineSettings
from agent_taskflow.dispatch.dispatcher import RequestDispatcher
from agent_taskflow.dispatch.models import AgentRole, CompletionRequest, DispatchBudget, Message
from agent_taskflow.errors import Cancelled, OrchestrationError, PreconditionError
from agent_taskflow.pipeline.models import (
    AgentSpec,
    DelegatedTask,
    OutcomeStatus,
    PipelineReport,
    PipelineStage,
    TaskOutcome,
)
from agent_taskflow.pipeline.prompts import (
    EXECUTE_PROMPT,
    FALLBACK_EVALUATION,
    PLAN_CONTEXT,
    design_prompt,
    evaluate_prompt,
    role_task,
)
from agent_taskflow.prompts.composer import ProjectContext, compose

logger = logging.getLogger(__name__)

EmitFn = Callable[[str], None]


def _noop_emit(_line: str) -> None:
    return


class OrchestrationPipeline:
    """Single-use run of the design -> delegate -> execute -> evaluate workflow.

    Per-task failures in execute become failed outcomes; a failed evaluation
    falls back to a fixed text. Init preconditions, design failures and
    cancellation move the pipeline to ``failed`` and raise; ``report`` keeps
    whatever was computed so far.
    """

    def __init__(  # noqa: PLR0913
        self,
        dispatcher: RequestDispatcher,
        agents: Sequence[AgentSpec],
        project_description: str,
        *,
        project_name: str | None = None,
        extra_tasks: Sequence[str] = (),
        settings: PipelineSettings | None = None,
        budget: DispatchBudget | None = None,
        emit: EmitFn | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._agents = tuple(agents)
        self._project_name = project_name
        self._extra_tasks = tuple(task.strip() for task in extra_tasks if task.strip())
        self._settings = settings or PipelineSettings()
        self._budget = budget
        self._emit = emit or _noop_emit
        self._started = False
        self.stage = PipelineStage.INIT
        self.report = PipelineReport(project_description=project_description)
        self.tasks: tuple[DelegatedTask, ...] = ()

    async def run(self, cancel: CancellationToken | None = None) -> PipelineReport:
        if self._started:
            raise RuntimeError("OrchestrationPipeline is single-use; create a new instance per run.")
        self._started = True

        try:
            architect = self._check_preconditions()
            self._enter(PipelineStage.DESIGN)
            self.report.plan = await self._design(architect, cancel)
            self._enter(PipelineStage.DELEGATE)
            self.tasks = self._delegate()
            self._enter(PipelineStage.EXECUTE)
            self.report.results = await self._execute(self.tasks, cancel)
            self._enter(PipelineStage.EVALUATE)
            self.report.evaluation = await self._evaluate(architect, cancel)
        except (OrchestrationError, ValueError) as error:
            self.report.error = str(error)
            self._enter(PipelineStage.FAILED)
            raise
        self._enter(PipelineStage.DONE)
        return self.report

    def _enter(self, stage: PipelineStage) -> None:
        self.stage = stage
        self.report.stage = stage
        logger.info("Pipeline stage: %s", stage.value)
        self._emit(f"[{stage.value}]")

    def _check_preconditions(self) -> AgentSpec:
        architect = next(
            (agent for agent in self._agents if agent.role == AgentRole.ARCHITECT),
            None,
        )
        if architect is None:
            raise PreconditionError(
                "An architect agent is required for orchestration.",
                reason_code="architect_missing",
            )
        if not self.report.project_description.strip():
            raise PreconditionError(
                "Project description must not be blank.",
                reason_code="description_missing",
            )
        return architect

    async def _design(self, architect: AgentSpec, cancel: CancellationToken | None) -> str:
        messages = compose(
            AgentRole.ARCHITECT,
            None,
            design_prompt(self.report.project_description),
            project=self._project(),
        )
        model = self._settings.design_model or architect.model or self._dispatcher.default_model
        result = await self._call(model, messages, cancel)
        self._emit(f"Design received from {architect.agent_id} ({len(result)} chars).")
        return result

    def _delegate(self) -> tuple[DelegatedTask, ...]:
        workers = [agent for agent in self._agents if agent.role != AgentRole.ARCHITECT]
        descriptions = [role_task(agent.role) for agent in workers]
        if workers:
            descriptions.extend(self._extra_tasks)
        elif self._extra_tasks:
            logger.warning(
                "Dropping %d extra task(s): no non-architect agents to assign them to.",
                len(self._extra_tasks),
            )
            self._emit("No non-architect agents; extra tasks were not delegated.")

        tasks = tuple(
            DelegatedTask(
                task_id=f"task-{index + 1}",
                description=description,
                agent=workers[index % len(workers)],
            )
            for index, description in enumerate(descriptions)
        )
        for task in tasks:
            self._emit(f"{task.task_id} -> {task.agent.agent_id}: {task.description}")
        return tasks

    async def _execute(
        self,
        tasks: Sequence[DelegatedTask],
        cancel: CancellationToken | None,
    ) -> list[TaskOutcome]:
        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def run_task(task: DelegatedTask) -> TaskOutcome:
            async with semaphore:
                return await self._execute_one(task, cancel)

        running = [asyncio.ensure_future(run_task(task)) for task in tasks]
        try:
            outcomes = await asyncio.gather(*running)
        except BaseException:
            # Siblings are cancelled and drained before the first error propagates.
            for future in running:
                future.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            raise
        return list(outcomes)

    async def _execute_one(
        self,
        task: DelegatedTask,
        cancel: CancellationToken | None,
    ) -> TaskOutcome:
        messages = compose(
            task.agent.role,
            task.description,
            EXECUTE_PROMPT,
            context=PLAN_CONTEXT.format(plan=self.report.plan or ""),
            project=self._project(),
            expect_code=True,
        )
        model = task.agent.model or self._settings.agent_model or self._dispatcher.default_model
        try:
            text = await self._call(model, messages, cancel)
        except Cancelled:
            raise
        except OrchestrationError as error:
            logger.warning("Task %s (%s) failed: %s", task.task_id, task.agent.agent_id, error)
            self._emit(f"{task.task_id} failed: {error}")
            return TaskOutcome(
                task_id=task.task_id,
                description=task.description,
                assigned_role=task.agent.role,
                status=OutcomeStatus.FAILED,
                result=str(error),
                agent_id=task.agent.agent_id,
            )
        self._emit(f"{task.task_id} completed by {task.agent.agent_id}.")
        return TaskOutcome(
            task_id=task.task_id,
            description=task.description,
            assigned_role=task.agent.role,
            status=OutcomeStatus.COMPLETED,
            result=text,
            agent_id=task.agent.agent_id,
        )

    async def _evaluate(self, architect: AgentSpec, cancel: CancellationToken | None) -> str:
        messages = compose(
            AgentRole.ARCHITECT,
            None,
            evaluate_prompt(self.report.plan or "", self.report.results),
            project=self._project(),
        )
        model = (
            self._settings.evaluation_model or architect.model or self._dispatcher.default_model
        )
        try:
            return await self._call(model, messages, cancel)
        except Cancelled:
            raise
        except OrchestrationError as error:
            logger.warning("Evaluation failed, using fallback text: %s", error)
            self._emit(f"Evaluation failed ({error}); using fallback evaluation.")
            self.report.evaluation_fallback = True
            return FALLBACK_EVALUATION

    async def _call(
        self,
        model: str,
        messages: tuple[Message, ...],
        cancel: CancellationToken | None,
    ) -> str:
        request = CompletionRequest(
            model=model,
            messages=messages,
            temperature=self._settings.temperature,
            max_tokens=self._settings.max_tokens,
        )
        result = await self._dispatcher.dispatch(request, self._budget, cancel)
        return result.text

    def _project(self) -> ProjectContext | None:
        if not self._project_name:
            return None
        return ProjectContext(
            name=self._project_name,
            description=self.report.project_description,
        )
