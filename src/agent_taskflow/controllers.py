"""Controllers for agent-taskflow CLI commands."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace

import httpx

from agent_taskflow.cancellation import sleep_cancellable
from agent_taskflow.config import Settings
from agent_taskflow.dispatch.dispatcher import RequestDispatcher
from agent_taskflow.dispatch.models import AgentRole, CompletionRequest, DispatchBudget
from agent_taskflow.dispatch.providers import PROVIDER_ADAPTERS, ProviderKind
from agent_taskflow.dispatch.retry import SleepFn
from agent_taskflow.errors import OrchestrationError, RequestRejected, TransientError
from agent_taskflow.jobs.models import JobSnapshot, JobStatus
from agent_taskflow.jobs.poller import TaskPoller
from agent_taskflow.jobs.simulator import SIMULATED_REQUIRED_INPUTS
from agent_taskflow.pipeline.models import AgentSpec, PipelineReport
from agent_taskflow.pipeline.orchestrator import OrchestrationPipeline
from agent_taskflow.prompts.composer import ProjectContext, compose

_RESULT_PREVIEW_CHARS = 400


@dataclass(slots=True)
class LlmDispatchCommand:
    """CLI input for one composed agent call."""

    role: str
    prompt: str
    task: str | None = None
    context: str | None = None
    images: tuple[str, ...] = ()
    project_name: str | None = None
    project_description: str | None = None
    model: str | None = None
    expect_code: bool = False
    max_attempts: int | None = None
    timeout_seconds: float | None = None


@dataclass(slots=True)
class JobsInputsCommand:
    """CLI input for required-input listing."""

    simulate: bool = False


@dataclass(slots=True)
class JobsRunCommand:
    """CLI input for submit + poll of one remote job."""

    inputs: tuple[str, ...]
    simulate: bool = False
    fallback_to_simulation: bool | None = None
    output_format: str = "text"


@dataclass(slots=True)
class PipelineRunCommand:
    """CLI input for one orchestration pipeline run."""

    description: str
    agents: tuple[str, ...]
    project_name: str | None = None
    extra_tasks: tuple[str, ...] = ()
    max_concurrency: int | None = None
    output_format: str = "text"


@dataclass(slots=True)
class CommandResult:
    """Rendered lines plus overall success for the CLI exit code."""

    lines: list[str]
    success: bool = True
    error: str | None = None


class OrchestratorCliController:
    """Builds dispatcher, poller and pipeline from settings for CLI commands.

    ``transport`` and ``jobs_transport`` replace network access (tests use
    ``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        jobs_transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = sleep_cancellable,
    ) -> None:
        self._transport = transport
        self._jobs_transport = jobs_transport
        self._sleep = sleep

    # ------------------------------------------------------------------
    # llm
    # ------------------------------------------------------------------

    def dispatch(self, command: LlmDispatchCommand) -> list[str]:
        settings = Settings.from_env()
        settings.validate()
        role = AgentRole.parse(command.role)
        project = None
        if command.project_name or command.project_description:
            project = ProjectContext(
                name=command.project_name or "",
                description=command.project_description or "",
            )
        messages = compose(
            role,
            command.task,
            command.prompt,
            context=command.context,
            images=command.images,
            project=project,
            expect_code=command.expect_code,
        )
        dispatcher = self._dispatcher(settings)
        request = CompletionRequest(
            model=command.model or settings.provider.default_model,
            messages=messages,
            temperature=settings.provider.temperature,
            max_tokens=settings.provider.max_tokens,
        )
        budget = DispatchBudget(
            max_attempts=command.max_attempts or settings.dispatch.max_attempts,
            timeout_seconds=command.timeout_seconds or settings.dispatch.timeout_seconds,
        )
        result = asyncio.run(dispatcher.dispatch(request, budget))
        return [
            f"provider={result.provider} model={result.model} attempts={result.attempts}",
            "",
            result.text,
        ]

    def providers(self) -> list[str]:
        settings = Settings.from_env()
        lines = ["Providers:"]
        for kind in ProviderKind:
            adapter = PROVIDER_ADAPTERS[kind]
            active = kind.value == settings.provider.provider
            base_url = settings.provider.base_url if active else None
            marker = "*" if active else " "
            lines.append(f"{marker} {kind.value:<11} {adapter.endpoint(base_url)}")
        key_state = "set" if settings.provider.has_api_key() else "missing"
        lines.append(
            f"Active: {settings.provider.provider} default_model={settings.provider.default_model} "
            f"api_key={key_state}",
        )
        return lines

    # ------------------------------------------------------------------
    # jobs
    # ------------------------------------------------------------------

    def job_inputs(self, command: JobsInputsCommand) -> list[str]:
        settings = self._job_settings(simulate=command.simulate)

        async def load() -> list[str]:
            async with TaskPoller.from_settings(
                settings.jobs,
                settings.dispatch,
                transport=self._jobs_transport,
            ) as poller:
                required = await poller.required_inputs()
            lines = ["Required inputs:"]
            for item in required:
                flag = "required" if item.required else "optional"
                lines.append(f"- {item.name} ({item.type}, {flag}): {item.description}")
            return lines

        return asyncio.run(load())

    def run_job(self, command: JobsRunCommand) -> CommandResult:
        settings = self._job_settings(
            simulate=command.simulate,
            fallback=command.fallback_to_simulation,
        )
        inputs = _parse_inputs(command.inputs)
        lines: list[str] = []

        def on_update(snapshot: JobSnapshot) -> None:
            lines.append(
                f"job={snapshot.job_id} status={snapshot.status.value} "
                f"progress={snapshot.progress}%",
            )

        async def execute() -> CommandResult:
            async with TaskPoller.from_settings(
                settings.jobs,
                settings.dispatch,
                transport=self._jobs_transport,
                on_update=on_update,
                on_warning=lambda text: lines.append(f"WARNING: {text}"),
            ) as poller:
                try:
                    required = await poller.required_inputs()
                except (TransientError, RequestRejected) as error:
                    if not settings.jobs.fallback_to_simulation:
                        raise
                    lines.append(
                        f"WARNING: Job service inputs unavailable ({error}); "
                        "checking against simulated inputs.",
                    )
                    required = list(SIMULATED_REQUIRED_INPUTS)
                missing = poller.missing_required_inputs(required, inputs)
                if missing:
                    raise ValueError(f"Missing required inputs: {', '.join(missing)}.")
                run = await poller.submit_and_run(inputs)

            snapshot = run.snapshot
            if command.output_format == "json":
                payload = {
                    "job_id": snapshot.job_id,
                    "status": snapshot.status.value,
                    "progress": snapshot.progress,
                    "simulated": run.simulated,
                    "warnings": list(run.warnings),
                    "result": snapshot.result,
                    "error": snapshot.error,
                }
                return CommandResult(
                    lines=[json.dumps(payload, indent=2, ensure_ascii=False)],
                    success=snapshot.status == JobStatus.COMPLETED,
                    error=snapshot.error,
                )
            lines.append(
                f"Final: job={snapshot.job_id} status={snapshot.status.value} "
                f"simulated={'yes' if run.simulated else 'no'}",
            )
            if snapshot.result is not None:
                lines.append(json.dumps(snapshot.result, indent=2, ensure_ascii=False))
            if snapshot.error:
                lines.append(f"Error: {snapshot.error}")
            return CommandResult(
                lines=lines,
                success=snapshot.status == JobStatus.COMPLETED,
                error=snapshot.error,
            )

        return asyncio.run(execute())

    # ------------------------------------------------------------------
    # pipeline
    # ------------------------------------------------------------------

    def run_pipeline(self, command: PipelineRunCommand) -> CommandResult:
        settings = Settings.from_env()
        if command.max_concurrency is not None:
            settings.pipeline = replace(settings.pipeline, max_concurrency=command.max_concurrency)
        settings.validate()
        agents = [
            AgentSpec.parse(value, index=index)
            for index, value in enumerate(command.agents, start=1)
        ]
        lines: list[str] = []
        pipeline = OrchestrationPipeline(
            self._dispatcher(settings),
            agents,
            command.description,
            project_name=command.project_name,
            extra_tasks=command.extra_tasks,
            settings=settings.pipeline,
            emit=lines.append if command.output_format == "text" else None,
        )
        try:
            report = asyncio.run(pipeline.run())
        except OrchestrationError as error:
            return CommandResult(
                lines=[*lines, *_render_report(pipeline.report, command.output_format)],
                success=False,
                error=str(error),
            )
        return CommandResult(lines=[*lines, *_render_report(report, command.output_format)])

    # ------------------------------------------------------------------

    def _dispatcher(self, settings: Settings) -> RequestDispatcher:
        return RequestDispatcher(
            settings.provider,
            settings.dispatch,
            transport=self._transport,
            sleep=self._sleep,
        )

    @staticmethod
    def _job_settings(*, simulate: bool, fallback: bool | None = None) -> Settings:
        settings = Settings.from_env()
        jobs = settings.jobs
        if simulate:
            jobs = replace(jobs, simulate=True)
        if fallback is not None:
            jobs = replace(jobs, fallback_to_simulation=fallback)
        settings.jobs = jobs
        settings.validate_for_jobs()
        return settings


def _parse_inputs(values: tuple[str, ...]) -> dict[str, str]:
    inputs: dict[str, str] = {}
    for value in values:
        key, separator, raw = value.partition("=")
        if not separator or not key.strip():
            raise ValueError(f"Invalid --input value: {value!r}. Expected NAME=VALUE.")
        inputs[key.strip()] = raw
    return inputs


def _render_report(report: PipelineReport, output_format: str) -> list[str]:
    if output_format == "json":
        return [json.dumps(report.to_dict(), indent=2, ensure_ascii=False)]

    lines = [
        f"Pipeline: stage={report.stage.value} tasks={len(report.results)} "
        f"completed={report.completed_count} failed={report.failed_count}",
    ]
    if report.error:
        lines.append(f"Error: {report.error}")
    if report.plan is not None:
        lines.extend(["", "## Plan", report.plan])
    for outcome in report.results:
        preview = outcome.result
        if len(preview) > _RESULT_PREVIEW_CHARS:
            preview = preview[:_RESULT_PREVIEW_CHARS].rstrip() + "..."
        lines.extend(
            [
                "",
                f"## {outcome.task_id} [{outcome.assigned_role.value}] "
                f"{outcome.status.value} ({outcome.agent_id})",
                outcome.description,
                preview,
            ],
        )
    if report.evaluation is not None:
        suffix = " (fallback)" if report.evaluation_fallback else ""
        lines.extend(["", f"## Evaluation{suffix}", report.evaluation])
    return lines
