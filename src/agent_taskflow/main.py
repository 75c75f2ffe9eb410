"""CLI entrypoint for agent-taskflow."""

from collections.abc import Callable
from typing import TypeVar

import rich_click as click

from agent_taskflow import __version__
from agent_taskflow.controllers import (
    CommandResult,
    JobsInputsCommand,
    JobsRunCommand,
    LlmDispatchCommand,
    OrchestratorCliController,
    PipelineRunCommand,
)
from agent_taskflow.errors import OrchestrationError
from agent_taskflow.logging_config import VALID_LOG_LEVELS, configure_logging

click.rich_click.USE_MARKDOWN = True
CONTROLLER = OrchestratorCliController()

T = TypeVar("T")


@click.group()
@click.version_option(version=__version__, prog_name="agent-taskflow")
@click.option(
    "--log-level",
    type=click.Choice(VALID_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    envvar="AGENT_TASKFLOW_LOG_LEVEL",
    help="Log verbosity (stderr). Defaults to AGENT_TASKFLOW_LOG_LEVEL.",
)
def agent_taskflow(log_level: str) -> None:
    """Agent task orchestration CLI."""

    configure_logging(log_level)


@agent_taskflow.group()
def llm() -> None:
    """Single LLM dispatch commands."""


@llm.command("dispatch")
@click.option(
    "--role",
    default="custom",
    show_default=True,
    help="Agent role: architect, frontend, backend, testing, devops or custom.",
)
@click.option("--prompt", required=True, help="User prompt text.")
@click.option("--task", default=None, help="Optional task title prepended to the prompt.")
@click.option("--context", default=None, help="Optional prior context for the agent.")
@click.option(
    "--image-url",
    "images",
    multiple=True,
    help="Image URL attached to the prompt. Can be repeated.",
)
@click.option("--project-name", default=None, help="Project name for the prompt header.")
@click.option(
    "--project-description",
    default=None,
    help="Project description for the prompt header.",
)
@click.option("--model", default=None, help="Model id. Defaults to AGENT_TASKFLOW_DEFAULT_MODEL.")
@click.option(
    "--expect-code/--no-expect-code",
    default=False,
    show_default=True,
    help="Ask for complete code files instead of snippets.",
)
@click.option(
    "--max-attempts",
    type=click.IntRange(min=1, max=10),
    default=None,
    help="Attempt budget. Defaults to AGENT_TASKFLOW_DISPATCH_MAX_ATTEMPTS.",
)
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0.1),
    default=None,
    help="Per-attempt timeout. Defaults to AGENT_TASKFLOW_DISPATCH_TIMEOUT_SECONDS.",
)
def llm_dispatch(  # noqa: PLR0913
    role: str,
    prompt: str,
    task: str | None,
    context: str | None,
    images: tuple[str, ...],
    project_name: str | None,
    project_description: str | None,
    model: str | None,
    expect_code: bool,
    max_attempts: int | None,
    timeout_seconds: float | None,
) -> None:
    """Compose one prompt for a role and dispatch it to the configured provider."""

    _emit_lines(
        _guarded(
            lambda: CONTROLLER.dispatch(
                LlmDispatchCommand(
                    role=role,
                    prompt=prompt,
                    task=task,
                    context=context,
                    images=images,
                    project_name=project_name,
                    project_description=project_description,
                    model=model,
                    expect_code=expect_code,
                    max_attempts=max_attempts,
                    timeout_seconds=timeout_seconds,
                ),
            ),
        ),
    )


@llm.command("providers")
def llm_providers() -> None:
    """List provider adapters and their endpoints."""

    _emit_lines(_guarded(CONTROLLER.providers))


@agent_taskflow.group()
def jobs() -> None:
    """Remote job commands."""


@jobs.command("inputs")
@click.option(
    "--simulate/--no-simulate",
    default=False,
    show_default=True,
    help="Use the local simulator instead of the job service.",
)
def jobs_inputs(simulate: bool) -> None:
    """List inputs the job service requires on kickoff."""

    _emit_lines(_guarded(lambda: CONTROLLER.job_inputs(JobsInputsCommand(simulate=simulate))))


@jobs.command("run")
@click.option(
    "--input",
    "inputs",
    multiple=True,
    help="Kickoff input as NAME=VALUE. Can be repeated.",
)
@click.option(
    "--simulate/--no-simulate",
    default=False,
    show_default=True,
    help="Run on the local simulator instead of the job service.",
)
@click.option(
    "--fallback/--no-fallback",
    "fallback",
    default=None,
    help=(
        "Switch to the simulator with a warning if kickoff fails. "
        "Defaults to AGENT_TASKFLOW_JOBS_FALLBACK_TO_SIMULATION."
    ),
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    show_default=True,
    help="Output format.",
)
def jobs_run(
    inputs: tuple[str, ...],
    simulate: bool,
    fallback: bool | None,
    output_format: str,
) -> None:
    """Validate inputs, submit a job and poll it to completion."""

    result = _guarded(
        lambda: CONTROLLER.run_job(
            JobsRunCommand(
                inputs=inputs,
                simulate=simulate,
                fallback_to_simulation=fallback,
                output_format=output_format.lower(),
            ),
        ),
    )
    _emit_result(result, failure="Job did not complete.")


@agent_taskflow.group()
def pipeline() -> None:
    """Orchestration pipeline commands."""


@pipeline.command("run")
@click.option("--description", required=True, help="Project description for the architect.")
@click.option(
    "--agent",
    "agents",
    multiple=True,
    required=True,
    help="Agent as ROLE or ROLE:MODEL, e.g. architect or backend:openai/gpt-4o. Repeatable.",
)
@click.option("--project-name", default=None, help="Optional project name.")
@click.option(
    "--extra-task",
    "extra_tasks",
    multiple=True,
    help="Extra task description delegated after the role tasks. Can be repeated.",
)
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1, max=32),
    default=None,
    help="Parallel task limit. Defaults to AGENT_TASKFLOW_PIPELINE_MAX_CONCURRENCY.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    show_default=True,
    help="Report format.",
)
def pipeline_run(  # noqa: PLR0913
    description: str,
    agents: tuple[str, ...],
    project_name: str | None,
    extra_tasks: tuple[str, ...],
    max_concurrency: int | None,
    output_format: str,
) -> None:
    """Run design, delegate, execute and evaluate for a set of agents."""

    result = _guarded(
        lambda: CONTROLLER.run_pipeline(
            PipelineRunCommand(
                description=description,
                agents=agents,
                project_name=project_name,
                extra_tasks=extra_tasks,
                max_concurrency=max_concurrency,
                output_format=output_format.lower(),
            ),
        ),
    )
    _emit_result(result, failure="Pipeline failed.")


def _guarded(action: Callable[[], T]) -> T:
    try:
        return action()
    except (OrchestrationError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_result(result: CommandResult, *, failure: str) -> None:
    _emit_lines(result.lines)
    if not result.success:
        detail = f" {result.error}" if result.error else ""
        raise click.ClickException(f"{failure}{detail}")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_taskflow()
