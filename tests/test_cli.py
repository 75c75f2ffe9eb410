from __future__ import annotations

import json

import allure
import httpx
import pytest
from click.testing import CliRunner
from conftest import openai_completion, request_json

import agent_taskflow.main as cli_main
from agent_taskflow.controllers import OrchestratorCliController
from agent_taskflow.dispatch.models import AgentRole
from agent_taskflow.main import agent_taskflow
from agent_taskflow.prompts import ROLE_SYSTEM_PROMPTS

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Dispatch, Jobs & Pipeline Commands"),
]


async def _no_sleep(seconds: float, cancel=None) -> None:
    return


@pytest.fixture()
def llm_requests(monkeypatch) -> list[httpx.Request]:
    """Route provider calls to a mock that answers every request with ``ok``."""

    seen: list[httpx.Request] = []

    def handle(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=openai_completion("ok from model"))

    monkeypatch.setenv("AGENT_TASKFLOW_PROVIDER", "openai")
    monkeypatch.setenv("AGENT_TASKFLOW_API_KEY", "sk-test")
    monkeypatch.setenv("AGENT_TASKFLOW_DEFAULT_MODEL", "gpt-4o-mini")
    monkeypatch.setattr(
        cli_main,
        "CONTROLLER",
        OrchestratorCliController(transport=httpx.MockTransport(handle), sleep=_no_sleep),
    )
    return seen


@pytest.fixture()
def instant_simulation(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_TASKFLOW_JOBS_SIMULATION_DELAYS", "0,0,0")
    monkeypatch.setenv("AGENT_TASKFLOW_JOBS_INITIAL_INTERVAL_MS", "0")
    monkeypatch.setenv("AGENT_TASKFLOW_JOBS_MAX_INTERVAL_MS", "0")


def test_llm_providers_marks_active_provider(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_TASKFLOW_PROVIDER", "anthropic")

    result = CliRunner().invoke(agent_taskflow, ["llm", "providers"])

    assert result.exit_code == 0, result.output
    assert "* anthropic" in result.output
    assert "https://api.anthropic.com/v1/messages" in result.output
    assert "api_key=missing" in result.output


def test_llm_dispatch_composes_role_prompt(llm_requests: list[httpx.Request]) -> None:
    result = CliRunner().invoke(
        agent_taskflow,
        [
            "llm",
            "dispatch",
            "--role",
            "backend",
            "--task",
            "Design API",
            "--prompt",
            "List the endpoints.",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "provider=openai model=gpt-4o-mini attempts=1" in result.output
    assert "ok from model" in result.output
    messages = request_json(llm_requests[0])["messages"]
    assert messages[0]["content"] == ROLE_SYSTEM_PROMPTS[AgentRole.BACKEND]
    assert messages[-1]["content"] == "Task: Design API\n\nList the endpoints."


def test_llm_dispatch_without_api_key_fails_cleanly(
    llm_requests: list[httpx.Request],
    monkeypatch,
) -> None:
    monkeypatch.delenv("AGENT_TASKFLOW_API_KEY")

    result = CliRunner().invoke(agent_taskflow, ["llm", "dispatch", "--prompt", "hi"])

    assert result.exit_code == 1
    assert "AGENT_TASKFLOW_API_KEY" in result.output
    assert llm_requests == []


def test_jobs_inputs_in_simulation() -> None:
    result = CliRunner().invoke(agent_taskflow, ["jobs", "inputs", "--simulate"])

    assert result.exit_code == 0, result.output
    assert "- project_name (string, required)" in result.output
    assert "- deployment_target (string, optional)" in result.output


def test_jobs_run_requires_url_unless_simulating() -> None:
    result = CliRunner().invoke(agent_taskflow, ["jobs", "run", "--input", "project_name=Shop"])

    assert result.exit_code == 1
    assert "AGENT_TASKFLOW_JOBS_BASE_URL" in result.output


@pytest.mark.usefixtures("instant_simulation")
def test_jobs_run_reports_missing_inputs() -> None:
    result = CliRunner().invoke(
        agent_taskflow,
        ["jobs", "run", "--simulate", "--input", "project_name=Shop"],
    )

    assert result.exit_code == 1
    assert "Missing required inputs: project_description" in result.output


def test_jobs_run_rejects_malformed_input() -> None:
    result = CliRunner().invoke(agent_taskflow, ["jobs", "run", "--simulate", "--input", "oops"])

    assert result.exit_code == 1
    assert "Expected NAME=VALUE" in result.output


@pytest.mark.usefixtures("instant_simulation")
def test_jobs_run_simulated_to_completion() -> None:
    result = CliRunner().invoke(
        agent_taskflow,
        [
            "jobs",
            "run",
            "--simulate",
            "--input",
            "project_name=Shop",
            "--input",
            "project_description=An online shop",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "job=sim-task-1 status=completed progress=100%" in result.output
    assert "Final: job=sim-task-1 status=completed simulated=yes" in result.output
    assert "recommendations" in result.output


@pytest.mark.usefixtures("instant_simulation")
def test_jobs_run_json_output() -> None:
    result = CliRunner().invoke(
        agent_taskflow,
        [
            "--log-level",
            "ERROR",
            "jobs",
            "run",
            "--simulate",
            "--format",
            "json",
            "--input",
            "project_name=Shop",
            "--input",
            "project_description=An online shop",
        ],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["status"] == "completed"
    assert payload["simulated"] is True
    assert payload["result"]["next_steps"].startswith("The team should now focus")


@pytest.mark.usefixtures("instant_simulation")
def test_jobs_run_falls_back_to_simulation_with_warning(monkeypatch) -> None:
    kickoffs: list[httpx.Request] = []

    def handle(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/inputs"):
            return httpx.Response(
                200,
                json=[{"name": "project_name", "type": "string", "required": True}],
            )
        kickoffs.append(request)
        return httpx.Response(503, text="maintenance")

    monkeypatch.setenv("AGENT_TASKFLOW_JOBS_BASE_URL", "https://jobs.example")
    monkeypatch.setenv("AGENT_TASKFLOW_JOBS_SUBMIT_MAX_ATTEMPTS", "2")
    monkeypatch.setenv("AGENT_TASKFLOW_DISPATCH_BACKOFF_BASE_SECONDS", "0")
    monkeypatch.setattr(
        cli_main,
        "CONTROLLER",
        OrchestratorCliController(jobs_transport=httpx.MockTransport(handle)),
    )

    result = CliRunner().invoke(
        agent_taskflow,
        ["jobs", "run", "--fallback", "--input", "project_name=Shop"],
    )

    assert result.exit_code == 0, result.output
    assert len(kickoffs) == 2
    assert "WARNING: Job service unavailable" in result.output
    assert "simulated=yes" in result.output


def _unreachable_jobs_service(monkeypatch) -> list[httpx.Request]:
    seen: list[httpx.Request] = []

    def handle(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    monkeypatch.setenv("AGENT_TASKFLOW_JOBS_BASE_URL", "https://jobs.example")
    monkeypatch.setenv("AGENT_TASKFLOW_JOBS_SUBMIT_MAX_ATTEMPTS", "2")
    monkeypatch.setenv("AGENT_TASKFLOW_DISPATCH_BACKOFF_BASE_SECONDS", "0")
    monkeypatch.setattr(
        cli_main,
        "CONTROLLER",
        OrchestratorCliController(jobs_transport=httpx.MockTransport(handle)),
    )
    return seen


@pytest.mark.usefixtures("instant_simulation")
def test_jobs_run_falls_back_when_service_is_unreachable(monkeypatch) -> None:
    seen = _unreachable_jobs_service(monkeypatch)

    result = CliRunner().invoke(
        agent_taskflow,
        [
            "jobs",
            "run",
            "--fallback",
            "--input",
            "project_name=Shop",
            "--input",
            "project_description=An online shop",
        ],
    )

    assert result.exit_code == 0, result.output
    assert [request.url.path for request in seen] == ["/inputs", "/kickoff", "/kickoff"]
    assert "WARNING: Job service inputs unavailable" in result.output
    assert "WARNING: Job service unavailable" in result.output
    assert "status=completed simulated=yes" in result.output


@pytest.mark.usefixtures("instant_simulation")
def test_jobs_run_fallback_still_checks_simulated_inputs(monkeypatch) -> None:
    seen = _unreachable_jobs_service(monkeypatch)

    result = CliRunner().invoke(
        agent_taskflow,
        ["jobs", "run", "--fallback", "--input", "project_name=Shop"],
    )

    assert result.exit_code == 1
    assert "Missing required inputs: project_description." in result.output
    assert [request.url.path for request in seen] == ["/inputs"]


def test_jobs_run_unreachable_service_without_fallback_fails(monkeypatch) -> None:
    seen = _unreachable_jobs_service(monkeypatch)

    result = CliRunner().invoke(
        agent_taskflow,
        ["jobs", "run", "--no-fallback", "--input", "project_name=Shop"],
    )

    assert result.exit_code == 1
    assert [request.url.path for request in seen] == ["/inputs"]


def test_jobs_run_without_fallback_fails(monkeypatch) -> None:
    def handle(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/inputs"):
            return httpx.Response(200, json=[])
        return httpx.Response(422, text="invalid inputs")

    monkeypatch.setenv("AGENT_TASKFLOW_JOBS_BASE_URL", "https://jobs.example")
    monkeypatch.setattr(
        cli_main,
        "CONTROLLER",
        OrchestratorCliController(jobs_transport=httpx.MockTransport(handle)),
    )

    result = CliRunner().invoke(agent_taskflow, ["jobs", "run", "--no-fallback"])

    assert result.exit_code == 1
    assert "Job kickoff rejected" in result.output


def test_pipeline_run_text_report(llm_requests: list[httpx.Request]) -> None:
    result = CliRunner().invoke(
        agent_taskflow,
        [
            "pipeline",
            "run",
            "--description",
            "An online shop",
            "--agent",
            "architect",
            "--agent",
            "frontend",
            "--agent",
            "backend:gpt-4o",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "[design]" in result.output
    assert "[done]" in result.output
    assert "Pipeline: stage=done tasks=2 completed=2 failed=0" in result.output
    assert "## task-2 [backend] completed (backend-3)" in result.output
    assert "## Evaluation" in result.output
    assert sorted(request_json(request)["model"] for request in llm_requests) == [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4o-mini",
        "gpt-4o-mini",
    ]


def test_pipeline_run_json_report(llm_requests: list[httpx.Request]) -> None:
    result = CliRunner().invoke(
        agent_taskflow,
        [
            "--log-level",
            "ERROR",
            "pipeline",
            "run",
            "--format",
            "json",
            "--description",
            "An online shop",
            "--agent",
            "architect",
            "--agent",
            "testing",
        ],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["stage"] == "done"
    assert [outcome["assigned_role"] for outcome in payload["results"]] == ["testing"]
    assert payload["evaluation"] == "ok from model"


def test_pipeline_without_architect_fails(llm_requests: list[httpx.Request]) -> None:
    result = CliRunner().invoke(
        agent_taskflow,
        ["pipeline", "run", "--description", "A shop", "--agent", "frontend"],
    )

    assert result.exit_code == 1
    assert "Pipeline: stage=failed" in result.output
    assert "Pipeline failed. An architect agent is required" in result.output
    assert llm_requests == []


def test_pipeline_rejects_unknown_role(llm_requests: list[httpx.Request]) -> None:
    result = CliRunner().invoke(
        agent_taskflow,
        ["pipeline", "run", "--description", "A shop", "--agent", "designer"],
    )

    assert result.exit_code == 1
    assert "Unsupported agent role" in result.output
