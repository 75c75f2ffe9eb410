"""Prompt templates for each orchestration pipeline stage."""

from __future__ import annotations

from collections.abc import Sequence

from agent_taskflow.dispatch.models import AgentRole
from agent_taskflow.pipeline.models import TaskOutcome

DESIGN_PROMPT = """\
I need a comprehensive project design based on this description: {description}

Please provide:
1. A high-level architecture overview
2. Key components and their responsibilities
3. Technology recommendations
4. Potential challenges and solutions"""

ROLE_TASK_TEMPLATES: dict[AgentRole, str] = {
    AgentRole.FRONTEND: (
        "Implement the user interface from the project design: pages, components, "
        "client-side state and responsive layout."
    ),
    AgentRole.BACKEND: (
        "Implement the server side of the project design: API endpoints, data model "
        "and persistence."
    ),
    AgentRole.TESTING: (
        "Write the test strategy for the project design and the key automated tests "
        "for its main components."
    ),
    AgentRole.DEVOPS: (
        "Prepare the CI/CD pipeline, infrastructure configuration and deployment steps "
        "for the project design."
    ),
    AgentRole.CUSTOM: (
        "Handle the remaining work from the project design that falls outside the "
        "frontend, backend, testing and devops areas."
    ),
}

EXECUTE_PROMPT = """\
Complete the task above for this project.
Follow the project design you were given and return the finished deliverable."""

PLAN_CONTEXT = "Project design from the architect:\n\n{plan}"

EVALUATE_PROMPT = """\
Evaluate the results of the project.

Project design:
{plan}

Completed tasks and results:
{results}

Provide a comprehensive evaluation including:
1. Overall success of the project
2. Quality of individual task outputs
3. Areas for improvement
4. Recommendations for future iterations"""

FALLBACK_EVALUATION = "Project plan created successfully. Ready for implementation."


def design_prompt(description: str) -> str:
    return DESIGN_PROMPT.format(description=description.strip())


def role_task(role: AgentRole) -> str:
    return ROLE_TASK_TEMPLATES.get(role, ROLE_TASK_TEMPLATES[AgentRole.CUSTOM])


def evaluate_prompt(plan: str, outcomes: Sequence[TaskOutcome]) -> str:
    """Concatenate every task result (failures included) under the design."""

    blocks = [
        f"### {outcome.task_id} [{outcome.assigned_role.value}] {outcome.status.value}\n"
        f"Task: {outcome.description}\n\n{outcome.result}"
        for outcome in outcomes
    ]
    return EVALUATE_PROMPT.format(
        plan=plan,
        results="\n\n".join(blocks) if blocks else "(no delegated tasks)",
    )
