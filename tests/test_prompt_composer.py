from __future__ import annotations

import allure

from agent_taskflow.dispatch.models import AgentRole, ImagePart, MessageRole, TextPart
from agent_taskflow.prompts import (
    CONTEXT_ACKNOWLEDGEMENT,
    DEFAULT_SYSTEM_PROMPT,
    ROLE_SYSTEM_PROMPTS,
    ProjectContext,
    compose,
    system_prompt_for,
)

pytestmark = [
    allure.epic("Prompt Composition"),
    allure.feature("Role Templates"),
]


def test_minimal_composition_is_system_plus_user() -> None:
    messages = compose(AgentRole.BACKEND, None, "Design the API.")

    assert [message.role for message in messages] == [MessageRole.SYSTEM, MessageRole.USER]
    assert messages[0].content == ROLE_SYSTEM_PROMPTS[AgentRole.BACKEND]
    assert messages[1].content == "Design the API."


def test_unknown_and_custom_roles_use_generic_template() -> None:
    assert system_prompt_for("data-scientist") == DEFAULT_SYSTEM_PROMPT
    assert system_prompt_for(AgentRole.CUSTOM) == DEFAULT_SYSTEM_PROMPT
    assert system_prompt_for(" Architect ") == ROLE_SYSTEM_PROMPTS[AgentRole.ARCHITECT]


def test_expect_code_appends_complete_files_instruction() -> None:
    prompt = system_prompt_for(AgentRole.FRONTEND, expect_code=True)

    assert prompt.startswith(ROLE_SYSTEM_PROMPTS[AgentRole.FRONTEND])
    assert prompt.endswith(
        "IMPORTANT: When asked to generate code, provide complete, functional code files "
        "- not just snippets. Include all necessary imports and implementation details.",
    )


def test_context_exchange_precedes_main_prompt() -> None:
    messages = compose(AgentRole.TESTING, None, "Write tests.", context="We use pytest.")

    assert [message.role for message in messages] == [
        MessageRole.SYSTEM,
        MessageRole.USER,
        MessageRole.ASSISTANT,
        MessageRole.USER,
    ]
    assert messages[1].content == "We use pytest."
    assert messages[2].content == CONTEXT_ACKNOWLEDGEMENT


def test_blank_context_is_skipped() -> None:
    messages = compose(AgentRole.TESTING, None, "Write tests.", context="   ")

    assert len(messages) == 2


def test_task_and_project_header_order() -> None:
    messages = compose(
        AgentRole.DEVOPS,
        "Set up CI",
        "Use GitHub Actions.",
        project=ProjectContext(name="Shop", description="An online shop"),
    )

    assert messages[-1].content == (
        "Task: Set up CI\n\nProject: Shop\nDescription: An online shop\n\nUse GitHub Actions."
    )


def test_blank_project_fields_get_placeholders() -> None:
    messages = compose(AgentRole.DEVOPS, None, "Go.", project=ProjectContext(name="", description=""))

    assert messages[-1].content == "Project: Unnamed\nDescription: No description\n\nGo."


def test_images_become_ordered_content_parts() -> None:
    messages = compose(
        AgentRole.FRONTEND,
        "Match mockups",
        "Build it.",
        images=("https://img.example/1.png", "data:image/png;base64,AAAA"),
    )

    assert messages[-1].content == (
        TextPart(text="Task: Match mockups\n\nBuild it."),
        ImagePart(url="https://img.example/1.png"),
        ImagePart(url="data:image/png;base64,AAAA"),
    )
    assert messages[-1].text() == "Task: Match mockups\n\nBuild it."


def test_composition_is_deterministic() -> None:
    kwargs = {
        "context": "ctx",
        "images": ("https://img.example/1.png",),
        "project": ProjectContext(name="P", description="D"),
        "expect_code": True,
    }

    first = compose(AgentRole.ARCHITECT, "t", "p", **kwargs)
    second = compose(AgentRole.ARCHITECT, "t", "p", **kwargs)

    assert first == second
