"""Role-aware message assembly for a single agent call."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from agent_taskflow.dispatch.models import (
    AgentRole,
    ContentPart,
    ImagePart,
    Message,
    MessageRole,
    TextPart,
)

ROLE_SYSTEM_PROMPTS: dict[AgentRole, str] = {
    AgentRole.ARCHITECT: (
        "You are an experienced software architect. Provide detailed guidance on system "
        "design, architecture patterns, and technical decision-making."
    ),
    AgentRole.FRONTEND: (
        "You are a frontend development expert. Provide detailed guidance on UI/UX "
        "implementation, responsive design, and modern frontend frameworks."
    ),
    AgentRole.BACKEND: (
        "You are a backend development expert. Provide detailed guidance on API design, "
        "database modeling, and server-side architecture."
    ),
    AgentRole.TESTING: (
        "You are a software testing expert. Provide detailed guidance on test strategies, "
        "test automation, and quality assurance processes."
    ),
    AgentRole.DEVOPS: (
        "You are a DevOps expert. Provide detailed guidance on CI/CD pipelines, "
        "infrastructure as code, and deployment strategies."
    ),
}

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI assistant with expertise in software development. "
    "Provide helpful, accurate, and detailed responses."
)

EXPECT_CODE_INSTRUCTION = (
    "\n\nIMPORTANT: When asked to generate code, provide complete, functional code files "
    "- not just snippets. Include all necessary imports and implementation details."
)

CONTEXT_ACKNOWLEDGEMENT = "I understand the context. What would you like me to help with now?"


@dataclass(frozen=True, slots=True)
class ProjectContext:
    """Project metadata prepended to the main prompt."""

    name: str
    description: str


def system_prompt_for(role: AgentRole | str, *, expect_code: bool = False) -> str:
    """Return the system prompt for ``role``; unknown roles get the generic template."""

    resolved = _coerce_role(role)
    prompt = DEFAULT_SYSTEM_PROMPT
    if resolved is not None:
        prompt = ROLE_SYSTEM_PROMPTS.get(resolved, DEFAULT_SYSTEM_PROMPT)
    if expect_code:
        prompt += EXPECT_CODE_INSTRUCTION
    return prompt


def compose(  # noqa: PLR0913
    role: AgentRole | str,
    task: str | None,
    user_prompt: str,
    context: str | None = None,
    images: Sequence[str] = (),
    project: ProjectContext | None = None,
    *,
    expect_code: bool = False,
) -> tuple[Message, ...]:
    """Build the ordered message sequence for one agent call.

    Layout: the role's system message, an optional context exchange (user
    context + fixed assistant acknowledgement), then the main user message.
    The main text is ``Task: ...`` (when a task is given), the project header
    (when a project is given) and the user prompt, in that order. Image URLs
    turn the main content into a text part followed by one image part per URL.
    """

    messages: list[Message] = [
        Message(role=MessageRole.SYSTEM, content=system_prompt_for(role, expect_code=expect_code)),
    ]
    if context and context.strip():
        messages.append(Message(role=MessageRole.USER, content=context))
        messages.append(Message(role=MessageRole.ASSISTANT, content=CONTEXT_ACKNOWLEDGEMENT))

    text = user_prompt
    if project is not None:
        name = project.name.strip() or "Unnamed"
        description = project.description.strip() or "No description"
        text = f"Project: {name}\nDescription: {description}\n\n{text}"
    if task and task.strip():
        text = f"Task: {task}\n\n{text}"

    if images:
        parts: list[ContentPart] = [TextPart(text=text)]
        parts.extend(ImagePart(url=url) for url in images)
        messages.append(Message(role=MessageRole.USER, content=tuple(parts)))
    else:
        messages.append(Message(role=MessageRole.USER, content=text))
    return tuple(messages)


def _coerce_role(role: AgentRole | str) -> AgentRole | None:
    if isinstance(role, AgentRole):
        return role
    try:
        return AgentRole(role.strip().lower())
    except ValueError:
        return None
