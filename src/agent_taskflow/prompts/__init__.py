"""Prompt composition for agent calls."""

from agent_taskflow.prompts.composer import (
    CONTEXT_ACKNOWLEDGEMENT,
    DEFAULT_SYSTEM_PROMPT,
    ROLE_SYSTEM_PROMPTS,
    ProjectContext,
    compose,
    system_prompt_for,
)

__all__ = [
    "CONTEXT_ACKNOWLEDGEMENT",
    "DEFAULT_SYSTEM_PROMPT",
    "ROLE_SYSTEM_PROMPTS",
    "ProjectContext",
    "compose",
    "system_prompt_for",
]
