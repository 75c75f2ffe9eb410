"""Provider-agnostic request/response models for LLM dispatch."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AgentRole(str, Enum):
    """Capability tag of an agent; selects its system prompt and pipeline stage."""

    ARCHITECT = "architect"
    FRONTEND = "frontend"
    BACKEND = "backend"
    TESTING = "testing"
    DEVOPS = "devops"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str) -> AgentRole:
        normalized = value.strip().lower()
        try:
            return cls(normalized)
        except ValueError as error:
            supported = ", ".join(role.value for role in cls)
            raise ValueError(
                f"Unsupported agent role: {value!r}. Use one of {supported}.",
            ) from error


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class ImagePart:
    """Reference to an image by URL (``https://`` or ``data:`` URI)."""

    url: str


ContentPart = TextPart | ImagePart


@dataclass(frozen=True, slots=True)
class Message:
    """One conversation entry; content is plain text or ordered parts."""

    role: MessageRole
    content: str | tuple[ContentPart, ...]

    def text(self) -> str:
        """Return the concatenated text content, skipping image parts."""

        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if isinstance(part, TextPart))


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """Uniform request passed to the dispatcher. Never mutated after dispatch."""

    model: str
    messages: tuple[Message, ...]
    temperature: float = 0.3
    max_tokens: int = 1024


@dataclass(frozen=True, slots=True)
class CompletionResult:
    """Normalized provider response."""

    text: str
    provider: str
    model: str
    attempts: int
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DispatchBudget:
    """Per-call retry budget."""

    max_attempts: int = 3
    timeout_seconds: float = 30.0
