"""Provider-agnostic LLM dispatch."""

from agent_taskflow.dispatch.dispatcher import RequestDispatcher
from agent_taskflow.dispatch.models import (
    AgentRole,
    CompletionRequest,
    CompletionResult,
    DispatchBudget,
    ImagePart,
    Message,
    MessageRole,
    TextPart,
)
from agent_taskflow.dispatch.providers import PROVIDER_ADAPTERS, ProviderKind, resolve_provider
from agent_taskflow.dispatch.retry import RetryPolicy, call_with_retry

__all__ = [
    "PROVIDER_ADAPTERS",
    "AgentRole",
    "CompletionRequest",
    "CompletionResult",
    "DispatchBudget",
    "ImagePart",
    "Message",
    "MessageRole",
    "ProviderKind",
    "RequestDispatcher",
    "RetryPolicy",
    "TextPart",
    "call_with_retry",
    "resolve_provider",
]
