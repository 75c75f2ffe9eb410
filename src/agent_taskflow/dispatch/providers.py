"""Table-driven provider adapters.

Each adapter maps the uniform ``CompletionRequest`` onto one provider's wire
shape and normalizes that provider's response back to plain text. Nothing
outside this module knows about provider field names.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from agent_taskflow.config import ProviderSettings
from agent_taskflow.dispatch.models import (
    CompletionRequest,
    ImagePart,
    Message,
    MessageRole,
    TextPart,
)
from agent_taskflow.errors import ConfigurationError, FailureClass, RequestRejected

ANTHROPIC_API_VERSION = "2023-06-01"


class ProviderKind(str, Enum):
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True, slots=True)
class ProviderAdapter:
    """Wire mapping for one provider."""

    kind: ProviderKind
    default_base_url: str
    endpoint_path: str
    build_headers: Callable[[str, ProviderSettings], dict[str, str]]
    build_payload: Callable[[CompletionRequest], dict[str, Any]]
    extract_text: Callable[[dict[str, Any]], str]

    def endpoint(self, base_url: str | None) -> str:
        root = (base_url or self.default_base_url).rstrip("/")
        return f"{root}{self.endpoint_path}"


@dataclass(frozen=True, slots=True)
class ResolvedProvider:
    """Adapter plus the settings snapshot it was resolved with."""

    adapter: ProviderAdapter
    settings: ProviderSettings

    @property
    def name(self) -> str:
        return self.adapter.kind.value

    @property
    def url(self) -> str:
        return self.adapter.endpoint(self.settings.base_url)

    def validate_model(self, model: str) -> str:
        """Return the normalized model id or raise when it is not configured."""

        normalized = model.strip()
        if not normalized:
            raise ConfigurationError(
                "CompletionRequest.model must be a non-empty model id.",
                reason_code="model_missing",
            )
        allowed = self.settings.allowed_models
        if allowed and normalized not in allowed:
            raise ConfigurationError(
                f"Model {normalized!r} is not configured for provider {self.name!r}. "
                f"Allowed: {', '.join(allowed)}.",
                reason_code="model_not_configured",
            )
        return normalized


def resolve_provider(settings: ProviderSettings) -> ResolvedProvider:
    """Select the adapter named by settings."""

    try:
        kind = ProviderKind(settings.provider.strip().lower())
    except ValueError as error:
        supported = ", ".join(kind.value for kind in ProviderKind)
        raise ConfigurationError(
            f"Unsupported LLM provider: {settings.provider!r}. Use one of {supported}.",
            reason_code="provider_unsupported",
        ) from error
    return ResolvedProvider(adapter=PROVIDER_ADAPTERS[kind], settings=settings)


# ---------------------------------------------------------------------------
# OpenAI-compatible (OpenAI, OpenRouter)
# ---------------------------------------------------------------------------


def _openai_headers(api_key: str, _settings: ProviderSettings) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


def _openrouter_headers(api_key: str, settings: ProviderSettings) -> dict[str, str]:
    headers = _openai_headers(api_key, settings)
    headers["HTTP-Referer"] = settings.referer
    headers["X-Title"] = settings.app_title
    return headers


def _openai_content(message: Message) -> str | list[dict[str, Any]]:
    if isinstance(message.content, str):
        return message.content
    parts: list[dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, TextPart):
            parts.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            parts.append({"type": "image_url", "image_url": {"url": part.url}})
    return parts


def _openai_payload(request: CompletionRequest) -> dict[str, Any]:
    return {
        "model": request.model,
        "messages": [
            {"role": message.role.value, "content": _openai_content(message)}
            for message in request.messages
        ],
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
        "stream": False,
    }


def _openai_text(payload: dict[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise _invalid_response("response has no choices")
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [
            item.get("text", "")
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
        ]
        if texts:
            return "".join(texts)
    raise _invalid_response("choices[0].message.content is missing")


# ---------------------------------------------------------------------------
# Anthropic messages API
# ---------------------------------------------------------------------------


def _anthropic_headers(api_key: str, _settings: ProviderSettings) -> dict[str, str]:
    return {
        "x-api-key": api_key,
        "anthropic-version": ANTHROPIC_API_VERSION,
        "Content-Type": "application/json",
    }


def _anthropic_content(message: Message) -> str | list[dict[str, Any]]:
    if isinstance(message.content, str):
        return message.content
    parts: list[dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, TextPart):
            parts.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            parts.append({"type": "image", "source": {"type": "url", "url": part.url}})
    return parts


def _anthropic_payload(request: CompletionRequest) -> dict[str, Any]:
    system_texts = [
        message.text() for message in request.messages if message.role == MessageRole.SYSTEM
    ]
    payload: dict[str, Any] = {
        "model": request.model,
        "messages": [
            {"role": message.role.value, "content": _anthropic_content(message)}
            for message in request.messages
            if message.role != MessageRole.SYSTEM
        ],
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
    }
    if system_texts:
        payload["system"] = "\n\n".join(system_texts)
    return payload


def _anthropic_text(payload: dict[str, Any]) -> str:
    content = payload.get("content")
    if not isinstance(content, list) or not content:
        raise _invalid_response("response has no content blocks")
    for block in content:
        if isinstance(block, dict) and block.get("type", "text") == "text":
            text = block.get("text")
            if isinstance(text, str):
                return text
    raise _invalid_response("content[0].text is missing")


def _invalid_response(detail: str) -> RequestRejected:
    return RequestRejected(
        f"Unexpected provider response shape: {detail}.",
        failure_class=FailureClass.INVALID_RESPONSE,
        reason_code="invalid_response",
    )


PROVIDER_ADAPTERS: dict[ProviderKind, ProviderAdapter] = {
    ProviderKind.OPENAI: ProviderAdapter(
        kind=ProviderKind.OPENAI,
        default_base_url="https://api.openai.com/v1",
        endpoint_path="/chat/completions",
        build_headers=_openai_headers,
        build_payload=_openai_payload,
        extract_text=_openai_text,
    ),
    ProviderKind.OPENROUTER: ProviderAdapter(
        kind=ProviderKind.OPENROUTER,
        default_base_url="https://openrouter.ai/api/v1",
        endpoint_path="/chat/completions",
        build_headers=_openrouter_headers,
        build_payload=_openai_payload,
        extract_text=_openai_text,
    ),
    ProviderKind.ANTHROPIC: ProviderAdapter(
        kind=ProviderKind.ANTHROPIC,
        default_base_url="https://api.anthropic.com/v1",
        endpoint_path="/messages",
        build_headers=_anthropic_headers,
        build_payload=_anthropic_payload,
        extract_text=_anthropic_text,
    ),
}
