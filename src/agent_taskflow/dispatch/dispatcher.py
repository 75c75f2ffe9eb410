"""Single-call LLM dispatch with classification, timeout and bounded retries."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from agent_taskflow.cancellation import CancellationToken, run_cancellable, sleep_cancellable
from agent_taskflow.config import DispatchSettings, ProviderSettings
from agent_taskflow.dispatch.failure_classifier import (
    classify_http_failure,
    classify_transport_failure,
)
from agent_taskflow.dispatch.models import (
    CompletionRequest,
    CompletionResult,
    DispatchBudget,
    MessageRole,
)
from agent_taskflow.dispatch.providers import ResolvedProvider, resolve_provider
from agent_taskflow.dispatch.retry import RetryPolicy, SleepFn, call_with_retry
from agent_taskflow.errors import ConfigurationError, FailureClass, RequestRejected

logger = logging.getLogger(__name__)

_ERROR_BODY_PREVIEW_CHARS = 300
_RAW_METADATA_KEYS = ("id", "model", "usage", "stop_reason", "created")


class RequestDispatcher:
    """Send one ``CompletionRequest`` to the configured provider.

    The dispatcher is stateless between calls; it can be shared by concurrent
    pipeline tasks. Pass ``transport`` (for example ``httpx.MockTransport``) to
    route requests without touching the network.
    """

    def __init__(
        self,
        provider: ProviderSettings,
        dispatch: DispatchSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = sleep_cancellable,
    ) -> None:
        self._provider: ResolvedProvider = resolve_provider(provider)
        self._settings = dispatch or DispatchSettings()
        self._client = client
        self._transport = transport
        self._sleep = sleep

    @property
    def provider_name(self) -> str:
        return self._provider.name

    @property
    def default_model(self) -> str:
        return self._provider.settings.default_model

    def has_api_key(self) -> bool:
        return self._provider.settings.has_api_key()

    def default_budget(self) -> DispatchBudget:
        return DispatchBudget(
            max_attempts=self._settings.max_attempts,
            timeout_seconds=self._settings.timeout_seconds,
        )

    async def dispatch(
        self,
        request: CompletionRequest,
        budget: DispatchBudget | None = None,
        cancel: CancellationToken | None = None,
    ) -> CompletionResult:
        """Send ``request`` and return the normalized completion.

        Raises ``ConfigurationError`` (no credential, unknown model) before any
        outbound call, ``RequestRejected`` for non-retryable refusals,
        ``TransientError`` once the attempt budget is spent, and ``Cancelled``
        when ``cancel`` fires.
        """

        model = self._provider.validate_model(request.model)
        if not any(message.role == MessageRole.USER for message in request.messages):
            raise ValueError("CompletionRequest.messages must contain at least one user message.")
        if not self.has_api_key():
            raise ConfigurationError(
                f"API key for provider {self._provider.name!r} is not configured. "
                "Set AGENT_TASKFLOW_API_KEY.",
                reason_code="api_key_missing",
            )

        budget = budget or self.default_budget()
        if budget.max_attempts < 1:
            raise ValueError("DispatchBudget.max_attempts must be >= 1.")
        policy = RetryPolicy(
            max_attempts=budget.max_attempts,
            base_seconds=self._settings.backoff_base_seconds,
            max_seconds=self._settings.backoff_max_seconds,
        )
        adapter = self._provider.adapter
        api_key = self._provider.settings.api_key or ""
        headers = adapter.build_headers(api_key.strip(), self._provider.settings)
        payload = adapter.build_payload(request)
        url = self._provider.url

        async def send(client: httpx.AsyncClient) -> CompletionResult:
            async def attempt(attempt_number: int) -> CompletionResult:
                logger.debug(
                    "Dispatching to %s model=%s attempt=%d",
                    self._provider.name,
                    model,
                    attempt_number,
                )
                body = await self._post(
                    client,
                    url,
                    headers=headers,
                    payload=payload,
                    model=model,
                    timeout_seconds=budget.timeout_seconds,
                    cancel=cancel,
                )
                text = adapter.extract_text(body)
                return CompletionResult(
                    text=text,
                    provider=self._provider.name,
                    model=str(body.get("model") or model),
                    attempts=attempt_number,
                    raw={key: body[key] for key in _RAW_METADATA_KEYS if key in body},
                )

            return await call_with_retry(
                attempt,
                policy=policy,
                cancel=cancel,
                sleep=self._sleep,
                label=f"{self._provider.name} dispatch",
            )

        if self._client is not None:
            return await send(self._client)
        async with httpx.AsyncClient(transport=self._transport) as client:
            return await send(client)

    async def _post(  # noqa: PLR0913
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        headers: dict[str, str],
        payload: dict[str, Any],
        model: str,
        timeout_seconds: float,
        cancel: CancellationToken | None,
    ) -> dict[str, Any]:
        provider = self._provider.name
        try:
            response = await run_cancellable(
                client.post(url, headers=headers, json=payload, timeout=timeout_seconds),
                cancel,
                timeout=timeout_seconds,
            )
        except (TimeoutError, httpx.TimeoutException) as error:
            classification = classify_transport_failure(provider=provider, timed_out=True)
            logger.warning(
                "LLM request timed out after %.1fs: %s",
                timeout_seconds,
                classification.to_log_details(provider=provider, model=model),
            )
            raise classification.to_error(
                f"{provider} request timed out after {timeout_seconds:g}s.",
            ) from error
        except httpx.HTTPError as error:
            classification = classify_transport_failure(provider=provider, timed_out=False)
            logger.warning(
                "LLM transport error: %s (%s)",
                error,
                classification.to_log_details(provider=provider, model=model),
            )
            raise classification.to_error(f"{provider} transport error: {error}") from error

        if not response.is_success:
            body_text = response.text
            classification = classify_http_failure(
                provider=provider,
                status_code=response.status_code,
                body=body_text,
            )
            logger.warning(
                "LLM request failed with HTTP %d: %s",
                response.status_code,
                classification.to_log_details(provider=provider, model=model),
            )
            raise classification.to_error(
                f"{provider} returned HTTP {response.status_code}: "
                f"{body_text[:_ERROR_BODY_PREVIEW_CHARS]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as error:
            raise RequestRejected(
                f"{provider} returned a non-JSON body.",
                failure_class=FailureClass.INVALID_RESPONSE,
                reason_code="invalid_response",
                status_code=response.status_code,
            ) from error
        if not isinstance(body, dict):
            raise RequestRejected(
                f"{provider} returned a JSON {type(body).__name__}, expected an object.",
                failure_class=FailureClass.INVALID_RESPONSE,
                reason_code="invalid_response",
                status_code=response.status_code,
            )
        return body
