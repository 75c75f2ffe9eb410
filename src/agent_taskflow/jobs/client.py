"""HTTP client for the remote job execution service."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

import httpx

from agent_taskflow.config import JobSettings
from agent_taskflow.dispatch.failure_classifier import (
    classify_http_failure,
    classify_transport_failure,
)
from agent_taskflow.errors import ConfigurationError, FailureClass, RequestRejected
from agent_taskflow.jobs.models import JobSnapshot, RequiredInput

logger = logging.getLogger(__name__)

JOB_SERVICE_NAME = "job_service"
_ERROR_BODY_PREVIEW_CHARS = 300


class JobService(Protocol):
    """Protocol implemented by the HTTP client and the local simulator."""

    async def required_inputs(self) -> list[RequiredInput]:
        """Return the inputs the service expects on kickoff."""

    async def kickoff(self, inputs: Mapping[str, Any]) -> str:
        """Start a job and return its service-issued id."""

    async def status(self, job_id: str) -> JobSnapshot:
        """Return the current status of one job."""


class HttpJobService:
    """``GET /inputs``, ``POST /kickoff`` and ``GET /status/{id}`` over httpx.

    Failures are raised as ``TransientError`` (timeouts, network, 5xx, 429)
    or ``RequestRejected`` (other 4xx, malformed bodies).
    """

    def __init__(
        self,
        settings: JobSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not settings.base_url:
            raise ConfigurationError(
                "Job service URL is not configured. Set AGENT_TASKFLOW_JOBS_BASE_URL.",
                reason_code="job_service_url_missing",
            )
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if settings.bearer_token:
            headers["Authorization"] = f"Bearer {settings.bearer_token}"
        self._client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            transport=transport,
        )

    async def required_inputs(self) -> list[RequiredInput]:
        payload = await self._request("GET", "/inputs")
        if not isinstance(payload, list):
            raise _invalid_body("inputs body must be a list")
        return [RequiredInput.from_payload(item) for item in payload]

    async def kickoff(self, inputs: Mapping[str, Any]) -> str:
        payload = await self._request("POST", "/kickoff", json=dict(inputs))
        task_id = payload.get("task_id") if isinstance(payload, dict) else None
        if not isinstance(task_id, str) or not task_id.strip():
            raise _invalid_body("kickoff body has no task_id")
        return task_id

    async def status(self, job_id: str) -> JobSnapshot:
        payload = await self._request("GET", f"/status/{job_id}")
        return JobSnapshot.from_payload(job_id, payload)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as error:
            classification = classify_transport_failure(provider=JOB_SERVICE_NAME, timed_out=True)
            logger.warning("Job service %s %s timed out", method, path)
            raise classification.to_error(f"Job service {method} {path} timed out.") from error
        except httpx.HTTPError as error:
            classification = classify_transport_failure(provider=JOB_SERVICE_NAME, timed_out=False)
            logger.warning("Job service %s %s transport error: %s", method, path, error)
            raise classification.to_error(
                f"Job service {method} {path} transport error: {error}",
            ) from error

        if not response.is_success:
            classification = classify_http_failure(
                provider=JOB_SERVICE_NAME,
                status_code=response.status_code,
                body=response.text,
            )
            raise classification.to_error(
                f"Job service API error ({response.status_code}): "
                f"{response.text[:_ERROR_BODY_PREVIEW_CHARS]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as error:
            raise _invalid_body(f"{method} {path} returned non-JSON") from error

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpJobService:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


def _invalid_body(detail: str) -> RequestRejected:
    return RequestRejected(
        f"Unexpected job service response: {detail}.",
        failure_class=FailureClass.INVALID_RESPONSE,
        reason_code="invalid_response",
    )
