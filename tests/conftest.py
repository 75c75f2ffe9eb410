"""Shared test fixtures."""

from __future__ import annotations

import json
import os
from collections.abc import Callable

import httpx
import pytest

from agent_taskflow.cancellation import CancellationToken
from agent_taskflow.config import DispatchSettings, ProviderSettings


class FakeClock:
    """Monotonic clock whose sleeps advance time instantly and are recorded."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float, cancel: CancellationToken | None = None) -> None:
        if cancel is not None:
            cancel.raise_if_cancelled()
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def _clean_agent_taskflow_env(monkeypatch) -> None:
    for name in list(os.environ):
        if name.startswith("AGENT_TASKFLOW_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def provider_settings() -> ProviderSettings:
    return ProviderSettings(
        provider="openai",
        api_key="test-key",
        default_model="gpt-4o-mini",
    )


@pytest.fixture()
def dispatch_settings() -> DispatchSettings:
    return DispatchSettings(max_attempts=3, timeout_seconds=5.0)


def openai_completion(text: str, *, model: str = "gpt-4o-mini") -> dict[str, object]:
    return {
        "id": "chatcmpl-test",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    }


def request_json(request: httpx.Request) -> dict[str, object]:
    return json.loads(request.content.decode("utf-8"))


@pytest.fixture()
def recording_transport() -> Callable[..., tuple[httpx.MockTransport, list[httpx.Request]]]:
    """Build a MockTransport that records every request it receives."""

    def build(handler) -> tuple[httpx.MockTransport, list[httpx.Request]]:
        seen: list[httpx.Request] = []

        def record(request: httpx.Request):
            seen.append(request)
            return handler(request)

        return httpx.MockTransport(record), seen

    return build
