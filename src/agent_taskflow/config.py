"""Runtime configuration for dispatch, job polling and pipeline runs."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

SUPPORTED_PROVIDERS = ("openai", "openrouter", "anthropic")


@dataclass(slots=True)
class ProviderSettings:
    """LLM provider selection and credential."""

    provider: str = "openrouter"
    api_key: str | None = None
    base_url: str | None = None
    default_model: str = "openai/gpt-4o-mini"
    allowed_models: tuple[str, ...] = ()
    temperature: float = 0.3
    max_tokens: int = 1024
    app_title: str = "Agent Platform"
    referer: str = "http://localhost"

    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


@dataclass(slots=True)
class DispatchSettings:
    """Retry and timeout budget for single LLM calls."""

    max_attempts: int = 3
    timeout_seconds: float = 30.0
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 15.0


@dataclass(slots=True)
class JobSettings:
    """Remote job service endpoint and polling policy."""

    base_url: str = ""
    bearer_token: str | None = None
    request_timeout_seconds: float = 30.0
    simulate: bool = False
    fallback_to_simulation: bool = False
    simulation_delays_seconds: tuple[float, float, float] = (2.0, 8.0, 15.0)
    submit_max_attempts: int = 3
    poll_retries: int = 2
    initial_interval_ms: int = 5_000
    max_interval_ms: int = 15_000
    growth_factor: float = 1.5
    max_poll_attempts: int = 60


@dataclass(slots=True)
class PipelineSettings:
    """Model choices and fan-out limits for the orchestration pipeline."""

    design_model: str | None = None
    agent_model: str | None = None
    evaluation_model: str | None = None
    max_concurrency: int = 4
    temperature: float = 0.2
    max_tokens: int = 4_000


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    provider: ProviderSettings = field(default_factory=ProviderSettings)
    dispatch: DispatchSettings = field(default_factory=DispatchSettings)
    jobs: JobSettings = field(default_factory=JobSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            provider=ProviderSettings(
                provider=os.getenv("AGENT_TASKFLOW_PROVIDER", "openrouter").strip().lower(),
                api_key=os.getenv("AGENT_TASKFLOW_API_KEY") or None,
                base_url=os.getenv("AGENT_TASKFLOW_PROVIDER_BASE_URL") or None,
                default_model=os.getenv("AGENT_TASKFLOW_DEFAULT_MODEL", "openai/gpt-4o-mini"),
                allowed_models=_env_csv("AGENT_TASKFLOW_ALLOWED_MODELS"),
                temperature=float(os.getenv("AGENT_TASKFLOW_TEMPERATURE", "0.3")),
                max_tokens=int(os.getenv("AGENT_TASKFLOW_MAX_TOKENS", "1024")),
                app_title=os.getenv("AGENT_TASKFLOW_APP_TITLE", "Agent Platform"),
                referer=os.getenv("AGENT_TASKFLOW_REFERER", "http://localhost"),
            ),
            dispatch=DispatchSettings(
                max_attempts=int(os.getenv("AGENT_TASKFLOW_DISPATCH_MAX_ATTEMPTS", "3")),
                timeout_seconds=float(os.getenv("AGENT_TASKFLOW_DISPATCH_TIMEOUT_SECONDS", "30")),
                backoff_base_seconds=float(
                    os.getenv("AGENT_TASKFLOW_DISPATCH_BACKOFF_BASE_SECONDS", "1.0"),
                ),
                backoff_max_seconds=float(
                    os.getenv("AGENT_TASKFLOW_DISPATCH_BACKOFF_MAX_SECONDS", "15.0"),
                ),
            ),
            jobs=JobSettings(
                base_url=os.getenv("AGENT_TASKFLOW_JOBS_BASE_URL", "").strip(),
                bearer_token=os.getenv("AGENT_TASKFLOW_JOBS_TOKEN") or None,
                request_timeout_seconds=float(
                    os.getenv("AGENT_TASKFLOW_JOBS_REQUEST_TIMEOUT_SECONDS", "30"),
                ),
                simulate=_env_bool("AGENT_TASKFLOW_JOBS_SIMULATE", default=False),
                fallback_to_simulation=_env_bool(
                    "AGENT_TASKFLOW_JOBS_FALLBACK_TO_SIMULATION",
                    default=False,
                ),
                simulation_delays_seconds=_env_delays(
                    "AGENT_TASKFLOW_JOBS_SIMULATION_DELAYS",
                    default=(2.0, 8.0, 15.0),
                ),
                submit_max_attempts=int(os.getenv("AGENT_TASKFLOW_JOBS_SUBMIT_MAX_ATTEMPTS", "3")),
                poll_retries=int(os.getenv("AGENT_TASKFLOW_JOBS_POLL_RETRIES", "2")),
                initial_interval_ms=int(
                    os.getenv("AGENT_TASKFLOW_JOBS_INITIAL_INTERVAL_MS", "5000"),
                ),
                max_interval_ms=int(os.getenv("AGENT_TASKFLOW_JOBS_MAX_INTERVAL_MS", "15000")),
                growth_factor=float(os.getenv("AGENT_TASKFLOW_JOBS_GROWTH_FACTOR", "1.5")),
                max_poll_attempts=int(os.getenv("AGENT_TASKFLOW_JOBS_MAX_POLL_ATTEMPTS", "60")),
            ),
            pipeline=PipelineSettings(
                design_model=os.getenv("AGENT_TASKFLOW_PIPELINE_DESIGN_MODEL") or None,
                agent_model=os.getenv("AGENT_TASKFLOW_PIPELINE_AGENT_MODEL") or None,
                evaluation_model=os.getenv("AGENT_TASKFLOW_PIPELINE_EVALUATION_MODEL") or None,
                max_concurrency=int(os.getenv("AGENT_TASKFLOW_PIPELINE_MAX_CONCURRENCY", "4")),
                temperature=float(os.getenv("AGENT_TASKFLOW_PIPELINE_TEMPERATURE", "0.2")),
                max_tokens=int(os.getenv("AGENT_TASKFLOW_PIPELINE_MAX_TOKENS", "4000")),
            ),
            log_level=os.getenv("AGENT_TASKFLOW_LOG_LEVEL", "WARNING").strip().upper(),
        )

    def validate(self) -> None:  # noqa: C901, PLR0912
        """Raise configuration error if any setting is out of range."""

        if self.provider.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported AGENT_TASKFLOW_PROVIDER: {self.provider.provider!r}. "
                f"Use one of {', '.join(SUPPORTED_PROVIDERS)}.",
            )
        if self.provider.base_url is not None:
            _validate_http_url(self.provider.base_url, name="AGENT_TASKFLOW_PROVIDER_BASE_URL")
        if not self.provider.default_model.strip():
            raise ValueError("AGENT_TASKFLOW_DEFAULT_MODEL must be a non-empty model id.")
        if self.provider.max_tokens <= 0:
            raise ValueError("AGENT_TASKFLOW_MAX_TOKENS must be > 0.")
        if self.dispatch.max_attempts < 1:
            raise ValueError("AGENT_TASKFLOW_DISPATCH_MAX_ATTEMPTS must be >= 1.")
        if self.dispatch.timeout_seconds <= 0:
            raise ValueError("AGENT_TASKFLOW_DISPATCH_TIMEOUT_SECONDS must be > 0.")
        if self.dispatch.backoff_base_seconds < 0 or self.dispatch.backoff_max_seconds < 0:
            raise ValueError("Dispatch backoff seconds must be >= 0.")
        if self.jobs.base_url:
            _validate_http_url(self.jobs.base_url, name="AGENT_TASKFLOW_JOBS_BASE_URL")
        if self.jobs.submit_max_attempts < 1:
            raise ValueError("AGENT_TASKFLOW_JOBS_SUBMIT_MAX_ATTEMPTS must be >= 1.")
        if self.jobs.poll_retries < 0:
            raise ValueError("AGENT_TASKFLOW_JOBS_POLL_RETRIES must be >= 0.")
        if self.jobs.initial_interval_ms < 0 or self.jobs.max_interval_ms < 0:
            raise ValueError("Job polling intervals must be >= 0.")
        if self.jobs.initial_interval_ms > self.jobs.max_interval_ms:
            raise ValueError(
                "AGENT_TASKFLOW_JOBS_INITIAL_INTERVAL_MS must not exceed "
                "AGENT_TASKFLOW_JOBS_MAX_INTERVAL_MS.",
            )
        if self.jobs.growth_factor < 1.0:
            raise ValueError("AGENT_TASKFLOW_JOBS_GROWTH_FACTOR must be >= 1.0.")
        if self.jobs.max_poll_attempts < 1:
            raise ValueError("AGENT_TASKFLOW_JOBS_MAX_POLL_ATTEMPTS must be >= 1.")
        if self.pipeline.max_concurrency < 1:
            raise ValueError("AGENT_TASKFLOW_PIPELINE_MAX_CONCURRENCY must be >= 1.")

    def validate_for_jobs(self) -> None:
        """Raise configuration error if the remote job service is unusable."""

        self.validate()
        if self.jobs.simulate:
            return
        if not self.jobs.base_url:
            raise ValueError(
                "A job service URL is required. "
                "Set AGENT_TASKFLOW_JOBS_BASE_URL or pass --simulate.",
            )


def _env_csv(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return ()
    values: list[str] = []
    for part in raw.split(","):
        token = part.strip()
        if token and token not in values:
            values.append(token)
    return tuple(values)


def _env_delays(name: str, default: tuple[float, float, float]) -> tuple[float, float, float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != 3:
        raise ValueError(
            f"Invalid {name} value: {raw!r}. "
            "Expected three comma-separated seconds '<started>,<halfway>,<completed>'.",
        )
    try:
        first, second, third = (float(part) for part in parts)
    except ValueError as error:
        raise ValueError(f"Invalid {name} value: {raw!r}") from error
    if not 0 <= first <= second <= third:
        raise ValueError(f"Invalid {name} value: {raw!r} (delays must be non-decreasing).")
    return first, second, third


def _validate_http_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
