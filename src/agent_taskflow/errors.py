"""Error taxonomy shared by dispatcher, poller and pipeline."""

from __future__ import annotations

from enum import Enum


class FailureClass(str, Enum):
    """Normalized failure classes used by retry policy."""

    CONFIGURATION = "configuration"
    TIMEOUT = "timeout"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"
    REJECTED = "rejected"
    INVALID_RESPONSE = "invalid_response"
    CANCELLED = "cancelled"


class OrchestrationError(RuntimeError):
    """Base class for every failure raised by the engine."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        failure_class: FailureClass | None = None,
        reason_code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.failure_class = failure_class
        self.reason_code = reason_code
        self.status_code = status_code


class ConfigurationError(OrchestrationError):
    """Missing credential or unusable configuration. Never retried."""

    def __init__(self, message: str, *, reason_code: str = "configuration") -> None:
        super().__init__(
            message,
            failure_class=FailureClass.CONFIGURATION,
            reason_code=reason_code,
        )


class RequestRejected(OrchestrationError):
    """The remote side refused the request (non-retryable 4xx or bad payload)."""


class TransientError(OrchestrationError):
    """Timeout, network failure, 5xx or 429. Retried locally."""

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        failure_class: FailureClass | None = None,
        reason_code: str | None = None,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(
            message,
            failure_class=failure_class,
            reason_code=reason_code,
            status_code=status_code,
        )
        self.attempts = attempts


class Cancelled(OrchestrationError):
    """Caller-initiated abort. Terminal, not reported as a failure."""

    def __init__(self, message: str = "Operation cancelled by caller.") -> None:
        super().__init__(
            message,
            failure_class=FailureClass.CANCELLED,
            reason_code="cancelled",
        )


class SubmissionError(OrchestrationError):
    """A remote job could not be kicked off."""


class PollingExhausted(OrchestrationError):
    """Client gave up polling; the remote job may still be running."""

    def __init__(self, message: str, *, job_id: str, attempts: int) -> None:
        super().__init__(message, reason_code="polling_exhausted")
        self.job_id = job_id
        self.attempts = attempts


class PreconditionError(OrchestrationError):
    """Pipeline inputs are invalid; raised before any call is made."""

    def __init__(self, message: str, *, reason_code: str) -> None:
        super().__init__(message, reason_code=reason_code)


class JobBusy(OrchestrationError):
    """Another poller currently owns the job."""

    def __init__(self, job_id: str) -> None:
        super().__init__(
            f"Job {job_id} is already being polled by another poller.",
            reason_code="job_busy",
        )
        self.job_id = job_id
