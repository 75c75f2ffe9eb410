"""Deterministic HTTP failure classification for dispatcher retry policy."""

from __future__ import annotations

from dataclasses import dataclass

from agent_taskflow.errors import (
    FailureClass,
    OrchestrationError,
    RequestRejected,
    TransientError,
)

FAILURE_CLASSIFIER_VERSION = 1

_RETRYABLE_CLASSES = frozenset(
    {
        FailureClass.TIMEOUT,
        FailureClass.NETWORK,
        FailureClass.RATE_LIMITED,
        FailureClass.SERVER_ERROR,
    },
)

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "insufficient",
    "billing",
    "payment",
    "credits",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "invalid x-api-key",
    "authentication",
    "no auth credentials",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "is not a valid model",
    "no endpoints found",
)


@dataclass(slots=True)
class DispatchFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    reason_code: str
    matched_rule: str
    matched_pattern: str | None

    @property
    def retryable(self) -> bool:
        return self.failure_class in _RETRYABLE_CLASSES

    def to_error(self, message: str, *, status_code: int | None = None) -> OrchestrationError:
        """Build the taxonomy exception matching this classification."""

        if self.retryable:
            return TransientError(
                message,
                failure_class=self.failure_class,
                reason_code=self.reason_code,
                status_code=status_code,
            )
        return RequestRejected(
            message,
            failure_class=self.failure_class,
            reason_code=self.reason_code,
            status_code=status_code,
        )

    def to_log_details(self, *, provider: str, model: str) -> dict[str, object]:
        """Serialize classifier diagnostics for log records."""

        return {
            "classifier_version": FAILURE_CLASSIFIER_VERSION,
            "provider": provider,
            "model": model,
            "reason_code": self.reason_code,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
        }


def classify_http_failure(
    *,
    provider: str,
    status_code: int,
    body: str,
) -> DispatchFailureClassification:
    """Classify a non-2xx provider response into a deterministic retry class."""

    if status_code == 429:
        return DispatchFailureClassification(
            failure_class=FailureClass.RATE_LIMITED,
            reason_code=f"{provider}_rate_limited",
            matched_rule="status_429",
            matched_pattern=None,
        )
    if status_code >= 500:
        return DispatchFailureClassification(
            failure_class=FailureClass.SERVER_ERROR,
            reason_code=f"{provider}_server_error",
            matched_rule="status_5xx",
            matched_pattern=None,
        )

    haystack = body.lower()
    if status_code in (401, 403):
        return DispatchFailureClassification(
            failure_class=FailureClass.ACCESS_OR_AUTH,
            reason_code=f"{provider}_access_or_auth",
            matched_rule=f"status_{status_code}",
            matched_pattern=_first_match(haystack, _ACCESS_OR_AUTH_PATTERNS),
        )
    if status_code == 402:
        return DispatchFailureClassification(
            failure_class=FailureClass.BILLING_OR_QUOTA,
            reason_code=f"{provider}_billing_or_quota",
            matched_rule="status_402",
            matched_pattern=_first_match(haystack, _BILLING_OR_QUOTA_PATTERNS),
        )

    for failure_class, rule, patterns in (
        (FailureClass.BILLING_OR_QUOTA, "billing_or_quota", _BILLING_OR_QUOTA_PATTERNS),
        (FailureClass.ACCESS_OR_AUTH, "access_or_auth", _ACCESS_OR_AUTH_PATTERNS),
        (FailureClass.MODEL_NOT_AVAILABLE, "model_not_available", _MODEL_NOT_AVAILABLE_PATTERNS),
    ):
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return DispatchFailureClassification(
                failure_class=failure_class,
                reason_code=f"{provider}_{rule}",
                matched_rule=rule,
                matched_pattern=pattern,
            )

    if status_code == 404:
        return DispatchFailureClassification(
            failure_class=FailureClass.MODEL_NOT_AVAILABLE,
            reason_code=f"{provider}_model_not_available",
            matched_rule="status_404",
            matched_pattern=None,
        )
    return DispatchFailureClassification(
        failure_class=FailureClass.REJECTED,
        reason_code=f"{provider}_rejected",
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
    )


def classify_transport_failure(*, provider: str, timed_out: bool) -> DispatchFailureClassification:
    """Classify a failure that produced no HTTP response at all."""

    if timed_out:
        return DispatchFailureClassification(
            failure_class=FailureClass.TIMEOUT,
            reason_code=f"{provider}_timeout",
            matched_rule="attempt_timeout",
            matched_pattern=None,
        )
    return DispatchFailureClassification(
        failure_class=FailureClass.NETWORK,
        reason_code=f"{provider}_network_error",
        matched_rule="transport_error",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
