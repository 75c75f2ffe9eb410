"""Remote job state, snapshots and polling schedule values."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agent_taskflow.errors import FailureClass, JobBusy, RequestRejected


class JobStatus(str, Enum):
    """Lifecycle of a remote job.

    ``CANCELLED`` is client-side only: it marks the snapshot returned by a
    cancelled ``run`` and is never stored on a ``Job``.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})
_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.IN_PROGRESS: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
    JobStatus.CANCELLED: 2,
}
_REMOTE_STATUSES = frozenset(
    {JobStatus.PENDING, JobStatus.IN_PROGRESS, JobStatus.COMPLETED, JobStatus.FAILED},
)


@dataclass(frozen=True, slots=True)
class RequiredInput:
    """One kickoff input declared by the job service."""

    name: str
    type: str
    description: str
    required: bool

    @classmethod
    def from_payload(cls, payload: object) -> RequiredInput:
        if not isinstance(payload, dict) or not isinstance(payload.get("name"), str):
            raise _invalid_payload(f"required input entry is malformed: {payload!r}")
        return cls(
            name=payload["name"],
            type=str(payload.get("type") or "string"),
            description=str(payload.get("description") or ""),
            required=bool(payload.get("required", False)),
        )


@dataclass(frozen=True, slots=True)
class JobSnapshot:
    """Immutable observation of a job's status."""

    job_id: str
    status: JobStatus
    progress: int = 0
    result: dict[str, Any] | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_payload(cls, job_id: str, payload: object) -> JobSnapshot:
        """Parse a ``GET /status/{task_id}`` body."""

        if not isinstance(payload, dict):
            raise _invalid_payload(f"status body must be an object, got {type(payload).__name__}")
        raw_status = str(payload.get("status") or "").strip().lower()
        try:
            status = JobStatus(raw_status)
        except ValueError as error:
            raise _invalid_payload(f"unknown job status {raw_status!r}") from error
        if status not in _REMOTE_STATUSES:
            raise _invalid_payload(f"unknown job status {raw_status!r}")

        progress = payload.get("progress")
        if isinstance(progress, (int, float)) and not isinstance(progress, bool):
            normalized_progress = max(0, min(100, int(progress)))
        else:
            normalized_progress = 100 if status == JobStatus.COMPLETED else 0

        result = payload.get("result")
        if result is not None and not isinstance(result, dict):
            result = {"value": result}
        error = payload.get("error")
        return cls(
            job_id=str(payload.get("task_id") or job_id),
            status=status,
            progress=normalized_progress,
            result=result,
            error=str(error) if error is not None else None,
        )


@dataclass(slots=True)
class Job:
    """Client-side record of a submitted job.

    ``apply`` enforces monotonic status; ``claim``/``release`` enforce a single
    active poll loop, even for two calls made by the same poller.
    """

    job_id: str
    inputs: dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    result: dict[str, Any] | None = None
    error: str | None = None
    simulated: bool = False
    owner: object | None = field(default=None, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def claim(self, owner: object) -> None:
        if self.owner is not None:
            raise JobBusy(self.job_id)
        self.owner = owner

    def release(self, owner: object) -> None:
        if self.owner is owner:
            self.owner = None

    def apply(self, snapshot: JobSnapshot) -> bool:
        """Merge ``snapshot``; return False when it would regress cached state."""

        if snapshot.status not in _REMOTE_STATUSES:
            return False
        if self.status.is_terminal:
            return False
        if snapshot.status.rank < self.status.rank:
            return False
        if snapshot.status == self.status and snapshot.progress < self.progress:
            return False
        self.status = snapshot.status
        self.progress = max(self.progress, snapshot.progress)
        if snapshot.result is not None:
            self.result = snapshot.result
        if snapshot.error is not None:
            self.error = snapshot.error
        return True

    def snapshot(self, *, status: JobStatus | None = None) -> JobSnapshot:
        return JobSnapshot(
            job_id=self.job_id,
            status=status or self.status,
            progress=self.progress,
            result=self.result,
            error=self.error,
        )


@dataclass(frozen=True, slots=True)
class PollOptions:
    """Adaptive polling policy for ``TaskPoller.run``."""

    initial_interval_ms: float = 5_000
    max_interval_ms: float = 15_000
    growth_factor: float = 1.5
    max_attempts: int = 60

    def __post_init__(self) -> None:
        if self.initial_interval_ms < 0 or self.max_interval_ms < self.initial_interval_ms:
            raise ValueError("PollOptions intervals must satisfy 0 <= initial <= max.")
        if self.growth_factor < 1.0:
            raise ValueError("PollOptions.growth_factor must be >= 1.0.")
        if self.max_attempts < 1:
            raise ValueError("PollOptions.max_attempts must be >= 1.")


# Progress above this value on an in_progress poll lengthens the interval.
GROWTH_PROGRESS_THRESHOLD = 50


@dataclass(frozen=True, slots=True)
class PollSchedule:
    """Resumable poll-loop state: polls consumed, current interval, next deadline."""

    attempt: int
    interval_ms: float
    next_deadline: float

    @classmethod
    def start(cls, options: PollOptions, *, now: float) -> PollSchedule:
        return cls(attempt=0, interval_ms=options.initial_interval_ms, next_deadline=now)

    def advance(
        self,
        options: PollOptions,
        snapshot: JobSnapshot | None,
        *,
        now: float,
    ) -> PollSchedule:
        """Consume one attempt and schedule the next poll.

        ``snapshot`` is None when the poll failed after its immediate retries.
        """

        interval = self.interval_ms
        if (
            snapshot is not None
            and snapshot.status == JobStatus.IN_PROGRESS
            and snapshot.progress > GROWTH_PROGRESS_THRESHOLD
        ):
            interval = min(interval * options.growth_factor, options.max_interval_ms)
        return PollSchedule(
            attempt=self.attempt + 1,
            interval_ms=interval,
            next_deadline=now + interval / 1000.0,
        )

    def exhausted(self, options: PollOptions) -> bool:
        return self.attempt >= options.max_attempts


@dataclass(frozen=True, slots=True)
class JobRun:
    """Outcome of ``submit_and_run``: final snapshot plus degrade warnings."""

    job: Job
    snapshot: JobSnapshot
    simulated: bool = False
    warnings: tuple[str, ...] = ()


def _invalid_payload(detail: str) -> RequestRejected:
    return RequestRejected(
        f"Unexpected job service response: {detail}.",
        failure_class=FailureClass.INVALID_RESPONSE,
        reason_code="invalid_response",
    )
