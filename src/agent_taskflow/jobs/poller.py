"""Submit remote jobs and poll them to completion with adaptive backoff."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from agent_taskflow.cancellation import CancellationToken, run_cancellable, sleep_cancellable
from agent_taskflow.config import DispatchSettings, JobSettings
from agent_taskflow.dispatch.retry import RetryPolicy, SleepFn, call_with_retry
from agent_taskflow.errors import (
    Cancelled,
    ConfigurationError,
    PollingExhausted,
    RequestRejected,
    SubmissionError,
    TransientError,
)
from agent_taskflow.jobs.client import HttpJobService, JobService
from agent_taskflow.jobs.models import (
    Job,
    JobRun,
    JobSnapshot,
    JobStatus,
    PollOptions,
    PollSchedule,
    RequiredInput,
)
from agent_taskflow.jobs.simulator import SimulatedJobService

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[JobSnapshot], None]
WarningCallback = Callable[[str], None]


class TaskPoller:
    """Drive jobs on a remote service (or the local simulator) to a terminal state.

    One poller may drive many jobs; each job is polled by at most one poller
    at a time. ``simulate=True`` routes every job through ``simulator`` and
    makes no network calls.
    """

    def __init__(  # noqa: PLR0913
        self,
        service: JobService | None,
        *,
        simulator: SimulatedJobService | None = None,
        simulate: bool = False,
        fallback_to_simulation: bool = False,
        submit_policy: RetryPolicy | None = None,
        poll_retries: int = 2,
        options: PollOptions | None = None,
        on_update: SnapshotCallback | None = None,
        on_warning: WarningCallback | None = None,
        sleep: SleepFn = sleep_cancellable,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if service is None and not simulate:
            raise ConfigurationError(
                "A job service is required unless simulation is enabled.",
                reason_code="job_service_missing",
            )
        if poll_retries < 0:
            raise ValueError("poll_retries must be >= 0.")
        self._service = service
        self._simulator = simulator or SimulatedJobService(clock=clock)
        self._simulate = simulate
        self._fallback_to_simulation = fallback_to_simulation
        self._submit_policy = submit_policy or RetryPolicy()
        self._poll_retries = poll_retries
        self._options = options or PollOptions()
        self._on_update = on_update
        self._on_warning = on_warning
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: JobSettings,
        dispatch: DispatchSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        on_update: SnapshotCallback | None = None,
        on_warning: WarningCallback | None = None,
    ) -> TaskPoller:
        """Build a poller (and its HTTP client unless simulating) from settings."""

        dispatch = dispatch or DispatchSettings()
        service = None
        if not settings.simulate:
            service = HttpJobService(settings, transport=transport)
        return cls(
            service,
            simulator=SimulatedJobService(delays_seconds=settings.simulation_delays_seconds),
            simulate=settings.simulate,
            fallback_to_simulation=settings.fallback_to_simulation,
            submit_policy=RetryPolicy(
                max_attempts=settings.submit_max_attempts,
                base_seconds=dispatch.backoff_base_seconds,
                max_seconds=dispatch.backoff_max_seconds,
            ),
            poll_retries=settings.poll_retries,
            options=PollOptions(
                initial_interval_ms=settings.initial_interval_ms,
                max_interval_ms=settings.max_interval_ms,
                growth_factor=settings.growth_factor,
                max_attempts=settings.max_poll_attempts,
            ),
            on_update=on_update,
            on_warning=on_warning,
        )

    async def aclose(self) -> None:
        if isinstance(self._service, HttpJobService):
            await self._service.aclose()

    async def __aenter__(self) -> TaskPoller:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    async def required_inputs(self) -> list[RequiredInput]:
        """Return the kickoff inputs declared by the active service."""

        return await self._active_service().required_inputs()

    @staticmethod
    def missing_required_inputs(
        required: list[RequiredInput],
        inputs: Mapping[str, Any],
    ) -> list[str]:
        """Return names of required inputs that are absent or blank."""

        missing: list[str] = []
        for item in required:
            if not item.required:
                continue
            value = inputs.get(item.name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(item.name)
        return missing

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        inputs: Mapping[str, Any],
        cancel: CancellationToken | None = None,
    ) -> Job:
        """Kick off a job; transient kickoff failures are retried with backoff."""

        if self._simulate:
            return await self._submit_simulated(inputs)

        service = self._active_service()

        async def kickoff(_attempt: int) -> str:
            return await run_cancellable(service.kickoff(inputs), cancel)

        try:
            job_id = await call_with_retry(
                kickoff,
                policy=self._submit_policy,
                cancel=cancel,
                sleep=self._sleep,
                label="job kickoff",
            )
        except TransientError as error:
            raise SubmissionError(
                f"Job kickoff failed after {error.attempts} attempt(s): {error}",
                failure_class=error.failure_class,
                reason_code="submission_failed",
                status_code=error.status_code,
            ) from error
        except RequestRejected as error:
            raise SubmissionError(
                f"Job kickoff rejected: {error}",
                failure_class=error.failure_class,
                reason_code="submission_rejected",
                status_code=error.status_code,
            ) from error
        logger.info("Submitted job %s", job_id)
        return Job(job_id=job_id, inputs=dict(inputs))

    async def submit_and_run(
        self,
        inputs: Mapping[str, Any],
        options: PollOptions | None = None,
        cancel: CancellationToken | None = None,
    ) -> JobRun:
        """Submit and poll to completion, degrading to simulation when allowed.

        A ``SubmissionError`` switches to the simulator only when
        ``fallback_to_simulation`` is enabled; the returned ``JobRun`` is then
        flagged ``simulated`` and carries the warning text.
        """

        warnings: list[str] = []
        try:
            job = await self.submit(inputs, cancel)
        except SubmissionError as error:
            if not self._fallback_to_simulation:
                raise
            warning = (
                f"Job service unavailable ({error}); "
                "showing simulated progress instead of real results."
            )
            logger.warning(warning)
            if self._on_warning is not None:
                self._on_warning(warning)
            warnings.append(warning)
            job = await self._submit_simulated(inputs)

        snapshot = await self.run(job, options, cancel)
        return JobRun(
            job=job,
            snapshot=snapshot,
            simulated=job.simulated,
            warnings=tuple(warnings),
        )

    async def _submit_simulated(self, inputs: Mapping[str, Any]) -> Job:
        job_id = await self._simulator.kickoff(inputs)
        return Job(job_id=job_id, inputs=dict(inputs), simulated=True)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll(self, job: Job, cancel: CancellationToken | None = None) -> JobSnapshot:
        """Perform one status round trip for ``job``.

        Raises ``JobBusy`` while any other poll or run of the job is active.
        An already-terminal job returns its cached snapshot without any call.
        """

        if job.is_terminal:
            return job.snapshot()
        lease = object()
        job.claim(lease)
        try:
            return await self._poll_once(job, cancel)
        finally:
            job.release(lease)

    async def run(
        self,
        job: Job,
        options: PollOptions | None = None,
        cancel: CancellationToken | None = None,
    ) -> JobSnapshot:
        """Poll ``job`` until it is terminal, exhausted, or cancelled.

        An already-terminal job returns its cached snapshot without any call.
        Cancellation returns a snapshot with status ``cancelled``; the remote
        job itself keeps running.
        """

        if job.is_terminal:
            return job.snapshot()
        options = options or self._options
        lease = object()
        job.claim(lease)
        try:
            return await self._run_schedule(job, options, cancel)
        except Cancelled:
            logger.info("Polling of job %s cancelled", job.job_id)
            return job.snapshot(status=JobStatus.CANCELLED)
        finally:
            job.release(lease)

    async def _run_schedule(
        self,
        job: Job,
        options: PollOptions,
        cancel: CancellationToken | None,
    ) -> JobSnapshot:
        schedule = PollSchedule.start(options, now=self._clock())
        while True:
            delay = schedule.next_deadline - self._clock()
            if delay > 0:
                await self._sleep(delay, cancel)
            elif cancel is not None:
                cancel.raise_if_cancelled()

            snapshot = await self._poll_with_retries(job, cancel)
            if job.is_terminal:
                return job.snapshot()
            schedule = schedule.advance(options, snapshot, now=self._clock())
            logger.debug(
                "Job %s status=%s progress=%d attempt=%d next_interval_ms=%.0f",
                job.job_id,
                job.status.value,
                job.progress,
                schedule.attempt,
                schedule.interval_ms,
            )
            if schedule.exhausted(options):
                raise PollingExhausted(
                    f"Job {job.job_id} did not finish after {schedule.attempt} poll attempt(s).",
                    job_id=job.job_id,
                    attempts=schedule.attempt,
                )

    async def _poll_with_retries(
        self,
        job: Job,
        cancel: CancellationToken | None,
    ) -> JobSnapshot | None:
        """Poll once, retrying transient failures immediately.

        Returns None when every try failed; the caller counts that as one
        consumed attempt.
        """

        tries = 1 + self._poll_retries
        for index in range(1, tries + 1):
            try:
                return await self._poll_once(job, cancel)
            except TransientError as error:
                logger.warning(
                    "Poll of job %s failed (%d/%d): %s",
                    job.job_id,
                    index,
                    tries,
                    error,
                )
        return None

    async def _poll_once(self, job: Job, cancel: CancellationToken | None) -> JobSnapshot:
        service = self._simulator if job.simulated else self._active_service()
        observed = await run_cancellable(service.status(job.job_id), cancel)
        if job.apply(observed):
            snapshot = job.snapshot()
            if self._on_update is not None:
                self._on_update(snapshot)
            return snapshot
        logger.debug(
            "Ignored stale snapshot for job %s: %s (cached %s)",
            job.job_id,
            observed.status.value,
            job.status.value,
        )
        return job.snapshot()

    def _active_service(self) -> JobService:
        if self._simulate:
            return self._simulator
        if self._service is None:
            raise ConfigurationError(
                "A job service is required unless simulation is enabled.",
                reason_code="job_service_missing",
            )
        return self._service
