"""Deterministic local stand-in for the remote job service."""

from __future__ import annotations

import copy
import itertools
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from agent_taskflow.errors import RequestRejected
from agent_taskflow.jobs.models import JobSnapshot, JobStatus, RequiredInput

logger = logging.getLogger(__name__)

SIMULATED_JOB_PREFIX = "sim-task-"

SIMULATED_REQUIRED_INPUTS: tuple[RequiredInput, ...] = (
    RequiredInput(
        name="project_name",
        type="string",
        description="Name of the project you want to create",
        required=True,
    ),
    RequiredInput(
        name="project_description",
        type="textarea",
        description="Detailed description of the project and its requirements",
        required=True,
    ),
    RequiredInput(
        name="technology_stack",
        type="string",
        description="Preferred technologies to use (e.g., React, Node.js, Python)",
        required=False,
    ),
    RequiredInput(
        name="deployment_target",
        type="string",
        description="Where the project will be deployed (e.g., AWS, Vercel, Heroku)",
        required=False,
    ),
)

SIMULATED_RESULT: dict[str, Any] = {
    "project_structure": [
        "src/",
        "src/components/",
        "src/pages/",
        "src/utils/",
        "public/",
        "package.json",
        "README.md",
    ],
    "tasks": [
        {
            "id": "task-1",
            "title": "Setup project repository",
            "status": "completed",
            "assignee": "DevOps Engineer",
        },
        {
            "id": "task-2",
            "title": "Implement authentication",
            "status": "in_progress",
            "assignee": "Backend Developer",
        },
        {
            "id": "task-3",
            "title": "Create UI components",
            "status": "pending",
            "assignee": "Frontend Developer",
        },
    ],
    "recommendations": [
        "Use Next.js for server-side rendering capabilities",
        "Implement CI/CD pipeline with GitHub Actions",
        "Consider using Supabase for authentication and database",
    ],
    "next_steps": (
        "The team should now focus on implementing core features while maintaining "
        "a modular architecture"
    ),
}

SIMULATED_FAILURE = "Unable to complete project planning due to insufficient requirements"


@dataclass(frozen=True, slots=True)
class _SimulatedJob:
    started_at: float
    fail: bool


class SimulatedJobService:
    """Clock-driven job progression with no network calls.

    Status by elapsed time since kickoff, for delays ``(d1, d2, d3)``:
    ``pending`` at 0% before ``d1``, ``in_progress`` at 45% from ``d1`` and at
    75% from ``d2``, ``completed`` at 100% from ``d3``.
    A job is forgotten once its terminal status has been reported.
    """

    def __init__(
        self,
        *,
        delays_seconds: tuple[float, float, float] = (2.0, 8.0, 15.0),
        clock: Callable[[], float] = time.monotonic,
        fail_jobs: bool = False,
    ) -> None:
        first, second, third = delays_seconds
        if not 0 <= first <= second <= third:
            raise ValueError("Simulation delays must be non-decreasing and >= 0.")
        self._delays = delays_seconds
        self._clock = clock
        self._fail_jobs = fail_jobs
        self._ids = itertools.count(1)
        self._jobs: dict[str, _SimulatedJob] = {}

    async def required_inputs(self) -> list[RequiredInput]:
        return list(SIMULATED_REQUIRED_INPUTS)

    async def kickoff(self, inputs: Mapping[str, Any]) -> str:
        job_id = f"{SIMULATED_JOB_PREFIX}{next(self._ids)}"
        self._jobs[job_id] = _SimulatedJob(started_at=self._clock(), fail=self._fail_jobs)
        logger.info("Simulated job %s started with inputs: %s", job_id, sorted(inputs))
        return job_id

    async def status(self, job_id: str) -> JobSnapshot:
        job = self._jobs.get(job_id)
        if job is None:
            raise RequestRejected(
                f"Unknown simulated job: {job_id}",
                reason_code="job_not_found",
                status_code=404,
            )
        snapshot = self.snapshot_at(job_id, self._clock() - job.started_at, fail=job.fail)
        if snapshot.is_terminal:
            del self._jobs[job_id]
        return snapshot

    @property
    def active_job_count(self) -> int:
        return len(self._jobs)

    def snapshot_at(self, job_id: str, elapsed: float, *, fail: bool = False) -> JobSnapshot:
        """Return the deterministic snapshot ``elapsed`` seconds after kickoff."""

        started_at, halfway_at, done_at = self._delays
        if elapsed >= done_at:
            if fail:
                return JobSnapshot(
                    job_id=job_id,
                    status=JobStatus.FAILED,
                    progress=75,
                    error=SIMULATED_FAILURE,
                )
            return JobSnapshot(
                job_id=job_id,
                status=JobStatus.COMPLETED,
                progress=100,
                result=copy.deepcopy(SIMULATED_RESULT),
            )
        if elapsed >= started_at:
            progress = 75 if elapsed >= halfway_at else 45
            return JobSnapshot(job_id=job_id, status=JobStatus.IN_PROGRESS, progress=progress)
        return JobSnapshot(job_id=job_id, status=JobStatus.PENDING, progress=0)
