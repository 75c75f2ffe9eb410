"""Remote job submission, polling and local simulation."""

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
from agent_taskflow.jobs.poller import TaskPoller
from agent_taskflow.jobs.simulator import SimulatedJobService

__all__ = [
    "HttpJobService",
    "Job",
    "JobRun",
    "JobService",
    "JobSnapshot",
    "JobStatus",
    "PollOptions",
    "PollSchedule",
    "RequiredInput",
    "SimulatedJobService",
    "TaskPoller",
]
