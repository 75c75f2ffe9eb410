from __future__ import annotations

import allure
import pytest
from conftest import FakeClock

from agent_taskflow.errors import RequestRejected
from agent_taskflow.jobs import JobStatus, SimulatedJobService
from agent_taskflow.jobs.simulator import (
    SIMULATED_FAILURE,
    SIMULATED_REQUIRED_INPUTS,
    SIMULATED_RESULT,
)

pytestmark = [
    allure.epic("Remote Jobs"),
    allure.feature("Simulation"),
]


@pytest.mark.parametrize(
    ("elapsed", "status", "progress"),
    [
        (0.0, JobStatus.PENDING, 0),
        (1.9, JobStatus.PENDING, 0),
        (2.0, JobStatus.IN_PROGRESS, 45),
        (7.9, JobStatus.IN_PROGRESS, 45),
        (8.0, JobStatus.IN_PROGRESS, 75),
        (15.0, JobStatus.COMPLETED, 100),
        (60.0, JobStatus.COMPLETED, 100),
    ],
)
def test_progression_follows_delays(elapsed: float, status: JobStatus, progress: int) -> None:
    snapshot = SimulatedJobService().snapshot_at("sim-task-1", elapsed)

    assert snapshot.status == status
    assert snapshot.progress == progress


def test_completed_result_is_an_independent_copy() -> None:
    service = SimulatedJobService()

    first = service.snapshot_at("sim-task-1", 20.0)
    first.result["tasks"].clear()
    second = service.snapshot_at("sim-task-1", 20.0)

    assert second.result == SIMULATED_RESULT
    assert len(SIMULATED_RESULT["tasks"]) == 3


def test_failing_simulation_reports_error() -> None:
    snapshot = SimulatedJobService().snapshot_at("sim-task-1", 15.0, fail=True)

    assert snapshot.status == JobStatus.FAILED
    assert snapshot.error == SIMULATED_FAILURE
    assert snapshot.result is None


@pytest.mark.asyncio
async def test_status_uses_clock_since_kickoff(clock: FakeClock) -> None:
    service = SimulatedJobService(clock=clock)
    clock.now = 100.0

    first = await service.kickoff({"project_name": "Shop"})
    clock.now = 109.0
    second = await service.kickoff({})
    snapshot_first = await service.status(first)
    snapshot_second = await service.status(second)

    assert (first, second) == ("sim-task-1", "sim-task-2")
    assert (snapshot_first.status, snapshot_first.progress) == (JobStatus.IN_PROGRESS, 75)
    assert (snapshot_second.status, snapshot_second.progress) == (JobStatus.PENDING, 0)


@pytest.mark.asyncio
async def test_unknown_job_is_rejected() -> None:
    with pytest.raises(RequestRejected) as error_info:
        await SimulatedJobService().status("sim-task-42")

    assert error_info.value.status_code == 404
    assert error_info.value.reason_code == "job_not_found"


@pytest.mark.asyncio
async def test_required_inputs_are_static() -> None:
    inputs = await SimulatedJobService().required_inputs()

    assert tuple(inputs) == SIMULATED_REQUIRED_INPUTS
    assert [item.name for item in inputs if item.required] == [
        "project_name",
        "project_description",
    ]


def test_delays_must_be_ordered() -> None:
    with pytest.raises(ValueError, match="non-decreasing"):
        SimulatedJobService(delays_seconds=(5.0, 2.0, 10.0))


@pytest.mark.asyncio
async def test_finished_job_is_forgotten_after_terminal_status(clock: FakeClock) -> None:
    service = SimulatedJobService(clock=clock)
    job_id = await service.kickoff({"project_name": "Shop"})
    clock.now = 5.0
    running = await service.status(job_id)
    assert running.status == JobStatus.IN_PROGRESS
    assert service.active_job_count == 1

    clock.now = 16.0
    finished = await service.status(job_id)

    assert finished.status == JobStatus.COMPLETED
    assert service.active_job_count == 0
    with pytest.raises(RequestRejected) as error_info:
        await service.status(job_id)
    assert error_info.value.reason_code == "job_not_found"
