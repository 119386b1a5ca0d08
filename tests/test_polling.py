from __future__ import annotations

import pytest

from execution.lifecycle import ClientLifecycle
from execution.polling import JobStatus, PollingExecutor, PollState
from utils.exceptions import (
    ClientDestroyedError,
    ExecutionError,
    RequestTimeoutError,
    ServerConnectionError,
)


def _executor(lifecycle, fetch, clock, **kwargs) -> PollingExecutor:
    options = dict(
        poll_interval_s=1.0,
        max_delay_s=10.0,
        max_consecutive_errors=3,
        max_total_errors=10,
        sleep=clock.sleep,
        clock=clock,
    )
    options.update(kwargs)
    return PollingExecutor(lifecycle, fetch, **options)


@pytest.mark.asyncio
async def test_completes_after_pending_polls(clock) -> None:
    statuses = [JobStatus(), JobStatus(status_str="running"), JobStatus(completed=True, outputs={"9": {}})]

    async def _fetch(job_id: str) -> JobStatus:
        assert job_id == "p1"
        return statuses.pop(0)

    executor = _executor(ClientLifecycle(), _fetch, clock)
    outcome = await executor.run("p1", max_wait_s=60)
    assert outcome.state == PollState.COMPLETED
    assert outcome.outputs == {"9": {}}
    assert outcome.polls == 3
    assert clock.sleeps == [1.0, 1.0]


@pytest.mark.asyncio
async def test_three_consecutive_errors_fail_the_job(clock) -> None:
    calls = []

    async def _fetch(job_id: str) -> JobStatus:
        calls.append(job_id)
        raise ServerConnectionError("connection refused")

    outcome = await _executor(ClientLifecycle(), _fetch, clock).run("p1", max_wait_s=60)
    assert outcome.state == PollState.FAILED
    assert isinstance(outcome.error, ExecutionError)
    assert "failed after 3 consecutive errors" in outcome.error.message
    assert "connection refused" in outcome.error.message
    assert len(calls) == 3
    assert clock.sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_healthy_poll_resets_consecutive_errors_but_not_total(clock) -> None:
    # error, error, ok, repeated: never 3 in a row, but 10 in total
    pattern = ["err", "err", "ok"] * 10
    calls = []

    async def _fetch(job_id: str) -> JobStatus:
        step = pattern[len(calls)]
        calls.append(step)
        if step == "err":
            raise ServerConnectionError("flaky")
        return JobStatus()

    outcome = await _executor(ClientLifecycle(), _fetch, clock).run("p1", max_wait_s=10_000)
    assert outcome.state == PollState.FAILED
    assert "failed after 10 total errors (last: flaky)" in outcome.error.message
    assert calls.count("err") == 10
    assert max(clock.sleeps) <= 10.0


@pytest.mark.asyncio
async def test_times_out_when_job_never_completes(clock) -> None:
    async def _fetch(job_id: str) -> JobStatus:
        return JobStatus(status_str="running")

    outcome = await _executor(ClientLifecycle(), _fetch, clock).run("p1", max_wait_s=5)
    assert outcome.state == PollState.TIMED_OUT
    assert isinstance(outcome.error, RequestTimeoutError)
    assert outcome.polls == 5


@pytest.mark.asyncio
async def test_server_side_error_status_fails_with_message(clock) -> None:
    messages = [
        ["execution_start", {"prompt_id": "p1"}],
        ["execution_error", {"node_type": "KSampler", "exception_message": "CUDA out of memory\n"}],
    ]

    async def _fetch(job_id: str) -> JobStatus:
        return JobStatus(status_str="error", messages=messages)

    outcome = await _executor(ClientLifecycle(), _fetch, clock).run("p1", max_wait_s=60)
    assert outcome.state == PollState.FAILED
    assert isinstance(outcome.error, ExecutionError)
    assert "KSampler: CUDA out of memory" in outcome.error.message


@pytest.mark.asyncio
async def test_destroy_mid_poll_ends_with_client_destroyed(clock) -> None:
    lifecycle = ClientLifecycle()
    polls = []

    async def _fetch(job_id: str) -> JobStatus:
        polls.append(job_id)
        if len(polls) == 2:
            lifecycle.destroy()
        return JobStatus()

    async with lifecycle.request():
        outcome = await _executor(lifecycle, _fetch, clock).run("p1", max_wait_s=60)

    assert outcome.state == PollState.FAILED
    assert isinstance(outcome.error, ClientDestroyedError)
    assert len(polls) == 2


@pytest.mark.asyncio
async def test_terminal_state_is_not_reentered(clock) -> None:
    async def _fetch(job_id: str) -> JobStatus:
        return JobStatus(completed=True, outputs={})

    executor = _executor(ClientLifecycle(), _fetch, clock)
    await executor.run("p1", max_wait_s=60)
    with pytest.raises(RuntimeError):
        await executor.run("p1", max_wait_s=60)
