"""Tests for the remote job state machine and poll loop."""

import pytest

from moviepipe.errors import JobFailedError, JobTimeoutError
from moviepipe.services.jobs import (
    JobSnapshot,
    JobState,
    advance_job_state,
    normalize_status,
    poll_job,
)


def _fetcher(snapshots):
    calls = []

    async def fetch():
        calls.append(1)
        return snapshots[min(len(calls), len(snapshots)) - 1]

    return fetch, calls


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("COMPLETED", JobState.SUCCEEDED),
        ("success", JobState.SUCCEEDED),
        ("processing", JobState.RUNNING),
        ("Generating", JobState.RUNNING),
        ("failed", JobState.FAILED),
        ("cancelled", JobState.FAILED),
        ("queued", JobState.SUBMITTED),
        ("", JobState.SUBMITTED),
        (None, JobState.SUBMITTED),
    ],
)
def test_normalize_status(raw, expected):
    assert normalize_status(raw) == expected


def test_terminal_states_are_absorbing():
    assert advance_job_state(JobState.SUCCEEDED, JobState.FAILED) == JobState.SUCCEEDED
    assert advance_job_state(JobState.FAILED, JobState.RUNNING) == JobState.FAILED
    assert advance_job_state(JobState.TIMED_OUT, JobState.SUCCEEDED) == JobState.TIMED_OUT


def test_backward_observations_are_ignored():
    assert advance_job_state(JobState.RUNNING, JobState.SUBMITTED) == JobState.RUNNING
    assert advance_job_state(JobState.SUBMITTED, JobState.RUNNING) == JobState.RUNNING


@pytest.mark.asyncio
async def test_poll_returns_url_on_success():
    fetch, calls = _fetcher([
        JobSnapshot("queued"),
        JobSnapshot("processing"),
        JobSnapshot("completed", result_url="https://cdn.test/clip.mp4"),
    ])
    url = await poll_job(fetch, interval=0.001, max_wait=1.0, label="video scene 1")
    assert url == "https://cdn.test/clip.mp4"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_poll_raises_on_failure():
    fetch, _ = _fetcher([JobSnapshot("processing"), JobSnapshot("failed", error="content policy")])
    with pytest.raises(JobFailedError, match="content policy"):
        await poll_job(fetch, interval=0.001, max_wait=1.0, label="image edit")


@pytest.mark.asyncio
async def test_success_without_url_is_a_failure():
    fetch, _ = _fetcher([JobSnapshot("success")])
    with pytest.raises(JobFailedError, match="without a result URL"):
        await poll_job(fetch, interval=0.001, max_wait=1.0, label="music task")


@pytest.mark.asyncio
async def test_never_completing_job_times_out():
    fetch, calls = _fetcher([JobSnapshot("processing")])
    with pytest.raises(JobTimeoutError, match="timed out"):
        await poll_job(fetch, interval=0.0625, max_wait=0.25, label="video task slow")
    assert len(calls) == 4
