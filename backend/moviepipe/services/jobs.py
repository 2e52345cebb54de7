"""Submit-then-poll job lifecycle shared by every remote backend.

Backends expose a status fetcher; poll_job() drives it through the JobState
machine on a fixed interval and always terminates, either with a result URL
or by raising JobFailedError / JobTimeoutError.

Usage:
    url = await poll_job(
        lambda: client.get_task_status("/veo/task", task_id),
        interval=10, max_wait=420, label="video scene 2",
    )
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from moviepipe.errors import JobFailedError, JobTimeoutError

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    SUBMITTED = "submitted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT})

# Status normalization sets
_COMPLETED_STATUSES = frozenset({"completed", "success", "succeeded", "done", "finished"})
_FAILED_STATUSES = frozenset({"failed", "error", "cancelled", "canceled", "rejected"})
_RUNNING_STATUSES = frozenset({"running", "processing", "generating", "in_progress"})

_TRANSITIONS: dict[JobState, frozenset] = {
    JobState.SUBMITTED: frozenset({JobState.RUNNING, JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT}),
    JobState.RUNNING: frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT}),
}


@dataclass
class JobSnapshot:
    """One status poll result as reported by a backend."""

    status: str
    result_url: Optional[str] = None
    error: Optional[str] = None


def normalize_status(raw: Optional[str]) -> JobState:
    """Map a vendor status string onto JobState. Unknown values count as SUBMITTED."""
    value = (raw or "").strip().lower()
    if value in _COMPLETED_STATUSES:
        return JobState.SUCCEEDED
    if value in _FAILED_STATUSES:
        return JobState.FAILED
    if value in _RUNNING_STATUSES:
        return JobState.RUNNING
    return JobState.SUBMITTED


def advance_job_state(current: JobState, observed: JobState) -> JobState:
    """Return the next state given an observation.

    Terminal states are absorbing and observations that would move the job
    backwards (e.g. RUNNING -> SUBMITTED) are ignored.
    """
    if current in TERMINAL_STATES:
        return current
    if observed in _TRANSITIONS.get(current, frozenset()):
        return observed
    return current


async def poll_job(
    fetch: Callable[[], Awaitable[JobSnapshot]],
    *,
    interval: float,
    max_wait: float,
    label: str,
) -> str:
    """Poll a submitted job until it reaches a terminal state.

    Args:
        fetch: Coroutine function returning the current JobSnapshot.
        interval: Seconds between polls.
        max_wait: Total seconds before the job is declared timed out.
        label: Human-readable job description for logs and errors.

    Returns:
        The result URL of the succeeded job.

    Raises:
        JobFailedError: The backend reported failure, or success without a result.
        JobTimeoutError: No terminal state within max_wait.
    """
    state = JobState.SUBMITTED
    max_polls = max(1, math.ceil(max_wait / interval)) if interval > 0 else 1

    for attempt in range(max_polls):
        snapshot = await fetch()
        state = advance_job_state(state, normalize_status(snapshot.status))
        logger.debug(f"{label}: poll {attempt + 1}/{max_polls} status={snapshot.status} -> {state.value}")

        if state == JobState.SUCCEEDED:
            if not snapshot.result_url:
                raise JobFailedError(f"{label} finished without a result URL")
            logger.info(f"{label} completed after {attempt + 1} poll(s)")
            return snapshot.result_url
        if state == JobState.FAILED:
            raise JobFailedError(f"{label} failed: {snapshot.error or 'unknown error'}")

        if attempt < max_polls - 1:
            await asyncio.sleep(interval)
    else:
        logger.warning(f"{label} timed out after {max_wait:.0f}s ({max_polls} polls)")
        raise JobTimeoutError(f"{label} timed out after {max_wait:.0f}s")
