"""Tests for the step/job state machines and progress merging."""

import pytest

from moviepipe.errors import InvalidStepTransition
from moviepipe.orchestrator.state import (
    JobStatus,
    Stage,
    StepStatus,
    StepTracker,
    can_transition_job,
    initial_steps,
)
from moviepipe.schemas.progress import (
    ChunkCountUpdate,
    ErrorUpdate,
    FinalUrlUpdate,
    ProgressView,
    StepsUpdate,
    TaskUpdate,
    progress_adapter,
)


def test_initial_steps_are_the_six_agents_in_order():
    steps = initial_steps()
    assert [s.name for s in steps] == [
        "Orchestrator Agent",
        "Story Planning Agent",
        "Scene Setup Agent",
        "VEO Generation Agent",
        "Audio Synthesis Agent",
        "Post-Production Agent",
    ]
    assert all(s.status == StepStatus.PENDING for s in steps)


def test_step_moves_forward_only():
    tracker = StepTracker()
    tracker.start(Stage.INIT)
    tracker.complete(Stage.INIT)

    with pytest.raises(InvalidStepTransition):
        tracker.start(Stage.INIT)
    with pytest.raises(InvalidStepTransition):
        tracker.complete(Stage.AUDIO)


def test_fail_active_leaves_earlier_steps_completed():
    tracker = StepTracker()
    tracker.start(Stage.INIT)
    tracker.complete(Stage.INIT)
    tracker.start(Stage.SCENE_ANALYSIS)

    failed = tracker.fail_active()

    assert failed.stage == Stage.SCENE_ANALYSIS
    assert [s.status for s in tracker.steps] == [
        StepStatus.COMPLETED,
        StepStatus.FAILED,
        StepStatus.PENDING,
        StepStatus.PENDING,
        StepStatus.PENDING,
        StepStatus.PENDING,
    ]
    assert tracker.active() is None
    assert tracker.fail_active() is None


def test_snapshot_is_independent():
    tracker = StepTracker()
    snapshot = tracker.snapshot()
    tracker.start(Stage.INIT)
    assert snapshot[0].status == StepStatus.PENDING


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        (JobStatus.IDLE, JobStatus.RUNNING, True),
        (JobStatus.RUNNING, JobStatus.FINISHED, True),
        (JobStatus.RUNNING, JobStatus.ERROR, True),
        (JobStatus.ERROR, JobStatus.IDLE, True),
        (JobStatus.IDLE, JobStatus.FINISHED, False),
        (JobStatus.FINISHED, JobStatus.RUNNING, False),
        (JobStatus.RUNNING, JobStatus.IDLE, False),
    ],
)
def test_job_transitions(current, new, allowed):
    assert can_transition_job(current, new) is allowed


# ---------------------------------------------------------------------------
# Progress view
# ---------------------------------------------------------------------------


def test_progress_view_merges_updates():
    view = ProgressView(status=JobStatus.RUNNING)
    steps = initial_steps()

    view.apply(StepsUpdate(steps=steps))
    view.apply(TaskUpdate(current_task="Story Planning Agent: planning"))
    view.apply(ChunkCountUpdate(num_chunks=4))

    assert view.status == JobStatus.RUNNING
    assert len(view.steps) == 6
    assert view.current_task == "Story Planning Agent: planning"
    assert view.num_chunks == 4

    steps[0].status = StepStatus.IN_PROGRESS
    assert view.steps[0].status == StepStatus.PENDING

    view.apply(FinalUrlUpdate(final_video_url="/tmp/final.mp4"))
    assert view.status == JobStatus.FINISHED
    assert view.final_video_url == "/tmp/final.mp4"


def test_error_update_sets_auth_flag():
    view = ProgressView(status=JobStatus.RUNNING)
    view.apply(ErrorUpdate(error="bad key (stage: VEO Generation Agent)", auth_required=True))
    assert view.status == JobStatus.ERROR
    assert view.auth_required is True


def test_updates_parse_by_kind():
    update = progress_adapter.validate_python({"kind": "chunk_count", "num_chunks": 3})
    assert isinstance(update, ChunkCountUpdate)
    assert update.num_chunks == 3
