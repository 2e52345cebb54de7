"""State machine constants and transition logic for the movie orchestrator.

Defines the six ordered pipeline stages, the monotonic per-step status
machine, and the job-level status reported to observers.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from moviepipe.errors import InvalidStepTransition


class Stage(str, Enum):
    """Pipeline stages in execution order."""

    INIT = "init"
    SCENE_ANALYSIS = "scene_analysis"
    ASSET_PREP = "asset_prep"
    FRAME_AND_VIDEO = "frame_and_video_generation"
    AUDIO = "audio_synthesis"
    POST_PRODUCTION = "post_production"


class StepStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobStatus(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"


# Agent name, description and icon reference for each stage
PIPELINE_AGENTS: Dict[Stage, Dict[str, str]] = {
    Stage.INIT: {
        "name": "Orchestrator Agent",
        "description": "Initializing multi-agent system and validating inputs.",
        "icon": "cpu",
    },
    Stage.SCENE_ANALYSIS: {
        "name": "Story Planning Agent",
        "description": "Breaking down the narrative into sequential scenes.",
        "icon": "book-open",
    },
    Stage.ASSET_PREP: {
        "name": "Scene Setup Agent",
        "description": "Preparing character models and visual continuity keyframes.",
        "icon": "image",
    },
    Stage.FRAME_AND_VIDEO: {
        "name": "VEO Generation Agent",
        "description": "Generating video chunks with frame-to-frame continuity.",
        "icon": "film",
    },
    Stage.AUDIO: {
        "name": "Audio Synthesis Agent",
        "description": "Composing musical score and generating character voiceovers.",
        "icon": "music",
    },
    Stage.POST_PRODUCTION: {
        "name": "Post-Production Agent",
        "description": "Assembling scenes and audio into the final cinematic movie.",
        "icon": "scissors",
    },
}

STAGE_ORDER: List[Stage] = list(PIPELINE_AGENTS)

# Allowed step status transitions
STEP_TRANSITIONS: Dict[StepStatus, set] = {
    StepStatus.PENDING: {StepStatus.IN_PROGRESS},
    StepStatus.IN_PROGRESS: {StepStatus.COMPLETED, StepStatus.FAILED},
    StepStatus.COMPLETED: set(),
    StepStatus.FAILED: set(),
}

JOB_TRANSITIONS: Dict[JobStatus, set] = {
    JobStatus.IDLE: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.FINISHED, JobStatus.ERROR},
    JobStatus.FINISHED: {JobStatus.IDLE},
    JobStatus.ERROR: {JobStatus.IDLE},
}


class PipelineStep(BaseModel):
    """One named agent step shown to observers."""

    stage: Stage
    name: str
    description: str
    icon: str
    status: StepStatus = StepStatus.PENDING

    def advance(self, new_status: StepStatus) -> None:
        """Move to new_status.

        Raises:
            InvalidStepTransition: If the move is not PENDING -> IN_PROGRESS
                or IN_PROGRESS -> COMPLETED/FAILED.
        """
        if new_status not in STEP_TRANSITIONS[self.status]:
            raise InvalidStepTransition(
                f"{self.name}: cannot move from {self.status.value} to {new_status.value}"
            )
        self.status = new_status


def initial_steps() -> List[PipelineStep]:
    """Return the six pipeline steps, all PENDING."""
    return [
        PipelineStep(stage=stage, **PIPELINE_AGENTS[stage])
        for stage in STAGE_ORDER
    ]


def can_transition_job(current: JobStatus, new: JobStatus) -> bool:
    """Check if the job status may move from current to new.

    Args:
        current: Current job status
        new: Requested job status

    Returns:
        True if the transition is allowed, False otherwise
    """
    return new in JOB_TRANSITIONS[current]


class StepTracker:
    """Ordered view over the six steps of a single job."""

    def __init__(self) -> None:
        self.steps: List[PipelineStep] = initial_steps()

    def get(self, stage: Stage) -> PipelineStep:
        return self.steps[STAGE_ORDER.index(stage)]

    def start(self, stage: Stage) -> PipelineStep:
        step = self.get(stage)
        step.advance(StepStatus.IN_PROGRESS)
        return step

    def complete(self, stage: Stage) -> PipelineStep:
        step = self.get(stage)
        step.advance(StepStatus.COMPLETED)
        return step

    def active(self) -> Optional[PipelineStep]:
        """Return the step currently IN_PROGRESS, if any."""
        for step in self.steps:
            if step.status == StepStatus.IN_PROGRESS:
                return step
        return None

    def fail_active(self) -> Optional[PipelineStep]:
        """Mark the active step FAILED. Earlier steps are left untouched."""
        step = self.active()
        if step is not None:
            step.advance(StepStatus.FAILED)
        return step

    def snapshot(self) -> List[PipelineStep]:
        """Deep copy of the steps, safe to hand to observers."""
        return [step.model_copy() for step in self.steps]
