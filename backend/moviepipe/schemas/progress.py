"""Progress updates emitted by the orchestrator.

Each update is a partial patch tagged by ``kind``. Observers merge patches
into a ProgressView; the orchestrator never waits on observers.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from moviepipe.orchestrator.state import JobStatus, PipelineStep


class StepsUpdate(BaseModel):
    kind: Literal["steps"] = "steps"
    steps: List[PipelineStep]


class TaskUpdate(BaseModel):
    """Free-text description of the work currently under way."""

    kind: Literal["task"] = "task"
    current_task: str


class ChunkCountUpdate(BaseModel):
    kind: Literal["chunk_count"] = "chunk_count"
    num_chunks: int


class FinalUrlUpdate(BaseModel):
    kind: Literal["final_url"] = "final_url"
    final_video_url: str


class ErrorUpdate(BaseModel):
    """Terminal failure; auth_required asks the host to re-select credentials."""

    kind: Literal["error"] = "error"
    error: str
    auth_required: bool = False


ProgressUpdate = Annotated[
    Union[StepsUpdate, TaskUpdate, ChunkCountUpdate, FinalUrlUpdate, ErrorUpdate],
    Field(discriminator="kind"),
]

progress_adapter: TypeAdapter = TypeAdapter(ProgressUpdate)


class ProgressView(BaseModel):
    """Merged observer-side view of a job's progress stream."""

    status: JobStatus = JobStatus.IDLE
    steps: List[PipelineStep] = Field(default_factory=list)
    current_task: str = ""
    num_chunks: Optional[int] = None
    final_video_url: Optional[str] = None
    error: Optional[str] = None
    auth_required: bool = False

    def apply(self, update: ProgressUpdate) -> "ProgressView":
        """Merge one update into this view in place and return it."""
        if isinstance(update, StepsUpdate):
            self.steps = [step.model_copy() for step in update.steps]
        elif isinstance(update, TaskUpdate):
            self.current_task = update.current_task
        elif isinstance(update, ChunkCountUpdate):
            self.num_chunks = update.num_chunks
        elif isinstance(update, FinalUrlUpdate):
            self.final_video_url = update.final_video_url
            self.status = JobStatus.FINISHED
        elif isinstance(update, ErrorUpdate):
            self.error = update.error
            self.auth_required = update.auth_required
            self.status = JobStatus.ERROR
        return self
