"""Pydantic schemas for scene plans, continuity and per-scene work items.

ScenePlan and VisualContinuity are frozen once built. FrameTask is the one
mutable record: the frame synthesizer fills ``enhanced_frame`` and the video
dispatcher attaches ``video_task``.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

MIN_SCENES = 2
MAX_SCENES = 10


class PlanMode(str, Enum):
    """How the scene list was derived from the prompt."""

    IDEA = "idea"
    SCRIPT = "script"


class VisualStyle(str, Enum):
    REALISTIC = "realistic"
    ANIME = "anime"
    ARTISTIC = "artistic"
    CYBERPUNK = "cyberpunk"


class Environment(str, Enum):
    URBAN = "urban"
    SPACE = "space"
    NATURAL = "natural"


class ScenePlan(BaseModel):
    """Ordered scene descriptions for one movie.

    Invariant: ``len(scenes) == scene_count == len(dialogs) == len(actions)``
    and the count lies within [2, 10]. Dialog and action slots are only
    filled for scripts.
    """

    model_config = ConfigDict(frozen=True)

    scenes: list[str]
    scene_count: int = Field(ge=MIN_SCENES, le=MAX_SCENES)
    mode: PlanMode = PlanMode.IDEA
    dialogs: list[Optional[str]] = Field(default_factory=list)
    actions: list[Optional[str]] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _fill_slots(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key in ("dialogs", "actions"):
                if not data.get(key):
                    data[key] = [None] * len(data.get("scenes") or [])
        return data

    @model_validator(mode="after")
    def _check_lengths(self) -> "ScenePlan":
        if len(self.scenes) != self.scene_count:
            raise ValueError(
                f"scene_count={self.scene_count} but {len(self.scenes)} scenes given"
            )
        if len(self.dialogs) != self.scene_count:
            raise ValueError(
                f"scene_count={self.scene_count} but {len(self.dialogs)} dialog slots given"
            )
        if len(self.actions) != self.scene_count:
            raise ValueError(
                f"scene_count={self.scene_count} but {len(self.actions)} action slots given"
            )
        return self


def _sentence(text: str) -> str:
    text = text.strip()
    return text if text[-1:] in ".!?" else f"{text}."


class ScriptScene(BaseModel):
    """One scene recovered from a literal screenplay-style script."""

    number: int
    location: str = ""
    time_of_day: str = ""
    action: str = ""
    dialog: list[str] = Field(default_factory=list)
    camera: str = ""
    visual: str = ""

    def to_prompt(self) -> str:
        """Render the scene as a single cinematic description."""
        prompt = (self.visual or self.action or f"Scene {self.number}").rstrip(". ")
        if self.location:
            prompt += f" in {self.location}"
        if self.time_of_day:
            prompt += f", {self.time_of_day.lower()}"
        prompt += "."
        if self.dialog:
            prompt += f" Characters speaking: {' '.join(_sentence(line) for line in self.dialog)}"
        if self.camera:
            prompt += f" Camera: {_sentence(self.camera)}"
        return prompt

    def dialog_text(self) -> Optional[str]:
        return " ".join(self.dialog) if self.dialog else None


class VisualContinuity(BaseModel):
    """Cross-scene style descriptor applied to every frame prompt."""

    model_config = ConfigDict(frozen=True)

    characters: list[str] = Field(default_factory=lambda: ["main character"])
    style: VisualStyle = VisualStyle.REALISTIC
    environment: Environment = Environment.NATURAL
    mood: str = "engaging"


class FrameTask(BaseModel):
    """Per-scene work item carried from planning through video dispatch."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    scene_index: int = Field(ge=0)
    prompt: str
    seed: int
    aspect_ratio: str = "16:9"
    dialog: Optional[str] = None
    action: Optional[str] = None
    enhanced_frame: Optional[str] = None
    video_task: Optional[Any] = Field(default=None, exclude=True)


class ArtifactKind(str, Enum):
    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"


class GeneratedArtifact(BaseModel):
    """Handle to a remote or local generated asset."""

    kind: ArtifactKind
    url: str
    scene_index: Optional[int] = None


class SceneAudio(BaseModel):
    """Audio track packaged for a single scene."""

    scene_index: int
    url: str
    music_style: str
    has_voiceover: bool = False


class MovieRequest(BaseModel):
    """User request accepted by the orchestrator."""

    prompt: str
    scene_count: Optional[int] = None
    seed_image: Optional[str] = None
    seed_video: Optional[Path] = None
    aspect_ratio: Optional[str] = None


class MovieResult(BaseModel):
    """Outcome of a successful movie job."""

    job_id: str
    final_video: Path
    scene_count: int
    mode: PlanMode
    clip_urls: list[str]
    audio_tracks: list[Optional[SceneAudio]]
    artifacts: list[GeneratedArtifact] = Field(default_factory=list)
    step_durations: dict[str, float] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Structured LLM output
# ---------------------------------------------------------------------------


class SceneCountDecision(BaseModel):
    """Planner LLM answer for how many scenes a prompt needs."""

    scene_count: int = Field(
        description="Number of distinct visual scenes needed to tell the story (2-8)"
    )


class ScenePromptList(BaseModel):
    """Planner LLM answer with one visual description per scene."""

    scenes: list[str] = Field(
        description="Ordered, self-contained visual descriptions, one per scene"
    )
