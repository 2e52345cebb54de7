"""Capability interfaces for the remote generation backends.

The orchestrator only talks to these four interfaces. Concrete vendors live
in kie_adapter.py and gemini_media.py; create_backends() wires them from
settings.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx

from moviepipe.config import Settings

logger = logging.getLogger(__name__)


class StoryPlanner(ABC):
    """Text/planning capability."""

    @abstractmethod
    async def decide_scene_count(self, prompt: str) -> int:
        """Return a scene count in [2, 8] for an idea prompt."""
        ...

    @abstractmethod
    async def plan_scenes(self, prompt: str, count: int) -> list[str]:
        """Return exactly ``count`` scene descriptions."""
        ...


class ImageService(ABC):
    @abstractmethod
    async def generate(self, prompt: str, aspect_ratio: str) -> str:
        """Generate a fresh image and return its handle."""
        ...

    @abstractmethod
    async def edit(self, prompt: str, source_image: str, aspect_ratio: Optional[str] = None) -> str:
        """Evolve source_image according to prompt and return the new handle.

        The result keeps aspect_ratio when given, else the backend default.
        """
        ...


class VideoService(ABC):
    @abstractmethod
    async def generate(
        self,
        prompt: str,
        seed_image: Optional[str] = None,
        *,
        aspect_ratio: str = "16:9",
        seed: Optional[int] = None,
    ) -> str:
        """Generate a clip, image-seeded when seed_image is given, and return its URL."""
        ...

    @abstractmethod
    async def download(self, url: str) -> bytes:
        """Fetch a finished clip's bytes."""
        ...


class AudioService(ABC):
    @abstractmethod
    async def generate_music(
        self,
        prompt: str,
        duration_seconds: int,
        tags: Sequence[str] = (),
        title: Optional[str] = None,
    ) -> str:
        ...

    @abstractmethod
    async def generate_voice(self, text: str, voice_profile: str) -> str:
        ...

    @abstractmethod
    async def mix(
        self,
        music_url: str,
        voice_url: str,
        *,
        music_volume: float,
        voice_volume: float,
        fade_seconds: float,
    ) -> str:
        ...


@dataclass
class Backends:
    """The four capability groups used by one orchestrator.

    ``resources`` holds objects with an async close() that the bundle owns,
    such as a KieClient with its connection pool.
    """

    planner: StoryPlanner
    image: ImageService
    video: VideoService
    audio: AudioService
    resources: list[Any] = field(default_factory=list)

    async def aclose(self) -> None:
        """Close every owned resource; safe to call more than once."""
        for resource in self.resources:
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Closing {type(resource).__name__} failed: {e}")
        self.resources.clear()


def create_backends(settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> Backends:
    """Build backend implementations selected in ``settings.backends``.

    Args:
        settings: Application settings.
        http_client: Shared httpx client for HTTP-based vendors. A new one is
            created by KieClient when omitted.

    Returns:
        Backends bundle.
    """
    from moviepipe.services.kie_client import KieClient
    from moviepipe.services.planning import LLMStoryPlanner, TemplateStoryPlanner

    choice = settings.backends
    kie: Optional[KieClient] = None

    def _kie() -> KieClient:
        nonlocal kie
        if kie is None:
            kie = KieClient(settings.kie, settings.pipeline, http_client=http_client)
        return kie

    if choice.planner == "gemini":
        from moviepipe.services.llm import get_adapter

        planner: StoryPlanner = LLMStoryPlanner(get_adapter(settings.google.planner_model, settings.google.api_key))
    else:
        planner = TemplateStoryPlanner()

    if choice.image == "gemini":
        from moviepipe.services.gemini_media import GeminiImageService

        image: ImageService = GeminiImageService(settings.google)
    else:
        from moviepipe.services.kie_adapter import KieImageService

        image = KieImageService(_kie(), settings.kie, settings.pipeline)

    if choice.video == "gemini":
        from moviepipe.services.gemini_media import GeminiVideoService

        video: VideoService = GeminiVideoService(settings.google, settings.pipeline)
    else:
        from moviepipe.services.kie_adapter import KieVideoService

        video = KieVideoService(_kie(), settings.kie, settings.pipeline)

    from moviepipe.services.kie_adapter import KieAudioService

    audio: AudioService = KieAudioService(_kie(), settings.kie, settings.pipeline)

    logger.info(
        "Backends: planner=%s image=%s video=%s audio=%s",
        choice.planner, choice.image, choice.video, choice.audio,
    )
    resources = [kie] if kie is not None else []
    return Backends(planner=planner, image=image, video=video, audio=audio, resources=resources)
