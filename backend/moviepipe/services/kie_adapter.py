"""Kie-backed implementations of the image, video and audio services.

Each service follows submit -> poll -> result URL. Polling goes through
poll_job() so every job terminates within its configured max wait.

Usage:
    client = KieClient(settings.kie, settings.pipeline)
    video = KieVideoService(client, settings.kie, settings.pipeline)
    url = await video.generate(prompt, seed_image=frame_url)
"""

import logging
from typing import Optional, Sequence

from moviepipe.config import KieConfig, PipelineConfig
from moviepipe.errors import BackendError
from moviepipe.services.backends import AudioService, ImageService, VideoService
from moviepipe.services.jobs import poll_job
from moviepipe.services.kie_client import KieClient
from moviepipe.services.media import ensure_data_url, is_remote

logger = logging.getLogger(__name__)

_IMAGE_RESULT_KEYS = ("imageUrl", "resultUrl")
_VIDEO_RESULT_KEYS = ("videoUrl", "resultUrl")
_AUDIO_RESULT_KEYS = ("audioUrl", "resultUrl")


def _task_id(data: dict, what: str) -> str:
    task_id = data.get("taskId")
    if not task_id:
        raise BackendError(f"Kie {what} submission returned no task id")
    return task_id


class KieImageService(ImageService):
    """Seedream text-to-image and image edit."""

    def __init__(self, client: KieClient, config: KieConfig, pipeline: PipelineConfig):
        self.client = client
        self.config = config
        self.pipeline = pipeline

    async def _await_image(self, task_id: str, label: str) -> str:
        return await poll_job(
            lambda: self.client.task_status("/4o-image/task", task_id, _IMAGE_RESULT_KEYS),
            interval=self.pipeline.image_poll_interval,
            max_wait=self.pipeline.image_poll_max,
            label=label,
        )

    async def generate(self, prompt: str, aspect_ratio: str) -> str:
        data = await self.client.post(
            "/4o-image/generate",
            {"prompt": prompt, "aspectRatio": aspect_ratio, "model": self.config.image_model},
        )
        return await self._await_image(_task_id(data, "image"), "image generation")

    async def edit(self, prompt: str, source_image: str, aspect_ratio: Optional[str] = None) -> str:
        image_b64 = await ensure_data_url(source_image, self.client.client)
        data = await self.client.post(
            "/4o-image/edit",
            {
                "prompt": prompt,
                "imageBase64": image_b64,
                "aspectRatio": aspect_ratio or self.pipeline.default_aspect_ratio,
                "model": self.config.image_edit_model,
            },
        )
        return await self._await_image(_task_id(data, "image edit"), "image edit")


class KieVideoService(VideoService):
    """Veo through Kie: text-to-video or reference-image-to-video."""

    def __init__(self, client: KieClient, config: KieConfig, pipeline: PipelineConfig):
        self.client = client
        self.config = config
        self.pipeline = pipeline

    async def _hosted(self, image: str, seed: Optional[int]) -> str:
        """Kie only accepts hosted reference images; upload anything else."""
        if is_remote(image):
            return image
        data_url = await ensure_data_url(image, self.client.client)
        return await self.client.upload_base64(data_url, f"frame_{seed or 0}.png")

    async def generate(
        self,
        prompt: str,
        seed_image: Optional[str] = None,
        *,
        aspect_ratio: str = "16:9",
        seed: Optional[int] = None,
    ) -> str:
        payload = {
            "prompt": prompt,
            "model": self.config.video_model,
            "aspectRatio": aspect_ratio,
            "generationType": "TEXT_2_VIDEO",
        }
        if seed is not None:
            payload["seeds"] = seed
        if seed_image:
            payload["generationType"] = "REFERENCE_2_VIDEO"
            payload["imageUrls"] = [await self._hosted(seed_image, seed)]

        data = await self.client.post("/veo/generate", payload)
        task_id = _task_id(data, "video")
        logger.info(f"Video task {task_id} submitted ({payload['generationType']})")
        return await poll_job(
            lambda: self.client.task_status("/veo/task", task_id, _VIDEO_RESULT_KEYS),
            interval=self.pipeline.video_poll_interval,
            max_wait=self.pipeline.video_poll_max,
            label=f"video task {task_id}",
        )

    async def download(self, url: str) -> bytes:
        return await self.client.fetch_bytes(url)


class KieAudioService(AudioService):
    """Suno music, text-to-speech and server-side mixing."""

    def __init__(self, client: KieClient, config: KieConfig, pipeline: PipelineConfig):
        self.client = client
        self.config = config
        self.pipeline = pipeline

    async def generate_music(
        self,
        prompt: str,
        duration_seconds: int,
        tags: Sequence[str] = (),
        title: Optional[str] = None,
    ) -> str:
        data = await self.client.post(
            "/suno/generate",
            {
                "prompt": prompt,
                "model": self.config.music_model,
                "duration": duration_seconds,
                "tags": list(tags),
                "title": title or "Scene score",
            },
        )
        task_id = _task_id(data, "music")
        return await poll_job(
            lambda: self.client.task_status("/suno/task", task_id, _AUDIO_RESULT_KEYS),
            interval=self.pipeline.audio_poll_interval,
            max_wait=self.pipeline.audio_poll_max,
            label=f"music task {task_id}",
        )

    async def generate_voice(self, text: str, voice_profile: str) -> str:
        data = await self.client.post(
            "/tts/generate",
            {"text": text, "voice": voice_profile, "speed": 1.0, "pitch": 0, "emotion": "neutral"},
        )
        url = data.get("audioUrl")
        if not url:
            raise BackendError("Voice synthesis returned no audio URL")
        return url

    async def mix(
        self,
        music_url: str,
        voice_url: str,
        *,
        music_volume: float,
        voice_volume: float,
        fade_seconds: float,
    ) -> str:
        data = await self.client.post(
            "/audio/mix",
            {
                "musicUrl": music_url,
                "voiceoverUrl": voice_url,
                "musicVolume": music_volume,
                "voiceVolume": voice_volume,
                "fadeDuration": fade_seconds,
            },
        )
        url = data.get("mixedAudioUrl")
        if not url:
            raise BackendError("Audio mix returned no mixed track URL")
        return url
