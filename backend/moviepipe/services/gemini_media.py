"""Gemini-backed image and video services (google-genai SDK).

Images come back inline, so handles returned here are data URLs. Veo clips
are long-running operations polled through poll_job().
"""

import logging
from typing import Optional

import httpx
from google.genai import types
from google.genai.errors import ClientError, ServerError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from moviepipe.config import GoogleConfig, PipelineConfig
from moviepipe.errors import BackendError
from moviepipe.services.backends import ImageService, VideoService
from moviepipe.services.gemini_client import get_gemini_client, resolve_api_key
from moviepipe.services.jobs import JobSnapshot, poll_job
from moviepipe.services.media import load_image_bytes, to_data_url

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error classification helpers
# ---------------------------------------------------------------------------
def _is_retriable(exc: BaseException) -> bool:
    """Return True only for transient errors worth retrying (429, 5xx)."""
    if isinstance(exc, ServerError):
        return True
    if isinstance(exc, ClientError):
        return getattr(exc, "code", 0) == 429
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    return False


_gemini_retry = retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=2, min=4, max=60) + wait_random(0, 3),
    retry=retry_if_exception(_is_retriable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def _first_image(response) -> bytes:
    for part in response.candidates[0].content.parts:
        if part.inline_data:
            return part.inline_data.data
    raise BackendError("No image generated in response")


@_gemini_retry
async def _generate_image(client, model: str, contents: list) -> bytes:
    response = await client.aio.models.generate_content(
        model=model,
        contents=contents,
        config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
    )
    return _first_image(response)


@_gemini_retry
async def _submit_video(client, model: str, prompt: str, image: Optional[types.Image], config):
    return await client.aio.models.generate_videos(
        model=model,
        prompt=prompt,
        image=image,
        config=config,
    )


@_gemini_retry
async def _get_operation(client, operation):
    return await client.aio.operations.get(operation=operation)


class GeminiImageService(ImageService):
    def __init__(self, config: GoogleConfig):
        self.config = config

    async def generate(self, prompt: str, aspect_ratio: str) -> str:
        client = get_gemini_client(self.config.api_key)
        data = await _generate_image(
            client,
            self.config.image_model,
            [f"{prompt}\nAspect ratio: {aspect_ratio}."],
        )
        return to_data_url(data)

    async def edit(self, prompt: str, source_image: str, aspect_ratio: Optional[str] = None) -> str:
        client = get_gemini_client(self.config.api_key)
        source, mime = await load_image_bytes(source_image)
        if aspect_ratio:
            prompt = f"{prompt}\nAspect ratio: {aspect_ratio}."
        data = await _generate_image(
            client,
            self.config.image_edit_model,
            [types.Part.from_bytes(data=source, mime_type=mime), types.Part.from_text(text=prompt)],
        )
        return to_data_url(data)


def _operation_snapshot(operation) -> JobSnapshot:
    """Translate a Veo operation into the shared JobSnapshot shape."""
    if not operation.done:
        return JobSnapshot(status="running")
    if operation.error:
        return JobSnapshot(status="failed", error=str(operation.error))
    response = operation.response
    videos = getattr(response, "generated_videos", None) if response else None
    if not videos:
        filtered = getattr(response, "rai_media_filtered_reasons", None) if response else None
        return JobSnapshot(status="failed", error=f"No video returned ({filtered or 'filtered or empty'})")
    return JobSnapshot(status="completed", result_url=videos[0].video.uri)


class GeminiVideoService(VideoService):
    def __init__(self, config: GoogleConfig, pipeline: PipelineConfig):
        self.config = config
        self.pipeline = pipeline

    async def generate(
        self,
        prompt: str,
        seed_image: Optional[str] = None,
        *,
        aspect_ratio: str = "16:9",
        seed: Optional[int] = None,
    ) -> str:
        client = get_gemini_client(self.config.api_key)
        video_config = types.GenerateVideosConfig(
            aspect_ratio=aspect_ratio,
            number_of_videos=1,
        )
        if seed is not None:
            video_config.seed = seed

        image = None
        if seed_image:
            data, mime = await load_image_bytes(seed_image)
            image = types.Image(image_bytes=data, mime_type=mime)

        operation = await _submit_video(client, self.config.video_model, prompt, image, video_config)
        logger.info(f"Veo operation submitted: {operation.name}")

        async def _fetch() -> JobSnapshot:
            nonlocal operation
            operation = await _get_operation(client, operation)
            return _operation_snapshot(operation)

        return await poll_job(
            _fetch,
            interval=self.pipeline.video_poll_interval,
            max_wait=self.pipeline.video_poll_max,
            label=f"Veo operation {operation.name}",
        )

    async def download(self, url: str) -> bytes:
        headers = {"x-goog-api-key": resolve_api_key(self.config.api_key)}
        try:
            async with httpx.AsyncClient(follow_redirects=True, timeout=120.0) as client:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise BackendError(f"Download of {url} failed: {e}") from e
        return response.content
