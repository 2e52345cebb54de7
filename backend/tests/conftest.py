"""Shared fakes for the moviepipe test suite.

Every fake implements the real backend interface and records its calls, so
tests can drive the orchestrator end to end without network or ffmpeg.
"""

import asyncio
from pathlib import Path
from typing import Optional, Sequence

import pytest

from moviepipe.config import Settings
from moviepipe.errors import AuthenticationError, BackendError
from moviepipe.pipeline.stitcher import Assembler
from moviepipe.pipeline.storyboard import scene_seed
from moviepipe.services.backends import (
    AudioService,
    Backends,
    ImageService,
    StoryPlanner,
    VideoService,
)
from moviepipe.services.file_manager import FileManager


# ---------------------------------------------------------------------------
# Fake backends
# ---------------------------------------------------------------------------


class FakePlanner(StoryPlanner):
    def __init__(self, count: int = 3, scenes: Optional[list[str]] = None):
        self.count = count
        self.scenes = scenes
        self.count_calls: list[str] = []
        self.plan_calls: list[tuple[str, int]] = []

    async def decide_scene_count(self, prompt: str) -> int:
        self.count_calls.append(prompt)
        return self.count

    async def plan_scenes(self, prompt: str, count: int) -> list[str]:
        self.plan_calls.append((prompt, count))
        if self.scenes is not None:
            return list(self.scenes)
        return [f"{prompt} - beat {i + 1}" for i in range(count)]


class FakeImageService(ImageService):
    """Returns numbered image URLs; edit/generate can be made to fail."""

    def __init__(
        self,
        edit_error: Optional[Exception] = None,
        generate_error: Optional[Exception] = None,
    ):
        self.edit_error = edit_error
        self.generate_error = generate_error
        self.calls: list[tuple[str, str]] = []
        self.aspect_ratios: list[Optional[str]] = []
        self._n = 0

    def _next(self, kind: str) -> str:
        self._n += 1
        return f"https://img.test/{kind}-{self._n}.png"

    async def generate(self, prompt: str, aspect_ratio: str) -> str:
        await asyncio.sleep(0)
        self.calls.append(("generate", prompt))
        self.aspect_ratios.append(aspect_ratio)
        if self.generate_error is not None:
            raise self.generate_error
        return self._next("gen")

    async def edit(self, prompt: str, source_image: str, aspect_ratio: Optional[str] = None) -> str:
        await asyncio.sleep(0)
        self.calls.append(("edit", source_image))
        self.aspect_ratios.append(aspect_ratio)
        if self.edit_error is not None:
            raise self.edit_error
        return self._next("edit")


# Fake video jobs identify their scene through the deterministic seed
_SCENE_BY_SEED = {scene_seed(12345, i): i for i in range(10)}


class FakeVideoService(VideoService):
    """Each job succeeds after its delay unless its scene is set to fail."""

    def __init__(
        self,
        delays: Optional[dict[int, float]] = None,
        fail_scenes: Sequence[int] = (),
        error: Optional[Exception] = None,
    ):
        self.delays = delays or {}
        self.fail_scenes = set(fail_scenes)
        self.error = error
        self.submitted: list[int] = []
        self.finished: list[int] = []
        self.seed_images: dict[int, Optional[str]] = {}
        self.prompts: dict[int, str] = {}

    async def generate(
        self,
        prompt: str,
        seed_image: Optional[str] = None,
        *,
        aspect_ratio: str = "16:9",
        seed: Optional[int] = None,
    ) -> str:
        index = _SCENE_BY_SEED[seed]
        self.submitted.append(index)
        self.seed_images[index] = seed_image
        self.prompts[index] = prompt
        await asyncio.sleep(self.delays.get(index, 0.001))
        if index in self.fail_scenes:
            raise self.error or BackendError(f"render farm rejected scene {index}")
        self.finished.append(index)
        return f"https://video.test/scene-{index}.mp4"

    async def download(self, url: str) -> bytes:
        return f"clip:{url}".encode()


class FakeAudioService(AudioService):
    """Music, voice and mix in call order; failures keyed by music call number."""

    def __init__(
        self,
        fail_music_calls: Sequence[int] = (),
        fail_voice_calls: Sequence[int] = (),
        voice_error: Optional[Exception] = None,
    ):
        self.fail_music_calls = set(fail_music_calls)
        self.fail_voice_calls = set(fail_voice_calls)
        self.voice_error = voice_error
        self.music_calls: list[dict] = []
        self.voice_calls: list[tuple[str, str]] = []
        self.mix_calls: list[dict] = []

    async def generate_music(
        self,
        prompt: str,
        duration_seconds: int,
        tags: Sequence[str] = (),
        title: Optional[str] = None,
    ) -> str:
        n = len(self.music_calls)
        self.music_calls.append(
            {"prompt": prompt, "duration": duration_seconds, "tags": list(tags), "title": title}
        )
        if n in self.fail_music_calls:
            raise BackendError("music service unavailable")
        return f"https://audio.test/music-{n}.mp3"

    async def generate_voice(self, text: str, voice_profile: str) -> str:
        n = len(self.voice_calls)
        self.voice_calls.append((text, voice_profile))
        if n in self.fail_voice_calls:
            raise self.voice_error or BackendError("tts failed")
        return f"https://audio.test/voice-{n}.mp3"

    async def mix(
        self,
        music_url: str,
        voice_url: str,
        *,
        music_volume: float,
        voice_volume: float,
        fade_seconds: float,
    ) -> str:
        self.mix_calls.append({
            "music": music_url,
            "voice": voice_url,
            "music_volume": music_volume,
            "voice_volume": voice_volume,
            "fade_seconds": fade_seconds,
        })
        return f"https://audio.test/mix-{len(self.mix_calls) - 1}.mp3"


class FakeAssembler(Assembler):
    """Concatenates clip bytes instead of running ffmpeg."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.concatenated: list[list[Path]] = []

    async def concatenate(self, clip_paths: Sequence[Path], output_path: Path) -> Path:
        self.concatenated.append(list(clip_paths))
        if self.error is not None:
            raise self.error
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"".join(Path(p).read_bytes() for p in clip_paths))
        return output_path

    async def extract_last_frame(self, video_path: Path, output_path: Path) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"\xff\xd8\xff last frame")
        return output_path


class RecordingHistory:
    def __init__(self):
        self.movies: list[dict] = []

    async def add_movie(self, prompt, url, settings=None, details=None, job_id=None, scene_count=None):
        self.movies.append({"prompt": prompt, "url": url, "job_id": job_id, "scene_count": scene_count})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        pipeline={"video_dispatch_stagger": 0.0},
        storage={
            "tmp_dir": str(tmp_path / "jobs"),
            "database_url": "sqlite+aiosqlite:///:memory:",
        },
    )


@pytest.fixture
def file_manager(tmp_path) -> FileManager:
    return FileManager(tmp_path / "jobs")


@pytest.fixture
def fake_backends() -> Backends:
    return Backends(
        planner=FakePlanner(),
        image=FakeImageService(),
        video=FakeVideoService(),
        audio=FakeAudioService(),
    )


@pytest.fixture
def auth_error() -> AuthenticationError:
    return AuthenticationError("API key not valid. Please pass a valid API key.")
