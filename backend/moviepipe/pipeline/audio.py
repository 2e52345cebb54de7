"""Per-scene audio packaging: background music plus optional voiceover mix."""

import logging
from typing import Optional

from moviepipe.config import PipelineConfig
from moviepipe.errors import AudioPackagingError, is_auth_error
from moviepipe.schemas.storyboard import SceneAudio
from moviepipe.services.backends import AudioService
from moviepipe.services.heuristics import MUSIC_INSTRUMENTS, MUSIC_STYLE_TABLE, KeywordStrategy

logger = logging.getLogger(__name__)


def infer_music_style(scene_prompt: str, strategy: KeywordStrategy = MUSIC_STYLE_TABLE) -> str:
    return strategy.classify(scene_prompt)


def build_music_prompt(scene_prompt: str, style: str, scene_index: int, total: int, duration: int) -> str:
    instruments = MUSIC_INSTRUMENTS.get(style, MUSIC_INSTRUMENTS["cinematic"])
    return (
        f"{style} background music for scene {scene_index + 1} of {total}: {scene_prompt}. "
        f"{instruments}. {duration} seconds, suitable for cinematic use."
    )


async def package_audio(
    scene_prompt: str,
    dialog: Optional[str],
    scene_index: int,
    total: int,
    audio_service: AudioService,
    config: Optional[PipelineConfig] = None,
) -> SceneAudio:
    """Produce the audio track for one scene.

    Music is always requested. When dialog is present a voiceover is
    synthesized and mixed under the music; if either the voice or the mix
    fails the music-only track is returned instead.

    Raises:
        AudioPackagingError: If the music itself could not be generated.
    """
    config = config or PipelineConfig()
    style = infer_music_style(scene_prompt)

    try:
        music_url = await audio_service.generate_music(
            build_music_prompt(scene_prompt, style, scene_index, total, config.music_duration),
            config.music_duration,
            tags=[style, "cinematic", "background"],
            title=f"Scene {scene_index + 1} - {style}",
        )
    except Exception as e:
        raise AudioPackagingError(scene_index, f"music generation failed: {e}") from e

    if not dialog or not dialog.strip():
        return SceneAudio(scene_index=scene_index, url=music_url, music_style=style)

    try:
        voice_url = await audio_service.generate_voice(dialog.strip(), config.voice_profile)
        mixed_url = await audio_service.mix(
            music_url,
            voice_url,
            music_volume=config.music_volume,
            voice_volume=config.voice_volume,
            fade_seconds=config.fade_seconds,
        )
    except Exception as e:
        if is_auth_error(e):
            raise AudioPackagingError(scene_index, f"voiceover rejected: {e}") from e
        logger.warning(
            f"Scene {scene_index}: voiceover failed ({type(e).__name__}: {e}), using music only"
        )
        return SceneAudio(scene_index=scene_index, url=music_url, music_style=style)

    return SceneAudio(scene_index=scene_index, url=mixed_url, music_style=style, has_voiceover=True)
