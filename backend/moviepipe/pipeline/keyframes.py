"""Sequential reference-frame synthesis with frame-to-frame continuity.

This module implements the Frame Synthesizer:
- Build each frame prompt from the scene prompt plus continuity descriptors
- Evolve the previous frame with an image edit when one exists
- Fall back to fresh generation when the edit fails (auth errors excepted)
- Run strictly in ascending scene order; scene i waits for scene i-1
- Hand each finished task to a callback so its video job starts immediately

Usage:
    from moviepipe.pipeline.keyframes import generate_keyframes

    frames = await generate_keyframes(tasks, continuity, image_service,
                                      initial_frame=seed, on_frame_ready=dispatch)
"""

import logging
from typing import Callable, Optional, Sequence

from moviepipe.errors import FrameSynthesisError, is_auth_error
from moviepipe.schemas.storyboard import FrameTask, VisualContinuity
from moviepipe.services.backends import ImageService

logger = logging.getLogger(__name__)


def build_frame_prompt(task: FrameTask, continuity: VisualContinuity, has_previous: bool) -> str:
    """Compose the final image prompt for one scene.

    The transition clause is only added for scenes after the first that
    have a previous frame to evolve from.
    """
    characters = ", ".join(continuity.characters)
    prompt = (
        f"{task.prompt.rstrip('. ')}. "
        f"Style: {continuity.style.value}. Environment: {continuity.environment.value}. "
        f"Characters: [{characters}]. Maintain character consistency throughout. "
        f"Mood: {continuity.mood}. Cinematic lighting, high detail."
    )
    if has_previous and task.scene_index > 0:
        prompt += " Seamless transition from previous scene."
    return prompt


async def synthesize_frame(
    task: FrameTask,
    continuity: VisualContinuity,
    previous_frame: Optional[str],
    image_service: ImageService,
) -> str:
    """Produce the reference frame for one scene.

    Returns:
        Image handle of the new frame.

    Raises:
        FrameSynthesisError: If both the edit and the fresh generation fail,
            or the edit failed on authentication. The original error is
            chained as __cause__.
    """
    prompt = build_frame_prompt(task, continuity, previous_frame is not None)

    if previous_frame is not None:
        try:
            frame = await image_service.edit(prompt, previous_frame, task.aspect_ratio)
            logger.info(f"Scene {task.scene_index}: frame evolved from previous frame")
            return frame
        except Exception as e:
            if is_auth_error(e):
                raise FrameSynthesisError(task.scene_index, f"image edit rejected: {e}") from e
            logger.warning(
                f"Scene {task.scene_index}: image edit failed ({type(e).__name__}: {e}), "
                "generating a fresh frame"
            )

    try:
        frame = await image_service.generate(prompt, task.aspect_ratio)
    except Exception as e:
        raise FrameSynthesisError(task.scene_index, f"image generation failed: {e}") from e
    logger.info(f"Scene {task.scene_index}: fresh frame generated")
    return frame


async def generate_keyframes(
    tasks: Sequence[FrameTask],
    continuity: VisualContinuity,
    image_service: ImageService,
    *,
    initial_frame: Optional[str] = None,
    on_frame_ready: Optional[Callable[[FrameTask], None]] = None,
    on_progress: Optional[Callable[[str], None]] = None,
) -> list[str]:
    """Synthesize every scene's frame in order, chaining continuity.

    Each produced frame, whether edited or freshly generated, becomes the
    previous frame of the next scene.

    Args:
        tasks: FrameTasks sorted by scene_index; enhanced_frame is set in place.
        continuity: Shared style descriptor.
        image_service: Backend used for edits and generation.
        initial_frame: Seed image for the first scene.
        on_frame_ready: Called with each task as soon as its frame exists.
        on_progress: Receives human-readable status lines.

    Returns:
        Frame handles in scene order.
    """
    frames: list[str] = []
    previous = initial_frame
    total = len(tasks)

    for task in sorted(tasks, key=lambda t: t.scene_index):
        if on_progress:
            on_progress(
                f"Scene {task.scene_index + 1}/{total}: creating reference frame "
                f"({continuity.style.value} style)"
            )
        frame = await synthesize_frame(task, continuity, previous, image_service)
        task.enhanced_frame = frame
        frames.append(frame)
        previous = frame
        if on_frame_ready:
            on_frame_ready(task)

    return frames
