"""Tests for sequential reference-frame synthesis."""

import pytest

from moviepipe.errors import BackendError, FrameSynthesisError, is_auth_error
from moviepipe.pipeline.keyframes import build_frame_prompt, generate_keyframes, synthesize_frame
from moviepipe.schemas.storyboard import FrameTask, VisualContinuity

from conftest import FakeImageService


def _tasks(n: int) -> list[FrameTask]:
    return [FrameTask(scene_index=i, prompt=f"Scene prompt {i}", seed=100 + i) for i in range(n)]


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------


def test_first_frame_prompt():
    task = FrameTask(scene_index=0, prompt="A cat on a roof.", seed=1)
    prompt = build_frame_prompt(task, VisualContinuity(), has_previous=False)
    assert prompt == (
        "A cat on a roof. Style: realistic. Environment: natural. "
        "Characters: [main character]. Maintain character consistency throughout. "
        "Mood: engaging. Cinematic lighting, high detail."
    )


def test_later_frame_prompt_adds_transition():
    task = FrameTask(scene_index=2, prompt="The cat jumps", seed=1)
    continuity = VisualContinuity(characters=["cat", "dog"])
    prompt = build_frame_prompt(task, continuity, has_previous=True)
    assert "Characters: [cat, dog]." in prompt
    assert prompt.endswith(" Seamless transition from previous scene.")


def test_first_scene_with_seed_image_has_no_transition():
    task = FrameTask(scene_index=0, prompt="Opening", seed=1)
    prompt = build_frame_prompt(task, VisualContinuity(), has_previous=True)
    assert "Seamless transition" not in prompt


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_frames_are_chained_in_scene_order():
    images = FakeImageService()
    tasks = _tasks(3)
    ready = []

    frames = await generate_keyframes(
        list(reversed(tasks)),
        VisualContinuity(),
        images,
        on_frame_ready=lambda t: ready.append(t.scene_index),
    )

    assert frames == [
        "https://img.test/gen-1.png",
        "https://img.test/edit-2.png",
        "https://img.test/edit-3.png",
    ]
    assert [kind for kind, _ in images.calls] == ["generate", "edit", "edit"]
    assert images.calls[1][1] == "https://img.test/gen-1.png"
    assert images.calls[2][1] == "https://img.test/edit-2.png"
    assert ready == [0, 1, 2]
    assert [t.enhanced_frame for t in tasks] == frames


@pytest.mark.asyncio
async def test_edits_keep_the_job_aspect_ratio():
    images = FakeImageService()
    tasks = [FrameTask(scene_index=i, prompt=f"Vertical shot {i}", seed=i, aspect_ratio="9:16") for i in range(3)]

    await generate_keyframes(tasks, VisualContinuity(), images)

    assert [kind for kind, _ in images.calls] == ["generate", "edit", "edit"]
    assert images.aspect_ratios == ["9:16", "9:16", "9:16"]


@pytest.mark.asyncio
async def test_seed_image_anchors_first_scene():
    images = FakeImageService()
    frames = await generate_keyframes(
        _tasks(2), VisualContinuity(), images, initial_frame="data:image/png;base64,AAAA"
    )
    assert images.calls[0] == ("edit", "data:image/png;base64,AAAA")
    assert frames == ["https://img.test/edit-1.png", "https://img.test/edit-2.png"]


@pytest.mark.asyncio
async def test_edit_failure_falls_back_and_reanchors():
    images = FakeImageService(edit_error=BackendError("edit endpoint down"))
    frames = await generate_keyframes(_tasks(3), VisualContinuity(), images)

    assert frames == [
        "https://img.test/gen-1.png",
        "https://img.test/gen-2.png",
        "https://img.test/gen-3.png",
    ]
    assert [kind for kind, _ in images.calls] == ["generate", "edit", "generate", "edit", "generate"]
    # Scene 3 evolves from the fresh frame of scene 2
    assert images.calls[3] == ("edit", "https://img.test/gen-2.png")


@pytest.mark.asyncio
async def test_auth_error_is_not_masked_by_fallback(auth_error):
    images = FakeImageService(edit_error=auth_error)

    with pytest.raises(FrameSynthesisError) as exc_info:
        await generate_keyframes(_tasks(3), VisualContinuity(), images)

    assert exc_info.value.scene_index == 1
    assert exc_info.value.__cause__ is auth_error
    assert is_auth_error(exc_info.value)
    assert [kind for kind, _ in images.calls] == ["generate", "edit"]


@pytest.mark.asyncio
async def test_generation_failure_raises_with_scene_index():
    error = BackendError("quota exceeded")
    images = FakeImageService(generate_error=error)

    with pytest.raises(FrameSynthesisError) as exc_info:
        await synthesize_frame(_tasks(1)[0], VisualContinuity(), None, images)

    assert exc_info.value.scene_index == 0
    assert exc_info.value.__cause__ is error
    assert str(exc_info.value).startswith("Scene 1:")


@pytest.mark.asyncio
async def test_progress_messages_per_scene():
    messages = []
    await generate_keyframes(_tasks(2), VisualContinuity(), FakeImageService(), on_progress=messages.append)
    assert messages == [
        "Scene 1/2: creating reference frame (realistic style)",
        "Scene 2/2: creating reference frame (realistic style)",
    ]
