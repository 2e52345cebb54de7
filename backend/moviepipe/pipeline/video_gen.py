"""Concurrent video clip generation, one remote job per scene.

This module implements the Video Job Dispatcher and the Parallel Execution
Coordinator:
- dispatch_video_job() starts a job as an asyncio task and returns at once
- Jobs run fully concurrently; a short stagger only spaces out submissions
- await_all() collects results by original scene order and reports progress
- Any failure fails the whole batch; remaining jobs are detached, not
  cancelled, since backends have no cancel primitive

Usage:
    from moviepipe.pipeline.video_gen import dispatch_video_job, await_all

    handles = [dispatch_video_job(task, video_service) for task in tasks]
    urls = await await_all(handles, on_progress=lambda done, total: ...)
"""

import asyncio
import logging
from typing import Callable, Optional, Sequence

from moviepipe.errors import VideoBatchError, VideoJobError
from moviepipe.schemas.storyboard import FrameTask
from moviepipe.services.backends import VideoService

logger = logging.getLogger(__name__)


def _consume_result(task: asyncio.Task) -> None:
    """Retrieve a detached job's outcome so it is never reported as unhandled."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.info(f"Discarded result of detached job {task.get_name()}: {type(exc).__name__}: {exc}")
    else:
        logger.info(f"Discarded result of detached job {task.get_name()}")


def video_prompt(task: FrameTask) -> str:
    """Clip prompt: the scene prompt plus its script action when the prompt omits it."""
    action = (task.action or "").strip().rstrip(". ")
    if not action or action.lower() in task.prompt.lower():
        return task.prompt
    return f"{task.prompt} Action: {action}."


class VideoJobHandle:
    """Pending video job for one scene."""

    def __init__(self, scene_index: int, task: asyncio.Task):
        self.scene_index = scene_index
        self.task = task

    def done(self) -> bool:
        return self.task.done()

    def detach(self) -> None:
        """Let the job run to completion and drop its result."""
        self.task.add_done_callback(_consume_result)

    def __await__(self):
        return self.task.__await__()

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"<VideoJobHandle scene={self.scene_index} {state}>"


def dispatch_video_job(
    task: FrameTask,
    video_service: VideoService,
    stagger_seconds: float = 0.0,
) -> VideoJobHandle:
    """Start the video job for a scene without waiting for it.

    The scene's reference frame (task.enhanced_frame) seeds the clip when
    present; otherwise the job is text-only. The handle is also stored on
    task.video_task.

    Must be called from a running event loop.
    """

    async def _run() -> str:
        if stagger_seconds > 0:
            await asyncio.sleep(stagger_seconds)
        logger.info(f"Scene {task.scene_index}: submitting video job")
        try:
            url = await video_service.generate(
                video_prompt(task),
                task.enhanced_frame,
                aspect_ratio=task.aspect_ratio,
                seed=task.seed,
            )
        except Exception as e:
            raise VideoJobError(task.scene_index, f"video generation failed: {e}") from e
        logger.info(f"Scene {task.scene_index}: video ready")
        return url

    handle = VideoJobHandle(
        task.scene_index,
        asyncio.create_task(_run(), name=f"video-scene-{task.scene_index}"),
    )
    task.video_task = handle
    return handle


async def await_all(
    handles: Sequence[VideoJobHandle],
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> list[str]:
    """Wait for every job and return their URLs in original order.

    Args:
        handles: Job handles in scene order.
        on_progress: Called with (completed, total) after each successful job.

    Returns:
        Video URLs, index-aligned with handles.

    Raises:
        VideoBatchError: On the first failure (lowest scene index if several
            fail together). No partial list is ever returned.
    """
    total = len(handles)
    results: list[Optional[str]] = [None] * total
    pending: dict[asyncio.Task, int] = {h.task: pos for pos, h in enumerate(handles)}
    completed = 0

    try:
        while pending:
            done, _ = await asyncio.wait(set(pending), return_when=asyncio.FIRST_COMPLETED)
            failures: list[tuple[int, BaseException]] = []
            for finished in done:
                pos = pending.pop(finished)
                if finished.cancelled():
                    failures.append((handles[pos].scene_index, asyncio.CancelledError("video job cancelled")))
                    continue
                exc = finished.exception()
                if exc is not None:
                    failures.append((handles[pos].scene_index, exc))
                    continue
                results[pos] = finished.result()
                completed += 1
                if on_progress:
                    on_progress(completed, total)

            if failures:
                scene_index, exc = min(failures, key=lambda f: f[0])
                logger.error(
                    f"Video batch failed at scene {scene_index}; "
                    f"detaching {len(pending)} outstanding job(s)"
                )
                for outstanding in pending:
                    handles[pending[outstanding]].detach()
                pending.clear()
                detail = exc.detail if isinstance(exc, VideoJobError) else f"{type(exc).__name__}: {exc}"
                raise VideoBatchError(scene_index, detail) from exc
    except asyncio.CancelledError:
        for outstanding in pending:
            handles[pending[outstanding]].detach()
        raise

    return [url for url in results if url is not None]
