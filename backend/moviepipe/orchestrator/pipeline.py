"""Movie orchestrator: six agent stages from prompt to assembled movie.

Coordinates the full movie generation pipeline with:
- Monotonic step tracking (PENDING -> IN_PROGRESS -> COMPLETED | FAILED)
- Per-step timing and logging
- Fire-and-forget progress updates for CLI/API observers
- A single terminal error update carrying the failed stage and auth flag
- Per-job context owning temp files and the HTTP client, released on
  success and failure

Usage:
    from moviepipe.orchestrator.pipeline import MovieOrchestrator

    orchestrator = MovieOrchestrator(create_backends(settings), settings)
    result = await orchestrator.run(MovieRequest(prompt="..."), on_progress=print)
"""

import asyncio
import inspect
import logging
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Union

import httpx

from moviepipe.config import Settings, settings as app_settings
from moviepipe.errors import (
    AudioPackagingError,
    InputRejectedError,
    MoviePipeError,
    PipelineFailed,
    is_auth_error,
)
from moviepipe.orchestrator.state import (
    PIPELINE_AGENTS,
    JobStatus,
    PipelineStep,
    Stage,
    StepTracker,
    can_transition_job,
)
from moviepipe.pipeline.audio import package_audio
from moviepipe.pipeline.continuity import extract_continuity
from moviepipe.pipeline.keyframes import generate_keyframes
from moviepipe.pipeline.stitcher import Assembler, FfmpegAssembler
from moviepipe.pipeline.storyboard import (
    build_frame_tasks,
    detect_processing_mode,
    infer_scene_count,
    parse_script,
    plan_scenes,
)
from moviepipe.pipeline.video_gen import VideoJobHandle, await_all, dispatch_video_job
from moviepipe.schemas.progress import (
    ChunkCountUpdate,
    ErrorUpdate,
    FinalUrlUpdate,
    ProgressUpdate,
    StepsUpdate,
    TaskUpdate,
)
from moviepipe.schemas.storyboard import (
    MAX_SCENES,
    MIN_SCENES,
    ArtifactKind,
    FrameTask,
    GeneratedArtifact,
    MovieRequest,
    MovieResult,
    PlanMode,
    SceneAudio,
)
from moviepipe.services.backends import Backends
from moviepipe.services.file_manager import FileManager
from moviepipe.services.media import is_remote, load_image_bytes, to_data_url
from moviepipe.services.sanitize import require_clean_text, require_image_bytes, validate_aspect_ratio

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], Union[None, Awaitable[None]]]


# ---------------------------------------------------------------------------
# Progress delivery
# ---------------------------------------------------------------------------


class ProgressEmitter:
    """Deliver progress updates without ever blocking the pipeline.

    Plain callbacks run inline; a failing callback is logged and ignored.
    Coroutine callbacks are scheduled as tasks and tracked until done.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self._pending: set[asyncio.Task] = set()

    def emit(self, update: ProgressUpdate) -> None:
        if self.callback is None:
            return
        try:
            result = self.callback(update)
        except Exception:
            logger.exception(f"Progress callback failed on {update.kind} update")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Progress callback failed: {task.exception()!r}")

    async def drain(self) -> None:
        """Let already scheduled coroutine callbacks finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# ---------------------------------------------------------------------------
# Per-job context
# ---------------------------------------------------------------------------


class PipelineContext:
    """Resources owned by one movie job.

    Holds the job id, its working directories, the intermediate files
    written along the way, and an HTTP client for fetching seed media.
    stop() releases the intermediates and closes a client it created.
    """

    def __init__(
        self,
        job_id: str,
        files: FileManager,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.job_id = job_id
        self.files = files
        self.http_client = http_client
        self._owns_client = http_client is None
        self.temp_files: List[Path] = []
        self.started = False

    async def start(self) -> "PipelineContext":
        self.files.get_job_dir(self.job_id)
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(timeout=60.0, follow_redirects=True)
        self.started = True
        return self

    def track(self, path: Path) -> Path:
        """Register an intermediate file for release at stop()."""
        self.temp_files.append(path)
        return path

    async def stop(self) -> None:
        for path in self.temp_files:
            path.unlink(missing_ok=True)
        released = len(self.temp_files)
        self.temp_files.clear()
        self.files.release(self.job_id, keep_output=True)
        if self._owns_client and self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None
        self.started = False
        logger.debug(f"Job {self.job_id}: context stopped, released {released} file(s)")

    async def __aenter__(self) -> "PipelineContext":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class MovieOrchestrator:
    """Runs one movie job at a time through the six pipeline stages."""

    def __init__(
        self,
        backends: Backends,
        settings: Optional[Settings] = None,
        *,
        assembler: Optional[Assembler] = None,
        file_manager: Optional[FileManager] = None,
        history: Optional[Any] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.backends = backends
        self.settings = settings or app_settings
        pipeline_cfg = self.settings.pipeline
        self.assembler = assembler or FfmpegAssembler(
            crossfade_seconds=pipeline_cfg.crossfade_seconds,
            clip_duration=pipeline_cfg.clip_duration,
        )
        self.file_manager = file_manager or FileManager(self.settings.storage.tmp_dir)
        self.history = history
        self.http_client = http_client
        self.status = JobStatus.IDLE
        self.tracker = StepTracker()
        self.job_id: Optional[str] = None

    @property
    def steps(self) -> List[PipelineStep]:
        return self.tracker.snapshot()

    def _set_status(self, new: JobStatus) -> None:
        if not can_transition_job(self.status, new):
            raise MoviePipeError(f"Job cannot move from {self.status.value} to {new.value}")
        logger.debug(f"Job status {self.status.value} -> {new.value}")
        self.status = new

    def reset(self) -> None:
        """Return a finished or failed orchestrator to IDLE with fresh steps."""
        if self.status == JobStatus.RUNNING:
            raise MoviePipeError("Cannot reset while a job is running")
        if self.status != JobStatus.IDLE:
            self._set_status(JobStatus.IDLE)
        self.tracker = StepTracker()
        self.job_id = None

    @contextmanager
    def _stage(self, stage: Stage, emitter: ProgressEmitter, step_log: Dict[str, float]) -> Iterator[PipelineStep]:
        step = self.tracker.start(stage)
        emitter.emit(StepsUpdate(steps=self.tracker.snapshot()))
        emitter.emit(TaskUpdate(current_task=f"{step.name}: {step.description}"))
        logger.info(f"Starting {step.name}")
        step_start = time.monotonic()

        yield step

        self.tracker.complete(stage)
        step_log[stage.value] = time.monotonic() - step_start
        logger.info(f"{step.name} completed in {step_log[stage.value]:.2f}s")
        emitter.emit(StepsUpdate(steps=self.tracker.snapshot()))

    async def run(
        self,
        request: MovieRequest,
        on_progress: Optional[ProgressCallback] = None,
        job_id: Optional[str] = None,
    ) -> MovieResult:
        """Execute a full movie job.

        Args:
            request: Prompt plus optional scene count hint, seed media and
                aspect ratio.
            on_progress: Receives every ProgressUpdate. May be a plain
                function or a coroutine function; it is never awaited inline.
            job_id: Identifier for the job and its working directory;
                generated when omitted.

        Returns:
            MovieResult with the local path of the assembled movie.

        Raises:
            PipelineFailed: After the failed step has been marked FAILED and a
                single ErrorUpdate has been emitted.
            MoviePipeError: If the orchestrator is not IDLE.
        """
        if self.status != JobStatus.IDLE:
            raise MoviePipeError(f"Orchestrator is {self.status.value}; call reset() first")

        self.job_id = job_id or uuid.uuid4().hex
        self.tracker = StepTracker()
        emitter = ProgressEmitter(on_progress)
        ctx = PipelineContext(self.job_id, self.file_manager, self.http_client)
        step_log: Dict[str, float] = {}
        pipeline_start = time.monotonic()

        self._set_status(JobStatus.RUNNING)
        emitter.emit(StepsUpdate(steps=self.tracker.snapshot()))
        logger.info(f"Job {self.job_id}: starting movie pipeline")

        try:
            await ctx.start()
            result = await self._execute(request, ctx, emitter, step_log)
            self._set_status(JobStatus.FINISHED)
            logger.info(
                f"Job {self.job_id}: pipeline completed in {time.monotonic() - pipeline_start:.2f}s"
            )
        except asyncio.CancelledError:
            self._fail(emitter, "Job cancelled", auth_required=False)
            raise
        except Exception as e:
            failure = self._fail(emitter, _describe(e), auth_required=is_auth_error(e))
            raise failure from e
        finally:
            if ctx.started:
                await ctx.stop()
            await emitter.drain()

        await self._record_history(request, result)
        return result

    def _fail(self, emitter: ProgressEmitter, message: str, auth_required: bool) -> PipelineFailed:
        failed_step = self.tracker.fail_active()
        step_name = failed_step.name if failed_step else PIPELINE_AGENTS[Stage.INIT]["name"]
        if self.status == JobStatus.RUNNING:
            self._set_status(JobStatus.ERROR)
        failure = PipelineFailed(message, step_name, auth_required=auth_required)
        logger.error(f"Job {self.job_id}: {failure}")
        emitter.emit(StepsUpdate(steps=self.tracker.snapshot()))
        emitter.emit(ErrorUpdate(error=str(failure), auth_required=auth_required))
        return failure

    async def _execute(
        self,
        request: MovieRequest,
        ctx: PipelineContext,
        emitter: ProgressEmitter,
        step_log: Dict[str, float],
    ) -> MovieResult:
        pipeline_cfg = self.settings.pipeline

        # Stage 1: Orchestrator Agent
        with self._stage(Stage.INIT, emitter, step_log):
            prompt = require_clean_text(request.prompt, "prompt", pipeline_cfg.max_prompt_length)
            aspect_ratio = request.aspect_ratio or pipeline_cfg.default_aspect_ratio
            errors = validate_aspect_ratio(aspect_ratio)
            if errors:
                raise InputRejectedError("; ".join(errors))
            scene_count = await self._initial_scene_count(prompt, request.scene_count)
            emitter.emit(ChunkCountUpdate(num_chunks=scene_count))

        # Stage 2: Story Planning Agent
        with self._stage(Stage.SCENE_ANALYSIS, emitter, step_log):
            plan = await plan_scenes(prompt, scene_count, self.backends.planner)
            if plan.scene_count != scene_count:
                emitter.emit(ChunkCountUpdate(num_chunks=plan.scene_count))
            emitter.emit(TaskUpdate(
                current_task=f"Planned {plan.scene_count} scenes ({plan.mode.value} mode)"
            ))

        # Stage 3: Scene Setup Agent
        with self._stage(Stage.ASSET_PREP, emitter, step_log):
            seed_frame = await self._load_seed_frame(request, ctx)
            tasks = build_frame_tasks(plan, aspect_ratio, pipeline_cfg.base_seed)

        # Stage 4: VEO Generation Agent
        with self._stage(Stage.FRAME_AND_VIDEO, emitter, step_log):
            clip_urls = await self._generate_clips(plan.scenes, tasks, seed_frame, emitter)

        # Stage 5: Audio Synthesis Agent
        with self._stage(Stage.AUDIO, emitter, step_log):
            audio_tracks = await self._generate_audio(tasks, emitter)

        # Stage 6: Post-Production Agent
        with self._stage(Stage.POST_PRODUCTION, emitter, step_log):
            final_video = await self._assemble(clip_urls, ctx, emitter)
            emitter.emit(FinalUrlUpdate(final_video_url=str(final_video)))

        return MovieResult(
            job_id=ctx.job_id,
            final_video=final_video,
            scene_count=plan.scene_count,
            mode=plan.mode,
            clip_urls=clip_urls,
            audio_tracks=audio_tracks,
            artifacts=_collect_artifacts(tasks, clip_urls, audio_tracks),
            step_durations=step_log,
        )

    async def _initial_scene_count(self, prompt: str, hint: Optional[int]) -> int:
        mode, _ = detect_processing_mode(prompt)
        if mode == PlanMode.SCRIPT:
            parsed = len(parse_script(prompt))
            if parsed >= MIN_SCENES:
                return min(parsed, MAX_SCENES)
        if hint is not None:
            return max(MIN_SCENES, min(MAX_SCENES, hint))
        return await infer_scene_count(prompt, self.backends.planner)

    async def _load_seed_frame(self, request: MovieRequest, ctx: PipelineContext) -> Optional[str]:
        """Resolve the image that anchors scene 1, if the request has one."""
        if request.seed_video is not None:
            frame_path = ctx.track(ctx.files.frame_path(ctx.job_id, "seed_last_frame.jpg"))
            await self.assembler.extract_last_frame(Path(request.seed_video), frame_path)
            logger.info(f"Job {ctx.job_id}: using last frame of {request.seed_video} as seed")
            return to_data_url(frame_path.read_bytes(), "image/jpeg")
        if request.seed_image:
            # Local paths are resolved by the CLI before the request is built
            data, mime = await load_image_bytes(request.seed_image, ctx.http_client)
            require_image_bytes(data)
            return to_data_url(data, mime)
        return None

    async def _generate_clips(
        self,
        scenes: List[str],
        tasks: List[FrameTask],
        seed_frame: Optional[str],
        emitter: ProgressEmitter,
    ) -> List[str]:
        continuity = extract_continuity(scenes)
        logger.info(
            f"Continuity: style={continuity.style.value} environment={continuity.environment.value} "
            f"mood={continuity.mood} characters={continuity.characters}"
        )
        handles: List[VideoJobHandle] = []
        stagger = self.settings.pipeline.video_dispatch_stagger

        def _dispatch(task: FrameTask) -> None:
            handles.append(dispatch_video_job(task, self.backends.video, stagger_seconds=stagger))
            emitter.emit(TaskUpdate(
                current_task=f"Scene {task.scene_index + 1}/{len(tasks)}: video job submitted"
            ))

        try:
            await generate_keyframes(
                tasks,
                continuity,
                self.backends.image,
                initial_frame=seed_frame,
                on_frame_ready=_dispatch,
                on_progress=lambda message: emitter.emit(TaskUpdate(current_task=message)),
            )
        except BaseException:
            for handle in handles:
                handle.detach()
            raise

        return await await_all(
            handles,
            on_progress=lambda done, total: emitter.emit(
                TaskUpdate(current_task=f"Video clips ready: {done}/{total}")
            ),
        )

    async def _generate_audio(self, tasks: List[FrameTask], emitter: ProgressEmitter) -> List[Optional[SceneAudio]]:
        tracks: List[Optional[SceneAudio]] = []
        total = len(tasks)
        for task in tasks:
            emitter.emit(TaskUpdate(
                current_task=f"Scene {task.scene_index + 1}/{total}: composing music"
                + (" and voiceover" if task.dialog else "")
            ))
            try:
                track = await package_audio(
                    task.prompt,
                    task.dialog,
                    task.scene_index,
                    total,
                    self.backends.audio,
                    self.settings.pipeline,
                )
            except AudioPackagingError as e:
                if is_auth_error(e):
                    raise
                logger.warning(f"Job {self.job_id}: no audio track for scene {task.scene_index}: {e}")
                track = None
            tracks.append(track)
        return tracks

    async def _assemble(self, clip_urls: List[str], ctx: PipelineContext, emitter: ProgressEmitter) -> Path:
        clip_paths: List[Path] = []
        for i, url in enumerate(clip_urls):
            emitter.emit(TaskUpdate(current_task=f"Downloading clip {i + 1}/{len(clip_urls)}"))
            data = await self.backends.video.download(url)
            clip_paths.append(ctx.track(ctx.files.save_clip(ctx.job_id, i, data)))

        emitter.emit(TaskUpdate(current_task=f"Assembling {len(clip_paths)} clips"))
        return await self.assembler.concatenate(clip_paths, ctx.files.get_output_path(ctx.job_id))

    async def _record_history(self, request: MovieRequest, result: MovieResult) -> None:
        if self.history is None:
            return
        try:
            await self.history.add_movie(
                request.prompt,
                str(result.final_video),
                settings={
                    "aspect_ratio": request.aspect_ratio or self.settings.pipeline.default_aspect_ratio,
                    "scenes": result.scene_count,
                    "video_backend": self.settings.backends.video,
                },
                details={
                    "mode": result.mode.value,
                    "step_durations": result.step_durations,
                    # Inline data URLs are too large to keep
                    "artifacts": [
                        a.model_dump(mode="json") for a in result.artifacts if is_remote(a.url)
                    ],
                },
                job_id=result.job_id,
                scene_count=result.scene_count,
            )
        except Exception as e:
            logger.warning(f"Job {result.job_id}: could not record history: {type(e).__name__}: {e}")


def _describe(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__


def _collect_artifacts(
    tasks: List[FrameTask],
    clip_urls: List[str],
    audio_tracks: List[Optional[SceneAudio]],
) -> List[GeneratedArtifact]:
    artifacts = [
        GeneratedArtifact(kind=ArtifactKind.IMAGE, url=task.enhanced_frame, scene_index=task.scene_index)
        for task in tasks
        if task.enhanced_frame
    ]
    artifacts += [
        GeneratedArtifact(kind=ArtifactKind.VIDEO, url=url, scene_index=i) for i, url in enumerate(clip_urls)
    ]
    artifacts += [
        GeneratedArtifact(kind=ArtifactKind.AUDIO, url=track.url, scene_index=track.scene_index)
        for track in audio_tracks
        if track is not None
    ]
    return artifacts
