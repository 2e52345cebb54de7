"""CLI commands for moviepipe using Typer and Rich.

Commands:
- generate: Run the full movie pipeline for a prompt
- plan: Preview the scene plan without calling media backends
- image: Generate a single image
- history: List recent generations
- history-clear: Delete all history entries
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from moviepipe import validate_dependencies
from moviepipe.config import settings
from moviepipe.db import HistoryKind, init_database
from moviepipe.errors import MoviePipeError, PipelineFailed
from moviepipe.orchestrator.pipeline import MovieOrchestrator
from moviepipe.orchestrator.state import JobStatus, StepStatus
from moviepipe.pipeline.continuity import extract_continuity
from moviepipe.pipeline.storyboard import plan_scenes
from moviepipe.schemas.progress import ProgressView
from moviepipe.schemas.storyboard import MovieRequest
from moviepipe.services.backends import create_backends
from moviepipe.services.history import HistoryService
from moviepipe.services.media import decode_data_url, ensure_data_url, is_data_url
from moviepipe.services.sanitize import (
    sanitize,
    validate_aspect_ratio,
    validate_scene_count,
    validate_text_input,
)

app = typer.Typer(name="moviepipe", help="Multi-agent movie generation pipeline")
console = Console()

_STATUS_STYLE = {
    StepStatus.PENDING: ("dim", "•"),
    StepStatus.IN_PROGRESS: ("yellow", "▶"),
    StepStatus.COMPLETED: ("green", "✓"),
    StepStatus.FAILED: ("red", "✗"),
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose, show_path=False)],
    )


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code=1)


def _check_inputs(prompt: str, scenes: Optional[int], aspect_ratio: Optional[str] = None) -> None:
    errors = validate_text_input(prompt, "prompt", settings.pipeline.max_prompt_length)
    errors += validate_scene_count(scenes, settings.pipeline.min_scenes, settings.pipeline.max_scenes)
    if aspect_ratio is not None:
        errors += validate_aspect_ratio(aspect_ratio)
    if errors:
        _fail("; ".join(errors))


def _render(view: ProgressView) -> Group:
    table = Table(show_header=True, header_style="bold", expand=False)
    table.add_column("", width=2)
    table.add_column("Agent")
    table.add_column("Status")
    for step in view.steps:
        color, mark = _STATUS_STYLE[step.status]
        table.add_row(f"[{color}]{mark}[/{color}]", step.name, f"[{color}]{step.status.value}[/{color}]")

    footer = view.current_task or ""
    if view.num_chunks:
        footer = f"[bold]{view.num_chunks} scenes[/bold]  {footer}"
    return Group(table, footer)


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="Story idea or screenplay-style script"),
    scenes: Optional[int] = typer.Option(None, "--scenes", "-n", help="Scene count (2-10); inferred when omitted"),
    seed_image: Optional[str] = typer.Option(None, "--seed-image", help="Image path or URL that anchors scene 1"),
    seed_video: Optional[Path] = typer.Option(None, "--seed-video", help="Video whose last frame anchors scene 1"),
    aspect_ratio: str = typer.Option(
        settings.pipeline.default_aspect_ratio, "--aspect-ratio", "-a", help="Video aspect ratio"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Copy the final movie here"),
):
    """Generate a movie from a prompt.

    Runs all six agents: orchestration, story planning, scene setup, video
    generation, audio synthesis and post-production.
    """
    try:
        validate_dependencies()
    except RuntimeError as e:
        _fail(str(e))

    _check_inputs(prompt, scenes, aspect_ratio)
    if seed_image and seed_video:
        _fail("Use either --seed-image or --seed-video, not both")

    request = MovieRequest(
        prompt=prompt,
        scene_count=scenes,
        seed_image=seed_image,
        seed_video=seed_video,
        aspect_ratio=aspect_ratio,
    )
    asyncio.run(_generate_async(request, output))


async def _generate_async(request: MovieRequest, output: Optional[Path]):
    if request.seed_image:
        # Local files are only readable from the CLI
        try:
            seed = await ensure_data_url(request.seed_image, allow_local=True)
        except MoviePipeError as e:
            _fail(str(e))
        request = request.model_copy(update={"seed_image": seed})

    await init_database()
    backends = create_backends(settings)
    orchestrator = MovieOrchestrator(
        backends,
        settings,
        history=HistoryService(limit=settings.storage.history_limit),
    )
    view = ProgressView(status=JobStatus.RUNNING)

    try:
        with Live(_render(view), console=console, refresh_per_second=8) as live:
            def on_progress(update):
                view.apply(update)
                live.update(_render(view))

            result = await orchestrator.run(request, on_progress=on_progress)
    except KeyboardInterrupt:
        console.print()
        console.print("[yellow]Generation interrupted.[/yellow]")
        raise typer.Exit(code=130)
    except PipelineFailed as e:
        console.print()
        console.print(f"[red]✗ Pipeline failed:[/red] {e}")
        if e.auth_required:
            console.print(
                "[yellow]Your API key was rejected. Set MOVIEPIPE_KIE__API_KEY or "
                "GEMINI_API_KEY and try again.[/yellow]"
            )
        raise typer.Exit(code=1)
    finally:
        await backends.aclose()

    final_path = result.final_video
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(final_path.read_bytes())
        final_path = output

    voiced = sum(1 for track in result.audio_tracks if track and track.has_voiceover)
    missing = sum(1 for track in result.audio_tracks if track is None)
    console.print(f"[green]✓[/green] Movie complete! ({result.scene_count} scenes, {result.mode.value} mode)")
    console.print(f"[green]Output:[/green] {final_path}")
    if voiced:
        console.print(f"[green]Voiceover:[/green] {voiced} scene(s)")
    if missing:
        console.print(f"[yellow]No audio for {missing} scene(s)[/yellow]")


# ---------------------------------------------------------------------------
# plan
# ---------------------------------------------------------------------------


@app.command()
def plan(
    prompt: str = typer.Argument(..., help="Story idea or screenplay-style script"),
    scenes: Optional[int] = typer.Option(None, "--scenes", "-n", help="Scene count (2-10)"),
):
    """Preview the scene plan and visual continuity for a prompt."""
    _check_inputs(prompt, scenes)
    asyncio.run(_plan_async(prompt, scenes))


async def _plan_async(prompt: str, scenes: Optional[int]):
    backends = create_backends(settings)
    try:
        scene_plan = await plan_scenes(prompt, scenes, backends.planner)
    finally:
        await backends.aclose()
    continuity = extract_continuity(scene_plan.scenes)

    table = Table(title=f"{scene_plan.scene_count} scenes ({scene_plan.mode.value} mode)")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Scene")
    table.add_column("Dialog", style="magenta")
    for i, (scene, dialog) in enumerate(zip(scene_plan.scenes, scene_plan.dialogs), start=1):
        table.add_row(str(i), scene, dialog or "")
    console.print(table)

    console.print(Panel(
        "\n".join([
            f"[bold]Style:[/bold] {continuity.style.value}",
            f"[bold]Environment:[/bold] {continuity.environment.value}",
            f"[bold]Mood:[/bold] {continuity.mood}",
            f"[bold]Characters:[/bold] {', '.join(continuity.characters)}",
        ]),
        title="[bold]Visual Continuity[/bold]",
        border_style="blue",
    ))


# ---------------------------------------------------------------------------
# image
# ---------------------------------------------------------------------------


@app.command()
def image(
    prompt: str = typer.Argument(..., help="Image description"),
    aspect_ratio: str = typer.Option(
        settings.pipeline.default_aspect_ratio, "--aspect-ratio", "-a", help="Image aspect ratio"
    ),
):
    """Generate a single image with the configured image backend."""
    _check_inputs(prompt, None, aspect_ratio)
    asyncio.run(_image_async(prompt, aspect_ratio))


async def _image_async(prompt: str, aspect_ratio: str):
    await init_database()
    backends = create_backends(settings)
    try:
        url = await backends.image.generate(sanitize(prompt), aspect_ratio)
    except MoviePipeError as e:
        _fail(str(e))
    finally:
        await backends.aclose()

    if is_data_url(url):
        # Inline results are written to disk so history keeps a short handle
        data, mime = decode_data_url(url)
        suffix = ".jpg" if mime == "image/jpeg" else ".webp" if mime == "image/webp" else ".png"
        image_dir = settings.storage.tmp_dir / "images"
        image_dir.mkdir(parents=True, exist_ok=True)
        path = image_dir / f"{uuid.uuid4().hex}{suffix}"
        path.write_bytes(data)
        url = str(path)

    if settings.backends.image == "gemini":
        model = settings.google.image_model
    else:
        model = settings.kie.image_model
    await HistoryService(limit=settings.storage.history_limit).add_image(prompt, url, model, aspect_ratio)
    console.print(f"[green]✓[/green] Image ready: {url}")


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


@app.command()
def history(
    kind: Optional[str] = typer.Option(None, "--kind", "-k", help="movie or image"),
):
    """List recent generations, newest first."""
    if kind is not None and kind not in {k.value for k in HistoryKind}:
        _fail(f"Invalid kind: {kind}")
    asyncio.run(_history_async(kind))


async def _history_async(kind: Optional[str]):
    await init_database()
    entries = await HistoryService(limit=settings.storage.history_limit).list_entries(kind)

    if not entries:
        console.print("[yellow]No history yet[/yellow]")
        return

    table = Table(title="History")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Kind")
    table.add_column("Title")
    table.add_column("Scenes", justify="right")
    table.add_column("Created")
    table.add_column("Output", style="green")
    for entry in entries:
        table.add_row(
            str(entry.id),
            entry.kind,
            entry.title,
            str(entry.scene_count) if entry.scene_count else "",
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
            entry.url or "",
        )
    console.print(table)


@app.command(name="history-clear")
def history_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete every history entry."""
    if not yes and not typer.confirm("Delete all history entries?"):
        raise typer.Exit(code=0)
    asyncio.run(_history_clear_async())


async def _history_clear_async():
    await init_database()
    removed = await HistoryService().clear()
    console.print(f"[green]✓[/green] Removed {removed} entries")
