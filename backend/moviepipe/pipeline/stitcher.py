"""Clip assembly and frame extraction with ffmpeg.

Concatenates downloaded scene clips into the final movie using:
- concat demuxer with stream copy for hard cuts (crossfade_seconds=0.0)
- a re-encoding concat when stream copy fails on mismatched codecs
- xfade filter for crossfade transitions (crossfade_seconds>0.0)

Also extracts the last frame of a seed video so it can anchor scene 1.

Usage:
    from moviepipe.pipeline.stitcher import FfmpegAssembler

    assembler = FfmpegAssembler()
    await assembler.concatenate([clip1, clip2], Path("tmp/job/output/final.mp4"))
"""

import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from moviepipe.errors import AssemblyError

logger = logging.getLogger(__name__)


class Assembler(ABC):
    """Turns local clip files into one movie file."""

    @abstractmethod
    async def concatenate(self, clip_paths: Sequence[Path], output_path: Path) -> Path:
        ...

    @abstractmethod
    async def extract_last_frame(self, video_path: Path, output_path: Path) -> Path:
        ...


class FfmpegAssembler(Assembler):
    """Assembler backed by the ffmpeg binary, run off the event loop."""

    def __init__(self, crossfade_seconds: float = 0.0, clip_duration: float = 8.0):
        self.crossfade_seconds = crossfade_seconds
        self.clip_duration = clip_duration

    async def concatenate(self, clip_paths: Sequence[Path], output_path: Path) -> Path:
        """Concatenate clips in the given order.

        Raises:
            AssemblyError: On an empty clip list, missing files, or an ffmpeg failure.
        """
        clip_paths = [Path(p) for p in clip_paths]
        if not clip_paths:
            raise AssemblyError("No clips to assemble")
        missing = [p for p in clip_paths if not p.exists()]
        if missing:
            raise AssemblyError(f"Missing clip files: {[str(p) for p in missing]}")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Assembling {len(clip_paths)} clips -> {output_path}")

        try:
            if self.crossfade_seconds > 0.0 and len(clip_paths) > 1:
                await asyncio.to_thread(
                    _stitch_with_crossfade,
                    clip_paths,
                    output_path,
                    self.crossfade_seconds,
                    self.clip_duration,
                )
            else:
                await asyncio.to_thread(_stitch_concat_demuxer, clip_paths, output_path)
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace") if e.stderr else "No error output"
            logger.error(f"ffmpeg error: {stderr}")
            raise AssemblyError(f"Video assembly failed: {stderr[:500]}") from e
        except FileNotFoundError as e:
            raise AssemblyError("ffmpeg not found on PATH") from e

        logger.info(f"Assembly complete -> {output_path}")
        return output_path

    async def extract_last_frame(self, video_path: Path, output_path: Path) -> Path:
        """Write the final frame of video_path as an image.

        Raises:
            AssemblyError: If the video is missing or ffmpeg produced nothing.
        """
        if not video_path.exists():
            raise AssemblyError(f"Seed video not found: {video_path}")
        output_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            await asyncio.to_thread(_extract_last_frame, video_path, output_path)
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace") if e.stderr else "No error output"
            raise AssemblyError(f"Frame extraction failed: {stderr[:500]}") from e
        except FileNotFoundError as e:
            raise AssemblyError("ffmpeg not found on PATH") from e

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise AssemblyError(f"No frame extracted from {video_path}")
        return output_path


def _run_ffmpeg(args: list[str]) -> None:
    subprocess.run(["ffmpeg", "-y", *args], check=True, capture_output=True)


def _stitch_concat_demuxer(clip_paths: list[Path], output_path: Path) -> None:
    """Hard-cut concatenation via the concat demuxer.

    Stream copy is tried first. Clips from different backends may not share
    codec parameters, so a failed copy is retried with a re-encode.
    """
    list_file = output_path.parent / "concat_list.txt"

    try:
        with open(list_file, "w") as f:
            for clip_path in clip_paths:
                # -safe 0 below allows these absolute paths
                f.write(f"file '{clip_path.resolve()}'\n")

        base = ["-f", "concat", "-safe", "0", "-i", str(list_file)]
        try:
            _run_ffmpeg([*base, "-c", "copy", str(output_path)])
        except subprocess.CalledProcessError:
            logger.warning("Stream copy concat failed, re-encoding")
            _run_ffmpeg([
                *base,
                "-c:v", "libx264",
                "-preset", "fast",
                "-c:a", "aac",
                str(output_path),
            ])

        logger.info(f"Concat demuxer stitching complete: {output_path}")

    finally:
        if list_file.exists():
            list_file.unlink()


def _stitch_with_crossfade(
    clip_paths: list[Path],
    output_path: Path,
    crossfade_duration: float,
    clip_duration: float,
) -> None:
    """Crossfade between clips with the xfade filter (requires re-encoding)."""
    inputs = []
    for clip_path in clip_paths:
        inputs.extend(["-i", str(clip_path)])

    # Chain: [0:v][1:v]xfade[v01] ; [v01][2:v]xfade[v02] ; ...
    filter_parts = []
    prev_label = "0:v"
    for i in range(1, len(clip_paths)):
        out_label = f"v{i:02d}"
        offset = (clip_duration - crossfade_duration) * i
        filter_parts.append(
            f"[{prev_label}][{i}:v]xfade=transition=fade:"
            f"duration={crossfade_duration}:offset={offset}[{out_label}]"
        )
        prev_label = out_label

    _run_ffmpeg([
        *inputs,
        "-filter_complex", ";".join(filter_parts),
        "-map", f"[{prev_label}]",
        "-vsync", "vfr",
        str(output_path),
    ])

    logger.info(f"Crossfade stitching complete: {output_path}")


def _extract_last_frame(video_path: Path, output_path: Path) -> None:
    # Seek to 0.1s before the end and keep overwriting until the last frame
    _run_ffmpeg([
        "-sseof", "-0.1",
        "-i", str(video_path),
        "-update", "1",
        "-q:v", "2",
        str(output_path),
    ])
