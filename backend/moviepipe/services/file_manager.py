"""
File management service for moviepipe.

Handles per-job filesystem artifacts with path traversal protection.
Creates per-job directories with subdirectories for frames, clips, and output.
"""
import logging
import shutil
from pathlib import Path
from typing import Optional, Union

from moviepipe.config import settings

logger = logging.getLogger(__name__)


class FileManager:
    """
    Manage filesystem artifacts for movie jobs.

    Creates structured directories:
    - {base_dir}/{job_id}/frames/ - Seed and extracted reference frames
    - {base_dir}/{job_id}/clips/ - Downloaded scene clips
    - {base_dir}/{job_id}/output/ - Final assembled movie

    Implements path traversal protection to prevent directory escape attacks.
    """

    SUBDIRS = ("frames", "clips", "output")

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        if base_dir is None:
            base_dir = settings.storage.tmp_dir

        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def get_job_dir(self, job_id: str) -> Path:
        """
        Get or create the job directory with its subdirectories.

        Raises:
            ValueError: If job_id resolves outside base_dir
        """
        job_dir = (self.base_dir / str(job_id)).resolve()

        if not job_dir.is_relative_to(self.base_dir) or job_dir == self.base_dir:
            raise ValueError("Invalid job path")

        job_dir.mkdir(exist_ok=True)
        for sub in self.SUBDIRS:
            (job_dir / sub).mkdir(exist_ok=True)

        return job_dir

    def frame_path(self, job_id: str, name: str) -> Path:
        return self.get_job_dir(job_id) / "frames" / Path(name).name

    def save_clip(self, job_id: str, scene_idx: int, data: bytes) -> Path:
        """Save the downloaded clip for a scene as clips/scene_{idx}.mp4."""
        filepath = self.get_job_dir(job_id) / "clips" / f"scene_{scene_idx}.mp4"
        filepath.write_bytes(data)
        return filepath

    def get_output_path(self, job_id: str, filename: str = "final.mp4") -> Path:
        return self.get_job_dir(job_id) / "output" / Path(filename).name

    def release(self, job_id: str, keep_output: bool = True) -> None:
        """Delete a job's intermediate files.

        With keep_output the final movie survives; otherwise the whole job
        directory is removed.
        """
        job_dir = (self.base_dir / str(job_id)).resolve()
        if not job_dir.is_relative_to(self.base_dir) or job_dir == self.base_dir:
            raise ValueError("Invalid job path")
        if not job_dir.exists():
            return

        if keep_output:
            for sub in ("frames", "clips"):
                shutil.rmtree(job_dir / sub, ignore_errors=True)
        else:
            shutil.rmtree(job_dir, ignore_errors=True)
        logger.debug(f"Released temp files for job {job_id} (keep_output={keep_output})")
