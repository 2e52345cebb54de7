"""moviepipe - multi-agent movie generation from a single prompt.

The API and the CLI call validate_dependencies() before accepting work.
"""

import logging
import subprocess

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


def validate_dependencies() -> None:
    """Check that ffmpeg can be run.

    The Post-Production stage shells out to ffmpeg for clip assembly and
    last-frame extraction, so it must be on PATH before a job starts.

    Raises:
        RuntimeError: If ffmpeg is not found or not functional.
    """
    try:
        result = subprocess.run(
            ["ffmpeg", "-version"],
            capture_output=True,
            check=True,
            text=True,
        )
        version_line = result.stdout.split("\n")[0]
        logger.info(f"ffmpeg validated: {version_line}")
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise RuntimeError(
            "ffmpeg not found on PATH. Install ffmpeg to assemble generated movies.\n"
            "Ubuntu/Debian: sudo apt-get install ffmpeg\n"
            "macOS: brew install ffmpeg\n"
            "Windows: https://ffmpeg.org/download.html"
        ) from e
