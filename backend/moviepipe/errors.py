"""Exception hierarchy shared by the pipeline stages and backend adapters."""

from typing import Optional

import httpx

# Vendor messages that mean the caller's credentials are missing or invalid.
# "Requested entity was not found." is what the Gemini API returns for an
# API key bound to a project without access to the model.
_AUTH_MESSAGE_MARKERS = (
    "requested entity was not found",
    "api key not valid",
    "api_key_invalid",
    "permission denied",
    "unauthorized",
    "unauthenticated",
)


class MoviePipeError(Exception):
    """Base class for all moviepipe errors."""


class InputRejectedError(MoviePipeError):
    """User input or an outgoing payload failed validation."""


class AuthenticationError(MoviePipeError):
    """Credentials are missing or were rejected by a backend."""


class BackendError(MoviePipeError):
    """A backend returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class JobFailedError(BackendError):
    """A remote job reached a failed terminal state."""


class JobTimeoutError(BackendError):
    """A remote job did not reach a terminal state within its max wait."""


class SceneError(MoviePipeError):
    """Error attributed to a single scene."""

    def __init__(self, scene_index: int, message: str):
        super().__init__(f"Scene {scene_index + 1}: {message}")
        self.scene_index = scene_index
        self.detail = message


class FrameSynthesisError(SceneError):
    """No reference frame could be produced for a scene."""


class VideoJobError(SceneError):
    """A single scene's video job failed."""


class VideoBatchError(SceneError):
    """The parallel video batch failed; scene_index names the first failure."""


class AudioPackagingError(SceneError):
    """Music generation failed for a scene."""


class AssemblyError(MoviePipeError):
    """Clip concatenation or frame extraction failed."""


class InvalidStepTransition(MoviePipeError):
    """A pipeline step was moved against its monotonic order."""


class PipelineFailed(MoviePipeError):
    """Terminal failure of a movie job, carrying the failed step's name."""

    def __init__(self, message: str, step_name: str, auth_required: bool = False):
        super().__init__(f"{message} (stage: {step_name})")
        self.step_name = step_name
        self.auth_required = auth_required


def is_auth_error(exc: BaseException) -> bool:
    """Return True if exc, or anything in its cause chain, is an auth failure."""
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, AuthenticationError):
            return True
        if isinstance(current, httpx.HTTPStatusError):
            if current.response.status_code in (401, 403):
                return True
        if getattr(current, "code", None) in (401, 403):
            return True
        msg = str(current).lower()
        if any(marker in msg for marker in _AUTH_MESSAGE_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False
