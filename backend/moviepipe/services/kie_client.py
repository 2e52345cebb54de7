"""Kie media API client (video, image, music, voice and mixing endpoints).

Provides:
- Async HTTP client for the main API and the file-upload API
- Bearer-token authentication; 401/403 raise AuthenticationError
- Retries on 429, 5xx and connection errors
- Generic task status lookup used by the submit/poll adapters

Usage:
    from moviepipe.services.kie_client import KieClient

    client = KieClient(settings.kie, settings.pipeline)
    url = await client.upload_base64(data_url, "scene_1.png")
    data = await client.post("/veo/generate", {...})
    ...
    await client.close()
"""

import logging
from typing import Any, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from moviepipe.config import KieConfig, PipelineConfig
from moviepipe.errors import AuthenticationError, BackendError
from moviepipe.services.jobs import JobSnapshot
from moviepipe.services.sanitize import require_valid_payload

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error classification helpers
# ---------------------------------------------------------------------------
def _is_retriable(exc: BaseException) -> bool:
    """Return True only for transient errors worth retrying (429, 5xx, network)."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    if isinstance(exc, httpx.TransportError):
        return True
    return False


def _raise_for_auth(status_code: int, message: str) -> None:
    if status_code in (401, 403):
        raise AuthenticationError(f"Kie API rejected the API key (HTTP {status_code}): {message}")


class KieClient:
    """Async client for the Kie REST API.

    One client serves both hosts: JSON endpoints on ``main_api`` and base64
    uploads on ``file_api``. An externally owned httpx.AsyncClient may be
    injected; it is then not closed by close().
    """

    def __init__(
        self,
        config: KieConfig,
        pipeline: Optional[PipelineConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.pipeline = pipeline or PipelineConfig()
        self.main_api = config.main_api.rstrip("/")
        self.file_api = config.file_api.rstrip("/")
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def headers(self) -> dict[str, str]:
        if not self.config.api_key:
            raise AuthenticationError(
                "No Kie API key configured. Set MOVIEPIPE_KIE__API_KEY."
            )
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=httpx.Timeout(120.0, connect=30.0),
            )
            self._owns_client = True
        return self._client

    @retry(
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=2, min=2, max=60) + wait_random(0, 2),
        retry=retry_if_exception(_is_retriable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = await self.client.request(method, url, headers=self.headers, **kwargs)
        logger.debug("%s %s - HTTP %d", method, url, response.status_code)
        _raise_for_auth(response.status_code, response.text[:200])
        response.raise_for_status()
        return response

    async def _call(self, method: str, url: str, **kwargs: Any) -> dict:
        """Send a request and unwrap the ``{code, msg, data}`` envelope."""
        try:
            response = await self._send(method, url, **kwargs)
        except httpx.HTTPStatusError as e:
            raise BackendError(
                f"Kie API {method} {url} failed: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TransportError as e:
            raise BackendError(f"Kie API {method} {url} unreachable: {e}") from e

        body = response.json()
        code = body.get("code", 200)
        message = body.get("msg") or body.get("message") or ""
        _raise_for_auth(code, message)
        if code != 200:
            raise BackendError(f"Kie API error {code}: {message}", status_code=code)
        return body.get("data") or {}

    async def post(self, path: str, payload: dict) -> dict:
        """POST a JSON payload to the main API and return its ``data`` object."""
        require_valid_payload(payload, self.pipeline.max_prompt_length * 2)
        logger.info("POST %s%s", self.main_api, path)
        return await self._call("POST", f"{self.main_api}{path}", json=payload)

    async def get(self, path: str) -> dict:
        return await self._call("GET", f"{self.main_api}{path}")

    async def upload_base64(self, data_url: str, file_name: str, upload_path: str = "moviepipe") -> str:
        """Upload a base64 data URL to the file API.

        Returns the hosted download URL for use as a reference image.
        """
        logger.info(
            "POST %s/api/file-base64-upload file=%s size=%d chars",
            self.file_api, file_name, len(data_url),
        )
        data = await self._call(
            "POST",
            f"{self.file_api}/api/file-base64-upload",
            json={"base64Data": data_url, "uploadPath": upload_path, "fileName": file_name},
        )
        url = data.get("downloadUrl") or data.get("fileUrl")
        if not url:
            raise BackendError("Kie upload returned no download URL")
        logger.info("  uploaded: %s", url)
        return url

    async def task_status(self, path: str, task_id: str, result_keys: tuple[str, ...]) -> JobSnapshot:
        """Fetch a task and normalize it into a JobSnapshot.

        Args:
            path: Task endpoint prefix, e.g. "/veo/task".
            task_id: Task identifier returned on submit.
            result_keys: Keys checked in order for the result URL.
        """
        data = await self.get(f"{path}/{task_id}")
        result_url = next((data[k] for k in result_keys if data.get(k)), None)
        return JobSnapshot(
            status=str(data.get("status", "")),
            result_url=result_url,
            error=data.get("errorMessage") or data.get("error"),
        )

    async def fetch_bytes(self, url: str) -> bytes:
        """Download a generated asset."""
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BackendError(f"Download of {url} failed: {e}") from e
        logger.info("Downloaded %s (%d bytes)", url, len(response.content))
        return response.content

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
