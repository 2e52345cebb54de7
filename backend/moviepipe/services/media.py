"""Helpers for image handles: data URLs, remote URLs and (opt-in) local paths."""

import base64
import binascii
import logging
import mimetypes
import re
from pathlib import Path
from typing import Optional

import httpx

from moviepipe.errors import BackendError, InputRejectedError

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[\w=-]+)*;base64,(?P<data>.*)$", re.DOTALL)


def is_remote(handle: str) -> bool:
    return handle.startswith(("http://", "https://"))


def is_data_url(handle: str) -> bool:
    return handle.startswith("data:")


def sniff_mime(data: bytes) -> Optional[str]:
    """Identify PNG, JPEG and WebP by their magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def to_data_url(data: bytes, mime_type: Optional[str] = None) -> str:
    """Encode bytes as a base64 data URL."""
    mime = mime_type or sniff_mime(data) or "application/octet-stream"
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(handle: str) -> tuple[bytes, Optional[str]]:
    """Split a data URL into (bytes, mime type).

    The type sniffed from the bytes wins over the declared one.

    Raises:
        InputRejectedError: If the handle is not a valid base64 data URL.
    """
    match = _DATA_URL.match(handle)
    if not match:
        raise InputRejectedError("Malformed data URL; expected base64 encoding")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except binascii.Error as e:
        raise InputRejectedError(f"Malformed data URL: {e}") from e
    return data, sniff_mime(data) or match.group("mime")


def _require_image(mime: Optional[str], source: str) -> str:
    if not mime or not mime.startswith("image/"):
        raise InputRejectedError(f"Not an image ({mime or 'unknown type'}): {source}")
    return mime


async def load_image_bytes(
    handle: str,
    http_client: Optional[httpx.AsyncClient] = None,
    *,
    allow_local: bool = False,
) -> tuple[bytes, str]:
    """Resolve an image handle to (bytes, mime type).

    Args:
        handle: data URL, http(s) URL, or a local file path when
            ``allow_local`` is set.
        http_client: Client used for remote handles; a temporary one is
            created when omitted.
        allow_local: Read local files. Only callers acting for the local
            user (the CLI) may set this.

    Raises:
        InputRejectedError: If the handle is unsupported or is not an image.
        BackendError: If a remote image cannot be fetched.
    """
    if is_data_url(handle):
        data, mime = decode_data_url(handle)
        return data, _require_image(mime, "data URL")

    if is_remote(handle):
        try:
            if http_client is not None:
                response = await http_client.get(handle, follow_redirects=True)
            else:
                async with httpx.AsyncClient(follow_redirects=True, timeout=60.0) as client:
                    response = await client.get(handle)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BackendError(f"Could not fetch image {handle}: {e}") from e
        declared = response.headers.get("content-type", "").split(";")[0] or None
        return response.content, _require_image(sniff_mime(response.content) or declared, handle)

    if not allow_local:
        raise InputRejectedError("Unsupported image handle; expected a data: or http(s) URL")

    path = Path(handle)
    if not path.is_file():
        raise InputRejectedError(f"Image file not found: {handle}")
    data = path.read_bytes()
    return data, _require_image(sniff_mime(data) or mimetypes.guess_type(path.name)[0], handle)


async def ensure_data_url(
    handle: str,
    http_client: Optional[httpx.AsyncClient] = None,
    *,
    allow_local: bool = False,
) -> str:
    """Return handle as an image data URL, fetching URLs (and files when allowed)."""
    data, mime = await load_image_bytes(handle, http_client, allow_local=allow_local)
    return to_data_url(data, mime)
