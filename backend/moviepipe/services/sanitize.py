"""Input validation and sanitization at the backend boundary.

Every prompt entering the orchestrator and every JSON payload leaving for a
remote backend passes through here. Validators return a list of error
strings; the ``require_*`` helpers raise InputRejectedError instead.
"""

import logging
import re
from typing import Any, Iterable, Optional

from moviepipe.errors import InputRejectedError
from moviepipe.services.media import decode_data_url, is_data_url, sniff_mime

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 10000
# Generated prompts embed the user prompt plus continuity descriptors
MAX_PAYLOAD_TEXT_LENGTH = 2 * MAX_TEXT_LENGTH
MAX_UPLOAD_BYTES = 50 * 1024 * 1024
VALID_ASPECT_RATIOS = ("16:9", "9:16", "1:1", "4:3", "3:4")
IMAGE_UPLOAD_TYPES = ("image/jpeg", "image/png", "image/webp")
ALLOWED_UPLOAD_TYPES = IMAGE_UPLOAD_TYPES + ("video/mp4",)
MAX_URL_LENGTH = 2048

# Payload fields that carry encoded media rather than text
BINARY_FIELDS = frozenset({"base64Data", "imageBase64", "image_bytes"})

_XSS_PATTERNS = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"<\s*script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"vbscript\s*:", re.IGNORECASE),
    re.compile(r"<[^>]*\bon\w+\s*=", re.IGNORECASE),
]

# Statement shapes rather than bare keywords, so prose like "select a
# flower" or a semicolon between clauses is not rejected.
_SQL_PATTERNS = [
    re.compile(r"\bunion\s+(all\s+)?select\b", re.IGNORECASE),
    re.compile(r"\bselect\b.+\bfrom\b.+\bwhere\b", re.IGNORECASE),
    re.compile(r"\binsert\s+into\b", re.IGNORECASE),
    re.compile(r"\bdelete\s+from\b", re.IGNORECASE),
    re.compile(r"\bdrop\s+(table|database)\b", re.IGNORECASE),
    re.compile(r"\bupdate\s+\w+\s+set\b", re.IGNORECASE),
    re.compile(r"\b(xp|sp)_\w+", re.IGNORECASE),
    re.compile(r"'\s*(or|and)\s+'?\d+'?\s*=\s*'?\d+", re.IGNORECASE),
    re.compile(r"/\*|\*/"),
]

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_SCRIPT_BLOCK = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_EVENT_HANDLER = re.compile(r"\bon\w+\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s>]+)", re.IGNORECASE)
_SCRIPT_SCHEME = re.compile(r"(javascript|vbscript)\s*:", re.IGNORECASE)


def sanitize(text: str) -> str:
    """Strip script blocks, inline handlers, script URLs and control characters."""
    cleaned = _SCRIPT_BLOCK.sub("", text)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    cleaned = _SCRIPT_SCHEME.sub("", cleaned)
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    return cleaned.strip()


def validate_text_input(text: Any, field: str = "input", max_length: int = MAX_TEXT_LENGTH) -> list[str]:
    """Return validation errors for a free-text field (empty list when valid)."""
    if not isinstance(text, str):
        return [f"{field} must be a string"]

    errors = []
    if not text.strip():
        errors.append(f"{field} cannot be empty")
    if len(text) > max_length:
        errors.append(f"{field} too long (max {max_length} chars)")
    if any(p.search(text) for p in _SQL_PATTERNS):
        errors.append(f"{field} contains potentially malicious SQL content")
    if any(p.search(text) for p in _XSS_PATTERNS):
        errors.append(f"{field} contains potentially malicious script content")
    return errors


def validate_aspect_ratio(aspect_ratio: str) -> list[str]:
    if aspect_ratio not in VALID_ASPECT_RATIOS:
        return [f"Invalid aspect ratio {aspect_ratio!r}. Must be one of: {', '.join(VALID_ASPECT_RATIOS)}"]
    return []


def validate_scene_count(count: Optional[int], minimum: int = 2, maximum: int = 10) -> list[str]:
    if count is None:
        return []
    if isinstance(count, bool) or not isinstance(count, int):
        return ["scene count must be an integer"]
    if not minimum <= count <= maximum:
        return [f"scene count must be between {minimum} and {maximum}"]
    return []


def validate_upload(
    content_type: Optional[str],
    size: int,
    allowed: tuple[str, ...] = ALLOWED_UPLOAD_TYPES,
) -> list[str]:
    """Validate a seed image/video upload."""
    errors = []
    if size > MAX_UPLOAD_BYTES:
        errors.append("File too large (max 50MB)")
    if content_type not in allowed:
        errors.append(f"Invalid file type. Allowed: {', '.join(allowed)}")
    return errors


def validate_image_handle(handle: Any, field: str = "seed_image") -> list[str]:
    """Validate an image handle supplied by a remote client.

    Only inline data URLs and https URLs are accepted; anything else could
    name a file on this host.
    """
    if not isinstance(handle, str):
        return [f"{field} must be a string"]
    if handle.startswith("https://"):
        errors = []
        if len(handle) > MAX_URL_LENGTH:
            errors.append(f"{field} URL too long (max {MAX_URL_LENGTH} chars)")
        if any(p.search(handle) for p in _XSS_PATTERNS):
            errors.append(f"{field} contains potentially malicious script content")
        return errors
    if not is_data_url(handle):
        return [f"{field} must be a data: URL or an https:// URL"]
    try:
        data, _ = decode_data_url(handle)
    except InputRejectedError as e:
        return [f"{field}: {e}"]
    return validate_image_bytes(data, field)


def validate_image_bytes(data: bytes, field: str = "seed_image") -> list[str]:
    """Validate image bytes by their content; the declared type is ignored."""
    return [f"{field}: {e}" for e in validate_upload(sniff_mime(data), len(data), IMAGE_UPLOAD_TYPES)]


def _iter_strings(value: Any, path: str) -> Iterable[tuple[str, str]]:
    if isinstance(value, str):
        yield path, value
    elif isinstance(value, dict):
        for key, item in value.items():
            if key in BINARY_FIELDS:
                continue
            yield from _iter_strings(item, f"{path}.{key}" if path else str(key))
    elif isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            yield from _iter_strings(item, f"{path}[{i}]")


def validate_payload(payload: dict, max_length: int = MAX_PAYLOAD_TEXT_LENGTH) -> list[str]:
    """Check every text field of an outgoing JSON payload.

    Encoded media fields are skipped. URLs and identifiers are only checked
    for script injection and size.
    """
    errors = []
    for path, text in _iter_strings(payload, ""):
        if text.startswith("data:"):
            continue
        if len(text) > max_length:
            errors.append(f"{path} too long (max {max_length} chars)")
        if any(p.search(text) for p in _XSS_PATTERNS):
            errors.append(f"{path} contains potentially malicious script content")
    return errors


def require_clean_text(text: Any, field: str = "prompt", max_length: int = MAX_TEXT_LENGTH) -> str:
    """Validate text and return its sanitized form.

    Raises:
        InputRejectedError: If the text is empty, oversized or looks like an
            injection attempt.
    """
    errors = validate_text_input(text, field, max_length)
    if errors:
        logger.warning(f"Rejected {field}: {'; '.join(errors)}")
        raise InputRejectedError("; ".join(errors))
    return sanitize(text)


def require_valid_payload(payload: dict, max_length: int = MAX_PAYLOAD_TEXT_LENGTH) -> dict:
    """Return payload unchanged if valid.

    Raises:
        InputRejectedError: If any field fails validation.
    """
    errors = validate_payload(payload, max_length)
    if errors:
        raise InputRejectedError("; ".join(errors))
    return payload


def require_image_bytes(data: bytes, field: str = "seed_image") -> None:
    """Raises InputRejectedError unless data is an allowed image within the size cap."""
    errors = validate_image_bytes(data, field)
    if errors:
        logger.warning(f"Rejected {field}: {'; '.join(errors)}")
        raise InputRejectedError("; ".join(errors))
