"""Gemini API client wrapper using google-genai SDK.

Clients are keyed by API key so a re-selected key takes effect without a
restart.

Usage:
    from moviepipe.services.gemini_client import get_gemini_client

    client = get_gemini_client()
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from google import genai

from moviepipe.config import settings
from moviepipe.errors import AuthenticationError

# Load .env for GEMINI_API_KEY / GOOGLE_API_KEY
load_dotenv(Path(__file__).resolve().parent.parent.parent.parent / ".env")

# Per-key client cache
_clients: dict[str, genai.Client] = {}


def resolve_api_key(explicit: Optional[str] = None) -> str:
    """Return the first configured Gemini API key.

    Raises:
        AuthenticationError: If no key is configured anywhere.
    """
    key = (
        explicit
        or settings.google.api_key
        or os.environ.get("GEMINI_API_KEY")
        or os.environ.get("GOOGLE_API_KEY")
    )
    if not key:
        raise AuthenticationError(
            "No Gemini API key configured. Set MOVIEPIPE_GOOGLE__API_KEY or GEMINI_API_KEY."
        )
    return key


def get_gemini_client(api_key: Optional[str] = None) -> genai.Client:
    """Get or create a Gemini client for the given key.

    Args:
        api_key: Explicit key. Defaults to the configured key.

    Returns:
        genai.Client: Configured client instance
    """
    key = resolve_api_key(api_key)
    if key not in _clients:
        _clients[key] = genai.Client(api_key=key)
    return _clients[key]


def reset_clients() -> None:
    """Drop cached clients, e.g. after the user selects a new key."""
    _clients.clear()
