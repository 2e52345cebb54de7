"""Picks the LLM adapter for the configured planner model."""

import logging
from typing import Optional

from moviepipe.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


def _is_gemini_model(model_id: str) -> bool:
    return model_id.startswith("gemini-")


def get_adapter(model_id: str, api_key: Optional[str] = None) -> LLMAdapter:
    """Build an adapter for model_id, chosen by its name prefix.

    Raises:
        ValueError: If no adapter handles the model ID.
    """
    if _is_gemini_model(model_id):
        from moviepipe.services.llm.gemini_adapter import GeminiAdapter

        logger.debug("Routing %s to GeminiAdapter", model_id)
        return GeminiAdapter(model_id=model_id, api_key=api_key)

    raise ValueError(f"No LLM adapter registered for model '{model_id}'")
