"""Gemini adapter for the LLM abstraction layer.

Wraps the google-genai client with structured output. Uses tenacity for
retry logic with configurable max_retries; authentication failures are
never retried.
"""

import logging
from typing import Optional, Type

from google.genai import types as genai_types
from pydantic import BaseModel
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from moviepipe.errors import is_auth_error
from moviepipe.services.gemini_client import get_gemini_client
from moviepipe.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


class GeminiAdapter(LLMAdapter):
    """LLM adapter backed by the Gemini API (google-genai SDK)."""

    def __init__(self, model_id: str, api_key: Optional[str] = None) -> None:
        """Initialize adapter for the given Gemini model.

        Args:
            model_id: Gemini model identifier (e.g., "gemini-2.5-pro").
            api_key: Optional explicit API key.
        """
        self._model_id = model_id
        self._api_key = api_key

    async def generate_text(
        self,
        prompt: str,
        schema: Type[BaseModel],
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> BaseModel:
        @retry(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            retry=retry_if_exception(lambda e: not is_auth_error(e)),
            reraise=True,
        )
        async def _call() -> BaseModel:
            client = get_gemini_client(self._api_key)
            config = genai_types.GenerateContentConfig(
                temperature=temperature,
                response_mime_type="application/json",
                response_schema=schema,
                system_instruction=system_prompt,
            )
            response = await client.aio.models.generate_content(
                model=self._model_id,
                contents=prompt,
                config=config,
            )
            return schema.model_validate_json(response.text)

        logger.debug("Gemini structured call model=%s schema=%s", self._model_id, schema.__name__)
        return await _call()
