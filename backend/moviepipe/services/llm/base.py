"""Interface the story planner uses to ask an LLM for structured output."""

from abc import ABC, abstractmethod
from typing import Optional, Type

from pydantic import BaseModel


class LLMAdapter(ABC):
    """One LLM provider.

    Replies are parsed into the caller's Pydantic schema, so a malformed
    answer surfaces as a validation error rather than as free text.
    """

    @abstractmethod
    async def generate_text(
        self,
        prompt: str,
        schema: Type[BaseModel],
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> BaseModel:
        """Ask the model for an instance of schema.

        Args:
            prompt: Story idea or planning request.
            schema: Model the JSON reply must validate against.
            temperature: 0.0 to 1.0; the planner keeps it low for scene counts.
            system_prompt: Planner role instructions, if any.
            max_retries: Attempts before the error reaches the caller.

        Returns:
            The parsed reply.
        """
        ...
