"""LLM provider abstraction layer.

Provides a unified async interface for structured text generation used by
the story planner.

Usage:
    from moviepipe.services.llm import get_adapter, LLMAdapter

    adapter = get_adapter("gemini-2.5-pro")
    result = await adapter.generate_text(prompt, MySchema)
"""

from moviepipe.services.llm.base import LLMAdapter
from moviepipe.services.llm.registry import get_adapter

__all__ = ["LLMAdapter", "get_adapter"]
