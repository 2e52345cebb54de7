"""Tests for the LLM-backed story planner and adapter registry."""

import pytest

from moviepipe.schemas.storyboard import SceneCountDecision, ScenePromptList
from moviepipe.services.llm import get_adapter
from moviepipe.services.llm.base import LLMAdapter
from moviepipe.services.planning import LLMStoryPlanner

from conftest import FakePlanner


class ScriptedAdapter(LLMAdapter):
    """Returns queued answers, raising any queued exception."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    async def generate_text(self, prompt, schema, *, temperature=0.7, system_prompt=None, max_retries=3):
        self.calls.append({"prompt": prompt, "schema": schema, "system_prompt": system_prompt})
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.mark.asyncio
async def test_scene_count_from_llm_is_clamped():
    adapter = ScriptedAdapter(SceneCountDecision(scene_count=12))
    planner = LLMStoryPlanner(adapter, fallback=FakePlanner(count=4))

    assert await planner.decide_scene_count("A saga") == 8
    assert adapter.calls[0]["schema"] is SceneCountDecision


@pytest.mark.asyncio
async def test_scene_count_falls_back_on_llm_error():
    planner = LLMStoryPlanner(ScriptedAdapter(RuntimeError("quota")), fallback=FakePlanner(count=4))
    assert await planner.decide_scene_count("A saga") == 4


@pytest.mark.asyncio
async def test_plan_uses_llm_scenes():
    adapter = ScriptedAdapter(ScenePromptList(scenes=["Dawn at sea", " ", "Storm", "Landfall", "Extra"]))
    planner = LLMStoryPlanner(adapter, fallback=FakePlanner())

    assert await planner.plan_scenes("A voyage", 3) == ["Dawn at sea", "Storm", "Landfall"]
    assert "exactly 3" in adapter.calls[0]["system_prompt"]


@pytest.mark.asyncio
async def test_short_plan_falls_back_to_templates():
    adapter = ScriptedAdapter(ScenePromptList(scenes=["Only one"]))
    fallback = FakePlanner()
    planner = LLMStoryPlanner(adapter, fallback=fallback)

    scenes = await planner.plan_scenes("A voyage", 2)

    assert scenes == ["A voyage - beat 1", "A voyage - beat 2"]
    assert fallback.plan_calls == [("A voyage", 2)]


def test_registry_rejects_unknown_models():
    with pytest.raises(ValueError, match="No LLM adapter"):
        get_adapter("llama3:8b")
