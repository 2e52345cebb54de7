"""Story planner implementations: local templates and LLM-backed planning."""

import logging
from typing import Optional

from moviepipe.schemas.storyboard import SceneCountDecision, ScenePromptList
from moviepipe.services.backends import StoryPlanner
from moviepipe.services.heuristics import (
    MOOD_TABLE,
    STORY_TYPE_TABLE,
    KeywordSceneCounter,
    KeywordStrategy,
    SceneCountStrategy,
    first_keyword_phrase,
)
from moviepipe.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)

STORY_TEMPLATES: dict[str, list[str]] = {
    "action": [
        "Opening scene establishing the challenge",
        "Rising action with increasing tension",
        "Climax confrontation",
        "Resolution and aftermath",
    ],
    "adventure": [
        "Introduction to the quest or journey",
        "First obstacle or challenge",
        "Mid-journey development",
        "Final challenge and discovery",
        "Return with newfound wisdom",
    ],
    "drama": [
        "Setup introducing characters and situation",
        "Inciting incident changes everything",
        "Rising action with complications",
        "Climax emotional peak",
        "Resolution showing transformation",
    ],
    "comedy": [
        "Setup with comedic premise",
        "Escalation of humorous situations",
        "Comic misadventures",
        "Climax humorous resolution",
        "Wrap-up with final joke",
    ],
    "default": [
        "Introduction to characters and setting",
        "Development of the main situation",
        "Rising action with challenges",
        "Climactic moment",
        "Resolution and conclusion",
    ],
}

_CHARACTER_WORDS = (
    "person", "man", "woman", "child", "guy", "girl",
    "character", "hero", "protagonist", "astronaut", "detective",
)
_SETTING_WORDS = ("in", "at", "on", "inside", "outside")
_ACTION_WORDS = (
    "running", "jumping", "flying", "fighting", "dancing", "singing",
    "building", "exploring", "creating", "transforming", "discovers",
    "searching", "escaping",
)

PLAN_SYSTEM_PROMPT = (
    "You are a creative story planner for an AI video generation system. "
    "Break the user's story idea into exactly {count} distinct, sequential scenes. "
    "For each scene write a detailed, cinematic prompt for a video model that "
    "names the location, time of day, the action and any spoken dialog. "
    "Make the prompts flow logically from one to the next."
)

COUNT_SYSTEM_PROMPT = (
    "You are an AI story editor. Decide the optimal number of short video scenes "
    "(between 2 and 8) needed to tell the user's story. A simple concept needs 2-3 "
    "scenes, a complex one with multiple events may need 5-8."
)


def _shot_cue(scene_number: int, total: int) -> str:
    if scene_number == 1:
        return "establishing shot, wide angle"
    if scene_number == total:
        return "concluding scene, emotional resolution"
    return "dynamic scene"


class TemplateStoryPlanner(StoryPlanner):
    """Offline planner built on story templates and keyword tables."""

    def __init__(
        self,
        counter: Optional[SceneCountStrategy] = None,
        story_type: KeywordStrategy = STORY_TYPE_TABLE,
        mood: KeywordStrategy = MOOD_TABLE,
    ):
        self.counter = counter or KeywordSceneCounter()
        self.story_type = story_type
        self.mood = mood

    async def decide_scene_count(self, prompt: str) -> int:
        return self.counter.count(prompt)

    async def plan_scenes(self, prompt: str, count: int) -> list[str]:
        template = STORY_TEMPLATES.get(self.story_type.classify(prompt), STORY_TEMPLATES["default"])
        character = first_keyword_phrase(prompt, _CHARACTER_WORDS) or "a character"
        setting = first_keyword_phrase(prompt, _SETTING_WORDS, exact=True) or "in a vivid setting"
        action = first_keyword_phrase(prompt, _ACTION_WORDS, span=1) or "takes center stage"
        mood = self.mood.classify(prompt)

        scenes = []
        for i in range(count):
            phase = template[min(i, len(template) - 1)]
            scenes.append(
                f"{phase}: {character} {action} {setting}. "
                f"{mood.capitalize()} atmosphere, {_shot_cue(i + 1, count)}, "
                f"cinematic lighting, detailed environment, inspired by: {prompt}"
            )
        return scenes


class LLMStoryPlanner(StoryPlanner):
    """Planner backed by a structured-output LLM.

    Any LLM failure falls back to the template planner so planning never
    blocks the pipeline.
    """

    def __init__(self, adapter: LLMAdapter, fallback: Optional[StoryPlanner] = None):
        self.adapter = adapter
        self.fallback = fallback or TemplateStoryPlanner()

    async def decide_scene_count(self, prompt: str) -> int:
        try:
            decision = await self.adapter.generate_text(
                f'Analyze this prompt and decide the scene count: "{prompt}"',
                SceneCountDecision,
                temperature=0.2,
                system_prompt=COUNT_SYSTEM_PROMPT,
            )
            return max(2, min(8, decision.scene_count))
        except Exception as e:
            logger.warning(f"LLM scene count failed, using heuristics: {type(e).__name__}: {e}")
            return await self.fallback.decide_scene_count(prompt)

    async def plan_scenes(self, prompt: str, count: int) -> list[str]:
        try:
            plan = await self.adapter.generate_text(
                f'Create a story plan for this prompt: "{prompt}"',
                ScenePromptList,
                system_prompt=PLAN_SYSTEM_PROMPT.format(count=count),
            )
            scenes = [s.strip() for s in plan.scenes if s and s.strip()]
            if len(scenes) < count:
                raise ValueError(f"expected {count} scenes, got {len(scenes)}")
            return scenes[:count]
        except Exception as e:
            logger.warning(f"LLM story plan failed, using templates: {type(e).__name__}: {e}")
            return await self.fallback.plan_scenes(prompt, count)
