"""Scene planning: script detection, script parsing and idea-based planning.

This module turns a raw user prompt into a ScenePlan:
- Literal scripts ("Scene N:" markers, INT./EXT. sluglines, numbered lists,
  quoted dialog) are parsed into one scene per detected header
- Ideas go through a StoryPlanner (scene count inference + scene prompts)
- Planning never raises; any internal error yields a 3-scene default plan

Usage:
    from moviepipe.pipeline.storyboard import plan_scenes

    plan = await plan_scenes("A lone astronaut discovers a signal on an uncharted moon")
"""

import logging
import re
from typing import Optional

from moviepipe.schemas.storyboard import (
    MAX_SCENES,
    MIN_SCENES,
    FrameTask,
    PlanMode,
    ScenePlan,
    ScriptScene,
)
from moviepipe.services.backends import StoryPlanner
from moviepipe.services.planning import TemplateStoryPlanner

logger = logging.getLogger(__name__)

DEFAULT_SCENE_COUNT = 3
INFERRED_MAX_SCENES = 8

# ---------------------------------------------------------------------------
# Processing mode detection
# ---------------------------------------------------------------------------

_SCRIPT_INDICATORS = [
    re.compile(r"\bscene\s*\d+", re.IGNORECASE),
    re.compile(r"\b(int|ext)\.", re.IGNORECASE),
    re.compile(r"^\s*\d+\.\s+\S", re.MULTILINE),
    re.compile(r"\bfade\s*(in|out)\b", re.IGNORECASE),
    re.compile(r"\bcut\s+to:", re.IGNORECASE),
    re.compile(r"\bdialog(ue)?\b", re.IGNORECASE),
    re.compile(r"\b(voiceover|v\.o\.)", re.IGNORECASE),
    re.compile(r"^[^:\n]{1,40}:\s*[\"“'].+", re.MULTILINE),
    re.compile(r"^\s*\[.+\]\s*$", re.MULTILINE),
]

_IDEA_INDICATORS = [
    re.compile(r"create\s+(a|an)\s+.*?\s+(movie|film|video)", re.IGNORECASE),
    re.compile(r"make\s+(a|an)\s+.*?\s+(story|animation)", re.IGNORECASE),
    re.compile(r"show\s+me\s+.*?\s+(doing|happening)", re.IGNORECASE),
    re.compile(r"generate\s+.*?\s+(story|plot)", re.IGNORECASE),
    re.compile(r"idea\s+for", re.IGNORECASE),
    re.compile(r"concept\s+of", re.IGNORECASE),
]

_SCENE_MARKER = re.compile(r"^\s*(scene\s*\d+|\d+\.\s)", re.IGNORECASE | re.MULTILINE)

# ---------------------------------------------------------------------------
# Script line patterns
# ---------------------------------------------------------------------------

_SCENE_HEADER = re.compile(r"^scene\s*(\d+)\s*[:.\-]?\s*(.*)$", re.IGNORECASE)
_SLUGLINE = re.compile(
    r"^(?:int|ext|int\./ext|i/e)\.?\s+(.*?)\s*-\s*(day|night|dawn|dusk|morning|evening)\s*$",
    re.IGNORECASE,
)
_NUMBERED = re.compile(r"^(\d+)\.\s+(.*)$")
_CAMERA = re.compile(r"^camera\s*:\s*(.+)$", re.IGNORECASE)
_CAMERA_BRACKET = re.compile(
    r"^[(\[]\s*((?:wide|close-up|closeup|medium|pan|tilt|tracking|aerial)[^)\]]*)[)\]]$",
    re.IGNORECASE,
)
_DIALOG = re.compile(r"^([^:\"“']{1,40}):\s*[\"“'](.*?)[\"”']$")
_VISUAL = re.compile(r"^\[(.+)\]$")
_TRANSITION = re.compile(r"^(fade\s*(in|out)|cut\s+to|dissolve\s+to)\s*[:.]?$", re.IGNORECASE)


def detect_processing_mode(text: str) -> tuple[PlanMode, float]:
    """Classify a prompt as a literal script or a free-form idea.

    Returns:
        (mode, confidence) where confidence is in [0, 1]. Ties go to IDEA.
    """
    script_score = sum(1 for p in _SCRIPT_INDICATORS if p.search(text))
    idea_score = sum(1 for p in _IDEA_INDICATORS if p.search(text))

    has_dialog = any(_DIALOG.match(line.strip()) for line in text.splitlines())
    if has_dialog or len(_SCENE_MARKER.findall(text)) > 1:
        script_score += 2

    if script_score > idea_score:
        return PlanMode.SCRIPT, min(script_score / (len(_SCRIPT_INDICATORS) + 2), 1.0)
    return PlanMode.IDEA, min(idea_score / len(_IDEA_INDICATORS), 1.0)


def _has_content(scene: ScriptScene) -> bool:
    return bool(scene.action or scene.dialog or scene.visual or scene.location)


def parse_script(text: str) -> list[ScriptScene]:
    """Split a screenplay-style script into scenes.

    Each "Scene N" header, INT./EXT. slugline or "N." numbered line opens a
    new scene. Lines before the first header and bare transitions are
    ignored. Scenes without any content are dropped.
    """
    scenes: list[ScriptScene] = []
    current: Optional[ScriptScene] = None

    def _close() -> None:
        if current is not None and _has_content(current):
            scenes.append(current)

    for raw in text.splitlines():
        line = raw.strip()
        if not line or _TRANSITION.match(line):
            continue

        header = _SCENE_HEADER.match(line)
        slug = _SLUGLINE.match(line)
        numbered = _NUMBERED.match(line)
        if header or slug or numbered:
            _close()
            current = ScriptScene(number=len(scenes) + 1)
            if header:
                current.number = int(header.group(1))
                rest = header.group(2).strip()
                sub_slug = _SLUGLINE.match(rest)
                if sub_slug:
                    current.location = sub_slug.group(1).strip()
                    current.time_of_day = sub_slug.group(2).strip()
                elif " - " in rest:
                    location, _, time_of_day = rest.partition(" - ")
                    current.location = location.strip()
                    current.time_of_day = time_of_day.strip()
                else:
                    current.action = rest
            elif slug:
                current.location = slug.group(1).strip()
                current.time_of_day = slug.group(2).strip()
            else:
                current.number = int(numbered.group(1))
                current.action = numbered.group(2).strip()
            continue

        if current is None:
            continue

        camera = _CAMERA.match(line) or _CAMERA_BRACKET.match(line)
        if camera:
            current.camera = camera.group(1).strip()
            continue

        dialog = _DIALOG.match(line)
        if dialog:
            current.dialog.append(f"{dialog.group(1).strip()}: {dialog.group(2).strip()}")
            continue

        visual = _VISUAL.match(line)
        if visual:
            current.visual = visual.group(1).strip()
            continue

        current.action = f"{current.action} {line}".strip()

    _close()
    return scenes


def fallback_plan(prompt: str, count: int = DEFAULT_SCENE_COUNT) -> ScenePlan:
    """Minimal plan of generic scenes derived from the raw prompt."""
    base = " ".join(prompt.split()) or "A cinematic story"
    return ScenePlan(
        scenes=[f"{base} - scene {i + 1}" for i in range(count)],
        scene_count=count,
        mode=PlanMode.IDEA,
    )


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _script_plan(text: str) -> Optional[ScenePlan]:
    parsed = parse_script(text)
    if len(parsed) < MIN_SCENES:
        logger.info(f"Script parse produced {len(parsed)} scene(s), falling back to idea planning")
        return None
    if len(parsed) > MAX_SCENES:
        logger.warning(f"Script has {len(parsed)} scenes, keeping the first {MAX_SCENES}")
        parsed = parsed[:MAX_SCENES]
    return ScenePlan(
        scenes=[scene.to_prompt() for scene in parsed],
        scene_count=len(parsed),
        mode=PlanMode.SCRIPT,
        dialogs=[scene.dialog_text() for scene in parsed],
        actions=[scene.action or None for scene in parsed],
    )


async def infer_scene_count(prompt: str, planner: StoryPlanner) -> int:
    """Ask the planner for a scene count, defaulting to 3 on failure."""
    try:
        return _clamp(int(await planner.decide_scene_count(prompt)), MIN_SCENES, INFERRED_MAX_SCENES)
    except Exception as e:
        logger.warning(f"Scene count inference failed: {type(e).__name__}: {e}")
        return DEFAULT_SCENE_COUNT


async def plan_scenes(
    prompt: str,
    scene_count_hint: Optional[int] = None,
    planner: Optional[StoryPlanner] = None,
) -> ScenePlan:
    """Build the ScenePlan for a prompt.

    Args:
        prompt: Sanitized user prompt, either an idea or a literal script.
        scene_count_hint: Explicit scene count, clamped to [2, 10]. Ignored
            for scripts, whose scene count comes from the parse.
        planner: Idea planner. Defaults to the offline template planner.

    Returns:
        ScenePlan with 2-10 scenes. Never raises.
    """
    try:
        mode, confidence = detect_processing_mode(prompt)
        logger.info(f"Processing mode: {mode.value} (confidence {confidence:.2f})")
        if mode == PlanMode.SCRIPT:
            plan = _script_plan(prompt)
            if plan is not None:
                return plan

        planner = planner or TemplateStoryPlanner()
        if scene_count_hint is not None:
            count = _clamp(scene_count_hint, MIN_SCENES, MAX_SCENES)
        else:
            count = await infer_scene_count(prompt, planner)

        scenes = [s.strip() for s in await planner.plan_scenes(prompt, count) if s and s.strip()]
        if len(scenes) < count:
            logger.warning(f"Planner returned {len(scenes)} of {count} scenes, padding")
            scenes += fallback_plan(prompt, count).scenes[len(scenes):]
        return ScenePlan(scenes=scenes[:count], scene_count=count, mode=PlanMode.IDEA)
    except Exception as e:
        logger.error(f"Scene planning failed, using default plan: {type(e).__name__}: {e}")
        return fallback_plan(prompt)


def scene_seed(base_seed: int, scene_index: int) -> int:
    """Deterministic per-scene seed."""
    return (base_seed * 1000 + scene_index) % 99999


def build_frame_tasks(plan: ScenePlan, aspect_ratio: str = "16:9", base_seed: int = 12345) -> list[FrameTask]:
    """Create one FrameTask per planned scene, in scene order."""
    return [
        FrameTask(
            scene_index=i,
            prompt=prompt,
            seed=scene_seed(base_seed, i),
            aspect_ratio=aspect_ratio,
            dialog=plan.dialogs[i],
            action=plan.actions[i],
        )
        for i, prompt in enumerate(plan.scenes)
    ]
