"""Tests for scene planning, script parsing and frame task construction."""

import pytest

from moviepipe.pipeline.storyboard import (
    build_frame_tasks,
    detect_processing_mode,
    fallback_plan,
    parse_script,
    plan_scenes,
    scene_seed,
)
from moviepipe.schemas.storyboard import PlanMode, ScenePlan
from moviepipe.services.heuristics import KeywordSceneCounter
from moviepipe.services.planning import TemplateStoryPlanner

from conftest import FakePlanner

FOUR_SCENE_SCRIPT = """\
Scene 1: INT. SPACESHIP - NIGHT
The captain studies a flickering console.
CAPTAIN: "Something is out there."
Scene 2: EXT. MOON SURFACE - DAY
[A lone figure walks across grey dust toward a blinking beacon]
Camera: slow tracking shot
Scene 3: The beacon opens, revealing a map of stars.
ENGINEER: "It's a message."
Scene 4: Cave - dusk
The crew decides to follow the map.
"""


# ---------------------------------------------------------------------------
# Mode detection
# ---------------------------------------------------------------------------


def test_detects_script_with_scene_markers():
    mode, confidence = detect_processing_mode(FOUR_SCENE_SCRIPT)
    assert mode == PlanMode.SCRIPT
    assert 0 < confidence <= 1


def test_detects_idea_prompt():
    mode, _ = detect_processing_mode("Create a short movie about a cat who learns to fly")
    assert mode == PlanMode.IDEA


def test_plain_sentence_is_idea():
    mode, _ = detect_processing_mode("A lone astronaut discovers a signal on an uncharted moon")
    assert mode == PlanMode.IDEA


# ---------------------------------------------------------------------------
# Script parsing
# ---------------------------------------------------------------------------


def test_parse_script_extracts_fields():
    scenes = parse_script(FOUR_SCENE_SCRIPT)
    assert [s.number for s in scenes] == [1, 2, 3, 4]

    first = scenes[0]
    assert first.location == "SPACESHIP"
    assert first.time_of_day == "NIGHT"
    assert first.action == "The captain studies a flickering console."
    assert first.dialog == ["CAPTAIN: Something is out there."]

    second = scenes[1]
    assert second.visual.startswith("A lone figure walks")
    assert second.camera == "slow tracking shot"

    assert scenes[3].location == "Cave"
    assert scenes[3].time_of_day == "dusk"


def test_script_scene_prompt_contains_location_dialog_and_camera():
    scenes = parse_script(FOUR_SCENE_SCRIPT)
    first = scenes[0].to_prompt()
    assert first.startswith("The captain studies a flickering console in SPACESHIP, night.")
    assert "Characters speaking: CAPTAIN: Something is out there." in first
    assert "Camera: slow tracking shot." in scenes[1].to_prompt()


def test_parse_numbered_list_and_ignores_preamble():
    text = "My outline\n1. A girl finds a key\n2. She opens an old door\n3. A garden appears\n"
    scenes = parse_script(text)
    assert [s.action for s in scenes] == [
        "A girl finds a key",
        "She opens an old door",
        "A garden appears",
    ]


def test_parse_ignores_transitions():
    text = "FADE IN:\nScene 1: A field\nCUT TO:\nScene 2: A river\nFADE OUT."
    assert [s.action for s in parse_script(text)] == ["A field", "A river"]


# ---------------------------------------------------------------------------
# plan_scenes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_script_mode_bypasses_scene_count_inference():
    planner = FakePlanner(count=7)
    plan = await plan_scenes(FOUR_SCENE_SCRIPT, planner=planner)

    assert plan.mode == PlanMode.SCRIPT
    assert plan.scene_count == 4
    assert len(plan.scenes) == 4
    assert planner.count_calls == []
    assert planner.plan_calls == []
    assert plan.dialogs[0] == "CAPTAIN: Something is out there."
    assert plan.dialogs[1] is None


@pytest.mark.asyncio
async def test_script_mode_ignores_hint():
    plan = await plan_scenes(FOUR_SCENE_SCRIPT, scene_count_hint=2, planner=FakePlanner())
    assert plan.scene_count == 4


@pytest.mark.asyncio
async def test_script_longer_than_ten_scenes_is_truncated():
    script = "\n".join(f'Scene {i}: Shot number {i}\nHERO: "Line {i}"' for i in range(1, 13))
    plan = await plan_scenes(script, planner=FakePlanner())
    assert plan.mode == PlanMode.SCRIPT
    assert plan.scene_count == 10
    assert plan.scenes[-1].startswith("Shot number 10")


@pytest.mark.asyncio
async def test_single_scene_script_falls_back_to_idea_planning():
    planner = FakePlanner(count=3)
    plan = await plan_scenes('Scene 1: A dog on a beach\nDOG: "Woof"', planner=planner)
    assert plan.mode == PlanMode.IDEA
    assert plan.scene_count == 3
    assert planner.count_calls


@pytest.mark.asyncio
async def test_idea_mode_uses_inferred_count():
    planner = FakePlanner(count=5)
    plan = await plan_scenes("A lone astronaut discovers a signal on an uncharted moon", planner=planner)
    assert plan.mode == PlanMode.IDEA
    assert plan.scene_count == 5
    assert planner.plan_calls[0][1] == 5


@pytest.mark.asyncio
async def test_inferred_count_is_clamped_to_eight():
    plan = await plan_scenes("A robot builds a city", planner=FakePlanner(count=40))
    assert plan.scene_count == 8


@pytest.mark.asyncio
@pytest.mark.parametrize("hint,expected", [(1, 2), (4, 4), (25, 10)])
async def test_hint_is_clamped(hint, expected):
    planner = FakePlanner()
    plan = await plan_scenes("A detective walks in the rain", scene_count_hint=hint, planner=planner)
    assert plan.scene_count == expected
    assert planner.count_calls == []


@pytest.mark.asyncio
async def test_short_planner_output_is_padded():
    planner = FakePlanner(scenes=["Only one scene"])
    plan = await plan_scenes("A woman sails across the ocean", scene_count_hint=3, planner=planner)
    assert plan.scenes[0] == "Only one scene"
    assert plan.scenes[1:] == [
        "A woman sails across the ocean - scene 2",
        "A woman sails across the ocean - scene 3",
    ]


@pytest.mark.asyncio
async def test_count_failure_defaults_to_three():
    class BrokenCounter(FakePlanner):
        async def decide_scene_count(self, prompt):
            raise RuntimeError("model offline")

    plan = await plan_scenes("A hero rides into town", planner=BrokenCounter())
    assert plan.scene_count == 3


@pytest.mark.asyncio
async def test_planner_failure_yields_generic_plan():
    class BrokenPlanner(FakePlanner):
        async def plan_scenes(self, prompt, count):
            raise RuntimeError("boom")

    plan = await plan_scenes("A hero rides into town", planner=BrokenPlanner(count=6))
    assert plan == fallback_plan("A hero rides into town")
    assert plan.scene_count == 3


@pytest.mark.asyncio
async def test_template_planner_is_default():
    plan = await plan_scenes("An epic adventure of a hero exploring in the mountains")
    assert plan.mode == PlanMode.IDEA
    assert 2 <= plan.scene_count <= 8
    assert plan.scenes[0].startswith("Introduction to the quest or journey:")
    assert "establishing shot, wide angle" in plan.scenes[0]
    assert "concluding scene, emotional resolution" in plan.scenes[-1]


# ---------------------------------------------------------------------------
# Heuristic scene counting
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "prompt,expected",
    [
        ("A cat sleeps", 3),
        ("A short film about a cat", 2),
        ("An epic saga of a fallen kingdom", 5),
        ("An epic and detailed journey across the galaxy", 6),
    ],
)
def test_keyword_scene_counter(prompt, expected):
    assert KeywordSceneCounter().count(prompt) == expected


def test_keyword_scene_counter_never_exceeds_max():
    prompt = "An epic long detailed journey with a transformation, then a battle, then a loss, finally a return"
    assert KeywordSceneCounter(default=6).count(prompt) == 8


@pytest.mark.asyncio
async def test_template_planner_scene_shape():
    scenes = await TemplateStoryPlanner().plan_scenes("A detective is searching in the old harbor", 3)
    assert len(scenes) == 3
    assert scenes[0].startswith("Introduction to characters and setting: detective is searching")
    assert "in the old" in scenes[0]
    assert scenes[0].endswith("inspired by: A detective is searching in the old harbor")


# ---------------------------------------------------------------------------
# Frame tasks
# ---------------------------------------------------------------------------


def test_scene_seed_is_deterministic():
    assert scene_seed(12345, 0) == (12345 * 1000) % 99999
    assert scene_seed(12345, 3) == (12345 * 1000 + 3) % 99999
    assert scene_seed(12345, 3) == scene_seed(12345, 3)


def test_build_frame_tasks():
    plan = ScenePlan(scenes=["a", "b", "c"], scene_count=3, dialogs=[None, "HI: hello", None])
    tasks = build_frame_tasks(plan, aspect_ratio="9:16")
    assert [t.scene_index for t in tasks] == [0, 1, 2]
    assert [t.prompt for t in tasks] == ["a", "b", "c"]
    assert tasks[1].dialog == "HI: hello"
    assert all(t.aspect_ratio == "9:16" for t in tasks)
    assert len({t.seed for t in tasks}) == 3
    assert all(t.enhanced_frame is None and t.video_task is None for t in tasks)


def test_scene_plan_rejects_mismatched_count():
    with pytest.raises(ValueError):
        ScenePlan(scenes=["a", "b"], scene_count=3)


def test_scene_plan_rejects_out_of_range_count():
    with pytest.raises(ValueError):
        ScenePlan(scenes=["a"], scene_count=1)


@pytest.mark.asyncio
async def test_script_actions_reach_frame_tasks():
    plan = await plan_scenes(FOUR_SCENE_SCRIPT, planner=FakePlanner())

    assert plan.actions[0] == "The captain studies a flickering console."
    assert plan.actions[1] is None
    tasks = build_frame_tasks(plan)
    assert [t.action for t in tasks] == list(plan.actions)


def test_idea_plans_have_empty_action_slots():
    plan = ScenePlan(scenes=["a", "b"], scene_count=2)
    assert plan.actions == [None, None]
    with pytest.raises(ValueError):
        ScenePlan(scenes=["a", "b"], scene_count=2, actions=["x"])
