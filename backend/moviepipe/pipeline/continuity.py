"""Visual continuity extraction from a scene plan."""

from typing import Sequence

from moviepipe.schemas.storyboard import Environment, VisualContinuity, VisualStyle
from moviepipe.services.heuristics import (
    CHARACTER_TABLE,
    ENVIRONMENT_TABLE,
    MOOD_TABLE,
    VISUAL_STYLE_TABLE,
    KeywordStrategy,
    KeywordTable,
)


def extract_continuity(
    scene_prompts: Sequence[str],
    *,
    characters: KeywordTable = CHARACTER_TABLE,
    style: KeywordStrategy = VISUAL_STYLE_TABLE,
    environment: KeywordStrategy = ENVIRONMENT_TABLE,
    mood: KeywordStrategy = MOOD_TABLE,
) -> VisualContinuity:
    """Derive the shared style descriptor for every frame of a movie.

    Pure: the same prompts always produce the same VisualContinuity.

    Args:
        scene_prompts: Ordered scene descriptions of one ScenePlan.
        characters: Table whose every matching label becomes a character.
        style: Strategy picking one VisualStyle value.
        environment: Strategy picking one Environment value.
        mood: Strategy picking a mood word.

    Returns:
        VisualContinuity, falling back to main character / realistic /
        natural / engaging when nothing matches.
    """
    text = " ".join(scene_prompts)
    found = characters.all_matches(text)
    return VisualContinuity(
        characters=found or ["main character"],
        style=VisualStyle(style.classify(text)),
        environment=Environment(environment.classify(text)),
        mood=mood.classify(text),
    )
