"""Keyword-table classifiers used for scene count, style, mood and music inference.

Every classifier implements KeywordStrategy so the orchestrator and planners
can be handed an LLM-backed or otherwise smarter implementation without
changing call sites.
"""

import re
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

from moviepipe.schemas.storyboard import Environment, VisualStyle


def _contains(text: str, keyword: str) -> bool:
    """Whole-word match, allowing a plural suffix.

    'man' matches 'man' but not 'command' or 'many'; 'robot' matches 'robots'.
    """
    return re.search(rf"\b{re.escape(keyword)}(?:s|es)?\b", text) is not None


class KeywordStrategy(ABC):
    """Maps free text to a single label."""

    @abstractmethod
    def classify(self, text: str) -> str:
        ...


class KeywordTable(KeywordStrategy):
    """First-match keyword table.

    Entries are checked in order; the first label with any keyword present
    in the lowercased text wins, otherwise ``default`` is returned.
    """

    def __init__(self, entries: Sequence[tuple[str, Sequence[str]]], default: str):
        self.entries = [(label, tuple(k.lower() for k in keywords)) for label, keywords in entries]
        self.default = default

    def classify(self, text: str) -> str:
        lowered = text.lower()
        for label, keywords in self.entries:
            if any(_contains(lowered, k) for k in keywords):
                return label
        return self.default

    def all_matches(self, text: str) -> list[str]:
        """Every label whose keywords occur in text, in table order."""
        lowered = text.lower()
        return [
            label for label, keywords in self.entries
            if any(_contains(lowered, k) for k in keywords)
        ]


# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------

STORY_TYPE_TABLE = KeywordTable(
    [
        ("action", ["action", "fight", "battle"]),
        ("adventure", ["adventure", "journey", "quest"]),
        ("drama", ["drama", "emotional", "relationship"]),
        ("comedy", ["comedy", "funny", "humor"]),
    ],
    default="default",
)

MOOD_TABLE = KeywordTable(
    [
        ("happy", ["happy", "joyful", "cheerful", "bright", "sunny"]),
        ("sad", ["sad", "somber", "dark", "melancholy", "gloomy"]),
        ("exciting", ["exciting", "thrilling", "adventurous", "action-packed", "dynamic"]),
        ("calm", ["calm", "peaceful", "serene", "quiet", "gentle"]),
        ("mysterious", ["mysterious", "enigmatic", "puzzling", "secret", "hidden"]),
    ],
    default="engaging",
)

VISUAL_STYLE_TABLE = KeywordTable(
    [
        (VisualStyle.ANIME.value, ["anime", "cartoon"]),
        (VisualStyle.ARTISTIC.value, ["oil painting", "artistic", "watercolor"]),
        (VisualStyle.CYBERPUNK.value, ["cyberpunk", "futuristic", "neon"]),
    ],
    default=VisualStyle.REALISTIC.value,
)

ENVIRONMENT_TABLE = KeywordTable(
    [
        (Environment.URBAN.value, ["city", "urban", "street", "downtown"]),
        (Environment.SPACE.value, ["space", "galaxy", "planet", "moon", "astronaut", "spaceship"]),
        (Environment.NATURAL.value, ["forest", "nature", "ocean", "mountain"]),
    ],
    default=Environment.NATURAL.value,
)

CHARACTER_TABLE = KeywordTable(
    [
        (word, [word])
        for word in (
            "man", "woman", "person", "boy", "girl", "child",
            "character", "hero", "astronaut", "detective", "robot",
        )
    ],
    default="main character",
)

MUSIC_STYLE_TABLE = KeywordTable(
    [
        ("epic orchestral", ["action", "fight", "battle"]),
        ("emotional piano", ["sad", "emotional", "dramatic"]),
        ("upbeat", ["happy", "joyful", "celebration"]),
        ("ambient", ["mysterious", "suspense"]),
        ("nature", ["nature", "forest", "ocean"]),
    ],
    default="cinematic",
)

MUSIC_INSTRUMENTS = {
    "epic orchestral": "orchestra, drums, brass section, intense percussion",
    "emotional piano": "piano, strings, gentle melodies",
    "upbeat": "guitar, drums, bass, energetic rhythm",
    "ambient": "synthesizer, subtle pads, atmospheric sounds",
    "nature": "flute, harp, nature sounds, peaceful",
    "cinematic": "strings, piano, soft percussion",
}


# ---------------------------------------------------------------------------
# Scene count
# ---------------------------------------------------------------------------


class SceneCountStrategy(ABC):
    """Infers how many scenes a prompt needs."""

    @abstractmethod
    def count(self, prompt: str) -> int:
        ...


class KeywordSceneCounter(SceneCountStrategy):
    """Keyword and length driven scene counter, clamped to [minimum, maximum]."""

    LONGER = ("epic", "long", "detailed")
    SHORTER = ("short", "quick", "simple")
    COMPLEX = ("transformation", "evolution", "journey", "series of events", "multiple")
    # Connectors that usually separate story beats
    EVENT_MARKERS = (" then ", " after ", " before ", " finally ", " meanwhile ", " later ")

    def __init__(self, default: int = 3, minimum: int = 2, maximum: int = 8, long_prompt_words: int = 40):
        self.default = default
        self.minimum = minimum
        self.maximum = maximum
        self.long_prompt_words = long_prompt_words

    def count(self, prompt: str) -> int:
        lowered = f" {prompt.lower()} "
        count = self.default
        if any(_contains(lowered, k) for k in self.LONGER):
            count += 2
        if any(_contains(lowered, k) for k in self.SHORTER):
            count = max(self.minimum, count - 1)
        if any(_contains(lowered, k) for k in self.COMPLEX):
            count += 1
        events = sum(lowered.count(marker) for marker in self.EVENT_MARKERS)
        if events >= 2 or len(prompt.split()) >= self.long_prompt_words:
            count += 1
        return max(self.minimum, min(self.maximum, count))


def first_keyword_phrase(
    text: str,
    keywords: Iterable[str],
    span: int = 3,
    exact: bool = False,
) -> Optional[str]:
    """Return ``span`` words starting at the first word matching a keyword.

    Used by the template planner to lift short phrases such as
    "woman in red" out of the prompt. Returns None when nothing matches or
    the match sits too close to the end of the text.
    """
    words = text.split()
    for keyword in keywords:
        for i, word in enumerate(words):
            w = word.lower().strip(".,;:!?\"'")
            hit = w == keyword if exact else w.startswith(keyword)
            if hit and i + span <= len(words):
                return " ".join(words[i:i + span]).rstrip(".,;:!?")
    return None
