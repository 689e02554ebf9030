"""Deterministic placeholder content used when the model cannot deliver.

Every function here is pure: the same input always yields the same,
schema-valid output, so they are safe to call unconditionally as a repair
step.
"""

import re

from .models import Concept, Idea, IdeaTags, StoryboardFrame, Variation, VariationGroup

IDEA_COUNT = 10
SCENE_COUNT = 4
VARIATION_LETTERS = ("A", "B", "C")

# title, hook, description, tone, visual, risk
_IDEA_TEMPLATES = (
    (
        "The Expert Opinion",
        "Experts analyzed it for hours. Their conclusion? It just works.",
        "A panel of overly serious experts examines {subject} with absurd "
        "intensity, only to deliver the simplest verdict possible.",
        "Satirical",
        "Institutional",
        "Safe",
    ),
    (
        "Small Moments",
        "The biggest difference shows up in the smallest moments.",
        "A quiet, observational piece that finds {subject} in the everyday "
        "rituals people barely notice.",
        "Emotional",
        "Naturalistic",
        "Safe",
    ),
    (
        "Nothing But The Product",
        "No actors, no script, just the thing itself.",
        "A minimal study of {subject}: one object, one light, one line of copy.",
        "Minimal",
        "Graphic",
        "Safe",
    ),
    (
        "The Long Way Round",
        "Life without it is an epic quest. Life with it is a shortcut.",
        "An overblown adventure shows the ridiculous lengths people go to "
        "without {subject}, then resolves in a single cut.",
        "Absurd",
        "Cinematic",
        "Moderate",
    ),
    (
        "Letters From Fans",
        "Real words from real people, read by the people who wrote them.",
        "Customers read what {subject} means to them, unpolished and direct "
        "to camera.",
        "Heartfelt",
        "Documentary",
        "Moderate",
    ),
    (
        "The Rival Confesses",
        "Even the competition has a hard time arguing with it.",
        "A mock confessional where a fictional rival admits, reluctantly, "
        "why {subject} keeps winning.",
        "Comedic",
        "Interview",
        "Moderate",
    ),
    (
        "Future Artifact",
        "Archaeologists of the future already know what mattered.",
        "A museum of the far future presents {subject} as the defining "
        "artifact of our era.",
        "Speculative",
        "Sci-fi",
        "Bold",
    ),
    (
        "One Take",
        "Thirty seconds, one camera move, no cuts.",
        "A single continuous shot travels through a world shaped by {subject}, "
        "revealing the payoff only at the end.",
        "Cinematic",
        "Choreographed",
        "Bold",
    ),
    (
        "The Silent Spot",
        "Turn the sound off. You will still get it.",
        "A fully silent execution built on visual storytelling around "
        "{subject}, designed to stop the scroll.",
        "Provocative",
        "High-contrast",
        "Bold",
    ),
    (
        "Flip The Script",
        "What if everything you assumed was backwards?",
        "An inverted narrative that starts at the happy ending and rewinds to "
        "show how {subject} made it possible.",
        "Playful",
        "Stylized",
        "Bold",
    ),
)

_SCENE_BEATS = (
    "Opening: {title} sets the scene",
    "Build: the premise escalates around the product",
    "Turn: an unexpected reveal reframes the story",
    "Resolution: the brand lands the message",
)

# suffix, description, shift
_VARIATION_TEMPLATES = (
    (
        "Character-Led",
        "Push the same core idea through a human performance lens with "
        "clearer emotional beats.",
        "Character-driven execution",
    ),
    (
        "Visual System",
        "Keep the concept but move to a more graphic, design-forward visual "
        "treatment.",
        "Visual language shift",
    ),
    (
        "Fast Cut",
        "Compress into a sharper, high-energy rhythm while preserving the same "
        "message.",
        "Pacing and structure shift",
    ),
)

# shot type, visual, action, audio, transition
_FRAME_BEATS = (
    (
        "Wide",
        "Establishing shot introducing the world of {title}.",
        "The setting comes to life as the spot opens.",
        "Ambient sound builds under a soft music bed.",
        "Cut",
    ),
    (
        "Medium",
        "Our lead is introduced in context, framed by the environment.",
        "The lead goes about their routine, unaware of what is coming.",
        "Natural room tone, music continues.",
        "Cut",
    ),
    (
        "Close-up",
        "A telling detail hints at the central tension.",
        "A small gesture reveals the problem.",
        "A single sound effect punctuates the moment.",
        "Cut",
    ),
    (
        "Medium",
        "The premise escalates, the frame filling with energy.",
        "The situation builds toward its peak.",
        "Music swells.",
        "Cut",
    ),
    (
        "Extreme Close-up",
        "The turn: the product enters the story.",
        "The product changes the direction of the scene.",
        "Beat of silence, then the music returns.",
        "Cut",
    ),
    (
        "Wide",
        "Payoff: the world of {title} resolved.",
        "The lead enjoys the result with simple satisfaction.",
        "Upbeat music, natural ambient sound.",
        "Cut",
    ),
    (
        "Close-up",
        "Product hero shot with clean lighting, logo clearly visible.",
        "The product sits perfectly composed.",
        "Voiceover delivers the line.",
        "Cut",
    ),
    (
        "Wide",
        "End card with the tagline over a clean brand background.",
        "The tagline resolves on screen.",
        "Music out.",
        "Fade to black",
    ),
)


def brief_subject(brief: str) -> str:
    """Condense a brief to a short phrase usable inside template copy."""
    text = " ".join((brief or "").split())
    first = re.split(r"(?<=[.!?])\s", text, maxsplit=1)[0].rstrip(".!?")
    if len(first) > 80:
        first = first[:80].rsplit(" ", 1)[0]
    return first or "the brand"


def fallback_idea(brief: str, index: int) -> Idea:
    """Template idea for slot ``index`` (0-based)."""
    title, hook, description, tone, visual, risk = _IDEA_TEMPLATES[
        index % len(_IDEA_TEMPLATES)
    ]
    subject = brief_subject(brief)
    return Idea(
        id=index + 1,
        title=title,
        hook=hook,
        description=description.format(subject=subject),
        tags=IdeaTags(tone=tone, visual=visual, risk=risk),
        scenes=[beat.format(title=title) for beat in _SCENE_BEATS],
    )


def fallback_ideas(brief: str) -> list[Idea]:
    return [fallback_idea(brief, i) for i in range(IDEA_COUNT)]


def fallback_scene(title: str, index: int) -> str:
    return _SCENE_BEATS[index % SCENE_COUNT].format(title=title)


def fallback_variation(idea_title: str, index: int) -> Variation:
    """Template variation lettered by its position in the group."""
    suffix, description, shift = _VARIATION_TEMPLATES[index]
    return Variation(
        letter=VARIATION_LETTERS[index],
        title=f"{idea_title}: {suffix}",
        description=description,
        shift=shift,
    )


def fallback_variation_group(idea: Idea, index: int) -> VariationGroup:
    title = idea.title or f"Idea {index + 1}"
    return VariationGroup(
        original_id=idea.id or index + 1,
        original_title=title,
        variations=[
            fallback_variation(title, i) for i in range(len(VARIATION_LETTERS))
        ],
    )


def fallback_variation_groups(ideas: list[Idea]) -> list[VariationGroup]:
    return [fallback_variation_group(idea, i) for i, idea in enumerate(ideas)]


def frame_timing(index: int, count: int, duration: int) -> str:
    """Time range of slot ``index`` when ``duration`` seconds is split evenly."""
    start = index * duration // count
    end = (index + 1) * duration // count
    return f"{start // 60}:{start % 60:02d}-{end // 60}:{end % 60:02d}"


def _beat_for(index: int, count: int) -> tuple[str, str, str, str, str]:
    # Spread the beats so short storyboards still open wide and end on the
    # end card.
    last = len(_FRAME_BEATS) - 1
    if count <= 1:
        return _FRAME_BEATS[last]
    return _FRAME_BEATS[round(index * last / (count - 1))]


def fallback_frame(title: str, index: int, count: int, duration: int) -> StoryboardFrame:
    shot_type, visual, action, audio, transition = _beat_for(index, count)
    return StoryboardFrame(
        frame_number=index + 1,
        timing=frame_timing(index, count, duration),
        shot_type=shot_type,
        visual=visual.format(title=title),
        action=action,
        audio=audio,
        transition=transition,
    )


def fallback_frames(title: str, count: int, duration: int) -> list[StoryboardFrame]:
    return [fallback_frame(title, i, count, duration) for i in range(count)]


def fit_frames(
    frames: list[StoryboardFrame],
    title: str,
    count: int,
    duration: int,
) -> list[StoryboardFrame]:
    """Truncate or pad ``frames`` to ``count`` with contiguous numbering."""
    fitted = []
    for i in range(count):
        if i < len(frames):
            fitted.append(frames[i].model_copy(update={"frame_number": i + 1}))
        else:
            fitted.append(fallback_frame(title, i, count, duration))
    return fitted


def fallback_concept(
    variation: Variation,
    index: int,
    frame_count: int,
    duration: int,
) -> Concept:
    """Concept built from the selected variation at position ``index``."""
    title = variation.title or f"Concept {index + 1}"
    shift = variation.shift or "Refined from selected variation"
    return Concept(
        number=index + 1,
        title=title,
        tagline=shift,
        description=(
            variation.description
            or "Concept draft generated from selected variation."
        ),
        storyboard_frames=fallback_frames(title, frame_count, duration),
        visual_references=[
            f"Mood board built around {title}",
            "Clean, high-end commercial lighting",
            "Naturalistic performances with a clear product moment",
        ],
        production_notes=[
            f"Tone: {shift}",
            f"Format: {duration}-second spot",
            "Storyboard drafted automatically; review before production",
        ],
        rationale=(
            "Generated as a fallback because the model did not return this "
            "concept."
        ),
    )


def fallback_concepts(
    variations: list[Variation],
    frame_count: int,
    duration: int,
) -> list[Concept]:
    return [
        fallback_concept(v, i, frame_count, duration) for i, v in enumerate(variations)
    ]


def fallback_refined_concept(
    concept: Concept,
    feedback: str,
    frame_count: int,
    duration: int,
) -> Concept:
    """The current concept with the feedback recorded as a refinement note."""
    title = concept.title or "Refined Concept"
    note = feedback or "Client requested refinements."
    description = f"{concept.description}\n\nRefinement note: {note}".strip()
    return concept.model_copy(
        update={
            "number": concept.number or 1,
            "title": title,
            "tagline": concept.tagline or "Refined from client feedback",
            "description": description,
            "storyboard_frames": fit_frames(
                concept.storyboard_frames, title, frame_count, duration,
            ),
            "rationale": concept.rationale or f"Revised to address: {note}",
        },
        deep=True,
    )
