"""Prompt builders for each pipeline stage.

Prompts steer the model toward the expected shape and count; they never
guarantee it. Normalization handles whatever comes back.
"""

import json

from .fallback import IDEA_COUNT
from .models import Concept, Idea, Variation

_ROLE = "You are an expert creative director"


def ideas_prompt(brief: str) -> str:
    return (
        f"{_ROLE} helping develop advertising concepts. "
        f"Generate {IDEA_COUNT} creative directions from this brief.\n\n"
        f"BRIEF:\n{brief}\n\n"
        f"Generate exactly {IDEA_COUNT} creative concepts. Each should be:\n"
        "- Wildly different from the others (different tones, approaches, risk levels)\n"
        "- Range from safe to bold\n"
        "- Include variety: satirical, emotional, absurd, minimal, cinematic, etc.\n"
        "- Adaptable to the brief's product/brand\n\n"
        "For each concept, provide:\n"
        "1. A short, punchy title (3-5 words)\n"
        "2. A one-sentence hook (the core idea in under 20 words)\n"
        "3. A 2-3 sentence description explaining the concept\n"
        "4. 3 tags: one for tone, one for visual style, one for risk level\n"
        "5. 4 scene beats (opening, build, turn, resolution)\n\n"
        f"Format as a JSON array of exactly {IDEA_COUNT} objects containing:\n"
        "id (1-10), title, hook, description, tags { tone, visual, risk }, "
        "scenes (4 strings).\n"
        "Return ONLY the JSON array, no other text."
    )


def variations_prompt(brief: str, ideas: list[Idea]) -> str:
    ideas_text = "\n\n".join(
        f"Concept {idea.id}: {idea.title}\n{idea.description}" for idea in ideas
    )
    count = len(ideas)
    return (
        f"{_ROLE} developing variations on selected concepts.\n\n"
        f"ORIGINAL BRIEF:\n{brief}\n\n"
        f"SELECTED CONCEPTS:\n{ideas_text}\n\n"
        "For each concept above, generate 3 distinct variations. Each variation should:\n"
        "- Maintain the core idea but shift tone, pacing, or structure\n"
        "- Offer a meaningfully different execution\n"
        '- Include a clear "shift" explanation\n\n'
        "Common variation types: Extended Cut, Ensemble Version, Inverted, "
        "Darker/Lighter tone, different setting or time period, different "
        "visual style.\n\n"
        f"Format as a JSON array with EXACTLY {count} objects, one per concept, "
        "in the order given:\n"
        "[\n"
        "  {\n"
        '    "originalId": <concept number>,\n'
        '    "originalTitle": "<concept title>",\n'
        '    "variations": [\n'
        '      {"letter": "A", "title": "...", "description": "...", "shift": "..."},\n'
        '      {"letter": "B", "title": "...", "description": "...", "shift": "..."},\n'
        '      {"letter": "C", "title": "...", "description": "...", "shift": "..."}\n'
        "    ]\n"
        "  }\n"
        "]\n\n"
        "Return ONLY the JSON array, no other text."
    )


def _frame_schema(frame_count: int, duration: int) -> str:
    return (
        f"- storyboardFrames (exactly {frame_count} frames for a {duration}-second spot)\n"
        "  - frameNumber\n"
        '  - timing (e.g. "0:00-0:04")\n'
        "  - shotType (Wide, Medium, Close-up, Extreme Close-up, POV, ...)\n"
        "  - visual (composition, lighting, subjects)\n"
        "  - action\n"
        "  - audio (dialogue, sound effects or music cues)\n"
        "  - transition (Cut, Fade, Dissolve, ...)\n"
    )


def concepts_prompt(
    brief: str,
    variations: list[Variation],
    frame_count: int,
    duration: int,
) -> str:
    variations_text = "\n\n---\n\n".join(
        f"Variation {i + 1}: {v.title}\n{v.description}\nShift: {v.shift}"
        for i, v in enumerate(variations)
    )
    count = len(variations)
    return (
        f"{_ROLE} developing final presentation-ready concepts with detailed "
        "storyboard frames.\n\n"
        f"ORIGINAL BRIEF:\n{brief}\n\n"
        f"SELECTED VARIATIONS:\n{variations_text}\n\n"
        f"Generate EXACTLY {count} final concepts as a JSON array with EXACTLY "
        f"{count} objects, concept N developing variation N.\n"
        "Each object must include:\n"
        "- number\n"
        "- title\n"
        "- tagline\n"
        "- description (3-4 sentences)\n"
        f"{_frame_schema(frame_count, duration)}"
        "- visualReferences (3-4 bullets)\n"
        "- productionNotes (3-4 bullets)\n"
        "- rationale (2-3 sentences)\n\n"
        "Return ONLY valid JSON."
    )


def refine_prompt(
    brief: str,
    concept: Concept,
    feedback: str,
    frame_count: int,
    duration: int,
) -> str:
    current = concept.model_dump(
        mode="json",
        by_alias=True,
        exclude={"storyboard_frames": {"__all__": {"image_url"}}},
    )
    return (
        f"{_ROLE} refining a concept based on client feedback.\n\n"
        f"ORIGINAL BRIEF:\n{brief}\n\n"
        f"CURRENT CONCEPT:\n{json.dumps(current, indent=2)}\n\n"
        f"CLIENT FEEDBACK:\n{feedback}\n\n"
        "Revise the concept to address the feedback while maintaining what "
        "works. Return a JSON object with the same structure as the current "
        "concept:\n"
        "- number, title, tagline, description\n"
        f"{_frame_schema(frame_count, duration)}"
        "- visualReferences, productionNotes, rationale\n\n"
        "Return ONLY the JSON object, no other text."
    )
