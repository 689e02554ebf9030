"""Schema repair and cardinality normalization of parsed model output.

Every function takes whatever JSON the extractor produced and returns fully
typed records of the exact expected cardinality, together with the list of
repairs that were needed to get there.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .fallback import (
    IDEA_COUNT,
    SCENE_COUNT,
    VARIATION_LETTERS,
    fallback_concept,
    fallback_frame,
    fallback_idea,
    fallback_scene,
    fallback_variation,
    fallback_variation_group,
    fit_frames,
)
from .models import Concept, Idea, IdeaTags, StoryboardFrame, Variation, VariationGroup

T = TypeVar("T")


@dataclass
class Normalized(Generic[T]):
    """Normalized records plus an account of what had to be repaired.

    ``backfilled`` counts whole records that were synthesized because the
    model did not supply them.
    """

    records: T
    violations: list[str] = field(default_factory=list)
    backfilled: int = 0


def _text(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _texts(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in (_text(v) for v in value) if item]


def _dicts(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _pick(item: dict, key: str, default: str, label: str, violations: list[str]) -> str:
    value = _text(item.get(key))
    if value:
        return value
    violations.append(f"{label}: missing {key}")
    return default


def _align(items: list[dict], key: str, wanted: list[Any]) -> list[dict | None]:
    """Line ``items`` up with ``wanted`` keys.

    Keys are trusted only when every item carries a distinct key drawn from
    ``wanted`` (and ``wanted`` itself has no duplicates); the items then take
    the slots they name. Otherwise items are matched by position. Slots
    left over stay ``None``.
    """
    keys = [item.get(key) for item in items]
    trusted = (
        len(set(wanted)) == len(wanted)
        and all(k in wanted for k in keys)
        and len(set(keys)) == len(keys)
    )
    if not trusted:
        return [items[i] if i < len(items) else None for i in range(len(wanted))]

    by_key = dict(zip(keys, items))
    return [by_key.get(want) for want in wanted]


def normalize_ideas(raw: Any, brief: str) -> Normalized[list[Idea]]:
    """Exactly ten ideas with ids 1..10 and four scenes each."""
    items = raw if isinstance(raw, list) else []
    result: Normalized[list[Idea]] = Normalized(records=[])
    violations = result.violations
    if len(items) > IDEA_COUNT:
        violations.append(f"dropped {len(items) - IDEA_COUNT} extra ideas")

    for i in range(IDEA_COUNT):
        template = fallback_idea(brief, i)
        item = items[i] if i < len(items) else None
        if not isinstance(item, dict):
            violations.append(f"idea {i + 1}: missing, used template")
            result.records.append(template)
            result.backfilled += 1
            continue

        label = f"idea {i + 1}"
        if item.get("id") != i + 1:
            violations.append(f"{label}: renumbered from {item.get('id')!r}")
        title = _pick(item, "title", template.title, label, violations)
        tags = item.get("tags") if isinstance(item.get("tags"), dict) else {}
        scenes = _texts(item.get("scenes"))
        if len(scenes) != SCENE_COUNT:
            violations.append(f"{label}: {len(scenes)} scenes, expected {SCENE_COUNT}")
        scenes = scenes[:SCENE_COUNT] + [
            fallback_scene(title, j) for j in range(len(scenes), SCENE_COUNT)
        ]

        result.records.append(
            Idea(
                id=i + 1,
                title=title,
                hook=_pick(item, "hook", template.hook, label, violations),
                description=_pick(
                    item, "description", template.description, label, violations,
                ),
                tags=IdeaTags(
                    tone=_pick(tags, "tone", template.tags.tone, label, violations),
                    visual=_pick(
                        tags, "visual", template.tags.visual, label, violations,
                    ),
                    risk=_pick(tags, "risk", template.tags.risk, label, violations),
                ),
                scenes=scenes,
            ),
        )

    return result


def _normalize_group(
    item: dict,
    template: VariationGroup,
    result: Normalized[list[VariationGroup]],
) -> VariationGroup:
    label = f"group {template.original_id}"
    raw_variations = _dicts(item.get("variations"))
    if len(raw_variations) != len(VARIATION_LETTERS):
        result.violations.append(
            f"{label}: {len(raw_variations)} variations, "
            f"expected {len(VARIATION_LETTERS)}",
        )

    variations = []
    for j, letter in enumerate(VARIATION_LETTERS):
        if j >= len(raw_variations):
            variations.append(fallback_variation(template.original_title, j))
            result.backfilled += 1
            continue
        raw = raw_variations[j]
        stock = template.variations[j]
        if raw.get("letter") != letter:
            result.violations.append(
                f"{label}: variation {j + 1} relettered to {letter}",
            )
        variations.append(
            Variation(
                letter=letter,
                title=_pick(raw, "title", stock.title, label, result.violations),
                description=_pick(
                    raw, "description", stock.description, label, result.violations,
                ),
                shift=_pick(raw, "shift", stock.shift, label, result.violations),
            ),
        )

    return VariationGroup(
        original_id=template.original_id,
        original_title=template.original_title,
        variations=variations,
    )


def normalize_variation_groups(
    raw: Any,
    ideas: list[Idea],
) -> Normalized[list[VariationGroup]]:
    """One group per selected idea, each with variations A, B and C."""
    items = _dicts(raw)
    result: Normalized[list[VariationGroup]] = Normalized(records=[])
    if len(items) > len(ideas):
        result.violations.append(f"dropped {len(items) - len(ideas)} extra groups")

    slots = _align(items, "originalId", [idea.id for idea in ideas])
    for i, (idea, item) in enumerate(zip(ideas, slots)):
        template = fallback_variation_group(idea, i)
        if item is None:
            result.violations.append(
                f"group {template.original_id}: missing, used template",
            )
            result.records.append(template)
            result.backfilled += 1
            continue
        result.records.append(_normalize_group(item, template, result))

    return result


def normalize_frames(
    raw: Any,
    title: str,
    count: int,
    duration: int,
    violations: list[str],
    label: str = "concept",
) -> list[StoryboardFrame]:
    """Repair frame fields, then truncate or pad to ``count`` frames."""
    items = _dicts(raw)
    if len(items) != count:
        violations.append(f"{label}: {len(items)} frames, fitted to {count}")

    frames = []
    for i, item in enumerate(items[:count]):
        stock = fallback_frame(title, i, count, duration)
        frame_label = f"{label} frame {i + 1}"
        if item.get("frameNumber") != i + 1:
            violations.append(f"{frame_label}: renumbered")
        image_url = item.get("imageUrl")
        frames.append(
            StoryboardFrame(
                frame_number=i + 1,
                timing=_pick(item, "timing", stock.timing, frame_label, violations),
                shot_type=_pick(item, "shotType", "Wide", frame_label, violations),
                visual=_pick(item, "visual", stock.visual, frame_label, violations),
                action=_pick(item, "action", stock.action, frame_label, violations),
                audio=_pick(item, "audio", stock.audio, frame_label, violations),
                transition=_pick(
                    item, "transition", stock.transition, frame_label, violations,
                ),
                image_url=image_url if isinstance(image_url, str) and image_url else None,
            ),
        )

    return fit_frames(frames, title, count, duration)


def normalize_concept(
    item: dict,
    number: int,
    template: Concept,
    frame_count: int,
    duration: int,
    violations: list[str],
) -> Concept:
    """Repair one concept, taking missing fields from ``template``."""
    label = f"concept {number}"
    if item.get("number") != number:
        violations.append(f"{label}: renumbered from {item.get('number')!r}")
    title = _pick(item, "title", template.title, label, violations)

    visual_references = _texts(item.get("visualReferences"))
    if not visual_references:
        violations.append(f"{label}: missing visualReferences")
        visual_references = list(template.visual_references)
    production_notes = _texts(item.get("productionNotes"))
    if not production_notes:
        violations.append(f"{label}: missing productionNotes")
        production_notes = list(template.production_notes)

    return Concept(
        number=number,
        title=title,
        tagline=_pick(item, "tagline", template.tagline, label, violations),
        description=_pick(item, "description", template.description, label, violations),
        storyboard_frames=normalize_frames(
            item.get("storyboardFrames"),
            title,
            frame_count,
            duration,
            violations,
            label=label,
        ),
        visual_references=visual_references,
        production_notes=production_notes,
        rationale=_pick(item, "rationale", template.rationale, label, violations),
    )


def normalize_concepts(
    raw: Any,
    variations: list[Variation],
    frame_count: int,
    duration: int,
) -> Normalized[list[Concept]]:
    """One concept per selected variation, numbered by selection order."""
    items = _dicts(raw)
    result: Normalized[list[Concept]] = Normalized(records=[])
    if len(items) > len(variations):
        result.violations.append(
            f"dropped {len(items) - len(variations)} extra concepts",
        )

    slots = _align(items, "number", list(range(1, len(variations) + 1)))
    for i, (variation, item) in enumerate(zip(variations, slots)):
        template = fallback_concept(variation, i, frame_count, duration)
        if item is None:
            result.violations.append(f"concept {i + 1}: missing, used fallback")
            result.records.append(template)
            result.backfilled += 1
            continue
        result.records.append(
            normalize_concept(
                item, i + 1, template, frame_count, duration, result.violations,
            ),
        )

    return result
