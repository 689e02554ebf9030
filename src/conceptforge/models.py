"""Pydantic data models for the ideation pipeline."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Record(BaseModel):
    """Base for records exchanged with clients as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """Dump to the JSON shape clients expect."""
        return self.model_dump(mode="json", by_alias=True)


class IdeaTags(Record):
    """Tone, visual style and risk level of an idea."""

    tone: str = ""
    visual: str = ""
    risk: str = ""


class Idea(Record):
    """One of the ten first-round creative directions."""

    id: int = 0
    title: str = ""
    hook: str = ""
    description: str = ""
    tags: IdeaTags = Field(default_factory=IdeaTags)
    scenes: list[str] = Field(default_factory=list)


class Variation(Record):
    """A lettered execution of a selected idea."""

    letter: str = ""
    title: str = ""
    description: str = ""
    shift: str = ""


class VariationGroup(Record):
    """The three variations generated for one selected idea."""

    original_id: int = 0
    original_title: str = ""
    variations: list[Variation] = Field(default_factory=list)


class StoryboardFrame(Record):
    """One storyboard panel of a final concept."""

    frame_number: int = 0
    timing: str = ""
    shot_type: str = ""
    visual: str = ""
    action: str = ""
    audio: str = ""
    transition: str = ""
    image_url: str | None = None


class Concept(Record):
    """A fully developed, presentation-ready concept."""

    number: int = 0
    title: str = ""
    tagline: str = ""
    description: str = ""
    storyboard_frames: list[StoryboardFrame] = Field(default_factory=list)
    visual_references: list[str] = Field(default_factory=list)
    production_notes: list[str] = Field(default_factory=list)
    rationale: str = ""


# --- Requests ---


class IdeasRequest(Record):
    brief: str = ""


class VariationsRequest(Record):
    brief: str = ""
    selected_ideas: list[Idea] = Field(default_factory=list)


class ConceptsRequest(Record):
    brief: str = ""
    selected_variations: list[Variation] = Field(default_factory=list)


class RefineRequest(Record):
    brief: str = ""
    concept: Concept | None = None
    feedback: str = ""


class FrameImageRequest(Record):
    frame: StoryboardFrame | None = None
    concept_title: str = ""
    concept_description: str = ""


# --- Results ---


class StageResult(Record):
    """Common flags of every stage result.

    ``fallback`` marks a fully synthesized result, ``partial`` marks a result
    where some records did not come from the model.
    """

    fallback: bool = False
    partial: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Dump to JSON, leaving out flags that are not set."""
        payload = super().to_payload()
        for flag in ("fallback", "partial"):
            if not payload[flag]:
                del payload[flag]
        return payload


class IdeasResult(StageResult):
    ideas: list[Idea]


class VariationsResult(StageResult):
    variations: list[VariationGroup]


class ConceptsResult(StageResult):
    concepts: list[Concept]


class RefineResult(StageResult):
    concept: Concept


class FrameImageResult(Record):
    image_url: str | None = None
