"""Tests for the Pydantic models."""

from conceptforge.models import (
    Concept,
    IdeasResult,
    RefineRequest,
    StoryboardFrame,
    VariationGroup,
)
from fakes import make_concept, make_idea


def test_models_instantiation() -> None:
    frame = StoryboardFrame(frame_number=1, timing="0:00-0:04", shot_type="Wide")
    assert frame.image_url is None

    concept = Concept(number=1, title="My Spot", storyboard_frames=[frame])
    assert concept.storyboard_frames[0].shot_type == "Wide"
    assert concept.visual_references == []


def test_models_accept_camel_case_json() -> None:
    group = VariationGroup.model_validate(
        {
            "originalId": 4,
            "originalTitle": "The Expert Opinion",
            "variations": [{"letter": "A", "title": "T", "description": "D", "shift": "S"}],
        },
    )
    assert group.original_id == 4
    assert group.variations[0].letter == "A"


def test_payload_uses_camel_case() -> None:
    payload = make_concept(1).to_payload()
    assert "storyboardFrames" in payload
    assert "imageUrl" in payload["storyboardFrames"][0]
    assert "shotType" in payload["storyboardFrames"][0]


def test_partial_client_records_are_accepted() -> None:
    request = RefineRequest.model_validate(
        {"brief": "b", "concept": {"title": "Only a title"}, "feedback": "f"},
    )
    assert request.concept.title == "Only a title"
    assert request.concept.storyboard_frames == []


def test_result_payload_omits_unset_flags() -> None:
    result = IdeasResult(ideas=[make_idea(1)])
    assert "fallback" not in result.to_payload()
    assert "partial" not in result.to_payload()

    degraded = IdeasResult(ideas=[make_idea(1)], fallback=True, partial=True)
    payload = degraded.to_payload()
    assert payload["fallback"] is True
    assert payload["partial"] is True
