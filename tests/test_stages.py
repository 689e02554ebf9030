import asyncio
import json
import time

import pytest

from conceptforge.config import PipelineConfig
from conceptforge.errors import ProviderConfigError, StageValidationError
from conceptforge.imagery import FrameImageFiller
from conceptforge.models import (
    ConceptsRequest,
    IdeasRequest,
    RefineRequest,
    VariationsRequest,
)
from conceptforge.stages import (
    ConceptFinalizer,
    ConceptRefiner,
    IdeaGenerator,
    StageState,
    VariationGenerator,
)
from fakes import (
    BRIEF,
    FakeImageModel,
    FakeTextModel,
    concepts_json,
    groups_json,
    ideas_json,
    make_concept,
    make_idea,
    make_variation,
)


@pytest.fixture
def config():
    return PipelineConfig(model_deadline_seconds=1.0, keepalive_seconds=0.5)


def _run(stage, request):
    return asyncio.run(stage.run(request))


def _collect(stage, request):
    async def drain():
        return [event async for event in stage.events(request)]

    return asyncio.run(drain())


# --- IdeaGenerator ---


def test_ideas_success(config) -> None:
    model = FakeTextModel("Here you go:\n" + ideas_json(10))
    result = _run(IdeaGenerator(model, config), IdeasRequest(brief=BRIEF))

    assert [idea.id for idea in result.ideas] == list(range(1, 11))
    assert result.ideas[0].title == "Idea 1"
    assert not result.fallback
    assert not result.partial
    prompt, max_tokens = model.calls[0]
    assert BRIEF in prompt
    assert max_tokens == config.budgets.ideas


@pytest.mark.parametrize("text", ["", "no json here", "[{broken", ideas_json(3)])
def test_ideas_always_ten(config, text) -> None:
    result = _run(IdeaGenerator(FakeTextModel(text), config), IdeasRequest(brief=BRIEF))

    assert [idea.id for idea in result.ideas] == list(range(1, 11))
    for idea in result.ideas:
        assert idea.title and idea.hook and idea.description
        assert len(idea.scenes) == 4
    assert result.partial


@pytest.mark.parametrize("brief", ["", "   ", "Too short to be a real brief.", " " * 60 + "x"])
def test_short_brief_is_rejected_without_model_call(config, brief) -> None:
    model = FakeTextModel(ideas_json(10))
    with pytest.raises(StageValidationError, match="at least 50 characters"):
        _run(IdeaGenerator(model, config), IdeasRequest(brief=brief))
    assert model.calls == []


def test_missing_text_model_is_a_configuration_error(config) -> None:
    with pytest.raises(ProviderConfigError):
        _run(IdeaGenerator(None, config), IdeasRequest(brief=BRIEF))


def test_model_timeout_falls_back_within_deadline() -> None:
    config = PipelineConfig(model_deadline_seconds=0.05, keepalive_seconds=1.0)
    model = FakeTextModel(ideas_json(10), delay=30)

    start = time.monotonic()
    result = _run(IdeaGenerator(model, config), IdeasRequest(brief=BRIEF))

    assert time.monotonic() - start < 1.0
    assert result.fallback
    assert result.partial
    assert len(result.ideas) == 10


def test_provider_error_falls_back(config) -> None:
    model = FakeTextModel(error=RuntimeError("503 overloaded"))
    result = _run(IdeaGenerator(model, config), IdeasRequest(brief=BRIEF))
    assert result.fallback
    assert result.to_payload()["fallback"] is True


def test_provider_configuration_error_is_not_absorbed(config) -> None:
    model = FakeTextModel(error=ProviderConfigError("API Key is missing"))
    with pytest.raises(ProviderConfigError, match="API Key is missing"):
        _run(IdeaGenerator(model, config), IdeasRequest(brief=BRIEF))


# --- Progress channel ---


def test_events_end_with_one_result(config) -> None:
    events = _collect(IdeaGenerator(FakeTextModel(ideas_json(10)), config), IdeasRequest(brief=BRIEF))

    states = [event.state for event in events]
    assert states == [
        StageState.VALIDATING,
        StageState.CALLING_MODEL,
        StageState.EXTRACTING,
        StageState.NORMALIZING,
        StageState.DONE,
    ]
    assert [event.kind for event in events].count("result") == 1
    assert events[-1].kind == "result"


def test_events_on_timeout(config) -> None:
    config = PipelineConfig(model_deadline_seconds=0.05, keepalive_seconds=1.0)
    events = _collect(
        IdeaGenerator(FakeTextModel(delay=30), config), IdeasRequest(brief=BRIEF),
    )
    assert StageState.TIMED_OUT in [event.state for event in events]
    assert events[-1].result.fallback


def test_keepalive_while_model_is_pending() -> None:
    config = PipelineConfig(model_deadline_seconds=1.0, keepalive_seconds=0.01)
    model = FakeTextModel(ideas_json(10), delay=0.1)
    events = _collect(IdeaGenerator(model, config), IdeasRequest(brief=BRIEF))

    heartbeats = [e for e in events if e.state is StageState.CALLING_MODEL]
    assert len(heartbeats) > 1
    assert events[-1].kind == "result"


def test_validation_happens_before_any_event(config) -> None:
    stage = IdeaGenerator(FakeTextModel(), config)
    with pytest.raises(StageValidationError):
        stage.events(IdeasRequest(brief="short"))


def test_validating_opens_the_channel_before_the_model_call(config) -> None:
    model = FakeTextModel(ideas_json(10))
    stage = IdeaGenerator(model, config)

    async def first_then_rest():
        channel = stage.events(IdeasRequest(brief=BRIEF))
        first = await channel.__anext__()
        calls_at_first = len(model.calls)
        rest = [event async for event in channel]
        return first, calls_at_first, rest

    first, calls_at_first, rest = asyncio.run(first_then_rest())

    assert first.state is StageState.VALIDATING
    assert calls_at_first == 0
    assert StageState.VALIDATING not in [e.state for e in rest]
    assert StageState.REJECTED not in [e.state for e in rest]


# --- VariationGenerator ---


@pytest.mark.parametrize("k", [1, 2, 3])
@pytest.mark.parametrize("per_group", [0, 2, 5])
def test_variations_cardinality(config, k, per_group) -> None:
    ideas = [make_idea(n) for n in range(1, k + 1)]
    model = FakeTextModel(groups_json(ideas, per_group))
    result = _run(
        VariationGenerator(model, config),
        VariationsRequest(brief=BRIEF, selected_ideas=ideas),
    )

    assert len(result.variations) == k
    for idea, group in zip(ideas, result.variations):
        assert group.original_id == idea.id
        assert [v.letter for v in group.variations] == ["A", "B", "C"]
    assert not result.fallback
    assert result.partial == (per_group < 3)


@pytest.mark.parametrize("k", [1, 2, 3])
def test_variations_from_malformed_text(config, k) -> None:
    ideas = [make_idea(n) for n in range(1, k + 1)]
    result = _run(
        VariationGenerator(FakeTextModel("Sorry, [I cannot] do that"), config),
        VariationsRequest(brief=BRIEF, selected_ideas=ideas),
    )
    assert result.fallback
    assert len(result.variations) == k
    for group in result.variations:
        assert [v.letter for v in group.variations] == ["A", "B", "C"]


def test_four_selected_ideas_are_rejected_without_model_call(config) -> None:
    model = FakeTextModel()
    ideas = [make_idea(n) for n in range(1, 5)]
    with pytest.raises(StageValidationError, match="Maximum 3 ideas"):
        _run(VariationGenerator(model, config), VariationsRequest(brief=BRIEF, selected_ideas=ideas))
    assert model.calls == []


def test_empty_selection_is_rejected(config) -> None:
    with pytest.raises(StageValidationError, match="required"):
        _run(VariationGenerator(FakeTextModel(), config), VariationsRequest(brief=BRIEF))


# --- ConceptFinalizer ---


def _variations(k):
    return [make_variation("ABC"[n % 3], n + 1) for n in range(k)]


@pytest.mark.parametrize("k", [1, 2, 3])
@pytest.mark.parametrize("returned", [0, 1, 3])
def test_concepts_cardinality(config, k, returned) -> None:
    model = FakeTextModel(concepts_json(list(range(1, min(returned, k) + 1))))
    result = _run(
        ConceptFinalizer(model, config),
        ConceptsRequest(brief=BRIEF, selected_variations=_variations(k)),
    )

    assert [c.number for c in result.concepts] == list(range(1, k + 1))
    for concept in result.concepts:
        assert len(concept.storyboard_frames) == config.frame_count
        assert concept.title and concept.tagline and concept.description
    assert result.partial == (returned < k)


def test_concepts_from_unparsable_text(config) -> None:
    variations = _variations(2)
    result = _run(
        ConceptFinalizer(FakeTextModel("[{'number': 1,}]"), config),
        ConceptsRequest(brief=BRIEF, selected_variations=variations),
    )
    assert result.fallback
    assert [c.title for c in result.concepts] == [v.title for v in variations]


def test_four_selected_variations_are_rejected_without_model_call(config) -> None:
    model = FakeTextModel()
    with pytest.raises(StageValidationError, match="Maximum 3 variations"):
        _run(
            ConceptFinalizer(model, config),
            ConceptsRequest(brief=BRIEF, selected_variations=_variations(4)),
        )
    assert model.calls == []


def test_concepts_get_images(config) -> None:
    images = FakeImageModel(failing={2})
    filler = FrameImageFiller(images, deadline_seconds=1.0)
    stage = ConceptFinalizer(FakeTextModel(concepts_json([1, 2])), config, filler)

    result = _run(stage, ConceptsRequest(brief=BRIEF, selected_variations=_variations(2)))

    for concept in result.concepts:
        urls = [f.image_url for f in concept.storyboard_frames]
        assert urls == [
            "https://img.test/shot-1.png",
            None,
            "https://img.test/shot-3.png",
            "https://img.test/shot-4.png",
        ]
    assert "Concept 1. Description 1" in images.prompts[0]


def test_image_cap_leaves_frames_for_backfill() -> None:
    config = PipelineConfig(image_frame_cap=2)
    images = FakeImageModel()
    stage = ConceptFinalizer(
        FakeTextModel(concepts_json([1])), config, FrameImageFiller(images),
    )

    result = _run(stage, ConceptsRequest(brief=BRIEF, selected_variations=_variations(1)))

    urls = [f.image_url for f in result.concepts[0].storyboard_frames]
    assert urls[:2] == ["https://img.test/shot-1.png", "https://img.test/shot-2.png"]
    assert urls[2:] == [None, None]


def test_fallback_concepts_skip_images(config) -> None:
    images = FakeImageModel()
    stage = ConceptFinalizer(FakeTextModel("nothing"), config, FrameImageFiller(images))

    result = _run(stage, ConceptsRequest(brief=BRIEF, selected_variations=_variations(1)))

    assert result.fallback
    assert images.prompts == []


# --- ConceptRefiner ---


def _refine_request(concept=None, feedback="Make it funnier"):
    return RefineRequest(brief=BRIEF, concept=concept or make_concept(2), feedback=feedback)


def test_refine_success(config) -> None:
    revised = make_concept(2).to_payload()
    revised["title"] = "Funnier Concept"
    model = FakeTextModel(json.dumps(revised))

    result = _run(ConceptRefiner(model, config), _refine_request())

    assert result.concept.title == "Funnier Concept"
    assert result.concept.number == 2
    assert not result.fallback
    prompt = model.calls[0][0]
    assert "Make it funnier" in prompt
    assert "imageUrl" not in prompt


def test_refine_fills_gaps_from_current_concept(config) -> None:
    current = make_concept(3)
    model = FakeTextModel('{"title": "New title", "description": "New description"}')

    result = _run(ConceptRefiner(model, config), _refine_request(current))

    assert result.concept.title == "New title"
    assert result.concept.tagline == "Tagline 3"
    assert result.concept.number == 3
    assert result.concept.storyboard_frames == current.storyboard_frames
    assert result.concept.visual_references == current.visual_references


def test_refine_timeout_appends_feedback() -> None:
    config = PipelineConfig(model_deadline_seconds=0.05)
    result = _run(
        ConceptRefiner(FakeTextModel(delay=30), config), _refine_request(),
    )
    assert result.fallback
    assert result.partial
    assert result.concept.description.endswith("Refinement note: Make it funnier")


@pytest.mark.parametrize(
    "request_kwargs",
    [
        {"brief": BRIEF, "concept": None, "feedback": "x"},
        {"brief": BRIEF, "concept": make_concept(1), "feedback": "  "},
        {"brief": "", "concept": make_concept(1), "feedback": "x"},
    ],
)
def test_refine_requires_all_fields(config, request_kwargs) -> None:
    model = FakeTextModel()
    with pytest.raises(StageValidationError, match="required"):
        _run(ConceptRefiner(model, config), RefineRequest(**request_kwargs))
    assert model.calls == []
