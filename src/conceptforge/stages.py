"""Stage orchestrators for the ideation pipeline.

Every stage follows the same shape: validate the request, prompt the model
under a deadline, extract the JSON payload, then normalize it to the exact
expected cardinality. A timeout, a provider failure or unusable output sends
the stage down the fallback path instead, so once validation passes a stage
always produces a schema-valid result.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from . import prompts
from .config import PipelineConfig
from .errors import ProviderConfigError, StageValidationError
from .extraction import Shape, extract
from .fallback import (
    fallback_concept,
    fallback_concepts,
    fallback_ideas,
    fallback_refined_concept,
    fallback_variation_groups,
)
from .imagery import FrameImageFiller, brand_context
from .models import (
    Concept,
    ConceptsRequest,
    ConceptsResult,
    IdeasRequest,
    IdeasResult,
    RefineRequest,
    RefineResult,
    StageResult,
    Variation,
    VariationsRequest,
    VariationsResult,
)
from .normalize import (
    normalize_concept,
    normalize_concepts,
    normalize_ideas,
    normalize_variation_groups,
)
from .service import TextModel
from .timeouts import TIMED_OUT, race

log = logging.getLogger(__name__)

MIN_BRIEF_LENGTH = 50
MAX_SELECTION = 3

RequestT = TypeVar("RequestT")
ResultT = TypeVar("ResultT", bound=StageResult)


class StageState(str, Enum):
    """States of one stage run.

    ``REJECTED`` is only logged; the channel carries ``VALIDATING`` once, as
    the accepted-request marker, followed by the remaining states in order.
    """

    VALIDATING = "validating"
    CALLING_MODEL = "calling_model"
    EXTRACTING = "extracting"
    TIMED_OUT = "timed_out"
    NORMALIZING = "normalizing"
    DONE = "done"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StageEvent:
    """One message on a stage's progress channel.

    A run emits zero or more ``progress`` events followed by exactly one
    ``result`` event.
    """

    kind: str
    state: StageState
    result: StageResult | None = None

    @classmethod
    def progress(cls, state: StageState) -> "StageEvent":
        return cls(kind="progress", state=state)


class Stage(ABC, Generic[RequestT, ResultT]):
    """Template shared by the four stage orchestrators."""

    name: str
    shape: Shape

    def __init__(self, text_model: TextModel | None, config: PipelineConfig) -> None:
        self.text_model = text_model
        self.config = config

    @property
    @abstractmethod
    def max_tokens(self) -> int: ...

    @abstractmethod
    def validate(self, request: RequestT) -> None:
        """Raise :class:`StageValidationError` if a precondition fails."""

    @abstractmethod
    def build_prompt(self, request: RequestT) -> str: ...

    @abstractmethod
    def normalize(self, request: RequestT, value: Any) -> ResultT: ...

    @abstractmethod
    def fallback(self, request: RequestT) -> ResultT:
        """Synthesized result flagged ``fallback`` and ``partial``."""

    async def finish(self, request: RequestT, result: ResultT) -> ResultT:
        return result

    def events(self, request: RequestT) -> AsyncIterator[StageEvent]:
        """Start a run and return its progress channel.

        Configuration and validation errors are raised here, before any
        event is produced and before the model is called. The channel then
        opens with a single ``VALIDATING`` event marking the accepted
        request, emitted before the prompt is built; it is never repeated.
        """
        if self.text_model is None:
            msg = "GEMINI_API_KEY is not configured"
            raise ProviderConfigError(msg)
        try:
            self.validate(request)
        except StageValidationError as e:
            log.info("%s %s: %s", self.name, StageState.REJECTED.value, e.message)
            raise
        return self._events(request)

    async def run(self, request: RequestT) -> ResultT:
        """Run the stage to completion and return its result."""
        async for event in self.events(request):
            if event.kind == "result":
                return event.result
        msg = f"{self.name} finished without a result"
        raise RuntimeError(msg)

    async def _call_model(self, prompt: str) -> Any:
        return await race(
            self.text_model.generate_text(prompt, self.max_tokens),
            self.config.model_deadline_seconds,
        )

    async def _events(self, request: RequestT) -> AsyncIterator[StageEvent]:
        yield StageEvent.progress(StageState.VALIDATING)
        prompt = self.build_prompt(request)

        yield StageEvent.progress(StageState.CALLING_MODEL)
        call = asyncio.ensure_future(self._call_model(prompt))
        try:
            while True:
                done, _ = await asyncio.wait({call}, timeout=self.config.keepalive_seconds)
                if done:
                    break
                yield StageEvent.progress(StageState.CALLING_MODEL)
        finally:
            if not call.done():
                call.cancel()

        result = None
        try:
            outcome = call.result()
        except ProviderConfigError:
            raise
        except Exception as e:  # noqa: BLE001
            log.warning("%s: model call failed, using fallback: %s", self.name, e)
            result = self.fallback(request)
        else:
            if outcome is TIMED_OUT:
                yield StageEvent.progress(StageState.TIMED_OUT)
                log.warning("%s: model timed out, using fallback", self.name)
                result = self.fallback(request)
            else:
                yield StageEvent.progress(StageState.EXTRACTING)
                extraction = extract(outcome, self.shape)
                if not extraction.ok:
                    log.warning(
                        "%s: %s, using fallback (%s)",
                        self.name,
                        extraction.error.message,
                        extraction.error.details,
                    )
                    result = self.fallback(request)
                else:
                    yield StageEvent.progress(StageState.NORMALIZING)
                    result = self.normalize(request, extraction.value)

        result = await self.finish(request, result)
        yield StageEvent(kind="result", state=StageState.DONE, result=result)

    def _report(self, violations: list[str]) -> None:
        if violations:
            log.info(
                "%s: repaired %d issue(s) in model output: %s",
                self.name,
                len(violations),
                "; ".join(violations),
            )


def _require_selection(brief: str, selection: list, noun: str) -> None:
    if not brief or not brief.strip() or not selection:
        msg = f"Brief and selected {noun} are required"
        raise StageValidationError(msg)
    if len(selection) > MAX_SELECTION:
        msg = f"Maximum {MAX_SELECTION} {noun} can be selected"
        raise StageValidationError(msg, f"received {len(selection)}")


class IdeaGenerator(Stage[IdeasRequest, IdeasResult]):
    """Brief to ten idea records."""

    name = "ideas"
    shape = Shape.ARRAY

    @property
    def max_tokens(self) -> int:
        return self.config.budgets.ideas

    def validate(self, request: IdeasRequest) -> None:
        if not request.brief or len(request.brief.strip()) < MIN_BRIEF_LENGTH:
            msg = f"Brief must be at least {MIN_BRIEF_LENGTH} characters"
            raise StageValidationError(msg)

    def build_prompt(self, request: IdeasRequest) -> str:
        return prompts.ideas_prompt(request.brief)

    def normalize(self, request: IdeasRequest, value: Any) -> IdeasResult:
        normalized = normalize_ideas(value, request.brief)
        self._report(normalized.violations)
        return IdeasResult(ideas=normalized.records, partial=normalized.backfilled > 0)

    def fallback(self, request: IdeasRequest) -> IdeasResult:
        return IdeasResult(
            ideas=fallback_ideas(request.brief), fallback=True, partial=True,
        )


class VariationGenerator(Stage[VariationsRequest, VariationsResult]):
    """Selected ideas to three lettered variations each."""

    name = "variations"
    shape = Shape.ARRAY

    @property
    def max_tokens(self) -> int:
        return self.config.budgets.variations

    def validate(self, request: VariationsRequest) -> None:
        _require_selection(request.brief, request.selected_ideas, "ideas")

    def build_prompt(self, request: VariationsRequest) -> str:
        return prompts.variations_prompt(request.brief, request.selected_ideas)

    def normalize(self, request: VariationsRequest, value: Any) -> VariationsResult:
        normalized = normalize_variation_groups(value, request.selected_ideas)
        self._report(normalized.violations)
        return VariationsResult(
            variations=normalized.records, partial=normalized.backfilled > 0,
        )

    def fallback(self, request: VariationsRequest) -> VariationsResult:
        return VariationsResult(
            variations=fallback_variation_groups(request.selected_ideas),
            fallback=True,
            partial=True,
        )


class ConceptFinalizer(Stage[ConceptsRequest, ConceptsResult]):
    """Selected variations to fully developed concepts with storyboards."""

    name = "final-concepts"
    shape = Shape.ARRAY

    def __init__(
        self,
        text_model: TextModel | None,
        config: PipelineConfig,
        filler: FrameImageFiller | None = None,
    ) -> None:
        super().__init__(text_model, config)
        self.filler = filler

    @property
    def max_tokens(self) -> int:
        return self.config.budgets.concepts

    def validate(self, request: ConceptsRequest) -> None:
        _require_selection(request.brief, request.selected_variations, "variations")

    def build_prompt(self, request: ConceptsRequest) -> str:
        return prompts.concepts_prompt(
            request.brief,
            request.selected_variations,
            self.config.frame_count,
            self.config.spot_duration_seconds,
        )

    def normalize(self, request: ConceptsRequest, value: Any) -> ConceptsResult:
        normalized = normalize_concepts(
            value,
            request.selected_variations,
            self.config.frame_count,
            self.config.spot_duration_seconds,
        )
        self._report(normalized.violations)
        return ConceptsResult(
            concepts=normalized.records, partial=normalized.backfilled > 0,
        )

    def fallback(self, request: ConceptsRequest) -> ConceptsResult:
        return ConceptsResult(
            concepts=fallback_concepts(
                request.selected_variations,
                self.config.frame_count,
                self.config.spot_duration_seconds,
            ),
            fallback=True,
            partial=True,
        )

    async def finish(self, request: ConceptsRequest, result: ConceptsResult) -> ConceptsResult:
        # A fallback result has already spent the request's time budget;
        # clients backfill its frames one at a time instead.
        if self.filler is None or not self.config.generate_images or result.fallback:
            return result

        concepts = []
        for concept in result.concepts:
            frames = await self.filler.fill(
                concept.storyboard_frames,
                brand_context(concept.title, concept.description),
                concurrency=self.config.image_concurrency,
                frame_cap=self.config.image_frame_cap,
            )
            concepts.append(concept.model_copy(update={"storyboard_frames": frames}))
        return result.model_copy(update={"concepts": concepts})


class ConceptRefiner(Stage[RefineRequest, RefineResult]):
    """One concept plus client feedback to a revised concept."""

    name = "refine"
    shape = Shape.OBJECT

    @property
    def max_tokens(self) -> int:
        return self.config.budgets.refine

    def validate(self, request: RefineRequest) -> None:
        if (
            not request.brief
            or not request.brief.strip()
            or request.concept is None
            or not request.feedback
            or not request.feedback.strip()
        ):
            msg = "Brief, concept, and feedback are required"
            raise StageValidationError(msg)

    def _current(self, request: RefineRequest) -> Concept:
        """The submitted concept, repaired so it can seed missing fields."""
        concept = request.concept
        number = concept.number or 1
        stock = fallback_concept(
            Variation(
                title=concept.title,
                description=concept.description,
                shift=concept.tagline,
            ),
            number - 1,
            self.config.frame_count,
            self.config.spot_duration_seconds,
        )
        return normalize_concept(
            concept.to_payload(),
            number,
            stock,
            self.config.frame_count,
            self.config.spot_duration_seconds,
            violations=[],
        )

    def build_prompt(self, request: RefineRequest) -> str:
        return prompts.refine_prompt(
            request.brief,
            self._current(request),
            request.feedback,
            self.config.frame_count,
            self.config.spot_duration_seconds,
        )

    def normalize(self, request: RefineRequest, value: Any) -> RefineResult:
        current = self._current(request)
        if not isinstance(value.get("storyboardFrames"), list) or not value["storyboardFrames"]:
            value = {
                **value,
                "storyboardFrames": [f.to_payload() for f in current.storyboard_frames],
            }
        violations: list[str] = []
        concept = normalize_concept(
            value,
            current.number,
            current,
            self.config.frame_count,
            self.config.spot_duration_seconds,
            violations,
        )
        self._report(violations)
        return RefineResult(concept=concept)

    def fallback(self, request: RefineRequest) -> RefineResult:
        return RefineResult(
            concept=fallback_refined_concept(
                self._current(request),
                request.feedback,
                self.config.frame_count,
                self.config.spot_duration_seconds,
            ),
            fallback=True,
            partial=True,
        )
