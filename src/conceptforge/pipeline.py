"""Wiring of providers, configuration and stages."""

from .config import Credentials, PipelineConfig, load_credentials
from .errors import StageValidationError
from .imagery import FrameImageFiller
from .models import FrameImageRequest, FrameImageResult
from .service import FalImageService, GeminiService, ImageModel, TextModel
from .stages import ConceptFinalizer, ConceptRefiner, IdeaGenerator, VariationGenerator


class Pipeline:
    """The four stages plus per-frame image backfill, sharing one profile.

    Providers are injected so tests can substitute fakes. A ``None`` text
    model makes every stage fail with a configuration error; a ``None``
    image model leaves every frame without an image.
    """

    def __init__(
        self,
        text_model: TextModel | None,
        image_model: ImageModel | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.filler = None
        if image_model is not None:
            self.filler = FrameImageFiller(
                image_model,
                deadline_seconds=self.config.image.deadline_seconds,
                concurrency=self.config.image_concurrency,
            )
        self.ideas = IdeaGenerator(text_model, self.config)
        self.variations = VariationGenerator(text_model, self.config)
        self.final_concepts = ConceptFinalizer(text_model, self.config, self.filler)
        self.refine = ConceptRefiner(text_model, self.config)

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig | None = None,
        credentials: Credentials | None = None,
    ) -> "Pipeline":
        """Build a pipeline against the real Gemini and fal.ai providers."""
        config = config or PipelineConfig()
        if credentials is None:
            credentials = load_credentials()
        text_model = None
        if credentials.gemini_api_key:
            text_model = GeminiService(credentials.gemini_api_key, config.text)
        image_model = FalImageService(credentials.fal_api_key, config.image)
        return cls(text_model, image_model, config)

    async def frame_image(self, request: FrameImageRequest) -> FrameImageResult:
        """Illustrate one frame for progressive client-side backfill."""
        if request.frame is None:
            msg = "frame is required"
            raise StageValidationError(msg)
        if self.filler is None:
            return FrameImageResult()
        url = await self.filler.fill_one(
            request.frame, request.concept_title, request.concept_description,
        )
        return FrameImageResult(image_url=url)
