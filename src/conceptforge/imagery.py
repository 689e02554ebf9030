"""Storyboard frame illustration with bounded concurrency."""

import asyncio
import logging

from .models import StoryboardFrame
from .service import ImageModel
from .timeouts import TIMED_OUT, race

log = logging.getLogger(__name__)

STYLE_SUFFIX = (
    "Cinematic lighting, high-end commercial photography, professional "
    "production quality, 16:9 aspect ratio, advertising style."
)


def brand_context(title: str, description: str) -> str:
    return ". ".join(part.strip() for part in (title, description) if part and part.strip())


def build_frame_prompt(frame: StoryboardFrame, context: str = "") -> str:
    """Build a concise image prompt for one storyboard frame."""
    parts = [
        f"Professional commercial advertisement frame, {frame.shot_type or 'Wide'} shot.",
        frame.visual,
        frame.action,
        context,
        STYLE_SUFFIX,
    ]
    return " ".join(part.strip() for part in parts if part and part.strip())


class FrameImageFiller:
    """Fills ``image_url`` on storyboard frames through an image provider.

    A fixed pool of workers pulls pending frame indices from a queue, so at
    most ``concurrency`` provider requests are in flight regardless of how
    many frames there are. A failed or timed-out frame gets ``None`` and
    never affects its siblings.
    """

    def __init__(
        self,
        images: ImageModel,
        deadline_seconds: float = 12.0,
        concurrency: int = 2,
    ) -> None:
        self.images = images
        self.deadline_seconds = deadline_seconds
        self.concurrency = concurrency

    async def _generate(self, frame: StoryboardFrame, context: str) -> str | None:
        prompt = build_frame_prompt(frame, context)
        try:
            result = await race(self.images.generate_image(prompt), self.deadline_seconds)
        except Exception as e:  # noqa: BLE001
            log.warning("Frame %d image failed: %s", frame.frame_number, e)
            return None

        if result is TIMED_OUT:
            log.warning("Frame %d image timed out", frame.frame_number)
            return None
        return result

    async def fill(
        self,
        frames: list[StoryboardFrame],
        context: str = "",
        concurrency: int | None = None,
        frame_cap: int | None = None,
    ) -> list[StoryboardFrame]:
        """Return copies of ``frames`` in their original order with images filled.

        Frames that already have an image are left alone. Frames at index
        ``frame_cap`` and beyond are skipped so clients can backfill them one
        at a time with :meth:`fill_one`.
        """
        filled = [frame.model_copy() for frame in frames]
        pending = [
            i
            for i, frame in enumerate(frames)
            if not frame.image_url and (frame_cap is None or i < frame_cap)
        ]
        if not pending:
            return filled

        queue: asyncio.Queue[int] = asyncio.Queue()
        for i in pending:
            queue.put_nowait(i)

        async def worker() -> None:
            while True:
                try:
                    i = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                url = await self._generate(frames[i], context)
                filled[i] = frames[i].model_copy(update={"image_url": url})

        size = min(concurrency or self.concurrency, len(pending))
        log.info("Generating %d storyboard images with %d workers", len(pending), size)
        await asyncio.gather(*(worker() for _ in range(size)))

        succeeded = sum(1 for i in pending if filled[i].image_url)
        log.info("Generated %d/%d storyboard images", succeeded, len(pending))
        return filled

    async def fill_one(
        self,
        frame: StoryboardFrame,
        concept_title: str = "",
        concept_description: str = "",
    ) -> str | None:
        """Generate the image for a single frame, returning its URL or ``None``."""
        return await self._generate(frame, brand_context(concept_title, concept_description))
