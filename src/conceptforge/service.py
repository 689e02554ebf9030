"""Clients for the text-completion and image-generation providers."""

import logging
from typing import Protocol

import httpx
from google import genai
from google.genai import types

from .config import ImageGenerationConfig, TextModelConfig
from .errors import ImageProviderError, ProviderConfigError

log = logging.getLogger(__name__)


class TextModel(Protocol):
    """Anything that turns a prompt into model text."""

    async def generate_text(self, prompt: str, max_tokens: int) -> str: ...


class ImageModel(Protocol):
    """Anything that turns a prompt into an image URL."""

    async def generate_image(self, prompt: str) -> str | None: ...


class GeminiService:
    """Service to interact with the Google Gemini API."""

    def __init__(self, api_key: str | None, config: TextModelConfig | None = None) -> None:
        """Initialize the service with an API key."""
        if not api_key:
            msg = (
                "API Key is missing. "
                "Set GEMINI_API_KEY env var or pass it as an argument."
            )
            raise ProviderConfigError(msg)
        self.config = config or TextModelConfig()
        self.client = genai.Client(api_key=api_key)

    async def generate_text(self, prompt: str, max_tokens: int) -> str:
        """Run one completion and return the raw response text.

        Args:
            prompt: The full stage prompt.
            max_tokens: Output token budget for the stage.

        Returns:
            str: The model text, empty if the model returned none.

        """
        response = await self.client.aio.models.generate_content(
            model=self.config.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                temperature=self.config.temperature,
                max_output_tokens=max_tokens,
            ),
        )

        if (
            response.candidates
            and response.candidates[0].finish_reason == types.FinishReason.MAX_TOKENS
        ):
            log.warning("Response truncated at %d output tokens", max_tokens)

        return response.text or ""


class FalImageService:
    """Service to generate storyboard images with fal.ai FLUX schnell."""

    def __init__(
        self,
        api_key: str | None,
        config: ImageGenerationConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the service. A missing key disables image generation."""
        self.api_key = api_key
        self.config = config or ImageGenerationConfig()
        self._transport = transport
        if not api_key:
            log.warning("FAL_API_KEY not set, storyboard images are disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _image_size(self) -> str:
        if self.config.aspect_ratio == "16:9":
            return "landscape_16_9"
        return "landscape_4_3"

    async def generate_image(self, prompt: str) -> str | None:
        """Generate one image and return its URL.

        Returns ``None`` when no credential is configured.

        Raises:
            ImageProviderError: If the provider fails or returns no image.

        """
        if not self.api_key:
            return None

        body = {
            "prompt": prompt,
            "image_size": self._image_size(),
            "num_inference_steps": self.config.num_inference_steps,
            "num_images": 1,
            "enable_safety_checker": False,
        }
        headers = {"Authorization": f"Key {self.api_key}"}

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.config.deadline_seconds,
            ) as client:
                response = await client.post(
                    self.config.endpoint, json=body, headers=headers,
                )
        except httpx.HTTPError as e:
            msg = f"Image request failed: {e}"
            raise ImageProviderError(msg) from e

        if response.is_error:
            msg = f"Image provider returned {response.status_code}"
            raise ImageProviderError(msg, response.text[:500])

        try:
            payload = response.json()
        except ValueError as e:
            msg = "Image provider returned invalid JSON"
            raise ImageProviderError(msg) from e

        images = payload.get("images") if isinstance(payload, dict) else None
        first = images[0] if isinstance(images, list) and images else None
        url = first.get("url") if isinstance(first, dict) else None
        if not url:
            msg = "No image returned from image provider"
            raise ImageProviderError(msg)
        return url
