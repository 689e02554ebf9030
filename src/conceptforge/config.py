"""Configuration models and credential loading."""

import os

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


class TextModelConfig(BaseModel):
    """Configuration for the text-completion model."""

    model: str = "gemini-2.0-flash"
    temperature: float = 0.9


class ImageGenerationConfig(BaseModel):
    """Configuration for storyboard image generation."""

    endpoint: str = "https://fal.run/fal-ai/flux/schnell"
    aspect_ratio: str = "16:9"
    num_inference_steps: int = 4
    deadline_seconds: float = 12.0


class TokenBudgets(BaseModel):
    """Maximum output tokens requested per stage."""

    ideas: int = 1800
    variations: int = 1400
    concepts: int = 2600
    refine: int = 900


class PipelineConfig(BaseModel):
    """Deployment profile for the whole pipeline."""

    text: TextModelConfig = Field(default_factory=TextModelConfig)
    image: ImageGenerationConfig = Field(default_factory=ImageGenerationConfig)
    budgets: TokenBudgets = Field(default_factory=TokenBudgets)
    model_deadline_seconds: float = Field(default=12.0, gt=0)
    frame_count: int = Field(default=4, ge=4, le=8)
    spot_duration_seconds: int = Field(default=30, gt=0)
    image_concurrency: int = Field(default=2, ge=1)
    image_frame_cap: int | None = Field(default=None, ge=0)
    generate_images: bool = True
    keepalive_seconds: float = Field(default=2.0, gt=0)


class Credentials(BaseModel):
    """Provider credentials. Absent values are ``None``."""

    gemini_api_key: str | None = None
    fal_api_key: str | None = None


def load_credentials() -> Credentials:
    """Read provider credentials from the environment and ``.env``.

    The ``.env`` file is looked up from the working directory upwards.
    Variables already set in the environment win.
    """
    load_dotenv(find_dotenv(usecwd=True))
    return Credentials(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        fal_api_key=os.getenv("FAL_API_KEY") or None,
    )
