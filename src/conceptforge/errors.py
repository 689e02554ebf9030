"""Error taxonomy for the ideation pipeline."""

from enum import Enum


class ConceptForgeError(Exception):
    """Base class for every pipeline error."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        """Store a client-safe message and optional diagnostic details."""
        super().__init__(message)
        self.message = message
        self.details = details


class StageValidationError(ConceptForgeError):
    """Client input violates a stage precondition. No model call is made."""

    status_code = 400


class ProviderConfigError(ConceptForgeError):
    """A mandatory provider credential is missing."""

    status_code = 500


class ProviderTimeout(ConceptForgeError):
    """A provider call exceeded its deadline."""


class ImageProviderError(ConceptForgeError):
    """The image provider failed for one frame."""

    status_code = 502


class ExtractionFailure(str, Enum):
    """Why structured output could not be pulled out of model text."""

    NO_MATCH = "no_match"
    PARSE_FAILURE = "parse_failure"


class ExtractionError(ConceptForgeError):
    """Structured output was missing or malformed.

    Returned by the extractor rather than raised.
    """

    status_code = 502

    def __init__(self, reason: ExtractionFailure, details: str | None = None) -> None:
        super().__init__(f"Failed to extract JSON: {reason.value}", details)
        self.reason = reason
