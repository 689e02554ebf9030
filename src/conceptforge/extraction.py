"""Locate and parse the JSON payload inside free-form model output."""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import ExtractionError, ExtractionFailure


class Shape(str, Enum):
    """Top-level JSON value a stage expects."""

    ARRAY = "array"
    OBJECT = "object"


# Greedy: first opening bracket through the last closing one. Prose after the
# payload that contains its own brackets will be swallowed into the match.
_PATTERNS = {
    Shape.ARRAY: re.compile(r"\[[\s\S]*\]"),
    Shape.OBJECT: re.compile(r"\{[\s\S]*\}"),
}


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of :func:`extract`: a parsed value or the reason there is none."""

    value: Any = None
    error: ExtractionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def extract(raw_text: str | None, shape: Shape) -> ExtractionResult:
    """Pull a JSON value of the given shape out of ``raw_text``.

    Never raises for malformed model output; failures come back as an
    :class:`ExtractionResult` carrying an :class:`ExtractionError`.
    """
    text = raw_text or ""
    match = _PATTERNS[shape].search(text)
    if match is None:
        return ExtractionResult(
            error=ExtractionError(ExtractionFailure.NO_MATCH, text[:160]),
        )

    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        return ExtractionResult(
            error=ExtractionError(ExtractionFailure.PARSE_FAILURE, str(e)),
        )

    return ExtractionResult(value=value)
