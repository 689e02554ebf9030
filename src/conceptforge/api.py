"""Framework-neutral mapping of JSON requests onto the pipeline.

A web adapter only has to pass the route name and decoded body to
:meth:`Api.handle` and write back the status code and body it returns, or
relay the lines of :meth:`Api.stream` as a server-sent event response.
"""

import json
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as BodyValidationError

from .errors import ConceptForgeError
from .models import (
    ConceptsRequest,
    FrameImageRequest,
    IdeasRequest,
    RefineRequest,
    VariationsRequest,
)
from .pipeline import Pipeline
from .stages import Stage

log = logging.getLogger(__name__)

_REQUESTS: dict[str, type[BaseModel]] = {
    "ideas": IdeasRequest,
    "variations": VariationsRequest,
    "final-concepts": ConceptsRequest,
    "refine": RefineRequest,
    "frame-image": FrameImageRequest,
}


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    body: dict[str, Any]


def error_body(error: str, details: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": error}
    if details:
        body["details"] = details
    return body


def sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


class Api:
    """Routes ``ideas``, ``variations``, ``final-concepts``, ``refine``,
    ``frame-image`` and ``health``.
    """

    def __init__(
        self,
        pipeline: Pipeline | None = None,
        factory: Callable[[], Pipeline] = Pipeline.from_config,
    ) -> None:
        self._pipeline = pipeline
        self._factory = factory

    @property
    def pipeline(self) -> Pipeline:
        if self._pipeline is None:
            self._pipeline = self._factory()
        return self._pipeline

    def _stage(self, route: str) -> Stage:
        return {
            "ideas": self.pipeline.ideas,
            "variations": self.pipeline.variations,
            "final-concepts": self.pipeline.final_concepts,
            "refine": self.pipeline.refine,
        }[route]

    async def handle(self, route: str, body: Any) -> ApiResponse:
        """Serve one request and return its status code and JSON body."""
        if route == "health":
            return ApiResponse(
                200,
                {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()},
            )
        if route not in _REQUESTS:
            return ApiResponse(404, error_body(f"Unknown route: {route}"))

        try:
            request = _REQUESTS[route].model_validate(body or {})
            if route == "frame-image":
                result = await self.pipeline.frame_image(request)
            else:
                result = await self._stage(route).run(request)
        except BodyValidationError as e:
            return ApiResponse(400, error_body("Invalid request body", str(e)))
        except ConceptForgeError as e:
            if e.status_code >= 500:
                log.error("%s: %s", route, e.message)
            return ApiResponse(e.status_code, error_body(e.message, e.details))

        return ApiResponse(200, result.to_payload())

    async def stream(self, route: str, body: Any) -> AsyncIterator[str]:
        """Serve a stage as server-sent events.

        Keepalive ``{"status": ...}`` lines are followed by one line holding
        the result payload. A rejected request gets a single ``{"error": ...}``
        line; a provider configuration error during the run ends the stream
        with one.
        """
        if route not in _REQUESTS or route == "frame-image":
            yield sse(error_body(f"Unknown streaming route: {route}"))
            return

        try:
            request = _REQUESTS[route].model_validate(body or {})
            events = self._stage(route).events(request)
        except BodyValidationError as e:
            yield sse(error_body("Invalid request body", str(e)))
            return
        except ConceptForgeError as e:
            yield sse(error_body(e.message, e.details))
            return

        try:
            async for event in events:
                if event.kind == "result":
                    yield sse(event.result.to_payload())
                else:
                    yield sse({"status": event.state.value})
        except ConceptForgeError as e:
            log.error("%s: %s", route, e.message)
            yield sse(error_body(e.message, e.details))
