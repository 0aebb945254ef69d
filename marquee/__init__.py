"""Marquee: constraint-based query planning for movie and TV discovery APIs.

Turns NLU-extracted entities plus semantically retrieved endpoint candidates
into a validated, ordered answer set with a provenance trail.

Usage:
    from marquee import QueryPipeline, QueryRequest, RetrievalHit
    from marquee.client import TMDBClient

    async with TMDBClient.from_config() as client:
        pipeline = QueryPipeline(client)
        envelope = await pipeline.run(request, hits)
"""

__version__ = "0.3.0"

from .core.errors import (
    MarqueeError,
    ExtractionError,
    EndpointSelectionError,
    ExternalAPIError,
)
from .core.models import (
    QueryRequest,
    RetrievalHit,
    ResultEnvelope,
    RelaxationEvent,
    RelaxationState,
)
from .pipeline import QueryPipeline, run_query

__all__ = [
    "__version__",
    "MarqueeError",
    "ExtractionError",
    "EndpointSelectionError",
    "ExternalAPIError",
    "QueryRequest",
    "RetrievalHit",
    "ResultEnvelope",
    "RelaxationEvent",
    "RelaxationState",
    "QueryPipeline",
    "run_query",
]
