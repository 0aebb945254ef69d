"""Endpoint and execution-step models.

EndpointCandidate is supplied by semantic retrieval (via the endpoint catalog)
and is never mutated. ExecutionStep is the one mutable model in the planner:
injection phases write into `parameters` and `phase_log` records which phase
last touched each key.
"""

import re
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .entities import MediaType


# =============================================================================
# Endpoints
# =============================================================================


class EndpointStyle(str, Enum):
    DISCOVER = "discover"
    SEARCH = "search"
    CREDITS = "credits"
    DETAIL = "detail"
    OTHER = "other"


CREDITS_PATTERN = re.compile(
    r"^/person/(?:\{person_id\}|\d+)/(?:movie_credits|tv_credits|combined_credits)$"
)
_DETAIL_PATTERN = re.compile(r"^/(?:movie|tv|person)/(?:\{[a-z_]+\}|\d+)$")


def is_credits_path(path: str) -> bool:
    return bool(CREDITS_PATTERN.match(path))


def endpoint_style(path: str) -> EndpointStyle:
    """Classify an endpoint path by the shape of its results."""
    if path.startswith("/discover/"):
        return EndpointStyle.DISCOVER
    if path.startswith("/search/"):
        return EndpointStyle.SEARCH
    if is_credits_path(path):
        return EndpointStyle.CREDITS
    if _DETAIL_PATTERN.match(path):
        return EndpointStyle.DETAIL
    return EndpointStyle.OTHER


class RetrievalHit(BaseModel):
    """One ranked result from the external semantic endpoint retrieval."""

    model_config = ConfigDict(frozen=True)

    path: str
    score: float


class EndpointCandidate(BaseModel):
    """A callable API path with its semantic score and declared capabilities."""

    model_config = ConfigDict(frozen=True)

    path: str
    semantic_score: float = Field(ge=0)
    supported_params: tuple[str, ...] = ()
    performance_prior: float = Field(default=0.5, ge=0, le=1)
    media_type: MediaType | None = None
    description: str = ""

    @property
    def style(self) -> EndpointStyle:
        return endpoint_style(self.path)

    @property
    def is_credits(self) -> bool:
        return self.style == EndpointStyle.CREDITS

    def supports(self, param: str) -> bool:
        return param in self.supported_params


class ScoredCandidate(BaseModel):
    """Scorer output for one candidate, kept for diagnostics and provenance."""

    model_config = ConfigDict(frozen=True)

    candidate: EndpointCandidate
    coverage: float
    score: float

    @property
    def path(self) -> str:
        return self.candidate.path


# =============================================================================
# Execution steps
# =============================================================================


class InjectionPhase(str, Enum):
    """Which stage last wrote a parameter. Declaration order is application order."""

    ENTITY = "entity"
    CONSTRAINT = "constraint"
    SEMANTIC = "semantic"
    REVENUE = "revenue"
    SORT = "sort"


REVENUE_OPERATORS = ("less_than", "less_than_equal", "greater_than", "greater_than_equal")


class RevenueThreshold(BaseModel):
    """Post-fetch financial filter; the listing endpoint cannot express it."""

    model_config = ConfigDict(frozen=True)

    amount: int
    operator: Literal["less_than", "less_than_equal", "greater_than", "greater_than_equal"]

    def matches(self, revenue: int | float | None) -> bool:
        """True when a known revenue satisfies the threshold.

        Zero and missing revenue mean "not reported" and never match.
        """
        if not revenue:
            return False
        if self.operator == "less_than":
            return revenue < self.amount
        if self.operator == "less_than_equal":
            return revenue <= self.amount
        if self.operator == "greater_than":
            return revenue > self.amount
        return revenue >= self.amount


SortCategory = Literal[
    "temporal_recent",
    "temporal_chronological",
    "quality_high",
    "quality_low",
    "default",
    "none",
]


class SortIntent(BaseModel):
    """Result of the keyword sort classifier."""

    model_config = ConfigDict(frozen=True)

    category: SortCategory = "none"
    sort_by: str | None = None
    min_votes: int | None = None
    matched: tuple[str, ...] = ()

    @property
    def is_keyword_driven(self) -> bool:
        return self.category not in ("default", "none")


class ExecutionStep(BaseModel):
    """A parameterized call plus the metadata needed to execute and audit it."""

    step_id: str
    endpoint: EndpointCandidate
    media_type: MediaType = MediaType.MOVIE
    parameters: dict[str, str] = Field(default_factory=dict)
    path_params: dict[str, str] = Field(default_factory=dict)
    depends_on: str | None = None
    phase_log: dict[str, InjectionPhase] = Field(default_factory=dict)
    revenue_threshold: RevenueThreshold | None = None
    sort_intent: SortIntent | None = None
    validate_results: bool = True

    def set_param(self, key: str, value: str, phase: InjectionPhase) -> None:
        self.parameters[key] = value
        self.phase_log[key] = phase

    def remove_param(self, key: str) -> None:
        self.parameters.pop(key, None)
        self.phase_log.pop(key, None)

    def has_param(self, key: str) -> bool:
        return key in self.parameters

    @property
    def sort_by(self) -> str | None:
        return self.parameters.get("sort_by")

    def resolved_path(self) -> str:
        """Endpoint path with `{placeholders}` filled from path_params."""
        path = self.endpoint.path
        for name, value in self.path_params.items():
            path = path.replace("{" + name + "}", value)
        return path

    def query_params(self) -> dict[str, str]:
        """Parameters the endpoint actually accepts, in sorted key order."""
        supported = set(self.endpoint.supported_params)
        return {
            k: self.parameters[k]
            for k in sorted(self.parameters)
            if not supported or k in supported
        }
