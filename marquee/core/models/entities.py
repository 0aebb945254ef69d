"""Extracted entity models and the NLU input contract.

Entities arrive from an external NLU step as loose dicts
(`{type, value, operator?, role?, confidence}`). They are parsed once into a
closed set of pydantic models, discriminated on `type`:

    Person | Genre | Network | Company | Keyword | Date | Rating | Runtime |
    Revenue | Language | Mood | MediaType

Each model declares its constraint tier and constraint key as class
attributes, so tier assignment and parameter mapping never branch on raw
type strings.
"""

import re
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from ..errors import ExtractionError


# =============================================================================
# Enums
# =============================================================================


class Tier(str, Enum):
    """Constraint priority class. Lower rank relaxes last."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {Tier.PRIMARY: 0, Tier.SECONDARY: 1, Tier.TERTIARY: 2}


class MediaType(str, Enum):
    MOVIE = "movie"
    TV = "tv"


QuestionType = Literal["list", "fact", "timeline"]


# =============================================================================
# Operator normalization
# =============================================================================

COMPARISON_OPERATORS = (
    "less_than",
    "less_than_equal",
    "greater_than",
    "greater_than_equal",
    "equal",
)

_COMPARISON_ALIASES = {
    "<": "less_than",
    "lt": "less_than",
    "under": "less_than",
    "below": "less_than",
    "less_than": "less_than",
    "before": "less_than",
    "<=": "less_than_equal",
    "lte": "less_than_equal",
    "at_most": "less_than_equal",
    "max": "less_than_equal",
    "until": "less_than_equal",
    "less_than_equal": "less_than_equal",
    ">": "greater_than",
    "gt": "greater_than",
    "over": "greater_than",
    "above": "greater_than",
    "more_than": "greater_than",
    "after": "greater_than",
    "greater_than": "greater_than",
    ">=": "greater_than_equal",
    "gte": "greater_than_equal",
    "at_least": "greater_than_equal",
    "min": "greater_than_equal",
    "since": "greater_than_equal",
    "greater_than_equal": "greater_than_equal",
    "=": "equal",
    "==": "equal",
    "eq": "equal",
    "equal": "equal",
    "in": "equal",
}

GROUP_OPERATORS = ("and", "or")


def normalize_comparison(operator: str) -> str:
    """Map an operator alias onto its canonical comparison name.

    Raises:
        ValueError: If the operator is not a known comparison alias.
    """
    key = operator.strip().lower().replace(" ", "_").replace("-", "_")
    if key not in _COMPARISON_ALIASES:
        raise ValueError(f"Unknown comparison operator: {operator!r}")
    return _COMPARISON_ALIASES[key]


def normalize_name(value: str) -> str:
    """Normalize a display name for lookup keys (case/space/punctuation-insensitive)."""
    value = value.strip().lower()
    value = re.sub(r"[’'`\.]", "", value)
    value = re.sub(r"[^a-z0-9&+]+", " ", value)
    return " ".join(value.split())


# =============================================================================
# Entity base
# =============================================================================


class EntityBase(BaseModel):
    """Fields shared by every extracted entity. Instances are immutable."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(min_length=1)
    operator: str | None = None
    role: str | None = None
    confidence: float = Field(default=1.0, ge=0, le=1)
    resolved_id: str | None = None

    tier: ClassVar[Tier | None] = None
    constraint_key: ClassVar[str] = ""
    needs_lookup: ClassVar[bool] = False

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(int(v)) if float(v).is_integer() else str(v)
        if isinstance(v, str):
            v = v.strip()
        return v

    @property
    def kind(self) -> str:
        return self.type  # type: ignore[attr-defined]

    @property
    def constraint_value(self) -> str:
        """Value used in the constraint tree: the resolved id when known."""
        return self.resolved_id if self.resolved_id is not None else self.value

    @property
    def lookup_key(self) -> str:
        return normalize_name(self.value)


class GroupedEntity(EntityBase):
    """Entity whose operator, if given, is a group operator (and/or)."""

    @field_validator("operator")
    @classmethod
    def check_group_operator(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        if v not in GROUP_OPERATORS:
            raise ValueError(f"Operator must be one of {GROUP_OPERATORS}, got {v!r}")
        return v


class ComparisonEntity(EntityBase):
    """Entity whose operator is a numeric comparison."""

    operator: str | None = Field(default=None, validate_default=True)

    default_operator: ClassVar[str | None] = None

    @field_validator("operator", mode="before")
    @classmethod
    def check_comparison_operator(cls, v):
        if v is None:
            return cls.default_operator
        return normalize_comparison(str(v))


# =============================================================================
# Identity entities (primary tier)
# =============================================================================


class PersonEntity(GroupedEntity):
    """A named person. `role` distinguishes cast from crew (e.g. "director")."""

    type: Literal["person"] = "person"
    tier: ClassVar[Tier] = Tier.PRIMARY
    constraint_key: ClassVar[str] = "person_id"
    needs_lookup: ClassVar[bool] = True

    @field_validator("role")
    @classmethod
    def normalize_role(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        return {"actor": "cast", "actress": "cast", "star": "cast"}.get(v, v)


class GenreEntity(GroupedEntity):
    type: Literal["genre"] = "genre"
    tier: ClassVar[Tier] = Tier.PRIMARY
    constraint_key: ClassVar[str] = "genre_id"
    needs_lookup: ClassVar[bool] = True


class NetworkEntity(GroupedEntity):
    """A TV network (HBO, Netflix). Implies TV media."""

    type: Literal["network"] = "network"
    tier: ClassVar[Tier] = Tier.PRIMARY
    constraint_key: ClassVar[str] = "network_id"
    needs_lookup: ClassVar[bool] = True


class CompanyEntity(GroupedEntity):
    type: Literal["company"] = "company"
    tier: ClassVar[Tier] = Tier.PRIMARY
    constraint_key: ClassVar[str] = "company_id"
    needs_lookup: ClassVar[bool] = True


# =============================================================================
# Temporal / quality entities (secondary tier)
# =============================================================================

_DECADE_RE = re.compile(r"^(\d{2}|\d{4})'?s$")
_RANGE_RE = re.compile(r"^(\d{4})\s*(?:-|–|to|through|and)\s*(\d{4})$")
_YEAR_RE = re.compile(r"^(\d{4})(?:-\d{2}(?:-\d{2})?)?$")


def parse_year_span(value: str) -> tuple[int, int]:
    """Parse a date-ish value into an inclusive (start_year, end_year) span.

    Examples:
        "2010"        -> (2010, 2010)
        "2015-03-01"  -> (2015, 2015)
        "1990s"       -> (1990, 1999)
        "90s"         -> (1990, 1999)
        "2000-2010"   -> (2000, 2010)

    Raises:
        ValueError: If the value is not a recognizable year expression.
    """
    text = value.strip().lower()
    match = _DECADE_RE.match(text)
    if match:
        digits = match.group(1)
        if len(digits) == 2:
            base = int(digits)
            start = (2000 + base) if base < 30 else (1900 + base)
        else:
            start = int(digits)
        start -= start % 10
        return start, start + 9
    match = _RANGE_RE.match(text)
    if match:
        a, b = int(match.group(1)), int(match.group(2))
        return min(a, b), max(a, b)
    match = _YEAR_RE.match(text)
    if match:
        year = int(match.group(1))
        return year, year
    raise ValueError(f"Unrecognized date expression: {value!r}")


class DateEntity(ComparisonEntity):
    """A year, decade or year range, optionally bounded by an operator."""

    type: Literal["date"] = "date"
    tier: ClassVar[Tier] = Tier.SECONDARY
    constraint_key: ClassVar[str] = "date"

    @field_validator("value")
    @classmethod
    def check_parseable(cls, v):
        parse_year_span(v)
        return v

    def year_bounds(self) -> tuple[int | None, int | None]:
        """Inclusive (gte_year, lte_year) after applying the operator."""
        start, end = parse_year_span(self.value)
        op = self.operator
        if op == "greater_than":
            return end + 1, None
        if op == "greater_than_equal":
            return start, None
        if op == "less_than":
            return None, start - 1
        if op == "less_than_equal":
            return None, end
        return start, end

    @property
    def is_single_year(self) -> bool:
        start, end = self.year_bounds()
        return start is not None and start == end


class RatingEntity(ComparisonEntity):
    """Average-vote threshold on a 0-10 scale."""

    type: Literal["rating"] = "rating"
    tier: ClassVar[Tier] = Tier.SECONDARY
    constraint_key: ClassVar[str] = "rating"
    default_operator: ClassVar[str | None] = "greater_than_equal"

    @field_validator("value")
    @classmethod
    def check_numeric(cls, v):
        float(v.rstrip("+"))
        return v

    @property
    def threshold(self) -> float:
        return float(self.value.rstrip("+"))


class RuntimeEntity(ComparisonEntity):
    """Runtime threshold in minutes."""

    type: Literal["runtime"] = "runtime"
    tier: ClassVar[Tier] = Tier.SECONDARY
    constraint_key: ClassVar[str] = "runtime"
    default_operator: ClassVar[str | None] = "less_than_equal"

    @field_validator("value")
    @classmethod
    def check_numeric(cls, v):
        int(float(v.lower().removesuffix("min").removesuffix("minutes").strip()))
        return v

    @property
    def minutes(self) -> int:
        return int(float(self.value.lower().removesuffix("min").removesuffix("minutes").strip()))


_MONEY_RE = re.compile(r"^\$?\s*([\d,]*\.?\d+)\s*([a-z]*)$")
_MONEY_SCALES = {
    "": 1,
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "mm": 1_000_000,
    "mil": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "bn": 1_000_000_000,
    "billion": 1_000_000_000,
}


def parse_money(value: str) -> int:
    """Parse "25000000", "$25M", "25 million" or "1.2b" into whole dollars.

    Raises:
        ValueError: The value is not a recognizable amount.
    """
    text = value.strip().lower().replace(" ", "")
    match = _MONEY_RE.match(text)
    if not match or match.group(2) not in _MONEY_SCALES:
        raise ValueError(f"Unrecognized revenue amount: {value!r}")
    number = float(match.group(1).replace(",", ""))
    return int(round(number * _MONEY_SCALES[match.group(2)]))


class RevenueEntity(ComparisonEntity):
    """Box-office threshold. The raw value is kept for the tree."""

    type: Literal["revenue"] = "revenue"
    tier: ClassVar[Tier] = Tier.SECONDARY
    constraint_key: ClassVar[str] = "revenue"
    default_operator: ClassVar[str | None] = "greater_than_equal"

    @field_validator("value")
    @classmethod
    def check_amount(cls, v):
        parse_money(v)
        return v

    @property
    def amount(self) -> int:
        return parse_money(self.value)

    @field_validator("operator")
    @classmethod
    def reject_equal(cls, v):
        if v == "equal":
            raise ValueError("Revenue thresholds need a bounding operator, not equality")
        return v


# =============================================================================
# Stylistic / soft preference entities (tertiary tier)
# =============================================================================


class KeywordEntity(GroupedEntity):
    type: Literal["keyword"] = "keyword"
    tier: ClassVar[Tier] = Tier.TERTIARY
    constraint_key: ClassVar[str] = "keyword_id"
    needs_lookup: ClassVar[bool] = True


class LanguageEntity(GroupedEntity):
    """Original-language preference as an ISO 639-1 code or language name."""

    type: Literal["language"] = "language"
    tier: ClassVar[Tier] = Tier.TERTIARY
    constraint_key: ClassVar[str] = "language"
    needs_lookup: ClassVar[bool] = True


class MoodEntity(GroupedEntity):
    """Soft stylistic preference ("dark", "feel-good"). Mapped to keywords at lookup."""

    type: Literal["mood"] = "mood"
    tier: ClassVar[Tier] = Tier.TERTIARY
    constraint_key: ClassVar[str] = "keyword_id"
    needs_lookup: ClassVar[bool] = True


# =============================================================================
# Hints (no constraint)
# =============================================================================

_MEDIA_ALIASES = {
    "movie": MediaType.MOVIE,
    "movies": MediaType.MOVIE,
    "film": MediaType.MOVIE,
    "films": MediaType.MOVIE,
    "tv": MediaType.TV,
    "tv show": MediaType.TV,
    "tv shows": MediaType.TV,
    "show": MediaType.TV,
    "shows": MediaType.TV,
    "series": MediaType.TV,
}


class MediaTypeEntity(EntityBase):
    """Top-level media hint. Feeds media classification, never the constraint tree."""

    type: Literal["media_type"] = "media_type"

    @field_validator("value")
    @classmethod
    def check_media(cls, v):
        if v.strip().lower() not in _MEDIA_ALIASES:
            raise ValueError(f"Unknown media type: {v!r}")
        return v

    @property
    def media_type(self) -> MediaType:
        return _MEDIA_ALIASES[self.value.strip().lower()]


Entity = Annotated[
    Union[
        PersonEntity,
        GenreEntity,
        NetworkEntity,
        CompanyEntity,
        DateEntity,
        RatingEntity,
        RuntimeEntity,
        RevenueEntity,
        KeywordEntity,
        LanguageEntity,
        MoodEntity,
        MediaTypeEntity,
    ],
    Field(discriminator="type"),
]

ENTITY_TYPES = (
    "person",
    "genre",
    "network",
    "company",
    "date",
    "rating",
    "runtime",
    "revenue",
    "keyword",
    "language",
    "mood",
    "media_type",
)

_ENTITY_ADAPTER: TypeAdapter = TypeAdapter(Entity)

# Spellings NLU extractors commonly emit for the canonical types.
_TYPE_ALIASES = {
    "actor": ("person", "cast"),
    "director": ("person", "director"),
    "writer": ("person", "writer"),
    "composer": ("person", "composer"),
    "year": ("date", None),
    "release_year": ("date", None),
    "decade": ("date", None),
    "studio": ("company", None),
    "tv_network": ("network", None),
    "box_office": ("revenue", None),
    "vote_average": ("rating", None),
}


def parse_entity(raw: dict[str, Any] | EntityBase) -> EntityBase:
    """Parse one NLU entity dict into its typed model.

    Raises:
        ExtractionError: On a missing type/value, an unknown type, or an
            invalid operator/value for the type. The parser never guesses.
    """
    if isinstance(raw, EntityBase):
        return raw
    if not isinstance(raw, dict):
        raise ExtractionError(f"Entity must be a mapping, got {type(raw).__name__}")

    data = dict(raw)
    etype = data.get("type")
    value = data.get("value")
    if not etype or not isinstance(etype, str):
        raise ExtractionError("Entity is missing 'type'", entity=raw)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ExtractionError(f"Entity of type {etype!r} is missing 'value'", entity=raw)

    etype = etype.strip().lower()
    if etype in _TYPE_ALIASES:
        canonical, implied_role = _TYPE_ALIASES[etype]
        etype = canonical
        if implied_role and not data.get("role"):
            data["role"] = implied_role
    if etype not in ENTITY_TYPES:
        raise ExtractionError(f"Unknown entity type: {etype!r}", entity=raw)
    data["type"] = etype

    try:
        return _ENTITY_ADAPTER.validate_python(data)
    except ValidationError as e:
        first = e.errors()[0]
        raise ExtractionError(
            f"Invalid {etype} entity: {first.get('msg', str(e))}", entity=raw
        ) from e


def parse_entities(raw_entities: list[dict[str, Any] | EntityBase]) -> list[EntityBase]:
    """Parse a list of entities, failing on the first malformed one."""
    return [parse_entity(raw) for raw in raw_entities]


# =============================================================================
# NLU input contract
# =============================================================================


class QueryRequest(BaseModel):
    """Structured request produced by the NLU step."""

    query: str = Field(default="", description="Raw user query text")
    entities: list[dict[str, Any]] = Field(default_factory=list)
    question_type: QuestionType = "list"
    response_format: str | None = None

    def parsed_entities(self) -> list[EntityBase]:
        return parse_entities(self.entities)

    def resolved_response_format(self) -> str:
        if self.response_format:
            return self.response_format
        return {"list": "list", "fact": "summary", "timeline": "timeline"}[
            self.question_type
        ]
