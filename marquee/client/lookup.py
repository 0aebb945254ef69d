"""Entity name → id resolution.

`EntityLookupService` resolves the names carried by identity and preference
entities (people, genres, networks, companies, keywords, languages) into API
ids. Resolution consults an explicit, versioned `OverrideTable` first and only
then the search API. Distinct lookups run as a bounded-parallel batch.

The service is injectable and owns its cache; there is no module-level
mutable state.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import ExternalAPIError
from ..core.models import EntityBase, MediaType, normalize_name
from .tmdb import SearchAPI

logger = logging.getLogger(__name__)


class OverrideTable(BaseModel):
    """Versioned name → id overrides, keyed by lookup kind and normalized name.

    Kinds: person, genre, genre_tv, network, company, keyword, language, mood.
    """

    model_config = ConfigDict(frozen=True)

    version: str
    entries: dict[str, dict[str, str]] = Field(default_factory=dict)

    def get(self, kind: str, name: str) -> str | None:
        return self.entries.get(kind, {}).get(normalize_name(name))

    def merged(self, other: "OverrideTable") -> "OverrideTable":
        """New table with `other` layered on top; versions are concatenated."""
        entries = {kind: dict(names) for kind, names in self.entries.items()}
        for kind, names in other.entries.items():
            entries.setdefault(kind, {}).update(
                {normalize_name(k): str(v) for k, v in names.items()}
            )
        return OverrideTable(version=f"{self.version}+{other.version}", entries=entries)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OverrideTable":
        entries = {
            kind: {normalize_name(str(k)): str(v) for k, v in (names or {}).items()}
            for kind, names in (data.get("entries") or {}).items()
        }
        return cls(version=str(data.get("version", "local")), entries=entries)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "OverrideTable":
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)


DEFAULT_OVERRIDES = OverrideTable.from_dict(
    {
        "version": "2024.2",
        "entries": {
            "genre": {
                "action": "28",
                "adventure": "12",
                "animation": "16",
                "animated": "16",
                "comedy": "35",
                "crime": "80",
                "documentary": "99",
                "drama": "18",
                "family": "10751",
                "fantasy": "14",
                "history": "36",
                "historical": "36",
                "horror": "27",
                "music": "10402",
                "musical": "10402",
                "mystery": "9648",
                "romance": "10749",
                "romantic": "10749",
                "science fiction": "878",
                "sci fi": "878",
                "scifi": "878",
                "tv movie": "10770",
                "thriller": "53",
                "war": "10752",
                "western": "37",
            },
            "genre_tv": {
                "action": "10759",
                "adventure": "10759",
                "action & adventure": "10759",
                "animation": "16",
                "animated": "16",
                "comedy": "35",
                "sitcom": "35",
                "crime": "80",
                "documentary": "99",
                "drama": "18",
                "family": "10751",
                "kids": "10762",
                "mystery": "9648",
                "news": "10763",
                "reality": "10764",
                "science fiction": "10765",
                "sci fi": "10765",
                "fantasy": "10765",
                "sci fi & fantasy": "10765",
                "soap": "10766",
                "talk": "10767",
                "war": "10768",
                "politics": "10768",
                "western": "37",
            },
            "network": {
                "abc": "2",
                "bbc": "4",
                "bbc one": "4",
                "nbc": "6",
                "cbs": "16",
                "fox": "19",
                "hbo": "49",
                "showtime": "67",
                "fx": "88",
                "amc": "174",
                "netflix": "213",
                "hulu": "453",
                "amazon": "1024",
                "prime video": "1024",
                "apple tv+": "2552",
                "apple tv": "2552",
                "disney+": "2739",
                "disney plus": "2739",
            },
            "language": {
                "english": "en",
                "french": "fr",
                "spanish": "es",
                "german": "de",
                "italian": "it",
                "japanese": "ja",
                "korean": "ko",
                "mandarin": "zh",
                "chinese": "zh",
                "cantonese": "cn",
                "hindi": "hi",
                "portuguese": "pt",
                "swedish": "sv",
                "danish": "da",
            },
        },
    }
)

# Entity kind -> (override kind, search path)
_LOOKUP_ROUTES: dict[str, tuple[str, str | None]] = {
    "person": ("person", "/search/person"),
    "genre": ("genre", None),
    "network": ("network", None),
    "company": ("company", "/search/company"),
    "keyword": ("keyword", "/search/keyword"),
    "mood": ("mood", "/search/keyword"),
    "language": ("language", None),
}

_ROLE_DEPARTMENTS = {
    "director": "Directing",
    "writer": "Writing",
    "cast": "Acting",
    "composer": "Sound",
    "producer": "Production",
}


class EntityLookupService:
    """Resolves entity names to ids with overrides, a per-instance cache and bounded parallelism."""

    def __init__(
        self,
        api: SearchAPI | None = None,
        overrides: OverrideTable | None = None,
        max_concurrency: int = 8,
    ) -> None:
        self.api = api
        self.overrides = overrides or DEFAULT_OVERRIDES
        self.max_concurrency = max(1, max_concurrency)
        self._cache: dict[tuple[str, str, str], str | None] = {}

    @classmethod
    def with_override_file(
        cls,
        api: SearchAPI | None,
        path: Path | str,
        max_concurrency: int = 8,
    ) -> "EntityLookupService":
        table = DEFAULT_OVERRIDES.merged(OverrideTable.from_yaml(path))
        logger.info(f"[LOOKUP] Loaded override table {table.version} from {path}")
        return cls(api, table, max_concurrency)

    def _override_kind(self, entity: EntityBase, media_type: MediaType) -> str:
        kind = _LOOKUP_ROUTES[entity.kind][0]
        if kind == "genre" and media_type == MediaType.TV:
            return "genre_tv"
        return kind

    def _cache_key(self, entity: EntityBase, media_type: MediaType) -> tuple[str, str, str]:
        return (self._override_kind(entity, media_type), entity.lookup_key, entity.role or "")

    async def _search(self, entity: EntityBase) -> str | None:
        path = _LOOKUP_ROUTES[entity.kind][1]
        if path is None or self.api is None:
            return None
        try:
            data = await self.api.get(path, {"query": entity.value})
        except ExternalAPIError as e:
            logger.warning(f"[LOOKUP] {entity.kind} {entity.value!r} lookup failed: {e}")
            return None

        results = data.get("results") or []
        if not results:
            return None
        if entity.kind == "person" and entity.role in _ROLE_DEPARTMENTS:
            department = _ROLE_DEPARTMENTS[entity.role]
            for result in results:
                if result.get("known_for_department") == department:
                    return str(result["id"])
        return str(results[0]["id"])

    async def resolve_one(self, entity: EntityBase, media_type: MediaType = MediaType.MOVIE) -> str | None:
        """Resolve a single entity's id, or None when it cannot be resolved."""
        if not entity.needs_lookup:
            return None
        if entity.resolved_id is not None:
            return entity.resolved_id

        key = self._cache_key(entity, media_type)
        if key in self._cache:
            return self._cache[key]

        if entity.kind == "language" and len(entity.lookup_key) == 2:
            resolved: str | None = entity.lookup_key
        else:
            resolved = self.overrides.get(key[0], entity.value)
            if resolved is None:
                resolved = await self._search(entity)

        self._cache[key] = resolved
        if resolved is None:
            logger.warning(f"[LOOKUP] Could not resolve {entity.kind} {entity.value!r}")
        else:
            logger.debug(f"[LOOKUP] {entity.kind} {entity.value!r} -> {resolved}")
        return resolved

    async def resolve_all(
        self,
        entities: list[EntityBase],
        media_type: MediaType = MediaType.MOVIE,
    ) -> list[EntityBase]:
        """Resolve every entity that needs an id, preserving input order.

        Each distinct (kind, name, role) is looked up once; lookups run
        concurrently with at most `max_concurrency` in flight. Entities are
        copied, never mutated.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        pending: dict[tuple[str, str, str], EntityBase] = {}
        for entity in entities:
            if entity.needs_lookup and entity.resolved_id is None:
                pending.setdefault(self._cache_key(entity, media_type), entity)

        async def _bounded(entity: EntityBase) -> None:
            async with semaphore:
                await self.resolve_one(entity, media_type)

        if pending:
            await asyncio.gather(*(_bounded(e) for e in pending.values()))

        resolved: list[EntityBase] = []
        for entity in entities:
            if not entity.needs_lookup or entity.resolved_id is not None:
                resolved.append(entity)
                continue
            entity_id = self._cache.get(self._cache_key(entity, media_type))
            if entity_id is None:
                resolved.append(entity)
            else:
                resolved.append(entity.model_copy(update={"resolved_id": entity_id}))
        return resolved
