"""Fixed endpoint catalog.

The external semantic retrieval step embeds `EndpointCatalog.documents()` and
returns ranked `{path, score}` hits. The catalog turns those hits into
`EndpointCandidate`s carrying the declared parameters and performance prior
each endpoint needs for scoring.
"""

import logging

from ..core.models import EndpointCandidate, MediaType, RetrievalHit

logger = logging.getLogger(__name__)


# Constraint key -> API parameters able to express it.
PARAMETER_VOCABULARY: dict[str, tuple[str, ...]] = {
    "person_id": ("with_people", "with_cast", "with_crew", "person_id"),
    "genre_id": ("with_genres",),
    "network_id": ("with_networks",),
    "company_id": ("with_companies",),
    "keyword_id": ("with_keywords",),
    "language": ("with_original_language",),
    "date": (
        "primary_release_year",
        "primary_release_date.gte",
        "primary_release_date.lte",
        "first_air_date_year",
        "first_air_date.gte",
        "first_air_date.lte",
        "year",
    ),
    "rating": ("vote_average.gte", "vote_average.lte"),
    "runtime": ("with_runtime.gte", "with_runtime.lte"),
    "revenue": (),
}

_COMMON = ("language", "page", "include_adult")

_DISCOVER_MOVIE_PARAMS = _COMMON + (
    "sort_by",
    "with_people",
    "with_cast",
    "with_crew",
    "with_genres",
    "with_companies",
    "with_keywords",
    "with_original_language",
    "primary_release_year",
    "primary_release_date.gte",
    "primary_release_date.lte",
    "vote_average.gte",
    "vote_average.lte",
    "vote_count.gte",
    "with_runtime.gte",
    "with_runtime.lte",
)

_DISCOVER_TV_PARAMS = _COMMON + (
    "sort_by",
    "with_genres",
    "with_networks",
    "with_companies",
    "with_keywords",
    "with_original_language",
    "first_air_date_year",
    "first_air_date.gte",
    "first_air_date.lte",
    "vote_average.gte",
    "vote_average.lte",
    "vote_count.gte",
    "with_runtime.gte",
    "with_runtime.lte",
)

_CATALOG_ENTRIES: tuple[tuple[str, MediaType | None, tuple[str, ...], float, str], ...] = (
    (
        "/discover/movie",
        MediaType.MOVIE,
        _DISCOVER_MOVIE_PARAMS,
        0.9,
        "Discover movies filtered by people, genres, companies, keywords, release dates, ratings and runtime",
    ),
    (
        "/discover/tv",
        MediaType.TV,
        _DISCOVER_TV_PARAMS,
        0.9,
        "Discover TV shows filtered by networks, genres, companies, keywords, air dates, ratings and runtime",
    ),
    (
        "/search/movie",
        MediaType.MOVIE,
        _COMMON + ("query", "year", "primary_release_year"),
        0.7,
        "Search movies by title",
    ),
    (
        "/search/tv",
        MediaType.TV,
        _COMMON + ("query", "first_air_date_year"),
        0.7,
        "Search TV shows by name",
    ),
    (
        "/search/person",
        None,
        _COMMON + ("query",),
        0.7,
        "Search people (actors, directors, crew) by name",
    ),
    (
        "/search/multi",
        None,
        _COMMON + ("query",),
        0.5,
        "Search movies, TV shows and people in one request",
    ),
    (
        "/person/{person_id}/movie_credits",
        MediaType.MOVIE,
        ("person_id", "language"),
        0.8,
        "Every movie a person acted in or worked on as crew, with character and job",
    ),
    (
        "/person/{person_id}/tv_credits",
        MediaType.TV,
        ("person_id", "language"),
        0.8,
        "Every TV show a person appeared in or worked on as crew",
    ),
    (
        "/person/{person_id}/combined_credits",
        None,
        ("person_id", "language"),
        0.6,
        "All movie and TV credits for a person",
    ),
    (
        "/movie/{movie_id}",
        MediaType.MOVIE,
        ("movie_id", "language", "append_to_response"),
        0.8,
        "Full movie details including budget, revenue, runtime and genres",
    ),
    (
        "/tv/{tv_id}",
        MediaType.TV,
        ("tv_id", "language", "append_to_response"),
        0.8,
        "Full TV show details including networks, seasons and episode runtime",
    ),
    (
        "/movie/top_rated",
        MediaType.MOVIE,
        ("language", "page"),
        0.6,
        "Top rated movies of all time",
    ),
    (
        "/movie/popular",
        MediaType.MOVIE,
        ("language", "page"),
        0.6,
        "Currently popular movies",
    ),
    (
        "/trending/movie/week",
        MediaType.MOVIE,
        ("language", "page"),
        0.6,
        "Movies trending this week",
    ),
    (
        "/trending/tv/week",
        MediaType.TV,
        ("language", "page"),
        0.6,
        "TV shows trending this week",
    ),
)


class EndpointCatalog:
    """Lookup from endpoint path to its declared capabilities."""

    def __init__(self, entries: list[EndpointCandidate] | None = None) -> None:
        if entries is None:
            entries = [
                EndpointCandidate(
                    path=path,
                    semantic_score=0.0,
                    supported_params=params,
                    performance_prior=prior,
                    media_type=media,
                    description=description,
                )
                for path, media, params, prior, description in _CATALOG_ENTRIES
            ]
        self._entries = {e.path: e for e in entries}

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, path: str) -> EndpointCandidate | None:
        return self._entries.get(path)

    def documents(self) -> list[tuple[str, str]]:
        """(path, description) pairs for the external embedding index."""
        return [(e.path, e.description) for e in self._entries.values()]

    def candidates(self, hits: list[RetrievalHit | dict]) -> list[EndpointCandidate]:
        """Turn ranked retrieval hits into candidates, preserving hit order.

        Paths missing from the catalog are kept with no declared parameters
        so they can still win on semantic score alone.
        """
        result: list[EndpointCandidate] = []
        seen: set[str] = set()
        for hit in hits:
            if isinstance(hit, dict):
                hit = RetrievalHit(**hit)
            if hit.path in seen:
                continue
            seen.add(hit.path)
            known = self._entries.get(hit.path)
            score = max(0.0, hit.score)
            if known is None:
                logger.debug(f"[PLANNER] Retrieval hit {hit.path} not in catalog")
                result.append(EndpointCandidate(path=hit.path, semantic_score=score))
            else:
                result.append(known.model_copy(update={"semantic_score": score}))
        return result

    def discover_for(self, media_type: MediaType) -> EndpointCandidate:
        return self._entries[f"/discover/{media_type.value}"]

    def detail_for(self, media_type: MediaType) -> EndpointCandidate:
        path = "/movie/{movie_id}" if media_type == MediaType.MOVIE else "/tv/{tv_id}"
        return self._entries[path]


def supported_keys(candidate: EndpointCandidate) -> set[str]:
    """Constraint keys this candidate can express through its parameters."""
    params = set(candidate.supported_params)
    return {
        key
        for key, vocabulary in PARAMETER_VOCABULARY.items()
        if params.intersection(vocabulary)
    }
