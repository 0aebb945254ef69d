"""Clients for the external search/discovery API and entity lookups."""

from .tmdb import SearchAPI, TMDBClient, fetch_pages
from .lookup import DEFAULT_OVERRIDES, EntityLookupService, OverrideTable

__all__ = [
    "SearchAPI",
    "TMDBClient",
    "fetch_pages",
    "DEFAULT_OVERRIDES",
    "EntityLookupService",
    "OverrideTable",
]
