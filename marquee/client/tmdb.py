"""Async HTTP client for a TMDB-style search/discovery API.

Implements the `SearchAPI` contract consumed by the planner:
    await api.get(path, params) -> dict

Transient failures (timeouts, connection errors, 429, 5xx) are retried with
exponential backoff plus jitter; anything else surfaces immediately as a
non-retryable ExternalAPIError. A semaphore caps in-flight requests so that
entity lookups and enrichment fetches never fan out unbounded.
"""

import asyncio
import logging
import random
import time
from typing import Any, Protocol

import httpx

from ..config import MarqueeConfig, get_config
from ..core.errors import ExternalAPIError

logger = logging.getLogger(__name__)


class SearchAPI(Protocol):
    """Minimal read-only contract for the search/discovery service."""

    async def get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]: ...


def _redact(params: dict[str, str]) -> dict[str, str]:
    return {k: ("[REDACTED_SECRET]" if k == "api_key" else v) for k, v in params.items()}


class TMDBClient:
    """Async client over httpx with bounded concurrency and retry.

    Usage:
        async with TMDBClient.from_config() as client:
            data = await client.get("/discover/movie", {"with_genres": "27"})
    """

    def __init__(
        self,
        api_key: str = "",
        *,
        base_url: str = "https://api.themoviedb.org/3",
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        max_concurrency: int = 8,
        language: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.language = language
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

        headers = {"Accept": "application/json"}
        # v4 read-access tokens are JWTs and go in the header; v3 keys go in the query.
        self._key_in_query = bool(api_key) and not api_key.startswith("eyJ")
        if api_key and not self._key_in_query:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            headers=headers,
            transport=transport,
        )
        self.request_count = 0

    @classmethod
    def from_config(
        cls,
        config: MarqueeConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "TMDBClient":
        config = config or get_config()
        api_key = config.api_key
        if not api_key:
            raise ValueError(
                f"API key not found. Set {config.api.api_key_env} as an environment variable."
            )
        return cls(
            api_key,
            base_url=config.api.base_url,
            timeout=config.api.timeout,
            max_retries=config.api.max_retries,
            backoff_base=config.api.backoff_base,
            max_concurrency=config.api.max_concurrency,
            language=config.api.language,
            transport=transport,
        )

    async def __aenter__(self) -> "TMDBClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    def _build_params(self, params: dict[str, str] | None) -> dict[str, str]:
        query = dict(params or {})
        if self.language and "language" not in query:
            query["language"] = self.language
        if self._key_in_query:
            query["api_key"] = self._api_key
        return query

    async def _request_once(self, path: str, query: dict[str, str]) -> dict[str, Any]:
        try:
            async with self._semaphore:
                self.request_count += 1
                response = await self._client.get(path, params=query)
        except httpx.TimeoutException as e:
            raise ExternalAPIError(f"Timeout calling {path}: {e}", retryable=True, path=path) from e
        except httpx.RequestError as e:
            raise ExternalAPIError(
                f"Request error calling {path}: {type(e).__name__}: {e}",
                retryable=True,
                path=path,
            ) from e

        if response.status_code >= 400:
            raise ExternalAPIError.from_status(response.status_code, path, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalAPIError(f"Malformed JSON from {path}", path=path) from e
        if not isinstance(data, dict):
            raise ExternalAPIError(
                f"Unexpected payload from {path}: {type(data).__name__}", path=path
            )
        return data

    async def get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        """GET a JSON object, retrying transient failures.

        Raises:
            ExternalAPIError: Non-retryable failure, or retries exhausted.
        """
        query = self._build_params(params)
        logger.debug(f"[TMDB] GET {path} {_redact(query)}")

        for attempt in range(self.max_retries + 1):
            start = time.time()
            try:
                data = await self._request_once(path, query)
            except ExternalAPIError as e:
                if not e.retryable or attempt == self.max_retries:
                    logger.warning(f"[TMDB] {path} failed ({attempt + 1} attempts): {e}")
                    raise
                wait = self.backoff_base * (2**attempt) + random.random() * self.backoff_base
                att = f"{attempt + 1}/{self.max_retries + 1}"
                logger.warning(
                    f"[TMDB] Transient error ({att}): {e}. Retrying in {wait:.1f}s"
                )
                await asyncio.sleep(wait)
                continue
            logger.debug(f"[TMDB] {path} responded in {time.time() - start:.2f}s")
            return data
        raise AssertionError("unreachable")

    async def get_pages(
        self,
        path: str,
        params: dict[str, str] | None = None,
        max_pages: int = 1,
    ) -> list[dict[str, Any]]:
        """Fetch up to `max_pages` pages of a paginated listing, in page order."""
        return await fetch_pages(self, path, params, max_pages)


async def fetch_pages(
    api: SearchAPI,
    path: str,
    params: dict[str, str] | None = None,
    max_pages: int = 1,
) -> list[dict[str, Any]]:
    """Fetch the first page, then any further pages concurrently.

    Results are returned in page order regardless of completion order.
    """
    first_params = dict(params or {})
    if max_pages > 1:
        first_params["page"] = "1"
    first = await api.get(path, first_params)
    total_pages = first.get("total_pages") or 1
    last = min(int(total_pages), max(1, max_pages))
    if last <= 1:
        return [first]

    async def _page(n: int) -> dict[str, Any]:
        return await api.get(path, {**(params or {}), "page": str(n)})

    rest = await asyncio.gather(*(_page(n) for n in range(2, last + 1)))
    return [first, *rest]
