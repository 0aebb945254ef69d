"""Shared test doubles."""

import pytest

from marquee.config import ApiConfig, ExecutionConfig, MarqueeConfig


class FakeSearchAPI:
    """In-memory SearchAPI.

    `responses` maps a path to a payload, or to a callable taking the params
    and returning one. `errors` maps a path to an exception to raise.
    Unknown paths return an empty listing.
    """

    def __init__(self, responses=None, errors=None):
        self.responses = dict(responses or {})
        self.errors = dict(errors or {})
        self.calls: list[tuple[str, dict]] = []

    async def get(self, path, params=None):
        params = dict(params or {})
        self.calls.append((path, params))
        if path in self.errors:
            raise self.errors[path]
        response = self.responses.get(path, {"results": [], "total_pages": 1})
        if callable(response):
            response = response(params)
        return response

    @property
    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]

    def calls_to(self, path: str) -> list[dict]:
        return [params for p, params in self.calls if p == path]


@pytest.fixture
def make_api():
    return FakeSearchAPI


@pytest.fixture
def config():
    """Deterministic config: no file/env layering, small caps."""
    return MarqueeConfig(
        api=ApiConfig(max_concurrency=4, max_pages=1, max_retries=0, backoff_base=0.0),
        execution=ExecutionConfig(min_results=1, enrichment_sample_size=10, max_entries=20),
    )
