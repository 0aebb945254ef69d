"""Tests for revenue enrichment."""

import asyncio

from marquee.core.errors import ExternalAPIError
from marquee.core.models import MediaType, RevenueThreshold
from marquee.execution.enrichment import detail_path, enrich_and_filter

UNDER_25M = RevenueThreshold(amount=25_000_000, operator="less_than")


def _details(revenues):
    return {f"/movie/{i}": {"id": i, "revenue": r, "budget": 1} for i, r in revenues.items()}


class TestDetailPath:
    def test_uses_item_media_type(self):
        assert detail_path({"id": 5, "media_type": "tv"}, MediaType.MOVIE) == "/tv/5"
        assert detail_path({"id": 5}, MediaType.MOVIE) == "/movie/5"


class TestEnrichAndFilter:
    """Tests for enrich_and_filter()."""

    def test_threshold_filter(self, make_api):
        api = make_api(_details({1: 10_000_000, 2: 90_000_000, 3: 0, 4: 24_999_999}))
        items = [{"id": i, "title": f"t{i}"} for i in range(1, 5)]

        matched, fetched = asyncio.run(enrich_and_filter(api, items, UNDER_25M))

        assert [m["id"] for m in matched] == [1, 4]
        assert matched[0]["revenue"] == 10_000_000
        assert matched[0]["title"] == "t1"
        assert fetched == 4

    def test_unreported_revenue_never_matches(self, make_api):
        api = make_api({"/movie/1": {"id": 1}})
        over = RevenueThreshold(amount=0, operator="greater_than_equal")
        matched, _ = asyncio.run(enrich_and_filter(api, [{"id": 1}], over))
        assert matched == []

    def test_sample_size_bounds_calls(self, make_api):
        api = make_api(_details({i: 1_000 for i in range(1, 31)}))
        items = [{"id": i} for i in range(1, 31)]

        _, fetched = asyncio.run(enrich_and_filter(api, items, UNDER_25M, sample_size=7))

        assert fetched == 7
        assert len(api.calls) == 7

    def test_stops_after_enough_matches(self, make_api):
        api = make_api(_details({i: 1_000 for i in range(1, 21)}))
        items = [{"id": i} for i in range(1, 21)]

        matched, fetched = asyncio.run(
            enrich_and_filter(api, items, UNDER_25M, sample_size=20, max_concurrency=4, enough=3)
        )

        assert fetched == 4
        assert len(matched) == 4
        assert api.paths == ["/movie/1", "/movie/2", "/movie/3", "/movie/4"]

    def test_failed_detail_is_skipped(self, make_api):
        api = make_api(
            _details({1: 1_000, 3: 2_000}),
            errors={"/movie/2": ExternalAPIError("HTTP 404 from /movie/2", status_code=404)},
        )
        items = [{"id": 1}, {"id": 2}, {"id": 3}]

        matched, fetched = asyncio.run(enrich_and_filter(api, items, UNDER_25M))

        assert [m["id"] for m in matched] == [1, 3]
        assert fetched == 3

    def test_items_without_id_ignored(self, make_api):
        api = make_api(_details({1: 1_000}))
        matched, fetched = asyncio.run(enrich_and_filter(api, [{"title": "x"}, {"id": 1}], UNDER_25M))
        assert fetched == 1
        assert len(matched) == 1
