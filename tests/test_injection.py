"""Tests for the four-phase parameter injection pipeline."""

import pytest

from marquee.core.models import ExecutionStep, InjectionPhase, MediaType
from marquee.planner.catalog import EndpointCatalog
from marquee.planner.injection import (
    ParameterInjector,
    infer_semantics,
    parse_money,
    revenue_sort_for,
)
from marquee.planner.tree_builder import build_constraint_tree

CATALOG = EndpointCatalog()
DISCOVER_MOVIE = CATALOG.get("/discover/movie")
DISCOVER_TV = CATALOG.get("/discover/tv")
MOVIE_CREDITS = CATALOG.get("/person/{person_id}/movie_credits")

HORROR = {"type": "genre", "value": "horror", "resolved_id": "27"}
COMEDY = {"type": "genre", "value": "comedy", "resolved_id": "35"}


def _step(entities, endpoint=DISCOVER_MOVIE, media=MediaType.MOVIE, query=""):
    tree = build_constraint_tree(entities)
    return ParameterInjector().build_step(endpoint, tree, media, query=query)


class TestEntityAndConstraintPhases:
    """Phases 1 and 2."""

    def test_single_genre(self):
        step = _step([HORROR])
        assert step.parameters["with_genres"] == "27"
        assert step.phase_log["with_genres"] == InjectionPhase.CONSTRAINT

    def test_or_group_joined_with_pipe(self):
        step = _step([HORROR, COMEDY])
        assert step.parameters["with_genres"] == "27|35"

    def test_and_people_joined_with_comma(self):
        step = _step(
            [
                {"type": "person", "value": "Leonardo DiCaprio", "resolved_id": "6193"},
                {"type": "person", "value": "Martin Scorsese", "role": "director", "resolved_id": "1032"},
            ]
        )
        assert step.parameters["with_people"] == "6193,1032"

    def test_unresolved_names_not_injected(self):
        step = _step([{"type": "genre", "value": "cosmic horror"}])
        assert "with_genres" not in step.parameters

    def test_single_year(self):
        step = _step([{"type": "date", "value": "2010"}])
        assert step.parameters["primary_release_year"] == "2010"
        assert "primary_release_date.gte" not in step.parameters

    def test_single_year_tv(self):
        step = _step([{"type": "date", "value": "2010"}], endpoint=DISCOVER_TV, media=MediaType.TV)
        assert step.parameters["first_air_date_year"] == "2010"

    def test_decade_becomes_range(self):
        step = _step([{"type": "date", "value": "1990s"}])
        assert step.parameters["primary_release_date.gte"] == "1990-01-01"
        assert step.parameters["primary_release_date.lte"] == "1999-12-31"

    def test_range_removes_single_year(self):
        step = _step([{"type": "date", "value": "1995"}, {"type": "date", "value": "1990s"}])
        assert "primary_release_year" not in step.parameters
        assert "primary_release_year" not in step.phase_log
        assert step.parameters["primary_release_date.gte"] == "1990-01-01"
        assert step.parameters["primary_release_date.lte"] == "1999-12-31"

    def test_bounded_dates_intersect(self):
        step = _step(
            [
                {"type": "date", "value": "2000", "operator": "after"},
                {"type": "date", "value": "2010", "operator": "before"},
            ]
        )
        assert step.parameters["primary_release_date.gte"] == "2001-01-01"
        assert step.parameters["primary_release_date.lte"] == "2009-12-31"

    def test_open_ended_date(self):
        step = _step([{"type": "date", "value": "2015", "operator": "since"}], endpoint=DISCOVER_TV, media=MediaType.TV)
        assert step.parameters["first_air_date.gte"] == "2015-01-01"
        assert "first_air_date.lte" not in step.parameters

    def test_rating_and_runtime(self):
        step = _step(
            [
                {"type": "rating", "value": "7.5"},
                {"type": "runtime", "value": "90", "operator": "under"},
            ]
        )
        assert step.parameters["vote_average.gte"] == "7.5"
        assert step.parameters["with_runtime.lte"] == "90"

    def test_language(self):
        step = _step([{"type": "language", "value": "french", "resolved_id": "fr"}])
        assert step.parameters["with_original_language"] == "fr"

    def test_credits_person_is_a_path_param(self):
        step = _step(
            [{"type": "person", "value": "Tom Hanks", "resolved_id": "31"}],
            endpoint=MOVIE_CREDITS,
        )
        assert step.path_params == {"person_id": "31"}
        assert "with_people" not in step.parameters
        assert step.resolved_path() == "/person/31/movie_credits"


class TestSemanticPhase:
    """Phase 3 fills gaps only."""

    def test_high_rating_infers_vote_floor(self):
        step = _step([{"type": "rating", "value": "8"}])
        assert step.parameters["vote_count.gte"] == "100"
        assert step.phase_log["vote_count.gte"] == InjectionPhase.SEMANTIC

    def test_highly_rated_wording_infers_vote_floor(self):
        step = _step([HORROR], query="highly rated horror movies")
        assert step.parameters["vote_count.gte"] == "100"

    def test_low_rating_threshold_does_not(self):
        step = _step([{"type": "rating", "value": "5"}])
        assert "vote_count.gte" not in step.parameters

    def test_never_overrides_earlier_phase(self):
        tree = build_constraint_tree([{"type": "rating", "value": "8"}])
        step = ExecutionStep(step_id="s", endpoint=DISCOVER_MOVIE)
        step.set_param("vote_count.gte", "500", InjectionPhase.CONSTRAINT)
        step.set_param("include_adult", "true", InjectionPhase.ENTITY)
        infer_semantics(step, tree, "highly rated")
        assert step.parameters["vote_count.gte"] == "500"
        assert step.parameters["include_adult"] == "true"
        assert step.phase_log["vote_count.gte"] == InjectionPhase.CONSTRAINT

    def test_search_endpoint_gets_query(self):
        step = _step([], endpoint=CATALOG.get("/search/movie"), query="  Inception ")
        assert step.parameters["query"] == "Inception"

    def test_unsupported_defaults_skipped(self):
        step = _step([{"type": "person", "value": "Tom Hanks", "resolved_id": "31"}], endpoint=MOVIE_CREDITS)
        assert "include_adult" not in step.parameters


class TestRevenuePhase:
    """Phase 4 and the revenue helpers."""

    def test_scenario_b_less_than(self):
        step = _step([{"type": "revenue", "value": "25000000", "operator": "less_than"}, HORROR])
        assert step.parameters["sort_by"] == "popularity.desc"
        assert step.phase_log["sort_by"] == InjectionPhase.REVENUE
        assert step.revenue_threshold.amount == 25_000_000
        assert step.revenue_threshold.operator == "less_than"
        assert "revenue" not in step.query_params()

    def test_greater_than_sorts_by_revenue(self):
        step = _step([{"type": "revenue", "value": "$1B", "operator": "over"}])
        assert step.parameters["sort_by"] == "revenue.desc"
        assert step.revenue_threshold.amount == 1_000_000_000

    def test_missing_operator_defaults_to_lower_bound(self):
        step = _step([{"type": "revenue", "value": "100 million"}])
        assert step.revenue_threshold.operator == "greater_than_equal"
        assert step.parameters["sort_by"] == "revenue.desc"

    def test_no_revenue_no_threshold(self):
        assert _step([HORROR]).revenue_threshold is None

    @pytest.mark.parametrize(
        "operator,expected",
        [
            ("less_than", "popularity.desc"),
            ("less_than_equal", "popularity.desc"),
            ("greater_than", "revenue.desc"),
            ("greater_than_equal", "revenue.desc"),
        ],
    )
    def test_operator_mapping_is_total(self, operator, expected):
        assert revenue_sort_for(operator) == expected

    @pytest.mark.parametrize("operator", ["equal", "between", ""])
    def test_other_operators_rejected(self, operator):
        with pytest.raises(ValueError):
            revenue_sort_for(operator)

    @pytest.mark.parametrize(
        "text,amount",
        [
            ("25000000", 25_000_000),
            ("25,000,000", 25_000_000),
            ("$25M", 25_000_000),
            ("25 million", 25_000_000),
            ("1.2b", 1_200_000_000),
            ("$1.5 billion", 1_500_000_000),
            ("100k", 100_000),
        ],
    )
    def test_parse_money(self, text, amount):
        assert parse_money(text) == amount

    def test_parse_money_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_money("a lot")


class TestPipelineProperties:
    """Whole-pipeline properties."""

    ENTITIES = [
        HORROR,
        COMEDY,
        {"type": "date", "value": "1990s"},
        {"type": "rating", "value": "7"},
        {"type": "keyword", "value": "zombie", "resolved_id": "12377"},
        {"type": "revenue", "value": "50M", "operator": "lt"},
    ]

    def test_idempotent(self):
        first = _step(self.ENTITIES, query="best horror comedies of the 90s")
        second = _step(self.ENTITIES, query="best horror comedies of the 90s")
        assert first.parameters == second.parameters
        assert list(first.query_params().items()) == list(second.query_params().items())
        assert first.phase_log == second.phase_log
        assert first.revenue_threshold == second.revenue_threshold

    def test_query_params_sorted_and_filtered(self):
        step = _step(self.ENTITIES)
        step.parameters["not_a_real_param"] = "x"
        keys = list(step.query_params())
        assert keys == sorted(keys)
        assert "not_a_real_param" not in keys

    def test_minimal_step_uses_primary_entities_only(self):
        tree = build_constraint_tree(self.ENTITIES)
        step = ParameterInjector().build_minimal_step(DISCOVER_MOVIE, tree, MediaType.MOVIE)
        assert step.parameters["with_genres"] == "27,35"
        assert "primary_release_date.gte" not in step.parameters
        assert "with_keywords" not in step.parameters
        assert "vote_count.gte" not in step.parameters
        assert step.revenue_threshold is None
        assert step.validate_results is False
