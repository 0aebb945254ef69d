"""Tests for the endpoint catalog and candidate scorer."""

import pytest

from marquee.config import PlannerConfig
from marquee.core.errors import EndpointSelectionError
from marquee.core.models import EndpointCandidate, MediaType, RetrievalHit
from marquee.planner.catalog import EndpointCatalog, supported_keys
from marquee.planner.scorer import (
    best_semantic_candidate,
    param_coverage,
    score_candidates,
    select_endpoint,
)
from marquee.planner.tree_builder import build_constraint_tree

CATALOG = EndpointCatalog()

DICAPRIO = {"type": "person", "value": "Leonardo DiCaprio", "resolved_id": "6193"}
SCORSESE = {"type": "person", "value": "Martin Scorsese", "role": "director", "resolved_id": "1032"}


def _candidates(*hits):
    return CATALOG.candidates([RetrievalHit(path=path, score=score) for path, score in hits])


class TestCatalog:
    """Tests for EndpointCatalog."""

    def test_candidates_preserve_hit_order_and_scores(self):
        candidates = _candidates(("/search/movie", 0.9), ("/discover/movie", 0.7))
        assert [c.path for c in candidates] == ["/search/movie", "/discover/movie"]
        assert candidates[1].semantic_score == 0.7
        assert candidates[1].performance_prior == 0.9

    def test_duplicate_hits_collapsed(self):
        candidates = CATALOG.candidates(
            [{"path": "/discover/movie", "score": 0.8}, {"path": "/discover/movie", "score": 0.1}]
        )
        assert len(candidates) == 1
        assert candidates[0].semantic_score == 0.8

    def test_unknown_path_kept_without_params(self):
        candidates = _candidates(("/collection/{collection_id}", 0.5))
        assert candidates[0].supported_params == ()

    def test_supported_keys(self):
        assert "person_id" in supported_keys(CATALOG.get("/discover/movie"))
        assert "network_id" not in supported_keys(CATALOG.get("/discover/movie"))
        assert supported_keys(CATALOG.get("/person/{person_id}/movie_credits")) == {"person_id"}

    def test_documents_cover_catalog(self):
        assert len(CATALOG.documents()) == len(CATALOG)


class TestCoverage:
    """Tests for param_coverage()."""

    def test_discover_covers_two_people(self):
        tree = build_constraint_tree([DICAPRIO, SCORSESE])
        assert param_coverage(CATALOG.get("/discover/movie"), tree) == 1.0

    def test_credits_covers_one_person(self):
        tree = build_constraint_tree([DICAPRIO, SCORSESE])
        assert param_coverage(CATALOG.get("/person/{person_id}/movie_credits"), tree) == 0.5

    def test_search_covers_nothing(self):
        tree = build_constraint_tree([{"type": "genre", "value": "horror", "resolved_id": "27"}])
        assert param_coverage(CATALOG.get("/search/movie"), tree) == 0.0

    def test_no_primary_constraints_is_full_coverage(self):
        tree = build_constraint_tree([{"type": "date", "value": "2010"}])
        assert param_coverage(CATALOG.get("/search/movie"), tree) == 1.0

    def test_unresolved_identity_is_not_covered(self):
        tree = build_constraint_tree(
            [{"type": "person", "value": "Nobody Known"}, {"type": "genre", "value": "horror", "resolved_id": "27"}]
        )
        assert param_coverage(CATALOG.get("/discover/movie"), tree) == 0.5


class TestSelection:
    """Tests for select_endpoint() and its tie-breaks."""

    def test_scenario_a_selects_discover(self):
        tree = build_constraint_tree([DICAPRIO, SCORSESE])
        candidates = _candidates(
            ("/person/{person_id}/movie_credits", 0.85),
            ("/discover/movie", 0.8),
            ("/search/person", 0.9),
        )
        selected, ranking = select_endpoint(candidates, tree, [MediaType.MOVIE])
        assert selected.path == "/discover/movie"
        assert "/search/person" not in [s.path for s in ranking]

    def test_single_person_prefers_credits(self):
        tree = build_constraint_tree([{"type": "person", "value": "Tom Hanks", "resolved_id": "31"}])
        candidates = _candidates(
            ("/discover/movie", 0.8),
            ("/person/{person_id}/movie_credits", 0.75),
        )
        selected, _ = select_endpoint(candidates, tree, [MediaType.MOVIE])
        assert selected.path == "/person/{person_id}/movie_credits"

    def test_credits_tie_break_limited_to_margin(self):
        tree = build_constraint_tree([{"type": "person", "value": "Tom Hanks", "resolved_id": "31"}])
        candidates = _candidates(
            ("/discover/movie", 0.95),
            ("/person/{person_id}/movie_credits", 0.2),
        )
        selected, _ = select_endpoint(candidates, tree, [MediaType.MOVIE])
        assert selected.path == "/discover/movie"

    def test_multi_tier_prefers_discover_over_search(self):
        tree = build_constraint_tree(
            [
                {"type": "genre", "value": "drama", "resolved_id": "18"},
                {"type": "date", "value": "1994"},
            ]
        )
        candidates = [
            EndpointCandidate(
                path="/search/movie",
                semantic_score=0.9,
                supported_params=("query", "with_genres", "year"),
                performance_prior=0.7,
            ),
            CATALOG.get("/discover/movie").model_copy(update={"semantic_score": 0.85}),
        ]
        selected, ranking = select_endpoint(candidates, tree, [MediaType.MOVIE])
        assert ranking[0].path == "/search/movie"
        assert selected.path == "/discover/movie"

    def test_media_mismatch_excluded(self):
        tree = build_constraint_tree([{"type": "genre", "value": "drama", "resolved_id": "18"}])
        candidates = _candidates(("/discover/movie", 0.9), ("/discover/tv", 0.5))
        selected, ranking = select_endpoint(candidates, tree, [MediaType.TV])
        assert selected.path == "/discover/tv"
        assert [s.path for s in ranking] == ["/discover/tv"]

    def test_no_viable_endpoint(self):
        tree = build_constraint_tree([{"type": "genre", "value": "drama", "resolved_id": "18"}])
        candidates = _candidates(("/search/movie", 0.9), ("/movie/top_rated", 0.8))
        with pytest.raises(EndpointSelectionError) as exc_info:
            select_endpoint(candidates, tree, [MediaType.MOVIE])
        assert exc_info.value.best_coverage == 0.0

    def test_weights_from_config(self):
        tree = build_constraint_tree([{"type": "genre", "value": "drama", "resolved_id": "18"}])
        candidates = _candidates(("/discover/movie", 0.5))
        config = PlannerConfig(semantic_weight=1.0, coverage_weight=0.0, performance_weight=0.0)
        assert score_candidates(candidates, tree, [MediaType.MOVIE], config)[0].score == 0.5

    def test_equal_scores_keep_retrieval_order(self):
        tree = build_constraint_tree([{"type": "date", "value": "2001"}])
        candidates = _candidates(("/movie/popular", 0.5), ("/trending/movie/week", 0.5))
        ranking = score_candidates(candidates, tree, [MediaType.MOVIE])
        assert [s.path for s in ranking] == ["/movie/popular", "/trending/movie/week"]

    def test_unresolved_primary_constraint_fails_selection(self):
        tree = build_constraint_tree(
            [{"type": "person", "value": "Nobody Known"}, {"type": "genre", "value": "horror", "resolved_id": "27"}]
        )
        with pytest.raises(EndpointSelectionError) as exc_info:
            select_endpoint(_candidates(("/discover/movie", 0.9)), tree, [MediaType.MOVIE])
        assert [r.value for r in exc_info.value.unresolved] == ["Nobody Known"]
        assert exc_info.value.best_coverage == 0.5


class TestBestSemanticCandidate:
    def test_credits_need_a_person(self):
        tree = build_constraint_tree([{"type": "genre", "value": "drama", "resolved_id": "18"}])
        candidates = _candidates(
            ("/person/{person_id}/movie_credits", 0.9),
            ("/search/movie", 0.6),
        )
        best = best_semantic_candidate(candidates, tree, [MediaType.MOVIE])
        assert best.path == "/search/movie"

    def test_none_when_nothing_callable(self):
        tree = build_constraint_tree([])
        assert best_semantic_candidate(_candidates(("/search/person", 0.9)), tree, [MediaType.MOVIE]) is None

    def test_credits_need_a_resolved_person(self):
        tree = build_constraint_tree([{"type": "person", "value": "Nobody Known"}])
        candidates = _candidates(("/person/{person_id}/movie_credits", 0.9), ("/search/movie", 0.6))
        assert best_semantic_candidate(candidates, tree, [MediaType.MOVIE]).path == "/search/movie"
