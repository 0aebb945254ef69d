"""Tests for endpoint-aware result validation."""

import pytest

from marquee.execution.validation import (
    item_matches,
    leaf_matches,
    should_bypass_validation,
    validate_items,
)
from marquee.planner.tree_builder import build_constraint_tree

CREDITS = "/person/{person_id}/movie_credits"
PERSON = {"type": "person", "value": "Tom Hanks", "resolved_id": "31"}
DIRECTOR = {"type": "person", "value": "Greta Gerwig", "role": "director", "resolved_id": "45400"}
HORROR = {"type": "genre", "value": "horror", "resolved_id": "27"}
COMEDY = {"type": "genre", "value": "comedy", "resolved_id": "35"}
NINETIES = {"type": "date", "value": "1990s"}


class TestBypassRule:
    """Bypass iff credits endpoint AND one constraint AND it is a person."""

    def test_bypass_single_person_on_credits(self):
        tree = build_constraint_tree([PERSON])
        assert should_bypass_validation(CREDITS, tree.flatten())
        assert should_bypass_validation("/person/31/tv_credits", tree.flatten())

    def test_no_bypass_on_discover(self):
        tree = build_constraint_tree([PERSON])
        assert not should_bypass_validation("/discover/movie", tree.flatten())

    def test_no_bypass_for_non_person(self):
        tree = build_constraint_tree([HORROR])
        assert not should_bypass_validation(CREDITS, tree.flatten())

    @pytest.mark.parametrize(
        "entities",
        [
            [],
            [PERSON, NINETIES],
            [PERSON, DIRECTOR],
            [PERSON, HORROR, NINETIES],
            [NINETIES, {"type": "keyword", "value": "war", "resolved_id": "1956"}],
        ],
    )
    def test_never_bypassed_unless_exactly_one(self, entities):
        tree = build_constraint_tree(entities)
        assert len(tree.flatten()) != 1
        for path in (CREDITS, "/person/31/combined_credits", "/discover/movie", "/search/movie"):
            assert not should_bypass_validation(path, tree.flatten())

    def test_validate_items_reports_bypass(self):
        tree = build_constraint_tree([PERSON])
        items = [{"id": 1, "release_date": "1994-07-06"}]
        kept, bypassed = validate_items(items, tree, CREDITS)
        assert bypassed
        assert kept == items


class TestLeafMatching:
    """Tests for leaf_matches() and item_matches()."""

    def test_genre_ids(self):
        tree = build_constraint_tree([HORROR])
        leaf = tree.flatten()[0]
        assert leaf_matches({"genre_ids": [27, 53]}, leaf)
        assert not leaf_matches({"genre_ids": [35]}, leaf)
        assert leaf_matches({"genres": [{"id": 27, "name": "Horror"}]}, leaf)

    def test_missing_genre_field_passes(self):
        leaf = build_constraint_tree([HORROR]).flatten()[0]
        assert leaf_matches({"id": 1}, leaf)

    def test_or_group(self):
        tree = build_constraint_tree([HORROR, COMEDY])
        assert item_matches({"genre_ids": [35]}, tree)
        assert not item_matches({"genre_ids": [18]}, tree)

    def test_date_bounds(self):
        tree = build_constraint_tree([NINETIES])
        assert item_matches({"release_date": "1994-07-06"}, tree)
        assert item_matches({"first_air_date": "1999-01-10"}, tree)
        assert not item_matches({"release_date": "2001-05-01"}, tree)

    def test_missing_date_fails(self):
        tree = build_constraint_tree([NINETIES])
        assert not item_matches({"release_date": ""}, tree)

    def test_rating(self):
        tree = build_constraint_tree([{"type": "rating", "value": "7"}])
        assert item_matches({"vote_average": 7.0}, tree)
        assert not item_matches({"vote_average": 6.9}, tree)
        assert not item_matches({}, tree)

    def test_runtime_only_checked_when_present(self):
        tree = build_constraint_tree([{"type": "runtime", "value": "100"}])
        assert item_matches({}, tree)
        assert item_matches({"runtime": 95}, tree)
        assert not item_matches({"runtime": 140}, tree)

    def test_language(self):
        tree = build_constraint_tree([{"type": "language", "value": "ko", "resolved_id": "ko"}])
        assert item_matches({"original_language": "ko"}, tree)
        assert not item_matches({"original_language": "en"}, tree)

    def test_revenue_left_to_enrichment(self):
        tree = build_constraint_tree([{"type": "revenue", "value": "1000", "operator": "under"}])
        assert item_matches({"revenue": 5_000_000}, tree)

    def test_unresolved_leaf_passes(self):
        tree = build_constraint_tree([{"type": "genre", "value": "cosmic horror"}])
        assert item_matches({"genre_ids": [27]}, tree)


class TestCreditRoles:
    """Person leaves check credit rows for the path person."""

    def test_director_role_needs_directing_credit(self):
        tree = build_constraint_tree([DIRECTOR, NINETIES])
        directed = {"credit_type": "crew", "credit_person_id": "45400", "job": "Director", "release_date": "1995-01-01"}
        acted = {"credit_type": "cast", "credit_person_id": "45400", "character": "Herself", "release_date": "1995-01-01"}
        assert item_matches(directed, tree)
        assert not item_matches(acted, tree)

    def test_cast_role(self):
        tree = build_constraint_tree([{**PERSON, "role": "cast"}, NINETIES])
        acted = {"credit_type": "cast", "credit_person_id": "31", "release_date": "1994-01-01"}
        produced = {"credit_type": "crew", "credit_person_id": "31", "job": "Producer", "release_date": "1994-01-01"}
        assert item_matches(acted, tree)
        assert not item_matches(produced, tree)

    def test_other_person_unchecked(self):
        tree = build_constraint_tree([DIRECTOR, PERSON])
        row = {"credit_type": "crew", "credit_person_id": "45400", "job": "Director"}
        assert item_matches(row, tree)
