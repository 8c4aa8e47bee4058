"""
Unit tests for relationship helpers and tree display cleanup.
"""

import pytest

from app.core.errors import BadRequestError

from app.services.family import clean_people, normalize_code
from app.services.family_link import normalize_family_pair, resolve_parent_role
from app.services.relationship import (
    get_other_generation,
    invert_relationship_type,
    normalize_gender,
    parse_age,
)


class TestGenerationHelpers:
    @pytest.mark.parametrize(
        "relationship, expected",
        [("parent", "child"), ("child", "parent"), ("sibling", "sibling"), ("cousin", "sibling")],
    )
    def test_invert_relationship_type(self, relationship, expected):
        assert invert_relationship_type(relationship) == expected

    def test_parent_sits_one_generation_above(self):
        assert get_other_generation(3, "parent") == 2
        assert get_other_generation(3, "child") == 4
        assert get_other_generation(3, "sibling") == 3

    def test_missing_base_generation_counts_as_zero(self):
        assert get_other_generation(None, "child") == 1


class TestNormalization:
    @pytest.mark.parametrize("raw, expected", [("M", "male"), (" Female ", "female"), ("woman", "female"), ("x", ""), (None, "")])
    def test_normalize_gender(self, raw, expected):
        assert normalize_gender(raw) == expected

    @pytest.mark.parametrize("raw, expected", [("42", 42), (7.9, 7), ("", None), ("abc", None), (-3, None)])
    def test_parse_age(self, raw, expected):
        assert parse_age(raw) == expected

    def test_family_codes_are_upper_cased(self):
        assert normalize_code("  rao001 ") == "RAO001"
        assert normalize_code(None) == ""

    def test_family_pair_is_ordered(self):
        low, high, swapped = normalize_family_pair("ZED001", "abc002")
        assert (low, high) == ("ABC002", "ZED001")
        assert swapped is True


class TestParentRole:
    def test_gender_decides_role(self):
        assert resolve_parent_role("male", None) == "father"
        assert resolve_parent_role("female", None) == "mother"

    def test_role_contradicting_gender_is_rejected(self):
        with pytest.raises(BadRequestError):
            resolve_parent_role("female", "father")

    def test_requested_role_used_when_gender_unknown(self):
        assert resolve_parent_role(None, "mother") == "mother"


class TestCleanPeople:
    def test_edges_are_mirrored_and_invalid_ids_dropped(self):
        people = [
            {"id": 1, "parents": [], "children": [2, 2, 99], "spouses": [1], "siblings": []},
            {"id": 2, "parents": [], "children": [], "spouses": [], "siblings": ["bad"]},
        ]

        clean_people(people)

        assert people[0]["children"] == [2]
        assert people[0]["spouses"] == []
        assert people[1]["parents"] == [1]

    def test_spouses_share_children(self):
        people = [
            {"id": 1, "parents": [], "children": [3], "spouses": [2], "siblings": []},
            {"id": 2, "parents": [], "children": [], "spouses": [], "siblings": []},
            {"id": 3, "parents": [1], "children": [], "spouses": [], "siblings": []},
        ]

        clean_people(people)

        assert people[1]["children"] == [3]
        assert people[2]["parents"] == [1, 2]

    def test_child_never_gets_a_third_parent_through_spouse(self):
        people = [
            {"id": 1, "parents": [], "children": [4], "spouses": [3], "siblings": []},
            {"id": 2, "parents": [], "children": [4], "spouses": [], "siblings": []},
            {"id": 3, "parents": [], "children": [], "spouses": [], "siblings": []},
            {"id": 4, "parents": [1, 2], "children": [], "spouses": [], "siblings": []},
        ]

        clean_people(people)

        assert people[3]["parents"] == [1, 2]
        assert people[2]["children"] == []
