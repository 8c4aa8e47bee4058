"""
Unit tests for family merge analysis.

Covers candidate scoring, the strict match gate, conflict detection and
the structural checks run before a merge.
"""

from app.services.merge_analysis import (
    SCENARIO_BOTH_NON_APP,
    SCENARIO_SAME_APP_USER,
    analyze_generations,
    apply_generation_offset,
    connected_components,
    crisis_analysis,
    detect_circular_relationships,
    find_matches,
    match_level,
    passes_strict_gate,
    score_candidate,
)


def person(person_id, name, gender="male", age=40, generation=1, **extra):
    data = {
        "person_id": person_id,
        "name": name,
        "gender": gender,
        "age": age,
        "generation": generation,
        "parents": [],
        "children": [],
        "spouses": [],
        "siblings": [],
        "user_id": None,
        "is_app_user": False,
    }
    data.update(extra)
    return data


class TestScoring:
    def test_full_identity_match_scores_exact(self):
        a = person(1, "Ravi Rao", user_id=7, email="ravi@example.com")
        b = person(11, "ravi  rao", user_id=7, email="RAVI@example.com")

        score, matching, differing = score_candidate(a, b)

        assert score == 60 + 25 + 15 + 10 + 10
        assert set(matching) == {"user_id", "email", "name", "generation", "age"}
        assert differing == []
        assert match_level(score) == "exact"

    def test_partial_name_and_near_values(self):
        a = person(1, "Ravi", age=40, generation=1)
        b = person(11, "Ravi Kumar", age=44, generation=2)

        score, matching, _ = score_candidate(a, b)

        assert score == 8 + 5 + 5
        assert matching == []
        assert match_level(score) == "possible"

    def test_distant_values_are_reported_as_differing(self):
        a = person(1, "Ravi", age=20, generation=1)
        b = person(11, "Sita", age=60, generation=4)

        score, _, differing = score_candidate(a, b)

        assert score == 0
        assert differing == ["name", "generation", "age"]

    def test_match_levels(self):
        assert match_level(80) == "exact"
        assert match_level(50) == "probable"
        assert match_level(49) == "possible"


class TestStrictGate:
    def test_all_fields_equal_passes(self):
        assert passes_strict_gate(person(1, "Ravi"), person(2, "RAVI"))

    def test_any_difference_fails(self):
        base = person(1, "Ravi")
        assert not passes_strict_gate(base, person(2, "Ravi", age=41))
        assert not passes_strict_gate(base, person(2, "Ravi", gender="female"))
        assert not passes_strict_gate(base, person(2, "Ravi", generation=2))
        assert not passes_strict_gate(person(1, "Ravi", age=None), person(2, "Ravi", age=None))


class TestFindMatches:
    def test_same_app_user_is_a_duplicate(self):
        family_a = [person(1, "Ravi Rao", user_id=7, is_app_user=True)]
        family_b = [
            person(11, "Ravi Rao", user_id=7, is_app_user=True),
            person(12, "Meena Rao", gender="female", age=38),
        ]

        result = find_matches(family_a, family_b)

        assert len(result["matches"]) == 1
        duplicate = result["duplicate_persons"][0]
        assert duplicate["primary_person_id"] == 1
        assert duplicate["secondary_person_id"] == 11
        assert duplicate["scenario"] == SCENARIO_SAME_APP_USER
        assert duplicate["level"] == "exact"
        assert [p["person_id"] for p in result["new_persons"]] == [12]
        assert result["generation_offset"]["suggested_offset"] == 0

    def test_name_only_candidate_failing_gate_is_new(self):
        family_a = [person(1, "Ravi Rao", age=40)]
        family_b = [person(11, "Ravi Rao", age=52)]

        result = find_matches(family_a, family_b)

        assert result["matches"] == []
        assert [p["person_id"] for p in result["new_persons"]] == [11]
        assert result["generation_offset"]["suggested_offset"] is None

    def test_disjoint_parents_raise_hard_conflict(self):
        family_a = [
            person(1, "Ravi Rao", parents=[2]),
            person(2, "Mohan Rao", age=70, generation=0, children=[1]),
        ]
        family_b = [
            person(11, "Ravi Rao", parents=[12]),
            person(12, "Suresh Rao", age=68, generation=0, children=[11]),
        ]

        result = find_matches(family_a, family_b)

        assert result["duplicate_persons"][0]["scenario"] == SCENARIO_BOTH_NON_APP
        assert result["hard_conflicts"] == [
            {
                "type": "PARENTS_MISMATCH",
                "primary_person_id": 1,
                "secondary_person_id": 11,
                "description": "Parents differ with no overlap between families.",
            }
        ]

    def test_secondary_admin_parents_are_required(self):
        family_a = [person(1, "Anil")]
        family_b = [
            person(11, "Kiran", is_admin=True, parents=[12]),
            person(12, "Lata", gender="female", age=65, generation=0),
        ]

        result = find_matches(family_a, family_b)

        lata = next(p for p in result["new_persons"] if p["person_id"] == 12)
        assert lata["required_chain"] == "secondaryAdminParent"


class TestStructuralChecks:
    def test_connected_components(self):
        family = [
            person(1, "A", children=[2]),
            person(2, "B", parents=[1]),
            person(3, "C"),
        ]

        components = connected_components(family)

        assert sorted(len(c) for c in components) == [1, 2]

    def test_parent_cycle_is_detected(self):
        family = [person(1, "A", parents=[2]), person(2, "B", parents=[1])]

        cycles = detect_circular_relationships(family, [])

        assert cycles == [{"family": "PRIMARY", "person_ids_in_cycle": [1, 2, 1]}]

    def test_label_offset_conflict(self):
        a, b = person(1, "Ravi"), person(11, "Ravi")
        matches = [{"primary": a, "secondary": b}]

        analysis = analyze_generations([a], [b], matches, relationship_label="F")

        assert analysis["relationship_label_info"]["label_expected_offset"] == -1
        assert analysis["relationship_label_info"]["label_offset_consistency"] == "INCONSISTENT"
        assert "RELATIONSHIP_LABEL_OFFSET_CONFLICT" in analysis["issues"]

    def test_no_match_merge_is_flagged_first(self):
        crisis = crisis_analysis([person(1, "A")], [person(11, "B")], [])

        assert crisis["is_no_match_merge"] is True
        assert crisis["recommendations"][0]["code"] == "NO_MATCH_MERGE"

    def test_generation_offset_copies_persons(self):
        family = [person(1, "A", generation=2), person(2, "B", generation=None)]

        shifted = apply_generation_offset(family, 3)

        assert [p["generation"] for p in shifted] == [5, None]
        assert family[0]["generation"] == 2
