"""
Family merge analysis.

Pure functions over family previews (lists of person dicts as produced by
``FamilyMergeService.build_family_preview``). They find duplicate persons
between a primary and a secondary family, score them, flag conflicts and
inspect both trees for structural problems before a merge is executed.
"""

from collections import Counter, deque
from typing import Any, Optional

MIN_MATCH_SCORE = 20

SCENARIO_SAME_APP_USER = "SAME_APP_USER"
SCENARIO_APP_VS_NON_APP = "APP_USER_VS_NON_APP_USER"
SCENARIO_NON_APP_VS_APP = "NON_APP_USER_VS_APP_USER"
SCENARIO_BOTH_NON_APP = "BOTH_NON_APP_USERS"
SCENARIO_DIFFERENT_APP_USERS = "DIFFERENT_APP_USERS"

# Declared relationship of the secondary admin to the primary admin, mapped
# to the expected generation offset (positive: secondary is younger).
RELATIONSHIP_LABEL_OFFSETS: dict[str, tuple[Optional[int], Optional[str]]] = {
    "SELF": (0, None),
    "F": (-1, None),
    "M": (-1, None),
    "SS": (2, None),
    "SD": (2, None),
    "DS": (2, None),
    "DD": (2, None),
    "H": (0, "Spouse relationship assumed to be same generation."),
    "W": (0, "Spouse relationship assumed to be same generation."),
    "B+": (0, "Sibling relationship assumed to be same generation."),
    "B-": (0, "Sibling relationship assumed to be same generation."),
    "Z+": (0, "Sibling relationship assumed to be same generation."),
    "Z-": (0, "Sibling relationship assumed to be same generation."),
    "FB+S": (0, "Paternal cousin assumed in same generation as admin."),
    "FB-S": (0, "Paternal cousin assumed in same generation as admin."),
    "FZ+S": (0, "Paternal cousin assumed in same generation as admin."),
    "FZ-S": (0, "Paternal cousin assumed in same generation as admin."),
}


def normalize_name(name: Optional[str]) -> str:
    return " ".join((name or "").lower().split())


def _number(value: Any) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def _ids(values: Any) -> list[int]:
    cleaned = []
    for value in values or []:
        try:
            cleaned.append(int(value))
        except (TypeError, ValueError):
            continue
    return cleaned


def _candidates(person: dict, secondary: list[dict], indexes: dict[str, dict]) -> list[dict]:
    found: list[dict] = []
    if person.get("user_id"):
        found += indexes["user_id"].get(person["user_id"], [])
    if person.get("email"):
        found += indexes["email"].get(person["email"].lower(), [])
    if person.get("phone"):
        found += indexes["phone"].get(person["phone"], [])
    if found:
        return found

    name = normalize_name(person.get("name"))
    if not name:
        return []
    for other in secondary:
        other_name = normalize_name(other.get("name"))
        if not other_name:
            continue
        if name == other_name:
            found.append(other)
        elif len(name) > 2 and name in other_name:
            found.append(other)
        elif len(other_name) > 2 and other_name in name:
            found.append(other)
    return found


def score_candidate(primary: dict, secondary: dict) -> tuple[int, list[str], list[str]]:
    """
    Similarity score of two persons with the fields that matched and differed.

    user id 60, email 25, phone 25, exact name 15 (containment 8),
    generation equal 10 (one apart 5), age within 1 year 10 (within 5: 5).
    """
    score = 0
    matching: list[str] = []
    differing: list[str] = []

    if primary.get("user_id") and primary.get("user_id") == secondary.get("user_id"):
        score += 60
        matching.append("user_id")
    if primary.get("email") and secondary.get("email") and primary["email"].lower() == secondary["email"].lower():
        score += 25
        matching.append("email")
    if primary.get("phone") and primary.get("phone") == secondary.get("phone"):
        score += 25
        matching.append("phone")

    a_name, b_name = normalize_name(primary.get("name")), normalize_name(secondary.get("name"))
    if a_name and b_name and a_name == b_name:
        score += 15
        matching.append("name")
    elif a_name and b_name and (a_name in b_name or b_name in a_name):
        score += 8
    else:
        differing.append("name")

    a_gen, b_gen = _number(primary.get("generation")), _number(secondary.get("generation"))
    if a_gen is not None and b_gen is not None:
        diff = abs(a_gen - b_gen)
        if diff == 0:
            score += 10
            matching.append("generation")
        elif diff == 1:
            score += 5
        else:
            differing.append("generation")

    a_age, b_age = _number(primary.get("age")), _number(secondary.get("age"))
    if a_age is not None and b_age is not None:
        diff = abs(a_age - b_age)
        if diff <= 1:
            score += 10
            matching.append("age")
        elif diff <= 5:
            score += 5
        else:
            differing.append("age")

    return score, matching, differing


def passes_strict_gate(primary: dict, secondary: dict) -> bool:
    """Name, gender, age and generation must all be present and equal."""
    a_name, b_name = normalize_name(primary.get("name")), normalize_name(secondary.get("name"))
    if not a_name or a_name != b_name:
        return False
    if primary.get("gender") is None or primary.get("gender") != secondary.get("gender"):
        return False
    a_age, b_age = _number(primary.get("age")), _number(secondary.get("age"))
    if a_age is None or a_age != b_age:
        return False
    a_gen, b_gen = _number(primary.get("generation")), _number(secondary.get("generation"))
    return a_gen is not None and a_gen == b_gen


def match_level(score: int) -> str:
    if score >= 80:
        return "exact"
    if score >= 50:
        return "probable"
    return "possible"


def determine_scenario(primary: dict, secondary: dict) -> str:
    a_app, b_app = bool(primary.get("is_app_user")), bool(secondary.get("is_app_user"))
    if a_app and b_app:
        if primary.get("user_id") == secondary.get("user_id"):
            return SCENARIO_SAME_APP_USER
        return SCENARIO_DIFFERENT_APP_USERS
    if a_app:
        return SCENARIO_APP_VS_NON_APP
    if b_app:
        return SCENARIO_NON_APP_VS_APP
    return SCENARIO_BOTH_NON_APP


def _parent_names(person: dict, by_id: dict[int, dict]) -> set[str]:
    names = set()
    for pid in _ids(person.get("parents")):
        name = normalize_name((by_id.get(pid) or {}).get("name"))
        if name:
            names.add(name)
    return names


def _offset_summary(offsets: Counter) -> dict:
    suggested = None
    best = 0
    for offset, count in offsets.items():
        if count > best:
            best, suggested = count, offset
    return {
        "suggested_offset": suggested,
        "counts": [{"offset": offset, "count": count} for offset, count in offsets.items()],
    }


def find_matches(family_a: list[dict], family_b: list[dict]) -> dict:
    """
    Match persons of the primary family against the secondary family.

    Returns:
        Dict with ``matches``, ``duplicate_persons``, ``hard_conflicts``,
        ``soft_conflicts``, ``new_persons`` and ``generation_offset``
    """
    indexes: dict[str, dict] = {"user_id": {}, "email": {}, "phone": {}}
    for person in family_b:
        if person.get("user_id"):
            indexes["user_id"].setdefault(person["user_id"], []).append(person)
        if person.get("email"):
            indexes["email"].setdefault(person["email"].lower(), []).append(person)
        if person.get("phone"):
            indexes["phone"].setdefault(person["phone"], []).append(person)

    a_by_id = {p["person_id"]: p for p in family_a}
    b_by_id = {p["person_id"]: p for p in family_b}

    matches: list[dict] = []
    hard_conflicts: list[dict] = []
    soft_conflicts: list[dict] = []
    matched_b: set[int] = set()
    offsets: Counter = Counter()

    for a in family_a:
        best: Optional[tuple[int, dict, list[str], list[str]]] = None
        seen: set[int] = set()
        for b in _candidates(a, family_b, indexes):
            if b["person_id"] in seen:
                continue
            seen.add(b["person_id"])
            score, matching, differing = score_candidate(a, b)
            if best is None or score > best[0]:
                best = (score, b, matching, differing)

        if best is None or best[0] < MIN_MATCH_SCORE:
            continue
        score, b, matching, differing = best
        if not passes_strict_gate(a, b):
            continue

        matched_b.add(b["person_id"])
        offsets[a["generation"] - b["generation"]] += 1
        matches.append({
            "primary": a,
            "secondary": b,
            "confidence": score,
            "level": match_level(score),
            "matching_fields": matching,
            "differing_fields": differing,
        })

        a_parents, b_parents = _parent_names(a, a_by_id), _parent_names(b, b_by_id)
        if a_parents and b_parents and not (a_parents & b_parents):
            hard_conflicts.append({
                "type": "PARENTS_MISMATCH",
                "primary_person_id": a["person_id"],
                "secondary_person_id": b["person_id"],
                "description": "Parents differ with no overlap between families.",
            })

        a_age, b_age = _number(a.get("age")), _number(b.get("age"))
        if a_age is not None and b_age is not None:
            diff = abs(a_age - b_age)
            conflict = {
                "primary_person_id": a["person_id"],
                "secondary_person_id": b["person_id"],
                "description": f"Age differs by {diff} years.",
            }
            if 5 < diff <= 15:
                soft_conflicts.append({"type": "AGE_MISMATCH", **conflict})
            elif diff > 15:
                hard_conflicts.append({"type": "AGE_CONFLICT", **conflict})

    duplicate_persons = [
        {
            "primary_person_id": m["primary"]["person_id"],
            "secondary_person_id": m["secondary"]["person_id"],
            "primary_name": m["primary"].get("name"),
            "secondary_name": m["secondary"].get("name"),
            "primary_user_id": m["primary"].get("user_id"),
            "secondary_user_id": m["secondary"].get("user_id"),
            "primary_is_app_user": m["primary"].get("is_app_user"),
            "secondary_is_app_user": m["secondary"].get("is_app_user"),
            "scenario": determine_scenario(m["primary"], m["secondary"]),
            "confidence": m["confidence"],
            "level": m["level"],
            "matching_fields": m["matching_fields"],
            "differing_fields": m["differing_fields"],
        }
        for m in matches
    ]
    new_persons = [dict(p) for p in family_b if p["person_id"] not in matched_b]

    tag_secondary_admin_parents(family_b, matches, new_persons)

    return {
        "matches": matches,
        "duplicate_persons": duplicate_persons,
        "hard_conflicts": hard_conflicts,
        "soft_conflicts": soft_conflicts,
        "new_persons": new_persons,
        "generation_offset": _offset_summary(offsets),
    }


def summarize_scenarios(duplicate_persons: list[dict]) -> dict[str, int]:
    return dict(Counter(d["scenario"] for d in duplicate_persons))


def tag_secondary_admin_parents(family_b: list[dict], matches: list[dict], new_persons: list[dict]) -> None:
    """Parents of the secondary admin must be carried into the merge."""
    admin = next((p for p in family_b if p.get("is_admin")), None)
    required = set(_ids(admin.get("parents"))) if admin else set()
    if not required:
        return
    for match in matches:
        if match["secondary"]["person_id"] in required:
            match["required_chain"] = "secondaryAdminParent"
    for person in new_persons:
        if person["person_id"] in required:
            person["required_chain"] = "secondaryAdminParent"


# Crisis analysis
def _generation_stats(family: list[dict]) -> dict:
    gens = [g for g in (_number(p.get("generation")) for p in family) if g is not None]
    if not gens:
        return {"total_persons": len(family), "has_generation_data": False,
                "min_generation": None, "max_generation": None}
    return {"total_persons": len(family), "has_generation_data": True,
            "min_generation": min(gens), "max_generation": max(gens)}


def analyze_generations(
    family_a: list[dict],
    family_b: list[dict],
    matches: list[dict],
    relationship_label: Optional[str] = None,
) -> dict:
    primary, secondary = _generation_stats(family_a), _generation_stats(family_b)
    offsets: Counter = Counter()
    for match in matches:
        a_gen = _number(match["primary"].get("generation"))
        b_gen = _number(match["secondary"].get("generation"))
        if a_gen is not None and b_gen is not None:
            offsets[a_gen - b_gen] += 1
    summary = _offset_summary(offsets)

    issues = []
    if not primary["has_generation_data"] or not secondary["has_generation_data"]:
        issues.append("MISSING_GENERATION_DATA")
    if len(offsets) > 1:
        issues.append("INCONSISTENT_GENERATION_OFFSETS")

    expected, notes = None, None
    if relationship_label:
        expected, notes = RELATIONSHIP_LABEL_OFFSETS.get(
            relationship_label,
            (None, "Relationship label not mapped to explicit generation offset yet."),
        )

    consistency = "UNKNOWN"
    if expected is not None and summary["suggested_offset"] is not None:
        if expected == summary["suggested_offset"]:
            consistency = "CONSISTENT"
        else:
            consistency = "INCONSISTENT"
            issues.append("RELATIONSHIP_LABEL_OFFSET_CONFLICT")

    return {
        "primary": primary,
        "secondary": secondary,
        "offsets_from_matches": summary,
        "relationship_label_info": {
            "label": relationship_label,
            "label_expected_offset": expected,
            "label_offset_consistency": consistency,
            "label_notes": notes,
        },
        "issues": issues,
    }


def _index(family: list[dict]) -> dict[int, dict]:
    index: dict[int, dict] = {}
    for person in family:
        try:
            pid = int(person.get("person_id"))
        except (TypeError, ValueError):
            continue
        index.setdefault(pid, person)
    return index


def connected_components(family: list[dict]) -> list[list[int]]:
    index = _index(family)
    adjacency: dict[int, set[int]] = {pid: set() for pid in index}
    for pid, person in index.items():
        for name in ("parents", "children", "spouses", "siblings"):
            for other in _ids(person.get(name)):
                if other in index:
                    adjacency[pid].add(other)
                    adjacency[other].add(pid)

    visited: set[int] = set()
    components = []
    for start in adjacency:
        if start in visited:
            continue
        visited.add(start)
        queue, component = deque([start]), []
        while queue:
            current = queue.popleft()
            component.append(current)
            for other in adjacency[current]:
                if other not in visited:
                    visited.add(other)
                    queue.append(other)
        components.append(component)
    return components


def _missing_parents(family: list[dict]) -> dict[int, list[int]]:
    index = _index(family)
    missing = {}
    for pid, person in index.items():
        absent = [p for p in _ids(person.get("parents")) if p not in index]
        if absent:
            missing[pid] = absent
    return missing


def analyze_relationships(family_a: list[dict], family_b: list[dict]) -> dict:
    result: dict[str, Any] = {"issues": []}
    for key, label, family in (("family_a", "PRIMARY", family_a), ("family_b", "SECONDARY", family_b)):
        components = connected_components(family)
        issues = []
        if len(components) > 1:
            issues.append(f"{label}_FAMILY_HAS_DISCONNECTED_COMPONENTS")
        result[key] = {
            "total_persons": len(family),
            "components": {"count": len(components), "sizes": [len(c) for c in components]},
            "orphan_candidates": list(_missing_parents(family)),
            "issues": issues,
        }
        result["issues"] += issues
    return result


def detect_orphaned_persons(family_a: list[dict], family_b: list[dict]) -> list[dict]:
    results = []
    for label, family in (("PRIMARY", family_a), ("SECONDARY", family_b)):
        for pid, absent in _missing_parents(family).items():
            results.append({"family": label, "person_id": pid, "missing_parent_ids": absent})
    return results


def detect_circular_relationships(family_a: list[dict], family_b: list[dict]) -> list[dict]:
    """Cycles in the child -> parent graph of each family (depth first)."""
    cycles = []
    for label, family in (("PRIMARY", family_a), ("SECONDARY", family_b)):
        index = _index(family)
        adjacency = {pid: [p for p in _ids(person.get("parents")) if p in index] for pid, person in index.items()}
        visited: set[int] = set()
        on_stack: set[int] = set()
        path: list[int] = []

        def visit(node: int) -> None:
            if node in on_stack:
                start = path.index(node)
                cycles.append({"family": label, "person_ids_in_cycle": path[start:] + [node]})
                return
            if node in visited:
                return
            visited.add(node)
            on_stack.add(node)
            path.append(node)
            for parent in adjacency.get(node, []):
                visit(parent)
            on_stack.discard(node)
            path.pop()

        for pid in index:
            if pid not in visited:
                visit(pid)
    return cycles


def build_recommendations(crisis: dict) -> list[dict]:
    recommendations = []
    if crisis["is_no_match_merge"]:
        recommendations.append({
            "code": "NO_MATCH_MERGE",
            "severity": "HIGH",
            "message": (
                "No automatic matches detected between families. Use relationship path "
                "and generation offset carefully before merging."
            ),
        })

    generation = crisis["generation_analysis"]
    for issue in generation["issues"]:
        recommendations.append({
            "code": f"GEN_{issue}",
            "severity": "HIGH" if issue == "INCONSISTENT_GENERATION_OFFSETS" else "MEDIUM",
            "message": f"Generation analysis issue: {issue}.",
        })

    label_info = generation["relationship_label_info"]
    if label_info["label"]:
        expected = label_info["label_expected_offset"]
        suffix = f" (expected offset {expected})" if expected is not None else ""
        recommendations.append({
            "code": "REL_LABEL_USED",
            "severity": "LOW",
            "message": f"Relationship label '{label_info['label']}' provided{suffix}.",
        })
        if label_info["label_offset_consistency"] == "INCONSISTENT":
            recommendations.append({
                "code": "REL_LABEL_OFFSET_CONFLICT",
                "severity": "HIGH",
                "message": (
                    "Declared relationship label suggests a different generation offset than "
                    "what is inferred from matches. Please verify admin relationship and "
                    "generation numbers."
                ),
            })
        if label_info["label_notes"]:
            recommendations.append({"code": "REL_LABEL_NOTE", "severity": "LOW", "message": label_info["label_notes"]})

    for issue in crisis["relationship_analysis"]["issues"]:
        recommendations.append({
            "code": f"REL_{issue}",
            "severity": "MEDIUM",
            "message": f"Relationship analysis issue: {issue}.",
        })
    if crisis["orphaned_persons"]:
        recommendations.append({
            "code": "ORPHANED_PERSONS",
            "severity": "MEDIUM",
            "message": "Some persons reference parents that do not exist in the same family tree.",
        })
    if crisis["circular_relationships"]:
        recommendations.append({
            "code": "CIRCULAR_RELATIONSHIPS",
            "severity": "HIGH",
            "message": "Circular parent-child relationships detected. Please fix before executing merge.",
        })
    return recommendations


def crisis_analysis(
    family_a: list[dict],
    family_b: list[dict],
    matches: list[dict],
    relationship_label: Optional[str] = None,
) -> dict:
    crisis = {
        "is_no_match_merge": not matches,
        "generation_analysis": analyze_generations(family_a, family_b, matches, relationship_label),
        "relationship_analysis": analyze_relationships(family_a, family_b),
        "orphaned_persons": detect_orphaned_persons(family_a, family_b),
        "circular_relationships": detect_circular_relationships(family_a, family_b),
    }
    crisis["recommendations"] = build_recommendations(crisis)
    return crisis


def apply_generation_offset(family: list[dict], offset: int) -> list[dict]:
    """Copy of ``family`` with every known generation shifted by ``offset``."""
    shifted = []
    for person in family:
        copy = dict(person)
        if _number(copy.get("generation")) is not None:
            copy["generation"] = copy["generation"] + offset
        shifted.append(copy)
    return shifted
