"""
Family tree integrity repair.

Rebuilds the four relationship arrays of every card in a tree from a
normalised edge set so that:

- every parent/child edge appears on both cards
- a child keeps at most two parents
- spouse and sibling edges are symmetric and join cards of the same
  generation (external cards are realigned instead of unlinked)
- no card references itself or a person missing from the tree
"""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.family import FamilyTreeNode
from app.repositories.family_tree import FamilyTreeRepository

logger = logging.getLogger(__name__)


@dataclass
class RepairReport:
    family_code: str
    total_nodes: int = 0
    updated_nodes: int = 0
    removed_parent_edges: int = 0
    removed_spouse_edges: int = 0
    removed_sibling_edges: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _ids(values: Iterable) -> list[int]:
    cleaned = []
    for value in values or []:
        try:
            cleaned.append(int(value))
        except (TypeError, ValueError):
            continue
    return cleaned


def repair_nodes(
    nodes: list[FamilyTreeNode],
    family_code: str,
    fix_external_generations: bool = True,
) -> RepairReport:
    """
    Repair a loaded list of cards in place.

    Pure over the given objects so it can be unit tested without a database.
    Only attributes that actually change are assigned, which keeps the
    session's dirty set minimal.
    """
    report = RepairReport(family_code=family_code, total_nodes=len(nodes))
    by_person = {n.person_id: n for n in nodes}

    # child -> parents (directed edges collected from both sides)
    parents_of: dict[int, set[int]] = defaultdict(set)
    spouse_pairs: set[tuple[int, int]] = set()
    sibling_pairs: set[tuple[int, int]] = set()

    for node in nodes:
        pid = node.person_id
        for parent in _ids(node.parents):
            if parent != pid and parent in by_person:
                parents_of[pid].add(parent)
        for child in _ids(node.children):
            if child != pid and child in by_person:
                parents_of[child].add(pid)
        for other in _ids(node.spouses):
            if other != pid and other in by_person:
                spouse_pairs.add((min(pid, other), max(pid, other)))
        for other in _ids(node.siblings):
            if other != pid and other in by_person:
                sibling_pairs.add((min(pid, other), max(pid, other)))

    generations = {n.person_id: n.generation for n in nodes}

    for child, parents in parents_of.items():
        if len(parents) <= 2:
            continue
        child_gen = generations.get(child)

        def rank(parent_id: int) -> tuple:
            parent = by_person[parent_id]
            gen_ok = child_gen is not None and parent.generation == child_gen - 1
            return (0 if gen_ok else 1, 1 if parent.is_external_linked else 0, parent_id)

        kept = sorted(parents, key=rank)[:2]
        report.removed_parent_edges += len(parents) - 2
        parents_of[child] = set(kept)

    if fix_external_generations:
        for child, parents in parents_of.items():
            child_gen = generations.get(child)
            if child_gen is None:
                continue
            for parent_id in parents:
                if by_person[parent_id].is_external_linked:
                    generations[parent_id] = child_gen - 1

    def keep_pair(a: int, b: int) -> bool:
        gen_a, gen_b = generations.get(a), generations.get(b)
        if gen_a is None or gen_b is None or gen_a == gen_b:
            return True
        if not fix_external_generations:
            return False
        if by_person[a].is_external_linked:
            generations[a] = gen_b
            return True
        if by_person[b].is_external_linked:
            generations[b] = gen_a
            return True
        return False

    kept_spouses = {pair for pair in sorted(spouse_pairs) if keep_pair(*pair)}
    report.removed_spouse_edges = len(spouse_pairs) - len(kept_spouses)
    kept_siblings = {pair for pair in sorted(sibling_pairs) if keep_pair(*pair)}
    report.removed_sibling_edges = len(sibling_pairs) - len(kept_siblings)

    new_arrays: dict[int, dict[str, set[int]]] = {
        pid: {"parents": set(), "children": set(), "spouses": set(), "siblings": set()}
        for pid in by_person
    }
    for child, parents in parents_of.items():
        for parent in parents:
            new_arrays[child]["parents"].add(parent)
            new_arrays[parent]["children"].add(child)
    for a, b in kept_spouses:
        new_arrays[a]["spouses"].add(b)
        new_arrays[b]["spouses"].add(a)
    for a, b in kept_siblings:
        new_arrays[a]["siblings"].add(b)
        new_arrays[b]["siblings"].add(a)

    for node in nodes:
        pid = node.person_id
        links_changed = False
        for name, values in new_arrays[pid].items():
            rebuilt = sorted(values)
            current = _ids(getattr(node, name))
            # Stale or unordered ids are rewritten but only a different
            # set of valid links counts as an update
            valid = sorted({v for v in current if v != pid and v in by_person})
            if valid != rebuilt:
                links_changed = True
            if current != rebuilt or len(getattr(node, name) or []) != len(rebuilt):
                setattr(node, name, rebuilt)
        new_gen = generations.get(pid)
        if new_gen != node.generation:
            node.generation = new_gen
        if links_changed:
            report.updated_nodes += 1

    return report


async def repair_family_tree(
    session: AsyncSession,
    family_code: str,
    fix_external_generations: bool = True,
) -> RepairReport:
    """
    Load, repair and flush one family tree.

    Args:
        session: Database session
        family_code: Family code (upper-cased before lookup)
        fix_external_generations: Realign external cards instead of
            dropping their mismatched spouse/sibling edges

    Returns:
        RepairReport with counts of touched nodes and removed edges
    """
    code = (family_code or "").strip().upper()
    nodes = await FamilyTreeRepository(session).list_nodes(code)
    report = repair_nodes(nodes, code, fix_external_generations)
    await session.flush()

    if report.updated_nodes:
        logger.info("Family tree repaired", extra={"family_code": code, **report.to_dict()})
    return report
