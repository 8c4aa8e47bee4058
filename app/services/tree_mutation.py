"""
Low-level tree edits used by cross-family links.

Functions here mutate loaded ``FamilyTreeNode`` rows and flush; callers run
``repair_family_tree`` afterwards to restore symmetry and generation rules.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.family import FamilyTreeNode
from app.models.user import User
from app.repositories.family_tree import FamilyTreeRepository
from app.services.relationship import calculate_generation, normalize_gender
from app.services.tree_integrity import repair_family_tree

logger = logging.getLogger(__name__)


def merge_unique(values: Optional[Iterable[int]], *additions: int) -> list[int]:
    result = [int(v) for v in values or []]
    for value in additions:
        if value is not None and int(value) not in result:
            result.append(int(value))
    return result


def remove_unique(values: Optional[Iterable[int]], *removals: int) -> list[int]:
    drop = {int(v) for v in removals if v is not None}
    return [int(v) for v in values or [] if int(v) not in drop]


def _link(node: FamilyTreeNode, field: str, person_id: int) -> None:
    setattr(node, field, merge_unique(getattr(node, field), person_id))


def _unlink(node: FamilyTreeNode, field: str, person_id: int) -> None:
    setattr(node, field, remove_unique(getattr(node, field), person_id))


class TreeMutator:
    """
    Edits cards of any family tree within one session.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.tree = FamilyTreeRepository(session)

    async def _node(self, family_code: str, person_id: int) -> Optional[FamilyTreeNode]:
        return await self.tree.get_node_by_person(family_code, person_id)

    async def ensure_external_linked_card(
        self,
        family_code: str,
        canonical: FamilyTreeNode,
        generation: Optional[int] = None,
    ) -> FamilyTreeNode:
        """
        Card in ``family_code`` mirroring a canonical card of another tree.

        An existing external card for the same canonical node is refreshed,
        a local card of the same user is converted, otherwise a new card is
        appended with the next person id.
        """
        nodes = await self.tree.list_nodes(family_code)
        for node in nodes:
            if node.is_external_linked and node.canonical_node_uid == canonical.node_uid:
                node.name = canonical.name
                node.gender = canonical.gender
                node.age = canonical.age
                node.img = canonical.img
                node.user_id = canonical.user_id
                if generation is not None:
                    node.generation = generation
                await self.session.flush()
                return node

        if canonical.user_id:
            for node in nodes:
                if node.user_id == canonical.user_id and not node.is_external_linked:
                    node.is_external_linked = True
                    node.canonical_family_code = canonical.family_code
                    node.canonical_node_uid = canonical.node_uid
                    if generation is not None:
                        node.generation = generation
                    await self.session.flush()
                    return node

        card = FamilyTreeNode(
            family_code=family_code,
            person_id=await self.tree.next_person_id(family_code),
            user_id=canonical.user_id,
            name=canonical.name,
            gender=canonical.gender,
            age=canonical.age,
            img=canonical.img,
            life_status=canonical.life_status,
            generation=generation if generation is not None else canonical.generation,
            parents=[],
            children=[],
            spouses=[],
            siblings=[],
            is_external_linked=True,
            canonical_family_code=canonical.family_code,
            canonical_node_uid=canonical.node_uid,
        )
        self.session.add(card)
        await self.session.flush()
        return card

    async def replace_parent_by_role(
        self,
        family_code: str,
        child: FamilyTreeNode,
        new_parent: FamilyTreeNode,
        parent_role: str,
    ) -> Optional[int]:
        """
        Replace the child's father (or mother) with ``new_parent``.

        The spouse link held by the replaced parent moves to the new parent.

        Returns:
            Person id of the replaced parent, if any
        """
        wanted = "male" if parent_role == "father" else "female"
        replaced: Optional[FamilyTreeNode] = None
        for pid in child.relation_ids("parents"):
            if pid == new_parent.person_id:
                continue
            parent = await self._node(family_code, pid)
            if parent is not None and normalize_gender(parent.gender) == wanted:
                replaced = parent
                break

        if replaced is not None:
            _unlink(child, "parents", replaced.person_id)
            _unlink(replaced, "children", child.person_id)
            for spouse_id in replaced.relation_ids("spouses"):
                spouse = await self._node(family_code, spouse_id)
                if spouse is None:
                    continue
                _unlink(spouse, "spouses", replaced.person_id)
                _unlink(replaced, "spouses", spouse_id)
                if spouse.person_id != new_parent.person_id:
                    _link(spouse, "spouses", new_parent.person_id)
                    _link(new_parent, "spouses", spouse.person_id)

        _link(child, "parents", new_parent.person_id)
        _link(new_parent, "children", child.person_id)
        await self.session.flush()
        return replaced.person_id if replaced is not None else None

    async def ensure_spouse_link_between_child_parents_if_safe(
        self,
        family_code: str,
        child: FamilyTreeNode,
    ) -> bool:
        """
        Make a child's two parents spouses when neither has another spouse.
        """
        parent_ids = child.relation_ids("parents")
        if len(parent_ids) != 2:
            return False
        first = await self._node(family_code, parent_ids[0])
        second = await self._node(family_code, parent_ids[1])
        if first is None or second is None:
            return False
        first_others = [s for s in first.relation_ids("spouses") if s != second.person_id]
        second_others = [s for s in second.relation_ids("spouses") if s != first.person_id]
        if first_others or second_others:
            return False
        _link(first, "spouses", second.person_id)
        _link(second, "spouses", first.person_id)
        await self.session.flush()
        return True

    async def update_local_relationship(
        self,
        node: FamilyTreeNode,
        other: FamilyTreeNode,
        relationship_type: str,
    ) -> None:
        """
        Link two cards of the same tree; ``other`` is <type> of ``node``.
        """
        if relationship_type == "parent":
            _link(node, "parents", other.person_id)
            _link(other, "children", node.person_id)
        elif relationship_type == "child":
            _link(node, "children", other.person_id)
            _link(other, "parents", node.person_id)
        elif relationship_type == "sibling":
            _link(node, "siblings", other.person_id)
            _link(other, "siblings", node.person_id)
        elif relationship_type == "spouse":
            _link(node, "spouses", other.person_id)
            _link(other, "spouses", node.person_id)
        await self.session.flush()

    async def link_as_sibling_by_parents(
        self,
        family_code: str,
        local: FamilyTreeNode,
        external: FamilyTreeNode,
    ) -> None:
        """
        Make ``external`` a sibling of ``local`` and of all local siblings,
        sharing the local card's parents.
        """
        _link(local, "siblings", external.person_id)
        _link(external, "siblings", local.person_id)
        for sibling_id in local.relation_ids("siblings"):
            if sibling_id == external.person_id:
                continue
            sibling = await self._node(family_code, sibling_id)
            if sibling is not None:
                _link(sibling, "siblings", external.person_id)
                _link(external, "siblings", sibling_id)
        for parent_id in local.relation_ids("parents"):
            parent = await self._node(family_code, parent_id)
            if parent is None:
                continue
            _link(external, "parents", parent_id)
            _link(parent, "children", external.person_id)
        await self.session.flush()

    async def propagate_child_to_canonical_spouses(
        self,
        family_code: str,
        parent: FamilyTreeNode,
        child: FamilyTreeNode,
    ) -> None:
        """
        Add ``child`` to the children of the parent's spouses as well.
        """
        for spouse_id in parent.relation_ids("spouses"):
            spouse = await self._node(family_code, spouse_id)
            if spouse is None:
                continue
            _link(spouse, "children", child.person_id)
            _link(child, "parents", spouse.person_id)
        await self.session.flush()

    async def remove_card(self, card: FamilyTreeNode) -> None:
        """
        Delete a card and scrub its person id from the rest of the tree.
        """
        for node in await self.tree.list_nodes(card.family_code):
            if node.id == card.id:
                continue
            for field in ("parents", "children", "spouses", "siblings"):
                if card.person_id in node.relation_ids(field):
                    _unlink(node, field, card.person_id)
        await self.session.delete(card)
        await self.session.flush()

    async def _ensure_own_card(self, family_code: str, user: User) -> FamilyTreeNode:
        card = await self.tree.get_node_by_user(family_code, user.id)
        if card is not None:
            return card
        profile = user.profile
        card = FamilyTreeNode(
            family_code=family_code,
            person_id=await self.tree.next_person_id(family_code),
            user_id=user.id,
            name=user.full_name,
            gender=normalize_gender(profile.gender if profile else None) or None,
            age=profile.age if profile else None,
            img=profile.profile if profile else None,
            generation=1,
            parents=[],
            children=[],
            spouses=[],
            siblings=[],
        )
        self.session.add(card)
        await self.session.flush()
        return card

    async def create_spouse_cards(
        self,
        sender: User,
        sender_family_code: str,
        target: User,
        target_family_code: str,
    ) -> dict:
        """
        Cross-link two users as spouses in both of their family trees.

        Each user keeps (or gets) a card in their own tree and receives an
        external card in the other tree, at a shared generation.
        """
        gen_in_target = await calculate_generation(
            self.session, target_family_code, target.id, None, "spouse"
        )
        gen_in_sender = await calculate_generation(
            self.session, sender_family_code, sender.id, None, "spouse"
        )
        final_generation = max(gen_in_target, gen_in_sender)

        sender_card = await self._ensure_own_card(sender_family_code, sender)
        target_card = await self._ensure_own_card(target_family_code, target)

        sender_in_target = await self.ensure_external_linked_card(
            target_family_code, sender_card, final_generation
        )
        target_in_sender = await self.ensure_external_linked_card(
            sender_family_code, target_card, final_generation
        )

        await self.update_local_relationship(target_card, sender_in_target, "spouse")
        await self.update_local_relationship(sender_card, target_in_sender, "spouse")

        sender_report = await repair_family_tree(self.session, sender_family_code)
        target_report = await repair_family_tree(self.session, target_family_code)

        logger.info(
            "Spouse cards created",
            extra={
                "user_id": sender.id,
                "target_user_id": target.id,
                "family_code": sender_family_code,
                "target_family_code": target_family_code,
            },
        )
        return {
            "generation": final_generation,
            "sender_card": sender_card.node_uid,
            "target_card": target_card.node_uid,
            "repairs": [sender_report.to_dict(), target_report.to_dict()],
        }
