"""
Family service.

Family CRUD, saving and reading family trees, and the cross-family views:
associated family trees, association prefixes and user relationships.
"""

import logging
from collections import defaultdict, deque
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.core.security import create_user_token
from app.models.family import (
    APPROVE_APPROVED,
    LIFE_LIVING,
    RELATION_ARRAYS,
    Family,
    FamilyMember,
    FamilyTreeNode,
    UserRelationship,
)
from app.models.notification import NotificationType
from app.models.user import ADMIN_ROLES, ROLE_ADMIN, ROLE_MEMBER, User, UserProfile
from app.repositories.family_tree import FamilyTreeRepository
from app.repositories.user import UserRepository
from app.services.blocking import BlockingService
from app.services.family_access import FamilyAccessService
from app.services.notification import NotificationService, recipients_excluding
from app.services.relationship import normalize_gender, parse_age
from app.services.tree_integrity import repair_family_tree
from app.services.upload import UploadService

logger = logging.getLogger(__name__)


def normalize_code(family_code: Optional[str]) -> str:
    return (family_code or "").strip().upper()


def _int_list(values: Any) -> list[int]:
    cleaned: list[int] = []
    for value in values or []:
        try:
            number = int(value)
        except (TypeError, ValueError):
            continue
        if number > 0 and number not in cleaned:
            cleaned.append(number)
    return cleaned


def clean_people(people: list[dict]) -> list[dict]:
    """
    Make person relationship arrays consistent for display.

    Drops invalid, self and unknown ids, mirrors every edge onto the other
    card and lets spouses share children (a child never gets more than two
    parents this way).
    """
    by_id = {p["id"]: p for p in people}
    sets = {
        pid: {name: {v for v in _int_list(p.get(name)) if v != pid and v in by_id} for name in RELATION_ARRAYS}
        for pid, p in by_id.items()
    }
    for pid, rel in sets.items():
        for parent in list(rel["parents"]):
            sets[parent]["children"].add(pid)
        for child in list(rel["children"]):
            sets[child]["parents"].add(pid)
        for spouse in list(rel["spouses"]):
            sets[spouse]["spouses"].add(pid)
        for sibling in list(rel["siblings"]):
            sets[sibling]["siblings"].add(pid)

    for pid, rel in sets.items():
        for spouse in rel["spouses"]:
            for child in list(sets[spouse]["children"]):
                if child in rel["children"]:
                    continue
                if len(sets[child]["parents"]) < 2:
                    rel["children"].add(child)
                    sets[child]["parents"].add(pid)

    for pid, person in by_id.items():
        for name in RELATION_ARRAYS:
            person[name] = sorted(sets[pid][name])
    return people


def assign_person_ids(members: list[dict]) -> set[int]:
    """
    Validate explicit person ids and number the members that have none.

    Members without an id (missing or 0) get ids above the highest explicit
    one, so they never collide with a card the client already numbered.

    Raises:
        BadRequestError: A non-integer, negative or duplicate id
    """
    seen: set[int] = set()
    for member in members:
        raw = member.get("id")
        if raw in (None, "", 0, "0"):
            continue
        try:
            person_id = int(raw)
        except (TypeError, ValueError):
            raise BadRequestError(f"Invalid person id: {raw}")
        if person_id <= 0:
            raise BadRequestError(f"Invalid person id: {raw}")
        if person_id in seen:
            raise BadRequestError(f"Duplicate person id {person_id} in family tree")
        seen.add(person_id)
        member["id"] = person_id

    next_id = max(seen, default=0) + 1
    for member in members:
        if member.get("id") in (None, "", 0, "0"):
            member["id"] = next_id
            seen.add(next_id)
            next_id += 1
    return seen


class FamilyService:
    """
    Families and their trees.
    """

    def __init__(self, session: AsyncSession, uploads: Optional[UploadService] = None):
        self.session = session
        self.users = UserRepository(session)
        self.tree = FamilyTreeRepository(session)
        self.access = FamilyAccessService(session)
        self.blocking = BlockingService(session)
        self.notifications = NotificationService(session)
        self.uploads = uploads or UploadService()

    def family_to_dict(self, family: Family) -> dict:
        return {
            "id": family.id,
            "family_code": family.family_code,
            "family_name": family.family_name,
            "family_bio": family.family_bio,
            "family_photo": family.family_photo,
            "family_photo_url": self.uploads.url_for(family.family_photo),
            "status": family.status,
            "created_by": family.created_by,
            "created_at": family.created_at,
        }

    async def get_family_or_404(self, family_code: str) -> Family:
        family = await self.tree.get_family(normalize_code(family_code))
        if family is None:
            raise NotFoundError("Family not found")
        return family

    async def create_family(
        self,
        user: User,
        family_name: str,
        family_code: str,
        family_bio: Optional[str] = None,
        family_photo: Optional[str] = None,
    ) -> dict:
        """
        Create a family with the caller as its first admin.

        The caller is promoted to family admin (superadmins keep their role),
        gets an approved membership and the family becomes their profile
        family. A fresh token is returned because the role claim changed.

        Raises:
            BadRequestError: Family code already exists
        """
        code = normalize_code(family_code)
        if not code:
            raise BadRequestError("Family code is required")
        if await self.tree.get_family(code) is not None:
            raise BadRequestError("Family code already exists")

        family = Family(
            family_code=code,
            family_name=family_name.strip(),
            family_bio=family_bio,
            family_photo=family_photo,
            created_by=user.id,
        )
        self.session.add(family)

        if user.role == ROLE_MEMBER:
            user.role = ROLE_ADMIN

        membership = await self.users.get_membership(user.id, code)
        if membership is None:
            self.session.add(FamilyMember(
                member_id=user.id,
                family_code=code,
                creator_id=user.id,
                approve_status=APPROVE_APPROVED,
            ))
        else:
            membership.approve_status = APPROVE_APPROVED

        profile = await self.users.ensure_profile(user)
        profile.family_code = code
        await self.session.flush()

        logger.info("Family created", extra={"user_id": user.id, "family_code": code})
        return {
            "message": "Family created successfully",
            "data": self.family_to_dict(family),
            "access_token": create_user_token(user),
        }

    async def list_families(self) -> list[dict]:
        result = await self.session.execute(select(Family).order_by(Family.family_code))
        return [self.family_to_dict(f) for f in result.scalars().all()]

    async def search_families(self, query: str, limit: int = 10) -> list[dict]:
        """
        Families whose code starts with, or whose name contains, ``query``.
        """
        term = (query or "").strip()
        if not term:
            return []
        stmt = (
            select(Family)
            .where(or_(
                func.upper(Family.family_code).like(f"{term.upper()}%"),
                func.lower(Family.family_name).like(f"%{term.lower()}%"),
            ))
            .order_by(Family.family_code)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self.family_to_dict(f) for f in result.scalars().all()]

    async def update_family(
        self,
        user: User,
        family_code: str,
        changes: dict[str, Any],
        new_photo: Optional[str] = None,
    ) -> dict:
        family = await self.get_family_or_404(family_code)
        if not await self.users.is_family_admin(user, family.family_code):
            raise ForbiddenError("Only family admins can update this family")

        for field in ("family_name", "family_bio"):
            if changes.get(field) is not None:
                setattr(family, field, changes[field])

        old_photo = None
        if new_photo:
            old_photo, family.family_photo = family.family_photo, new_photo
        await self.session.flush()
        if old_photo:
            await self.uploads.delete_quietly(old_photo)

        return {"message": "Family updated successfully", "data": self.family_to_dict(family)}

    async def delete_family(self, user: User, family_code: str) -> dict:
        """
        Delete a family, its memberships and its tree.

        Former members are notified with FAMILY_REMOVED before their
        memberships are removed.
        """
        family = await self.get_family_or_404(family_code)
        code = family.family_code
        if not await self.users.is_family_admin(user, code):
            raise ForbiddenError("Only family admins can delete this family")

        member_ids = await self.users.family_member_ids(code)
        await self.notifications.create_notification(
            {
                "type": NotificationType.FAMILY_REMOVED,
                "title": "Family removed",
                "message": f"The family {family.family_name} was deleted.",
                "user_ids": recipients_excluding(member_ids, user.id),
                "family_code": code,
            },
            triggered_by=user.id,
        )

        profiles = await self.session.execute(select(UserProfile).where(UserProfile.family_code == code))
        for profile in profiles.scalars().all():
            profile.family_code = None

        await self.tree.delete_nodes(code)
        await self.session.execute(delete(FamilyMember).where(FamilyMember.family_code == code))
        photo = family.family_photo
        await self.session.delete(family)
        await self.session.flush()
        await self.uploads.delete_quietly(photo)

        logger.info("Family deleted", extra={"user_id": user.id, "family_code": code})
        return {"message": "Family deleted successfully"}

    async def get_family_by_user_id(self, user_id: int) -> Optional[dict]:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        code = await self.access.own_family_code(user)
        if not code:
            return None
        family = await self.tree.get_family(code)
        return self.family_to_dict(family) if family else None

    async def associate_families(self, source_code: str, target_code: str) -> dict:
        """
        Mark two families as associated for every member profile of each.
        """
        source, target = normalize_code(source_code), normalize_code(target_code)
        if not source or not target or source == target:
            raise BadRequestError("Invalid family codes")

        updated = 0
        for own, other in ((source, target), (target, source)):
            member_ids = await self.users.family_member_ids(own)
            result = await self.session.execute(
                select(UserProfile).where(or_(
                    UserProfile.family_code == own,
                    UserProfile.user_id.in_(member_ids or [-1]),
                ))
            )
            for profile in result.scalars().all():
                codes = list(profile.associated_family_codes or [])
                if other not in codes and profile.family_code != other:
                    profile.associated_family_codes = codes + [other]
                    updated += 1
        await self.session.flush()
        return {"message": "Families associated successfully", "updated_profiles": updated}

    # Tree
    async def create_family_tree(self, family_code: str, members: list[dict], actor: User) -> dict:
        """
        Replace a family tree with the submitted member list.

        Cards are upserted by person id, cards missing from the payload are
        deleted and the tree is repaired afterwards. Members with an app
        account get an approved membership; approved non-admin members no
        longer on the tree lose theirs.

        Raises:
            BadRequestError: Invalid or duplicate person ids
            ForbiddenError: Actor blocked in, or not part of, the family
            NotFoundError: Family does not exist
        """
        code = normalize_code(family_code)
        if await self.access.is_blocked_in_family(actor.id, code):
            raise ForbiddenError("You have been blocked from this family")
        family = await self.tree.get_family(code)
        if family is None:
            raise NotFoundError("Family not found")
        if not (
            await self.users.is_approved_member(actor.id, code)
            or await self.users.is_family_admin(actor, code)
        ):
            raise ForbiddenError("You are not a member of this family")

        incoming_ids = assign_person_ids(members)
        existing = {n.person_id: n for n in await self.tree.list_nodes(code)}

        removed_ids = [pid for pid in existing if pid not in incoming_ids]
        removed = await self.tree.delete_nodes(code, removed_ids)
        for pid in removed_ids:
            existing.pop(pid, None)

        known_users = await self.users.get_many(m.get("member_id") for m in members)
        created = updated = 0
        tree_user_ids: set[int] = set()

        for member in members:
            user_id = member.get("member_id")
            user_id = int(user_id) if user_id and int(user_id) in known_users else None
            if user_id:
                tree_user_ids.add(user_id)

            values = {
                "user_id": user_id,
                "name": (member.get("name") or "Unknown").strip() or "Unknown",
                "gender": normalize_gender(member.get("gender")) or None,
                "age": parse_age(member.get("age")),
                "img": member.get("img"),
                "life_status": member.get("life_status") or LIFE_LIVING,
                "generation": int(member.get("generation") or 0),
                "parents": _int_list(member.get("parents")),
                "children": _int_list(member.get("children")),
                "spouses": _int_list(member.get("spouses")),
                "siblings": _int_list(member.get("siblings")),
                "is_external_linked": bool(member.get("is_external_linked", False)),
                "canonical_family_code": member.get("canonical_family_code"),
                "canonical_node_uid": member.get("canonical_node_uid"),
            }
            node = existing.get(member["id"])
            if node is None:
                node = FamilyTreeNode(family_code=code, person_id=member["id"], **values)
                if member.get("node_uid"):
                    node.node_uid = member["node_uid"]
                self.session.add(node)
                created += 1
            else:
                for key, value in values.items():
                    setattr(node, key, value)
                updated += 1

        await self.session.flush()

        for user_id in tree_user_ids:
            if await self.users.get_membership(user_id, code) is None:
                self.session.add(FamilyMember(
                    member_id=user_id,
                    family_code=code,
                    creator_id=actor.id,
                    approve_status=APPROVE_APPROVED,
                ))

        memberships = await self.session.execute(
            select(FamilyMember, User)
            .join(User, User.id == FamilyMember.member_id)
            .where(FamilyMember.family_code == code, FamilyMember.approve_status == APPROVE_APPROVED)
        )
        for membership, member_user in memberships.all():
            if member_user.role in ADMIN_ROLES or member_user.id == actor.id:
                continue
            if member_user.id not in tree_user_ids:
                await self.session.delete(membership)

        await self.session.flush()
        report = await repair_family_tree(self.session, code)

        logger.info(
            "Family tree saved",
            extra={"user_id": actor.id, "family_code": code, "created_nodes": created, "updated_nodes": updated, "removed_nodes": removed},
        )
        return {
            "message": "Family tree saved successfully",
            "family_code": code,
            "total_members": len(members),
            "created": created,
            "updated": updated,
            "removed": removed,
            "repair": report.to_dict(),
        }

    async def node_to_person(self, node: FamilyTreeNode, users: dict[int, User], viewer_id: Optional[int]) -> dict:
        user = users.get(node.user_id) if node.user_id else None
        person = {
            "id": node.person_id,
            "node_uid": node.node_uid,
            "member_id": node.user_id,
            "name": node.name,
            "gender": node.gender,
            "age": node.age,
            "generation": node.generation,
            "life_status": node.life_status,
            "img": node.img,
            "img_url": self.uploads.url_for(node.img) if node.img and "://" not in node.img else node.img,
            "family_code": node.family_code,
            "is_app_user": bool(user and user.is_app_user),
            "is_external_linked": node.is_external_linked,
            "canonical_family_code": node.canonical_family_code,
            "canonical_node_uid": node.canonical_node_uid,
            "parents": list(node.parents or []),
            "children": list(node.children or []),
            "spouses": list(node.spouses or []),
            "siblings": list(node.siblings or []),
        }
        if viewer_id is not None:
            person["block_status"] = await self.blocking.block_status(viewer_id, node.user_id)
        return person

    async def get_family_tree(
        self,
        family_code: str,
        viewer: User,
        allow_admin_preview: bool = False,
    ) -> dict:
        """
        Read a family tree as a list of people.

        Raises:
            ForbiddenError: Viewer has no connection to the family
        """
        code = normalize_code(family_code)
        await self.access.assert_can_view_tree(viewer, code, allow_admin_preview)

        nodes = await self.tree.list_nodes(code)
        if not nodes:
            return {"message": "Family tree not created yet", "family_code": code, "people": []}

        users = await self.users.get_many(n.user_id for n in nodes)
        people = [await self.node_to_person(n, users, viewer.id) for n in nodes]
        return {
            "message": "Family tree retrieved successfully",
            "family_code": code,
            "people": clean_people(people),
        }

    async def repair_tree(self, family_code: str, actor: User, fix_external_generations: bool = True) -> dict:
        code = normalize_code(family_code)
        if not await self.users.is_family_admin(actor, code):
            raise ForbiddenError("Only family admins can repair the family tree")
        report = await repair_family_tree(self.session, code, fix_external_generations)
        return {"message": "Family tree repaired", "data": report.to_dict()}

    # Cross-family views
    async def _relationships_of(self, user_id: int) -> list[UserRelationship]:
        result = await self.session.execute(
            select(UserRelationship).where(or_(
                UserRelationship.user1_id == user_id,
                UserRelationship.user2_id == user_id,
            ))
        )
        return list(result.scalars().all())

    async def get_associated_family_tree_by_user(self, user_id: int) -> dict:
        """
        One merged tree over every family the user is associated with.

        People are unified per app user across families (their relationship
        arrays are unioned), direct user relationships are added as edges
        and generations are recomputed breadth-first from the root people.

        Raises:
            NotFoundError: User missing or no associated families
        """
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")

        codes: list[str] = []
        profile = user.profile
        if profile is not None:
            if profile.family_code:
                codes.append(profile.family_code)
            codes.extend(profile.associated_family_codes or [])
        relationships = await self._relationships_of(user_id)
        codes.extend(r.generated_family_code for r in relationships if r.generated_family_code)

        blocked = await self.access.blocked_family_codes(user_id)
        family_codes = [
            c for c in dict.fromkeys(normalize_code(c) for c in codes if c)
            if c and not c.startswith("REL_") and c not in blocked
        ]
        if not family_codes:
            raise NotFoundError("No associated family trees found for this user")

        nodes = await self.tree.list_nodes_for_families(family_codes)
        users = await self.users.get_many(n.user_id for n in nodes)

        def key_for(node: FamilyTreeNode) -> str:
            return f"U{node.user_id}" if node.user_id else f"{node.family_code}:{node.person_id}"

        local_keys = {(n.family_code, n.person_id): key_for(n) for n in nodes}
        people: dict[str, dict] = {}
        edges: dict[str, dict[str, set[str]]] = defaultdict(lambda: {name: set() for name in RELATION_ARRAYS})

        for node in nodes:
            key = key_for(node)
            if key not in people:
                user_row = users.get(node.user_id) if node.user_id else None
                people[key] = {
                    "id": key,
                    "member_id": node.user_id,
                    "name": node.name,
                    "gender": node.gender,
                    "age": node.age,
                    "img": node.img,
                    "generation": node.generation,
                    "life_status": node.life_status,
                    "is_app_user": bool(user_row and user_row.is_app_user),
                    "family_codes": [],
                }
            if node.family_code not in people[key]["family_codes"]:
                people[key]["family_codes"].append(node.family_code)
            for name in RELATION_ARRAYS:
                for pid in node.relation_ids(name):
                    other = local_keys.get((node.family_code, pid))
                    if other and other != key:
                        edges[key][name].add(other)

        all_relationships = {r.id: r for r in relationships}
        for person in people.values():
            if person["member_id"] and person["member_id"] != user_id:
                for rel in await self._relationships_of(person["member_id"]):
                    all_relationships[rel.id] = rel

        for rel in all_relationships.values():
            a, b = f"U{rel.user1_id}", f"U{rel.user2_id}"
            if a not in people or b not in people or a == b:
                continue
            if rel.relationship_type == "spouse":
                edges[a]["spouses"].add(b)
                edges[b]["spouses"].add(a)
            elif rel.relationship_type == "parent-child":
                edges[a]["children"].add(b)
                edges[b]["parents"].add(a)
            elif rel.relationship_type == "sibling":
                edges[a]["siblings"].add(b)
                edges[b]["siblings"].add(a)

        for key, rel in list(edges.items()):
            for parent in rel["parents"]:
                edges[parent]["children"].add(key)
            for child in rel["children"]:
                edges[child]["parents"].add(key)
            for name in ("spouses", "siblings"):
                for other in rel[name]:
                    edges[other][name].add(key)

        self._fix_generation_consistency(people, edges)

        connections = 0
        for key, person in people.items():
            for name in RELATION_ARRAYS:
                person[name] = sorted(edges[key][name])
                connections += len(person[name])

        return {
            "message": "Associated family tree retrieved successfully",
            "root_user_id": user_id,
            "family_codes": family_codes,
            "people": list(people.values()),
            "total_connections": connections // 2,
        }

    @staticmethod
    def _fix_generation_consistency(people: dict[str, dict], edges: dict[str, dict[str, set[str]]]) -> None:
        roots = [k for k in people if not edges[k]["parents"]]
        assigned: dict[str, int] = {}
        for root in sorted(roots, key=lambda k: (people[k]["generation"] is None, people[k]["generation"] or 0)):
            if root in assigned:
                continue
            assigned[root] = people[root]["generation"] or 0
            queue = deque([root])
            while queue:
                current = queue.popleft()
                gen = assigned[current]
                steps = [(c, gen + 1) for c in edges[current]["children"]]
                steps += [(s, gen) for s in edges[current]["spouses"] | edges[current]["siblings"]]
                for other, other_gen in steps:
                    if other not in assigned:
                        assigned[other] = other_gen
                        queue.append(other)
        for key, gen in assigned.items():
            people[key]["generation"] = gen

    async def get_associated_prefixes(self, user_id: int) -> dict:
        """
        Foreign family codes reachable over spouse relationships, each with a
        path prefix (``S`` then ``H``/``W`` per hop), followed by the
        profile's associated codes with prefix ``Associated``.
        """
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        own_code = await self.access.own_family_code(user)

        results: list[dict] = []
        seen_codes = {own_code} if own_code else set()
        visited = {user_id}
        queue = deque([(user_id, "S")])
        while queue:
            current, prefix = queue.popleft()
            for rel in await self._relationships_of(current):
                if rel.relationship_type != "spouse":
                    continue
                other_id = rel.user2_id if rel.user1_id == current else rel.user1_id
                if other_id in visited:
                    continue
                visited.add(other_id)
                other = await self.users.get(other_id)
                if other is None:
                    continue
                gender = normalize_gender(other.profile.gender if other.profile else None)
                step_prefix = prefix + ("H" if gender == "male" else "W")
                other_code = await self.access.own_family_code(other)
                if other_code and other_code not in seen_codes:
                    seen_codes.add(other_code)
                    results.append({"family_code": other_code, "prefix": step_prefix, "via_user_id": other_id})
                queue.append((other_id, step_prefix))

        for code in (user.profile.associated_family_codes if user.profile else None) or []:
            code = normalize_code(code)
            if code and code not in seen_codes:
                seen_codes.add(code)
                results.append({"family_code": code, "prefix": "Associated", "via_user_id": None})

        return {"user_id": user_id, "family_code": own_code, "associated": results}

    async def get_user_families(self, user_id: int) -> list[dict]:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        own = await self.access.own_family_code(user)
        codes = list(dict.fromkeys(
            ([own] if own else [])
            + await self.users.approved_family_codes(user_id)
            + [normalize_code(c) for c in ((user.profile.associated_family_codes if user.profile else None) or [])]
        ))
        result = await self.session.execute(select(Family).where(Family.family_code.in_(codes or [""])))
        families = {f.family_code: f for f in result.scalars().all()}
        items = []
        for code in codes:
            family = families.get(code)
            items.append({
                "family_code": code,
                "family_name": family.family_name if family else None,
                "is_primary": code == own,
                "is_member": await self.users.is_approved_member(user_id, code),
                "is_admin": await self.users.is_family_admin(user, code),
            })
        return items

    async def get_user_relationships(self, user_id: int) -> list[dict]:
        rows = await self._relationships_of(user_id)
        others = await self.users.get_many(
            r.user2_id if r.user1_id == user_id else r.user1_id for r in rows
        )
        items = []
        for rel in rows:
            other_id = rel.user2_id if rel.user1_id == user_id else rel.user1_id
            other = others.get(other_id)
            items.append({
                "id": rel.id,
                "relationship_type": rel.relationship_type,
                "other_user_id": other_id,
                "other_user_name": other.full_name if other else None,
                "generated_family_code": rel.generated_family_code,
                "created_at": rel.created_at,
            })
        return items

    async def add_spouse_relationship(
        self,
        user1_id: int,
        user2_id: int,
        generated_family_code: Optional[str] = None,
    ) -> UserRelationship:
        """
        Store a spouse relationship once per unordered pair.
        """
        low, high = sorted((user1_id, user2_id))
        result = await self.session.execute(
            select(UserRelationship).where(
                UserRelationship.user1_id == low,
                UserRelationship.user2_id == high,
                UserRelationship.relationship_type == "spouse",
            )
        )
        rel = result.scalar_one_or_none()
        if rel is None:
            rel = UserRelationship(
                user1_id=low,
                user2_id=high,
                relationship_type="spouse",
                generated_family_code=generated_family_code,
            )
            self.session.add(rel)
            await self.session.flush()
        return rel

    async def remove_associated_family_code(self, user_id: int, family_code: Optional[str]) -> bool:
        """
        Drop one code from a user's associated family codes.

        Returns:
            True when the profile changed
        """
        code = normalize_code(family_code)
        user = await self.users.get(user_id)
        if not code or user is None or user.profile is None:
            return False
        codes = list(user.profile.associated_family_codes or [])
        kept = [c for c in codes if normalize_code(c) != code]
        if len(kept) == len(codes):
            return False
        user.profile.associated_family_codes = kept
        await self.session.flush()
        return True

    async def remove_relationship(self, user_id: int, other_user_id: int, relationship_type: str = "spouse") -> dict:
        """
        Delete the relationship between two users, in either direction.

        The family code generated for the relationship is removed from both
        users' associated codes.

        Raises:
            NotFoundError: No such relationship
        """
        result = await self.session.execute(
            select(UserRelationship).where(
                or_(
                    (UserRelationship.user1_id == user_id) & (UserRelationship.user2_id == other_user_id),
                    (UserRelationship.user1_id == other_user_id) & (UserRelationship.user2_id == user_id),
                ),
                UserRelationship.relationship_type == relationship_type,
            )
        )
        rel = result.scalars().first()
        if rel is None:
            raise NotFoundError("Relationship not found")

        code = rel.generated_family_code
        await self.session.delete(rel)
        await self.session.flush()
        if code:
            await self.remove_associated_family_code(user_id, code)
            await self.remove_associated_family_code(other_user_id, code)

        logger.info(
            "Relationship removed",
            extra={"user_id": user_id, "other_user_id": other_user_id, "relationship_type": relationship_type},
        )
        return {"message": "Relationship removed", "removed_family_code": code}
