"""
Cross-family links.

Links between whole families (``FamilyLink``), between one card in each of
two trees (``TreeLink``) and the request/notification flows that create
them: tree link requests and family association requests.
"""

import logging
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.models.family_link import (
    LINK_ACTIVE,
    LINK_INACTIVE,
    LINK_SOURCE_TREE,
    PARENT_ROLES,
    REQUEST_CANCELLED,
    REQUEST_PENDING,
    REQUEST_REVOKED,
    TREE_LINK_TYPES,
    FamilyLink,
    TreeLink,
    TreeLinkRequest,
)
from app.models.notification import (
    NOTIFICATION_CANCELLED,
    NOTIFICATION_REVOKED,
    NotificationType,
)
from app.models.user import User
from app.repositories.family_tree import FamilyTreeRepository
from app.repositories.user import UserRepository
from app.services.blocking import BlockingService
from app.services.family import normalize_code
from app.services.family_access import FamilyAccessService
from app.services.notification import NotificationService, recipients_excluding
from app.services.relationship import invert_relationship_type, normalize_gender
from app.services.tree_integrity import repair_family_tree
from app.services.tree_mutation import TreeMutator

logger = logging.getLogger(__name__)

MAX_FAMILY_CODE_LENGTH = 30
MAX_NODE_UID_LENGTH = 64


def normalize_family_pair(family_a: str, family_b: str) -> tuple[str, str, bool]:
    """
    Order two family codes lexically.

    Returns:
        (low, high, a_is_low)
    """
    a, b = normalize_code(family_a), normalize_code(family_b)
    if a <= b:
        return a, b, True
    return b, a, False


def parent_role_for_gender(gender: Optional[str]) -> Optional[str]:
    normalized = normalize_gender(gender)
    if normalized == "male":
        return "father"
    if normalized == "female":
        return "mother"
    return None


def resolve_parent_role(parent_gender: Optional[str], requested_role: Optional[str]) -> Optional[str]:
    """
    Parent role for a parent/child link.

    Derived from the parent's gender when not given; a given role must agree
    with a known gender.

    Raises:
        BadRequestError: Role contradicts the parent's gender
    """
    derived = parent_role_for_gender(parent_gender)
    if requested_role is None:
        return derived
    if derived is not None and derived != requested_role:
        raise BadRequestError("Parent role does not match the parent's gender")
    return requested_role


def request_to_dict(request: TreeLinkRequest) -> dict:
    return {
        "id": request.id,
        "sender_family_code": request.sender_family_code,
        "receiver_family_code": request.receiver_family_code,
        "sender_node_uid": request.sender_node_uid,
        "receiver_node_uid": request.receiver_node_uid,
        "relationship_type": request.relationship_type,
        "parent_role": request.parent_role,
        "status": request.status,
        "created_by": request.created_by,
        "responded_by": request.responded_by,
        "created_at": request.created_at,
    }


class FamilyLinkService:
    """
    Family links, tree links and the requests that create them.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.tree = FamilyTreeRepository(session)
        self.access = FamilyAccessService(session)
        self.blocking = BlockingService(session)
        self.notifications = NotificationService(session)
        self.mutator = TreeMutator(session)

    async def is_family_admin(self, user: Optional[User], family_code: Optional[str]) -> bool:
        return await self.users.is_family_admin(user, normalize_code(family_code))

    async def ensure_family_link(self, family_a: str, family_b: str, source: str) -> FamilyLink:
        """Find or create the link between two families, reactivating it if needed."""
        low, high, _ = normalize_family_pair(family_a, family_b)
        result = await self.session.execute(
            select(FamilyLink).where(FamilyLink.family_code_low == low, FamilyLink.family_code_high == high)
        )
        link = result.scalar_one_or_none()
        if link is None:
            link = FamilyLink(family_code_low=low, family_code_high=high, source=source, status=LINK_ACTIVE)
            self.session.add(link)
        else:
            link.status = LINK_ACTIVE
        await self.session.flush()
        return link

    async def ensure_tree_link(
        self,
        sender_family_code: str,
        sender_node_uid: str,
        receiver_family_code: str,
        receiver_node_uid: str,
        relationship_type: str,
        created_by: Optional[int],
    ) -> TreeLink:
        """
        Find or create the link between two cards.

        ``relationship_type`` reads "sender is <type> of receiver" and is
        inverted when the sender family is the high side of the pair.
        """
        low, high, sender_is_low = normalize_family_pair(sender_family_code, receiver_family_code)
        uid_low, uid_high = (
            (sender_node_uid, receiver_node_uid) if sender_is_low else (receiver_node_uid, sender_node_uid)
        )
        rel_low_to_high = relationship_type if sender_is_low else invert_relationship_type(relationship_type)

        result = await self.session.execute(
            select(TreeLink).where(
                TreeLink.family_code_low == low,
                TreeLink.family_code_high == high,
                TreeLink.node_uid_low == uid_low,
                TreeLink.node_uid_high == uid_high,
            )
        )
        link = result.scalar_one_or_none()
        if link is None:
            link = TreeLink(
                family_code_low=low,
                family_code_high=high,
                node_uid_low=uid_low,
                node_uid_high=uid_high,
                relationship_type_low_to_high=rel_low_to_high,
                status=LINK_ACTIVE,
                created_by=created_by,
            )
            self.session.add(link)
        else:
            link.status = LINK_ACTIVE
            link.relationship_type_low_to_high = rel_low_to_high
        await self.session.flush()
        return link

    async def update_user_family_associations(
        self,
        user: User,
        family_code: str,
        current_family_code: Optional[str],
    ) -> bool:
        """
        Add ``family_code`` to the user's associated codes.

        Returns:
            True when the profile changed
        """
        code = normalize_code(family_code)
        if not code or code == normalize_code(current_family_code):
            return False
        profile = await self.users.ensure_profile(user)
        codes = list(profile.associated_family_codes or [])
        if code in codes:
            return False
        profile.associated_family_codes = codes + [code]
        await self.session.flush()
        return True

    # Tree link requests
    @staticmethod
    def _validate_request_fields(payload: dict) -> None:
        for field in ("sender_family_code", "receiver_family_code"):
            if len(payload.get(field) or "") > MAX_FAMILY_CODE_LENGTH:
                raise BadRequestError(f"{field} is too long")
        for field in ("sender_node_uid", "receiver_node_uid"):
            value = payload.get(field) or ""
            if not value:
                raise BadRequestError(f"{field} is required")
            if len(value) > MAX_NODE_UID_LENGTH:
                raise BadRequestError(f"{field} is too long")
        if payload.get("relationship_type") not in TREE_LINK_TYPES:
            raise BadRequestError("relationship_type must be parent, child or sibling")
        role = payload.get("parent_role")
        if role is not None:
            if payload["relationship_type"] == "sibling":
                raise BadRequestError("parent_role is only allowed for parent or child links")
            if role not in PARENT_ROLES:
                raise BadRequestError("parent_role must be father or mother")

    async def _pending_between_families(self, family_a: str, family_b: str) -> Optional[TreeLinkRequest]:
        result = await self.session.execute(
            select(TreeLinkRequest)
            .where(
                TreeLinkRequest.status == REQUEST_PENDING,
                or_(
                    and_(
                        TreeLinkRequest.sender_family_code == family_a,
                        TreeLinkRequest.receiver_family_code == family_b,
                    ),
                    and_(
                        TreeLinkRequest.sender_family_code == family_b,
                        TreeLinkRequest.receiver_family_code == family_a,
                    ),
                ),
            )
            .order_by(TreeLinkRequest.id.desc())
        )
        return result.scalars().first()

    async def _active_tree_link(self, code_a: str, uid_a: str, code_b: str, uid_b: str) -> Optional[TreeLink]:
        low, high, a_is_low = normalize_family_pair(code_a, code_b)
        uid_low, uid_high = (uid_a, uid_b) if a_is_low else (uid_b, uid_a)
        result = await self.session.execute(
            select(TreeLink).where(
                TreeLink.family_code_low == low,
                TreeLink.family_code_high == high,
                TreeLink.node_uid_low == uid_low,
                TreeLink.node_uid_high == uid_high,
                TreeLink.status == LINK_ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def create_tree_link_request(self, user: User, payload: dict) -> dict:
        """
        Propose linking a card of the requester's family to a card of another family.

        The receiver card owner and the receiver family admins are notified.
        An already pending request between the two families is returned
        instead of creating a second one.

        Raises:
            BadRequestError: Invalid fields, cards or recipients
            ForbiddenError: Requester is inactive, not an admin, or blocked
        """
        self._validate_request_fields(payload)

        own_code = await self.access.own_family_code(user)
        sender_code = normalize_code(payload.get("sender_family_code") or own_code)
        receiver_code = normalize_code(payload.get("receiver_family_code"))
        if not sender_code:
            raise BadRequestError("You must belong to a family to send link requests")
        if not user.is_active:
            raise ForbiddenError("Account is not active")
        if not await self.is_family_admin(user, sender_code):
            raise ForbiddenError("Only admins can send link requests")
        if not receiver_code or receiver_code == sender_code:
            raise BadRequestError("Cannot link a family to itself")

        pending = await self._pending_between_families(sender_code, receiver_code)
        if pending is not None:
            return {"message": "Link request already pending.", "data": request_to_dict(pending)}

        sender_uid, receiver_uid = payload["sender_node_uid"], payload["receiver_node_uid"]
        if await self._active_tree_link(sender_code, sender_uid, receiver_code, receiver_uid):
            return {"message": "Tree link already active", "data": None}

        sender_node = await self.tree.get_node_in_family(sender_code, sender_uid)
        if sender_node is None or sender_node.is_external_linked:
            raise BadRequestError("Sender card not found in your family tree")
        receiver_node = await self.tree.get_node_in_family(receiver_code, receiver_uid)
        if receiver_node is None or receiver_node.is_external_linked:
            raise BadRequestError("Receiver card not found in the target family tree")

        receiver_user = await self.users.get(receiver_node.user_id) if receiver_node.user_id else None
        if receiver_user is None or not receiver_user.is_app_user or not receiver_user.is_active:
            raise BadRequestError("Receiver card must belong to an active app user")
        if sender_node.user_id and sender_node.user_id == receiver_node.user_id:
            raise BadRequestError("Cannot link a person to themselves")
        if await self.tree.get_node_by_user(sender_code, receiver_user.id) is not None:
            raise BadRequestError("This person is already in your family tree")
        if sender_node.user_id and await self.tree.get_node_by_user(receiver_code, sender_node.user_id):
            raise BadRequestError("This person is already in the target family tree")
        if await self.blocking.is_blocked_either_way(user.id, receiver_user.id):
            raise ForbiddenError("Not allowed")

        relationship_type = payload["relationship_type"]
        parent_role = None
        if relationship_type in ("parent", "child"):
            parent_node = sender_node if relationship_type == "parent" else receiver_node
            parent_role = resolve_parent_role(parent_node.gender, payload.get("parent_role"))

        candidates = recipients_excluding(
            [receiver_user.id] + await self.users.admins_for_family(receiver_code), user.id
        )
        blocked = await self.blocking.blocked_user_ids_for(user.id)
        recipients = [r for r in candidates if r not in blocked]
        if not recipients:
            raise BadRequestError("No recipients found for target family")

        request = TreeLinkRequest(
            sender_family_code=sender_code,
            receiver_family_code=receiver_code,
            sender_node_uid=sender_uid,
            receiver_node_uid=receiver_uid,
            relationship_type=relationship_type,
            parent_role=parent_role,
            status=REQUEST_PENDING,
            created_by=user.id,
        )
        self.session.add(request)
        await self.session.flush()

        await self.notifications.create_notification(
            {
                "type": NotificationType.TREE_LINK_REQUEST,
                "title": "Family tree link request",
                "message": (
                    f"{user.full_name} wants to link {sender_node.name} as {relationship_type} "
                    f"of {receiver_node.name}"
                ),
                "user_ids": recipients,
                "family_code": receiver_code,
                "reference_id": request.id,
                "data": {
                    "request_id": request.id,
                    "sender_id": user.id,
                    "sender_family_code": sender_code,
                    "receiver_family_code": receiver_code,
                    "sender_node_uid": sender_uid,
                    "receiver_node_uid": receiver_uid,
                    "relationship_type": relationship_type,
                    "parent_role": parent_role,
                },
            },
            triggered_by=user.id,
        )
        logger.info(
            "Tree link request created",
            extra={"user_id": user.id, "family_code": sender_code, "receiver_family_code": receiver_code},
        )
        return {"message": "Link request sent", "data": request_to_dict(request)}

    async def revoke_tree_link_request(self, user: User, request_id: int) -> dict:
        request = await self.session.get(TreeLinkRequest, request_id)
        if request is None:
            raise NotFoundError("Link request not found")
        if request.created_by != user.id and not await self.is_family_admin(user, request.sender_family_code):
            raise ForbiddenError("Only the sender can revoke this request")
        if request.status != REQUEST_PENDING:
            return {"message": "Request already processed", "status": request.status}

        request.status = REQUEST_REVOKED
        request.responded_by = user.id
        await self.notifications.set_status_for_reference(
            NotificationType.TREE_LINK_REQUEST, request.id, NOTIFICATION_REVOKED
        )
        await self.session.flush()
        return {"message": "Link request revoked", "data": request_to_dict(request)}

    async def cancel_request(self, request: TreeLinkRequest) -> None:
        request.status = REQUEST_CANCELLED
        await self.notifications.set_status_for_reference(
            NotificationType.TREE_LINK_REQUEST, request.id, NOTIFICATION_CANCELLED
        )
        await self.session.flush()

    async def pending_sent_requests(self, user: User) -> list[dict]:
        """
        Pending requests created by the user.

        Requests whose cards no longer exist are cancelled on the way.
        """
        result = await self.session.execute(
            select(TreeLinkRequest)
            .where(TreeLinkRequest.created_by == user.id, TreeLinkRequest.status == REQUEST_PENDING)
            .order_by(TreeLinkRequest.id.desc())
        )
        items = []
        for request in result.scalars().all():
            sender = await self.tree.get_node_in_family(request.sender_family_code, request.sender_node_uid)
            receiver = await self.tree.get_node_in_family(request.receiver_family_code, request.receiver_node_uid)
            if sender is None or receiver is None:
                await self.cancel_request(request)
                continue
            item = request_to_dict(request)
            item["sender_node_name"] = sender.name
            item["receiver_node_name"] = receiver.name
            items.append(item)
        return items

    # Linked families
    async def linked_families(self, user: User) -> list[dict]:
        own_code = await self.access.own_family_code(user)
        if not own_code:
            return []
        result = await self.session.execute(
            select(FamilyLink).where(
                FamilyLink.status == LINK_ACTIVE,
                or_(FamilyLink.family_code_low == own_code, FamilyLink.family_code_high == own_code),
            )
        )
        items = []
        for link in result.scalars().all():
            other = link.family_code_high if link.family_code_low == own_code else link.family_code_low
            family = await self.tree.get_family(other)
            items.append({
                "family_code": other,
                "family_name": family.family_name if family else None,
                "source": link.source,
                "linked_at": link.created_at,
            })
        return items

    async def _deactivate_tree_links(self, family_a: str, family_b: str, node_uid: Optional[str] = None) -> int:
        low, high, _ = normalize_family_pair(family_a, family_b)
        stmt = select(TreeLink).where(
            TreeLink.family_code_low == low,
            TreeLink.family_code_high == high,
            TreeLink.status == LINK_ACTIVE,
        )
        if node_uid:
            stmt = stmt.where(or_(TreeLink.node_uid_low == node_uid, TreeLink.node_uid_high == node_uid))
        links = (await self.session.execute(stmt)).scalars().all()
        for link in links:
            link.status = LINK_INACTIVE
        return len(links)

    async def unlink_linked_family(self, user: User, other_family_code: str) -> dict:
        """
        Remove the link between the user's family and another family.

        External cards each family holds of the other are removed and both
        trees repaired.
        """
        own_code = await self.access.own_family_code(user)
        other_code = normalize_code(other_family_code)
        if not own_code:
            raise BadRequestError("You must belong to a family")
        if not await self.is_family_admin(user, own_code):
            raise ForbiddenError("Only family admins can unlink families")

        low, high, _ = normalize_family_pair(own_code, other_code)
        result = await self.session.execute(
            select(FamilyLink).where(FamilyLink.family_code_low == low, FamilyLink.family_code_high == high)
        )
        link = result.scalar_one_or_none()
        if link is None or link.status != LINK_ACTIVE:
            raise NotFoundError("Family link not found")

        link.status = LINK_INACTIVE
        deactivated = await self._deactivate_tree_links(own_code, other_code)

        removed = 0
        for tree_code, foreign_code in ((own_code, other_code), (other_code, own_code)):
            for node in await self.tree.list_nodes(tree_code):
                if node.is_external_linked and node.canonical_family_code == foreign_code:
                    await self.mutator.remove_card(node)
                    removed += 1
            await repair_family_tree(self.session, tree_code)

        logger.info(
            "Families unlinked",
            extra={"user_id": user.id, "family_code": own_code, "other_family_code": other_code},
        )
        return {
            "message": "Family unlinked successfully",
            "deactivated_tree_links": deactivated,
            "removed_cards": removed,
        }

    async def unlink_tree_link_card(self, user: User, family_code: str, node_uid: str) -> dict:
        code = normalize_code(family_code)
        if not await self.is_family_admin(user, code):
            raise ForbiddenError("Only family admins can unlink cards")
        card = await self.tree.get_node_in_family(code, node_uid)
        if card is None:
            raise NotFoundError("Card not found")
        if not card.is_external_linked:
            raise BadRequestError("Only linked cards can be unlinked")

        deactivated = 0
        if card.canonical_family_code:
            deactivated += await self._deactivate_tree_links(code, card.canonical_family_code, card.canonical_node_uid)
            deactivated += await self._deactivate_tree_links(code, card.canonical_family_code, card.node_uid)
        await self.mutator.remove_card(card)
        report = await repair_family_tree(self.session, code)
        return {
            "message": "Linked card removed",
            "deactivated_tree_links": deactivated,
            "repair": report.to_dict(),
        }

    # Association requests
    async def request_association(
        self,
        requester: User,
        target_user_id: int,
        initiator_id: Optional[int] = None,
    ) -> dict:
        """
        Ask another user to associate (spouse link) the two families.

        Raises:
            BadRequestError: Self request or a missing family code
            ForbiddenError: The users block each other
            NotFoundError: Target user does not exist
        """
        if requester.id == target_user_id:
            raise BadRequestError("Cannot send an association request to yourself")
        target = await self.users.get(target_user_id)
        if target is None:
            raise NotFoundError("User not found")
        if await self.blocking.is_blocked_either_way(requester.id, target.id):
            raise ForbiddenError("Not allowed")

        sender_code = await self.access.own_family_code(requester)
        target_code = await self.access.own_family_code(target)
        if not sender_code or not target_code:
            raise BadRequestError("Both users must belong to a family")

        existing = await self.notifications.find_pending_between(
            NotificationType.FAMILY_ASSOCIATION_REQUEST, requester.id, target.id
        )
        if existing is not None:
            return {
                "message": "Association request already pending",
                "notification_id": existing.id,
                "request_id": existing.reference_id or existing.id,
            }

        admins = await self.users.admins_for_family(target_code)
        result = await self.notifications.create_notification(
            {
                "type": NotificationType.FAMILY_ASSOCIATION_REQUEST,
                "title": "Family association request",
                "message": f"{requester.full_name} wants to associate families with you",
                "user_ids": recipients_excluding([target.id] + admins, requester.id),
                "family_code": target_code,
                "data": {
                    "sender_id": requester.id,
                    "target_user_id": target.id,
                    "sender_family_code": sender_code,
                    "target_family_code": target_code,
                    "initiator_id": initiator_id or requester.id,
                },
            },
            triggered_by=requester.id,
        )
        logger.info(
            "Association request sent",
            extra={"user_id": requester.id, "target_user_id": target.id, "family_code": sender_code},
        )
        return result
