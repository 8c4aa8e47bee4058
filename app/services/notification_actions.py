"""
Accept / reject handling for actionable notifications.

Association requests turn two users into spouses across their families;
tree link requests mirror one card into the other family's tree.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AppError, BadRequestError, ForbiddenError, NotFoundError
from app.models.family_link import (
    LINK_SOURCE_SPOUSE,
    LINK_SOURCE_TREE,
    REQUEST_ACCEPTED,
    REQUEST_PENDING,
    REQUEST_REJECTED,
    TreeLinkRequest,
)
from app.models.family import FamilyTreeNode
from app.models.notification import (
    NOTIFICATION_ACCEPTED,
    NOTIFICATION_CANCELLED,
    NOTIFICATION_PENDING,
    NOTIFICATION_REJECTED,
    Notification,
    NotificationType,
)
from app.models.user import User
from app.repositories.family_tree import FamilyTreeRepository
from app.repositories.user import UserRepository
from app.services.blocking import BlockingService
from app.services.family import FamilyService
from app.services.family_link import FamilyLinkService, resolve_parent_role
from app.services.notification import NotificationService, recipients_excluding
from app.services.relationship import get_other_generation, invert_relationship_type
from app.services.tree_integrity import repair_family_tree
from app.services.tree_mutation import TreeMutator

logger = logging.getLogger(__name__)

ACTIONS = ("accept", "reject")


class NotificationActionService:
    """
    Dispatches ``respond`` to the handler of the notification type.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.tree = FamilyTreeRepository(session)
        self.blocking = BlockingService(session)
        self.notifications = NotificationService(session)
        self.links = FamilyLinkService(session)
        self.mutator = TreeMutator(session)

    async def respond(self, notification_id: int, action: str, user: User) -> dict:
        """
        Accept or reject an actionable notification.

        Raises:
            NotFoundError: Caller is not a recipient
            BadRequestError: Unknown action or unsupported notification type
        """
        if action not in ACTIONS:
            raise BadRequestError("Action must be accept or reject")
        notification, recipient = await self.notifications.get_recipient(notification_id, user.id)

        if notification.status != NOTIFICATION_PENDING:
            await self.notifications.mark_as_read(notification.id, user.id)
            return {"message": f"Request already {notification.status}", "status": notification.status}

        if notification.type == NotificationType.FAMILY_ASSOCIATION_REQUEST:
            return await self._respond_association(notification, action, user)
        if notification.type == NotificationType.TREE_LINK_REQUEST:
            return await self._respond_tree_link(notification, action, user)
        raise BadRequestError(f"Action not supported for notification type: {notification.type}")

    async def _close(self, notification: Notification, status: str) -> None:
        notification.status = status
        await self.notifications.mark_all_recipients_read(notification.id)
        await self.session.flush()

    # Association
    async def _respond_association(self, notification: Notification, action: str, user: User) -> dict:
        data = notification.data or {}
        required = ("sender_id", "target_user_id", "sender_family_code", "target_family_code")
        if any(not data.get(key) for key in required):
            raise BadRequestError("Invalid association request data")

        sender = await self.users.get(data["sender_id"])
        target = await self.users.get(data["target_user_id"])
        if sender is None or target is None:
            raise NotFoundError("User not found")
        sender_code = data["sender_family_code"]
        target_code = data["target_family_code"]

        if await self.blocking.is_blocked_either_way(sender.id, target.id):
            await self._close(notification, NOTIFICATION_REJECTED)
            # the rejection must survive the error response
            await self.session.commit()
            raise ForbiddenError("Not allowed")

        recipients = recipients_excluding(
            [sender.id]
            + await self.users.admins_for_family(sender_code)
            + await self.users.admins_for_family(target_code),
            user.id,
        )

        if action == "reject":
            await self._close(notification, NOTIFICATION_REJECTED)
            await self.notifications.create_notification(
                {
                    "type": NotificationType.FAMILY_ASSOCIATION_REJECTED,
                    "title": "Association request rejected",
                    "message": f"{user.full_name} rejected the family association request",
                    "user_ids": recipients,
                    "family_code": sender_code,
                    "reference_id": notification.id,
                },
                triggered_by=user.id,
            )
            return {"message": "Association request rejected", "status": NOTIFICATION_REJECTED}

        cards = await self.mutator.create_spouse_cards(sender, sender_code, target, target_code)

        await self.links.update_user_family_associations(sender, target_code, sender_code)
        await self.links.update_user_family_associations(target, sender_code, target_code)
        initiator_id = data.get("initiator_id")
        if initiator_id and initiator_id not in (sender.id, target.id):
            initiator = await self.users.get(initiator_id)
            if initiator is not None:
                await self.links.update_user_family_associations(
                    initiator, target_code, initiator.profile.family_code if initiator.profile else None
                )

        await self.links.ensure_family_link(sender_code, target_code, LINK_SOURCE_SPOUSE)
        await FamilyService(self.session).add_spouse_relationship(sender.id, target.id)
        await self._close(notification, NOTIFICATION_ACCEPTED)

        await self.notifications.create_notification(
            {
                "type": NotificationType.FAMILY_ASSOCIATION_ACCEPTED,
                "title": "Association request accepted",
                "message": f"{user.full_name} accepted the family association request",
                "user_ids": recipients,
                "family_code": sender_code,
                "reference_id": notification.id,
            },
            triggered_by=user.id,
        )
        logger.info(
            "Association accepted",
            extra={"user_id": user.id, "family_code": sender_code, "target_family_code": target_code},
        )
        return {
            "message": "Association request accepted",
            "status": NOTIFICATION_ACCEPTED,
            "generation": cards["generation"],
        }

    # Tree links
    async def _respond_tree_link(self, notification: Notification, action: str, user: User) -> dict:
        data = notification.data or {}
        request_id = data.get("request_id") or notification.reference_id
        if not request_id:
            raise BadRequestError("Invalid tree link request data")

        request = await self.session.get(TreeLinkRequest, int(request_id))
        if request is None or request.status != REQUEST_PENDING:
            await self.notifications.mark_as_read(notification.id, user.id)
            return {"message": "Request already processed"}

        if action == "reject":
            request.status = REQUEST_REJECTED
            request.responded_by = user.id
            await self._close(notification, NOTIFICATION_REJECTED)
            await self._notify_sender(request, user, NotificationType.TREE_LINK_REJECTED, "rejected")
            return {"message": "Link request rejected", "status": REQUEST_REJECTED}

        try:
            return await self._accept_tree_link(request, notification, user)
        except AppError:
            raise
        except Exception as exc:
            logger.exception("Tree link accept failed", extra={"user_id": user.id, "request_id": request.id})
            raise BadRequestError(f"Failed to accept tree link request: {exc}")

    async def _accept_tree_link(self, request: TreeLinkRequest, notification: Notification, user: User) -> dict:
        sender_code, receiver_code = request.sender_family_code, request.receiver_family_code
        sender_node = await self.tree.get_node_in_family(sender_code, request.sender_node_uid)
        receiver_node = await self.tree.get_node_in_family(receiver_code, request.receiver_node_uid)
        if sender_node is None or receiver_node is None:
            await self.links.cancel_request(request)
            await self._close(notification, NOTIFICATION_CANCELLED)
            return {
                "message": "Link request was cancelled because the target card is no longer available.",
                "status": NOTIFICATION_CANCELLED,
            }

        if await self.blocking.is_blocked_either_way(user.id, request.created_by) or (
            sender_node.user_id
            and receiver_node.user_id
            and await self.blocking.is_blocked_either_way(sender_node.user_id, receiver_node.user_id)
        ):
            raise ForbiddenError("Not allowed")

        relationship_type = request.relationship_type
        parent_role: Optional[str] = None
        if relationship_type in ("parent", "child"):
            parent_node = sender_node if relationship_type == "parent" else receiver_node
            parent_role = resolve_parent_role(parent_node.gender, request.parent_role)

        await self.links.ensure_family_link(sender_code, receiver_code, LINK_SOURCE_TREE)
        await self.links.ensure_tree_link(
            sender_code, sender_node.node_uid, receiver_code, receiver_node.node_uid,
            relationship_type, request.created_by,
        )

        # sender is <relationship_type> of receiver
        sender_in_receiver = await self.mutator.ensure_external_linked_card(
            receiver_code, sender_node, get_other_generation(receiver_node.generation, relationship_type)
        )
        receiver_in_sender = await self.mutator.ensure_external_linked_card(
            sender_code,
            receiver_node,
            get_other_generation(sender_node.generation, invert_relationship_type(relationship_type)),
        )

        if relationship_type == "sibling":
            await self.mutator.link_as_sibling_by_parents(receiver_code, receiver_node, sender_in_receiver)
            await self.mutator.link_as_sibling_by_parents(sender_code, sender_node, receiver_in_sender)
        elif relationship_type == "parent":
            await self._link_parent(receiver_code, receiver_node, sender_in_receiver, parent_role, local_parent=False)
            await self._link_parent(sender_code, receiver_in_sender, sender_node, parent_role, local_parent=True)
        else:
            await self._link_parent(receiver_code, sender_in_receiver, receiver_node, parent_role, local_parent=True)
            await self._link_parent(sender_code, sender_node, receiver_in_sender, parent_role, local_parent=False)

        request.status = REQUEST_ACCEPTED
        request.responded_by = user.id
        await self._close(notification, NOTIFICATION_ACCEPTED)
        await repair_family_tree(self.session, sender_code)
        await repair_family_tree(self.session, receiver_code)

        await self._notify_sender(request, user, NotificationType.TREE_LINK_ACCEPTED, "accepted")
        logger.info(
            "Tree link accepted",
            extra={"user_id": user.id, "family_code": receiver_code, "sender_family_code": sender_code},
        )
        return {"message": "Link request accepted", "status": REQUEST_ACCEPTED}

    async def _link_parent(
        self,
        family_code: str,
        child: FamilyTreeNode,
        parent: FamilyTreeNode,
        parent_role: Optional[str],
        local_parent: bool,
    ) -> None:
        if parent_role:
            await self.mutator.replace_parent_by_role(family_code, child, parent, parent_role)
        else:
            await self.mutator.update_local_relationship(child, parent, "parent")
        await self.mutator.ensure_spouse_link_between_child_parents_if_safe(family_code, child)
        if not parent_role and local_parent:
            await self.mutator.propagate_child_to_canonical_spouses(family_code, parent, child)

    async def _notify_sender(self, request: TreeLinkRequest, user: User, notification_type: str, verb: str) -> None:
        if not request.created_by:
            return
        await self.notifications.create_notification(
            {
                "type": notification_type,
                "title": f"Tree link request {verb}",
                "message": f"{user.full_name} {verb} your family tree link request",
                "user_ids": recipients_excluding([request.created_by], user.id),
                "family_code": request.sender_family_code,
                "reference_id": request.id,
            },
            triggered_by=user.id,
        )
