"""
Family merge workflow.

A secondary family's admin asks to merge into a primary family. Primary
admins accept or reject, prepare the merged tree as a versioned working
state and finally execute the merge, which rewrites the primary tree.
"""

import logging
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.models.base import utc_now_iso
from app.models.family import APPROVE_APPROVED, Family, FamilyMember
from app.models.family_link import LINK_SOURCE_MERGE
from app.models.merge import (
    MERGED,
    PRIMARY_ACCEPTED,
    PRIMARY_OPEN,
    PRIMARY_REJECTED,
    SECONDARY_PENDING,
    FamilyMergeRequest,
    FamilyMergeState,
    FamilyMergeStateVersion,
)
from app.models.notification import NotificationType
from app.models.user import ADMIN_ROLES, ROLE_ADMIN, ROLE_SUPERADMIN, User
from app.repositories.family_tree import FamilyTreeRepository
from app.repositories.user import UserRepository
from app.services import merge_analysis
from app.services.family import FamilyService, normalize_code
from app.services.family_link import FamilyLinkService
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)


def merge_request_to_dict(request: FamilyMergeRequest) -> dict:
    return {
        "id": request.id,
        "primary_family_code": request.primary_family_code,
        "secondary_family_code": request.secondary_family_code,
        "requested_by_admin_id": request.requested_by_admin_id,
        "primary_status": request.primary_status,
        "secondary_status": request.secondary_status,
        "anchor_config": request.anchor_config,
        "duplicate_persons_info": request.duplicate_persons_info,
        "conflict_summary": request.conflict_summary,
        "is_no_match_merge": request.is_no_match_merge,
        "applied_generation_offset": request.applied_generation_offset,
        "created_at": request.created_at,
        "updated_at": request.updated_at,
    }


def state_to_dict(state: FamilyMergeState) -> dict:
    return {
        "id": state.id,
        "merge_request_id": state.merge_request_id,
        "primary_family_code": state.primary_family_code,
        "secondary_family_code": state.secondary_family_code,
        "state": state.state,
        "updated_at": state.updated_at,
    }


def secondary_tracking_status(request: FamilyMergeRequest) -> str:
    if request.primary_status == PRIMARY_OPEN:
        return "PENDING_PRIMARY_DECISION"
    if request.primary_status == PRIMARY_REJECTED:
        return "REJECTED_BY_PRIMARY"
    if request.primary_status == PRIMARY_ACCEPTED and request.secondary_status == SECONDARY_PENDING:
        return "ACCEPTED_WAITING_EXECUTION"
    if request.primary_status == MERGED:
        return "MERGED_COMPLETED"
    return "UNKNOWN"


def _id_list(values: Any) -> list[int]:
    ids: list[int] = []
    for value in values or []:
        try:
            number = int(value)
        except (TypeError, ValueError):
            continue
        if number not in ids:
            ids.append(number)
    return ids


class FamilyMergeService:
    """
    Merge requests, their working state and execution.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.tree = FamilyTreeRepository(session)
        self.families = FamilyService(session)
        self.notifications = NotificationService(session)

    # Access
    async def assert_admin_of_family(self, admin: User, family_code: str) -> None:
        if admin.role not in ADMIN_ROLES:
            raise ForbiddenError("Only admins can manage family merge requests")
        membership = await self.users.get_membership(admin.id, family_code)
        if membership is None or membership.approve_status != APPROVE_APPROVED:
            raise ForbiddenError("Admin must belong to the primary family")

    async def get_request_for_admin(self, request_id: int, admin: User) -> FamilyMergeRequest:
        """
        Merge request visible to an admin of either family.

        Raises:
            NotFoundError: Request does not exist
            ForbiddenError: Caller is not an admin of either family
        """
        request = await self.session.get(FamilyMergeRequest, request_id)
        if request is None:
            raise NotFoundError("Merge request not found")
        if admin.role not in ADMIN_ROLES:
            raise ForbiddenError("Only admins can manage family merge requests")
        for code in (request.primary_family_code, request.secondary_family_code):
            membership = await self.users.get_membership(admin.id, code)
            if membership is not None and membership.approve_status == APPROVE_APPROVED:
                return request
        raise ForbiddenError("Admin must belong to the primary or secondary family")

    async def _notify_both_families(self, request: FamilyMergeRequest, actor: User, payload: dict) -> None:
        recipients = list(dict.fromkeys(
            await self.users.admins_for_family(request.primary_family_code)
            + await self.users.admins_for_family(request.secondary_family_code)
        ))
        if not recipients:
            return
        await self.notifications.create_notification(
            {
                "family_code": request.primary_family_code,
                "reference_id": request.id,
                "user_ids": recipients,
                **payload,
            },
            triggered_by=actor.id,
        )

    # Requests
    async def search_families(self, family_code: Optional[str] = None, admin_phone: Optional[str] = None) -> dict:
        """
        Families by code prefix, plus families of admins whose mobile
        starts with ``admin_phone``. Each result lists the family admins.
        """
        found: dict[str, Family] = {}
        if family_code and family_code.strip():
            result = await self.session.execute(
                select(Family).where(func.upper(Family.family_code).like(f"{family_code.strip().upper()}%"))
            )
            for family in result.scalars().all():
                found[family.family_code] = family

        if admin_phone and admin_phone.strip():
            result = await self.session.execute(
                select(Family)
                .join(FamilyMember, FamilyMember.family_code == Family.family_code)
                .join(User, User.id == FamilyMember.member_id)
                .where(
                    User.mobile.like(f"{admin_phone.strip()}%"),
                    User.role.in_(ADMIN_ROLES),
                    FamilyMember.approve_status == APPROVE_APPROVED,
                )
            )
            for family in result.scalars().all():
                found.setdefault(family.family_code, family)

        items = []
        for code, family in found.items():
            admins = await self.users.get_many(await self.users.admins_for_family(code))
            items.append({
                "family_code": code,
                "family_name": family.family_name,
                "admins": [
                    {
                        "user_id": admin.id,
                        "full_name": admin.full_name,
                        "mobile": admin.mobile,
                        "email": admin.email,
                        "is_app_user": admin.is_app_user,
                    }
                    for admin in admins.values()
                ],
            })
        return {"message": f"{len(items)} families found", "data": items}

    async def create_merge_request(
        self,
        primary_family_code: str,
        secondary_family_code: str,
        admin: User,
        anchor_config: Optional[dict] = None,
    ) -> dict:
        """
        Ask to merge the caller's (secondary) family into a primary family.

        Raises:
            BadRequestError: Missing or identical codes, or a duplicate open request
            NotFoundError: Either family does not exist
            ForbiddenError: Caller is not an admin of the secondary family
        """
        primary, secondary = normalize_code(primary_family_code), normalize_code(secondary_family_code)
        if not primary or not secondary:
            raise BadRequestError("Both primary_family_code and secondary_family_code are required")
        if primary == secondary:
            raise BadRequestError("Primary and secondary families must be different")
        if await self.tree.get_family(primary) is None:
            raise NotFoundError("Primary family not found")
        if await self.tree.get_family(secondary) is None:
            raise NotFoundError("Secondary family not found")

        await self.assert_admin_of_family(admin, secondary)

        result = await self.session.execute(
            select(FamilyMergeRequest).where(
                FamilyMergeRequest.primary_family_code == primary,
                FamilyMergeRequest.secondary_family_code == secondary,
                FamilyMergeRequest.primary_status.in_((PRIMARY_OPEN, PRIMARY_ACCEPTED)),
            )
        )
        if result.scalars().first() is not None:
            raise BadRequestError("A merge request between these families is already open or accepted")

        request = FamilyMergeRequest(
            primary_family_code=primary,
            secondary_family_code=secondary,
            requested_by_admin_id=admin.id,
            primary_status=PRIMARY_OPEN,
            secondary_status=SECONDARY_PENDING,
            anchor_config=anchor_config,
        )
        self.session.add(request)
        await self.session.flush()

        await self._notify_both_families(request, admin, {
            "type": NotificationType.FAMILY_MERGE_REQUEST,
            "title": "Family Merge Request",
            "message": f"Merge request created between {primary} (primary) and {secondary} (secondary).",
        })
        logger.info(
            "Merge request created",
            extra={"user_id": admin.id, "family_code": primary, "secondary_family_code": secondary},
        )
        return {"message": "Merge request created successfully", "data": merge_request_to_dict(request)}

    async def requests_for_admin(self, admin: User, status: Optional[str] = None) -> dict:
        if admin.role not in ADMIN_ROLES:
            raise ForbiddenError("Only admins can view merge requests")
        codes = await self.users.approved_family_codes(admin.id)
        if not codes:
            return {"message": "No families found for admin", "data": []}

        stmt = select(FamilyMergeRequest).where(or_(
            FamilyMergeRequest.primary_family_code.in_(codes),
            FamilyMergeRequest.secondary_family_code.in_(codes),
        ))
        if status:
            stmt = stmt.where(FamilyMergeRequest.primary_status == status)
        result = await self.session.execute(stmt.order_by(FamilyMergeRequest.id.desc()))
        requests = [merge_request_to_dict(r) for r in result.scalars().all()]
        return {"message": f"{len(requests)} merge request(s) found", "data": requests}

    async def _update_status(self, request_id: int, admin: User, new_status: str) -> dict:
        request = await self.get_request_for_admin(request_id, admin)
        await self.assert_admin_of_family(admin, request.primary_family_code)
        if request.primary_status != PRIMARY_OPEN:
            raise BadRequestError("Only open requests can be updated")

        request.primary_status = new_status
        await self.session.flush()
        await self._notify_both_families(request, admin, {
            "type": NotificationType.FAMILY_MERGE_STATUS_UPDATE,
            "title": "Family Merge Request Updated",
            "message": (
                f"Merge request between {request.primary_family_code} (primary) and "
                f"{request.secondary_family_code} (secondary) has been {new_status}."
            ),
        })
        return {"message": f"Merge request {new_status} successfully", "data": merge_request_to_dict(request)}

    async def accept_request(self, request_id: int, admin: User) -> dict:
        return await self._update_status(request_id, admin, PRIMARY_ACCEPTED)

    async def reject_request(self, request_id: int, admin: User) -> dict:
        return await self._update_status(request_id, admin, PRIMARY_REJECTED)

    # Previews and analysis
    async def build_family_preview(self, family_code: str, admin: User) -> list[dict]:
        """
        Flat person list of a family enriched with account details.
        """
        tree = await self.families.get_family_tree(family_code, admin, allow_admin_preview=True)
        people = tree.get("people", [])
        users = await self.users.get_many(p["member_id"] for p in people if p.get("member_id"))

        preview = []
        for person in people:
            user = users.get(person.get("member_id")) if person.get("member_id") else None
            profile = user.profile if user else None
            membership = await self.users.get_membership(user.id, tree["family_code"]) if user else None
            preview.append({
                "person_id": person["id"],
                "user_id": user.id if user else None,
                "name": person.get("name") or (profile.full_name if profile else None) or "Unknown",
                "age": (profile.age if profile and profile.age is not None else person.get("age")),
                "gender": person.get("gender") or (profile.gender if profile else None),
                "generation": person.get("generation"),
                "phone": user.mobile if user else None,
                "email": user.email if user else None,
                "associated_family_codes": list((profile.associated_family_codes if profile else None) or []),
                "is_app_user": bool(user and user.is_app_user),
                "is_blocked": bool(membership and membership.is_blocked),
                "is_admin": bool(user and user.role in ADMIN_ROLES),
                "family_code": tree["family_code"],
                "parents": person.get("parents", []),
                "children": person.get("children", []),
                "spouses": person.get("spouses", []),
                "siblings": person.get("siblings", []),
            })
        return preview

    async def family_a_preview(self, request_id: int, admin: User) -> dict:
        request = await self.get_request_for_admin(request_id, admin)
        code = request.primary_family_code
        return {"family_code": code, "message": "Family preview built", "data": await self.build_family_preview(code, admin)}

    async def family_b_preview(self, request_id: int, admin: User) -> dict:
        request = await self.get_request_for_admin(request_id, admin)
        code = request.secondary_family_code
        return {"family_code": code, "message": "Family preview built", "data": await self.build_family_preview(code, admin)}

    async def family_preview_for_anchor(self, family_code: str, admin: User) -> dict:
        code = normalize_code(family_code)
        if not code:
            raise BadRequestError("family_code is required")
        if admin.role not in ADMIN_ROLES:
            raise ForbiddenError("Only admins can preview families for merge")
        if await self.tree.get_family(code) is None:
            raise NotFoundError("Family not found")
        return {"family_code": code, "message": "Family preview built", "data": await self.build_family_preview(code, admin)}

    async def _load_state(self, request_id: int) -> Optional[FamilyMergeState]:
        result = await self.session.execute(
            select(FamilyMergeState).where(FamilyMergeState.merge_request_id == request_id)
        )
        return result.scalar_one_or_none()

    async def get_merge_analysis(self, request_id: int, admin: User) -> dict:
        """
        Duplicate detection, conflicts and crisis analysis between both families.

        Duplicate and conflict summaries plus the no-match flag are stored on
        the request.
        """
        request = await self.get_request_for_admin(request_id, admin)
        family_a = await self.build_family_preview(request.primary_family_code, admin)
        family_b = await self.build_family_preview(request.secondary_family_code, admin)

        result = merge_analysis.find_matches(family_a, family_b)
        duplicates = result["duplicate_persons"]
        if duplicates:
            request.duplicate_persons_info = duplicates
            request.conflict_summary = {
                "total_duplicates": len(duplicates),
                "hard_conflicts": len(result["hard_conflicts"]),
                "soft_conflicts": len(result["soft_conflicts"]),
                "new_persons": len(result["new_persons"]),
                "scenarios": merge_analysis.summarize_scenarios(duplicates),
            }

        state = await self._load_state(request.id)
        meta = ((state.state if state else None) or {}).get("meta") or {}
        label = meta.get("relationshipLabel") if isinstance(meta.get("relationshipLabel"), str) else None
        crisis = merge_analysis.crisis_analysis(family_a, family_b, result["matches"], label)
        request.is_no_match_merge = crisis["is_no_match_merge"]
        await self.session.flush()

        return {
            "message": "Merge analysis completed",
            "data": {
                "primary_family_code": request.primary_family_code,
                "secondary_family_code": request.secondary_family_code,
                "anchor_config": request.anchor_config,
                **result,
                "crisis_analysis": crisis,
            },
        }

    # Working state
    async def _next_version(self, request_id: int) -> int:
        result = await self.session.execute(
            select(func.max(FamilyMergeStateVersion.version)).where(
                FamilyMergeStateVersion.merge_request_id == request_id
            )
        )
        return int(result.scalar() or 0) + 1

    async def _append_version(self, request_id: int, state: dict, description: str, admin: User) -> int:
        version = await self._next_version(request_id)
        self.session.add(FamilyMergeStateVersion(
            merge_request_id=request_id,
            version=version,
            state=state,
            description=description,
            created_by=admin.id,
        ))
        await self.session.flush()
        return version

    async def get_merge_state(self, request_id: int, admin: User) -> dict:
        request = await self.get_request_for_admin(request_id, admin)
        state = await self._load_state(request.id)
        if state is None:
            return {
                "message": "No merge state saved yet",
                "data": {
                    "merge_request_id": request.id,
                    "primary_family_code": request.primary_family_code,
                    "secondary_family_code": request.secondary_family_code,
                    "state": None,
                },
            }
        return {"message": "Merge state loaded", "data": state_to_dict(state)}

    async def save_merge_state(self, request_id: int, admin: User, payload: Optional[dict]) -> dict:
        """
        Replace the working state; every save is recorded as a version.

        ``meta.anchorConfig``, when present, is copied to the request.
        """
        request = await self.get_request_for_admin(request_id, admin)
        await self.assert_admin_of_family(admin, request.primary_family_code)

        payload = dict(payload or {})
        meta = dict(payload.get("meta") or {})
        meta.update({"lastUpdatedBy": admin.id, "lastUpdatedAt": utc_now_iso()})
        payload["meta"] = meta

        state = await self._load_state(request.id)
        if state is None:
            state = FamilyMergeState(
                merge_request_id=request.id,
                primary_family_code=request.primary_family_code,
                secondary_family_code=request.secondary_family_code,
                state=payload,
            )
            self.session.add(state)
        else:
            state.state = payload

        if "anchorConfig" in meta:
            request.anchor_config = meta["anchorConfig"]
        await self.session.flush()
        version = await self._append_version(request.id, payload, "Saved merge state", admin)
        return {"message": "Merge state saved", "data": {**state_to_dict(state), "version": version}}

    async def edit_merge_state(
        self,
        request_id: int,
        admin: User,
        changes: dict,
        description: Optional[str] = None,
    ) -> dict:
        request = await self.get_request_for_admin(request_id, admin)
        state = await self._load_state(request.id)
        if state is None:
            raise NotFoundError("No merge state found. Save state first.")

        current = dict(state.state or {})
        meta = dict(current.get("meta") or {})
        updated = {**current, **(changes or {})}
        meta.update({"lastUpdatedBy": admin.id, "lastUpdatedAt": utc_now_iso()})
        updated["meta"] = meta
        state.state = updated
        await self.session.flush()

        version = await self._append_version(request.id, updated, description or "Edited merge state", admin)
        return {"message": "Merge state edited successfully", "data": {**state_to_dict(state), "version": version}}

    async def get_merge_state_history(self, request_id: int, admin: User) -> dict:
        request = await self.get_request_for_admin(request_id, admin)
        result = await self.session.execute(
            select(FamilyMergeStateVersion)
            .where(FamilyMergeStateVersion.merge_request_id == request.id)
            .order_by(FamilyMergeStateVersion.version)
        )
        history = [
            {
                "version": v.version,
                "description": v.description,
                "created_by": v.created_by,
                "created_at": v.created_at,
                "state": v.state,
            }
            for v in result.scalars().all()
        ]
        return {"message": "Merge state history retrieved", "data": history}

    async def revert_merge_state(self, request_id: int, admin: User, target_version: int) -> dict:
        """
        Restore an earlier version; the restore itself becomes a new version.
        """
        request = await self.get_request_for_admin(request_id, admin)
        result = await self.session.execute(
            select(FamilyMergeStateVersion).where(
                FamilyMergeStateVersion.merge_request_id == request.id,
                FamilyMergeStateVersion.version == target_version,
            )
        )
        target = result.scalar_one_or_none()
        state = await self._load_state(request.id)
        if target is None or state is None:
            raise BadRequestError("Invalid target version")

        state.state = dict(target.state or {})
        await self.session.flush()
        version = await self._append_version(
            request.id, state.state, f"Reverted to version {target_version}", admin
        )
        return {
            "message": "Merge state reverted successfully",
            "data": {"reverted_to": target_version, "version": version, "timestamp": utc_now_iso()},
        }

    # Execution
    @staticmethod
    def _tree_payload(members: list[dict]) -> list[dict]:
        payload = []
        for index, member in enumerate(members):
            raw_id = member.get("id")
            person_id = raw_id if isinstance(raw_id, int) and not isinstance(raw_id, bool) else index + 1
            payload.append({
                "id": person_id,
                "member_id": member.get("member_id") or member.get("user_id"),
                "name": member.get("name") or "Unknown",
                "gender": member.get("gender") or "unknown",
                "age": member.get("age"),
                "img": member.get("img"),
                "life_status": member.get("life_status") or "living",
                "generation": member.get("generation") if isinstance(member.get("generation"), int) else None,
                "parents": _id_list(member.get("parents")),
                "children": _id_list(member.get("children")),
                "spouses": _id_list(member.get("spouses")),
                "siblings": _id_list(member.get("siblings")),
            })
        return payload

    async def execute_merge(self, request_id: int, admin: User) -> dict:
        """
        Write the prepared final tree into the primary family.

        Raises:
            BadRequestError: Already merged, not accepted, or no final tree
        """
        request = await self.get_request_for_admin(request_id, admin)
        await self.assert_admin_of_family(admin, request.primary_family_code)
        if request.primary_status == MERGED:
            raise BadRequestError("Merge has already been executed for this request")
        if request.primary_status != PRIMARY_ACCEPTED:
            raise BadRequestError("Only accepted merge requests can be executed")

        state = await self._load_state(request.id)
        if state is None or not state.state:
            raise BadRequestError("No merge state found. Save merge decisions before executing.")
        raw = state.state or {}
        members = (raw.get("finalTree") or {}).get("members") or []
        if not isinstance(members, list) or not members:
            raise BadRequestError("Final merged tree is empty. Cannot execute merge.")

        tree_result = await self.families.create_family_tree(
            request.primary_family_code, self._tree_payload(members), admin
        )

        promote = [
            u for u in ((raw.get("adminDecisions") or {}).get("promoteToAdmin") or [])
            if isinstance(u, int) and not isinstance(u, bool)
        ]
        if promote:
            await self.session.execute(
                update(User)
                .where(User.id.in_(promote), User.role != ROLE_SUPERADMIN)
                .values(role=ROLE_ADMIN)
            )

        request.primary_status = MERGED
        request.secondary_status = MERGED
        await FamilyLinkService(self.session).ensure_family_link(
            request.primary_family_code, request.secondary_family_code, LINK_SOURCE_MERGE
        )
        await self.session.flush()

        await self._notify_both_families(request, admin, {
            "type": NotificationType.FAMILY_MERGE_STATUS_UPDATE,
            "title": "Family Merge Completed",
            "message": (
                f"Merge between {request.primary_family_code} (primary) and "
                f"{request.secondary_family_code} (secondary) has been completed."
            ),
            "data": {
                "primary_family_code": request.primary_family_code,
                "secondary_family_code": request.secondary_family_code,
                "merge_state_id": state.id,
            },
        })
        logger.info(
            "Family merge executed",
            extra={"user_id": admin.id, "family_code": request.primary_family_code, "request_id": request.id},
        )
        return {
            "message": "Family merge executed successfully",
            "data": {"request": merge_request_to_dict(request), "tree_result": tree_result},
        }

    async def secondary_tracking(self, request_id: int, admin: User) -> dict:
        request = await self.session.get(FamilyMergeRequest, request_id)
        if request is None:
            raise NotFoundError("Merge request not found")
        await self.assert_admin_of_family(admin, request.secondary_family_code)
        members = await self.build_family_preview(request.secondary_family_code, admin)
        return {
            "message": "Secondary family tracking",
            "data": {
                "merge_request_id": request.id,
                "primary_family_code": request.primary_family_code,
                "secondary_family_code": request.secondary_family_code,
                "primary_status": request.primary_status,
                "secondary_status": request.secondary_status,
                "created_at": request.created_at,
                "updated_at": request.updated_at,
                "secondary_members": members,
                "total_members": len(members),
                "tracking_status": secondary_tracking_status(request),
            },
        }

    async def adjust_generation_offset(
        self,
        request_id: int,
        admin: User,
        offset: int,
        reason: Optional[str] = None,
    ) -> dict:
        request = await self.session.get(FamilyMergeRequest, request_id)
        if request is None:
            raise NotFoundError("Merge request not found")
        await self.assert_admin_of_family(admin, request.primary_family_code)
        if request.primary_status != PRIMARY_ACCEPTED:
            raise BadRequestError("Can only adjust generation offset for accepted requests")
        request.applied_generation_offset = offset
        await self.session.flush()
        logger.info(
            "Generation offset adjusted",
            extra={"user_id": admin.id, "request_id": request.id, "offset": offset, "reason": reason},
        )
        return {
            "message": "Generation offset adjusted successfully",
            "data": {"offset": offset, "applied_at": utc_now_iso(), "reason": reason},
        }
