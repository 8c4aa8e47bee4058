"""
Admin panel endpoints.

Admin tokens are separate from app-user tokens (``isAdmin`` claim). Account
management is restricted to superadmins; everything else needs an active
admin account.
"""

from typing import Optional

from fastapi import APIRouter, Query, Request, status

from app.api.dependencies import CurrentAdmin, DatabaseSession, SuperAdmin, get_client_ip
from app.schemas.admin import AdminCreate, AdminLoginRequest, AdminUpdate
from app.services.admin import AdminService, admin_to_dict
from app.services.admin_stats import AdminStatsService

router = APIRouter()


def _admin_service(db, request: Request) -> AdminService:
    return AdminService(db, ip_address=get_client_ip(request), user_agent=request.headers.get("user-agent"))


@router.post("/login")
async def admin_login(payload: AdminLoginRequest, request: Request, db: DatabaseSession) -> dict:
    return await _admin_service(db, request).login(payload.email, payload.password)


@router.get("/me")
async def admin_me(admin: CurrentAdmin) -> dict:
    return {"admin": admin_to_dict(admin)}


# Account management (superadmin)
@router.post("/accounts", status_code=status.HTTP_201_CREATED)
async def create_admin(payload: AdminCreate, request: Request, actor: SuperAdmin, db: DatabaseSession) -> dict:
    data = await _admin_service(db, request).create_admin(actor, payload.model_dump())
    return {"message": "Admin account created", "admin": data}


@router.get("/accounts")
async def list_admins(actor: SuperAdmin, db: DatabaseSession) -> dict:
    return {"data": await AdminService(db).list_admins()}


@router.put("/accounts/{admin_id}")
async def update_admin(admin_id: str, payload: AdminUpdate, request: Request, actor: SuperAdmin, db: DatabaseSession) -> dict:
    data = await _admin_service(db, request).update_admin(actor, admin_id, payload.model_dump(exclude_unset=True))
    return {"message": "Admin account updated", "admin": data}


@router.delete("/accounts/{admin_id}")
async def delete_admin(admin_id: str, request: Request, actor: SuperAdmin, db: DatabaseSession) -> dict:
    return await _admin_service(db, request).delete_admin(actor, admin_id)


# Audit logs
@router.get("/audit-logs/me")
async def my_audit_logs(
    admin: CurrentAdmin,
    db: DatabaseSession,
    page: int = Query(1),
    limit: int = Query(25),
) -> dict:
    return await AdminService(db).audit_logs(page, limit, admin_id=admin.id)


@router.get("/audit-logs")
async def all_audit_logs(
    actor: SuperAdmin,
    db: DatabaseSession,
    page: int = Query(1),
    limit: int = Query(25),
    admin_id: Optional[str] = Query(None),
) -> dict:
    return await AdminService(db).audit_logs(page, limit, admin_id=admin_id)


# Statistics
@router.get("/stats/users")
async def user_statistics(admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await AdminStatsService(db).user_statistics()


@router.get("/stats/posts")
async def post_statistics(admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await AdminStatsService(db).post_statistics()


@router.get("/stats/galleries")
async def gallery_statistics(admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await AdminStatsService(db).gallery_statistics()


# App users
@router.get("/users")
async def list_app_users(
    admin: CurrentAdmin,
    db: DatabaseSession,
    page: int = Query(1),
    limit: int = Query(25),
    search: Optional[str] = Query(None),
) -> dict:
    return await AdminStatsService(db).list_app_users(page, limit, search)


@router.get("/users/{user_id}")
async def get_app_user(user_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await AdminStatsService(db).get_app_user(user_id)


@router.get("/users/{user_id}/posts")
async def get_user_posts(
    user_id: int,
    admin: CurrentAdmin,
    db: DatabaseSession,
    page: int = Query(1),
    limit: int = Query(25),
) -> dict:
    return await AdminStatsService(db).user_posts(user_id, page, limit)


@router.get("/users/{user_id}/galleries")
async def get_user_galleries(
    user_id: int,
    admin: CurrentAdmin,
    db: DatabaseSession,
    page: int = Query(1),
    limit: int = Query(25),
) -> dict:
    return await AdminStatsService(db).user_galleries(user_id, page, limit)


async def _set_user_status(user_id: int, suspended: bool, request: Request, admin, db) -> dict:
    result = await AdminStatsService(db).set_user_status(user_id, suspended)
    await _admin_service(db, request).audit(
        admin.id,
        "APP_USER_SUSPENDED" if suspended else "APP_USER_ACTIVATED",
        "user",
        user_id,
    )
    return result


@router.post("/users/{user_id}/suspend")
async def suspend_user(user_id: int, request: Request, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await _set_user_status(user_id, True, request, admin, db)


@router.post("/users/{user_id}/activate")
async def activate_user(user_id: int, request: Request, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await _set_user_status(user_id, False, request, admin, db)


# Content
@router.get("/posts")
async def list_posts(admin: CurrentAdmin, db: DatabaseSession, page: int = Query(1), limit: int = Query(25)) -> dict:
    return await AdminStatsService(db).list_posts(page, limit)


@router.get("/posts/{post_id}")
async def get_post(post_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await AdminStatsService(db).get_post(post_id)


@router.get("/posts/{post_id}/likes")
async def get_post_likes(post_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return {"data": await AdminStatsService(db).post_likes(post_id)}


@router.get("/posts/{post_id}/comments")
async def get_post_comments(post_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return {"data": await AdminStatsService(db).post_comments(post_id)}


@router.get("/galleries")
async def list_galleries(admin: CurrentAdmin, db: DatabaseSession, page: int = Query(1), limit: int = Query(25)) -> dict:
    return await AdminStatsService(db).list_galleries(page, limit)


@router.get("/galleries/{gallery_id}")
async def get_gallery(gallery_id: int, admin: CurrentAdmin, db: DatabaseSession) -> dict:
    return await AdminStatsService(db).get_gallery(gallery_id)
