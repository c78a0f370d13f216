import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.deps import require_permission
from bikefine.api.responses import serialize, serialize_many, success_response
from bikefine.api.v1.routers.auth import limiter
from bikefine.core.config import settings
from bikefine.core.database import aget_db
from bikefine.core.exceptions import ServiceError
from bikefine.core.security import (
    ADMIN_SESSION_COOKIE,
    generate_admin_token,
    get_admin_token,
    get_client_ip,
    set_admin_session_cookie,
)
from bikefine.models.admin import AdminSession, AdminUser
from bikefine.schemas.admin import AdminActivityOut, AdminLoginRequest, AdminOut, SessionOut, ValidateSessionRequest
from bikefine.services import admin_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def session_payload(admin: AdminUser, session: AdminSession) -> dict:
    return {
        "admin": serialize(admin, AdminOut),
        "session": serialize(session, SessionOut),
    }


@router.post("/auth")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def admin_login(
    request: Request,
    payload: AdminLoginRequest,
    db: AsyncSession = Depends(aget_db)
):
    """Admin login: issues an 8 hour session token"""
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    ip_address = get_client_ip(request)
    user_agent = request.headers.get("user-agent")

    try:
        admin = await admin_service.authenticate(db, payload.email, payload.password)
        if not admin:
            logger.info("Failed admin login for %s from %s", payload.email, ip_address)
            raise HTTPException(status_code=401, detail="Invalid credentials")

        session = await admin_service.create_session(
            db, admin.id, generate_admin_token(), ip_address=ip_address, user_agent=user_agent
        )
        data = session_payload(admin, session)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Admin authentication error")
        raise HTTPException(status_code=500, detail="Authentication failed")

    await admin_service.log_activity(
        db,
        admin_id=data["admin"]["id"],
        action="login",
        resource="auth",
        details="Admin logged in",
        ip_address=ip_address,
        user_agent=user_agent,
    )

    response = success_response(data, message="Login successful")
    set_admin_session_cookie(response, data["session"]["token"])
    return response


@router.delete("/auth")
async def admin_logout(request: Request, db: AsyncSession = Depends(aget_db)):
    """Invalidate the session named by ?token= (or the bearer header / cookie)"""
    token = get_admin_token(request)
    if not token:
        raise HTTPException(status_code=400, detail="Session token is required")

    session = await admin_service.validate_session(db, token)
    admin_id = session.admin_id if session else None

    if not await admin_service.invalidate_session(db, token):
        raise HTTPException(status_code=404, detail="Session not found")

    if admin_id:
        await admin_service.log_activity(
            db,
            admin_id=admin_id,
            action="logout",
            resource="auth",
            details="Admin logged out",
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )

    response = success_response(message="Logged out successfully")
    response.delete_cookie(ADMIN_SESSION_COOKIE, path="/")
    return response


@router.post("/validate")
async def validate_session(
    request: Request,
    payload: ValidateSessionRequest = None,
    db: AsyncSession = Depends(aget_db)
):
    token = (payload.token if payload else None) or get_admin_token(request)
    if not token:
        raise HTTPException(status_code=400, detail="Token is required")

    session = await admin_service.validate_session(db, token)
    if not session:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    admin = await admin_service.get_admin_by_id(db, session.admin_id)
    if not admin:
        raise HTTPException(status_code=404, detail="Admin not found")
    if not admin.is_active:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    return success_response(session_payload(admin, session))


@router.get("/admins")
async def list_admins(
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("settings", "view"))
):
    admins = await admin_service.get_all_admins(db)
    return success_response(serialize_many(admins, AdminOut))


@router.get("/activities")
async def list_activities(
    db: AsyncSession = Depends(aget_db),
    admin_id: str = Query(None, alias="adminId"),
    limit: int = Query(100, ge=1, le=500),
    admin: AdminUser = Depends(require_permission("reports", "view"))
):
    activities = await admin_service.get_activities(db, admin_id=admin_id, limit=limit)
    return success_response(serialize_many(activities, AdminActivityOut))
