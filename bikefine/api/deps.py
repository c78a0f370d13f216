from dataclasses import dataclass
from typing import Optional, Type, TypeVar

from fastapi import Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.database import aget_db
from bikefine.core.security import AUTH_COOKIE, get_admin_token, get_client_ip, get_current_user
from bikefine.models.admin import AdminSession, AdminUser
from bikefine.models.user import User
from bikefine.schemas.filters import FilterModel
from bikefine.services import admin_service

F = TypeVar("F", bound=FilterModel)


def parse_filters(request: Request, model: Type[F]) -> F:
    """Validate the recognised query-string keys; the rest are ignored."""
    try:
        return model.model_validate(dict(request.query_params))
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ()))
        raise HTTPException(status_code=400, detail=f"{field}: {error.get('msg')}")


async def get_current_admin(request: Request, db: AsyncSession = Depends(aget_db)) -> AdminUser:
    """Resolve the calling admin from a server-side session lookup"""
    token = get_admin_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Admin authentication required")

    session: Optional[AdminSession] = await admin_service.validate_session(db, token)
    if not session:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    admin = await admin_service.get_admin_by_id(db, session.admin_id)
    if not admin or not admin.is_active:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    request.state.admin_session = session
    request.state.admin_id = admin.id
    return admin


def require_permission(resource: str, action: str):
    """Dependency factory checking the admin's permission list"""

    async def checker(admin: AdminUser = Depends(get_current_admin)) -> AdminUser:
        if not admin_service.has_permission(admin, resource, action):
            raise HTTPException(status_code=403, detail=f"Permission denied: {action} {resource}")
        return admin

    return checker


async def record_activity(
    db: AsyncSession,
    request: Request,
    action: str,
    resource: str,
    resource_id: Optional[str] = None,
    details: Optional[str] = None,
) -> None:
    await admin_service.log_activity(
        db,
        admin_id=request.state.admin_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=details,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@dataclass
class Caller:
    """Whoever is behind a request: an admin session or a signed-in rider"""
    admin: Optional[AdminUser] = None
    user: Optional[User] = None

    def owns(self, user_id: Optional[str]) -> bool:
        if self.admin is not None:
            return True
        return self.user is not None and self.user.id == user_id


def admin_or_rider(resource: str, action: str):
    """
    Dependency factory for routes riders may use on their own records.

    An admin token wins and must carry the permission; otherwise the
    ``auth_token`` cookie must name a rider. Routes check ownership with
    ``Caller.owns``.
    """

    async def resolver(request: Request, db: AsyncSession = Depends(aget_db)) -> Caller:
        if get_admin_token(request):
            admin = await get_current_admin(request, db)
            if not admin_service.has_permission(admin, resource, action):
                raise HTTPException(status_code=403, detail=f"Permission denied: {action} {resource}")
            return Caller(admin=admin)

        if request.cookies.get(AUTH_COOKIE):
            return Caller(user=await get_current_user(request, db))

        raise HTTPException(status_code=401, detail="Authentication required")

    return resolver
