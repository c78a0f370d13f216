"""Admin accounts, bearer sessions and the admin audit trail.

A session moves from issued to valid and ends either expired or
invalidated. Expired rows are never cleaned up here: they simply stop
matching ``validate_session``.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.config import settings
from bikefine.core.constants import AdminRole
from bikefine.core.exceptions import DuplicateRecordError, RecordValidationError
from bikefine.core.security import ahash_password, averify_password
from bikefine.models.admin import AdminActivity, AdminSession, AdminUser
from bikefine.schemas.admin import AdminCreate, AdminUpdate
from bikefine.services.user_service import EMAIL_PATTERN
from bikefine.utils.dates import utcnow

logger = logging.getLogger(__name__)


async def authenticate(db: AsyncSession, email: str, password: str) -> Optional[AdminUser]:
    """Return the active admin matching the credentials, or None."""
    if not email or not password:
        return None

    result = await db.execute(
        select(AdminUser).where(
            AdminUser.email == email.strip().lower(),
            AdminUser.is_active.is_(True),
        )
    )
    admin = result.scalar_one_or_none()
    if not admin or not await averify_password(password, admin.password_hash):
        return None

    now = utcnow()
    admin.last_login = now
    admin.updated_at = now
    await db.commit()
    await db.refresh(admin)
    return admin


async def create_session(
    db: AsyncSession,
    admin_id: str,
    token: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AdminSession:
    now = utcnow()
    session = AdminSession(
        admin_id=admin_id,
        token=token,
        expires_at=now + timedelta(hours=settings.ADMIN_SESSION_HOURS),
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=now,
    )
    db.add(session)
    await db.commit()
    await db.refresh(session)
    return session


async def validate_session(db: AsyncSession, token: str) -> Optional[AdminSession]:
    if not token:
        return None

    result = await db.execute(
        select(AdminSession).where(
            AdminSession.token == token,
            AdminSession.expires_at > utcnow(),
        )
    )
    return result.scalar_one_or_none()


async def invalidate_session(db: AsyncSession, token: str) -> bool:
    result = await db.execute(delete(AdminSession).where(AdminSession.token == token))
    await db.commit()
    return result.rowcount == 1


async def log_activity(
    db: AsyncSession,
    admin_id: str,
    action: str,
    resource: str,
    resource_id: Optional[str] = None,
    details: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[AdminActivity]:
    """Append an audit record. Failures are logged, never raised."""
    try:
        activity = AdminActivity(
            admin_id=admin_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=utcnow(),
        )
        db.add(activity)
        await db.commit()
        return activity
    except Exception:
        await db.rollback()
        logger.exception("Failed to log admin activity %s on %s", action, resource)
        return None


async def get_activities(db: AsyncSession, admin_id: Optional[str] = None, limit: int = 100) -> List[AdminActivity]:
    query = select(AdminActivity)
    if admin_id:
        query = query.where(AdminActivity.admin_id == admin_id)

    result = await db.execute(query.order_by(AdminActivity.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def get_admin_by_id(db: AsyncSession, admin_id: str) -> Optional[AdminUser]:
    return await db.get(AdminUser, admin_id)


async def get_admin_by_email(db: AsyncSession, email: str) -> Optional[AdminUser]:
    result = await db.execute(select(AdminUser).where(AdminUser.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_all_admins(db: AsyncSession) -> List[AdminUser]:
    result = await db.execute(
        select(AdminUser)
        .where(AdminUser.is_active.is_(True))
        .order_by(AdminUser.created_at.desc())
    )
    return list(result.scalars().all())


async def create_admin(db: AsyncSession, data: Union[AdminCreate, Dict[str, Any]]) -> AdminUser:
    if isinstance(data, dict):
        data = AdminCreate.model_validate(data)

    email = data.email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise RecordValidationError("Invalid email format", field="email")
    if len(data.password) < 6:
        raise RecordValidationError("Password must be at least 6 characters long", field="password")

    if await get_admin_by_email(db, email):
        raise DuplicateRecordError("Admin with this email already exists")

    admin = AdminUser(
        email=email,
        password_hash=await ahash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
        department=data.department,
        permissions=[permission.model_dump() for permission in data.permissions],
        is_active=data.is_active,
    )
    db.add(admin)
    await db.commit()
    await db.refresh(admin)

    logger.info("Created admin %s (%s)", admin.email, admin.role.value)
    return admin


async def update_admin(db: AsyncSession, admin_id: str, data: Union[AdminUpdate, Dict[str, Any]]) -> Optional[AdminUser]:
    if isinstance(data, dict):
        data = AdminUpdate.model_validate(data)

    admin = await db.get(AdminUser, admin_id)
    if not admin:
        return None

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    password = changes.pop("password", None)
    if password:
        admin.password_hash = await ahash_password(password)

    for field, value in changes.items():
        setattr(admin, field, value)
    admin.updated_at = utcnow()

    await db.commit()
    await db.refresh(admin)
    return admin


def has_permission(admin: AdminUser, resource: str, action: str) -> bool:
    """Super admins may do anything; everyone else needs a matching grant."""
    if admin.role == AdminRole.SUPER_ADMIN:
        return True

    for permission in admin.permissions or []:
        if permission.get("resource") == resource and action in (permission.get("actions") or []):
            return True
    return False
