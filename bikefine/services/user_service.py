import logging
import re
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.constants import UserStatus
from bikefine.core.exceptions import DuplicateRecordError, RecordValidationError
from bikefine.core.security import ahash_password, averify_password
from bikefine.models.user import User
from bikefine.schemas.filters import UserFilters
from bikefine.schemas.user import UserCreate, UserUpdate
from bikefine.services.base import DEFAULT_PAGE_SIZE, contains, paginate
from bikefine.utils.dates import utcnow

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_plate(number_plate: Optional[str]) -> Optional[str]:
    if number_plate is None:
        return None
    number_plate = number_plate.strip().upper()
    return number_plate or None


def validate_user_data(data: Dict[str, Any], partial: bool = False) -> None:
    """Raise RecordValidationError for the first invalid field.

    With ``partial`` only the keys present in ``data`` are checked.
    """
    if not partial or "name" in data:
        name = (data.get("name") or "").strip()
        if len(name) < 2:
            raise RecordValidationError("Name must be at least 2 characters long", field="name")

    if not partial or "email" in data:
        if not EMAIL_PATTERN.match(data.get("email") or ""):
            raise RecordValidationError("Invalid email format", field="email")

    if not partial or "password" in data:
        if len(data.get("password") or "") < 6:
            raise RecordValidationError("Password must be at least 6 characters long", field="password")


async def _ensure_unique(db: AsyncSession, email: Optional[str], number_plate: Optional[str], exclude_id: Optional[str] = None):
    conditions = []
    if email:
        conditions.append(User.email == email)
    if number_plate:
        conditions.append(User.number_plate == number_plate)
    if not conditions:
        return

    query = select(User.id).where(or_(*conditions))
    if exclude_id:
        query = query.where(User.id != exclude_id)

    result = await db.execute(query.limit(1))
    if result.scalar_one_or_none():
        raise DuplicateRecordError("User with this email or number plate already exists")


async def create_user(db: AsyncSession, data: Union[UserCreate, Dict[str, Any]]) -> User:
    if isinstance(data, dict):
        data = UserCreate.model_validate(data)

    fields = data.model_dump()
    fields["email"] = (fields["email"] or "").strip().lower()
    fields["number_plate"] = normalize_plate(fields.get("number_plate"))
    validate_user_data(fields)

    await _ensure_unique(db, fields["email"], fields["number_plate"])

    password = fields.pop("password")
    user = User(**fields, password_hash=await ahash_password(password))
    user.status = UserStatus.ACTIVE if user.is_active else UserStatus.INACTIVE

    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info("Created user %s", user.id)
    return user


async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_user_by_number_plate(db: AsyncSession, number_plate: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.number_plate == normalize_plate(number_plate)))
    return result.scalar_one_or_none()


async def get_users_by_ids(db: AsyncSession, user_ids: List[str]) -> Dict[str, User]:
    if not user_ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(set(user_ids))))
    return {user.id: user for user in result.scalars().all()}


async def apply_user_changes(user: User, changes: Dict[str, Any]) -> None:
    """Copy validated changes onto a user, keeping status and is_active in step."""
    password = changes.pop("password", None)
    if password:
        user.password_hash = await ahash_password(password)

    for field, value in changes.items():
        setattr(user, field, value)

    if "status" in changes and "is_active" not in changes:
        user.is_active = changes["status"] == UserStatus.ACTIVE
    elif "is_active" in changes and "status" not in changes:
        user.status = UserStatus.ACTIVE if changes["is_active"] else UserStatus.INACTIVE

    user.updated_at = utcnow()


async def prepare_user_changes(db: AsyncSession, user: User, data: UserUpdate) -> Dict[str, Any]:
    changes = data.model_dump(exclude_unset=True)
    # Explicit nulls for required columns are ignored
    for required in ("name", "email", "password", "role", "is_active", "status", "email_verified", "phone_verified"):
        if required in changes and changes[required] is None:
            changes.pop(required)

    if "email" in changes:
        changes["email"] = changes["email"].strip().lower()
    if "number_plate" in changes:
        changes["number_plate"] = normalize_plate(changes["number_plate"])

    validate_user_data(changes, partial=True)

    email = changes.get("email") if changes.get("email") != user.email else None
    plate = changes.get("number_plate") if changes.get("number_plate") != user.number_plate else None
    await _ensure_unique(db, email, plate, exclude_id=user.id)
    return changes


async def update_user(db: AsyncSession, user_id: str, data: Union[UserUpdate, Dict[str, Any]]) -> Optional[User]:
    if isinstance(data, dict):
        data = UserUpdate.model_validate(data)

    user = await db.get(User, user_id)
    if not user:
        return None

    changes = await prepare_user_changes(db, user, data)
    await apply_user_changes(user, changes)

    await db.commit()
    await db.refresh(user)
    return user


async def delete_user(db: AsyncSession, user_id: str) -> bool:
    """Delete one user record. The user's cases are left in place."""
    user = await db.get(User, user_id)
    if not user:
        return False

    await db.delete(user)
    await db.commit()
    logger.info("Deleted user %s", user_id)
    return True


async def list_users(db: AsyncSession, filters: UserFilters, page: int = 1, limit: int = DEFAULT_PAGE_SIZE):
    query = select(User)
    conditions = []

    if filters.role is not None:
        conditions.append(User.role == filters.role)
    if filters.is_active is not None:
        conditions.append(User.is_active == filters.is_active)
    if filters.search:
        conditions.append(or_(
            contains(User.name, filters.search),
            contains(User.email, filters.search),
            contains(User.number_plate, filters.search),
        ))
    if filters.created_after:
        conditions.append(User.created_at >= filters.created_after)
    if filters.created_before:
        conditions.append(User.created_at <= filters.created_before)

    if conditions:
        query = query.where(and_(*conditions))

    query = query.order_by(User.created_at.desc(), User.id.desc())
    return await paginate(db, query, page, limit)


async def search_users(db: AsyncSession, number_plate: Optional[str] = None, search: Optional[str] = None, limit: int = 20) -> List[User]:
    """Exact plate lookup, or a substring search over name, email, plate and phone"""
    if number_plate:
        user = await get_user_by_number_plate(db, number_plate)
        return [user] if user else []

    query = select(User).where(or_(
        contains(User.name, search),
        contains(User.email, search),
        contains(User.number_plate, search),
        contains(User.phone_number, search),
    )).order_by(User.created_at.desc()).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    user = await get_user_by_email(db, email)
    if not user or not await averify_password(password, user.password_hash):
        return None

    user.last_login = utcnow()
    await db.commit()
    await db.refresh(user)
    return user
