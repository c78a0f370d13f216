"""User administration behind the /admin/users endpoints."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case as sql_case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.constants import OUTSTANDING_CASE_STATUSES, CaseStatus, UserRole, UserStatus
from bikefine.core.exceptions import RecordNotFoundError, RecordValidationError
from bikefine.models.case import Case
from bikefine.models.user import User
from bikefine.schemas.filters import AdminUserFilters
from bikefine.schemas.user import AdminUserUpdate, BulkUserUpdate, UserUpdate
from bikefine.services import user_service
from bikefine.services.base import DEFAULT_PAGE_SIZE, contains, paginate
from bikefine.utils.dates import utcnow

logger = logging.getLogger(__name__)

USER_ACTIONS = ("suspend", "activate", "deactivate", "verifyEmail", "verifyPhone", "updateRole")


async def violation_totals(db: AsyncSession, user_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    """Case count and fine totals per user, for the given users only."""
    if not user_ids:
        return {}

    outstanding = sql_case((Case.status.in_(OUTSTANDING_CASE_STATUSES), Case.fine), else_=0)
    result = await db.execute(
        select(
            Case.user_id,
            func.count(Case.id),
            func.coalesce(func.sum(Case.fine), 0),
            func.coalesce(func.sum(outstanding), 0),
        )
        .where(Case.user_id.in_(user_ids))
        .group_by(Case.user_id)
    )

    totals = {}
    for user_id, violation_count, total_fines, outstanding_fines in result.all():
        totals[user_id] = {
            "violation_count": violation_count,
            "total_fines": float(total_fines or 0),
            "outstanding_fines": float(outstanding_fines or 0),
            "has_violations": violation_count > 0,
            "has_outstanding_fines": (outstanding_fines or 0) > 0,
        }
    return totals


async def list_users_for_admin(db: AsyncSession, filters: AdminUserFilters, page: int = 1, limit: int = DEFAULT_PAGE_SIZE):
    query = select(User)
    conditions = []

    if filters.search:
        conditions.append(or_(
            contains(User.name, filters.search),
            contains(User.email, filters.search),
            contains(User.number_plate, filters.search),
            contains(User.phone_number, filters.search),
        ))
    if filters.status is not None:
        conditions.append(User.status == filters.status)
    if filters.role is not None:
        conditions.append(User.role == filters.role)
    if filters.email_verified is not None:
        conditions.append(User.email_verified == filters.email_verified)
    if filters.phone_verified is not None:
        conditions.append(User.phone_verified == filters.phone_verified)
    if filters.has_violations is not None:
        with_cases = select(Case.user_id)
        conditions.append(User.id.in_(with_cases) if filters.has_violations else User.id.not_in(with_cases))
    if filters.has_outstanding_fines is not None:
        owing = select(Case.user_id).where(Case.status.in_(OUTSTANDING_CASE_STATUSES))
        conditions.append(User.id.in_(owing) if filters.has_outstanding_fines else User.id.not_in(owing))
    if filters.registered_after:
        conditions.append(User.created_at >= filters.registered_after)
    if filters.registered_before:
        conditions.append(User.created_at <= filters.registered_before)

    if conditions:
        query = query.where(and_(*conditions))

    query = query.order_by(User.created_at.desc(), User.id.desc())
    result = await paginate(db, query, page, limit)

    totals = await violation_totals(db, [user.id for user in result["data"]])
    result["totals"] = totals
    return result


def apply_action(user: User, action: str, admin_id: Optional[str] = None, reason: Optional[str] = None, role: Optional[UserRole] = None) -> None:
    now = utcnow()

    if action == "suspend":
        user.status = UserStatus.SUSPENDED
        user.is_active = False
        user.suspended_at = now
        user.suspended_reason = reason or "Suspended by admin"
        user.suspended_by = admin_id or "system"
    elif action == "activate":
        user.status = UserStatus.ACTIVE
        user.is_active = True
        user.suspended_at = None
        user.suspended_reason = None
        user.suspended_by = None
    elif action == "deactivate":
        user.status = UserStatus.INACTIVE
        user.is_active = False
    elif action == "verifyEmail":
        user.email_verified = True
    elif action == "verifyPhone":
        user.phone_verified = True
    elif action == "updateRole":
        if role is None:
            raise RecordValidationError("Role is required for updateRole", field="role")
        user.role = role
    else:
        raise RecordValidationError(f"Invalid action: {action}", field="action")

    user.updated_at = now


async def update_user_as_admin(db: AsyncSession, user_id: str, data: AdminUserUpdate, admin_id: Optional[str] = None) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise RecordNotFoundError("User not found")

    if data.action:
        apply_action(user, data.action, admin_id=admin_id, reason=data.reason, role=data.role)
    else:
        fields = data.model_dump(exclude_unset=True, exclude={"action", "reason"})
        changes = await user_service.prepare_user_changes(db, user, UserUpdate(**fields))
        await user_service.apply_user_changes(user, changes)

    await db.commit()
    await db.refresh(user)
    return user


async def bulk_update_users(db: AsyncSession, data: BulkUserUpdate, admin_id: Optional[str] = None) -> Dict[str, int]:
    """Apply one action, or one set of field updates, to many users."""
    if not data.user_ids:
        raise RecordValidationError("User IDs are required", field="userIds")
    if not data.action and data.updates is None:
        raise RecordValidationError("Either an action or updates are required")
    if data.action and data.action not in USER_ACTIONS:
        raise RecordValidationError(f"Invalid action: {data.action}", field="action")

    result = await db.execute(select(User).where(User.id.in_(data.user_ids)))
    users = result.scalars().all()

    modified = 0
    for user in users:
        if data.action:
            apply_action(user, data.action, admin_id=admin_id, reason=data.reason, role=data.role)
            modified += 1
            continue

        changes = await user_service.prepare_user_changes(db, user, data.updates)
        if changes:
            modified += 1
        await user_service.apply_user_changes(user, changes)

    await db.commit()
    logger.info("Bulk user update by %s: %d matched, %d modified", admin_id, len(users), modified)
    return {"matchedCount": len(users), "modifiedCount": modified}


async def get_user_details(db: AsyncSession, user_id: str) -> Optional[Dict[str, Any]]:
    user = await db.get(User, user_id)
    if not user:
        return None

    result = await db.execute(
        select(Case).where(Case.user_id == user_id).order_by(Case.created_at.desc(), Case.id.desc())
    )
    cases = list(result.scalars().all())

    by_status: Dict[str, int] = {}
    for case in cases:
        by_status[case.status.value] = by_status.get(case.status.value, 0) + 1

    paid = [case for case in cases if case.status == CaseStatus.PAID]
    outstanding = [case for case in cases if case.status in OUTSTANDING_CASE_STATUSES]

    return {
        "user": user,
        "violation_count": len(cases),
        "total_fines": sum(case.fine for case in cases),
        "outstanding_fines": sum(case.fine for case in outstanding),
        "paid_fines": sum(case.fine for case in paid),
        "violations_by_status": by_status,
        "violations_by_payment": {"paid": len(paid), "pending": len(cases) - len(paid)},
        "recent_violations": cases[:10],
    }


async def delete_user_as_admin(db: AsyncSession, user_id: str) -> int:
    """
    Remove a user who owes nothing, along with their settled cases.

    Returns:
        - int: Number of cases removed with the user.

    Raises:
        - RecordNotFoundError: Unknown user.
        - RecordValidationError: The user still has outstanding violations.
    """
    user = await db.get(User, user_id)
    if not user:
        raise RecordNotFoundError("User not found")

    result = await db.execute(select(Case).where(Case.user_id == user_id))
    cases = result.scalars().all()

    if any(case.status in OUTSTANDING_CASE_STATUSES for case in cases):
        raise RecordValidationError("Cannot delete user with outstanding violations. Please resolve all violations first.")

    for case in cases:
        await db.delete(case)
    await db.delete(user)
    await db.commit()

    logger.info("Deleted user %s and %d settled cases", user_id, len(cases))
    return len(cases)
