import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy import and_, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.constants import (
    OUTSTANDING_CASE_STATUSES,
    CaseStatus,
    QueryCategory,
    QueryPriority,
    QueryStatus,
    UserRole,
    UserStatus,
    ViolationType,
)
from bikefine.models.case import Case
from bikefine.models.query import UserQuery
from bikefine.models.user import User
from bikefine.services import user_service
from bikefine.utils.dates import utcnow

logger = logging.getLogger(__name__)

STAT_TYPES = ("users", "cases", "queries")


async def _scalar(db: AsyncSession, query) -> Any:
    result = await db.execute(query)
    return result.scalar() or 0


def _month_start(value: datetime) -> datetime:
    return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    return value.replace(year=value.year + month_index // 12, month=month_index % 12 + 1)


def _percentage(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


async def get_user_stats(db: AsyncSession) -> Dict[str, Any]:
    month_start = _month_start(utcnow())

    total_users = await _scalar(db, select(func.count(User.id)))
    active_users = await _scalar(db, select(func.count(User.id)).where(User.is_active.is_(True)))
    new_users = await _scalar(db, select(func.count(User.id)).where(User.created_at >= month_start))

    result = await db.execute(select(User.role, func.count(User.id)).group_by(User.role))
    users_by_role = {role.value: 0 for role in UserRole}
    for role, total in result.all():
        users_by_role[role.value] = total

    return {
        "totalUsers": total_users,
        "activeUsers": active_users,
        "newUsersThisMonth": new_users,
        "usersByRole": users_by_role,
    }


async def get_case_stats(db: AsyncSession) -> Dict[str, Any]:
    result = await db.execute(select(Case.status, func.count(Case.id), func.coalesce(func.sum(Case.fine), 0)).group_by(Case.status))
    counts = {status: 0 for status in CaseStatus}
    fines = {status: 0.0 for status in CaseStatus}
    for status, total, fine_total in result.all():
        counts[status] = total
        fines[status] = float(fine_total or 0)

    result = await db.execute(select(Case.violation_type, func.count(Case.id)).group_by(Case.violation_type))
    cases_by_type = {violation_type.value: 0 for violation_type in ViolationType}
    for violation_type, total in result.all():
        cases_by_type[violation_type.value] = total

    year = extract('year', Case.date)
    month = extract('month', Case.date)
    result = await db.execute(select(year, month, func.count(Case.id)).group_by(year, month).order_by(year, month))
    cases_by_month = {f"{int(y):04d}-{int(m):02d}": total for y, m, total in result.all()}

    return {
        "totalCases": sum(counts.values()),
        "pendingCases": counts[CaseStatus.PENDING],
        "paidCases": counts[CaseStatus.PAID],
        "disputedCases": counts[CaseStatus.DISPUTED],
        "totalFines": sum(fines.values()),
        "collectedFines": fines[CaseStatus.PAID],
        "casesByType": cases_by_type,
        "casesByMonth": cases_by_month,
    }


async def get_query_stats(db: AsyncSession) -> Dict[str, Any]:
    total_queries = await _scalar(db, select(func.count(UserQuery.id)))
    open_queries = await _scalar(db, select(func.count(UserQuery.id)).where(UserQuery.status == QueryStatus.OPEN))
    resolved_queries = await _scalar(db, select(func.count(UserQuery.id)).where(UserQuery.status == QueryStatus.RESOLVED))

    # Mean hours from creation to resolution over resolved queries
    result = await db.execute(
        select(UserQuery.created_at, UserQuery.resolved_at).where(
            and_(UserQuery.status == QueryStatus.RESOLVED, UserQuery.resolved_at.is_not(None))
        )
    )
    durations = [(resolved - created).total_seconds() / 3600 for created, resolved in result.all()]
    average_response_time = round(sum(durations) / len(durations), 2) if durations else 0

    result = await db.execute(select(UserQuery.category, func.count(UserQuery.id)).group_by(UserQuery.category))
    by_category = {category.value: 0 for category in QueryCategory}
    for category, total in result.all():
        by_category[category.value] = total

    result = await db.execute(select(UserQuery.priority, func.count(UserQuery.id)).group_by(UserQuery.priority))
    by_priority = {priority.value: 0 for priority in QueryPriority}
    for priority, total in result.all():
        by_priority[priority.value] = total

    return {
        "totalQueries": total_queries,
        "openQueries": open_queries,
        "resolvedQueries": resolved_queries,
        "averageResponseTime": average_response_time,
        "queriesByCategory": by_category,
        "queriesByPriority": by_priority,
    }


async def get_stats(db: AsyncSession, stat_type: str = "all") -> Dict[str, Any]:
    """Multiplex over the summaries: ``users``, ``cases``, ``queries`` or ``all``."""
    if stat_type == "users":
        return await get_user_stats(db)
    if stat_type == "cases":
        return await get_case_stats(db)
    if stat_type == "queries":
        return await get_query_stats(db)

    return {
        "users": await get_user_stats(db),
        "cases": await get_case_stats(db),
        "queries": await get_query_stats(db),
    }


async def _monthly_registrations(db: AsyncSession, now: datetime) -> List[Dict[str, Any]]:
    current = _month_start(now)
    months = []
    for offset in range(11, -1, -1):
        start = _add_months(current, -offset)
        end = _add_months(start, 1)
        total = await _scalar(
            db,
            select(func.count(User.id)).where(and_(User.created_at >= start, User.created_at < end)),
        )
        months.append({"month": start.strftime("%b %Y"), "count": total})
    return months


async def _top_violators(db: AsyncSession, limit: int = 10) -> List[Dict[str, Any]]:
    violation_count = func.count(Case.id)
    result = await db.execute(
        select(Case.user_id, violation_count, func.coalesce(func.sum(Case.fine), 0))
        .group_by(Case.user_id)
        .order_by(violation_count.desc(), Case.user_id)
        .limit(limit)
    )
    rows = result.all()

    users = await user_service.get_users_by_ids(db, [row[0] for row in rows])
    violators = []
    for user_id, total, fines in rows:
        user = users.get(user_id)
        violators.append({
            "userId": user_id,
            "userName": user.name if user else "Unknown User",
            "userEmail": user.email if user else "Unknown Email",
            "violationCount": total,
            "totalFines": float(fines or 0),
        })
    return violators


async def get_admin_user_stats(db: AsyncSession) -> Dict[str, Any]:
    """Dashboard summary of the user base for the admin panel."""
    now = utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total_users = await _scalar(db, select(func.count(User.id)))

    result = await db.execute(select(User.status, func.count(User.id)).group_by(User.status))
    by_status = {status: 0 for status in UserStatus}
    for status, total in result.all():
        by_status[status] = total

    email_verified = await _scalar(db, select(func.count(User.id)).where(User.email_verified.is_(True)))
    phone_verified = await _scalar(db, select(func.count(User.id)).where(User.phone_verified.is_(True)))

    result = await db.execute(select(User.role, func.count(User.id)).group_by(User.role))
    by_role = {role: 0 for role in UserRole}
    for role, total in result.all():
        by_role[role] = total

    with_violations = await _scalar(db, select(func.count(func.distinct(Case.user_id))))
    with_outstanding = await _scalar(
        db,
        select(func.count(func.distinct(Case.user_id))).where(Case.status.in_(OUTSTANDING_CASE_STATUSES)),
    )

    with_plates = await _scalar(
        db,
        select(func.count(User.id)).where(and_(User.number_plate.is_not(None), User.number_plate != "")),
    )

    def registered_since(since: datetime):
        return select(func.count(User.id)).where(User.created_at >= since)

    return {
        "overview": {
            "totalUsers": total_users,
            "activeUsers": by_status[UserStatus.ACTIVE],
            "suspendedUsers": by_status[UserStatus.SUSPENDED],
            "inactiveUsers": by_status[UserStatus.INACTIVE],
            "activePercentage": _percentage(by_status[UserStatus.ACTIVE], total_users),
            "suspendedPercentage": _percentage(by_status[UserStatus.SUSPENDED], total_users),
            "inactivePercentage": _percentage(by_status[UserStatus.INACTIVE], total_users),
        },
        "verification": {
            "emailVerifiedUsers": email_verified,
            "phoneVerifiedUsers": phone_verified,
            "emailVerifiedPercentage": _percentage(email_verified, total_users),
            "phoneVerifiedPercentage": _percentage(phone_verified, total_users),
        },
        "roles": {
            "regularUsers": by_role[UserRole.USER],
            "adminUsers": by_role[UserRole.ADMIN],
            "superAdminUsers": by_role[UserRole.SUPER_ADMIN],
        },
        "violations": {
            "usersWithViolations": with_violations,
            "usersWithoutViolations": max(total_users - with_violations, 0),
            "usersWithOutstandingFines": with_outstanding,
            "usersWithViolationsPercentage": _percentage(with_violations, total_users),
            "usersWithOutstandingFinesPercentage": _percentage(with_outstanding, total_users),
        },
        "registration": {
            "recentRegistrations": await _scalar(db, registered_since(now - timedelta(days=30))),
            "lastWeekRegistrations": await _scalar(db, registered_since(now - timedelta(days=7))),
            "todayRegistrations": await _scalar(db, registered_since(today)),
            "monthlyRegistrations": await _monthly_registrations(db, now),
        },
        "numberPlates": {
            "usersWithNumberPlates": with_plates,
            "usersWithoutNumberPlates": total_users - with_plates,
        },
        "topViolators": await _top_violators(db),
    }
