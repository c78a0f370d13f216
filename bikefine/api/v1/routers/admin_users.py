import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.deps import parse_filters, record_activity, require_permission
from bikefine.api.responses import paginated, serialize, serialize_many, success_response
from bikefine.core.database import aget_db
from bikefine.core.exceptions import ServiceError
from bikefine.models.admin import AdminUser
from bikefine.schemas.case import CaseOut
from bikefine.schemas.filters import AdminUserFilters
from bikefine.schemas.user import AdminUserUpdate, AdminUserView, BulkUserUpdate, UserCreate, UserOut
from bikefine.services import stats_service, user_management, user_service
from bikefine.services.base import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["admin"])

EMPTY_TOTALS = {
    "violation_count": 0,
    "total_fines": 0.0,
    "outstanding_fines": 0.0,
    "has_violations": False,
    "has_outstanding_fines": False,
}


@router.get("")
async def list_users(
    request: Request,
    db: AsyncSession = Depends(aget_db),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    admin: AdminUser = Depends(require_permission("users", "view"))
):
    """Users with their violation totals for the admin dashboard"""
    filters = parse_filters(request, AdminUserFilters)
    try:
        result = await user_management.list_users_for_admin(db, filters, page, limit)
        items = [
            serialize(user, AdminUserView, **result["totals"].get(user.id, EMPTY_TOTALS))
            for user in result["data"]
        ]
        return success_response(paginated(result, items))
    except Exception:
        logger.exception("Error fetching admin user list")
        raise HTTPException(status_code=500, detail="Failed to fetch users")


@router.post("", status_code=201)
async def create_user(
    request: Request,
    payload: UserCreate,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("users", "create"))
):
    try:
        user = await user_service.create_user(db, payload)
        data = serialize(user, UserOut)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error creating user")
        raise HTTPException(status_code=500, detail="Failed to create user")

    await record_activity(db, request, "create", "user", resource_id=data["id"], details=f"Created user {data['email']}")
    return success_response(data, message="User created successfully", status_code=201)


@router.put("")
async def bulk_update_users(
    request: Request,
    payload: BulkUserUpdate,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("users", "edit"))
):
    """Apply an action (suspend, activate, deactivate, verifyEmail, verifyPhone, updateRole) or updates to many users"""
    try:
        counts = await user_management.bulk_update_users(db, payload, admin_id=request.state.admin_id)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error in bulk user update")
        raise HTTPException(status_code=500, detail="Failed to update users")

    await record_activity(
        db, request, payload.action or "update", "user",
        details=f"Bulk update of {counts['matchedCount']} users",
    )
    return success_response(counts, message=f"{counts['modifiedCount']} users updated successfully")


@router.get("/search")
async def search_users(
    number_plate: str = Query(None, alias="numberPlate"),
    search: str = Query(None),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("users", "view"))
):
    if not number_plate and not search:
        raise HTTPException(status_code=400, detail="Number plate or search term is required")

    users = await user_service.search_users(db, number_plate=number_plate, search=search, limit=limit)
    return success_response(serialize_many(users, UserOut))


@router.get("/stats")
async def user_statistics(
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("reports", "view"))
):
    try:
        return success_response(await stats_service.get_admin_user_stats(db))
    except Exception:
        logger.exception("Error fetching user statistics")
        raise HTTPException(status_code=500, detail="Failed to fetch user statistics")


@router.get("/{user_id}")
async def get_user_details(
    user_id: str,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("users", "view"))
):
    details = await user_management.get_user_details(db, user_id)
    if not details:
        raise HTTPException(status_code=404, detail="User not found")

    user = serialize(details["user"], UserOut)
    user.update({
        "violationCount": details["violation_count"],
        "totalFines": details["total_fines"],
        "outstandingFines": details["outstanding_fines"],
        "paidFines": details["paid_fines"],
        "violationsByStatus": details["violations_by_status"],
        "violationsByPayment": details["violations_by_payment"],
        "recentViolations": serialize_many(details["recent_violations"], CaseOut),
    })
    return success_response({"user": user})


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    request: Request,
    payload: AdminUserUpdate,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("users", "edit"))
):
    try:
        user = await user_management.update_user_as_admin(db, user_id, payload, admin_id=request.state.admin_id)
        data = serialize(user, UserOut)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error updating user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to update user")

    await record_activity(db, request, payload.action or "update", "user", resource_id=user_id)
    return success_response(data, message="User updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("users", "delete"))
):
    """Delete a rider with no outstanding violations, along with their settled cases"""
    try:
        removed_cases = await user_management.delete_user_as_admin(db, user_id)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error deleting user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to delete user")

    await record_activity(db, request, "delete", "user", resource_id=user_id, details=f"Removed {removed_cases} settled cases")
    return success_response(
        {"deletedUserId": user_id, "deletedCases": removed_cases},
        message="User deleted successfully"
    )
