import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.deps import Caller, admin_or_rider, parse_filters, record_activity, require_permission
from bikefine.api.responses import paginated, serialize, serialize_many, success_response
from bikefine.core.database import aget_db
from bikefine.core.exceptions import ServiceError
from bikefine.models.admin import AdminUser
from bikefine.schemas.case import RiderCaseOut
from bikefine.schemas.filters import UserFilters
from bikefine.schemas.user import UserCreate, UserOut, UserUpdate
from bikefine.services import case_service, user_service
from bikefine.services.base import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

# Account state a rider cannot change on their own profile
ADMIN_ONLY_FIELDS = {"role", "is_active", "status", "email_verified", "phone_verified", "notes"}


@router.get("")
async def list_users(
    request: Request,
    db: AsyncSession = Depends(aget_db),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
):
    """List users with filters: role, isActive, search, createdAfter, createdBefore"""
    filters = parse_filters(request, UserFilters)
    try:
        result = await user_service.list_users(db, filters, page, limit)
        return success_response(paginated(result, serialize_many(result["data"], UserOut)))
    except Exception:
        logger.exception("Error fetching users")
        raise HTTPException(status_code=500, detail="Failed to fetch users")


@router.post("", status_code=201)
async def create_user(payload: UserCreate, db: AsyncSession = Depends(aget_db)):
    try:
        user = await user_service.create_user(db, payload)
        return success_response(serialize(user, UserOut), message="User created successfully", status_code=201)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error creating user")
        raise HTTPException(status_code=500, detail="Failed to create user")


@router.get("/violations")
async def get_user_violations(
    user_id: str = Query(None, alias="userId"),
    db: AsyncSession = Depends(aget_db)
):
    """A rider's cases, newest first, with the rider's name and plate"""
    if not user_id:
        raise HTTPException(status_code=400, detail="userId is required")

    try:
        user = await user_service.get_user_by_id(db, user_id)
        cases = await case_service.get_cases_for_user(db, user_id, limit=50)

        rider_name = user.name if user else "Unknown"
        number_plate = (user.number_plate if user else None) or "N/A"
        data = [
            serialize(case, RiderCaseOut, rider_name=rider_name, number_plate=number_plate)
            for case in cases
        ]
        return success_response(data)
    except Exception:
        logger.exception("Error fetching violations for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to fetch user violations")


@router.get("/{user_id}")
async def get_user(user_id: str, db: AsyncSession = Depends(aget_db)):
    user = await user_service.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return success_response(serialize(user, UserOut))


@router.put("/{user_id}")
async def update_user(
    request: Request,
    user_id: str,
    payload: UserUpdate,
    db: AsyncSession = Depends(aget_db),
    caller: Caller = Depends(admin_or_rider("users", "edit"))
):
    if not caller.owns(user_id):
        raise HTTPException(status_code=403, detail="You can only update your own profile")
    if caller.admin is None and ADMIN_ONLY_FIELDS & payload.model_fields_set:
        raise HTTPException(status_code=403, detail="Only administrators can change account status or role")

    try:
        user = await user_service.update_user(db, user_id, payload)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error updating user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to update user")

    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    data = serialize(user, UserOut)
    if caller.admin is not None:
        await record_activity(db, request, "update", "user", resource_id=user_id)
    return success_response(data, message="User updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    request: Request,
    user_id: str,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("users", "delete"))
):
    try:
        deleted = await user_service.delete_user(db, user_id)
    except Exception:
        await db.rollback()
        logger.exception("Error deleting user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to delete user")

    if not deleted:
        raise HTTPException(status_code=404, detail="User not found")
    await record_activity(db, request, "delete", "user", resource_id=user_id)
    return success_response(message="User deleted successfully")
