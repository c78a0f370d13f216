import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.deps import parse_filters, record_activity, require_permission
from bikefine.api.responses import paginated, serialize, success_response
from bikefine.core.database import aget_db
from bikefine.core.exceptions import ServiceError
from bikefine.models.admin import AdminUser
from bikefine.schemas.case import AdminCaseOut, CaseOut, ViolationCreate
from bikefine.schemas.filters import CaseFilters
from bikefine.services import case_service, user_service
from bikefine.services.base import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from bikefine.services.notification_service import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/violations")
async def list_violations(
    request: Request,
    db: AsyncSession = Depends(aget_db),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    admin: AdminUser = Depends(require_permission("violations", "view"))
):
    """All cases with the owning rider's name, email and plate"""
    filters = parse_filters(request, CaseFilters)
    try:
        result = await case_service.list_cases(db, filters, page, limit)
        users = await user_service.get_users_by_ids(db, [case.user_id for case in result["data"]])

        items = []
        for case in result["data"]:
            user = users.get(case.user_id)
            items.append(serialize(
                case,
                AdminCaseOut,
                user_name=user.name if user else "Unknown User",
                user_email=user.email if user else "unknown@example.com",
                number_plate=(user.number_plate if user else None) or "N/A",
            ))
        return success_response(paginated(result, items))
    except Exception:
        logger.exception("Error fetching violations")
        raise HTTPException(status_code=500, detail="Failed to fetch violations")


@router.post("/violations", status_code=201)
async def create_violation(
    request: Request,
    payload: ViolationCreate,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("violations", "create"))
):
    """
    File a violation against a rider.

    The rider is identified by ``userId`` or, failing that, ``numberPlate``.
    A companion query is added to the rider's inbox on a best-effort basis.
    """
    try:
        case = await case_service.file_violation(db, payload)
        data = serialize(case, CaseOut)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error creating violation")
        raise HTTPException(status_code=500, detail="Failed to create violation")

    await notification_service.notify_case_filed(db, case)
    await record_activity(
        db, request, "create", "violation",
        resource_id=data["id"],
        details=f"Filed {data['violationType']} violation for user {data['userId']}",
    )

    return success_response(data, message="Violation case created successfully", status_code=201)
