import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.deps import parse_filters, record_activity, require_permission
from bikefine.api.responses import paginated, serialize, serialize_many, success_response
from bikefine.core.database import aget_db
from bikefine.core.exceptions import ServiceError
from bikefine.models.admin import AdminUser
from bikefine.schemas.case import CaseCreate, CaseOut, CaseUpdate
from bikefine.schemas.filters import CaseFilters
from bikefine.services import case_service
from bikefine.services.base import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cases", tags=["cases"])


@router.get("")
async def list_cases(
    request: Request,
    db: AsyncSession = Depends(aget_db),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
):
    filters = parse_filters(request, CaseFilters)
    try:
        result = await case_service.list_cases(db, filters, page, limit)
        return success_response(paginated(result, serialize_many(result["data"], CaseOut)))
    except Exception:
        logger.exception("Error fetching cases")
        raise HTTPException(status_code=500, detail="Failed to fetch cases")


@router.post("", status_code=201)
async def create_case(
    request: Request,
    payload: CaseCreate,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("violations", "create"))
):
    try:
        case = await case_service.create_case(db, payload)
        data = serialize(case, CaseOut)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error creating case")
        raise HTTPException(status_code=500, detail="Failed to create case")

    await record_activity(db, request, "create", "violation", resource_id=data["id"])
    return success_response(data, message="Case created successfully", status_code=201)


@router.get("/{case_id}")
async def get_case(case_id: str, db: AsyncSession = Depends(aget_db)):
    case = await case_service.get_case_by_id(db, case_id)
    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    return success_response(serialize(case, CaseOut))


@router.put("/{case_id}")
async def update_case(
    request: Request,
    case_id: str,
    payload: CaseUpdate,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("violations", "edit"))
):
    try:
        case = await case_service.update_case(db, case_id, payload)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error updating case %s", case_id)
        raise HTTPException(status_code=500, detail="Failed to update case")

    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    data = serialize(case, CaseOut)
    await record_activity(db, request, "update", "violation", resource_id=case_id)
    return success_response(data, message="Case updated successfully")


@router.delete("/{case_id}")
async def delete_case(
    request: Request,
    case_id: str,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("violations", "delete"))
):
    try:
        deleted = await case_service.delete_case(db, case_id)
    except Exception:
        await db.rollback()
        logger.exception("Error deleting case %s", case_id)
        raise HTTPException(status_code=500, detail="Failed to delete case")

    if not deleted:
        raise HTTPException(status_code=404, detail="Case not found")
    await record_activity(db, request, "delete", "violation", resource_id=case_id)
    return success_response(message="Case deleted successfully")
