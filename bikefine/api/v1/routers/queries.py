import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.deps import Caller, admin_or_rider, parse_filters, record_activity, require_permission
from bikefine.api.responses import paginated, serialize, serialize_many, success_response
from bikefine.core.database import aget_db
from bikefine.core.exceptions import ServiceError
from bikefine.models.admin import AdminUser
from bikefine.schemas.filters import QueryFilters
from bikefine.schemas.query import QueryCreate, QueryOut, QueryResponseCreate, QueryResponseOut, QueryUpdate
from bikefine.services import query_service
from bikefine.services.base import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queries", tags=["queries"])

# Triage fields only staff may set
ADMIN_ONLY_FIELDS = {"status", "assigned_to"}


async def _owned_query(db: AsyncSession, query_id: str, caller: Caller):
    query = await query_service.get_query_by_id(db, query_id)
    if not query:
        raise HTTPException(status_code=404, detail="Query not found")
    if not caller.owns(query.user_id):
        raise HTTPException(status_code=403, detail="You can only manage your own queries")
    return query


@router.get("")
async def list_queries(
    request: Request,
    db: AsyncSession = Depends(aget_db),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
):
    filters = parse_filters(request, QueryFilters)
    try:
        result = await query_service.list_queries(db, filters, page, limit)
        return success_response(paginated(result, serialize_many(result["data"], QueryOut)))
    except Exception:
        logger.exception("Error fetching queries")
        raise HTTPException(status_code=500, detail="Failed to fetch queries")


@router.post("", status_code=201)
async def create_query(payload: QueryCreate, db: AsyncSession = Depends(aget_db)):
    try:
        query = await query_service.create_query(db, payload)
        return success_response(serialize(query, QueryOut), message="Query created successfully", status_code=201)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error creating query")
        raise HTTPException(status_code=500, detail="Failed to create query")


@router.get("/responses")
async def list_responses(
    query_id: str = Query(None, alias="queryId"),
    db: AsyncSession = Depends(aget_db)
):
    if not query_id:
        raise HTTPException(status_code=400, detail="Query ID is required")

    responses = await query_service.get_responses(db, query_id)
    return success_response(serialize_many(responses, QueryResponseOut))


@router.post("/responses", status_code=201)
async def create_response(
    request: Request,
    payload: QueryResponseCreate,
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("queries", "edit"))
):
    """Reply to a query; markAsResolved closes it, otherwise it moves to in_progress"""
    try:
        response = await query_service.create_response(db, payload)
        data = serialize(response, QueryResponseOut)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error creating response for query %s", payload.query_id)
        raise HTTPException(status_code=500, detail="Failed to create response")

    await record_activity(db, request, "respond", "query", resource_id=payload.query_id)
    return success_response(data, message="Response created successfully", status_code=201)


@router.get("/{query_id}")
async def get_query(query_id: str, db: AsyncSession = Depends(aget_db)):
    query = await query_service.get_query_by_id(db, query_id)
    if not query:
        raise HTTPException(status_code=404, detail="Query not found")
    return success_response(serialize(query, QueryOut))


@router.put("/{query_id}")
async def update_query(
    query_id: str,
    payload: QueryUpdate,
    db: AsyncSession = Depends(aget_db),
    caller: Caller = Depends(admin_or_rider("queries", "edit"))
):
    await _owned_query(db, query_id, caller)
    if caller.admin is None and ADMIN_ONLY_FIELDS & payload.model_fields_set:
        raise HTTPException(status_code=403, detail="Only administrators can change status or assignment")

    try:
        query = await query_service.update_query(db, query_id, payload)
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Error updating query %s", query_id)
        raise HTTPException(status_code=500, detail="Failed to update query")

    if not query:
        raise HTTPException(status_code=404, detail="Query not found")
    return success_response(serialize(query, QueryOut), message="Query updated successfully")


@router.delete("/{query_id}")
async def delete_query(
    query_id: str,
    db: AsyncSession = Depends(aget_db),
    caller: Caller = Depends(admin_or_rider("queries", "delete"))
):
    await _owned_query(db, query_id, caller)

    try:
        deleted = await query_service.delete_query(db, query_id)
    except Exception:
        await db.rollback()
        logger.exception("Error deleting query %s", query_id)
        raise HTTPException(status_code=500, detail="Failed to delete query")

    if not deleted:
        raise HTTPException(status_code=404, detail="Query not found")
    return success_response(message="Query deleted successfully")
