import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.responses import success_response
from bikefine.core.database import aget_db
from bikefine.services import stats_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("")
async def get_stats(
    stat_type: str = Query("all", alias="type"),
    db: AsyncSession = Depends(aget_db)
):
    """Summary statistics: type=users|cases|queries|all"""
    if stat_type not in stats_service.STAT_TYPES + ("all",):
        raise HTTPException(status_code=400, detail="Invalid stats type. Use users, cases, queries or all")

    try:
        return success_response(await stats_service.get_stats(db, stat_type))
    except Exception:
        logger.exception("Error fetching %s statistics", stat_type)
        raise HTTPException(status_code=500, detail="Failed to fetch statistics")
