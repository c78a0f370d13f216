import logging

from fastapi import APIRouter, Request

from bikefine.api.responses import error_response, success_response
from bikefine.core.database import Database
from bikefine.utils.dates import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(request: Request):
    """Ping the database and list its collections"""
    database: Database = request.app.state.database
    try:
        await database.ping()
        collections = await database.list_collections()
    except Exception:
        logger.exception("Health check failed")
        return error_response("Database connection failed", 500)

    return success_response(
        {
            "status": "healthy",
            "database": database.name,
            "collections": sorted(collections),
            "timestamp": utcnow().isoformat(),
        },
        message="Database connection successful"
    )
