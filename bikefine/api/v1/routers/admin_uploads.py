import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.deps import record_activity, require_permission
from bikefine.api.responses import serialize, success_response
from bikefine.core.database import aget_db
from bikefine.core.exceptions import ServiceError
from bikefine.models.admin import AdminUser
from bikefine.schemas.case import CaseOut
from bikefine.schemas.query import QueryAttachmentOut
from bikefine.services import case_service, query_service, upload_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/cases/attach")
async def attach_case_evidence(
    request: Request,
    file: UploadFile = File(None),
    case_id: str = Form(None, alias="caseId"),
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("violations", "edit"))
):
    """Upload an image or video and add it to a case's evidence"""
    if not case_id:
        raise HTTPException(status_code=400, detail="Case ID is required")
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")

    if not await case_service.get_case_by_id(db, case_id):
        raise HTTPException(status_code=404, detail="Case not found")

    stored = await upload_service.save_upload(
        file,
        upload_dir=request.app.state.upload_dir,
        max_bytes=request.app.state.max_upload_bytes,
    )
    try:
        case = await case_service.attach_evidence(db, case_id, stored.url)
        data = {"url": stored.url, "case": serialize(case, CaseOut)}
    except ServiceError:
        await upload_service.discard(stored)
        raise
    except Exception:
        await db.rollback()
        await upload_service.discard(stored)
        logger.exception("Error attaching evidence to case %s", case_id)
        raise HTTPException(status_code=500, detail="Failed to upload file")

    await record_activity(db, request, "upload", "violation", resource_id=case_id, details=stored.url)
    return success_response(data, message="File uploaded successfully")


@router.post("/queries/attachments", status_code=201)
async def upload_query_attachment(
    request: Request,
    file: UploadFile = File(None),
    query_id: str = Form(None, alias="queryId"),
    response_id: str = Form(None, alias="responseId"),
    db: AsyncSession = Depends(aget_db),
    admin: AdminUser = Depends(require_permission("queries", "edit"))
):
    """Upload a file and record it against a query or one of its responses"""
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")

    await query_service.resolve_attachment_target(db, query_id, response_id)

    stored = await upload_service.save_upload(
        file,
        upload_dir=request.app.state.upload_dir,
        max_bytes=request.app.state.max_upload_bytes,
    )
    try:
        attachment = await query_service.create_attachment(
            db,
            stored,
            query_id=query_id,
            response_id=response_id,
            uploaded_by=request.state.admin_id,
        )
        data = serialize(attachment, QueryAttachmentOut)
    except ServiceError:
        await upload_service.discard(stored)
        raise
    except Exception:
        await db.rollback()
        await upload_service.discard(stored)
        logger.exception("Error uploading query attachment")
        raise HTTPException(status_code=500, detail="Failed to upload attachment")

    await record_activity(db, request, "upload", "query", resource_id=data["queryId"], details=stored.url)
    return success_response(data, message="Attachment uploaded successfully", status_code=201)
