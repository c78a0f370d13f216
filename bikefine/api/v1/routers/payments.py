import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.api.deps import Caller, admin_or_rider
from bikefine.api.responses import paginated, serialize, serialize_many, success_response
from bikefine.core.constants import PaymentStatus
from bikefine.core.database import aget_db
from bikefine.core.exceptions import ServiceError
from bikefine.schemas.case import CaseOut
from bikefine.schemas.payment import PaymentCreate, PaymentOut
from bikefine.services import case_service, payment_service
from bikefine.services.base import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", status_code=201)
async def create_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(aget_db),
    caller: Caller = Depends(admin_or_rider("payments", "create"))
):
    """Record a fine payment. There is no gateway: the payment completes immediately."""
    if payload.case_id:
        case = await case_service.get_case_by_id(db, payload.case_id)
        if case and not caller.owns(case.user_id):
            raise HTTPException(status_code=403, detail="You can only pay your own fines")

    try:
        payment, case = await payment_service.create_payment(db, payload)
        return success_response(
            {
                "payment": serialize(payment, PaymentOut),
                "case": serialize(case, CaseOut) if case else None,
            },
            message="Payment processed successfully",
            status_code=201
        )
    except (HTTPException, ServiceError):
        raise
    except Exception:
        await db.rollback()
        logger.exception("Payment error for case %s", payload.case_id)
        raise HTTPException(status_code=500, detail="Failed to process payment")


@router.get("")
async def list_payments(
    db: AsyncSession = Depends(aget_db),
    case_id: str = Query(None, alias="caseId"),
    status: PaymentStatus = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
):
    result = await payment_service.list_payments(db, case_id=case_id, status=status, page=page, limit=limit)
    return success_response(paginated(result, serialize_many(result["data"], PaymentOut)))


@router.get("/{payment_id}")
async def get_payment(payment_id: str, db: AsyncSession = Depends(aget_db)):
    payment = await payment_service.get_payment_by_id(db, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return success_response(serialize(payment, PaymentOut))
