import logging
import math
import time
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.constants import CaseStatus, PaymentStatus
from bikefine.core.exceptions import RecordNotFoundError, RecordValidationError
from bikefine.models.case import Case
from bikefine.models.payment import Payment
from bikefine.schemas.payment import PaymentCreate
from bikefine.services import case_service
from bikefine.services.base import DEFAULT_PAGE_SIZE, paginate
from bikefine.utils.dates import utcnow

logger = logging.getLogger(__name__)


def parse_amount(amount: Any) -> float:
    if amount is None or amount == "":
        raise RecordValidationError("amount is required", field="amount")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise RecordValidationError("amount must be a positive number", field="amount")
    if math.isnan(value) or value <= 0:
        raise RecordValidationError("amount must be a positive number", field="amount")
    return value


async def create_payment(db: AsyncSession, data: PaymentCreate) -> Tuple[Payment, Optional[Case]]:
    """
    Record a payment against a case and mark the case paid.

    No gateway is involved: the payment is stored as completed straight away.
    """
    if not data.case_id:
        raise RecordValidationError("caseId is required", field="caseId")
    amount = parse_amount(data.amount)

    case = await case_service.get_case_by_id(db, data.case_id)
    if not case:
        raise RecordNotFoundError("Case not found")

    now = utcnow()
    payment = Payment(
        case_id=case.id,
        amount=amount,
        currency=data.currency or "USD",
        method=data.method,
        transaction_id=data.reference or f"bank-{int(time.time() * 1000)}",
        status=PaymentStatus.COMPLETED,
        paid_at=now,
    )
    db.add(payment)
    await db.commit()
    await db.refresh(payment)

    updated_case = await case_service.update_case(db, case.id, {"status": CaseStatus.PAID})
    logger.info("Recorded payment %s for case %s", payment.id, case.id)
    return payment, updated_case


async def get_payment_by_id(db: AsyncSession, payment_id: str) -> Optional[Payment]:
    return await db.get(Payment, payment_id)


async def update_payment_status(db: AsyncSession, payment_id: str, status: PaymentStatus) -> Optional[Payment]:
    payment = await db.get(Payment, payment_id)
    if not payment:
        return None

    payment.status = status
    if status == PaymentStatus.COMPLETED and not payment.paid_at:
        payment.paid_at = utcnow()
    payment.updated_at = utcnow()

    await db.commit()
    await db.refresh(payment)
    return payment


async def delete_payment(db: AsyncSession, payment_id: str) -> bool:
    payment = await db.get(Payment, payment_id)
    if not payment:
        return False

    await db.delete(payment)
    await db.commit()
    return True


async def list_payments(
    db: AsyncSession,
    case_id: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    query = select(Payment)
    if case_id:
        query = query.where(Payment.case_id == case_id)
    if status is not None:
        query = query.where(Payment.status == status)

    query = query.order_by(Payment.created_at.desc(), Payment.id.desc())
    return await paginate(db, query, page, limit)
