from datetime import datetime
from typing import Optional, Union

from bikefine.core.constants import PaymentMethod, PaymentStatus
from bikefine.schemas.base import CamelModel


class PaymentCreate(CamelModel):
    case_id: Optional[str] = None
    # Forms post the amount as a string
    amount: Optional[Union[float, str]] = None
    currency: str = "USD"
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference: Optional[str] = None


class PaymentOut(CamelModel):
    id: str
    case_id: str
    amount: float
    currency: str
    method: PaymentMethod
    transaction_id: str
    status: PaymentStatus
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
