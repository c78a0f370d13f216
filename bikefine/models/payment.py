from sqlalchemy import Column, Enum, String, Float, DateTime
from bikefine.models.base import Base, TimestampMixin, id_factory
from bikefine.core.constants import PaymentStatus, PaymentMethod


class Payment(Base, TimestampMixin):
    __tablename__ = 'payments'

    id = Column(String(64), primary_key=True, default=id_factory("payment"))
    case_id = Column(String(64), nullable=False, index=True)

    # Payment Details
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.BANK_TRANSFER)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.COMPLETED)

    # Transaction Details
    transaction_id = Column(String(100), nullable=False)
    paid_at = Column(DateTime)

    def __repr__(self):
        return f"<Payment {self.currency} {self.amount} for {self.case_id} ({self.status.value})>"
