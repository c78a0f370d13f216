from sqlalchemy import JSON, Column, String, Float, Enum, DateTime, Text
from bikefine.models.base import Base, TimestampMixin, id_factory
from bikefine.core.constants import CaseStatus, ViolationType


class Case(Base, TimestampMixin):
    __tablename__ = 'cases'

    id = Column(String(64), primary_key=True, default=id_factory("case"))
    # Owner is checked by the services; deleting a user leaves its cases alone
    user_id = Column(String(64), nullable=False, index=True)

    # Violation Details
    violation_type = Column(Enum(ViolationType), nullable=False)
    violation = Column(Text, nullable=False)
    fine = Column(Float, nullable=False)
    location = Column(String(255), nullable=False)
    date = Column(DateTime, nullable=False)
    due_date = Column(DateTime)

    # Evidence
    proof_url = Column(String(500), nullable=False)
    evidence_urls = Column(JSON, nullable=False, default=list)

    # Status tracking
    status = Column(Enum(CaseStatus), nullable=False, default=CaseStatus.PENDING)
    paid_at = Column(DateTime)
    disputed_at = Column(DateTime)
    resolved_at = Column(DateTime)

    # Enforcement
    admin_notes = Column(Text)
    officer_id = Column(String(64))
    vehicle_details = Column(JSON)  # make, model, color, year

    def __repr__(self):
        return f"<Case {self.id} {self.violation_type.value} ({self.status.value})>"
